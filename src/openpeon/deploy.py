"""Install openpeon into the host's plugin directory.

Copies the ``openpeon`` package itself, the config document, the sounds
and the presets from a working copy into
``~/.config/opencode/plugins/openpeon``.  Deployed sounds and presets are
replaced wholesale so deleted files do not linger.
"""

from __future__ import annotations

import logging
import os
import shutil
from typing import Any, Optional

from .config import PeonPaths
from .logging import log_context

log = logging.getLogger("openpeon.deploy")

DEFAULT_DEPLOY_DIR = os.path.join(
    os.path.expanduser("~"), ".config", "opencode", "plugins", "openpeon"
)

PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))


def _replace_tree(src: str, dest: str) -> None:
    if os.path.exists(dest):
        shutil.rmtree(dest)
    shutil.copytree(src, dest)


def deploy_plugin(paths: PeonPaths, deploy_dir: Optional[str] = None) -> dict[str, Any]:
    """Copy code, config, sounds and presets into *deploy_dir*.

    Returns ``{"success": True, "path": ...}`` or
    ``{"success": False, "error": ...}``; never raises.
    """
    target = deploy_dir or DEFAULT_DEPLOY_DIR
    if os.path.realpath(target) == os.path.realpath(paths.base_dir):
        return {"success": False, "error": "source and deploy directory are the same"}
    try:
        os.makedirs(target, exist_ok=True)

        shutil.copytree(
            PACKAGE_DIR,
            os.path.join(target, "openpeon"),
            dirs_exist_ok=True,
            ignore=shutil.ignore_patterns("__pycache__", "*.pyc"),
        )

        if os.path.isfile(paths.config_path):
            shutil.copyfile(paths.config_path, os.path.join(target, "openpeon.yml"))

        deployed_sounds = os.path.join(target, "sounds")
        if os.path.isdir(paths.sounds_dir):
            _replace_tree(paths.sounds_dir, deployed_sounds)

        deployed_presets = os.path.join(target, "presets")
        if os.path.exists(deployed_presets):
            shutil.rmtree(deployed_presets)
        if os.path.isdir(paths.presets_dir):
            shutil.copytree(paths.presets_dir, deployed_presets)
    except (OSError, shutil.Error) as e:
        log.warning("Deploy to %s failed: %s", target, e)
        return {"success": False, "error": str(e) or "Unknown error"}

    log.debug("deployed", extra={"context": log_context(path=target)})
    return {"success": True, "path": target}
