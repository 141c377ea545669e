"""The active mapping configuration and its presets.

The store owns the one PeonConfig the engine dispatches against.  Presets
are other documents in the presets directory; switching to one replaces
the in-memory mappings and volume and leaves openpeon.yml alone.  Setting
the volume is the only change written back to openpeon.yml, and only the
``volume`` field of the on-disk document changes.

Administrative calls can come from the HTTP admin server and the MCP
server at the same time, so mutations are serialised with a lock.
"""

from __future__ import annotations

import copy
import logging
import math
import os
import random
import threading
from dataclasses import dataclass
from typing import Any, Optional

from .config import (
    DEFAULT_CONFIG,
    DEFAULT_PRESETS_DIR,
    PeonConfig,
    read_document,
    write_document,
)
from .logging import log_context
from .mappings import Mapping

log = logging.getLogger("openpeon.store")

PRESET_SUFFIXES = (".yml", ".yaml", ".json")


@dataclass
class StoreResult:
    """Outcome of an administrative operation."""

    ok: bool
    message: str


def valid_preset_name(name: str) -> bool:
    """Preset names are plain file stems: no separators, no leading dot."""
    return (
        bool(name)
        and not name.startswith(".")
        and "/" not in name
        and "\\" not in name
        and os.sep not in name
    )


class MappingStore:
    """Holds the active configuration and switches presets into it."""

    def __init__(self, config: PeonConfig, presets_dir: str = DEFAULT_PRESETS_DIR) -> None:
        self._config = config
        self._presets_dir = presets_dir
        self._mappings = config.mappings
        self._lock = threading.Lock()
        self.active_preset: Optional[str] = None

    @classmethod
    def load(cls, config_path: Optional[str] = None,
             presets_dir: str = DEFAULT_PRESETS_DIR) -> "MappingStore":
        """Load the config document (defaults on failure) into a new store."""
        return cls(PeonConfig.load(config_path), presets_dir)

    # ─── Reads ──────────────────────────────────────────────────────

    @property
    def config(self) -> PeonConfig:
        return self._config

    @property
    def mappings(self) -> list[Mapping]:
        return self._mappings

    @property
    def volume(self) -> int:
        return self._config.volume

    @property
    def presets_dir(self) -> str:
        return self._presets_dir

    def list_presets(self) -> list[str]:
        """Sorted preset names. Empty if the presets directory is missing."""
        if not os.path.isdir(self._presets_dir):
            return []
        names = set()
        for entry in os.listdir(self._presets_dir):
            stem, ext = os.path.splitext(entry)
            if ext.lower() in PRESET_SUFFIXES and valid_preset_name(stem):
                names.add(stem)
        return sorted(names)

    def preset_path(self, name: str) -> Optional[str]:
        """Path of an existing preset document, or None."""
        if not valid_preset_name(name):
            return None
        for suffix in PRESET_SUFFIXES:
            path = os.path.join(self._presets_dir, name + suffix)
            if os.path.isfile(path):
                return path
        return None

    def load_preset(self, name: str) -> dict[str, Any]:
        """Read one preset document from disk (never cached).

        Raises:
            FileNotFoundError: No preset with that name.
            ValueError: The document is not a usable configuration.
        """
        path = self.preset_path(name)
        if path is None:
            raise FileNotFoundError(name)
        doc = read_document(path)
        if not isinstance(doc.get("mappings"), list):
            raise ValueError("'mappings' must be a list")
        volume = doc.get("volume")
        if volume is not None and (isinstance(volume, bool) or not isinstance(volume, (int, float))
                                   or not math.isfinite(volume)):
            raise ValueError(f"'volume' must be a finite number, got {volume!r}")
        return doc

    # ─── Mutations ──────────────────────────────────────────────────

    def replace(self, config: PeonConfig) -> None:
        """Swap the whole active configuration (e.g. after a config edit)."""
        with self._lock:
            self._config = config
            self._mappings = config.mappings
            self.active_preset = None

    def reload(self) -> None:
        """Re-read the config document from disk."""
        self.replace(PeonConfig.load(self._config.config_path))

    def switch_preset(self, name: str) -> StoreResult:
        """Apply preset *name* to the active configuration.

        On any failure the active configuration is left as it was.
        """
        try:
            doc = self.load_preset(name)
        except FileNotFoundError:
            log.debug("preset-missing", extra={"context": log_context(preset=name)})
            return StoreResult(False, f"Preset '{name}' not found")
        except (OSError, ValueError) as e:
            log.warning("Preset '%s' is malformed: %s", name, e)
            return StoreResult(False, f"Preset '{name}' is malformed: {e}")

        with self._lock:
            self._config.replace_mappings(doc["mappings"], doc.get("volume"))
            self._mappings = self._config.mappings
            self.active_preset = name
        count = len(self._mappings)
        log.debug("preset-switched", extra={"context": log_context(
            preset=name, mappings=count, volume=self.volume)})
        return StoreResult(
            True,
            f"Switched to preset '{name}' ({count} mapping{'s' if count != 1 else ''}, volume {self.volume})",
        )

    def apply_random_preset(self, rng: Optional[random.Random] = None) -> Optional[str]:
        """Switch to a uniformly chosen preset. Returns its name, or None."""
        names = self.list_presets()
        if not names:
            log.debug("random-preset-skip", extra={"context": log_context(reason="no-presets")})
            return None
        name = (rng or random).choice(names)
        result = self.switch_preset(name)
        return name if result.ok else None

    def set_volume(self, level: Any) -> StoreResult:
        """Clamp, apply in memory, then persist just the volume field.

        The in-memory change always sticks; ``ok`` says whether it was
        saved to the configuration document.
        """
        path = self._config.config_path
        with self._lock:
            clamped = self._config.set_volume(level)
            try:
                try:
                    doc = read_document(path)
                except FileNotFoundError:
                    doc = copy.deepcopy(DEFAULT_CONFIG)
                doc["volume"] = clamped
                write_document(path, doc)
            except (OSError, ValueError) as e:
                log.warning("Failed to save volume to %s: %s", path, e)
                return StoreResult(False, f"Volume set to {clamped} (not saved: {e})")
        return StoreResult(True, f"Volume set to {clamped}")


