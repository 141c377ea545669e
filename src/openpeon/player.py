"""Audio output for openpeon.

Playback is fire-and-forget: ``emit()`` hands the launch of an external
``afplay`` process to a daemon thread and returns immediately.  Nothing
waits for, retries, or cancels playback, and several sounds may overlap.

Audio problems must never disturb the host, so the player only has two
states.  It starts disabled when the platform has no ``afplay`` (anything
but macOS) or the binary is missing, and it disables itself for good the
first time a launch fails.  A disabled player silently ignores ``emit()``.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys
import threading
from typing import Callable, Optional, Protocol

from .logging import log_context
from .sounds import resolve_sound_path

log = logging.getLogger("openpeon.player")

AFPLAY_FALLBACK = "/usr/bin/afplay"


class AudioSink(Protocol):
    """Anything that can play a sound id at an amplitude.

    The engine only talks to this interface, so tests and embedders can
    swap in their own sink.
    """

    @property
    def disabled(self) -> bool:
        """True once the sink has given up on playing anything."""
        ...

    def emit(self, sound_id: str, amplitude: float) -> None:
        """Start playing *sound_id* at *amplitude* (0.0-1.0). Never raises."""
        ...


def _find_binary(name: str, fallback: Optional[str] = None) -> Optional[str]:
    """Find a binary in PATH, then at *fallback*."""
    found = shutil.which(name)
    if found:
        return found
    if fallback and os.path.isfile(fallback):
        return fallback
    return None


def _start_daemon_thread(target: Callable[..., None], *args) -> None:
    threading.Thread(target=target, args=args, daemon=True).start()


class AfplayPlayer:
    """Plays sounds through macOS ``afplay -v <amplitude> <file>``.

    Args:
        sounds_dir: Directory sound ids are resolved against.
        binary: Explicit afplay path (default: PATH lookup, then
            /usr/bin/afplay).
        platform: Override for ``sys.platform`` (pre-flight check).
        schedule: Callable ``(fn, *args)`` that runs the launch later.
            Defaults to a daemon thread per launch.
    """

    def __init__(
        self,
        sounds_dir: str,
        binary: Optional[str] = None,
        platform: Optional[str] = None,
        schedule: Optional[Callable[..., None]] = None,
    ) -> None:
        self._sounds_dir = sounds_dir
        self._schedule = schedule or _start_daemon_thread
        self._disabled = False
        self.disabled_reason = ""

        self._binary = binary or _find_binary("afplay", AFPLAY_FALLBACK)
        plat = platform or sys.platform
        if plat != "darwin":
            self._disable("non-macos", platform=plat)
        elif not self._binary or not os.path.isfile(self._binary):
            self._disable("afplay-missing", path=self._binary or AFPLAY_FALLBACK)

    @property
    def disabled(self) -> bool:
        return self._disabled

    @property
    def sounds_dir(self) -> str:
        return self._sounds_dir

    def _disable(self, reason: str, **extra) -> None:
        self._disabled = True
        self.disabled_reason = reason
        log.debug("disabled", extra={"context": log_context(reason=reason, **extra)})

    def emit(self, sound_id: str, amplitude: float) -> None:
        if self._disabled:
            return
        try:
            path = resolve_sound_path(self._sounds_dir, sound_id)
            if path is None:
                log.debug("sound-skip", extra={"context": log_context(
                    sound=sound_id, reason="outside-sounds-dir")})
                return
            cmd = [self._binary, "-v", f"{amplitude:.4f}", path]
            self._schedule(self._launch, cmd)
        except Exception as exc:
            self._disable("emit-failed", message=str(exc))

    def _launch(self, cmd: list[str]) -> None:
        """Spawn the player detached from us. Runs on the scheduled thread."""
        if self._disabled:
            return
        try:
            subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except Exception as exc:
            self._disable("spawn-failed", message=str(exc))
