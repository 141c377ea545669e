"""The event-to-sound dispatch engine.

One PeonEngine per host.  The host calls the handlers returned by
``hooks()`` once per stimulus, one at a time; each call runs

    stimulus → gate.check → match → (select sound → volume curve → emit)*
             → gate.record

synchronously, except for the actual playback which the sink detaches.
Nothing on this path raises into the host: a failed sound is a logged
no-op.  The admin methods (``*_text``) are the opposite: they report
what went wrong, as text meant for a human.
"""

from __future__ import annotations

import logging
import random
import time
from typing import Any, Callable, Optional

from .config import DEFAULT_PRESETS_DIR, DEFAULT_SOUNDS_DIR
from .gate import SuppressionGate
from .logging import log_context
from .mappings import STARTUP_EVENT, describe_trigger
from .matcher import (
    KIND_TOOL_AFTER,
    KIND_TOOL_BEFORE,
    Stimulus,
    match,
    stimulus_from_event,
    stimulus_from_tool,
)
from .player import AfplayPlayer, AudioSink
from .sounds import select_sound, volume_curve
from .store import MappingStore, StoreResult

log = logging.getLogger("openpeon.engine")


class PeonEngine:
    """Owns the mapping store, the suppression gate and the audio sink."""

    def __init__(
        self,
        store: MappingStore,
        sink: AudioSink,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._sink = sink
        self._rng = rng or random.Random()
        self._gate = SuppressionGate.from_config(store.config, clock=clock)
        self._started = False

    @classmethod
    def create(
        cls,
        config_path: Optional[str] = None,
        presets_dir: str = DEFAULT_PRESETS_DIR,
        sounds_dir: str = DEFAULT_SOUNDS_DIR,
        sink: Optional[AudioSink] = None,
        rng: Optional[random.Random] = None,
    ) -> "PeonEngine":
        """Build an engine from the on-disk config, presets and sounds."""
        store = MappingStore.load(config_path, presets_dir)
        return cls(store, sink or AfplayPlayer(sounds_dir), rng=rng)

    @property
    def store(self) -> MappingStore:
        return self._store

    @property
    def sink(self) -> AudioSink:
        return self._sink

    @property
    def gate(self) -> SuppressionGate:
        return self._gate

    @property
    def started(self) -> bool:
        return self._started

    def start(self) -> None:
        """Apply a random preset if requested, then announce startup.

        Call once, before delivering the first host stimulus.
        """
        if self._started:
            return
        if self._store.config.random_preset:
            chosen = self._store.apply_random_preset(self._rng)
            log.debug("random-preset", extra={"context": log_context(preset=chosen or "")})
        self._started = True
        self.handle_event({"type": STARTUP_EVENT})

    # ─── Host hooks ─────────────────────────────────────────────────

    def hooks(self) -> dict[str, Callable[[Any], list[str]]]:
        """Handlers to register with the host, keyed by hook name."""
        return {
            "event": self._on_event_hook,
            "tool.execute.before": self.handle_tool_before,
            "tool.execute.after": self.handle_tool_after,
        }

    def _on_event_hook(self, payload: Any) -> list[str]:
        # The host wraps events as {"event": {...}}; accept a bare event too.
        if isinstance(payload, dict) and isinstance(payload.get("event"), dict):
            payload = payload["event"]
        return self.handle_event(payload)

    def handle_event(self, event: Any) -> list[str]:
        """Dispatch one lifecycle event. Returns the sound ids emitted."""
        stimulus = stimulus_from_event(event)
        if stimulus is None:
            log.debug("event-skip", extra={"context": log_context(reason="malformed")})
            return []
        return self.dispatch(stimulus)

    def handle_tool_before(self, hook_input: Any) -> list[str]:
        return self._handle_tool(KIND_TOOL_BEFORE, hook_input)

    def handle_tool_after(self, hook_input: Any) -> list[str]:
        return self._handle_tool(KIND_TOOL_AFTER, hook_input)

    def _handle_tool(self, kind: str, hook_input: Any) -> list[str]:
        stimulus = stimulus_from_tool(kind, hook_input)
        if stimulus is None:
            log.debug("tool-skip", extra={"context": log_context(event=kind, reason="malformed")})
            return []
        return self.dispatch(stimulus)

    def dispatch(self, stimulus: Stimulus) -> list[str]:
        """Gate, match and play. Never raises."""
        try:
            reason = self._gate.check(stimulus)
            if reason:
                log.debug("stimulus-skip", extra={"context": log_context(
                    event=stimulus.label, reason=reason,
                    message_id=stimulus.message_id,
                    permission_id=stimulus.permission_request_id,
                )})
                return []

            played = self._play(stimulus)
            if played:
                self._gate.record(stimulus)
            return played
        except Exception:
            log.exception("dispatch failed for %s", stimulus.label)
            return []

    def _play(self, stimulus: Stimulus) -> list[str]:
        """Match and emit, bypassing the gate. Returns the sound ids emitted."""
        matched = match(stimulus, self._store.mappings)
        volume = self._store.volume
        played = []
        for mapping in matched:
            sound = select_sound(mapping.sounds, self._rng)
            if sound is None:
                continue
            amplitude = volume_curve(volume, mapping.whisper)
            log.debug("play", extra={"context": log_context(
                event=stimulus.label, sound=sound,
                mapping=mapping.name, amplitude=round(amplitude, 4),
            )})
            self._sink.emit(sound, amplitude)
            played.append(sound)
        return played

    # ─── Administration ─────────────────────────────────────────────

    def reload(self) -> None:
        """Re-read the config document (e.g. after it was edited)."""
        self._store.reload()
        self._gate.configure(self._store.config)

    def list_presets(self) -> list[str]:
        return self._store.list_presets()

    def switch_preset(self, name: str) -> StoreResult:
        return self._store.switch_preset(name)

    def set_volume(self, level: Any) -> StoreResult:
        return self._store.set_volume(level)

    def list_presets_text(self) -> str:
        names = self._store.list_presets()
        if not names:
            return f"No presets found in {self._store.presets_dir}"
        active = self._store.active_preset
        lines = ["Available presets:"]
        for name in names:
            marker = " (active)" if name == active else ""
            lines.append(f"  - {name}{marker}")
        return "\n".join(lines)

    def switch_preset_text(self, name: str) -> str:
        return self._store.switch_preset(name.strip()).message

    def set_volume_text(self, level: Any) -> str:
        return self._store.set_volume(level).message

    def status_text(self) -> str:
        """Human-readable summary of the active configuration."""
        volume = self._store.volume
        preset = self._store.active_preset or "(config file)"
        if self._sink.disabled:
            reason = getattr(self._sink, "disabled_reason", "")
            audio = f"disabled ({reason})" if reason else "disabled"
        else:
            audio = "enabled"
        lines = [
            f"Volume: {volume} (amplitude {volume_curve(volume):.2f})",
            f"Preset: {preset}",
            f"Audio: {audio}",
            "Mappings:",
        ]
        mappings = self._store.mappings
        if not mappings:
            lines.append("  (none)")
        for mapping in mappings:
            triggers = ", ".join(describe_trigger(t) for t in mapping.triggers) or "no triggers"
            if len(mapping.sounds) == 1:
                sounds = mapping.sounds[0]
            else:
                sounds = f"{len(mapping.sounds)} sounds"
            suffix = " (whisper)" if mapping.whisper else ""
            lines.append(f"  - {mapping.name}: {triggers} -> {sounds}{suffix}")
        return "\n".join(lines)

    def play_event_text(self, event_name: str) -> str:
        """Play what a bare event is mapped to and say what happened.

        Goes around the suppression gate: a manual play is never dropped
        as a duplicate and does not count towards the host's debounce.
        """
        stimulus = stimulus_from_event({"type": event_name.strip()})
        played = []
        if stimulus is not None:
            try:
                played = self._play(stimulus)
            except Exception as exc:
                log.exception("manual play failed for %s", stimulus.label)
                return f"Could not play '{event_name}': {exc}"
        if not played:
            return f"No sound for '{event_name}'"
        return f"Played {', '.join(played)} for '{event_name}'"
