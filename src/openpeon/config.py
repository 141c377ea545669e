"""Configuration document for openpeon.

Reads/writes $OPENPEON_DIR/openpeon.yml (default
~/.config/opencode/plugins/openpeon/openpeon.yml, or --config-file).
JSON documents from older installs load too, since JSON parses as YAML.

The document defines:
  - volume: 1-10 loudness level (clamped when set, used as-is when loaded)
  - mappings: ordered list of {name, triggers, sounds, whisper}
  - randomPreset: pick a random preset from presets/ at startup
  - dedup: identity-based suppression of re-emitted events
  - debounce: time-based suppression of acknowledgement bursts

A missing or unreadable document never fails: the built-in DEFAULT_CONFIG
is used instead and the problem is logged.
"""

from __future__ import annotations

import copy
import logging
import math
import os
from dataclasses import dataclass, field
from typing import Any, Optional

import yaml

from .mappings import (
    EVENT_VALUES,
    MESSAGE_UPDATED,
    TOOL_VALUES,
    TRIGGER_EVENT,
    TRIGGER_TYPES,
    Mapping,
    mappings_from_config,
)

log = logging.getLogger("openpeon.config")


DEFAULT_BASE_DIR = os.environ.get(
    "OPENPEON_DIR",
    os.path.join(os.path.expanduser("~"), ".config", "opencode", "plugins", "openpeon"),
)
DEFAULT_CONFIG_FILE = os.path.join(DEFAULT_BASE_DIR, "openpeon.yml")
DEFAULT_PRESETS_DIR = os.path.join(DEFAULT_BASE_DIR, "presets")
DEFAULT_SOUNDS_DIR = os.path.join(DEFAULT_BASE_DIR, "sounds")

MIN_VOLUME = 1
MAX_VOLUME = 10
DEFAULT_VOLUME = 5
DEFAULT_DEBOUNCE_MS = 500

# Acknowledgement-class events carry no stable id, so they are debounced
# by time instead of deduplicated by identity.
DEFAULT_DEBOUNCE_EVENTS = [
    "tui.command.execute",
    "command.executed",
    "permission.replied",
]

DEFAULT_CONFIG: dict[str, Any] = {
    "volume": DEFAULT_VOLUME,
    "randomPreset": False,
    "mappings": [
        {
            "name": "acknowledge",
            "triggers": [
                {"type": "event", "value": MESSAGE_UPDATED, "role": "user"},
                {"type": "event", "value": "tui.command.execute"},
                {"type": "event", "value": "command.executed"},
                {"type": "event", "value": "permission.replied"},
            ],
            "sounds": [
                "acknowledge1.wav",
                "acknowledge2.wav",
                "acknowledge3.wav",
                "acknowledge4.wav",
            ],
        },
        {
            "name": "work-complete",
            "triggers": [
                {"type": "event", "value": "session.idle"},
            ],
            "sounds": ["work-complete.wav"],
        },
        {
            "name": "permission-asked",
            "triggers": [
                {"type": "event", "value": "permission.asked"},
                {"type": "tool.before", "value": "question"},
            ],
            "sounds": ["selected4.wav"],
        },
    ],
    "dedup": {
        "messages": True,              # skip re-emitted message.updated for the same message id
        "permissions": True,           # skip re-rendered permission.asked for the same request id
    },
    "debounce": {
        "windowMs": DEFAULT_DEBOUNCE_MS,       # 0 disables the debounce
        "events": list(DEFAULT_DEBOUNCE_EVENTS),
    },
}

KNOWN_TOP_LEVEL = {"volume", "mappings", "randomPreset", "dedup", "debounce"}


@dataclass
class PeonPaths:
    """Where one openpeon install keeps its documents and sounds."""

    base_dir: str = DEFAULT_BASE_DIR
    config_file: Optional[str] = None

    @property
    def config_path(self) -> str:
        return self.config_file or os.path.join(self.base_dir, "openpeon.yml")

    @property
    def presets_dir(self) -> str:
        return os.path.join(self.base_dir, "presets")

    @property
    def sounds_dir(self) -> str:
        return os.path.join(self.base_dir, "sounds")

    @property
    def ui_dir(self) -> str:
        return os.path.join(self.base_dir, "ui")


def clamp_volume(level: Any) -> int:
    """Clamp *level* into MIN_VOLUME..MAX_VOLUME (non-numbers become the default)."""
    try:
        value = int(round(float(level)))
    except (TypeError, ValueError, OverflowError):
        return DEFAULT_VOLUME
    return max(MIN_VOLUME, min(MAX_VOLUME, value))


def read_document(path: str) -> dict[str, Any]:
    """Read and parse one YAML/JSON document.

    Raises FileNotFoundError if *path* is missing, and ValueError if it
    does not parse to a mapping.
    """
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"invalid YAML: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("document is not a mapping")
    return data


def write_document(path: str, data: dict[str, Any]) -> None:
    """Write *data* to *path* as block-style YAML, creating parent dirs."""
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)


def _closest_match(key: str, valid_keys: set[str] | list[str], max_distance: int = 3) -> str | None:
    """Find the closest match for a key in a set of valid keys.

    Returns None if no match is close enough (within max_distance edits).
    """
    best_match = None
    best_dist = max_distance + 1
    key_lower = key.lower()
    for candidate in valid_keys:
        cand_lower = candidate.lower()
        if key_lower == cand_lower:
            return candidate
        if abs(len(key_lower) - len(cand_lower)) > max_distance:
            continue
        dist = _edit_distance(key_lower, cand_lower)
        if dist < best_dist:
            best_dist = dist
            best_match = candidate
    return best_match if best_dist <= max_distance else None


def _edit_distance(a: str, b: str) -> int:
    """Compute Levenshtein edit distance between two strings."""
    if len(a) > len(b):
        a, b = b, a
    prev = list(range(len(a) + 1))
    for j in range(1, len(b) + 1):
        curr = [j] + [0] * len(a)
        for i in range(1, len(a) + 1):
            cost = 0 if a[i - 1] == b[j - 1] else 1
            curr[i] = min(curr[i - 1] + 1, prev[i] + 1, prev[i - 1] + cost)
        prev = curr
    return prev[len(a)]


def _hint(value: str, vocabulary: list[str]) -> str:
    suggest = _closest_match(value, vocabulary)
    return f" (did you mean '{suggest}'?)" if suggest and suggest != value else ""


@dataclass
class PeonConfig:
    """Parsed openpeon configuration document."""

    raw: dict[str, Any] = field(default_factory=dict)
    """The document as loaded from YAML."""

    config_path: str = field(default=DEFAULT_CONFIG_FILE, compare=False)
    """Path to the config file."""

    validation_warnings: list[str] = field(default_factory=list, compare=False)
    """Warnings from the last validation run."""

    @classmethod
    def default(cls, config_path: Optional[str] = None) -> "PeonConfig":
        """A config holding a fresh copy of DEFAULT_CONFIG."""
        return cls.from_dict(copy.deepcopy(DEFAULT_CONFIG), config_path)

    @classmethod
    def from_dict(cls, raw: dict[str, Any], config_path: Optional[str] = None) -> "PeonConfig":
        cfg = cls(raw=raw, config_path=config_path or DEFAULT_CONFIG_FILE)
        cfg._validate()
        return cfg

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "PeonConfig":
        """Load config from file, falling back to defaults on any failure.

        Never raises: a missing file is normal on first run, and a broken
        one must not stop sounds from working.
        """
        path = config_path or DEFAULT_CONFIG_FILE
        try:
            raw = read_document(path)
        except FileNotFoundError:
            log.debug("No config at %s, using defaults", path)
            return cls.default(path)
        except (OSError, ValueError) as e:
            log.warning("Failed to load config from %s: %s (using defaults)", path, e)
            return cls.default(path)
        return cls.from_dict(raw, path)

    def save(self) -> None:
        """Write the document back to disk."""
        write_document(self.config_path, self.raw)

    def _validate(self) -> None:
        """Collect warnings for suspicious content. Never fails."""
        warnings: list[str] = []

        for key in self.raw:
            if key not in KNOWN_TOP_LEVEL:
                warnings.append(
                    f"Unknown top-level key '{key}'{_hint(key, sorted(KNOWN_TOP_LEVEL))}"
                )

        volume = self.raw.get("volume", DEFAULT_VOLUME)
        if not isinstance(volume, (int, float)) or isinstance(volume, bool):
            warnings.append(f"volume should be a number 1-10, got {volume!r}")
        elif not MIN_VOLUME <= volume <= MAX_VOLUME:
            warnings.append(f"volume {volume} is outside {MIN_VOLUME}-{MAX_VOLUME}")

        raw_mappings = self.raw.get("mappings", [])
        if not isinstance(raw_mappings, list):
            warnings.append("mappings should be a list")
            raw_mappings = []

        seen: set[str] = set()
        for index, raw in enumerate(raw_mappings):
            if not isinstance(raw, dict):
                warnings.append(f"Mapping #{index + 1} is not an object")
                continue
            name = str(raw.get("name") or f"mapping-{index + 1}")
            if name in seen:
                warnings.append(f"Duplicate mapping name '{name}'")
            seen.add(name)
            if not raw.get("triggers"):
                warnings.append(f"Mapping '{name}' has no triggers and will never fire")
            if not raw.get("sounds"):
                warnings.append(f"Mapping '{name}' has no sounds and will never fire")
            for trigger in raw.get("triggers") or []:
                if not isinstance(trigger, dict):
                    continue
                ttype = str(trigger.get("type", ""))
                value = str(trigger.get("value", ""))
                if ttype not in TRIGGER_TYPES:
                    warnings.append(
                        f"Mapping '{name}': unknown trigger type '{ttype}'{_hint(ttype, TRIGGER_TYPES)}"
                    )
                elif ttype == TRIGGER_EVENT and value not in EVENT_VALUES:
                    warnings.append(
                        f"Mapping '{name}': unknown event '{value}'{_hint(value, EVENT_VALUES)}"
                    )
                elif ttype != TRIGGER_EVENT and value not in TOOL_VALUES:
                    warnings.append(
                        f"Mapping '{name}': unknown tool '{value}'{_hint(value, TOOL_VALUES)}"
                    )

        self.validation_warnings = list(warnings)
        for w in warnings:
            log.warning("Config WARNING: %s", w)

    # ─── Accessors ──────────────────────────────────────────────────

    @property
    def volume(self) -> int:
        """Configured level. Out-of-range values are returned unchanged."""
        value = self.raw.get("volume", DEFAULT_VOLUME)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return DEFAULT_VOLUME
        if not math.isfinite(value):
            return DEFAULT_VOLUME
        return int(value)

    @property
    def raw_mappings(self) -> list[dict[str, Any]]:
        value = self.raw.get("mappings", [])
        return value if isinstance(value, list) else []

    @property
    def mappings(self) -> list[Mapping]:
        return mappings_from_config(self.raw_mappings)

    @property
    def random_preset(self) -> bool:
        return bool(self.raw.get("randomPreset", False))

    @property
    def dedup_messages(self) -> bool:
        return bool(self._section("dedup").get("messages", True))

    @property
    def dedup_permissions(self) -> bool:
        return bool(self._section("dedup").get("permissions", True))

    @property
    def debounce_window_ms(self) -> int:
        try:
            return max(0, int(self._section("debounce").get("windowMs", DEFAULT_DEBOUNCE_MS)))
        except (TypeError, ValueError):
            return DEFAULT_DEBOUNCE_MS

    @property
    def debounce_events(self) -> list[str]:
        events = self._section("debounce").get("events", DEFAULT_DEBOUNCE_EVENTS)
        if not isinstance(events, list):
            return list(DEFAULT_DEBOUNCE_EVENTS)
        return [str(e) for e in events]

    def _section(self, key: str) -> dict[str, Any]:
        value = self.raw.get(key, {})
        return value if isinstance(value, dict) else {}

    # ─── Mutation ───────────────────────────────────────────────────

    def set_volume(self, level: Any) -> int:
        """Clamp and store *level* in memory. Returns the stored value."""
        clamped = clamp_volume(level)
        self.raw["volume"] = clamped
        return clamped

    def replace_mappings(self, mappings: list[dict[str, Any]], volume: Any = None) -> None:
        """Swap in another mapping list (and optionally volume) wholesale."""
        self.raw["mappings"] = copy.deepcopy(mappings)
        if volume is not None:
            self.raw["volume"] = volume
