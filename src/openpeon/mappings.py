"""Mapping rules: which triggers play which sounds.

A mapping document looks like this in openpeon.yml:

```yaml
mappings:
  - name: acknowledge
    triggers:
      - type: event
        value: message.updated
        role: user            # only for message.updated
      - type: event
        value: command.executed
    sounds: [acknowledge1.wav, acknowledge2.wav]
  - name: permission-asked
    triggers:
      - type: tool.before     # tool.before or tool.after
        value: question
    sounds: [selected4.wav]
    whisper: true             # always play at the quietest level
```

Trigger types are a closed set.  Anything else parses to an
``UnknownTrigger`` which simply never matches, so documents written by a
newer version still load.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Union

log = logging.getLogger("openpeon.mappings")


# ─── Known vocabularies ─────────────────────────────────────────────────

TRIGGER_EVENT = "event"
TRIGGER_TOOL_BEFORE = "tool.before"
TRIGGER_TOOL_AFTER = "tool.after"

TRIGGER_TYPES = [TRIGGER_EVENT, TRIGGER_TOOL_BEFORE, TRIGGER_TOOL_AFTER]

MESSAGE_UPDATED = "message.updated"
PERMISSION_ASKED = "permission.asked"
STARTUP_EVENT = "openpeon.startup"

EVENT_VALUES = [
    # Command events
    "command.executed",
    # File events
    "file.edited",
    "file.watcher.updated",
    # Installation events
    "installation.updated",
    # LSP events
    "lsp.client.diagnostics",
    "lsp.updated",
    # Message events
    "message.part.removed",
    "message.part.updated",
    "message.removed",
    MESSAGE_UPDATED,
    # Permission events
    PERMISSION_ASKED,
    "permission.replied",
    # Server events
    "server.connected",
    # Session events
    "session.created",
    "session.compacted",
    "session.deleted",
    "session.diff",
    "session.error",
    "session.idle",
    "session.status",
    "session.updated",
    # Todo events
    "todo.updated",
    # TUI events
    "tui.prompt.append",
    "tui.command.execute",
    "tui.toast.show",
    # Emitted by openpeon itself once the engine is ready
    STARTUP_EVENT,
]

TOOL_VALUES = [
    "question",
    "bash",
    "read",
    "write",
    "edit",
    "glob",
    "grep",
    "task",
    "webfetch",
    "todowrite",
    "todoread",
    "skill",
]


# ─── Triggers ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class EventTrigger:
    """Matches a host lifecycle event by exact name."""

    event_name: str
    role: str | None = None


@dataclass(frozen=True)
class ToolBeforeTrigger:
    """Matches the pre-invocation hook for one tool."""

    tool_name: str


@dataclass(frozen=True)
class ToolAfterTrigger:
    """Matches the post-invocation hook for one tool."""

    tool_name: str


@dataclass(frozen=True)
class UnknownTrigger:
    """A trigger of a type this version does not know. Never matches."""

    trigger_type: str


Trigger = Union[EventTrigger, ToolBeforeTrigger, ToolAfterTrigger, UnknownTrigger]


@dataclass
class Mapping:
    """A named rule binding triggers to candidate sounds."""

    name: str
    triggers: list[Trigger] = field(default_factory=list)
    sounds: list[str] = field(default_factory=list)
    whisper: bool = False

    @property
    def inert(self) -> bool:
        """A mapping with no triggers or no sounds never fires."""
        return not self.triggers or not self.sounds


def trigger_from_dict(raw: Any) -> Trigger:
    """Parse one trigger document into its typed form."""
    if not isinstance(raw, dict):
        return UnknownTrigger(trigger_type=type(raw).__name__)
    trigger_type = str(raw.get("type", ""))
    value = raw.get("value")
    if not isinstance(value, str) or not value:
        return UnknownTrigger(trigger_type=trigger_type or "missing")
    if trigger_type == TRIGGER_EVENT:
        role = raw.get("role")
        return EventTrigger(event_name=value, role=str(role) if role else None)
    if trigger_type == TRIGGER_TOOL_BEFORE:
        return ToolBeforeTrigger(tool_name=value)
    if trigger_type == TRIGGER_TOOL_AFTER:
        return ToolAfterTrigger(tool_name=value)
    return UnknownTrigger(trigger_type=trigger_type or "missing")


def trigger_to_dict(trigger: Trigger) -> dict[str, Any]:
    """Render a typed trigger back to its document form."""
    if isinstance(trigger, EventTrigger):
        out: dict[str, Any] = {"type": TRIGGER_EVENT, "value": trigger.event_name}
        if trigger.role:
            out["role"] = trigger.role
        return out
    if isinstance(trigger, ToolBeforeTrigger):
        return {"type": TRIGGER_TOOL_BEFORE, "value": trigger.tool_name}
    if isinstance(trigger, ToolAfterTrigger):
        return {"type": TRIGGER_TOOL_AFTER, "value": trigger.tool_name}
    return {"type": trigger.trigger_type}


def describe_trigger(trigger: Trigger) -> str:
    """Short human-readable label, e.g. ``message.updated[user]``."""
    if isinstance(trigger, EventTrigger):
        if trigger.role:
            return f"{trigger.event_name}[{trigger.role}]"
        return trigger.event_name
    if isinstance(trigger, ToolBeforeTrigger):
        return f"before:{trigger.tool_name}"
    if isinstance(trigger, ToolAfterTrigger):
        return f"after:{trigger.tool_name}"
    return f"?{trigger.trigger_type}"


def mapping_from_dict(raw: dict[str, Any], index: int = 0) -> Mapping:
    """Build a Mapping from one raw mapping document."""
    name = str(raw.get("name") or f"mapping-{index + 1}")
    raw_triggers = raw.get("triggers") or []
    raw_sounds = raw.get("sounds") or []
    if not isinstance(raw_triggers, list):
        raw_triggers = []
    if not isinstance(raw_sounds, list):
        raw_sounds = []
    return Mapping(
        name=name,
        triggers=[trigger_from_dict(t) for t in raw_triggers],
        sounds=[str(s) for s in raw_sounds if isinstance(s, str) and s],
        whisper=bool(raw.get("whisper", False)),
    )


def mappings_from_config(raw_mappings: Any) -> list[Mapping]:
    """Build Mapping instances from the raw ``mappings`` list.

    Entries that are not dicts are skipped with a warning; everything else
    becomes a Mapping (possibly inert), preserving document order.
    """
    if not isinstance(raw_mappings, list):
        return []
    mappings = []
    for index, raw in enumerate(raw_mappings):
        if not isinstance(raw, dict):
            log.warning("Mapping #%d is not an object, skipping", index + 1)
            continue
        mappings.append(mapping_from_dict(raw, index))
    return mappings
