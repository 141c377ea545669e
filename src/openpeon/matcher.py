"""Trigger matching.

``match()`` is a pure function of (stimulus, mappings): it reads nothing
else and changes nothing.  Dedup and debounce are the caller's job (see
gate.py).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from .logging import log_context
from .mappings import (
    MESSAGE_UPDATED,
    EventTrigger,
    Mapping,
    ToolAfterTrigger,
    ToolBeforeTrigger,
    Trigger,
)

log = logging.getLogger("openpeon.matcher")

KIND_EVENT = "event"
KIND_TOOL_BEFORE = "tool.before"
KIND_TOOL_AFTER = "tool.after"


@dataclass(frozen=True)
class Stimulus:
    """One occurrence from the host: a lifecycle event or a tool hook call."""

    kind: str
    event_name: str = ""
    tool_name: str = ""
    message_role: Optional[str] = None
    message_id: Optional[str] = None
    permission_request_id: Optional[str] = None

    @property
    def label(self) -> str:
        if self.kind == KIND_EVENT:
            return self.event_name
        return f"{self.kind}:{self.tool_name}"


def _opt_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    if isinstance(value, (str, int)) and not isinstance(value, bool):
        return str(value)
    return None


def stimulus_from_event(event: Any) -> Optional[Stimulus]:
    """Build a Stimulus from a raw host event ``{type, properties}``.

    Returns None for anything without a usable ``type``.  Missing or odd
    properties just leave the optional fields empty.
    """
    if not isinstance(event, dict):
        return None
    event_name = event.get("type")
    if not isinstance(event_name, str) or not event_name:
        return None

    props = event.get("properties")
    if not isinstance(props, dict):
        props = {}
    info = props.get("info")
    if not isinstance(info, dict):
        info = {}
    author = info.get("author")
    if not isinstance(author, dict):
        author = {}

    role = _opt_str(info.get("role")) or _opt_str(author.get("role"))
    message_id = _opt_str(info.get("id")) or _opt_str(props.get("message_id"))
    permission_id = _opt_str(props.get("id")) or _opt_str(event.get("id"))

    return Stimulus(
        kind=KIND_EVENT,
        event_name=event_name,
        message_role=role,
        message_id=message_id,
        permission_request_id=permission_id,
    )


def stimulus_from_tool(kind: str, hook_input: Any) -> Optional[Stimulus]:
    """Build a Stimulus from a tool hook call ``{tool: name}``."""
    if kind not in (KIND_TOOL_BEFORE, KIND_TOOL_AFTER):
        return None
    if not isinstance(hook_input, dict):
        return None
    tool = hook_input.get("tool")
    if not isinstance(tool, str) or not tool:
        return None
    return Stimulus(kind=kind, tool_name=tool)


def trigger_matches(trigger: Trigger, stimulus: Stimulus) -> bool:
    """Structural match of one trigger against one stimulus."""
    if isinstance(trigger, EventTrigger):
        if stimulus.kind != KIND_EVENT or trigger.event_name != stimulus.event_name:
            return False
        if trigger.role and stimulus.event_name == MESSAGE_UPDATED:
            return stimulus.message_role == trigger.role
        return True
    if isinstance(trigger, ToolBeforeTrigger):
        return stimulus.kind == KIND_TOOL_BEFORE and trigger.tool_name == stimulus.tool_name
    if isinstance(trigger, ToolAfterTrigger):
        return stimulus.kind == KIND_TOOL_AFTER and trigger.tool_name == stimulus.tool_name
    return False


def match(stimulus: Stimulus, mappings: Iterable[Mapping]) -> list[Mapping]:
    """Every mapping with at least one matching trigger, in mapping order."""
    matched = []
    for mapping in mappings:
        if mapping.inert:
            log.debug("mapping-skip", extra={"context": log_context(
                event=stimulus.label, reason="inert", mapping=mapping.name)})
            continue
        if any(trigger_matches(t, stimulus) for t in mapping.triggers):
            matched.append(mapping)
    return matched
