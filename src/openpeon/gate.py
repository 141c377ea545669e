"""Dedup/debounce gate in front of dispatch.

Two independent ways of dropping redundant stimuli:

* **Identity dedup**: the host re-emits ``message.updated`` for every
  streaming update of one message, and ``permission.asked`` whenever a
  prompt is re-rendered.  A stimulus carrying the same id as the last
  dispatched one is dropped.  No id means no dedup.
* **Time debounce**: acknowledgement events (command executed,
  permission replied) have no stable id and arrive in bursts.  One that
  lands within the window of the last accepted one is dropped.

``check()`` only reads state.  ``record()`` is called by the engine once a
stimulus has actually been dispatched, so a suppressed or unmatched
stimulus never moves the state forward.
"""

from __future__ import annotations

import time
from typing import Callable, Iterable, Optional

from .mappings import MESSAGE_UPDATED, PERMISSION_ASKED
from .matcher import KIND_EVENT, Stimulus

REASON_DUPLICATE_MESSAGE = "duplicate-message"
REASON_DUPLICATE_PERMISSION = "duplicate-permission"
REASON_DEBOUNCED = "debounced"


class SuppressionGate:
    """Per-engine suppression state. Not shared, never cleared."""

    def __init__(
        self,
        dedup_messages: bool = True,
        dedup_permissions: bool = True,
        debounce_window_ms: int = 500,
        debounce_events: Iterable[str] = (),
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self.dedup_messages = dedup_messages
        self.dedup_permissions = dedup_permissions
        self.debounce_window_ms = debounce_window_ms
        self.debounce_events = frozenset(debounce_events)

        self.last_message_id: Optional[str] = None
        self.last_permission_request_id: Optional[str] = None
        self.last_command_time: Optional[float] = None

    @classmethod
    def from_config(cls, config, clock: Callable[[], float] = time.monotonic) -> "SuppressionGate":
        gate = cls(clock=clock)
        gate.configure(config)
        return gate

    def configure(self, config) -> None:
        """Take strategy settings from a PeonConfig. Leaves state alone."""
        self.dedup_messages = config.dedup_messages
        self.dedup_permissions = config.dedup_permissions
        self.debounce_window_ms = config.debounce_window_ms
        self.debounce_events = frozenset(config.debounce_events)

    def _debounced(self, stimulus: Stimulus) -> bool:
        return (
            self.debounce_window_ms > 0
            and stimulus.kind == KIND_EVENT
            and stimulus.event_name in self.debounce_events
        )

    def check(self, stimulus: Stimulus) -> Optional[str]:
        """Return a suppression reason, or None if the stimulus may dispatch."""
        if stimulus.kind == KIND_EVENT:
            if (
                self.dedup_messages
                and stimulus.event_name == MESSAGE_UPDATED
                and stimulus.message_id is not None
                and stimulus.message_id == self.last_message_id
            ):
                return REASON_DUPLICATE_MESSAGE
            if (
                self.dedup_permissions
                and stimulus.event_name == PERMISSION_ASKED
                and stimulus.permission_request_id is not None
                and stimulus.permission_request_id == self.last_permission_request_id
            ):
                return REASON_DUPLICATE_PERMISSION
        if self._debounced(stimulus) and self.last_command_time is not None:
            elapsed_ms = (self._clock() - self.last_command_time) * 1000
            if elapsed_ms < self.debounce_window_ms:
                return REASON_DEBOUNCED
        return None

    def record(self, stimulus: Stimulus) -> None:
        """Remember a dispatched stimulus."""
        if stimulus.kind != KIND_EVENT:
            return
        if stimulus.event_name == MESSAGE_UPDATED and stimulus.message_id is not None:
            self.last_message_id = stimulus.message_id
        if stimulus.event_name == PERMISSION_ASKED and stimulus.permission_request_id is not None:
            self.last_permission_request_id = stimulus.permission_request_id
        if self._debounced(stimulus):
            self.last_command_time = self._clock()
