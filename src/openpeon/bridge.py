"""Line-oriented bridge between a host process and the engine.

The host (or a small shim inside it) writes one JSON object per line to
our stdin:

    {"hook": "event", "input": {"event": {"type": "session.idle"}}}
    {"hook": "tool.execute.before", "input": {"tool": "question"}}
    {"command": "preset", "args": "warcraft"}

Hook lines are fire-and-forget and produce no output.  Command lines run
an administrative callable and answer with ``{"text": "..."}`` on stdout.
Bad lines are logged and ignored; the bridge only stops at EOF.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional, TextIO

from .engine import PeonEngine
from .logging import log_context

log = logging.getLogger("openpeon.bridge")

COMMANDS = ("presets", "preset", "status", "volume", "play")


def run_command(engine: PeonEngine, command: str, args: Any = None) -> str:
    """Run one administrative command and return its text summary."""
    arg = "" if args is None else str(args).strip()
    if command == "presets":
        return engine.list_presets_text()
    if command == "preset":
        if not arg:
            return "Usage: preset <name>"
        return engine.switch_preset_text(arg)
    if command == "status":
        return engine.status_text()
    if command == "volume":
        if not arg:
            return f"Volume: {engine.store.volume}"
        try:
            level = int(arg)
        except ValueError:
            return f"Volume must be a whole number 1-10, got '{arg}'"
        return engine.set_volume_text(level)
    if command == "play":
        if not arg:
            return "Usage: play <event>"
        return engine.play_event_text(arg)
    return f"Unknown command '{command}' (expected one of: {', '.join(COMMANDS)})"


def handle_line(engine: PeonEngine, line: str) -> Optional[dict[str, Any]]:
    """Process one input line. Returns the reply object, if any."""
    line = line.strip()
    if not line:
        return None
    try:
        msg = json.loads(line)
    except json.JSONDecodeError as e:
        log.warning("Ignoring non-JSON line: %s", e)
        return None
    if not isinstance(msg, dict):
        log.warning("Ignoring non-object line")
        return None

    if "command" in msg:
        return {"text": run_command(engine, str(msg["command"]), msg.get("args"))}

    hook = msg.get("hook")
    handler = engine.hooks().get(hook) if isinstance(hook, str) else None
    if handler is None:
        log.debug("hook-skip", extra={"context": log_context(reason="unknown-hook", hook=hook)})
        return None
    handler(msg.get("input"))
    return None


def run_bridge(engine: PeonEngine, stdin: TextIO, stdout: TextIO) -> None:
    """Serve lines from *stdin* until EOF."""
    for line in stdin:
        reply = handle_line(engine, line)
        if reply is not None:
            stdout.write(json.dumps(reply) + "\n")
            stdout.flush()
