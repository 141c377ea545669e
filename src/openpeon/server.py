"""MCP server exposing the engine's administrative commands.

Lets an agent (or any MCP client) list and switch presets, inspect the
active mappings, change the volume, or try a sound, all against the same
engine that is playing sounds for the host.
"""

from __future__ import annotations

import functools
import logging

from mcp.server.fastmcp import FastMCP

from .engine import PeonEngine
from .logging import recent_log_text

log = logging.getLogger("openpeon.server")

DEFAULT_MCP_PORT = 8447


def create_mcp_server(engine: PeonEngine, host: str = "127.0.0.1",
                      port: int = DEFAULT_MCP_PORT) -> FastMCP:
    """Create and configure the MCP server with all admin tools."""
    server = FastMCP("openpeon", host=host, port=port)

    def _safe_tool(fn):
        @functools.wraps(fn)
        async def wrapper(*args, **kwargs):
            try:
                return await fn(*args, **kwargs)
            except Exception as exc:
                log.exception("Tool %s failed", fn.__name__)
                return f"Error in {fn.__name__}: {type(exc).__name__}: {str(exc)[:200]}"
        return wrapper

    @server.tool()
    @_safe_tool
    async def list_presets() -> str:
        """List the named presets that can be switched to."""
        return engine.list_presets_text()

    @server.tool()
    @_safe_tool
    async def switch_preset(name: str) -> str:
        """Replace the active mappings and volume with a named preset.

        The config file on disk is not changed, so the next restart goes
        back to it.
        """
        return engine.switch_preset_text(name)

    @server.tool()
    @_safe_tool
    async def show_config() -> str:
        """Show the volume, active preset and every mapping."""
        return engine.status_text()

    @server.tool()
    @_safe_tool
    async def set_volume(level: int) -> str:
        """Set the volume (1-10, clamped) and save it to the config file."""
        return engine.set_volume_text(level)

    @server.tool()
    @_safe_tool
    async def play_event(event: str) -> str:
        """Play whatever the active mappings bind to an event name."""
        return engine.play_event_text(event)

    @server.tool()
    @_safe_tool
    async def show_log(lines: int = 20) -> str:
        """Show the most recent debug log entries (needs OPENCODE_PEON_DEBUG)."""
        return recent_log_text(lines=max(1, lines))

    return server
