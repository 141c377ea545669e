"""
openpeon: notification sounds for coding-agent hosts.

Usage:
    openpeon                          # same as `openpeon listen`
    openpeon listen                   # read host hooks as JSON lines on stdin
    openpeon listen --with-api        # ...and serve the admin UI alongside
    openpeon serve                    # admin UI/API only (port 3456)
    openpeon mcp                      # MCP server with the admin tools
    openpeon presets                  # list presets
    openpeon preset NAME              # preview a preset's mappings
    openpeon volume [LEVEL]           # show or set (and save) the volume
    openpeon status                   # show the active configuration
    openpeon play EVENT               # play what EVENT is mapped to
    openpeon log [-n LINES]           # show recent debug log entries

Common options: --dir DIR (install directory), --config-file PATH, --debug.
Set OPENCODE_PEON_DEBUG=1 to log to ~/.config/opencode/peon-debug.log.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional

from .api import DEFAULT_API_PORT, create_api_server, start_api_server
from .bridge import run_bridge, run_command
from .config import DEFAULT_BASE_DIR, PeonPaths
from .engine import PeonEngine
from .logging import configure_debug_log, recent_log_text
from .player import AfplayPlayer
from .server import DEFAULT_MCP_PORT, create_mcp_server

log = logging.getLogger("openpeon")

ONE_SHOT_COMMANDS = ("presets", "preset", "volume", "status", "play")


def _base_parser(prog: str, description: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=prog, description=description)
    parser.add_argument("--dir", default=DEFAULT_BASE_DIR, metavar="DIR",
                        help=f"Install directory with openpeon.yml, presets/ and sounds/ "
                             f"(default: {DEFAULT_BASE_DIR})")
    parser.add_argument("--config-file", default=None, metavar="PATH",
                        help="Config document (default: DIR/openpeon.yml)")
    parser.add_argument("--debug", action="store_true",
                        help="Write the JSON debug log even without OPENCODE_PEON_DEBUG")
    return parser


def _paths(args: argparse.Namespace) -> PeonPaths:
    return PeonPaths(base_dir=args.dir, config_file=args.config_file)


def _build_engine(paths: PeonPaths, *, synchronous: bool = False) -> PeonEngine:
    # A one-shot process exits right away, so launch playback inline
    # instead of on a daemon thread that would die with it.
    schedule = (lambda fn, *a: fn(*a)) if synchronous else None
    sink = AfplayPlayer(paths.sounds_dir, schedule=schedule)
    return PeonEngine.create(paths.config_path, paths.presets_dir, paths.sounds_dir, sink=sink)


def _run_listen(argv: list[str]) -> None:
    parser = _base_parser("openpeon listen", "Dispatch host hooks read from stdin")
    parser.add_argument("--with-api", action="store_true",
                        help="Also serve the admin UI/API, attached to this engine")
    parser.add_argument("--api-port", type=int, default=DEFAULT_API_PORT)
    args = parser.parse_args(argv)
    configure_debug_log(force=args.debug)

    paths = _paths(args)
    engine = _build_engine(paths)
    engine.start()
    if args.with_api:
        start_api_server(paths, engine, port=args.api_port)
    try:
        run_bridge(engine, sys.stdin, sys.stdout)
    except KeyboardInterrupt:
        pass


def _run_serve(argv: list[str]) -> None:
    parser = _base_parser("openpeon serve", "Serve the admin UI and API")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=DEFAULT_API_PORT)
    parser.add_argument("--deploy-dir", default=None, metavar="DIR",
                        help="Where POST /api/deploy installs to")
    args = parser.parse_args(argv)
    configure_debug_log(force=args.debug)

    server = create_api_server(_paths(args), port=args.port, host=args.host,
                               deploy_dir=args.deploy_dir)
    print(f"UI server running at http://{args.host}:{server.server_address[1]}", flush=True)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()


def _run_mcp(argv: list[str]) -> None:
    parser = _base_parser("openpeon mcp", "Serve the admin commands as MCP tools")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=DEFAULT_MCP_PORT)
    parser.add_argument("--transport", choices=["stdio", "streamable-http", "sse"],
                        default="streamable-http")
    args = parser.parse_args(argv)
    configure_debug_log(force=args.debug)

    engine = _build_engine(_paths(args))
    engine.start()
    server = create_mcp_server(engine, host=args.host, port=args.port)
    server.run(transport=args.transport)


def _run_log(argv: list[str]) -> None:
    parser = argparse.ArgumentParser(prog="openpeon log", description="Show recent debug log entries")
    parser.add_argument("-n", "--lines", type=int, default=20)
    parser.add_argument("--log-file", default=None, metavar="PATH",
                        help="Debug log to read (default: OPENPEON_DEBUG_LOG or ~/.config/opencode/peon-debug.log)")
    args = parser.parse_args(argv)
    print(recent_log_text(args.log_file, lines=max(1, args.lines)))


def _run_one_shot(command: str, argv: list[str]) -> int:
    parser = _base_parser(f"openpeon {command}", f"Run the '{command}' admin command once")
    if command in ("preset", "play"):
        parser.add_argument("arg", metavar="NAME" if command == "preset" else "EVENT")
    elif command == "volume":
        parser.add_argument("arg", nargs="?", default=None, metavar="LEVEL")
    args = parser.parse_args(argv)
    configure_debug_log(force=args.debug)

    engine = _build_engine(_paths(args), synchronous=True)
    text = run_command(engine, command, getattr(args, "arg", None))
    print(text)
    if command == "preset" and engine.store.active_preset:
        print(engine.status_text())
        return 0
    if command == "preset" or text.startswith(("Unknown", "Usage", "Volume must")):
        return 1
    return 0


def main(argv: Optional[list[str]] = None) -> None:
    argv = list(sys.argv[1:] if argv is None else argv)
    command = argv[0] if argv and not argv[0].startswith("-") else "listen"
    rest = argv[1:] if argv and argv[0] == command else argv

    if command == "listen":
        _run_listen(rest)
    elif command == "serve":
        _run_serve(rest)
    elif command == "mcp":
        _run_mcp(rest)
    elif command == "log":
        _run_log(rest)
    elif command in ONE_SHOT_COMMANDS:
        sys.exit(_run_one_shot(command, rest))
    else:
        print(f"openpeon: unknown command '{command}'", file=sys.stderr)
        print(__doc__, file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
