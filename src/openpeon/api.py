"""Administration HTTP API for browsing sounds and editing mappings.

Endpoints:
  GET    /api/meta                   Trigger types, event and tool names
  GET    /api/config                 Current config document
  POST   /api/config                 Replace the config document
  GET    /api/sounds/directories     "." plus sound subdirectories
  GET    /api/sounds/list/:dir       Sound files in one directory
  GET    /api/sounds/play/:path      Stream a sound file
  GET    /api/presets                Preset names
  GET    /api/presets/:name          One preset document
  POST   /api/presets/:name          Create/replace a preset
  DELETE /api/presets/:name          Delete a preset
  POST   /api/deploy                 Copy everything into the host plugin dir

Any other path is served from the ui/ directory (``/`` → ``index.html``).

When the server is attached to a running engine, saving the config also
reloads it into the engine.
"""

from __future__ import annotations

import copy
import http.server
import json
import logging
import mimetypes
import os
import threading
import urllib.parse
from typing import Any, Optional

from .config import DEFAULT_CONFIG, PeonPaths, read_document, write_document
from .deploy import deploy_plugin
from .engine import PeonEngine
from .mappings import EVENT_VALUES, TOOL_VALUES, TRIGGER_TYPES
from .sounds import list_sound_directories, list_sounds_in_directory, resolve_sound_path
from .store import MappingStore, valid_preset_name

log = logging.getLogger("openpeon.api")

DEFAULT_API_PORT = 3456

_AUDIO_TYPES = {".wav": "audio/wav", ".mp3": "audio/mpeg"}


class AdminAPIHandler(http.server.BaseHTTPRequestHandler):
    """HTTP handler for the administration API and static UI."""

    def log_message(self, format, *args):
        log.debug("%s - %s", self.address_string(), format % args)

    # ─── Plumbing ────────────────────────────────────────────────────

    @property
    def paths(self) -> PeonPaths:
        return self.server.paths  # type: ignore[attr-defined]

    @property
    def engine(self) -> Optional[PeonEngine]:
        return getattr(self.server, "engine", None)

    @property
    def store(self) -> MappingStore:
        return self.server.store  # type: ignore[attr-defined]

    def _send_json(self, data: Any, status: int = 200) -> None:
        body = json.dumps(data).encode()
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Access-Control-Allow-Origin", "*")
        self.end_headers()
        self.wfile.write(body)

    def _send_file(self, path: str, content_type: str) -> None:
        with open(path, "rb") as f:
            body = f.read()
        self.send_response(200)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _not_found(self) -> None:
        self._send_json({"error": "not found"}, 404)

    def _read_body(self) -> Any:
        """Parsed JSON body, or None. Raises ValueError on a bad Content-Length."""
        length = int(self.headers.get("Content-Length", 0))
        if length < 0:
            raise ValueError(f"negative Content-Length {length}")
        if length == 0:
            return None
        body = self.rfile.read(length)
        try:
            return json.loads(body)
        except json.JSONDecodeError:
            return None

    @staticmethod
    def _tail(path: str, prefix: str) -> str:
        return urllib.parse.unquote(path[len(prefix):])

    # ─── Routing ─────────────────────────────────────────────────────

    def do_OPTIONS(self) -> None:
        self.send_response(204)
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Access-Control-Allow-Methods", "GET, POST, DELETE, OPTIONS")
        self.send_header("Access-Control-Allow-Headers", "Content-Type")
        self.end_headers()

    def do_GET(self) -> None:
        path = urllib.parse.urlparse(self.path).path

        if not path.startswith("/api/"):
            self._handle_static(path)
        elif path == "/api/meta":
            self._send_json({
                "triggerTypes": TRIGGER_TYPES,
                "eventValues": EVENT_VALUES,
                "toolValues": TOOL_VALUES,
            })
        elif path == "/api/config":
            self._handle_get_config()
        elif path == "/api/sounds/directories":
            self._send_json(list_sound_directories(self.paths.sounds_dir))
        elif path.startswith("/api/sounds/list/"):
            dir_name = self._tail(path, "/api/sounds/list/")
            self._send_json(list_sounds_in_directory(self.paths.sounds_dir, dir_name))
        elif path.startswith("/api/sounds/play/"):
            self._handle_play(self._tail(path, "/api/sounds/play/"))
        elif path == "/api/presets":
            self._send_json(self.store.list_presets())
        elif path.startswith("/api/presets/"):
            self._handle_get_preset(self._tail(path, "/api/presets/"))
        else:
            self._not_found()

    def do_POST(self) -> None:
        path = urllib.parse.urlparse(self.path).path
        try:
            body = self._read_body()
        except ValueError:
            self._send_json({"success": False, "error": "invalid Content-Length"}, 400)
            return

        if path == "/api/config":
            self._handle_save_config(body)
        elif path.startswith("/api/presets/"):
            self._handle_save_preset(self._tail(path, "/api/presets/"), body)
        elif path == "/api/deploy":
            self._send_json(deploy_plugin(self.paths, getattr(self.server, "deploy_dir", None)))
        else:
            self._not_found()

    def do_DELETE(self) -> None:
        path = urllib.parse.urlparse(self.path).path
        if path.startswith("/api/presets/"):
            self._handle_delete_preset(self._tail(path, "/api/presets/"))
        else:
            self._not_found()

    # ─── Handlers ────────────────────────────────────────────────────

    def _handle_get_config(self) -> None:
        try:
            doc = read_document(self.paths.config_path)
        except (OSError, ValueError):
            doc = copy.deepcopy(DEFAULT_CONFIG)
        self._send_json(doc)

    def _handle_save_config(self, body: Any) -> None:
        if not isinstance(body, dict):
            self._send_json({"success": False, "error": "config must be a JSON object"}, 400)
            return
        try:
            write_document(self.paths.config_path, body)
        except OSError as e:
            self._send_json({"success": False, "error": str(e)}, 500)
            return
        if self.engine is not None:
            self.engine.reload()
        else:
            self.store.reload()
        self._send_json({"success": True})

    def _handle_play(self, sound_id: str) -> None:
        full_path = resolve_sound_path(self.paths.sounds_dir, sound_id)
        if not full_path or not os.path.isfile(full_path):
            self._not_found()
            return
        ext = os.path.splitext(full_path)[1].lower()
        self._send_file(full_path, _AUDIO_TYPES.get(ext, "application/octet-stream"))

    def _handle_get_preset(self, name: str) -> None:
        preset_path = self.store.preset_path(name)
        if preset_path is None:
            self._not_found()
            return
        try:
            self._send_json(read_document(preset_path))
        except (OSError, ValueError):
            self._not_found()

    def _handle_save_preset(self, name: str, body: Any) -> None:
        if not valid_preset_name(name):
            self._send_json({"success": False, "error": f"invalid preset name '{name}'"}, 400)
            return
        if not isinstance(body, dict):
            self._send_json({"success": False, "error": "preset must be a JSON object"}, 400)
            return
        target = self.store.preset_path(name) or os.path.join(self.paths.presets_dir, f"{name}.yml")
        try:
            write_document(target, body)
        except OSError as e:
            self._send_json({"success": False, "error": str(e)}, 500)
            return
        self._send_json({"success": True})

    def _handle_delete_preset(self, name: str) -> None:
        preset_path = self.store.preset_path(name)
        if preset_path is None:
            self._not_found()
            return
        try:
            os.remove(preset_path)
        except OSError as e:
            self._send_json({"success": False, "error": str(e) or "Unknown error"})
            return
        self._send_json({"success": True})

    def _handle_static(self, path: str) -> None:
        if path == "/":
            path = "/index.html"
        ui_root = os.path.realpath(self.paths.ui_dir)
        file_path = os.path.realpath(os.path.join(ui_root, urllib.parse.unquote(path).lstrip("/")))
        if not file_path.startswith(ui_root + os.sep) or not os.path.isfile(file_path):
            self._not_found()
            return
        content_type = mimetypes.guess_type(file_path)[0] or "application/octet-stream"
        self._send_file(file_path, content_type)


def create_api_server(
    paths: PeonPaths,
    engine: Optional[PeonEngine] = None,
    port: int = DEFAULT_API_PORT,
    host: str = "127.0.0.1",
    deploy_dir: Optional[str] = None,
) -> http.server.ThreadingHTTPServer:
    """Build (but do not start) the admin server."""
    os.makedirs(paths.presets_dir, exist_ok=True)
    server = http.server.ThreadingHTTPServer((host, port), AdminAPIHandler)
    server.paths = paths  # type: ignore[attr-defined]
    server.engine = engine  # type: ignore[attr-defined]
    server.store = engine.store if engine else MappingStore.load(  # type: ignore[attr-defined]
        paths.config_path, paths.presets_dir)
    server.deploy_dir = deploy_dir  # type: ignore[attr-defined]
    return server


def start_api_server(
    paths: PeonPaths,
    engine: Optional[PeonEngine] = None,
    port: int = DEFAULT_API_PORT,
    host: str = "127.0.0.1",
) -> threading.Thread:
    """Start the admin server in a background thread."""
    server = create_api_server(paths, engine, port=port, host=host)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    log.info("Admin UI: http://%s:%d", host, server.server_address[1])
    return thread
