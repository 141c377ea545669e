"""Tests for the admin HTTP API (src/openpeon/api.py) and deploy.

A real ThreadingHTTPServer is bound to an ephemeral port per test and
driven with http.client.
"""

from __future__ import annotations

import http.client
import json
import os
import threading

import pytest
import yaml

from openpeon.api import create_api_server
from openpeon.config import PeonPaths, write_document
from openpeon.deploy import deploy_plugin
from openpeon.mappings import EVENT_VALUES, TRIGGER_TYPES


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.fixture()
def paths(tmp_path):
    base = tmp_path / "install"
    sounds = base / "sounds"
    (sounds / "peon").mkdir(parents=True)
    (sounds / "work-complete.wav").write_bytes(b"RIFFdata")
    (sounds / "peon" / "ready.mp3").write_bytes(b"ID3data")
    (base / "ui").mkdir()
    (base / "ui" / "index.html").write_text("<html>peon</html>")
    write_document(str(base / "presets" / "orc.yml"), {"volume": 7, "mappings": []})
    return PeonPaths(base_dir=str(base))


@pytest.fixture()
def server(paths, tmp_path):
    srv = create_api_server(paths, port=0, deploy_dir=str(tmp_path / "deployed"))
    thread = threading.Thread(target=srv.serve_forever, daemon=True)
    thread.start()
    yield srv
    srv.shutdown()
    srv.server_close()


def _request(server, method, path, body=None):
    conn = http.client.HTTPConnection("127.0.0.1", server.server_address[1], timeout=5)
    headers = {}
    data = None
    if body is not None:
        data = json.dumps(body).encode()
        headers["Content-Type"] = "application/json"
    conn.request(method, path, body=data, headers=headers)
    resp = conn.getresponse()
    payload = resp.read()
    conn.close()
    return resp, payload


def _json(server, method, path, body=None):
    resp, payload = _request(server, method, path, body)
    return resp.status, json.loads(payload)


def _load(path):
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f)


# ---------------------------------------------------------------------------
# Metadata and config
# ---------------------------------------------------------------------------


class TestMetaAndConfig:
    def test_meta(self, server):
        status, data = _json(server, "GET", "/api/meta")
        assert status == 200
        assert data["triggerTypes"] == TRIGGER_TYPES
        assert data["eventValues"] == EVENT_VALUES
        assert "question" in data["toolValues"]

    def test_config_defaults_when_missing(self, server):
        status, data = _json(server, "GET", "/api/config")
        assert status == 200
        assert data["volume"] == 5
        assert len(data["mappings"]) == 3

    def test_save_config_reloads_store(self, server, paths):
        doc = {"volume": 9, "mappings": []}
        status, data = _json(server, "POST", "/api/config", doc)
        assert status == 200
        assert data == {"success": True}
        assert _load(paths.config_path) == doc
        assert server.store.volume == 9
        assert _json(server, "GET", "/api/config")[1] == doc

    def test_save_config_rejects_non_object(self, server):
        status, data = _json(server, "POST", "/api/config", [1, 2])
        assert status == 400
        assert data["success"] is False

    @pytest.mark.parametrize("length", ["abc", "-1"])
    def test_bad_content_length_rejected(self, server, paths, length):
        conn = http.client.HTTPConnection("127.0.0.1", server.server_address[1], timeout=5)
        conn.putrequest("POST", "/api/config")
        conn.putheader("Content-Type", "application/json")
        conn.putheader("Content-Length", length)
        conn.endheaders()
        resp = conn.getresponse()
        data = json.loads(resp.read())
        conn.close()
        assert resp.status == 400
        assert data == {"success": False, "error": "invalid Content-Length"}
        assert not os.path.exists(paths.config_path)

    def test_options_preflight(self, server):
        resp, _ = _request(server, "OPTIONS", "/api/config")
        assert resp.status == 204
        assert resp.getheader("Access-Control-Allow-Origin") == "*"


# ---------------------------------------------------------------------------
# Sounds
# ---------------------------------------------------------------------------


class TestSounds:
    def test_directories(self, server):
        assert _json(server, "GET", "/api/sounds/directories") == (200, [".", "peon"])

    def test_list(self, server):
        assert _json(server, "GET", "/api/sounds/list/.")[1] == ["work-complete.wav"]
        assert _json(server, "GET", "/api/sounds/list/peon")[1] == ["ready.mp3"]

    def test_play_streams_file(self, server):
        resp, payload = _request(server, "GET", "/api/sounds/play/peon%2Fready.mp3")
        assert resp.status == 200
        assert resp.getheader("Content-Type") == "audio/mpeg"
        assert payload == b"ID3data"

    def test_play_wav(self, server):
        resp, payload = _request(server, "GET", "/api/sounds/play/work-complete.wav")
        assert resp.getheader("Content-Type") == "audio/wav"
        assert payload == b"RIFFdata"

    def test_play_missing(self, server):
        assert _request(server, "GET", "/api/sounds/play/nope.wav")[0].status == 404

    def test_play_traversal_refused(self, server):
        assert _request(server, "GET", "/api/sounds/play/..%2Fopenpeon.yml")[0].status == 404


# ---------------------------------------------------------------------------
# Presets
# ---------------------------------------------------------------------------


class TestPresets:
    def test_list(self, server):
        assert _json(server, "GET", "/api/presets") == (200, ["orc"])

    def test_get(self, server):
        assert _json(server, "GET", "/api/presets/orc") == (200, {"volume": 7, "mappings": []})

    def test_get_missing(self, server):
        assert _json(server, "GET", "/api/presets/elf")[0] == 404

    def test_create_then_delete(self, server, paths):
        doc = {"mappings": [{"name": "x", "triggers": [], "sounds": []}]}
        assert _json(server, "POST", "/api/presets/human", doc) == (200, {"success": True})
        assert os.path.isfile(os.path.join(paths.presets_dir, "human.yml"))
        assert _json(server, "GET", "/api/presets")[1] == ["human", "orc"]
        assert _json(server, "DELETE", "/api/presets/human") == (200, {"success": True})
        assert _json(server, "GET", "/api/presets")[1] == ["orc"]

    def test_save_overwrites_existing_file(self, server, paths):
        _json(server, "POST", "/api/presets/orc", {"volume": 2, "mappings": []})
        assert _load(os.path.join(paths.presets_dir, "orc.yml"))["volume"] == 2

    def test_invalid_name(self, server):
        status, data = _json(server, "POST", "/api/presets/.hidden", {"mappings": []})
        assert status == 400
        assert "invalid preset name" in data["error"]

    def test_delete_missing(self, server):
        assert _json(server, "DELETE", "/api/presets/elf")[0] == 404


# ---------------------------------------------------------------------------
# Static UI and unknown routes
# ---------------------------------------------------------------------------


class TestStatic:
    def test_index(self, server):
        resp, payload = _request(server, "GET", "/")
        assert resp.status == 200
        assert resp.getheader("Content-Type") == "text/html"
        assert payload == b"<html>peon</html>"

    def test_missing_file(self, server):
        assert _request(server, "GET", "/app.js")[0].status == 404

    def test_unknown_api_route(self, server):
        assert _request(server, "GET", "/api/nope")[0].status == 404
        assert _request(server, "POST", "/api/nope", {})[0].status == 404
        assert _request(server, "DELETE", "/api/config")[0].status == 404


# ---------------------------------------------------------------------------
# Deploy
# ---------------------------------------------------------------------------


class TestDeploy:
    def test_endpoint(self, server, tmp_path):
        status, data = _json(server, "POST", "/api/deploy")
        assert status == 200
        assert data == {"success": True, "path": str(tmp_path / "deployed")}

    def test_copies_everything(self, paths, tmp_path):
        write_document(paths.config_path, {"volume": 3, "mappings": []})
        target = tmp_path / "plugin"
        result = deploy_plugin(paths, str(target))
        assert result["success"] is True
        assert (target / "openpeon" / "engine.py").is_file()
        assert not list(target.glob("openpeon/__pycache__"))
        assert yaml.safe_load((target / "openpeon.yml").read_text())["volume"] == 3
        assert (target / "sounds" / "peon" / "ready.mp3").read_bytes() == b"ID3data"
        assert (target / "presets" / "orc.yml").is_file()

    def test_replaces_stale_files(self, paths, tmp_path):
        target = tmp_path / "plugin"
        (target / "sounds").mkdir(parents=True)
        (target / "sounds" / "old.wav").write_bytes(b"x")
        (target / "presets").mkdir()
        (target / "presets" / "gone.yml").write_text("mappings: []\n")
        assert deploy_plugin(paths, str(target))["success"]
        assert not (target / "sounds" / "old.wav").exists()
        assert not (target / "presets" / "gone.yml").exists()

    def test_same_directory_refused(self, paths):
        result = deploy_plugin(paths, paths.base_dir)
        assert result["success"] is False
