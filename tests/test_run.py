"""Tests for the run.py entrypoint helpers."""

from __future__ import annotations

from types import SimpleNamespace

import run


def _setup_serve(monkeypatch, tmp_path, *, host="0.0.0.0", root_path="/music", open_browser=True):
    captured = {}

    config = SimpleNamespace(storage_root=tmp_path)
    monkeypatch.setattr(run, "initialize_app", lambda: config)
    monkeypatch.setattr(run, "_prepare_logging", lambda storage_root, debug=False: captured.setdefault("debug", debug))

    dummy_app = SimpleNamespace(state=SimpleNamespace())

    def fake_create_app(app_config, root_path):
        captured["create_app"] = (app_config, root_path)
        return dummy_app

    monkeypatch.setattr(run, "create_app", fake_create_app)

    class DummyConfig:
        def __init__(self, app, **kwargs):
            captured["app"] = app
            captured["config_kwargs"] = kwargs

    class DummyServer:
        def __init__(self, config):
            captured["server_config"] = config
            captured["server_instance"] = self

        def run(self):
            captured["server_run"] = True

    class DummyThread:
        def __init__(self, target, daemon):
            self._target = target
            captured["thread_daemon"] = daemon

        def start(self):
            captured["thread_started"] = True

    monkeypatch.setattr(run.uvicorn, "Config", DummyConfig)
    monkeypatch.setattr(run.uvicorn, "Server", DummyServer)
    monkeypatch.setattr(run.threading, "Thread", DummyThread)
    monkeypatch.setattr(run.webbrowser, "open", lambda *args, **kwargs: True)

    run.serve(host=host, port=9000, root_path=root_path, open_browser=open_browser, debug=True)

    captured["config"] = config
    captured["app_state_server"] = dummy_app.state.server
    return captured


def test_serve_passes_normalized_root_path(monkeypatch, tmp_path):
    captured = _setup_serve(monkeypatch, tmp_path, root_path="music/")

    assert captured["create_app"] == (captured["config"], "/music")
    assert captured["config_kwargs"]["root_path"] == "/music"
    assert captured["config_kwargs"]["host"] == "0.0.0.0"
    assert captured["config_kwargs"]["port"] == 9000
    assert captured["config_kwargs"]["log_config"] is None
    assert captured["app_state_server"] is captured["server_instance"]
    assert captured["server_run"] is True
    assert captured["debug"] is True


def test_serve_opens_browser_in_background(monkeypatch, tmp_path):
    captured = _setup_serve(monkeypatch, tmp_path)

    assert captured["thread_started"] is True
    assert captured["thread_daemon"] is True


def test_serve_can_skip_browser(monkeypatch, tmp_path):
    captured = _setup_serve(monkeypatch, tmp_path, open_browser=False)

    assert "thread_started" not in captured


def test_root_path_normalization():
    assert run._normalize_root_path(None) == ""
    assert run._normalize_root_path("  ") == ""
    assert run._normalize_root_path("player/") == "/player"
    assert run._normalize_root_path("/a/b/") == "/a/b"


def test_inspect_reports_resolved_and_skipped_lines(tmp_path):
    from typer.testing import CliRunner

    playlist = tmp_path / "trip.m3u"
    playlist.write_text("#EXTM3U\n../A.mp3\n../../../B.mp3\n", encoding="utf-8")

    result = CliRunner().invoke(run.cli, ["inspect", str(playlist), "--folder", "/drive/root:/Music/Lists"])

    assert result.exit_code == 0
    assert "1 track(s), 1 skipped line(s)" in result.output
    assert "Skipped lines" in result.output


def test_inspect_rejects_non_playlist(tmp_path):
    from typer.testing import CliRunner

    notes = tmp_path / "notes.txt"
    notes.write_text("A.mp3\n", encoding="utf-8")

    result = CliRunner().invoke(run.cli, ["inspect", str(notes)])

    assert result.exit_code != 0


def test_prepare_logging_quiets_client_libraries(monkeypatch, tmp_path):
    captured = {}

    def fake_configure_logging(level, handlers):
        captured["level"] = level
        captured["handlers"] = handlers

    monkeypatch.setattr(run, "configure_logging", fake_configure_logging)
    for name in ("msal", "httpx", "httpcore"):
        monkeypatch.setattr(run.logging.getLogger(name), "level", run.logging.NOTSET)

    run._prepare_logging(tmp_path, debug=True)
    for handler in captured["handlers"]:
        handler.close()

    assert captured["level"] == run.logging.DEBUG
    assert (tmp_path / "onetune.log").exists()
    for name in ("msal", "httpx", "httpcore"):
        assert run.logging.getLogger(name).level == run.logging.WARNING
