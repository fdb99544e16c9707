import json
import logging

import pytest

from gemini_relay.config import RelayConfig
from gemini_relay.logging_utils import JsonlLogger, configure_logging, resolve_level


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    level, handlers = root.level, list(root.handlers)
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


def test_configure_logging_writes_to_configured_dir(tmp_path):
    cfg = RelayConfig(log_dir=str(tmp_path / "logs"), log_level="DEBUG")

    log_path = configure_logging(cfg, include_console=False)
    logging.getLogger(__name__).debug("debug entry")

    assert log_path == tmp_path / "logs" / "gemini_relay.log"
    assert logging.getLogger().level == logging.DEBUG
    assert "debug entry" in log_path.read_text()


def test_configure_logging_replaces_previous_handlers(tmp_path):
    first_path = configure_logging(
        RelayConfig(log_dir=str(tmp_path / "logs")), include_console=False
    )
    logging.getLogger(__name__).info("first run entry")

    second_path = configure_logging(
        RelayConfig(log_dir=str(tmp_path / "alt_logs")), include_console=False
    )
    logging.getLogger(__name__).info("second run entry")

    assert "first run entry" in first_path.read_text()
    assert "second run entry" in second_path.read_text()
    assert "second run entry" not in first_path.read_text()


def test_explicit_level_overrides_config(tmp_path):
    cfg = RelayConfig(log_dir=str(tmp_path), log_level="DEBUG")

    log_path = configure_logging(cfg, level="warning", include_console=False)
    logging.getLogger(__name__).info("hidden")
    logging.getLogger(__name__).warning("shown")

    text = log_path.read_text()
    assert "hidden" not in text
    assert "shown" in text


def test_httpx_request_lines_are_suppressed(tmp_path):
    log_path = configure_logging(
        RelayConfig(log_dir=str(tmp_path), log_level="DEBUG"), include_console=False
    )
    logging.getLogger("httpx").info("HTTP Request: POST https://x.test/?key=secret")

    assert logging.getLogger("httpx").level == logging.WARNING
    assert "secret" not in log_path.read_text()


def test_empty_log_dir_skips_file_handler(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    assert configure_logging(RelayConfig(log_dir=""), include_console=False) is None
    assert list(tmp_path.iterdir()) == []


def test_resolve_level_falls_back_to_info():
    assert resolve_level("debug") == logging.DEBUG
    assert resolve_level("nonsense") == logging.INFO
    assert resolve_level(None) == logging.INFO


def test_jsonl_logger_rotates(tmp_path, monkeypatch):
    log_file = tmp_path / "logs" / "streams.jsonl"
    stream_log = JsonlLogger(str(log_file), max_bytes=5)
    monkeypatch.setattr(
        "gemini_relay.logging_utils.time.strftime", lambda *_: "19700101-000000"
    )

    stream_log.log({"a": 1})
    stream_log.log({"outcome": "completed"})

    rotated = log_file.with_name(log_file.name + ".19700101-000000")
    assert rotated.exists()
    assert json.loads(log_file.read_text(encoding="utf-8").strip()) == {
        "outcome": "completed"
    }


def test_jsonl_logger_disabled_with_empty_path(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    stream_log = JsonlLogger("")
    stream_log.log({"event": "ignored"})
    assert not stream_log.enabled
    assert list(tmp_path.iterdir()) == []
