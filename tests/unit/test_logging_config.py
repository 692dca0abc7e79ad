"""Unit tests for log setup and rotation."""

import logging

from kb_retrieval.api import logging_config


def test_rotate_logs_keeps_limited_backups(tmp_path):
    (tmp_path / "server.log").write_text("x" * 20, encoding="utf-8")
    (tmp_path / "server.log.1").write_text("old-1", encoding="utf-8")
    (tmp_path / "server.log.2").write_text("old-2", encoding="utf-8")

    logging_config.rotate_logs(tmp_path, keep_count=2, max_bytes=10)

    assert not (tmp_path / "server.log").exists()
    assert (tmp_path / "server.log.1").read_text(encoding="utf-8") == "x" * 20
    assert (tmp_path / "server.log.2").read_text(encoding="utf-8") == "old-1"
    assert not (tmp_path / "server.log.3").exists()


def test_rotate_logs_leaves_small_file(tmp_path):
    (tmp_path / "server.log").write_text("small", encoding="utf-8")

    logging_config.rotate_logs(tmp_path, max_bytes=1024)

    assert (tmp_path / "server.log").read_text(encoding="utf-8") == "small"


def test_setup_logging_is_idempotent(tmp_path, monkeypatch):
    root = logging.getLogger()
    original_handlers = list(root.handlers)
    original_level = root.level
    monkeypatch.setattr(logging_config, "_initialized", False)

    try:
        logging_config.setup_logging("DEBUG", logs_dir=tmp_path)
        handlers = list(root.handlers)
        logging_config.setup_logging("INFO", logs_dir=tmp_path)

        assert root.handlers == handlers
        assert root.level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.WARNING
        assert "Server started at" in (tmp_path / "server.log").read_text(encoding="utf-8")
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers = original_handlers
        root.setLevel(original_level)
