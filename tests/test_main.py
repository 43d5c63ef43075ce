"""Tests for the command line entry point's logging setup."""

import logging
import pytest
import yaml
from logging.handlers import RotatingFileHandler
from pathlib import Path

import main


@pytest.fixture
def log_path(tmp_path: Path):
    return tmp_path / "logs" / "app.log"


class TestLogHandlers:
    """Tests for the handlers installed on the root logger."""

    def test_file_handler_rotates_with_configured_limits(self, log_path):
        handlers = main.build_log_handlers(log_path, max_bytes=2048, backup_count=3)
        try:
            file_handlers = [h for h in handlers if isinstance(h, RotatingFileHandler)]
            assert len(file_handlers) == 1
            assert file_handlers[0].maxBytes == 2048
            assert file_handlers[0].backupCount == 3
            assert log_path.parent.is_dir()
        finally:
            for handler in handlers:
                handler.close()

    def test_old_logs_are_capped(self, log_path):
        handler = main.build_log_handlers(log_path, max_bytes=200, backup_count=2)[0]
        logger = logging.getLogger("ahmo_wall.rotation_test")
        logger.propagate = False
        logger.setLevel(logging.INFO)
        logger.addHandler(handler)
        try:
            for i in range(100):
                logger.info(f"board b1 snapshot {i} delivered to 3 listeners")
        finally:
            logger.removeHandler(handler)
            handler.close()

        assert log_path.exists()
        assert log_path.with_name("app.log.1").exists()
        assert log_path.with_name("app.log.2").exists()
        assert not log_path.with_name("app.log.3").exists()


class TestMain:
    """Tests for wiring configuration into logging."""

    def test_logging_limits_come_from_config(self, tmp_path, log_path, monkeypatch):
        config_path = tmp_path / "settings.yaml"
        with open(config_path, 'w') as f:
            yaml.dump({'logging': {
                'level': 'DEBUG',
                'log_path': str(log_path),
                'max_log_size': 4096,
                'backup_count': 7,
            }}, f)

        calls = []

        def fake_setup(level, path, max_bytes=None, backup_count=None):
            calls.append((level, path, max_bytes, backup_count))

        async def fake_run(args, config_manager):
            return 0

        monkeypatch.setattr(main, "setup_logging", fake_setup)
        monkeypatch.setattr(main, "run_command", fake_run)

        assert main.main(["--config", str(config_path), "boards"]) == 0
        assert calls == [("DEBUG", log_path, 4096, 7)]
