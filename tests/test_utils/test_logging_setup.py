"""setup_logging / JSONFormatter 단위 테스트."""

from __future__ import annotations

import io
import json
import logging
import sys
from logging.handlers import RotatingFileHandler

import pytest

from geoenricher.utils.config import Config
from geoenricher.utils.logging_setup import JSONFormatter, setup_logging


@pytest.fixture
def restore_logger():
    """테스트가 설치한 핸들러를 정리한다."""
    logger = logging.getLogger("geoenricher")
    level = logger.level
    yield logger
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(level)


def _config(tmp_path, **logging_section) -> Config:
    return Config({"logging": {"directory": str(tmp_path / "logs"), **logging_section}})


class TestSetupLogging:
    def test_installs_console_and_file_handlers(self, tmp_path, restore_logger):
        logger = setup_logging(_config(tmp_path, level="debug"))
        assert logger is restore_logger
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 2
        assert any(isinstance(h, RotatingFileHandler) for h in logger.handlers)
        assert (tmp_path / "logs").is_dir()

    def test_repeated_setup_replaces_handlers(self, tmp_path, restore_logger):
        setup_logging(_config(tmp_path))
        setup_logging(_config(tmp_path))
        assert len(restore_logger.handlers) == 2

    def test_writes_to_given_stream(self, tmp_path, restore_logger):
        stream = io.StringIO()
        setup_logging(_config(tmp_path), stream=stream)
        logging.getLogger("geoenricher.geoip.resource").info("GeoIP database loaded")
        assert "GeoIP database loaded" in stream.getvalue()
        assert "geoenricher.geoip.resource" in stream.getvalue()

    def test_unknown_level_falls_back_to_info(self, tmp_path, restore_logger):
        setup_logging(_config(tmp_path, level="LOUD"))
        assert restore_logger.level == logging.INFO

    def test_json_format(self, tmp_path, restore_logger):
        stream = io.StringIO()
        setup_logging(_config(tmp_path, format="json"), stream=stream)
        logging.getLogger("geoenricher.app").warning("Skipping line %d", 3)
        entry = json.loads(stream.getvalue().strip().splitlines()[-1])
        assert entry["level"] == "WARNING"
        assert entry["logger"] == "geoenricher.app"
        assert entry["msg"] == "Skipping line 3"
        assert entry["where"].startswith("test_logging_setup:")

    def test_empty_directory_disables_file_output(self, restore_logger):
        setup_logging(Config({"logging": {"directory": ""}}), stream=io.StringIO())
        assert len(restore_logger.handlers) == 1
        assert not any(isinstance(h, RotatingFileHandler) for h in restore_logger.handlers)

    def test_per_logger_levels(self, tmp_path, restore_logger):
        resolver = logging.getLogger("geoenricher.geoip.resolver")
        previous = resolver.level
        try:
            stream = io.StringIO()
            setup_logging(
                _config(tmp_path, level="INFO", loggers={"geoip.resolver": "debug"}),
                stream=stream,
            )
            resolver.debug("IP %s not found in GeoIP database", "10.0.0.1")
            logging.getLogger("geoenricher.geoip.adapter").debug("GeoIP lookup cache purged")
            output = stream.getvalue()
            assert "10.0.0.1" in output
            assert "cache purged" not in output
        finally:
            resolver.setLevel(previous)


class TestJSONFormatter:
    def test_includes_exception(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord(
                "geoenricher.test", logging.ERROR, __file__, 1, "failed", None, sys.exc_info(),
            )
        entry = json.loads(JSONFormatter().format(record))
        assert entry["msg"] == "failed"
        assert "RuntimeError: boom" in entry["exception"]

    def test_non_ascii_preserved(self):
        record = logging.LogRecord(
            "geoenricher.test", logging.INFO, __file__, 1, "서울 %s", ("OK",), None,
        )
        assert "서울 OK" in JSONFormatter().format(record)
