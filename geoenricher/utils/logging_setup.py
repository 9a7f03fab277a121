"""geoenricher 로거 설정: 콘솔/파일 출력, 텍스트/JSON 형식, 모듈별 레벨."""

from __future__ import annotations

import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import IO, Any

from geoenricher.utils.config import Config

ROOT_LOGGER = "geoenricher"
LOG_FILE    = "geoenricher.log"

TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
TIME_FORMAT = "%Y-%m-%dT%H:%M:%S"


class JSONFormatter(logging.Formatter):
    """한 줄에 JSON 객체 하나를 쓰는 포매터.

    로그 수집기에서 다시 파싱할 수 있도록 logger 이름과 발생 위치를 함께 남긴다.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "time":   self.formatTime(record, TIME_FORMAT),
            "level":  record.levelname,
            "logger": record.name,
            "where":  f"{record.module}:{record.lineno}",
            "msg":    record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def _level(value: Any, default: int = logging.INFO) -> int:
    """'debug', 'WARNING', 10 같은 설정 값을 로깅 레벨로 변환한다."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    level = logging.getLevelName(str(value).upper())
    return level if isinstance(level, int) else default


def setup_logging(config: Config, stream: IO[str] | None = None) -> logging.Logger:
    """geoenricher 로거에 콘솔 핸들러와 (선택적) 로테이팅 파일 핸들러를 설치한다.

    logging 섹션 키:
        level: 기본 레벨.
        format: text | json.
        directory: 로그 파일 디렉터리. 비워 두면 파일 출력을 하지 않는다.
        max_bytes / backup_count: 파일 로테이션.
        loggers: 하위 로거별 레벨 (예: {"geoip.resolver": "DEBUG"}).

    다시 호출하면 이전 핸들러를 닫고 교체한다. stream 기본값은 stdout이다.
    """
    section = config.section("logging")

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(_level(section.get("level", "INFO")))
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if section.get("format", "text") == "json":
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(TEXT_FORMAT, datefmt=TIME_FORMAT)

    console = logging.StreamHandler(stream or sys.stdout)
    console.setFormatter(formatter)
    logger.addHandler(console)

    directory = section.get("directory", "data/logs")
    if directory:
        log_dir = Path(directory)
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_dir / LOG_FILE,
            maxBytes=int(section.get("max_bytes", 10_485_760)),
            backupCount=int(section.get("backup_count", 5)),
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    overrides = section.get("loggers") or {}
    if isinstance(overrides, dict):
        for name, level in overrides.items():
            logging.getLogger(f"{ROOT_LOGGER}.{name}").setLevel(_level(level))

    return logger
