"""리로드 가능한 GeoIP 데이터베이스 리소스.

디스크의 데이터베이스 파일 하나를 소유하고, 파일 지문(크기 + 수정 시각)으로
변경을 감지해 다시 로드한다. 활성 핸들은 단일 슬롯에 저장되어 원자적으로
교체되며, 읽는 쪽은 슬롯 값을 지역 변수로 복사해 사용한다.
이전 핸들은 교체가 공개된 뒤에 retire되고 마지막 조회가 끝나면 닫힌다.

refresh()/start()/stop()은 하나의 쓰기 잠금으로 직렬화되지만,
조회는 이 잠금을 전혀 사용하지 않는다.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterator

from geoenricher.geoip.database import GeoDatabase
from geoenricher.geoip.errors import ConfigurationError, GeoIpError, ReloadError
from geoenricher.geoip.models import FileFingerprint, ResourceHealth, ResourceState
from geoenricher.web.metrics import (
    geoip_cache_purges_total,
    geoip_database_last_reload,
    geoip_database_loaded,
    geoip_reloads_total,
)

logger = logging.getLogger("geoenricher.geoip.resource")

Opener = Callable[[str], GeoDatabase]
PurgeListener = Callable[[], None]


class ReloadableResource:
    """활성 GeoDatabase 하나를 소유하고 원본 파일과 동기화한다."""

    def __init__(
        self,
        path: str | os.PathLike[str],
        refresh_interval: float = 0.0,
        enabled: bool = True,
        opener: Opener | None = None,
    ) -> None:
        """리소스를 초기화한다. 파일은 start()에서 연다.

        Args:
            path: 데이터베이스 파일 경로.
            refresh_interval: 갱신 주기(초). 0이면 주기적 갱신을 하지 않는다.
            enabled: 설정상 활성화 여부. False면 start()가 아무것도 열지 않는다.
            opener: 경로를 받아 GeoDatabase를 여는 함수 (기본값 GeoDatabase.open).
        """
        self._path             = str(path)
        self.refresh_interval  = max(0.0, float(refresh_interval or 0))
        self._config_enabled   = enabled
        self._opener: Opener   = opener or GeoDatabase.open

        self._database: GeoDatabase | None       = None
        self._fingerprint: FileFingerprint | None = None
        self._last_error: BaseException | None   = None
        self._last_reload_epoch: float           = 0.0
        self._stopped = False

        self._write_lock = threading.Lock()
        self._purge_listeners: list[PurgeListener] = []

    # ------------------------------------------------------------------
    # 수명 주기
    # ------------------------------------------------------------------

    def start(self) -> ResourceHealth:
        """데이터베이스를 열고 파일 지문을 기록한다.

        파일을 읽을 수 없으면 ConfigurationError를, 열기에 실패하면 ReloadError를
        last_error에 기록하고 비활성 상태로 남는다. 호스트를 중단시키지 않도록
        예외는 발생시키지 않는다.
        """
        with self._write_lock:
            self._stopped = False
            if not self._config_enabled:
                logger.info("GeoIP database disabled by configuration")
                return self.health

            path = self._path
            self._fingerprint = FileFingerprint.for_path(path)

            if not (os.path.isfile(path) and os.access(path, os.R_OK)):
                logger.warning("Cannot read database file %s", path)
                self._last_error = ConfigurationError(f"Cannot read database file {path}")
                return self.health

            try:
                database = self._opener(path)
            except Exception as exc:
                logger.warning("Unable to read database file %s: %s", path, exc)
                self._last_error = _as_reload_error(exc, path)
                geoip_reloads_total.labels(outcome="failure").inc()
                return self.health

            self._install(database)
            logger.info("GeoIP database loaded: %s %s", path, database.metadata)
            return self.health

    def refresh(self) -> bool:
        """파일이 바뀌었거나 이전 오류가 남아 있으면 데이터베이스를 다시 로드한다.

        변경이 없으면 아무 일도 하지 않는다. 새 파일을 여는 데 실패하면
        기존 핸들을 그대로 두고 오류만 기록한다.

        Returns:
            활성 핸들이 교체되었으면 True.
        """
        with self._write_lock:
            if self._stopped or not self._config_enabled:
                return False

            fingerprint = FileFingerprint.for_path(self._path)
            if fingerprint == self._fingerprint and self._last_error is None:
                return False

            logger.debug("GeoIP database file has changed, reloading it from %s", self._path)
            try:
                database = self._opener(self._path)
            except Exception as exc:
                logger.warning(
                    "Unable to load changed database file, leaving old one intact: %s", exc,
                )
                self._last_error = _as_reload_error(exc, self._path)
                geoip_reloads_total.labels(outcome="failure").inc()
                return False

            previous = self._install(database)
            self._purge_all()
            if previous is not None:
                previous.retire()
            self._fingerprint = fingerprint
            logger.info("GeoIP database reloaded: %s %s", self._path, database.metadata)
            return True

    def stop(self) -> None:
        """활성 핸들을 닫는다. start()가 실패했어도 안전하게 호출할 수 있다."""
        with self._write_lock:
            self._stopped = True
            database, self._database = self._database, None
            geoip_database_loaded.set(0)
        if database is not None:
            database.retire()
            logger.info("GeoIP database stopped: %s", self._path)

    def _install(self, database: GeoDatabase) -> GeoDatabase | None:
        """새 핸들을 슬롯에 공개하고 이전 핸들을 반환한다. 쓰기 잠금 안에서 호출한다."""
        previous = self._database
        self._database = database
        self._last_error = None
        self._last_reload_epoch = time.time()
        geoip_reloads_total.labels(outcome="success").inc()
        geoip_database_loaded.set(1)
        geoip_database_last_reload.set(self._last_reload_epoch)
        return previous

    # ------------------------------------------------------------------
    # 읽기
    # ------------------------------------------------------------------

    def current_database(self) -> GeoDatabase | None:
        """조회용 활성 핸들을 반환한다. refresh()를 기다리지 않는다."""
        return self._database

    @contextmanager
    def lease(self) -> Iterator[GeoDatabase | None]:
        """활성 핸들을 점유한 채로 넘겨준다.

        점유 직전에 핸들이 retire되었으면 새 슬롯 값으로 다시 시도한다.
        활성 데이터베이스가 없으면 None을 넘긴다.
        """
        while True:
            database = self._database
            if database is None:
                yield None
                return
            if database.acquire():
                break
        try:
            yield database
        finally:
            database.release()

    # ------------------------------------------------------------------
    # 캐시 무효화
    # ------------------------------------------------------------------

    def add_purge_listener(self, listener: PurgeListener) -> None:
        """리로드 성공 시 호출될 캐시 전체 삭제 콜백을 등록한다."""
        self._purge_listeners.append(listener)

    def remove_purge_listener(self, listener: PurgeListener) -> None:
        if listener in self._purge_listeners:
            self._purge_listeners.remove(listener)

    def _purge_all(self) -> None:
        geoip_cache_purges_total.inc()
        for listener in list(self._purge_listeners):
            try:
                listener()
            except Exception:
                logger.exception("Cache purge listener %r failed", listener)

    # ------------------------------------------------------------------
    # 상태
    # ------------------------------------------------------------------

    @property
    def path(self) -> str:
        return self._path

    @property
    def enabled(self) -> bool:
        """활성 핸들이 있을 때만 True."""
        return self._database is not None

    @property
    def last_error(self) -> BaseException | None:
        return self._last_error

    @property
    def health(self) -> ResourceHealth:
        if self._database is None:
            return ResourceHealth.DISABLED
        if self._last_error is not None:
            return ResourceHealth.DEGRADED
        return ResourceHealth.HEALTHY

    def state(self) -> ResourceState:
        """현재 상태의 불변 스냅샷을 반환한다."""
        database = self._database
        return ResourceState(
            enabled=database is not None,
            health=self.health,
            path=self._path,
            fingerprint=self._fingerprint,
            last_error=self._last_error,
            last_reload_epoch=self._last_reload_epoch,
            metadata=database.metadata if database is not None else {},
        )

    def __repr__(self) -> str:
        return f"<ReloadableResource path={self._path!r} health={self.health.value}>"


def _as_reload_error(exc: BaseException, path: str) -> GeoIpError:
    """열기 실패 예외를 ReloadError로 정규화한다."""
    if isinstance(exc, GeoIpError):
        return exc
    error = ReloadError(f"Unable to open database file {path}: {exc}")
    error.__cause__ = exc
    return error
