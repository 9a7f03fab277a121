"""열린 GeoIP2 바이너리 데이터베이스 핸들.

geoip2 Reader를 감싸 도시/국가 조회를 GeoRecord / CountryRecord로 변환한다.
핸들은 리로드 시 교체되며, 진행 중인 조회가 끝난 뒤에만 닫힌다.
"""

from __future__ import annotations

import ipaddress
import logging
import os
import threading
from typing import Any

import geoip2.database
import geoip2.errors
import maxminddb

from geoenricher.geoip.errors import DatabaseClosedError, QueryError, ReloadError
from geoenricher.geoip.models import (
    Continent,
    Coordinates,
    CountryInfo,
    CountryRecord,
    DatabaseType,
    GeoRecord,
    Subdivision,
)

logger = logging.getLogger("geoenricher.geoip.database")

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address


def _continent(record: Any) -> Continent | None:
    if record is None:
        return None
    return Continent(
        code=getattr(record, "code", None),
        name=getattr(record, "name", None),
        geoname_id=getattr(record, "geoname_id", None),
    )


def _country(record: Any) -> CountryInfo | None:
    if record is None:
        return None
    return CountryInfo(
        iso_code=getattr(record, "iso_code", None),
        name=getattr(record, "name", None),
        geoname_id=getattr(record, "geoname_id", None),
    )


def _traits(record: Any) -> dict[str, Any]:
    if record is None:
        return {}
    return {k: v for k, v in record.to_dict().items() if v is not None}


def _coordinates(location: Any) -> Coordinates | None:
    """위치 레코드에서 좌표를 추출한다. 범위를 벗어나면 None."""
    if location is None:
        return None
    try:
        return Coordinates.from_location(location.latitude, location.longitude)
    except ValueError:
        logger.debug("Discarding invalid coordinates: %s, %s",
                     location.latitude, location.longitude)
        return None


def city_record_from_response(response: Any) -> GeoRecord:
    """geoip2 City 응답을 GeoRecord로 변환한다."""
    location = getattr(response, "location", None)
    city     = getattr(response, "city", None)
    postal   = getattr(response, "postal", None)
    return GeoRecord(
        city_name=getattr(city, "name", None),
        city_geoname_id=getattr(city, "geoname_id", None),
        continent=_continent(getattr(response, "continent", None)),
        country=_country(getattr(response, "country", None)),
        registered_country=_country(getattr(response, "registered_country", None)),
        represented_country=_country(getattr(response, "represented_country", None)),
        coordinates=_coordinates(location),
        accuracy_radius=getattr(location, "accuracy_radius", None),
        time_zone=getattr(location, "time_zone", None),
        postal_code=getattr(postal, "code", None),
        subdivisions=tuple(
            Subdivision(iso_code=s.iso_code, name=s.name)
            for s in (getattr(response, "subdivisions", None) or ())
        ),
        traits=_traits(getattr(response, "traits", None)),
    )


def country_record_from_response(response: Any) -> CountryRecord:
    """geoip2 Country 응답을 CountryRecord로 변환한다."""
    return CountryRecord(
        continent=_continent(getattr(response, "continent", None)),
        country=_country(getattr(response, "country", None)),
        registered_country=_country(getattr(response, "registered_country", None)),
        represented_country=_country(getattr(response, "represented_country", None)),
        traits=_traits(getattr(response, "traits", None)),
    )


class GeoDatabase:
    """하나의 열린 데이터베이스 인스턴스.

    로드 시 열리고, 교체나 종료 시 정확히 한 번 닫힌다. 닫힌 뒤에는 재사용되지 않는다.
    acquire()/release()로 진행 중인 조회 수를 추적하고, retire()된 핸들은
    마지막 조회가 끝나는 시점에 닫힌다.
    """

    def __init__(self, reader: Any, path: str | os.PathLike[str] = "") -> None:
        self._reader    = reader
        self.path       = str(path)
        self._lock      = threading.Lock()
        self._in_flight = 0
        self._retired   = False
        self._closed    = False

    @classmethod
    def open(cls, path: str | os.PathLike[str]) -> GeoDatabase:
        """경로의 데이터베이스 파일을 연다. 실패 시 ReloadError."""
        try:
            reader = geoip2.database.Reader(str(path))
        except (OSError, ValueError, maxminddb.InvalidDatabaseError) as exc:
            raise ReloadError(f"Unable to open database file {path}: {exc}") from exc
        return cls(reader, path)

    @property
    def metadata(self) -> dict[str, Any]:
        """데이터베이스 메타데이터 (database_type, build_epoch, ip_version)."""
        try:
            meta = self._reader.metadata()
        except Exception:
            logger.debug("Unable to read database metadata: %s", self.path, exc_info=True)
            return {}
        return {
            "database_type": getattr(meta, "database_type", None),
            "build_epoch":   getattr(meta, "build_epoch", None),
            "ip_version":    getattr(meta, "ip_version", None),
        }

    # ------------------------------------------------------------------
    # 수명 주기
    # ------------------------------------------------------------------

    def acquire(self) -> bool:
        """조회용으로 핸들을 점유한다. 이미 retire된 핸들이면 False."""
        with self._lock:
            if self._retired or self._closed:
                return False
            self._in_flight += 1
            return True

    def release(self) -> None:
        """acquire()한 점유를 해제한다. retire 상태의 마지막 사용자가 닫는다."""
        with self._lock:
            self._in_flight -= 1
            should_close = self._retired and self._in_flight <= 0
        if should_close:
            self.close()

    def retire(self) -> None:
        """새 조회를 거부하고, 진행 중인 조회가 없으면 즉시 닫는다."""
        with self._lock:
            self._retired = True
            should_close = self._in_flight <= 0
        if should_close:
            self.close()

    def close(self) -> None:
        """리더를 닫는다. 여러 번 호출해도 한 번만 닫힌다."""
        with self._lock:
            if self._closed:
                return
            self._closed  = True
            self._retired = True
        try:
            self._reader.close()
        except Exception:
            logger.warning("Failed to close database %s", self.path, exc_info=True)
        logger.debug("Closed database handle: %s", self.path)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def in_flight(self) -> int:
        return self._in_flight

    # ------------------------------------------------------------------
    # 조회
    # ------------------------------------------------------------------

    def lookup_city(self, address: IPAddress | str) -> GeoRecord | None:
        """도시 조회. 데이터베이스에 없는 주소면 None, 조회 실패 시 QueryError."""
        response = self._query("city", address)
        if response is None:
            return None
        return city_record_from_response(response)

    def lookup_country(self, address: IPAddress | str) -> CountryRecord | None:
        """국가 조회. 데이터베이스에 없는 주소면 None, 조회 실패 시 QueryError."""
        response = self._query("country", address)
        if response is None:
            return None
        return country_record_from_response(response)

    def lookup(
        self, address: IPAddress | str, database_type: DatabaseType,
    ) -> GeoRecord | CountryRecord | None:
        """설정된 데이터베이스 유형에 따라 도시 또는 국가 조회를 선택한다."""
        if database_type is DatabaseType.COUNTRY:
            return self.lookup_country(address)
        return self.lookup_city(address)

    def _query(self, method: str, address: IPAddress | str) -> Any:
        if self._closed:
            raise DatabaseClosedError(f"Database {self.path} is closed")
        try:
            return getattr(self._reader, method)(address)
        except geoip2.errors.AddressNotFoundError:
            return None
        except Exception as exc:
            raise QueryError(f"{method} lookup failed for {address}: {exc}") from exc

    def __repr__(self) -> str:
        return f"<GeoDatabase path={self.path!r} closed={self._closed}>"
