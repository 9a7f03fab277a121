"""범용 키→결과 조회 계약에 맞춘 읽기 전용 GeoIP 조회 어댑터."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any

from geoenricher.geoip.database import GeoDatabase, IPAddress
from geoenricher.geoip.models import CountryRecord, DatabaseType, GeoRecord, LookupResult
from geoenricher.geoip.resolver import extract_ip_address
from geoenricher.geoip.resource import ReloadableResource
from geoenricher.web.metrics import geoip_lookups_total

logger = logging.getLogger("geoenricher.geoip.adapter")

NAME = "maxmind_geoip"


class GeoIpLookupAdapter:
    """ReloadableResource와 조회 모드(city/country)를 get(key) 계약으로 감싼다.

    데이터베이스에 없는 주소와 조회 실패는 모두 빈 결과로 처리한다.
    조회 레코드는 (핸들, 주소) 키로 lru_cache에 저장되며, 리소스가 다시 로드되면
    캐시 전체가 비워진다.
    """

    def __init__(
        self,
        resource: ReloadableResource,
        database_type: DatabaseType = DatabaseType.CITY,
        cache_size: int = 4096,
    ) -> None:
        self._resource      = resource
        self._database_type = database_type
        if cache_size > 0:
            self._cached_lookup = lru_cache(maxsize=cache_size)(self._lookup_record)
        else:
            self._cached_lookup = self._lookup_record
        resource.add_purge_listener(self.purge_cache)

    @property
    def database_type(self) -> DatabaseType:
        return self._database_type

    def get(self, key: Any) -> LookupResult:
        """키(IP 주소 객체 또는 문자열)에 대한 조회 결과를 반환한다.

        결과의 속성 맵은 호출마다 새로 만들어지므로 호출자가 수정해도 캐시에 영향이 없다.
        """
        address = extract_ip_address(key)
        if address is None and key is not None and not isinstance(key, str):
            address = extract_ip_address(str(key))
        if address is None:
            geoip_lookups_total.labels(result="invalid").inc()
            logger.debug("Unable to parse IP address %r, returning empty result", key)
            return LookupResult.empty()

        with self._resource.lease() as database:
            if database is None:
                return LookupResult.empty()
            try:
                # 캐시 키에 핸들이 포함되므로 교체 전 핸들의 결과는 새 핸들 조회에 쓰이지 않는다
                record = self._cached_lookup(database, address)
            except Exception:
                geoip_lookups_total.labels(result="error").inc()
                logger.warning("Unable to look up IP address %s, returning empty result",
                               address, exc_info=True)
                return LookupResult.empty()

        if record is None:
            return LookupResult.empty()
        return _to_result(record)

    def set(self, key: Any, value: Any) -> None:
        """읽기 전용 어댑터이므로 지원하지 않는다."""
        raise NotImplementedError("GeoIP lookup adapter is read-only")

    def purge_cache(self) -> None:
        """캐시된 조회 결과를 모두 버린다."""
        cache_clear = getattr(self._cached_lookup, "cache_clear", None)
        if cache_clear is not None:
            cache_clear()
            logger.debug("GeoIP lookup cache purged")

    def cache_info(self) -> dict[str, int] | None:
        """캐시 통계를 반환한다. 캐시가 비활성이면 None."""
        info_fn = getattr(self._cached_lookup, "cache_info", None)
        if info_fn is None:
            return None
        info = info_fn()
        return {"hits": info.hits, "misses": info.misses, "size": info.currsize}

    def _lookup_record(
        self, database: GeoDatabase, address: IPAddress,
    ) -> GeoRecord | CountryRecord | None:
        # 예외는 lru_cache에 저장되지 않으므로 실패한 조회는 다음 호출에서 재시도된다
        record = database.lookup(address, self._database_type)
        if record is None:
            geoip_lookups_total.labels(result="not_found").inc()
        else:
            geoip_lookups_total.labels(result="hit").inc()
        return record


def _to_result(record: GeoRecord | CountryRecord) -> LookupResult:
    """조회 레코드를 (단일 값, 속성 맵) 결과로 변환한다.

    도시 모드의 단일 값은 "위도,경도", 국가 모드는 ISO 국가 코드이다.
    """
    if isinstance(record, GeoRecord):
        single_value = str(record.coordinates) if record.coordinates else None
    else:
        single_value = record.country_iso_code
    return LookupResult.multi(single_value, record.to_attributes())
