"""레코드 필드에서 IP 주소를 찾아 지리 정보 필드를 추가하는 해석 엔진.

필드 `K`가 IP 주소이면 다음 파생 필드를 덧붙인다 (원본 필드는 건드리지 않는다):

    K_geolocation    "위도,경도"
    K_geocountrycode ISO 3166-1 국가 코드 (registered/represented가 아닌 country 필드)
    K_geocityname    도시 이름

값이 없는 하위 항목에 대해서는 파생 필드를 만들지 않는다.
"""

from __future__ import annotations

import ipaddress
import logging
from typing import Any, Iterator, MutableMapping

from geoenricher.geoip.database import GeoDatabase, IPAddress
from geoenricher.geoip.errors import ParseError
from geoenricher.geoip.models import CountryRecord, DatabaseType, GeoRecord
from geoenricher.geoip.resource import ReloadableResource
from geoenricher.web.metrics import geoip_lookups_total, geoip_resolve_duration

logger = logging.getLogger("geoenricher.geoip.resolver")

# 시스템이 관리하는 필드 접두사
INTERNAL_FIELD_PREFIX = "gl2_"

FIELD_SEPARATOR   = "_"
FIELD_GEOLOCATION = "geolocation"
FIELD_COUNTRY     = "geocountrycode"
FIELD_CITY        = "geocityname"


def parse_ip_address(value: str) -> IPAddress:
    """문자열을 엄격한 IP 리터럴로 파싱한다. DNS 조회는 하지 않는다."""
    try:
        return ipaddress.ip_address(value.strip())
    except ValueError as exc:
        raise ParseError(f"Not an IP address: {value!r}") from exc


def extract_ip_address(value: Any) -> IPAddress | None:
    """필드 값에서 IP 주소 후보를 추출한다. IP가 아니면 None."""
    if isinstance(value, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return value
    if isinstance(value, str):
        try:
            return parse_ip_address(value)
        except ParseError:
            return None
    return None


class GeoIpResolverEngine:
    """레코드 단위 GeoIP 보강 단계.

    filter()는 레코드를 제자리에서 보강하고 항상 False(파이프라인 중단 안 함)를 반환한다.
    """

    def __init__(
        self,
        resource: ReloadableResource,
        database_type: DatabaseType = DatabaseType.CITY,
        enabled: bool = True,
    ) -> None:
        self._resource      = resource
        self._database_type = database_type
        self._enabled       = enabled

    @property
    def enabled(self) -> bool:
        """설정이 활성이고 사용 가능한 데이터베이스가 있을 때만 True."""
        return self._enabled and self._resource.enabled

    def filter(self, record: MutableMapping[str, Any]) -> bool:
        """레코드의 IP 필드마다 파생 지리 필드를 추가한다."""
        if not self._enabled:
            return False

        with self._resource.lease() as database:
            if database is None:
                return False
            # 추가되는 파생 필드는 다시 검사하지 않는다
            for key, value in list(record.items()):
                if not isinstance(key, str) or key.startswith(INTERNAL_FIELD_PREFIX):
                    continue
                address = extract_ip_address(value)
                if address is None:
                    continue
                result = self._lookup(database, address)
                if result is None:
                    continue
                for suffix, derived in self._derive(result):
                    record[key + FIELD_SEPARATOR + suffix] = derived

        return False

    def _lookup(
        self, database: GeoDatabase, address: IPAddress,
    ) -> GeoRecord | CountryRecord | None:
        try:
            with geoip_resolve_duration.time():
                result = database.lookup(address, self._database_type)
        except Exception as exc:
            geoip_lookups_total.labels(result="error").inc()
            logger.debug("Could not get location from IP %s: %s", address, exc)
            return None
        if result is None:
            geoip_lookups_total.labels(result="not_found").inc()
            logger.debug("IP %s not found in GeoIP database", address)
            return None
        geoip_lookups_total.labels(result="hit").inc()
        return result

    @staticmethod
    def _derive(result: GeoRecord | CountryRecord) -> Iterator[tuple[str, str]]:
        """조회 결과에서 (접미사, 값) 쌍을 만든다. 값이 없는 항목은 건너뛴다."""
        if isinstance(result, GeoRecord) and result.coordinates is not None:
            yield FIELD_GEOLOCATION, str(result.coordinates)

        # registered_country / represented_country가 아닌 country 필드를 사용한다
        if result.country_iso_code:
            yield FIELD_COUNTRY, result.country_iso_code

        if isinstance(result, GeoRecord) and result.city_name:
            yield FIELD_CITY, result.city_name

    def __repr__(self) -> str:
        return (
            f"<GeoIpResolverEngine type={self._database_type.value} "
            f"enabled={self.enabled}>"
        )
