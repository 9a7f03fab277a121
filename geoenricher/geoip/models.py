"""GeoIP 조회 결과와 리소스 상태를 표현하는 불변 모델."""

from __future__ import annotations

import enum
import math
import os
from dataclasses import dataclass, field
from typing import Any, Mapping


class DatabaseType(str, enum.Enum):
    """조회 모드: 도시 데이터베이스 또는 국가 데이터베이스."""
    CITY    = "city"
    COUNTRY = "country"

    @classmethod
    def from_value(cls, value: str | DatabaseType) -> DatabaseType:
        """설정 문자열을 DatabaseType으로 변환한다.

        'city', 'COUNTRY', 'maxmind_city' 형식을 모두 허용한다.
        알 수 없는 값이면 ValueError를 발생시킨다.
        """
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        if normalized.startswith("maxmind_"):
            normalized = normalized[len("maxmind_"):]
        return cls(normalized)


class ResourceHealth(str, enum.Enum):
    """리로드 가능한 데이터베이스 리소스의 상태."""
    HEALTHY  = "healthy"    # 활성 핸들 있음, 오류 없음
    DEGRADED = "degraded"   # 활성 핸들 있음, 마지막 갱신 실패
    DISABLED = "disabled"   # 활성 핸들 없음


@dataclass(frozen=True)
class Coordinates:
    """위도/경도 쌍. 문자열 표현은 "lat,long"."""
    latitude:  float
    longitude: float

    def __post_init__(self) -> None:
        """좌표가 유한하고 유효 범위 안에 있는지 검증한다."""
        if not (math.isfinite(self.latitude) and math.isfinite(self.longitude)):
            raise ValueError(f"Non-finite coordinates: {self.latitude}, {self.longitude}")
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"Latitude out of range: {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"Longitude out of range: {self.longitude}")

    @classmethod
    def from_location(cls, latitude: float | None, longitude: float | None) -> Coordinates | None:
        """두 값이 모두 있을 때만 Coordinates를 만든다."""
        if latitude is None or longitude is None:
            return None
        return cls(float(latitude), float(longitude))

    def __str__(self) -> str:
        return f"{self.latitude},{self.longitude}"


@dataclass(frozen=True)
class Continent:
    code:       str | None = None
    name:       str | None = None
    geoname_id: int | None = None


@dataclass(frozen=True)
class CountryInfo:
    """country / registered_country / represented_country 공통 레코드."""
    iso_code:   str | None = None
    name:       str | None = None
    geoname_id: int | None = None


@dataclass(frozen=True)
class Subdivision:
    iso_code: str | None = None
    name:     str | None = None


def _as_dict(value: Any) -> dict[str, Any] | None:
    """하위 레코드 dataclass를 직렬화 가능한 dict로 변환한다."""
    if value is None:
        return None
    return dict(value.__dict__)


@dataclass(frozen=True)
class GeoRecord:
    """도시 데이터베이스 조회 결과.

    데이터베이스의 어떤 필드도 비어 있을 수 있으므로 모든 필드는 선택적이다.
    coordinates는 위도와 경도가 모두 있을 때만 채워진다.
    """
    city_name:           str | None = None
    city_geoname_id:     int | None = None
    continent:           Continent | None = None
    country:             CountryInfo | None = None
    registered_country:  CountryInfo | None = None
    represented_country: CountryInfo | None = None
    coordinates:         Coordinates | None = None
    accuracy_radius:     int | None = None
    time_zone:           str | None = None
    postal_code:         str | None = None
    subdivisions:        tuple[Subdivision, ...] = ()
    traits:              Mapping[str, Any] = field(default_factory=dict, compare=False)

    @property
    def country_iso_code(self) -> str | None:
        return self.country.iso_code if self.country else None

    @property
    def registered_country_iso_code(self) -> str | None:
        return self.registered_country.iso_code if self.registered_country else None

    @property
    def represented_country_iso_code(self) -> str | None:
        return self.represented_country.iso_code if self.represented_country else None

    def to_attributes(self) -> dict[str, Any]:
        """조회 어댑터의 속성 맵 형태로 변환한다."""
        location: dict[str, Any] = {
            "accuracy_radius": self.accuracy_radius,
            "time_zone":       self.time_zone,
            "latitude":        self.coordinates.latitude if self.coordinates else None,
            "longitude":       self.coordinates.longitude if self.coordinates else None,
        }
        return {
            "city":                {"name": self.city_name, "geoname_id": self.city_geoname_id},
            "continent":           _as_dict(self.continent),
            "country":             _as_dict(self.country),
            "location":            location,
            "postal":              {"code": self.postal_code},
            "registered_country":  _as_dict(self.registered_country),
            "represented_country": _as_dict(self.represented_country),
            "subdivisions":        [_as_dict(s) for s in self.subdivisions],
            "traits":              dict(self.traits),
        }


@dataclass(frozen=True)
class CountryRecord:
    """국가 데이터베이스 조회 결과. 좌표는 없다."""
    continent:           Continent | None = None
    country:             CountryInfo | None = None
    registered_country:  CountryInfo | None = None
    represented_country: CountryInfo | None = None
    traits:              Mapping[str, Any] = field(default_factory=dict, compare=False)

    @property
    def country_iso_code(self) -> str | None:
        return self.country.iso_code if self.country else None

    def to_attributes(self) -> dict[str, Any]:
        """조회 어댑터의 속성 맵 형태로 변환한다."""
        return {
            "continent":           _as_dict(self.continent),
            "country":             _as_dict(self.country),
            "registered_country":  _as_dict(self.registered_country),
            "represented_country": _as_dict(self.represented_country),
            "traits":              dict(self.traits),
        }


@dataclass(frozen=True)
class FileFingerprint:
    """파일 변경 감지를 위한 크기 + 수정 시각."""
    size:     int
    mtime_ns: int

    @classmethod
    def for_path(cls, path: str | os.PathLike[str]) -> FileFingerprint | None:
        """경로의 지문을 계산한다. stat에 실패하면 None을 반환한다."""
        try:
            st = os.stat(path)
        except OSError:
            return None
        return cls(size=st.st_size, mtime_ns=st.st_mtime_ns)


@dataclass(frozen=True)
class LookupResult:
    """범용 조회 계약의 결과: 단일 값 + 속성 맵, 또는 빈 결과."""
    single_value: Any = None
    attributes:   Mapping[str, Any] = field(default_factory=dict, compare=False)
    found:        bool = False

    @classmethod
    def empty(cls) -> LookupResult:
        return cls()

    @classmethod
    def multi(cls, single_value: Any, attributes: Mapping[str, Any]) -> LookupResult:
        return cls(single_value=single_value, attributes=attributes, found=True)

    @property
    def is_empty(self) -> bool:
        return not self.found

    def to_dict(self) -> dict[str, Any]:
        return {
            "found":        self.found,
            "single_value": self.single_value,
            "attributes":   dict(self.attributes),
        }


@dataclass(frozen=True)
class ResourceState:
    """ReloadableResource 상태의 읽기 전용 스냅샷."""
    enabled:           bool
    health:            ResourceHealth
    path:              str
    fingerprint:       FileFingerprint | None = None
    last_error:        BaseException | None = field(default=None, compare=False)
    last_reload_epoch: float = 0.0
    metadata:          Mapping[str, Any] = field(default_factory=dict, compare=False)

    def to_dict(self) -> dict[str, Any]:
        """API 응답용 dict로 직렬화한다."""
        return {
            "enabled":           self.enabled,
            "health":            self.health.value,
            "path":              self.path,
            "fingerprint":       (
                {"size": self.fingerprint.size, "mtime_ns": self.fingerprint.mtime_ns}
                if self.fingerprint else None
            ),
            "last_error":        str(self.last_error) if self.last_error else None,
            "last_reload_epoch": self.last_reload_epoch,
            "metadata":          dict(self.metadata),
        }
