"""geoip 설정 섹션 파싱 및 검증."""

from __future__ import annotations

import os
from dataclasses import dataclass

from geoenricher.geoip.models import DatabaseType
from geoenricher.utils.config import Config

# 갱신 주기 단위 → 초
_UNIT_SECONDS: dict[str, float] = {
    "milliseconds": 0.001,
    "seconds":      1.0,
    "minutes":      60.0,
    "hours":        3600.0,
    "days":         86400.0,
}

DEFAULT_PATH = "/etc/geoenricher/GeoLite2-City.mmdb"


@dataclass(frozen=True)
class GeoIpSettings:
    """GeoIP 어댑터 설정. 기본값은 1분 주기로 도시 데이터베이스를 확인한다."""
    enabled:             bool = True
    path:                str = DEFAULT_PATH
    database_type:       str = DatabaseType.CITY.value
    check_interval:      int = 1
    check_interval_unit: str | None = "minutes"
    cache_size:          int = 4096

    @classmethod
    def from_config(cls, config: Config) -> GeoIpSettings:
        """Config의 geoip 섹션에서 설정을 만든다. 없는 키는 기본값을 사용한다."""
        section = config.section("geoip")
        unit = section.get("check_interval_unit", cls.check_interval_unit)
        return cls(
            enabled=bool(section.get("enabled", cls.enabled)),
            path=str(section.get("path", cls.path)),
            database_type=str(section.get("database_type", cls.database_type)),
            check_interval=section.get("check_interval", cls.check_interval),
            check_interval_unit=str(unit).lower() if unit else None,
            cache_size=section.get("cache_size", cls.cache_size),
        )

    @property
    def db_type(self) -> DatabaseType:
        """database_type 문자열을 DatabaseType으로 변환한다. 잘못된 값이면 ValueError."""
        return DatabaseType.from_value(self.database_type)

    @property
    def refresh_interval(self) -> float:
        """갱신 주기(초). 주기가 0이거나 단위가 없으면 0(갱신 안 함)."""
        if not self.check_interval_unit or not isinstance(self.check_interval, int):
            return 0.0
        factor = _UNIT_SECONDS.get(self.check_interval_unit)
        if factor is None or self.check_interval <= 0:
            return 0.0
        return self.check_interval * factor

    def validate(self) -> list[str]:
        """설정 값에 대한 경고 메시지 목록을 반환한다."""
        warnings: list[str] = []

        if not self.path:
            warnings.append("geoip.path: must not be empty")
        elif not os.path.exists(self.path):
            warnings.append(f"geoip.path: the file does not exist ({self.path})")
        elif not os.access(self.path, os.R_OK):
            warnings.append(f"geoip.path: the file cannot be read ({self.path})")

        try:
            self.db_type
        except ValueError:
            warnings.append(
                f"geoip.database_type: expected one of "
                f"{[t.value for t in DatabaseType]}, got {self.database_type!r}"
            )

        if not isinstance(self.check_interval, int) or isinstance(self.check_interval, bool):
            warnings.append(
                f"geoip.check_interval: expected int, got "
                f"{type(self.check_interval).__name__} (value={self.check_interval!r})"
            )
        elif self.check_interval < 0:
            warnings.append(
                f"geoip.check_interval: value {self.check_interval!r} is below minimum 0"
            )

        if self.check_interval_unit and self.check_interval_unit not in _UNIT_SECONDS:
            warnings.append(
                f"geoip.check_interval_unit: expected one of {sorted(_UNIT_SECONDS)}, "
                f"got {self.check_interval_unit!r}"
            )

        if not isinstance(self.cache_size, int) or self.cache_size < 0:
            warnings.append(
                f"geoip.cache_size: value {self.cache_size!r} must be a non-negative int"
            )
        return warnings
