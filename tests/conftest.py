"""Shared fixtures for GeoEnricher tests.

실제 MaxMind 바이너리 파일 대신 JSON 파일을 읽는 가짜 Reader를 opener로 주입한다.
가짜 Reader는 실제 geoip2 Reader처럼 없는 주소에 AddressNotFoundError를 발생시킨다.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable

import geoip2.errors
import pytest

from geoenricher.geoip.database import GeoDatabase
from geoenricher.geoip.errors import ReloadError
from geoenricher.geoip.resource import ReloadableResource

CITY_RECORDS: dict[str, dict[str, Any]] = {
    "8.8.8.8": {
        "continent": "NA",
        "country": "US",
        "registered_country": "US",
        "latitude": 37.751,
        "longitude": -97.822,
        "accuracy_radius": 1000,
    },
    "81.2.69.142": {
        "city": "London",
        "city_geoname_id": 2643743,
        "continent": "EU",
        "country": "GB",
        "registered_country": "GB",
        "latitude": 51.5142,
        "longitude": -0.0931,
        "time_zone": "Europe/London",
        "postal": "EC2V",
        "subdivisions": [["ENG", "England"]],
    },
    "2a02:ff40::1": {
        "city": "Stockholm",
        "continent": "EU",
        "country": "SE",
        "latitude": 59.3294,
        "longitude": 18.0686,
    },
    "5.5.5.5": {
        "continent": "EU",
        "country": "DE",
        "registered_country": "DE",
    },
    "1.2.3.4": {
        "continent": "AS",
        "country": "JP",
        "registered_country": "AU",
        "represented_country": "US",
        "latitude": 35.69,
        "longitude": 139.69,
    },
}


class FakeReader:
    """JSON 데이터 기반 geoip2 Reader 대역."""

    def __init__(self, records: dict[str, dict[str, Any]], metadata: dict[str, Any]) -> None:
        self.records   = records
        self._metadata = metadata
        self.closed    = False
        self.calls: list[tuple[str, str]] = []

    def city(self, ip: Any) -> SimpleNamespace:
        self.calls.append(("city", str(ip)))
        return self._response(str(ip))

    def country(self, ip: Any) -> SimpleNamespace:
        self.calls.append(("country", str(ip)))
        return self._response(str(ip))

    def metadata(self) -> SimpleNamespace:
        return SimpleNamespace(**self._metadata)

    def close(self) -> None:
        self.closed = True

    def _response(self, ip: str) -> SimpleNamespace:
        if self.closed:
            raise ValueError("Attempt to read from a closed MaxMind DB.")
        entry = self.records.get(ip)
        if entry is None:
            raise geoip2.errors.AddressNotFoundError(
                f"The address {ip} is not in the database."
            )

        def _country(code: str | None) -> SimpleNamespace:
            return SimpleNamespace(iso_code=code, name=None, geoname_id=None)

        return SimpleNamespace(
            city=SimpleNamespace(name=entry.get("city"), geoname_id=entry.get("city_geoname_id")),
            continent=SimpleNamespace(code=entry.get("continent"), name=None, geoname_id=None),
            country=_country(entry.get("country")),
            registered_country=_country(entry.get("registered_country")),
            represented_country=_country(entry.get("represented_country")),
            location=SimpleNamespace(
                latitude=entry.get("latitude"),
                longitude=entry.get("longitude"),
                accuracy_radius=entry.get("accuracy_radius"),
                time_zone=entry.get("time_zone"),
            ),
            postal=SimpleNamespace(code=entry.get("postal")),
            subdivisions=[
                SimpleNamespace(iso_code=code, name=name)
                for code, name in entry.get("subdivisions", [])
            ],
            traits=SimpleNamespace(to_dict=lambda: {"ip_address": ip, "network": None}),
        )


def json_opener(path: str) -> GeoDatabase:
    """JSON 파일을 GeoDatabase로 연다. 파싱에 실패하면 ReloadError."""
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as exc:
        raise ReloadError(f"Unable to open database file {path}: {exc}") from exc
    reader = FakeReader(data["records"], data.get("metadata", {}))
    return GeoDatabase(reader, path)


@pytest.fixture
def write_database() -> Callable[..., Path]:
    """가짜 데이터베이스 파일을 쓰는 팩토리. 매 호출마다 수정 시각이 달라진다."""
    state = {"mtime_ns": 1_700_000_000_000_000_000}

    def _write(
        path: Path,
        records: dict[str, dict[str, Any]] | None = None,
        database_type: str = "GeoLite2-City",
        raw: str | None = None,
    ) -> Path:
        if raw is None:
            raw = json.dumps({
                "metadata": {
                    "database_type": database_type,
                    "build_epoch": state["mtime_ns"] // 1_000_000_000,
                    "ip_version": 6,
                },
                "records": CITY_RECORDS if records is None else records,
            })
        path.write_text(raw, encoding="utf-8")
        state["mtime_ns"] += 1_000_000_000
        os.utime(path, ns=(state["mtime_ns"], state["mtime_ns"]))
        return path

    return _write


@pytest.fixture
def db_path(tmp_path: Path, write_database) -> Path:
    """기본 도시 레코드가 담긴 데이터베이스 파일."""
    return write_database(tmp_path / "GeoLite2-City.json")


@pytest.fixture
def opener() -> Callable[[str], GeoDatabase]:
    return json_opener


@pytest.fixture
def resource(db_path: Path, opener) -> ReloadableResource:
    """시작된 ReloadableResource. 테스트 후 정리한다."""
    res = ReloadableResource(db_path, refresh_interval=60, opener=opener)
    res.start()
    yield res
    res.stop()
