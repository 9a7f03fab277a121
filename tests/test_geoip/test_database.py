"""Tests for GeoDatabase handle: lookups, not-found handling and deferred close."""

from __future__ import annotations

import ipaddress
from unittest.mock import MagicMock

import pytest

from geoenricher.geoip.database import GeoDatabase
from geoenricher.geoip.errors import DatabaseClosedError, QueryError, ReloadError
from geoenricher.geoip.models import CountryRecord, DatabaseType, GeoRecord


@pytest.fixture
def database(db_path, opener) -> GeoDatabase:
    db = opener(str(db_path))
    yield db
    db.close()


class TestLookups:
    def test_city_lookup(self, database):
        record = database.lookup_city("81.2.69.142")
        assert isinstance(record, GeoRecord)
        assert record.city_name == "London"
        assert record.city_geoname_id == 2643743
        assert record.country_iso_code == "GB"
        assert str(record.coordinates) == "51.5142,-0.0931"
        assert record.postal_code == "EC2V"
        assert record.time_zone == "Europe/London"
        assert [s.iso_code for s in record.subdivisions] == ["ENG"]
        assert record.traits == {"ip_address": "81.2.69.142"}

    def test_accepts_address_objects(self, database):
        record = database.lookup_city(ipaddress.ip_address("8.8.8.8"))
        assert record is not None
        assert record.country_iso_code == "US"

    def test_country_lookup(self, database):
        record = database.lookup_country("8.8.8.8")
        assert isinstance(record, CountryRecord)
        assert record.country_iso_code == "US"
        assert record.continent.code == "NA"

    def test_lookup_dispatches_by_type(self, database):
        assert isinstance(database.lookup("8.8.8.8", DatabaseType.CITY), GeoRecord)
        assert isinstance(database.lookup("8.8.8.8", DatabaseType.COUNTRY), CountryRecord)

    def test_missing_coordinates(self, database):
        record = database.lookup_city("5.5.5.5")
        assert record.coordinates is None
        assert record.country_iso_code == "DE"

    @pytest.mark.parametrize("ip", ["127.0.0.1", "192.168.23.42", "10.0.0.1"])
    def test_not_found_returns_none(self, database, ip):
        assert database.lookup_city(ip) is None
        assert database.lookup_country(ip) is None

    def test_reader_returning_none(self):
        reader = MagicMock()
        reader.city.return_value = None
        db = GeoDatabase(reader, "mock.mmdb")
        assert db.lookup_city("127.0.0.1") is None

    def test_reader_error_raises_query_error(self):
        reader = MagicMock()
        reader.city.side_effect = TypeError("The city method cannot be used with a country database")
        db = GeoDatabase(reader, "mock.mmdb")
        with pytest.raises(QueryError):
            db.lookup_city("8.8.8.8")

    def test_invalid_coordinates_are_dropped(self):
        reader = MagicMock()
        reader.city.return_value.location.latitude = 123.0
        reader.city.return_value.location.longitude = 10.0
        reader.city.return_value.subdivisions = []
        reader.city.return_value.traits.to_dict.return_value = {}
        db = GeoDatabase(reader, "mock.mmdb")
        assert db.lookup_city("8.8.8.8").coordinates is None

    def test_metadata(self, database):
        meta = database.metadata
        assert meta["database_type"] == "GeoLite2-City"
        assert meta["ip_version"] == 6


class TestLifecycle:
    def test_close_once(self):
        reader = MagicMock()
        db = GeoDatabase(reader, "mock.mmdb")
        db.close()
        db.close()
        db.retire()
        reader.close.assert_called_once()
        assert db.closed

    def test_closed_handle_rejects_queries(self, database):
        database.close()
        with pytest.raises(DatabaseClosedError):
            database.lookup_city("8.8.8.8")

    def test_retire_idle_closes_immediately(self):
        reader = MagicMock()
        db = GeoDatabase(reader, "mock.mmdb")
        db.retire()
        reader.close.assert_called_once()

    def test_retire_waits_for_in_flight_reader(self):
        reader = MagicMock()
        db = GeoDatabase(reader, "mock.mmdb")
        assert db.acquire()
        db.retire()
        reader.close.assert_not_called()
        assert not db.acquire()
        db.release()
        reader.close.assert_called_once()
        assert db.in_flight == 0


class TestOpen:
    def test_missing_file_raises_reload_error(self, tmp_path):
        with pytest.raises(ReloadError):
            GeoDatabase.open(tmp_path / "missing.mmdb")

    def test_corrupt_file_raises_reload_error(self, tmp_path):
        path = tmp_path / "corrupt.mmdb"
        path.write_bytes(b"this is not a maxmind database" * 10)
        with pytest.raises(ReloadError):
            GeoDatabase.open(path)
