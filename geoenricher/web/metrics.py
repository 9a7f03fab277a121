"""GeoEnricher용 Prometheus 메트릭 정의."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, generate_latest

# --- 조회 ---
geoip_resolve_duration = Histogram(
    "geoenricher_geoip_resolve_seconds",
    "GeoIP database query duration",
)
geoip_lookups_total = Counter(
    "geoenricher_geoip_lookups_total",
    "GeoIP lookups by result",
    ["result"],
)

# --- 데이터베이스 리로드 ---
geoip_reloads_total = Counter(
    "geoenricher_geoip_reloads_total",
    "GeoIP database reload attempts",
    ["outcome"],
)
geoip_cache_purges_total = Counter(
    "geoenricher_geoip_cache_purges_total",
    "Cache purge signals emitted after successful reloads",
)
geoip_database_loaded = Gauge(
    "geoenricher_geoip_database_loaded",
    "1 if a GeoIP database is currently active",
)
geoip_database_last_reload = Gauge(
    "geoenricher_geoip_database_last_reload_epoch",
    "Last successful GeoIP database load timestamp (epoch seconds)",
)


def get_metrics_output() -> bytes:
    """Prometheus 텍스트 노출 형식을 생성한다."""
    return generate_latest()
