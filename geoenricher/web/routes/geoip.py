"""GeoIP 운영 REST API.

데이터베이스 상태 조회, 단일 주소 조회, 레코드 보강, 수동 갱신을 제공한다.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from geoenricher.geoip.adapter import NAME as ADAPTER_NAME

if TYPE_CHECKING:
    from geoenricher.geoip.adapter import GeoIpLookupAdapter
    from geoenricher.geoip.resolver import GeoIpResolverEngine
    from geoenricher.geoip.resource import ReloadableResource

logger = logging.getLogger(__name__)


class EnrichRequest(BaseModel):
    """보강할 레코드 (필드 이름 → 값)."""
    record: dict[str, Any]


class BatchLookupRequest(BaseModel):
    """여러 주소 일괄 조회 요청."""
    addresses: list[str]


def create_geoip_router(
    resource: ReloadableResource,
    adapter: GeoIpLookupAdapter,
    engine: GeoIpResolverEngine,
) -> APIRouter:
    """GeoIP API 라우터 팩토리.

    Args:
        resource: 리로드 가능한 데이터베이스 리소스 (상태/갱신).
        adapter: 조회 어댑터 (단일 주소 조회).
        engine: 해석 엔진 (레코드 보강).

    Returns:
        설정된 APIRouter 인스턴스.
    """
    router = APIRouter(tags=["geoip"])

    @router.get("/geoip/status")
    async def geoip_status():
        """데이터베이스 리소스 상태 반환."""
        return {
            "adapter":       ADAPTER_NAME,
            "database_type": adapter.database_type.value,
            "state":         resource.state().to_dict(),
            "cache":         adapter.cache_info(),
        }

    @router.get("/geoip/lookup/{key}")
    async def geoip_lookup(key: str):
        """단일 IP 주소 조회. 파싱 불가 주소도 빈 결과로 응답한다."""
        result = adapter.get(key)
        return {"key": key, **result.to_dict()}

    @router.post("/geoip/lookup")
    async def geoip_lookup_batch(body: BatchLookupRequest):
        """여러 주소를 한 번에 조회. 결과는 요청 순서를 따른다."""
        return {
            "results": [{"key": key, **adapter.get(key).to_dict()} for key in body.addresses],
        }

    @router.post("/geoip/enrich")
    async def geoip_enrich(body: EnrichRequest):
        """레코드를 보강하여 반환."""
        record = dict(body.record)
        stop = engine.filter(record)
        return {"record": record, "stop": stop}

    @router.post("/geoip/refresh")
    async def geoip_refresh():
        """파일 변경을 즉시 확인하고 필요하면 다시 로드."""
        try:
            reloaded = await asyncio.to_thread(resource.refresh)
        except Exception as exc:
            logger.exception("Manual GeoIP refresh failed")
            return JSONResponse({"error": f"Refresh failed: {exc}"}, status_code=500)
        return {"reloaded": reloaded, "state": resource.state().to_dict()}

    return router
