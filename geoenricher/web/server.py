"""FastAPI 애플리케이션 팩토리."""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from geoenricher.geoip.models import ResourceHealth
from geoenricher.web.metrics import get_metrics_output
from geoenricher.web.routes.geoip import create_geoip_router

if TYPE_CHECKING:
    from geoenricher.geoip.adapter import GeoIpLookupAdapter
    from geoenricher.geoip.resolver import GeoIpResolverEngine
    from geoenricher.geoip.resource import ReloadableResource
    from geoenricher.services.refresh_service import RefreshService
    from geoenricher.utils.config import Config

logger = logging.getLogger(__name__)

# ResourceHealth → /health 응답 status
_HEALTH_STATUS = {
    ResourceHealth.HEALTHY:  "ok",
    ResourceHealth.DEGRADED: "degraded",
    ResourceHealth.DISABLED: "disabled",
}


def create_app(
    config: Config,
    resource: ReloadableResource,
    adapter: GeoIpLookupAdapter,
    engine: GeoIpResolverEngine,
    refresh_service: RefreshService | None = None,
) -> FastAPI:
    """FastAPI 앱을 생성하고 라우터, 미들웨어, 헬스/메트릭 엔드포인트를 등록한다."""
    app = FastAPI(
        title="GeoEnricher",
        docs_url="/docs" if config.get("web.docs", False) else None,
        redoc_url=None,
    )

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """요청/응답에 고유 X-Request-ID 헤더를 부여한다."""
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        response   = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    @app.get("/health")
    async def health():
        """데이터베이스 리소스 상태 기반 헬스체크."""
        state = resource.state()
        checks: dict[str, object] = {
            "geoip_database": state.health.value,
            "refresh_loop": (
                "not_configured" if refresh_service is None or refresh_service.interval <= 0
                else ("running" if refresh_service.running else "stopped")
            ),
        }
        if state.last_error is not None:
            checks["last_error"] = str(state.last_error)

        overall = _HEALTH_STATUS[state.health]
        status_code = 200 if state.health is ResourceHealth.HEALTHY else 503
        return JSONResponse({"status": overall, "checks": checks}, status_code=status_code)

    @app.get("/metrics")
    async def metrics_endpoint():
        """Prometheus 형식의 메트릭 데이터를 반환한다."""
        return Response(
            content=get_metrics_output(),
            media_type="text/plain; version=0.0.4; charset=utf-8",
        )

    app.include_router(create_geoip_router(resource, adapter, engine), prefix="/api")
    return app
