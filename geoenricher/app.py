"""메인 오케스트레이터: GeoIP 리소스, 해석 엔진, 갱신 루프, 웹 서버 통합 관리."""

from __future__ import annotations

import asyncio
import json
import logging
import signal
from typing import IO

from geoenricher.geoip.adapter import GeoIpLookupAdapter
from geoenricher.geoip.models import DatabaseType
from geoenricher.geoip.resolver import GeoIpResolverEngine
from geoenricher.geoip.resource import Opener, ReloadableResource
from geoenricher.geoip.settings import GeoIpSettings
from geoenricher.services.refresh_service import RefreshService
from geoenricher.utils.config import Config
from geoenricher.utils.logging_setup import setup_logging
from geoenricher.web.server import create_app

logger = logging.getLogger("geoenricher.app")


class GeoEnricher:
    """최상위 애플리케이션 오케스트레이터.

    컴포넌트 연결, 시작 순서 제어, 정상 종료만 담당한다.
    """

    def __init__(self, config: Config, opener: Opener | None = None) -> None:
        self.config   = config
        self.settings = GeoIpSettings.from_config(config)

        try:
            database_type = self.settings.db_type
        except ValueError:
            logger.warning(
                "Unknown database type %r, falling back to city", self.settings.database_type,
            )
            database_type = DatabaseType.CITY

        # 핵심 컴포넌트
        self.resource = ReloadableResource(
            self.settings.path,
            refresh_interval=self.settings.refresh_interval,
            enabled=self.settings.enabled,
            opener=opener,
        )
        self.adapter = GeoIpLookupAdapter(
            self.resource,
            database_type=database_type,
            cache_size=self.settings.cache_size if isinstance(self.settings.cache_size, int) else 0,
        )
        self.engine = GeoIpResolverEngine(
            self.resource,
            database_type=database_type,
            enabled=self.settings.enabled,
        )
        self.refresh_service = RefreshService(self.resource, self.resource.refresh_interval)

    def start_resource(self) -> None:
        """설정 경고를 기록하고 데이터베이스를 연다."""
        for warning in self.settings.validate():
            logger.warning("Config validation: %s", warning)
        health = self.resource.start()
        logger.info("GeoIP resource started: %s (%s)", self.resource.path, health.value)

    async def run(self) -> None:
        """메인 진입점: 모든 컴포넌트를 시작하고 종료 시그널을 기다린다."""
        loop = asyncio.get_running_loop()

        setup_logging(self.config)
        logger.info("GeoEnricher starting...")

        # ── GeoIP 데이터베이스 ────────────────────────────────────────────
        self.start_resource()
        await self.refresh_service.start()

        # ── 웹 서버 ───────────────────────────────────────────────────────
        app = create_app(
            config=self.config,
            resource=self.resource,
            adapter=self.adapter,
            engine=self.engine,
            refresh_service=self.refresh_service,
        )

        import uvicorn
        web_host = self.config.get("web.host", "127.0.0.1")
        web_port = self.config.get("web.port", 38686)
        uvi_config = uvicorn.Config(
            app, host=web_host, port=web_port,
            log_level="warning", loop="none",
        )
        server = uvicorn.Server(uvi_config)

        # ── 시그널 처리 ─────────────────────────────────────────────────
        stop_event = asyncio.Event()

        def _signal_handler() -> None:
            logger.info("Shutdown signal received")
            stop_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _signal_handler)

        server_task = asyncio.create_task(server.serve())
        logger.info("GeoEnricher ready - API: http://%s:%d", web_host, web_port)

        await stop_event.wait()

        # ── 종료 ──────────────────────────────────────────────────────────
        logger.info("Shutting down...")
        server.should_exit = True
        await server_task
        await self.refresh_service.stop()
        await asyncio.to_thread(self.resource.stop)
        logger.info("GeoEnricher stopped")

    def enrich_stream(self, source: IO[str], sink: IO[str]) -> int:
        """JSON Lines 입력의 각 레코드를 보강하여 출력한다. 처리한 레코드 수를 반환한다.

        JSON 객체가 아닌 줄은 경고를 남기고 건너뛴다.
        """
        count = 0
        for line_no, line in enumerate(source, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError:
                logger.warning("Skipping invalid JSON on line %d", line_no)
                continue
            if not isinstance(record, dict):
                logger.warning("Skipping non-object JSON on line %d", line_no)
                continue
            self.engine.filter(record)
            sink.write(json.dumps(record, ensure_ascii=False) + "\n")
            count += 1
        return count
