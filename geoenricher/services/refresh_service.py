"""RefreshService - GeoIP 데이터베이스 주기적 갱신 루프."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from geoenricher.geoip.resource import ReloadableResource

logger = logging.getLogger("geoenricher.services.refresh_service")


class RefreshService:
    """interval초마다 ReloadableResource.refresh()를 호출한다.

    interval이 0 이하이면 루프를 시작하지 않는다 (시작 시 한 번만 로드).
    """

    def __init__(self, resource: ReloadableResource, interval: float) -> None:
        """갱신 서비스를 초기화한다. 리소스와 갱신 주기(초)를 주입받는다."""
        self.resource = resource
        self.interval = interval
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """갱신 루프 비동기 태스크를 시작한다."""
        if self.interval <= 0:
            logger.info("GeoIP database refresh disabled (interval=0)")
            return
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info("GeoIP database refresh every %.1fs", self.interval)

    async def stop(self) -> None:
        """갱신 루프를 취소하고 종료를 기다린다.

        스레드에서 진행 중인 refresh()는 중단되지 않으며, 이후의 resource.stop()은
        리소스의 쓰기 잠금에서 그 refresh()가 끝나기를 기다린다.
        """
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _loop(self) -> None:
        """주기적으로 파일 변경을 확인하고 데이터베이스를 다시 로드한다."""
        while True:
            await asyncio.sleep(self.interval)
            try:
                reloaded = await asyncio.to_thread(self.resource.refresh)
                if reloaded:
                    logger.info("GeoIP database refreshed from %s", self.resource.path)
            except Exception:
                logger.exception("GeoIP database refresh failed")
