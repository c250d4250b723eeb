"""
Maintenance scheduler.

Periodic housekeeping on top of APScheduler:
- sweeps cache entries past their fallback window
- re-acquires the constellation catalog so the first visitor never pays for
  an 88-page scrape
"""

from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from cosmofy.datasource.constellations import ConstellationSource
from cosmofy.services.pipeline import AcquisitionPipeline, get_pipeline
from cosmofy.settings import Settings, global_settings
from cosmofy.utils import logged_job


class MaintenanceScheduler:
    """
    Cache sweep and catalog pre-warm jobs.

    Usage:
        scheduler = MaintenanceScheduler()
        scheduler.start()
        ...
        scheduler.stop()
    """

    def __init__(
        self,
        pipeline: AcquisitionPipeline | None = None,
        settings: Settings | None = None,
    ):
        self.scheduler = AsyncIOScheduler()
        self.settings = settings or global_settings
        self._pipeline = pipeline
        self._constellations: ConstellationSource | None = None
        self._is_running = False

    @property
    def pipeline(self) -> AcquisitionPipeline:
        if self._pipeline is None:
            self._pipeline = get_pipeline()
        return self._pipeline

    def _ensure_constellations(self) -> ConstellationSource:
        if self._constellations is None:
            self._constellations = ConstellationSource(self.pipeline)
        return self._constellations

    @logged_job
    async def sweep_cache_job(self) -> int:
        """Drop cache entries nobody can use any more."""
        return await self.pipeline.cache.sweep()

    @logged_job
    async def prewarm_constellations_job(self) -> int:
        """Acquire the catalog so it is cached before anyone asks."""
        result = await self._ensure_constellations().catalog(request_id="prewarm")
        logger.info(
            f"Constellation pre-warm: {len(result.data)} records (origin={result.origin})"
        )
        return len(result.data)

    def start(self) -> None:
        if self._is_running:
            logger.warning("Maintenance scheduler is already running")
            return

        sweep_minutes = self.settings.cache_sweep_interval_minutes
        prewarm_hours = self.settings.constellation_prewarm_hours

        self.scheduler.add_job(
            self.sweep_cache_job,
            trigger="interval",
            minutes=sweep_minutes,
            id="cache_sweep",
            name="Cache Sweep",
            replace_existing=True,
        )
        self.scheduler.add_job(
            self.prewarm_constellations_job,
            trigger="interval",
            hours=prewarm_hours,
            id="constellation_prewarm",
            name="Constellation Catalog Pre-warm",
            replace_existing=True,
        )

        self.scheduler.start()
        self._is_running = True

        logger.info(
            f"Maintenance scheduler started: sweep every {sweep_minutes} minutes, "
            f"pre-warm every {prewarm_hours} hours"
        )

    def stop(self) -> None:
        if not self._is_running:
            logger.warning("Maintenance scheduler is not running")
            return

        self.scheduler.shutdown(wait=False)
        self._is_running = False
        logger.info("Maintenance scheduler stopped")

    def is_running(self) -> bool:
        return self._is_running

    def get_jobs(self) -> list[dict[str, Any]]:
        return [
            {
                "id": job.id,
                "name": job.name,
                "next_run": str(getattr(job, "next_run_time", None)),
            }
            for job in self.scheduler.get_jobs()
        ]


# 全局调度器实例
maintenance_scheduler = MaintenanceScheduler()
