"""
NASA open APIs: Astronomy Picture of the Day and near-Earth objects.

API Documentation: https://api.nasa.gov
DEMO_KEY allows 30 requests/hour per IP; set NASA_API_KEY for more.
"""

from dataclasses import replace
from datetime import date, datetime, time, timedelta
from typing import Any

from cosmofy.datasource.base import BaseDataSource
from cosmofy.normalization import (
    ApodImage,
    ApodNormalizer,
    Asteroid,
    DuplicatePolicy,
    NeoNormalizer,
)
from cosmofy.services.cache import CacheScope
from cosmofy.services.pipeline import AcquisitionPipeline, AcquisitionResult
from cosmofy.services.resolver import SourceDescriptor
from cosmofy.settings import IntegrationSettings, global_settings


APOD_COLLECTION = "apod_images"
ASTEROID_COLLECTION = "asteroids"

GALLERY_DAYS = 60
NEO_WINDOW_DAYS = 7


def newest_image_time(images: list[ApodImage]) -> datetime | None:
    """When the newest image in a gallery was published."""
    if not images:
        return None
    return datetime.combine(max(image.date for image in images), time())


def newest_first(images: list[ApodImage]) -> list[ApodImage]:
    return sorted(images, key=lambda image: image.date, reverse=True)


def soonest_first(asteroids: list[Asteroid]) -> list[Asteroid]:
    return sorted(asteroids, key=lambda a: a.close_approach_date)


class NasaSource(BaseDataSource):
    """
    NASA APOD and NeoWs data source.

    Usage:
        nasa = NasaSource()

        gallery = await nasa.apod_gallery()
        today = await nasa.apod()
        upcoming = await nasa.upcoming_asteroids(limit=10)
    """

    BASE_URL = "https://api.nasa.gov"
    SERVICE_ID = "nasa"

    def __init__(
        self,
        pipeline: AcquisitionPipeline | None = None,
        settings: IntegrationSettings | None = None,
        api_key: str | None = None,
    ):
        super().__init__(pipeline, settings)
        self.api_key = api_key or global_settings.nasa_api_key
        self.apod_normalizer = ApodNormalizer()
        self.neo_normalizer = NeoNormalizer()

    @property
    def service_id(self) -> str:
        return self.SERVICE_ID

    def default_settings(self) -> IntegrationSettings:
        return global_settings.nasa

    def today(self) -> date:
        return self.pipeline.cache.now().date()

    async def apod_gallery(self, request_id: str | None = None) -> AcquisitionResult:
        """
        Every stored APOD image, newest first.

        Served from cache whenever possible; once the newest image is older
        than the staleness threshold the last 60 days are re-fetched in the
        background and merged in by date.
        """
        end = self.today()
        start = end - timedelta(days=GALLERY_DAYS)

        chain = [
            self.source(
                "nasa-apod-range",
                f"{self.BASE_URL}/planetary/apod",
                params={
                    "api_key": self.api_key,
                    "start_date": start.isoformat(),
                    "end_date": end.isoformat(),
                },
                parse=lambda raw: self.apod_normalizer.normalize(
                    raw, {"source": "nasa-apod"}
                ),
            )
        ]
        spec = self.spec(
            CacheScope.COLLECTION,
            "apod:gallery",
            chain,
            staleness_threshold=self.settings.staleness_threshold,
            collection=APOD_COLLECTION,
            record_type=ApodImage,
            merge=True,
            freshness_of=newest_image_time,
            finalize=newest_first,
        )
        return await self.pipeline.acquire(spec, request_id)

    async def apod(
        self, day: date | None = None, request_id: str | None = None
    ) -> AcquisitionResult:
        """APOD for one date (today by default); stored images are reused."""
        day = day or self.today()
        params = {"api_key": self.api_key, "date": day.isoformat()}

        async def stored() -> list[ApodImage]:
            item = await self.pipeline.store.get_one(
                APOD_COLLECTION, lambda i: i.get("id") == day.isoformat()
            )
            return [ApodImage.model_validate(item)] if item else []

        chain = [
            SourceDescriptor.computed("apod-store", stored, priority=100),
            self.source(
                "nasa-apod",
                f"{self.BASE_URL}/planetary/apod",
                params=params,
                parse=lambda raw: self.apod_normalizer.normalize(
                    raw, {"source": "nasa-apod"}
                ),
            ),
        ]
        spec = self.spec(
            CacheScope.ENTITY,
            f"apod:{day.isoformat()}",
            chain,
            collection=APOD_COLLECTION,
            record_type=ApodImage,
        )
        return await self.pipeline.acquire(spec, request_id)

    async def asteroids(
        self, start: date | None = None, request_id: str | None = None
    ) -> AcquisitionResult:
        """Near-Earth object close approaches for the 7 days from start."""
        start = start or self.today()
        end = start + timedelta(days=NEO_WINDOW_DAYS)

        chain = [
            self.source(
                "nasa-neows",
                f"{self.BASE_URL}/neo/rest/v1/feed",
                params={
                    "api_key": self.api_key,
                    "start_date": start.isoformat(),
                    "end_date": end.isoformat(),
                },
                parse=lambda raw: self.neo_normalizer.normalize(
                    raw, {"source": "nasa-neows"}
                ),
            )
        ]
        spec = self.spec(
            CacheScope.QUERY,
            f"neo:{start.isoformat()}:{end.isoformat()}",
            chain,
            collection=ASTEROID_COLLECTION,
            record_type=Asteroid,
            # Approach parameters are revised upstream; newest wins
            duplicate_policy=DuplicatePolicy.REPLACE,
            finalize=soonest_first,
        )
        return await self.pipeline.acquire(spec, request_id)

    async def upcoming_asteroids(
        self, limit: int = 10, request_id: str | None = None
    ) -> AcquisitionResult:
        """Asteroids whose close approach is still ahead, soonest first."""
        result = await self.asteroids(request_id=request_id)
        now = self.pipeline.cache.now()
        upcoming = [a for a in result.data if _naive(a.close_approach_date) > now]
        return replace(result, data=upcoming[:limit])


def _naive(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def parse_apod_date(value: Any) -> date:
    """Accept date objects or ISO strings for APOD lookups."""
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))
