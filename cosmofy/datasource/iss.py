"""
International Space Station: live position, visible passes, crew.

API Documentation: http://open-notify.org/Open-Notify-API/
No API key required. The pass endpoint is frequently offline, so passes fall
back to an orbital-period prediction.
"""

import random
from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Any

from cosmofy.datasource.base import BaseDataSource
from cosmofy.datasource.geolocation import GeolocationSource
from cosmofy.normalization import (
    CrewMember,
    CrewNormalizer,
    IssPassNormalizer,
    IssPositionNormalizer,
)
from cosmofy.normalization.normalizers import KNOWN_CREW
from cosmofy.services.cache import CacheScope, make_key
from cosmofy.services.pipeline import AcquisitionPipeline, AcquisitionResult
from cosmofy.services.resolver import SourceDescriptor
from cosmofy.settings import IntegrationSettings, global_settings

CREW_COLLECTION = "iss_crew"

ORBITAL_PERIOD_MINUTES = 93
DEFAULT_PASSES = 5


def predict_passes(
    latitude: float,
    longitude: float,
    now: datetime,
    count: int = DEFAULT_PASSES,
) -> dict[str, Any]:
    """
    Pass predictions from the station's orbital period.

    One pass per orbit, each offset by up to 30 minutes and lasting 5 to 10
    minutes. Offsets are seeded by location and hour, so repeated calls within
    the same hour agree with each other.
    """
    rng = random.Random(f"{latitude:.4f}:{longitude:.4f}:{now:%Y%m%d%H}")
    start = int(now.timestamp())
    passes = []
    for i in range(count):
        offset = i * ORBITAL_PERIOD_MINUTES * 60 + int(rng.random() * 30 * 60)
        passes.append(
            {
                "risetime": start + offset,
                "duration": 300 + int(rng.random() * 300),
                "predicted": True,
            }
        )

    return {
        "message": "success",
        "request": {
            "altitude": 100,
            "datetime": start,
            "latitude": latitude,
            "longitude": longitude,
            "passes": count,
        },
        "response": passes,
    }


class IssSource(BaseDataSource):
    """
    open-notify station data source.

    Usage:
        iss = IssSource()

        position = await iss.position()
        passes = await iss.passes(51.5074, -0.1278)
        crew = await iss.crew()
    """

    BASE_URL = "http://api.open-notify.org"
    SERVICE_ID = "iss"

    def __init__(
        self,
        pipeline: AcquisitionPipeline | None = None,
        settings: IntegrationSettings | None = None,
        today: date | None = None,
        geolocation: GeolocationSource | None = None,
    ):
        super().__init__(pipeline, settings)
        self.geolocation = geolocation
        self.position_normalizer = IssPositionNormalizer()
        self.pass_normalizer = IssPassNormalizer()
        self.crew_normalizer = CrewNormalizer(today=today)

    @property
    def service_id(self) -> str:
        return self.SERVICE_ID

    def default_settings(self) -> IntegrationSettings:
        return global_settings.iss

    async def position(self, request_id: str | None = None) -> AcquisitionResult:
        """
        Current position; anything younger than the query TTL is reused.

        With a geolocation source attached, each position is labelled with
        the place below it ("Over Ocean" when there is none or the lookup
        fails).
        """
        chain = [
            self.source(
                "open-notify-position",
                f"{self.BASE_URL}/iss-now.json",
                parse=lambda raw: self.position_normalizer.normalize(
                    raw, {"source": "open-notify"}
                ),
            )
        ]
        spec = self.spec(CacheScope.QUERY, "position", chain)
        result = await self.pipeline.acquire(spec, request_id)
        if self.geolocation is None or result.is_empty:
            return result

        located = [
            position.model_copy(
                update={
                    "location": await self.geolocation.label(
                        position.latitude, position.longitude, request_id
                    )
                }
            )
            for position in result.data
        ]
        return replace(result, data=located)

    async def passes(
        self,
        latitude: float,
        longitude: float,
        count: int = DEFAULT_PASSES,
        request_id: str | None = None,
    ) -> AcquisitionResult:
        """Upcoming passes over a location, predicted if open-notify is down."""
        meta = {"latitude": latitude, "longitude": longitude}

        def predicted() -> list[Any]:
            raw = predict_passes(latitude, longitude, self.pipeline.cache.now(), count)
            return self.pass_normalizer.normalize(raw, {**meta, "source": "prediction"})

        chain = [
            self.source(
                "open-notify-passes",
                f"{self.BASE_URL}/iss-pass.json",
                params={"lat": latitude, "lon": longitude, "n": count},
                parse=lambda raw: self.pass_normalizer.normalize(
                    raw, {**meta, "source": "open-notify"}
                ),
            ),
            SourceDescriptor.computed("orbital-prediction", predicted),
        ]
        spec = self.spec(
            CacheScope.QUERY, make_key("passes", latitude, longitude, count), chain
        )
        return await self.pipeline.acquire(spec, request_id)

    def known_crew(self) -> list[CrewMember]:
        """Crew from the local table, for when open-notify has nothing."""
        people = [{"name": name, "craft": "ISS"} for name in KNOWN_CREW]
        return self.crew_normalizer.normalize(
            {"people": people}, {"source": "known-crew"}
        )

    async def crew(self, request_id: str | None = None) -> AcquisitionResult:
        """People currently aboard the station."""
        chain = [
            self.source(
                "open-notify-astros",
                f"{self.BASE_URL}/astros.json",
                parse=lambda raw: self.crew_normalizer.normalize(
                    raw, {"source": "open-notify"}
                ),
            )
        ]
        spec = self.spec(
            CacheScope.COLLECTION,
            "crew",
            chain,
            collection=CREW_COLLECTION,
            record_type=CrewMember,
            default=self.known_crew,
        )
        return await self.pipeline.acquire(spec, request_id)
