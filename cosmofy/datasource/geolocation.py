"""
Reverse geocoding: which city, if any, lies under a pair of coordinates.

API Documentation: https://www.bigdatacloud.com/free-api/free-reverse-geocode-to-city-api
No API key required. Coordinates are rounded to a tenth of a degree before
caching, so a moving station keeps hitting the same few keys.
"""

from cosmofy.datasource.base import BaseDataSource
from cosmofy.normalization import Place, PlaceNormalizer
from cosmofy.normalization.normalizers import OVER_OCEAN, over_ocean
from cosmofy.services.cache import CacheScope, make_key
from cosmofy.services.pipeline import AcquisitionPipeline, AcquisitionResult
from cosmofy.settings import IntegrationSettings, global_settings


class GeolocationSource(BaseDataSource):
    """
    BigDataCloud reverse geocoding.

    Usage:
        geo = GeolocationSource()

        label = await geo.label(19.08, 72.88)   # "Mumbai, India"
        label = await geo.label(0.0, -30.0)     # "Over Ocean"
    """

    BASE_URL = "https://api.bigdatacloud.net/data"
    SERVICE_ID = "geolocation"

    def __init__(
        self,
        pipeline: AcquisitionPipeline | None = None,
        settings: IntegrationSettings | None = None,
    ):
        super().__init__(pipeline, settings)
        self.normalizer = PlaceNormalizer()

    @property
    def service_id(self) -> str:
        return self.SERVICE_ID

    def default_settings(self) -> IntegrationSettings:
        return global_settings.geolocation

    async def place(
        self, latitude: float, longitude: float, request_id: str | None = None
    ) -> AcquisitionResult:
        """The place under the coordinates; an unreachable upstream reads as open water."""
        latitude, longitude = round(latitude, 1), round(longitude, 1)
        chain = [
            self.source(
                "bigdatacloud",
                f"{self.BASE_URL}/reverse-geocode-client",
                params={
                    "latitude": latitude,
                    "longitude": longitude,
                    "localityLanguage": "en",
                },
                parse=lambda raw: self.normalizer.normalize(
                    raw, {"source": "bigdatacloud"}
                ),
            )
        ]
        spec = self.spec(
            CacheScope.QUERY,
            make_key("place", latitude, longitude),
            chain,
            default=lambda: [over_ocean(latitude, longitude)],
        )
        return await self.pipeline.acquire(spec, request_id)

    async def label(
        self, latitude: float, longitude: float, request_id: str | None = None
    ) -> str:
        result = await self.place(latitude, longitude, request_id)
        place: Place | None = result.first
        return place.label if place is not None else OVER_OCEAN
