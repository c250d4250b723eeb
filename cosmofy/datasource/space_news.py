"""
Spaceflight News API: latest, featured and searched articles.

API Documentation: https://api.spaceflightnewsapi.net/v4/docs/
No API key required. Every query is cached on its own key for the query TTL.
"""

from cosmofy.datasource.base import BaseDataSource
from cosmofy.normalization import NewsNormalizer
from cosmofy.services.cache import CacheScope, make_key
from cosmofy.services.pipeline import AcquisitionPipeline, AcquisitionResult
from cosmofy.settings import IntegrationSettings, global_settings

NEWEST_FIRST = "-published_at"


class SpaceNewsSource(BaseDataSource):
    """
    Spaceflight news data source.

    Usage:
        news = SpaceNewsSource()

        latest = await news.latest(limit=10)
        found = await news.search("artemis")
    """

    BASE_URL = "https://api.spaceflightnewsapi.net/v4"
    SERVICE_ID = "news"

    def __init__(
        self,
        pipeline: AcquisitionPipeline | None = None,
        settings: IntegrationSettings | None = None,
    ):
        super().__init__(pipeline, settings)
        self.normalizer = NewsNormalizer()

    @property
    def service_id(self) -> str:
        return self.SERVICE_ID

    def default_settings(self) -> IntegrationSettings:
        return global_settings.news

    async def _articles(
        self,
        key: str,
        params: dict[str, str | int],
        request_id: str | None,
    ) -> AcquisitionResult:
        chain = [
            self.source(
                "spaceflight-news",
                f"{self.BASE_URL}/articles/",
                params={**params, "ordering": NEWEST_FIRST},
                headers={"Accept": "application/json"},
                parse=lambda raw: self.normalizer.normalize(
                    raw, {"source": "spaceflight-news"}
                ),
            )
        ]
        return await self.pipeline.acquire(
            self.spec(CacheScope.QUERY, key, chain), request_id
        )

    async def latest(
        self, limit: int = 10, offset: int = 0, request_id: str | None = None
    ) -> AcquisitionResult:
        return await self._articles(
            make_key("latest", limit, offset),
            {"limit": limit, "offset": offset},
            request_id,
        )

    async def featured(self, limit: int = 5, request_id: str | None = None) -> AcquisitionResult:
        return await self._articles(
            make_key("featured", limit),
            {"limit": limit, "featured": "true"},
            request_id,
        )

    async def search(
        self, query: str, limit: int = 10, request_id: str | None = None
    ) -> AcquisitionResult:
        """Articles matching query. The key is case-folded, the upstream query is not."""
        return await self._articles(
            make_key("search", query.strip().casefold(), limit),
            {"search": query.strip(), "limit": limit},
            request_id,
        )

    async def by_launch(
        self, launch_id: str, limit: int = 5, request_id: str | None = None
    ) -> AcquisitionResult:
        return await self._articles(
            make_key("launch", launch_id, limit),
            {"launches": launch_id, "limit": limit},
            request_id,
        )
