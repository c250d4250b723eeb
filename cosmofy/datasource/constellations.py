"""
Constellation catalog assembled from public astronomy pages.

Sources, in order:
- go-astronomy.com: index page plus one detail page per constellation
- NOIRLab education pages: same shape, fewer fields

Detail pages are fetched in batches of 10 with a short pause between batches.
Each detail is cached per entity, so a catalog refresh only re-fetches pages
whose entity entry has expired.
"""

import math
from datetime import datetime
from typing import Any, Callable

from loguru import logger

from cosmofy.datasource import constellation_html
from cosmofy.datasource.base import BaseDataSource
from cosmofy.normalization import (
    Constellation,
    ConstellationNormalizer,
    SkyConditions,
    slugify,
)
from cosmofy.normalization.normalizers import MONTHS
from cosmofy.services.cache import CacheScope, make_key
from cosmofy.services.fetcher import FetchRequest
from cosmofy.services.pipeline import AcquisitionPipeline, AcquisitionResult
from cosmofy.services.resolver import SourceDescriptor, process_in_batches
from cosmofy.settings import IntegrationSettings, global_settings

CONSTELLATION_COLLECTION = "constellations"

MAX_CONSTELLATIONS = 88
BATCH_SIZE = 10
BATCH_PAUSE = 0.3

MOON_PHASES = [
    "New Moon",
    "Waxing Crescent",
    "First Quarter",
    "Waxing Gibbous",
    "Full Moon",
    "Waning Gibbous",
    "Last Quarter",
    "Waning Crescent",
]

Link = dict[str, str]


def is_visible(constellation: Constellation, latitude: float, month: int, hour: int) -> bool:
    """Rough naked-eye visibility for a latitude, month and local hour."""
    visibility = constellation.astronomy.visibility

    if visibility.hemisphere == "northern" and latitude < -30:
        return False
    if visibility.hemisphere == "southern" and latitude > 30:
        return False

    # Never rises above the horizon
    if 90 - abs(latitude - visibility.declination) < 0:
        return False

    best = MONTHS.index(visibility.best_month) + 1 if visibility.best_month in MONTHS else 6
    month_diff = min(abs(month - best), 12 - abs(month - best))
    if month_diff > 3:
        return False

    return hour < 6 or hour > 18


def best_viewing_time(latitude: float, month: int) -> str:
    if latitude > 50:
        return "22:00 - 03:00" if 5 < month < 9 else "20:00 - 05:00"
    if latitude > 0:
        return "21:00 - 02:00"
    if latitude > -30:
        return "20:00 - 01:00"
    return "19:00 - 24:00" if 5 < month < 9 else "21:00 - 03:00"


def viewing_conditions(moon_illumination: int, hour: int) -> str:
    if moon_illumination < 25:
        conditions = ["Excellent dark skies"]
    elif moon_illumination < 75:
        conditions = ["Good viewing conditions"]
    else:
        conditions = ["Bright moon affects visibility"]

    if hour >= 22 or hour <= 3:
        conditions.append("Optimal viewing hours")
    return ", ".join(conditions)


def compute_sky_conditions(
    catalog: list[Constellation],
    latitude: float,
    longitude: float,
    now: datetime,
) -> SkyConditions:
    """What is up tonight, closest declination match first."""
    visible = [c for c in catalog if is_visible(c, latitude, now.month, now.hour)]
    visible.sort(key=lambda c: abs(c.astronomy.visibility.declination - latitude))

    day_of_year = now.timetuple().tm_yday
    lunar_cycle = (day_of_year % 29.5) / 29.5
    moon_phase = MOON_PHASES[int(lunar_cycle * 8) % 8]
    moon_illumination = abs(int(50 + 50 * math.cos(lunar_cycle * 2 * math.pi)))

    return SkyConditions(
        id=make_key("sky", latitude, longitude, now.strftime("%Y%m%d%H")),
        source="computed",
        latitude=latitude,
        longitude=longitude,
        visible_constellations=[c.id for c in visible],
        moon_phase=moon_phase,
        moon_illumination=moon_illumination,
        best_viewing_time=best_viewing_time(latitude, now.month),
        conditions=viewing_conditions(moon_illumination, now.hour),
    )


class ConstellationSource(BaseDataSource):
    """
    Scraped constellation catalog.

    Usage:
        constellations = ConstellationSource()

        catalog = await constellations.catalog()
        orion = await constellations.detail("Orion")
        tonight = await constellations.sky_conditions(19.076, 72.8777)
    """

    GO_ASTRONOMY_INDEX = "https://www.go-astronomy.com/constellations.htm"
    NOIRLAB_INDEX = constellation_html.NOIRLAB_BASE
    SERVICE_ID = "constellations"

    def __init__(
        self,
        pipeline: AcquisitionPipeline | None = None,
        settings: IntegrationSettings | None = None,
        batch_pause: float = BATCH_PAUSE,
    ):
        super().__init__(pipeline, settings)
        self.normalizer = ConstellationNormalizer()
        self.batch_pause = batch_pause

    @property
    def service_id(self) -> str:
        return self.SERVICE_ID

    def default_settings(self) -> IntegrationSettings:
        return global_settings.constellations

    def _page(self, url: str) -> FetchRequest:
        return FetchRequest(
            url=url,
            response_type="text",
            timeout=self.settings.request_timeout,
            service_id=self.service_id,
        )

    async def _fetch_detail(
        self,
        link: Link,
        source: str,
        extract: Callable[[str], dict[str, Any]],
    ) -> Constellation | None:
        """One detail page, through the per-entity cache."""
        slug = slugify(link["name"])
        key = f"{self.service_id}:detail:{slug}"

        entry = await self.pipeline.cache.get(CacheScope.ENTITY, key)
        if entry is not None:
            return entry.value[0]

        html = await self.pipeline.fetcher.fetch(self._page(link["url"]), policy=self.policy)
        records = self.normalizer.normalize(
            {"name": link["name"], "fields": extract(html)}, {"source": source}
        )
        if not records:
            return None

        await self.pipeline.cache.put(
            CacheScope.ENTITY,
            key,
            records,
            ttl=self.settings.entity_ttl,
            fallback_ttl=self.settings.fallback_ttl,
        )
        return records[0]

    def _scrape(
        self,
        source: str,
        extract_links: Callable[[str], list[Link]],
        extract_detail: Callable[[str], dict[str, Any]],
    ) -> Callable[[str], Any]:
        async def parse(index_html: str) -> list[Constellation]:
            links = extract_links(index_html)
            logger.info(f"Found {len(links)} constellations from {source}")
            return await process_in_batches(
                links,
                lambda link: self._fetch_detail(link, source, extract_detail),
                batch_size=BATCH_SIZE,
                pause=self.batch_pause,
                max_items=MAX_CONSTELLATIONS,
                label=f"{source} batch",
            )

        return parse

    def catalog_chain(self) -> list[SourceDescriptor]:
        return [
            self.source(
                "go-astronomy",
                self.GO_ASTRONOMY_INDEX,
                response_type="text",
                priority=100,
                parse=self._scrape(
                    "go-astronomy",
                    constellation_html.extract_go_astronomy_links,
                    constellation_html.parse_go_astronomy_detail,
                ),
            ),
            self.source(
                "noirlab",
                self.NOIRLAB_INDEX,
                response_type="text",
                priority=50,
                parse=self._scrape(
                    "noirlab",
                    constellation_html.extract_noirlab_links,
                    constellation_html.parse_noirlab_detail,
                ),
            ),
        ]

    async def catalog(self, request_id: str | None = None) -> AcquisitionResult:
        """The full catalog (up to 88 constellations)."""
        spec = self.spec(
            CacheScope.COLLECTION,
            "catalog",
            self.catalog_chain(),
            staleness_threshold=self.settings.staleness_threshold,
            collection=CONSTELLATION_COLLECTION,
            record_type=Constellation,
        )
        return await self.pipeline.acquire(spec, request_id)

    async def detail(self, name: str, request_id: str | None = None) -> AcquisitionResult:
        """One constellation by name or identifier."""
        slug = slugify(name)

        async def from_catalog() -> list[Constellation]:
            item = await self.pipeline.store.get_one(
                CONSTELLATION_COLLECTION, lambda i: i.get("id") == slug
            )
            return [Constellation.model_validate(item)] if item else []

        async def from_page() -> list[Constellation]:
            link = {
                "name": name,
                "url": f"{constellation_html.GO_ASTRONOMY_BASE}constellations.php?Name={name}",
            }
            record = await self._fetch_detail(
                link, "go-astronomy", constellation_html.parse_go_astronomy_detail
            )
            return [record] if record else []

        chain = [
            SourceDescriptor.computed("catalog", from_catalog, priority=100),
            SourceDescriptor.computed("go-astronomy-detail", from_page, priority=50),
        ]
        spec = self.spec(
            CacheScope.ENTITY,
            f"lookup:{slug}",
            chain,
            ttl=self.settings.entity_ttl,
        )
        return await self.pipeline.acquire(spec, request_id)

    async def sky_conditions(
        self,
        latitude: float,
        longitude: float,
        request_id: str | None = None,
    ) -> AcquisitionResult:
        """Visible constellations and moon phase for a location, right now."""

        async def compute() -> list[SkyConditions]:
            catalog = await self.catalog(request_id=request_id)
            now = self.pipeline.cache.now()
            return [compute_sky_conditions(catalog.data, latitude, longitude, now)]

        spec = self.spec(
            CacheScope.QUERY,
            make_key("sky", latitude, longitude),
            [SourceDescriptor.computed("sky-model", compute)],
        )
        return await self.pipeline.acquire(spec, request_id)
