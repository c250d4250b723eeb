"""
Inbound entry points for the router layer.

Each method takes loosely-typed request parameters (query-string values are
accepted as strings), validates them and returns an AcquisitionResult. Invalid
input yields an empty result; nothing here raises except task cancellation.
"""

import asyncio
from datetime import date
from typing import Any, Awaitable

from loguru import logger

from cosmofy.datasource import (
    ConstellationSource,
    GeolocationSource,
    IssSource,
    NasaSource,
    PanchangSource,
    SpaceNewsSource,
)
from cosmofy.datasource.nasa import parse_apod_date
from cosmofy.datasource.panchang import DEFAULT_LATITUDE, DEFAULT_LONGITUDE
from cosmofy.services.pipeline import AcquisitionPipeline, AcquisitionResult, get_pipeline


class InvalidParameters(ValueError):
    """Request parameters failed validation."""

    pass


def parse_coordinates(lat: Any, lon: Any) -> tuple[float, float]:
    try:
        latitude = float(lat)
        longitude = float(lon)
    except (TypeError, ValueError) as e:
        raise InvalidParameters(f"Invalid coordinates: {lat!r}, {lon!r}") from e

    if not (-90 <= latitude <= 90 and -180 <= longitude <= 180):
        raise InvalidParameters(f"Coordinates out of range: {latitude}, {longitude}")
    return latitude, longitude


def parse_limit(value: Any, default: int) -> int:
    """Query-string page size; empty means default, anything else must be a positive int."""
    if value is None or value == "":
        return default
    return max(1, int(value))


class Gateway:
    """
    Typed facade over every integration.

    Usage:
        gateway = Gateway()

        result = await gateway.iss_passes(lat="51.5", lon="-0.12")
        return result.to_dict()
    """

    def __init__(self, pipeline: AcquisitionPipeline | None = None):
        self.pipeline = pipeline or get_pipeline()
        self.nasa = NasaSource(self.pipeline)
        self.geolocation = GeolocationSource(self.pipeline)
        self.iss = IssSource(self.pipeline, geolocation=self.geolocation)
        self.constellations = ConstellationSource(self.pipeline)
        self.panchang = PanchangSource(self.pipeline)
        self.space_news = SpaceNewsSource(self.pipeline)

    async def _guard(self, name: str, call: Awaitable[AcquisitionResult]) -> AcquisitionResult:
        try:
            return await call
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[{name}] unexpected failure: {e}")
        return AcquisitionResult()

    def _rejected(self, name: str, message: str) -> AcquisitionResult:
        logger.warning(f"[{name}] {message}")
        return AcquisitionResult()

    async def apod_gallery(self) -> AcquisitionResult:
        return await self._guard("apod_gallery", self.nasa.apod_gallery())

    async def apod(self, day: Any = None) -> AcquisitionResult:
        try:
            parsed = parse_apod_date(day) if day else None
        except ValueError:
            return self._rejected("apod", f"Invalid date: {day!r}")
        return await self._guard("apod", self.nasa.apod(parsed))

    async def upcoming_asteroids(self, limit: Any = 10) -> AcquisitionResult:
        try:
            count = max(1, int(limit))
        except (TypeError, ValueError):
            return self._rejected("asteroids", f"Invalid limit: {limit!r}")
        return await self._guard("asteroids", self.nasa.upcoming_asteroids(count))

    async def iss_position(self) -> AcquisitionResult:
        return await self._guard("iss_position", self.iss.position())

    async def iss_passes(self, lat: Any, lon: Any) -> AcquisitionResult:
        try:
            latitude, longitude = parse_coordinates(lat, lon)
        except InvalidParameters as e:
            return self._rejected("iss_passes", str(e))
        return await self._guard("iss_passes", self.iss.passes(latitude, longitude))

    async def iss_crew(self) -> AcquisitionResult:
        return await self._guard("iss_crew", self.iss.crew())

    async def constellations_catalog(self) -> AcquisitionResult:
        return await self._guard("constellations", self.constellations.catalog())

    async def constellation(self, name: Any) -> AcquisitionResult:
        if not name or not str(name).strip():
            return self._rejected("constellation", "Constellation name is required")
        return await self._guard(
            "constellation", self.constellations.detail(str(name).strip())
        )

    async def sky_conditions(self, lat: Any, lon: Any) -> AcquisitionResult:
        try:
            latitude, longitude = parse_coordinates(lat, lon)
        except InvalidParameters as e:
            return self._rejected("sky_conditions", str(e))
        return await self._guard(
            "sky_conditions", self.constellations.sky_conditions(latitude, longitude)
        )

    async def panchang_day(
        self, lat: Any = None, lon: Any = None, day: date | None = None
    ) -> AcquisitionResult:
        """Missing or unreadable coordinates fall back to Mumbai."""
        try:
            latitude, longitude = parse_coordinates(lat, lon)
        except InvalidParameters:
            latitude, longitude = DEFAULT_LATITUDE, DEFAULT_LONGITUDE
        return await self._guard(
            "panchang", self.panchang.day(latitude, longitude, day)
        )

    async def news(self, limit: Any = 10, offset: Any = 0) -> AcquisitionResult:
        try:
            count, skip = parse_limit(limit, 10), max(0, int(offset or 0))
        except (TypeError, ValueError):
            return self._rejected("news", f"Invalid paging: {limit!r}, {offset!r}")
        return await self._guard("news", self.space_news.latest(count, skip))

    async def featured_news(self, limit: Any = 5) -> AcquisitionResult:
        try:
            count = parse_limit(limit, 5)
        except (TypeError, ValueError):
            return self._rejected("featured_news", f"Invalid limit: {limit!r}")
        return await self._guard("featured_news", self.space_news.featured(count))

    async def search_news(self, query: Any, limit: Any = 10) -> AcquisitionResult:
        if not query or not str(query).strip():
            return self._rejected("search_news", "Search query is required")
        try:
            count = parse_limit(limit, 10)
        except (TypeError, ValueError):
            return self._rejected("search_news", f"Invalid limit: {limit!r}")
        return await self._guard(
            "search_news", self.space_news.search(str(query), count)
        )

    async def launch_news(self, launch_id: Any, limit: Any = 5) -> AcquisitionResult:
        if not launch_id or not str(launch_id).strip():
            return self._rejected("launch_news", "Launch id is required")
        try:
            count = parse_limit(limit, 5)
        except (TypeError, ValueError):
            return self._rejected("launch_news", f"Invalid limit: {limit!r}")
        return await self._guard(
            "launch_news", self.space_news.by_launch(str(launch_id).strip(), count)
        )

    async def location(self, lat: Any = None, lon: Any = None) -> AcquisitionResult:
        """Place under the coordinates; missing coordinates fall back to Mumbai."""
        if lat is None and lon is None:
            latitude, longitude = DEFAULT_LATITUDE, DEFAULT_LONGITUDE
        else:
            try:
                latitude, longitude = parse_coordinates(lat, lon)
            except InvalidParameters as e:
                return self._rejected("location", str(e))
        return await self._guard(
            "location", self.geolocation.place(latitude, longitude)
        )
