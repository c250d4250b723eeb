"""
Normalized record shapes stored and served by the acquisition layer.
"""

from datetime import date as date_type
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class NormalizedRecord(BaseModel):
    """Base for every stored record. ``id`` is stable across acquisitions."""

    id: str
    source: str = ""
    synthesized_fields: list[str] = Field(default_factory=list)


class ApodImage(NormalizedRecord):
    """One Astronomy Picture of the Day entry, keyed by its date."""

    date: date_type
    title: str
    explanation: str = ""
    url: str = ""
    hdurl: str | None = None
    media_type: str = "image"
    copyright: str | None = None


class IssPosition(NormalizedRecord):
    """Station position at one instant."""

    latitude: float
    longitude: float
    altitude: float
    velocity: float
    timestamp: datetime
    location: str | None = None


class IssPass(NormalizedRecord):
    """One visible pass over a location."""

    latitude: float
    longitude: float
    risetime: datetime
    duration: int
    max_elevation: float | None = None
    predicted: bool = False


class CrewMember(NormalizedRecord):
    """One person currently aboard a spacecraft."""

    name: str
    craft: str
    role: str
    country: str
    launch_date: date_type | None = None
    days_in_space: int | None = None


class Place(NormalizedRecord):
    """What lies under a pair of coordinates."""

    latitude: float
    longitude: float
    city: str | None = None
    region: str | None = None
    country: str | None = None
    label: str


class NewsArticle(NormalizedRecord):
    """One spaceflight news article, keyed by the upstream article id."""

    title: str
    url: str
    image_url: str = ""
    news_site: str = ""
    summary: str = ""
    published_at: datetime
    updated_at: datetime | None = None
    featured: bool = False
    launch_ids: list[str] = Field(default_factory=list)
    event_ids: list[str] = Field(default_factory=list)


class Asteroid(NormalizedRecord):
    """One near-Earth object close approach, keyed by its reference id."""

    name: str
    neo_reference_id: str
    absolute_magnitude: float | None = None
    diameter_min_km: float | None = None
    diameter_max_km: float | None = None
    is_potentially_hazardous: bool = False
    close_approach_date: datetime
    relative_velocity_kps: float | None = None
    miss_distance_au: float | None = None
    orbiting_body: str | None = None


class Mythology(BaseModel):
    culture: str
    story: str
    meaning: str
    characters: list[str] = Field(default_factory=list)


class Visibility(BaseModel):
    hemisphere: Literal["northern", "southern", "both"]
    best_month: str
    declination: float


class ConstellationAstronomy(BaseModel):
    brightest_star: str
    star_count: int
    area: float
    visibility: Visibility


class Coordinates(BaseModel):
    ra: float
    dec: float


class Star(BaseModel):
    name: str
    magnitude: float
    type: str
    distance: float


class DeepSkyObject(BaseModel):
    name: str
    type: str
    magnitude: float
    description: str


class Constellation(NormalizedRecord):
    """One constellation catalog entry, keyed by its slugified name."""

    name: str
    latin_name: str
    abbreviation: str
    mythology: Mythology
    astronomy: ConstellationAstronomy
    coordinates: Coordinates
    stars: list[Star] = Field(default_factory=list)
    deep_sky_objects: list[DeepSkyObject] = Field(default_factory=list)
    image_url: str = ""
    star_map_url: str = ""


class SkyConditions(NormalizedRecord):
    """What can be seen from a location tonight."""

    latitude: float
    longitude: float
    visible_constellations: list[str] = Field(default_factory=list)
    moon_phase: str
    moon_illumination: int
    best_viewing_time: str
    conditions: str


class PanchangElement(BaseModel):
    name: str
    detail: str = ""
    deity: str = ""
    end_time: str = ""


class Rashi(BaseModel):
    name: str
    element: str
    lord: str


class PanchangDay(NormalizedRecord):
    """Hindu calendar computation for one day and location."""

    date: date_type
    latitude: float
    longitude: float
    tithi: PanchangElement
    nakshatra: PanchangElement
    yoga: PanchangElement
    karana: PanchangElement
    rashi: Rashi
    sunrise: str
    sunset: str
    moonrise: str
    moonset: str
    muhurat: dict[str, str]
    festivals: list[str] = Field(default_factory=list)
    vrats_and_occasions: list[str] = Field(default_factory=list)
