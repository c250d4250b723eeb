"""
Concrete normalizers, one per upstream payload shape.

Absent optional fields get the documented defaults below rather than failing
the item. Any value that is made up instead of read from upstream is named in
the record's ``synthesized_fields``.
"""

import random
from datetime import date, datetime, timezone
from typing import Any, Iterable

from dateutil import parser as date_parser

from cosmofy.normalization.base import RecordNormalizer, slugify
from cosmofy.normalization.models import (
    ApodImage,
    Asteroid,
    Constellation,
    ConstellationAstronomy,
    Coordinates,
    CrewMember,
    DeepSkyObject,
    IssPass,
    IssPosition,
    Mythology,
    NewsArticle,
    Place,
    Star,
    Visibility,
)
from cosmofy.services.errors import NormalizationError

# Crew defaults
DEFAULT_CREW_ROLE = "Flight Engineer"
DEFAULT_CREW_COUNTRY = "International"
DEFAULT_CREW_LAUNCH = date(2024, 1, 1)

# Station defaults
ISS_MEAN_ALTITUDE_KM = 408.0
ISS_MEAN_VELOCITY_KMH = 27600.0
DEFAULT_PASS_MAX_ELEVATION = 45.0
OVER_OCEAN = "Over Ocean"

KNOWN_CREW: dict[str, dict[str, Any]] = {
    "Oleg Kononenko": {"role": "Commander", "country": "Russia", "launch_date": date(2023, 9, 15)},
    "Nikolai Chub": {"role": "Flight Engineer", "country": "Russia", "launch_date": date(2023, 9, 15)},
    "Tracy C. Dyson": {"role": "Flight Engineer", "country": "United States", "launch_date": date(2024, 3, 23)},
    "Matthew Dominick": {"role": "Commander", "country": "United States", "launch_date": date(2024, 6, 5)},
    "Michael Barratt": {"role": "Flight Engineer", "country": "United States", "launch_date": date(2024, 6, 5)},
    "Jeanette Epps": {"role": "Flight Engineer", "country": "United States", "launch_date": date(2024, 6, 5)},
    "Alexander Grebenkin": {"role": "Flight Engineer", "country": "Russia", "launch_date": date(2024, 3, 23)},
    "Butch Wilmore": {"role": "Pilot", "country": "United States", "launch_date": date(2024, 6, 5)},
    "Suni Williams": {"role": "Commander", "country": "United States", "launch_date": date(2024, 6, 5)},
}

MONTHS = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]

SOUTHERN_CONSTELLATIONS = ["crux", "centaurus", "carina", "vela", "puppis", "hydra", "ara", "lupus"]
EQUATORIAL_CONSTELLATIONS = ["orion", "hydra", "eridanus", "pisces", "virgo", "ophiuchus"]


def parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        raise NormalizationError("missing date")
    return date_parser.parse(str(value)).date()


def parse_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def from_epoch(seconds: Any) -> datetime:
    try:
        return datetime.fromtimestamp(int(seconds), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError) as e:
        raise NormalizationError(f"bad epoch timestamp {seconds!r}") from e


class ApodNormalizer(RecordNormalizer[ApodImage]):
    """APOD payload: one object, or a list of them for a date range."""

    name = "apod"

    def normalize_item(self, item: dict[str, Any], source_meta: dict[str, Any]) -> ApodImage:
        day = parse_date(item.get("date"))
        if not item.get("title"):
            raise NormalizationError(f"APOD entry for {day} has no title")

        return ApodImage(
            id=day.isoformat(),
            source=source_meta.get("source", "nasa-apod"),
            date=day,
            title=item["title"],
            explanation=item.get("explanation") or "",
            url=item.get("url") or "",
            hdurl=item.get("hdurl"),
            media_type=item.get("media_type") or "image",
            copyright=(item.get("copyright") or "").strip() or None,
        )


class IssPositionNormalizer(RecordNormalizer[IssPosition]):
    """open-notify ``iss-now.json``."""

    name = "iss_position"

    def normalize_item(self, item: dict[str, Any], source_meta: dict[str, Any]) -> IssPosition:
        position = item.get("iss_position")
        if not position:
            raise NormalizationError("payload has no iss_position")

        latitude = parse_float(position.get("latitude"))
        longitude = parse_float(position.get("longitude"))
        if latitude is None or longitude is None:
            raise NormalizationError(f"unreadable station position {position!r}")

        timestamp = from_epoch(item.get("timestamp"))
        synthesized = []
        altitude = parse_float(item.get("altitude"))
        if altitude is None:
            altitude = ISS_MEAN_ALTITUDE_KM
            synthesized.append("altitude")
        velocity = parse_float(item.get("velocity"))
        if velocity is None:
            velocity = ISS_MEAN_VELOCITY_KMH
            synthesized.append("velocity")

        return IssPosition(
            id=f"iss-{int(timestamp.timestamp())}",
            source=source_meta.get("source", "open-notify"),
            synthesized_fields=synthesized,
            latitude=latitude,
            longitude=longitude,
            altitude=altitude,
            velocity=velocity,
            timestamp=timestamp,
        )


class IssPassNormalizer(RecordNormalizer[IssPass]):
    """
    open-notify ``iss-pass.json``; also accepts predicted passes.

    source_meta must carry the requested ``latitude`` and ``longitude``.
    """

    name = "iss_passes"

    def extract_items(self, raw: dict[str, Any]) -> Iterable[dict[str, Any]]:
        return raw["response"]

    def normalize_item(self, item: dict[str, Any], source_meta: dict[str, Any]) -> IssPass:
        latitude = source_meta["latitude"]
        longitude = source_meta["longitude"]
        risetime = from_epoch(item.get("risetime"))

        synthesized = []
        max_elevation = parse_float(item.get("max_elevation"))
        if max_elevation is None:
            max_elevation = DEFAULT_PASS_MAX_ELEVATION
            synthesized.append("max_elevation")
        if item.get("predicted"):
            synthesized.extend(["risetime", "duration"])

        return IssPass(
            id=f"{latitude:.4f}:{longitude:.4f}:{int(risetime.timestamp())}",
            source=source_meta.get("source", "open-notify"),
            synthesized_fields=synthesized,
            latitude=latitude,
            longitude=longitude,
            risetime=risetime,
            duration=int(item.get("duration") or 0),
            max_elevation=max_elevation,
            predicted=bool(item.get("predicted")),
        )


class CrewNormalizer(RecordNormalizer[CrewMember]):
    """
    open-notify ``astros.json``, station crew only.

    Role, country and launch date come from KNOWN_CREW; anyone not listed
    gets the generic defaults.
    """

    name = "crew"

    def __init__(self, craft: str = "ISS", today: date | None = None):
        self.craft = craft
        self._today = today

    def extract_items(self, raw: dict[str, Any]) -> Iterable[dict[str, Any]]:
        return [p for p in raw["people"] if p.get("craft") == self.craft]

    def normalize_item(self, item: dict[str, Any], source_meta: dict[str, Any]) -> CrewMember:
        name = (item.get("name") or "").strip()
        if not name:
            raise NormalizationError("crew entry has no name")

        details = KNOWN_CREW.get(name)
        synthesized = []
        if details is None:
            details = {
                "role": DEFAULT_CREW_ROLE,
                "country": DEFAULT_CREW_COUNTRY,
                "launch_date": DEFAULT_CREW_LAUNCH,
            }
            synthesized = ["role", "country", "launch_date"]

        today = self._today or date.today()
        return CrewMember(
            id=slugify(name),
            source=source_meta.get("source", "open-notify"),
            synthesized_fields=synthesized,
            name=name,
            craft=item["craft"],
            role=details["role"],
            country=details["country"],
            launch_date=details["launch_date"],
            days_in_space=(today - details["launch_date"]).days,
        )


class NeoNormalizer(RecordNormalizer[Asteroid]):
    """NeoWs ``feed``: objects grouped by date, first close approach used."""

    name = "neo"

    def extract_items(self, raw: dict[str, Any]) -> Iterable[dict[str, Any]]:
        items = []
        for _day, objects in sorted(raw["near_earth_objects"].items()):
            items.extend(objects)
        return items

    def normalize_item(self, item: dict[str, Any], source_meta: dict[str, Any]) -> Asteroid:
        approaches = item.get("close_approach_data") or []
        if not approaches:
            raise NormalizationError(f"{item.get('name')} has no close approach data")
        approach = approaches[0]

        reference_id = str(item.get("neo_reference_id") or item.get("id") or "")
        if not reference_id:
            raise NormalizationError(f"{item.get('name')} has no reference id")

        diameter = (item.get("estimated_diameter") or {}).get("kilometers") or {}
        approach_at = approach.get("close_approach_date_full") or approach.get(
            "close_approach_date"
        )

        return Asteroid(
            id=reference_id,
            source=source_meta.get("source", "nasa-neows"),
            name=item.get("name") or reference_id,
            neo_reference_id=reference_id,
            absolute_magnitude=parse_float(item.get("absolute_magnitude_h")),
            diameter_min_km=parse_float(diameter.get("estimated_diameter_min")),
            diameter_max_km=parse_float(diameter.get("estimated_diameter_max")),
            is_potentially_hazardous=bool(item.get("is_potentially_hazardous_asteroid")),
            close_approach_date=date_parser.parse(str(approach_at)),
            relative_velocity_kps=parse_float(
                (approach.get("relative_velocity") or {}).get("kilometers_per_second")
            ),
            miss_distance_au=parse_float(
                (approach.get("miss_distance") or {}).get("astronomical")
            ),
            orbiting_body=approach.get("orbiting_body"),
        )


class NewsNormalizer(RecordNormalizer[NewsArticle]):
    """Spaceflight News API ``articles`` page."""

    name = "news"

    def extract_items(self, raw: dict[str, Any]) -> Iterable[dict[str, Any]]:
        return raw.get("results") or []

    def normalize_item(self, item: dict[str, Any], source_meta: dict[str, Any]) -> NewsArticle:
        if item.get("id") is None or not item.get("title"):
            raise NormalizationError(f"article {item.get('id')!r} has no id or title")
        if not item.get("published_at"):
            raise NormalizationError(f"article {item['id']} has no publication date")

        updated_at = item.get("updated_at")
        return NewsArticle(
            id=str(item["id"]),
            source=source_meta.get("source", "spaceflight-news"),
            title=item["title"],
            url=item.get("url") or "",
            image_url=item.get("image_url") or "",
            news_site=item.get("news_site") or "",
            summary=item.get("summary") or "",
            published_at=date_parser.parse(str(item["published_at"])),
            updated_at=date_parser.parse(str(updated_at)) if updated_at else None,
            featured=bool(item.get("featured")),
            launch_ids=[str(ref["launch_id"]) for ref in item.get("launches") or []],
            event_ids=[str(ref["event_id"]) for ref in item.get("events") or []],
        )


def over_ocean(latitude: float, longitude: float, source: str = "default") -> Place:
    return Place(
        id=f"{latitude:.2f},{longitude:.2f}",
        source=source,
        synthesized_fields=["label"],
        latitude=latitude,
        longitude=longitude,
        label=OVER_OCEAN,
    )


class PlaceNormalizer(RecordNormalizer[Place]):
    """
    BigDataCloud ``reverse-geocode-client`` answer.

    Open water has no city and no country; that comes back as a labelled
    ``Over Ocean`` place rather than an error.
    """

    name = "place"

    def normalize_item(self, item: dict[str, Any], source_meta: dict[str, Any]) -> Place:
        latitude = parse_float(item.get("latitude"))
        longitude = parse_float(item.get("longitude"))
        if latitude is None or longitude is None:
            raise NormalizationError("reverse geocode answer has no coordinates")

        source = source_meta.get("source", "bigdatacloud")
        city = item.get("city") or item.get("locality") or None
        region = item.get("principalSubdivision") or None
        country = item.get("countryName") or None
        if not (city or country):
            return over_ocean(latitude, longitude, source)

        return Place(
            id=f"{latitude:.2f},{longitude:.2f}",
            source=source,
            latitude=latitude,
            longitude=longitude,
            city=city,
            region=region,
            country=country,
            label=", ".join(part for part in (city or region, country) if part),
        )


def is_missing(value: Any) -> bool:
    """Empty upstream field; zero is a real value."""
    return value is None or value == "" or value == []


def determine_hemisphere(slug: str) -> str:
    if any(name in slug for name in SOUTHERN_CONSTELLATIONS):
        return "southern"
    if any(name in slug for name in EQUATORIAL_CONSTELLATIONS):
        return "both"
    return "northern"


def determine_best_month(name: str) -> str:
    return MONTHS[sum(ord(c) for c in name) % 12]


def abbreviate(name: str) -> str:
    return name[:3].upper()


def default_stars(name: str) -> list[Star]:
    return [
        Star(name=f"Alpha {name}", magnitude=1.5, type="Main Sequence", distance=50),
        Star(name=f"Beta {name}", magnitude=2.0, type="Giant", distance=75),
        Star(name=f"Gamma {name}", magnitude=2.5, type="Supergiant", distance=100),
    ]


def default_deep_sky_objects(name: str) -> list[DeepSkyObject]:
    return [
        DeepSkyObject(
            name=f"{name} Nebula",
            type="Nebula",
            magnitude=7.5,
            description=f"Beautiful nebula in {name}",
        )
    ]


class ConstellationNormalizer(RecordNormalizer[Constellation]):
    """
    Build a constellation from fields extracted out of one detail page.

    Items are ``{"name": ..., "fields": {...}}`` where fields holds whatever
    the page yielded (latin_name, abbreviation, story, area, ...). Numeric
    placeholders are drawn from a generator seeded with the constellation id,
    so the same constellation always gets the same placeholder values.
    """

    name = "constellations"

    def normalize_item(self, item: dict[str, Any], source_meta: dict[str, Any]) -> Constellation:
        name = (item.get("name") or "").strip()
        slug = slugify(name)
        if not slug:
            raise NormalizationError(f"constellation name {name!r} yields no identifier")

        fields = item.get("fields") or {}
        rng = random.Random(slug)
        synthesized: list[str] = []

        def pick(key: str, fallback: Any) -> Any:
            value = fields.get(key)
            if is_missing(value):
                synthesized.append(key)
                return fallback() if callable(fallback) else fallback
            return value

        star_count = pick("star_count", lambda: rng.randint(15, 44))
        area = pick("area", lambda: float(rng.randint(200, 999)))
        if is_missing(fields.get("declination")) and not is_missing(fields.get("dec")):
            declination = fields["dec"]
        else:
            declination = pick("declination", lambda: float(rng.randint(-80, 79)))
        ra = pick("ra", lambda: float(rng.randint(0, 23)))
        dec = pick("dec", lambda: float(rng.randint(-80, 79)))

        return Constellation(
            id=slug,
            source=source_meta.get("source", ""),
            name=name,
            latin_name=pick("latin_name", name),
            abbreviation=pick("abbreviation", lambda: abbreviate(name)),
            mythology=Mythology(
                culture=pick("culture", "Ancient"),
                story=pick(
                    "story",
                    f"{name} is a constellation visible in the night sky with "
                    f"rich astronomical significance.",
                ),
                meaning=pick("meaning", name),
                characters=fields.get("characters") or [],
            ),
            astronomy=ConstellationAstronomy(
                brightest_star=pick("brightest_star", "Variable"),
                star_count=int(star_count),
                area=float(area),
                visibility=Visibility(
                    hemisphere=pick("hemisphere", lambda: determine_hemisphere(slug)),
                    best_month=pick("best_month", lambda: determine_best_month(name)),
                    declination=float(declination),
                ),
            ),
            coordinates=Coordinates(ra=float(ra), dec=float(dec)),
            stars=pick("stars", lambda: default_stars(name)),
            deep_sky_objects=pick(
                "deep_sky_objects", lambda: default_deep_sky_objects(name)
            ),
            image_url=fields.get("image_url") or "",
            star_map_url=fields.get("star_map_url") or "",
            synthesized_fields=synthesized,
        )
