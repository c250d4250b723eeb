from datetime import date

import httpx
import pytest

from conftest import fast_settings

from cosmofy.datasource.geolocation import GeolocationSource
from cosmofy.datasource.iss import IssSource, predict_passes
from cosmofy.datasource.nasa import APOD_COLLECTION, NasaSource
from cosmofy.datasource.panchang import PanchangSource, compute_panchang
from cosmofy.datasource.space_news import SpaceNewsSource

APOD_TODAY = {
    "date": "2025-03-01",
    "title": "Saturn at Opposition",
    "explanation": "Rings wide open.",
    "url": "https://apod.nasa.gov/apod/image/saturn.jpg",
    "media_type": "image",
}

APOD_RANGE = [
    {"date": "2025-02-27", "title": "The Horsehead Nebula"},
    APOD_TODAY,
    {"date": "2025-02-28", "title": "Aurora over Tromso"},
]


def neo_object(ref_id, approach):
    return {
        "neo_reference_id": ref_id,
        "name": f"({ref_id})",
        "is_potentially_hazardous_asteroid": ref_id == "3",
        "close_approach_data": [
            {
                "close_approach_date_full": approach,
                "relative_velocity": {"kilometers_per_second": "10.0"},
                "miss_distance": {"astronomical": "0.05"},
                "orbiting_body": "Earth",
            }
        ],
    }


NEO_FEED = {
    "near_earth_objects": {
        "2025-03-01": [neo_object("1", "2025-Mar-01 08:00"), neo_object("2", "2025-Mar-01 23:30")],
        "2025-03-03": [neo_object("3", "2025-Mar-03 04:15")],
    }
}

ASTROS = {
    "message": "success",
    "number": 3,
    "people": [
        {"name": "Suni Williams", "craft": "ISS"},
        {"name": "Butch Wilmore", "craft": "ISS"},
        {"name": "Li Guangsu", "craft": "Tiangong"},
    ],
}


def router(routes):
    """Handler answering by URL path; unknown paths get a 503."""
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        route = routes.get(request.url.path)
        if route is None:
            return httpx.Response(503, text="unavailable")
        if callable(route):
            return route(request)
        return httpx.Response(200, json=route)

    handler.seen = seen
    return handler


# NASA


@pytest.mark.asyncio
async def test_apod_fetches_then_serves_cache(make_pipeline):
    handler = router({"/planetary/apod": APOD_TODAY})
    pipeline = make_pipeline(handler)
    nasa = NasaSource(pipeline, fast_settings(), api_key="test-key")

    first = await nasa.apod(date(2025, 3, 1))
    second = await nasa.apod(date(2025, 3, 1))

    assert first.origin == "source"
    assert first.source == "nasa-apod"
    assert first.first.title == "Saturn at Opposition"
    assert second.origin == "cache"
    assert len(handler.seen) == 1
    assert handler.seen[0].url.params["api_key"] == "test-key"
    assert handler.seen[0].url.params["date"] == "2025-03-01"


@pytest.mark.asyncio
async def test_apod_reuses_stored_gallery_image(make_pipeline):
    handler = router({"/planetary/apod": APOD_RANGE})
    pipeline = make_pipeline(handler)
    nasa = NasaSource(pipeline, fast_settings(), api_key="test-key")

    gallery = await nasa.apod_gallery()
    single = await nasa.apod(date(2025, 2, 28))

    assert [i.id for i in gallery.data] == ["2025-03-01", "2025-02-28", "2025-02-27"]
    assert single.source == "apod-store"
    assert single.first.title == "Aurora over Tromso"
    assert len(handler.seen) == 1
    assert len(await pipeline.store.get(APOD_COLLECTION)) == 3


@pytest.mark.asyncio
async def test_apod_unavailable_is_empty(make_pipeline, sleeper):
    nasa = NasaSource(make_pipeline(), fast_settings(max_retries=2, base_backoff=1.0))

    result = await nasa.apod(date(2025, 3, 1))

    assert result.origin == "empty"
    assert result.data == []
    assert sleeper.calls == [1.0]


@pytest.mark.asyncio
async def test_upcoming_asteroids_filters_past_approaches(make_pipeline):
    # Pipeline clock reads 2025-03-01 21:00
    pipeline = make_pipeline(router({"/neo/rest/v1/feed": NEO_FEED}))
    nasa = NasaSource(pipeline, fast_settings())

    result = await nasa.upcoming_asteroids(limit=10)

    assert [a.id for a in result.data] == ["2", "3"]
    assert result.data[1].is_potentially_hazardous


@pytest.mark.asyncio
async def test_upcoming_asteroids_respects_limit(make_pipeline):
    pipeline = make_pipeline(router({"/neo/rest/v1/feed": NEO_FEED}))
    nasa = NasaSource(pipeline, fast_settings())

    result = await nasa.upcoming_asteroids(limit=1)

    assert [a.id for a in result.data] == ["2"]


# ISS


@pytest.mark.asyncio
async def test_iss_position(make_pipeline):
    payload = {
        "message": "success",
        "timestamp": 1740862800,
        "iss_position": {"latitude": "-12.5", "longitude": "101.25"},
    }
    iss = IssSource(make_pipeline(router({"/iss-now.json": payload})), fast_settings())

    result = await iss.position()

    assert result.first.latitude == -12.5
    assert result.first.longitude == 101.25


@pytest.mark.asyncio
async def test_iss_position_labelled_with_place_below(make_pipeline):
    payload = {
        "timestamp": 1740862800,
        "iss_position": {"latitude": "48.86", "longitude": "2.35"},
    }
    place = {
        "latitude": 48.9,
        "longitude": 2.4,
        "city": "Paris",
        "principalSubdivision": "Ile-de-France",
        "countryName": "France",
    }
    pipeline = make_pipeline(
        router({"/iss-now.json": payload, "/data/reverse-geocode-client": place})
    )
    geo = GeolocationSource(pipeline, fast_settings())
    iss = IssSource(pipeline, fast_settings(), geolocation=geo)

    result = await iss.position()

    assert result.first.location == "Paris, France"
    assert result.first.latitude == 48.86


@pytest.mark.asyncio
async def test_iss_position_over_ocean_when_geocoder_down(make_pipeline):
    payload = {
        "timestamp": 1740862800,
        "iss_position": {"latitude": "-12.5", "longitude": "101.25"},
    }
    pipeline = make_pipeline(router({"/iss-now.json": payload}))
    iss = IssSource(
        pipeline, fast_settings(), geolocation=GeolocationSource(pipeline, fast_settings())
    )

    result = await iss.position()

    assert result.origin == "source"
    assert result.first.location == "Over Ocean"


@pytest.mark.asyncio
async def test_open_water_reads_as_over_ocean(make_pipeline):
    water = {"latitude": 0.0, "longitude": -30.0, "city": "", "locality": "", "countryName": ""}
    handler = router({"/data/reverse-geocode-client": water})
    geo = GeolocationSource(make_pipeline(handler), fast_settings())

    place = (await geo.place(0.04, -30.01)).first

    assert place.label == "Over Ocean"
    assert place.synthesized_fields == ["label"]
    assert await geo.label(0.01, -29.98) == "Over Ocean"
    # Both lookups round to the same tenth of a degree
    assert len(handler.seen) == 1


@pytest.mark.asyncio
async def test_iss_passes_from_upstream(make_pipeline):
    payload = {"response": [{"risetime": 1740862800, "duration": 540}]}
    iss = IssSource(make_pipeline(router({"/iss-pass.json": payload})), fast_settings())

    result = await iss.passes(51.5, -0.12)

    assert result.source == "open-notify-passes"
    assert not result.first.predicted
    assert result.first.duration == 540


@pytest.mark.asyncio
async def test_iss_passes_predicted_when_upstream_down(make_pipeline):
    iss = IssSource(make_pipeline(), fast_settings())

    result = await iss.passes(51.5, -0.12)

    assert result.origin == "source"
    assert result.source == "orbital-prediction"
    assert len(result.data) == 5
    assert all(p.predicted for p in result.data)
    assert all("risetime" in p.synthesized_fields for p in result.data)


def test_predicted_passes_are_one_orbit_apart(clock):
    raw = predict_passes(19.076, 72.8777, clock(), count=3)
    risetimes = [p["risetime"] for p in raw["response"]]

    assert raw == predict_passes(19.076, 72.8777, clock(), count=3)
    for earlier, later in zip(risetimes, risetimes[1:]):
        assert 93 * 60 - 30 * 60 < later - earlier < 93 * 60 + 30 * 60
    assert all(300 <= p["duration"] < 600 for p in raw["response"])


@pytest.mark.asyncio
async def test_crew_from_upstream(make_pipeline):
    iss = IssSource(
        make_pipeline(router({"/astros.json": ASTROS})),
        fast_settings(),
        today=date(2025, 3, 1),
    )

    result = await iss.crew()

    assert [c.id for c in result.data] == ["suni-williams", "butch-wilmore"]
    assert result.data[1].role == "Pilot"


@pytest.mark.asyncio
async def test_crew_falls_back_to_known_crew(make_pipeline):
    iss = IssSource(make_pipeline(), fast_settings(), today=date(2025, 3, 1))

    result = await iss.crew()

    assert result.origin == "default"
    assert len(result.data) == 9
    assert all(c.source == "known-crew" for c in result.data)


# Panchang


@pytest.mark.asyncio
async def test_panchang_day_is_cached(make_pipeline):
    pipeline = make_pipeline()
    panchang = PanchangSource(pipeline, fast_settings())

    first = await panchang.day(28.6139, 77.209, date(2025, 3, 3))
    second = await panchang.day(28.6139, 77.209, date(2025, 3, 3))

    assert first.origin == "source"
    assert second.origin == "cache"
    assert first.first.date == date(2025, 3, 3)


def test_panchang_is_deterministic_and_flags_end_times():
    day = date(2025, 3, 3)

    first = compute_panchang(19.076, 72.8777, day)
    second = compute_panchang(19.076, 72.8777, day)

    assert first == second
    assert "tithi.end_time" in first.synthesized_fields
    assert set(first.muhurat) == {
        "abhijit_muhurat",
        "rahu_kaal",
        "gulika_kaal",
        "yama_ganda_kaal",
    }
    # 2025-03-03 is a Monday
    assert first.vrats_and_occasions[0] == "Somvar Vrat"


def test_panchang_festival_season():
    assert "Diwali Season" in compute_panchang(19.076, 72.8777, date(2025, 11, 21)).festivals
    assert compute_panchang(19.076, 72.8777, date(2025, 11, 19)).festivals == []


# Space news


def article(article_id, title="Launch recap", **extra):
    return {
        "id": article_id,
        "title": title,
        "url": f"https://news.example/{article_id}",
        "image_url": "",
        "news_site": "SpaceNews",
        "summary": "",
        "published_at": "2025-03-01T10:00:00Z",
        "updated_at": "2025-03-01T11:00:00Z",
        "featured": False,
        "launches": [],
        "events": [],
        **extra,
    }


@pytest.mark.asyncio
async def test_news_is_cached_per_query(make_pipeline):
    page = {
        "count": 2,
        "results": [
            article(101, launches=[{"launch_id": "f9-b1080", "provider": "Launch Library 2"}]),
            article(102, title=""),
        ],
    }
    handler = router({"/v4/articles/": page})
    news = SpaceNewsSource(make_pipeline(handler), fast_settings())

    first = await news.latest(limit=10)
    again = await news.latest(limit=10)
    await news.latest(limit=10, offset=10)

    assert [a.id for a in first.data] == ["101"]
    assert first.first.launch_ids == ["f9-b1080"]
    assert again.origin == "cache"
    assert len(handler.seen) == 2
    assert handler.seen[0].url.params["ordering"] == "-published_at"
    assert handler.seen[1].url.params["offset"] == "10"


@pytest.mark.asyncio
async def test_news_search_key_ignores_case(make_pipeline):
    handler = router({"/v4/articles/": {"results": [article(7, title="Artemis II")]}})
    news = SpaceNewsSource(make_pipeline(handler), fast_settings())

    await news.search("Artemis")
    result = await news.search(" artemis ")

    assert result.origin == "cache"
    assert len(handler.seen) == 1
    assert handler.seen[0].url.params["search"] == "Artemis"


@pytest.mark.asyncio
async def test_news_retries_with_growing_waits(make_pipeline, sleeper):
    news = SpaceNewsSource(
        make_pipeline(), fast_settings(max_retries=3, base_backoff=2.0)
    )

    result = await news.featured()

    assert result.origin == "empty"
    assert sleeper.calls == [2.0, 4.0]
