import os
from datetime import timedelta

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


class IntegrationSettings(BaseModel):
    """Tunable knobs for one upstream integration."""

    # Retry behaviour
    max_retries: int = 3
    base_backoff: float = 1.0
    rate_limit_retries: int | None = None  # None: share max_retries
    rate_limit_backoff: float | None = None
    respect_retry_after: bool = False
    request_timeout: float = 10.0

    # Inbound budget, None means no deadline
    deadline: float | None = 10.0

    # Cache tiers
    collection_ttl: timedelta = timedelta(days=1)
    query_ttl: timedelta = timedelta(hours=1)
    entity_ttl: timedelta = timedelta(days=30)
    fallback_ttl: timedelta = timedelta(days=7)
    staleness_threshold: timedelta | None = None


class Settings(BaseModel):
    # Upstream credentials
    nasa_api_key: str = Field(default="DEMO_KEY", alias="NASA_API_KEY")
    user_agent: str = Field(default="CosmofyApp/1.0", alias="USER_AGENT")

    # Cache
    cache_max_entries: int = Field(default=500, alias="CACHE_MAX_ENTRIES")
    cache_sweep_interval_minutes: int = Field(
        default=30, alias="CACHE_SWEEP_INTERVAL_MINUTES"
    )
    constellation_prewarm_hours: int = Field(
        default=24, alias="CONSTELLATION_PREWARM_HOURS"
    )

    # Database Configuration
    database_url: str = Field(
        default="sqlite+aiosqlite:///./cosmofy.db", alias="DATABASE_URL"
    )
    database_echo: bool = Field(default=False, alias="DATABASE_ECHO")
    use_database: bool = Field(default=False, alias="USE_DATABASE")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Per-integration defaults
    nasa: IntegrationSettings = IntegrationSettings(
        max_retries=2,
        base_backoff=1.0,
        request_timeout=8.0,
        deadline=10.0,
        collection_ttl=timedelta(hours=6),
        query_ttl=timedelta(minutes=5),
        entity_ttl=timedelta(days=30),
        fallback_ttl=timedelta(days=30),
        staleness_threshold=timedelta(days=7),
    )
    iss: IntegrationSettings = IntegrationSettings(
        max_retries=2,
        base_backoff=0.5,
        request_timeout=6.0,
        deadline=8.0,
        collection_ttl=timedelta(days=1),
        query_ttl=timedelta(minutes=1),
        entity_ttl=timedelta(days=1),
        fallback_ttl=timedelta(hours=6),
    )
    constellations: IntegrationSettings = IntegrationSettings(
        max_retries=3,
        base_backoff=1.0,
        request_timeout=15.0,
        deadline=None,
        collection_ttl=timedelta(days=30),
        query_ttl=timedelta(hours=1),
        entity_ttl=timedelta(days=30),
        fallback_ttl=timedelta(days=90),
        staleness_threshold=timedelta(days=7),
    )
    panchang: IntegrationSettings = IntegrationSettings(
        max_retries=3,
        base_backoff=1.0,
        deadline=6.0,
        query_ttl=timedelta(hours=24),
        fallback_ttl=timedelta(days=2),
    )
    news: IntegrationSettings = IntegrationSettings(
        max_retries=4,
        base_backoff=2.0,
        respect_retry_after=True,
        request_timeout=10.0,
        deadline=12.0,
        query_ttl=timedelta(minutes=15),
        fallback_ttl=timedelta(hours=6),
    )
    geolocation: IntegrationSettings = IntegrationSettings(
        max_retries=1,
        request_timeout=3.0,
        deadline=4.0,
        query_ttl=timedelta(hours=1),
        fallback_ttl=timedelta(days=1),
    )


global_settings = Settings(**os.environ)
