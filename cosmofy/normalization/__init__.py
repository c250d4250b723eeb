"""
Record normalization - upstream payloads to stable, identified records.

Provides:
- slugify: Stable identifiers derived from display names
- RecordNormalizer: Per-item isolated mapping of one payload
- merge_records / DuplicatePolicy: Identifier-based deduplication
- Concrete normalizers for imagery, station, crew, asteroid, news, place and catalog data
"""

from cosmofy.normalization.base import (
    DuplicatePolicy,
    RecordNormalizer,
    merge_records,
    slugify,
)
from cosmofy.normalization.models import (
    ApodImage,
    Asteroid,
    Constellation,
    CrewMember,
    IssPass,
    IssPosition,
    NewsArticle,
    NormalizedRecord,
    PanchangDay,
    Place,
    SkyConditions,
)
from cosmofy.normalization.normalizers import (
    ApodNormalizer,
    ConstellationNormalizer,
    CrewNormalizer,
    IssPassNormalizer,
    IssPositionNormalizer,
    NeoNormalizer,
    NewsNormalizer,
    PlaceNormalizer,
)

__all__ = [
    # Primitives
    "slugify",
    "RecordNormalizer",
    "merge_records",
    "DuplicatePolicy",
    # Records
    "NormalizedRecord",
    "ApodImage",
    "Asteroid",
    "Constellation",
    "CrewMember",
    "IssPass",
    "IssPosition",
    "NewsArticle",
    "PanchangDay",
    "Place",
    "SkyConditions",
    # Normalizers
    "ApodNormalizer",
    "ConstellationNormalizer",
    "CrewNormalizer",
    "IssPassNormalizer",
    "IssPositionNormalizer",
    "NeoNormalizer",
    "NewsNormalizer",
    "PlaceNormalizer",
]
