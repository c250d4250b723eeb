"""
Record normalization primitives: identifiers, per-item isolation, merging.
"""

import re
import unicodedata
from enum import Enum
from typing import Any, Generic, Iterable, TypeVar

from loguru import logger
from pydantic import ValidationError

from cosmofy.normalization.models import NormalizedRecord
from cosmofy.services.errors import NormalizationError

R = TypeVar("R", bound=NormalizedRecord)


def slugify(name: str) -> str:
    """
    Derive a stable identifier from a display name.

    "Canes Venatici" -> "canes-venatici", "Boötes" -> "bootes".
    """
    folded = unicodedata.normalize("NFKD", name)
    ascii_name = folded.encode("ascii", "ignore").decode("ascii").lower()
    ascii_name = re.sub(r"[^a-z0-9\s-]", "", ascii_name)
    ascii_name = re.sub(r"[\s_-]+", "-", ascii_name)
    return ascii_name.strip("-")


class DuplicatePolicy(str, Enum):
    """What happens when an acquisition yields an id that is already stored."""

    KEEP_FIRST = "keep_first"
    REPLACE = "replace"


def merge_records(
    existing: Iterable[R],
    incoming: Iterable[R],
    policy: DuplicatePolicy = DuplicatePolicy.KEEP_FIRST,
) -> list[R]:
    """
    Combine two record lists, deduplicating by id.

    Order is existing records first, then new ids in arrival order.
    """
    merged: dict[str, R] = {record.id: record for record in existing}
    for record in incoming:
        if record.id in merged and policy == DuplicatePolicy.KEEP_FIRST:
            continue
        merged[record.id] = record
    return list(merged.values())


class RecordNormalizer(Generic[R]):
    """
    Map one upstream payload to a list of records.

    Subclasses implement ``extract_items`` (split the payload into items) and
    ``normalize_item`` (build one record). An item that fails to normalize is
    logged and skipped; it never fails the whole payload.
    """

    name = "records"

    def normalize(self, raw: Any, source_meta: dict[str, Any] | None = None) -> list[R]:
        source_meta = source_meta or {}
        records: list[R] = []
        skipped = 0

        try:
            items = list(self.extract_items(raw))
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            logger.warning(f"[{self.name}] payload has unexpected shape: {e}")
            return []

        for item in items:
            try:
                record = self.normalize_item(item, source_meta)
            except (NormalizationError, ValidationError, KeyError, TypeError, ValueError) as e:
                skipped += 1
                logger.warning(f"[{self.name}] skipping item: {e}")
                continue
            if record is not None:
                records.append(record)

        if skipped:
            logger.info(f"[{self.name}] normalized {len(records)} items, skipped {skipped}")
        return records

    def extract_items(self, raw: Any) -> Iterable[Any]:
        if isinstance(raw, list):
            return raw
        return [raw]

    def normalize_item(self, item: Any, source_meta: dict[str, Any]) -> R | None:
        raise NotImplementedError
