"""Bulk classification: segment and classify a brain dump in one oracle call."""

import re
from datetime import date
from typing import Callable, List, Optional

from loguru import logger

from .classifier import repair_classification
from .config import ClassificationConfig
from .error_handling import OracleError, SegmentationError
from .models import (
    Category, DetectedLanguage, ClassificationRecord, BulkOutcome, OutcomeSource
)
from .oracle import OracleClient
from .prompts import bulk_prompt
from .schemas import BulkClassificationSchema


COMPLETION_MARKERS = re.compile(
    r"-\s*done\b|\[x\]|\bfixed\b|\bcompleted\b|\bho gaya\b|\bkar diya\b|\bzhala\b|हो गया|झाले",
    re.IGNORECASE
)

FALLBACK_REASONING = "Smart import failed, fallback to raw lines"


def has_completion_marker(text: str) -> bool:
    return bool(COMPLETION_MARKERS.search(text))


def fallback_records(raw_text: str, tag: str = "bulk-import-failed") -> List[ClassificationRecord]:
    """One minimal record per non-empty trimmed line. Pure; never fails."""
    records = []
    for line in raw_text.split("\n"):
        line = line.strip()
        if not line:
            continue
        records.append(ClassificationRecord(
            content=line,
            translated_content=line,
            detected_language=DetectedLanguage.ENGLISH,
            category=Category.GENERAL,
            tags=[tag],
            confidence=0.0,
            reasoning=FALLBACK_REASONING,
            contains_slang=False,
            is_completed=False,
        ))
    return records


def check_segmentation(result_count: int, raw_text: str, min_chars: int = 200) -> None:
    """
    Reject a degenerate split.

    A single result for a long input most likely means the oracle failed
    to split it.

    Raises:
        SegmentationError: One result for an input longer than `min_chars`
    """
    if result_count == 1 and len(raw_text) > min_chars:
        raise SegmentationError(
            f"Oracle returned a single item for a {len(raw_text)}-character input"
        )


class BulkClassifier:
    """Turns one multi-item text blob into an ordered list of records."""

    def __init__(
        self,
        oracle: OracleClient,
        config: Optional[ClassificationConfig] = None,
        today: Callable[[], date] = date.today
    ):
        self.oracle = oracle
        self.config = config or ClassificationConfig()
        self._today = today

    async def classify(self, raw_text: str) -> BulkOutcome:
        if not raw_text.strip():
            return BulkOutcome(source=OutcomeSource.FALLBACK, records=[], reason="empty input")

        try:
            records = await self._classify_with_oracle(raw_text)

        except OracleError as e:
            records = fallback_records(raw_text, self.config.fallback_tag)
            logger.warning(
                f"Smart bulk import failed ({e}); "
                f"falling back to newline splitting for {len(records)} items"
            )
            return BulkOutcome(source=OutcomeSource.FALLBACK, records=records, reason=str(e))

        logger.info(f"Smart bulk import found {len(records)} items")
        return BulkOutcome(source=OutcomeSource.ORACLE, records=records)

    async def classify_bulk(self, raw_text: str) -> List[ClassificationRecord]:
        outcome = await self.classify(raw_text)
        return outcome.records

    async def _classify_with_oracle(self, raw_text: str) -> List[ClassificationRecord]:
        parsed = await self.oracle.classify(
            bulk_prompt(raw_text, self._today()),
            BulkClassificationSchema,
            temperature=self.config.bulk_temperature,
            max_output_tokens=self.config.bulk_max_output_tokens
        )

        check_segmentation(len(parsed.results), raw_text, self.config.segmentation_min_chars)

        records = []
        for item in parsed.results:
            content = (item.content or item.translated_content or "").strip()
            if not content:
                logger.warning("Dropping bulk item with no text")
                continue

            record = repair_classification(item, content, self.config.max_fallback_tags)
            if item.is_completed is None:
                record.is_completed = has_completion_marker(content)
            else:
                record.is_completed = item.is_completed
            records.append(record)

        return records
