"""Single-entry classification with post-validation and rule-based fallback."""

import math
import re
import string
from datetime import date
from typing import Callable, List, Optional, Pattern, Tuple

from loguru import logger

from .config import ClassificationConfig
from .error_handling import OracleError, ValidationError
from .models import (
    Category, DetectedLanguage, ClassificationRecord, ClassificationOutcome,
    OutcomeSource, SlangTerm
)
from .oracle import OracleClient
from .prompts import single_entry_prompt
from .schemas import ClassificationSchema


DEFAULT_CONFIDENCE = 0.7
FALLBACK_MATCH_CONFIDENCE = 0.6
FALLBACK_NO_MATCH_CONFIDENCE = 0.4

# First match wins
FALLBACK_RULES: List[Tuple[Category, Pattern]] = [
    (Category.CODE_SNIPPET, re.compile(
        r"\b(function|const|import|def)\b|=>|console\.log|\);", re.IGNORECASE)),
    (Category.IDEA, re.compile(
        r"\b(apps?|build\w*|develop\w*)\b", re.IGNORECASE)),
    (Category.LEARNING_NOTE, re.compile(
        r"\b(learn\w*|til|discovered)\b", re.IGNORECASE)),
    (Category.BUG_FIX, re.compile(
        r"\b(bugs?|fix\w*|errors?)\b", re.IGNORECASE)),
    (Category.TASK, re.compile(
        r"\b(tasks?|todos?|to-do|reminders?)\b", re.IGNORECASE)),
]


def derive_fallback_tags(text: str, limit: int = 5) -> List[str]:
    """Distinct whitespace tokens longer than 3 characters, else ['general']."""
    tags: List[str] = []
    for token in text.split():
        token = token.strip(string.punctuation).lower()
        if len(token) > 3 and token not in tags:
            tags.append(token)
            if len(tags) >= limit:
                break
    return tags or ["general"]


def fallback_category(text: str) -> Optional[Category]:
    """Category of the first matching keyword family, or None."""
    for category, pattern in FALLBACK_RULES:
        if pattern.search(text):
            return category
    return None


def _valid_confidence(value: Optional[float], default: float) -> float:
    if value is None or math.isnan(value) or not 0.0 <= value <= 1.0:
        return default
    return value


def repair_classification(
    parsed: ClassificationSchema,
    content: str,
    max_tags: int = 5
) -> ClassificationRecord:
    """
    Post-validate oracle output into a complete record.

    - confidence outside [0, 1] or missing -> 0.7
    - no tags -> tags derived from the text
    - empty translation -> the original text
    - missing reasoning -> a one-line statement naming the category
    - contains_slang follows whether any slang terms were returned
    """
    category = parsed.category
    translated = (parsed.translated_content or "").strip() or content
    tags = list(parsed.tags) or derive_fallback_tags(content, max_tags)
    reasoning = (parsed.reasoning or "").strip() or f"Categorized as {category.label} based on content analysis."

    slang_terms = [
        SlangTerm(
            term=t.term,
            meaning=t.meaning,
            confidence=_valid_confidence(t.confidence, 0.5)
        )
        for t in (parsed.slang_terms or [])
        if t.term.strip()
    ]

    return ClassificationRecord(
        content=content,
        translated_content=translated,
        detected_language=parsed.detected_language,
        category=category,
        tags=tags,
        confidence=_valid_confidence(parsed.confidence, DEFAULT_CONFIDENCE),
        reasoning=reasoning,
        due_date=parsed.due_date,
        priority=parsed.priority,
        action_items=[a for a in parsed.action_items if a.strip()] if parsed.action_items else None,
        code_language=parsed.code_language or None,
        code_type=parsed.code_type,
        contains_slang=bool(slang_terms),
        slang_terms=slang_terms or None,
    )


def rule_based_record(text: str, max_tags: int = 5) -> ClassificationRecord:
    """Deterministic classification used when the oracle is unavailable."""
    category = fallback_category(text)
    matched = category is not None

    return ClassificationRecord(
        content=text,
        translated_content=text,
        detected_language=DetectedLanguage.ENGLISH,
        category=category or Category.GENERAL,
        tags=derive_fallback_tags(text, max_tags),
        confidence=FALLBACK_MATCH_CONFIDENCE if matched else FALLBACK_NO_MATCH_CONFIDENCE,
        reasoning="Rule-based fallback categorization: AI classification was unavailable.",
        contains_slang=False,
    )


class SingleEntryClassifier:
    """
    Classifies one piece of raw text into full entry metadata.

    Never fails for non-empty input: oracle failures degrade to the
    rule-based record, and the outcome says which path was taken.
    """

    def __init__(
        self,
        oracle: OracleClient,
        config: Optional[ClassificationConfig] = None,
        today: Callable[[], date] = date.today
    ):
        self.oracle = oracle
        self.config = config or ClassificationConfig()
        self._today = today

    async def classify(self, text: str) -> ClassificationOutcome:
        if not text or not text.strip():
            raise ValidationError("Content cannot be empty.")

        try:
            parsed = await self.oracle.classify(
                single_entry_prompt(text, self._today()),
                ClassificationSchema,
                temperature=self.config.single_temperature,
                max_output_tokens=self.config.single_max_output_tokens
            )
        except OracleError as e:
            logger.warning(f"AI categorization failed ({e.kind.value}), using fallback: {e}")
            return ClassificationOutcome(
                source=OutcomeSource.FALLBACK,
                record=rule_based_record(text, self.config.max_fallback_tags),
                reason=str(e)
            )

        record = repair_classification(parsed, text, self.config.max_fallback_tags)
        logger.debug(f"Classified entry as {record.category.value} ({record.confidence:.2f})")
        return ClassificationOutcome(source=OutcomeSource.ORACLE, record=record)

    async def classify_one(self, text: str) -> ClassificationRecord:
        """Classification record only, whichever path produced it."""
        outcome = await self.classify(text)
        return outcome.record
