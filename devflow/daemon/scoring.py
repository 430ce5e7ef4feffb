"""Relevance scoring of entries against a query expansion.

score = sum over keywords (case-insensitive substring tests) of
            10 if in content
          +  8 if in translated content
          +  6 if in any tag
          +  4 if in the category name
        + 5 if the entry's category is a candidate category
        + recency bonus (3 under a day, 2 under a week, 1 under 30 days)

The recency bonus only breaks ties between entries that matched
something; an entry with no keyword or category signal scores 0.
"""

from datetime import datetime, timezone
from typing import Iterable, List, Optional

from .models import Entry, Category, ScoredEntry, utc_now


CONTENT_WEIGHT = 10
TRANSLATION_WEIGHT = 8
TAG_WEIGHT = 6
CATEGORY_NAME_WEIGHT = 4
CATEGORY_MATCH_BONUS = 5

SECONDS_PER_DAY = 24 * 60 * 60


def recency_bonus(created_at: datetime, now: Optional[datetime] = None) -> int:
    now = now or utc_now()
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    age_days = (now - created_at).total_seconds() / SECONDS_PER_DAY

    if age_days < 1:
        return 3
    if age_days < 7:
        return 2
    if age_days < 30:
        return 1
    return 0


def score_entry(
    entry: Entry,
    keywords: Iterable[str],
    categories: Iterable[Category],
    now: Optional[datetime] = None
) -> int:
    """Non-negative relevance score; 0 means the entry does not match."""
    content = entry.content.lower()
    translated = (entry.translated_content or "").lower()
    tags = [t.lower() for t in entry.tags]
    category_name = entry.category.value

    score = 0
    for keyword in keywords:
        keyword = keyword.lower()
        if not keyword:
            continue
        if keyword in content:
            score += CONTENT_WEIGHT
        if keyword in translated:
            score += TRANSLATION_WEIGHT
        if any(keyword in tag for tag in tags):
            score += TAG_WEIGHT
        if keyword in category_name:
            score += CATEGORY_NAME_WEIGHT

    if entry.category in set(categories):
        score += CATEGORY_MATCH_BONUS

    if score > 0:
        score += recency_bonus(entry.created_at, now)

    return score


def rank_entries(
    entries: Iterable[Entry],
    keywords: List[str],
    categories: List[Category],
    now: Optional[datetime] = None
) -> List[ScoredEntry]:
    """Entries with a positive score, best first; ties keep input order."""
    now = now or utc_now()
    scored = [ScoredEntry(entry, score_entry(entry, keywords, categories, now)) for entry in entries]
    matched = [s for s in scored if s.score > 0]
    # list.sort is stable
    matched.sort(key=lambda s: s.score, reverse=True)
    return matched
