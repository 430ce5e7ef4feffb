"""Tests for relevance scoring."""

from datetime import datetime, timedelta, timezone

import pytest

from devflow.daemon.models import Entry, Category
from devflow.daemon.scoring import rank_entries, recency_bonus, score_entry


NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def make_entry(entry_id: str, content: str, category: Category, age_days: float,
               tags=None, translated=None) -> Entry:
    created = NOW - timedelta(days=age_days)
    return Entry(
        id=entry_id,
        created_at=created,
        updated_at=created,
        content=content,
        category=category,
        translated_content=translated,
        tags=tags or [],
    )


@pytest.fixture
def scenario_entries():
    return [
        make_entry("a", "learning react hooks today", Category.LEARNING_NOTE, 0, tags=["frontend"]),
        make_entry("b", "fix bug in payment", Category.BUG_FIX, 10, tags=["payments"]),
        make_entry("c", "water the plants", Category.GENERAL, 40, tags=["home"]),
    ]


def test_react_hooks_scenario(scenario_entries):
    keywords = ["react", "hooks", "useState"]
    categories = [Category.LEARNING_NOTE]

    scores = {e.id: score_entry(e, keywords, categories, NOW) for e in scenario_entries}
    assert scores == {"a": 28, "b": 0, "c": 0}

    ranked = rank_entries(scenario_entries, keywords, categories, NOW)
    assert [s.entry.id for s in ranked] == ["a"]
    assert ranked[0].score == 28


def test_field_weights():
    entry = make_entry(
        "x", "Redis cache warmup", Category.CODE_SNIPPET, 100,
        tags=["redis-cluster"], translated="redis cache warmup"
    )

    # content 10 + translation 8 + tag 6
    assert score_entry(entry, ["redis"], [], NOW) == 24
    # category name "code_snippet" contains "snippet"
    assert score_entry(entry, ["snippet"], [], NOW) == 4
    assert score_entry(entry, [], [Category.CODE_SNIPPET], NOW) == 5


def test_matching_is_case_insensitive():
    entry = make_entry("x", "Deploy To PROD", Category.TASK, 100)
    assert score_entry(entry, ["prod", "DEPLOY"], [], NOW) == 20


@pytest.mark.parametrize("age_days,bonus", [
    (0, 3),
    (0.99, 3),
    (1, 2),
    (6.5, 2),
    (7, 1),
    (29.9, 1),
    (30, 0),
    (365, 0),
])
def test_recency_bonus(age_days, bonus):
    assert recency_bonus(NOW - timedelta(days=age_days), NOW) == bonus


def test_recency_alone_does_not_match():
    entry = make_entry("x", "brand new note", Category.GENERAL, 0)
    assert score_entry(entry, ["kubernetes"], [Category.TASK], NOW) == 0


def test_scores_are_never_negative(scenario_entries):
    for entry in scenario_entries:
        assert score_entry(entry, [], [], NOW) == 0
        assert score_entry(entry, ["", "zzz"], [], NOW) == 0


def test_ties_keep_input_order():
    entries = [
        make_entry("first", "python tips", Category.GENERAL, 100),
        make_entry("second", "python tricks", Category.GENERAL, 100),
        make_entry("best", "python python", Category.LEARNING_NOTE, 100),
    ]

    ranked = rank_entries(entries, ["python"], [Category.LEARNING_NOTE], NOW)

    assert [s.entry.id for s in ranked] == ["best", "first", "second"]
