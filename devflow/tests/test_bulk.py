"""Tests for bulk segmentation and classification."""

import pytest

from devflow.daemon.bulk import (
    FALLBACK_REASONING, BulkClassifier, check_segmentation, fallback_records,
    has_completion_marker
)
from devflow.daemon.config import ClassificationConfig
from devflow.daemon.error_handling import SegmentationError, TransientOracleError
from devflow.daemon.models import Category, DetectedLanguage, OutcomeSource

from conftest import StubOracle


def item(content: str, category: str = "task", **extra) -> dict:
    return {"content": content, "category": category, "tags": ["errand"], "confidence": 0.9, **extra}


@pytest.mark.asyncio
async def test_two_items_with_completion_marker(make_client, today):
    stub = StubOracle({"results": [
        item("buy milk"),
        item("fix login bug - done", category="bug_fix"),
    ]})
    classifier = BulkClassifier(make_client(stub), today=today)

    records = await classifier.classify_bulk("1. buy milk\n2. fix login bug - done\n")

    assert [r.content for r in records] == ["buy milk", "fix login bug - done"]
    assert records[0].is_completed is False
    assert records[1].is_completed is True
    assert records[1].category == Category.BUG_FIX
    assert len(stub.calls) == 1


@pytest.mark.asyncio
async def test_explicit_completion_flag_wins(make_client):
    classifier = BulkClassifier(make_client(StubOracle({"results": [
        item("deploy hotfix - done", isCompleted=False),
        item("write changelog", isCompleted=True),
    ]})))

    records = await classifier.classify_bulk("deploy hotfix - done\nwrite changelog")

    assert [r.is_completed for r in records] == [False, True]


@pytest.mark.asyncio
async def test_single_item_for_long_input_falls_back(make_client):
    raw_text = "\n".join(f"line {i}: " + "x" * 40 for i in range(5))
    assert len(raw_text) > 200
    stub = StubOracle({"results": [item(raw_text)]})
    classifier = BulkClassifier(make_client(stub))

    outcome = await classifier.classify(raw_text)

    assert outcome.source == OutcomeSource.FALLBACK
    assert len(stub.calls) == 1
    assert len(outcome.records) == 5
    assert all(r.category == Category.GENERAL for r in outcome.records)
    assert all(r.confidence == 0.0 for r in outcome.records)
    assert all(r.tags == ["bulk-import-failed"] for r in outcome.records)


@pytest.mark.asyncio
async def test_single_item_for_short_input_is_accepted(make_client):
    classifier = BulkClassifier(make_client(StubOracle({"results": [item("call the dentist")]})))

    outcome = await classifier.classify("call the dentist")

    assert outcome.source == OutcomeSource.ORACLE
    assert len(outcome.records) == 1


@pytest.mark.asyncio
async def test_segmentation_threshold_is_configurable(make_client):
    config = ClassificationConfig(segmentation_min_chars=10)
    classifier = BulkClassifier(
        make_client(StubOracle({"results": [item("call the dentist")]})), config
    )

    outcome = await classifier.classify("call the dentist")

    assert outcome.is_fallback


@pytest.mark.asyncio
async def test_oracle_failure_splits_lines(make_client):
    stub = StubOracle(TransientOracleError("model overloaded"))
    classifier = BulkClassifier(make_client(stub))

    outcome = await classifier.classify("  buy milk \n\n   \nfix login bug\n  call mom")

    assert len(stub.calls) == 3
    assert outcome.is_fallback
    assert outcome.reason == "model overloaded"
    assert [r.content for r in outcome.records] == ["buy milk", "fix login bug", "call mom"]
    for record in outcome.records:
        assert record.category == Category.GENERAL
        assert record.confidence == 0.0
        assert record.reasoning == FALLBACK_REASONING
        assert record.is_completed is False


@pytest.mark.asyncio
async def test_blank_input_never_calls_oracle(make_client):
    stub = StubOracle({"results": []})
    classifier = BulkClassifier(make_client(stub))

    assert await classifier.classify_bulk(" \n\t\n") == []
    assert stub.calls == []


@pytest.mark.asyncio
async def test_zero_results_is_accepted(make_client):
    classifier = BulkClassifier(make_client(StubOracle({"results": []})))

    outcome = await classifier.classify("hmm\nnothing really")

    assert outcome.source == OutcomeSource.ORACLE
    assert outcome.records == []


@pytest.mark.asyncio
async def test_items_without_text_are_dropped(make_client):
    classifier = BulkClassifier(make_client(StubOracle({"results": [
        item("buy milk"),
        {"category": "general", "tags": []},
        item("call mom"),
    ]})))

    records = await classifier.classify_bulk("buy milk\n???\ncall mom")

    assert [r.content for r in records] == ["buy milk", "call mom"]


@pytest.mark.asyncio
async def test_items_are_repaired(make_client):
    classifier = BulkClassifier(make_client(StubOracle({"results": [
        {"content": "दूध लाना", "translatedContent": "", "category": "groceries",
         "detectedLanguage": "hi", "confidence": 5},
        {"content": "learn rust lifetimes", "category": "learning_note"},
    ]})))

    records = await classifier.classify_bulk("दूध लाना\nlearn rust lifetimes")

    assert records[0].category == Category.GENERAL
    assert records[0].detected_language == DetectedLanguage.HINDI
    assert records[0].translated_content == "दूध लाना"
    assert records[0].confidence == 0.7
    assert records[1].tags == ["learn", "rust", "lifetimes"]


@pytest.mark.parametrize("text,expected", [
    ("fix login bug - done", True),
    ("[x] update README", True),
    ("payment issue fixed", True),
    ("migration completed", True),
    ("kaam ho gaya", True),
    ("report kar diya", True),
    ("kaam zhala", True),
    ("काम हो गया", True),
    ("write the docs", False),
    ("fix the build", False),
])
def test_completion_markers(text, expected):
    assert has_completion_marker(text) is expected


def test_fallback_records_are_pure():
    raw = "a\n\n b \n"
    assert fallback_records(raw) == fallback_records(raw)
    assert [r.content for r in fallback_records(raw)] == ["a", "b"]


def test_check_segmentation():
    check_segmentation(1, "x" * 200)
    check_segmentation(2, "x" * 500)
    with pytest.raises(SegmentationError):
        check_segmentation(1, "x" * 201)
