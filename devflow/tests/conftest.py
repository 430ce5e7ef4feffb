"""Shared fixtures: temporary vaults and a scripted stand-in for the oracle."""

import tempfile
from datetime import date
from pathlib import Path
from typing import Any, List

import pytest

from devflow.daemon.config import Config
from devflow.daemon.error_handling import RetryPolicy
from devflow.daemon.oracle import OracleClient


class StubOracle:
    """
    StructuredOracle that replays scripted replies in order.

    A reply may be a dict (returned as oracle output), None (no output)
    or an exception instance (raised). The last reply repeats once the
    script runs out.
    """

    def __init__(self, *replies: Any):
        self.replies: List[Any] = list(replies)
        self.calls: List[dict] = []

    async def generate_structured(self, prompt, schema, *, temperature, max_output_tokens):
        self.calls.append({
            "prompt": prompt,
            "schema": schema,
            "temperature": temperature,
            "max_output_tokens": max_output_tokens,
        })
        index = min(len(self.calls) - 1, len(self.replies) - 1)
        reply = self.replies[index]
        if isinstance(reply, BaseException):
            raise reply
        return reply


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def temp_vault():
    """Create a temporary vault for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        vault_path = Path(tmpdir) / "test_vault"
        vault_path.mkdir()
        yield vault_path


@pytest.fixture
def test_config(temp_vault):
    """Create test configuration."""
    return Config(vault_path=temp_vault)


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def make_client(sleep):
    """Build an OracleClient around a stub with the standard budget and no real waiting."""
    def factory(oracle, max_attempts: int = 3) -> OracleClient:
        return OracleClient(oracle, RetryPolicy(max_attempts=max_attempts, sleep=sleep))
    return factory


@pytest.fixture
def today():
    return lambda: date(2026, 10, 19)
