"""Tests for oracle transports and the retrying client."""

import json

import httpx
import pytest

from devflow.daemon.config import OracleConfig
from devflow.daemon.error_handling import PermanentOracleError, TransientOracleError
from devflow.daemon.oracle import GeminiOracle, OllamaOracle, create_oracle
from devflow.daemon.schemas import QueryExpansionSchema

from conftest import StubOracle


EXPANSION = {
    "expandedQuery": "react hooks useState useEffect",
    "categories": ["learning_note", "code_snippet"],
    "keywords": ["react", "hooks"],
    "intent": "find",
}


def gemini_reply(payload: dict) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": json.dumps(payload)}]}}]}


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_gemini_structured_request():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["key"] = request.headers.get("x-goog-api-key")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=gemini_reply(EXPANSION))

    oracle = GeminiOracle("gemini-2.5-flash", "secret", client=mock_client(handler))
    result = await oracle.generate_structured(
        "expand", QueryExpansionSchema, temperature=0.3, max_output_tokens=512
    )

    assert isinstance(result, QueryExpansionSchema)
    assert result.expanded_query == "react hooks useState useEffect"
    assert seen["url"].endswith("/models/gemini-2.5-flash:generateContent")
    assert seen["key"] == "secret"

    generation = seen["body"]["generationConfig"]
    assert generation["temperature"] == 0.3
    assert generation["maxOutputTokens"] == 512
    assert generation["responseMimeType"] == "application/json"


@pytest.mark.asyncio
@pytest.mark.parametrize("status,body,error_type", [
    (503, {"error": {"status": "UNAVAILABLE", "message": "The model is overloaded."}}, TransientOracleError),
    (429, {"error": {"status": "RESOURCE_EXHAUSTED", "message": "Quota exceeded"}}, TransientOracleError),
    (400, {"error": {"status": "INVALID_ARGUMENT", "message": "API key not valid"}}, PermanentOracleError),
])
async def test_gemini_error_statuses(status, body, error_type):
    oracle = GeminiOracle(
        "gemini-2.5-flash", "secret",
        client=mock_client(lambda request: httpx.Response(status, json=body))
    )

    with pytest.raises(error_type) as exc_info:
        await oracle.generate_structured(
            "expand", QueryExpansionSchema, temperature=0.3, max_output_tokens=512
        )

    assert exc_info.value.status == status


@pytest.mark.asyncio
async def test_gemini_without_candidates_returns_none():
    oracle = GeminiOracle(
        "gemini-2.5-flash", "secret",
        client=mock_client(lambda request: httpx.Response(200, json={"candidates": []}))
    )

    result = await oracle.generate_structured(
        "expand", QueryExpansionSchema, temperature=0.3, max_output_tokens=512
    )
    assert result is None


@pytest.mark.asyncio
async def test_ollama_structured_request():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"response": json.dumps(EXPANSION), "done": True})

    oracle = OllamaOracle("llama3.1", client=mock_client(handler))
    result = await oracle.generate_structured(
        "expand", QueryExpansionSchema, temperature=0.2, max_output_tokens=256
    )

    assert result.keywords == ["react", "hooks"]
    assert seen["path"] == "/api/generate"
    assert seen["body"]["stream"] is False
    assert seen["body"]["options"] == {"temperature": 0.2, "num_predict": 256}
    assert seen["body"]["format"]["type"] == "object"


def test_create_oracle_by_provider():
    assert isinstance(create_oracle(OracleConfig(provider="ollama", model="llama3.1")), OllamaOracle)
    assert isinstance(create_oracle(OracleConfig()), GeminiOracle)


@pytest.mark.asyncio
async def test_client_validates_dict_output(make_client):
    client = make_client(StubOracle(EXPANSION))

    result = await client.classify("expand", QueryExpansionSchema)

    assert isinstance(result, QueryExpansionSchema)
    assert client.stats == {"calls": 1, "attempts": 1, "failures": 0}


@pytest.mark.asyncio
async def test_client_no_output_is_permanent(make_client):
    stub = StubOracle(None)
    client = make_client(stub)

    with pytest.raises(PermanentOracleError, match="No output generated"):
        await client.classify("expand", QueryExpansionSchema)

    assert len(stub.calls) == 1


@pytest.mark.asyncio
async def test_client_schema_violation_is_permanent(make_client):
    stub = StubOracle({"keywords": ["react"]})
    client = make_client(stub)

    with pytest.raises(PermanentOracleError):
        await client.classify("expand", QueryExpansionSchema)

    assert len(stub.calls) == 1
    assert client.stats["failures"] == 1


@pytest.mark.asyncio
async def test_client_retries_transient_then_succeeds(make_client, sleep):
    stub = StubOracle(TransientOracleError("503 overloaded", status=503), EXPANSION)
    client = make_client(stub)

    result = await client.classify("expand", QueryExpansionSchema)

    assert result.intent.value == "find"
    assert len(stub.calls) == 2
    assert len(sleep.delays) == 1


@pytest.mark.asyncio
async def test_client_with_single_attempt_policy(make_client, sleep):
    stub = StubOracle(TransientOracleError("503 overloaded", status=503))
    client = make_client(stub, max_attempts=1)

    with pytest.raises(TransientOracleError):
        await client.classify("expand", QueryExpansionSchema)

    assert len(stub.calls) == 1
    assert sleep.delays == []
