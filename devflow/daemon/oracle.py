"""Classifier oracle: capability interface, HTTP transports and retrying client.

The oracle is any service that takes a prompt plus a target schema and
returns a structured record. Classification and expansion code only ever
talks to `OracleClient`, which owns the retry budget; transports know how
to reach one particular model and how to turn its failures into
transient/permanent signals.
"""

import json
from typing import Any, Dict, Optional, Protocol, Type, TypeVar, Union

import httpx
from loguru import logger
from pydantic import BaseModel

from .config import OracleConfig, RetryConfig
from .error_handling import (
    RetryPolicy, PermanentOracleError, make_oracle_error, to_oracle_error
)

S = TypeVar("S", bound=BaseModel)


class StructuredOracle(Protocol):
    """Capability interface: generate a record matching `schema`."""

    async def generate_structured(
        self,
        prompt: str,
        schema: Type[S],
        *,
        temperature: float,
        max_output_tokens: int
    ) -> Union[S, Dict[str, Any], None]:
        ...


class HttpOracle:
    """Shared plumbing for oracles reached over HTTP."""

    def __init__(self, model: str, base_url: str, timeout: float = 30.0,
                 client: Optional[httpx.AsyncClient] = None):
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _post(self, url: str, payload: Dict[str, Any], **kwargs) -> Dict[str, Any]:
        response = await self.client.post(url, json=payload, **kwargs)
        if response.status_code >= 400:
            raise make_oracle_error(response.status_code, self._error_message(response))
        return response.json()

    def _error_message(self, response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return f"HTTP {response.status_code}: {response.text[:200]}"

        error = body.get("error", body) if isinstance(body, dict) else body
        if isinstance(error, dict):
            parts = [str(error.get("status", "")), str(error.get("message", ""))]
            return f"HTTP {response.status_code}: " + " ".join(p for p in parts if p)
        return f"HTTP {response.status_code}: {error}"


class GeminiOracle(HttpOracle):
    """Google Gemini generateContent with JSON-schema constrained output."""

    DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

    def __init__(self, model: str, api_key: Optional[str], base_url: Optional[str] = None,
                 timeout: float = 30.0, client: Optional[httpx.AsyncClient] = None):
        super().__init__(model, base_url or self.DEFAULT_BASE_URL, timeout, client)
        self.api_key = api_key

    async def generate_structured(self, prompt, schema, *, temperature, max_output_tokens):
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": temperature,
                "topP": 0.95,
                "maxOutputTokens": max_output_tokens,
                "responseMimeType": "application/json",
                "responseJsonSchema": schema.model_json_schema(),
            },
        }
        headers = {"x-goog-api-key": self.api_key} if self.api_key else {}

        data = await self._post(
            f"{self.base_url}/models/{self.model}:generateContent",
            payload,
            headers=headers
        )

        text = self._candidate_text(data)
        if not text:
            logger.warning(f"Gemini returned no content (model={self.model})")
            return None

        return schema.model_validate_json(text)

    @staticmethod
    def _candidate_text(data: Dict[str, Any]) -> str:
        for candidate in data.get("candidates") or []:
            parts = (candidate.get("content") or {}).get("parts") or []
            text = "".join(p.get("text", "") for p in parts)
            if text.strip():
                return text
        return ""


class OllamaOracle(HttpOracle):
    """Local Ollama server using structured outputs (`format` = JSON schema)."""

    DEFAULT_BASE_URL = "http://localhost:11434"

    def __init__(self, model: str, base_url: Optional[str] = None,
                 timeout: float = 60.0, client: Optional[httpx.AsyncClient] = None):
        super().__init__(model, base_url or self.DEFAULT_BASE_URL, timeout, client)

    async def generate_structured(self, prompt, schema, *, temperature, max_output_tokens):
        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "format": schema.model_json_schema(),
            "options": {
                "temperature": temperature,
                "num_predict": max_output_tokens,
            },
        }

        data = await self._post(f"{self.base_url}/api/generate", payload)

        text = (data.get("response") or "").strip()
        if not text:
            return None
        return schema.model_validate(json.loads(text))


def create_oracle(config: OracleConfig) -> HttpOracle:
    """Build the transport selected by configuration."""
    if config.provider == "ollama":
        return OllamaOracle(config.model, config.base_url, config.timeout_seconds)

    api_key = config.api_key
    if not api_key:
        logger.warning(
            f"No API key in ${config.api_key_env}; oracle calls will fail and "
            f"classification will use rule-based fallbacks"
        )
    return GeminiOracle(config.model, api_key, config.base_url, config.timeout_seconds)


def retry_policy_from_config(config: RetryConfig, max_attempts: Optional[int] = None,
                             sleep=None) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=max_attempts or config.max_attempts,
        base_delay=config.base_delay_ms / 1000.0,
        max_delay=config.max_delay_ms / 1000.0,
        jitter=config.jitter_ms / 1000.0,
        sleep=sleep
    )


class OracleClient:
    """
    Wraps one oracle call with the shared retry policy.

    Surfaces OracleError once retries are exhausted; business fallbacks
    are the caller's job.
    """

    def __init__(self, oracle: StructuredOracle, retry_policy: Optional[RetryPolicy] = None):
        self.oracle = oracle
        self.retry_policy = retry_policy or RetryPolicy()
        self.stats = {"calls": 0, "attempts": 0, "failures": 0}

    def with_policy(self, retry_policy: RetryPolicy) -> "OracleClient":
        """Same oracle, different retry budget."""
        return OracleClient(self.oracle, retry_policy)

    async def classify(
        self,
        prompt: str,
        schema: Type[S],
        *,
        temperature: float = 0.2,
        max_output_tokens: int = 2048
    ) -> S:
        """
        Call the oracle and return a validated instance of `schema`.

        Raises:
            TransientOracleError: Still overloaded/timing out after the last attempt
            PermanentOracleError: Non-retryable failure or no usable output
        """
        self.stats["calls"] += 1

        async def attempt() -> S:
            self.stats["attempts"] += 1
            raw = await self.oracle.generate_structured(
                prompt,
                schema,
                temperature=temperature,
                max_output_tokens=max_output_tokens
            )
            if raw is None:
                raise PermanentOracleError("No output generated")
            if isinstance(raw, schema):
                return raw
            if isinstance(raw, BaseModel):
                raw = raw.model_dump(by_alias=True)
            try:
                return schema.model_validate(raw)
            except Exception as e:
                raise to_oracle_error(e) from e

        try:
            return await self.retry_policy.execute(attempt)
        except Exception:
            self.stats["failures"] += 1
            raise
