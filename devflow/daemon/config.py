"""Configuration management for devflow."""

import os
from pathlib import Path
from typing import Optional, Literal

import yaml
from loguru import logger
from pydantic import BaseModel, Field, field_validator


class OracleConfig(BaseModel):
    provider: Literal["gemini", "ollama"] = "gemini"
    model: str = "gemini-2.5-flash"
    base_url: Optional[str] = None
    api_key_env: str = "GEMINI_API_KEY"
    timeout_seconds: float = 30.0

    @property
    def api_key(self) -> Optional[str]:
        """API key read from the configured environment variable."""
        return os.environ.get(self.api_key_env) or os.environ.get("GOOGLE_API_KEY")


class RetryConfig(BaseModel):
    max_attempts: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 10000
    jitter_ms: int = 500

    @field_validator('max_attempts')
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_attempts must be at least 1")
        return v


class ClassificationConfig(BaseModel):
    single_temperature: float = 0.3
    single_max_output_tokens: int = 2048
    bulk_temperature: float = 0.2
    bulk_max_output_tokens: int = 8192
    # Single result for an input longer than this is treated as a failed split
    segmentation_min_chars: int = 200
    fallback_tag: str = "bulk-import-failed"
    max_fallback_tags: int = 5


class SearchConfig(BaseModel):
    short_query_length: int = 3
    min_expansion_length: int = 2
    expansion_temperature: float = 0.3
    expansion_max_output_tokens: int = 512
    expansion_attempts: int = 1


class ApiConfig(BaseModel):
    host: str = "localhost"
    port: int = 8765


class Config(BaseModel):
    """Main configuration for the devflow daemon."""

    vault_path: Path
    owner_id: str = "anonymous"
    oracle: OracleConfig = Field(default_factory=OracleConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    classification: ClassificationConfig = Field(default_factory=ClassificationConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    @field_validator('vault_path')
    @classmethod
    def validate_vault_path(cls, v: Path) -> Path:
        if isinstance(v, str):
            v = Path(v)
        v = v.expanduser().resolve()
        if not v.exists():
            logger.warning(f"Vault path does not exist, will create: {v}")
            v.mkdir(parents=True, exist_ok=True)
        return v

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Config":
        """Load configuration from YAML file."""
        if config_path is None:
            # Try default locations
            candidates = [
                Path("devflow.yaml"),
                Path.home() / ".config" / "devflow" / "config.yaml",
                Path("/etc/devflow/config.yaml"),
            ]
            for candidate in candidates:
                if candidate.exists():
                    config_path = candidate
                    break
            else:
                raise FileNotFoundError(
                    f"No config file found. Searched: {[str(c) for c in candidates]}"
                )

        logger.info(f"Loading config from: {config_path}")
        with open(config_path, 'r') as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    def save(self, config_path: Path) -> None:
        """Save configuration to YAML file."""
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, 'w') as f:
            yaml.safe_dump(self.model_dump(mode="json"), f, default_flow_style=False)
