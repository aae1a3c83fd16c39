"""Configuration management for voicecode.

Loads settings from a YAML configuration file with environment variable
overrides. Supports .env files.
"""

from __future__ import annotations

import enum
import logging
import os
import re
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from voicecode.approval.risk import DEFAULT_APPROVAL_PATTERNS

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/voicecode.yaml")


class SummaryEngineKind(str, enum.Enum):
    """Which summarizer backs the summary engine."""

    HEURISTIC = "heuristic"
    LLM = "llm"


_ENGINE_ALIASES = {"ollama": "llm", "model": "llm"}


class RunnerConfig(BaseModel):
    command: str = Field(default="echo", description="Executable spawned per prompt")
    args: list[str] = Field(default_factory=list)
    timeout: float = Field(default=5.0, gt=0, description="Wall-clock limit in seconds")
    max_input: int = Field(default=2000, gt=0)
    max_stdout: int = Field(default=64 * 1024, gt=0)
    max_stderr: int = Field(default=16 * 1024, gt=0)

    @field_validator("args", mode="before")
    @classmethod
    def _split_args(cls, value: object) -> object:
        if isinstance(value, str):
            return value.split()
        return value


class PtyConfig(BaseModel):
    shell: str = Field(default_factory=lambda: os.environ.get("SHELL") or "/bin/bash")
    args: list[str] = Field(default_factory=lambda: ["-i"])
    cwd: str | None = Field(default=None)
    cols: int = Field(default=120, gt=0)
    rows: int = Field(default=30, gt=0)
    max_buffer: int = Field(default=100 * 1024, gt=0, description="Ring buffer size in bytes")
    subscriber_queue_size: int = Field(default=1024, gt=0)

    @field_validator("args", mode="before")
    @classmethod
    def _split_args(cls, value: object) -> object:
        if isinstance(value, str):
            return value.split()
        return value


class SummarizerConfig(BaseModel):
    engine: SummaryEngineKind = Field(default=SummaryEngineKind.HEURISTIC)
    provider: Literal["ollama", "openai"] = Field(default="ollama")
    base_url: str = Field(default="http://127.0.0.1:11434")
    model: str = Field(default="qwen2.5:3b-instruct-q4_0")
    chunk_size: int = Field(default=6000, gt=0)
    max_input: int = Field(default=200_000, gt=0)
    timeout: float = Field(default=15.0, gt=0)
    debounce: float = Field(default=0.5, ge=0)

    @field_validator("engine", mode="before")
    @classmethod
    def _resolve_alias(cls, value: object) -> object:
        if isinstance(value, str):
            lowered = value.strip().lower()
            return _ENGINE_ALIASES.get(lowered, lowered)
        return value


class ApprovalConfig(BaseModel):
    patterns: list[str] = Field(default_factory=lambda: list(DEFAULT_APPROVAL_PATTERNS))
    always: bool = Field(default=False, description="Gate every prompt behind approval")
    timeout: float = Field(default=15.0, ge=0, description="Seconds before auto-deny; 0 waits forever")

    @field_validator("patterns", mode="before")
    @classmethod
    def _split_patterns(cls, value: object) -> object:
        if isinstance(value, str):
            value = [p.strip() for p in re.split(r"[,\n]", value) if p.strip()]
        return value

    @field_validator("patterns")
    @classmethod
    def _check_patterns(cls, value: list[str]) -> list[str]:
        if not value:
            return list(DEFAULT_APPROVAL_PATTERNS)
        for pattern in value:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"Invalid approval pattern {pattern!r}: {e}") from e
        return value


class ServerConfig(BaseModel):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=4001, ge=1, le=65535)


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO")
    format: str = Field(
        default="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    file: str | None = Field(default=None)


class Settings(BaseSettings):
    """Root configuration for the voicecode backend.

    Loads from YAML file and supports environment variable overrides.
    Reads .env files automatically.
    """

    model_config = {
        "env_prefix": "VOICECODE_",
        "env_nested_delimiter": "__",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    openai_api_key: SecretStr = Field(default=SecretStr(""))

    runner: RunnerConfig = Field(default_factory=RunnerConfig)
    pty: PtyConfig = Field(default_factory=PtyConfig)
    summarizer: SummarizerConfig = Field(default_factory=SummarizerConfig)
    approval: ApprovalConfig = Field(default_factory=ApprovalConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Init kwargs carry the YAML file, which ranks below the environment.
        return env_settings, dotenv_settings, init_settings, file_secret_settings


def load_settings(config_path: Path | str | None = None) -> Settings:
    """Load settings from YAML + .env + environment variables.

    Priority: env vars > .env file > YAML file > defaults
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    _load_dotenv()

    yaml_data = {}
    if path.exists():
        with open(path) as f:
            yaml_data = yaml.safe_load(f) or {}
        logger.info("Loaded configuration from %s", path)
    else:
        logger.warning("Config file %s not found, using defaults + env vars", path)

    _apply_env_overrides(yaml_data)

    return Settings(**yaml_data)


def _load_dotenv() -> None:
    """Load .env file into os.environ if it exists."""
    env_path = Path(".env")
    if not env_path.exists():
        return
    with open(env_path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" in line:
                key, _, value = line.partition("=")
                key = key.strip()
                value = value.strip()
                if not os.environ.get(key):
                    os.environ[key] = value


def _apply_env_overrides(yaml_data: dict) -> None:
    """Apply environment variable overrides for non-prefixed vars.

    These replace the YAML values; prefixed VOICECODE_* variables still win.
    """
    ollama_host = os.environ.get("OLLAMA_HOST", "")
    openai_key = os.environ.get("OPENAI_API_KEY", "")

    if openai_key:
        yaml_data["openai_api_key"] = openai_key

    if ollama_host:
        if not ollama_host.startswith(("http://", "https://")):
            ollama_host = f"http://{ollama_host}"
        summarizer = yaml_data.get("summarizer") or {}
        summarizer["base_url"] = ollama_host
        yaml_data["summarizer"] = summarizer
