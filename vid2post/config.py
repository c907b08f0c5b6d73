"""Run configuration.

The YAML file passed on the command line is the single source of truth for a run:

    directory: ./work
    prompts:
      summary: "Summarize this transcript: {transcript}"
      title: "Write a title for: {transcript}"
      teaser: "Write a teaser for: {transcript}"
      cta: "Write a call to action for: {transcript}"
    ghost:
      url: https://blog.example.com
      key: <admin-api-id>:<hex-secret>

Everything else has defaults. Secrets may be left out of the file and supplied via
environment variables (or a `.env` file):
- GHOST_ADMIN_API_URL / GHOST_ADMIN_API_KEY
- ASSEMBLYAI_API_KEY (transcription.backend: assemblyai)
- OPENAI_API_KEY / GOOGLE_API_KEY / ANTHROPIC_API_KEY / FIREWORKS_API_KEY
  (generation.provider: langchain)
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from vid2post.errors import ConfigError

# Load environment variables (no filesystem side-effects)
load_dotenv()

PLACEHOLDER = "{transcript}"
DEFAULT_FALLBACK_TEXT = "Failed to generate summary"
DEFAULT_CODE_INJECTION_HEAD = "<style>figure.gh-article-image {display:none;}</style>"


class FrozenModel(BaseModel):
    model_config = {"frozen": True}


class PromptTemplates(FrozenModel):
    """Prompt templates; each may contain the `{transcript}` placeholder once."""

    summary: str
    title: str
    teaser: str
    cta: str

    @field_validator("summary", "title", "teaser", "cta")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("prompt template must not be blank")
        return value


class GhostSettings(FrozenModel):
    url: str
    key: str

    @field_validator("url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("key")
    @classmethod
    def _admin_key_shape(cls, value: str) -> str:
        if value.count(":") != 1 or not all(value.split(":")):
            raise ValueError("Ghost admin key must look like '<id>:<secret>'")
        return value


class SourceSettings(FrozenModel):
    id_param: str = "v"
    thumbnail_url_template: str = "https://img.youtube.com/vi/{source_id}/maxresdefault.jpg"


class AcquisitionSettings(FrozenModel):
    yt_dlp: str = "yt-dlp"
    ffmpeg: str = "ffmpeg"
    audio_bitrate: str = "192k"
    timeout_seconds: float = 1800.0


class TranscriptionSettings(FrozenModel):
    backend: Literal["whisper", "assemblyai"] = "whisper"
    command: str = "whisper"
    model: Optional[str] = None
    fail_on_stderr: bool = True
    timeout_seconds: float = 3600.0


class GenerationSettings(FrozenModel):
    provider: Literal["ollama", "langchain"] = "ollama"
    model: str = "llama3"
    endpoint: str = "http://localhost:11434/api/generate"
    timeout_seconds: float = 300.0
    fallback_text: str = DEFAULT_FALLBACK_TEXT


class ThumbnailSettings(FrozenModel):
    timeout_seconds: float = 30.0


class PublishSettings(FrozenModel):
    api_version: str = "v5.0"
    code_injection_head: str = DEFAULT_CODE_INJECTION_HEAD
    timeout_seconds: float = 60.0


class AppConfig(FrozenModel):
    """Validated configuration for one run. Immutable once loaded."""

    directory: Path
    prompts: PromptTemplates
    ghost: GhostSettings
    source: SourceSettings = Field(default_factory=SourceSettings)
    acquisition: AcquisitionSettings = Field(default_factory=AcquisitionSettings)
    transcription: TranscriptionSettings = Field(default_factory=TranscriptionSettings)
    generation: GenerationSettings = Field(default_factory=GenerationSettings)
    thumbnail: ThumbnailSettings = Field(default_factory=ThumbnailSettings)
    publish: PublishSettings = Field(default_factory=PublishSettings)


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    ghost = dict(raw.get("ghost") or {})
    if not ghost.get("url") and os.getenv("GHOST_ADMIN_API_URL"):
        ghost["url"] = os.getenv("GHOST_ADMIN_API_URL")
    if not ghost.get("key") and os.getenv("GHOST_ADMIN_API_KEY"):
        ghost["key"] = os.getenv("GHOST_ADMIN_API_KEY")
    if ghost:
        raw["ghost"] = ghost
    return raw


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc or '<root>'}: {err.get('msg')}")
    return "; ".join(parts)


def config_from_dict(raw: dict[str, Any]) -> AppConfig:
    """Validate an already-parsed mapping (environment overrides applied)."""
    if not isinstance(raw, dict):
        raise ConfigError("Configuration must be a mapping at the top level.")
    try:
        return AppConfig.model_validate(_apply_env_overrides(dict(raw)))
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {_format_validation_error(e)}") from e


def load_config(path: str | Path) -> AppConfig:
    """Read and validate a YAML configuration file."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read configuration file {path}: {e}") from e

    try:
        raw = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Cannot parse configuration file {path}: {e}") from e

    return config_from_dict(raw)
