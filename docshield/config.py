"""Application configuration via Pydantic Settings.

All configuration is driven by environment variables prefixed with
``DOCSHIELD_``.  Complex values (lists) are supplied as JSON, e.g.
``DOCSHIELD_HIDDEN_COLORS='["FFFFFF", "BACKGROUND1"]'``.

The three detection tunables are:

* ``injection_phrases`` (plus an optional ``phrases_file``): the phrase list
  used by the keyword rule, the sanitizer, and the highlighter.
* ``micro_text_threshold_pt``: runs strictly smaller than this are micro-text.
* ``hidden_colors``: run colours treated as background-coloured text.

Usage::

    from docshield.config import get_settings

    settings = get_settings()
    print(settings.micro_text_threshold_pt)

The ``get_settings`` function is cached with ``functools.lru_cache``. To override
settings in tests, construct :class:`Settings` directly or set the relevant
environment variables and call ``get_settings.cache_clear()``.
"""
from __future__ import annotations

import functools
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from docshield.core.patterns.injection_phrases import BUILTIN_PHRASES, load_phrases


class Settings(BaseSettings):
    """DocShield application settings.

    Environment variables are read case-insensitively. A ``.env`` file in the
    working directory is loaded automatically when present.
    """

    model_config = SettingsConfigDict(
        env_prefix="DOCSHIELD_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Detection
    injection_phrases: list[str] = Field(
        default_factory=lambda: list(BUILTIN_PHRASES),
        description="Phrases flagged as prompt-injection attempts (case-insensitive)",
    )
    phrases_file: Optional[str] = Field(
        default=None,
        description="Optional JSON file of extra phrases merged after injection_phrases",
    )
    micro_text_threshold_pt: float = Field(
        default=4.0,
        gt=0,
        description="Runs with a font size in (0, threshold) points are micro-text",
    )
    hidden_colors: list[str] = Field(
        default_factory=lambda: ["FFFFFF", "FFFFFF00"],
        description="Run colours (hex or theme token) treated as hidden text",
    )
    dedupe_issues_per_run: bool = Field(
        default=False,
        description="Keep only the first highest-severity issue per run",
    )

    # Sanitizer
    redaction_token: str = Field(
        default="[REMOVED]",
        min_length=1,
        description="Replacement token for redacted phrases",
    )

    # Worker thread pool
    extractor_max_workers: int = Field(
        default=4,
        ge=1,
        description="Thread pool size for CPU-bound document extraction",
    )

    # HTTP surface
    max_upload_bytes: int = Field(
        default=25 * 1024 * 1024,
        ge=1,
        description="Largest accepted upload in bytes",
    )

    # Environment
    log_level: str = Field(default="INFO", description="Root logging level")
    environment: str = Field(
        default="production",
        description="Deployment environment: development, staging, or production",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode (never set True in production)",
    )

    @field_validator("hidden_colors")
    @classmethod
    def normalise_hidden_colors(cls, v: list[str]) -> list[str]:
        return [c.strip().lstrip("#").upper() for c in v if c.strip()]

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level {v!r}")
        return level

    def resolved_phrases(self) -> list[str]:
        """Return ``injection_phrases`` merged with ``phrases_file``, deduplicated."""
        return load_phrases(self.phrases_file, base=self.injection_phrases)


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached application settings singleton.

    The first call reads environment variables (and ``.env``). Subsequent calls
    return the cached instance. Clear the cache with ``get_settings.cache_clear()``
    between tests.
    """
    return Settings()
