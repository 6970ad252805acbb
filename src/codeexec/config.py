"""Engine settings and the YAML loader that produces them."""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from codeexec.engine.errors import ConfigError
from codeexec.engine.models import LanguageProfile, SupportedLanguage
from codeexec.engine.profiles import DEFAULT_PROFILES, parse_memory_limit

CONFIG_ENV_VAR = "CODEEXEC_CONFIG"


class TelemetrySettings(BaseModel):
    """Optional telemetry configuration."""

    enabled: bool = False
    otlp_endpoint: str | None = None


class LanguageOverride(BaseModel):
    """Per-language changes applied on top of the built-in profile."""

    image: str | None = None
    memory_limit: str | None = None
    cpu_limit: float | None = Field(default=None, gt=0)
    timeout_ms: int | None = Field(default=None, gt=0)

    @field_validator("memory_limit")
    @classmethod
    def _check_memory(cls, value: str | None) -> str | None:
        if value is not None:
            parse_memory_limit(value)
        return value


class EngineSettings(BaseModel):
    """Top-level engine configuration."""

    docker_binary: str = Field(default="docker", description="Container runtime CLI.")
    command_timeout: float = Field(default=30.0, gt=0, description="Bound on each CLI call.")
    stop_grace_period: int = Field(default=5, ge=0, description="Seconds before stop kills.")
    container_prefix: str = Field(default="codeexec")
    scratch_size: str = Field(default="64m", description="Size of the writable tmpfs.")
    max_output_bytes: int = Field(default=1024 * 1024, gt=0, description="Per-stream cap.")
    languages: dict[SupportedLanguage, LanguageOverride] = Field(default_factory=dict)
    extra_patterns: dict[SupportedLanguage, list[str]] = Field(default_factory=dict)
    log_level: str = "INFO"
    telemetry: TelemetrySettings | None = None

    @field_validator("scratch_size")
    @classmethod
    def _check_scratch(cls, value: str) -> str:
        parse_memory_limit(value)
        return value


def build_profiles(settings: EngineSettings) -> dict[SupportedLanguage, LanguageProfile]:
    """Apply *settings* overrides to the built-in language profiles."""
    return _apply_overrides(DEFAULT_PROFILES, settings.languages)


def _apply_overrides(
    base: Mapping[SupportedLanguage, LanguageProfile],
    overrides: Mapping[SupportedLanguage, LanguageOverride],
) -> dict[SupportedLanguage, LanguageProfile]:
    profiles = dict(base)
    for language, override in overrides.items():
        changes = override.model_dump(exclude_none=True)
        if changes and language in profiles:
            profiles[language] = profiles[language].model_copy(update=changes)
    return profiles


class SettingsLoader:
    """Load and validate a settings YAML file into :class:`EngineSettings`."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @classmethod
    def from_env(cls) -> SettingsLoader | None:
        """Loader for ``$CODEEXEC_CONFIG``, or ``None`` when it is unset."""
        value = os.environ.get(CONFIG_ENV_VAR)
        return cls(Path(value)) if value else None

    def load(self) -> EngineSettings:
        """Read YAML, interpolate env vars, and validate.

        Environment variables in the form ``${VAR}`` or ``$VAR`` are expanded
        using :func:`os.path.expandvars` before YAML parsing.

        Raises:
            ConfigError: On read errors, YAML parse errors or schema failures.
        """
        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"Cannot read {self._path}: {exc}") from exc

        expanded = os.path.expandvars(raw)

        try:
            data: Any = yaml.safe_load(expanded)
        except yaml.YAMLError as exc:
            raise ConfigError(f"YAML parse error: {exc}") from exc

        if data is None:
            return EngineSettings()
        if not isinstance(data, dict):
            raise ConfigError("Settings YAML must be a mapping")

        try:
            return EngineSettings.model_validate(data)
        except ValidationError as exc:
            raise ConfigError(str(exc)) from exc
