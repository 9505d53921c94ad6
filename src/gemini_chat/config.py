"""Configuration loading and validation for the Gemini chat session manager."""

from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass
import logging
import os
from pathlib import Path
from typing import Any, Literal

from platformdirs import user_config_path, user_state_path
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

from .exceptions import ConfigValidationError

import tomllib  # stdlib since Python 3.11 (project requires >=3.11)

LOGGER = logging.getLogger(__name__)

APP_NAME = "gemini-chat"
CONFIG_DIR = user_config_path(APP_NAME)
CONFIG_PATH = CONFIG_DIR / "config.toml"
STATE_DIR = user_state_path(APP_NAME)

API_KEY_ENV = "GEMINI_API_KEY"
DEFAULT_MODEL = "gemini-1.5-pro"
VALID_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}

Provider = Literal["gemini", "ollama"]


def _require_string(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError("Expected a string value.")
    normalized = value.strip()
    if not normalized:
        raise ValueError("String value must not be empty.")
    return normalized


class AppConfig(BaseModel):
    """Application metadata."""

    title: str = "Gemini Chat"

    @field_validator("title", mode="before")
    @classmethod
    def _validate_title(cls, value: Any) -> str:
        return _require_string(value)


class BackendConfig(BaseModel):
    """Generative backend selection, credential, and model settings."""

    provider: Provider = "gemini"
    api_key: str = ""
    model: str = DEFAULT_MODEL
    system_instruction: str = ""
    max_output_tokens: int = Field(default=1000, ge=1, le=1_000_000)
    ollama_host: str = "http://localhost:11434"
    timeout: int = Field(default=120, ge=1, le=3600)

    @field_validator("model", "ollama_host", mode="before")
    @classmethod
    def _validate_required_string(cls, value: Any) -> str:
        return _require_string(value)

    @field_validator("api_key", "system_instruction", mode="before")
    @classmethod
    def _normalize_optional_string(cls, value: Any) -> str:
        if value is None:
            return ""
        if not isinstance(value, str):
            raise ValueError("Expected a string value.")
        return value.strip()


class AttachmentsConfig(BaseModel):
    """Inline image attachment policy."""

    max_bytes: int = Field(default=15 * 1024 * 1024, ge=1, le=100 * 1024 * 1024)
    default_caption: str = "Please describe this image."

    @field_validator("default_caption", mode="before")
    @classmethod
    def _validate_caption(cls, value: Any) -> str:
        return _require_string(value)


class ExportConfig(BaseModel):
    """Transcript export destination."""

    filename: str = "gemini-chat.txt"
    directory: str = "~"

    @field_validator("filename", "directory", mode="before")
    @classmethod
    def _validate_path_string(cls, value: Any) -> str:
        normalized = _require_string(value)
        return normalized

    @field_validator("filename")
    @classmethod
    def _validate_plain_filename(cls, value: str) -> str:
        if Path(value).name != value:
            raise ValueError("export.filename must not contain directories.")
        return value


class LoggingConfig(BaseModel):
    """Logging behavior and output destinations."""

    level: str = "INFO"
    structured: bool = True
    log_to_file: bool = False
    log_file_path: str = str(STATE_DIR / "app.log")

    @field_validator("level", mode="before")
    @classmethod
    def _validate_level(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("Logging level must be a string.")
        normalized = value.strip().upper()
        if normalized not in VALID_LOG_LEVELS:
            raise ValueError(f"Unsupported log level {normalized!r}.")
        return normalized

    @field_validator("log_file_path", mode="before")
    @classmethod
    def _validate_log_file_path(cls, value: Any) -> str:
        return _require_string(value)


class Config(BaseModel):
    """Root configuration model for all sections."""

    model_config = ConfigDict(populate_by_name=True)
    app: AppConfig = AppConfig()
    backend: BackendConfig = BackendConfig()
    attachments: AttachmentsConfig = AttachmentsConfig()
    export: ExportConfig = ExportConfig()
    logging: LoggingConfig = LoggingConfig()


@dataclass(frozen=True)
class ChatSettings:
    """Read-only values threaded into each send, estimate, and assemble call."""

    api_key: str = ""
    model: str = DEFAULT_MODEL
    system_instruction: str = ""
    provider: Provider = "gemini"
    max_output_tokens: int = 1000
    ollama_host: str = "http://localhost:11434"
    timeout: int = 120

    @property
    def requires_credential(self) -> bool:
        return self.provider == "gemini"

    @property
    def has_credential(self) -> bool:
        return bool(self.api_key.strip())


DEFAULT_CONFIG: dict[str, dict[str, Any]] = Config().model_dump(by_alias=True)


def ensure_config_dir(config_dir: Path | None = None) -> Path:
    """Ensure that the config directory exists and return its path."""
    directory = config_dir or CONFIG_DIR
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        LOGGER.warning("Unable to create config directory %s: %s", directory, exc)
    return directory


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override values onto base values."""
    merged: dict[str, Any] = deepcopy(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _enforce_private_permissions(path: Path) -> None:
    """Best-effort enforcement of private file permissions on POSIX systems."""
    if os.name != "posix" or not path.exists():
        return
    try:
        path.chmod(0o600)
    except OSError as exc:
        LOGGER.warning("Unable to enforce 0600 permissions for %s: %s", path, exc)


def _safe_default_config() -> dict[str, dict[str, Any]]:
    return deepcopy(DEFAULT_CONFIG)


def _validate_config(raw: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Validate merged config and fallback to safe defaults when possible."""
    try:
        config = Config.model_validate(raw)
        return config.model_dump(by_alias=True)
    except ValidationError as exc:
        LOGGER.warning("Configuration validation failed, using safe defaults: %s", exc)
        return _safe_default_config()
    except Exception as exc:  # noqa: BLE001 - unexpected model construction failure.
        raise ConfigValidationError(f"Unable to validate configuration: {exc}") from exc


def _apply_environment(config: dict[str, dict[str, Any]]) -> dict[str, dict[str, Any]]:
    """Fill an empty api_key from the environment."""
    backend = config["backend"]
    if not backend.get("api_key"):
        env_key = os.environ.get(API_KEY_ENV, "").strip()
        if env_key:
            backend["api_key"] = env_key
    return config


def load_config(config_path: Path | None = None) -> dict[str, dict[str, Any]]:
    """
    Load configuration from TOML, merge with defaults, and validate.

    The optional ``config_path`` argument is intended for tests and tooling.
    """
    target_path = config_path or CONFIG_PATH
    ensure_config_dir(target_path.parent)

    raw_data: dict[str, Any] = {}
    if target_path.exists():
        _enforce_private_permissions(target_path)
        try:
            raw_data = tomllib.loads(target_path.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError) as exc:
            LOGGER.warning("Failed to parse config at %s: %s", target_path, exc)
            raw_data = {}

    merged = _deep_merge(DEFAULT_CONFIG, raw_data)
    return _apply_environment(_validate_config(merged))


def settings_from_config(config: dict[str, dict[str, Any]]) -> ChatSettings:
    """Snapshot the backend section as the settings passed to the session."""
    backend = config["backend"]
    return ChatSettings(
        api_key=backend["api_key"],
        model=backend["model"],
        system_instruction=backend["system_instruction"],
        provider=backend["provider"],
        max_output_tokens=backend["max_output_tokens"],
        ollama_host=backend["ollama_host"],
        timeout=backend["timeout"],
    )
