"""Application settings.

Values come from environment variables with defaults that work for local
development, so the service starts without any configuration. The OpenAI
backend is enabled automatically as soon as ``OPENAI_API_KEY`` is set.
"""
from __future__ import annotations
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


@dataclass
class Settings:
    upload_dir: Path = Path("uploads")
    temp_dir: Path = Path("temp")
    max_upload_size: int = 200 * 1024 * 1024  # 200MB per file
    max_upload_files: int = 100
    upload_retention_seconds: int = 3600
    cleanup_interval_seconds: int = 300

    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_timeout: float = 10.0
    openai_max_tokens: int = 150
    openai_temperature: float = 0.7
    openai_enabled: bool = False

    description_max_content_length: int = 2000
    description_default: str = "SCORM learning module"
    description_request_delay: float = 0.1

    cors_origins: List[str] = field(
        default_factory=lambda: ["http://localhost:3000"]
    )
    environment: str = "development"
    app_version: str = "1.0.0"

    @classmethod
    def from_env(cls) -> "Settings":
        api_key = os.getenv("OPENAI_API_KEY", "").strip()
        # A configured key turns the generator on unless explicitly disabled
        openai_enabled = _env_bool("OPENAI_ENABLED", bool(api_key))

        return cls(
            upload_dir=Path(os.getenv("UPLOAD_DIR", "uploads")),
            temp_dir=Path(os.getenv("TEMP_DIR", "temp")),
            max_upload_size=_env_int("MAX_UPLOAD_SIZE", 200 * 1024 * 1024),
            max_upload_files=_env_int("MAX_UPLOAD_FILES", 100),
            upload_retention_seconds=_env_int("UPLOAD_RETENTION_SECONDS", 3600),
            cleanup_interval_seconds=_env_int("CLEANUP_INTERVAL_SECONDS", 300),
            openai_api_key=api_key,
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            openai_timeout=_env_float("OPENAI_TIMEOUT", 10.0),
            openai_max_tokens=_env_int("OPENAI_MAX_TOKENS", 150),
            openai_temperature=_env_float("OPENAI_TEMPERATURE", 0.7),
            openai_enabled=openai_enabled and bool(api_key),
            description_max_content_length=_env_int(
                "DESCRIPTION_MAX_CONTENT_LENGTH", 2000
            ),
            description_default=os.getenv(
                "DESCRIPTION_DEFAULT", "SCORM learning module"
            ),
            description_request_delay=_env_float(
                "DESCRIPTION_REQUEST_DELAY", 0.1
            ),
            cors_origins=os.getenv(
                "CORS_ORIGINS", "http://localhost:3000"
            ).split(","),
            environment=os.getenv("ENVIRONMENT", "development"),
            app_version=os.getenv("APP_VERSION", "1.0.0"),
        )

    def ensure_directories(self) -> None:
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        self.temp_dir.mkdir(parents=True, exist_ok=True)


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return the process-wide settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings
