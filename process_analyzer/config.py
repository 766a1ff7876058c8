from __future__ import annotations

import os
from dataclasses import dataclass, field

DEFAULT_WORKDAY_HOURS = 8
DEFAULT_MAX_FILES = 5
DEFAULT_MAX_FILE_BYTES = 15 * 1024 * 1024
DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://127.0.0.1:3000"

PROVIDER_MODELS = {
    "anthropic": "claude-3-7-sonnet-20250219",
    "openai": "gpt-4.1-mini",
    "gemini": "gemini-1.5-flash",
}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


@dataclass(frozen=True)
class ProviderSettings:
    name: str
    api_key: str | None
    model: str


@dataclass(frozen=True)
class Settings:
    primary_provider: str
    fallback_provider: str | None
    providers: dict[str, ProviderSettings]
    document_temperature: float = 0.2
    workflow_temperature: float = 0.3
    optimization_temperature: float = 0.3
    workday_hours: int = DEFAULT_WORKDAY_HOURS
    max_files: int = DEFAULT_MAX_FILES
    max_file_bytes: int = DEFAULT_MAX_FILE_BYTES
    environment: str = "production"
    cors_allowed_origins: list[str] = field(default_factory=list)

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    def provider(self, name: str | None) -> ProviderSettings | None:
        if not name:
            return None
        return self.providers.get(name)


def load_settings() -> Settings:
    """Read settings from the environment. Invalid numbers fall back to defaults."""

    providers = {
        name: ProviderSettings(
            name=name,
            api_key=os.getenv(f"{name.upper()}_API_KEY") or None,
            model=os.getenv(f"{name.upper()}_MODEL", default_model),
        )
        for name, default_model in PROVIDER_MODELS.items()
    }

    primary = os.getenv("PROCESS_PRIMARY_PROVIDER", "anthropic").strip().lower()
    fallback = os.getenv("PROCESS_FALLBACK_PROVIDER", "openai").strip().lower() or None
    if fallback == primary:
        fallback = None

    return Settings(
        primary_provider=primary,
        fallback_provider=fallback,
        providers=providers,
        document_temperature=_env_float("DOCUMENT_TEMPERATURE", 0.2),
        workflow_temperature=_env_float("WORKFLOW_TEMPERATURE", 0.3),
        optimization_temperature=_env_float("OPTIMIZATION_TEMPERATURE", 0.3),
        workday_hours=_env_int("PROCESS_WORKDAY_HOURS", DEFAULT_WORKDAY_HOURS),
        max_files=_env_int("PROCESS_MAX_FILES", DEFAULT_MAX_FILES),
        max_file_bytes=_env_int("PROCESS_MAX_FILE_BYTES", DEFAULT_MAX_FILE_BYTES),
        environment=os.getenv("PROCESS_ENV", "production").strip().lower(),
        cors_allowed_origins=[
            origin.strip()
            for origin in os.getenv("PROCESS_CORS_ALLOWED_ORIGINS", DEFAULT_CORS_ORIGINS).split(",")
            if origin.strip()
        ],
    )
