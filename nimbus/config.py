# ABOUTME: Application settings loaded from the environment and a local .env file.
# ABOUTME: A single Settings object is built at startup and injected into every service.

import os
from collections.abc import Mapping
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from nimbus.errors import ConfigError

VERSION = "1.0.0"

Units = Literal["metric", "imperial"]

# Environment variable -> Settings field
_ENV_FIELDS = {
    "OPENROUTER_API_KEY": "openrouter_api_key",
    "OPENROUTER_MODEL": "openrouter_model",
    "OPENWEATHER_API_KEY": "openweather_api_key",
    "NIMBUS_DEFAULT_UNITS": "default_units",
    "NIMBUS_FALLBACK_CITY": "fallback_city",
    "NIMBUS_HTTP_TIMEOUT": "http_timeout",
    "NIMBUS_LLM_TIMEOUT": "llm_timeout",
    "NIMBUS_HOST": "host",
    "NIMBUS_PORT": "port",
}

_RETRY_ENV_FIELDS = {
    "NIMBUS_RETRY_ATTEMPTS": "max_attempts",
    "NIMBUS_RETRY_BASE_DELAY": "base_delay",
}


class RetryPolicy(BaseModel):
    """Bounded exponential backoff: base_delay, doubling, for at most max_attempts calls."""

    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=1.0, ge=0)
    max_delay: float = Field(default=10.0, ge=0)


class Settings(BaseModel):
    """Validated runtime configuration."""

    openrouter_api_key: str | None = None
    openrouter_model: str = "anthropic/claude-haiku-4.5"
    openweather_api_key: str | None = None
    openweather_base_url: str = "https://api.openweathermap.org/data/2.5"
    geoip_base_url: str = "http://ip-api.com"
    default_units: Units = "metric"
    fallback_city: str = "New York"
    http_timeout: float = Field(default=10.0, gt=0)
    llm_timeout: float = Field(default=20.0, gt=0)
    retry: RetryPolicy = RetryPolicy()
    host: str = "127.0.0.1"
    port: int = 3000

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from environment variables, loading .env first when reading os.environ."""
        if environ is None:
            load_dotenv()
            environ = os.environ

        values: dict = {field: environ[var] for var, field in _ENV_FIELDS.items() if environ.get(var)}
        retry = {field: environ[var] for var, field in _RETRY_ENV_FIELDS.items() if environ.get(var)}
        if retry:
            values["retry"] = retry

        try:
            return cls.model_validate(values)
        except ValidationError as e:
            names = {field: var for var, field in {**_ENV_FIELDS, **_RETRY_ENV_FIELDS}.items()}
            bad = sorted({names.get(str(err["loc"][-1]), str(err["loc"][-1])) for err in e.errors()})
            raise ConfigError(f"Missing or invalid environment variables: {', '.join(bad)}") from e

    @property
    def llm_enabled(self) -> bool:
        return bool(self.openrouter_api_key)

    def require_weather_key(self) -> None:
        """Raise ConfigError when the OpenWeather key is absent; weather lookups cannot work without it."""
        if not self.openweather_api_key:
            raise ConfigError("OPENWEATHER_API_KEY is required. Please set it in your .env file.")
