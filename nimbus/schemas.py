# ABOUTME: Request models for the HTTP API and the shared response envelope.
# ABOUTME: Validation failures are turned into itemized field errors by the web layer.

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field, field_validator

from nimbus.config import Units


class WeatherQuery(BaseModel):
    query: str = Field(min_length=1)
    units: Units | None = None
    summary: bool = False

    @field_validator("query")
    @classmethod
    def _not_blank(cls, query: str) -> str:
        if not query.strip():
            raise ValueError("Query is required")
        return query.strip()


class ForecastQuery(BaseModel):
    city: str = Field(min_length=1)
    units: Units | None = None
    days: int = Field(default=3, ge=1, le=10)
    summary: bool = False


class CompareQuery(BaseModel):
    cities: list[str] = Field(min_length=2)
    units: Units | None = None
    summary: bool = False

    @field_validator("cities")
    @classmethod
    def _no_blank_cities(cls, cities: list[str]) -> list[str]:
        if any(not c.strip() for c in cities):
            raise ValueError("City names must not be blank")
        return [c.strip() for c in cities]


def envelope(
    data: Any = None,
    *,
    success: bool = True,
    error: str | None = None,
    message: str | None = None,
) -> dict:
    """The {success, data?, error?, message?, timestamp} wrapper every response uses."""
    body: dict[str, Any] = {"success": success}
    if data is not None:
        body["data"] = data
    if error is not None:
        body["error"] = error
    if message is not None:
        body["message"] = message
    body["timestamp"] = datetime.now(timezone.utc).isoformat()
    return body
