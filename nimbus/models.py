# ABOUTME: Pydantic models for parsed intents, normalized weather records, summaries and locations.
# ABOUTME: Records are immutable; JSON uses camelCase aliases matching the model and API contracts.

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, ValidationInfo, field_validator, model_validator
from pydantic.alias_generators import to_camel

from nimbus.config import Units

PLACEHOLDER_CITY = "Unknown"


class Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class DateSpec(Record):
    """Which day(s) the user asked about."""

    kind: Literal["today", "tomorrow", "range"]
    days: PositiveInt | None = None
    weekend: bool | None = None

    @model_validator(mode="before")
    @classmethod
    def _default_range_days(cls, data):
        if isinstance(data, dict) and data.get("kind") == "range" and data.get("days") is None:
            data = {**data, "days": 2 if data.get("weekend") else 3}
        return data


class Intent(Record):
    """Structured form of a natural-language weather query."""

    cities: list[str] = Field(min_length=1)
    date: DateSpec
    units: Units
    extras: list[str] = []
    use_ip_location: bool = False
    compare: bool = False

    @field_validator("cities")
    @classmethod
    def _clean_cities(cls, cities: list[str]) -> list[str]:
        cleaned = [" ".join(c.split()) for c in cities]
        if any(not c for c in cleaned):
            raise ValueError("city names must not be blank")
        return cleaned

    @field_validator("extras")
    @classmethod
    def _dedupe_extras(cls, extras: list[str]) -> list[str]:
        return list(dict.fromkeys(e.strip().lower() for e in extras if e.strip()))

    @field_validator("compare")
    @classmethod
    def _compare_needs_two_cities(cls, compare: bool, info: ValidationInfo) -> bool:
        if compare and len(info.data.get("cities", [])) < 2:
            raise ValueError("compare requires at least two cities")
        return compare

    def with_resolved_city(self, city: str) -> "Intent":
        """Return a copy with the placeholder city replaced by a resolved one."""
        if PLACEHOLDER_CITY not in self.cities:
            return self
        cities = [city if c == PLACEHOLDER_CITY else c for c in self.cities]
        return self.model_copy(update={"cities": list(dict.fromkeys(cities))})


class CurrentConditions(Record):
    temperature: float
    feels_like: float
    humidity: int = Field(ge=0, le=100)
    pressure: float
    visibility: int | None = None
    wind_speed: float
    wind_direction_degrees: int = Field(ge=0, le=359)
    description: str
    icon_id: str
    condition_main: str
    observed_at: datetime


class DailyForecast(Record):
    date: date
    temperature_min: float
    temperature_max: float
    description: str
    icon_id: str
    condition_main: str
    humidity: int
    wind_speed: float
    precipitation_probability: int = Field(ge=0, le=100)


class NormalizedWeather(Record):
    """Provider-agnostic weather record; all numbers are in `units`."""

    city: str
    country: str
    units: Units
    current: CurrentConditions | None = None
    forecast: list[DailyForecast] | None = None


class WeatherSummary(Record):
    briefing: str = Field(min_length=1)
    tips: list[str] = []


class GeoLocation(Record):
    """Location resolved from an IP address."""

    city: str
    country: str
    region: str = ""
    lat: float
    lon: float
    timezone: str = "UTC"


class QueryResult(Record):
    """Everything a renderer needs to answer one query."""

    query: str
    intent: Intent
    location: str
    weather: list[NormalizedWeather]
    failed_cities: list[str] = []
    summary: WeatherSummary | None = None

    @property
    def is_comparison(self) -> bool:
        return self.intent.compare and len(self.intent.cities) > 1
