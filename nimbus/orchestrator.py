# ABOUTME: Runs a query end to end: parse intent, resolve location, fetch weather, summarize.
# ABOUTME: Shared by the terminal and HTTP surfaces; they differ only in the location fallback.

import asyncio
import logging
from collections.abc import Awaitable, Callable

from nimbus.config import Units
from nimbus.deps import NimbusDeps
from nimbus.errors import GeoIPError, ParseError, ServiceError, SummaryError, ValidationError
from nimbus.intent import parse_intent_fallback
from nimbus.models import DateSpec, Intent, NormalizedWeather, QueryResult, WeatherSummary

logger = logging.getLogger(__name__)


def requested_days(date: DateSpec) -> int:
    """Number of days a date spec asks for; tomorrow counts as one day."""
    if date.kind in ("today", "tomorrow"):
        return 1
    if date.weekend:
        return date.days or 2
    return date.days or 3


class QueryOrchestrator:
    """Sequences the services behind one natural-language query.

    `fallback_city` decides what happens when IP geolocation fails: with a
    fallback the query continues for that city, without one it fails.
    """

    def __init__(self, deps: NimbusDeps, *, fallback_city: str | None = None):
        self._deps = deps
        self._fallback_city = fallback_city

    async def process_query(
        self,
        query: str,
        *,
        default_units: Units | None = None,
        with_summary: bool = True,
        client_ip: str | None = None,
    ) -> QueryResult:
        if not query or not query.strip():
            raise ValidationError("Query is required", field="query", value=query)
        units = default_units or self._deps.settings.default_units

        intent = await self.parse_intent(query, units)
        intent = await self.resolve_location(intent, client_ip)
        weather, failed = await self.fetch_weather(intent)

        summary = None
        if with_summary:
            summary = await self.summarize(weather[0], intent.extras)

        return QueryResult(
            query=query,
            intent=intent,
            location=intent.cities[0],
            weather=weather,
            failed_cities=failed,
            summary=summary,
        )

    async def parse_intent(self, query: str, default_units: Units) -> Intent:
        try:
            return await self._deps.intent_parser.parse(query, default_units)
        except ParseError as e:
            logger.warning("AI parsing failed, using fallback parser: %s", e)
            return parse_intent_fallback(query, default_units)

    async def resolve_location(self, intent: Intent, client_ip: str | None = None) -> Intent:
        """Replace the placeholder city with the caller's IP location when the intent asks for it."""
        if not intent.use_ip_location:
            return intent

        geoip = self._deps.geoip
        try:
            location = await (geoip.get_location_by_ip(client_ip) if client_ip else geoip.get_current_location())
            city = location.city
        except GeoIPError as e:
            if self._fallback_city is None:
                raise ServiceError(f"Failed to resolve your location: {e}", origin="geoip") from e
            logger.warning("IP geolocation failed, using %s as fallback: %s", self._fallback_city, e)
            city = self._fallback_city

        return intent.with_resolved_city(city)

    async def fetch_weather(self, intent: Intent) -> tuple[list[NormalizedWeather], list[str]]:
        """Fetch weather for the intent's cities; returns (results, cities that failed)."""
        if intent.compare and len(intent.cities) >= 2:
            return await self._fan_out(
                intent.cities,
                lambda city: self.fetch_for_city(city, intent.date, intent.units),
            )
        return [await self.fetch_for_city(intent.cities[0], intent.date, intent.units)], []

    async def fetch_for_city(self, city: str, date: DateSpec, units: Units) -> NormalizedWeather:
        weather = self._deps.weather
        if date.kind == "today":
            return await weather.get_current_weather(city, units)

        if date.kind == "tomorrow":
            # No direct "tomorrow" endpoint: fetch two days and keep the second
            result = await weather.get_forecast(city, 2, units)
            if result.forecast and len(result.forecast) > 1:
                return result.model_copy(update={"forecast": [result.forecast[1]]})
            return result

        return await weather.get_forecast(city, requested_days(date), units)

    async def compare_cities(self, cities: list[str], units: Units) -> tuple[list[NormalizedWeather], list[str]]:
        """Current weather for several cities at once; succeeds if any city does."""
        return await self._fan_out(cities, lambda city: self._deps.weather.get_current_weather(city, units))

    async def summarize(self, weather: NormalizedWeather, extras: list[str]) -> WeatherSummary | None:
        """Summary for `weather`, or None when the model fails."""
        try:
            return await self._deps.summarizer.generate(weather, extras)
        except SummaryError as e:
            logger.warning("Failed to generate AI summary: %s", e)
            return None

    async def _fan_out(
        self,
        cities: list[str],
        fetch: Callable[[str], Awaitable[NormalizedWeather]],
    ) -> tuple[list[NormalizedWeather], list[str]]:
        results = await asyncio.gather(*(fetch(city) for city in cities), return_exceptions=True)

        weather: list[NormalizedWeather] = []
        failed: list[str] = []
        errors: list[BaseException] = []
        for city, result in zip(cities, results):
            if isinstance(result, BaseException):
                logger.warning("Failed to fetch weather for %s: %s", city, result)
                failed.append(city)
                errors.append(result)
            else:
                weather.append(result)

        if not weather:
            raise ServiceError("Failed to fetch weather data for any city", origin="openweather") from errors[0]
        return weather, failed
