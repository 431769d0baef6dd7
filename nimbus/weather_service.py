# ABOUTME: Service layer for OpenWeatherMap current-conditions and 5-day/3-hour forecast calls.
# ABOUTME: Normalizes provider payloads and aggregates 3-hour samples into daily summaries.

import math
from collections import Counter, defaultdict
from datetime import date, datetime, timezone

import httpx

from nimbus.config import Settings, Units
from nimbus.errors import ProviderError, ProviderErrorKind
from nimbus.models import CurrentConditions, DailyForecast, NormalizedWeather
from nimbus.retry import is_transient_http_error, retrying

SAMPLES_PER_DAY = 8
MAX_SAMPLES = 40

FALLBACK_DESCRIPTION = "Unknown"
FALLBACK_MAIN = "Clear"
FALLBACK_ICON = "01d"

_STATUS_KINDS = {
    401: (ProviderErrorKind.INVALID_CREDENTIALS, "Invalid OpenWeather API key. Please check OPENWEATHER_API_KEY."),
    404: (ProviderErrorKind.LOCATION_NOT_FOUND, "City not found. Please check the city name and try again."),
    429: (ProviderErrorKind.RATE_LIMITED, "OpenWeather API rate limit exceeded. Please try again later."),
}


class OpenWeatherClient:
    """Fetches weather from OpenWeatherMap in the caller's unit system."""

    def __init__(self, client: httpx.AsyncClient, settings: Settings):
        self._client = client
        self._settings = settings

    async def get_current_weather(self, city: str, units: Units) -> NormalizedWeather:
        data = await self._request("/weather", {"q": city, "units": units}, city)
        return parse_current_weather(data, units)

    async def get_forecast(self, city: str, days: int, units: Units) -> NormalizedWeather:
        """Daily forecast for `days` days, built from 3-hour samples."""
        params = {"q": city, "units": units, "cnt": min(days * SAMPLES_PER_DAY, MAX_SAMPLES)}
        data = await self._request("/forecast", params, city)
        try:
            return NormalizedWeather(
                city=data["city"]["name"],
                country=data["city"].get("country", ""),
                units=units,
                forecast=aggregate_forecast(data.get("list", []), days),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ProviderError(ProviderErrorKind.UNKNOWN, f"Unexpected forecast payload for {city}") from e

    async def _request(self, path: str, params: dict, city: str) -> dict:
        fetch = retrying(self._settings.retry, is_transient_http_error)(self._get_json)
        try:
            return await fetch(path, {**params, "appid": self._settings.openweather_api_key or ""})
        except httpx.HTTPStatusError as e:
            kind, message = _STATUS_KINDS.get(
                e.response.status_code,
                (ProviderErrorKind.UNKNOWN, f"OpenWeather API error: HTTP {e.response.status_code}"),
            )
            raise ProviderError(kind, message) from e
        except httpx.TimeoutException as e:
            raise ProviderError(
                ProviderErrorKind.TIMEOUT,
                f"Request timeout for {city}. Please check your internet connection and try again.",
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(ProviderErrorKind.UNKNOWN, f"OpenWeather API error: {e}") from e
        except ValueError as e:
            raise ProviderError(ProviderErrorKind.UNKNOWN, "Malformed response from OpenWeather") from e

    async def _get_json(self, path: str, params: dict) -> dict:
        resp = await self._client.get(self._settings.openweather_base_url + path, params=params)
        resp.raise_for_status()
        return resp.json()


def parse_current_weather(data: dict, units: Units) -> NormalizedWeather:
    """Normalize a /weather payload, using its first condition entry."""
    try:
        conditions = data.get("weather") or []
        if not conditions:
            raise ProviderError(ProviderErrorKind.UNKNOWN, "No weather data available")
        weather = conditions[0]
        main = data["main"]
        wind = data.get("wind", {})
        return NormalizedWeather(
            city=data["name"],
            country=data.get("sys", {}).get("country", ""),
            units=units,
            current=CurrentConditions(
                temperature=main["temp"],
                feels_like=main["feels_like"],
                humidity=main["humidity"],
                pressure=main["pressure"],
                visibility=data.get("visibility"),
                wind_speed=wind.get("speed", 0.0),
                wind_direction_degrees=round(wind.get("deg", 0)) % 360,
                description=weather["description"],
                icon_id=weather["icon"],
                condition_main=weather["main"],
                observed_at=datetime.fromtimestamp(data["dt"], tz=timezone.utc),
            ),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ProviderError(ProviderErrorKind.UNKNOWN, "Unexpected current-weather payload") from e


def aggregate_forecast(samples: list[dict], days: int) -> list[DailyForecast]:
    """Reduce 3-hour forecast samples to one entry per UTC calendar day.

    Keeps the earliest `days` days. Temperatures are the day's extremes, humidity
    and wind are averaged, precipitation probability is the day's peak as a
    percentage, and the condition is the most frequent (main, description) pair,
    earliest pair winning ties.
    """
    buckets: dict[date, list[dict]] = defaultdict(list)
    for sample in samples:
        day = datetime.fromtimestamp(sample["dt"], tz=timezone.utc).date()
        buckets[day].append(sample)

    return [_aggregate_day(day, buckets[day]) for day in sorted(buckets)[:days]]


def _aggregate_day(day: date, samples: list[dict]) -> DailyForecast:
    temperatures = [s["main"]["temp"] for s in samples]
    humidities = [s["main"].get("humidity", 0) for s in samples]
    wind_speeds = [s.get("wind", {}).get("speed", 0.0) for s in samples]
    precipitation = [s.get("pop", 0.0) for s in samples]

    votes = Counter((s["weather"][0]["main"], s["weather"][0]["description"]) for s in samples if s.get("weather"))
    if votes:
        # most_common keeps first-encountered order among equal counts
        (main, description), _ = votes.most_common(1)[0]
        icon = next(
            (
                s["weather"][0]["icon"]
                for s in samples
                if s.get("weather") and (s["weather"][0]["main"], s["weather"][0]["description"]) == (main, description)
            ),
            FALLBACK_ICON,
        )
    else:
        main, description, icon = FALLBACK_MAIN, FALLBACK_DESCRIPTION, FALLBACK_ICON

    return DailyForecast(
        date=day,
        temperature_min=min(temperatures),
        temperature_max=max(temperatures),
        description=description,
        icon_id=icon,
        condition_main=main,
        humidity=int(_round_half_up(sum(humidities) / len(humidities))),
        wind_speed=_round_half_up(sum(wind_speeds) / len(wind_speeds), 1),
        precipitation_probability=int(_round_half_up(max(precipitation) * 100)),
    )


def _round_half_up(value: float, ndigits: int = 0) -> float:
    # round() is half-to-even; daily figures round .5 up
    scale = 10**ndigits
    return math.floor(value * scale + 0.5) / scale
