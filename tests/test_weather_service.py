# ABOUTME: Contract tests for the OpenWeatherMap client and forecast aggregation.
# ABOUTME: Validates current/forecast normalization, error kinds and retry behaviour with mocked HTTP.

from datetime import date, datetime, timezone
from unittest.mock import AsyncMock

import httpx
import pytest

from nimbus.errors import ProviderError, ProviderErrorKind
from nimbus.weather_service import OpenWeatherClient, aggregate_forecast, parse_current_weather

_PARIS_NOW = {
    "name": "Paris",
    "dt": 1717243200,
    "sys": {"country": "FR"},
    "main": {"temp": 21.3, "feels_like": 20.8, "humidity": 55, "pressure": 1015},
    "visibility": 10000,
    "wind": {"speed": 3.6, "deg": 250},
    "weather": [{"main": "Clouds", "description": "scattered clouds", "icon": "03d"}],
}


def _response(json_data: dict, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code=status_code, json=json_data, request=httpx.Request("GET", "https://test"))


def _mock_client(*responses) -> httpx.AsyncClient:
    """Create a mock httpx.AsyncClient returning the given responses (or raising given exceptions) in order."""
    mock = AsyncMock(spec=httpx.AsyncClient)
    mock.get.side_effect = list(responses)
    return mock


def _sample(when: datetime, temp: float, main: str = "Clear", description: str = "clear sky", **extra) -> dict:
    sample = {
        "dt": int(when.timestamp()),
        "main": {"temp": temp, "humidity": extra.pop("humidity", 50)},
        "wind": {"speed": extra.pop("wind", 2.0)},
        "pop": extra.pop("pop", 0.0),
        "weather": [{"main": main, "description": description, "icon": extra.pop("icon", "01d")}],
    }
    return sample


def _utc(day: int, hour: int) -> datetime:
    return datetime(2025, 6, day, hour, tzinfo=timezone.utc)


class TestGetCurrentWeather:
    @pytest.mark.asyncio
    async def test_normalizes_payload(self, settings):
        """A /weather payload becomes a NormalizedWeather with current conditions.

        Implementation: Mocks OpenWeather returning Paris.
        Passing implies: Every current field is mapped and units are tagged.
        """
        client = _mock_client(_response(_PARIS_NOW))
        weather = await OpenWeatherClient(client, settings).get_current_weather("Paris", "metric")

        assert weather.city == "Paris"
        assert weather.country == "FR"
        assert weather.units == "metric"
        assert weather.forecast is None
        current = weather.current
        assert current.temperature == 21.3
        assert current.feels_like == 20.8
        assert current.humidity == 55
        assert current.visibility == 10000
        assert current.wind_direction_degrees == 250
        assert current.description == "scattered clouds"
        assert current.icon_id == "03d"
        assert current.condition_main == "Clouds"
        assert current.observed_at == datetime(2024, 6, 1, 12, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_sends_city_units_and_key(self, settings):
        """Requests carry q, units and appid.

        Implementation: Inspects the params the mock was called with.
        Passing implies: The provider receives the caller's unit system and the key.
        """
        client = _mock_client(_response(_PARIS_NOW))
        await OpenWeatherClient(client, settings).get_current_weather("Paris", "imperial")

        call = client.get.call_args
        assert call.args[0] == "https://api.openweathermap.org/data/2.5/weather"
        assert call.kwargs["params"] == {"q": "Paris", "units": "imperial", "appid": "test-openweather-key"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status_code", "kind"),
        [
            (401, ProviderErrorKind.INVALID_CREDENTIALS),
            (404, ProviderErrorKind.LOCATION_NOT_FOUND),
            (429, ProviderErrorKind.RATE_LIMITED),
        ],
    )
    async def test_client_errors_map_to_kinds_without_retry(self, settings, status_code, kind):
        """401/404/429 map to their error kinds on the first attempt.

        Implementation: Mocks one error response per status.
        Passing implies: Permanent failures are classified and never retried.
        """
        client = _mock_client(_response({"message": "nope"}, status_code=status_code))
        with pytest.raises(ProviderError) as exc_info:
            await OpenWeatherClient(client, settings).get_current_weather("Atlantis", "metric")

        assert exc_info.value.kind == kind
        assert client.get.call_count == 1

    @pytest.mark.asyncio
    async def test_server_error_retried_then_succeeds(self, settings):
        """A 502 followed by success returns the weather.

        Implementation: Mocks 502 then a valid payload.
        Passing implies: Transient provider failures are retried.
        """
        client = _mock_client(_response({}, status_code=502), _response(_PARIS_NOW))
        weather = await OpenWeatherClient(client, settings).get_current_weather("Paris", "metric")

        assert weather.city == "Paris"
        assert client.get.call_count == 2

    @pytest.mark.asyncio
    async def test_persistent_server_error_is_unknown(self, settings):
        """Repeated 5xx responses end as an unknown provider error.

        Implementation: Mocks three 500 responses.
        Passing implies: Retries are bounded and the failure is classified.
        """
        client = _mock_client(*[_response({}, status_code=500)] * 3)
        with pytest.raises(ProviderError) as exc_info:
            await OpenWeatherClient(client, settings).get_current_weather("Paris", "metric")

        assert exc_info.value.kind == ProviderErrorKind.UNKNOWN
        assert client.get.call_count == 3

    @pytest.mark.asyncio
    async def test_timeout_kind(self, settings):
        """Repeated timeouts surface as the timeout kind.

        Implementation: Mock raises ReadTimeout on every call.
        Passing implies: Slow networks get a distinct, user-readable error.
        """
        request = httpx.Request("GET", "https://test")
        client = _mock_client(*[httpx.ReadTimeout("slow", request=request)] * 3)
        with pytest.raises(ProviderError) as exc_info:
            await OpenWeatherClient(client, settings).get_current_weather("Paris", "metric")

        assert exc_info.value.kind == ProviderErrorKind.TIMEOUT
        assert client.get.call_count == 3


class TestParseCurrentWeather:
    def test_empty_weather_list_is_unknown_error(self):
        """A payload without condition entries is rejected.

        Implementation: Parses a payload with weather=[].
        Passing implies: Records always carry a description and icon.
        """
        with pytest.raises(ProviderError) as exc_info:
            parse_current_weather({**_PARIS_NOW, "weather": []}, "metric")
        assert exc_info.value.kind == ProviderErrorKind.UNKNOWN

    def test_missing_visibility_is_allowed(self):
        """Visibility is optional.

        Implementation: Parses a payload without the visibility key.
        Passing implies: Provider omissions do not fail the query.
        """
        data = {k: v for k, v in _PARIS_NOW.items() if k != "visibility"}
        assert parse_current_weather(data, "metric").current.visibility is None

    def test_wind_degrees_wrap(self):
        """A 360° wind direction normalizes to 0.

        Implementation: Parses wind.deg=360.
        Passing implies: Directions stay within 0..359.
        """
        data = {**_PARIS_NOW, "wind": {"speed": 1.0, "deg": 360}}
        assert parse_current_weather(data, "metric").current.wind_direction_degrees == 0

    def test_missing_main_block_is_unknown_error(self):
        """A payload without the main block is rejected as unknown.

        Implementation: Drops the main key.
        Passing implies: Malformed payloads never produce partial records.
        """
        data = {k: v for k, v in _PARIS_NOW.items() if k != "main"}
        with pytest.raises(ProviderError):
            parse_current_weather(data, "metric")


class TestAggregateForecast:
    def test_day_extremes_and_majority_condition(self):
        """Temps 10/20/15 with Rain, Rain, Clear give min 10, max 20 and Rain.

        Implementation: Aggregates three samples from one UTC day.
        Passing implies: Daily extremes and the majority vote are computed correctly.
        """
        samples = [
            _sample(_utc(1, 0), 10, "Rain", "light rain", icon="10n"),
            _sample(_utc(1, 3), 20, "Rain", "light rain", icon="10d"),
            _sample(_utc(1, 6), 15, "Clear", "clear sky"),
        ]
        [day] = aggregate_forecast(samples, 1)

        assert day.date == date(2025, 6, 1)
        assert day.temperature_min == 10
        assert day.temperature_max == 20
        assert day.condition_main == "Rain"
        assert day.description == "light rain"
        assert day.icon_id == "10n"

    def test_tie_goes_to_first_condition(self):
        """Equal vote counts pick the condition seen first.

        Implementation: One Clouds sample then one Clear sample.
        Passing implies: Aggregation is deterministic for ties.
        """
        samples = [
            _sample(_utc(2, 9), 12, "Clouds", "few clouds", icon="02d"),
            _sample(_utc(2, 12), 14, "Clear", "clear sky"),
        ]
        [day] = aggregate_forecast(samples, 1)
        assert day.condition_main == "Clouds"
        assert day.icon_id == "02d"

    def test_averages_and_peak_precipitation(self):
        """Humidity and wind are averaged, precipitation is the peak percentage.

        Implementation: Two samples with distinct humidity, wind and pop.
        Passing implies: Daily numbers summarize the day sensibly.
        """
        samples = [
            _sample(_utc(3, 0), 10, humidity=40, wind=2.0, pop=0.2),
            _sample(_utc(3, 3), 11, humidity=61, wind=3.25, pop=0.75),
        ]
        [day] = aggregate_forecast(samples, 1)

        assert day.humidity == 51
        assert day.wind_speed == 2.6
        assert day.precipitation_probability == 75

    def test_half_values_round_up(self):
        """Means landing exactly on .5 round up, not to even.

        Implementation: Humidity 70/75, pop 0.125/0.0 and wind 1.25 give 72.5, 12.5 and 1.25.
        Passing implies: Daily figures match conventional half-up rounding.
        """
        samples = [
            _sample(_utc(3, 0), 10, humidity=70, wind=1.25, pop=0.125),
            _sample(_utc(3, 3), 11, humidity=75, wind=1.25, pop=0.0),
        ]
        [day] = aggregate_forecast(samples, 1)

        assert day.humidity == 73
        assert day.precipitation_probability == 13
        assert day.wind_speed == 1.3

    def test_buckets_by_utc_day_and_limits_days(self):
        """Samples split into UTC days, sorted, and truncated to the requested count.

        Implementation: Unordered samples across three days, asking for two.
        Passing implies: Forecast days come out chronological and bounded.
        """
        samples = [
            _sample(_utc(5, 12), 30),
            _sample(_utc(4, 23), 5),
            _sample(_utc(6, 0), 1),
            _sample(_utc(4, 0), 7),
        ]
        days = aggregate_forecast(samples, 2)

        assert [d.date for d in days] == [date(2025, 6, 4), date(2025, 6, 5)]
        assert days[0].temperature_min == 5
        assert days[0].temperature_max == 7

    def test_samples_without_conditions_use_defaults(self):
        """A day with no condition entries falls back to Unknown/Clear/01d.

        Implementation: Strips the weather list from a sample.
        Passing implies: Sparse provider data still produces a valid day.
        """
        sample = _sample(_utc(7, 0), 9)
        sample["weather"] = []
        [day] = aggregate_forecast([sample], 1)

        assert day.description == "Unknown"
        assert day.condition_main == "Clear"
        assert day.icon_id == "01d"


class TestGetForecast:
    @pytest.mark.asyncio
    async def test_requests_samples_and_aggregates(self, settings):
        """get_forecast asks for days*8 samples and returns daily entries.

        Implementation: Mocks a forecast payload with two days of samples.
        Passing implies: The forecast path produces a forecast-only record.
        """
        payload = {
            "city": {"name": "Tokyo", "country": "JP"},
            "list": [_sample(_utc(1, 0), 20), _sample(_utc(1, 12), 26), _sample(_utc(2, 0), 22)],
        }
        client = _mock_client(_response(payload))
        weather = await OpenWeatherClient(client, settings).get_forecast("Tokyo", 2, "metric")

        assert client.get.call_args.kwargs["params"]["cnt"] == 16
        assert weather.city == "Tokyo"
        assert weather.current is None
        assert len(weather.forecast) == 2
        assert weather.forecast[0].temperature_max == 26

    @pytest.mark.asyncio
    async def test_sample_count_is_capped(self, settings):
        """More than five days never asks for more than 40 samples.

        Implementation: Requests a 10-day forecast.
        Passing implies: The provider's 5-day/3-hour limit is respected.
        """
        client = _mock_client(_response({"city": {"name": "Tokyo", "country": "JP"}, "list": []}))
        await OpenWeatherClient(client, settings).get_forecast("Tokyo", 10, "metric")
        assert client.get.call_args.kwargs["params"]["cnt"] == 40
