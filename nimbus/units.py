# ABOUTME: Unit conversions and display helpers for temperature, wind, visibility and conditions.
# ABOUTME: Pure functions; the dual-unit readings derive both systems from a record's own units.

import math

from nimbus.config import Units
from nimbus.models import CurrentConditions

MS_TO_MPH = 2.237
MS_TO_KMH = 3.6
MPH_TO_KMH = 1.609
METERS_TO_MILES = 0.000621371

COMPASS_POINTS = (
    "N", "NNE", "NE", "ENE", "E", "ESE", "SE", "SSE",
    "S", "SSW", "SW", "WSW", "W", "WNW", "NW", "NNW",
)

_GLYPHS_BY_MAIN = {
    "Clear": "☀️",
    "Clouds": "☁️",
    "Rain": "🌧️",
    "Drizzle": "🌦️",
    "Thunderstorm": "⛈️",
    "Snow": "❄️",
    "Mist": "🌫️",
    "Smoke": "🌫️",
    "Haze": "🌫️",
    "Dust": "🌫️",
    "Fog": "🌫️",
    "Sand": "🌫️",
    "Ash": "🌫️",
    "Squall": "🌬️",
    "Tornado": "🌪️",
}

# Checked in order against the lowercased description
_GLYPHS_BY_DESCRIPTION = (
    ("thunderstorm", "⛈️"),
    ("drizzle", "🌦️"),
    ("rain", "🌧️"),
    ("snow", "❄️"),
    ("fog", "🌫️"),
    ("mist", "🌫️"),
    ("clouds", "☁️"),
    ("clear", "☀️"),
)


def celsius_to_fahrenheit(celsius: float) -> float:
    return celsius * 9 / 5 + 32


def fahrenheit_to_celsius(fahrenheit: float) -> float:
    return (fahrenheit - 32) * 5 / 9


def temperature_pair(value: float, units: Units) -> tuple[float, float]:
    """Return (celsius, fahrenheit) for a temperature expressed in `units`."""
    if units == "metric":
        return value, celsius_to_fahrenheit(value)
    return fahrenheit_to_celsius(value), value


def wind_speed_pair(speed: float, units: Units) -> tuple[float, float]:
    """Return (mph, km/h) for a wind speed in m/s (metric) or mph (imperial)."""
    if units == "metric":
        return speed * MS_TO_MPH, speed * MS_TO_KMH
    return speed, speed * MPH_TO_KMH


def compass_index(degrees: float) -> int:
    # Half-up rounding so 11.25° lands on NNE, not N
    return math.floor(degrees / 22.5 + 0.5) % 16


def compass_point(degrees: float) -> str:
    return COMPASS_POINTS[compass_index(degrees)]


def dual_unit_readings(current: CurrentConditions, units: Units) -> dict:
    """Both unit systems for the headline numbers of a current-conditions block."""
    temp_c, temp_f = temperature_pair(current.temperature, units)
    feels_c, feels_f = temperature_pair(current.feels_like, units)
    wind_mph, wind_kph = wind_speed_pair(current.wind_speed, units)
    return {
        "temp_c": round(temp_c, 1),
        "temp_f": round(temp_f, 1),
        "feelslike_c": round(feels_c, 1),
        "feelslike_f": round(feels_f, 1),
        "wind_mph": round(wind_mph, 1),
        "wind_kph": round(wind_kph, 1),
        "wind_dir": compass_point(current.wind_direction_degrees),
        "wind_degree": current.wind_direction_degrees,
    }


def condition_glyph(main: str, description: str) -> str:
    desc = description.lower()
    for needle, glyph in _GLYPHS_BY_DESCRIPTION:
        if needle in desc:
            return glyph
    return _GLYPHS_BY_MAIN.get(main, "🌡️")


def format_temperature(value: float, units: Units) -> str:
    symbol = "°C" if units == "metric" else "°F"
    return f"{round(value)}{symbol}"


def format_wind_speed(speed: float, units: Units) -> str:
    unit = "m/s" if units == "metric" else "mph"
    return f"{round(speed)} {unit}"


def format_visibility(meters: int | None, units: Units) -> str:
    if meters is None:
        return "n/a"
    if units == "imperial":
        return f"{round(meters * METERS_TO_MILES)}mi"
    return f"{meters / 1000:g}km"


def temperature_color(value: float, units: Units) -> str:
    """Rich color name for a temperature band, judged in Celsius."""
    celsius = temperature_pair(value, units)[0]
    if celsius < 0:
        return "blue"
    if celsius < 10:
        return "cyan"
    if celsius < 20:
        return "green"
    if celsius < 30:
        return "yellow"
    if celsius < 40:
        return "red"
    return "magenta"
