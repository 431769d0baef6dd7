# ABOUTME: Turns free-text weather questions into structured Intent records.
# ABOUTME: Primary path asks the language model for strict JSON; a regex fallback never fails.

import logging
import re
from datetime import date

import httpx
import openai
import pydantic
from pydantic import BaseModel
from pydantic_ai import Agent, RunContext
from pydantic_ai.exceptions import AgentRunError
from pydantic_ai.models import Model

from nimbus.config import Settings, Units
from nimbus.errors import ParseError
from nimbus.llm import extract_json_object, is_transient_model_error
from nimbus.models import PLACEHOLDER_CITY, DateSpec, Intent
from nimbus.retry import retrying

logger = logging.getLogger(__name__)


class IntentDeps(BaseModel):
    """Per-query context for the intent agent."""

    default_units: Units


intent_agent = Agent(
    deps_type=IntentDeps,
    output_type=str,
    system_prompt=(
        "You are a weather intent parser for a CLI.\n"
        "Input: a free-form user question.\n"
        "Output: strict JSON matching the schema below. No prose, no comments.\n"
        "Extract cities, date/range, units, and extras. Normalize dates to "
        '{ "kind": "today" | "tomorrow" | "range", "days"?: number, "weekend"?: boolean }.\n'
        'If the city is missing and the user implies "here", set "useIpLocation": true and "cities": ["Unknown"].\n'
        "If forecasting without a number of days, default to 3.\n"
        'If compare is requested, "cities" must contain at least two entries.\n'
        "Use minimal tokens; be deterministic.\n\n"
        "Schema:\n"
        "{\n"
        '  "cities": ["string"],\n'
        '  "date": {"kind": "today" | "tomorrow" | "range", "days": number (optional), "weekend": boolean (optional)},\n'
        '  "units": "metric" | "imperial",\n'
        '  "extras": ["string"] (optional, e.g. "umbrella", "wind", "uv"),\n'
        '  "useIpLocation": boolean,\n'
        '  "compare": boolean\n'
        "}"
    ),
)


@intent_agent.instructions
def add_query_context(ctx: RunContext[IntentDeps]) -> str:
    """Tell the model today's date and which unit system to assume."""
    today = date.today()
    return (
        f"Today's date is {today.isoformat()} ({today.strftime('%A')}). "
        f'If units are unspecified, use "{ctx.deps.default_units}".'
    )


class IntentParser:
    """Language-model intent parser with bounded retries on transient failures."""

    def __init__(self, model: Model | None, settings: Settings):
        self._model = model
        self._settings = settings

    async def parse(self, query: str, default_units: Units) -> Intent:
        """Parse `query` with the model; raise ParseError on any failure."""
        if self._model is None:
            raise ParseError("Language model is not configured")

        ask = retrying(self._settings.retry, is_transient_model_error)(self._ask)
        try:
            output = await ask(query, default_units)
        except (AgentRunError, openai.APIError, httpx.HTTPError) as e:
            raise ParseError(f"Failed to parse intent: {e}") from e

        try:
            data = extract_json_object(output)
        except ValueError as e:
            raise ParseError(f"Invalid JSON response from model: {e}") from e

        data.setdefault("units", default_units)
        if data.get("useIpLocation") and not data.get("cities"):
            data["cities"] = [PLACEHOLDER_CITY]

        try:
            return Intent.model_validate(data)
        except pydantic.ValidationError as e:
            fields = sorted({".".join(str(p) for p in err["loc"]) or "intent" for err in e.errors()})
            raise ParseError(f"Invalid intent structure: {', '.join(fields)}", fields=fields) from e

    async def _ask(self, query: str, default_units: Units) -> str:
        result = await intent_agent.run(
            query,
            model=self._model,
            deps=IntentDeps(default_units=default_units),
            model_settings={"temperature": 0.1, "max_tokens": 200, "timeout": self._settings.llm_timeout},
        )
        return result.output


# --- Deterministic fallback -------------------------------------------------

_BOUNDARY_WORDS = r"today|tomorrow|tonight|this|next|weekend|weather|forecast|now|please|in|for|at|with|on"
# Unicode letters: "São Paulo", "Zürich"
_CITY_NAME = r"[^\W\d_](?:[^\W\d_]|[\s.'-])*?"

_CITY_AFTER_PREPOSITION = re.compile(
    rf"\b(?:in|for|at)\s+({_CITY_NAME})(?=\s+(?:{_BOUNDARY_WORDS})\b|[?!,;]|$)",
    re.IGNORECASE,
)

_COMPARE_PHRASE = re.compile(r"\bcompare\s+(.+?)(?=\s+weather\b|[?!]|$)", re.IGNORECASE)
_VERSUS_PHRASE = re.compile(
    rf"({_CITY_NAME})\s+(?:vs\.?|versus)\s+({_CITY_NAME})(?=\s+(?:{_BOUNDARY_WORDS})\b|[?!,;]|$)",
    re.IGNORECASE,
)
_CITY_SEPARATOR = re.compile(r"\s*,\s*|\s+(?:and|vs\.?|versus)\s+", re.IGNORECASE)

# Words that never name a city on their own
_NOISE_WORDS = {
    "a", "an", "the", "me", "my", "our", "here", "there", "it", "this", "that", "location", "current",
    "home", "weather", "forecast", "compare", "today", "tomorrow", "tonight", "now", "please",
    "celsius", "fahrenheit", "metric", "imperial", "units", "weekend", "week", "day", "days",
    "what", "whats", "how", "is", "will", "be", "like", "in", "for", "at", "with", "on",
    "and", "or", "vs", "versus",
}

_DAYS_COUNT = re.compile(r"\b(\d{1,2})[\s-]*days?\b")
_NEXT_WORD = re.compile(r"\bnext\b")
_IMPERIAL_WORDS = re.compile(r"\b(?:fahrenheit|imperial)\b|°\s*f\b")
_METRIC_WORDS = re.compile(r"\b(?:celsius|metric)\b|°\s*c\b")
_COMPARE_WORDS = re.compile(r"\b(?:compare|comparison|vs|versus)\b")

_EXTRAS = (
    ("umbrella", re.compile(r"\bumbrella")),
    ("precipitation", re.compile(r"\b(?:rain\w*|precipitation)\b")),
    ("wind", re.compile(r"\bwind")),
    ("uv", re.compile(r"\b(?:uv|sun|sunny|sunshine|sunscreen|sunburn)\b")),
)

MAX_FORECAST_DAYS = 5


def _clean_candidate(raw: str) -> str | None:
    """Trim noise words from both ends of a city candidate; None when nothing city-like is left."""
    words = raw.strip(" .'-").split()
    while words and words[0].lower().strip(".'") in _NOISE_WORDS:
        words.pop(0)
    while words and words[-1].lower().strip(".'") in _NOISE_WORDS:
        words.pop()
    if not words:
        return None
    city = " ".join(words).strip(" .'-")
    if len(city) < 2:
        return None
    return city.title() if city.islower() else city


def _split_candidates(raw: str) -> list[str]:
    cities = []
    for part in _CITY_SEPARATOR.split(raw):
        city = _clean_candidate(part)
        if city:
            cities.append(city)
    return cities


def _extract_cities(query: str) -> list[str]:
    cities: list[str] = []
    for match in _CITY_AFTER_PREPOSITION.finditer(query):
        cities.extend(_split_candidates(match.group(1)))

    if len(cities) < 2:
        compare = _COMPARE_PHRASE.search(query)
        versus = _VERSUS_PHRASE.search(query)
        if compare:
            cities.extend(_split_candidates(compare.group(1)))
        elif versus:
            cities.extend(_split_candidates(versus.group(1)) + _split_candidates(versus.group(2)))

    unique: dict[str, str] = {}
    for city in cities:
        unique.setdefault(city.lower(), city)
    return list(unique.values())


def _detect_date(lower: str) -> DateSpec:
    if "tomorrow" in lower:
        return DateSpec(kind="tomorrow")
    if "weekend" in lower:
        return DateSpec(kind="range", days=2, weekend=True)
    count = _DAYS_COUNT.search(lower)
    if count:
        return DateSpec(kind="range", days=min(max(int(count.group(1)), 1), MAX_FORECAST_DAYS))
    if "forecast" in lower or _NEXT_WORD.search(lower):
        return DateSpec(kind="range", days=MAX_FORECAST_DAYS)
    return DateSpec(kind="today")


def _detect_units(lower: str, default_units: Units) -> Units:
    if _IMPERIAL_WORDS.search(lower):
        return "imperial"
    if _METRIC_WORDS.search(lower):
        return "metric"
    return default_units


def parse_intent_fallback(query: str, default_units: Units = "metric") -> Intent:
    """Regex-based intent extraction used when the model path fails. Never raises.

    Produces the same shape as the model path: when no city can be found the
    placeholder city is used and IP geolocation is requested.
    """
    query = query or ""
    lower = query.lower()
    cities = _extract_cities(query)

    return Intent(
        cities=cities or [PLACEHOLDER_CITY],
        date=_detect_date(lower),
        units=_detect_units(lower, default_units),
        extras=[tag for tag, pattern in _EXTRAS if pattern.search(lower)],
        use_ip_location=not cities,
        compare=bool(_COMPARE_WORDS.search(lower)) and len(cities) >= 2,
    )
