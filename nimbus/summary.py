# ABOUTME: Generates a short natural-language briefing and tips from normalized weather data.
# ABOUTME: Uses the language model when configured, with a templated fallback that never fails.

import httpx
import openai
import pydantic
from pydantic_ai import Agent
from pydantic_ai.exceptions import AgentRunError
from pydantic_ai.models import Model

from nimbus.config import Settings
from nimbus.errors import SummaryError
from nimbus.llm import extract_json_object, is_transient_model_error
from nimbus.models import NormalizedWeather, WeatherSummary
from nimbus.retry import retrying
from nimbus.units import format_temperature

FALLBACK_TIPS = ["Check the weather regularly", "Dress appropriately for the conditions"]

summary_agent = Agent(
    output_type=str,
    system_prompt=(
        "You are a concise weather summarizer for a terminal app.\n"
        "Input: normalized weather/forecast JSON (city, units, conditions, temperatures, "
        "precipitation probability, wind) plus user extras.\n"
        "Output: a short, friendly briefing (max ~6 lines) with emojis: ☀️ 🌧️ ⛅ ❄️ ⚡ 🌬️ 💧 🌡️ ☂️ 😎.\n"
        "Include 1-2 smart tips when extras suggest it (umbrella/clothing/activity/UV/wind).\n"
        "Prefer crisp phrasing; no redundant sentences. No markdown code fences.\n\n"
        "Return JSON:\n"
        '{"briefing": "string", "tips": ["string"]}'
    ),
)


class SummaryGenerator:
    def __init__(self, model: Model | None, settings: Settings):
        self._model = model
        self._settings = settings

    async def generate(self, weather: NormalizedWeather, extras: list[str]) -> WeatherSummary:
        """Summarize `weather`; raise SummaryError if the model fails or answers off-contract.

        Without a configured model the templated fallback is returned instead.
        """
        if self._model is None:
            return fallback_summary(weather)

        prompt = f"Weather data: {weather.model_dump_json(by_alias=True, indent=2)}"
        if extras:
            prompt += f"\nUser extras: {', '.join(extras)}"

        ask = retrying(self._settings.retry, is_transient_model_error)(self._ask)
        try:
            output = await ask(prompt)
        except (AgentRunError, openai.APIError, httpx.HTTPError) as e:
            raise SummaryError(f"Failed to generate summary: {e}") from e

        try:
            return WeatherSummary.model_validate(extract_json_object(output))
        except (ValueError, pydantic.ValidationError) as e:
            raise SummaryError(f"Invalid summary structure: {e}") from e

    async def _ask(self, prompt: str) -> str:
        result = await summary_agent.run(
            prompt,
            model=self._model,
            model_settings={"temperature": 0.7, "max_tokens": 300, "timeout": self._settings.llm_timeout},
        )
        return result.output


def fallback_summary(weather: NormalizedWeather) -> WeatherSummary:
    """One-line briefing from whatever the record holds: current conditions, else the first forecast day."""
    if weather.current is not None:
        description = weather.current.description
        temperature = weather.current.temperature
        briefing = f"Currently {description} with {format_temperature(temperature, weather.units)} in {weather.city}."
    elif weather.forecast:
        day = weather.forecast[0]
        briefing = (
            f"Expect {day.description} with highs of {format_temperature(day.temperature_max, weather.units)} "
            f"in {weather.city}."
        )
    else:
        briefing = f"Weather data for {weather.city} is available."
    return WeatherSummary(briefing=briefing, tips=list(FALLBACK_TIPS))
