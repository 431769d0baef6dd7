# ABOUTME: Language-model plumbing shared by the intent parser and the summary generator.
# ABOUTME: Builds the OpenRouter model from settings and pulls the JSON object out of free-form replies.

import json

import httpx
import openai
from pydantic_ai.exceptions import ModelHTTPError
from pydantic_ai.models import Model
from pydantic_ai.models.openrouter import OpenRouterModel
from pydantic_ai.providers.openrouter import OpenRouterProvider

from nimbus.config import Settings


def build_model(settings: Settings) -> Model | None:
    """Return the configured chat model, or None when no API key is set."""
    if not settings.llm_enabled:
        return None
    return OpenRouterModel(
        settings.openrouter_model,
        provider=OpenRouterProvider(api_key=settings.openrouter_api_key),
    )


def is_transient_model_error(exc: BaseException) -> bool:
    """Connection problems, timeouts and 5xx replies from the model API."""
    if isinstance(exc, ModelHTTPError):
        return exc.status_code >= 500
    return isinstance(exc, (httpx.TransportError, openai.APIConnectionError))


def extract_json_object(text: str) -> dict:
    """Parse the first balanced {...} block in `text`, ignoring any prose around it.

    Raises ValueError when there is no complete object or it is not valid JSON.
    """
    start = text.find("{")
    if start == -1:
        raise ValueError("no JSON object in model output")

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                parsed = json.loads(text[start : i + 1])
                if not isinstance(parsed, dict):
                    raise ValueError("model output is not a JSON object")
                return parsed

    raise ValueError("unbalanced JSON object in model output")
