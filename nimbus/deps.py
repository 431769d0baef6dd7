# ABOUTME: Dependency container wiring settings, the shared httpx client and every service together.
# ABOUTME: Both the terminal and HTTP surfaces build one container per process and pass it down.

import httpx
from pydantic import BaseModel, ConfigDict
from pydantic_ai.models import Model

from nimbus.config import VERSION, Settings
from nimbus.geoip import GeoIPResolver
from nimbus.intent import IntentParser
from nimbus.llm import build_model
from nimbus.summary import SummaryGenerator
from nimbus.weather_service import OpenWeatherClient


class NimbusDeps(BaseModel):
    """Services shared by the orchestrator and the HTTP handlers."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    settings: Settings
    http_client: httpx.AsyncClient
    intent_parser: IntentParser
    geoip: GeoIPResolver
    weather: OpenWeatherClient
    summarizer: SummaryGenerator


def create_http_client(settings: Settings) -> httpx.AsyncClient:
    """Create the httpx client used for provider and geolocation calls.

    Retries live at the call sites (see nimbus.retry), so the transport is plain.
    """
    return httpx.AsyncClient(
        timeout=settings.http_timeout,
        headers={"User-Agent": f"nimbus/{VERSION}", "Accept": "application/json"},
    )


def build_deps(settings: Settings, http_client: httpx.AsyncClient, model: Model | None = None) -> NimbusDeps:
    """Wire every service; `model` defaults to the one configured in settings."""
    if model is None:
        model = build_model(settings)
    return NimbusDeps(
        settings=settings,
        http_client=http_client,
        intent_parser=IntentParser(model, settings),
        geoip=GeoIPResolver(http_client, settings),
        weather=OpenWeatherClient(http_client, settings),
        summarizer=SummaryGenerator(model, settings),
    )
