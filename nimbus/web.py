# ABOUTME: ASGI web entry point exposing the weather pipeline as a JSON API.
# ABOUTME: Creates a Starlette app whose handlers share one orchestrator and wrap replies in an envelope.

import asyncio
import functools
import json
import logging
import time
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager

import pydantic
import uvicorn
from starlette.applications import Starlette
from starlette.exceptions import HTTPException
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from nimbus.config import VERSION, Settings
from nimbus.deps import NimbusDeps, build_deps, create_http_client
from nimbus.errors import (
    ConfigError,
    GeoIPError,
    NimbusError,
    ParseError,
    ProviderError,
    ProviderErrorKind,
    ServiceError,
    ValidationError,
)
from nimbus.geoip import format_location
from nimbus.orchestrator import QueryOrchestrator
from nimbus.schemas import CompareQuery, ForecastQuery, WeatherQuery, envelope
from nimbus.units import dual_unit_readings

logger = logging.getLogger(__name__)

_PROVIDER_STATUS = {
    ProviderErrorKind.LOCATION_NOT_FOUND: (404, "LOCATION_NOT_FOUND"),
    ProviderErrorKind.INVALID_CREDENTIALS: (503, "SERVICE_UNAVAILABLE"),
    ProviderErrorKind.RATE_LIMITED: (503, "RATE_LIMITED"),
    ProviderErrorKind.TIMEOUT: (502, "UPSTREAM_TIMEOUT"),
    ProviderErrorKind.UNKNOWN: (502, "SERVICE_ERROR"),
}


def error_response(exc: NimbusError) -> JSONResponse:
    """Map a nimbus error onto a status code and error envelope."""
    data = None
    if isinstance(exc, ValidationError):
        status, code = 400, "VALIDATION_ERROR"
        data = {"details": {"field": exc.field, "value": exc.value}}
    elif isinstance(exc, ProviderError):
        status, code = _PROVIDER_STATUS[exc.kind]
    elif isinstance(exc, ServiceError):
        status, code = 502, "SERVICE_ERROR"
    elif isinstance(exc, GeoIPError):
        status, code = 502, "SERVICE_ERROR"
    elif isinstance(exc, ParseError):
        status, code = 502, "SERVICE_ERROR"
    elif isinstance(exc, ConfigError):
        status, code = 503, "SERVICE_UNAVAILABLE"
    else:
        status, code = 500, "INTERNAL_SERVER_ERROR"
    return JSONResponse(envelope(data, success=False, error=code, message=str(exc)), status_code=status)


def validation_response(exc: pydantic.ValidationError) -> JSONResponse:
    errors = [
        {"field": ".".join(str(p) for p in err["loc"]) or "body", "message": err["msg"], "value": err.get("input")}
        for err in exc.errors(include_url=False)
    ]
    return JSONResponse(
        envelope(
            {"validationErrors": errors},
            success=False,
            error="VALIDATION_ERROR",
            message="Invalid request parameters",
        ),
        status_code=400,
    )


def api_endpoint(handler: Callable[[Request], Awaitable[JSONResponse]]) -> Callable[[Request], Awaitable[JSONResponse]]:
    """Turn exceptions raised by a handler into enveloped error responses."""

    @functools.wraps(handler)
    async def wrapper(request: Request) -> JSONResponse:
        try:
            return await handler(request)
        except json.JSONDecodeError:
            return JSONResponse(
                envelope(success=False, error="INVALID_JSON", message="Invalid JSON in request body"),
                status_code=400,
            )
        except pydantic.ValidationError as e:
            return validation_response(e)
        except NimbusError as e:
            logger.warning("%s %s failed: %s", request.method, request.url.path, e)
            return error_response(e)
        except Exception:
            logger.exception("Unhandled error on %s %s", request.method, request.url.path)
            return JSONResponse(
                envelope(success=False, error="INTERNAL_SERVER_ERROR", message="An unexpected error occurred"),
                status_code=500,
            )

    return wrapper


def _deps(request: Request) -> NimbusDeps:
    return request.app.state.deps


def _orchestrator(request: Request) -> QueryOrchestrator:
    deps = _deps(request)
    # The HTTP surface keeps answering with a default city when geolocation fails
    return QueryOrchestrator(deps, fallback_city=deps.settings.fallback_city)


def _client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return None


async def _json_body(request: Request) -> object:
    return json.loads(await request.body() or b"null")


@api_endpoint
async def weather(request: Request) -> JSONResponse:
    """POST /weather: answer a natural-language query."""
    body = WeatherQuery.model_validate(await _json_body(request))
    result = await _orchestrator(request).process_query(
        body.query,
        default_units=body.units,
        with_summary=body.summary,
        client_ip=_client_ip(request),
    )

    first = result.weather[0]
    data = {
        "weather": first.model_dump(mode="json", by_alias=True),
        "query": result.query,
        "location": result.location,
    }
    if first.current is not None:
        data["readings"] = dual_unit_readings(first.current, first.units)
    if result.summary is not None:
        data["summary"] = result.summary.briefing
        data["tips"] = result.summary.tips
    return JSONResponse(envelope(data))


@api_endpoint
async def forecast(request: Request) -> JSONResponse:
    """GET /forecast: current conditions plus a daily forecast for one city."""
    params = ForecastQuery.model_validate(dict(request.query_params))
    deps = _deps(request)
    units = params.units or deps.settings.default_units

    current, daily = await asyncio.gather(
        deps.weather.get_current_weather(params.city, units),
        deps.weather.get_forecast(params.city, params.days, units),
    )

    data = {
        "current": current.model_dump(mode="json", by_alias=True),
        "forecast": [d.model_dump(mode="json", by_alias=True) for d in (daily.forecast or [])[: params.days]],
        "city": params.city,
        "days": params.days,
    }
    if params.summary:
        summary = await _orchestrator(request).summarize(current, ["forecast"])
        if summary is not None:
            data["summary"] = summary.briefing
    return JSONResponse(envelope(data))


@api_endpoint
async def compare(request: Request) -> JSONResponse:
    """POST /compare: current weather for two or more cities."""
    body = CompareQuery.model_validate(await _json_body(request))
    orchestrator = _orchestrator(request)
    units = body.units or _deps(request).settings.default_units

    results, failed = await orchestrator.compare_cities(body.cities, units)

    data = {
        "cities": [w.model_dump(mode="json", by_alias=True) for w in results],
        "comparedCities": body.cities,
        "failedCities": failed,
    }
    if body.summary:
        summary = await orchestrator.summarize(results[0], ["compare"])
        if summary is not None:
            data["summary"] = summary.briefing
    return JSONResponse(envelope(data))


@api_endpoint
async def location(request: Request) -> JSONResponse:
    """GET /location: where the caller appears to be."""
    geoip = _deps(request).geoip
    ip = _client_ip(request)
    try:
        found = await (geoip.get_location_by_ip(ip) if ip else geoip.get_current_location())
    except GeoIPError as e:
        raise ServiceError(f"Failed to determine location: {e}", origin="geoip") from e
    data = found.model_dump(mode="json", by_alias=True)
    data["displayName"] = format_location(found)
    return JSONResponse(envelope(data))


@api_endpoint
async def health(request: Request) -> JSONResponse:
    """GET /health: configuration-level service status."""
    settings = _deps(request).settings
    services = {
        "llm": "connected" if settings.llm_enabled else "error",
        "openweather": "connected" if settings.openweather_api_key else "error",
    }
    healthy = all(state == "connected" for state in services.values())
    data = {
        "status": "healthy" if healthy else "degraded",
        "version": VERSION,
        "uptime": round(time.monotonic() - request.app.state.started_at, 3),
        "services": services,
    }
    return JSONResponse(envelope(data), status_code=200 if healthy else 503)


async def index(request: Request) -> JSONResponse:
    return JSONResponse(
        {
            "name": "Nimbus Weather API",
            "version": VERSION,
            "description": "AI-powered weather API with natural language processing",
            "endpoints": {
                "health": "GET /health",
                "weather": "POST /weather",
                "forecast": "GET /forecast",
                "compare": "POST /compare",
                "location": "GET /location",
            },
            "timestamp": envelope()["timestamp"],
        }
    )


async def http_error(request: Request, exc: HTTPException) -> JSONResponse:
    if exc.status_code == 404:
        code, message = "NOT_FOUND", f"Route {request.method} {request.url.path} not found"
    elif exc.status_code == 405:
        code, message = "METHOD_NOT_ALLOWED", f"Method {request.method} not allowed on {request.url.path}"
    else:
        code, message = "HTTP_ERROR", str(exc.detail)
    return JSONResponse(envelope(success=False, error=code, message=message), status_code=exc.status_code)


def create_app(settings: Settings | None = None, deps: NimbusDeps | None = None) -> Starlette:
    """Build the API app. Pass `deps` to reuse existing services (tests); otherwise they are
    created on startup and the HTTP client is closed on shutdown."""
    if deps is not None:
        settings = deps.settings
    elif settings is None:
        settings = Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: Starlette):
        app.state.started_at = time.monotonic()
        if deps is not None:
            app.state.deps = deps
            yield
            return
        if not settings.openweather_api_key:
            logger.warning("OPENWEATHER_API_KEY is not set; weather requests will fail")
        if not settings.llm_enabled:
            logger.warning("OPENROUTER_API_KEY is not set; using the fallback parser and summaries")
        async with create_http_client(settings) as client:
            app.state.deps = build_deps(settings, client)
            yield

    routes = [
        Route("/", index),
        Route("/health", health),
        Route("/weather", weather, methods=["POST"]),
        Route("/forecast", forecast, methods=["GET"]),
        Route("/compare", compare, methods=["POST"]),
        Route("/location", location, methods=["GET"]),
    ]
    return Starlette(routes=routes, lifespan=lifespan, exception_handlers={HTTPException: http_error})


def serve() -> None:
    """Console entry point: run the API under uvicorn."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        settings = Settings.from_env()
    except ConfigError as e:
        logger.error("Server startup failed: %s", e)
        raise SystemExit(1) from e
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)
