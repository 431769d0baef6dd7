# ABOUTME: Resolves the caller's city from their IP address via the ip-api.com service.
# ABOUTME: Incomplete or failed lookups raise GeoIPError; callers decide whether to fall back.

import httpx

from nimbus.config import Settings
from nimbus.errors import GeoIPError
from nimbus.models import GeoLocation
from nimbus.retry import is_transient_http_error, retrying


class GeoIPResolver:
    def __init__(self, client: httpx.AsyncClient, settings: Settings):
        self._client = client
        self._settings = settings

    async def get_current_location(self) -> GeoLocation:
        """Locate the machine making the request."""
        return await self._lookup("/json")

    async def get_location_by_ip(self, ip: str) -> GeoLocation:
        """Locate an arbitrary public IP address."""
        return await self._lookup(f"/json/{ip}")

    async def _lookup(self, path: str) -> GeoLocation:
        fetch = retrying(self._settings.retry, is_transient_http_error)(self._get_json)
        try:
            data = await fetch(self._settings.geoip_base_url + path)
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 429:
                raise GeoIPError("GeoIP API rate limit exceeded. Please try again later.") from e
            raise GeoIPError(f"GeoIP API error: HTTP {e.response.status_code}") from e
        except httpx.TimeoutException as e:
            raise GeoIPError("GeoIP request timeout. Please check your internet connection and try again.") from e
        except httpx.HTTPError as e:
            raise GeoIPError(f"GeoIP API error: {e}") from e
        except ValueError as e:
            raise GeoIPError("Malformed response from GeoIP service") from e

        return parse_location(data)

    async def _get_json(self, url: str) -> dict:
        resp = await self._client.get(url)
        resp.raise_for_status()
        return resp.json()


def parse_location(data: dict) -> GeoLocation:
    """Build a GeoLocation from an ip-api.com payload, rejecting partial results."""
    if not isinstance(data, dict):
        raise GeoIPError("Malformed response from GeoIP service")
    if data.get("status") == "fail":
        raise GeoIPError(f"IP lookup failed: {data.get('message') or 'Unknown error'}")

    lat, lon = data.get("lat"), data.get("lon")
    if (
        not data.get("city")
        or not data.get("country")
        or not isinstance(lat, (int, float))
        or not isinstance(lon, (int, float))
    ):
        raise GeoIPError("Invalid location data received from GeoIP service")

    return GeoLocation(
        city=data["city"],
        country=data["country"],
        region=data.get("regionName") or data.get("region") or "",
        lat=lat,
        lon=lon,
        timezone=data.get("timezone") or "UTC",
    )


def format_location(location: GeoLocation) -> str:
    parts = [location.city]
    if location.region and location.region != location.city:
        parts.append(location.region)
    parts.append(location.country)
    return ", ".join(parts)
