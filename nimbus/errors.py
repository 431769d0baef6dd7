# ABOUTME: Exception hierarchy shared by the intent, geolocation, provider and summary services.
# ABOUTME: Each error carries the details the HTTP and terminal surfaces need to report it.

from enum import Enum
from typing import Any


class NimbusError(Exception):
    """Base class for every error raised deliberately by nimbus."""


class ConfigError(NimbusError):
    """Environment is missing a required value or holds an invalid one."""


class ParseError(NimbusError):
    """The language model could not produce a valid intent."""

    def __init__(self, message: str, fields: list[str] | None = None):
        super().__init__(message)
        self.fields = fields or []


class GeoIPError(NimbusError):
    """IP geolocation failed or returned an incomplete location."""


class ProviderErrorKind(str, Enum):
    INVALID_CREDENTIALS = "invalid_credentials"
    LOCATION_NOT_FOUND = "location_not_found"
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


class ProviderError(NimbusError):
    """The weather provider rejected or failed a request."""

    def __init__(self, kind: ProviderErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


class SummaryError(NimbusError):
    """The language model could not produce a valid summary."""


class ValidationError(NimbusError):
    """Caller input is malformed."""

    def __init__(self, message: str, field: str, value: Any = None):
        super().__init__(message)
        self.field = field
        self.value = value


class ServiceError(NimbusError):
    """Generic upstream failure, tagged with the service it came from."""

    def __init__(self, message: str, origin: str):
        super().__init__(message)
        self.origin = origin
