from typing import Any, Optional


class StockClientError(Exception):
    """Base class for every error raised by stockclient."""


class ValidationError(StockClientError):
    """Malformed construction input or an unknown event name."""


class ConfigurationError(StockClientError):
    """Missing or invalid configuration (e.g. no secret for a server command)."""


class DecodeError(StockClientError):
    """The compressed payload could not be gunzipped or parsed as JSON."""


class InvalidStateError(StockClientError):
    """Payload requested with neither a compressed buffer nor a decoded value."""


class RemoteStatusError(StockClientError):
    """The stock server answered with a non-200 status."""

    def __init__(self, status_code: int, uri: str, body: Any = None, message: Optional[str] = None):
        self.status_code = status_code
        self.uri = uri
        self.body = body
        super().__init__(message or f"Bad status code: {status_code}\nError: {uri}, {body!r}")


class RegistrationError(RemoteStatusError):
    """PUT/DELETE /register was refused."""


class CommandError(RemoteStatusError):
    """GET /serv/* was refused."""


class DispatchError(StockClientError):
    """An acknowledged push was dropped because the handler queue was full."""
