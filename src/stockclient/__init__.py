"""stockclient - webhook client for the streaming stock server."""

from .client import StockClient, Event, Handlers
from .data import Data
from .inbound.routes import RequestInfo
from .core.result import Result
from .errors import (
    StockClientError,
    ValidationError,
    ConfigurationError,
    DecodeError,
    InvalidStateError,
    RemoteStatusError,
    RegistrationError,
    CommandError,
    DispatchError,
)

__version__ = "0.1.0"
