from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional, Union
from urllib.parse import urlsplit

import requests
from flask import Blueprint, Flask
from flask_compress import Compress

from stockclient.config.appenv import AppEnv
from stockclient.config.settings import Settings, load_settings
from stockclient.data import Data
from stockclient.errors import ValidationError
from stockclient.inbound.dispatcher import Dispatcher
from stockclient.inbound.routes import RequestInfo, build_blueprint
from stockclient.remote.connector import RemoteConnector, ResultCallback
from stockclient.utils.logger import get_logger

logger = get_logger("client")

ErrorHandler = Callable[[BaseException], None]
StatusHandler = Callable[[Optional[str], RequestInfo], None]
DataHandler = Callable[[Data, RequestInfo], None]


class Event(str, Enum):
    ERROR = "error"
    STATUS = "status"
    DATA = "data"


def _default_error(err: BaseException) -> None:
    logger.error("%s", err)


def _default_status(status: Optional[str], info: RequestInfo) -> None:
    logger.debug("[%s]: SIGNAL: %s", info.ip, status)


def _default_data(data: Data, info: RequestInfo) -> None:
    payload = data.payload()
    try:
        logger.debug("[%s]: Received %d rows", info.ip, len(payload))
    except TypeError:
        logger.debug("[%s]: Received %s payload", info.ip, type(payload).__name__)


@dataclass
class Handlers:
    error: ErrorHandler = field(default=_default_error)
    status: StatusHandler = field(default=_default_status)
    data: DataHandler = field(default=_default_data)


def build_local_address(appenv: AppEnv, pathname: str) -> Dict[str, Any]:
    """The address the stock server should push to, sent as `href` on /register."""
    if not appenv.is_local:
        parts = urlsplit(appenv.url)
        local: Dict[str, Any] = {"protocol": f"{parts.scheme}:", "hostname": parts.hostname}
        if parts.port is not None:
            local["port"] = parts.port
    else:
        local = {"protocol": "http:", "port": appenv.port}
    local["pathname"] = pathname
    return local


def blueprint_name(pathname: str) -> str:
    """Blueprint names may not contain dots; one name per mount point."""
    slug = pathname.strip("/").replace("/", "_").replace(".", "_")
    return f"stockclient_{slug}" if slug else "stockclient"


class StockClient:
    """
    Bridges an application to the streaming stock server.

    Registers `<local address><pathname>` with the server, serves the
    `/data` and `/signal` pushes under that pathname, and sends the
    start/stop/restart commands.
    """

    def __init__(
        self,
        app: Optional[Flask] = None,
        settings: Optional[Settings] = None,
        appenv: Optional[AppEnv] = None,
        handlers: Optional[Handlers] = None,
        session: Optional[requests.Session] = None,
    ):
        self.settings = settings or load_settings()
        self.appenv = appenv or AppEnv()
        self.handlers = handlers or Handlers()

        self._local = build_local_address(self.appenv, self.settings.CLIENT_PATHNAME)
        self._connector = RemoteConnector(
            self.settings,
            self.appenv.get_service_url(self.settings.SERVICE_NAME),
            self._local,
            session=session,
        )

        self._dispatcher = Dispatcher(on_error=self._report)
        self._blueprint = build_blueprint(
            self._dispatcher, self._handle_data, self._handle_signal,
            name=blueprint_name(self.settings.CLIENT_PATHNAME),
        )

        if app is not None:
            self.mount(app)

    # ----- Properties -----

    @property
    def blueprint(self) -> Blueprint:
        return self._blueprint

    @property
    def endpoint(self) -> str:
        return self._connector.base_url

    @property
    def local(self) -> Dict[str, Any]:
        return dict(self._local)

    @property
    def timeout(self) -> int:
        """Outbound request timeout in milliseconds."""
        return self.settings.TIMEOUT_MS

    def mount(self, app: Flask) -> None:
        # Responses are gzip/deflate compressed when the sender accepts it
        if "compress" not in app.extensions:
            app.config.setdefault("COMPRESS_MIN_SIZE", 0)
            app.extensions["compress"] = Compress(app)
        app.register_blueprint(self._blueprint, url_prefix=self.settings.CLIENT_PATHNAME)
        logger.info("Inbound endpoints mounted at %s", self.settings.CLIENT_PATHNAME)

    # ----- Inbound -----

    def _report(self, err: BaseException) -> None:
        self.handlers.error(err)

    def _handle_data(self, body: Any, info: RequestInfo) -> None:
        data = Data.from_json(body)
        self.handlers.data(data, info)

    def _handle_signal(self, body: Any, info: RequestInfo) -> None:
        signal = body.get("signal") if isinstance(body, dict) else None
        self.handlers.status(signal, info)

    def on(self, event: Union[Event, str], handler: Callable) -> "StockClient":
        """Replaces the `error`, `status` or `data` handler."""
        try:
            key = Event(event)
        except ValueError:
            self._report(ValidationError(f"Unknown event: {event}"))
            return self

        if not callable(handler):
            self._report(ValidationError(f"Handler for {key.value!r} is not callable"))
            return self

        setattr(self.handlers, key.value, handler)
        return self

    def drain(self) -> None:
        """Waits until every received push has been handled."""
        self._dispatcher.join()

    def close(self) -> None:
        self._dispatcher.stop()
        self._connector.close()

    # ----- Outbound -----

    def connect(self, callback: Optional[ResultCallback] = None):
        """PUT /register with this client's address."""
        return self._connector.register(callback)

    def disconnect(self, callback: Optional[ResultCallback] = None):
        """DELETE /register with this client's address."""
        return self._connector.unregister(callback)

    def start(self, callback: Optional[ResultCallback] = None):
        return self._connector.start(callback)

    def stop(self, callback: Optional[ResultCallback] = None):
        return self._connector.stop(callback)

    def restart(self, callback: Optional[ResultCallback] = None, when: Optional[Union[datetime, str]] = None):
        """Restarts streaming, optionally from the point in time `when`."""
        return self._connector.restart(when, callback)
