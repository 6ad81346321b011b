import threading
from datetime import datetime
from typing import Callable, Dict, Optional, Union
from urllib.parse import urlencode

import requests

from stockclient.config.settings import Settings
from stockclient.core.result import Result
from stockclient.core.utils import format_when, mask_token, response_body, send_request
from stockclient.errors import CommandError, ConfigurationError, RegistrationError, StockClientError
from stockclient.utils.logger import get_logger

logger = get_logger("remote.connector")

ResultCallback = Callable[[Result], None]

NO_SECRET_MSG = "Secret is not specified, server requests are unavailable."


class RemoteConnector:
    """Outbound side of the client: registration and stream commands."""

    def __init__(self, settings: Settings, base_url: str, local: Dict, session: Optional[requests.Session] = None):
        self.settings = settings
        self.base_url = base_url[:-1] if base_url.endswith("/") else base_url
        self.local = local
        self._owns_session = session is None
        self.session = session or requests.Session()

    def close(self) -> None:
        """Closes the HTTP session if this connector created it."""
        if self._owns_session:
            self.session.close()

    def _remote_url(self, path: str, query: Optional[Dict[str, str]] = None) -> str:
        url = f"{self.base_url}{path}"
        if query:
            q = {k: v for k, v in query.items() if v is not None}
            if q:
                url = f"{url}?{urlencode(q)}"
        return url

    def _registration_body(self) -> Dict:
        return {"href": dict(self.local), "verb": "POST"}

    def _dispatch(self, fn: Callable[[], Result], callback: Optional[ResultCallback]) -> Union[Result, threading.Thread]:
        if callback is None:
            return fn()

        def _run():
            callback(fn())

        t = threading.Thread(target=_run, daemon=True)
        t.start()
        return t

    # ----- Registration -----

    def _register(self, method: str) -> Result:
        uri = self._remote_url("/register")
        try:
            resp = send_request(self.session, method, uri, json=self._registration_body(), timeout=self.settings.TIMEOUT_S)
        except requests.exceptions.RequestException as e:
            return Result.failure(e)

        if resp.status_code != 200:
            err = RegistrationError(resp.status_code, uri, response_body(resp))
            logger.error("%s /register failed: %s", method, err)
            return Result.failure(err, resp)

        logger.info("%s /register ok (href=%s)", method, self.local)
        return Result.success(resp)

    def register(self, callback: Optional[ResultCallback] = None):
        return self._dispatch(lambda: self._register("PUT"), callback)

    def unregister(self, callback: Optional[ResultCallback] = None):
        return self._dispatch(lambda: self._register("DELETE"), callback)

    # ----- Stream commands -----

    def _command(self, path: str, query: Optional[Dict[str, str]] = None) -> Result:
        if not self.settings.has_secret:
            return Result.failure(ConfigurationError(NO_SECRET_MSG))

        uri = self._remote_url(path, {"token": self.settings.SECRET, **(query or {})})
        try:
            resp = send_request(self.session, "GET", uri, timeout=self.settings.TIMEOUT_S)
        except requests.exceptions.RequestException as e:
            return Result.failure(e)

        if resp.status_code != 200:
            body = resp.text
            err = CommandError(
                resp.status_code, uri, body,
                message=f"Bad status code: {resp.status_code}\nError: {body}",
            )
            logger.error("GET %s failed with status %s", mask_token(uri), resp.status_code)
            return Result.failure(err, resp)

        logger.info("GET %s ok", path)
        return Result.success(resp)

    def start(self, callback: Optional[ResultCallback] = None):
        return self._dispatch(lambda: self._command("/serv/start"), callback)

    def stop(self, callback: Optional[ResultCallback] = None):
        return self._dispatch(lambda: self._command("/serv/stop"), callback)

    def restart(self, when: Optional[Union[datetime, str]] = None, callback: Optional[ResultCallback] = None):
        def _do() -> Result:
            try:
                date = format_when(when) if when is not None else None
            except StockClientError as e:
                return Result.failure(e)
            return self._command("/serv/reset", {"date": date})

        return self._dispatch(_do, callback)
