"""Shared fixtures: a recording stand-in for requests.Session and payload builders."""
import base64
import gzip
import json
from typing import Any, List, Optional

import pytest
import requests

from stockclient.config.appenv import AppEnv
from stockclient.config.settings import Settings


class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None):
        self.status_code = status_code
        if body is None:
            body = {"success": True}
        self.text = body if isinstance(body, str) else json.dumps(body)

    def json(self):
        return json.loads(self.text)


class FakeSession:
    """Records every request; replies with queued responses or raises a queued error."""

    def __init__(self):
        self.calls: List[dict] = []
        self.responses: List[FakeResponse] = []
        self.error: Optional[Exception] = None
        self.closed = False

    def close(self):
        self.closed = True

    def reply(self, status_code: int = 200, body: Any = None) -> "FakeSession":
        self.responses.append(FakeResponse(status_code, body))
        return self

    def request(self, method, url, json=None, timeout=None):
        self.calls.append({"method": method, "url": url, "json": json, "timeout": timeout})
        if self.error is not None:
            raise self.error
        if self.responses:
            return self.responses.pop(0)
        return FakeResponse()


def encode_payload(value: Any) -> str:
    return base64.b64encode(gzip.compress(json.dumps(value).encode("utf-8"))).decode("ascii")


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def settings() -> Settings:
    return Settings(SECRET="s3cret", TIMEOUT_MS=2500, CLIENT_PATHNAME="/client")


@pytest.fixture
def no_secret_settings() -> Settings:
    return Settings(SECRET="", TIMEOUT_MS=2500, CLIENT_PATHNAME="/client")


@pytest.fixture
def appenv() -> AppEnv:
    return AppEnv(environ={}, port=8080, services={"stock-server": "http://stocks.example.com/"})


@pytest.fixture
def transport_error() -> Exception:
    return requests.exceptions.ConnectTimeout("timed out")


@pytest.fixture
def make_payload():
    return encode_payload
