"""Tests for StockClient: registration, commands, inbound pushes and handlers."""
import gzip
import json
import threading
from datetime import datetime

import pytest
from flask import Flask

from stockclient.client import StockClient, Event, Handlers
from stockclient.config.appenv import AppEnv
from stockclient.config.settings import Settings
from stockclient.data import Data
from stockclient.errors import (
    ConfigurationError,
    CommandError,
    RegistrationError,
    ValidationError,
)


@pytest.fixture
def app():
    return Flask(__name__)


@pytest.fixture
def client(app, settings, appenv, session):
    c = StockClient(app, settings=settings, appenv=appenv, session=session)
    yield c
    c.close()


# ----- Registration -----

def test_endpoint_strips_trailing_slash(client):
    assert client.endpoint == "http://stocks.example.com"
    assert client.timeout == 2500


def test_connect_puts_local_address(client, session):
    result = client.connect()

    assert result.ok
    call = session.calls[0]
    assert call["method"] == "PUT"
    assert call["url"] == "http://stocks.example.com/register"
    assert call["json"] == {
        "href": {"protocol": "http:", "port": 8080, "pathname": "/client"},
        "verb": "POST",
    }
    assert call["timeout"] == 2.5


def test_connect_with_public_url(settings, session):
    env = AppEnv(environ={}, url="https://myapp.example.io", services={"stock-server": "http://s"})
    c = StockClient(settings=settings, appenv=env, session=session)
    c.connect()
    assert session.calls[0]["json"]["href"] == {
        "protocol": "https:",
        "hostname": "myapp.example.io",
        "pathname": "/client",
    }


def test_connect_non_200_is_registration_error(client, session):
    session.reply(500, "nope")
    result = client.connect()

    assert not result.ok
    assert isinstance(result.error, RegistrationError)
    assert result.error.status_code == 500
    assert "http://stocks.example.com/register" in str(result.error)
    with pytest.raises(RegistrationError):
        result.unwrap()


def test_connect_transport_error_passes_through(client, session, transport_error):
    session.error = transport_error
    result = client.connect()
    assert result.error is transport_error


def test_disconnect_deletes_same_body(client, session):
    assert client.disconnect().ok
    call = session.calls[0]
    assert call["method"] == "DELETE"
    assert call["url"] == "http://stocks.example.com/register"
    assert call["json"]["href"] == client.local


def test_connect_with_callback_runs_in_background(client, session):
    done = threading.Event()
    seen = []

    def cb(result):
        seen.append(result)
        done.set()

    t = client.connect(callback=cb)
    assert isinstance(t, threading.Thread)
    assert done.wait(2.0)
    assert len(seen) == 1 and seen[0].ok


def test_disconnect_non_200_is_registration_error(client, session):
    session.reply(404, {"error": "not registered"})
    result = client.disconnect()

    assert isinstance(result.error, RegistrationError)
    assert result.error.status_code == 404
    assert session.calls[0]["method"] == "DELETE"


# ----- Commands -----

@pytest.mark.parametrize("command", ["start", "stop", "restart"])
def test_commands_without_secret_make_no_network_call(app, no_secret_settings, appenv, session, command):
    c = StockClient(app, settings=no_secret_settings, appenv=appenv, session=session)
    result = getattr(c, command)()

    assert isinstance(result.error, ConfigurationError)
    assert session.calls == []


def test_commands_without_secret_report_through_callback(no_secret_settings, appenv, session):
    c = StockClient(settings=no_secret_settings, appenv=appenv, session=session)
    done = threading.Event()
    seen = []

    def cb(result):
        seen.append(result)
        done.set()

    c.start(callback=cb)
    assert done.wait(2.0)
    assert isinstance(seen[0].error, ConfigurationError)
    assert session.calls == []


def test_start_and_stop_send_token(client, session):
    assert client.start().ok
    assert client.stop().ok
    assert session.calls[0]["url"] == "http://stocks.example.com/serv/start?token=s3cret"
    assert session.calls[1]["url"] == "http://stocks.example.com/serv/stop?token=s3cret"
    assert all(c["method"] == "GET" for c in session.calls)


def test_start_forbidden_is_command_error(client, session):
    session.reply(403, "forbidden")
    result = client.start()

    assert isinstance(result.error, CommandError)
    assert "403" in str(result.error)
    assert "forbidden" in str(result.error)


@pytest.mark.parametrize("command", ["start", "stop", "restart"])
def test_command_transport_error_passes_through(client, session, transport_error, command):
    session.error = transport_error
    result = getattr(client, command)()

    assert result.error is transport_error
    assert len(session.calls) == 1


def test_restart_formats_date(client, session):
    client.restart(None, datetime(2024, 3, 5, 9, 30, 0))
    assert session.calls[0]["url"] == (
        "http://stocks.example.com/serv/reset?token=s3cret&date=2024-03-05T09%3A30%3A00"
    )


def test_restart_afternoon_uses_24_hour_clock(client, session):
    client.restart(when="2024-03-05 15:45:10")
    assert "date=2024-03-05T15%3A45%3A10" in session.calls[0]["url"]


def test_restart_without_date_omits_param(client, session):
    client.restart()
    assert session.calls[0]["url"] == "http://stocks.example.com/serv/reset?token=s3cret"


def test_restart_bad_date_is_validation_error(client, session):
    result = client.restart(when="whenever")
    assert isinstance(result.error, ValidationError)
    assert session.calls == []


# ----- Inbound -----

def test_data_push_acks_then_dispatches(app, client, make_payload):
    received = []
    client.on("data", lambda data, info: received.append((data, info)))

    resp = app.test_client().post("/client/data", json={
        "when": "2024-03-05T09:30:00",
        "tickers": ["aapl", "spy"],
        "payload": make_payload([1, 2, 3]),
    })
    assert resp.status_code == 200
    assert resp.get_json() == {"success": True}

    client.drain()
    data, info = received[0]
    assert isinstance(data, Data)
    assert data.tickers == ("AAPL", "SPY")
    assert data.payload() == [1, 2, 3]
    assert info.ip == "127.0.0.1"


def test_malformed_data_push_is_acked_and_reported(app, client):
    errors = []
    client.on(Event.ERROR, errors.append)

    resp = app.test_client().post("/client/data", json={"when": "yesterday-ish", "tickers": []})
    assert resp.status_code == 200
    assert resp.get_json() == {"success": True}

    client.drain()
    assert len(errors) == 1
    assert isinstance(errors[0], ValidationError)


def test_handler_exception_goes_to_error_handler(app, client, make_payload):
    errors = []
    client.on("error", errors.append)

    def boom(data, info):
        raise RuntimeError("handler blew up")

    client.on("data", boom)
    app.test_client().post("/client/data", json={
        "when": "2024-03-05", "tickers": [], "payload": make_payload({}),
    })
    client.drain()
    assert [str(e) for e in errors] == ["handler blew up"]


def test_signal_push_calls_status(app, client):
    signals = []
    client.on("status", lambda signal, info: signals.append(signal))

    resp = app.test_client().post("/client/signal", json={"signal": "market-open"})
    assert resp.get_json() == {"success": True}

    client.drain()
    assert signals == ["market-open"]


def test_default_handlers_do_not_raise(app, client, make_payload):
    errors = []
    client.handlers.error = errors.append
    tc = app.test_client()
    tc.post("/client/data", json={"when": "2024-03-05", "tickers": ["x"], "payload": make_payload([{}, {}])})
    tc.post("/client/signal", json={"signal": "ping"})
    client.drain()
    assert errors == []


# ----- Handler registration -----

def test_on_unknown_event_reports_and_keeps_handlers(client):
    errors = []
    client.on("error", errors.append)
    before = (client.handlers.error, client.handlers.status, client.handlers.data)

    client.on("bogus", lambda *a: None)

    assert len(errors) == 1
    assert isinstance(errors[0], ValidationError)
    assert "bogus" in str(errors[0])
    assert (client.handlers.error, client.handlers.status, client.handlers.data) == before


def test_on_non_callable_is_reported(client):
    errors = []
    client.on("error", errors.append)
    original = client.handlers.data

    client.on("data", "not a function")

    assert isinstance(errors[0], ValidationError)
    assert client.handlers.data is original


def test_handlers_can_be_passed_at_construction(settings, appenv, session):
    seen = []
    handlers = Handlers(status=lambda s, info: seen.append(s))
    c = StockClient(settings=settings, appenv=appenv, handlers=handlers, session=session)
    assert c.handlers.status is handlers.status
    assert c.on(Event.DATA, lambda d, i: None) is c


# ----- Hosting -----

def test_ack_is_gzipped_when_accepted(app, client):
    resp = app.test_client().post(
        "/client/signal",
        json={"signal": "ping"},
        headers={"Accept-Encoding": "gzip"},
    )
    assert resp.status_code == 200
    assert resp.headers["Content-Encoding"] == "gzip"
    assert json.loads(gzip.decompress(resp.data)) == {"success": True}
    client.drain()


def test_two_clients_on_one_app(app, appenv, session):
    first = StockClient(app, settings=Settings(SECRET="a", CLIENT_PATHNAME="/client"), appenv=appenv, session=session)
    second = StockClient(app, settings=Settings(SECRET="b", CLIENT_PATHNAME="/other/feed"), appenv=appenv, session=session)
    signals = []
    second.on("status", lambda signal, info: signals.append(signal))

    tc = app.test_client()
    assert tc.post("/client/signal", json={"signal": "one"}).status_code == 200
    assert tc.post("/other/feed/signal", json={"signal": "two"}).status_code == 200

    first.drain()
    second.drain()
    assert signals == ["two"]
    assert first.blueprint.name != second.blueprint.name
    first.close()
    second.close()


def test_close_only_closes_owned_session(settings, appenv, session, monkeypatch):
    injected = StockClient(settings=settings, appenv=appenv, session=session)
    injected.close()
    assert not session.closed

    owned = StockClient(settings=settings, appenv=appenv)
    closed = []
    monkeypatch.setattr(owned._connector.session, "close", lambda: closed.append(True))
    owned.close()
    assert closed == [True]
