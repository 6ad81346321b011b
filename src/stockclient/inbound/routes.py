from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from flask import Blueprint, jsonify, request

from stockclient.inbound.dispatcher import Dispatcher

# (body, info) -> None, run on the dispatcher worker
PushHandler = Callable[[Any, "RequestInfo"], None]


@dataclass(frozen=True)
class RequestInfo:
    """What is known about the sender of an inbound push."""
    remote_addr: Optional[str]
    path: str
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def ip(self) -> Optional[str]:
        return self.remote_addr


def _capture() -> RequestInfo:
    return RequestInfo(remote_addr=request.remote_addr, path=request.path)


def build_blueprint(
    dispatcher: Dispatcher, on_data: PushHandler, on_signal: PushHandler, name: str = "stockclient"
) -> Blueprint:
    """
    Builds the `/data` and `/signal` routes. Both answer `{"success": true}`
    before anything else happens; the body is handed to the dispatcher.
    """
    bp = Blueprint(name, __name__)

    @bp.route("/data", methods=["POST"])
    def data():
        body = request.get_json(force=True, silent=True)
        dispatcher.submit(on_data, body, _capture())
        return jsonify(success=True)

    @bp.route("/signal", methods=["POST"])
    def signal():
        body = request.get_json(force=True, silent=True)
        dispatcher.submit(on_signal, body, _capture())
        return jsonify(success=True)

    return bp
