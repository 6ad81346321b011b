import argparse
import signal
import sys
from pathlib import Path
from typing import Optional

from flask import Flask

from stockclient.client import StockClient
from stockclient.config.appenv import AppEnv
from stockclient.config.settings import load_settings, Settings
from stockclient.core.result import Result
from stockclient.utils.logger import setup_logger, get_logger

logger = get_logger("main")

# ===== Global Control =====
client: Optional[StockClient] = None


def graceful_exit(signum, frame):
    print("\n[Signal] Graceful shutdown...")
    if client:
        result = client.disconnect()
        if not result.ok:
            logger.warning("disconnect failed: %s", result.error)
        client.close()
    print("Bye!")
    sys.exit(0)


def _report(name: str, result: Result) -> int:
    if result.ok:
        print(f"[{name.upper()}] ok")
        return 0
    print(f"[{name.upper()}] failed: {result.error}")
    return 1


def serve(settings: Settings, appenv: AppEnv) -> int:
    global client

    app = Flask(__name__)
    client = StockClient(app, settings=settings, appenv=appenv)
    print(f"Stock server: {client.endpoint} | Local: {client.local}")

    result = client.connect()
    if not result.ok:
        logger.error("registration failed: %s", result.error)
        client.close()
        return 1
    print("[REGISTERED] waiting for pushes...")

    signal.signal(signal.SIGINT, graceful_exit)
    signal.signal(signal.SIGTERM, graceful_exit)

    app.run(host=settings.HOST, port=appenv.port, use_reloader=False)
    return 0


def main(argv=None) -> int:
    global client

    p = argparse.ArgumentParser(prog="stockclient", description="Client for the streaming stock server")
    sub = p.add_subparsers(dest="command")
    sub.add_parser("serve", help="Register with the stock server and serve pushes (default)")
    sub.add_parser("start", help="Start streaming")
    sub.add_parser("stop", help="Stop streaming")
    rs = sub.add_parser("restart", help="Restart streaming")
    rs.add_argument("--date", default=None, help="Point in time to restart from (ISO-8601)")
    args = p.parse_args(argv)

    settings = load_settings()
    setup_logger(settings.LOG_LEVEL, Path(settings.LOG_FILE) if settings.LOG_FILE else None)
    appenv = AppEnv()

    command = args.command or "serve"
    if command == "serve":
        return serve(settings, appenv)

    client = StockClient(settings=settings, appenv=appenv)
    if command == "restart":
        return _report(command, client.restart(when=args.date))
    return _report(command, getattr(client, command)())


if __name__ == "__main__":
    sys.exit(main())
