from datetime import datetime
from typing import Any, Optional, Union
from urllib.parse import urlsplit, urlunsplit, parse_qsl, urlencode

import requests
from dateutil import parser as date_parser

from stockclient.errors import ValidationError
from stockclient.utils.logger import get_logger

logger = get_logger("core.utils")

# Query format the stock server expects for /serv/reset?date=
RESET_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"


def format_when(when: Union[datetime, str]) -> str:
    """Formats a restart point in time as YYYY-MM-DDTHH:MM:SS."""
    if isinstance(when, str):
        try:
            when = date_parser.parse(when)
        except (ValueError, OverflowError) as e:
            raise ValidationError(f"Invalid restart date: {when!r}") from e
    if not isinstance(when, datetime):
        raise ValidationError(f"Invalid restart date: {when!r}")
    return when.strftime(RESET_DATE_FORMAT)


def mask_token(url: str) -> str:
    """Hides the `token` query value so URLs can be logged."""
    parts = urlsplit(url)
    if not parts.query:
        return url
    query = [(k, "***" if k == "token" else v) for k, v in parse_qsl(parts.query, keep_blank_values=True)]
    return urlunsplit(parts._replace(query=urlencode(query, safe="*")))


def response_body(resp: requests.Response) -> Any:
    """Best-effort body for error messages: JSON if it parses, text otherwise."""
    try:
        return resp.json()
    except ValueError:
        return resp.text


def send_request(
    session: requests.Session,
    method: str,
    url: str,
    *,
    json: Optional[Any] = None,
    timeout: float = 15.0,
) -> requests.Response:
    """
    Performs a single HTTP request. There is no retry: transport errors
    propagate to the caller unchanged and status codes are left to it.
    """
    logger.debug("%s %s", method, mask_token(url))
    try:
        return session.request(method, url, json=json, timeout=timeout)
    except requests.exceptions.RequestException as e:
        logger.warning("Request error on %s %s: %s", method, mask_token(url), e)
        raise
