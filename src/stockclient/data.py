import base64
import binascii
import gzip
import json
import zlib
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Tuple, Union

from dateutil import parser as date_parser

from stockclient.errors import ValidationError, DecodeError, InvalidStateError


@dataclass(frozen=True)
class Compressed:
    buffer: bytes


@dataclass(frozen=True)
class Decoded:
    value: Any


PayloadState = Union[Compressed, Decoded]


def parse_when(raw: Union[str, datetime]) -> datetime:
    """Parses an ISO-ish timestamp, raising ValidationError instead of defaulting."""
    if isinstance(raw, datetime):
        return raw
    if not isinstance(raw, str) or not raw.strip():
        raise ValidationError(f"Invalid timestamp: {raw!r}")
    try:
        return date_parser.parse(raw)
    except (ValueError, OverflowError) as e:
        raise ValidationError(f"Invalid timestamp: {raw!r}") from e


def _normalize_tickers(raw: Iterable[str]) -> Tuple[str, ...]:
    if isinstance(raw, (str, bytes)) or not isinstance(raw, (list, tuple)):
        raise ValidationError(f"tickers must be a list of strings, got {type(raw).__name__}")
    tickers = []
    for t in raw:
        if not isinstance(t, str):
            raise ValidationError(f"Invalid ticker: {t!r}")
        tickers.append(t.upper())
    return tuple(tickers)


def _b64decode(raw: str) -> bytes:
    if not isinstance(raw, (str, bytes)):
        raise ValidationError(f"payload must be a base64 string, got {type(raw).__name__}")
    try:
        return base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError("payload is not valid base64") from e


class Data:
    """
    One push from the stock server.

    The payload arrives as base64(gzip(JSON)) and is only decompressed the
    first time `payload()` is called. The decoded value replaces the
    compressed buffer, so a Data holds exactly one of the two at any time.
    """

    def __init__(self, when: Union[str, datetime], tickers: Iterable[str], payload: str):
        self._when = parse_when(when)
        self._tickers = _normalize_tickers(tickers)
        self._state: PayloadState = Compressed(_b64decode(payload))

    @classmethod
    def from_json(cls, body: Any) -> "Data":
        """Builds a Data from the `{when, tickers, payload}` wire body."""
        if not isinstance(body, dict):
            raise ValidationError("data body must be a JSON object")
        missing = [k for k in ("when", "tickers", "payload") if k not in body]
        if missing:
            raise ValidationError(f"data body missing field(s): {', '.join(missing)}")
        return cls(body["when"], body["tickers"], body["payload"])

    @property
    def when(self) -> datetime:
        return self._when

    @property
    def tickers(self) -> Tuple[str, ...]:
        return self._tickers

    @property
    def decoded(self) -> bool:
        return isinstance(self._state, Decoded)

    def payload(self) -> Any:
        """
        Returns the decoded payload, decompressing it on first use.

        Raises:
            DecodeError: the buffer is not gzip or does not hold UTF-8 JSON.
                The buffer is kept, so a later call tries again.
            InvalidStateError: there is neither a buffer nor a decoded value.
        """
        state = self._state
        if isinstance(state, Decoded):
            return state.value
        if not isinstance(state, Compressed):
            raise InvalidStateError("No payload buffer or decoded value")

        try:
            raw = gzip.decompress(state.buffer)
        except (OSError, EOFError, zlib.error) as e:
            raise DecodeError(f"Could not decompress payload: {e}") from e
        try:
            value = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise DecodeError(f"Could not parse payload: {e}") from e

        self._state = Decoded(value)
        return value

    def __repr__(self) -> str:
        return (
            f"Data(when={self._when.isoformat()}, tickers={list(self._tickers)}, "
            f"state={type(self._state).__name__})"
        )
