from __future__ import annotations

import base64
import binascii
import datetime as dt

EPOCH = dt.datetime(1970, 1, 1, tzinfo=dt.timezone.utc)


def rotate_left8(value: int, shift: int) -> int:
    if shift < 0 or shift > 7:
        raise ValueError("shift must be between 0 and 7")
    value &= 0xFF
    return ((value << shift) | (value >> (8 - shift))) & 0xFF


def b64encode_str(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def b64decode_str(text: str) -> bytes:
    cleaned = "".join(text.split())
    cleaned += "=" * (-len(cleaned) % 4)
    try:
        return base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"invalid base64: {exc}") from exc


def ms_to_datetime(value: int | float | None) -> dt.datetime | None:
    """Convert a GMT epoch timestamp in milliseconds to an aware datetime; 0/None map to None."""
    if value is None:
        return None
    try:
        ms = int(value)
    except (TypeError, ValueError):
        return None
    if ms <= 0:
        return None
    try:
        return EPOCH + dt.timedelta(milliseconds=ms)
    except OverflowError:
        return None


def datetime_to_ms(value: dt.datetime) -> int:
    return (value - EPOCH) // dt.timedelta(milliseconds=1)
