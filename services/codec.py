"""Time-bucket codec: pure helpers mapping timestamps and readings to bytes.

Keys use a fixed RFC 3339 profile (UTC, second precision, ``Z`` suffix) so that
byte-wise key order is the same as chronological order. Range scans depend on
that property.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

from pydantic import ValidationError

from models.records import SensorValues, TimedSensorValues
from services.errors import DecodingError, EncodingError

KEY_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_EARLIEST = datetime.min.replace(tzinfo=timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def validate_resolution(resolution: timedelta) -> timedelta:
    if resolution <= timedelta(0):
        raise ValueError(f"Resolution must be positive, got {resolution}.")
    if resolution % timedelta(seconds=1):
        raise ValueError(
            f"Resolution must be a whole number of seconds, got {resolution}."
        )
    return resolution


def truncate(moment: datetime, resolution: timedelta) -> datetime:
    """Round ``moment`` down to a multiple of ``resolution`` since the Unix epoch.

    Naive datetimes are taken to be UTC. The result is always UTC.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment - (moment - _EPOCH) % resolution


def earliest_bucket(resolution: timedelta) -> datetime:
    """First bucket boundary representable as a ``datetime``."""
    offset = (_EARLIEST - _EPOCH) % resolution
    return _EARLIEST + (resolution - offset) % resolution


def encode_key(moment: datetime, time_format: str = KEY_FORMAT) -> bytes:
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    # strftime does not pad years below 1000 on every platform.
    time_format = time_format.replace("%Y", f"{moment.year:04d}")
    return moment.strftime(time_format).encode("ascii")


def decode_key(raw: bytes, time_format: str = KEY_FORMAT) -> datetime:
    try:
        text = raw.decode("ascii")
        parsed = datetime.strptime(text, time_format)
    except (UnicodeDecodeError, ValueError) as exc:
        raise DecodingError(f"Malformed bucket key {raw!r}.") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def encode_values(values: SensorValues) -> bytes:
    if not isinstance(values, SensorValues):
        raise EncodingError(
            f"Expected SensorValues, got {type(values).__name__}."
        )
    payload = values.model_dump(by_alias=True)
    try:
        text = json.dumps(payload, allow_nan=False, separators=(",", ":"))
    except ValueError as exc:
        raise EncodingError(f"Cannot serialize {payload}: {exc}") from exc
    return text.encode("utf-8")


def decode_values(raw: bytes) -> SensorValues:
    try:
        return SensorValues.model_validate_json(raw)
    except ValidationError as exc:
        raise DecodingError(f"Malformed sensor values {raw!r}.") from exc


def decode_entry(
    key: bytes, value: bytes, time_format: str = KEY_FORMAT
) -> TimedSensorValues:
    return TimedSensorValues(
        timestamp=decode_key(key, time_format),
        values=decode_values(value),
    )
