"""Unit tests for the time-bucket codec."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from models.records import SensorValues
from services import codec
from services.errors import DecodingError, EncodingError


def test_truncate_rounds_down_to_resolution() -> None:
    moment = datetime(2024, 1, 2, 10, 7, 42, 123456, tzinfo=timezone.utc)

    assert codec.truncate(moment, timedelta(minutes=10)) == datetime(
        2024, 1, 2, 10, 0, tzinfo=timezone.utc
    )
    assert codec.truncate(moment, timedelta(seconds=1)) == datetime(
        2024, 1, 2, 10, 7, 42, tzinfo=timezone.utc
    )


def test_truncate_normalizes_offsets_and_naive_values_to_utc() -> None:
    offset = timezone(timedelta(hours=2))
    aware = datetime(2024, 1, 2, 12, 13, tzinfo=offset)
    naive = datetime(2024, 1, 2, 10, 13)

    expected = datetime(2024, 1, 2, 10, 10, tzinfo=timezone.utc)
    assert codec.truncate(aware, timedelta(minutes=5)) == expected
    assert codec.truncate(naive, timedelta(minutes=5)) == expected
    assert codec.truncate(aware, timedelta(minutes=5)).tzinfo == timezone.utc


def test_encode_key_uses_utc_second_precision() -> None:
    moment = datetime(2024, 1, 2, 3, 40, tzinfo=timezone.utc)

    assert codec.encode_key(moment) == b"2024-01-02T03:40:00Z"


def test_key_order_matches_chronological_order() -> None:
    base = datetime(2023, 12, 31, 23, 50, tzinfo=timezone.utc)
    moments = [base + timedelta(minutes=10 * step) for step in (5, 0, 3, 1, 200, 2)]

    by_key = sorted(moments, key=codec.encode_key)

    assert by_key == sorted(moments)


def test_keys_before_year_1000_are_zero_padded() -> None:
    early = datetime(926, 1, 1, tzinfo=timezone.utc)
    late = datetime(2024, 1, 2, tzinfo=timezone.utc)

    assert codec.encode_key(early) == b"0926-01-01T00:00:00Z"
    assert codec.encode_key(early) < codec.encode_key(late)
    assert codec.decode_key(codec.encode_key(early)) == early


def test_earliest_bucket_is_aligned_and_representable() -> None:
    earliest = codec.earliest_bucket(timedelta(seconds=7))

    assert earliest >= datetime.min.replace(tzinfo=timezone.utc)
    assert earliest - datetime.min.replace(tzinfo=timezone.utc) < timedelta(seconds=7)
    assert codec.truncate(earliest, timedelta(seconds=7)) == earliest
    assert codec.earliest_bucket(timedelta(minutes=10)) == datetime(1, 1, 1, tzinfo=timezone.utc)


def test_decode_key_round_trips_and_rejects_garbage() -> None:
    moment = datetime(2024, 1, 2, 10, 0, tzinfo=timezone.utc)

    assert codec.decode_key(codec.encode_key(moment)) == moment
    with pytest.raises(DecodingError):
        codec.decode_key(b"not-a-timestamp")
    with pytest.raises(DecodingError):
        codec.decode_key(b"\xff\xfe")


def test_encode_values_uses_tagged_fields() -> None:
    payload = codec.encode_values(SensorValues(temperature=21.5, humidity=55.0))

    assert json.loads(payload) == {"Temperature": 21.5, "Humidity": 55.0}


def test_encode_values_rejects_non_finite_and_foreign_input() -> None:
    with pytest.raises(EncodingError):
        codec.encode_values(SensorValues(temperature=float("nan"), humidity=50.0))
    with pytest.raises(EncodingError):
        codec.encode_values({"Temperature": 1.0, "Humidity": 2.0})  # type: ignore[arg-type]


def test_decode_values_rejects_malformed_payloads() -> None:
    with pytest.raises(DecodingError):
        codec.decode_values(b"{not json")
    with pytest.raises(DecodingError):
        codec.decode_values(b'{"Temperature": 1.0}')


def test_values_are_held_in_single_precision() -> None:
    values = SensorValues(temperature=21.3, humidity=55.1)

    assert values.temperature != 21.3
    assert values.temperature == pytest.approx(21.3, abs=1e-5)
    assert codec.decode_values(codec.encode_values(values)) == values


def test_values_outside_single_precision_range_are_rejected() -> None:
    with pytest.raises(ValidationError):
        SensorValues(temperature=1e39, humidity=0.0)


def test_resolution_must_be_positive_whole_seconds() -> None:
    assert codec.validate_resolution(timedelta(minutes=10)) == timedelta(minutes=10)
    with pytest.raises(ValueError):
        codec.validate_resolution(timedelta(0))
    with pytest.raises(ValueError):
        codec.validate_resolution(timedelta(milliseconds=1500))
