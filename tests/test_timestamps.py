from __future__ import annotations

from datetime import datetime, timezone

from samvaad.utils.timestamps import parse_timestamp, utc_now


def test_utc_now_is_aware():
    assert utc_now().tzinfo is not None


def test_parses_postgrest_iso_with_z():
    out = parse_timestamp("2024-05-01T10:00:00Z")
    assert out == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)


def test_parses_offsets_to_utc():
    out = parse_timestamp("2024-05-01T15:30:00+05:30")
    assert out == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)


def test_naive_values_are_treated_as_utc():
    assert parse_timestamp(datetime(2024, 1, 1)) == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert parse_timestamp("2024-01-01T00:00:00") == datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_epoch_seconds():
    assert parse_timestamp(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)


def test_garbage_yields_none():
    for value in ("", "   ", "yesterday", True, None, object()):
        assert parse_timestamp(value) is None
