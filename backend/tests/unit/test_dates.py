"""Unit Tests — calendar-date and money helpers."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from paperfix.core.dates import parse_iso_date, quantize_amount, to_iso_date, to_utc_midnight


@pytest.mark.unit
class TestDates:

    def test_parse_iso_date(self):
        assert parse_iso_date("2026-02-01") == date(2026, 2, 1)

    @pytest.mark.parametrize("value", ["2026-2-1", "01-02-2026", "2026-02-01T00:00:00", ""])
    def test_parse_iso_date_is_strict(self, value):
        with pytest.raises(ValueError):
            parse_iso_date(value)

    def test_utc_midnight(self):
        stored = to_utc_midnight("2026-02-01")
        assert stored == datetime(2026, 2, 1, tzinfo=timezone.utc)

    def test_utc_midnight_none(self):
        assert to_utc_midnight(None) is None

    def test_round_trip_is_zone_independent(self):
        stored = to_utc_midnight(date(2026, 2, 1))
        # same instant expressed in UTC+14 and UTC-12
        assert to_iso_date(stored.astimezone(timezone(timedelta(hours=14)))) == "2026-02-01"
        assert to_iso_date(stored.astimezone(timezone(timedelta(hours=-12)))) == "2026-02-01"

    def test_naive_values_read_as_utc(self):
        assert to_iso_date(datetime(2026, 2, 1, 0, 0)) == "2026-02-01"


@pytest.mark.unit
class TestAmounts:

    @pytest.mark.parametrize("raw,expected", [
        (79, Decimal("79.00")),
        ("12.345", Decimal("12.35")),
        (0.125, Decimal("0.13")),
        (None, None),
    ])
    def test_quantize(self, raw, expected):
        assert quantize_amount(raw) == expected
