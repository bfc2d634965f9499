"""Tests for lifecycle.models -- timestamps, lookups and the status cycle."""

from datetime import datetime, timezone

import pytest

from m365_license_lifecycle.lifecycle import (
    LifecycleStatus,
    OverrideMap,
    SignInLookup,
    next_status,
    parse_timestamp,
)


class TestParseTimestamp:
    def test_graph_seven_digit_fraction(self):
        ts = parse_timestamp("2024-05-15T08:30:12.1234567Z")
        assert ts == datetime(2024, 5, 15, 8, 30, 12, 123456, tzinfo=timezone.utc)

    def test_short_fraction_padded(self):
        assert parse_timestamp("2024-05-15T08:30:12.5Z").microsecond == 500000

    def test_offset_converted_to_utc(self):
        ts = parse_timestamp("2024-05-15T10:00:00+02:00")
        assert ts == datetime(2024, 5, 15, 8, 0, tzinfo=timezone.utc)

    def test_naive_is_utc(self):
        assert parse_timestamp("2024-05-15T08:00:00").tzinfo == timezone.utc

    @pytest.mark.parametrize("value", [None, "", "yesterday", "2024-13-01T00:00:00Z"])
    def test_unparseable_is_none(self, value):
        assert parse_timestamp(value) is None


class TestSignInLookup:
    def test_keeps_newest(self):
        lookup = SignInLookup()
        lookup.record("a@x.com", "2024-05-01T00:00:00Z")
        lookup.record("a@x.com", "2024-05-20T00:00:00Z")
        lookup.record("a@x.com", "2024-05-10T00:00:00Z")
        assert lookup.get("a@x.com") == datetime(2024, 5, 20, tzinfo=timezone.utc)

    def test_case_insensitive(self):
        lookup = SignInLookup()
        lookup.record("Alice@X.com", "2024-05-01T00:00:00Z")
        assert "alice@x.com" in lookup
        assert lookup.get("ALICE@X.COM") is not None

    def test_discards_bad_events(self):
        lookup = SignInLookup()
        assert lookup.record("", "2024-05-01T00:00:00Z") is False
        assert lookup.record("a@x.com", "not a date") is False
        assert len(lookup) == 0

    def test_merge_is_order_independent(self):
        older, newer = SignInLookup(), SignInLookup()
        older.record("a@x.com", "2024-04-01T00:00:00Z")
        newer.record("a@x.com", "2024-05-01T00:00:00Z")

        left = SignInLookup()
        left.merge(newer)
        left.merge(older)
        right = SignInLookup()
        right.merge(older)
        right.merge(newer)
        assert left.get("a@x.com") == right.get("a@x.com")
        assert left.get("a@x.com") == datetime(2024, 5, 1, tzinfo=timezone.utc)

    def test_resolve_first_match(self):
        lookup = SignInLookup()
        lookup.record("mail@x.com", datetime(2024, 5, 1, tzinfo=timezone.utc))
        assert lookup.resolve("upn@x.com", "mail@x.com") == datetime(2024, 5, 1, tzinfo=timezone.utc)
        assert lookup.resolve("nobody@x.com") is None


class TestOverrideMap:
    def test_case_insensitive_keys(self):
        overrides = OverrideMap({"A@X.com": LifecycleStatus.KEEP})
        assert overrides.get("a@x.com") is LifecycleStatus.KEEP

    def test_blank_identity_ignored(self):
        overrides = OverrideMap()
        overrides.set("  ", LifecycleStatus.DELETE)
        assert len(overrides) == 0


class TestStatusCycle:
    def test_cycle_order(self):
        assert next_status(LifecycleStatus.KEEP) is LifecycleStatus.REVIEW
        assert next_status(LifecycleStatus.REVIEW) is LifecycleStatus.DELETE
        assert next_status(LifecycleStatus.DELETE) is LifecycleStatus.KEEP

    @pytest.mark.parametrize("status", list(LifecycleStatus))
    def test_three_steps_return_home(self, status):
        assert next_status(next_status(next_status(status))) is status

    def test_parse(self):
        assert LifecycleStatus.parse(" Delete ") is LifecycleStatus.DELETE
        with pytest.raises(ValueError):
            LifecycleStatus.parse("archive")
