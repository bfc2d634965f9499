"""Tests for lifecycle.kpis -- aggregation over the visible set."""

from datetime import datetime, timezone

from m365_license_lifecycle.lifecycle import (
    LifecycleStatus,
    UserFilter,
    UserRecord,
    compute_kpis,
    percent,
)


def _record(name, status="keep", licenses=("E3",), roles=(), last=None, checked=True):
    return UserRecord(
        display_name=name,
        user_principal_name=f"{name.lower()}@x.com",
        email=f"{name.lower()}@x.com",
        licenses=tuple(licenses),
        last_sign_in=last,
        status=LifecycleStatus(status),
        admin_roles=tuple(roles),
        sign_in_checked=checked,
    )


SEEN = datetime(2024, 5, 1, tzinfo=timezone.utc)


class TestPercent:
    def test_half_rounds_up(self):
        assert percent(1, 8) == 13      # 12.5
        assert percent(1, 3) == 33
        assert percent(2, 3) == 67

    def test_zero_whole(self):
        assert percent(0, 0) == 0
        assert percent(5, 0) == 0


class TestComputeKpis:
    def test_empty_view_is_zero(self):
        kpis = compute_kpis([])
        assert kpis.visible == 0
        assert kpis.status_percent == {"keep": 0, "review": 0, "delete": 0}
        assert kpis.admin_percent == 0
        assert kpis.top_license is None
        assert kpis.top_license_percent == 0

    def test_counts_and_percentages(self):
        records = [
            _record("A", "keep", last=SEEN),
            _record("B", "keep", last=SEEN),
            _record("C", "review"),
            _record("D", "delete", roles=("Global Administrator",), last=SEEN),
        ]
        kpis = compute_kpis(records, total_users=10)
        assert kpis.total_users == 10
        assert kpis.licensed_users == 4
        assert kpis.status_counts == {"keep": 2, "review": 1, "delete": 1}
        assert kpis.status_percent == {"keep": 50, "review": 25, "delete": 25}
        assert kpis.admins == 1
        assert kpis.admin_percent == 25
        assert kpis.never_signed_in == 1

    def test_counts_sum_to_visible(self):
        records = [_record(n, s) for n, s in zip("ABCDEFG", ["keep", "review", "delete"] * 3)]
        kpis = compute_kpis(records)
        assert sum(kpis.status_counts.values()) == kpis.visible == 7

    def test_unchecked_sign_ins_not_counted_as_never(self):
        kpis = compute_kpis([_record("A", checked=False), _record("B", checked=False)])
        assert kpis.never_signed_in == 0

    def test_top_license_by_users(self):
        records = [
            _record("A", licenses=("E3", "Visio")),
            _record("B", licenses=("Visio",)),
            _record("C", licenses=("E3", "Visio")),
        ]
        kpis = compute_kpis(records)
        assert kpis.top_license == "Visio"
        assert kpis.top_license_users == 3
        assert kpis.top_license_percent == 100

    def test_top_license_tie_goes_to_first_encountered(self):
        records = [
            _record("A", licenses=("E5",)),
            _record("B", licenses=("E3",)),
        ]
        assert compute_kpis(records).top_license == "E5"

    def test_filter_recomputes_over_visible(self):
        records = [
            _record("Alice", "keep", licenses=("E3",)),
            _record("Bob", "delete", licenses=("E5",), roles=("Exchange Administrator",)),
            _record("Carol", "review", licenses=("E5",), roles=("Global Administrator",)),
        ]
        kpis = compute_kpis(records, view_filter=UserFilter(admins_only=True))
        assert kpis.licensed_users == 3
        assert kpis.visible == 2
        assert kpis.admin_percent == 100
        assert kpis.status_percent == {"keep": 0, "review": 50, "delete": 50}
        assert kpis.top_license == "E5"

    def test_filter_by_status_and_search(self):
        records = [
            _record("Alice", "keep"),
            _record("Alan", "review"),
            _record("Bob", "review"),
        ]
        view = UserFilter(search="al", status=LifecycleStatus.REVIEW)
        kpis = compute_kpis(records, view_filter=view)
        assert kpis.visible == 1
        assert kpis.status_counts["review"] == 1

    def test_search_matches_licences_and_roles(self):
        record = _record("Zed", licenses=("Microsoft 365 E3",), roles=("Teams Administrator",))
        assert UserFilter(search="e3").matches(record)
        assert UserFilter(search="teams").matches(record)
        assert not UserFilter(search="visio").matches(record)

    def test_search_with_no_match_is_empty_view(self):
        kpis = compute_kpis([_record("Alice")], view_filter=UserFilter(search="zzz"))
        assert kpis.visible == 0
        assert kpis.status_percent["keep"] == 0
