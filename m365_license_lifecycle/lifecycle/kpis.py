"""
KPI aggregation — derives AggregateKPIs over the visible set of UserRecords.

The dashboard recomputes the same figures in the browser whenever a filter
or status toggle changes; both sides use the same rules:
  - percentages are relative to the visible total, rounded half-up
  - an empty view yields 0% everywhere
  - top licence = most users, ties go to the licence encountered first
"""

from __future__ import annotations

import math
from collections import Counter
from typing import Iterable, Optional

from .models import AggregateKPIs, UserFilter, UserRecord


def percent(part: int, whole: int) -> int:
    """Integer percentage, half-up, 0 when whole is 0."""
    if whole <= 0:
        return 0
    return int(math.floor(part * 100 / whole + 0.5))


def filter_records(
    records: Iterable[UserRecord],
    view_filter: Optional[UserFilter] = None,
) -> list[UserRecord]:
    if view_filter is None:
        return list(records)
    return [r for r in records if view_filter.matches(r)]


def compute_kpis(
    records: Iterable[UserRecord],
    total_users: Optional[int] = None,
    view_filter: Optional[UserFilter] = None,
) -> AggregateKPIs:
    """
    Aggregate KPIs in a single pass over the visible records.

    Args:
        records: Classified (licensed) users.
        total_users: Directory users enumerated, licensed or not. Defaults
            to the number of records passed in.
        view_filter: Optional dashboard filter applied before counting.
    """
    all_records = list(records)
    visible = filter_records(all_records, view_filter)

    kpis = AggregateKPIs(
        total_users=total_users if total_users is not None else len(all_records),
        licensed_users=len(all_records),
        visible=len(visible),
    )

    license_users: Counter[str] = Counter()
    for record in visible:
        kpis.status_counts[record.status.value] += 1
        if record.is_admin:
            kpis.admins += 1
        if record.never_signed_in:
            kpis.never_signed_in += 1
        license_users.update(record.licenses)

    n = kpis.visible
    kpis.status_percent = {s: percent(c, n) for s, c in kpis.status_counts.items()}
    kpis.admin_percent = percent(kpis.admins, n)
    kpis.never_signed_in_percent = percent(kpis.never_signed_in, n)

    if license_users:
        # most_common keeps insertion order among equal counts
        name, users = license_users.most_common(1)[0]
        kpis.top_license = name
        kpis.top_license_users = users
        kpis.top_license_percent = percent(users, n)

    return kpis
