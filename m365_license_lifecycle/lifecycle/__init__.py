"""Lifecycle package — classification, override resolution and KPI aggregation."""

from .models import (
    AggregateKPIs,
    DirectoryUser,
    LifecycleStatus,
    OverrideMap,
    SignInLookup,
    UserFilter,
    UserRecord,
    next_status,
    parse_timestamp,
)
from .overrides import load_overrides, normalize_decision, parse_override_rows
from .licenses import LicenseResolver, SkuCatalog, parse_catalog_csv
from .classifier import LifecycleClassifier, decide_status
from .kpis import compute_kpis, filter_records, percent

__all__ = [
    "AggregateKPIs",
    "DirectoryUser",
    "LifecycleStatus",
    "OverrideMap",
    "SignInLookup",
    "UserFilter",
    "UserRecord",
    "next_status",
    "parse_timestamp",
    "load_overrides",
    "normalize_decision",
    "parse_override_rows",
    "LicenseResolver",
    "SkuCatalog",
    "parse_catalog_csv",
    "LifecycleClassifier",
    "decide_status",
    "compute_kpis",
    "filter_records",
    "percent",
]
