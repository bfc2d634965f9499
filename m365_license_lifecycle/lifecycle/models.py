"""
Lifecycle data models — canonical user shapes, lookups and KPI results.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterator, Optional


class LifecycleStatus(str, Enum):
    """Closed tri-state recommendation for a licensed user."""
    KEEP = "keep"
    REVIEW = "review"
    DELETE = "delete"

    @classmethod
    def parse(cls, value: "str | LifecycleStatus") -> "LifecycleStatus":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown lifecycle status: {value!r}") from None


# Toggle order used by the dashboard badges
STATUS_CYCLE = (LifecycleStatus.KEEP, LifecycleStatus.REVIEW, LifecycleStatus.DELETE)


def next_status(status: LifecycleStatus) -> LifecycleStatus:
    """keep -> review -> delete -> keep"""
    idx = STATUS_CYCLE.index(status)
    return STATUS_CYCLE[(idx + 1) % len(STATUS_CYCLE)]


# ─── Timestamps ─────────────────────────────────────────────────────────────

_FRACTION_RE = re.compile(r"\.(\d+)")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a Graph ISO-8601 timestamp into an aware UTC datetime.
    Graph emits up to 7 fractional digits and a trailing Z; naive values are
    taken as UTC. Returns None for anything unparseable.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if not text:
            return None
        text = text.replace("Z", "+00:00").replace("z", "+00:00")
        text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def normalize_identity(value: Any) -> str:
    """Lower-cased, trimmed identity key (UPN or e-mail)."""
    if value is None:
        return ""
    return str(value).strip().lower()


# ─── Directory shapes ───────────────────────────────────────────────────────

@dataclass(frozen=True)
class DirectoryUser:
    """A user as enumerated from the directory, normalized once."""
    id: str
    display_name: str
    user_principal_name: str
    mail: str = ""
    account_enabled: bool = True
    user_type: str = "Member"
    sku_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class UserRecord:
    """A licensed, classified user handed to the renderer."""
    display_name: str
    user_principal_name: str
    email: str
    licenses: tuple[str, ...]
    last_sign_in: Optional[datetime]
    status: LifecycleStatus
    status_source: str = ""          # override, skipped, activity, inactive
    admin_roles: tuple[str, ...] = ()
    account_enabled: bool = True
    user_type: str = "Member"
    sign_in_checked: bool = True     # False when the lookup was skipped

    @property
    def is_admin(self) -> bool:
        return bool(self.admin_roles)

    @property
    def never_signed_in(self) -> bool:
        return self.sign_in_checked and self.last_sign_in is None

    def to_dict(self) -> dict:
        return {
            "displayName": self.display_name,
            "userPrincipalName": self.user_principal_name,
            "email": self.email,
            "licenses": list(self.licenses),
            "lastSignIn": self.last_sign_in.isoformat() if self.last_sign_in else None,
            "status": self.status.value,
            "statusSource": self.status_source,
            "adminRoles": list(self.admin_roles),
            "accountEnabled": self.account_enabled,
            "userType": self.user_type,
            "signInChecked": self.sign_in_checked,
        }


# ─── Lookups ────────────────────────────────────────────────────────────────

class SignInLookup:
    """
    Identity -> most recent sign-in observed in the queried window.
    Keys are case-insensitive; merging keeps the newest timestamp.
    """

    def __init__(self):
        self._latest: dict[str, datetime] = {}

    def record(self, identity: Any, when: Any) -> bool:
        """Fold one event. Returns False when the event is discarded."""
        key = normalize_identity(identity)
        ts = parse_timestamp(when)
        if not key or ts is None:
            return False
        current = self._latest.get(key)
        if current is None or ts > current:
            self._latest[key] = ts
        return True

    def merge(self, other: "SignInLookup"):
        for key, ts in other.items():
            self.record(key, ts)

    def get(self, identity: Any) -> Optional[datetime]:
        return self._latest.get(normalize_identity(identity))

    def resolve(self, *identities: Any) -> Optional[datetime]:
        """First identity with a recorded sign-in wins."""
        for identity in identities:
            ts = self.get(identity)
            if ts is not None:
                return ts
        return None

    def items(self) -> Iterator[tuple[str, datetime]]:
        return iter(self._latest.items())

    def __contains__(self, identity: Any) -> bool:
        return normalize_identity(identity) in self._latest

    def __len__(self) -> int:
        return len(self._latest)


class OverrideMap:
    """Identity -> manual lifecycle decision. Case-insensitive keys."""

    def __init__(self, entries: Optional[dict[str, LifecycleStatus]] = None):
        self._decisions: dict[str, LifecycleStatus] = {}
        for identity, status in (entries or {}).items():
            self.set(identity, status)

    def set(self, identity: Any, status: LifecycleStatus):
        key = normalize_identity(identity)
        if key:
            self._decisions[key] = status

    def get(self, identity: Any) -> Optional[LifecycleStatus]:
        return self._decisions.get(normalize_identity(identity))

    def resolve(self, *identities: Any) -> Optional[LifecycleStatus]:
        for identity in identities:
            status = self.get(identity)
            if status is not None:
                return status
        return None

    def items(self) -> Iterator[tuple[str, LifecycleStatus]]:
        return iter(self._decisions.items())

    def __contains__(self, identity: Any) -> bool:
        return normalize_identity(identity) in self._decisions

    def __len__(self) -> int:
        return len(self._decisions)


# ─── KPIs ───────────────────────────────────────────────────────────────────

@dataclass
class UserFilter:
    """Dashboard view filter: search text, status chip, admins-only toggle."""
    search: str = ""
    status: Optional[LifecycleStatus] = None
    admins_only: bool = False

    def matches(self, record: UserRecord) -> bool:
        if self.status is not None and record.status is not self.status:
            return False
        if self.admins_only and not record.is_admin:
            return False
        needle = self.search.strip().lower()
        if not needle:
            return True
        haystack = [
            record.display_name,
            record.user_principal_name,
            record.email,
            *record.licenses,
            *record.admin_roles,
        ]
        return any(needle in (h or "").lower() for h in haystack)


@dataclass
class AggregateKPIs:
    """Derived view over a set of UserRecords. Never persisted."""
    total_users: int = 0
    licensed_users: int = 0
    visible: int = 0
    status_counts: dict[str, int] = field(default_factory=lambda: {
        s.value: 0 for s in STATUS_CYCLE
    })
    status_percent: dict[str, int] = field(default_factory=lambda: {
        s.value: 0 for s in STATUS_CYCLE
    })
    admins: int = 0
    admin_percent: int = 0
    never_signed_in: int = 0
    never_signed_in_percent: int = 0
    top_license: Optional[str] = None
    top_license_users: int = 0
    top_license_percent: int = 0

    def to_dict(self) -> dict:
        return {
            "total_users": self.total_users,
            "licensed_users": self.licensed_users,
            "visible": self.visible,
            "status_counts": dict(self.status_counts),
            "status_percent": dict(self.status_percent),
            "admins": self.admins,
            "admin_percent": self.admin_percent,
            "never_signed_in": self.never_signed_in,
            "never_signed_in_percent": self.never_signed_in_percent,
            "top_license": {
                "name": self.top_license,
                "users": self.top_license_users,
                "percent": self.top_license_percent,
            },
        }
