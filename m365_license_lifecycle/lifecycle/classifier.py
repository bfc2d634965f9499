"""
Lifecycle Classifier — joins licence assignment, sign-in recency and manual
overrides into one final status per licensed user.

Precedence (first match wins):
  1. override present          -> override verbatim
  2. sign-in lookup skipped    -> keep
  3. last sign-in >= cutoff    -> keep   (cutoff = now - threshold, UTC, inclusive)
  4. otherwise                 -> stale status (review, or delete in the
                                  two-bucket policy)
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from .licenses import LicenseResolver
from .models import (
    DirectoryUser,
    LifecycleStatus,
    OverrideMap,
    SignInLookup,
    UserRecord,
    normalize_identity,
)

logger = logging.getLogger("m365_license_lifecycle.lifecycle.classifier")

SOURCE_OVERRIDE = "override"
SOURCE_SKIPPED = "skipped"
SOURCE_ACTIVITY = "activity"
SOURCE_INACTIVE = "inactive"


def decide_status(
    override: Optional[LifecycleStatus],
    sign_in_skipped: bool,
    last_sign_in: Optional[datetime],
    cutoff: datetime,
    stale_status: LifecycleStatus = LifecycleStatus.REVIEW,
) -> tuple[LifecycleStatus, str]:
    """Apply the precedence rules. Returns (status, rule that fired)."""
    if override is not None:
        return override, SOURCE_OVERRIDE
    if sign_in_skipped:
        return LifecycleStatus.KEEP, SOURCE_SKIPPED
    if last_sign_in is not None and last_sign_in >= cutoff:
        return LifecycleStatus.KEEP, SOURCE_ACTIVITY
    return stale_status, SOURCE_INACTIVE


class LifecycleClassifier:
    """
    Classifies directory users into UserRecords.

    A sign_ins value of None means the lookup was skipped entirely; an empty
    SignInLookup means it ran (or failed) and found nothing, so every user
    without an override lands in the stale bucket.
    """

    def __init__(
        self,
        licenses: LicenseResolver,
        sign_ins: Optional[SignInLookup],
        overrides: Optional[OverrideMap] = None,
        threshold_days: int = 90,
        stale_status: LifecycleStatus = LifecycleStatus.REVIEW,
        admin_roles: Optional[dict[str, Iterable[str]]] = None,
        now: Optional[datetime] = None,
    ):
        if stale_status is LifecycleStatus.KEEP:
            raise ValueError("stale_status must be review or delete")
        self.licenses = licenses
        self.sign_ins = sign_ins
        self.overrides = overrides or OverrideMap()
        self.threshold_days = threshold_days
        self.stale_status = stale_status
        self.admin_roles = {
            normalize_identity(k): tuple(sorted(set(v)))
            for k, v in (admin_roles or {}).items()
        }
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        self.now = now.astimezone(timezone.utc)
        self.cutoff = self.now - timedelta(days=threshold_days)

    @property
    def sign_in_skipped(self) -> bool:
        return self.sign_ins is None

    def _roles_for(self, user: DirectoryUser) -> tuple[str, ...]:
        for key in (user.id, user.user_principal_name, user.mail):
            roles = self.admin_roles.get(normalize_identity(key))
            if roles:
                return roles
        return ()

    def classify_user(self, user: DirectoryUser) -> Optional[UserRecord]:
        """Classify one user. Unlicensed users return None."""
        licenses = self.licenses.resolve(user.sku_ids)
        if not licenses:
            return None

        last_sign_in = None
        if self.sign_ins is not None:
            last_sign_in = self.sign_ins.resolve(user.user_principal_name, user.mail)

        override = self.overrides.resolve(user.user_principal_name, user.mail)
        status, source = decide_status(
            override,
            self.sign_in_skipped,
            last_sign_in,
            self.cutoff,
            self.stale_status,
        )

        return UserRecord(
            display_name=user.display_name,
            user_principal_name=user.user_principal_name,
            email=user.mail,
            licenses=licenses,
            last_sign_in=last_sign_in,
            status=status,
            status_source=source,
            admin_roles=self._roles_for(user),
            account_enabled=user.account_enabled,
            user_type=user.user_type,
            sign_in_checked=not self.sign_in_skipped,
        )

    def classify(self, users: Iterable[DirectoryUser]) -> list[UserRecord]:
        """Classify all users, dropping the unlicensed ones."""
        records = []
        skipped_unlicensed = 0
        for user in users:
            record = self.classify_user(user)
            if record is None:
                skipped_unlicensed += 1
                continue
            records.append(record)

        records.sort(key=lambda r: (r.display_name.lower(), r.user_principal_name.lower()))
        logger.info(
            f"Classified {len(records)} licensed users "
            f"({skipped_unlicensed} unlicensed excluded, "
            f"{sum(1 for r in records if r.status_source == SOURCE_OVERRIDE)} overridden)"
        )
        return records
