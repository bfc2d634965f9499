"""
User Collector
Enumerates every directory user with licence assignments. This is the one
mandatory input of the report: any failure here aborts the run.
"""

from __future__ import annotations

import logging
from typing import Any

from ..lifecycle.models import DirectoryUser
from .base import BaseCollector, CollectorResult

logger = logging.getLogger("m365_license_lifecycle.collectors.users")

USER_SELECT = (
    "id,displayName,userPrincipalName,mail,accountEnabled,"
    "userType,assignedLicenses"
)


class UserEnumerationError(Exception):
    """Raised when the directory users cannot be enumerated."""
    pass


def _field(raw: dict, name: str, default: Any = None) -> Any:
    """Read a property from the payload or from its additionalProperties bag."""
    value = raw.get(name)
    if value is None:
        extra = raw.get("additionalProperties") or {}
        value = extra.get(name)
    return default if value is None else value


def normalize_user(raw: dict) -> DirectoryUser:
    """Turn one Graph user payload into the canonical DirectoryUser shape."""
    sku_ids = []
    for assignment in _field(raw, "assignedLicenses", []) or []:
        if isinstance(assignment, dict):
            sku_id = assignment.get("skuId") or assignment.get("sku_id")
        else:
            sku_id = assignment
        if sku_id:
            sku_ids.append(str(sku_id).lower())

    upn = str(_field(raw, "userPrincipalName", "") or "")
    return DirectoryUser(
        id=str(_field(raw, "id", "") or ""),
        display_name=str(_field(raw, "displayName", "") or upn),
        user_principal_name=upn,
        mail=str(_field(raw, "mail", "") or ""),
        account_enabled=bool(_field(raw, "accountEnabled", True)),
        user_type=str(_field(raw, "userType", "Member") or "Member"),
        sku_ids=tuple(dict.fromkeys(sku_ids)),
    )


class UserCollector(BaseCollector):
    name = "users"
    description = "Directory users with licence assignments"
    required = True

    async def collect(self, result: CollectorResult):
        users: list[DirectoryUser] = []
        try:
            async for raw in self.graph.get_all_pages_stream(
                "users",
                params={"$select": USER_SELECT},
            ):
                users.append(normalize_user(raw))
        except Exception as e:
            raise UserEnumerationError(f"Cannot enumerate directory users: {e}") from e

        result.metadata["endpoints_queried"] += 1
        licensed = sum(1 for u in users if u.sku_ids)
        logger.info(f"[users] {len(users)} users enumerated, {licensed} with licence assignments")
        result.add_data("users", users)
