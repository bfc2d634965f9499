"""
Admin Role Collector
Activated directory roles and their user members. Display-only: roles mark
users as admins on the dashboard but never affect classification.
"""

from __future__ import annotations

from collections import defaultdict

from .base import BaseCollector, CollectorResult

USER_ODATA_TYPE = "#microsoft.graph.user"


class AdminRoleCollector(BaseCollector):
    name = "admin_roles"
    description = "Directory role membership per user"

    async def collect(self, result: CollectorResult):
        roles = await self.safe_get_all(
            "directoryRoles",
            result,
            params={"$select": "id,displayName"},
            skip_top=True,
        )

        memberships: dict[str, set[str]] = defaultdict(set)
        for role in roles:
            role_id = role.get("id")
            role_name = role.get("displayName") or role_id
            if not role_id:
                continue
            members = await self.safe_get_all(
                f"directoryRoles/{role_id}/members",
                result,
                params={"$select": "id,userPrincipalName"},
                skip_top=True,  # directoryRoles/*/members does not support $top
            )
            for m in members:
                if m.get("@odata.type", USER_ODATA_TYPE) != USER_ODATA_TYPE:
                    continue
                # Key by object id and UPN; the classifier tries both
                for key in (m.get("id"), m.get("userPrincipalName")):
                    if key:
                        memberships[key.lower()].add(role_name)

        result.add_data("roles", {k: sorted(v) for k, v in memberships.items()})
