"""
Organization Collector
Tenant display name and default domain for the report header.
"""

from __future__ import annotations

from .base import BaseCollector, CollectorResult


class OrganizationCollector(BaseCollector):
    name = "organization"
    description = "Tenant metadata"

    async def collect(self, result: CollectorResult):
        orgs = await self.safe_get_all(
            "organization",
            result,
            params={"$select": "id,displayName,verifiedDomains"},
            skip_top=True,
        )
        if not orgs:
            return

        org = orgs[0]
        domains = org.get("verifiedDomains") or []
        default_domain = next(
            (d.get("name") for d in domains if d.get("isDefault")),
            domains[0].get("name") if domains else None,
        )
        result.add_data("tenant", {
            "id": org.get("id"),
            "displayName": org.get("displayName"),
            "defaultDomain": default_domain,
        })
