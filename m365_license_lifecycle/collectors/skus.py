"""
Subscribed SKU Collector
Maps the tenant's SKU ids to part numbers and records seat usage.
"""

from __future__ import annotations

from .base import BaseCollector, CollectorResult


class SkuCollector(BaseCollector):
    name = "skus"
    description = "Subscribed SKUs: id -> part number, seat counts"

    async def collect(self, result: CollectorResult):
        skus = await self.safe_get_all("subscribedSkus", result, skip_top=True)

        part_numbers = {}
        subscriptions = []
        for sku in skus:
            sku_id = (sku.get("skuId") or "").lower()
            part = sku.get("skuPartNumber") or ""
            if not sku_id:
                continue
            if part:
                part_numbers[sku_id] = part
            prepaid = sku.get("prepaidUnits") or {}
            subscriptions.append({
                "skuId": sku_id,
                "skuPartNumber": part,
                "capabilityStatus": sku.get("capabilityStatus"),
                "consumedUnits": sku.get("consumedUnits", 0),
                "enabledUnits": prepaid.get("enabled", 0),
                "suspendedUnits": prepaid.get("suspended", 0),
                "warningUnits": prepaid.get("warning", 0),
            })

        result.add_data("part_numbers", part_numbers)
        result.add_data("subscriptions", subscriptions)
