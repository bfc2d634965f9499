"""
Licence name resolution: SKU id -> part number -> friendly name.
"""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field
from typing import Iterable

logger = logging.getLogger("m365_license_lifecycle.lifecycle.licenses")

# Column names in Microsoft's "Product names and service plan identifiers" CSV
CATALOG_NAME_COLUMN = "Product_Display_Name"
CATALOG_PART_COLUMN = "String_Id"
CATALOG_GUID_COLUMN = "GUID"


@dataclass
class SkuCatalog:
    """Friendly product names keyed by part number and by SKU GUID."""
    by_part_number: dict[str, str] = field(default_factory=dict)
    by_guid: dict[str, str] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.by_part_number)

    def friendly_name(self, part_number: str) -> str | None:
        return self.by_part_number.get(part_number.upper())


def parse_catalog_csv(text: str) -> SkuCatalog:
    """
    Parse the licensing catalog CSV. The file lists one row per service
    plan, so each product repeats; the first display name seen wins.
    """
    catalog = SkuCatalog()
    reader = csv.DictReader(io.StringIO(text.lstrip("\ufeff")))
    for row in reader:
        name = (row.get(CATALOG_NAME_COLUMN) or "").strip()
        part = (row.get(CATALOG_PART_COLUMN) or "").strip()
        guid = (row.get(CATALOG_GUID_COLUMN) or "").strip().lower()
        if not name:
            continue
        if part:
            catalog.by_part_number.setdefault(part.upper(), name)
        if guid:
            catalog.by_guid.setdefault(guid, name)
    logger.debug(f"SKU catalog parsed: {len(catalog.by_part_number)} part numbers, {len(catalog.by_guid)} GUIDs")
    return catalog


class LicenseResolver:
    """
    Resolves assigned SKU ids to display names.

    Stage 1 maps the SKU id to its part number using the tenant's subscribed
    SKUs; stage 2 maps the part number to a friendly name using the catalog.
    Each stage falls back to the identifier it was given.
    """

    def __init__(self, sku_part_numbers: dict[str, str], catalog: SkuCatalog | None = None):
        self.sku_part_numbers = {k.lower(): v for k, v in sku_part_numbers.items()}
        self.catalog = catalog or SkuCatalog()

    def resolve_one(self, sku_id: str) -> str:
        raw = (sku_id or "").strip()
        if not raw:
            return ""
        part_number = self.sku_part_numbers.get(raw.lower())
        if part_number:
            return self.catalog.friendly_name(part_number) or part_number
        return self.catalog.by_guid.get(raw.lower()) or raw

    def resolve(self, sku_ids: Iterable[str]) -> tuple[str, ...]:
        """Resolved, de-duplicated, sorted licence names."""
        names = {self.resolve_one(s) for s in sku_ids}
        names.discard("")
        return tuple(sorted(names, key=str.lower))
