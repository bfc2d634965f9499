"""
SKU Catalog Collector
Loads Microsoft's product-name catalog (part number -> friendly name) from a
local copy or by download. Any failure leaves an empty catalog, so licences
fall back to their raw part numbers.
"""

from __future__ import annotations

import logging
from pathlib import Path

import httpx

from ..lifecycle.licenses import SkuCatalog, parse_catalog_csv
from .base import BaseCollector, CollectorResult

logger = logging.getLogger("m365_license_lifecycle.collectors.catalog")


class CatalogCollector(BaseCollector):
    name = "catalog"
    description = "Licence friendly-name catalog"

    async def collect(self, result: CollectorResult):
        catalog_cfg = self.config.catalog
        result.add_data("catalog", SkuCatalog())

        text = None
        if catalog_cfg.local_path:
            path = Path(catalog_cfg.local_path).expanduser()
            try:
                text = path.read_text(encoding="utf-8-sig")
                result.metadata["source"] = str(path)
            except (OSError, UnicodeDecodeError) as e:
                result.add_warning(f"Cannot read local SKU catalog {path}: {e}")

        if text is None and catalog_cfg.download:
            try:
                text = await self.graph.fetch_text(
                    catalog_cfg.url, timeout=catalog_cfg.timeout_seconds
                )
                result.metadata["source"] = catalog_cfg.url
                result.metadata["endpoints_queried"] += 1
            except httpx.HTTPError as e:
                result.add_warning(
                    f"SKU catalog download failed ({type(e).__name__}: {e}); "
                    "licences will show raw SKU identifiers"
                )

        if text is None:
            if not catalog_cfg.download and not catalog_cfg.local_path:
                result.mark_skipped("catalog download disabled")
            return

        catalog = parse_catalog_csv(text)
        if not catalog.by_part_number:
            result.add_warning("SKU catalog contained no usable rows; using raw SKU identifiers")
        result.data["catalog"] = catalog
        result.metadata["items_collected"] = len(catalog)
        logger.info(f"[catalog] {len(catalog)} product names loaded")
