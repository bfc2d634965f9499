"""
Base collector class — common contract for every data collector.
Optional collectors degrade to partial data with a warning; a required
collector propagates its failure and aborts the run.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any

from ..config import EngineConfig
from ..graph.client import GraphClient, GraphAPIError

logger = logging.getLogger("m365_license_lifecycle.collectors")


class CollectorResult:
    """Standardized result from a collector."""

    def __init__(self, collector_name: str):
        self.collector_name = collector_name
        self.data: dict[str, Any] = {}
        self.metadata: dict[str, Any] = {
            "collector": collector_name,
            "started_at": None,
            "completed_at": None,
            "duration_seconds": 0,
            "items_collected": 0,
            "warnings": [],
            "endpoints_queried": 0,
            "skipped": False,
        }

    def add_data(self, key: str, value: Any):
        self.data[key] = value
        if isinstance(value, str) or not hasattr(value, "__len__"):
            self.metadata["items_collected"] += 1
        else:
            self.metadata["items_collected"] += len(value)

    def add_warning(self, warning: str):
        self.metadata["warnings"].append(warning)
        logger.warning(f"[{self.collector_name}] {warning}")

    def mark_skipped(self, reason: str):
        self.metadata["skipped"] = True
        logger.info(f"[{self.collector_name}] Skipped: {reason}")

    @property
    def warnings(self) -> list[str]:
        return self.metadata["warnings"]

    def to_dict(self) -> dict:
        return {
            "data": {k: v for k, v in self.data.items() if isinstance(v, (list, dict, str, int))},
            "metadata": self.metadata,
        }


class BaseCollector(ABC):
    """
    Abstract base class for all collectors.

    Subclasses implement collect() to gather data from Graph API.
    The base class provides timing, metadata and the degrade-or-abort
    error policy selected by `required`.
    """

    name: str = "base"
    description: str = "Base collector"
    required: bool = False

    def __init__(self, graph: GraphClient, config: EngineConfig):
        self.graph = graph
        self.config = config

    async def execute(self) -> CollectorResult:
        """Execute the collector with timing and error handling."""
        result = CollectorResult(self.name)
        result.metadata["started_at"] = time.time()
        logger.info(f"[{self.name}] Starting collection...")

        try:
            await self.collect(result)
        except Exception as e:
            if self.required:
                raise
            result.add_warning(f"Collection failed, continuing without it: {type(e).__name__}: {e}")

        result.metadata["completed_at"] = time.time()
        result.metadata["duration_seconds"] = round(
            result.metadata["completed_at"] - result.metadata["started_at"], 2
        )
        logger.info(
            f"[{self.name}] Completed in {result.metadata['duration_seconds']}s — "
            f"{result.metadata['items_collected']} items"
        )
        return result

    @abstractmethod
    async def collect(self, result: CollectorResult):
        """
        Implement data collection logic.
        Add data to result via result.add_data(key, value).
        """
        raise NotImplementedError

    async def safe_get_all(self, endpoint: str, result: CollectorResult, **kwargs) -> list:
        """Get all pages, recording a warning instead of raising."""
        try:
            data = await self.graph.get_all_pages(endpoint, **kwargs)
            result.metadata["endpoints_queried"] += 1
            return data
        except GraphAPIError as e:
            if e.status_code == 403:
                result.add_warning(f"Permission denied: {endpoint} — {e}")
            else:
                result.add_warning(f"Failed to paginate {endpoint}: {e}")
            return []
