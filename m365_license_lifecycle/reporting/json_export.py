"""
JSON exporter — run metadata, KPIs and every classified record.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from .. import __version__
from ..lifecycle.models import AggregateKPIs, UserRecord


def export_json(
    records: list[UserRecord],
    kpis: AggregateKPIs,
    collector_results: dict,
    output_dir: Path,
    scan_id: str,
    run_info: Optional[dict[str, Any]] = None,
) -> Path:
    """
    Write the lifecycle results to a JSON file.

    Args:
        run_info: Extra metadata (tenant, threshold, stale policy, ...).

    Returns:
        Path to the created JSON file.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    metadata = {
        "tool": "M365 License Lifecycle Report",
        "version": __version__,
        "scan_id": scan_id,
        "generated_utc": datetime.now(timezone.utc).isoformat(),
        "mode": "READ-ONLY",
    }
    metadata.update(run_info or {})

    payload = {
        "metadata": metadata,
        "kpis": kpis.to_dict(),
        "records": [r.to_dict() for r in records],
        "collection": _summarize_collection(collector_results),
    }

    filepath = output_dir / f"license_lifecycle_{scan_id}.json"
    with open(filepath, "w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2, default=str, ensure_ascii=False)

    return filepath


def _summarize_collection(collector_results: dict) -> dict:
    """Per-collector timing, counts and warnings; raw data is not dumped."""
    summary = {}
    for name, result in collector_results.items():
        meta = result.metadata if hasattr(result, "metadata") else {}
        summary[name] = {
            "items_collected": meta.get("items_collected", 0),
            "endpoints_queried": meta.get("endpoints_queried", 0),
            "duration_seconds": meta.get("duration_seconds", 0),
            "skipped": meta.get("skipped", False),
            "warnings": list(meta.get("warnings", [])),
        }
    return summary
