"""
Moves previous runs' report files into archive/<scan_id>/ so the output
directory only ever holds the latest reports.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

logger = logging.getLogger("m365_license_lifecycle.reporting.archive")

REPORT_PREFIX = "license_lifecycle_"


def scan_id_of(path: Path) -> str:
    """license_lifecycle_<scan_id>.<ext> -> <scan_id>"""
    return Path(path).stem[len(REPORT_PREFIX):] or "unknown"


def archive_previous_reports(output_dir: Path, archive_dir: Path) -> list[Path]:
    """
    Move existing license_lifecycle_* files from output_dir into
    archive_dir/<scan_id>/, grouping each file with the run that wrote it.

    Returns:
        The archived file paths (new locations). A file that cannot be
        moved is logged and left in place.
    """
    output_dir = Path(output_dir)
    if not output_dir.is_dir():
        return []

    previous = sorted(
        p for p in output_dir.iterdir()
        if p.is_file() and p.name.startswith(REPORT_PREFIX)
    )

    moved = []
    for path in previous:
        target_dir = Path(archive_dir) / scan_id_of(path)
        target = target_dir / path.name
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            shutil.move(str(path), str(target))
        except OSError as e:
            logger.warning(f"Cannot archive {path.name}: {e}")
            continue
        moved.append(target)

    if moved:
        logger.info(f"Archived {len(moved)} previous report file(s) to {archive_dir}")
    return moved
