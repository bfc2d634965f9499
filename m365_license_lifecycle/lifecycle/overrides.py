"""
Override Loader — manual lifecycle decisions from a CSV file.

Expected header (comma separated, header row required):
    UPN | Email | UserPrincipalName   identifier, first non-empty wins
    Action | Decision | Status        decision, first non-empty wins

Decision text is matched case-insensitively against a synonym vocabulary.
Unrecognized decisions are dropped without error; later rows overwrite
earlier ones for the same identifier.
"""

from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Iterable, Optional

from .models import LifecycleStatus, OverrideMap

logger = logging.getLogger("m365_license_lifecycle.lifecycle.overrides")

IDENTIFIER_COLUMNS = ("upn", "email", "userprincipalname")
DECISION_COLUMNS = ("action", "decision", "status")

DECISION_SYNONYMS = {
    LifecycleStatus.KEEP: {"keep", "retain", "green", "stay"},
    LifecycleStatus.DELETE: {"delete", "remove", "drop", "red"},
    LifecycleStatus.REVIEW: {"review", "yellow", "pending", "hold"},
}

_SYNONYM_LOOKUP = {
    word: status
    for status, words in DECISION_SYNONYMS.items()
    for word in words
}


def normalize_decision(text: Optional[str]) -> Optional[LifecycleStatus]:
    """Map free-text decision to the fixed vocabulary, or None."""
    if text is None:
        return None
    return _SYNONYM_LOOKUP.get(text.strip().lower())


def _first_value(row: dict[str, str], columns: Iterable[str]) -> str:
    for col in columns:
        value = (row.get(col) or "").strip()
        if value:
            return value
    return ""


def parse_override_rows(rows: Iterable[dict[str, Optional[str]]]) -> OverrideMap:
    """
    Build an OverrideMap from already-parsed CSV rows.
    Column names are compared case-insensitively.
    """
    overrides = OverrideMap()
    for line_no, raw in enumerate(rows, start=2):
        row = {
            (k or "").strip().lower(): (v if isinstance(v, str) else "")
            for k, v in raw.items()
        }
        identity = _first_value(row, IDENTIFIER_COLUMNS)
        if not identity:
            logger.debug(f"Override row {line_no}: no identifier, skipped")
            continue
        decision_text = _first_value(row, DECISION_COLUMNS)
        status = normalize_decision(decision_text)
        if status is None:
            logger.debug(
                f"Override row {line_no}: unrecognized decision {decision_text!r} "
                f"for {identity}, ignored"
            )
            continue
        overrides.set(identity, status)
    return overrides


def load_overrides(path: Optional[str | Path]) -> OverrideMap:
    """
    Load the override CSV. A missing or unreadable file is non-fatal:
    a warning is logged and an empty map returned.
    """
    if not path:
        return OverrideMap()

    csv_path = Path(path).expanduser()
    if not csv_path.is_file():
        logger.warning(f"Decision override file not found: {csv_path} — continuing without overrides")
        return OverrideMap()

    try:
        with open(csv_path, "r", newline="", encoding="utf-8-sig") as fh:
            overrides = parse_override_rows(csv.DictReader(fh))
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        logger.warning(f"Could not read decision override file {csv_path}: {e} — continuing without overrides")
        return OverrideMap()

    logger.info(f"Loaded {len(overrides)} decision overrides from {csv_path}")
    return overrides
