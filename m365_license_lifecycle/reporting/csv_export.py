"""
CSV exporter — one row per licensed user.

The column set doubles as a decision-override file: edit the Action column
and feed the file back with --decision-override-path.
"""

from __future__ import annotations

import csv
from pathlib import Path

from ..lifecycle.models import UserRecord

CSV_FIELDS = [
    "UPN", "Email", "DisplayName", "Licenses", "LastSignIn",
    "Action", "AdminRoles",
]


def export_csv(
    records: list[UserRecord],
    output_dir: Path,
    scan_id: str,
) -> Path:
    """
    Write the per-user lifecycle CSV.

    Returns:
        Path to the created CSV file.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    filepath = output_dir / f"license_lifecycle_{scan_id}.csv"
    with open(filepath, "w", newline="", encoding="utf-8-sig") as fh:
        writer = csv.DictWriter(fh, fieldnames=CSV_FIELDS)
        writer.writeheader()
        for r in records:
            writer.writerow({
                "UPN": r.user_principal_name,
                "Email": r.email,
                "DisplayName": r.display_name,
                "Licenses": "; ".join(r.licenses),
                "LastSignIn": r.last_sign_in.isoformat() if r.last_sign_in else "",
                "Action": r.status.value,
                "AdminRoles": "; ".join(r.admin_roles),
            })

    return filepath
