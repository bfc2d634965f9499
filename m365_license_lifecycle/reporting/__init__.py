"""Reporting package — multi-format output generation."""

from .archive import archive_previous_reports
from .csv_export import export_csv
from .html_dashboard import export_html
from .json_export import export_json
from .labels import ReportLabels, get_labels
from .pdf_export import export_pdf, find_browser

__all__ = [
    "archive_previous_reports",
    "export_csv",
    "export_html",
    "export_json",
    "export_pdf",
    "find_browser",
    "ReportLabels",
    "get_labels",
]
