"""
PDF exporter — prints the HTML dashboard through a headless Chromium-family
browser (Edge, Chrome or Chromium). No browser, or a failed print, means no
PDF: a warning is logged and the run carries on.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Optional

logger = logging.getLogger("m365_license_lifecycle.reporting.pdf")

BROWSER_COMMANDS = (
    "msedge",
    "microsoft-edge",
    "microsoft-edge-stable",
    "google-chrome",
    "google-chrome-stable",
    "chrome",
    "chromium",
    "chromium-browser",
)

KNOWN_BROWSER_PATHS = (
    r"C:\Program Files (x86)\Microsoft\Edge\Application\msedge.exe",
    r"C:\Program Files\Microsoft\Edge\Application\msedge.exe",
    r"C:\Program Files\Google\Chrome\Application\chrome.exe",
    r"C:\Program Files (x86)\Google\Chrome\Application\chrome.exe",
    "/Applications/Microsoft Edge.app/Contents/MacOS/Microsoft Edge",
    "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
    "/Applications/Chromium.app/Contents/MacOS/Chromium",
)

PRINT_TIMEOUT_SECONDS = 120


def find_browser() -> Optional[str]:
    """First headless-capable browser on PATH or in a known install location."""
    for name in BROWSER_COMMANDS:
        found = shutil.which(name)
        if found:
            return found
    for candidate in KNOWN_BROWSER_PATHS:
        if os.path.isfile(candidate):
            return candidate
    return None


def export_pdf(
    html_path: Path,
    browser: Optional[str] = None,
    timeout: int = PRINT_TIMEOUT_SECONDS,
) -> Optional[Path]:
    """
    Print an HTML report to a PDF beside it.

    Returns:
        Path to the PDF, or None when no PDF could be produced.
    """
    html_path = Path(html_path).resolve()
    pdf_path = html_path.with_suffix(".pdf")

    browser = browser or find_browser()
    if not browser:
        logger.warning("No Edge/Chrome/Chromium found; skipping PDF export")
        return None

    cmd = [
        browser,
        "--headless",
        "--disable-gpu",
        "--no-pdf-header-footer",
        f"--print-to-pdf={pdf_path}",
        html_path.as_uri(),
    ]
    logger.debug(f"Printing PDF: {' '.join(cmd)}")

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired:
        logger.warning(f"PDF export timed out after {timeout}s")
        return None
    except OSError as e:
        logger.warning(f"Cannot start {browser} for PDF export: {e}")
        return None

    if result.returncode != 0 or not pdf_path.exists():
        logger.warning(
            f"PDF export failed (exit code {result.returncode}): "
            f"{(result.stderr or '').strip()[:300]}"
        )
        return None

    return pdf_path
