"""
M365 License Lifecycle Report
=============================
Inventories licensed Microsoft 365 users, recommends keep / review / delete
for each one from sign-in recency and manual overrides, and renders an
interactive HTML dashboard with CSV, JSON and optional PDF exports.

WARNING: This tool operates in STRICT READ-ONLY mode.
         No write operations will be performed against the tenant.
"""

__version__ = "1.0.0"
__mode__ = "READ-ONLY"
