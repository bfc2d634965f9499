"""
Configuration module for the M365 License Lifecycle Report.
Defines tunable parameters, Graph API constants, and operational settings.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .lifecycle.models import LifecycleStatus


class ConfigError(ValueError):
    """Raised when a configuration value is out of range or unknown."""
    pass


# ─── Tenant Authentication ───────────────────────────────────────────────────

@dataclass
class CertificateAuth:
    """Certificate-based app-only authentication configuration."""
    tenant_id: str
    client_id: str
    certificate_path: str          # Path to base64-encoded PFX
    certificate_password: str = "" # Will be prompted if empty


@dataclass
class ClientSecretAuth:
    """Client-secret app-only authentication configuration."""
    tenant_id: str
    client_id: str
    secret_env: str = "M365_CLIENT_SECRET"   # Env var holding the secret


@dataclass
class DelegatedAuth:
    """Delegated (device code) authentication configuration."""
    tenant_id: str
    client_id: str
    scopes: list[str] = field(default_factory=lambda: [
        "User.Read.All",
        "Directory.Read.All",
        "AuditLog.Read.All",
        "RoleManagement.Read.Directory",
    ])


@dataclass
class AuthConfig:
    """Authentication configuration — certificate, secret or delegated."""
    mode: str = "certificate"  # "certificate", "secret" or "delegated"
    certificate: Optional[CertificateAuth] = None
    secret: Optional[ClientSecretAuth] = None
    delegated: Optional[DelegatedAuth] = None


# ─── Graph API Settings ─────────────────────────────────────────────────────

GRAPH_BASE_URL = "https://graph.microsoft.com"
GRAPH_API_VERSION = "v1.0"

# Throttling (429/503/504) inside a single request
MAX_RETRIES = 5
INITIAL_BACKOFF_SECONDS = 2.0
MAX_BACKOFF_SECONDS = 60.0
BACKOFF_MULTIPLIER = 2.0

# Pagination
DEFAULT_PAGE_SIZE = 999
SIGN_IN_PAGE_SIZE = 999           # auditLogs/signIns caps $top at 1000
MAX_PAGES_PER_ENDPOINT = 10000    # Safety cap on pagination loops


# ─── Retry Policy ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded retry for chunked Graph calls.
    Delay before attempt n+1 is base_delay * n, capped at max_delay.
    """
    max_attempts: int = 3
    base_delay: float = 5.0
    max_delay: float = 15.0

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay * attempt, self.max_delay)


# ─── Lifecycle Settings ─────────────────────────────────────────────────────

MIN_THRESHOLD_DAYS = 1
MAX_THRESHOLD_DAYS = 3650
MIN_LOOKBACK_DAYS = 30
MAX_LOOKBACK_DAYS = 365
SIGN_IN_CHUNK_DAYS = 30


@dataclass
class LifecycleConfig:
    """Controls for classification and sign-in aggregation."""
    inactive_threshold_days: int = 90
    decision_override_path: Optional[str] = None
    skip_sign_in_lookup: bool = False
    stale_status: LifecycleStatus = LifecycleStatus.REVIEW
    sign_in_chunk_days: int = SIGN_IN_CHUNK_DAYS
    retry: RetryPolicy = field(default_factory=RetryPolicy)

    def validate(self):
        if not MIN_THRESHOLD_DAYS <= self.inactive_threshold_days <= MAX_THRESHOLD_DAYS:
            raise ConfigError(
                f"inactive_threshold_days must be between {MIN_THRESHOLD_DAYS} "
                f"and {MAX_THRESHOLD_DAYS}, got {self.inactive_threshold_days}"
            )
        if self.stale_status is LifecycleStatus.KEEP:
            raise ConfigError("stale_status must be 'review' or 'delete'")
        if self.sign_in_chunk_days < 1:
            raise ConfigError("sign_in_chunk_days must be positive")


# ─── SKU Catalog ────────────────────────────────────────────────────────────

SKU_CATALOG_URL = (
    "https://download.microsoft.com/download/e/3/e/"
    "e3e9faf2-f28b-490a-9ada-c6089a1fc5b0/"
    "Product%20names%20and%20service%20plan%20identifiers%20for%20licensing.csv"
)


@dataclass
class CatalogConfig:
    """Where the SKU friendly-name catalog comes from."""
    url: str = SKU_CATALOG_URL
    local_path: Optional[str] = None     # Offline copy of the catalog CSV
    download: bool = True
    timeout_seconds: float = 30.0


# ─── Output Configuration ───────────────────────────────────────────────────

SUPPORTED_FORMATS = ("html", "csv", "json", "pdf")
SUPPORTED_LANGUAGES = ("en", "de", "fr", "es")


@dataclass
class OutputConfig:
    """Output directory and format settings."""
    base_dir: str = ""
    timestamp: str = ""
    formats: list[str] = field(default_factory=lambda: ["html", "csv", "json"])
    language: str = "en"
    archive_previous: bool = True

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        if not self.base_dir:
            self.base_dir = os.path.join(os.getcwd(), "license_lifecycle_output")

    @property
    def report_dir(self) -> Path:
        return Path(self.base_dir)

    @property
    def archive_dir(self) -> Path:
        return self.report_dir / "archive"

    def validate(self):
        unknown = [f for f in self.formats if f not in SUPPORTED_FORMATS]
        if unknown:
            raise ConfigError(f"Unsupported output formats: {', '.join(unknown)}")
        if self.language not in SUPPORTED_LANGUAGES:
            raise ConfigError(
                f"Unsupported language '{self.language}' "
                f"(choose from {', '.join(SUPPORTED_LANGUAGES)})"
            )


# ─── Master Configuration ───────────────────────────────────────────────────

@dataclass
class EngineConfig:
    """Top-level configuration for a report run."""
    auth: AuthConfig = field(default_factory=AuthConfig)
    lifecycle: LifecycleConfig = field(default_factory=LifecycleConfig)
    catalog: CatalogConfig = field(default_factory=CatalogConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    verbose: bool = False

    def validate(self):
        self.lifecycle.validate()
        self.output.validate()

    @classmethod
    def from_file(cls, path: str | Path) -> "EngineConfig":
        """Load configuration from a JSON file."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"{path} is not valid JSON: {e}") from None
        config = cls()
        if "auth" in data:
            auth_data = data["auth"]
            config.auth.mode = auth_data.get("mode", "certificate")
            if "certificate" in auth_data:
                c = auth_data["certificate"]
                config.auth.certificate = CertificateAuth(
                    tenant_id=c["tenant_id"],
                    client_id=c["client_id"],
                    certificate_path=c.get("certificate_path", "./base64.txt"),
                    certificate_password=c.get("certificate_password", ""),
                )
            if "secret" in auth_data:
                s = auth_data["secret"]
                config.auth.secret = ClientSecretAuth(
                    tenant_id=s["tenant_id"],
                    client_id=s["client_id"],
                    secret_env=s.get("secret_env", "M365_CLIENT_SECRET"),
                )
            if "delegated" in auth_data:
                d = auth_data["delegated"]
                config.auth.delegated = DelegatedAuth(
                    tenant_id=d["tenant_id"],
                    client_id=d["client_id"],
                )
        for k, v in _section(data, "lifecycle").items():
            if not hasattr(config.lifecycle, k):
                continue
            if k == "stale_status":
                try:
                    v = LifecycleStatus.parse(v)
                except ValueError as e:
                    raise ConfigError(str(e)) from None
            elif k == "retry":
                v = _retry_policy(_section(data["lifecycle"], "retry"))
            else:
                v = _coerce("lifecycle", k, v, getattr(config.lifecycle, k))
            setattr(config.lifecycle, k, v)
        for name in ("catalog", "output"):
            target = getattr(config, name)
            for k, v in _section(data, name).items():
                if hasattr(target, k):
                    setattr(target, k, _coerce(name, k, v, getattr(target, k)))
        config.verbose = _coerce("", "verbose", data.get("verbose", False), False)
        return config


def _section(data: dict, name: str) -> dict:
    value = data.get(name, {})
    if not isinstance(value, dict):
        raise ConfigError(f"'{name}' must be a JSON object")
    return value


def _coerce(section: str, key: str, value, current):
    """Check a JSON value against the type of the field's current value."""
    label = f"{section}.{key}" if section else key
    if isinstance(current, bool):
        if not isinstance(value, bool):
            raise ConfigError(f"{label} must be true or false, got {value!r}")
        return value
    if isinstance(current, (int, float)):
        if isinstance(value, bool):
            raise ConfigError(f"{label} must be a number, got {value!r}")
        try:
            return type(current)(value)
        except (TypeError, ValueError):
            raise ConfigError(f"{label} must be a number, got {value!r}") from None
    if isinstance(current, list) and not isinstance(value, list):
        raise ConfigError(f"{label} must be a list, got {value!r}")
    if isinstance(current, str) and not isinstance(value, str):
        raise ConfigError(f"{label} must be a string, got {value!r}")
    return value


def _retry_policy(data: dict) -> RetryPolicy:
    defaults = RetryPolicy()
    unknown = [k for k in data if not hasattr(defaults, k)]
    if unknown:
        raise ConfigError(f"Unknown retry settings: {', '.join(unknown)}")
    return RetryPolicy(**{
        k: _coerce("lifecycle.retry", k, v, getattr(defaults, k)) for k, v in data.items()
    })


# ─── Required Graph API Permissions (Read-Only) ─────────────────────────────

REQUIRED_PERMISSIONS = {
    "User.Read.All": "Enumerate users and their licence assignments",
    "Organization.Read.All": "Read subscribed SKUs and tenant details",
    "AuditLog.Read.All": "Read sign-in logs for activity classification",
    "RoleManagement.Read.Directory": "Read directory role membership (admin flag)",
    "Directory.Read.All": "Fallback read access for roles and organization",
}
