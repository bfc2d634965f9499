"""
Tenant Profile Manager — Named profiles for multi-tenant support.

Profiles are stored in:
    ~/.m365_license_lifecycle/profiles.json

Each profile holds the tenant and app registration ids, the auth mode
(certificate, secret or delegated) with its credential reference, and an
optional display name. Admins reporting on several tenants switch between
them via `--profile <name>`.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger("m365_license_lifecycle.profiles")


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_CONFIG_DIR = Path.home() / ".m365_license_lifecycle"
AUTH_MODES = ("certificate", "secret", "delegated")


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass
class TenantProfile:
    """A single named tenant profile."""
    name: str                          # Unique short name (e.g. "contoso-prod")
    tenant_id: str                     # Entra tenant ID
    client_id: str                     # App registration client ID
    auth_mode: str = "certificate"     # certificate, secret or delegated
    cert_path: str = "./base64.txt"    # Base64-encoded PFX (certificate mode)
    secret_env: str = "M365_CLIENT_SECRET"  # Env var with the secret (secret mode)
    tenant_display_name: str = ""      # Friendly name shown in reports
    notes: str = ""

    def resolve_cert_path(self) -> str:
        """Return absolute cert path, resolving ~ and relative paths."""
        p = Path(self.cert_path).expanduser()
        if not p.is_absolute():
            p = Path.cwd() / p
        return str(p)


@dataclass
class ProfileStore:
    """Manages the collection of tenant profiles on disk."""
    profiles: dict[str, TenantProfile] = field(default_factory=dict)
    default_profile: str = ""
    path: Path = field(default_factory=lambda: DEFAULT_CONFIG_DIR / "profiles.json")

    # --- Persistence ---

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "ProfileStore":
        """Load profiles from disk. Returns an empty store if the file doesn't exist."""
        store = cls() if path is None else cls(path=Path(path))
        if not store.path.exists():
            return store
        try:
            data = json.loads(store.path.read_text(encoding="utf-8"))
            store.default_profile = data.get("default_profile", "")
            for name, pdata in data.get("profiles", {}).items():
                store.profiles[name] = TenantProfile(
                    name=name,
                    tenant_id=pdata["tenant_id"],
                    client_id=pdata["client_id"],
                    auth_mode=pdata.get("auth_mode", "certificate"),
                    cert_path=pdata.get("cert_path", "./base64.txt"),
                    secret_env=pdata.get("secret_env", "M365_CLIENT_SECRET"),
                    tenant_display_name=pdata.get("tenant_display_name", ""),
                    notes=pdata.get("notes", ""),
                )
        except (json.JSONDecodeError, KeyError) as e:
            logger.warning(f"Failed to parse {store.path}: {e}")
            return cls(path=store.path)
        return store

    def save(self) -> None:
        """Persist profiles to disk."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "default_profile": self.default_profile,
            "profiles": {
                name: {
                    "tenant_id": p.tenant_id,
                    "client_id": p.client_id,
                    "auth_mode": p.auth_mode,
                    "cert_path": p.cert_path,
                    "secret_env": p.secret_env,
                    "tenant_display_name": p.tenant_display_name,
                    "notes": p.notes,
                }
                for name, p in self.profiles.items()
            },
        }
        self.path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")

    # --- CRUD ---

    def add(self, profile: TenantProfile, set_default: bool = False) -> None:
        """Add or overwrite a profile."""
        self.profiles[profile.name] = profile
        if set_default or not self.default_profile:
            self.default_profile = profile.name
        self.save()

    def remove(self, name: str) -> bool:
        """Remove a profile by name. Returns True if it existed."""
        if name not in self.profiles:
            return False
        del self.profiles[name]
        if self.default_profile == name:
            self.default_profile = next(iter(self.profiles), "")
        self.save()
        return True

    def get(self, name: str) -> Optional[TenantProfile]:
        """Get a profile by name (case-insensitive)."""
        key = name.lower()
        for pname, profile in self.profiles.items():
            if pname.lower() == key:
                return profile
        return None

    def get_default(self) -> Optional[TenantProfile]:
        if self.default_profile:
            return self.profiles.get(self.default_profile)
        if self.profiles:
            return next(iter(self.profiles.values()))
        return None

    def set_default(self, name: str) -> bool:
        """Set the default profile. Returns True if profile exists."""
        if name not in self.profiles:
            return False
        self.default_profile = name
        self.save()
        return True

    def list_profiles(self) -> list[TenantProfile]:
        return sorted(self.profiles.values(), key=lambda p: p.name)


def resolve_profile(
    profile_name: Optional[str] = None,
    path: Optional[Path] = None,
) -> Optional[TenantProfile]:
    """
    Look up a tenant profile by name, or the default profile when no name
    is given. Returns None if nothing matches.
    """
    store = ProfileStore.load(path)
    if profile_name:
        return store.get(profile_name)
    return store.get_default()
