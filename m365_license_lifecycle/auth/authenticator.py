"""
Authentication module — certificate, client-secret and delegated device-code auth.
Uses MSAL for token acquisition against the Microsoft Identity Platform.
"""

from __future__ import annotations

import base64
import getpass
import logging
import os
from typing import Optional

import msal
from cryptography.hazmat.primitives.hashes import SHA1
from cryptography.hazmat.primitives.serialization import Encoding, NoEncryption, PrivateFormat, pkcs12

from ..config import AuthConfig, REQUIRED_PERMISSIONS

logger = logging.getLogger("m365_license_lifecycle.auth")

APP_SCOPES = ["https://graph.microsoft.com/.default"]


class AuthenticationError(Exception):
    """Raised when authentication fails."""
    pass


def _authority(tenant_id: str) -> str:
    return f"https://login.microsoftonline.com/{tenant_id}"


def load_pfx_credential(cert_path: str, password: str) -> dict:
    """
    Read a base64-encoded PFX file and return the MSAL client_credential
    dict (thumbprint + PEM private key).
    """
    try:
        with open(cert_path, "r", encoding="utf-8") as f:
            cert_bytes = base64.b64decode(f.read().strip())
    except FileNotFoundError:
        raise AuthenticationError(f"Certificate file not found: {cert_path}")
    except (OSError, ValueError) as e:
        raise AuthenticationError(f"Failed to read certificate {cert_path}: {e}")

    try:
        private_key, certificate, _ = pkcs12.load_key_and_certificates(
            cert_bytes, password.encode("utf-8") if password else None
        )
    except ValueError as e:
        raise AuthenticationError(f"Failed to load certificate: {e}")

    if private_key is None or certificate is None:
        raise AuthenticationError("PFX file does not contain both a key and a certificate")

    thumbprint = certificate.fingerprint(SHA1()).hex()
    logger.info(f"Certificate loaded. Thumbprint: {thumbprint}")
    return {
        "thumbprint": thumbprint,
        "private_key": private_key.private_bytes(
            Encoding.PEM, PrivateFormat.PKCS8, NoEncryption()
        ).decode("utf-8"),
    }


class Authenticator:
    """
    Handles MSAL-based authentication for Microsoft Graph.
    Supports:
      - Certificate-based app-only authentication
      - Client-secret app-only authentication
      - Delegated interactive authentication (device code flow)
    """

    def __init__(self, config: AuthConfig):
        self.config = config
        self._access_token: Optional[str] = None

    def acquire_token(self) -> str:
        """Acquire an access token based on configured auth mode."""
        if self.config.mode == "certificate":
            return self._acquire_certificate_token()
        elif self.config.mode == "secret":
            return self._acquire_secret_token()
        elif self.config.mode == "delegated":
            return self._acquire_delegated_token()
        raise AuthenticationError(f"Unknown auth mode: {self.config.mode}")

    def _acquire_certificate_token(self) -> str:
        cert_config = self.config.certificate
        if not cert_config:
            raise AuthenticationError("Certificate auth config not provided.")

        logger.info("Authenticating with certificate-based app credentials...")
        password = (
            cert_config.certificate_password
            or os.environ.get("M365_CERT_PASSWORD", "")
            or getpass.getpass("Enter the certificate password: ")
        )
        credential = load_pfx_credential(cert_config.certificate_path, password)

        app = msal.ConfidentialClientApplication(
            client_id=cert_config.client_id,
            authority=_authority(cert_config.tenant_id),
            client_credential=credential,
        )
        return self._take_token(app.acquire_token_for_client(scopes=APP_SCOPES), "Certificate")

    def _acquire_secret_token(self) -> str:
        secret_config = self.config.secret
        if not secret_config:
            raise AuthenticationError("Client secret auth config not provided.")

        secret = os.environ.get(secret_config.secret_env, "")
        if not secret:
            raise AuthenticationError(
                f"Client secret not found in environment variable {secret_config.secret_env}"
            )

        logger.info("Authenticating with client secret...")
        app = msal.ConfidentialClientApplication(
            client_id=secret_config.client_id,
            authority=_authority(secret_config.tenant_id),
            client_credential=secret,
        )
        return self._take_token(app.acquire_token_for_client(scopes=APP_SCOPES), "Client secret")

    def _acquire_delegated_token(self) -> str:
        deleg_config = self.config.delegated
        if not deleg_config:
            raise AuthenticationError("Delegated auth config not provided.")

        logger.info("Initiating device code authentication flow...")
        app = msal.PublicClientApplication(
            client_id=deleg_config.client_id,
            authority=_authority(deleg_config.tenant_id),
        )

        flow = app.initiate_device_flow(scopes=deleg_config.scopes)
        if "user_code" not in flow:
            raise AuthenticationError(
                f"Device code flow failed: {flow.get('error_description', 'Unknown')}"
            )

        print(f"\n{'='*60}")
        print(f"  To sign in, open: {flow['verification_uri']}")
        print(f"  Enter code: {flow['user_code']}")
        print(f"{'='*60}\n")

        return self._take_token(app.acquire_token_by_device_flow(flow), "Delegated")

    def _take_token(self, result: dict, label: str) -> str:
        if "access_token" in result:
            self._access_token = result["access_token"]
            logger.info(f"{label} authentication successful.")
            return self._access_token
        error = result.get("error_description", result.get("error", "Unknown"))
        raise AuthenticationError(f"{label} auth failed: {error}")

    @staticmethod
    def list_required_permissions() -> dict[str, str]:
        """Return the map of required Graph API permissions."""
        return REQUIRED_PERMISSIONS
