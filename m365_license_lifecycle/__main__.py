"""
M365 License Lifecycle Report — Main Orchestrator

Usage:
    python -m m365_license_lifecycle                               # default profile
    python -m m365_license_lifecycle --profile contoso-prod        # named profile
    python -m m365_license_lifecycle --config config.json          # JSON config file
    python -m m365_license_lifecycle --delegated                   # device-code auth flow
    python -m m365_license_lifecycle --inactive-threshold-days 60 --stale-status delete
    python -m m365_license_lifecycle --decision-override-path decisions.csv --formats html pdf

Profile management:
    python -m m365_license_lifecycle profile add <name> --tenant-id ... --client-id ...
    python -m m365_license_lifecycle profile list
    python -m m365_license_lifecycle profile remove <name>
    python -m m365_license_lifecycle profile set-default <name>

This tool is STRICTLY READ-ONLY. It will NEVER modify the tenant.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import uuid
from pathlib import Path
from typing import Any, Optional

from . import __version__
from .auth.authenticator import AuthenticationError, Authenticator
from .collectors import ALL_COLLECTORS, CollectorResult, UserEnumerationError
from .config import (
    MAX_THRESHOLD_DAYS,
    MIN_THRESHOLD_DAYS,
    SUPPORTED_FORMATS,
    SUPPORTED_LANGUAGES,
    CertificateAuth,
    ClientSecretAuth,
    ConfigError,
    DelegatedAuth,
    EngineConfig,
)
from .graph.client import GraphClient
from .lifecycle import (
    LicenseResolver,
    LifecycleClassifier,
    LifecycleStatus,
    SignInLookup,
    UserRecord,
    compute_kpis,
    load_overrides,
)
from .profiles import AUTH_MODES, ProfileStore, TenantProfile, resolve_profile
from .reporting import (
    archive_previous_reports,
    export_csv,
    export_html,
    export_json,
    export_pdf,
    get_labels,
)

logger = logging.getLogger("m365_license_lifecycle")

PROG = "m365_license_lifecycle"


# ---------------------------------------------------------------------------
# Profile management sub-commands
# ---------------------------------------------------------------------------

def _cmd_profile(args: argparse.Namespace) -> int:
    """Handle `profile add|list|remove|set-default` sub-commands."""
    action = args.profile_action

    if action == "list":
        return _profile_list()
    elif action == "add":
        return _profile_add(args)
    elif action == "remove":
        return _profile_remove(args)
    elif action == "set-default":
        return _profile_set_default(args)
    print(f"Usage: python -m {PROG} profile {{add|list|remove|set-default}}")
    return 0


def _profile_list() -> int:
    store = ProfileStore.load()
    profiles = store.list_profiles()
    if not profiles:
        print("No profiles configured. Add one with:\n")
        print(f"  python -m {PROG} profile add <name> \\")
        print("    --tenant-id <GUID> --client-id <GUID> --cert-path ./base64.txt")
        return 0

    print(f"\n  {'Name':<24s} {'Tenant ID':<38s} {'Client ID':<38s} {'Auth':<12s} {'Default'}")
    print(f"  {'─'*24} {'─'*38} {'─'*38} {'─'*12} {'─'*7}")
    for p in profiles:
        default_marker = "  ✓" if p.name == store.default_profile else ""
        display = p.tenant_display_name or ""
        name_col = p.name + (f" ({display})" if display else "")
        print(f"  {name_col:<24s} {p.tenant_id:<38s} {p.client_id:<38s} {p.auth_mode:<12s}{default_marker}")
    print()
    return 0


def _profile_add(args: argparse.Namespace) -> int:
    store = ProfileStore.load()
    name = args.profile_name
    if store.get(name):
        print(f"  Profile '{name}' already exists. It will be overwritten.")

    profile = TenantProfile(
        name=name,
        tenant_id=args.tenant_id,
        client_id=args.client_id,
        auth_mode=args.auth_mode,
        cert_path=args.cert_path or "./base64.txt",
        secret_env=args.secret_env or "M365_CLIENT_SECRET",
        tenant_display_name=args.display_name or "",
        notes=args.notes or "",
    )
    set_as_default = args.set_default or not store.profiles
    store.add(profile, set_default=set_as_default)
    print(f"  ✅ Profile '{name}' saved.")
    if set_as_default:
        print("  ✅ Set as default profile.")
    return 0


def _profile_remove(args: argparse.Namespace) -> int:
    store = ProfileStore.load()
    if store.remove(args.profile_name):
        print(f"  ✅ Profile '{args.profile_name}' removed.")
        return 0
    print(f"  ❌ Profile '{args.profile_name}' not found.")
    return 1


def _profile_set_default(args: argparse.Namespace) -> int:
    store = ProfileStore.load()
    if store.set_default(args.profile_name):
        print(f"  ✅ Default profile set to '{args.profile_name}'.")
        return 0
    print(f"  ❌ Profile '{args.profile_name}' not found.")
    return 1


# ---------------------------------------------------------------------------
# Argument parsing & configuration
# ---------------------------------------------------------------------------

def _threshold_days(value: str) -> int:
    try:
        days = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {value!r}")
    if not MIN_THRESHOLD_DAYS <= days <= MAX_THRESHOLD_DAYS:
        raise argparse.ArgumentTypeError(
            f"must be between {MIN_THRESHOLD_DAYS} and {MAX_THRESHOLD_DAYS}"
        )
    return days


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=PROG,
        description="M365 License Lifecycle Report (READ-ONLY)",
    )

    # --- Sub-commands: profile management ---
    subparsers = parser.add_subparsers(dest="command", help="Management commands")

    prof_parser = subparsers.add_parser("profile", help="Manage tenant profiles")
    prof_sub = prof_parser.add_subparsers(dest="profile_action", help="Profile actions")

    add_p = prof_sub.add_parser("add", help="Add or update a tenant profile")
    add_p.add_argument("profile_name", help="Short name for the profile (e.g. 'contoso-prod')")
    add_p.add_argument("--tenant-id", required=True, help="Entra tenant ID (GUID)")
    add_p.add_argument("--client-id", required=True, help="App registration client ID (GUID)")
    add_p.add_argument("--auth-mode", choices=AUTH_MODES, default="certificate",
                       help="Authentication mode (default: certificate)")
    add_p.add_argument("--cert-path", default="./base64.txt",
                       help="Path to base64-encoded PFX (default: ./base64.txt)")
    add_p.add_argument("--secret-env", help="Environment variable holding the client secret")
    add_p.add_argument("--display-name", help="Friendly tenant display name for reports")
    add_p.add_argument("--notes", help="Optional admin notes")
    add_p.add_argument("--set-default", action="store_true", help="Set as default profile")

    prof_sub.add_parser("list", help="List all configured profiles")

    rm_p = prof_sub.add_parser("remove", help="Remove a profile")
    rm_p.add_argument("profile_name", help="Name of the profile to remove")

    sd_p = prof_sub.add_parser("set-default", help="Set the default profile")
    sd_p.add_argument("profile_name", help="Name of the profile to set as default")

    # --- Lifecycle options ---
    parser.add_argument(
        "--inactive-threshold-days",
        type=_threshold_days,
        default=None,
        help=f"Days without sign-in before a user is stale "
             f"({MIN_THRESHOLD_DAYS}-{MAX_THRESHOLD_DAYS}, default: 90)",
    )
    parser.add_argument(
        "--decision-override-path",
        type=Path,
        default=None,
        help="CSV of manual decisions (UPN/Email + Action columns)",
    )
    parser.add_argument(
        "--skip-sign-in-lookup",
        action="store_true",
        help="Do not query sign-in logs; every user without an override is kept",
    )
    parser.add_argument(
        "--stale-status",
        choices=[LifecycleStatus.REVIEW.value, LifecycleStatus.DELETE.value],
        default=None,
        help="Recommendation for inactive users (default: review)",
    )
    parser.add_argument(
        "--sku-catalog",
        type=Path,
        default=None,
        help="Local copy of the licence product-name catalog CSV",
    )
    parser.add_argument(
        "--no-catalog-download",
        action="store_true",
        help="Do not download the licence product-name catalog",
    )

    # --- Tenant / auth options ---
    parser.add_argument(
        "--profile", "-p",
        type=str,
        default=None,
        help="Tenant profile name to use (run 'profile list' to see available)",
    )
    parser.add_argument(
        "--config", "-c",
        type=Path,
        help="Path to JSON configuration file",
    )
    parser.add_argument(
        "--delegated",
        action="store_true",
        help="Use delegated (device-code) authentication",
    )
    parser.add_argument(
        "--cert-path",
        type=Path,
        help="Path to base64-encoded certificate file (overrides profile)",
    )
    parser.add_argument(
        "--client-secret-env",
        type=str,
        default=None,
        help="Authenticate with the client secret held in this environment variable",
    )
    parser.add_argument(
        "--tenant-id",
        type=str,
        default=None,
        help="Tenant ID (overrides profile; use with --client-id for ad-hoc runs)",
    )
    parser.add_argument(
        "--client-id",
        type=str,
        default=None,
        help="Client ID (overrides profile; use with --tenant-id for ad-hoc runs)",
    )

    # --- Output options ---
    parser.add_argument(
        "--output-dir", "-o",
        type=Path,
        default=None,
        help="Output directory for reports (default: ./license_lifecycle_output)",
    )
    parser.add_argument(
        "--tenant-name",
        type=str,
        default=None,
        help="Display name for the tenant in reports (overrides profile display name)",
    )
    parser.add_argument(
        "--formats",
        nargs="+",
        choices=list(SUPPORTED_FORMATS),
        default=None,
        help="Output formats to generate (default: html csv json)",
    )
    parser.add_argument(
        "--language",
        choices=list(SUPPORTED_LANGUAGES),
        default=None,
        help="Report label language (default: en)",
    )
    parser.add_argument(
        "--no-archive",
        action="store_true",
        help="Leave previous reports in place instead of moving them to archive/",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Debug logging",
    )
    return parser


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def _apply_auth(config: EngineConfig, args: argparse.Namespace, profile: Optional[TenantProfile]):
    """Resolve tenant identity and auth mode: CLI flags > profile > config file."""
    auth = config.auth
    mode = profile.auth_mode if profile else auth.mode
    if args.client_secret_env:
        mode = "secret"
    if args.delegated:
        mode = "delegated"

    existing = auth.certificate or auth.secret or auth.delegated
    tenant_id = args.tenant_id or (profile.tenant_id if profile else None) or (
        existing.tenant_id if existing else None
    )
    client_id = args.client_id or (profile.client_id if profile else None) or (
        existing.client_id if existing else None
    )
    if not tenant_id or not client_id:
        raise ConfigError(
            "No tenant credentials found. Use --profile <name>, "
            "--tenant-id X --client-id Y, or --config config.json "
            f"(create a profile with: python -m {PROG} profile add <name> ...)"
        )

    if mode == "certificate":
        if args.cert_path:
            cert_path = str(args.cert_path)
        elif profile:
            cert_path = profile.resolve_cert_path()
        elif auth.certificate:
            cert_path = auth.certificate.certificate_path
        else:
            cert_path = "./base64.txt"
        password = auth.certificate.certificate_password if auth.certificate else ""
        auth.certificate = CertificateAuth(
            tenant_id=tenant_id,
            client_id=client_id,
            certificate_path=cert_path,
            certificate_password=password,
        )
    elif mode == "secret":
        secret_env = (
            args.client_secret_env
            or (profile.secret_env if profile else None)
            or (auth.secret.secret_env if auth.secret else "M365_CLIENT_SECRET")
        )
        auth.secret = ClientSecretAuth(tenant_id=tenant_id, client_id=client_id, secret_env=secret_env)
    elif mode == "delegated":
        delegated = DelegatedAuth(tenant_id=tenant_id, client_id=client_id)
        if auth.delegated:
            delegated.scopes = list(auth.delegated.scopes)
        auth.delegated = delegated
    else:
        raise ConfigError(f"Unknown auth mode: {mode!r} (choose from {', '.join(AUTH_MODES)})")
    auth.mode = mode


def _apply_overrides(config: EngineConfig, args: argparse.Namespace):
    """CLI flags win over config-file values."""
    lifecycle = config.lifecycle
    if args.inactive_threshold_days is not None:
        lifecycle.inactive_threshold_days = args.inactive_threshold_days
    if args.decision_override_path:
        lifecycle.decision_override_path = str(args.decision_override_path)
    if args.skip_sign_in_lookup:
        lifecycle.skip_sign_in_lookup = True
    if args.stale_status:
        lifecycle.stale_status = LifecycleStatus.parse(args.stale_status)

    if args.sku_catalog:
        config.catalog.local_path = str(args.sku_catalog)
    if args.no_catalog_download:
        config.catalog.download = False

    if args.output_dir:
        config.output.base_dir = str(args.output_dir)
    if args.formats:
        config.output.formats = list(dict.fromkeys(args.formats))
    if args.language:
        config.output.language = args.language
    if args.no_archive:
        config.output.archive_previous = False
    if args.verbose:
        config.verbose = True


def build_config(args: argparse.Namespace) -> tuple[EngineConfig, Optional[TenantProfile]]:
    """
    Build the run configuration from a config file, a tenant profile and
    CLI flags, then validate it.

    Raises:
        ConfigError: missing credentials or out-of-range values.
    """
    if args.config:
        if not args.config.exists():
            raise ConfigError(f"Config file not found: {args.config}")
        config = EngineConfig.from_file(args.config)
    else:
        config = EngineConfig()

    profile = None
    if args.profile:
        profile = resolve_profile(args.profile)
        if not profile:
            raise ConfigError(
                f"Profile '{args.profile}' not found. Use 'profile list' to see available profiles."
            )
    elif not args.config and not args.tenant_id:
        profile = resolve_profile()

    _apply_auth(config, args, profile)
    _apply_overrides(config, args)
    config.validate()
    return config, profile


def configure_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)
    logging.getLogger("msal").setLevel(logging.INFO if verbose else logging.WARNING)


# ---------------------------------------------------------------------------
# Phases
# ---------------------------------------------------------------------------

async def run_collection(client: GraphClient, config: EngineConfig) -> dict[str, CollectorResult]:
    """
    Run every collector, one after another.

    Returns:
        Dict mapping collector name to CollectorResult.

    Raises:
        UserEnumerationError: the directory users could not be read.
    """
    results = {}
    for cls in ALL_COLLECTORS:
        collector = cls(graph=client, config=config)
        result = await collector.execute()
        results[collector.name] = result

        meta = result.metadata
        if meta["skipped"]:
            print(f"  ⏭  {cls.__name__}: skipped")
        else:
            marker = "⚠ " if meta["warnings"] else "✅"
            print(f"  {marker} {cls.__name__}: {meta['items_collected']} items "
                  f"({meta['duration_seconds']}s)")
        for w in meta["warnings"]:
            print(f"      ⚠  {w}")

    return results


def _collected(results: dict[str, CollectorResult], collector: str, key: str, default: Any = None) -> Any:
    result = results.get(collector)
    if result is None:
        return default
    return result.data.get(key, default)


def classify_users(
    collector_results: dict[str, CollectorResult],
    config: EngineConfig,
) -> list[UserRecord]:
    """Join users, licences, sign-ins, overrides and roles into UserRecords."""
    lifecycle = config.lifecycle

    users = _collected(collector_results, "users", "users", [])
    resolver = LicenseResolver(
        _collected(collector_results, "skus", "part_numbers", {}),
        _collected(collector_results, "catalog", "catalog"),
    )

    if lifecycle.skip_sign_in_lookup:
        sign_ins = None
    else:
        sign_ins = _collected(collector_results, "signins", "sign_ins") or SignInLookup()

    overrides = load_overrides(lifecycle.decision_override_path)
    if lifecycle.decision_override_path:
        print(f"  Overrides loaded: {len(overrides)}")

    classifier = LifecycleClassifier(
        licenses=resolver,
        sign_ins=sign_ins,
        overrides=overrides,
        threshold_days=lifecycle.inactive_threshold_days,
        stale_status=lifecycle.stale_status,
        admin_roles=_collected(collector_results, "admin_roles", "roles", {}),
    )
    return classifier.classify(users)


def generate_reports(
    records: list[UserRecord],
    kpis,
    collector_results: dict,
    config: EngineConfig,
    scan_id: str,
    tenant_name: str,
) -> list[Path]:
    """Generate all requested report formats."""
    output_dir = config.output.report_dir
    formats = config.output.formats
    labels = get_labels(config.output.language)
    lifecycle = config.lifecycle
    warnings = [
        w for result in collector_results.values() for w in result.warnings
    ]
    created = []

    if "json" in formats:
        path = export_json(
            records, kpis, collector_results, output_dir, scan_id,
            run_info={
                "tenant": tenant_name,
                "inactive_threshold_days": lifecycle.inactive_threshold_days,
                "stale_status": lifecycle.stale_status.value,
                "sign_in_lookup": not lifecycle.skip_sign_in_lookup,
                "override_file": lifecycle.decision_override_path,
                "language": config.output.language,
            },
        )
        created.append(path)
        print(f"  📄 JSON:       {path}")

    if "csv" in formats:
        path = export_csv(records, output_dir, scan_id)
        created.append(path)
        print(f"  📊 CSV:        {path}")

    if "html" in formats or "pdf" in formats:
        html_path = export_html(
            records, kpis, output_dir, scan_id,
            tenant_name=tenant_name,
            labels=labels,
            threshold_days=lifecycle.inactive_threshold_days,
            stale_status=lifecycle.stale_status,
            warnings=warnings,
        )
        created.append(html_path)
        print(f"  🌐 HTML:       {html_path}")

        if "pdf" in formats:
            pdf_path = export_pdf(html_path)
            if pdf_path:
                created.append(pdf_path)
                print(f"  🖨  PDF:        {pdf_path}")
            else:
                print("  ⚠  PDF:        not generated (see log)")

    return created


def _print_kpis(kpis):
    print(f"  Directory users:  {kpis.total_users}")
    print(f"  Licensed users:   {kpis.licensed_users}")
    for status in (LifecycleStatus.KEEP, LifecycleStatus.REVIEW, LifecycleStatus.DELETE):
        s = status.value
        print(f"  {s.capitalize():<17s} {kpis.status_counts[s]:>5d} ({kpis.status_percent[s]}%)")
    print(f"  Admins:           {kpis.admins} ({kpis.admin_percent}%)")
    print(f"  Never signed in:  {kpis.never_signed_in} ({kpis.never_signed_in_percent}%)")
    if kpis.top_license:
        print(f"  Top licence:      {kpis.top_license} "
              f"({kpis.top_license_users} users, {kpis.top_license_percent}%)")


async def main_async(argv: Optional[list[str]] = None) -> int:
    """Async entry point. Returns the process exit code."""
    args = parse_args(argv)

    # --- Handle profile management sub-commands ---
    if getattr(args, "command", None) == "profile":
        return _cmd_profile(args)

    configure_logging(args.verbose)

    print("=" * 70)
    print(f" M365 License Lifecycle Report v{__version__}")
    print(" Mode: READ-ONLY — No tenant modifications will be made")
    print("=" * 70)

    # --- Configuration ---
    try:
        config, profile = build_config(args)
    except ConfigError as e:
        print(f"\n❌ {e}")
        return 1

    scan_id = f"{config.output.timestamp}_{uuid.uuid4().hex[:8]}"
    output_dir = config.output.report_dir
    lifecycle = config.lifecycle

    profile_label = f" (profile: {profile.name})" if profile else ""
    print(f"\n📋 Scan ID:   {scan_id}")
    print(f"📂 Output:    {output_dir.resolve()}")
    print(f"🔑 Auth:      {config.auth.mode}{profile_label}")
    print(f"⏱  Threshold: {lifecycle.inactive_threshold_days} days "
          f"(inactive → {lifecycle.stale_status.value})")

    # --- Authentication ---
    print("\n🔐 Authenticating...")
    try:
        token = Authenticator(config.auth).acquire_token()
    except AuthenticationError as e:
        print(f"❌ Authentication failed: {e}")
        print("\n   The app registration needs these Graph application permissions:")
        for perm, reason in Authenticator.list_required_permissions().items():
            print(f"     - {perm:<32s} {reason}")
        return 1
    print("✅ Authentication successful.")

    async with GraphClient(access_token=token) as client:
        # --- Collection Phase ---
        print("\n" + "=" * 70)
        print(" PHASE 1: DATA COLLECTION")
        print("=" * 70 + "\n")
        try:
            collector_results = await run_collection(client, config)
        except UserEnumerationError as e:
            print(f"\n❌ {e}")
            return 1
        stats = client.get_stats()
        logger.debug(f"Graph client stats: {stats}")

    # Resolve tenant display name: CLI flag > profile > directory > fallback
    tenant = _collected(collector_results, "organization", "tenant", {}) or {}
    if args.tenant_name:
        tenant_name = args.tenant_name
    elif profile and profile.tenant_display_name:
        tenant_name = profile.tenant_display_name
    else:
        tenant_name = tenant.get("displayName") or "Unknown Tenant"

    # --- Classification Phase ---
    print("\n" + "=" * 70)
    print(" PHASE 2: LIFECYCLE CLASSIFICATION")
    print("=" * 70 + "\n")
    records = classify_users(collector_results, config)
    kpis = compute_kpis(records, total_users=len(_collected(collector_results, "users", "users", [])))
    _print_kpis(kpis)

    # --- Reporting Phase ---
    print("\n" + "=" * 70)
    print(" PHASE 3: REPORT GENERATION")
    print("=" * 70 + "\n")
    if config.output.archive_previous:
        archived = archive_previous_reports(output_dir, config.output.archive_dir)
        if archived:
            print(f"  🗄  Archived {len(archived)} previous report file(s)")

    created_files = generate_reports(
        records=records,
        kpis=kpis,
        collector_results=collector_results,
        config=config,
        scan_id=scan_id,
        tenant_name=tenant_name,
    )

    print("\n" + "=" * 70)
    print(" REPORT COMPLETE")
    print("=" * 70)
    print(f"\n  Tenant: {tenant_name}")
    print(f"  Users:  {kpis.licensed_users} licensed, "
          f"{kpis.status_counts['delete']} marked delete, "
          f"{kpis.status_counts['review']} for review")
    print(f"  Files:  {len(created_files)} reports generated")
    print(f"  Path:   {output_dir.resolve()}")
    print()
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Synchronous entry point for `python -m m365_license_lifecycle`."""
    return asyncio.run(main_async(argv))


if __name__ == "__main__":
    sys.exit(main())
