"""
Report label packs. A ReportLabels instance is handed to each renderer;
nothing outside the reporting package knows the display language.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class ReportLabels:
    language: str
    title: str
    subtitle: str
    generated: str
    scan_id: str
    threshold: str
    stale_policy: str
    total_users: str
    licensed_users: str
    keep: str
    review: str
    delete: str
    admins: str
    never_signed_in: str
    top_license: str
    search_placeholder: str
    all_statuses: str
    admins_only: str
    export_decisions: str
    col_name: str
    col_upn: str
    col_licenses: str
    col_last_sign_in: str
    col_status: str
    col_roles: str
    never: str
    not_checked: str
    no_results: str
    toggle_hint: str
    warnings: str
    footer: str

    def status_label(self, status: str) -> str:
        return {"keep": self.keep, "review": self.review, "delete": self.delete}.get(status, status)

    def to_dict(self) -> dict:
        return asdict(self)


_EN = ReportLabels(
    language="en",
    title="M365 License Lifecycle Report",
    subtitle="Licensed users and lifecycle recommendations for",
    generated="Generated",
    scan_id="Scan ID",
    threshold="Inactivity threshold (days)",
    stale_policy="Inactive users are marked",
    total_users="Directory users",
    licensed_users="Licensed users",
    keep="Keep",
    review="Review",
    delete="Delete",
    admins="Admins",
    never_signed_in="Never signed in",
    top_license="Top licence",
    search_placeholder="Search name, UPN, licence or role…",
    all_statuses="All",
    admins_only="Admins only",
    export_decisions="Export decisions (CSV)",
    col_name="Name",
    col_upn="User principal name",
    col_licenses="Licences",
    col_last_sign_in="Last sign-in",
    col_status="Action",
    col_roles="Admin roles",
    never="Never",
    not_checked="Not checked",
    no_results="No users match the current filter.",
    toggle_hint="Click an action badge to cycle Keep → Review → Delete.",
    warnings="Collection warnings",
    footer="Read-only report. No changes were made to the tenant.",
)

_DE = ReportLabels(
    language="de",
    title="M365 Lizenz-Lebenszyklus-Bericht",
    subtitle="Lizenzierte Benutzer und Empfehlungen für",
    generated="Erstellt",
    scan_id="Scan-ID",
    threshold="Inaktivitätsschwelle (Tage)",
    stale_policy="Inaktive Benutzer werden markiert als",
    total_users="Verzeichnisbenutzer",
    licensed_users="Lizenzierte Benutzer",
    keep="Behalten",
    review="Prüfen",
    delete="Löschen",
    admins="Administratoren",
    never_signed_in="Nie angemeldet",
    top_license="Häufigste Lizenz",
    search_placeholder="Name, UPN, Lizenz oder Rolle suchen…",
    all_statuses="Alle",
    admins_only="Nur Administratoren",
    export_decisions="Entscheidungen exportieren (CSV)",
    col_name="Name",
    col_upn="Benutzerprinzipalname",
    col_licenses="Lizenzen",
    col_last_sign_in="Letzte Anmeldung",
    col_status="Aktion",
    col_roles="Administratorrollen",
    never="Nie",
    not_checked="Nicht geprüft",
    no_results="Keine Benutzer entsprechen dem Filter.",
    toggle_hint="Auf ein Aktionssymbol klicken: Behalten → Prüfen → Löschen.",
    warnings="Hinweise zur Datenerfassung",
    footer="Nur-Lese-Bericht. Am Mandanten wurden keine Änderungen vorgenommen.",
)

_FR = ReportLabels(
    language="fr",
    title="Rapport du cycle de vie des licences M365",
    subtitle="Utilisateurs sous licence et recommandations pour",
    generated="Généré le",
    scan_id="ID d'analyse",
    threshold="Seuil d'inactivité (jours)",
    stale_policy="Les utilisateurs inactifs sont marqués",
    total_users="Utilisateurs de l'annuaire",
    licensed_users="Utilisateurs sous licence",
    keep="Conserver",
    review="Vérifier",
    delete="Supprimer",
    admins="Administrateurs",
    never_signed_in="Jamais connectés",
    top_license="Licence principale",
    search_placeholder="Rechercher nom, UPN, licence ou rôle…",
    all_statuses="Tous",
    admins_only="Administrateurs uniquement",
    export_decisions="Exporter les décisions (CSV)",
    col_name="Nom",
    col_upn="Nom d'utilisateur principal",
    col_licenses="Licences",
    col_last_sign_in="Dernière connexion",
    col_status="Action",
    col_roles="Rôles d'administration",
    never="Jamais",
    not_checked="Non vérifié",
    no_results="Aucun utilisateur ne correspond au filtre.",
    toggle_hint="Cliquez sur un badge pour alterner Conserver → Vérifier → Supprimer.",
    warnings="Avertissements de collecte",
    footer="Rapport en lecture seule. Aucune modification du locataire.",
)

_ES = ReportLabels(
    language="es",
    title="Informe del ciclo de vida de licencias M365",
    subtitle="Usuarios con licencia y recomendaciones para",
    generated="Generado",
    scan_id="ID de análisis",
    threshold="Umbral de inactividad (días)",
    stale_policy="Los usuarios inactivos se marcan como",
    total_users="Usuarios del directorio",
    licensed_users="Usuarios con licencia",
    keep="Mantener",
    review="Revisar",
    delete="Eliminar",
    admins="Administradores",
    never_signed_in="Nunca iniciaron sesión",
    top_license="Licencia principal",
    search_placeholder="Buscar nombre, UPN, licencia o rol…",
    all_statuses="Todos",
    admins_only="Solo administradores",
    export_decisions="Exportar decisiones (CSV)",
    col_name="Nombre",
    col_upn="Nombre principal de usuario",
    col_licenses="Licencias",
    col_last_sign_in="Último inicio de sesión",
    col_status="Acción",
    col_roles="Roles de administrador",
    never="Nunca",
    not_checked="No comprobado",
    no_results="Ningún usuario coincide con el filtro.",
    toggle_hint="Haga clic en una insignia para alternar Mantener → Revisar → Eliminar.",
    warnings="Advertencias de recopilación",
    footer="Informe de solo lectura. No se realizaron cambios en el inquilino.",
)

LABEL_PACKS = {pack.language: pack for pack in (_EN, _DE, _FR, _ES)}


def get_labels(language: str = "en") -> ReportLabels:
    """Label pack for a language code; unknown codes fall back to English."""
    return LABEL_PACKS.get((language or "en").lower(), _EN)
