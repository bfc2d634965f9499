"""
HTML Lifecycle Dashboard — interactive, single-file HTML output.

Generates a self-contained dashboard with inline CSS and JS. Records are
embedded as JSON; search, status chips, the admins-only toggle and the
status badges all recompute the table and KPI cards in the browser with
the same rules as lifecycle.kpis (half-up percentages over the visible
rows, 0 for an empty view, first-encountered top licence on ties).
"""

from __future__ import annotations

import html
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from ..lifecycle.models import STATUS_CYCLE, AggregateKPIs, LifecycleStatus, UserRecord
from .labels import ReportLabels, get_labels


# ---------------------------------------------------------------------------
# Colour palette
# ---------------------------------------------------------------------------
_STATUS_COLOURS = {
    "keep":   {"bg": "#16a34a", "fg": "#fff"},
    "review": {"bg": "#d97706", "fg": "#fff"},
    "delete": {"bg": "#dc2626", "fg": "#fff"},
}


def _esc(val: Any) -> str:
    if val is None:
        return ""
    return html.escape(str(val))


def _json_for_script(payload: Any) -> str:
    """JSON safe to embed inside a <script> element."""
    text = json.dumps(payload, ensure_ascii=False, default=str)
    return text.replace("</", "<\\/").replace("\u2028", "\\u2028").replace("\u2029", "\\u2029")


def _status_badge(status: str, labels: ReportLabels) -> str:
    c = _STATUS_COLOURS.get(status, _STATUS_COLOURS["review"])
    return (
        f'<span class="badge" style="background:{c["bg"]};color:{c["fg"]}">'
        f'{_esc(labels.status_label(status))}</span>'
    )


def _kpi_card(key: str, title: str, value: Any, detail: str = "", colour: str = "#1e293b") -> str:
    return f"""
        <div class="kpi-card" data-kpi="{key}">
          <div class="kpi-title">{_esc(title)}</div>
          <div class="kpi-value" style="color:{colour}">{_esc(value)}</div>
          <div class="kpi-detail">{_esc(detail)}</div>
        </div>"""


def _render_kpi_cards(kpis: AggregateKPIs, labels: ReportLabels) -> str:
    cards = [
        _kpi_card("total", labels.total_users, kpis.total_users),
        _kpi_card("licensed", labels.licensed_users, kpis.licensed_users),
    ]
    for status in STATUS_CYCLE:
        s = status.value
        cards.append(_kpi_card(
            s,
            labels.status_label(s),
            kpis.status_counts.get(s, 0),
            f"{kpis.status_percent.get(s, 0)}%",
            _STATUS_COLOURS[s]["bg"],
        ))
    cards.append(_kpi_card("admins", labels.admins, kpis.admins, f"{kpis.admin_percent}%"))
    cards.append(_kpi_card(
        "never", labels.never_signed_in, kpis.never_signed_in, f"{kpis.never_signed_in_percent}%"
    ))
    cards.append(_kpi_card(
        "top",
        labels.top_license,
        kpis.top_license or "—",
        f"{kpis.top_license_users} ({kpis.top_license_percent}%)" if kpis.top_license else "",
    ))
    return "\n".join(cards)


def _render_rows(records: list[UserRecord], labels: ReportLabels) -> str:
    """Server-side rows so the page (and its PDF print) is readable without JS."""
    rows = []
    for i, r in enumerate(records):
        if r.last_sign_in:
            last = r.last_sign_in.strftime("%Y-%m-%d %H:%M")
        elif r.sign_in_checked:
            last = labels.never
        else:
            last = labels.not_checked
        rows.append(f"""
        <tr data-index="{i}">
          <td><div class="user-name">{_esc(r.display_name)}</div><div class="user-mail">{_esc(r.email)}</div></td>
          <td class="mono">{_esc(r.user_principal_name)}</td>
          <td>{"<br>".join(_esc(lic) for lic in r.licenses)}</td>
          <td>{_esc(last)}</td>
          <td><button class="status-btn" data-index="{i}">{_status_badge(r.status.value, labels)}</button></td>
          <td class="roles">{_esc(", ".join(r.admin_roles))}</td>
        </tr>""")
    return "\n".join(rows)


def _render_warnings(warnings: list[str], labels: ReportLabels) -> str:
    if not warnings:
        return ""
    items = "".join(f"<li>{_esc(w)}</li>" for w in warnings)
    return f"""
  <details class="warnings">
    <summary>{_esc(labels.warnings)} ({len(warnings)})</summary>
    <ul>{items}</ul>
  </details>"""


# Dashboard behaviour, inserted verbatim after the embedded report data.
_SCRIPT = r"""
(function () {
  var data = JSON.parse(document.getElementById("report-data").textContent);
  var labels = data.labels;
  var records = data.records;
  var CYCLE = ["keep", "review", "delete"];
  var state = { search: "", status: null, adminsOnly: false };

  function percent(part, whole) {
    return whole > 0 ? Math.floor(part * 100 / whole + 0.5) : 0;
  }
  function statusLabel(s) { return labels[s] || s; }
  function isAdmin(r) { return r.adminRoles.length > 0; }
  function neverSignedIn(r) { return r.signInChecked && !r.lastSignIn; }

  function matches(r) {
    if (state.status && r.status !== state.status) return false;
    if (state.adminsOnly && !isAdmin(r)) return false;
    var needle = state.search.trim().toLowerCase();
    if (!needle) return true;
    var hay = [r.displayName, r.userPrincipalName, r.email].concat(r.licenses, r.adminRoles);
    return hay.some(function (h) { return (h || "").toLowerCase().indexOf(needle) !== -1; });
  }

  function computeKpis(visible) {
    var counts = { keep: 0, review: 0, delete: 0 };
    var admins = 0, never = 0;
    var licenseUsers = new Map();
    visible.forEach(function (r) {
      counts[r.status] += 1;
      if (isAdmin(r)) admins += 1;
      if (neverSignedIn(r)) never += 1;
      r.licenses.forEach(function (l) { licenseUsers.set(l, (licenseUsers.get(l) || 0) + 1); });
    });
    var top = null, topUsers = 0;
    licenseUsers.forEach(function (n, l) { if (n > topUsers) { top = l; topUsers = n; } });
    var n = visible.length;
    return {
      counts: counts, n: n, admins: admins, never: never,
      top: top, topUsers: topUsers, topPercent: percent(topUsers, n)
    };
  }

  function setCard(key, value, detail) {
    var card = document.querySelector('.kpi-card[data-kpi="' + key + '"]');
    if (!card) return;
    card.querySelector(".kpi-value").textContent = value;
    card.querySelector(".kpi-detail").textContent = detail;
  }

  function badgeEl(s) {
    var c = data.colours[s];
    var span = document.createElement("span");
    span.className = "badge";
    span.style.background = c.bg;
    span.style.color = c.fg;
    span.textContent = statusLabel(s);
    return span;
  }

  function render() {
    var visible = [];
    document.querySelectorAll("#users tbody tr[data-index]").forEach(function (row) {
      var r = records[Number(row.dataset.index)];
      var show = matches(r);
      row.style.display = show ? "" : "none";
      if (show) visible.push(r);
    });
    document.getElementById("no-results").style.display = visible.length ? "none" : "";

    var k = computeKpis(visible);
    CYCLE.forEach(function (s) { setCard(s, k.counts[s], percent(k.counts[s], k.n) + "%"); });
    setCard("admins", k.admins, percent(k.admins, k.n) + "%");
    setCard("never", k.never, percent(k.never, k.n) + "%");
    setCard("top", k.top || "\u2014", k.top ? k.topUsers + " (" + k.topPercent + "%)" : "");
  }

  document.querySelectorAll(".status-btn").forEach(function (btn) {
    btn.addEventListener("click", function () {
      var r = records[Number(btn.dataset.index)];
      r.status = CYCLE[(CYCLE.indexOf(r.status) + 1) % CYCLE.length];
      btn.replaceChildren(badgeEl(r.status));
      render();
    });
  });

  document.getElementById("search").addEventListener("input", function (e) {
    state.search = e.target.value;
    render();
  });

  document.querySelectorAll(".chip").forEach(function (chip) {
    chip.addEventListener("click", function () {
      state.status = chip.dataset.status || null;
      document.querySelectorAll(".chip").forEach(function (c) { c.classList.toggle("active", c === chip); });
      render();
    });
  });

  document.getElementById("admins-only").addEventListener("change", function (e) {
    state.adminsOnly = e.target.checked;
    render();
  });

  function csvCell(v) {
    v = v == null ? "" : String(v);
    return /[",\r\n]/.test(v) ? '"' + v.replace(/"/g, '""') + '"' : v;
  }

  document.getElementById("export").addEventListener("click", function () {
    var lines = [["UPN", "Email", "Action"].join(",")];
    records.forEach(function (r) {
      lines.push([r.userPrincipalName, r.email, r.status].map(csvCell).join(","));
    });
    var blob = new Blob(["\ufeff" + lines.join("\r\n") + "\r\n"], { type: "text/csv;charset=utf-8" });
    var a = document.createElement("a");
    a.href = URL.createObjectURL(blob);
    a.download = "license_decisions_" + data.scanId + ".csv";
    document.body.appendChild(a);
    a.click();
    document.body.removeChild(a);
    URL.revokeObjectURL(a.href);
  });

  render();
})();
"""


def _render_html(
    records: list[UserRecord],
    kpis: AggregateKPIs,
    labels: ReportLabels,
    scan_id: str,
    tenant_name: str,
    generated_at: str,
    threshold_days: int,
    stale_status: LifecycleStatus,
    warnings: list[str],
) -> str:
    """Build the full HTML string."""

    payload = {
        "scanId": scan_id,
        "labels": labels.to_dict(),
        "colours": _STATUS_COLOURS,
        "records": [r.to_dict() for r in records],
    }

    chips = [f'<button class="chip active" data-status="">{_esc(labels.all_statuses)}</button>']
    for status in STATUS_CYCLE:
        chips.append(
            f'<button class="chip" data-status="{status.value}">'
            f'{_esc(labels.status_label(status.value))}</button>'
        )
    chips_html = "\n      ".join(chips)

    return f"""<!DOCTYPE html>
<html lang="{_esc(labels.language)}">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>{_esc(labels.title)} — {_esc(tenant_name)}</title>
<style>
/* ---------- Reset & base ---------- */
*, *::before, *::after {{ box-sizing: border-box; margin: 0; padding: 0; }}
html {{ font-size: 15px; }}
body {{
  font-family: "Segoe UI", -apple-system, BlinkMacSystemFont, Roboto, "Helvetica Neue", sans-serif;
  background: #f8fafc; color: #1e293b; line-height: 1.55;
}}

/* ---------- Layout ---------- */
.page {{ max-width: 1200px; margin: 0 auto; padding: 2rem 1.5rem; }}

/* ---------- Header ---------- */
.report-header {{
  background: linear-gradient(135deg, #0f172a 0%, #1e3a5f 100%);
  color: #f1f5f9; padding: 2rem 2.5rem; border-radius: 12px;
  margin-bottom: 2rem; display: flex; justify-content: space-between; align-items: center; flex-wrap: wrap; gap: 1rem;
}}
.header-left h1 {{ font-size: 1.6rem; font-weight: 700; margin-bottom: .3rem; }}
.header-left .subtitle {{ font-size: .85rem; opacity: .75; }}
.header-right {{ text-align: right; font-size: .78rem; opacity: .7; line-height: 1.7; }}

/* ---------- KPI grid ---------- */
.kpi-grid {{
  display: grid; grid-template-columns: repeat(auto-fill, minmax(160px, 1fr));
  gap: 1rem; margin-bottom: 1.5rem;
}}
.kpi-card {{
  background: #fff; border-radius: 10px; padding: 1rem 1.2rem;
  box-shadow: 0 1px 3px rgba(0,0,0,.06);
}}
.kpi-title {{ font-size: .75rem; text-transform: uppercase; letter-spacing: .04em; color: #64748b; font-weight: 600; }}
.kpi-value {{ font-size: 1.7rem; font-weight: 800; line-height: 1.2; word-break: break-word; }}
.kpi-card[data-kpi="top"] .kpi-value {{ font-size: 1rem; padding-top: .4rem; }}
.kpi-detail {{ font-size: .8rem; color: #94a3b8; }}

/* ---------- Toolbar ---------- */
.toolbar {{
  display: flex; flex-wrap: wrap; gap: .8rem; align-items: center;
  background: #fff; border-radius: 10px; padding: .8rem 1rem; margin-bottom: 1rem;
  box-shadow: 0 1px 3px rgba(0,0,0,.06);
}}
.toolbar input[type=search] {{
  flex: 1 1 260px; padding: .45rem .7rem; border: 1px solid #cbd5e1; border-radius: 6px; font-size: .88rem;
}}
.chip {{
  border: 1px solid #cbd5e1; background: #fff; color: #475569; border-radius: 999px;
  padding: .25rem .8rem; font-size: .8rem; cursor: pointer;
}}
.chip.active {{ background: #1e3a5f; color: #fff; border-color: #1e3a5f; }}
.toggle {{ font-size: .85rem; color: #475569; display: flex; align-items: center; gap: .3rem; }}
.export-btn {{
  margin-left: auto; background: #2563eb; color: #fff; border: 0; border-radius: 6px;
  padding: .45rem .9rem; font-size: .85rem; cursor: pointer;
}}
.hint {{ font-size: .78rem; color: #94a3b8; margin-bottom: .6rem; }}

/* ---------- Users table ---------- */
.users-table {{ width: 100%; border-collapse: separate; border-spacing: 0; background: #fff; border-radius: 10px; overflow: hidden; }}
.users-table th {{
  text-align: left; font-size: .75rem; text-transform: uppercase;
  letter-spacing: .04em; color: #64748b; padding: .6rem .8rem;
  background: #f1f5f9; position: sticky; top: 0; z-index: 2;
  border-bottom: 2px solid #e2e8f0;
}}
.users-table td {{ padding: .6rem .8rem; vertical-align: top; border-bottom: 1px solid #f1f5f9; font-size: .85rem; }}
.users-table tr:hover td {{ background: #f8fafc; }}
.user-name {{ font-weight: 600; }}
.user-mail {{ font-size: .75rem; color: #94a3b8; }}
.mono {{ font-family: "Cascadia Code", "Consolas", monospace; font-size: .78rem; color: #475569; }}
.roles {{ font-size: .78rem; color: #7c3aed; }}
.status-btn {{ background: none; border: 0; cursor: pointer; padding: 0; }}

/* ---------- Badge ---------- */
.badge {{
  display: inline-block; font-size: .7rem; font-weight: 700; letter-spacing: .03em;
  padding: 3px 8px; border-radius: 4px; text-transform: uppercase;
}}

/* ---------- Warnings ---------- */
.warnings {{ background: #fffbeb; border-radius: 8px; padding: .8rem 1.2rem; margin-bottom: 1.5rem; font-size: .85rem; }}
.warnings summary {{ cursor: pointer; font-weight: 600; color: #92400e; }}
.warnings ul {{ margin: .5rem 0 0 1.2rem; color: #78350f; }}

/* ---------- Misc ---------- */
.muted {{ color: #94a3b8; font-size: .88rem; font-style: italic; padding: 1rem; }}
.footer {{ text-align: center; font-size: .75rem; color: #94a3b8; margin-top: 3rem; padding-top: 1.5rem; border-top: 1px solid #e2e8f0; }}

/* ---------- Print ---------- */
@media print {{
  body {{ background: #fff; }}
  .page {{ max-width: 100%; padding: 1rem; }}
  .toolbar, .hint {{ display: none; }}
  .users-table tr {{ break-inside: avoid; }}
}}
</style>
</head>
<body>
<div class="page">

  <div class="report-header">
    <div class="header-left">
      <h1>{_esc(labels.title)}</h1>
      <div class="subtitle">{_esc(labels.subtitle)} {_esc(tenant_name)}</div>
    </div>
    <div class="header-right">
      {_esc(labels.scan_id)}: {_esc(scan_id)}<br>
      {_esc(labels.generated)}: {_esc(generated_at)}<br>
      {_esc(labels.threshold)}: {threshold_days}<br>
      {_esc(labels.stale_policy)}: {_esc(labels.status_label(stale_status.value))}
    </div>
  </div>

  <div class="kpi-grid">
{_render_kpi_cards(kpis, labels)}
  </div>
{_render_warnings(warnings, labels)}
  <div class="toolbar">
    <input type="search" id="search" placeholder="{_esc(labels.search_placeholder)}">
    <div class="chips">
      {chips_html}
    </div>
    <label class="toggle"><input type="checkbox" id="admins-only"> {_esc(labels.admins_only)}</label>
    <button class="export-btn" id="export">{_esc(labels.export_decisions)}</button>
  </div>
  <div class="hint">{_esc(labels.toggle_hint)}</div>

  <table class="users-table" id="users">
    <thead>
      <tr>
        <th>{_esc(labels.col_name)}</th>
        <th>{_esc(labels.col_upn)}</th>
        <th>{_esc(labels.col_licenses)}</th>
        <th>{_esc(labels.col_last_sign_in)}</th>
        <th>{_esc(labels.col_status)}</th>
        <th>{_esc(labels.col_roles)}</th>
      </tr>
    </thead>
    <tbody>
{_render_rows(records, labels)}
    </tbody>
  </table>
  <p class="muted" id="no-results" style="display:none">{_esc(labels.no_results)}</p>

  <div class="footer">{_esc(labels.footer)}</div>
</div>
<script type="application/json" id="report-data">{_json_for_script(payload)}</script>
<script>{_SCRIPT}</script>
</body>
</html>
"""


def export_html(
    records: list[UserRecord],
    kpis: AggregateKPIs,
    output_dir: Path,
    scan_id: str,
    tenant_name: str = "Unknown Tenant",
    labels: Optional[ReportLabels] = None,
    threshold_days: int = 90,
    stale_status: LifecycleStatus = LifecycleStatus.REVIEW,
    warnings: Optional[list[str]] = None,
) -> Path:
    """
    Generate the self-contained HTML lifecycle dashboard.

    Returns the Path to the written file.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    generated_at = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")

    html_content = _render_html(
        records=records,
        kpis=kpis,
        labels=labels or get_labels("en"),
        scan_id=scan_id,
        tenant_name=tenant_name,
        generated_at=generated_at,
        threshold_days=threshold_days,
        stale_status=stale_status,
        warnings=warnings or [],
    )

    filepath = output_dir / f"license_lifecycle_{scan_id}.html"
    filepath.write_text(html_content, encoding="utf-8")

    return filepath
