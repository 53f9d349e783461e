"""
HTML migration report generation.
"""

from datetime import datetime
from html import escape
from pathlib import Path

from lmdb2sqlite import REPORT_FILE_NAME

CSS = """
body { font-family: 'Inter', -apple-system, sans-serif; line-height: 1.5; color: #333; max-width: 1200px; margin: 0 auto; padding: 40px 20px; background-color: #f8f9fa; }
h1, h2, h3 { color: #1a202c; }
.header { border-bottom: 2px solid #e2e8f0; padding-bottom: 20px; margin-bottom: 40px; display: flex; justify-content: space-between; align-items: center; }
.status { padding: 8px 16px; border-radius: 9999px; font-weight: 600; font-size: 0.875rem; }
.status-pass { background-color: #c6f6d5; color: #22543d; }
.status-fail { background-color: #fed7d7; color: #822727; }
.status-warn { background-color: #feebc8; color: #744210; }
.card { background: white; border-radius: 8px; box-shadow: 0 1px 3px rgba(0,0,0,0.1); padding: 24px; margin-bottom: 32px; }
table { width: 100%; border-collapse: collapse; margin-top: 16px; }
th { text-align: left; padding: 12px; background: #f7fafc; border-bottom: 2px solid #edf2f7; font-size: 0.75rem; text-transform: uppercase; letter-spacing: 0.05em; color: #4a5568; }
td { padding: 12px; border-bottom: 1px solid #edf2f7; font-size: 0.875rem; }
.table-name { font-weight: 600; color: #2d3748; }
.source-val { color: #b7791f; }
.target-val { color: #2f855a; }
.badge { padding: 2px 8px; border-radius: 4px; font-size: 0.75rem; font-weight: 600; }
.badge-ok { background: #c6f6d5; color: #22543d; }
.badge-err { background: #fed7d7; color: #822727; }
.badge-warn { background: #feebc8; color: #744210; }
"""

STATUS_BADGES = {
    "ok": "badge-ok",
    "pending": "badge-warn",
    "failed": "badge-err",
    "mismatch": "badge-err",
}


def _page(title: str, subtitle: str, status_class: str, status_text: str, body: str) -> str:
    generated = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <title>{escape(title)}</title>
    <style>{CSS}</style>
</head>
<body>
    <div class="header">
        <div>
            <h1>{escape(title)}</h1>
            <p style="color: #718096; margin-top: 4px;">{subtitle}</p>
        </div>
        <div class="status {status_class}">{status_text}</div>
    </div>
{body}
    <footer style="text-align: center; color: #a0aec0; font-size: 0.75rem; margin-top: 40px;">
        Generated by lmdb2sqlite on {generated}
    </footer>
</body>
</html>
"""


def _stat_card(label: str, value) -> str:
    return f"""
        <div class="card" style="margin-bottom: 0; text-align: center;">
            <div style="color: #718096; font-size: 0.875rem;">{label}</div>
            <div style="font-size: 2rem; font-weight: 700; color: #2d3748;">{value}</div>
        </div>"""


def _error_card(errors: list[str]) -> str:
    if not errors:
        return ""
    items = "".join(f"<li>{escape(str(e))}</li>" for e in errors)
    return f"""
    <div class="card" style="border-left: 4px solid #f56565;">
        <h3>Errors</h3>
        <ul style="color: #c53030;">{items}</ul>
    </div>"""


def _write(path: Path, html: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(html)
    return path


def generate_html_report(result, output_file: Path = None) -> Path:
    """Write the report for a migration run next to the databases."""
    output_file = output_file or result.paths.work_dir / REPORT_FILE_NAME
    state = result.state.value if result.state else "unknown"
    status_class = {
        "success": "status-pass",
        "partial_failure": "status-warn",
    }.get(state, "status-fail")

    errors = []
    if result.error is not None:
        errors.append(result.error)
    errors.extend(m for m in result.mismatches if m is not result.error)
    for stats in result.tables:
        errors.extend(f"{stats.database}/{stats.table}: {e}" for e in stats.errors if e is not result.error)

    body = '    <div style="display: grid; grid-template-columns: repeat(auto-fit, minmax(200px, 1fr)); gap: 20px; margin-bottom: 40px;">'
    body += _stat_card("Tables Migrated", f"{sum(1 for t in result.tables if t.status == 'ok')}/{len(result.tables)}")
    body += _stat_card("Rows Written", f"{result.total_written:,}")
    body += _stat_card("Records Skipped", sum(t.skipped for t in result.tables))
    body += _stat_card("Auth Database", "skipped" if result.auth_skipped else "migrated")
    body += "\n    </div>\n"
    body += _error_card(errors)

    body += """
    <div class="card">
        <h3>Tables</h3>
        <table>
            <thead>
                <tr>
                    <th>Database</th>
                    <th>Table</th>
                    <th>Source</th>
                    <th>Read</th>
                    <th>Written</th>
                    <th>Skipped</th>
                    <th>Status</th>
                </tr>
            </thead>
            <tbody>"""

    for t in result.tables:
        b_class = STATUS_BADGES.get(t.status, "badge-warn")
        body += f"""
                <tr>
                    <td>{t.database}</td>
                    <td class="table-name">{t.table}</td>
                    <td>{escape(t.source)}</td>
                    <td class="source-val">{t.read:,}</td>
                    <td class="target-val">{t.written:,}</td>
                    <td>{t.skipped:,}</td>
                    <td><span class="badge {b_class}">{t.status}</span></td>
                </tr>"""

    body += """
            </tbody>
        </table>
    </div>
"""

    paths = result.paths
    subtitle = f"{escape(str(paths.source))} (LMDB) &rarr; {escape(str(paths.target))} (SQLite)"
    html = _page("Migration Report", subtitle, status_class, state.replace("_", " ").upper(), body)
    return _write(output_file, html)


def generate_verification_report(reports: list[dict], output_file: Path) -> Path:
    """Write the report for a --verify-only run (one section per database)."""
    all_passed = all(r["all_passed"] for r in reports)
    body = ""

    for report in reports:
        database = report["database"]
        body += f"\n    <h2>{database} database</h2>"
        body += _error_card(report["validation_errors"])

        body += """
    <div class="card">
        <h3>Row Count Comparison</h3>
        <table>
            <thead>
                <tr><th>Table</th><th>Source Count</th><th>SQLite Count</th><th>Status</th></tr>
            </thead>
            <tbody>"""
        for t in report["row_counts"]["tables"]:
            b_class = "badge-ok" if t["passed"] else "badge-err"
            body += f"""
                <tr>
                    <td class="table-name">{t['table']}</td>
                    <td class="source-val">{t['source']}</td>
                    <td class="target-val">{t['target']}</td>
                    <td><span class="badge {b_class}">{t['status']}</span></td>
                </tr>"""
        body += """
            </tbody>
        </table>
    </div>"""

        body += """
    <div class="card">
        <h3>Record Contents</h3>
        <table>
            <thead>
                <tr><th>Table</th><th>Compared</th><th>Missing</th><th>Different</th><th>Unreadable</th></tr>
            </thead>
            <tbody>"""
        for c in report["contents"]:
            body += f"""
                <tr>
                    <td class="table-name">{c['table']}</td>
                    <td>{c['checked']}</td>
                    <td>{c['missing']}</td>
                    <td>{c['different']}</td>
                    <td>{c['invalid']}</td>
                </tr>"""
        body += """
            </tbody>
        </table>
    </div>"""

        if report["amounts"]:
            body += """
    <div class="card">
        <h3>Blind Signatures per Keyset</h3>
        <table>
            <thead>
                <tr><th>Keyset</th><th>Source</th><th>SQLite</th><th>Source Amount</th><th>SQLite Amount</th><th>Status</th></tr>
            </thead>
            <tbody>"""
            for a in report["amounts"]:
                b_class = "badge-ok" if a["passed"] else "badge-err"
                body += f"""
                <tr>
                    <td class="table-name"><code>{a['keyset_id']}</code></td>
                    <td class="source-val">{a['source_count']}</td>
                    <td class="target-val">{a['target_count']}</td>
                    <td class="source-val">{a['source_amount']}</td>
                    <td class="target-val">{a['target_amount']}</td>
                    <td><span class="badge {b_class}">{'OK' if a['passed'] else 'MISMATCH'}</span></td>
                </tr>"""
            body += """
            </tbody>
        </table>
    </div>"""

        if report["schema"]:
            differences = [d for d in report["schema"]["diffs"] if d["status"] != "identical"]
            if differences:
                body += """
    <div class="card">
        <h3>Schema Differences</h3>
        <table>
            <thead>
                <tr><th>Table.Column</th><th>Expected</th><th>Actual</th><th>Status</th></tr>
            </thead>
            <tbody>"""
                for d in differences:
                    b_class = "badge-warn" if d["status"] == "extra" else "badge-err"
                    body += f"""
                <tr>
                    <td class="table-name">{escape(d['key'])}</td>
                    <td>{escape(d['expected'])}</td>
                    <td>{escape(d['actual'])}</td>
                    <td><span class="badge {b_class}">{d['status']}</span></td>
                </tr>"""
                body += """
            </tbody>
        </table>
    </div>"""

        constraints = report["constraints"]
        if constraints:
            fks = "".join(
                f"<li><code>{fk[0]}.{fk[1]}</code> &rarr; <code>{fk[2]}.{fk[3]}</code></li>"
                for fk in constraints.get("foreign_keys", [])
            ) or "<li>No foreign keys detected</li>"
            indexes = "".join(
                f"<li><code>{idx[1]}</code> on <code>{idx[0]}</code></li>"
                for idx in constraints.get("indexes", [])
            ) or "<li>No indexes detected</li>"
            body += f"""
    <div class="card">
        <h3>Constraints &amp; Metadata</h3>
        <div style="display: grid; grid-template-columns: 1fr 1fr; gap: 40px;">
            <div><h4>Foreign Keys</h4><ul style="font-size: 0.875rem; color: #4a5568;">{fks}</ul></div>
            <div><h4>Indexes</h4><ul style="font-size: 0.875rem; color: #4a5568;">{indexes}</ul></div>
        </div>
    </div>
"""

    status_class = "status-pass" if all_passed else "status-fail"
    status_text = "PASSED" if all_passed else "ISSUES DETECTED"
    html = _page("Verification Report", "LMDB source vs. migrated SQLite", status_class, status_text, body)
    return _write(Path(output_file), html)
