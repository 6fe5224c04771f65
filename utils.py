# utils.py
"""
Utility helpers: gate report generation and console output.

- Uses Rich for colored banners and tables in the build log.
- Saves a JSON, CSV, and HTML gate summary next to qscanner's own output.
"""

import csv
import json
import os
from dataclasses import asdict
from datetime import datetime, timezone
from html import escape
from typing import Dict, List, Optional, Tuple

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from models import Finding, PolicyResult, VulnerabilitySummary
from scanner.gate import ThresholdResult
from scanner.sarif import severity_label

console = Console()

SEVERITY_STYLES = {5: "bold red", 4: "magenta", 3: "yellow", 2: "cyan"}


def ensure_reports_dir(path: str = "reports") -> str:
    os.makedirs(path, exist_ok=True)
    return path


def findings_to_table_rows(findings: List[Finding]) -> List[List[str]]:
    rows: List[List[str]] = []
    for f in findings:
        rows.append([
            severity_label(f.severity),
            f.package_name,
            f.cves[0] if f.cves else "-",
            f.title,
        ])
    return rows


def save_report(summary: VulnerabilitySummary, findings: List[Finding], target: str,
                policy_result: str, passed: bool, reasons: Optional[List[str]] = None,
                out_dir: str = "reports") -> Dict[str, str]:
    """
    Save JSON, CSV, and HTML gate summaries and return their paths.
    """
    out_dir = ensure_reports_dir(out_dir)
    now = datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")
    report = {
        "scan_time": now,
        "target": target,
        "result": "PASSED" if passed else "FAILED",
        "policy_result": policy_result,
        "reasons": reasons or [],
        "summary": asdict(summary),
        "findings": [asdict(f) for f in findings],
    }

    base_ts = now.replace(":", "-")
    json_path = os.path.join(out_dir, f"gate-{base_ts}.json")
    csv_path = os.path.join(out_dir, f"gate-{base_ts}.csv")
    html_path = os.path.join(out_dir, f"gate-{base_ts}.html")

    # JSON
    with open(json_path, "w", encoding="utf-8") as fh:
        json.dump(report, fh, indent=2)

    # CSV
    fieldnames = ["severity", "rule_id", "package_name", "cves", "title"]
    with open(csv_path, "w", encoding="utf-8", newline="") as fh:
        writer = csv.DictWriter(fh, fieldnames=fieldnames)
        writer.writeheader()
        for f in findings:
            writer.writerow({
                "severity": f.severity,
                "rule_id": f.rule_id,
                "package_name": f.package_name,
                "cves": ";".join(f.cves),
                "title": f.title,
            })

    # HTML
    html_rows: List[str] = []
    html_rows.append("<!doctype html>")
    html_rows.append("<html><head><meta charset='utf-8'><title>QScanner Gate Report</title>")
    html_rows.append("<style>body{font-family:Arial,Helvetica,sans-serif;margin:20px}table{border-collapse:collapse;width:100%}th,td{border:1px solid #ddd;padding:8px}th{background:#f2f2f2;text-align:left}tr:nth-child(even){background:#fafafa}</style>")
    html_rows.append("</head><body>")
    html_rows.append(f"<h2>QScanner Gate Report - {now} - result: {report['result']}</h2>")
    html_rows.append(f"<p>Target: {escape(target)}</p>")
    html_rows.append(f"<p>Policy result: {escape(policy_result)}</p>")
    html_rows.append(f"<p>Total findings: {summary.total}</p>")
    if reasons:
        html_rows.append("<div><strong>Failure reasons:</strong><ul>")
        for r in reasons:
            html_rows.append(f"<li>{escape(r)}</li>")
        html_rows.append("</ul></div>")
    html_rows.append("<table><thead><tr><th>Severity</th><th>Package</th><th>CVE</th><th>Title</th></tr></thead><tbody>")
    for row in findings_to_table_rows(findings):
        html_rows.append("<tr>" + "".join(f"<td>{escape(str(c))}</td>" for c in row) + "</tr>")
    html_rows.append("</tbody></table></body></html>")
    with open(html_path, "w", encoding="utf-8") as fh:
        fh.write("\n".join(html_rows))

    return {"json": json_path, "csv": csv_path, "html": html_path}

# --- Console printing with color/wrapping ---

def _severity_text(severity) -> Text:
    return Text(severity_label(severity), style=SEVERITY_STYLES.get(severity, "white"))


def print_banner(scan_type: str, target: str):
    body = Text()
    body.append("QUALYS QSCANNER FOR AWS CODEBUILD\n", style="bold")
    body.append(f"Scan Type: {scan_type.upper()}\n")
    body.append(f"Target: {target[:55]}")
    console.print(Panel(body, border_style="cyan", width=72))


def print_summary_table(summary: VulnerabilitySummary):
    table = Table(title="VULNERABILITY SUMMARY", show_header=True, header_style="bold cyan")
    table.add_column("Severity")
    table.add_column("Count", justify="right")
    table.add_column("", overflow="crop")
    rows = [
        ("Critical", summary.critical, "red"),
        ("High", summary.high, "magenta"),
        ("Medium", summary.medium, "yellow"),
        ("Low", summary.low, "cyan"),
        ("Informational", summary.informational, "white"),
    ]
    for label, value, style in rows:
        bar = "█" * min(value, 20)
        table.add_row(label, Text(str(value), style=style), Text(bar, style=style))
    table.add_section()
    table.add_row("TOTAL", Text(str(summary.total), style="bold"), "")
    console.print(table)


def print_top_findings(findings: List[Finding]):
    """
    Print a compact table of the highest-severity findings.
    """
    if not findings:
        return
    table = Table(title="TOP VULNERABILITIES", show_header=True, header_style="bold cyan")
    table.add_column("Sev", width=10)
    table.add_column("Package", style="cyan", overflow="fold", max_width=25)
    table.add_column("CVE", max_width=20)
    table.add_column("Title", overflow="fold")
    for f in findings:
        table.add_row(_severity_text(f.severity), f.package_name, f.cves[0] if f.cves else "-", f.title)
    console.print(table)


def print_threshold_result(result: ThresholdResult):
    console.print(Text("THRESHOLD EVALUATION", style="bold"))
    for c in result.checks:
        status = Text("✓ PASS", style="green") if c.passed else Text("✗ FAIL", style="red")
        console.print(Text(f"  {c.name:<12} {c.actual}/{c.maximum} ").append(status))


def print_policy_result(result: PolicyResult):
    if result == PolicyResult.ALLOW:
        console.print("  ✓ POLICY RESULT: ALLOW", style="green")
    elif result == PolicyResult.DENY:
        console.print("  ✗ POLICY RESULT: DENY", style="red")
    elif result == PolicyResult.AUDIT:
        console.print("  ⚠ POLICY RESULT: AUDIT", style="yellow")
    else:
        console.print("  - POLICY RESULT: N/A")


def print_report_locations(locations: List[Tuple[str, str]]):
    if not locations:
        return
    console.print(Text("REPORT LOCATIONS", style="bold"))
    for kind, path in locations:
        console.print(f"  {kind:<15} {path}", soft_wrap=True)


def print_final_status(passed: bool, reasons: Optional[List[str]] = None):
    if passed:
        console.print(Panel(Text("✓ SCAN PASSED", style="bold"), border_style="green", width=52))
        return
    body = Text("✗ SCAN FAILED", style="bold")
    for r in reasons or []:
        body.append(f"\n  • {r}")
    console.print(Panel(body, border_style="red", width=52))
