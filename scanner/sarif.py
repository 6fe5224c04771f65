# scanner/sarif.py
"""
SARIF report parsing and severity aggregation.

- Severity of a result is resolved by an ordered list of resolvers; the first
  one that yields a value wins:
  * explicit result.properties.severity
  * default severity of the result's rule, declared in the same run
  * coarse mapping of result.level (error=5, warning=3, note=2, other=1)
- Numeric severities bucket as 5 critical, 4 high, 3 medium, 2 low, anything else informational.
- Rule metadata never leaks between runs.
- Non-numeric severities are ignored; a container of the wrong JSON type
  (runs, tool, driver, rules, results, message) is a ReportParseError.
"""

import json
import logging
import os
from json import JSONDecodeError
from typing import Any, Callable, Dict, List, Optional, Tuple

from models import Finding, VulnerabilitySummary
from scanner.errors import ReportNotFoundError, ReportParseError

logger = logging.getLogger(__name__)

LEVEL_SEVERITY = {"error": 5, "warning": 3, "note": 2}
INDETERMINATE_SEVERITY = 1
SEVERITY_LABELS = {5: "CRITICAL", 4: "HIGH", 3: "MEDIUM", 2: "LOW"}
TITLE_MAX_LEN = 50

RuleMap = Dict[str, Any]
Resolver = Callable[[Dict[str, Any], RuleMap], Optional[int]]


# --- Severity resolution -----------------------------------------------------

def _properties(obj: Dict[str, Any]) -> Dict[str, Any]:
    props = obj.get("properties")
    return props if isinstance(props, dict) else {}


def _numeric(value) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def _as_list(value, what: str) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ReportParseError(f"SARIF {what} must be an array, got {type(value).__name__}")
    return value


def _as_dict(value, what: str) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ReportParseError(f"SARIF {what} must be an object, got {type(value).__name__}")
    return value


def severity_from_properties(result: Dict[str, Any], rule_map: RuleMap) -> Optional[int]:
    return _numeric(_properties(result).get("severity"))


def severity_from_rule(result: Dict[str, Any], rule_map: RuleMap) -> Optional[int]:
    rule_id = result.get("ruleId")
    if not isinstance(rule_id, str):
        return None
    return rule_map.get(rule_id)


def severity_from_level(result: Dict[str, Any], rule_map: RuleMap) -> Optional[int]:
    level = result.get("level")
    if not level:
        return None
    if not isinstance(level, str):
        return INDETERMINATE_SEVERITY
    return LEVEL_SEVERITY.get(level, INDETERMINATE_SEVERITY)


SEVERITY_RESOLVERS: Tuple[Resolver, ...] = (
    severity_from_properties,
    severity_from_rule,
    severity_from_level,
)


def resolve_severity(result: Dict[str, Any], rule_map: RuleMap, resolvers=SEVERITY_RESOLVERS):
    for resolver in resolvers:
        severity = resolver(result, rule_map)
        if severity is not None:
            return severity
    return INDETERMINATE_SEVERITY


def build_rule_map(run: Dict[str, Any]) -> RuleMap:
    """
    Map rule id -> declared default severity for one run.

    Raises ReportParseError when tool, driver or rules have the wrong JSON type.
    """
    rule_map: RuleMap = {}
    tool = _as_dict(run.get("tool"), "run.tool")
    driver = _as_dict(tool.get("driver"), "tool.driver")
    for rule in _as_list(driver.get("rules"), "driver.rules"):
        rule = _as_dict(rule, "rule")
        severity = _numeric(_properties(rule).get("severity"))
        rule_id = rule.get("id")
        if isinstance(rule_id, str) and rule_id and severity is not None:
            rule_map[rule_id] = severity
    return rule_map


def severity_bucket(severity) -> str:
    if severity == 5:
        return "critical"
    if severity == 4:
        return "high"
    if severity == 3:
        return "medium"
    if severity == 2:
        return "low"
    return "informational"


def severity_label(severity) -> str:
    return SEVERITY_LABELS.get(severity, "INFO")


# --- Report walking ----------------------------------------------------------

def iter_results(report: Dict[str, Any]):
    """
    Yield (result, severity) for every result of every run, in report order.
    """
    for run in _as_list(report.get("runs"), "runs"):
        run = _as_dict(run, "run")
        rule_map = build_rule_map(run)
        for result in _as_list(run.get("results"), "run.results"):
            result = _as_dict(result, "result")
            yield result, resolve_severity(result, rule_map)


def summarize(report: Dict[str, Any]) -> VulnerabilitySummary:
    summary = VulnerabilitySummary()
    for _, severity in iter_results(report):
        summary.total += 1
        bucket = severity_bucket(severity)
        setattr(summary, bucket, getattr(summary, bucket) + 1)
    return summary


def load_report(report_path: str) -> Dict[str, Any]:
    if not os.path.exists(report_path):
        raise ReportNotFoundError(f"SARIF report not found at {report_path}")
    try:
        with open(report_path, "r", encoding="utf-8-sig") as fh:
            report = json.load(fh)
    except JSONDecodeError as e:
        raise ReportParseError(
            f"Invalid JSON in {report_path}: {e.msg} (line {e.lineno} column {e.colno})"
        ) from e
    except UnicodeDecodeError as e:
        raise ReportParseError(f"SARIF report {report_path} is not valid UTF-8: {e}") from e
    if not isinstance(report, dict):
        raise ReportParseError(f"SARIF report {report_path} is not a JSON object")
    return report


def parse_sarif_report(report_path: str) -> Tuple[VulnerabilitySummary, Dict[str, Any]]:
    """
    Load a SARIF report and return (summary, report).

    Raises ReportNotFoundError if the file is missing and ReportParseError if it is malformed.
    """
    report = load_report(report_path)
    summary = summarize(report)
    logger.info(
        "SARIF parsed: %d total (%d critical, %d high, %d medium, %d low, %d informational)",
        summary.total, summary.critical, summary.high, summary.medium, summary.low, summary.informational,
    )
    return summary, report


# --- Presentation ------------------------------------------------------------

def to_finding(result: Dict[str, Any], severity) -> Finding:
    props = _properties(result)
    message = _as_dict(result.get("message"), "result.message").get("text")
    if message is not None and not isinstance(message, str):
        raise ReportParseError(f"SARIF message.text must be a string, got {type(message).__name__}")
    rule_id = result.get("ruleId") if isinstance(result.get("ruleId"), str) else None
    title = message[:TITLE_MAX_LEN] if message else (rule_id or "Unknown")
    cves = props.get("cves")
    return Finding(
        rule_id=rule_id or "unknown",
        severity=severity,
        title=title,
        package_name=props.get("packageName") or "-",
        cves=tuple(cves) if isinstance(cves, list) else (),
        installed_version=props.get("installedVersion"),
        fixed_version=props.get("fixedVersion"),
    )


def extract_findings(report: Dict[str, Any]) -> List[Finding]:
    return [to_finding(result, severity) for result, severity in iter_results(report)]


def _sort_key(finding: Finding):
    sev = finding.severity
    return sev if isinstance(sev, (int, float)) and not isinstance(sev, bool) else INDETERMINATE_SEVERITY


def top_findings(report: Dict[str, Any], limit: int = 10) -> List[Finding]:
    """
    Highest-severity findings across all runs; ties keep report order.
    """
    findings = extract_findings(report)
    findings.sort(key=_sort_key, reverse=True)
    return findings[:limit]
