# models.py
"""
Data models used by the scanner gate.

- Keep simple dataclasses; configuration and outcomes are frozen once built.
- Requests validate their enumerated options at construction time.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from config import VALID_PODS, DEFAULT_SCAN_MODE
from scanner.errors import ScannerConfigError

SCAN_MODES = ("inventory-only", "scan-only", "get-report", "evaluate-policy")
SCAN_TYPES = ("pkg", "secret", "malware", "fileinsight", "compliance")
OUTPUT_FORMATS = ("json", "table", "spdx", "cyclonedx", "sarif")
REPORT_FORMATS = ("table", "sarif", "json")
LOG_LEVELS = ("debug", "info", "warn", "error")
STORAGE_DRIVERS = ("none", "docker-overlay2", "containerd-overlayfs", "podman-overlay")


def _check_choices(name: str, values, allowed) -> None:
    bad = [v for v in values if v not in allowed]
    if bad:
        raise ScannerConfigError(
            f"Invalid {name}: {', '.join(bad)}. Valid values: {', '.join(allowed)}"
        )


class PolicyResult(str, Enum):
    """Verdict of qscanner's built-in policy evaluation."""

    ALLOW = "ALLOW"
    DENY = "DENY"
    AUDIT = "AUDIT"
    NONE = "NONE"


@dataclass(frozen=True)
class ScannerConfig:
    """
    Connection settings for qscanner.

    Fields:
    - access_token: Qualys access token (passed to the child via its environment)
    - pod: regional endpoint code, normalized to upper-case (e.g. "US1")
    - proxy: optional proxy URL forwarded as --proxy
    """
    access_token: str
    pod: str
    proxy: Optional[str] = None

    def __post_init__(self):
        pod = (self.pod or "").strip().upper()
        if pod not in VALID_PODS:
            raise ScannerConfigError(
                f"Invalid pod: {self.pod}. Valid pods: {', '.join(VALID_PODS)}"
            )
        object.__setattr__(self, "pod", pod)

    def __repr__(self) -> str:
        return f"ScannerConfig(pod={self.pod!r}, proxy={self.proxy!r}, access_token='***')"


@dataclass
class ScanOptions:
    """Options shared by repository and image scans."""
    mode: str = DEFAULT_SCAN_MODE
    scan_types: List[str] = field(default_factory=list)
    formats: List[str] = field(default_factory=list)
    report_formats: List[str] = field(default_factory=list)
    output_dir: Optional[str] = None
    policy_tags: List[str] = field(default_factory=list)
    timeout: Optional[int] = None
    log_level: Optional[str] = None

    def __post_init__(self):
        _check_choices("mode", [self.mode], SCAN_MODES)
        _check_choices("scan type", self.scan_types, SCAN_TYPES)
        _check_choices("format", self.formats, OUTPUT_FORMATS)
        _check_choices("report format", self.report_formats, REPORT_FORMATS)
        if self.log_level is not None:
            _check_choices("log level", [self.log_level], LOG_LEVELS)
        if self.timeout is not None and self.timeout <= 0:
            raise ScannerConfigError(f"Invalid timeout: {self.timeout}. Must be a positive number of seconds")


@dataclass
class RepoScanRequest:
    """Scan a filesystem tree (qscanner `repo` subcommand)."""
    scan_path: str
    exclude_dirs: List[str] = field(default_factory=list)
    exclude_files: List[str] = field(default_factory=list)
    offline_scan: bool = False
    show_perf_stat: bool = False
    options: ScanOptions = field(default_factory=ScanOptions)


@dataclass
class ImageScanRequest:
    """Scan a container image (qscanner `image` subcommand)."""
    image_id: str
    storage_driver: str = "none"
    platform: Optional[str] = None
    options: ScanOptions = field(default_factory=ScanOptions)

    def __post_init__(self):
        if not self.image_id:
            raise ScannerConfigError("image_id is required for an image scan")
        _check_choices("storage driver", [self.storage_driver], STORAGE_DRIVERS)


@dataclass(frozen=True)
class ScanOutcome:
    """
    Result of a single qscanner invocation.

    `success` and `policy_result` are derived from `exit_code`;
    `verdict` gives the same information as a tagged value.
    """
    exit_code: int
    success: bool
    policy_result: PolicyResult
    output_dir: str
    scan_result_file: Optional[str] = None
    report_file: Optional[str] = None
    stdout: str = ""
    stderr: str = ""

    @property
    def verdict(self):
        from scanner.exit_codes import interpret_exit_code
        return interpret_exit_code(self.exit_code)

    @property
    def is_tool_failure(self) -> bool:
        """True when qscanner itself failed, as opposed to a DENY/AUDIT policy outcome."""
        return self.verdict.is_tool_failure


@dataclass(frozen=True)
class Finding:
    """
    A single SARIF result, flattened for presentation.

    - severity: resolved numeric severity (1-5)
    - title: message text (truncated) or rule id
    - cves: associated CVE identifiers, may be empty
    """
    rule_id: str
    severity: int
    title: str
    package_name: str = "-"
    cves: Tuple[str, ...] = ()
    installed_version: Optional[str] = None
    fixed_version: Optional[str] = None


@dataclass
class VulnerabilitySummary:
    """Severity histogram; total always equals the sum of the buckets."""
    total: int = 0
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    informational: int = 0


@dataclass
class ThresholdConfig:
    """Maximum allowed counts per bucket; None means unchecked."""
    max_critical: Optional[int] = None
    max_high: Optional[int] = None
    max_medium: Optional[int] = None
    max_low: Optional[int] = None
    fail_on_policy_deny: bool = True

    def has_limits(self) -> bool:
        return any(
            v is not None
            for v in (self.max_critical, self.max_high, self.max_medium, self.max_low)
        )
