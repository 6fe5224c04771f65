# scanner/gate.py
"""
Build-gate evaluation on top of a finished scan.

- Thresholds cap the number of findings per severity bucket.
- A DENY policy result fails the gate unless waived; AUDIT never does.
- Tool failures (any exit code other than 0/42/43) always fail the gate,
  with a message distinct from policy failures.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from models import ScanOutcome, ThresholdConfig, VulnerabilitySummary, PolicyResult

POLICY_DENY_REASON = "Policy evaluation returned DENY"


@dataclass
class ThresholdCheck:
    name: str
    actual: int
    maximum: int

    @property
    def passed(self) -> bool:
        return self.actual <= self.maximum


@dataclass
class ThresholdResult:
    passed: bool
    reasons: List[str] = field(default_factory=list)
    checks: List[ThresholdCheck] = field(default_factory=list)


@dataclass
class GateResult:
    passed: bool
    reasons: List[str] = field(default_factory=list)
    thresholds: Optional[ThresholdResult] = None


def _limits(summary: VulnerabilitySummary, thresholds: ThresholdConfig) -> List[Tuple[str, int, Optional[int]]]:
    return [
        ("Critical", summary.critical, thresholds.max_critical),
        ("High", summary.high, thresholds.max_high),
        ("Medium", summary.medium, thresholds.max_medium),
        ("Low", summary.low, thresholds.max_low),
    ]


def evaluate_thresholds(summary: VulnerabilitySummary, thresholds: ThresholdConfig) -> ThresholdResult:
    checks = [
        ThresholdCheck(name=name, actual=actual, maximum=maximum)
        for name, actual, maximum in _limits(summary, thresholds)
        if maximum is not None
    ]
    reasons = [
        f"{c.name} ({c.actual}) exceeds threshold ({c.maximum})"
        for c in checks if not c.passed
    ]
    return ThresholdResult(passed=not reasons, reasons=reasons, checks=checks)


def evaluate_gate(outcome: ScanOutcome, summary: VulnerabilitySummary,
                  thresholds: Optional[ThresholdConfig] = None) -> GateResult:
    """
    Combine tool status, policy verdict and thresholds into a single pass/fail.
    """
    thresholds = thresholds or ThresholdConfig()
    reasons: List[str] = []

    threshold_result = None
    if thresholds.has_limits():
        threshold_result = evaluate_thresholds(summary, thresholds)
        reasons.extend(threshold_result.reasons)

    if outcome.policy_result == PolicyResult.DENY and thresholds.fail_on_policy_deny:
        reasons.append(POLICY_DENY_REASON)

    if outcome.is_tool_failure:
        reasons.append(f"Scanner error (exit code: {outcome.exit_code})")

    return GateResult(passed=not reasons, reasons=reasons, thresholds=threshold_result)
