# scanner/exit_codes.py
"""
qscanner exit codes and their policy interpretation.

- Only three codes carry policy meaning: 0 (ALLOW), 42 (DENY), 43 (AUDIT).
- Every other code is a tool failure at some scan stage.
- interpret_exit_code returns a tagged verdict so call sites never compare raw integers.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Union

from models import PolicyResult


class QScannerExitCode(IntEnum):
    SUCCESS = 0
    GENERIC_ERROR = 1
    INVALID_PARAMETER = 2
    LOGGER_INIT_FAILED = 3
    FILESYSTEM_ARTIFACT_FAILED = 5
    IMAGE_ARTIFACT_FAILED = 6
    IMAGE_ARCHIVE_ARTIFACT_FAILED = 7
    IMAGE_STORAGE_DRIVER_ARTIFACT_FAILED = 8
    CONTAINER_ARTIFACT_FAILED = 9
    OTHER_ARTIFACT_FAILED = 10
    METADATA_SCAN_FAILED = 11
    OS_SCAN_FAILED = 12
    SCA_SCAN_FAILED = 13
    SECRET_SCAN_FAILED = 14
    OS_NOT_FOUND = 15
    MALWARE_SCAN_FAILED = 16
    OS_NOT_SUPPORTED = 17
    FILE_INSIGHT_SCAN_FAILED = 18
    COMPLIANCE_SCAN_FAILED = 19
    MANIFEST_SCAN_FAILED = 20
    WINREGISTRY_SCAN_FAILED = 21
    JSON_RESULT_HANDLER_FAILED = 30
    CHANGELIST_CREATION_FAILED = 31
    CHANGELIST_COMPRESSION_FAILED = 32
    CHANGELIST_UPLOAD_FAILED = 33
    SPDX_HANDLER_FAILED = 34
    CDX_HANDLER_FAILED = 35
    SBOM_COMPRESSION_FAILED = 36
    SBOM_UPLOAD_FAILED = 37
    SECRET_RESULT_CREATION_FAILED = 38
    SECRET_RESULT_UPLOAD_FAILED = 39
    FAILED_TO_GET_VULN_REPORT = 40
    FAILED_TO_GET_POLICY_EVALUATION_RESULT = 41
    POLICY_EVALUATION_DENY = 42
    POLICY_EVALUATION_AUDIT = 43


# --- Tagged verdicts ---------------------------------------------------------

@dataclass(frozen=True)
class Success:
    exit_code: int = QScannerExitCode.SUCCESS
    policy_result: PolicyResult = PolicyResult.ALLOW
    success: bool = True
    is_policy_failure: bool = False
    is_tool_failure: bool = False


@dataclass(frozen=True)
class PolicyDeny:
    exit_code: int = QScannerExitCode.POLICY_EVALUATION_DENY
    policy_result: PolicyResult = PolicyResult.DENY
    success: bool = False
    is_policy_failure: bool = True
    is_tool_failure: bool = False


@dataclass(frozen=True)
class PolicyAudit:
    exit_code: int = QScannerExitCode.POLICY_EVALUATION_AUDIT
    policy_result: PolicyResult = PolicyResult.AUDIT
    success: bool = False
    is_policy_failure: bool = True
    is_tool_failure: bool = False


@dataclass(frozen=True)
class ToolFailure:
    """qscanner ran (or tried to) and failed; `exit_code` names the stage."""
    exit_code: int
    policy_result: PolicyResult = PolicyResult.NONE
    success: bool = False
    is_policy_failure: bool = False
    is_tool_failure: bool = True

    @property
    def description(self) -> str:
        return describe_exit_code(self.exit_code)


Verdict = Union[Success, PolicyDeny, PolicyAudit, ToolFailure]


def interpret_exit_code(exit_code: int) -> Verdict:
    """
    Map a terminal exit status onto one of the four verdicts.
    """
    if exit_code == QScannerExitCode.SUCCESS:
        return Success()
    if exit_code == QScannerExitCode.POLICY_EVALUATION_DENY:
        return PolicyDeny()
    if exit_code == QScannerExitCode.POLICY_EVALUATION_AUDIT:
        return PolicyAudit()
    return ToolFailure(exit_code=exit_code)


def describe_exit_code(exit_code: int) -> str:
    """Return the symbolic name for an exit code, e.g. 'SECRET_SCAN_FAILED'."""
    try:
        return QScannerExitCode(exit_code).name
    except ValueError:
        return f"UNKNOWN({exit_code})"
