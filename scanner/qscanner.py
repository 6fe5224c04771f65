# scanner/qscanner.py
"""
High-level qscanner facade.

- ScannerContext owns the shared handles (HTTP session, fetcher, resolved binary path)
  and initializes the binary at most once.
- QScanner composes fetch -> argument build -> invoke -> report parse for repository and
  image scans. It never decides pass/fail; see scanner.gate for that.
"""

import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import requests

from config import DEFAULT_WORK_DIR
from models import (
    ScannerConfig,
    RepoScanRequest,
    ImageScanRequest,
    ScanOutcome,
    VulnerabilitySummary,
)
from scanner.errors import ScannerConfigError
from scanner.fetcher import BinaryFetcher
from scanner.runner import build_repo_args, build_image_args, run_qscanner
from scanner.sarif import parse_sarif_report

logger = logging.getLogger(__name__)


class ScannerContext:
    """
    Handles shared by all scans of one orchestration run.

    Construct once at startup and pass to every QScanner; the binary is fetched
    on first use and reused afterwards.
    """

    def __init__(self, work_dir=None, fetcher: Optional[BinaryFetcher] = None,
                 session: Optional[requests.Session] = None):
        self.work_dir = Path(work_dir or DEFAULT_WORK_DIR)
        self.session = session or requests.Session()
        self.fetcher = fetcher or BinaryFetcher(session=self.session)
        self._binary_path: Optional[Path] = None
        self._lock = threading.Lock()

    @property
    def binary_path(self) -> Optional[Path]:
        return self._binary_path

    def ensure_binary(self) -> Path:
        with self._lock:
            if self._binary_path is None:
                self._binary_path = self.fetcher.ensure_binary(self.work_dir)
            return self._binary_path


@dataclass(frozen=True)
class ScanResult:
    """Outcome of one scan plus its parsed report, if qscanner produced one."""
    outcome: ScanOutcome
    summary: VulnerabilitySummary
    report: Optional[Dict[str, Any]] = None


class QScanner:
    """
    Runs qscanner scans for one configuration.

    Usage:
        scanner = QScanner(ScannerConfig(access_token=token, pod="US1"))
        scanner.setup()
        result = scanner.scan_repo(RepoScanRequest(scan_path="."))
    """

    def __init__(self, config: ScannerConfig, context: Optional[ScannerContext] = None):
        self.config = config
        self.context = context or ScannerContext()
        self._access_token: Optional[str] = None

    @property
    def work_dir(self) -> Path:
        return self.context.work_dir

    @property
    def binary_path(self) -> Optional[Path]:
        return self.context.binary_path

    def setup(self) -> Path:
        """
        Make the verified binary available and validate the credential.
        """
        logger.info("Setting up qscanner in %s", self.work_dir)
        binary_path = self.context.ensure_binary()
        self.authenticate()
        return binary_path

    def authenticate(self) -> None:
        if not self.config.access_token:
            raise ScannerConfigError("Access token is required")
        self._access_token = self.config.access_token
        logger.info("Using provided access token for authentication")

    def _output_dir(self, requested: Optional[str]) -> str:
        return str(requested or (self.work_dir / "output"))

    def scan_repo(self, request: RepoScanRequest) -> ScanResult:
        output_dir = self._output_dir(request.options.output_dir)
        args = build_repo_args(self.config, request, output_dir)
        logger.info("Scanning repository %s", request.scan_path)
        return self._execute(args, output_dir)

    def scan_image(self, request: ImageScanRequest) -> ScanResult:
        output_dir = self._output_dir(request.options.output_dir)
        args = build_image_args(self.config, request, output_dir)
        logger.info("Scanning image %s", request.image_id)
        return self._execute(args, output_dir)

    def _execute(self, args, output_dir: str) -> ScanResult:
        if self.binary_path is None:
            raise ScannerConfigError("QScanner not set up. Call setup() first.")
        outcome = run_qscanner(self.binary_path, args, self._access_token, output_dir)

        summary = VulnerabilitySummary()
        report = None
        if outcome.report_file and os.path.exists(outcome.report_file):
            summary, report = parse_sarif_report(outcome.report_file)
        else:
            logger.info("No SARIF report found in %s", output_dir)
        return ScanResult(outcome=outcome, summary=summary, report=report)

    def cleanup(self) -> None:
        """Remove leftover .json/.sarif files from the working directory."""
        if not self.work_dir.is_dir():
            return
        for entry in self.work_dir.iterdir():
            if entry.is_file() and entry.suffix in (".json", ".sarif"):
                entry.unlink()
