# scanner/runner.py
"""
qscanner process invocation.

- Argument builders are pure functions: common flags first, then the target subcommand.
- run_qscanner spawns one child, tees stdout/stderr to the parent while buffering them,
  and turns the exit status into a ScanOutcome.
- The access token travels in the child's environment only.
"""

import logging
import os
import subprocess
import sys
import threading
from pathlib import Path
from typing import List, Optional, Tuple

from config import ACCESS_TOKEN_ENV_VAR, SCAN_RESULT_SUFFIX, REPORT_SUFFIX
from models import ScannerConfig, ScanOptions, RepoScanRequest, ImageScanRequest, ScanOutcome
from scanner.errors import ScannerConfigError, ProcessStartError
from scanner.exit_codes import QScannerExitCode, interpret_exit_code, describe_exit_code

logger = logging.getLogger(__name__)


# --- Argument construction ---------------------------------------------------

def build_common_args(config: ScannerConfig, options: ScanOptions, output_dir: Optional[str] = None) -> List[str]:
    """
    Flags that do not depend on the scan target, in a fixed order.
    """
    args = ["--pod", config.pod, "--mode", options.mode]
    if options.scan_types:
        args += ["--scan-types", ",".join(options.scan_types)]
    if options.formats:
        args += ["--format", ",".join(options.formats)]
    if options.report_formats:
        args += ["--report-format", ",".join(options.report_formats)]
    output_dir = output_dir or options.output_dir
    if output_dir:
        args += ["--output-dir", str(output_dir)]
    if options.policy_tags:
        args += ["--policy-tags", ",".join(options.policy_tags)]
    if options.timeout:
        args += ["--scan-timeout", f"{options.timeout}s"]
    if options.log_level:
        args += ["--log-level", options.log_level]
    if config.proxy:
        args += ["--proxy", config.proxy]
    return args


def build_repo_args(config: ScannerConfig, request: RepoScanRequest, output_dir: Optional[str] = None) -> List[str]:
    args = build_common_args(config, request.options, output_dir)
    args += ["repo", request.scan_path]
    if request.exclude_dirs:
        args += ["--exclude-dirs", ",".join(request.exclude_dirs)]
    if request.exclude_files:
        args += ["--exclude-files", ",".join(request.exclude_files)]
    if request.offline_scan:
        args.append("--offline-scan=true")
    if request.show_perf_stat:
        args.append("--show-perf-stat")
    return args


def build_image_args(config: ScannerConfig, request: ImageScanRequest, output_dir: Optional[str] = None) -> List[str]:
    args = build_common_args(config, request.options, output_dir)
    args += ["image", request.image_id]
    if request.storage_driver and request.storage_driver != "none":
        args += ["--storage-driver", request.storage_driver]
    if request.platform:
        args += ["--platform", request.platform]
    return args


# --- Output discovery --------------------------------------------------------

def discover_outputs(output_dir) -> Tuple[Optional[str], Optional[str]]:
    """
    Find the scan-result and SARIF report files among the immediate children of output_dir.

    Candidates are visited in sorted name order and the last match per suffix is kept,
    so the choice does not depend on filesystem iteration order.
    """
    scan_result_file = None
    report_file = None
    root = Path(output_dir)
    if not root.is_dir():
        return None, None

    for entry in sorted(root.iterdir(), key=lambda p: p.name):
        if not entry.is_file():
            continue
        if entry.name.endswith(SCAN_RESULT_SUFFIX):
            if scan_result_file:
                logger.warning("Multiple scan result files in %s; using %s", root, entry.name)
            scan_result_file = str(entry)
        elif entry.name.endswith(REPORT_SUFFIX):
            if report_file:
                logger.warning("Multiple SARIF reports in %s; using %s", root, entry.name)
            report_file = str(entry)
    return scan_result_file, report_file


def build_outcome(exit_code: int, output_dir, stdout: str, stderr: str) -> ScanOutcome:
    verdict = interpret_exit_code(exit_code)
    scan_result_file, report_file = discover_outputs(output_dir)
    return ScanOutcome(
        exit_code=exit_code,
        success=verdict.success,
        policy_result=verdict.policy_result,
        output_dir=str(output_dir),
        scan_result_file=scan_result_file,
        report_file=report_file,
        stdout=stdout,
        stderr=stderr,
    )


# --- Process execution -------------------------------------------------------

def _pump(stream, sink, buffer: List[str]) -> None:
    """Copy a child stream to the parent's stream line by line, keeping a copy."""
    for line in iter(stream.readline, ""):
        buffer.append(line)
        sink.write(line)
        sink.flush()
    stream.close()


def run_qscanner(binary_path, args: List[str], access_token: Optional[str], output_dir) -> ScanOutcome:
    """
    Execute qscanner once and wait for it, including end-of-file on both output streams.

    A non-zero exit is returned as data; failing to start the process raises ProcessStartError.
    """
    if not binary_path:
        raise ScannerConfigError("QScanner binary path not set. Call setup() first.")
    if not access_token:
        raise ScannerConfigError("Access token not available. Call setup() first.")

    Path(output_dir).mkdir(parents=True, exist_ok=True)

    cmd = [str(binary_path)] + list(args)
    env = dict(os.environ)
    env[ACCESS_TOKEN_ENV_VAR] = access_token

    logger.info("Executing: %s", " ".join(cmd))
    try:
        proc = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            env=env,
            text=True,
            errors="replace",
            bufsize=1,
        )
    except OSError as e:
        raise ProcessStartError(f"Failed to execute QScanner: {e}") from e

    stdout_buf: List[str] = []
    stderr_buf: List[str] = []
    readers = [
        threading.Thread(target=_pump, args=(proc.stdout, sys.stdout, stdout_buf), daemon=True),
        threading.Thread(target=_pump, args=(proc.stderr, sys.stderr, stderr_buf), daemon=True),
    ]
    for t in readers:
        t.start()

    returncode = proc.wait()
    for t in readers:
        t.join()

    # killed by a signal: no meaningful status
    exit_code = returncode if returncode is not None and returncode >= 0 else int(QScannerExitCode.GENERIC_ERROR)

    if exit_code == 0:
        logger.info("QScanner completed successfully")
    else:
        logger.warning("QScanner exited with code %d (%s)", exit_code, describe_exit_code(exit_code))

    return build_outcome(exit_code, output_dir, "".join(stdout_buf), "".join(stderr_buf))
