# main.py
"""
CLI entrypoint for the QScanner build gate.

- Two subcommands:
  * code: scan a source tree (defaults to $CODEBUILD_SRC_DIR)
  * container: scan a container image
- Every option falls back to an environment variable, then to config.py defaults,
  so the same command works unchanged inside a CodeBuild buildspec.
- Exits 0 when the gate passes, 1 otherwise.
"""

import argparse
import logging
import os
import sys

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from config import (
    DEFAULT_AWS_REGION,
    DEFAULT_FORMATS,
    DEFAULT_OUTPUT_DIR_NAME,
    DEFAULT_REPORT_FORMATS,
    DEFAULT_SCAN_MODE,
    DEFAULT_TOP_FINDINGS,
)
from models import ImageScanRequest, RepoScanRequest, ScannerConfig, ScanOptions, ThresholdConfig
from scanner.aws_s3 import upload_reports
from scanner.aws_secrets import QualysSecret, get_qualys_secret
from scanner.errors import ScannerConfigError, ScannerError
from scanner.gate import evaluate_gate
from scanner.qscanner import QScanner
from scanner.sarif import top_findings
from utils import (
    print_banner,
    print_final_status,
    print_policy_result,
    print_report_locations,
    print_summary_table,
    print_threshold_result,
    print_top_findings,
    save_report,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("qscanner_gate")


def _env_list(name: str):
    value = os.environ.get(name)
    if not value:
        return []
    return [s.strip() for s in value.split(",") if s.strip()]


def _env_int(name: str):
    value = os.environ.get(name)
    return int(value) if value else None


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return value.lower() == "true"


def _csv(value: str):
    return [s.strip() for s in value.split(",") if s.strip()]


def resolve_credentials(args, session) -> QualysSecret:
    """
    Token resolution: --access-token / QUALYS_ACCESS_TOKEN, then Secrets Manager.
    Pod resolution: --pod / QUALYS_POD, then the pod stored in the secret.
    """
    if args.access_token:
        secret = QualysSecret(access_token=args.access_token)
    elif args.secret_arn:
        secret = get_qualys_secret(args.secret_arn, session=session)
    else:
        raise ScannerConfigError(
            "Qualys access token is required. Set QUALYS_ACCESS_TOKEN or QUALYS_SECRET_ARN"
        )
    pod = args.pod or secret.pod
    if not pod:
        raise ScannerConfigError("QUALYS_POD environment variable or --pod is required")
    return QualysSecret(access_token=secret.access_token, pod=pod)


def build_options(args) -> ScanOptions:
    return ScanOptions(
        mode=args.mode,
        scan_types=args.scan_types,
        formats=list(DEFAULT_FORMATS),
        report_formats=list(DEFAULT_REPORT_FORMATS),
        output_dir=args.output_dir,
        policy_tags=args.policy_tags,
        timeout=args.timeout,
        log_level=args.log_level,
    )


def build_thresholds(args) -> ThresholdConfig:
    return ThresholdConfig(
        max_critical=args.max_critical,
        max_high=args.max_high,
        max_medium=args.max_medium,
        max_low=args.max_low,
        fail_on_policy_deny=not args.allow_policy_deny,
    )


def run_scan(args) -> int:
    """
    Run one scan end to end and return the process exit status.
    """
    target = args.scan_path if args.cmd == "code" else args.image_id
    print_banner(args.cmd, target)

    region = args.region or os.environ.get("AWS_REGION") or DEFAULT_AWS_REGION
    session = boto3.Session(region_name=region)

    credentials = resolve_credentials(args, session)
    config = ScannerConfig(
        access_token=credentials.access_token,
        pod=credentials.pod,
        proxy=args.proxy,
    )
    scanner = QScanner(config)
    scanner.setup()

    options = build_options(args)
    logger.info("Starting scan of %s", target)
    if args.cmd == "code":
        result = scanner.scan_repo(RepoScanRequest(
            scan_path=args.scan_path,
            exclude_dirs=args.exclude_dirs,
            exclude_files=args.exclude_files,
            offline_scan=args.offline_scan,
            show_perf_stat=args.show_perf_stat,
            options=options,
        ))
    else:
        result = scanner.scan_image(ImageScanRequest(
            image_id=args.image_id,
            storage_driver=args.storage_driver,
            platform=args.platform,
            options=options,
        ))

    outcome, summary = result.outcome, result.summary
    print_summary_table(summary)

    findings = []
    if result.report and summary.total > 0:
        findings = top_findings(result.report, args.top)
        print_top_findings(findings)

    print_policy_result(outcome.policy_result)

    thresholds = build_thresholds(args)
    gate = evaluate_gate(outcome, summary, thresholds)
    if gate.thresholds is not None:
        print_threshold_result(gate.thresholds)

    locations = []
    if args.report_bucket:
        for upload in upload_reports(session, outcome.output_dir, args.report_bucket, args.report_prefix):
            locations.append(("S3", upload.location))
    if outcome.report_file:
        locations.append(("SARIF", outcome.report_file))
    if outcome.scan_result_file:
        locations.append(("JSON", outcome.scan_result_file))

    gate_paths = save_report(
        summary,
        findings,
        target=target,
        policy_result=outcome.policy_result.value,
        passed=gate.passed,
        reasons=gate.reasons,
        out_dir=os.path.join(outcome.output_dir, "gate"),
    )
    locations.append(("Gate HTML", gate_paths["html"]))
    print_report_locations(locations)

    print_final_status(gate.passed, gate.reasons)
    return 0 if gate.passed else 1


def _add_common_arguments(p: argparse.ArgumentParser):
    p.add_argument("--pod", default=os.environ.get("QUALYS_POD"),
                   help="Qualys pod, e.g. US1 (env QUALYS_POD; falls back to the pod in the secret)")
    p.add_argument("--access-token", default=os.environ.get("QUALYS_ACCESS_TOKEN"),
                   help="Qualys access token (env QUALYS_ACCESS_TOKEN)")
    p.add_argument("--secret-arn", default=os.environ.get("QUALYS_SECRET_ARN"),
                   help="Secrets Manager ARN holding the token (env QUALYS_SECRET_ARN)")
    p.add_argument("--proxy", default=os.environ.get("QUALYS_PROXY"), help="Proxy URL passed to qscanner")
    p.add_argument("--mode", default=os.environ.get("SCAN_MODE") or DEFAULT_SCAN_MODE,
                   help=f"Scan mode (default: {DEFAULT_SCAN_MODE})")
    p.add_argument("--scan-types", type=_csv, default=_env_list("SCAN_TYPES"),
                   help="Comma-separated scan types: pkg,secret,malware,fileinsight,compliance")
    p.add_argument("--policy-tags", type=_csv, default=_env_list("POLICY_TAGS"), help="Comma-separated policy tags")
    p.add_argument("--timeout", type=int, default=_env_int("SCAN_TIMEOUT"), help="Scan timeout in seconds")
    p.add_argument("--log-level", default=os.environ.get("LOG_LEVEL"), help="qscanner log level")
    p.add_argument("--output-dir",
                   default=os.environ.get("OUTPUT_DIR") or os.path.join(os.getcwd(), DEFAULT_OUTPUT_DIR_NAME),
                   help="Directory for qscanner output")
    p.add_argument("--report-bucket", default=os.environ.get("REPORT_BUCKET"), help="S3 bucket for result upload")
    p.add_argument("--report-prefix", default=os.environ.get("REPORT_PREFIX"), help="S3 key prefix for uploads")
    p.add_argument("--region", help="AWS region (optional)")
    p.add_argument("--max-critical", type=int, default=_env_int("MAX_CRITICAL"))
    p.add_argument("--max-high", type=int, default=_env_int("MAX_HIGH"))
    p.add_argument("--max-medium", type=int, default=_env_int("MAX_MEDIUM"))
    p.add_argument("--max-low", type=int, default=_env_int("MAX_LOW"))
    p.add_argument("--allow-policy-deny", action="store_true",
                   default=not _env_flag("FAIL_ON_POLICY_DENY", default=True),
                   help="Do not fail the build when policy evaluation returns DENY")
    p.add_argument("--top", type=int, default=DEFAULT_TOP_FINDINGS, help="Number of top findings to print")


def parse_args(argv=None):
    p = argparse.ArgumentParser(
        description="Qualys QScanner build gate for CI pipelines."
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    code = sub.add_parser("code", help="Scan a source tree")
    _add_common_arguments(code)
    code.add_argument("--scan-path",
                      default=os.environ.get("SCAN_PATH") or os.environ.get("CODEBUILD_SRC_DIR") or ".",
                      help="Directory to scan (env SCAN_PATH / CODEBUILD_SRC_DIR)")
    code.add_argument("--exclude-dirs", type=_csv, default=_env_list("EXCLUDE_DIRS"))
    code.add_argument("--exclude-files", type=_csv, default=_env_list("EXCLUDE_FILES"))
    code.add_argument("--offline-scan", action="store_true", default=_env_flag("OFFLINE_SCAN"))
    code.add_argument("--show-perf-stat", action="store_true")

    container = sub.add_parser("container", help="Scan a container image")
    _add_common_arguments(container)
    container.add_argument("--image-id", default=os.environ.get("IMAGE_ID") or os.environ.get("QUALYS_IMAGE_ID"),
                           help="Image to scan (env IMAGE_ID)")
    container.add_argument("--storage-driver", default=os.environ.get("STORAGE_DRIVER") or "none")
    container.add_argument("--platform", default=os.environ.get("PLATFORM"))

    return p.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    if args.cmd == "container" and not args.image_id:
        logger.error("IMAGE_ID environment variable or --image-id is required")
        return 1
    try:
        return run_scan(args)
    except (ScannerError, ClientError, BotoCoreError) as e:
        logger.error("Fatal error: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
