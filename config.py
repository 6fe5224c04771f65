"""
Central configuration and tunable constants.

- Defaults can be overridden by CLI args or environment variables (see main.py).
- The binary URL and its digest are pinned together; bump both on upgrade.
"""

import os
import tempfile

# QScanner binary (gzip), pinned by SHA-256 of the compressed artifact
QSCANNER_BINARY_URL = "https://github.com/nelssec/qualys-lambda/raw/main/scanner-lambda/qscanner.gz"
QSCANNER_SHA256 = "1a31b854154ee4594bb94e28aa86460b14a75687085d097f949e91c5fd00413d"
QSCANNER_BINARY_NAME = "qscanner"

# The binary is only published for this platform
SUPPORTED_PLATFORM = ("linux", "amd64")

# Redirect hops followed before a download is abandoned
MAX_REDIRECTS = 5
DOWNLOAD_TIMEOUT_SECONDS = 60
DOWNLOAD_CHUNK_SIZE = 64 * 1024

VALID_PODS = (
    "US1", "US2", "US3", "US4",
    "EU1", "EU2",
    "CA1", "IN1", "AU1", "UK1", "AE1", "KSA1",
)

# The token reaches the child through its environment, never argv
ACCESS_TOKEN_ENV_VAR = "QUALYS_ACCESS_TOKEN"

# Output discovery: qscanner names files <target>-ScanResult.json / <target>-Report.sarif.json
SCAN_RESULT_SUFFIX = "-ScanResult.json"
REPORT_SUFFIX = "-Report.sarif.json"

DEFAULT_WORK_DIR = os.path.join(tempfile.gettempdir(), "qscanner-codebuild")
DEFAULT_OUTPUT_DIR_NAME = "qualys-reports"
DEFAULT_SCAN_MODE = "get-report"
DEFAULT_FORMATS = ["json", "sarif"]
DEFAULT_REPORT_FORMATS = ["sarif", "json"]
DEFAULT_TOP_FINDINGS = 10

# AWS: credentials come from the build environment; only a region is needed
DEFAULT_AWS_REGION = "us-east-1"
