# scanner/aws_s3.py
"""
Upload of qscanner result files to S3.

- Only immediate .json / .sarif files of the output directory are uploaded.
- Keys default to <project>/<build id>/<timestamp>/<file name>, taken from the CodeBuild environment.
- Caller should handle ClientError if credentials/permissions are missing.
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

logger = logging.getLogger(__name__)

UPLOAD_EXTENSIONS = (".json", ".sarif")


@dataclass(frozen=True)
class UploadResult:
    bucket: str
    key: str
    location: str


def content_type_for(file_name: str) -> str:
    if file_name.endswith(".json"):
        return "application/json"
    if file_name.endswith(".sarif"):
        return "application/sarif+json"
    return "application/octet-stream"


def default_key_prefix() -> str:
    build_id = os.environ.get("CODEBUILD_BUILD_ID") or "local"
    project = os.environ.get("CODEBUILD_BUILD_PROJECT") or "unknown"
    ts = datetime.now(timezone.utc).isoformat().replace(":", "-").replace(".", "-")
    return f"{project}/{build_id}/{ts}"


# --- Live AWS helpers -----------------------------------------------------

def upload_file(session, file_path: str, bucket: str, key_prefix: str = "") -> UploadResult:
    """
    Upload a single file and return where it landed.
    """
    s3 = session.client("s3")
    file_name = os.path.basename(file_path)
    key = f"{key_prefix}/{file_name}" if key_prefix else file_name
    logger.info("Uploading %s to s3://%s/%s", file_name, bucket, key)
    with open(file_path, "rb") as fh:
        s3.put_object(Bucket=bucket, Key=key, Body=fh.read(), ContentType=content_type_for(file_name))
    return UploadResult(bucket=bucket, key=key, location=f"s3://{bucket}/{key}")


def upload_directory(session, dir_path: str, bucket: str, key_prefix: str = "") -> List[UploadResult]:
    results: List[UploadResult] = []
    if not os.path.isdir(dir_path):
        logger.info("Directory does not exist: %s", dir_path)
        return results
    for name in sorted(os.listdir(dir_path)):
        path = os.path.join(dir_path, name)
        if os.path.isfile(path) and name.endswith(UPLOAD_EXTENSIONS):
            results.append(upload_file(session, path, bucket, key_prefix))
    return results


def upload_reports(session, output_dir: str, bucket: str, prefix: Optional[str] = None) -> List[UploadResult]:
    """
    Upload all result files of a scan; returns one UploadResult per file.
    """
    return upload_directory(session, output_dir, bucket, prefix or default_key_prefix())
