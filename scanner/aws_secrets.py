# scanner/aws_secrets.py
"""
Qualys credential lookup in AWS Secrets Manager.

- The secret may be a JSON object carrying the token under one of several keys,
  or a bare string that is the token itself.
- Caller should handle ClientError if the secret is missing or not readable.
"""

import json
import logging
from dataclasses import dataclass
from typing import Optional

import boto3

from scanner.errors import ScannerConfigError

logger = logging.getLogger(__name__)

TOKEN_KEYS = ("accessToken", "QUALYS_ACCESS_TOKEN", "access_token")
POD_KEYS = ("pod", "QUALYS_POD")


@dataclass(frozen=True)
class QualysSecret:
    access_token: str
    pod: Optional[str] = None

    def __repr__(self) -> str:
        return f"QualysSecret(pod={self.pod!r}, access_token='***')"


def _first(data: dict, keys) -> Optional[str]:
    for k in keys:
        if data.get(k):
            return data[k]
    return None


def parse_secret_string(secret_string: str) -> QualysSecret:
    """
    Turn a SecretString into a QualysSecret.
    """
    try:
        data = json.loads(secret_string)
    except ValueError:
        return QualysSecret(access_token=secret_string)
    if not isinstance(data, dict):
        return QualysSecret(access_token=secret_string)

    token = _first(data, TOKEN_KEYS)
    if not token:
        raise ScannerConfigError(
            'Secret must contain "accessToken", "QUALYS_ACCESS_TOKEN", or "access_token" field'
        )
    return QualysSecret(access_token=token, pod=_first(data, POD_KEYS))


def get_qualys_secret(secret_arn: str, session=None) -> QualysSecret:
    """
    Fetch and decode the Qualys credential stored at secret_arn.
    """
    session = session or boto3.Session()
    logger.info("Fetching Qualys credentials from Secrets Manager: %s", secret_arn)
    client = session.client("secretsmanager")
    resp = client.get_secret_value(SecretId=secret_arn)
    secret_string = resp.get("SecretString")
    if not secret_string:
        raise ScannerConfigError("Secret value is empty")
    return parse_secret_string(secret_string)
