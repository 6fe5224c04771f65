# tests/conftest.py
"""
Shared fixtures.

- fake_qscanner: a shell script standing in for the qscanner binary.
  It writes its argv and received token into the output directory, prints to
  stdout/stderr, copies $FAKE_SARIF into place and exits with $FAKE_EXIT_CODE.
- FakeSession / FakeResponse: minimal requests.Session replacement keyed by URL.
- write_sarif: writes a SARIF document to disk.
"""

import json
import stat

import pytest

FAKE_QSCANNER = """#!/bin/sh
out=""
prev=""
for a in "$@"; do
  if [ "$prev" = "--output-dir" ]; then out="$a"; fi
  prev="$a"
done
mkdir -p "$out"
echo "$@" > "$out/argv.txt"
printf '%s' "$QUALYS_ACCESS_TOKEN" > "$out/token.txt"
echo "qscanner: scanning"
echo "qscanner: warning on stderr" >&2
if [ -n "$FAKE_SARIF" ]; then cp "$FAKE_SARIF" "$out/target-Report.sarif.json"; fi
echo '{"status": "done"}' > "$out/target-ScanResult.json"
if [ "$FAKE_KILL" = "1" ]; then kill -9 $$; fi
exit ${FAKE_EXIT_CODE:-0}
"""


class FakeResponse:
    def __init__(self, status_code=200, body=b"", headers=None, fail_after_first_chunk=None):
        self.status_code = status_code
        self.body = body
        self.headers = headers or {}
        self.fail_after_first_chunk = fail_after_first_chunk
        self.closed = False

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self.body), chunk_size):
            yield self.body[i:i + chunk_size]
            if self.fail_after_first_chunk is not None:
                raise self.fail_after_first_chunk

    def close(self):
        self.closed = True


class FakeSession:
    def __init__(self, routes=None):
        self.routes = routes or {}
        self.calls = []

    def get(self, url, **kwargs):
        self.calls.append(url)
        assert kwargs.get("allow_redirects") is False
        route = self.routes[url]
        if isinstance(route, Exception):
            raise route
        return route


def redirect(location, status=302):
    return FakeResponse(status_code=status, headers={"Location": location})


@pytest.fixture
def linux_amd64(monkeypatch):
    monkeypatch.setattr("scanner.fetcher.current_platform", lambda: "linux-amd64")


@pytest.fixture
def fake_qscanner(tmp_path, linux_amd64, monkeypatch):
    """A work dir that already holds an executable fake qscanner."""
    work_dir = tmp_path / "work"
    work_dir.mkdir()
    binary = work_dir / "qscanner"
    binary.write_text(FAKE_QSCANNER)
    binary.chmod(binary.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    monkeypatch.delenv("FAKE_SARIF", raising=False)
    monkeypatch.delenv("FAKE_EXIT_CODE", raising=False)
    monkeypatch.delenv("FAKE_KILL", raising=False)
    return binary


def sarif_run(results, rules=None):
    return {
        "tool": {"driver": {"name": "qscanner", "version": "4.0", "rules": rules or []}},
        "results": results,
    }


def sarif_result(rule_id="QID-1", level=None, severity=None, message="finding", package=None, cves=None):
    result = {"ruleId": rule_id, "message": {"text": message}}
    if level is not None:
        result["level"] = level
    props = {}
    if severity is not None:
        props["severity"] = severity
    if package is not None:
        props["packageName"] = package
    if cves is not None:
        props["cves"] = cves
    if props:
        result["properties"] = props
    return result


@pytest.fixture
def write_sarif(tmp_path):
    def _write(runs, name="sample-Report.sarif.json"):
        path = tmp_path / name
        path.write_text(json.dumps({"version": "2.1.0", "runs": runs}), encoding="utf-8")
        return path
    return _write


@pytest.fixture
def aws_credentials(monkeypatch):
    """Mocked AWS credentials for moto."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
