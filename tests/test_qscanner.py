# tests/test_qscanner.py
"""
End-to-end facade tests: shared context, setup, repo/image scans with a fake binary.
"""

import pytest

from conftest import sarif_result, sarif_run
from models import ImageScanRequest, PolicyResult, RepoScanRequest, ScannerConfig, ScanOptions
from scanner.errors import ScannerConfigError
from scanner.qscanner import QScanner, ScannerContext


class CountingFetcher:
    def __init__(self, binary):
        self.binary = binary
        self.calls = 0

    def ensure_binary(self, work_dir):
        self.calls += 1
        return self.binary


@pytest.fixture
def context(fake_qscanner):
    return ScannerContext(work_dir=fake_qscanner.parent, fetcher=CountingFetcher(fake_qscanner))


def test_context_fetches_once(context, fake_qscanner):
    cfg = ScannerConfig(access_token="tok", pod="US1")
    QScanner(cfg, context).setup()
    QScanner(cfg, context).setup()
    assert context.fetcher.calls == 1
    assert context.binary_path == fake_qscanner


def test_context_uses_real_fetcher_for_existing_binary(fake_qscanner):
    context = ScannerContext(work_dir=fake_qscanner.parent)
    assert context.ensure_binary() == fake_qscanner


def test_setup_requires_token(context):
    scanner = QScanner(ScannerConfig(access_token="", pod="US1"), context)
    with pytest.raises(ScannerConfigError, match="Access token is required"):
        scanner.setup()


def test_scan_before_setup(context):
    scanner = QScanner(ScannerConfig(access_token="tok", pod="US1"), context)
    with pytest.raises(ScannerConfigError, match="setup"):
        scanner.scan_repo(RepoScanRequest(scan_path="."))


def test_repo_scan_with_report(context, tmp_path, monkeypatch, write_sarif):
    sarif = write_sarif([sarif_run([
        sarif_result("QID-1", severity=5, package="openssl"),
        sarif_result("QID-2", level="warning"),
    ])])
    monkeypatch.setenv("FAKE_SARIF", str(sarif))
    monkeypatch.setenv("FAKE_EXIT_CODE", "42")

    scanner = QScanner(ScannerConfig(access_token="tok", pod="US1"), context)
    scanner.setup()
    out = tmp_path / "reports"
    result = scanner.scan_repo(RepoScanRequest(scan_path=str(tmp_path), options=ScanOptions(output_dir=str(out))))

    assert result.outcome.policy_result == PolicyResult.DENY
    assert result.outcome.report_file == str(out / "target-Report.sarif.json")
    assert result.summary.total == 2
    assert result.summary.critical == 1
    assert result.summary.medium == 1
    assert result.report["runs"][0]["results"][0]["ruleId"] == "QID-1"


def test_image_scan_without_report(context, fake_qscanner):
    scanner = QScanner(ScannerConfig(access_token="tok", pod="EU1"), context)
    scanner.setup()
    result = scanner.scan_image(ImageScanRequest(image_id="nginx:1.25"))

    default_out = fake_qscanner.parent / "output"
    assert result.outcome.output_dir == str(default_out)
    assert result.outcome.success
    assert result.report is None
    assert result.summary.total == 0
    argv = (default_out / "argv.txt").read_text()
    assert "image nginx:1.25" in argv


def test_cleanup_removes_result_files(context, fake_qscanner):
    work = fake_qscanner.parent
    (work / "leftover.json").write_text("{}")
    (work / "leftover.sarif").write_text("{}")
    (work / "keep.txt").write_text("x")

    QScanner(ScannerConfig(access_token="tok", pod="US1"), context).cleanup()

    assert sorted(p.name for p in work.iterdir()) == ["keep.txt", "qscanner"]
