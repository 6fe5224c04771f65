# tests/test_fetcher.py
"""
Binary acquisition: platform gate, HTTPS-only redirects, digest pinning, idempotency.
"""

import gzip
import hashlib
import os

import pytest
import requests

from conftest import FakeResponse, FakeSession, redirect
from scanner.errors import IntegrityError, NetworkError, PlatformError
from scanner.fetcher import BinaryFetcher, check_platform, current_platform

URL = "https://downloads.example.com/qscanner.gz"
BINARY = b"#!/bin/sh\necho qscanner\n"
ARCHIVE = gzip.compress(BINARY)
ARCHIVE_SHA = hashlib.sha256(ARCHIVE).hexdigest()


def make_fetcher(routes, sha=ARCHIVE_SHA, **kwargs):
    session = FakeSession(routes)
    return BinaryFetcher(session=session, url=URL, expected_sha256=sha, **kwargs), session


def test_download_verify_extract(tmp_path, linux_amd64):
    fetcher, session = make_fetcher({URL: FakeResponse(body=ARCHIVE)})
    path = fetcher.ensure_binary(tmp_path)

    assert path == tmp_path / "qscanner"
    assert path.read_bytes() == BINARY
    assert os.access(path, os.X_OK)
    assert not (tmp_path / "qscanner.gz").exists()
    assert session.calls == [URL]


def test_digest_mismatch_discards_artifact(tmp_path, linux_amd64):
    fetcher, _ = make_fetcher({URL: FakeResponse(body=gzip.compress(b"tampered"))})
    with pytest.raises(IntegrityError, match="checksum mismatch"):
        fetcher.ensure_binary(tmp_path)
    assert not (tmp_path / "qscanner.gz").exists()
    assert not (tmp_path / "qscanner").exists()


def test_pinned_digest_rejects_unknown_content(tmp_path, linux_amd64):
    session = FakeSession({URL: FakeResponse(body=ARCHIVE)})
    fetcher = BinaryFetcher(session=session, url=URL)
    with pytest.raises(IntegrityError):
        fetcher.ensure_binary(tmp_path)
    assert list(tmp_path.iterdir()) == []


def test_corrupt_archive_with_matching_digest(tmp_path, linux_amd64):
    body = b"not gzip at all"
    fetcher, _ = make_fetcher({URL: FakeResponse(body=body)}, sha=hashlib.sha256(body).hexdigest())
    with pytest.raises(IntegrityError):
        fetcher.ensure_binary(tmp_path)
    assert list(tmp_path.iterdir()) == []


def test_follows_https_redirects(tmp_path, linux_amd64):
    hop1 = "https://objects.example.com/a"
    hop2 = "https://cdn.example.com/qscanner.gz"
    fetcher, session = make_fetcher({
        URL: redirect(hop1, 301),
        hop1: redirect(hop2, 307),
        hop2: FakeResponse(body=ARCHIVE),
    })
    fetcher.ensure_binary(tmp_path)
    assert session.calls == [URL, hop1, hop2]


def test_relative_redirect_is_resolved(tmp_path, linux_amd64):
    target = "https://downloads.example.com/v2/qscanner.gz"
    fetcher, session = make_fetcher({URL: redirect("/v2/qscanner.gz"), target: FakeResponse(body=ARCHIVE)})
    fetcher.ensure_binary(tmp_path)
    assert session.calls[-1] == target


def test_http_hop_anywhere_in_chain_fails(tmp_path, linux_amd64):
    hop1 = "https://objects.example.com/a"
    plain = "http://mirror.example.com/b"
    final = "https://cdn.example.com/qscanner.gz"
    fetcher, session = make_fetcher({
        URL: redirect(hop1),
        hop1: redirect(plain),
        plain: redirect(final),
        final: FakeResponse(body=ARCHIVE),
    })
    with pytest.raises(NetworkError, match="non-HTTPS"):
        fetcher.ensure_binary(tmp_path)
    assert plain not in session.calls
    assert list(tmp_path.iterdir()) == []


def test_non_https_url_rejected_before_request(tmp_path, linux_amd64):
    session = FakeSession()
    fetcher = BinaryFetcher(session=session, url="http://downloads.example.com/qscanner.gz")
    with pytest.raises(NetworkError, match="Only HTTPS"):
        fetcher.ensure_binary(tmp_path)
    assert session.calls == []


def test_redirect_limit(tmp_path, linux_amd64):
    routes = {}
    current = URL
    for i in range(4):
        nxt = f"https://hop{i}.example.com/x"
        routes[current] = redirect(nxt)
        current = nxt
    routes[current] = FakeResponse(body=ARCHIVE)
    fetcher, _ = make_fetcher(routes, max_redirects=3)
    with pytest.raises(NetworkError, match="Too many redirects"):
        fetcher.ensure_binary(tmp_path)


def test_http_error_status(tmp_path, linux_amd64):
    fetcher, _ = make_fetcher({URL: FakeResponse(status_code=404)})
    with pytest.raises(NetworkError, match="HTTP 404"):
        fetcher.ensure_binary(tmp_path)


def test_interrupted_download_removes_partial_file(tmp_path, linux_amd64):
    resp = FakeResponse(body=ARCHIVE * 50, fail_after_first_chunk=requests.ConnectionError("reset"))
    fetcher, _ = make_fetcher({URL: resp})
    with pytest.raises(NetworkError):
        fetcher.ensure_binary(tmp_path)
    assert not (tmp_path / "qscanner.gz").exists()
    assert resp.closed


def test_write_failure_removes_partial_file(tmp_path, linux_amd64):
    resp = FakeResponse(body=ARCHIVE * 50, fail_after_first_chunk=OSError(28, "No space left on device"))
    fetcher, _ = make_fetcher({URL: resp})
    with pytest.raises(NetworkError, match="No space left"):
        fetcher.ensure_binary(tmp_path)
    assert list(tmp_path.iterdir()) == []


def test_existing_binary_skips_network(tmp_path, linux_amd64):
    existing = tmp_path / "qscanner"
    existing.write_bytes(BINARY)
    fetcher, session = make_fetcher({})

    first = fetcher.ensure_binary(tmp_path)
    second = fetcher.ensure_binary(tmp_path)

    assert first == second == existing
    assert session.calls == []


@pytest.mark.parametrize("system,machine", [
    ("Darwin", "arm64"),
    ("Linux", "aarch64"),
    ("Windows", "AMD64"),
])
def test_unsupported_platform_fails_fast(tmp_path, monkeypatch, system, machine):
    monkeypatch.setattr("scanner.fetcher.platform.system", lambda: system)
    monkeypatch.setattr("scanner.fetcher.platform.machine", lambda: machine)
    fetcher, session = make_fetcher({URL: FakeResponse(body=ARCHIVE)})
    work_dir = tmp_path / "work"

    with pytest.raises(PlatformError, match="linux-amd64"):
        fetcher.ensure_binary(work_dir)
    assert session.calls == []
    assert not work_dir.exists()


def test_unknown_architecture(monkeypatch):
    monkeypatch.setattr("scanner.fetcher.platform.system", lambda: "Linux")
    monkeypatch.setattr("scanner.fetcher.platform.machine", lambda: "s390x")
    with pytest.raises(PlatformError, match="Unsupported architecture"):
        current_platform()
    with pytest.raises(PlatformError, match="linux-amd64"):
        check_platform()


def test_x86_64_is_amd64(monkeypatch):
    monkeypatch.setattr("scanner.fetcher.platform.system", lambda: "Linux")
    monkeypatch.setattr("scanner.fetcher.platform.machine", lambda: "x86_64")
    assert current_platform() == "linux-amd64"
    check_platform()
