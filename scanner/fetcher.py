# scanner/fetcher.py
"""
Integrity-verified acquisition of the qscanner binary.

- Refuses to run on anything but linux-amd64.
- Downloads over HTTPS only; every redirect hop is re-checked and the chain is bounded.
- Verifies the SHA-256 of the compressed artifact before extraction.
- Leaves either a verified executable or nothing behind.
"""

import gzip
import hashlib
import hmac
import logging
import os
import platform
import shutil
import zlib
from pathlib import Path
from typing import Optional
from urllib.parse import urljoin, urlparse

import requests

from config import (
    QSCANNER_BINARY_URL,
    QSCANNER_SHA256,
    QSCANNER_BINARY_NAME,
    SUPPORTED_PLATFORM,
    MAX_REDIRECTS,
    DOWNLOAD_TIMEOUT_SECONDS,
    DOWNLOAD_CHUNK_SIZE,
)
from scanner.errors import PlatformError, NetworkError, IntegrityError

logger = logging.getLogger(__name__)

REDIRECT_STATUSES = (301, 302, 303, 307, 308)

_OS_NAMES = {"linux": "linux", "darwin": "darwin", "windows": "windows"}
_ARCH_NAMES = {"x86_64": "amd64", "amd64": "amd64", "aarch64": "arm64", "arm64": "arm64"}


# --- Platform ----------------------------------------------------------------

def current_platform() -> str:
    """
    Return the runtime platform as "<os>-<arch>" using Go-style names (e.g. linux-amd64).
    """
    system = platform.system().lower()
    machine = platform.machine().lower()
    os_name = _OS_NAMES.get(system)
    if os_name is None:
        raise PlatformError(f"Unsupported platform: {system}")
    arch = _ARCH_NAMES.get(machine)
    if arch is None:
        raise PlatformError(f"Unsupported architecture: {machine}")
    return f"{os_name}-{arch}"


def check_platform() -> None:
    required = "-".join(SUPPORTED_PLATFORM)
    try:
        actual = current_platform()
    except PlatformError as e:
        raise PlatformError(f"QScanner binary only supports {required}. {e}") from e
    if actual != required:
        raise PlatformError(
            f"QScanner binary only supports {required}. Current: {actual}. "
            "AWS CodeBuild must use an x86_64 compute type."
        )


# --- File helpers ------------------------------------------------------------

def sha256_file(path: Path) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(DOWNLOAD_CHUNK_SIZE), b""):
            h.update(chunk)
    return h.hexdigest()


def _remove(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


def _require_https(url: str, redirect: bool = False) -> None:
    if urlparse(url).scheme != "https":
        if redirect:
            raise NetworkError(f"Security error: Redirect to non-HTTPS URL blocked: {url}")
        raise NetworkError(f"Security error: Only HTTPS URLs are allowed for downloads: {url}")


# --- Fetcher -----------------------------------------------------------------

class BinaryFetcher:
    """
    Downloads, verifies and extracts the qscanner binary into a working directory.

    The HTTP session, URL, digest and hop limit are injectable so that tests
    (and pinned mirrors) can replace them.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        url: str = QSCANNER_BINARY_URL,
        expected_sha256: str = QSCANNER_SHA256,
        max_redirects: int = MAX_REDIRECTS,
        timeout: int = DOWNLOAD_TIMEOUT_SECONDS,
    ):
        self.session = session or requests.Session()
        self.url = url
        self.expected_sha256 = expected_sha256.lower()
        self.max_redirects = max_redirects
        self.timeout = timeout

    def ensure_binary(self, work_dir) -> Path:
        """
        Return the path of a verified qscanner executable in work_dir, downloading it if needed.

        Raises PlatformError, NetworkError or IntegrityError; nothing unverified is left on disk.
        """
        check_platform()

        work_dir = Path(work_dir)
        work_dir.mkdir(parents=True, exist_ok=True)
        binary_path = work_dir / QSCANNER_BINARY_NAME

        if binary_path.exists():
            logger.info("Binary already exists at %s, skipping download", binary_path)
            return binary_path

        gz_path = work_dir / f"{QSCANNER_BINARY_NAME}.gz"
        logger.info("Downloading qscanner from %s", self.url)
        self.download(self.url, gz_path)

        logger.info("Verifying SHA256 checksum")
        self.verify(gz_path)
        logger.info("Checksum verified")

        self.extract(gz_path, binary_path)
        logger.info("Binary ready at %s", binary_path)
        return binary_path

    def download(self, url: str, dest: Path) -> None:
        """
        Stream url into dest, following at most max_redirects HTTPS-only redirects.
        """
        _require_https(url)
        hops = 0
        current = url
        try:
            while True:
                resp = self.session.get(
                    current, stream=True, allow_redirects=False, timeout=self.timeout
                )
                try:
                    if resp.status_code in REDIRECT_STATUSES:
                        location = resp.headers.get("Location")
                        if not location:
                            raise NetworkError(f"Redirect from {current} without a Location header")
                        hops += 1
                        if hops > self.max_redirects:
                            raise NetworkError(
                                f"Too many redirects (limit {self.max_redirects}) while downloading {url}"
                            )
                        next_url = urljoin(current, location)
                        _require_https(next_url, redirect=True)
                        logger.debug("Following redirect %d: %s", hops, next_url)
                        current = next_url
                        continue

                    if resp.status_code != 200:
                        raise NetworkError(f"Failed to download: HTTP {resp.status_code}")

                    with open(dest, "wb") as fh:
                        for chunk in resp.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                            if chunk:
                                fh.write(chunk)
                    return
                finally:
                    resp.close()
        except requests.RequestException as e:
            _remove(dest)
            raise NetworkError(f"Failed to download {current}: {e}") from e
        # RequestException is itself an OSError, so this must stay below it
        except OSError as e:
            _remove(dest)
            raise NetworkError(f"Failed to write {dest}: {e}") from e
        except NetworkError:
            _remove(dest)
            raise

    def verify(self, gz_path: Path) -> None:
        actual = sha256_file(gz_path)
        if not hmac.compare_digest(actual, self.expected_sha256):
            _remove(gz_path)
            raise IntegrityError(
                f"SHA256 checksum mismatch. Expected: {self.expected_sha256}, Got: {actual}"
            )

    def extract(self, gz_path: Path, binary_path: Path) -> None:
        """
        Gunzip the verified artifact to binary_path, mark it executable and drop the archive.
        """
        try:
            with gzip.open(gz_path, "rb") as src, open(binary_path, "wb") as dst:
                shutil.copyfileobj(src, dst)
        except (OSError, EOFError, zlib.error) as e:
            _remove(binary_path)
            raise IntegrityError(f"Failed to extract {gz_path}: {e}") from e
        finally:
            _remove(gz_path)
        os.chmod(binary_path, 0o755)
