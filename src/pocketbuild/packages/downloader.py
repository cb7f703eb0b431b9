"""HTTP downloads for SDK archives.

Transfers stream into a ``.tmp`` sibling of the destination, which is only
renamed into place once the body (and, when given, its SHA-256) checks out.
Extraction lives in archive_utils.
"""

import hashlib
from pathlib import Path
from typing import Callable, Dict, Optional
from urllib.parse import urlparse

import requests
from tqdm import tqdm

from pocketbuild.cancellation import CancellationToken, CancelledError

ProgressCallback = Callable[[int, int], None]


class DownloadError(Exception):
    """Raised when a transfer fails at the HTTP or network level."""

    pass


class ChecksumError(Exception):
    """Raised when a file's SHA-256 differs from the expected value."""

    pass


def sha256_file(path: Path, chunk_size: int = 1 << 16) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for block in iter(lambda: f.read(chunk_size), b""):
            digest.update(block)
    return digest.hexdigest()


def check_digest(subject, expected: str, actual: str) -> None:
    if actual.lower() != expected.lower():
        raise ChecksumError(f"Checksum mismatch for {subject}\nExpected: {expected}\nGot: {actual}")


class PackageDownloader:
    """Streams URLs to disk with optional progress bar, callback and checksum."""

    def __init__(
        self,
        chunk_size: int = 8192,
        user_agent: Optional[str] = None,
        timeout: float = 30,
    ):
        """
        Args:
            chunk_size: Bytes read per iteration
            user_agent: User-Agent header sent with every request
            timeout: Connect/read timeout in seconds
        """
        self.chunk_size = chunk_size
        self.user_agent = user_agent
        self.timeout = timeout

    @property
    def headers(self) -> Dict[str, str]:
        return {"User-Agent": self.user_agent} if self.user_agent else {}

    def download(
        self,
        url: str,
        dest_path: Path,
        checksum: Optional[str] = None,
        show_progress: bool = True,
        progress_callback: Optional[ProgressCallback] = None,
        token: Optional[CancellationToken] = None,
    ) -> Path:
        """Download ``url`` to ``dest_path``, following redirects.

        Args:
            url: Source URL
            dest_path: Destination file path
            checksum: Expected SHA-256 (hex, any case)
            show_progress: Draw a tqdm bar when the size is known
            progress_callback: Called with (bytes_done, total_bytes) per chunk
            token: Polled between chunks

        Returns:
            dest_path

        Raises:
            DownloadError: On HTTP or connection failure
            ChecksumError: If the body does not match ``checksum``
            CancelledError: If the token fires mid-transfer
        """
        dest_path = Path(dest_path)
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        partial = dest_path.with_name(dest_path.name + ".tmp")

        try:
            response = requests.get(
                url,
                stream=True,
                timeout=self.timeout,
                headers=self.headers,
                allow_redirects=True,
            )
            response.raise_for_status()
            actual = self._stream(url, response, partial, show_progress, progress_callback, token)
            if checksum:
                check_digest(url, checksum, actual)
        except requests.RequestException as e:
            partial.unlink(missing_ok=True)
            raise DownloadError(f"Failed to download {url}: {e}") from e
        except (CancelledError, ChecksumError, OSError):
            partial.unlink(missing_ok=True)
            raise

        partial.replace(dest_path)
        return dest_path

    def _stream(
        self,
        url: str,
        response,
        target: Path,
        show_progress: bool,
        progress_callback: Optional[ProgressCallback],
        token: Optional[CancellationToken],
    ) -> str:
        """Write the response body to ``target`` and return its SHA-256."""
        total = int(response.headers.get("content-length", 0))
        bar = None
        if show_progress and total > 0:
            bar = tqdm(
                total=total,
                unit="B",
                unit_scale=True,
                unit_divisor=1024,
                desc=f"Downloading {Path(urlparse(url).path).name}",
            )

        digest = hashlib.sha256()
        done = 0
        try:
            with open(target, "wb") as out:
                for chunk in response.iter_content(chunk_size=self.chunk_size):
                    if token is not None:
                        token.raise_if_cancelled(f"Download cancelled: {url}")
                    if not chunk:
                        continue
                    out.write(chunk)
                    digest.update(chunk)
                    done += len(chunk)
                    if bar is not None:
                        bar.update(len(chunk))
                    if progress_callback is not None:
                        progress_callback(done, total)
        finally:
            if bar is not None:
                bar.close()
            response.close()
        return digest.hexdigest()

    def verify_checksum(self, file_path: Path, expected: str) -> bool:
        """Check a file on disk against an expected SHA-256.

        Raises:
            ChecksumError: If it does not match
        """
        check_digest(file_path, expected, sha256_file(file_path, self.chunk_size))
        return True
