"""Dependency resolution against remote Maven repositories.

This module resolves flat (group, artifact, version) coordinates to local jar
files. Resolution checks two cache tiers before touching the network:

    1. Coordinates already resolved by this resolver (in-memory map)
    2. The on-disk dependency cache, keyed by the coordinate's layout path

Unresolved coordinates are fetched concurrently from an ordered list of
repositories. For each repository the plain jar is tried first, then the
Android archive bundle (.aar), whose embedded classes.jar is extracted next
to it. A coordinate that exhausts every repository is recorded as failed
for the lifetime of the resolver and not retried.

Cache Structure:
    dependencies/
    └── {group/as/dirs}/{artifact}/{version}/
        ├── {artifact}-{version}.jar
        ├── {artifact}-{version}.aar
        └── {artifact}-{version}-classes.jar   # extracted from the .aar
"""

import logging
import os
import shutil
import threading
import zipfile
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple
from urllib.parse import urljoin

import requests

from pocketbuild import __version__
from pocketbuild.cancellation import CancellationToken
from pocketbuild.packages.archive_utils import is_safe_entry
from pocketbuild.packages.dependency import Dependency

DEFAULT_REPOSITORIES = (
    "https://repo1.maven.org/maven2",
    "https://dl.google.com/dl/android/maven2",
    "https://jcenter.bintray.com",
    "https://jitpack.io",
)

REDIRECT_CODES = (301, 302, 303, 307, 308)
MAX_REDIRECTS = 5

FailureCallback = Callable[[Dependency, str], None]
LogCallback = Callable[[str], None]


class DependencyResolver:
    """Resolves dependency coordinates to cached local jar files.

    Thread safety:
        The resolved map and failed set are the only state shared between
        download workers; both are guarded by a single lock.
    """

    def __init__(
        self,
        cache_dir: Path,
        repositories: Iterable[str] = DEFAULT_REPOSITORIES,
        max_workers: int = 4,
        timeout: float = 60,
        connect_timeout: float = 15,
        read_timeout: float = 30,
        user_agent: Optional[str] = None,
        on_failure: Optional[FailureCallback] = None,
        log: Optional[LogCallback] = None,
    ):
        """Initialize the resolver.

        Args:
            cache_dir: Root of the on-disk dependency cache
            repositories: Ordered repository base URLs
            max_workers: Width of the download pool
            timeout: Per-coordinate wait in resolve_all(), in seconds
            connect_timeout: HTTP connect timeout in seconds
            read_timeout: HTTP read timeout in seconds
            user_agent: User-Agent header for repository requests
            on_failure: Called with (dependency, reason) for each failure
            log: Called with human-readable progress lines
        """
        self.cache_dir = Path(cache_dir)
        self.repositories = [r.rstrip("/") for r in repositories]
        self.max_workers = max_workers
        self.timeout = timeout
        self.http_timeout = (connect_timeout, read_timeout)
        self.user_agent = user_agent or f"PocketBuild/{__version__}"
        self.on_failure = on_failure
        self.log = log

        self._lock = threading.Lock()
        self._resolved: Dict[Dependency, Path] = {}
        self._failed: Set[Dependency] = set()

    def _log(self, message: str) -> None:
        logging.info(message)
        if self.log:
            self.log(message)

    def _record_failure(self, dep: Dependency, reason: str) -> None:
        with self._lock:
            self._failed.add(dep)
        logging.warning(f"Failed to resolve {dep}: {reason}")
        if self.on_failure:
            self.on_failure(dep, reason)

    @property
    def failed(self) -> Set[Dependency]:
        with self._lock:
            return set(self._failed)

    # Cache lookup

    def cached_file(self, dep: Dependency) -> Optional[Path]:
        """Return the on-disk jar for a coordinate, if present.

        An .aar without its extracted classes.jar is unpacked on the spot.
        """
        jar = self.cache_dir / dep.relative_path("jar")
        if jar.is_file():
            return jar

        classes_jar = self.classes_jar_path(dep)
        if classes_jar.is_file():
            return classes_jar

        aar = self.cache_dir / dep.relative_path("aar")
        if aar.is_file():
            return self.extract_classes_jar(aar, classes_jar)

        return None

    def classes_jar_path(self, dep: Dependency) -> Path:
        return self.cache_dir / dep.relative_dir / f"{dep.base_name}-classes.jar"

    def lookup(self, dep: Dependency) -> Optional[Path]:
        """Two-tier cache check without any network access."""
        with self._lock:
            if dep in self._resolved:
                return self._resolved[dep]

        path = self.cached_file(dep)
        if path is not None:
            with self._lock:
                self._resolved[dep] = path
        return path

    # Resolution

    def resolve(
        self, dep: Dependency, token: Optional[CancellationToken] = None
    ) -> Optional[Path]:
        """Resolve one coordinate, downloading it if necessary.

        Args:
            dep: Coordinate to resolve
            token: Cancellation token checked between repositories

        Returns:
            Path to a jar file, or None if resolution failed
        """
        cached = self.lookup(dep)
        if cached is not None:
            return cached

        with self._lock:
            if dep in self._failed:
                return None

        for repository in self.repositories:
            if token is not None and token.is_cancelled:
                return None

            for extension in ("jar", "aar"):
                url = f"{repository}/{dep.remote_path(extension)}"
                dest = self.cache_dir / dep.relative_path(extension)
                if not self._fetch(url, dest):
                    continue

                if extension == "aar":
                    path = self.extract_classes_jar(dest, self.classes_jar_path(dep))
                    if path is None:
                        continue
                else:
                    path = dest

                with self._lock:
                    self._resolved[dep] = path
                self._log(f"Resolved {dep} from {repository}")
                return path

        self._record_failure(dep, "not found in any repository")
        return None

    def resolve_all(
        self,
        dependencies: Iterable[Dependency],
        token: Optional[CancellationToken] = None,
    ) -> List[Path]:
        """Resolve every coordinate, blocking until each completes or times out.

        Never raises for individual failures; coordinates that fail or time
        out are left out of the result and reported through on_failure.

        Args:
            dependencies: Coordinates to resolve (duplicates are ignored)
            token: Cancellation token

        Returns:
            Resolved jar paths, in first-declared order
        """
        ordered: List[Dependency] = []
        for dep in dependencies:
            if dep not in ordered:
                ordered.append(dep)

        results: Dict[Dependency, Path] = {}
        pending: List[Tuple[Dependency, "Future[Optional[Path]]"]] = []

        pool = ThreadPoolExecutor(
            max_workers=max(1, self.max_workers), thread_name_prefix="dependency"
        )
        try:
            for dep in ordered:
                cached = self.lookup(dep)
                if cached is not None:
                    results[dep] = cached
                    continue
                with self._lock:
                    if dep in self._failed:
                        continue
                pending.append((dep, pool.submit(self.resolve, dep, token)))

            for dep, future in pending:
                try:
                    path = future.result(timeout=self.timeout)
                except FutureTimeoutError:
                    future.cancel()
                    self._record_failure(dep, f"timed out after {self.timeout:.0f}s")
                    continue
                if path is not None:
                    results[dep] = path
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        return [results[dep] for dep in ordered if dep in results]

    def _fetch(self, url: str, dest: Path) -> bool:
        """Download url to dest, following redirects manually.

        Returns:
            True if the file was downloaded
        """
        headers = {"User-Agent": self.user_agent}
        temp_file = dest.with_name(dest.name + ".tmp")

        try:
            current = url
            for _ in range(MAX_REDIRECTS + 1):
                response = requests.get(
                    current,
                    headers=headers,
                    timeout=self.http_timeout,
                    allow_redirects=False,
                    stream=True,
                )
                if response.status_code in REDIRECT_CODES:
                    location = response.headers.get("Location")
                    response.close()
                    if not location:
                        return False
                    current = urljoin(current, location)
                    continue

                if response.status_code != 200:
                    response.close()
                    return False

                dest.parent.mkdir(parents=True, exist_ok=True)
                with response, open(temp_file, "wb") as f:
                    for chunk in response.iter_content(chunk_size=8192):
                        if chunk:
                            f.write(chunk)
                temp_file.replace(dest)
                return True

            logging.warning(f"Too many redirects for {url}")
            return False

        except (requests.RequestException, OSError) as e:
            logging.debug(f"Fetch failed for {url}: {e}")
            if temp_file.exists():
                temp_file.unlink()
            return False

    @staticmethod
    def extract_classes_jar(aar_path: Path, dest: Path) -> Optional[Path]:
        """Extract the classes.jar component of an Android archive.

        Entries whose names could escape the destination are skipped.

        Returns:
            Path to the extracted jar, or None if the archive has none
        """
        try:
            with zipfile.ZipFile(aar_path) as zf:
                for info in zf.infolist():
                    if not is_safe_entry(info.filename):
                        continue
                    if info.filename != "classes.jar":
                        continue
                    dest.parent.mkdir(parents=True, exist_ok=True)
                    with zf.open(info) as src, open(dest, "wb") as out:
                        shutil.copyfileobj(src, out)
                    return dest
        except (zipfile.BadZipFile, OSError) as e:
            logging.warning(f"Failed to unpack {aar_path.name}: {e}")
        return None

    # Maintenance

    @staticmethod
    def build_classpath(files: Iterable[Path]) -> str:
        return os.pathsep.join(str(f) for f in files)

    def clear_cache(self) -> None:
        """Delete the on-disk cache and forget every resolution."""
        if self.cache_dir.exists():
            shutil.rmtree(self.cache_dir)
        with self._lock:
            self._resolved.clear()
            self._failed.clear()

    def get_cache_size(self) -> int:
        """Total size of the on-disk cache in bytes."""
        if not self.cache_dir.exists():
            return 0
        return sum(p.stat().st_size for p in self.cache_dir.rglob("*") if p.is_file())
