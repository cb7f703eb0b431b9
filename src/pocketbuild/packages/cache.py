"""Cache management for PocketBuild downloads and toolchains.

This module provides a unified cache structure for storing downloaded
archives, the installed SDK and resolved library dependencies.

Cache Structure:
    .pocketbuild/
    └── cache/
        ├── downloads/
        │   └── {url_hash}/         # SHA256 hash of the download URL
        │       └── archive         # Downloaded archive
        ├── sdk/
        │   ├── build-tools/{version}/
        │   ├── platforms/android-{api}/
        │   ├── ndk/{version}/
        │   ├── kotlin/
        │   └── host-wrappers/bin/
        └── dependencies/
            └── {group/as/dirs}/{artifact}/{version}/
                └── {artifact}-{version}.jar|.aar

Hashing the URL keeps archives from different mirrors for the same tool
from stomping on each other.
"""

import hashlib
import os
import shutil
from pathlib import Path
from typing import Optional


class Cache:
    """Manages the PocketBuild cache directory structure.

    The cache can be located in the project directory (.pocketbuild/) or in a
    global location specified by the POCKETBUILD_CACHE_DIR environment
    variable. On a device the global location is the norm, since the SDK is
    shared between every project.
    """

    def __init__(self, project_dir: Optional[Path] = None):
        """Initialize cache manager.

        Args:
            project_dir: Project directory. If None, uses current directory.
        """
        if project_dir is None:
            project_dir = Path.cwd()

        self.project_dir = Path(project_dir).resolve()

        cache_env = os.environ.get("POCKETBUILD_CACHE_DIR")
        if cache_env:
            self.cache_root = Path(cache_env).resolve()
        else:
            self.cache_root = self.project_dir / ".pocketbuild" / "cache"

    @staticmethod
    def hash_url(url: str) -> str:
        """Generate a SHA256 hash of a URL for cache directory naming.

        Args:
            url: The URL to hash

        Returns:
            First 16 characters of SHA256 hash (sufficient for uniqueness)
        """
        return hashlib.sha256(url.encode("utf-8")).hexdigest()[:16]

    @property
    def downloads_dir(self) -> Path:
        """Directory for downloaded tool archives."""
        return self.cache_root / "downloads"

    @property
    def sdk_dir(self) -> Path:
        """Directory holding the installed SDK components."""
        return self.cache_root / "sdk"

    @property
    def dependencies_dir(self) -> Path:
        """Directory for resolved library dependencies."""
        return self.cache_root / "dependencies"

    def ensure_directories(self) -> None:
        """Create all cache directories if they don't exist."""
        for directory in [
            self.downloads_dir,
            self.sdk_dir,
            self.dependencies_dir,
        ]:
            directory.mkdir(parents=True, exist_ok=True)

    def get_download_path(self, url: str, filename: str) -> Path:
        """Get path where a downloaded archive would be stored.

        Args:
            url: Download URL
            filename: Archive filename (e.g., 'android-ndk-r27b-aarch64.zip')

        Returns:
            Path to the archive
        """
        return self.downloads_dir / self.hash_url(url) / filename

    def is_download_cached(self, url: str, filename: str) -> bool:
        return self.get_download_path(url, filename).exists()

    def clear_downloads(self) -> None:
        """Remove every cached download archive."""
        if self.downloads_dir.exists():
            shutil.rmtree(self.downloads_dir)
