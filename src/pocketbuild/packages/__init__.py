"""Package management for PocketBuild.

This module handles downloading, caching, and verifying the external SDK
tools and the library dependencies a project declares.
"""

from .archive_utils import ArchiveExtractor, ExtractionError
from .cache import Cache
from .dependency import (
    Dependency,
    DependencyError,
    collect_project_dependencies,
    parse_dependency_list,
    parse_gradle,
)
from .dependency_resolver import DEFAULT_REPOSITORIES, DependencyResolver
from .downloader import ChecksumError, DownloadError, PackageDownloader
from .toolchain import ABI_TRIPLES, ToolchainError, ToolchainManager
from .toolchain_binaries import ToolProbe

__all__ = [
    "ABI_TRIPLES",
    "ArchiveExtractor",
    "Cache",
    "ChecksumError",
    "DEFAULT_REPOSITORIES",
    "Dependency",
    "DependencyError",
    "DependencyResolver",
    "DownloadError",
    "ExtractionError",
    "PackageDownloader",
    "ToolProbe",
    "ToolchainError",
    "ToolchainManager",
    "collect_project_dependencies",
    "parse_dependency_list",
    "parse_gradle",
]
