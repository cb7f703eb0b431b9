"""
Toolchain configuration.

Versions, mirror URLs and timeouts for every externally acquired tool live
here instead of in module-level constants, so a different SDK layout or a
private mirror can be injected without touching the toolchain manager.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from pocketbuild import __version__


@dataclass
class ToolchainConfig:
    """Injected configuration for the Toolchain Manager.

    Attributes:
        sdk_root: Root of the SDK installation. None means "use the cache".
        build_tools_version: Build-tools directory name (aapt2, d8, ...)
        platform_api: Platform API level providing android.jar
        ndk_version: NDK directory name
        kotlin_version: Kotlin compiler release
        sdk_tools_urls: Ordered download sources for the build tools
        platform_urls: Ordered download sources for the platform archive
        ndk_urls: Ordered download sources for the NDK
        kotlin_urls: Ordered download sources for the Kotlin compiler
        assets_dir: Directory holding bundled tool archives, if any
        host_prefix: Prefix of an independently installed development
            environment used for wrapper scripts
        user_agent: User-Agent header for every HTTP request
        install_timeout: Seconds the pipeline waits for a first-time install
        download_workers: Width of the download pool
    """

    sdk_root: Optional[Path] = None
    build_tools_version: str = "34.0.0"
    platform_api: int = 34
    ndk_version: str = "r27b"
    kotlin_version: str = "1.9.22"
    sdk_tools_urls: List[str] = field(
        default_factory=lambda: [
            "https://github.com/lzhiyong/android-sdk-tools/releases/download/35.0.2/android-sdk-tools-static-aarch64.zip",
            "https://github.com/AndroidIDEOfficial/platform-tools/releases/download/v34.0.4/platform-tools-34.0.4-aarch64.tar.xz",
        ]
    )
    platform_urls: List[str] = field(
        default_factory=lambda: [
            "https://dl.google.com/android/repository/platform-34-ext8_r01.zip",
        ]
    )
    ndk_urls: List[str] = field(
        default_factory=lambda: [
            "https://github.com/lzhiyong/termux-ndk/releases/download/android-ndk/android-ndk-r27b-aarch64.zip",
            "https://github.com/MrIkso/AndroidIDE-NDK/releases/download/ndk/android-ndk-r27b-aarch64.zip",
        ]
    )
    kotlin_urls: List[str] = field(
        default_factory=lambda: [
            "https://github.com/JetBrains/kotlin/releases/download/v1.9.22/kotlin-compiler-1.9.22.zip",
        ]
    )
    assets_dir: Optional[Path] = None
    host_prefix: Path = Path("/data/data/com.termux/files/usr")
    user_agent: str = f"PocketBuild/{__version__}"
    install_timeout: float = 600.0
    download_workers: int = 2

    @classmethod
    def from_env(cls, **overrides) -> "ToolchainConfig":
        """Create a configuration, applying environment variable overrides.

        Recognized variables:
            POCKETBUILD_SDK_ROOT: SDK installation root
            POCKETBUILD_ASSETS_DIR: Directory with bundled tool archives
            POCKETBUILD_HOST_PREFIX: Host development environment prefix

        Args:
            **overrides: Explicit field values (take precedence over env vars)

        Returns:
            ToolchainConfig instance
        """
        values = {}

        sdk_env = os.environ.get("POCKETBUILD_SDK_ROOT")
        if sdk_env:
            values["sdk_root"] = Path(sdk_env)

        assets_env = os.environ.get("POCKETBUILD_ASSETS_DIR")
        if assets_env:
            values["assets_dir"] = Path(assets_env)

        host_env = os.environ.get("POCKETBUILD_HOST_PREFIX")
        if host_env:
            values["host_prefix"] = Path(host_env)

        values.update(overrides)
        return cls(**values)
