"""Toolchain management for on-device Android builds.

This module locates or acquires every external tool the build tasks need:
the build tools (aapt2, d8, apksigner, ...), the platform android.jar, the
NDK cross-compiler and the Kotlin compiler.

Each component is acquired through an ordered ladder of strategies:
    1. Already installed (capability probe passes)
    2. Bundled archive shipped next to the application
    3. Primary download source
    4. Alternate mirror(s)
    5. Host wrapper scripts (NDK only): thin shims that exec the compiler of
       an independently installed development environment

Installation never raises for a missing tool; the manager reports
"not installed" and the calling task decides whether it can proceed.

SDK layout:
    <sdk_root>/
    ├── build-tools/{version}/     # aapt2, d8, lib/d8.jar, lib/r8.jar, ...
    ├── platforms/android-{api}/   # android.jar
    ├── ndk/{version}/             # toolchains/llvm/prebuilt/{host}/bin
    ├── kotlin/                    # bin/kotlinc, lib/kotlin-compiler.jar
    ├── lib/ecj.jar
    └── host-wrappers/bin/         # synthesized clang, clang++, ...
"""

import logging
import os
import stat
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

from pocketbuild.cancellation import CancellationToken, CancelledError
from pocketbuild.config.toolchain_config import ToolchainConfig
from pocketbuild.packages.archive_utils import ArchiveExtractor, ExtractionError
from pocketbuild.packages.cache import Cache
from pocketbuild.packages.downloader import (
    ChecksumError,
    DownloadError,
    PackageDownloader,
)
from pocketbuild.packages.toolchain_binaries import ToolProbe

ProgressCallback = Callable[[int, str], None]


class ToolchainError(Exception):
    """Raised for unrecoverable toolchain configuration errors."""

    pass


# ABI -> clang target triple (API level is appended)
ABI_TRIPLES = {
    "arm64-v8a": "aarch64-linux-android",
    "armeabi-v7a": "armv7a-linux-androideabi",
    "x86_64": "x86_64-linux-android",
    "x86": "i686-linux-android",
}

# NDK prebuilt host directory names used by different NDK builds
HOST_TAGS = (
    "linux-aarch64",
    "android-aarch64",
    "android-arm64",
    "aarch64-linux-android",
    "linux-x86_64",
)

WRAPPER_TOOLS = ("clang", "clang++", "llvm-ar", "cmake", "ninja")

BUILD_TOOL_EXECUTABLES = ("aapt2", "aapt", "d8", "dx", "apksigner", "zipalign", "aidl")

COMPONENT_BUILD_TOOLS = "build-tools"
COMPONENT_PLATFORM = "platform"
COMPONENT_NDK = "ndk"
COMPONENT_KOTLIN = "kotlin"

MINIMUM_COMPONENTS = (COMPONENT_BUILD_TOOLS, COMPONENT_PLATFORM)


@dataclass
class ToolComponent:
    """One independently installable SDK component.

    Attributes:
        name: Component name (also the bundled archive stem)
        install_dir: Where the component's payload lives once installed
        marker: Relative path that identifies the payload root inside any
            archive layout
        urls: Ordered download sources
        executables: File names that must carry the executable bit
    """

    name: str
    install_dir: Path
    marker: str
    urls: List[str]
    executables: Tuple[str, ...] = ()


class AcquisitionStrategy:
    """One rung of a component's acquisition ladder."""

    label = "strategy"

    def applies_to(self, component: ToolComponent) -> bool:
        return True

    def acquire(
        self,
        manager: "ToolchainManager",
        component: ToolComponent,
        token: Optional[CancellationToken],
        progress: Optional[ProgressCallback],
    ) -> bool:
        """Try to make the component usable.

        Returns:
            True if the component passes its capability probe afterwards
        """
        raise NotImplementedError


class InstalledStrategy(AcquisitionStrategy):
    label = "installed"

    def acquire(self, manager, component, token, progress):
        return manager.is_component_installed(component.name)


class BundledArchiveStrategy(AcquisitionStrategy):
    label = "bundled archive"

    def acquire(self, manager, component, token, progress):
        archive = manager.find_bundled_archive(component.name)
        if archive is None:
            return False

        if progress:
            progress(0, f"Extracting bundled {component.name}")
        try:
            manager.extractor.extract(
                archive, component.install_dir, marker=component.marker
            )
        except ExtractionError as e:
            logging.warning(f"Bundled {component.name} archive unusable: {e}")
            return False

        return manager.finish_install(component)


class DownloadStrategy(AcquisitionStrategy):
    """Download from the component's URL at a fixed ladder position."""

    def __init__(self, index: int, label: str):
        self.index = index
        self.label = label

    def applies_to(self, component):
        return self.index < len(component.urls)

    def acquire(self, manager, component, token, progress):
        url = component.urls[self.index]
        filename = Path(urlparse(url).path).name or f"{component.name}.archive"
        archive_path = manager.cache.get_download_path(url, filename)

        def on_bytes(done: int, total: int) -> None:
            if progress and total > 0:
                progress(
                    int(done * 100 / total),
                    f"Downloading {component.name} ({self.label})",
                )

        try:
            if not archive_path.exists():
                manager.downloader.download(
                    url,
                    archive_path,
                    show_progress=manager.show_progress,
                    progress_callback=on_bytes,
                    token=token,
                )
            elif manager.show_progress:
                print(f"Using cached {filename}")

            if token is not None:
                token.raise_if_cancelled()

            manager.extractor.extract(
                archive_path, component.install_dir, url=url, marker=component.marker
            )
        except (DownloadError, ChecksumError) as e:
            logging.warning(f"{component.name}: {self.label} download failed: {e}")
            return False
        except ExtractionError as e:
            logging.warning(f"{component.name}: {self.label} archive unusable: {e}")
            # Corrupt or partial archive; drop it so the next attempt re-downloads
            if archive_path.exists():
                archive_path.unlink()
            return False

        return manager.finish_install(component)


class HostWrapperStrategy(AcquisitionStrategy):
    """Synthesize wrapper scripts around a host development environment."""

    label = "host wrappers"

    def applies_to(self, component):
        return component.name == COMPONENT_NDK

    def acquire(self, manager, component, token, progress):
        return manager.create_host_wrappers()


DEFAULT_STRATEGIES: Tuple[AcquisitionStrategy, ...] = (
    InstalledStrategy(),
    BundledArchiveStrategy(),
    DownloadStrategy(0, "primary"),
    DownloadStrategy(1, "mirror"),
    DownloadStrategy(2, "second mirror"),
    HostWrapperStrategy(),
)


class ToolchainManager:
    """Discovers, acquires and verifies the external build tools.

    Usage:
        manager = ToolchainManager(ToolchainConfig.from_env(), Cache())
        if not manager.has_minimum_tools():
            future = manager.install_async()
            ok = future.result(timeout=manager.config.install_timeout)
        aapt2 = manager.get_aapt2()
    """

    def __init__(
        self,
        config: Optional[ToolchainConfig] = None,
        cache: Optional[Cache] = None,
        downloader: Optional[PackageDownloader] = None,
        extractor: Optional[ArchiveExtractor] = None,
        probe: Optional[ToolProbe] = None,
        strategies: Sequence[AcquisitionStrategy] = DEFAULT_STRATEGIES,
        show_progress: bool = True,
    ):
        """Initialize the toolchain manager.

        Args:
            config: Toolchain versions and sources
            cache: Cache providing the default SDK root and download area
            downloader: Downloader used for network strategies
            extractor: Archive extractor
            probe: Capability probe
            strategies: Ordered acquisition ladder
            show_progress: Whether to print download/extraction progress
        """
        self.config = config or ToolchainConfig()
        self.cache = cache or Cache()
        self.show_progress = show_progress
        self.downloader = downloader or PackageDownloader(
            user_agent=self.config.user_agent
        )
        self.extractor = extractor or ArchiveExtractor(show_progress=show_progress)
        self.probe = probe or ToolProbe()
        self.strategies = list(strategies)
        self.sdk_root = Path(self.config.sdk_root or self.cache.sdk_dir)
        self._executor: Optional[ThreadPoolExecutor] = None

        self.components: Dict[str, ToolComponent] = {
            COMPONENT_BUILD_TOOLS: ToolComponent(
                name=COMPONENT_BUILD_TOOLS,
                install_dir=self.build_tools_dir,
                marker="aapt2",
                urls=list(self.config.sdk_tools_urls),
                executables=BUILD_TOOL_EXECUTABLES,
            ),
            COMPONENT_PLATFORM: ToolComponent(
                name=COMPONENT_PLATFORM,
                install_dir=self.platform_dir,
                marker="android.jar",
                urls=list(self.config.platform_urls),
            ),
            COMPONENT_NDK: ToolComponent(
                name=COMPONENT_NDK,
                install_dir=self.ndk_dir,
                marker="build/cmake/android.toolchain.cmake",
                urls=list(self.config.ndk_urls),
                executables=("ndk-build",),
            ),
            COMPONENT_KOTLIN: ToolComponent(
                name=COMPONENT_KOTLIN,
                install_dir=self.kotlin_home,
                marker="bin/kotlinc",
                urls=list(self.config.kotlin_urls),
            ),
        }

    # SDK layout

    @property
    def build_tools_dir(self) -> Path:
        return self.sdk_root / "build-tools" / self.config.build_tools_version

    @property
    def platform_dir(self) -> Path:
        return self.sdk_root / "platforms" / f"android-{self.config.platform_api}"

    @property
    def ndk_dir(self) -> Path:
        return self.sdk_root / "ndk" / self.config.ndk_version

    @property
    def kotlin_home(self) -> Path:
        return self.sdk_root / "kotlin"

    @property
    def wrapper_bin_dir(self) -> Path:
        return self.sdk_root / "host-wrappers" / "bin"

    # Component installation

    def is_component_installed(self, name: str) -> bool:
        """Run the capability probe for one component."""
        if name == COMPONENT_BUILD_TOOLS:
            return self.get_aapt2() is not None
        if name == COMPONENT_PLATFORM:
            return self.get_android_jar() is not None
        if name == COMPONENT_NDK:
            return self.has_native_toolchain()
        if name == COMPONENT_KOTLIN:
            return self.get_kotlinc() is not None
        raise ToolchainError(f"Unknown toolchain component: {name}")

    def find_bundled_archive(self, name: str) -> Optional[Path]:
        """Find an archive for a component in the bundled assets directory."""
        assets = self.config.assets_dir
        if assets is None or not Path(assets).is_dir():
            return None
        matches = sorted(p for p in Path(assets).glob(f"{name}.*") if p.is_file())
        return matches[0] if matches else None

    def finish_install(self, component: ToolComponent) -> bool:
        """Fix permissions after extraction and re-run the capability probe."""
        ArchiveExtractor.make_executable(component.install_dir, component.executables)
        self.probe.forget()
        return self.is_component_installed(component.name)

    def ensure_component(
        self,
        name: str,
        token: Optional[CancellationToken] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> bool:
        """Walk the acquisition ladder for one component.

        Args:
            name: Component name
            token: Cancellation token checked between strategies
            progress: Callback receiving (percent, message)

        Returns:
            True if the component is usable, False if every strategy failed
        """
        component = self.components[name]

        for strategy in self.strategies:
            if not strategy.applies_to(component):
                continue
            if token is not None and token.is_cancelled:
                return False
            try:
                if strategy.acquire(self, component, token, progress):
                    if strategy.label != InstalledStrategy.label:
                        logging.info(f"Installed {name} via {strategy.label}")
                    return True
            except CancelledError:
                logging.info(f"Installation of {name} cancelled")
                return False
            except OSError as e:
                logging.warning(f"{name}: {strategy.label} failed: {e}")

        logging.warning(f"No acquisition strategy succeeded for {name}")
        return False

    def install(
        self,
        components: Iterable[str] = MINIMUM_COMPONENTS,
        token: Optional[CancellationToken] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> bool:
        """Acquire several components concurrently.

        Args:
            components: Component names to install
            token: Cancellation token
            progress: Callback receiving (percent, message)

        Returns:
            True if every component is usable
        """
        names = list(components)
        self.cache.ensure_directories()

        with ThreadPoolExecutor(
            max_workers=max(1, self.config.download_workers),
            thread_name_prefix="toolchain-download",
        ) as pool:
            futures = [
                pool.submit(self.ensure_component, name, token, progress)
                for name in names
            ]
            results = [f.result() for f in futures]

        return all(results)

    def install_async(
        self,
        components: Iterable[str] = MINIMUM_COMPONENTS,
        token: Optional[CancellationToken] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> "Future[bool]":
        """Start install() on the manager's background worker.

        Returns:
            Future resolving to install()'s result
        """
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="toolchain-install"
            )
        return self._executor.submit(self.install, list(components), token, progress)

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None

    def has_minimum_tools(self) -> bool:
        """Check the tools every build needs (resource linker and platform)."""
        return all(self.is_component_installed(name) for name in MINIMUM_COMPONENTS)

    def status(self) -> Dict[str, bool]:
        return {name: self.is_component_installed(name) for name in self.components}

    # Build tools

    def _build_tool(self, name: str) -> Optional[Path]:
        path = self.build_tools_dir / name
        return path if self.probe.is_executable(path) else None

    def _build_tool_jar(self, name: str) -> Optional[Path]:
        path = self.build_tools_dir / "lib" / name
        return path if self.probe.is_present(path) else None

    def get_aapt2(self) -> Optional[Path]:
        path = self.build_tools_dir / "aapt2"
        return path if self.probe.is_functional(path, ["version"]) else None

    def get_d8(self) -> Optional[Path]:
        return self._build_tool("d8")

    def get_d8_jar(self) -> Optional[Path]:
        return self._build_tool_jar("d8.jar")

    def get_r8_jar(self) -> Optional[Path]:
        """R8 ships inside d8.jar in some build-tools releases."""
        return self._build_tool_jar("r8.jar") or self.get_d8_jar()

    def get_dx(self) -> Optional[Path]:
        return self._build_tool("dx")

    def get_dx_jar(self) -> Optional[Path]:
        return self._build_tool_jar("dx.jar")

    def get_apksigner(self) -> Optional[Path]:
        return self._build_tool("apksigner")

    def get_zipalign(self) -> Optional[Path]:
        return self._build_tool("zipalign")

    def get_android_jar(self) -> Optional[Path]:
        path = self.platform_dir / "android.jar"
        return path if self.probe.is_present(path) else None

    def get_ecj_jar(self) -> Optional[Path]:
        candidates = [self.sdk_root / "lib" / "ecj.jar"]
        if self.config.assets_dir is not None:
            candidates.append(Path(self.config.assets_dir) / "ecj.jar")
        for candidate in candidates:
            if self.probe.is_present(candidate):
                return candidate
        return None

    # Managed-language compilers and runtime bridge

    def _host_bin_dirs(self) -> List[Path]:
        return [Path(self.config.host_prefix) / "bin"]

    def get_kotlinc(self) -> Optional[Path]:
        path = self.kotlin_home / "bin" / "kotlinc"
        return path if self.probe.is_executable(path) else None

    def get_kotlin_compiler_jar(self) -> Optional[Path]:
        for name in ("kotlin-compiler.jar", "kotlin-compiler-embeddable.jar"):
            path = self.kotlin_home / "lib" / name
            if self.probe.is_present(path):
                return path
        return None

    def get_kotlin_stdlib(self) -> Optional[Path]:
        path = self.kotlin_home / "lib" / "kotlin-stdlib.jar"
        return path if self.probe.is_present(path) else None

    def get_javac(self) -> Optional[Path]:
        return self.probe.find_on_path("javac", self._host_bin_dirs())

    def get_java_runtime(self) -> Optional[Path]:
        """Find a managed runtime able to run jar-packaged tools.

        A JVM is preferred; dalvikvm is the on-device fallback.
        """
        java = self.probe.find_on_path("java", self._host_bin_dirs())
        if java is not None:
            return java
        return self.probe.find_on_path("dalvikvm", [Path("/system/bin")])

    def jar_command(
        self, jar: Optional[Path], main_class: str, jvm_args: Sequence[str] = ()
    ) -> Optional[List[str]]:
        """Build a command line running ``main_class`` from ``jar``.

        Args:
            jar: Jar containing the tool
            main_class: Fully-qualified main class
            jvm_args: Extra runtime arguments (e.g. ["-Xmx1g"])

        Returns:
            Command prefix, or None if the jar or a runtime is unavailable
        """
        if jar is None:
            return None
        runtime = self.get_java_runtime()
        if runtime is None:
            return None

        args = list(jvm_args)
        if runtime.name == "dalvikvm" and not any(a.startswith("-Xmx") for a in args):
            args.insert(0, "-Xmx512m")
        return [str(runtime), *args, "-cp", str(jar), main_class]

    # Native toolchain

    @staticmethod
    def target_triple(abi: str, api_level: int) -> str:
        """Clang target triple for an ABI, e.g. aarch64-linux-android26.

        Raises:
            ToolchainError: If the ABI is unknown
        """
        if abi not in ABI_TRIPLES:
            raise ToolchainError(f"Unsupported ABI: {abi}")
        return f"{ABI_TRIPLES[abi]}{api_level}"

    def _ndk_prebuilt_dir(self) -> Optional[Path]:
        prebuilt = self.ndk_dir / "toolchains" / "llvm" / "prebuilt"
        for tag in HOST_TAGS:
            candidate = prebuilt / tag
            if (candidate / "bin").is_dir():
                return candidate
        return None

    def _runs(self, path: Path) -> bool:
        """Native tools must answer --version; extracted symlink stubs do not."""
        return self.probe.is_functional(path, ["--version"])

    def _native_bin_dir(self) -> Optional[Path]:
        prebuilt = self._ndk_prebuilt_dir()
        if prebuilt is not None and self._runs(prebuilt / "bin" / "clang"):
            return prebuilt / "bin"
        if self._runs(self.wrapper_bin_dir / "clang"):
            return self.wrapper_bin_dir
        return None

    def has_native_toolchain(self) -> bool:
        return self.get_clang() is not None and self.get_clangxx() is not None

    def has_full_ndk(self) -> bool:
        """True for a real NDK with a sysroot (not host wrappers)."""
        prebuilt = self._ndk_prebuilt_dir()
        return (
            prebuilt is not None
            and self._runs(prebuilt / "bin" / "clang")
            and (prebuilt / "sysroot").is_dir()
        )

    def _native_tool(self, name: str) -> Optional[Path]:
        bin_dir = self._native_bin_dir()
        if bin_dir is None:
            return None
        path = bin_dir / name
        return path if self._runs(path) else None

    def get_clang(self) -> Optional[Path]:
        return self._native_tool("clang")

    def get_clangxx(self) -> Optional[Path]:
        return self._native_tool("clang++")

    def get_llvm_ar(self) -> Optional[Path]:
        return self._native_tool("llvm-ar")

    def get_sysroot(self) -> Optional[Path]:
        if not self.has_full_ndk():
            return None
        prebuilt = self._ndk_prebuilt_dir()
        return prebuilt / "sysroot" if prebuilt is not None else None

    def get_ndk_build(self) -> Optional[Path]:
        path = self.ndk_dir / "ndk-build"
        return path if self.has_full_ndk() and self.probe.is_executable(path) else None

    def get_cmake_toolchain_file(self) -> Optional[Path]:
        path = self.ndk_dir / "build" / "cmake" / "android.toolchain.cmake"
        return path if path.is_file() else None

    def get_cmake(self) -> Optional[Path]:
        return self.probe.find_on_path(
            "cmake", [self.wrapper_bin_dir, *self._host_bin_dirs()]
        )

    def get_ninja(self) -> Optional[Path]:
        return self.probe.find_on_path(
            "ninja", [self.wrapper_bin_dir, *self._host_bin_dirs()]
        )

    def create_host_wrappers(self) -> bool:
        """Write wrapper scripts that exec the host environment's tools.

        Returns:
            True if at least clang and clang++ wrappers could be created
        """
        host_bin = Path(self.config.host_prefix) / "bin"
        if not self.probe.is_executable(host_bin / "clang"):
            return False

        self.wrapper_bin_dir.mkdir(parents=True, exist_ok=True)
        created = []
        for tool in WRAPPER_TOOLS:
            target = host_bin / tool
            if tool == "llvm-ar" and not self.probe.is_executable(target):
                target = host_bin / "ar"
            if not self.probe.is_executable(target):
                continue

            wrapper = self.wrapper_bin_dir / tool
            wrapper.write_text(f'#!/bin/sh\nexec "{target}" "$@"\n', encoding="utf-8")
            wrapper.chmod(
                wrapper.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH
            )
            created.append(tool)

        logging.info(f"Created host wrappers: {', '.join(created)}")
        self.probe.forget()
        return "clang" in created and "clang++" in created

    def describe(self) -> Dict[str, Optional[str]]:
        """Human-readable tool inventory for status output."""
        tools = {
            "aapt2": self.get_aapt2(),
            "d8": self.get_d8() or self.get_d8_jar(),
            "r8": self.get_r8_jar(),
            "apksigner": self.get_apksigner(),
            "zipalign": self.get_zipalign(),
            "android.jar": self.get_android_jar(),
            "kotlinc": self.get_kotlinc(),
            "javac": self.get_javac(),
            "ecj": self.get_ecj_jar(),
            "java runtime": self.get_java_runtime(),
            "clang": self.get_clang(),
            "sysroot": self.get_sysroot(),
        }
        return {name: (os.fspath(path) if path else None) for name, path in tools.items()}
