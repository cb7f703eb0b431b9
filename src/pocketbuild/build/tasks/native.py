"""Native (C/C++) compilation task.

For every target ABI the task picks the first available strategy:

    1. CMake, when a CMakeLists.txt exists and a full NDK plus cmake/ninja
       are installed
    2. ndk-build, when an Android.mk exists and a full NDK is installed
    3. Direct compilation: each source file is compiled to an object file
       with an explicit target triple, then all objects are linked into one
       shared library per ABI

Without a verified sysroot (host-wrapper toolchains) the direct strategy
skips the platform library links (-llog, -landroid).
"""

import re
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from pocketbuild.build.context import NATIVE_LIBS_DIR, BuildSession
from pocketbuild.build.errors import BuildError, BuildPhase, ProcessError
from pocketbuild.build.tasks.base import (
    Strategy,
    StrategyOutcome,
    Task,
    classify_output,
    collect_sources,
    run_strategies,
)
from pocketbuild.packages.toolchain import ABI_TRIPLES, COMPONENT_NDK

C_EXTENSIONS = (".c",)
CXX_EXTENSIONS = (".cpp", ".cc", ".cxx")
NATIVE_EXTENSIONS = C_EXTENSIONS + CXX_EXTENSIONS

COMPILE_TIMEOUT = 120
LINK_TIMEOUT = 120
BUILD_SYSTEM_TIMEOUT = 600


@dataclass
class NativePlan:
    """What to build, shared by every ABI's strategies."""

    sources: List[Path]
    source_dirs: List[Path]
    library_name: str
    output_dir: Path
    obj_root: Path
    cmake_lists: Optional[Path] = None
    android_mk: Optional[Path] = None
    include_dirs: List[Path] = field(default_factory=list)


def library_name_for(project_name: str) -> str:
    """Shared library file name derived from the project name."""
    cleaned = re.sub(r"[^a-z0-9]", "", project_name.lower()) or "native"
    return f"lib{cleaned}.so"


class NativeStrategy(Strategy):
    def __init__(self, abi: str, plan: NativePlan):
        self.abi = abi
        self.plan = plan

    @property
    def abi_output_dir(self) -> Path:
        return self.plan.output_dir / self.abi


class CMakeStrategy(NativeStrategy):
    name = "cmake"

    def execute(self, session: BuildSession) -> StrategyOutcome:
        toolchain = session.toolchain
        if self.plan.cmake_lists is None or not toolchain.has_full_ndk():
            return StrategyOutcome.UNAVAILABLE
        cmake = toolchain.get_cmake()
        ninja = toolchain.get_ninja()
        toolchain_file = toolchain.get_cmake_toolchain_file()
        if cmake is None or ninja is None or toolchain_file is None:
            return StrategyOutcome.UNAVAILABLE

        config = session.config
        build_dir = session.intermediates_dir / "cmake" / self.abi
        self.abi_output_dir.mkdir(parents=True, exist_ok=True)

        configure = [
            cmake,
            "-S", self.plan.cmake_lists.parent,
            "-B", build_dir,
            "-G", "Ninja",
            f"-DCMAKE_MAKE_PROGRAM={ninja}",
            f"-DCMAKE_TOOLCHAIN_FILE={toolchain_file}",
            f"-DANDROID_ABI={self.abi}",
            f"-DANDROID_PLATFORM=android-{config.min_sdk}",
            f"-DCMAKE_BUILD_TYPE={'Debug' if config.debug else 'Release'}",
            f"-DCMAKE_LIBRARY_OUTPUT_DIRECTORY={self.abi_output_dir}",
        ]
        for command in (configure, [cmake, "--build", build_dir]):
            result = session.run_process(command, BUILD_SYSTEM_TIMEOUT)
            if not result.success:
                classify_output(session, result.output)
                session.error(f"cmake failed for {self.abi} (exit code {result.returncode})")
                return StrategyOutcome.FAILED

        return StrategyOutcome.SUCCESS


class NdkBuildStrategy(NativeStrategy):
    name = "ndk-build"

    def execute(self, session: BuildSession) -> StrategyOutcome:
        ndk_build = session.toolchain.get_ndk_build()
        if self.plan.android_mk is None or ndk_build is None:
            return StrategyOutcome.UNAVAILABLE

        config = session.config
        command = [
            ndk_build,
            f"NDK_PROJECT_PATH={config.project_dir}",
            f"APP_BUILD_SCRIPT={self.plan.android_mk}",
            f"APP_ABI={self.abi}",
            f"APP_PLATFORM=android-{config.min_sdk}",
            f"NDK_OUT={session.intermediates_dir / 'ndk' / 'obj'}",
            f"NDK_LIBS_OUT={self.plan.output_dir}",
            f"NDK_DEBUG={1 if config.debug else 0}",
        ]
        application_mk = self.plan.android_mk.parent / "Application.mk"
        if application_mk.is_file():
            command.append(f"NDK_APPLICATION_MK={application_mk}")

        result = session.run_process(command, BUILD_SYSTEM_TIMEOUT)
        if not result.success:
            classify_output(session, result.output)
            session.error(f"ndk-build failed for {self.abi} (exit code {result.returncode})")
            return StrategyOutcome.FAILED
        return StrategyOutcome.SUCCESS


class DirectCompileStrategy(NativeStrategy):
    name = "direct compile"

    def execute(self, session: BuildSession) -> StrategyOutcome:
        toolchain = session.toolchain
        clang = toolchain.get_clang()
        clangxx = toolchain.get_clangxx()
        if clang is None or clangxx is None or not self.plan.sources:
            return StrategyOutcome.UNAVAILABLE

        config = session.config
        triple = toolchain.target_triple(self.abi, config.min_sdk)
        sysroot = toolchain.get_sysroot()
        obj_dir = self.plan.obj_root / f"obj_{self.abi}"

        target_flags = ["-target", triple]
        if sysroot is not None:
            target_flags.append(f"--sysroot={sysroot}")

        if config.debug:
            opt_flags = ["-g", "-O0"]
        else:
            opt_flags = ["-O2", "-DNDEBUG"]

        include_flags = []
        for directory in self.plan.include_dirs:
            include_flags.append(f"-I{directory}")

        objects = []
        total = len(self.plan.sources)
        for index, source in enumerate(self.plan.sources):
            session.check_cancelled(BuildPhase.NATIVE)

            is_cxx = source.suffix in CXX_EXTENSIONS
            obj = obj_dir / self._object_name(source)
            obj.parent.mkdir(parents=True, exist_ok=True)

            command = [clangxx if is_cxx else clang, *target_flags]
            command += ["-fPIC", "-ffunction-sections", "-fdata-sections"]
            command += opt_flags
            if is_cxx:
                command.append("-std=c++17")
            command += [f"-I{source.parent}", *include_flags]
            command += ["-c", source, "-o", obj]

            result = session.run_process(command, COMPILE_TIMEOUT)
            if not result.success:
                classify_output(session, result.output)
                session.error(f"Failed to compile {source.name} for {self.abi}")
                return StrategyOutcome.FAILED
            if result.output.strip():
                classify_output(session, result.output)

            objects.append(obj)
            session.progress(
                int((index + 1) * 90 / total), f"{self.abi}: compiled {source.name}"
            )

        session.check_cancelled(BuildPhase.NATIVE)

        library = self.abi_output_dir / self.plan.library_name
        library.parent.mkdir(parents=True, exist_ok=True)
        command = [clangxx, *target_flags, "-shared", "-o", library, *objects]
        command += ["-Wl,--gc-sections", "-Wl,--build-id=sha1"]
        if not config.debug:
            command.append("-Wl,--strip-all")
        if sysroot is not None:
            command += ["-llog", "-landroid"]
        command += ["-lm", "-lc"]

        result = session.run_process(command, LINK_TIMEOUT)
        if not result.success:
            classify_output(session, result.output)
            session.error(f"Failed to link {library.name} for {self.abi}")
            return StrategyOutcome.FAILED

        session.log(f"{self.abi}: linked {library.name} ({len(objects)} objects)")
        return StrategyOutcome.SUCCESS

    def _object_name(self, source: Path) -> Path:
        for root in self.plan.source_dirs:
            try:
                relative = source.relative_to(root.resolve())
                return relative.with_suffix(relative.suffix + ".o")
            except ValueError:
                continue
        return Path(source.name + ".o")


STRATEGIES = (CMakeStrategy, NdkBuildStrategy, DirectCompileStrategy)


class CompileNativeTask(Task):
    """Compile native sources into one shared library per target ABI."""

    name = "Compile native code"
    phase = BuildPhase.NATIVE

    def __init__(self, strategies=STRATEGIES):
        super().__init__()
        self.strategies = list(strategies)

    def _plan(self, session: BuildSession) -> NativePlan:
        config = session.config
        source_dirs = [d for d in config.native_source_dirs if d.is_dir()]

        cmake_lists = None
        android_mk = None
        for directory in source_dirs:
            if cmake_lists is None and (directory / "CMakeLists.txt").is_file():
                cmake_lists = directory / "CMakeLists.txt"
            if android_mk is None and (directory / "Android.mk").is_file():
                android_mk = directory / "Android.mk"

        include_dirs = []
        for directory in source_dirs:
            include_dirs.append(directory)
            if (directory / "include").is_dir():
                include_dirs.append(directory / "include")

        return NativePlan(
            sources=collect_sources(source_dirs, NATIVE_EXTENSIONS),
            source_dirs=source_dirs,
            library_name=library_name_for(config.name),
            output_dir=config.native_libs_dir,
            obj_root=session.intermediates_dir / "native",
            cmake_lists=cmake_lists,
            android_mk=android_mk,
            include_dirs=include_dirs,
        )

    def execute(self, session: BuildSession) -> bool:
        config = session.config

        if not config.enable_native:
            session.log("Native compilation disabled")
            return True

        plan = self._plan(session)
        if not plan.sources and plan.cmake_lists is None and plan.android_mk is None:
            session.log("No native sources found")
            return True

        abis = []
        for abi in config.abis:
            if abi in ABI_TRIPLES:
                abis.append(abi)
            else:
                session.warning(f"Skipping unsupported ABI: {abi}")
        if not abis:
            session.log("No target ABIs to build")
            return True

        toolchain = session.toolchain
        if not toolchain.is_component_installed(COMPONENT_NDK):
            session.log("Native toolchain not installed, acquiring")
            installed = toolchain.ensure_component(
                COMPONENT_NDK, session.token, lambda pct, msg: self.report_progress(session, pct, msg)
            )
            session.check_cancelled(self.phase)
            if not installed:
                raise BuildError(
                    self.phase,
                    "No usable native toolchain",
                    "The project contains native code but neither the NDK nor a "
                    "host compiler could be installed.",
                )

        if plan.output_dir.exists():
            for abi in abis:
                stale = plan.output_dir / abi
                if stale.is_dir():
                    shutil.rmtree(stale)

        for index, abi in enumerate(abis):
            session.check_cancelled(self.phase)
            session.log(f"Building native code for {abi}")
            self.report_progress(session, int(index * 100 / len(abis)), f"Building {abi}")

            ladder = [factory(abi, plan) for factory in self.strategies]
            try:
                ok = run_strategies(
                    session, ladder, self.phase, f"No native build strategy available for {abi}"
                )
            except ProcessError as e:
                raise BuildError(self.phase, f"Native build for {abi} failed: {e}", e.output, e)
            if not ok:
                return False

        session.put(NATIVE_LIBS_DIR, plan.output_dir)
        self.report_progress(session, 100, "Native build complete")
        return True
