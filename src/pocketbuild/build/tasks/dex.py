"""Bytecode conversion task.

Converts compiled class files (and library jars) into the device format.

Fallback ladder:
    1. The d8 launcher from build-tools
    2. d8.jar run through the managed-runtime bridge
    3. The legacy dx converter (binary or jar)

There is no fallback beyond the ladder: with no converter the build fails,
since an APK without real bytecode cannot run.
"""

import re
import shutil
import zipfile
from pathlib import Path
from typing import List

from pocketbuild.build.context import CLASS_DIRS, DEPENDENCY_JARS, DEX_FILES, BuildSession
from pocketbuild.build.errors import BuildError, BuildPhase, ProcessError
from pocketbuild.build.tasks.base import (
    Strategy,
    StrategyOutcome,
    Task,
    classify_output,
    run_strategies,
)

D8_MAIN = "com.android.tools.r8.D8"
DX_MAIN = "com.android.dx.command.Main"

D8_TIMEOUT = 300
D8_BRIDGE_TIMEOUT = 600
DX_TIMEOUT = 300

_DEX_NAME = re.compile(r"^classes(\d*)\.dex$")


def dex_sort_key(path: Path) -> int:
    """classes.dex sorts first, then classes2.dex, classes3.dex, ..."""
    match = _DEX_NAME.match(path.name)
    if match is None:
        return 1 << 30
    return int(match.group(1) or 1)


def list_dex_files(directory: Path) -> List[Path]:
    return sorted((p for p in directory.glob("classes*.dex") if _DEX_NAME.match(p.name)), key=dex_sort_key)


def bundle_classes(class_dirs: List[Path], jar_path: Path) -> int:
    """Pack every .class file under ``class_dirs`` into one jar.

    Returns:
        Number of class files written
    """
    jar_path.parent.mkdir(parents=True, exist_ok=True)
    count = 0
    seen = set()
    with zipfile.ZipFile(jar_path, "w", zipfile.ZIP_DEFLATED) as jar:
        for class_dir in class_dirs:
            class_dir = Path(class_dir)
            if not class_dir.is_dir():
                continue
            for path in sorted(class_dir.rglob("*.class")):
                arcname = path.relative_to(class_dir).as_posix()
                if arcname in seen:
                    continue
                seen.add(arcname)
                jar.write(path, arcname)
                count += 1
    return count


class DexStrategy(Strategy):
    def __init__(self, classes_jar: Path, output_dir: Path):
        self.classes_jar = classes_jar
        self.output_dir = output_dir

    def d8_args(self, session: BuildSession) -> List[str]:
        args = ["--output", str(self.output_dir), "--min-api", str(session.config.min_sdk)]
        args.append("--debug" if session.config.debug else "--release")
        android_jar = session.android_jar
        if android_jar is not None:
            args += ["--lib", str(android_jar)]
        args.append(str(self.classes_jar))
        args.extend(str(jar) for jar in session.get(DEPENDENCY_JARS, list, []))
        return args

    def run(self, session: BuildSession, command, timeout: float) -> StrategyOutcome:
        result = session.run_process(command, timeout)
        classify_output(session, result.output)
        if not result.success:
            session.error(f"{self.name} exited with code {result.returncode}")
            return StrategyOutcome.FAILED
        return StrategyOutcome.SUCCESS


class D8BinaryStrategy(DexStrategy):
    name = "d8"

    def execute(self, session: BuildSession) -> StrategyOutcome:
        d8 = session.toolchain.get_d8()
        if d8 is None:
            return StrategyOutcome.UNAVAILABLE
        return self.run(session, [str(d8), *self.d8_args(session)], D8_TIMEOUT)


class D8BridgeStrategy(DexStrategy):
    name = "d8 (jar)"

    def execute(self, session: BuildSession) -> StrategyOutcome:
        toolchain = session.toolchain
        prefix = toolchain.jar_command(toolchain.get_d8_jar(), D8_MAIN, ["-Xmx1g"])
        if prefix is None:
            return StrategyOutcome.UNAVAILABLE
        return self.run(session, prefix + self.d8_args(session), D8_BRIDGE_TIMEOUT)


class DxLegacyStrategy(DexStrategy):
    name = "dx"

    def execute(self, session: BuildSession) -> StrategyOutcome:
        toolchain = session.toolchain
        dx_args = ["--dex", f"--output={self.output_dir}", str(self.classes_jar)]
        dx_args.extend(str(jar) for jar in session.get(DEPENDENCY_JARS, list, []))

        dx = toolchain.get_dx()
        if dx is not None:
            return self.run(session, [str(dx), *dx_args], DX_TIMEOUT)
        prefix = toolchain.jar_command(toolchain.get_dx_jar(), DX_MAIN)
        if prefix is None:
            return StrategyOutcome.UNAVAILABLE
        return self.run(session, prefix + dx_args, DX_TIMEOUT)


STRATEGIES = (D8BinaryStrategy, D8BridgeStrategy, DxLegacyStrategy)


class ConvertBytecodeTask(Task):
    """Convert compiled classes to classes.dex (classes2.dex, ... when needed)."""

    name = "Convert bytecode"
    phase = BuildPhase.CONVERSION

    def __init__(self, strategies=STRATEGIES):
        super().__init__()
        self.strategies = list(strategies)

    def execute(self, session: BuildSession) -> bool:
        class_dirs = list(session.get(CLASS_DIRS, list, []))
        dex_dir = session.dex_dir
        if dex_dir.exists():
            shutil.rmtree(dex_dir)
        dex_dir.mkdir(parents=True)

        classes_jar = session.intermediates_dir / "classes.jar"
        count = bundle_classes(class_dirs, classes_jar)
        if count == 0:
            session.log("No class files to convert")
            session.put(DEX_FILES, [])
            return True

        session.log(f"Converting {count} class files")
        self.report_progress(session, 10, f"Converting {count} classes")

        ladder = [factory(classes_jar, dex_dir) for factory in self.strategies]
        try:
            ok = run_strategies(
                session, ladder, self.phase, "No device-format converter available"
            )
        except ProcessError as e:
            raise BuildError(self.phase, f"Bytecode conversion failed: {e}", e.output, e)
        if not ok:
            return False

        dex_files = list_dex_files(dex_dir)
        if not dex_files:
            raise BuildError(self.phase, "Converter finished but produced no classes.dex")

        session.put(DEX_FILES, dex_files)
        session.log(f"Produced {len(dex_files)} dex file(s)")
        self.report_progress(session, 100, "Conversion complete")
        return True
