"""Java compilation task.

Fallback ladder:
    1. ECJ (Eclipse compiler) jar run through the managed-runtime bridge
    2. An external javac binary
"""

import os
from pathlib import Path
from typing import List

from pocketbuild.build.context import BuildSession
from pocketbuild.build.errors import BuildPhase
from pocketbuild.build.tasks.base import StrategyOutcome, classify_output, write_argfile
from pocketbuild.build.tasks.managed import CompilerStrategy, ManagedCompileTask

JAVA_VERSION = "11"
ECJ_MAIN = "org.eclipse.jdt.internal.compiler.batch.Main"


class EcjStrategy(CompilerStrategy):
    name = "ecj"

    def execute(self, session: BuildSession) -> StrategyOutcome:
        toolchain = session.toolchain
        prefix = toolchain.jar_command(toolchain.get_ecj_jar(), ECJ_MAIN)
        if prefix is None:
            return StrategyOutcome.UNAVAILABLE

        classpath = self.task.compile_classpath(session)
        command = prefix + [
            "-source", JAVA_VERSION,
            "-target", JAVA_VERSION,
            "-encoding", "UTF-8",
            "-proc:none",
            "-d", self.task.output_dir(session),
        ]
        if session.config.debug:
            command.append("-g")
        if classpath:
            command += ["-cp", os.pathsep.join(str(p) for p in classpath)]
        command.append(f"@{write_argfile(self.argfile(session), self.sources)}")

        result = session.run_process(command, self.timeout)
        errors, _warnings = classify_output(
            session,
            result.output,
            error_markers=("ERROR in", "error:"),
            warning_markers=("WARNING in", "warning:"),
        )
        if not result.success or errors:
            session.error(f"ecj reported {errors} error(s)")
            return StrategyOutcome.FAILED
        return StrategyOutcome.SUCCESS


class JavacStrategy(CompilerStrategy):
    name = "javac"

    def execute(self, session: BuildSession) -> StrategyOutcome:
        javac = session.toolchain.get_javac()
        if javac is None:
            return StrategyOutcome.UNAVAILABLE

        classpath = self.task.compile_classpath(session)
        command = [
            javac,
            "-source", JAVA_VERSION,
            "-target", JAVA_VERSION,
            "-encoding", "UTF-8",
            "-proc:none",
            "-d", self.task.output_dir(session),
        ]
        if session.config.debug:
            command.append("-g")
        if classpath:
            command += ["-classpath", os.pathsep.join(str(p) for p in classpath)]
        command.append(f"@{write_argfile(self.argfile(session), self.sources)}")

        result = session.run_process(command, self.timeout)
        errors, _warnings = classify_output(session, result.output)
        if not result.success:
            session.error(f"javac exited with code {result.returncode} ({errors} error(s))")
            return StrategyOutcome.FAILED
        return StrategyOutcome.SUCCESS


class CompileJavaTask(ManagedCompileTask):
    """Compile Java sources, including generated resource constants."""

    name = "Compile Java"
    phase = BuildPhase.JAVA
    label = "Java"
    extensions = (".java",)

    def __init__(self, strategies=(EcjStrategy, JavacStrategy)):
        super().__init__()
        self.strategy_types = list(strategies)

    def source_roots(self, session: BuildSession) -> List[Path]:
        return [session.config.source_dir, session.generated_dir]

    def output_dir(self, session: BuildSession) -> Path:
        return session.java_classes_dir

    def upstream_inputs(self, session: BuildSession) -> List[Path]:
        # Java code may call into Kotlin classes compiled earlier in this build
        return super().upstream_inputs(session) + [session.kotlin_classes_dir]

    def strategies(self, session, sources):
        return [strategy(self, sources) for strategy in self.strategy_types]
