"""Kotlin compilation task.

Fallback ladder:
    1. The kotlinc launcher from the installed compiler distribution
       (downloaded on first use)
    2. The embeddable compiler jar run through the managed-runtime bridge

Java sources sitting next to Kotlin sources are passed to the compiler for
symbol resolution only; the Java task compiles them afterwards.
"""

import os
from pathlib import Path
from typing import List, Optional

from pocketbuild.build.context import CLASS_DIRS, DEPENDENCY_JARS, BuildSession
from pocketbuild.build.errors import BuildPhase
from pocketbuild.build.tasks.base import StrategyOutcome, classify_output, write_argfile
from pocketbuild.build.tasks.managed import CompilerStrategy, ManagedCompileTask
from pocketbuild.packages.toolchain import COMPONENT_KOTLIN

KOTLIN_COMPILER_MAIN = "org.jetbrains.kotlin.cli.jvm.K2JVMCompiler"
JVM_TARGET = "11"


class KotlinStrategy(CompilerStrategy):
    timeout = 600

    def compiler_args(self, session: BuildSession) -> List[str]:
        classpath = self.task.compile_classpath(session)
        args = [
            "-d", str(self.task.output_dir(session)),
            "-jvm-target", JVM_TARGET,
            "-no-reflect",
        ]
        if classpath:
            args += ["-classpath", os.pathsep.join(str(p) for p in classpath)]

        java_roots = [
            root for root in (session.config.source_dir, session.generated_dir) if root.is_dir()
        ]
        argfile = write_argfile(self.argfile(session), [*self.sources, *java_roots])
        args.append(f"@{argfile}")
        return args

    def compile(self, session: BuildSession, prefix: List[str]) -> StrategyOutcome:
        result = session.run_process(prefix + self.compiler_args(session), self.timeout)
        errors, _warnings = classify_output(
            session,
            result.output,
            error_prefixes=("e: ",),
            warning_prefixes=("w: ",),
        )
        if not result.success:
            session.error(f"{self.name} exited with code {result.returncode} ({errors} error(s))")
            return StrategyOutcome.FAILED
        return StrategyOutcome.SUCCESS


class KotlincStrategy(KotlinStrategy):
    name = "kotlinc"

    def execute(self, session: BuildSession) -> StrategyOutcome:
        toolchain = session.toolchain
        kotlinc = toolchain.get_kotlinc()
        if kotlinc is None:
            session.log("kotlinc not installed, acquiring Kotlin compiler")
            if not toolchain.ensure_component(COMPONENT_KOTLIN, session.token):
                return StrategyOutcome.UNAVAILABLE
            kotlinc = toolchain.get_kotlinc()
            if kotlinc is None:
                return StrategyOutcome.UNAVAILABLE
        return self.compile(session, [str(kotlinc)])


class EmbeddedKotlinStrategy(KotlinStrategy):
    name = "embedded kotlin compiler"

    def execute(self, session: BuildSession) -> StrategyOutcome:
        toolchain = session.toolchain
        prefix = toolchain.jar_command(
            toolchain.get_kotlin_compiler_jar(), KOTLIN_COMPILER_MAIN, ["-Xmx1g"]
        )
        if prefix is None:
            return StrategyOutcome.UNAVAILABLE
        return self.compile(session, prefix)


class CompileKotlinTask(ManagedCompileTask):
    """Compile Kotlin sources and add the Kotlin runtime to the build."""

    name = "Compile Kotlin"
    phase = BuildPhase.KOTLIN
    label = "Kotlin"
    extensions = (".kt",)

    def __init__(self, strategies=(KotlincStrategy, EmbeddedKotlinStrategy)):
        super().__init__()
        self.strategy_types = list(strategies)

    def source_roots(self, session: BuildSession) -> List[Path]:
        return [session.config.kotlin_dir, session.config.source_dir]

    def output_dir(self, session: BuildSession) -> Path:
        return session.kotlin_classes_dir

    def upstream_inputs(self, session: BuildSession) -> List[Path]:
        return super().upstream_inputs(session) + [session.generated_dir]

    def strategies(self, session, sources):
        return [strategy(self, sources) for strategy in self.strategy_types]

    def execute(self, session: BuildSession) -> bool:
        ok = super().execute(session)
        if ok and session.kotlin_classes_dir in session.get(CLASS_DIRS, list, []):
            self._add_runtime(session)
        return ok

    def _add_runtime(self, session: BuildSession) -> None:
        stdlib: Optional[Path] = session.toolchain.get_kotlin_stdlib()
        if stdlib is None:
            session.warning("Kotlin standard library not found; it will not be packaged")
            return
        jars = list(session.get(DEPENDENCY_JARS, list, []))
        if stdlib not in jars:
            jars.append(stdlib)
            session.put(DEPENDENCY_JARS, jars)
