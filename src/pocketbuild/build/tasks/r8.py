"""Release optimization task.

Shrinks release builds with R8. Optimization is best-effort: any failure
is reported as a warning and the unoptimized bytecode is packaged instead.
"""

import shutil
from pathlib import Path
from typing import List

from pocketbuild.build.context import DEPENDENCY_JARS, DEX_FILES, BuildSession
from pocketbuild.build.errors import BuildPhase, ProcessError
from pocketbuild.build.tasks.base import Task
from pocketbuild.build.tasks.dex import list_dex_files

R8_MAIN = "com.android.tools.r8.R8"
R8_TIMEOUT = 600
RULES_FILE = "proguard-rules.pro"

DEFAULT_RULES = """\
# Default shrinker rules

-keepclassmembers class * {
    public static void main(java.lang.String[]);
}

-keepclassmembers class * extends android.app.Activity {
    public void *(android.view.View);
}

-keep public class * extends android.app.Activity
-keep public class * extends android.app.Application
-keep public class * extends android.app.Service
-keep public class * extends android.content.BroadcastReceiver
-keep public class * extends android.content.ContentProvider

-keepclassmembers class * implements java.io.Serializable {
    static final long serialVersionUID;
    private static final java.io.ObjectStreamField[] serialPersistentFields;
    private void writeObject(java.io.ObjectOutputStream);
    private void readObject(java.io.ObjectInputStream);
    java.lang.Object writeReplace();
    java.lang.Object readResolve();
}

-dontwarn android.**
-dontwarn androidx.**
-dontwarn com.google.**
-dontwarn kotlin.**
-dontwarn kotlinx.**

-optimizationpasses 3
-allowaccessmodification
-repackageclasses ''
"""


def total_size(files: List[Path]) -> int:
    return sum(f.stat().st_size for f in files if f.is_file())


class OptimizeTask(Task):
    """Shrink and optimize release bytecode."""

    name = "Optimize (R8)"
    phase = BuildPhase.OPTIMIZATION

    def rules_file(self, session: BuildSession) -> Path:
        project_rules = session.config.project_dir / RULES_FILE
        if project_rules.is_file():
            return project_rules
        rules = session.intermediates_dir / RULES_FILE
        rules.parent.mkdir(parents=True, exist_ok=True)
        rules.write_text(DEFAULT_RULES, encoding="utf-8")
        return rules

    def execute(self, session: BuildSession) -> bool:
        if session.config.debug:
            session.log("Skipping optimization for debug build")
            return True

        dex_files = list(session.get(DEX_FILES, list, []))
        classes_jar = session.intermediates_dir / "classes.jar"
        if not dex_files or not classes_jar.is_file():
            session.log("Nothing to optimize")
            return True

        toolchain = session.toolchain
        prefix = toolchain.jar_command(toolchain.get_r8_jar(), R8_MAIN, ["-Xmx1g"])
        if prefix is None:
            session.warning("R8 not available, packaging unoptimized bytecode")
            return True

        out_dir = session.dex_dir / "optimized"
        if out_dir.exists():
            shutil.rmtree(out_dir)
        out_dir.mkdir(parents=True)

        command = prefix + [
            "--release",
            "--output", str(out_dir),
            "--min-api", str(session.config.min_sdk),
        ]
        android_jar = session.android_jar
        if android_jar is not None:
            command += ["--lib", str(android_jar)]
        command += ["--pg-conf", str(self.rules_file(session))]
        command.append(str(classes_jar))
        command.extend(str(jar) for jar in session.get(DEPENDENCY_JARS, list, []))

        self.report_progress(session, 10, "Running R8")
        try:
            result = session.run_process(command, R8_TIMEOUT)
        except ProcessError as e:
            session.warning(f"R8 failed, packaging unoptimized bytecode: {e}")
            return True

        for line in result.output.splitlines():
            if line.strip():
                session.log(line.rstrip())
        if not result.success:
            session.warning(
                f"R8 exited with code {result.returncode}, packaging unoptimized bytecode"
            )
            return True

        optimized = list_dex_files(out_dir)
        if not optimized:
            session.warning("R8 produced no output, packaging unoptimized bytecode")
            return True

        before = total_size(dex_files)
        after = total_size(optimized)
        if after >= before:
            session.log(f"R8 output not smaller ({after} >= {before} bytes), keeping original")
            return True

        adopted = []
        for original in dex_files:
            original.rename(original.with_name(original.name + ".backup"))
        for dex in optimized:
            target = session.dex_dir / dex.name
            shutil.move(str(dex), str(target))
            adopted.append(target)

        session.put(DEX_FILES, adopted)
        session.log(f"R8 reduced bytecode from {before} to {after} bytes")
        self.report_progress(session, 100, "Optimization complete")
        return True
