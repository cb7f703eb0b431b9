"""Resource compilation and linking task.

Runs the two aapt2 steps (compile, then link) and produces the resources
archive plus the generated R.java constants. R.java is written to a scratch
directory first and only copied over when its content changed, so an
unchanged resource set never forces the Java sources to recompile.
"""

import filecmp
import shutil
import tempfile
from pathlib import Path

from pocketbuild.build.context import GENERATED_SOURCES_DIR, RESOURCES_APK, BuildSession
from pocketbuild.build.errors import BuildError, BuildPhase, ProcessError
from pocketbuild.build.tasks.base import Task, classify_output

COMPILE_TIMEOUT = 180
LINK_TIMEOUT = 120


def sync_tree(source: Path, target: Path) -> int:
    """Mirror ``source`` into ``target``, touching only files whose content differs.

    Returns:
        Number of files written or removed
    """
    changed = 0
    target.mkdir(parents=True, exist_ok=True)
    wanted = set()
    for path in source.rglob("*"):
        if not path.is_file():
            continue
        relative = path.relative_to(source)
        wanted.add(relative)
        dest = target / relative
        if dest.is_file() and filecmp.cmp(path, dest, shallow=False):
            continue
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(path, dest)
        changed += 1

    for path in list(target.rglob("*")):
        if path.is_file() and path.relative_to(target) not in wanted:
            path.unlink()
            changed += 1
    return changed


class ProcessResourcesTask(Task):
    """Compile and link application resources with aapt2."""

    name = "Process resources"
    phase = BuildPhase.RESOURCES

    def execute(self, session: BuildSession) -> bool:
        config = session.config
        toolchain = session.toolchain

        if not config.manifest_file.is_file():
            raise BuildError(self.phase, f"AndroidManifest.xml not found: {config.manifest_file}")

        aapt2 = toolchain.get_aapt2()
        if aapt2 is None:
            raise BuildError(
                self.phase,
                "aapt2 not available",
                "Install the SDK build tools with 'pocketbuild sdk install'.",
            )
        android_jar = session.android_jar
        if android_jar is None:
            raise BuildError(self.phase, "android.jar not available")

        res_out = session.intermediates_dir / "res"
        res_out.mkdir(parents=True, exist_ok=True)
        compiled = res_out / "compiled.zip"
        if compiled.exists():
            compiled.unlink()

        try:
            if config.resources_dir.is_dir() and any(config.resources_dir.iterdir()):
                self.report_progress(session, 10, "Compiling resources")
                result = session.run_process(
                    [aapt2, "compile", "--dir", config.resources_dir, "-o", compiled],
                    COMPILE_TIMEOUT,
                )
                classify_output(session, result.output)
                if not result.success:
                    session.error(f"aapt2 compile exited with code {result.returncode}")
                    return False
            else:
                session.log("No resources to compile")

            session.check_cancelled(self.phase)
            self.report_progress(session, 50, "Linking resources")

            with tempfile.TemporaryDirectory(dir=session.intermediates_dir) as scratch:
                command = [
                    aapt2, "link",
                    "-o", session.resources_apk,
                    "-I", android_jar,
                    "--manifest", config.manifest_file,
                    "--auto-add-overlay",
                    "--min-sdk-version", str(config.min_sdk),
                    "--target-sdk-version", str(config.target_sdk),
                    "--version-code", str(config.version_code),
                    "--version-name", config.version_name,
                    "--java", scratch,
                ]
                if compiled.exists():
                    command += ["-R", compiled]

                result = session.run_process(command, LINK_TIMEOUT)
                classify_output(session, result.output)
                if not result.success:
                    session.error(f"aapt2 link exited with code {result.returncode}")
                    return False

                updated = sync_tree(Path(scratch), session.generated_dir)
        except ProcessError as e:
            raise BuildError(self.phase, f"aapt2 failed: {e}", e.output, e)

        if updated:
            session.log(f"Updated {updated} generated source file(s)")

        session.put(RESOURCES_APK, session.resources_apk)
        session.put(GENERATED_SOURCES_DIR, session.generated_dir)
        self.report_progress(session, 100, "Resources linked")
        return True
