"""Unit tests for the resource processing task."""

from pathlib import Path

import pytest

from pocketbuild.build.context import GENERATED_SOURCES_DIR, RESOURCES_APK
from pocketbuild.build.errors import BuildError, BuildPhase
from pocketbuild.build.process_runner import ProcessResult
from pocketbuild.build.tasks.resources import ProcessResourcesTask, sync_tree

R_JAVA = "package com.example.demo;\npublic final class R {}\n"


def prepare_project(session, tmp_path, with_resources=True):
    config = session.config
    config.manifest_file.parent.mkdir(parents=True, exist_ok=True)
    config.manifest_file.write_text('<manifest package="com.example.demo"/>')
    if with_resources:
        values = config.resources_dir / "values"
        values.mkdir(parents=True)
        (values / "strings.xml").write_text("<resources/>")
    session.toolchain.get_aapt2.return_value = tmp_path / "aapt2"
    session.toolchain.get_android_jar.return_value = tmp_path / "android.jar"


def fake_aapt2(cmd, r_java=R_JAVA):
    """Emulate aapt2: compile writes the flat archive, link writes the APK and R.java."""
    if cmd[1] == "compile":
        Path(cmd[cmd.index("-o") + 1]).write_bytes(b"flat")
    elif cmd[1] == "link":
        Path(cmd[cmd.index("-o") + 1]).write_bytes(b"PK")
        java_dir = Path(cmd[cmd.index("--java") + 1])
        r_file = java_dir / "com" / "example" / "demo" / "R.java"
        r_file.parent.mkdir(parents=True)
        r_file.write_text(r_java)


class TestProcessResourcesTask:
    """Test cases for ProcessResourcesTask."""

    def test_missing_manifest(self, session):
        with pytest.raises(BuildError) as exc_info:
            ProcessResourcesTask().execute(session)
        assert exc_info.value.phase == BuildPhase.RESOURCES

    def test_missing_aapt2(self, session, tmp_path):
        prepare_project(session, tmp_path)
        session.toolchain.get_aapt2.return_value = None

        with pytest.raises(BuildError, match="aapt2 not available") as exc_info:
            ProcessResourcesTask().execute(session)
        assert "sdk install" in exc_info.value.details

    def test_missing_platform(self, session, tmp_path):
        prepare_project(session, tmp_path)
        session.toolchain.get_android_jar.return_value = None

        with pytest.raises(BuildError, match="android.jar"):
            ProcessResourcesTask().execute(session)

    def test_compile_and_link(self, session, runner, tmp_path):
        prepare_project(session, tmp_path)
        runner.handler = fake_aapt2

        assert ProcessResourcesTask().execute(session) is True

        compile_cmd, link_cmd = runner.commands
        assert compile_cmd[1:3] == ["compile", "--dir"]
        assert link_cmd[1] == "link"
        assert link_cmd[link_cmd.index("--min-sdk-version") + 1] == "26"
        assert link_cmd[link_cmd.index("--target-sdk-version") + 1] == "34"
        assert link_cmd[link_cmd.index("-I") + 1] == str(tmp_path / "android.jar")
        assert "-R" in link_cmd

        r_file = session.generated_dir / "com" / "example" / "demo" / "R.java"
        assert r_file.read_text() == R_JAVA
        assert session.get(RESOURCES_APK) == session.resources_apk
        assert session.get(GENERATED_SOURCES_DIR) == session.generated_dir

    def test_no_resources_links_manifest_only(self, session, runner, tmp_path):
        prepare_project(session, tmp_path, with_resources=False)
        runner.handler = fake_aapt2

        assert ProcessResourcesTask().execute(session) is True

        assert len(runner.commands) == 1
        assert "-R" not in runner.commands[0]

    def test_unchanged_r_java_keeps_mtime(self, session, runner, tmp_path):
        """Test that relinking identical resources does not touch R.java."""
        prepare_project(session, tmp_path)
        runner.handler = fake_aapt2
        task = ProcessResourcesTask()
        task.execute(session)
        r_file = session.generated_dir / "com" / "example" / "demo" / "R.java"
        first_mtime = r_file.stat().st_mtime_ns

        task.execute(session)

        assert r_file.stat().st_mtime_ns == first_mtime

    def test_changed_r_java_is_rewritten(self, session, runner, tmp_path):
        prepare_project(session, tmp_path)
        runner.handler = fake_aapt2
        ProcessResourcesTask().execute(session)

        updated = R_JAVA.replace("{}", "{ int x; }")
        runner.handler = lambda cmd: fake_aapt2(cmd, updated)
        ProcessResourcesTask().execute(session)

        r_file = session.generated_dir / "com" / "example" / "demo" / "R.java"
        assert r_file.read_text() == updated

    def test_link_failure(self, session, runner, tmp_path):
        prepare_project(session, tmp_path)

        def failing_link(cmd):
            if cmd[1] == "link":
                return ProcessResult(cmd, 1, "", "error: resource string/app_name not found", 0.1)
            return None

        runner.handler = failing_link

        assert ProcessResourcesTask().execute(session) is False
        assert any("aapt2 link exited with code 1" in e for e in session.errors)
        assert not session.has(RESOURCES_APK)


class TestSyncTree:
    def test_copies_updates_and_removes(self, tmp_path):
        source = tmp_path / "source"
        target = tmp_path / "target"
        (source / "a").mkdir(parents=True)
        (source / "a" / "same.txt").write_text("same")
        (source / "a" / "new.txt").write_text("new")
        (target / "a").mkdir(parents=True)
        (target / "a" / "same.txt").write_text("same")
        (target / "old.txt").write_text("old")

        changed = sync_tree(source, target)

        assert changed == 2
        assert (target / "a" / "new.txt").read_text() == "new"
        assert not (target / "old.txt").exists()
        assert sync_tree(source, target) == 0
