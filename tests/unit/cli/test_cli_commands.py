"""Tests for the pocketbuild command-line entry point."""

import sys
from concurrent.futures import Future
from unittest.mock import MagicMock, patch

import pytest

from pocketbuild.build.result import BuildResult
from pocketbuild.cli import main
from pocketbuild.config import ConfigError, ProjectConfig


def run_cli(monkeypatch, *args):
    """Run main() with the given arguments and return the exit code."""
    monkeypatch.setattr(sys, "argv", ["pocketbuild", *args])
    with pytest.raises(SystemExit) as exc_info:
        main()
    return exc_info.value.code


def finished(result):
    future = Future()
    future.set_result(result)
    return future


class TestCLIBuild:
    """Tests for the 'pocketbuild build' command."""

    @pytest.fixture
    def project_dir(self, tmp_path):
        project_dir = tmp_path / "Demo"
        project_dir.mkdir()
        return project_dir

    @pytest.fixture
    def pipeline(self, project_dir):
        """Patch create_pipeline with a mock pipeline for the Demo project."""
        config = ProjectConfig.create("Demo", "com.example.demo", project_dir)
        pipeline = MagicMock()
        with patch("pocketbuild.cli.create_pipeline", return_value=(pipeline, config)) as create:
            pipeline.create = create
            yield pipeline

    def test_build_success(self, pipeline, project_dir, monkeypatch, capsys):
        apk = project_dir / "build" / "outputs" / "Demo-debug.apk"
        pipeline.execute.return_value = finished(BuildResult.succeeded(apk, 12.34))

        assert run_cli(monkeypatch, "build", str(project_dir)) == 0

        out = capsys.readouterr().out
        assert "Building Demo (debug)..." in out
        assert f"APK: {apk}" in out
        assert "12.34s" in out
        pipeline.shutdown.assert_called_once()

    def test_build_failure(self, pipeline, project_dir, monkeypatch, capsys):
        pipeline.execute.return_value = finished(
            BuildResult.failed("[java] Compilation failed", ["Main.java:1: error"])
        )

        assert run_cli(monkeypatch, "build", str(project_dir)) == 1
        assert "Compilation failed" in capsys.readouterr().out

    def test_release_and_preset_flags(self, pipeline, project_dir, monkeypatch):
        pipeline.execute.return_value = finished(BuildResult.cancelled())

        run_cli(monkeypatch, "build", str(project_dir), "--release", "--preset", "java_only", "-v")

        _, kwargs = pipeline.create.call_args
        assert kwargs["debug"] is False
        assert kwargs["preset"] == "java_only"
        assert kwargs["verbose"] is True

    def test_missing_project_dir(self, tmp_path, monkeypatch):
        assert run_cli(monkeypatch, "build", str(tmp_path / "nope")) == 2

    def test_invalid_project(self, project_dir, monkeypatch, capsys):
        with patch("pocketbuild.cli.create_pipeline", side_effect=ConfigError("bad package")):
            assert run_cli(monkeypatch, "build", str(project_dir)) == 1
        assert "bad package" in capsys.readouterr().out

    def test_keyboard_interrupt_cancels(self, pipeline, project_dir, monkeypatch):
        future = MagicMock()
        future.result.side_effect = KeyboardInterrupt()
        pipeline.execute.return_value = future

        assert run_cli(monkeypatch, "build", str(project_dir)) == 130
        pipeline.cancel.assert_called_once()
        pipeline.shutdown.assert_called_once()


class TestCLINew:
    def test_creates_project(self, tmp_path, monkeypatch, capsys):
        code = run_cli(monkeypatch, "new", "Hello", "-p", "com.example.hello", "-d", str(tmp_path))

        assert code == 0
        assert (tmp_path / "Hello" / "src" / "main" / "AndroidManifest.xml").is_file()
        assert "Created Hello" in capsys.readouterr().out

    def test_existing_directory(self, tmp_path, monkeypatch, capsys):
        (tmp_path / "Hello").mkdir()

        code = run_cli(monkeypatch, "new", "Hello", "-p", "com.example.hello", "-d", str(tmp_path))

        assert code == 1
        assert "already exists" in capsys.readouterr().out

    def test_package_is_required(self, tmp_path, monkeypatch):
        assert run_cli(monkeypatch, "new", "Hello", "-d", str(tmp_path)) == 2


class TestCLISdkAndDeps:
    @pytest.fixture
    def toolchain(self, tmp_path):
        toolchain = MagicMock()
        toolchain.sdk_root = tmp_path / "sdk"
        toolchain.status.return_value = {"build-tools": True, "platform": False}
        toolchain.cache.dependencies_dir = tmp_path / "deps"
        toolchain.config.user_agent = "pocketbuild-test"
        with patch("pocketbuild.cli.create_toolchain", return_value=toolchain):
            yield toolchain

    def test_sdk_status(self, toolchain, monkeypatch, capsys):
        assert run_cli(monkeypatch, "sdk", "status") == 0

        out = capsys.readouterr().out
        assert "✓ build-tools" in out
        assert "✗ platform" in out
        toolchain.install.assert_not_called()
        toolchain.shutdown.assert_called_once()

    def test_sdk_install_failure(self, toolchain, monkeypatch, capsys):
        toolchain.install.return_value = False

        assert run_cli(monkeypatch, "sdk", "install") == 1
        assert "SDK installation incomplete" in capsys.readouterr().out

    def test_sdk_uses_project_cache(self, toolchain, tmp_path, monkeypatch):
        """Test that `sdk install <dir>` installs where builds of <dir> will look."""
        toolchain.install.return_value = True
        with patch("pocketbuild.cli.create_toolchain", return_value=toolchain) as create:
            assert run_cli(monkeypatch, "sdk", "install", str(tmp_path)) == 0

        args, _ = create.call_args
        assert args[0] == tmp_path

    def test_deps_without_declarations(self, toolchain, tmp_path, monkeypatch, capsys):
        assert run_cli(monkeypatch, "deps", "resolve", str(tmp_path)) == 0
        assert "No dependencies declared" in capsys.readouterr().out

    def test_deps_clear(self, toolchain, tmp_path, monkeypatch, capsys):
        cached = toolchain.cache.dependencies_dir / "com" / "example" / "lib.jar"
        cached.parent.mkdir(parents=True)
        cached.write_bytes(b"x" * 4096)

        assert run_cli(monkeypatch, "deps", "clear", str(tmp_path)) == 0

        assert "Cleared dependency cache (4 KiB)" in capsys.readouterr().out
        assert not cached.exists()


def test_no_command_prints_help(monkeypatch, capsys):
    assert run_cli(monkeypatch) == 0
    assert "usage: pocketbuild" in capsys.readouterr().out


def test_version(monkeypatch, capsys):
    assert run_cli(monkeypatch, "--version") == 0
    assert "pocketbuild" in capsys.readouterr().out
