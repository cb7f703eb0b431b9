"""Unit tests for CLI utilities."""

from pathlib import Path

import pytest

from pocketbuild.build.result import BuildResult
from pocketbuild.cli_utils import (
    ConsoleBuildListener,
    ErrorFormatter,
    PathValidator,
    print_build_report,
)


class TestErrorFormatter:
    """Tests for ErrorFormatter class."""

    def test_print_error(self, capsys):
        ErrorFormatter.print_error("Build failed", "details here")
        out = capsys.readouterr().out

        assert f"{ErrorFormatter.RED}✗ Build failed{ErrorFormatter.RESET}" in out
        assert "details here" in out

    def test_config_error_exits_1(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            ErrorFormatter.handle_config_error(ValueError("Package name is required"))

        assert exc_info.value.code == 1
        assert "Package name is required" in capsys.readouterr().out

    def test_keyboard_interrupt_exits_130(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            ErrorFormatter.handle_keyboard_interrupt()

        assert exc_info.value.code == 130
        assert "Build interrupted" in capsys.readouterr().out

    def test_unexpected_error_verbose_prints_traceback(self, capsys):
        try:
            raise RuntimeError("kaput")
        except RuntimeError as e:
            with pytest.raises(SystemExit):
                ErrorFormatter.handle_unexpected_error(e, verbose=True)

        out = capsys.readouterr().out
        assert "RuntimeError: kaput" in out
        assert "Traceback:" in out


class TestPrintBuildReport:
    """Tests for the build report."""

    def test_success(self, capsys):
        result = BuildResult.succeeded(Path("/out/app-debug.apk"), 3.5, warnings=["old API"])
        print_build_report(result)
        out = capsys.readouterr().out

        assert "Build successful!" in out
        assert "APK: /out/app-debug.apk" in out
        assert "Build time: 3.50s" in out
        assert "old API" in out

    def test_failure_shows_errors(self, capsys):
        result = BuildResult.failed("[java] Compilation failed", ["Main.java:3: error"])
        print_build_report(result)
        out = capsys.readouterr().out

        assert "Build failed: [java] Compilation failed" in out
        assert "Main.java:3: error" in out

    def test_failure_verbose_shows_log(self, capsys):
        result = BuildResult.failed("boom", logs=["> Compile Java"])
        print_build_report(result, verbose=True)

        assert "  > Compile Java" in capsys.readouterr().out

    def test_cancelled(self, capsys):
        print_build_report(BuildResult.cancelled())
        out = capsys.readouterr().out

        assert "Build cancelled" in out
        assert "Build failed" not in out


class TestConsoleBuildListener:
    def test_task_headers(self, capsys):
        listener = ConsoleBuildListener()
        listener.on_task_started("Compile Java", 4, 8)
        listener.on_log("hidden")

        out = capsys.readouterr().out
        assert "[5/8] Compile Java..." in out
        assert "hidden" not in out

    def test_verbose_logs(self, capsys):
        ConsoleBuildListener(verbose=True).on_log("javac: success")
        assert "javac: success" in capsys.readouterr().out


class TestPathValidator:
    def test_existing_directory(self, tmp_path):
        PathValidator.validate_project_dir(tmp_path)

    def test_missing_path(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as exc_info:
            PathValidator.validate_project_dir(tmp_path / "missing")

        assert exc_info.value.code == 2
        assert "Path does not exist" in capsys.readouterr().out

    def test_file_path(self, tmp_path):
        target = tmp_path / "file.txt"
        target.write_text("x")

        with pytest.raises(SystemExit) as exc_info:
            PathValidator.validate_project_dir(target)
        assert exc_info.value.code == 2
