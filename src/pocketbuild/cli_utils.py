"""CLI utility functions for PocketBuild.

This module provides common utilities used across CLI commands including:
- Error handling and formatting
- Build report rendering
- A console build listener
"""

import sys
from pathlib import Path

from pocketbuild.build.orchestrator import BuildListener
from pocketbuild.build.result import BuildResult


class ErrorFormatter:
    """Colored status lines and the standard CLI exit paths."""

    RED = "\033[1;31m"
    GREEN = "\033[1;32m"
    YELLOW = "\033[1;33m"
    RESET = "\033[0m"

    @classmethod
    def colored(cls, color: str, text: str) -> str:
        return f"{color}{text}{cls.RESET}"

    @classmethod
    def print_error(cls, title: str, message: str) -> None:
        """Print a red ``✗ title`` line, followed by ``message`` if non-empty."""
        print()
        print(cls.colored(cls.RED, f"✗ {title}"))
        if message:
            print()
            print(message)
        print()

    @classmethod
    def print_success(cls, message: str) -> None:
        print()
        print(cls.colored(cls.GREEN, f"✓ {message}"))

    @classmethod
    def print_warning(cls, message: str) -> None:
        print(cls.colored(cls.YELLOW, f"! {message}"))

    @classmethod
    def handle_config_error(cls, error: Exception) -> None:
        cls.print_error("Error: Invalid project", str(error))
        print("Make sure the directory contains a project.json and AndroidManifest.xml.")
        sys.exit(1)

    @classmethod
    def handle_permission_error(cls, error: PermissionError) -> None:
        cls.print_error("Error: Permission denied", str(error))
        sys.exit(1)

    @classmethod
    def handle_keyboard_interrupt(cls) -> None:
        cls.print_warning("Build interrupted")
        sys.exit(130)  # SIGINT

    @classmethod
    def handle_unexpected_error(cls, error: Exception, verbose: bool = False) -> None:
        """Report an exception no command handled, with a traceback in verbose mode."""
        cls.print_error("Unexpected error", f"{type(error).__name__}: {error}")
        if verbose:
            import traceback

            print("Traceback:")
            print(traceback.format_exc())
        sys.exit(1)


def print_build_report(result: BuildResult, verbose: bool = False) -> None:
    """Print the outcome of a build, its warnings and (on failure) its errors."""
    for warning in result.warnings:
        ErrorFormatter.print_warning(warning)

    if result.success:
        ErrorFormatter.print_success("Build successful!")
        print()
        print(f"APK: {result.output_path}")
        print(f"Build time: {result.build_time:.2f}s")
        return

    if result.is_cancelled:
        ErrorFormatter.print_warning("Build cancelled")
        return

    details = "\n".join(result.errors[-20:]) if result.errors else ""
    ErrorFormatter.print_error(f"Build failed: {result.message}", details)
    if verbose and result.logs:
        print("Build log:")
        for line in result.logs:
            print(f"  {line}")


class ConsoleBuildListener(BuildListener):
    """Prints task headers and, in verbose mode, every log line."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose

    def on_task_started(self, name: str, index: int, total: int) -> None:
        print(f"[{index + 1}/{total}] {name}...")

    def on_task_failed(self, name: str, error: str) -> None:
        print(f"      {name} failed")

    def on_log(self, line: str) -> None:
        if self.verbose:
            print(f"      {line}")


class PathValidator:
    """Rejects project paths before any command touches them."""

    @staticmethod
    def validate_project_dir(project_dir: Path) -> None:
        """Exit with status 2 unless ``project_dir`` is an existing directory."""
        if not project_dir.exists():
            problem = "Path does not exist"
        elif not project_dir.is_dir():
            problem = "Path is not a directory"
        else:
            return
        print(ErrorFormatter.colored(ErrorFormatter.RED, f"✗ Error: {problem}: {project_dir}"))
        sys.exit(2)
