"""
Command-line interface for PocketBuild.

This module provides the `pocketbuild` CLI tool for building Android apps
on the device itself.
"""

import argparse
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pocketbuild import __version__
from pocketbuild.build import create_pipeline, create_toolchain
from pocketbuild.cli_utils import (
    ConsoleBuildListener,
    ErrorFormatter,
    PathValidator,
    print_build_report,
)
from pocketbuild.config import ConfigError
from pocketbuild.config.workspace import create_project
from pocketbuild.packages import (
    DependencyResolver,
    ToolchainError,
    collect_project_dependencies,
)


@dataclass
class BuildArgs:
    """Arguments for the build command."""

    project_dir: Path
    release: bool = False
    preset: Optional[str] = None
    verbose: bool = False


@dataclass
class NewArgs:
    """Arguments for the new command."""

    name: str
    package: str
    parent_dir: Path
    kotlin: bool = False
    min_sdk: int = 26
    target_sdk: int = 34


def build_command(args: BuildArgs) -> None:
    """Build an APK.

    Examples:
        pocketbuild build                   # Debug build of the current directory
        pocketbuild build MyApp --release   # Release build
        pocketbuild build -v                # Verbose output
    """
    print(f"PocketBuild v{__version__}")
    print()

    pipeline = None
    try:
        listener = ConsoleBuildListener(verbose=args.verbose)
        pipeline, config = create_pipeline(
            args.project_dir,
            debug=not args.release,
            listener=listener,
            preset=args.preset,
            verbose=args.verbose,
        )
        print(f"Building {config.name} ({config.build_type})...")

        result = pipeline.execute(config).result()
        print_build_report(result, verbose=args.verbose)
        sys.exit(0 if result.success else 1)

    except ConfigError as e:
        ErrorFormatter.handle_config_error(e)
    except PermissionError as e:
        ErrorFormatter.handle_permission_error(e)
    except KeyboardInterrupt:
        if pipeline is not None:
            pipeline.cancel()
        ErrorFormatter.handle_keyboard_interrupt()
    finally:
        if pipeline is not None:
            pipeline.shutdown()


def new_command(args: NewArgs) -> None:
    """Create a new project from the built-in template."""
    try:
        config = create_project(
            args.parent_dir,
            args.name,
            args.package,
            min_sdk=args.min_sdk,
            target_sdk=args.target_sdk,
            kotlin=args.kotlin,
        )
    except ConfigError as e:
        ErrorFormatter.print_error("Could not create project", str(e))
        sys.exit(1)

    ErrorFormatter.print_success(f"Created {config.name}")
    print(f"  Directory: {config.project_dir}")
    print(f"  Package:   {config.package}")
    print()
    print(f"Build it with: pocketbuild build {config.project_dir}")
    sys.exit(0)


def sdk_command(action: str, project_dir: Path, verbose: bool = False) -> None:
    """Show or install the SDK components a project's builds will use."""
    toolchain = create_toolchain(project_dir, show_progress=True)
    try:
        if action == "install":
            print(f"Installing SDK into {toolchain.sdk_root}...")
            try:
                ok = toolchain.install()
            except KeyboardInterrupt as ke:
                from pocketbuild.interrupt_utils import handle_keyboard_interrupt_properly

                handle_keyboard_interrupt_properly(ke)
            if not ok:
                ErrorFormatter.print_error(
                    "SDK installation incomplete", "Run with -v and check the log for details."
                )
                sys.exit(1)
            ErrorFormatter.print_success("SDK installed")

        print()
        print(f"SDK root: {toolchain.sdk_root}")
        for name, installed in toolchain.status().items():
            marker = "✓" if installed else "✗"
            print(f"  {marker} {name}")
        if verbose:
            print()
            for tool, path in toolchain.describe().items():
                print(f"  {tool:<20} {path or '-'}")
        sys.exit(0)
    except ToolchainError as e:
        ErrorFormatter.print_error("Toolchain error", str(e))
        sys.exit(1)
    finally:
        toolchain.shutdown()


def deps_command(action: str, project_dir: Path, verbose: bool = False) -> None:
    """Resolve or clear the library dependency cache."""
    toolchain = create_toolchain(project_dir, show_progress=False)
    resolver = DependencyResolver(
        cache_dir=toolchain.cache.dependencies_dir,
        user_agent=toolchain.config.user_agent,
        on_failure=lambda dep, reason: ErrorFormatter.print_warning(f"{dep}: {reason}"),
        log=print if verbose else None,
    )

    if action == "clear":
        size = resolver.get_cache_size()
        resolver.clear_cache()
        ErrorFormatter.print_success(f"Cleared dependency cache ({size // 1024} KiB)")
        sys.exit(0)

    dependencies = collect_project_dependencies(project_dir)
    if not dependencies:
        print("No dependencies declared")
        sys.exit(0)

    try:
        files = resolver.resolve_all(dependencies)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    for path in files:
        print(f"  {path.name}")
    print()
    print(f"Resolved {len(files)}/{len(dependencies)} dependencies")
    sys.exit(0 if len(files) == len(dependencies) else 1)


def main() -> None:
    """PocketBuild - on-device Android app builds."""
    parser = argparse.ArgumentParser(
        prog="pocketbuild",
        description="PocketBuild - build Android apps on the device",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"pocketbuild {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Build command
    build_parser = subparsers.add_parser("build", help="Build an APK")
    build_parser.add_argument(
        "project_dir",
        nargs="?",
        type=Path,
        default=Path.cwd(),
        help="Project directory (default: current directory)",
    )
    build_parser.add_argument(
        "-r",
        "--release",
        action="store_true",
        help="Release build (optimized)",
    )
    build_parser.add_argument(
        "--preset",
        choices=["standard", "debug", "java_only", "native"],
        default=None,
        help="Task preset (default: picked from the build type)",
    )
    build_parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show verbose build output",
    )

    # New command
    new_parser = subparsers.add_parser("new", help="Create a new project")
    new_parser.add_argument("name", help="Application name")
    new_parser.add_argument(
        "-p",
        "--package",
        required=True,
        help="Package identifier (e.g. com.example.myapp)",
    )
    new_parser.add_argument(
        "-d",
        "--dir",
        type=Path,
        default=Path.cwd(),
        help="Parent directory (default: current directory)",
    )
    new_parser.add_argument(
        "--kotlin",
        action="store_true",
        help="Generate a Kotlin activity instead of Java",
    )
    new_parser.add_argument("--min-sdk", type=int, default=26, help="Minimum SDK (default: 26)")
    new_parser.add_argument("--target-sdk", type=int, default=34, help="Target SDK (default: 34)")

    # SDK command
    sdk_parser = subparsers.add_parser("sdk", help="Manage SDK components")
    sdk_parser.add_argument("action", choices=["status", "install"])
    sdk_parser.add_argument(
        "project_dir",
        nargs="?",
        type=Path,
        default=Path.cwd(),
        help="Project whose cache holds the SDK (default: current directory)",
    )
    sdk_parser.add_argument("-v", "--verbose", action="store_true", help="Show tool paths")

    # Deps command
    deps_parser = subparsers.add_parser("deps", help="Manage library dependencies")
    deps_parser.add_argument("action", choices=["resolve", "clear"])
    deps_parser.add_argument(
        "project_dir",
        nargs="?",
        type=Path,
        default=Path.cwd(),
        help="Project directory (default: current directory)",
    )
    deps_parser.add_argument("-v", "--verbose", action="store_true", help="Show verbose output")

    parsed_args = parser.parse_args()

    if not parsed_args.command:
        parser.print_help()
        sys.exit(0)

    if hasattr(parsed_args, "project_dir"):
        PathValidator.validate_project_dir(parsed_args.project_dir)

    try:
        if parsed_args.command == "build":
            build_command(
                BuildArgs(
                    project_dir=parsed_args.project_dir,
                    release=parsed_args.release,
                    preset=parsed_args.preset,
                    verbose=parsed_args.verbose,
                )
            )
        elif parsed_args.command == "new":
            new_command(
                NewArgs(
                    name=parsed_args.name,
                    package=parsed_args.package,
                    parent_dir=parsed_args.dir,
                    kotlin=parsed_args.kotlin,
                    min_sdk=parsed_args.min_sdk,
                    target_sdk=parsed_args.target_sdk,
                )
            )
        elif parsed_args.command == "sdk":
            sdk_command(parsed_args.action, parsed_args.project_dir, parsed_args.verbose)
        elif parsed_args.command == "deps":
            deps_command(parsed_args.action, parsed_args.project_dir, parsed_args.verbose)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, getattr(parsed_args, "verbose", False))


if __name__ == "__main__":
    main()
