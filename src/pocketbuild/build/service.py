"""High-level build entry points used by the CLI and embedding applications."""

from concurrent.futures import Future
from pathlib import Path
from typing import Optional, Tuple

from ..config.project_config import ProjectConfig
from ..config.toolchain_config import ToolchainConfig
from ..packages.cache import Cache
from ..packages.toolchain import ToolchainManager
from .orchestrator import BuildListener, BuildPipeline
from .result import BuildResult


def create_toolchain(
    project_dir: Optional[Path] = None,
    config: Optional[ToolchainConfig] = None,
    show_progress: bool = True,
) -> ToolchainManager:
    """Create a toolchain manager using environment-derived configuration."""
    return ToolchainManager(
        config or ToolchainConfig.from_env(),
        Cache(project_dir),
        show_progress=show_progress,
    )


def create_pipeline(
    project_dir: Path,
    debug: bool = True,
    listener: Optional[BuildListener] = None,
    toolchain: Optional[ToolchainManager] = None,
    preset: Optional[str] = None,
    verbose: bool = False,
    **config_overrides,
) -> Tuple[BuildPipeline, ProjectConfig]:
    """Load a project and prepare a pipeline for it.

    Args:
        project_dir: Project root
        debug: Debug (True) or release (False) build
        listener: Build event listener
        toolchain: Toolchain manager (created from the environment if None)
        preset: Pipeline preset name; picked from the build type if None
        verbose: Print task headers
        **config_overrides: Extra ProjectConfig fields

    Raises:
        ConfigError: If the project configuration is invalid
    """
    config = ProjectConfig.from_project_dir(Path(project_dir), debug=debug, **config_overrides)
    toolchain = toolchain or create_toolchain(config.project_dir, show_progress=verbose)
    if preset is None:
        pipeline = BuildPipeline.for_config(toolchain, config, listener=listener, verbose=verbose)
    else:
        pipeline = BuildPipeline.preset(preset, toolchain, listener=listener, verbose=verbose)
    return pipeline, config


def build_project(
    project_dir: Path,
    debug: bool = True,
    listener: Optional[BuildListener] = None,
    toolchain: Optional[ToolchainManager] = None,
    preset: Optional[str] = None,
    verbose: bool = False,
    **config_overrides,
) -> BuildResult:
    """Build a project synchronously and return the result."""
    pipeline, config = create_pipeline(
        project_dir, debug, listener, toolchain, preset, verbose, **config_overrides
    )
    try:
        return pipeline.run(config)
    finally:
        pipeline.shutdown()


def build_project_async(
    project_dir: Path,
    debug: bool = True,
    listener: Optional[BuildListener] = None,
    toolchain: Optional[ToolchainManager] = None,
    preset: Optional[str] = None,
    verbose: bool = False,
    **config_overrides,
) -> "Tuple[BuildPipeline, Future[BuildResult]]":
    """Start a build on a background worker.

    Returns:
        The pipeline (for cancel()) and a future resolving to the result
    """
    pipeline, config = create_pipeline(
        project_dir, debug, listener, toolchain, preset, verbose, **config_overrides
    )
    return pipeline, pipeline.execute(config)
