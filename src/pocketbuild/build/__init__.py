"""
Build system components for PocketBuild.

This module provides the build pipeline implementation including:
- Build session and artifact passing between tasks
- Incremental source change tracking
- External process execution with timeouts and cancellation
- Pipeline orchestration and build results
"""

from .context import BuildSession
from .errors import BuildCancelledError, BuildError, BuildPhase, ProcessError
from .incremental_cache import ChangeSet, IncrementalBuildCache
from .orchestrator import PRESETS, BuildListener, BuildPipeline
from .process_runner import ProcessResult, ProcessRunner
from .result import BuildResult, BuildStatus
from .service import build_project, build_project_async, create_pipeline, create_toolchain

__all__ = [
    'BuildSession',
    'BuildError',
    'BuildCancelledError',
    'BuildPhase',
    'ProcessError',
    'ChangeSet',
    'IncrementalBuildCache',
    'PRESETS',
    'BuildListener',
    'BuildPipeline',
    'ProcessResult',
    'ProcessRunner',
    'BuildResult',
    'BuildStatus',
    'build_project',
    'build_project_async',
    'create_pipeline',
    'create_toolchain',
]
