"""Per-build session state shared by every task.

A BuildSession lives for exactly one pipeline run. Tasks communicate only
through its named artifact slots: a task stores what it produced under a
well-known key and a later task reads it back. Tasks run strictly in
sequence, so the artifact map never has two writers at once.
"""

import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

from pocketbuild.build.errors import BuildCancelledError, BuildPhase
from pocketbuild.build.incremental_cache import IncrementalBuildCache
from pocketbuild.build.process_runner import ProcessResult, ProcessRunner
from pocketbuild.cancellation import CancellationToken
from pocketbuild.config.project_config import ProjectConfig
from pocketbuild.packages.toolchain import ToolchainManager

T = TypeVar("T")

# Artifact keys
DEPENDENCY_JARS = "dependency_jars"
DEPENDENCY_CLASSPATH = "dependency_classpath"
NATIVE_LIBS_DIR = "native_libs_dir"
GENERATED_SOURCES_DIR = "generated_sources_dir"
RESOURCES_APK = "resources.ap_"
CLASS_DIRS = "class_dirs"
DEX_FILES = "dex_files"
UNSIGNED_APK = "unsigned.apk"
SIGNED_APK = "signed.apk"

NATIVE_ABIS = ("arm64-v8a", "armeabi-v7a", "x86_64", "x86")


class BuildSession:
    """Mutable state for one build.

    Attributes:
        config: Immutable project configuration
        toolchain: Toolchain Manager
        cache: Incremental build cache
        token: Cancellation token shared with every task and process
        runner: External process runner
        logs: Every log line, in order
        errors: Error messages
        warnings: Warning messages
        full_rebuild: True when incremental state was invalidated
        current_task: Task being executed; its own cancel() also stops the build
    """

    def __init__(
        self,
        config: ProjectConfig,
        toolchain: ToolchainManager,
        cache: Optional[IncrementalBuildCache] = None,
        token: Optional[CancellationToken] = None,
        runner: Optional[ProcessRunner] = None,
        on_log: Optional[Callable[[str], None]] = None,
        on_progress: Optional[Callable[[int, str], None]] = None,
        verbose: bool = False,
    ):
        self.config = config
        self.toolchain = toolchain
        self.token = token or CancellationToken()
        self.verbose = verbose
        self.current_task = None
        self.logs: List[str] = []
        self.errors: List[str] = []
        self.warnings: List[str] = []
        self._artifacts: Dict[str, Any] = {}
        self._phase_started: Dict[str, float] = {}
        self.phase_durations: Dict[str, float] = {}
        self._on_log = on_log
        self._on_progress = on_progress
        self.runner = runner or ProcessRunner(log=self.log, verbose=verbose)

        self.cache = cache or IncrementalBuildCache(
            self.intermediates_dir / "incremental" / "cache.json"
        )
        self.full_rebuild = self.cache.should_do_full_rebuild(config)

    # Logging

    def log(self, message: str) -> None:
        self.logs.append(message)
        logging.debug(message)
        if self._on_log:
            self._on_log(message)

    def warning(self, message: str) -> None:
        self.warnings.append(message)
        self.log(f"WARNING: {message}")

    def error(self, message: str) -> None:
        self.errors.append(message)
        self.log(f"ERROR: {message}")

    def progress(self, percent: int, message: str) -> None:
        """Report progress within the current task (0-100)."""
        if self._on_progress:
            self._on_progress(max(0, min(100, percent)), message)

    def phase_started(self, name: str) -> None:
        self._phase_started[name] = time.time()
        self.log(f"> {name}")

    def phase_completed(self, name: str) -> None:
        started = self._phase_started.pop(name, None)
        if started is not None:
            elapsed = time.time() - started
            self.phase_durations[name] = elapsed
            self.log(f"< {name} ({elapsed:.2f}s)")

    # Cancellation

    @property
    def is_cancelled(self) -> bool:
        task = self.current_task
        return self.token.is_cancelled or bool(task is not None and task.cancel_requested)

    def check_cancelled(self, phase: BuildPhase = BuildPhase.PIPELINE) -> None:
        """Raise BuildCancelledError if the build has been cancelled."""
        if self.is_cancelled:
            raise BuildCancelledError(phase)

    def run_process(self, command, timeout: float, cwd: Optional[Path] = None, env=None) -> ProcessResult:
        return self.runner.run(command, timeout, token=self.token, cwd=cwd, env=env)

    # Artifacts

    def put(self, key: str, value: Any) -> None:
        self._artifacts[key] = value

    def get(self, key: str, expected_type: Optional[Type[T]] = None, default: Any = None) -> Any:
        """Fetch an artifact, optionally checking its type.

        Raises:
            TypeError: If the stored value is not of ``expected_type``
        """
        value = self._artifacts.get(key, default)
        if expected_type is not None and value is not None and not isinstance(value, expected_type):
            raise TypeError(
                f"Artifact {key!r} is {type(value).__name__}, expected {expected_type.__name__}"
            )
        return value

    def has(self, key: str) -> bool:
        return key in self._artifacts

    def add_class_dir(self, path: Path) -> None:
        """Register a directory of compiled classes for conversion."""
        dirs = list(self.get(CLASS_DIRS, list, []))
        if path not in dirs:
            dirs.append(path)
        self.put(CLASS_DIRS, dirs)

    @property
    def artifacts(self) -> Dict[str, Any]:
        return dict(self._artifacts)

    # Well-known locations

    @property
    def intermediates_dir(self) -> Path:
        return self.config.intermediates_dir

    @property
    def kotlin_classes_dir(self) -> Path:
        return self.intermediates_dir / "classes" / "kotlin"

    @property
    def java_classes_dir(self) -> Path:
        return self.intermediates_dir / "classes" / "java"

    @property
    def dex_dir(self) -> Path:
        return self.intermediates_dir / "dex"

    @property
    def generated_dir(self) -> Path:
        return self.intermediates_dir / "generated" / "source" / "r"

    @property
    def resources_apk(self) -> Path:
        return self.intermediates_dir / "resources.ap_"

    @property
    def unsigned_apk(self) -> Path:
        return self.intermediates_dir / "unsigned.apk"

    @property
    def android_jar(self) -> Optional[Path]:
        return self.toolchain.get_android_jar()

    def has_native_libs(self) -> bool:
        """Check the native libs artifact for at least one packaged ABI."""
        native_dir = self.get(NATIVE_LIBS_DIR)
        if native_dir is None:
            return False
        native_dir = Path(native_dir)
        return any(
            (native_dir / abi).is_dir() and any((native_dir / abi).glob("*.so"))
            for abi in NATIVE_ABIS
        )
