"""
Build pipeline orchestration for PocketBuild projects.

The pipeline holds an ordered list of tasks and runs them strictly in
sequence on one dedicated worker thread:
- Make sure the minimum SDK tools are installed (bounded wait)
- Create a fresh BuildSession
- Run each task, stopping at the first failure, error or cancellation
- Convert the outcome into a BuildResult

Listener callbacks are passed through a dispatcher so a UI can have them
delivered on its own thread.
"""

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, List, Optional, Sequence

from ..cancellation import CancellationToken
from ..config.project_config import ProjectConfig
from ..packages.toolchain import ToolchainManager
from .context import BuildSession
from .errors import BuildCancelledError, BuildError
from .process_runner import ProcessRunner
from .result import BuildResult
from .tasks import (
    CompileJavaTask,
    CompileKotlinTask,
    CompileNativeTask,
    ConvertBytecodeTask,
    OptimizeTask,
    PackageTask,
    ProcessResourcesTask,
    ResolveDependenciesTask,
    SignTask,
    Task,
)

Dispatcher = Callable[[Callable[[], None]], None]


def inline_dispatcher(fn: Callable[[], None]) -> None:
    fn()


class BuildListener:
    """Receives pipeline events. Every method is optional."""

    def on_build_started(self) -> None:
        pass

    def on_task_started(self, name: str, index: int, total: int) -> None:
        pass

    def on_task_completed(self, name: str) -> None:
        pass

    def on_task_failed(self, name: str, error: str) -> None:
        pass

    def on_progress(self, percent: int, message: str) -> None:
        pass

    def on_log(self, line: str) -> None:
        pass

    def on_build_completed(self, result: BuildResult) -> None:
        pass


# Presets


def standard_tasks() -> List[Task]:
    """Full release pipeline."""
    return [
        ResolveDependenciesTask(),
        CompileNativeTask(),
        ProcessResourcesTask(),
        CompileKotlinTask(),
        CompileJavaTask(),
        ConvertBytecodeTask(),
        OptimizeTask(),
        PackageTask(),
        SignTask(),
    ]


def debug_tasks() -> List[Task]:
    """Standard pipeline without optimization."""
    return [task for task in standard_tasks() if not isinstance(task, OptimizeTask)]


def java_only_tasks() -> List[Task]:
    return [
        ResolveDependenciesTask(),
        ProcessResourcesTask(),
        CompileJavaTask(),
        ConvertBytecodeTask(),
        PackageTask(),
        SignTask(),
    ]


def native_tasks() -> List[Task]:
    return debug_tasks()


PRESETS = {
    "standard": standard_tasks,
    "debug": debug_tasks,
    "java_only": java_only_tasks,
    "native": native_tasks,
}


class BuildPipeline:
    """
    Runs an ordered list of build tasks against a project.

    Example usage:
        pipeline = BuildPipeline.for_config(toolchain, config)
        future = pipeline.execute(config)
        result = future.result()
        print(result.get_summary())

    At most one build runs at a time per pipeline; a second execute() call
    queues behind the first.
    """

    def __init__(
        self,
        toolchain: ToolchainManager,
        tasks: Optional[Sequence[Task]] = None,
        listener: Optional[BuildListener] = None,
        dispatcher: Optional[Dispatcher] = None,
        verbose: bool = False,
        install_timeout: Optional[float] = None,
        runner_factory: Optional[Callable[[Callable[[str], None]], ProcessRunner]] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            toolchain: Toolchain manager shared by every task
            tasks: Ordered tasks (defaults to the debug preset)
            listener: Event listener
            dispatcher: Callable that runs a zero-argument callback, e.g. on a UI thread
            verbose: Forwarded to the build session
            install_timeout: Seconds to wait for a first-time SDK install
                (defaults to the toolchain config value)
            runner_factory: Builds the process runner from a log callback
        """
        self.toolchain = toolchain
        self.tasks: List[Task] = list(tasks) if tasks is not None else debug_tasks()
        self.listener = listener or BuildListener()
        self.dispatcher = dispatcher or inline_dispatcher
        self.verbose = verbose
        self.install_timeout = (
            install_timeout if install_timeout is not None else toolchain.config.install_timeout
        )
        self.runner_factory = runner_factory
        self._token = CancellationToken()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="build-pipeline")
        self._running = False

    @classmethod
    def preset(cls, name: str, toolchain: ToolchainManager, **kwargs) -> "BuildPipeline":
        if name not in PRESETS:
            raise ValueError(f"Unknown pipeline preset: {name}")
        return cls(toolchain, tasks=PRESETS[name](), **kwargs)

    @classmethod
    def for_config(
        cls, toolchain: ToolchainManager, config: ProjectConfig, **kwargs
    ) -> "BuildPipeline":
        """Pick the standard preset for release builds and debug otherwise."""
        return cls.preset("debug" if config.debug else "standard", toolchain, **kwargs)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def token(self) -> CancellationToken:
        return self._token

    def execute(self, config: ProjectConfig) -> "Future[BuildResult]":
        """Start a build on the pipeline's worker thread."""
        return self._executor.submit(self.run, config)

    def cancel(self) -> None:
        """Request cancellation of the running build."""
        logging.info("Build cancellation requested")
        self._token.cancel()
        for task in self.tasks:
            task.cancel()

    def shutdown(self) -> None:
        self.cancel()
        self._executor.shutdown(wait=False)

    def _dispatch(self, fn: Callable[[], None]) -> None:
        try:
            self.dispatcher(fn)
        except Exception as e:
            # A broken listener must not take the build down with it
            logging.warning(f"Build listener raised: {e}")

    def run(self, config: ProjectConfig) -> BuildResult:
        """Run the build synchronously on the calling thread."""
        self._running = True
        try:
            result = self._run(config, self._token)
        finally:
            self._running = False
            if self._token.is_cancelled:
                # Fresh token so the next build is not cancelled up front
                self._token = CancellationToken()
            for task in self.tasks:
                task.cancel_requested = False

        logging.info(f"Build finished: {result.status.value} ({result.build_time:.2f}s)")
        self._dispatch(lambda: self.listener.on_build_completed(result))
        return result

    def _run(self, config: ProjectConfig, token: CancellationToken) -> BuildResult:
        start_time = time.time()
        self._dispatch(self.listener.on_build_started)

        def on_log(line: str) -> None:
            self._dispatch(lambda: self.listener.on_log(line))

        if not self.tasks:
            return BuildResult.failed(
                "No build tasks configured", build_time=time.time() - start_time
            )
        if token.is_cancelled:
            return BuildResult.cancelled(build_time=time.time() - start_time)

        install_failure = self._ensure_toolchain(token, on_log)
        if install_failure is not None:
            if token.is_cancelled:
                return BuildResult.cancelled(build_time=time.time() - start_time)
            return BuildResult.failed(
                install_failure, [install_failure], build_time=time.time() - start_time
            )

        total = len(self.tasks)
        current = {"index": 0}

        def on_progress(percent: int, message: str) -> None:
            overall = int((current["index"] + percent / 100.0) * 100 / total)
            self._dispatch(lambda: self.listener.on_progress(overall, message))

        runner = self.runner_factory(on_log) if self.runner_factory else None
        session = BuildSession(
            config,
            self.toolchain,
            token=token,
            runner=runner,
            on_log=on_log,
            on_progress=on_progress,
            verbose=self.verbose,
        )

        def finish(result: BuildResult) -> BuildResult:
            result.build_time = time.time() - start_time
            result.warnings = list(session.warnings)
            result.logs = list(session.logs)
            return result

        session.log(f"Building {config.name} ({config.build_type})")

        for index, task in enumerate(self.tasks):
            current["index"] = index
            if token.is_cancelled or task.cancel_requested:
                return finish(BuildResult.cancelled(errors=list(session.errors)))

            self._dispatch(
                lambda name=task.name, i=index: self.listener.on_task_started(name, i, total)
            )
            session.phase_started(task.name)
            session.current_task = task

            try:
                ok = task.execute(session)
            except BuildCancelledError:
                session.log(f"{task.name} cancelled")
                return finish(BuildResult.cancelled(errors=list(session.errors)))
            except BuildError as e:
                message = str(e)
                session.error(message)
                self._dispatch(lambda name=task.name: self.listener.on_task_failed(name, message))
                return finish(BuildResult.failed(message, session.errors))
            except KeyboardInterrupt:
                token.cancel()
                raise
            except Exception as e:
                message = f"Unexpected error: {e}"
                logging.exception(f"{task.name} raised")
                session.error(message)
                self._dispatch(lambda name=task.name: self.listener.on_task_failed(name, message))
                return finish(BuildResult.failed(message, session.errors))
            finally:
                session.phase_completed(task.name)

            if not ok:
                if session.is_cancelled:
                    return finish(BuildResult.cancelled(errors=list(session.errors)))
                message = f"Task failed: {task.name}"
                self._dispatch(lambda name=task.name: self.listener.on_task_failed(name, message))
                return finish(BuildResult.failed(message, session.errors))

            self._dispatch(lambda name=task.name: self.listener.on_task_completed(name))
            done = index + 1
            self._dispatch(
                lambda done=done: self.listener.on_progress(
                    int(done * 100 / total), f"Completed {done}/{total} tasks"
                )
            )

        output = config.output_apk
        if not output.is_file():
            return finish(
                BuildResult.failed(
                    "Build completed but APK not found", session.errors + [str(output)]
                )
            )
        return finish(BuildResult.succeeded(output, 0.0))

    def _ensure_toolchain(
        self, token: CancellationToken, on_log: Callable[[str], None]
    ) -> Optional[str]:
        """Install the minimum SDK tools if needed.

        Returns:
            None when the tools are usable, otherwise a failure message
        """
        if self.toolchain.has_minimum_tools():
            return None

        on_log("Installing SDK tools (first run)")

        def on_install_progress(percent: int, message: str) -> None:
            self._dispatch(lambda: self.listener.on_progress(percent, message))

        install_token = CancellationToken()
        handle = token.register(install_token.cancel)
        future = self.toolchain.install_async(token=install_token, progress=on_install_progress)
        try:
            future.result(timeout=self.install_timeout)
        except FutureTimeoutError:
            install_token.cancel()
            return "SDK installation timed out"
        except Exception as e:
            return f"SDK installation failed: {e}"
        finally:
            token.unregister(handle)

        if not self.toolchain.has_minimum_tools():
            return "SDK installation completed but required tools were not found"
        return None
