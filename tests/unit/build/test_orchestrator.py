"""
Unit tests for BuildPipeline.

Tests the pipeline's sequencing and outcome rules:
- Tasks run strictly in order and the first failure stops the build
- Cancellation before or during a build yields a cancelled result
- First-run SDK installation is bounded and its failures are reported
- Listener callbacks go through the dispatcher
- Presets pick the right task lists
"""

from concurrent.futures import Future

import pytest

from pocketbuild.build.errors import BuildCancelledError, BuildError, BuildPhase
from pocketbuild.build.orchestrator import PRESETS, BuildListener, BuildPipeline
from pocketbuild.build.result import BuildStatus
from pocketbuild.build.tasks import (
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
from pocketbuild.cli_utils import ConsoleBuildListener


class FakeTask(Task):
    """Runs an optional action and records its own name."""

    def __init__(self, name, ran, action=None):
        super().__init__()
        self.name = name
        self.ran = ran
        self.action = action

    def execute(self, session):
        self.ran.append(self.name)
        if self.action is not None:
            return self.action(session)
        return True


class RecordingListener(BuildListener):
    def __init__(self):
        self.events = []
        self.progress = []
        self.result = None

    def on_build_started(self):
        self.events.append("build_started")

    def on_task_started(self, name, index, total):
        self.events.append(f"started:{name}:{index}/{total}")

    def on_task_completed(self, name):
        self.events.append(f"completed:{name}")

    def on_task_failed(self, name, error):
        self.events.append(f"failed:{name}")

    def on_progress(self, percent, message):
        self.progress.append(percent)

    def on_build_completed(self, result):
        self.events.append("build_completed")
        self.result = result


def write_apk(session):
    session.config.output_apk.parent.mkdir(parents=True, exist_ok=True)
    session.config.output_apk.write_bytes(b"PK")
    return True


def raise_error(error):
    def action(session):
        raise error

    return action


@pytest.fixture
def ran():
    return []


@pytest.fixture
def listener():
    return RecordingListener()


def make_pipeline(toolchain, tasks, listener=None, **kwargs):
    return BuildPipeline(toolchain, tasks=tasks, listener=listener, **kwargs)


class TestBuildPipelineRun:
    """Test cases for sequencing and outcomes."""

    def test_success(self, toolchain, project_config, ran, listener):
        tasks = [FakeTask("first", ran), FakeTask("second", ran, write_apk)]
        result = make_pipeline(toolchain, tasks, listener).run(project_config)

        assert result.success
        assert result.output_path == project_config.output_apk
        assert result.build_time >= 0
        assert ran == ["first", "second"]
        assert listener.events == [
            "build_started",
            "started:first:0/2",
            "completed:first",
            "started:second:1/2",
            "completed:second",
            "build_completed",
        ]
        assert listener.result is result
        assert listener.progress[-1] == 100

    def test_build_error_stops_pipeline(self, toolchain, project_config, ran, listener):
        tasks = [
            FakeTask("first", ran),
            FakeTask("second", ran, raise_error(BuildError(BuildPhase.JAVA, "boom"))),
            FakeTask("third", ran, write_apk),
        ]
        result = make_pipeline(toolchain, tasks, listener).run(project_config)

        assert result.status == BuildStatus.FAILED
        assert result.message == "[java] boom"
        assert "[java] boom" in result.errors
        assert ran == ["first", "second"]
        assert "failed:second" in listener.events

    def test_false_return_fails(self, toolchain, project_config, ran):
        tasks = [FakeTask("compile", ran, lambda s: False), FakeTask("later", ran)]
        result = make_pipeline(toolchain, tasks).run(project_config)

        assert result.status == BuildStatus.FAILED
        assert result.message == "Task failed: compile"
        assert ran == ["compile"]

    def test_unexpected_exception(self, toolchain, project_config, ran):
        tasks = [FakeTask("broken", ran, raise_error(RuntimeError("kaput")))]
        result = make_pipeline(toolchain, tasks).run(project_config)

        assert result.status == BuildStatus.FAILED
        assert result.message == "Unexpected error: kaput"

    def test_task_cancellation(self, toolchain, project_config, ran):
        tasks = [FakeTask("first", ran, raise_error(BuildCancelledError())), FakeTask("x", ran)]
        result = make_pipeline(toolchain, tasks).run(project_config)

        assert result.is_cancelled
        assert ran == ["first"]

    def test_cancel_during_build(self, toolchain, project_config, ran):
        """Test that a cancel between tasks prevents the next task from starting."""
        pipeline = None

        def cancel(session):
            pipeline.cancel()
            return True

        tasks = [FakeTask("first", ran, cancel), FakeTask("second", ran, write_apk)]
        pipeline = make_pipeline(toolchain, tasks)
        result = pipeline.run(project_config)

        assert result.is_cancelled
        assert ran == ["first"]
        assert all(task.cancel_requested is False for task in tasks)

    def test_cancelling_one_task_stops_the_build(self, toolchain, project_config, ran):
        """Test that a task's own cancel() is honoured at its next poll."""
        first = FakeTask("first", ran)

        def cancel_self(session):
            first.cancel()
            session.check_cancelled()
            return True

        first.action = cancel_self
        pipeline = make_pipeline(toolchain, [first, FakeTask("second", ran, write_apk)])

        result = pipeline.run(project_config)
        assert result.is_cancelled
        assert ran == ["first"]

        first.action = None
        assert pipeline.run(project_config).success

    def test_cancel_before_start_then_rebuild(self, toolchain, project_config, ran):
        pipeline = make_pipeline(toolchain, [FakeTask("only", ran, write_apk)])
        pipeline.cancel()

        first = pipeline.run(project_config)
        second = pipeline.run(project_config)

        assert first.is_cancelled
        assert second.success
        assert ran == ["only"]

    def test_no_tasks(self, toolchain, project_config):
        result = make_pipeline(toolchain, []).run(project_config)
        assert result.status == BuildStatus.FAILED
        assert result.message == "No build tasks configured"

    def test_apk_missing(self, toolchain, project_config, ran):
        result = make_pipeline(toolchain, [FakeTask("noop", ran)]).run(project_config)
        assert result.status == BuildStatus.FAILED
        assert result.message == "Build completed but APK not found"

    def test_warnings_and_logs_attached(self, toolchain, project_config, ran):
        def warn(session):
            session.warning("deprecated API")
            return write_apk(session)

        result = make_pipeline(toolchain, [FakeTask("warn", ran, warn)]).run(project_config)

        assert result.warnings == ["deprecated API"]
        assert any("Building Demo (debug)" in line for line in result.logs)

    def test_overall_progress(self, toolchain, project_config, ran, listener):
        def half(session):
            session.progress(50, "halfway")
            return write_apk(session)

        tasks = [FakeTask("first", ran), FakeTask("second", ran, half)]
        make_pipeline(toolchain, tasks, listener).run(project_config)

        assert listener.progress == [50, 75, 100]

    def test_listener_errors_are_contained(self, toolchain, project_config, ran):
        class BrokenListener(BuildListener):
            def on_task_started(self, name, index, total):
                raise RuntimeError("listener bug")

        pipeline = make_pipeline(
            toolchain, [FakeTask("only", ran, write_apk)], listener=BrokenListener()
        )
        assert pipeline.run(project_config).success

    def test_dispatcher_receives_every_callback(self, toolchain, project_config, ran, listener):
        dispatched = []

        def dispatcher(fn):
            dispatched.append(fn)
            fn()

        pipeline = make_pipeline(
            toolchain, [FakeTask("only", ran, write_apk)], listener, dispatcher=dispatcher
        )
        pipeline.run(project_config)

        assert len(dispatched) >= len(listener.events)
        assert listener.events[-1] == "build_completed"

    def test_verbose_console_prints_each_header_once(self, toolchain, project_config, ran, capsys):
        tasks = [FakeTask("first", ran), FakeTask("second", ran, write_apk)]
        listener = ConsoleBuildListener(verbose=True)

        assert make_pipeline(toolchain, tasks, listener, verbose=True).run(project_config).success

        out = capsys.readouterr().out
        assert out.count("[1/2] first...") == 1
        assert out.count("[2/2] second...") == 1


class TestToolchainInstall:
    """Test cases for the first-run SDK installation."""

    def completed(self, value=True, error=None):
        future = Future()
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(value)
        return future

    def test_install_when_tools_missing(self, toolchain, project_config, ran):
        toolchain.has_minimum_tools.side_effect = [False, True]
        toolchain.install_async.return_value = self.completed()

        result = make_pipeline(toolchain, [FakeTask("only", ran, write_apk)]).run(project_config)

        assert result.success
        toolchain.install_async.assert_called_once()

    def test_install_timeout(self, toolchain, project_config, ran):
        toolchain.has_minimum_tools.return_value = False
        toolchain.install_async.return_value = Future()

        pipeline = make_pipeline(toolchain, [FakeTask("only", ran)], install_timeout=0.1)
        result = pipeline.run(project_config)

        assert result.status == BuildStatus.FAILED
        assert result.message == "SDK installation timed out"
        assert result.errors == ["SDK installation timed out"]
        assert ran == []
        install_token = toolchain.install_async.call_args.kwargs["token"]
        assert install_token.is_cancelled

    def test_install_error(self, toolchain, project_config, ran):
        toolchain.has_minimum_tools.return_value = False
        toolchain.install_async.return_value = self.completed(error=OSError("disk full"))

        result = make_pipeline(toolchain, [FakeTask("only", ran)]).run(project_config)

        assert result.message == "SDK installation failed: disk full"
        assert ran == []

    def test_tools_still_missing(self, toolchain, project_config, ran):
        toolchain.has_minimum_tools.return_value = False
        toolchain.install_async.return_value = self.completed(False)

        result = make_pipeline(toolchain, [FakeTask("only", ran)]).run(project_config)

        assert result.message == "SDK installation completed but required tools were not found"

    def test_cancel_propagates_to_install(self, toolchain, project_config, ran):
        toolchain.has_minimum_tools.return_value = False
        pending = Future()
        pipeline = None

        def install_async(token=None, progress=None):
            pipeline.cancel()
            return pending

        toolchain.install_async.side_effect = install_async
        pipeline = make_pipeline(toolchain, [FakeTask("only", ran)], install_timeout=0.1)
        result = pipeline.run(project_config)

        assert result.is_cancelled
        install_token = toolchain.install_async.call_args.kwargs["token"]
        assert install_token.is_cancelled


class TestExecute:
    def test_execute_returns_future(self, toolchain, project_config, ran):
        pipeline = make_pipeline(toolchain, [FakeTask("only", ran, write_apk)])
        try:
            result = pipeline.execute(project_config).result(timeout=30)
        finally:
            pipeline.shutdown()

        assert result.success
        assert not pipeline.is_running


class TestPresets:
    """Test cases for the named task lists."""

    def types(self, pipeline):
        return [type(task) for task in pipeline.tasks]

    def test_preset_names(self):
        assert set(PRESETS) == {"standard", "debug", "java_only", "native"}

    def test_standard(self, toolchain):
        assert self.types(BuildPipeline.preset("standard", toolchain)) == [
            ResolveDependenciesTask,
            CompileNativeTask,
            ProcessResourcesTask,
            CompileKotlinTask,
            CompileJavaTask,
            ConvertBytecodeTask,
            OptimizeTask,
            PackageTask,
            SignTask,
        ]

    def test_debug_has_no_optimizer(self, toolchain):
        types = self.types(BuildPipeline.preset("debug", toolchain))
        assert OptimizeTask not in types
        assert len(types) == 8

    def test_java_only(self, toolchain):
        assert self.types(BuildPipeline.preset("java_only", toolchain)) == [
            ResolveDependenciesTask,
            ProcessResourcesTask,
            CompileJavaTask,
            ConvertBytecodeTask,
            PackageTask,
            SignTask,
        ]

    def test_for_config(self, toolchain, project_config, release_config):
        assert OptimizeTask not in self.types(BuildPipeline.for_config(toolchain, project_config))
        assert OptimizeTask in self.types(BuildPipeline.for_config(toolchain, release_config))

    def test_unknown_preset(self, toolchain):
        with pytest.raises(ValueError, match="Unknown pipeline preset"):
            BuildPipeline.preset("turbo", toolchain)

    def test_presets_return_fresh_tasks(self, toolchain):
        a = BuildPipeline.preset("debug", toolchain)
        b = BuildPipeline.preset("debug", toolchain)
        assert all(x is not y for x, y in zip(a.tasks, b.tasks))
