"""Unit tests for the external process runner."""

import sys
import threading
import time

import pytest

from pocketbuild.build.errors import BuildCancelledError, ProcessError
from pocketbuild.build.process_runner import ProcessResult, ProcessRunner
from pocketbuild.cancellation import CancellationToken

SLEEP_FOREVER = [sys.executable, "-c", "import time; time.sleep(60)"]


class TestProcessRunner:
    """Test cases for ProcessRunner.run."""

    def test_captures_output(self):
        result = ProcessRunner().run(
            [sys.executable, "-c", "import sys; print('out'); print('err', file=sys.stderr)"],
            timeout=30,
        )
        assert result.success
        assert result.stdout.strip() == "out"
        assert result.stderr.strip() == "err"
        assert "out" in result.output and "err" in result.output

    def test_nonzero_exit_is_returned(self):
        result = ProcessRunner().run([sys.executable, "-c", "raise SystemExit(3)"], timeout=30)
        assert result.returncode == 3
        assert not result.success

    def test_logs_command_line(self):
        lines = []
        ProcessRunner(log=lines.append).run([sys.executable, "-c", "pass"], timeout=30)
        assert lines[0].startswith("$ ")

    def test_env_is_merged(self):
        result = ProcessRunner().run(
            [sys.executable, "-c", "import os; print(os.environ['POCKETBUILD_PROBE'])"],
            timeout=30,
            env={"POCKETBUILD_PROBE": "yes"},
        )
        assert result.stdout.strip() == "yes"

    def test_missing_executable(self, tmp_path):
        with pytest.raises(ProcessError, match="Failed to start"):
            ProcessRunner().run([tmp_path / "no-such-tool"], timeout=5)

    def test_timeout_kills_process(self):
        start = time.time()
        with pytest.raises(ProcessError, match="timed out"):
            ProcessRunner().run(SLEEP_FOREVER, timeout=0.5)
        assert time.time() - start < 30

    def test_already_cancelled(self):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(BuildCancelledError):
            ProcessRunner().run(SLEEP_FOREVER, timeout=5, token=token)

    def test_cancel_kills_running_process(self):
        """Test that cancelling the token interrupts a blocking wait."""
        token = CancellationToken()
        threading.Timer(0.5, token.cancel).start()

        start = time.time()
        with pytest.raises(BuildCancelledError):
            ProcessRunner().run(SLEEP_FOREVER, timeout=60, token=token)
        assert time.time() - start < 30


class TestProcessResult:
    """Test cases for ProcessResult."""

    def test_output_combines_streams(self):
        result = ProcessResult(["tool"], 0, "a\n", "b", 0.1)
        assert result.output == "a\nb"

    def test_output_single_stream(self):
        assert ProcessResult(["tool"], 1, "", "only", 0.1).output == "only"
