"""External process execution for build tasks.

Every compiler, linker and packaging tool runs through ProcessRunner, which
captures output, enforces a per-invocation timeout and ties the child's
lifetime to the build's cancellation token. Polling alone cannot interrupt
a blocking wait on a child process, so cancellation kills the whole process
tree (compiler drivers spawn their own children).
"""

import logging
import os
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import psutil

from pocketbuild.build.errors import BuildCancelledError, ProcessError
from pocketbuild.cancellation import CancellationToken


@dataclass
class ProcessResult:
    """Captured outcome of one process invocation."""

    command: List[str]
    returncode: int
    stdout: str
    stderr: str
    duration: float

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """Combined stdout and stderr."""
        if self.stdout and self.stderr:
            return f"{self.stdout.rstrip()}\n{self.stderr}"
        return self.stdout or self.stderr


def kill_process_tree(pid: int, timeout: float = 3) -> int:
    """Terminate a process and all of its descendants.

    Children are terminated before their parents; anything still alive after
    the grace period is force killed.

    Args:
        pid: Root process id
        timeout: Grace period in seconds before force killing

    Returns:
        Number of processes signalled
    """
    try:
        root = psutil.Process(pid)
        processes = root.children(recursive=True)
        processes.reverse()
        processes.append(root)
    except psutil.NoSuchProcess:
        return 0

    signalled = []
    for proc in processes:
        try:
            proc.terminate()
            signalled.append(proc)
        except psutil.NoSuchProcess:
            pass
        except psutil.AccessDenied as e:
            logging.warning(f"Failed to terminate process {proc.pid}: {e}")

    _gone, alive = psutil.wait_procs(signalled, timeout=timeout)
    for proc in alive:
        try:
            proc.kill()
            logging.warning(f"Force killed stubborn process {proc.pid}")
        except psutil.NoSuchProcess:
            pass
        except psutil.AccessDenied as e:
            logging.warning(f"Failed to force kill process {proc.pid}: {e}")

    return len(signalled)


class ProcessRunner:
    """Runs external tools synchronously with timeout and cancellation."""

    def __init__(self, log: Optional[Callable[[str], None]] = None, verbose: bool = False):
        """Initialize the runner.

        Args:
            log: Receives each command line before it runs
            verbose: Print command lines to stdout when there is no log
        """
        self.log = log
        self.verbose = verbose

    def run(
        self,
        command: Sequence,
        timeout: float,
        token: Optional[CancellationToken] = None,
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> ProcessResult:
        """Run a command and capture its output.

        A non-zero exit code is returned in the result, not raised; callers
        decide how to classify it.

        Args:
            command: Command and arguments
            timeout: Seconds before the process tree is killed
            token: Cancellation token; cancelling kills the process tree
            cwd: Working directory
            env: Extra environment variables merged over os.environ

        Returns:
            ProcessResult

        Raises:
            BuildCancelledError: If the token is (or becomes) cancelled
            ProcessError: If the process cannot start or times out
        """
        cmd = [str(part) for part in command]
        tool = Path(cmd[0]).name

        if token is not None and token.is_cancelled:
            raise BuildCancelledError()

        if self.log:
            self.log(f"$ {' '.join(cmd)}")
        elif self.verbose:
            print(f"  {' '.join(cmd)}")

        full_env = None
        if env:
            full_env = dict(os.environ)
            full_env.update(env)

        start = time.time()
        try:
            proc = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
                cwd=str(cwd) if cwd else None,
                env=full_env,
            )
        except OSError as e:
            raise ProcessError(f"Failed to start {tool}: {e}", cmd)

        handle = None
        if token is not None:
            handle = token.register(lambda: kill_process_tree(proc.pid))

        try:
            stdout, stderr = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            kill_process_tree(proc.pid)
            stdout, stderr = proc.communicate()
            raise ProcessError(
                f"{tool} timed out after {timeout:.0f} seconds",
                cmd,
                output=(stdout or "") + (stderr or ""),
            )
        finally:
            if token is not None and handle is not None:
                token.unregister(handle)

        if token is not None and token.is_cancelled:
            raise BuildCancelledError()

        return ProcessResult(
            command=cmd,
            returncode=proc.returncode,
            stdout=stdout or "",
            stderr=stderr or "",
            duration=time.time() - start,
        )
