"""Toolchain capability probes.

A tool is trusted only after it passes a capability probe: the file exists,
is a regular file, carries an executable bit, and (optionally) answers a
cheap invocation such as ``aapt2 version`` with exit code 0. Presence alone
is not enough on devices where half-extracted archives and binaries built for
the wrong architecture are common.
"""

import os
import shutil
import subprocess
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple


class ToolProbe:
    """Checks that external tools are present, executable and functional.

    Functional probe results are memoized per path, since a probe spawns a
    process and the same tool is queried by several tasks in one build.
    """

    def __init__(self, probe_timeout: float = 10):
        """Initialize the probe.

        Args:
            probe_timeout: Seconds allowed for a functional probe invocation
        """
        self.probe_timeout = probe_timeout
        self._results: Dict[Tuple[str, Tuple[str, ...]], bool] = {}

    @staticmethod
    def is_present(path: Optional[Path]) -> bool:
        return path is not None and Path(path).is_file()

    @staticmethod
    def is_executable(path: Optional[Path]) -> bool:
        """Check that a path is a regular file with execute permission."""
        if path is None:
            return False
        path = Path(path)
        return path.is_file() and os.access(path, os.X_OK)

    def is_functional(self, path: Optional[Path], args: Sequence[str] = ()) -> bool:
        """Run ``path *args`` and check for a zero exit code.

        Args:
            path: Tool executable
            args: Probe arguments (e.g. ["version"])

        Returns:
            True if the tool is executable and the probe succeeds
        """
        if not self.is_executable(path):
            return False

        key = (str(path), tuple(args))
        if key in self._results:
            return self._results[key]

        try:
            result = subprocess.run(
                [str(path), *args],
                capture_output=True,
                text=True,
                timeout=self.probe_timeout,
            )
            ok = result.returncode == 0
        except (OSError, subprocess.TimeoutExpired):
            ok = False

        self._results[key] = ok
        return ok

    def forget(self, path: Optional[Path] = None) -> None:
        """Drop memoized probe results (all, or for one path)."""
        if path is None:
            self._results.clear()
            return
        for key in [k for k in self._results if k[0] == str(path)]:
            del self._results[key]

    @staticmethod
    def find_on_path(name: str, extra_dirs: Iterable[Path] = ()) -> Optional[Path]:
        """Find an executable in extra directories, then on PATH.

        Args:
            name: Executable name
            extra_dirs: Directories searched before PATH

        Returns:
            Path to the executable, or None if not found
        """
        for directory in extra_dirs:
            candidate = Path(directory) / name
            if ToolProbe.is_executable(candidate):
                return candidate

        found = shutil.which(name)
        return Path(found) if found else None

    def verify_required(self, tools: Dict[str, Optional[Path]]) -> Tuple[bool, List[str]]:
        """Check that every named tool is executable.

        Args:
            tools: Mapping of tool name to path (None for unknown)

        Returns:
            Tuple of (all_usable, missing_tool_names)
        """
        missing = [name for name, path in tools.items() if not self.is_executable(path)]
        return (len(missing) == 0, missing)
