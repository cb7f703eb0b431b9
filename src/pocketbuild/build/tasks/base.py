"""Task and strategy base classes.

A Task is one swappable pipeline step. Tasks with several ways of getting
their job done hold an ordered list of Strategy objects; the first strategy
whose tools are available decides the outcome:

    SUCCESS      the task succeeded
    FAILED       the tool ran and rejected the input (e.g. compile errors);
                 trying another tool would not help
    UNAVAILABLE  the tool is missing; fall through to the next strategy

When every strategy is unavailable the task raises a phase-tagged
BuildError, since none of the steps has a silent-skip behaviour.
"""

import os
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Sequence, Tuple

from pocketbuild.build.context import BuildSession
from pocketbuild.build.errors import BuildError, BuildPhase


class StrategyOutcome(Enum):
    SUCCESS = "success"
    FAILED = "failed"
    UNAVAILABLE = "unavailable"


class Strategy:
    """One rung of a task's fallback ladder."""

    name = "strategy"

    def execute(self, session: BuildSession) -> StrategyOutcome:
        raise NotImplementedError


class Task:
    """A single pipeline step.

    Subclasses implement execute(). They may raise BuildError for classified
    failures and must poll ``session.token`` between units of work.
    """

    name = "Task"
    phase = BuildPhase.PIPELINE

    def __init__(self):
        self.cancel_requested = False

    def execute(self, session: BuildSession) -> bool:
        """Run the task.

        Returns:
            True on success, False on failure (details in session.errors)

        Raises:
            BuildError: For classified, phase-tagged failures
        """
        raise NotImplementedError

    def cancel(self) -> None:
        """Stop this task at its next cancellation poll.

        Live processes are only killed when the whole build is cancelled
        through its token.
        """
        self.cancel_requested = True

    def report_progress(self, session: BuildSession, percent: int, message: str) -> None:
        session.progress(percent, message)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"


def run_strategies(
    session: BuildSession,
    strategies: Sequence[Strategy],
    phase: BuildPhase,
    unavailable_message: str,
) -> bool:
    """Try each strategy in order until one is available.

    Returns:
        True on SUCCESS, False on FAILED

    Raises:
        BuildError: If every strategy reports UNAVAILABLE
        BuildCancelledError: If the build is cancelled between strategies
    """
    for strategy in strategies:
        session.check_cancelled(phase)
        outcome = strategy.execute(session)
        if outcome == StrategyOutcome.SUCCESS:
            session.log(f"{strategy.name}: success")
            return True
        if outcome == StrategyOutcome.FAILED:
            session.log(f"{strategy.name}: failed")
            return False
        session.log(f"{strategy.name}: not available, trying next option")

    raise BuildError(phase, unavailable_message)


def collect_sources(roots: Iterable[Path], extensions: Sequence[str]) -> List[Path]:
    """Recursively collect files with the given extensions under each root.

    Returns:
        Sorted, de-duplicated list of files
    """
    suffixes = tuple(extensions)
    found = set()
    for root in roots:
        root = Path(root)
        if not root.is_dir():
            continue
        for dirpath, _dirnames, filenames in os.walk(root):
            for filename in filenames:
                if filename.endswith(suffixes):
                    found.add((Path(dirpath) / filename).resolve())
    return sorted(found)


def classify_output(
    session: BuildSession,
    output: str,
    error_markers: Sequence[str] = ("error:",),
    warning_markers: Sequence[str] = ("warning:",),
    error_prefixes: Sequence[str] = (),
    warning_prefixes: Sequence[str] = (),
) -> Tuple[int, int]:
    """Sort tool output lines into errors, warnings and log lines.

    Classification is by substring match, which is what compiler output
    formats have in common.

    Returns:
        Tuple of (error_count, warning_count)
    """
    errors = 0
    warnings = 0
    for line in output.splitlines():
        text = line.rstrip()
        if not text:
            continue
        if text.startswith(tuple(error_prefixes)) or any(m in text for m in error_markers):
            session.error(text)
            errors += 1
        elif text.startswith(tuple(warning_prefixes)) or any(
            m in text for m in warning_markers
        ):
            session.warning(text)
            warnings += 1
        else:
            session.log(text)
    return errors, warnings


def write_argfile(path: Path, files: Iterable[Path]) -> Path:
    """Write an @argfile listing one (quoted) path per line."""
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = []
    for f in files:
        text = str(f).replace("\\", "/")
        lines.append(f'"{text}"' if " " in text else text)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path
