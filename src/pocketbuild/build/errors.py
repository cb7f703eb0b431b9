"""Build error types.

Every failure inside the pipeline is classified by the phase it originated
in, so a build report can say where things went wrong and not only what.
"""

from enum import Enum
from typing import Optional


class BuildPhase(Enum):
    """Pipeline phase a failure originated in."""

    TOOLCHAIN = "toolchain"
    DEPENDENCIES = "dependencies"
    NATIVE = "native"
    KOTLIN = "kotlin"
    JAVA = "java"
    RESOURCES = "resources"
    CONVERSION = "dex"
    OPTIMIZATION = "r8"
    PACKAGING = "package"
    SIGNING = "sign"
    PIPELINE = "pipeline"


class BuildError(Exception):
    """Phase-tagged build failure.

    Attributes:
        phase: Phase the failure originated in
        message: Short description
        details: Optional multi-line diagnostics (e.g. compiler output)
        cause: Underlying exception, if any
    """

    def __init__(
        self,
        phase: BuildPhase,
        message: str,
        details: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        self.phase = phase
        self.message = message
        self.details = details
        self.cause = cause
        super().__init__(str(self))
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        text = f"[{self.phase.value}] {self.message}"
        if self.details:
            text += f"\n{self.details}"
        return text


class BuildCancelledError(BuildError):
    """Raised when a task observes the cancellation token."""

    def __init__(self, phase: BuildPhase = BuildPhase.PIPELINE, message: str = "Build cancelled"):
        super().__init__(phase, message)


class ProcessError(Exception):
    """Raised when an external process times out or cannot be started.

    Attributes:
        command: Command line that failed
        output: Combined output captured before the failure
    """

    def __init__(self, message: str, command=None, output: str = ""):
        super().__init__(message)
        self.command = list(command or [])
        self.output = output
