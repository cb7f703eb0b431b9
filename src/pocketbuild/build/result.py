"""Build result types."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional


class BuildStatus(Enum):
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class BuildResult:
    """Outcome of one pipeline run.

    Exactly one status is set. Warnings and logs accompany every status so a
    caller can render a full report regardless of outcome.
    """

    status: BuildStatus
    output_path: Optional[Path] = None
    build_time: float = 0.0
    message: str = ""
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    logs: List[str] = field(default_factory=list)

    @classmethod
    def succeeded(cls, output_path: Path, build_time: float, **kwargs) -> "BuildResult":
        return cls(
            status=BuildStatus.SUCCESS,
            output_path=output_path,
            build_time=build_time,
            message="Build successful",
            **kwargs,
        )

    @classmethod
    def failed(cls, message: str, errors: Optional[List[str]] = None, **kwargs) -> "BuildResult":
        return cls(
            status=BuildStatus.FAILED,
            message=message,
            errors=list(errors or []),
            **kwargs,
        )

    @classmethod
    def cancelled(cls, **kwargs) -> "BuildResult":
        return cls(status=BuildStatus.CANCELLED, message="Build cancelled", **kwargs)

    @property
    def success(self) -> bool:
        return self.status == BuildStatus.SUCCESS

    @property
    def is_cancelled(self) -> bool:
        return self.status == BuildStatus.CANCELLED

    def get_summary(self) -> str:
        """Render a human-readable build report."""
        lines = []
        if self.status == BuildStatus.SUCCESS:
            lines.append("BUILD SUCCESSFUL")
            lines.append(f"Output: {self.output_path}")
            lines.append(f"Time: {self.build_time:.2f}s")
        elif self.status == BuildStatus.CANCELLED:
            lines.append("BUILD CANCELLED")
        else:
            lines.append("BUILD FAILED")
            lines.append(self.message)

        if self.errors:
            lines.append("")
            lines.append(f"Errors ({len(self.errors)}):")
            lines.extend(f"  - {e}" for e in self.errors)

        if self.warnings:
            lines.append("")
            lines.append(f"Warnings ({len(self.warnings)}):")
            lines.extend(f"  - {w}" for w in self.warnings)

        return "\n".join(lines)
