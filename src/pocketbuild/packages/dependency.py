"""Maven-style dependency coordinates and declaration parsing.

Dependencies are flat (group, artifact, version) coordinates. They are read
from conventional Gradle build files with regular expressions, and from a
plain dependencies.txt list, without evaluating any build script.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List


class DependencyError(Exception):
    """Raised for malformed dependency coordinates."""

    pass


# Gradle configurations that do not belong on the build classpath
TEST_SCOPES = ("testImplementation", "androidTestImplementation")

_GROOVY_RE = re.compile(
    r"(implementation|api|compileOnly|runtimeOnly|testImplementation|androidTestImplementation)"
    r"\s*\(?\s*['\"]([^'\"]+)['\"]"
)
_KOTLIN_DSL_RE = re.compile(
    r"(implementation|api|compileOnly|runtimeOnly)\s*\(\s*['\"]([^'\"]+)['\"]\s*\)"
)

BUILD_FILES = (
    "build.gradle",
    "build.gradle.kts",
    "app/build.gradle",
    "app/build.gradle.kts",
)
DEPENDENCY_LIST_FILE = "dependencies.txt"


def _unsafe_segment(part: str) -> bool:
    """Segments become cache path components and must stay inside the cache."""
    return (
        not part
        or "/" in part
        or "\\" in part
        or ".." in part
        or part == "."
        or Path(part).is_absolute()
    )


@dataclass(frozen=True)
class Dependency:
    """A (group, artifact, version) coordinate.

    Equality and hashing use the coordinate string only; the declaring scope
    is informational.
    """

    group: str
    artifact: str
    version: str
    scope: str = field(default="implementation", compare=False, hash=False)

    def __post_init__(self):
        for part in (self.group, self.artifact, self.version):
            if _unsafe_segment(part):
                raise DependencyError(f"Unsafe dependency coordinate segment: {part!r}")

    @classmethod
    def parse(cls, coordinate: str, scope: str = "implementation") -> "Dependency":
        """Parse a ``group:artifact:version`` string.

        A trailing ``@aar``/``@jar`` packaging hint and a classifier segment
        are accepted and ignored.

        Raises:
            DependencyError: If the coordinate is malformed or a segment is a path
        """
        text = coordinate.strip()
        if "@" in text:
            text = text.split("@", 1)[0]

        parts = text.split(":")
        if len(parts) not in (3, 4) or not all(p.strip() for p in parts):
            raise DependencyError(f"Invalid dependency coordinate: {coordinate!r}")

        group, artifact, version = (p.strip() for p in parts[:3])
        return cls(group=group, artifact=artifact, version=version, scope=scope)

    @property
    def coordinate(self) -> str:
        return f"{self.group}:{self.artifact}:{self.version}"

    @property
    def base_name(self) -> str:
        return f"{self.artifact}-{self.version}"

    @property
    def relative_dir(self) -> Path:
        """Repository-layout directory, e.g. com/example/lib/1.0."""
        return Path(*self.group.split(".")) / self.artifact / self.version

    def relative_path(self, extension: str) -> Path:
        """Cache-relative path of the artifact file with the given extension."""
        return self.relative_dir / f"{self.base_name}.{extension}"

    def remote_path(self, extension: str) -> str:
        """Repository URL path (always forward slashes)."""
        return "/".join(
            [*self.group.split("."), self.artifact, self.version, f"{self.base_name}.{extension}"]
        )

    @property
    def is_test_scope(self) -> bool:
        return self.scope in TEST_SCOPES

    def __str__(self) -> str:
        return self.coordinate


def _add(found: List[Dependency], coordinate: str, scope: str) -> None:
    try:
        found.append(Dependency.parse(coordinate, scope))
    except DependencyError:
        # Project references (project(':lib')) and file deps are not coordinates
        pass


def parse_gradle(text: str) -> List[Dependency]:
    """Extract quoted coordinates from a Groovy or Kotlin DSL build file."""
    found: List[Dependency] = []
    for match in _GROOVY_RE.finditer(text):
        _add(found, match.group(2), match.group(1))
    for match in _KOTLIN_DSL_RE.finditer(text):
        _add(found, match.group(2), match.group(1))
    return dedupe(found)


def parse_dependency_list(text: str) -> List[Dependency]:
    """Parse one coordinate per line; '#' and '//' lines are comments."""
    found: List[Dependency] = []
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or line.startswith("//"):
            continue
        _add(found, line, "implementation")
    return dedupe(found)


def dedupe(dependencies: Iterable[Dependency]) -> List[Dependency]:
    """Remove duplicate coordinates, keeping first-seen order."""
    seen = set()
    result = []
    for dep in dependencies:
        if dep in seen:
            continue
        seen.add(dep)
        result.append(dep)
    return result


def collect_project_dependencies(
    project_dir: Path, include_test: bool = False
) -> List[Dependency]:
    """Gather declared dependencies from every known declaration file.

    Args:
        project_dir: Project root directory
        include_test: Keep test-scope declarations

    Returns:
        Deduplicated list of dependencies
    """
    project_dir = Path(project_dir)
    found: List[Dependency] = []

    for name in BUILD_FILES:
        path = project_dir / name
        if path.is_file():
            found.extend(parse_gradle(path.read_text(encoding="utf-8", errors="replace")))

    list_file = project_dir / DEPENDENCY_LIST_FILE
    if list_file.is_file():
        found.extend(parse_dependency_list(list_file.read_text(encoding="utf-8")))

    if not include_test:
        found = [d for d in found if not d.is_test_scope]

    return dedupe(found)

