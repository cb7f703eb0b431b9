"""
Project configuration for Android application builds.

This module provides the immutable project descriptor consumed by every
build task, along with a loader for the lightweight project.json
descriptor that sits at the root of a project directory.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple


class ConfigError(Exception):
    """Raised when a project configuration is invalid."""

    pass


DEFAULT_ABIS = ("arm64-v8a", "armeabi-v7a")


@dataclass(frozen=True)
class ProjectConfig:
    """
    Immutable descriptor for one build invocation.

    Derived paths follow the conventional Android Gradle layout:
        <project>/
        ├── project.json
        ├── src/main/
        │   ├── AndroidManifest.xml
        │   ├── java/
        │   ├── kotlin/
        │   ├── res/
        │   ├── jni/ or cpp/
        │   └── jniLibs/
        └── build/
            ├── intermediates/
            └── outputs/

    Usage:
        config = ProjectConfig.create(
            name="HelloWorld",
            package="com.example.hello",
            project_dir=Path("HelloWorld"),
        )
    """

    name: str
    package: str
    project_dir: Path
    min_sdk: int = 26
    target_sdk: int = 34
    version_code: int = 1
    version_name: str = "1.0"
    debug: bool = True
    enable_native: bool = True
    abis: Tuple[str, ...] = DEFAULT_ABIS
    main_activity: Optional[str] = None
    output_override: Optional[Path] = field(default=None, compare=False)

    @classmethod
    def create(
        cls,
        name: Optional[str],
        package: Optional[str],
        project_dir: Optional[Path],
        **kwargs,
    ) -> "ProjectConfig":
        """Validate inputs and create a project configuration.

        Args:
            name: Application name (used for the output archive name)
            package: Application package identifier
            project_dir: Project root directory
            **kwargs: Optional overrides for the remaining fields

        Returns:
            ProjectConfig instance

        Raises:
            ConfigError: If a required field is missing or a value is invalid
        """
        if not name or not name.strip():
            raise ConfigError("Project name is required")
        if not package or not package.strip():
            raise ConfigError("Package name is required")
        if project_dir is None or not str(project_dir).strip():
            raise ConfigError("Project directory is required")

        abis = kwargs.pop("abis", DEFAULT_ABIS)
        kwargs["abis"] = tuple(abis)

        output_dir = kwargs.pop("output_dir", None)
        if output_dir is not None:
            kwargs["output_override"] = Path(output_dir)

        config = cls(
            name=name.strip(),
            package=package.strip(),
            project_dir=Path(project_dir).resolve(),
            **kwargs,
        )

        if config.min_sdk > config.target_sdk:
            raise ConfigError(
                f"minSdk ({config.min_sdk}) cannot exceed targetSdk ({config.target_sdk})"
            )

        return config

    @classmethod
    def from_project_dir(
        cls, project_dir: Path, debug: bool = True, **kwargs
    ) -> "ProjectConfig":
        """Load configuration from a project directory's project.json.

        Falls back to the directory name and a com.example package when the
        descriptor is missing or incomplete.

        Args:
            project_dir: Project root directory
            debug: Whether to produce a debug build
            **kwargs: Overrides applied after the descriptor is read

        Returns:
            ProjectConfig instance

        Raises:
            ConfigError: If the resulting configuration is invalid
        """
        project_dir = Path(project_dir)
        descriptor = project_dir / "project.json"

        values = {}
        if descriptor.exists():
            values = parse_project_descriptor(descriptor.read_text(encoding="utf-8"))

        name = values.pop("name", None) or project_dir.resolve().name
        package = values.pop("package", None) or _default_package(name)

        values.update(kwargs)
        values["debug"] = debug
        return cls.create(name, package, project_dir, **values)

    # Derived paths

    @property
    def source_dir(self) -> Path:
        """Java (and mixed Kotlin) source root."""
        return self.project_dir / "src" / "main" / "java"

    @property
    def kotlin_dir(self) -> Path:
        """Dedicated Kotlin source root."""
        return self.project_dir / "src" / "main" / "kotlin"

    @property
    def resources_dir(self) -> Path:
        return self.project_dir / "src" / "main" / "res"

    @property
    def manifest_file(self) -> Path:
        return self.project_dir / "src" / "main" / "AndroidManifest.xml"

    @property
    def jni_dir(self) -> Path:
        return self.project_dir / "src" / "main" / "jni"

    @property
    def cpp_dir(self) -> Path:
        return self.project_dir / "src" / "main" / "cpp"

    @property
    def native_source_dirs(self) -> Tuple[Path, ...]:
        return (self.jni_dir, self.cpp_dir)

    @property
    def jni_libs_dir(self) -> Path:
        """Prebuilt native libraries shipped with the project sources."""
        return self.project_dir / "src" / "main" / "jniLibs"

    @property
    def libs_dir(self) -> Path:
        """Project-local library directory (prebuilt jars and .so files)."""
        return self.project_dir / "libs"

    @property
    def build_dir(self) -> Path:
        return self.project_dir / "build"

    @property
    def intermediates_dir(self) -> Path:
        return self.build_dir / "intermediates"

    @property
    def native_libs_dir(self) -> Path:
        return self.intermediates_dir / "native_libs"

    @property
    def output_dir(self) -> Path:
        if self.output_override is not None:
            return self.output_override
        return self.build_dir / "outputs"

    @property
    def output_apk(self) -> Path:
        """Deterministic path of the signed application archive."""
        suffix = "debug" if self.debug else "release"
        return self.output_dir / f"{self.name}-{suffix}.apk"

    @property
    def build_type(self) -> str:
        return "debug" if self.debug else "release"


_STRING_FIELDS = {
    "name": "name",
    "package": "package",
    "versionName": "version_name",
    "mainActivity": "main_activity",
}

_INT_FIELDS = {
    "minSdk": "min_sdk",
    "targetSdk": "target_sdk",
    "versionCode": "version_code",
}


def parse_project_descriptor(text: str) -> dict:
    """Extract known keys from a project.json descriptor.

    The descriptor is matched with patterns rather than parsed as JSON, so
    hand-edited files with trailing commas or comments still load.

    Args:
        text: Descriptor file contents

    Returns:
        Dictionary of ProjectConfig keyword arguments found in the text
    """
    values = {}

    for key, attr in _STRING_FIELDS.items():
        match = re.search(rf'"{key}"\s*:\s*"([^"]+)"', text)
        if match:
            values[attr] = match.group(1)

    for key, attr in _INT_FIELDS.items():
        match = re.search(rf'"{key}"\s*:\s*(\d+)', text)
        if match:
            values[attr] = int(match.group(1))

    return values


def _default_package(name: str) -> str:
    cleaned = re.sub(r"[^a-z0-9]", "", name.lower()) or "app"
    if cleaned[0].isdigit():
        cleaned = "app" + cleaned
    return f"com.example.{cleaned}"
