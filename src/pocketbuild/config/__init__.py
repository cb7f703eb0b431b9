"""Configuration for PocketBuild projects and toolchains."""

from pocketbuild.config.project_config import ConfigError, ProjectConfig
from pocketbuild.config.toolchain_config import ToolchainConfig

__all__ = ["ConfigError", "ProjectConfig", "ToolchainConfig"]
