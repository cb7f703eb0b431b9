"""Unit tests for toolchain configuration."""

from pathlib import Path

from pocketbuild.config import ToolchainConfig


class TestToolchainConfig:
    """Test cases for ToolchainConfig."""

    def test_defaults(self):
        """Test default versions and mirrors."""
        config = ToolchainConfig()
        assert config.sdk_root is None
        assert config.build_tools_version == "34.0.0"
        assert config.platform_api == 34
        assert config.install_timeout == 600.0
        assert len(config.ndk_urls) >= 2

    def test_url_lists_not_shared(self):
        """Test that each instance gets its own mirror list."""
        a = ToolchainConfig()
        b = ToolchainConfig()
        a.sdk_tools_urls.append("https://mirror.invalid/tools.zip")
        assert "https://mirror.invalid/tools.zip" not in b.sdk_tools_urls

    def test_from_env(self, monkeypatch, tmp_path):
        """Test environment variable overrides."""
        monkeypatch.setenv("POCKETBUILD_SDK_ROOT", str(tmp_path / "sdk"))
        monkeypatch.setenv("POCKETBUILD_ASSETS_DIR", str(tmp_path / "assets"))
        monkeypatch.setenv("POCKETBUILD_HOST_PREFIX", str(tmp_path / "usr"))

        config = ToolchainConfig.from_env()
        assert config.sdk_root == tmp_path / "sdk"
        assert config.assets_dir == tmp_path / "assets"
        assert config.host_prefix == tmp_path / "usr"

    def test_explicit_overrides_beat_env(self, monkeypatch, tmp_path):
        """Test that keyword overrides take precedence over the environment."""
        monkeypatch.setenv("POCKETBUILD_SDK_ROOT", str(tmp_path / "env-sdk"))
        config = ToolchainConfig.from_env(sdk_root=Path("/opt/sdk"), install_timeout=5.0)
        assert config.sdk_root == Path("/opt/sdk")
        assert config.install_timeout == 5.0
