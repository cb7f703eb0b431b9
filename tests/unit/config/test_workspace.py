"""Unit tests for project scaffolding."""

import pytest

from pocketbuild.config import ConfigError, ProjectConfig
from pocketbuild.config.workspace import create_project


class TestCreateProject:
    """Test cases for create_project()."""

    def test_java_project_layout(self, tmp_path):
        """Test that a Java project has every required file."""
        config = create_project(tmp_path, "Hello", "com.example.hello")

        activity = config.source_dir / "com" / "example" / "hello" / "MainActivity.java"
        assert activity.is_file()
        assert "package com.example.hello;" in activity.read_text(encoding="utf-8")
        assert config.manifest_file.is_file()
        assert (config.resources_dir / "layout" / "activity_main.xml").is_file()
        assert (config.resources_dir / "values" / "strings.xml").is_file()
        assert (config.resources_dir / "values" / "styles.xml").is_file()
        assert (config.project_dir / "project.json").is_file()

    def test_kotlin_project(self, tmp_path):
        """Test that the Kotlin template writes a .kt activity."""
        config = create_project(tmp_path, "Hello", "com.example.hello", kotlin=True)
        package_dir = config.source_dir / "com" / "example" / "hello"
        assert (package_dir / "MainActivity.kt").is_file()
        assert not (package_dir / "MainActivity.java").exists()
        assert '"language": "kotlin"' in (config.project_dir / "project.json").read_text(
            encoding="utf-8"
        )

    def test_descriptor_round_trip(self, tmp_path):
        """Test that the written descriptor loads back into the same config."""
        created = create_project(tmp_path, "Hello", "com.example.hello", min_sdk=24, target_sdk=33)
        loaded = ProjectConfig.from_project_dir(created.project_dir)
        assert loaded.name == "Hello"
        assert loaded.package == "com.example.hello"
        assert loaded.min_sdk == 24
        assert loaded.target_sdk == 33
        assert loaded.main_activity == "com.example.hello.MainActivity"

    def test_invalid_package(self, tmp_path):
        """Test that a malformed package identifier is rejected."""
        with pytest.raises(ConfigError, match="Invalid package"):
            create_project(tmp_path, "Hello", "Hello")

    def test_invalid_name(self, tmp_path):
        """Test that a name starting with a digit is rejected."""
        with pytest.raises(ConfigError, match="Invalid project name"):
            create_project(tmp_path, "1app", "com.example.app")

    def test_existing_directory(self, tmp_path):
        """Test that an existing directory is never overwritten."""
        (tmp_path / "Hello").mkdir()
        with pytest.raises(ConfigError, match="already exists"):
            create_project(tmp_path, "Hello", "com.example.hello")
