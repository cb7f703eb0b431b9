"""Unit tests for dependency coordinates and declaration parsing."""

from pathlib import Path

import pytest

from pocketbuild.packages.dependency import (
    Dependency,
    DependencyError,
    collect_project_dependencies,
    parse_dependency_list,
    parse_gradle,
)


class TestDependencyParse:
    """Test cases for Dependency.parse."""

    def test_parse_basic(self):
        dep = Dependency.parse("androidx.core:core:1.12.0")
        assert dep.group == "androidx.core"
        assert dep.artifact == "core"
        assert dep.version == "1.12.0"
        assert dep.coordinate == "androidx.core:core:1.12.0"

    def test_parse_strips_packaging_hint(self):
        """Test that @aar and @jar suffixes are ignored."""
        assert Dependency.parse("com.example:lib:2.0@aar").coordinate == "com.example:lib:2.0"
        assert Dependency.parse("com.example:lib:2.0@jar").version == "2.0"

    def test_parse_with_classifier(self):
        dep = Dependency.parse("com.example:lib:2.0:sources")
        assert dep.coordinate == "com.example:lib:2.0"

    @pytest.mark.parametrize(
        "text",
        ["", "com.example", "com.example:lib", "com.example::1.0", "a:b:c:d:e"],
    )
    def test_parse_invalid(self, text):
        with pytest.raises(DependencyError):
            Dependency.parse(text)

    @pytest.mark.parametrize(
        "text",
        [
            "com.example:../../evil:1.0",
            "com..example:lib:1.0",
            "com.example:lib:1.0/../../x",
            "com.example:lib\\x:1.0",
            "/etc:lib:1.0",
            "com.example:lib:..",
        ],
    )
    def test_parse_rejects_path_segments(self, text):
        """Test that coordinates cannot escape the repository layout."""
        with pytest.raises(DependencyError):
            Dependency.parse(text)

    def test_equality_ignores_scope(self):
        """Test that the declaring scope does not affect identity."""
        a = Dependency.parse("com.example:lib:1.0", "implementation")
        b = Dependency.parse("com.example:lib:1.0", "api")
        assert a == b
        assert len({a, b}) == 1

    def test_layout_paths(self):
        dep = Dependency.parse("com.squareup.okio:okio:3.6.0")
        assert dep.relative_dir == Path("com/squareup/okio/okio/3.6.0")
        assert dep.relative_path("jar") == Path("com/squareup/okio/okio/3.6.0/okio-3.6.0.jar")
        assert dep.remote_path("aar") == "com/squareup/okio/okio/3.6.0/okio-3.6.0.aar"

    def test_test_scope(self):
        assert Dependency.parse("junit:junit:4.13.2", "testImplementation").is_test_scope
        assert not Dependency.parse("junit:junit:4.13.2").is_test_scope


class TestParseGradle:
    """Test cases for build file parsing."""

    def test_groovy_dsl(self):
        text = """
        dependencies {
            implementation 'androidx.appcompat:appcompat:1.6.1'
            api "com.google.code.gson:gson:2.10.1"
            compileOnly 'org.jetbrains:annotations:24.0.1'
            testImplementation 'junit:junit:4.13.2'
        }
        """
        deps = parse_gradle(text)
        assert [d.coordinate for d in deps] == [
            "androidx.appcompat:appcompat:1.6.1",
            "com.google.code.gson:gson:2.10.1",
            "org.jetbrains:annotations:24.0.1",
            "junit:junit:4.13.2",
        ]
        assert deps[-1].is_test_scope

    def test_kotlin_dsl(self):
        text = """
        dependencies {
            implementation("com.squareup.okhttp3:okhttp:4.12.0")
            runtimeOnly("org.slf4j:slf4j-simple:2.0.9")
        }
        """
        deps = parse_gradle(text)
        assert [d.coordinate for d in deps] == [
            "com.squareup.okhttp3:okhttp:4.12.0",
            "org.slf4j:slf4j-simple:2.0.9",
        ]

    def test_skips_project_references(self):
        text = """
        implementation project(':core')
        implementation files('libs/local.jar')
        implementation 'com.example:lib:1.0'
        """
        assert [d.coordinate for d in parse_gradle(text)] == ["com.example:lib:1.0"]

    def test_deduplicates(self):
        text = """
        implementation 'com.example:lib:1.0'
        api 'com.example:lib:1.0'
        """
        assert len(parse_gradle(text)) == 1


class TestParseDependencyList:
    """Test cases for dependencies.txt parsing."""

    def test_comments_and_blank_lines(self):
        text = "\n".join(
            [
                "# libraries",
                "com.example:one:1.0",
                "",
                "// legacy",
                "com.example:two:2.0@aar",
                "not-a-coordinate",
            ]
        )
        deps = parse_dependency_list(text)
        assert [d.coordinate for d in deps] == ["com.example:one:1.0", "com.example:two:2.0"]

    def test_skips_path_traversal(self):
        deps = parse_dependency_list("com.example:ok:1.0\ncom.example:../../../tmp/x:1.0\n")
        assert [d.coordinate for d in deps] == ["com.example:ok:1.0"]


class TestCollectProjectDependencies:
    """Test cases for collect_project_dependencies."""

    def test_collects_from_every_file(self, tmp_path):
        (tmp_path / "app").mkdir()
        (tmp_path / "build.gradle").write_text("implementation 'com.example:root:1.0'\n")
        (tmp_path / "app" / "build.gradle.kts").write_text(
            'implementation("com.example:app:1.0")\n'
            'testImplementation("junit:junit:4.13.2")\n'
        )
        (tmp_path / "dependencies.txt").write_text("com.example:root:1.0\ncom.example:list:1.0\n")

        deps = collect_project_dependencies(tmp_path)
        assert [d.coordinate for d in deps] == [
            "com.example:root:1.0",
            "com.example:app:1.0",
            "com.example:list:1.0",
        ]

    def test_include_test_scope(self, tmp_path):
        (tmp_path / "build.gradle").write_text("testImplementation 'junit:junit:4.13.2'\n")
        assert collect_project_dependencies(tmp_path) == []
        assert len(collect_project_dependencies(tmp_path, include_test=True)) == 1

    def test_empty_project(self, tmp_path):
        assert collect_project_dependencies(tmp_path) == []
