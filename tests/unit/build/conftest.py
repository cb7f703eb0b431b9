"""Shared fixtures for build pipeline tests."""

from unittest.mock import Mock

import pytest

from pocketbuild.build.context import BuildSession
from pocketbuild.build.errors import BuildCancelledError
from pocketbuild.build.process_runner import ProcessResult
from pocketbuild.config.project_config import ProjectConfig


class FakeRunner:
    """Records commands instead of running them.

    ``handler`` receives the command (as strings) and may return a
    ProcessResult; any other return value means a silent, successful run.
    """

    def __init__(self):
        self.commands = []
        self.handler = None

    def run(self, command, timeout, token=None, cwd=None, env=None):
        cmd = [str(part) for part in command]
        self.commands.append(cmd)
        if token is not None and token.is_cancelled:
            raise BuildCancelledError()
        result = self.handler(cmd) if self.handler else None
        if not isinstance(result, ProcessResult):
            return ProcessResult(command=cmd, returncode=0, stdout="", stderr="", duration=0.0)
        return result


@pytest.fixture
def project_config(tmp_path):
    project_dir = tmp_path / "Demo"
    project_dir.mkdir()
    return ProjectConfig.create("Demo", "com.example.demo", project_dir)


@pytest.fixture
def release_config(project_config):
    return ProjectConfig.create(
        project_config.name, project_config.package, project_config.project_dir, debug=False
    )


@pytest.fixture
def toolchain():
    toolchain = Mock()
    toolchain.get_android_jar.return_value = None
    toolchain.has_minimum_tools.return_value = True
    toolchain.config.install_timeout = 5
    return toolchain


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def session(project_config, toolchain, runner):
    return BuildSession(project_config, toolchain, runner=runner)


@pytest.fixture
def release_session(release_config, toolchain, runner):
    return BuildSession(release_config, toolchain, runner=runner)
