"""Dependency resolution task."""

from typing import Optional

from pocketbuild.build.context import DEPENDENCY_CLASSPATH, DEPENDENCY_JARS, BuildSession
from pocketbuild.build.errors import BuildPhase
from pocketbuild.build.tasks.base import Task
from pocketbuild.packages.dependency import collect_project_dependencies
from pocketbuild.packages.dependency_resolver import DependencyResolver


class ResolveDependenciesTask(Task):
    """Resolve declared library coordinates to local jars.

    Individual resolution failures are downgraded to warnings; the compile
    step reports any missing classes with a precise message.
    """

    name = "Resolve dependencies"
    phase = BuildPhase.DEPENDENCIES

    def __init__(self, resolver: Optional[DependencyResolver] = None):
        super().__init__()
        self.resolver = resolver

    def _make_resolver(self, session: BuildSession) -> DependencyResolver:
        if self.resolver is not None:
            return self.resolver
        return DependencyResolver(
            cache_dir=session.toolchain.cache.dependencies_dir,
            user_agent=session.toolchain.config.user_agent,
        )

    def execute(self, session: BuildSession) -> bool:
        config = session.config

        local_jars = sorted(config.libs_dir.glob("*.jar")) if config.libs_dir.is_dir() else []
        if local_jars:
            session.log(f"Found {len(local_jars)} local jar(s) in {config.libs_dir.name}/")

        dependencies = collect_project_dependencies(config.project_dir)
        if not dependencies:
            session.log("No external dependencies declared")
            resolved = []
        else:
            session.log(f"Resolving {len(dependencies)} dependencies")
            resolver = self._make_resolver(session)
            resolver.on_failure = lambda dep, reason: session.warning(
                f"Could not resolve {dep}: {reason}"
            )
            resolver.log = session.log
            resolved = resolver.resolve_all(dependencies, session.token)
            session.check_cancelled(self.phase)
            session.log(f"Resolved {len(resolved)}/{len(dependencies)} dependencies")

        jars = local_jars + resolved
        session.put(DEPENDENCY_JARS, jars)
        session.put(DEPENDENCY_CLASSPATH, DependencyResolver.build_classpath(jars))
        return True
