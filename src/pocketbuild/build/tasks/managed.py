"""Shared behaviour of the managed-language (Kotlin, Java) compile tasks.

Both tasks collect their sources, ask the incremental cache what changed,
skip the compiler when nothing did, and otherwise compile the whole source
set into a task-owned class directory through their strategy ladder.
"""

import shutil
import time
from pathlib import Path
from typing import List, Sequence

from pocketbuild.build.context import CLASS_DIRS, DEPENDENCY_JARS, BuildSession
from pocketbuild.build.errors import BuildError, ProcessError
from pocketbuild.build.incremental_cache import ChangeSet
from pocketbuild.build.tasks.base import Strategy, Task, collect_sources, run_strategies

STAMP_FILE = ".compiled"


def merge_changes(changesets: Sequence[ChangeSet]) -> ChangeSet:
    merged = ChangeSet()
    for changes in changesets:
        merged.added += changes.added
        merged.modified += changes.modified
        merged.deleted += changes.deleted
        merged.unchanged += changes.unchanged
    return merged


def managed_source_roots(session: BuildSession) -> List[Path]:
    """Every directory whose files the shared incremental cache may track."""
    return [session.config.source_dir, session.config.kotlin_dir, session.generated_dir]


def newest_mtime(paths: Sequence[Path]) -> float:
    """Newest modification time among existing files (recursing into dirs)."""
    newest = 0.0
    for path in paths:
        path = Path(path)
        if path.is_file():
            newest = max(newest, path.stat().st_mtime)
        elif path.is_dir():
            for child in path.rglob("*"):
                if child.is_file():
                    newest = max(newest, child.stat().st_mtime)
    return newest


class ManagedCompileTask(Task):
    """Base class for tasks compiling JVM-language sources."""

    label = "Managed"
    extensions: Sequence[str] = ()

    def source_roots(self, session: BuildSession) -> List[Path]:
        raise NotImplementedError

    def output_dir(self, session: BuildSession) -> Path:
        raise NotImplementedError

    def upstream_inputs(self, session: BuildSession) -> List[Path]:
        """Files whose change forces a recompile even if sources are unchanged."""
        return list(session.get(DEPENDENCY_JARS, list, []))

    def strategies(self, session: BuildSession, sources: List[Path]) -> List[Strategy]:
        raise NotImplementedError

    def compile_classpath(self, session: BuildSession) -> List[Path]:
        """Libraries and earlier class directories visible to the compiler."""
        classpath: List[Path] = []
        android_jar = session.android_jar
        if android_jar is not None:
            classpath.append(android_jar)
        classpath.extend(session.get(DEPENDENCY_JARS, list, []))
        for class_dir in session.get(CLASS_DIRS, list, []):
            if Path(class_dir) != self.output_dir(session):
                classpath.append(Path(class_dir))
        return classpath

    def is_up_to_date(self, session: BuildSession, changes: ChangeSet) -> bool:
        if session.full_rebuild or changes.has_changes:
            return False
        stamp = self.output_dir(session) / STAMP_FILE
        if not stamp.is_file():
            return False
        return newest_mtime(self.upstream_inputs(session)) <= stamp.stat().st_mtime

    def execute(self, session: BuildSession) -> bool:
        roots = self.source_roots(session)
        sources = collect_sources(roots, self.extensions)
        if not sources:
            session.log(f"No {self.label} sources found")
            return True

        changes = merge_changes(
            [session.cache.analyze_changes(root, self.extensions) for root in roots if root.is_dir()]
        )
        out_dir = self.output_dir(session)

        if self.is_up_to_date(session, changes):
            session.log(f"{self.label} sources up to date ({len(sources)} files)")
            session.add_class_dir(out_dir)
            return True

        session.log(f"Compiling {len(sources)} {self.label} files ({changes.describe()})")
        if out_dir.exists():
            shutil.rmtree(out_dir)
        out_dir.mkdir(parents=True)

        try:
            ok = run_strategies(
                session,
                self.strategies(session, sources),
                self.phase,
                f"No {self.label} compiler available",
            )
        except ProcessError as e:
            session.cache.invalidate()
            raise BuildError(self.phase, f"{self.label} compiler failed: {e}", e.output, e)
        except BuildError:
            session.cache.invalidate()
            raise

        if not ok:
            session.cache.invalidate()
            return False

        (out_dir / STAMP_FILE).write_text(str(time.time()), encoding="utf-8")
        pruned = session.cache.cleanup_stale_entries(*managed_source_roots(session))
        if pruned:
            session.log(f"Dropped {pruned} stale cache entries")
        session.cache.save()
        session.add_class_dir(out_dir)
        return True


class CompilerStrategy(Strategy):
    """Common state for a compiler invocation."""

    timeout = 300

    def __init__(self, task: ManagedCompileTask, sources: List[Path]):
        self.task = task
        self.sources = sources

    def argfile(self, session: BuildSession) -> Path:
        return session.intermediates_dir / f"{self.task.label.lower()}-sources.txt"
