"""Incremental build cache.

Tracks a cheap identity token (path + size + modification time) for every
source file seen by a compile task, so the next build can tell which files
were added, modified, deleted or left unchanged. A content hash would be
more precise but would read every source file on every build.

A coarse configuration hash (package, platform versions, debug flag) acts as
a trip wire: when it changes, every prior entry is discarded and the next
analysis reports a full rebuild.

The table is persisted as JSON and written atomically (temp file + replace).
"""

import hashlib
import json
import logging
import os
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List

from pocketbuild.config.project_config import ProjectConfig


@dataclass
class CacheEntry:
    """Identity of one source file at the time it was last compiled."""

    path: str
    size: int
    mtime_ns: int

    @property
    def identity(self) -> str:
        return f"{self.path}_{self.size}_{self.mtime_ns}"

    @classmethod
    def from_file(cls, path: Path) -> "CacheEntry":
        st = path.stat()
        return cls(path=str(path.resolve()), size=st.st_size, mtime_ns=st.st_mtime_ns)

    def to_dict(self) -> Dict[str, Any]:
        return {"path": self.path, "size": self.size, "mtime_ns": self.mtime_ns}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheEntry":
        return cls(path=data["path"], size=int(data["size"]), mtime_ns=int(data["mtime_ns"]))


@dataclass
class ChangeSet:
    """Classification of a source tree against the cache."""

    added: List[Path] = field(default_factory=list)
    modified: List[Path] = field(default_factory=list)
    deleted: List[Path] = field(default_factory=list)
    unchanged: List[Path] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.modified or self.deleted)

    @property
    def changed_files(self) -> List[Path]:
        return self.added + self.modified

    def describe(self) -> str:
        return (
            f"{len(self.added)} added, {len(self.modified)} modified, "
            f"{len(self.deleted)} deleted, {len(self.unchanged)} unchanged"
        )


def config_hash(config: ProjectConfig) -> str:
    """Hash the configuration inputs that invalidate incrementality."""
    key = f"{config.package}|{config.min_sdk}|{config.target_sdk}|{config.debug}"
    return hashlib.md5(key.encode("utf-8")).hexdigest()


class IncrementalBuildCache:
    """Persisted table of source file identities for one project."""

    def __init__(self, cache_file: Path):
        """Initialize the cache, loading any persisted state.

        Args:
            cache_file: JSON file backing the cache
        """
        self.cache_file = Path(cache_file)
        self.lock = threading.Lock()
        self._entries: Dict[str, CacheEntry] = {}
        self._config_hash = ""
        self._last_updated = 0.0
        self._load()

    def _load(self) -> None:
        if not self.cache_file.exists():
            return

        try:
            with open(self.cache_file, "r", encoding="utf-8") as f:
                data = json.load(f)
            self._config_hash = data.get("config_hash", "")
            self._last_updated = float(data.get("last_updated", 0.0))
            self._entries = {
                item["path"]: CacheEntry.from_dict(item) for item in data.get("entries", [])
            }
            logging.debug(f"Loaded {len(self._entries)} incremental cache entries")
        except (json.JSONDecodeError, KeyError, TypeError, ValueError, OSError) as e:
            logging.warning(f"Discarding unreadable incremental cache {self.cache_file}: {e}")
            self._entries = {}
            self._config_hash = ""

    def save(self) -> None:
        """Persist the table atomically."""
        with self.lock:
            data = {
                "config_hash": self._config_hash,
                "last_updated": self._last_updated,
                "entries": [entry.to_dict() for entry in self._entries.values()],
            }
            self.cache_file.parent.mkdir(parents=True, exist_ok=True)
            temp_file = self.cache_file.with_suffix(".tmp")
            with open(temp_file, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            temp_file.replace(self.cache_file)

    @staticmethod
    def _walk(source_root: Path, extensions: Iterable[str]) -> List[Path]:
        suffixes = tuple(e if e.startswith(".") else f".{e}" for e in extensions)
        if not source_root.is_dir():
            return []
        found = []
        for dirpath, _dirnames, filenames in os.walk(source_root):
            for filename in filenames:
                if filename.endswith(suffixes):
                    found.append((Path(dirpath) / filename).resolve())
        return sorted(found)

    def analyze_changes(self, source_root: Path, extensions: Iterable[str]) -> ChangeSet:
        """Classify the current tree and record the new identities.

        Only previously known files under ``source_root`` with one of the
        given extensions can be reported as deleted, so several tasks with
        different extensions can share one cache.

        Args:
            source_root: Directory to walk
            extensions: File extensions to consider (e.g. [".java"])

        Returns:
            ChangeSet for this walk. Running it again without edits yields
            no added, modified or deleted files.
        """
        extensions = list(extensions)
        suffixes = tuple(e if e.startswith(".") else f".{e}" for e in extensions)
        root = Path(source_root).resolve()
        current = self._walk(root, extensions)
        changes = ChangeSet()

        with self.lock:
            seen = set()
            for path in current:
                key = str(path)
                seen.add(key)
                entry = CacheEntry.from_file(path)
                previous = self._entries.get(key)
                if previous is None:
                    changes.added.append(path)
                elif previous.identity != entry.identity:
                    changes.modified.append(path)
                else:
                    changes.unchanged.append(path)
                self._entries[key] = entry

            for key in list(self._entries):
                if key in seen or not key.endswith(suffixes):
                    continue
                if not _is_within(Path(key), root):
                    continue
                changes.deleted.append(Path(key))
                del self._entries[key]

            self._last_updated = time.time()

        return changes

    def update_cache(self, files: Iterable[Path]) -> None:
        """Record the current identity of files that compiled successfully."""
        with self.lock:
            for path in files:
                path = Path(path)
                if path.is_file():
                    entry = CacheEntry.from_file(path)
                    self._entries[entry.path] = entry
            self._last_updated = time.time()

    def mark_deleted(self, files: Iterable[Path]) -> None:
        with self.lock:
            for path in files:
                self._entries.pop(str(Path(path).resolve()), None)

    def invalidate(self) -> None:
        """Forget every entry so the next analysis reports a full rebuild."""
        with self.lock:
            self._entries.clear()
        if self.cache_file.exists():
            self.cache_file.unlink()

    def should_do_full_rebuild(self, config: ProjectConfig) -> bool:
        """Compare the configuration hash against the stored one.

        On mismatch the table is cleared and the new hash recorded.

        Returns:
            True if incrementality must be abandoned for this build
        """
        new_hash = config_hash(config)
        with self.lock:
            if new_hash == self._config_hash and self._entries:
                return False
            self._entries.clear()
            self._config_hash = new_hash
        return True

    def cleanup_stale_entries(self, *source_roots: Path) -> int:
        """Drop entries outside every one of ``source_roots`` or whose files are gone.

        Returns:
            Number of entries removed
        """
        roots = [Path(root).resolve() for root in source_roots]
        with self.lock:
            stale = [
                key
                for key in self._entries
                if not any(_is_within(Path(key), root) for root in roots)
                or not Path(key).exists()
            ]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def get_statistics(self) -> Dict[str, Any]:
        with self.lock:
            return {
                "entries": len(self._entries),
                "total_size": sum(e.size for e in self._entries.values()),
                "config_hash": self._config_hash,
                "last_updated": self._last_updated,
            }

    def __contains__(self, path: Path) -> bool:
        with self.lock:
            return str(Path(path).resolve()) in self._entries


def _is_within(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root)
        return True
    except ValueError:
        return False
