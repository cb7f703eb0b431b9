"""Archive Extraction Utilities.

This module extracts downloaded or bundled tool archives. Mirrors package the
same tool with different top-level directory names, and zip archives drop
permission bits, so extraction always goes through a temporary directory,
the payload root is located, and executable bits are set explicitly
afterwards.
"""

import os
import shutil
import stat
import tarfile
import zipfile
from pathlib import Path
from typing import Iterable, List, Optional

ZIP_MAGIC = b"PK\x03\x04"
GZIP_MAGIC = b"\x1f\x8b"
XZ_MAGIC = b"\xfd7zXZ\x00"
BZIP2_MAGIC = b"BZh"


class ExtractionError(Exception):
    """Raised when archive extraction fails."""

    pass


def is_safe_entry(name: str) -> bool:
    """Check that an archive entry name cannot escape the extraction root.

    Args:
        name: Entry name as stored in the archive

    Returns:
        False for entries containing '..' or starting with a path separator
    """
    if not name:
        return False
    if ".." in name:
        return False
    if name.startswith(("/", "\\")):
        return False
    if len(name) > 1 and name[1] == ":":
        return False
    return True


class ArchiveExtractor:
    """Extracts zip and tar archives with directory normalization."""

    def __init__(self, show_progress: bool = True):
        """Initialize archive extractor.

        Args:
            show_progress: Whether to print extraction progress
        """
        self.show_progress = show_progress

    @staticmethod
    def detect_format(archive_path: Path, url: Optional[str] = None) -> str:
        """Detect the archive format from the file signature.

        Falls back to the URL (or file name) suffix when the signature is not
        recognized.

        Args:
            archive_path: Path to the archive file
            url: Original download URL, if any

        Returns:
            One of "zip", "tar.gz", "tar.xz", "tar.bz2", "tar"

        Raises:
            ExtractionError: If the format cannot be determined
        """
        with open(archive_path, "rb") as f:
            header = f.read(6)

        if header.startswith(ZIP_MAGIC):
            return "zip"
        if header.startswith(GZIP_MAGIC):
            return "tar.gz"
        if header.startswith(XZ_MAGIC):
            return "tar.xz"
        if header.startswith(BZIP2_MAGIC):
            return "tar.bz2"

        name = (url or archive_path.name).lower()
        if name.endswith((".zip", ".jar", ".aar")):
            return "zip"
        if name.endswith((".tar.gz", ".tgz")):
            return "tar.gz"
        if name.endswith((".tar.xz", ".txz")):
            return "tar.xz"
        if name.endswith((".tar.bz2", ".tbz2")):
            return "tar.bz2"
        if name.endswith(".tar"):
            return "tar"

        raise ExtractionError(f"Unsupported archive format: {archive_path.name}")

    def extract(
        self,
        archive_path: Path,
        target_dir: Path,
        url: Optional[str] = None,
        marker: Optional[str] = None,
    ) -> Path:
        """Extract an archive and move its payload into target_dir.

        The payload root is the directory containing ``marker`` when one is
        given, otherwise the single top-level directory (if the archive has
        exactly one), otherwise the extraction root itself.

        Args:
            archive_path: Path to the archive file
            target_dir: Directory to move the payload into
            url: Original download URL used for format detection fallback
            marker: Relative path identifying the payload root

        Returns:
            target_dir

        Raises:
            ExtractionError: If extraction fails or the marker is not found
        """
        archive_path = Path(archive_path)
        target_dir = Path(target_dir)

        if not archive_path.exists():
            raise ExtractionError(f"Archive not found: {archive_path}")

        if self.show_progress:
            print(f"Extracting {archive_path.name}...")

        fmt = self.detect_format(archive_path, url)

        temp_extract = target_dir.parent / f"temp_extract_{archive_path.name}"
        if temp_extract.exists():
            shutil.rmtree(temp_extract)
        temp_extract.mkdir(parents=True)

        try:
            if fmt == "zip":
                self._extract_zip(archive_path, temp_extract)
            else:
                self._extract_tar(archive_path, temp_extract)

            source_dir = self._find_payload_root(temp_extract, marker)
            if source_dir is None:
                raise ExtractionError(
                    f"{archive_path.name} does not contain expected file: {marker}"
                )

            target_dir.mkdir(parents=True, exist_ok=True)
            for item in source_dir.iterdir():
                dest = target_dir / item.name
                if dest.is_dir() and not dest.is_symlink():
                    shutil.rmtree(dest)
                elif dest.exists() or dest.is_symlink():
                    dest.unlink()
                shutil.move(str(item), str(dest))

            return target_dir

        except ExtractionError:
            raise
        except KeyboardInterrupt as ke:
            from pocketbuild.interrupt_utils import handle_keyboard_interrupt_properly

            handle_keyboard_interrupt_properly(ke)
        except (OSError, tarfile.TarError, zipfile.BadZipFile) as e:
            raise ExtractionError(f"Failed to extract {archive_path}: {e}")
        finally:
            if temp_extract.exists():
                shutil.rmtree(temp_extract, ignore_errors=True)

    def _extract_zip(self, archive_path: Path, dest_dir: Path) -> None:
        with zipfile.ZipFile(archive_path, "r") as zf:
            for info in zf.infolist():
                if not is_safe_entry(info.filename):
                    continue
                if stat.S_ISLNK(info.external_attr >> 16):
                    self._restore_symlink(dest_dir, info.filename, zf.read(info).decode("utf-8"))
                    continue
                zf.extract(info, dest_dir)

    @staticmethod
    def _restore_symlink(dest_dir: Path, name: str, target: str) -> None:
        """Recreate a zip symlink entry; zipfile would write it as a text file.

        Links whose target resolves outside ``dest_dir`` are skipped.
        """
        link = dest_dir / name.rstrip("/")
        resolved = os.path.normpath(os.path.join(link.parent, target))
        root = os.path.normpath(dest_dir)
        if os.path.isabs(target) or os.path.commonpath([root, resolved]) != root:
            return
        link.parent.mkdir(parents=True, exist_ok=True)
        if link.is_symlink() or link.exists():
            link.unlink()
        os.symlink(target, link)

    def _extract_tar(self, archive_path: Path, dest_dir: Path) -> None:
        with tarfile.open(archive_path, "r:*") as tar:
            members = [m for m in tar.getmembers() if is_safe_entry(m.name)]
            if hasattr(tarfile, "tar_filter"):
                tar.extractall(dest_dir, members=members, filter="tar")
            else:
                tar.extractall(dest_dir, members=members)

    @staticmethod
    def _find_payload_root(root: Path, marker: Optional[str]) -> Optional[Path]:
        if marker:
            if (root / marker).exists():
                return root
            marker_name = Path(marker).name
            candidates = sorted(
                root.rglob(marker_name), key=lambda p: len(p.relative_to(root).parts)
            )
            for candidate in candidates:
                base = candidate
                for _ in Path(marker).parts:
                    base = base.parent
                if (base / marker).exists():
                    return base
            return None

        items = list(root.iterdir())
        if len(items) == 1 and items[0].is_dir():
            return items[0]
        return root

    @staticmethod
    def make_executable(root: Path, names: Iterable[str] = ()) -> List[Path]:
        """Set executable permission bits on tool binaries.

        Marks every regular file inside a directory named ``bin`` and every
        file whose name is in ``names``.

        Args:
            root: Directory tree to walk
            names: Additional file names to mark executable

        Returns:
            List of files whose mode was changed
        """
        wanted = set(names)
        changed = []
        if not root.exists():
            return changed

        for dirpath, _dirnames, filenames in os.walk(root):
            in_bin = Path(dirpath).name == "bin"
            for filename in filenames:
                if not (in_bin or filename in wanted):
                    continue
                path = Path(dirpath) / filename
                if path.is_symlink() or not path.is_file():
                    continue
                mode = path.stat().st_mode
                exec_bits = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH
                if mode & exec_bits != exec_bits:
                    path.chmod(mode | exec_bits)
                    changed.append(path)

        return changed
