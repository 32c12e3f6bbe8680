"""Transactional file-set writer.

Writes a composed file set into a sibling staging directory first and
renames it into place only once every file has been written.  A failure at
any point removes the staging tree and leaves the target untouched.
"""

from __future__ import annotations

import asyncio
import os
import shutil
import stat
import tempfile
from collections.abc import Mapping
from pathlib import Path, PurePosixPath


class WriterError(Exception):
    """Raised when a file set cannot be committed to disk."""

    def __init__(self, message: str, path: str | Path | None = None) -> None:
        self.path = Path(path) if path is not None else None
        super().__init__(message)


class FileSetWriter:
    """Commits an in-memory file set to a project directory.

    Args:
        overwrite: Replace a non-empty existing project directory.  The old
            directory is kept aside until the new one is in place and
            restored if the swap fails.
    """

    EXECUTABLE_SUFFIXES = (".sh",)

    def __init__(self, overwrite: bool = False) -> None:
        self.overwrite = overwrite

    async def write(self, file_set: Mapping[str, bytes], project_root: str | Path) -> list[Path]:
        """Write *file_set* under *project_root*.

        Returns:
            The written file paths, in file-set order.

        Raises:
            WriterError: If the target exists and is not empty (without
                ``overwrite``), a path escapes the project root, or the
                filesystem rejects a write.
        """
        return await asyncio.to_thread(self._write_sync, dict(file_set), Path(project_root))

    # -- Internals -----------------------------------------------------------

    def _write_sync(self, file_set: dict[str, bytes], root: Path) -> list[Path]:
        root = root.absolute()
        replacing = root.exists()
        if replacing:
            if not root.is_dir():
                raise WriterError(f"{root} exists and is not a directory", root)
            if any(root.iterdir()) and not self.overwrite:
                raise WriterError(f"{root} is not empty; pass overwrite to replace it", root)

        root.parent.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=f".{root.name}-", dir=root.parent))
        try:
            for rel in file_set:
                target = _safe_join(staging, rel)
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(file_set[rel])
                if target.suffix in self.EXECUTABLE_SUFFIXES:
                    _make_executable(target)
            self._swap_into_place(staging, root, replacing)
        except OSError as exc:
            shutil.rmtree(staging, ignore_errors=True)
            raise WriterError(f"Failed to write project to {root}: {exc}", root) from exc
        except WriterError:
            shutil.rmtree(staging, ignore_errors=True)
            raise

        return [root / rel for rel in file_set]

    @staticmethod
    def _swap_into_place(staging: Path, root: Path, replacing: bool) -> None:
        if not replacing:
            os.replace(staging, root)
            return

        backup = Path(tempfile.mkdtemp(prefix=f".{root.name}-old-", dir=root.parent))
        backup.rmdir()
        os.replace(root, backup)
        try:
            os.replace(staging, root)
        except OSError:
            os.replace(backup, root)
            raise
        shutil.rmtree(backup, ignore_errors=True)


def _safe_join(base: Path, rel: str) -> Path:
    """Join a POSIX relative path onto *base*, refusing anything that escapes it."""
    parts = PurePosixPath(rel).parts
    if not parts or PurePosixPath(rel).is_absolute() or ".." in parts:
        raise WriterError(f"Refusing to write outside the project root: {rel!r}")
    return base.joinpath(*parts)


def _make_executable(path: Path) -> None:
    """Set the executable bit on a file."""
    current = path.stat().st_mode
    path.chmod(current | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
