"""Filesystem-backed entry store for the picture gallery.

The store is a plain directory of original pictures.  It is the single source
of truth: there is no index file and no in-process cache of its contents.
Every listing re-reads the directory, so a file written by one request is
visible to the next one immediately.

Known limitation: a file that another process is still writing (an upload in
progress, an SFTP transfer) shows up in a snapshot with whatever size it has
at that instant.  Such entries are not filtered out.
"""

from __future__ import annotations

import os
import shutil
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO

from picshare.core.errors import NotFoundError, StorageError, ValidationError

_COPY_CHUNK_SIZE = 1024 * 1024


def base_name(name: str) -> str:
    """Reduce a client-supplied file name to its last path component.

    Both ``/`` and ``\\`` count as separators and trailing separators are
    ignored, so ``"../../etc/passwd"`` becomes ``"passwd"`` and
    ``"C:\\photos\\cat.jpg"`` becomes ``"cat.jpg"``.

    Args:
        name: Raw name from a URL path, form field, or multipart header.

    Returns:
        The base component.

    Raises:
        ValidationError: If nothing usable remains (empty, ``.`` or ``..``)
            or the name contains a NUL byte.
    """
    if "\x00" in name:
        raise ValidationError("File name must not contain NUL bytes")
    stripped = name.replace("\\", "/").rstrip("/")
    base = stripped.rsplit("/", 1)[-1]
    if base in ("", ".", ".."):
        raise ValidationError(f"Invalid file name '{name}'")
    return base


@dataclass(frozen=True)
class Entry:
    """One file or directory inside the store.

    Attributes:
        name: Base name, unique within its directory.
        size: Size in bytes as reported by ``stat``.
        modified_ns: Modification time in nanoseconds since the epoch.
        is_directory: Whether the entry is a directory.
    """

    name: str
    size: int
    modified_ns: int
    is_directory: bool = False

    @property
    def modified_at(self) -> datetime:
        """Modification time as a timezone-aware UTC datetime."""
        return datetime.fromtimestamp(self.modified_ns / 1_000_000_000, tz=timezone.utc)

    @classmethod
    def from_dir_entry(cls, dir_entry: os.DirEntry) -> Entry:
        stat = dir_entry.stat()
        return cls(
            name=dir_entry.name,
            size=stat.st_size,
            modified_ns=stat.st_mtime_ns,
            is_directory=dir_entry.is_dir(),
        )


@dataclass(frozen=True)
class Snapshot:
    """An immutable, ordered read of one directory.

    Attributes:
        directory: The directory that was read.
        entries: Entries in their current order.
    """

    directory: Path
    entries: tuple[Entry, ...] = ()

    def __iter__(self) -> Iterator[Entry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __getitem__(self, index: int) -> Entry:
        return self.entries[index]

    def names(self) -> list[str]:
        """Return entry names in snapshot order."""
        return [entry.name for entry in self.entries]


class EntryStore:
    """Read and mutate the directory of original pictures.

    All paths are resolved against ``root`` unless an explicit ``directory``
    is given.  Names passed to :meth:`create` and :meth:`remove` must already
    be reduced with :func:`base_name`.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def path_for(self, name: str, directory: Path | None = None) -> Path:
        """Return the on-disk path for ``name``."""
        return (directory or self.root) / name

    def stat(self, name: str, directory: Path | None = None) -> Entry:
        """Return the current metadata for a single entry.

        Raises:
            NotFoundError: If the entry does not exist.
            StorageError: If it exists but cannot be stat'ed.
        """
        path = self.path_for(name, directory)
        try:
            stat = path.stat()
        except FileNotFoundError as exc:
            raise NotFoundError(f"'{name}' not found", exc) from exc
        except OSError as exc:
            raise StorageError(f"Could not read '{name}'", exc) from exc
        return Entry(
            name=name,
            size=stat.st_size,
            modified_ns=stat.st_mtime_ns,
            is_directory=path.is_dir(),
        )

    def snapshot(self, directory: Path | None = None) -> Snapshot:
        """Read every entry of a directory in one pass.

        The result is in directory order; use
        :func:`picshare.core.ordering.sort_snapshot` to order it.

        Args:
            directory: Directory to read.  Defaults to the store root.

        Returns:
            A :class:`Snapshot` of the directory.

        Raises:
            StorageError: If the directory cannot be opened or read.
        """
        directory = Path(directory or self.root)
        entries: list[Entry] = []
        try:
            with os.scandir(directory) as it:
                for dir_entry in it:
                    try:
                        entries.append(Entry.from_dir_entry(dir_entry))
                    except FileNotFoundError:
                        # Removed between readdir and stat.
                        continue
        except OSError as exc:
            raise StorageError("Could not read the pictures directory", exc) from exc
        return Snapshot(directory=directory, entries=tuple(entries))

    def create(self, name: str, source: BinaryIO, directory: Path | None = None) -> Path:
        """Write ``source`` to ``directory/name``, replacing any existing file.

        The destination is truncated first, so an upload never merges with
        previous content.  A failure part-way through leaves the truncated
        file on disk; it is reported, not rolled back.

        Args:
            name: Base file name.
            source: Readable binary stream, consumed to EOF.
            directory: Target directory.  Defaults to the store root.

        Returns:
            Path of the written file.

        Raises:
            StorageError: If the file cannot be created or written.
        """
        dest = self.path_for(name, directory)
        try:
            handle = open(dest, "wb")
        except OSError as exc:
            raise StorageError("Could not accept upload", exc) from exc
        with handle:
            try:
                shutil.copyfileobj(source, handle, _COPY_CHUNK_SIZE)
            except OSError as exc:
                raise StorageError("Could not write upload data to local file", exc) from exc
        return dest

    def remove(self, name: str, directory: Path | None = None) -> None:
        """Delete ``directory/name``.

        Args:
            name: Base file name (already reduced with :func:`base_name`).
            directory: Directory holding the file.  Defaults to the store root.

        Raises:
            NotFoundError: If the file does not exist.
            StorageError: For any other failure (permissions, directories).
        """
        path = self.path_for(name, directory)
        try:
            os.remove(path)
        except FileNotFoundError as exc:
            raise NotFoundError(f"'{name}' not found", exc) from exc
        except OSError as exc:
            raise StorageError("Unable to delete file", exc) from exc
