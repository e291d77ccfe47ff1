"""On-demand thumbnail cache backed by a directory of derived JPEGs.

Thumbnails live in their own directory and mirror the pictures directory by
base file name: the thumbnail of ``pics/cat.jpg`` is ``thumbs/cat.jpg``.
Nothing else is stored, so the whole directory can be deleted at any time
and rebuilt lazily.

Validity
--------
A thumbnail is valid when it exists and its modification time is strictly
after the modification time of its source.  This is checked on every
request with two ``stat`` calls; there is no remembered "validated" state.
Replacing a source (upload, external copy) advances its mtime and the next
request regenerates the thumbnail without any explicit invalidation.

Regeneration
------------
A stale or missing thumbnail is rebuilt by decoding the source with Pillow,
resizing it to a fixed ``size x size`` box (the aspect ratio is NOT
preserved; downstream pages rely on a fixed footprint), encoding it as JPEG
and writing it to a temporary file in the thumbnail directory that is then
renamed over the old thumbnail.  The rename is atomic, so readers only ever
see a complete old file or a complete new file.

Concurrency
-----------
At most one regeneration per name runs at a time.  Callers for the same name
queue on a per-name lock and re-check validity once they hold it, so they
pick up the thumbnail the first caller produced instead of rebuilding it.
Different names regenerate in parallel.
"""

from __future__ import annotations

import io
import mimetypes
import os
import tempfile
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from PIL import Image

from picshare.core.config import PicshareConfig
from picshare.core.entries import Entry, EntryStore, base_name
from picshare.core.errors import (
    DecodeError,
    EncodeError,
    NotFoundError,
    StorageError,
    UnsupportedTypeError,
)

SUPPORTED_MIME_TYPE = "image/jpeg"


def guess_mime_type(name: str) -> str | None:
    """Infer a MIME type from a file name's extension, ignoring case."""
    mime_type, _ = mimetypes.guess_type(name.lower(), strict=False)
    return mime_type


@dataclass(frozen=True)
class DerivedArtifact:
    """A thumbnail file on disk.

    Attributes:
        source_name: Base name of the source picture.
        path: Location of the thumbnail.
        modified_ns: Modification time in nanoseconds since the epoch.
    """

    source_name: str
    path: Path
    modified_ns: int

    @property
    def modified_at(self) -> datetime:
        return datetime.fromtimestamp(self.modified_ns / 1_000_000_000, tz=timezone.utc)

    def is_valid_for(self, source: Entry) -> bool:
        """Whether this artifact postdates ``source``."""
        return self.modified_ns > source.modified_ns


@dataclass
class _LockSlot:
    lock: threading.Lock = field(default_factory=threading.Lock)
    holders: int = 0


class _NamedLocks:
    """One lock per name, created on demand and dropped when unused."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._slots: dict[str, _LockSlot] = {}

    @contextmanager
    def hold(self, name: str) -> Iterator[None]:
        with self._guard:
            slot = self._slots.setdefault(name, _LockSlot())
            slot.holders += 1
        try:
            with slot.lock:
                yield
        finally:
            with self._guard:
                slot.holders -= 1
                if slot.holders == 0:
                    del self._slots[name]

    def __len__(self) -> int:
        with self._guard:
            return len(self._slots)


class ThumbnailCache:
    """Resolve picture names to valid thumbnail files, building them as needed.

    Attributes:
        store: Entry store holding the source pictures.
        thumbs_dir: Directory holding the derived thumbnails.
        size: Edge of the square box thumbnails are resized to.
        quality: JPEG quality used when encoding thumbnails.
    """

    def __init__(self, store: EntryStore, thumbs_dir: Path, size: int = 64, quality: int = 90) -> None:
        self.store = store
        self.thumbs_dir = Path(thumbs_dir)
        self.size = size
        self.quality = quality
        self._locks = _NamedLocks()

    @classmethod
    def from_config(cls, config: PicshareConfig, store: EntryStore) -> ThumbnailCache:
        return cls(
            store,
            config.thumbs_dir,
            size=config.thumbnail_size,
            quality=config.thumbnail_quality,
        )

    # -- Public interface ---------------------------------------------------

    def get(self, source_name: str) -> Path:
        """Return the path of a valid thumbnail for ``source_name``.

        Args:
            source_name: Picture name.  Only its base component is used.

        Returns:
            Path to the thumbnail file.

        Raises:
            UnsupportedTypeError: If the name does not denote a JPEG.
            NotFoundError: If the source picture does not exist.
            DecodeError: If the source is not a valid JPEG.
            EncodeError: If the thumbnail cannot be encoded.
            StorageError: If a filesystem operation fails.
        """
        name = base_name(source_name)
        mime_type = guess_mime_type(name)
        if mime_type != SUPPORTED_MIME_TYPE:
            raise UnsupportedTypeError(f"Thumbnails are only available for JPEG images, not '{name}'")

        derived_path = self.derived_path(name)

        # Fast path: no lock, two stats.
        source = self._source_entry(name)
        artifact = self.artifact(name)
        if artifact is not None and artifact.is_valid_for(source):
            return derived_path

        with self._locks.hold(name):
            # Another caller may have rebuilt it while we waited.
            source = self._source_entry(name)
            artifact = self.artifact(name)
            if artifact is not None and artifact.is_valid_for(source):
                return derived_path

            self._regenerate(name, derived_path)

        return derived_path

    def artifact(self, source_name: str) -> DerivedArtifact | None:
        """Describe the current thumbnail for a name without rebuilding it.

        Returns:
            The artifact, or ``None`` if no thumbnail exists.

        Raises:
            StorageError: If the thumbnail exists but cannot be stat'ed.
        """
        name = base_name(source_name)
        path = self.derived_path(name)
        try:
            stat = path.stat()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageError("Could not read thumbnail", exc) from exc
        return DerivedArtifact(source_name=name, path=path, modified_ns=stat.st_mtime_ns)

    def invalidate(self, source_name: str) -> bool:
        """Remove the thumbnail for a name.

        Waits for any regeneration of the same name to finish first.

        Returns:
            ``True`` if a thumbnail was removed, ``False`` if there was none.

        Raises:
            StorageError: If the thumbnail exists but cannot be removed.
        """
        name = base_name(source_name)
        path = self.derived_path(name)
        with self._locks.hold(name):
            try:
                path.unlink()
            except FileNotFoundError:
                return False
            except OSError as exc:
                raise StorageError("Could not remove thumbnail", exc) from exc
        return True

    def derived_path(self, name: str) -> Path:
        return self.thumbs_dir / name

    # -- Internals ----------------------------------------------------------

    def _source_entry(self, name: str) -> Entry:
        source = self.store.stat(name)
        if source.is_directory:
            raise NotFoundError(f"'{name}' is not a picture")
        return source

    def _regenerate(self, name: str, derived_path: Path) -> None:
        thumbnail = self._render(self.store.path_for(name))
        data = self._encode(thumbnail)
        self._write_atomically(derived_path, data)

    def _render(self, source_path: Path) -> Image.Image:
        """Decode the source JPEG and resize it to the thumbnail box."""
        try:
            handle = open(source_path, "rb")
        except FileNotFoundError as exc:
            raise NotFoundError("Could not find original image to make thumbnail of", exc) from exc
        except OSError as exc:
            raise StorageError("Could not open original image to make thumbnail of", exc) from exc

        with handle:
            try:
                with Image.open(handle, formats=["JPEG"]) as image:
                    image.load()
                    return image.resize((self.size, self.size), Image.Resampling.LANCZOS)
            except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as exc:
                raise DecodeError("Image is not a proper JPEG", exc) from exc

    def _encode(self, thumbnail: Image.Image) -> bytes:
        buffer = io.BytesIO()
        try:
            thumbnail.save(buffer, format="JPEG", quality=self.quality)
        except (OSError, ValueError, KeyError) as exc:
            raise EncodeError("Error while encoding JPEG", exc) from exc
        return buffer.getvalue()

    def _write_atomically(self, path: Path, data: bytes) -> None:
        """Write ``data`` to a temporary sibling of ``path`` and rename it into place."""
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        except OSError as exc:
            raise StorageError("Could not create thumbnail file", exc) from exc

        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.replace(tmp_path, path)
        except OSError as exc:
            tmp_path.unlink(missing_ok=True)
            raise StorageError("Could not write thumbnail file", exc) from exc
