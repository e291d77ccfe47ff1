"""Upload and delete operations against the picture store."""

from __future__ import annotations

from collections.abc import Iterable
from typing import BinaryIO, NamedTuple

from picshare.core.entries import EntryStore, base_name
from picshare.core.errors import MethodNotAllowedError, StorageError, ValidationError
from picshare.core.thumbnails import ThumbnailCache


class UploadPart(NamedTuple):
    """One part of a multipart body.

    ``filename`` is ``None`` or empty for plain form fields.
    """

    filename: str | None
    stream: BinaryIO | None


class DeleteResult(NamedTuple):
    """Outcome of a delete.

    Attributes:
        name: Base name of the deleted picture.
        thumbnail_removed: Whether a thumbnail was removed along with it.
        thumbnail_error: Why the thumbnail could not be removed, if it could
            not.  The picture itself is deleted either way.
    """

    name: str
    thumbnail_removed: bool = False
    thumbnail_error: StorageError | None = None


def _require_post(method: str, operation: str) -> None:
    if method.upper() != "POST":
        raise MethodNotAllowedError(f"{operation} requires POST method")


class MutationGateway:
    """Apply uploads and deletions to the store.

    Uploads do not touch the thumbnail cache: a replaced picture has a newer
    mtime than its old thumbnail, which makes the thumbnail stale on its
    own.  Deletions remove the matching thumbnail so no orphan is left in
    the thumbnail directory.
    """

    def __init__(self, store: EntryStore, thumbnails: ThumbnailCache) -> None:
        self.store = store
        self.thumbnails = thumbnails

    def upload(self, method: str, parts: Iterable[UploadPart]) -> list[str]:
        """Store every file part of a multipart body.

        Parts are written one after another.  The first failure aborts the
        rest; parts already written stay on disk.

        Args:
            method: HTTP method of the request.
            parts: Multipart parts in body order.

        Returns:
            Base names of the stored files, in order.

        Raises:
            MethodNotAllowedError: If ``method`` is not POST.
            ValidationError: If a part's file name reduces to nothing usable.
            StorageError: If a file cannot be written.
        """
        _require_post(method, "Upload")

        stored: list[str] = []
        for part in parts:
            if not part.filename:
                continue
            name = base_name(part.filename)
            self.store.create(name, part.stream)
            stored.append(name)
        return stored

    def delete(self, method: str, filename: str | None) -> DeleteResult:
        """Delete one picture and its thumbnail.

        Args:
            method: HTTP method of the request.
            filename: Value of the ``filename`` form field.  Only its base
                component is used, so it can never point outside the store.

        Returns:
            A :class:`DeleteResult`.  A thumbnail that could not be removed
            is reported in it rather than raised, since the picture is
            already gone by then.

        Raises:
            MethodNotAllowedError: If ``method`` is not POST.
            ValidationError: If ``filename`` is missing, empty, or malformed.
            NotFoundError: If no such picture exists in the store.
            StorageError: If the picture cannot be removed.
        """
        _require_post(method, "Delete")
        if not filename:
            raise ValidationError("Expecting filename form value")

        name = base_name(filename)
        self.store.remove(name)

        try:
            removed = self.thumbnails.invalidate(name)
        except StorageError as exc:
            return DeleteResult(name, thumbnail_error=exc)
        return DeleteResult(name, thumbnail_removed=removed)
