"""Pydantic response models for the picshare HTTP API.

Models
------
EntryView
    One picture as shown on the index page.
ListResponse
    Body of ``GET /list`` — the absolute picture base URL and the ordered
    file names.
DeleteResponse
    Body of a successful ``POST /delete``.
ErrorResponse
    Body returned for every core error.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class EntryView(BaseModel):
    """A store entry prepared for the HTML index.

    Attributes:
        name: File name.
        size: Size in bytes.
        mime: MIME type guessed from the extension, or ``""``.
        last_mod: Human-readable modification time (UTC).
        is_directory: Whether the entry is a directory.
        pic_url: URL of the original picture.
        thumb_url: URL of its thumbnail.
    """

    name: str
    size: int
    mime: str = ""
    last_mod: str
    is_directory: bool = False
    pic_url: str
    thumb_url: str


class ListResponse(BaseModel):
    """Response body for ``GET /list``.

    Serialised with camelCase ``baseUrl`` for compatibility with existing
    gallery clients.
    """

    model_config = ConfigDict(populate_by_name=True)

    base_url: str = Field(
        ...,
        alias="baseUrl",
        description="Absolute URL prefix under which the pictures are served.",
    )
    files: list[str] = Field(
        default_factory=list,
        description="File names, newest first unless another order was requested.",
    )


class DeleteResponse(BaseModel):
    """Response body for a successful ``POST /delete``."""

    success: bool = True
    deleted: str = Field(..., description="Base name of the deleted picture.")


class ErrorResponse(BaseModel):
    """Response body for a failed request.

    Attributes:
        success: Always ``False``.
        kind: Machine-readable error kind (``not_found``, ``validation`` ...).
        message: Message that is safe to show to the user.
    """

    success: bool = False
    kind: str
    message: str
