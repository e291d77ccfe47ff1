"""Error taxonomy shared by the picshare core.

Every core failure is one of the exceptions below.  Each carries:

- ``kind`` — a stable machine-readable identifier (class attribute)
- ``message`` — a human-readable message that is safe to show to a caller
- ``cause`` — the underlying exception, kept only for diagnostic logging

The core raises these at the point of failure and never catches them itself.
The HTTP layer (:mod:`picshare.api.main`) maps ``kind`` to a status code and
logs ``cause`` in a single exception handler.
"""

from __future__ import annotations


class PicshareError(Exception):
    """Base class for all core errors."""

    kind: str = "error"

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind!r}, message={self.message!r})"


class NotFoundError(PicshareError):
    """The requested entry does not exist in the store."""

    kind = "not_found"


class ValidationError(PicshareError):
    """Malformed or missing required input."""

    kind = "validation"


class MethodNotAllowedError(ValidationError):
    """A mutation was invoked with a method other than POST."""

    kind = "method_not_allowed"


class UnsupportedTypeError(PicshareError):
    """The content type inferred from a file name is not handled."""

    kind = "unsupported_type"


class DecodeError(PicshareError):
    """The source file is not a valid image of the supported type."""

    kind = "decode"


class EncodeError(PicshareError):
    """The thumbnail could not be encoded."""

    kind = "encode"


class StorageError(PicshareError):
    """A filesystem operation failed."""

    kind = "io"
