"""Core of the picture gallery: store, ordering, thumbnails, mutations.

This package has no knowledge of HTTP.  It is driven by :mod:`picshare.api`,
which renders its results and maps its errors to responses.

Architecture Overview
---------------------
1. **Configuration** (config.py):
   - Environment-based configuration using Pydantic Settings
   - All settings prefixed with PICSHARE_
   - Frozen; built once and passed to each component

2. **Entry Store** (entries.py):
   - One-pass directory snapshots
   - Create (overwrite) and remove of pictures

3. **Ordering Engine** (ordering.py):
   - Directories first, then key/direction, ties by name ascending

4. **Thumbnail Cache** (thumbnails.py):
   - mtime-based staleness, atomic rename, per-name regeneration lock

5. **Mutation Gateway** (mutations.py):
   - Multipart upload and traversal-safe delete

6. **Errors** (errors.py):
   - Typed exceptions carrying kind, message, and cause

Usage Example
-------------
    from picshare.core import EntryStore, PicshareConfig, ThumbnailCache, sort_snapshot

    config = PicshareConfig(pics_dir="pics", thumbs_dir="thumbs")
    store = EntryStore(config.pics_dir)
    cache = ThumbnailCache.from_config(config, store)

    for entry in sort_snapshot(store.snapshot()):
        print(entry.name, cache.get(entry.name))
"""

from picshare.core.config import PicshareConfig
from picshare.core.entries import Entry, EntryStore, Snapshot, base_name
from picshare.core.errors import (
    DecodeError,
    EncodeError,
    MethodNotAllowedError,
    NotFoundError,
    PicshareError,
    StorageError,
    UnsupportedTypeError,
    ValidationError,
)
from picshare.core.mutations import DeleteResult, MutationGateway, UploadPart
from picshare.core.ordering import DEFAULT_POLICY, SortDirection, SortKey, SortPolicy, sort_snapshot
from picshare.core.thumbnails import DerivedArtifact, ThumbnailCache

__all__ = [
    "DEFAULT_POLICY",
    "DecodeError",
    "DeleteResult",
    "DerivedArtifact",
    "EncodeError",
    "Entry",
    "EntryStore",
    "MethodNotAllowedError",
    "MutationGateway",
    "NotFoundError",
    "PicshareConfig",
    "PicshareError",
    "Snapshot",
    "SortDirection",
    "SortKey",
    "SortPolicy",
    "StorageError",
    "ThumbnailCache",
    "UnsupportedTypeError",
    "UploadPart",
    "ValidationError",
    "base_name",
    "sort_snapshot",
]
