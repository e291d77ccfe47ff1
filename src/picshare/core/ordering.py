"""Deterministic ordering of directory snapshots.

Every policy produces a total order:

1. directories come before files, whatever the key or direction;
2. within each group, entries are ordered by the policy's key in the
   policy's direction;
3. entries with an equal key are ordered by name ascending.

Rule 3 is applied for both directions, so reversing the direction reverses
the key order but never the tie order.  Because the order is total, sorting
an already sorted snapshot returns the same sequence.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from picshare.core.entries import Entry, Snapshot


class SortKey(str, Enum):
    """Primary key to order entries by."""

    NAME = "name"
    DATE = "date"
    SIZE = "size"


class SortDirection(str, Enum):
    """Direction applied to the primary key."""

    ASCENDING = "asc"
    DESCENDING = "desc"


_KEY_FUNCS = {
    SortKey.NAME: lambda entry: entry.name,
    SortKey.DATE: lambda entry: entry.modified_ns,
    SortKey.SIZE: lambda entry: entry.size,
}


@dataclass(frozen=True)
class SortPolicy:
    """How to order a snapshot.

    Attributes:
        key: Primary sort key.
        direction: Direction for the primary key.
    """

    key: SortKey = SortKey.DATE
    direction: SortDirection = SortDirection.DESCENDING


#: Newest first, directories on top.
DEFAULT_POLICY = SortPolicy()


def sort_entries(entries: list[Entry] | tuple[Entry, ...], policy: SortPolicy = DEFAULT_POLICY) -> list[Entry]:
    """Return ``entries`` ordered by ``policy``.

    Implemented as three stable sorts, least significant first.  ``sorted``
    keeps equal elements in their input order even with ``reverse=True``,
    which is what keeps name-ascending ties intact for descending keys.
    """
    ordered = sorted(entries, key=lambda entry: entry.name)
    ordered = sorted(
        ordered,
        key=_KEY_FUNCS[policy.key],
        reverse=policy.direction == SortDirection.DESCENDING,
    )
    return sorted(ordered, key=lambda entry: not entry.is_directory)


def sort_snapshot(snapshot: Snapshot, policy: SortPolicy = DEFAULT_POLICY) -> Snapshot:
    """Return a new snapshot with the same entries ordered by ``policy``.

    Args:
        snapshot: Snapshot to order.  It is not modified.
        policy: Ordering policy.  Defaults to :data:`DEFAULT_POLICY`.

    Returns:
        The ordered snapshot.
    """
    return Snapshot(directory=snapshot.directory, entries=tuple(sort_entries(snapshot.entries, policy)))
