"""Shared pytest fixtures for picshare tests."""

import os
import shutil
import tempfile
import time
from pathlib import Path
from typing import Callable, Generator

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from picshare.api.main import create_app
from picshare.core.config import PicshareConfig
from picshare.core.entries import EntryStore
from picshare.core.mutations import MutationGateway
from picshare.core.thumbnails import ThumbnailCache

#: A fixed point one hour in the past, so freshly written thumbnails are
#: always strictly newer than the pictures created by the fixtures.
PAST_NS = (int(time.time()) - 3600) * 1_000_000_000


def set_mtime(path: Path, mtime_ns: int) -> None:
    """Set both atime and mtime of ``path`` to ``mtime_ns``."""
    os.utime(path, ns=(mtime_ns, mtime_ns))


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path) -> PicshareConfig:
    """Create a test configuration with temporary directories.

    Args:
        temp_dir: Temporary directory from fixture

    Returns:
        PicshareConfig instance for testing
    """
    return PicshareConfig(
        pics_dir=str(temp_dir / "pics"),
        thumbs_dir=str(temp_dir / "thumbs"),
        site_host="http://pics.example.org/",
        _env_file=None,
    )


@pytest.fixture
def pics_dir(test_config: PicshareConfig) -> Path:
    return test_config.pics_dir


@pytest.fixture
def thumbs_dir(test_config: PicshareConfig) -> Path:
    return test_config.thumbs_dir


@pytest.fixture
def store(test_config: PicshareConfig) -> EntryStore:
    return EntryStore(test_config.pics_dir)


@pytest.fixture
def thumbnails(test_config: PicshareConfig, store: EntryStore) -> ThumbnailCache:
    return ThumbnailCache.from_config(test_config, store)


@pytest.fixture
def gateway(store: EntryStore, thumbnails: ThumbnailCache) -> MutationGateway:
    return MutationGateway(store, thumbnails)


@pytest.fixture
def make_jpeg(pics_dir: Path) -> Callable[..., Path]:
    """Factory writing a JPEG picture into the pictures directory.

    The picture's mtime is set to :data:`PAST_NS` unless ``mtime_ns`` is
    given.

    Returns:
        Callable ``make_jpeg(name, size=(120, 80), color=(200, 30, 30), mtime_ns=None)``
    """

    def _make(
        name: str,
        size: tuple[int, int] = (120, 80),
        color: tuple[int, int, int] = (200, 30, 30),
        mtime_ns: int | None = None,
    ) -> Path:
        path = pics_dir / name
        Image.new("RGB", size, color=color).save(path, format="JPEG")
        set_mtime(path, PAST_NS if mtime_ns is None else mtime_ns)
        return path

    return _make


@pytest.fixture
def test_client(test_config: PicshareConfig) -> Generator[TestClient, None, None]:
    """FastAPI TestClient around an app built from :func:`test_config`."""
    with TestClient(create_app(test_config)) as client:
        yield client


@pytest.fixture
def past_ns() -> int:
    """Nanosecond timestamp one hour in the past."""
    return PAST_NS


@pytest.fixture
def touch() -> Callable[[Path, int], None]:
    """Return :func:`set_mtime` for tests that move timestamps around."""
    return set_mtime
