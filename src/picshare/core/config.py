"""Configuration management for picshare.

This module provides the configuration value for the gallery service using
Pydantic Settings.  All configuration is loaded from environment variables
with the PICSHARE_ prefix, allowing deployment changes without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Keyword arguments passed to ``PicshareConfig(...)``
2. Environment variables (PICSHARE_* prefix)
3. .env file in the working directory
4. Default values defined in PicshareConfig

Example .env file:
    PICSHARE_PICS_DIR=/srv/pics
    PICSHARE_THUMBS_DIR=/srv/thumbs
    PICSHARE_SITE_HOST=https://pics.example.org
    PICSHARE_PROXY_ROOT=/gallery

Immutability
------------
The configuration is frozen.  It is built once at startup by
:func:`picshare.api.main.main` (or :func:`~picshare.api.main.create_app`) and
handed to every component constructor.  There is no module-level instance.

Directory Management
--------------------
``pics_dir`` and ``thumbs_dir`` are resolved to absolute paths (following
symlinks) and created on initialisation if they don't exist.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

#: Templates shipped with the package.
PACKAGE_TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"


class PicshareConfig(BaseSettings):
    """Main configuration for the picshare gallery service.

    Attributes
    ----------
    Storage:
        pics_dir : Path
            Directory holding the original pictures (the store).
        thumbs_dir : Path
            Directory holding derived thumbnails.
        templates_dir : Path
            Directory containing the Jinja2 HTML templates.

    URLs:
        site_host : str
            ``scheme://host[:port]`` prefix used for absolute picture URLs.
        proxy_root : str
            URL prefix under which every route is mounted.

    Server:
        listen_network : Literal["tcp", "unix"]
            Listen on a TCP port or on a unix domain socket.
        server_host : str
            TCP bind address.
        server_port : int
            TCP port (1-65535).
        unix_socket : Path | None
            Socket path when ``listen_network`` is ``"unix"``.

    Thumbnails:
        thumbnail_size : int
            Edge of the square bounding box thumbnails are resized to.
        thumbnail_quality : int
            JPEG encoder quality for thumbnails.

    Logging:
        log_level : str
            Root logging level name.

    Examples
    --------
        >>> cfg = PicshareConfig(pics_dir="/tmp/pics", thumbs_dir="/tmp/thumbs")
        >>> cfg.thumbnail_size
        64
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PICSHARE_",
        case_sensitive=False,
        frozen=True,
    )

    # Storage
    pics_dir: Path = Field(
        default=Path("pics"),
        description="Local filesystem path to store pictures",
    )
    thumbs_dir: Path = Field(
        default=Path("thumbs"),
        description="Local filesystem path to cache thumbnails",
    )
    templates_dir: Path = Field(
        default=PACKAGE_TEMPLATES_DIR,
        description="Local filesystem path to HTML templates",
    )

    # URLs
    site_host: str = Field(
        default="http://localhost:8080",
        description="Site host (scheme://host:port) used for absolute picture URLs",
    )
    proxy_root: str = Field(
        default="/",
        description="Root of web requests to process",
    )

    # Server
    listen_network: Literal["tcp", "unix"] = Field(
        default="tcp",
        description="Type of socket to listen on",
    )
    server_host: str = Field(
        default="0.0.0.0",
        description="Server bind address for TCP listening",
    )
    server_port: int = Field(default=8080, ge=1, le=65535)
    unix_socket: Path | None = Field(
        default=None,
        description="Unix socket path (required when listen_network='unix')",
    )

    # Thumbnails
    thumbnail_size: int = Field(default=64, ge=1, le=1024)
    thumbnail_quality: int = Field(default=90, ge=1, le=95)

    log_level: str = Field(default="INFO", description="Root logging level")

    @field_validator("pics_dir", "thumbs_dir", "templates_dir", mode="after")
    @classmethod
    def _canonical_path(cls, value: Path) -> Path:
        """Expand ``~`` and resolve to an absolute, symlink-free path."""
        return value.expanduser().resolve()

    @field_validator("site_host", mode="after")
    @classmethod
    def _strip_site_host(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("proxy_root", mode="after")
    @classmethod
    def _normalize_proxy_root(cls, value: str) -> str:
        """Normalise to ``""`` for the site root, else ``/prefix`` without a trailing slash."""
        value = value.strip().strip("/")
        return f"/{value}" if value else ""

    @field_validator("log_level", mode="after")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper()

    @model_validator(mode="after")
    def _check_unix_socket(self) -> PicshareConfig:
        if self.listen_network == "unix" and self.unix_socket is None:
            raise ValueError("unix_socket is required when listen_network is 'unix'")
        return self

    def __init__(self, **kwargs):
        """Initialise configuration and create the storage directories.

        Args:
            **kwargs: Configuration overrides (typically only used by tests).
        """
        super().__init__(**kwargs)

        self.pics_dir.mkdir(parents=True, exist_ok=True)
        self.thumbs_dir.mkdir(parents=True, exist_ok=True)
