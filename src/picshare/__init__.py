"""picshare - self-hosted picture gallery with on-demand thumbnails."""

__version__ = "0.1.0"

from picshare.core.config import PicshareConfig

__all__ = [
    "PicshareConfig",
    "__version__",
]
