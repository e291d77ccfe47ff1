"""picshare — FastAPI application.

This module is the HTTP boundary of the gallery.  It builds the FastAPI
application around the core components, renders their results as HTML or
JSON, and maps core errors to HTTP responses.  It also provides the
``main()`` CLI function that launches the uvicorn server.

Architecture
------------
- **Configuration** is a frozen :class:`~picshare.core.config.PicshareConfig`
  built once and passed to :func:`create_app`.  The core components are
  constructed from it and kept on ``app.state.gallery``.
- **Listing** reads a fresh snapshot of the pictures directory on every
  request and orders it with the requested policy.
- **Thumbnails** are produced by
  :class:`~picshare.core.thumbnails.ThumbnailCache`; the route only serves
  the resulting file.
- **Errors** raised by the core are turned into responses by a single
  exception handler, which logs their causes.  The core itself never logs.

Endpoints
---------
All paths are relative to ``proxy_root``.

========  =====================  ======================================
Method    Path                   Purpose
========  =====================  ======================================
GET       ``/``                  HTML index of the pictures
GET       ``/list``              JSON list of picture names
POST      ``/upload``            Multipart upload, redirects to ``/``
POST      ``/delete``            Delete one picture (form ``filename``)
GET       ``/pics/{name}``       Original picture (static files)
GET       ``/thumbs/{name}``     Thumbnail, generated on demand
GET       ``/healthz``           Liveness probe (not prefixed)
========  =====================  ======================================

Usage
-----
CLI (installed entry point)::

    picshare

Direct invocation::

    python -m picshare.api.main
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import quote

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from starlette.datastructures import UploadFile

from picshare import __version__
from picshare.api.models import DeleteResponse, EntryView, ErrorResponse, ListResponse
from picshare.core.config import PicshareConfig
from picshare.core.entries import Entry, EntryStore
from picshare.core.errors import PicshareError
from picshare.core.mutations import MutationGateway, UploadPart
from picshare.core.ordering import SortDirection, SortKey, SortPolicy, sort_snapshot
from picshare.core.thumbnails import ThumbnailCache, guess_mime_type

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# ---------------------------------------------------------------------------
# Error kind → HTTP status.
# ---------------------------------------------------------------------------
STATUS_BY_KIND: dict[str, int] = {
    "not_found": 404,
    "validation": 400,
    "method_not_allowed": 405,
    "unsupported_type": 415,
    "decode": 422,
    "encode": 500,
    "io": 500,
}


@dataclass(frozen=True)
class Gallery:
    """Core components and rendering helpers shared by all routes."""

    config: PicshareConfig
    store: EntryStore
    thumbnails: ThumbnailCache
    gateway: MutationGateway
    templates: Jinja2Templates

    @property
    def root_url(self) -> str:
        return f"{self.config.proxy_root}/"

    def pic_url(self, name: str) -> str:
        return f"{self.config.proxy_root}/pics/{quote(name)}"

    def thumb_url(self, name: str) -> str:
        return f"{self.config.proxy_root}/thumbs/{quote(name)}"


def get_gallery(request: Request) -> Gallery:
    """FastAPI dependency returning the application's :class:`Gallery`."""
    return request.app.state.gallery


def _entry_view(entry: Entry, gallery: Gallery) -> EntryView:
    return EntryView(
        name=entry.name,
        size=entry.size,
        mime=guess_mime_type(entry.name) or "",
        last_mod=entry.modified_at.strftime("%Y-%m-%d %H:%M:%S UTC"),
        is_directory=entry.is_directory,
        pic_url=gallery.pic_url(entry.name),
        thumb_url=gallery.thumb_url(entry.name),
    )


def _sort_policy(
    sort: SortKey = Query(SortKey.DATE, description="Sort key: name, date, or size."),
    direction: SortDirection = Query(SortDirection.DESCENDING, alias="dir", description="asc or desc."),
) -> SortPolicy:
    return SortPolicy(key=sort, direction=direction)


# ---------------------------------------------------------------------------
# Routes.
# ---------------------------------------------------------------------------
router = APIRouter()


@router.get("/", response_class=HTMLResponse, name="index")
def index(
    request: Request,
    policy: SortPolicy = Depends(_sort_policy),
    gallery: Gallery = Depends(get_gallery),
) -> HTMLResponse:
    """Render the HTML index of the pictures directory.

    Args:
        request: Incoming request (needed by the template renderer).
        policy: Ordering requested through ``sort`` and ``dir``.
        gallery: Application components.

    Returns:
        The rendered ``index.html`` template.
    """
    snapshot = sort_snapshot(gallery.store.snapshot(), policy)
    return gallery.templates.TemplateResponse(
        request,
        "index.html",
        {
            "files": [_entry_view(entry, gallery) for entry in snapshot],
            "upload_url": f"{gallery.config.proxy_root}/upload",
            "delete_url": f"{gallery.config.proxy_root}/delete",
            "policy": policy,
        },
    )


@router.get("/list", response_model=ListResponse)
def list_pictures(
    policy: SortPolicy = Depends(_sort_policy),
    gallery: Gallery = Depends(get_gallery),
) -> ListResponse:
    """Return the ordered picture names and the URL they are served under."""
    snapshot = sort_snapshot(gallery.store.snapshot(), policy)
    return ListResponse(
        base_url=f"{gallery.config.site_host}{gallery.config.proxy_root}/pics/",
        files=snapshot.names(),
    )


@router.api_route("/upload", methods=["GET", "POST", "PUT"])
async def upload(request: Request, gallery: Gallery = Depends(get_gallery)) -> RedirectResponse:
    """Store every file of a multipart body and redirect to the index.

    Only POST is accepted; the method check belongs to the gateway so other
    methods are routed here and rejected with 405.
    """
    parts: list[UploadPart] = []
    form = None
    if request.method == "POST":
        form = await request.form()
        for _, value in form.multi_items():
            if isinstance(value, UploadFile):
                parts.append(UploadPart(filename=value.filename, stream=value.file))

    try:
        stored = await run_in_threadpool(gallery.gateway.upload, request.method, parts)
    finally:
        if form is not None:
            await form.close()

    logger.info("Stored %d upload(s): %s", len(stored), ", ".join(stored))
    return RedirectResponse(gallery.root_url, status_code=302)


@router.api_route("/delete", methods=["GET", "POST", "PUT", "DELETE"], response_model=DeleteResponse)
async def delete(request: Request, gallery: Gallery = Depends(get_gallery)) -> DeleteResponse:
    """Delete the picture named by the ``filename`` form value.

    The value is looked up in the form body first and then in the query
    string.  Only its base name is used.
    """
    filename: str | None = None
    if request.method == "POST":
        form = await request.form()
        try:
            value = form.get("filename")
            if isinstance(value, str):
                filename = value
        finally:
            await form.close()
    if not filename:
        filename = request.query_params.get("filename")

    result = await run_in_threadpool(gallery.gateway.delete, request.method, filename)
    logger.info("Deleted '%s'", result.name)
    if result.thumbnail_error is not None:
        logger.warning(
            "Could not remove thumbnail for '%s': %s",
            result.name,
            result.thumbnail_error.cause,
        )
    return DeleteResponse(deleted=result.name)


@router.get("/thumbs/{name}")
def thumbnail(name: str, gallery: Gallery = Depends(get_gallery)) -> FileResponse:
    """Serve the thumbnail of a picture, generating it if needed."""
    path = gallery.thumbnails.get(name)
    return FileResponse(path, media_type="image/jpeg")


# ---------------------------------------------------------------------------
# Error handling.
# ---------------------------------------------------------------------------


async def handle_core_error(request: Request, exc: PicshareError) -> JSONResponse:
    """Translate a core error into a JSON response and log its cause.

    Client errors are logged as warnings with the cause's message.  Server
    errors are logged with the cause's traceback.
    """
    status_code = STATUS_BY_KIND.get(exc.kind, 500)
    if status_code >= 500:
        logger.error(
            "%s %s failed: %s",
            request.method,
            request.url.path,
            exc.message,
            exc_info=exc.cause,
        )
    else:
        logger.warning(
            "%s %s rejected (%s): %s; cause: %s",
            request.method,
            request.url.path,
            exc.kind,
            exc.message,
            exc.cause,
        )

    headers = {"Allow": "POST"} if status_code == 405 else None
    body = ErrorResponse(kind=exc.kind, message=exc.message)
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


# ---------------------------------------------------------------------------
# Application factory.
# ---------------------------------------------------------------------------


def create_app(config: PicshareConfig | None = None) -> FastAPI:
    """Build the FastAPI application for a configuration.

    Args:
        config: Configuration to use.  When omitted it is loaded from the
            environment.

    Returns:
        A ready-to-serve FastAPI application.
    """
    config = config or PicshareConfig()

    store = EntryStore(config.pics_dir)
    thumbnails = ThumbnailCache.from_config(config, store)
    gallery = Gallery(
        config=config,
        store=store,
        thumbnails=thumbnails,
        gateway=MutationGateway(store, thumbnails),
        templates=Jinja2Templates(directory=str(config.templates_dir)),
    )

    app = FastAPI(
        title="picshare",
        description="Self-hosted picture gallery with on-demand thumbnails.",
        version=__version__,
    )
    app.state.gallery = gallery
    app.add_exception_handler(PicshareError, handle_core_error)

    @app.get("/healthz", tags=["health"])
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(router, prefix=config.proxy_root)

    # Originals are plain files; serve them directly.
    app.mount(
        f"{config.proxy_root}/pics",
        StaticFiles(directory=str(config.pics_dir)),
        name="pics",
    )

    return app


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads the listening socket from :class:`PicshareConfig`: a TCP
    ``server_host:server_port`` (default ``0.0.0.0:8080``) or, with
    ``PICSHARE_LISTEN_NETWORK=unix``, the ``PICSHARE_UNIX_SOCKET`` path.  A
    unix socket file is removed again when the server stops.

    This function is registered as the ``picshare`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    config = PicshareConfig()
    logging.basicConfig(level=config.log_level, format=LOG_FORMAT)

    logger.info("templates: %s", config.templates_dir)
    logger.info("pics:      %s", config.pics_dir)
    logger.info("thumbs:    %s", config.thumbs_dir)

    app = create_app(config)

    if config.listen_network == "unix":
        try:
            uvicorn.run(app, uds=str(config.unix_socket), log_level=config.log_level.lower())
        finally:
            config.unix_socket.unlink(missing_ok=True)
    else:
        uvicorn.run(
            app,
            host=config.server_host,
            port=config.server_port,
            log_level=config.log_level.lower(),
        )


if __name__ == "__main__":
    main()
