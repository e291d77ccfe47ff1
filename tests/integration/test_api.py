"""Integration tests for picshare.api.main — FastAPI endpoints.

All tests use the FastAPI TestClient against an app built from a temporary
configuration.  Tests cover every endpoint:

- ``GET /healthz`` — Liveness probe.
- ``GET /`` — HTML index.
- ``GET /list`` — JSON picture list.
- ``POST /upload`` — Multipart upload.
- ``POST /delete`` — Picture deletion.
- ``GET /pics/{name}`` — Original pictures.
- ``GET /thumbs/{name}`` — On-demand thumbnails.
"""

from __future__ import annotations

import io
import logging
import shutil

from fastapi.testclient import TestClient
from PIL import Image

from picshare.api.main import create_app
from picshare.core.config import PicshareConfig
from picshare.core.errors import StorageError


def _jpeg_bytes(color=(10, 200, 10), size=(90, 60)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color=color).save(buffer, format="JPEG")
    return buffer.getvalue()


# ---------------------------------------------------------------------------
# Health and index tests.
# ---------------------------------------------------------------------------


class TestHealth:
    """Test GET /healthz."""

    def test_healthz(self, test_client):
        """The liveness probe answers ok."""
        resp = test_client.get("/healthz")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


class TestIndexPage:
    """Test GET / — HTML index."""

    def test_index_empty(self, test_client):
        """An empty store renders the placeholder row."""
        resp = test_client.get("/")
        assert resp.status_code == 200
        assert "text/html" in resp.headers["content-type"]
        assert "No pictures yet." in resp.text

    def test_index_lists_pictures(self, test_client, make_jpeg):
        """Pictures appear with picture, thumbnail, and delete links."""
        make_jpeg("cat.jpg")
        resp = test_client.get("/")
        assert resp.status_code == 200
        assert 'href="/pics/cat.jpg"' in resp.text
        assert 'src="/thumbs/cat.jpg"' in resp.text
        assert 'action="/delete"' in resp.text
        assert 'action="/upload"' in resp.text

    def test_index_escapes_names(self, test_client, pics_dir):
        """File names are HTML-escaped."""
        (pics_dir / "<b>.txt").write_text("x")
        resp = test_client.get("/")
        assert "<b>.txt" not in resp.text
        assert "&lt;b&gt;.txt" in resp.text

    def test_index_order(self, test_client, make_jpeg, past_ns):
        """Newest pictures are listed first."""
        make_jpeg("old.jpg", mtime_ns=past_ns)
        make_jpeg("new.jpg", mtime_ns=past_ns + 60_000_000_000)
        text = test_client.get("/").text
        assert text.index("new.jpg") < text.index("old.jpg")


# ---------------------------------------------------------------------------
# List endpoint tests.
# ---------------------------------------------------------------------------


class TestList:
    """Test GET /list — JSON picture list."""

    def test_list_empty(self, test_client):
        """An empty store lists no files."""
        resp = test_client.get("/list")
        assert resp.status_code == 200
        assert resp.json() == {"baseUrl": "http://pics.example.org/pics/", "files": []}

    def test_list_default_order(self, test_client, make_jpeg, pics_dir, past_ns, touch):
        """Directories first, then newest first, ties by name."""
        make_jpeg("b.jpg", mtime_ns=past_ns)
        make_jpeg("a.jpg", mtime_ns=past_ns)
        make_jpeg("c.jpg", mtime_ns=past_ns + 5_000_000_000)
        (pics_dir / "album").mkdir()
        touch(pics_dir / "album", past_ns - 5_000_000_000)

        resp = test_client.get("/list")
        assert resp.json()["files"] == ["album", "c.jpg", "a.jpg", "b.jpg"]

    def test_list_sort_by_name(self, test_client, make_jpeg, past_ns):
        """sort=name&dir=asc orders alphabetically."""
        make_jpeg("b.jpg", mtime_ns=past_ns + 1_000_000_000)
        make_jpeg("a.jpg", mtime_ns=past_ns)
        resp = test_client.get("/list", params={"sort": "name", "dir": "asc"})
        assert resp.json()["files"] == ["a.jpg", "b.jpg"]

    def test_list_sort_by_size(self, test_client, pics_dir):
        """sort=size&dir=desc orders largest first."""
        (pics_dir / "small").write_bytes(b"1")
        (pics_dir / "large").write_bytes(b"1" * 100)
        resp = test_client.get("/list", params={"sort": "size", "dir": "desc"})
        assert resp.json()["files"] == ["large", "small"]

    def test_list_invalid_sort(self, test_client):
        """Unknown sort keys are rejected by request validation."""
        resp = test_client.get("/list", params={"sort": "colour"})
        assert resp.status_code == 422

    def test_list_unreadable_store(self, test_client, pics_dir):
        """A vanished pictures directory is reported as a 500 I/O error."""
        shutil.rmtree(pics_dir)
        resp = test_client.get("/list")
        assert resp.status_code == 500
        data = resp.json()
        assert data["success"] is False
        assert data["kind"] == "io"
        assert data["message"] == "Could not read the pictures directory"


# ---------------------------------------------------------------------------
# Upload endpoint tests.
# ---------------------------------------------------------------------------


class TestUpload:
    """Test POST /upload — multipart upload."""

    def test_upload_redirects_to_index(self, test_client, pics_dir):
        """A successful upload stores the file and redirects with 302."""
        resp = test_client.post(
            "/upload",
            files={"file": ("cat.jpg", _jpeg_bytes(), "image/jpeg")},
            follow_redirects=False,
        )
        assert resp.status_code == 302
        assert resp.headers["location"] == "/"
        assert (pics_dir / "cat.jpg").exists()

    def test_upload_multiple_files_and_fields(self, test_client, pics_dir):
        """All file parts are stored; plain fields are ignored."""
        resp = test_client.post(
            "/upload",
            data={"note": "holiday"},
            files=[
                ("file", ("a.jpg", b"aaa", "image/jpeg")),
                ("file", ("b.jpg", b"bbb", "image/jpeg")),
            ],
            follow_redirects=False,
        )
        assert resp.status_code == 302
        assert sorted(p.name for p in pics_dir.iterdir()) == ["a.jpg", "b.jpg"]

    def test_upload_overwrites(self, test_client, pics_dir):
        """Uploading an existing name replaces its content."""
        (pics_dir / "a.jpg").write_bytes(b"x" * 500)
        test_client.post(
            "/upload",
            files={"file": ("a.jpg", b"new", "image/jpeg")},
            follow_redirects=False,
        )
        assert (pics_dir / "a.jpg").read_bytes() == b"new"

    def test_upload_strips_path(self, test_client, pics_dir, temp_dir):
        """Upload names with path components stay inside the store."""
        test_client.post(
            "/upload",
            files={"file": ("../escape.jpg", b"x", "image/jpeg")},
            follow_redirects=False,
        )
        assert (pics_dir / "escape.jpg").exists()
        assert not (temp_dir / "escape.jpg").exists()

    def test_upload_get_not_allowed(self, test_client):
        """GET /upload is rejected with 405 and an Allow header."""
        resp = test_client.get("/upload")
        assert resp.status_code == 405
        assert resp.headers["allow"] == "POST"
        data = resp.json()
        assert data["kind"] == "method_not_allowed"
        assert data["message"] == "Upload requires POST method"


# ---------------------------------------------------------------------------
# Delete endpoint tests.
# ---------------------------------------------------------------------------


class TestDelete:
    """Test POST /delete — picture deletion."""

    def test_delete_existing(self, test_client, pics_dir):
        """Deleting an existing picture returns success."""
        (pics_dir / "cat.jpg").write_bytes(b"x")
        resp = test_client.post("/delete", data={"filename": "cat.jpg"})
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "deleted": "cat.jpg"}
        assert not (pics_dir / "cat.jpg").exists()

    def test_delete_filename_in_query(self, test_client, pics_dir):
        """The filename may also be given in the query string."""
        (pics_dir / "cat.jpg").write_bytes(b"x")
        resp = test_client.post("/delete", params={"filename": "cat.jpg"})
        assert resp.status_code == 200

    def test_delete_traversal(self, test_client, temp_dir):
        """'../../etc/passwd' only ever targets 'passwd' inside the store."""
        (temp_dir / "passwd").write_text("keep")
        resp = test_client.post("/delete", data={"filename": "../../etc/passwd"})
        assert resp.status_code == 404
        assert resp.json()["kind"] == "not_found"
        assert (temp_dir / "passwd").exists()

    def test_delete_missing_filename(self, test_client):
        """A POST without filename is a 400 validation error."""
        resp = test_client.post("/delete", data={})
        assert resp.status_code == 400
        assert resp.json()["message"] == "Expecting filename form value"

    def test_delete_get_not_allowed(self, test_client, pics_dir):
        """GET /delete is rejected with 405 and deletes nothing."""
        (pics_dir / "cat.jpg").write_bytes(b"x")
        resp = test_client.get("/delete", params={"filename": "cat.jpg"})
        assert resp.status_code == 405
        assert (pics_dir / "cat.jpg").exists()

    def test_delete_removes_thumbnail(self, test_client, make_jpeg, thumbs_dir):
        """The picture's thumbnail is removed along with it."""
        make_jpeg("cat.jpg")
        assert test_client.get("/thumbs/cat.jpg").status_code == 200
        assert (thumbs_dir / "cat.jpg").exists()

        test_client.post("/delete", data={"filename": "cat.jpg"})
        assert not (thumbs_dir / "cat.jpg").exists()
        assert test_client.get("/thumbs/cat.jpg").status_code == 404

    def test_delete_nul_byte(self, test_client):
        """A NUL byte in the filename is a 400 validation error."""
        resp = test_client.post("/delete", data={"filename": "a\x00b"})
        assert resp.status_code == 400
        assert resp.json()["kind"] == "validation"

    def test_delete_logs_thumbnail_failure(self, monkeypatch, test_client, pics_dir, caplog):
        """A thumbnail that cannot be removed is logged; the delete succeeds."""
        (pics_dir / "cat.jpg").write_bytes(b"x")

        def _broken_invalidate(name):
            raise StorageError("Could not remove thumbnail", PermissionError("denied"))

        thumbnails = test_client.app.state.gallery.thumbnails
        monkeypatch.setattr(thumbnails, "invalidate", _broken_invalidate)
        with caplog.at_level(logging.WARNING, logger="picshare.api.main"):
            resp = test_client.post("/delete", data={"filename": "cat.jpg"})

        assert resp.status_code == 200
        assert resp.json() == {"success": True, "deleted": "cat.jpg"}
        assert "Could not remove thumbnail for 'cat.jpg': denied" in caplog.text


# ---------------------------------------------------------------------------
# Picture and thumbnail serving tests.
# ---------------------------------------------------------------------------


class TestPictures:
    """Test GET /pics/{name} — originals."""

    def test_serves_original(self, test_client, make_jpeg):
        """Originals are served byte for byte."""
        path = make_jpeg("cat.jpg")
        resp = test_client.get("/pics/cat.jpg")
        assert resp.status_code == 200
        assert resp.content == path.read_bytes()

    def test_missing_original(self, test_client):
        """Unknown originals are 404."""
        assert test_client.get("/pics/none.jpg").status_code == 404


class TestThumbnails:
    """Test GET /thumbs/{name} — on-demand thumbnails."""

    def test_thumbnail_generated(self, test_client, make_jpeg):
        """A JPEG thumbnail of 64x64 is returned."""
        make_jpeg("cat.jpg", size=(640, 480))
        resp = test_client.get("/thumbs/cat.jpg")
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "image/jpeg"
        with Image.open(io.BytesIO(resp.content)) as image:
            assert image.size == (64, 64)

    def test_thumbnail_stable(self, test_client, make_jpeg):
        """Repeated requests return identical bytes."""
        make_jpeg("cat.jpg")
        first = test_client.get("/thumbs/cat.jpg").content
        second = test_client.get("/thumbs/cat.jpg").content
        assert first == second

    def test_thumbnail_after_upload(self, test_client, past_ns, touch, pics_dir):
        """Thumbnails work for pictures uploaded through the API."""
        test_client.post(
            "/upload",
            files={"file": ("up.jpg", _jpeg_bytes(), "image/jpeg")},
            follow_redirects=False,
        )
        touch(pics_dir / "up.jpg", past_ns)
        assert test_client.get("/thumbs/up.jpg").status_code == 200

    def test_thumbnail_unsupported_type(self, test_client, pics_dir):
        """Non-JPEG names are 415."""
        (pics_dir / "a.png").write_bytes(b"x")
        resp = test_client.get("/thumbs/a.png")
        assert resp.status_code == 415
        assert resp.json()["kind"] == "unsupported_type"

    def test_thumbnail_missing_source(self, test_client):
        """Missing originals are 404."""
        resp = test_client.get("/thumbs/none.jpg")
        assert resp.status_code == 404

    def test_thumbnail_decode_error(self, test_client, pics_dir):
        """Originals that are not JPEGs are 422."""
        (pics_dir / "bad.jpg").write_bytes(b"garbage")
        resp = test_client.get("/thumbs/bad.jpg")
        assert resp.status_code == 422
        assert resp.json() == {
            "success": False,
            "kind": "decode",
            "message": "Image is not a proper JPEG",
        }

    def test_thumbnail_nul_byte(self, test_client):
        """A NUL byte in the name is a 400 validation error."""
        resp = test_client.get("/thumbs/a%00.jpg")
        assert resp.status_code == 400
        assert resp.json()["kind"] == "validation"


# ---------------------------------------------------------------------------
# Proxy root tests.
# ---------------------------------------------------------------------------


class TestProxyRoot:
    """Test mounting every route under a URL prefix."""

    def _client(self, temp_dir) -> TestClient:
        config = PicshareConfig(
            pics_dir=str(temp_dir / "pics"),
            thumbs_dir=str(temp_dir / "thumbs"),
            site_host="https://example.org",
            proxy_root="/ryan/",
            _env_file=None,
        )
        return TestClient(create_app(config))

    def test_prefixed_list(self, temp_dir):
        """The list endpoint and its base URL include the prefix."""
        with self._client(temp_dir) as client:
            resp = client.get("/ryan/list")
            assert resp.status_code == 200
            assert resp.json()["baseUrl"] == "https://example.org/ryan/pics/"
            assert client.get("/list").status_code == 404

    def test_prefixed_upload_redirect(self, temp_dir):
        """Uploads redirect to the prefixed index."""
        with self._client(temp_dir) as client:
            resp = client.post(
                "/ryan/upload",
                files={"file": ("a.jpg", b"x", "image/jpeg")},
                follow_redirects=False,
            )
            assert resp.status_code == 302
            assert resp.headers["location"] == "/ryan/"
            assert client.get("/ryan/pics/a.jpg").content == b"x"
