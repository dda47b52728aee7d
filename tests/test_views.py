"""
Integration tests for the HTTP surface: upload, metadata, signed
downloads and the response streaming helper.
"""

import datetime

import jwt
import pytest
from django.conf import settings
from django.contrib.auth.models import User
from django.core.files.storage import default_storage
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import override_settings
from rest_framework.test import APIClient

from vault.exceptions import NotFound
from vault.responses import encrypted_file_response
from vault.tokens import generate_download_token, validate_download_token

from .conftest import TEST_KEY


@pytest.fixture
def anonymous(storage_root):
    storages = {
        "default": {
            "BACKEND": "utils.storage.EncryptedFileStorage",
            "OPTIONS": {
                "key": TEST_KEY,
                "cipher_method": "aes-256-cbc",
                "root": str(storage_root),
            },
        },
        "staticfiles": {
            "BACKEND": "django.contrib.staticfiles.storage.StaticFilesStorage",
        },
    }
    with override_settings(STORAGES=storages, PUBLIC_BASE_URL=""):
        yield APIClient()


@pytest.fixture
def client(anonymous):
    client = APIClient()
    client.force_authenticate(user=User(username="operator"))
    return client


def body(response):
    content = b"".join(response.streaming_content)
    response.close()
    return content


class TestUpload:
    def test_upload_is_stored_encrypted(self, client, storage_root):
        upload = SimpleUploadedFile("hello.txt", b"hello world", content_type="text/plain")
        response = client.post("/api/files/upload", {"file": upload, "path": "docs"}, format="multipart")

        assert response.status_code == 201
        assert response.data["path"] == "docs/hello.txt"
        raw = (storage_root / "docs" / "hello.txt.enc").read_bytes()
        assert raw != b"hello world"
        assert default_storage.read("docs/hello.txt") == b"hello world"

    def test_upload_requires_file(self, client):
        response = client.post("/api/files/upload", {"path": "docs"}, format="multipart")
        assert response.status_code == 400


class TestMetadata:
    def test_metadata(self, client):
        default_storage.write("report.txt", b"x" * 20)
        response = client.get("/api/files/metadata", {"path": "report.txt"})

        assert response.status_code == 200
        assert response.data["path"] == "report.txt"
        assert response.data["size"] == 32
        assert response.data["visibility"] in ("public", "private")

    def test_metadata_missing(self, client):
        response = client.get("/api/files/metadata", {"path": "ghost.txt"})
        assert response.status_code == 404


class TestDelete:
    def test_delete(self, client):
        default_storage.write("old.txt", b"old")
        response = client.post("/api/files/delete", {"path": "old.txt"}, format="json")
        assert response.status_code == 200
        assert not default_storage.exists("old.txt")

    def test_delete_missing(self, client):
        response = client.post("/api/files/delete", {"path": "old.txt"}, format="json")
        assert response.status_code == 404


class TestDownload:
    def test_token_then_download(self, client):
        default_storage.write("docs/report.txt", b"hello world")

        response = client.post("/api/download/token", {"path": "docs/report.txt"}, format="json")
        assert response.status_code == 200
        url = response.data["download_url"]
        assert url.startswith("http://testserver/api/download?token=")

        download = client.get(url)
        assert download.status_code == 200
        assert download["Content-Type"].startswith("text/plain")
        assert download["Content-Disposition"] == 'inline; filename="report.txt"'
        assert body(download) == b"hello world"

    def test_attachment_disposition(self, client):
        default_storage.write("a.bin", b"\x00\x01")
        token = generate_download_token("a.bin")
        download = client.get("/api/download", {"token": token, "disposition": "attachment"})
        assert download["Content-Disposition"] == 'attachment; filename="a.bin"'
        assert body(download) == b"\x00\x01"

    def test_token_for_missing_file(self, client):
        response = client.post("/api/download/token", {"path": "ghost.txt"}, format="json")
        assert response.status_code == 404

    def test_missing_token(self, client):
        assert client.get("/api/download").status_code == 403

    def test_invalid_token(self, client):
        assert client.get("/api/download", {"token": "garbage"}).status_code == 403

    def test_expired_token(self, client):
        default_storage.write("a.txt", b"a")
        past = datetime.datetime.now(datetime.timezone.utc) - datetime.timedelta(hours=1)
        token = jwt.encode(
            {"path": "a.txt", "type": "download", "exp": int(past.timestamp())},
            settings.SECRET_KEY,
            algorithm="HS256",
        )
        assert client.get("/api/download", {"token": token}).status_code == 403

    def test_file_removed_after_token(self, client):
        token = generate_download_token("later.txt")
        assert client.get("/api/download", {"token": token}).status_code == 404


class TestPermissions:
    def test_anonymous_token_request_refused(self, anonymous):
        default_storage.write("docs/report.txt", b"hello world")
        response = anonymous.post("/api/download/token", {"path": "docs/report.txt"}, format="json")
        assert response.status_code in (401, 403)
        assert "download_url" not in response.data

    def test_anonymous_upload_refused(self, anonymous, storage_root):
        upload = SimpleUploadedFile("hello.txt", b"hello world")
        response = anonymous.post("/api/files/upload", {"file": upload}, format="multipart")
        assert response.status_code in (401, 403)
        assert not (storage_root / "hello.txt.enc").exists()

    def test_anonymous_metadata_refused(self, anonymous):
        default_storage.write("report.txt", b"x")
        response = anonymous.get("/api/files/metadata", {"path": "report.txt"})
        assert response.status_code in (401, 403)

    def test_anonymous_delete_refused(self, anonymous):
        default_storage.write("keep.txt", b"keep")
        response = anonymous.post("/api/files/delete", {"path": "keep.txt"}, format="json")
        assert response.status_code in (401, 403)
        assert default_storage.exists("keep.txt")

    def test_download_needs_only_the_token(self, anonymous):
        default_storage.write("shared.txt", b"shared by link")
        token = generate_download_token("shared.txt")
        download = anonymous.get("/api/download", {"token": token})
        assert download.status_code == 200
        assert body(download) == b"shared by link"


class TestTokens:
    def test_round_trip(self):
        payload = validate_download_token(generate_download_token("a/b.txt"))
        assert payload["path"] == "a/b.txt"
        assert payload["type"] == "download"

    def test_wrong_purpose(self):
        token = jwt.encode({"path": "a.txt", "type": "export"}, settings.SECRET_KEY, algorithm="HS256")
        with pytest.raises(jwt.InvalidTokenError):
            validate_download_token(token)


class TestResponseHelper:
    def test_streams_in_chunks(self, storage):
        data = bytes(range(256)) * 100
        storage.write("media/picture.png", data)

        response = encrypted_file_response(storage, "media/picture.png", chunk_size=1000)
        chunks = list(response.streaming_content)
        response.close()

        assert response["Content-Type"] == "image/png"
        assert all(len(chunk) <= 1000 for chunk in chunks)
        assert b"".join(chunks) == data

    def test_filename_hint_and_headers(self, storage):
        storage.write("blob", b"{}")
        response = encrypted_file_response(
            storage,
            "blob",
            filename="data.json",
            as_attachment=True,
            headers={"Cache-Control": "no-store"},
        )
        assert response["Content-Type"] == "application/json"
        assert response["Content-Disposition"] == 'attachment; filename="data.json"'
        assert response["Cache-Control"] == "no-store"
        response.close()

    def test_missing_file(self, storage):
        with pytest.raises(NotFound):
            encrypted_file_response(storage, "ghost.txt")

    def test_close_without_reading(self, storage, monkeypatch):
        storage.write("unread.txt", b"never read")
        opened = []
        read_stream = storage.read_stream

        def tracking_read_stream(name):
            opened.append(read_stream(name))
            return opened[-1]

        monkeypatch.setattr(storage, "read_stream", tracking_read_stream)
        response = encrypted_file_response(storage, "unread.txt")
        response.close()
        assert opened[0].closed
