from pathlib import Path

import pytest

from earlbox.exceptions import MetadataStoreError, StreamError
from earlbox.services.file_storage import BlobReadStream, FileStorageService
from helpers import b64

CONTENT = b"test file content"


def upload(client, data=CONTENT, name="test-file.txt", mime_type="text/plain", declared=None):
    return client.post(
        "/rpc/uploadFile",
        json={
            "filename": name,
            "original_name": name,
            "mime_type": mime_type,
            "file_size": len(data) if declared is None else declared,
            "file_data": b64(data),
        },
    )


def test_healthcheck(client):
    resp = client.get("/rpc/healthcheck")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    assert resp.json()["timestamp"]


def test_api_health_reports_database(client):
    resp = client.get("/api/health")
    assert resp.json() == {"status": "ok", "database": "connected"}


def test_upload_and_download_roundtrip(client):
    resp = upload(client)
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["id"]
    assert body["filename"] == f"{body['id']}.txt"
    assert body["download_url"] == f"/file/{body['id']}"
    assert "error" not in body

    download = client.get(body["download_url"])
    assert download.status_code == 200
    assert download.content == CONTENT
    assert download.headers["content-type"] == "text/plain"
    assert download.headers["content-length"] == str(len(CONTENT))
    assert download.headers["cache-control"] == "public, max-age=31536000"
    assert download.headers["etag"] == f'"{body["id"]}"'


def test_binary_content_survives_roundtrip(client):
    data = bytes(range(256)) * 1000
    body = upload(client, data=data, name="blob.bin", mime_type="application/octet-stream").json()
    download = client.get(body["download_url"])
    assert download.content == data
    assert download.headers["content-type"] == "application/octet-stream"


def test_repeated_downloads_are_identical(client):
    body = upload(client).json()
    first = client.get(body["download_url"])
    second = client.get(body["download_url"])
    assert first.content == second.content
    assert first.headers["etag"] == second.headers["etag"]


def test_matching_if_none_match_returns_304(client):
    body = upload(client).json()
    resp = client.get(body["download_url"], headers={"If-None-Match": f'"{body["id"]}"'})
    assert resp.status_code == 304
    assert resp.content == b""
    assert resp.headers["etag"] == f'"{body["id"]}"'


@pytest.mark.parametrize("header", ['"other", "{id}"', 'W/"{id}"', "*"])
def test_if_none_match_list_forms(client, header):
    body = upload(client).json()
    resp = client.get(body["download_url"], headers={"If-None-Match": header.format(id=body["id"])})
    assert resp.status_code == 304


def test_stale_if_none_match_streams_body(client):
    body = upload(client).json()
    resp = client.get(body["download_url"], headers={"If-None-Match": '"something-else"'})
    assert resp.status_code == 200
    assert resp.content == CONTENT


def test_unknown_id_is_404(client):
    resp = client.get("/file/does-not-exist")
    assert resp.status_code == 404
    assert resp.text == "File not found"


def test_missing_blob_is_404(client, settings):
    body = upload(client).json()
    (Path(settings.FILE_STORAGE_PATH) / body["filename"]).unlink()
    resp = client.get(body["download_url"])
    assert resp.status_code == 404
    assert resp.text == "File not found on server"


def test_metadata_store_failure_is_500(client, monkeypatch):
    async def broken(self, file_id):
        raise MetadataStoreError("database is down")

    monkeypatch.setattr("earlbox.repositories.files_repo.FilesRepository.find_by_id", broken)
    resp = client.get("/file/anything")
    assert resp.status_code == 500
    assert resp.text == "Internal server error"


def test_get_file_metadata(client):
    body = upload(client, declared=9999).json()
    resp = client.get("/rpc/getFileMetadata", params={"id": body["id"]})
    assert resp.status_code == 200
    record = resp.json()
    assert record["id"] == body["id"]
    assert record["filename"] == body["filename"]
    assert record["original_name"] == "test-file.txt"
    assert record["mime_type"] == "text/plain"
    assert record["file_size"] == len(CONTENT)
    assert record["file_path"] == body["filename"]
    assert record["created_at"]

    again = client.get("/rpc/getFileMetadata", params={"id": body["id"]})
    assert again.json() == record


def test_get_file_metadata_unknown_id_is_null(client):
    resp = client.get("/rpc/getFileMetadata", params={"id": "nope"})
    assert resp.status_code == 200
    assert resp.json() is None


def test_stats_empty_store(client):
    assert client.get("/rpc/getFileStats").json() == {"total_files": 0, "total_size": 0}


def test_stats_after_uploads(client):
    for size in (500, 2048, 1536):
        assert upload(client, data=b"a" * size, name="f.bin").json()["success"]
    assert client.get("/rpc/getFileStats").json() == {"total_files": 3, "total_size": 4084}


def test_stats_unreachable_store_is_503(client, monkeypatch):
    async def broken(self):
        raise MetadataStoreError("database is down")

    monkeypatch.setattr("earlbox.repositories.files_repo.FilesRepository.aggregate", broken)
    resp = client.get("/rpc/getFileStats")
    assert resp.status_code == 503


def test_extension_case_preserved_and_bare_id_without_extension(client):
    upper = upload(client, name="Scan.PDF", mime_type="application/pdf").json()
    assert upper["filename"] == f"{upper['id']}.PDF"
    bare = upload(client, name="README").json()
    assert bare["filename"] == bare["id"]


def test_malformed_payload_is_400(client):
    resp = client.post(
        "/rpc/uploadFile",
        json={"original_name": "a.txt", "mime_type": "text/plain", "file_size": 3, "file_data": "!!!!"},
    )
    assert resp.status_code == 400
    assert resp.json()["success"] is False
    assert resp.json()["id"] == ""


def test_declared_size_over_limit_fails_validation(client):
    resp = client.post(
        "/rpc/uploadFile",
        json={
            "original_name": "big.bin",
            "mime_type": "application/octet-stream",
            "file_size": 209_715_201,
            "file_data": b64(b"small"),
        },
    )
    assert resp.status_code == 400
    assert resp.json()["success"] is False
    assert resp.json()["id"] == ""


def test_declared_size_bound_follows_configured_limit(small_limit, client):
    resp = upload(client, data=b"x" * 10, name="a.bin", declared=2048)
    assert resp.status_code == 400
    assert client.get("/rpc/getFileStats").json() == {"total_files": 0, "total_size": 0}


def test_negative_declared_size_is_not_trusted(client):
    body = upload(client, declared=-5).json()
    assert body["success"] is True
    record = client.get("/rpc/getFileMetadata", params={"id": body["id"]}).json()
    assert record["file_size"] == len(CONTENT)


@pytest.fixture()
def small_limit(settings):
    settings.MAX_UPLOAD_BYTES = 1024
    return settings


def test_oversized_upload_leaves_no_trace(small_limit, client):
    before = client.get("/rpc/getFileStats").json()

    resp = upload(client, data=b"x" * 1025, name="big.bin")

    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert (body["id"], body["filename"], body["download_url"]) == ("", "", "")
    assert client.get("/rpc/getFileStats").json() == before
    assert list(Path(small_limit.FILE_STORAGE_PATH).iterdir()) == []


def test_metadata_insert_failure_returns_failure_shape(client, settings, monkeypatch):
    async def broken(self, record):
        raise MetadataStoreError("insert failed")

    monkeypatch.setattr("earlbox.repositories.files_repo.FilesRepository.insert", broken)
    resp = upload(client)
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is False
    assert (body["id"], body["filename"], body["download_url"]) == ("", "", "")
    assert list(Path(settings.FILE_STORAGE_PATH).iterdir()) == []


@pytest.fixture()
def opened_streams(monkeypatch):
    """Every BlobReadStream the serving route opens."""
    streams = []
    original = FileStorageService.open_read_stream

    async def recording(self, filename, chunk_size=64 * 1024):
        stream = await original(self, filename, chunk_size)
        streams.append(stream)
        return stream

    monkeypatch.setattr(FileStorageService, "open_read_stream", recording)
    return streams


def test_read_error_mid_stream_truncates_body(client, settings, opened_streams, monkeypatch):
    settings.STREAM_CHUNK_SIZE = 4
    body = upload(client).json()
    original = BlobReadStream.__anext__
    reads = {"count": 0}

    async def failing_after_first_chunk(self):
        if reads["count"] >= 1:
            raise StreamError("disk went away")
        reads["count"] += 1
        return await original(self)

    monkeypatch.setattr(BlobReadStream, "__anext__", failing_after_first_chunk)
    resp = client.get(body["download_url"])

    assert resp.status_code == 200
    assert resp.headers["content-length"] == str(len(CONTENT))
    assert resp.content == CONTENT[:4]
    assert opened_streams[0].closed


def test_stream_is_closed_even_if_body_never_iterates(client, opened_streams, monkeypatch):
    async def never_reads(stream, file_id):
        return
        yield

    monkeypatch.setattr("earlbox.routes.files._pipe", never_reads)
    body = upload(client).json()
    client.get(body["download_url"])

    assert len(opened_streams) == 1
    assert opened_streams[0].closed
