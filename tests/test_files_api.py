import asyncio

import pytest

from main import app


def store(artifact_storage, content=b"a,b\n1,2\n", filename="report.csv", job_id=None):
    return asyncio.run(artifact_storage.save_artifact(content, filename, "text/csv", job_id))


def test_download_streams_artifact_with_headers(client, artifact_storage):
    info = store(artifact_storage)

    response = client.get(f"/v1/files/download/{info.file_id}")

    assert response.status_code == 200
    assert response.content == b"a,b\n1,2\n"
    assert response.headers["content-type"].startswith("text/csv")
    assert response.headers["content-disposition"] == 'attachment; filename="report.csv"'
    assert response.headers["content-length"] == str(info.size)
    assert response.headers["cache-control"] == "private, max-age=3600"


@pytest.mark.parametrize("file_id", ["0" * 32, "not-a-file-id"])
def test_download_unknown_artifact(client, file_id):
    response = client.get(f"/v1/files/download/{file_id}")
    assert response.status_code == 404
    assert response.json() == {"error": "File not found", "code": "FILE_NOT_FOUND"}


def test_list_files_newest_first(client, artifact_storage):
    older = store(artifact_storage, filename="older.csv")
    newer = store(artifact_storage, content=b"x" * 2048, filename="newer.csv", job_id="job-1")

    response = client.get("/v1/files")

    assert response.status_code == 200
    assert response.headers["cache-control"] == "private, max-age=60"
    assert response.headers["x-response-time"].endswith("ms")
    body = response.json()
    assert body["totalFiles"] == 2
    assert body["totalSize"] == older.size + newer.size
    assert [f["id"] for f in body["files"]] == [newer.file_id, older.file_id]
    assert body["files"][0]["formattedSize"] == "2 KB"
    assert body["files"][0]["jobId"] == "job-1"
    assert body["files"][0]["downloadUrl"] == f"/v1/files/download/{newer.file_id}"


def test_list_files_when_empty(client):
    body = client.get("/v1/files").json()
    assert body["files"] == []
    assert body["formattedTotalSize"] == "0 Bytes"


def test_delete_file(client, artifact_storage):
    info = store(artifact_storage)

    response = client.delete(f"/v1/files/{info.file_id}")

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "message": "File deleted successfully",
        "fileId": info.file_id,
        "filename": "report.csv",
    }
    assert client.get(f"/v1/files/download/{info.file_id}").status_code == 404
    assert client.delete(f"/v1/files/{info.file_id}").status_code == 404


def test_storage_health(client):
    response = client.get("/v1/files/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["service"] == "local-disk-storage"


def test_storage_health_unhealthy(client, monkeypatch):
    async def broken():
        return False

    monkeypatch.setattr(app.state.artifact_storage, "health_check", broken)
    response = client.get("/v1/files/health")
    assert response.status_code == 503
    assert response.json()["status"] == "unhealthy"


def test_storage_stats(client, artifact_storage):
    store(artifact_storage)
    body = client.get("/v1/files/stats").json()
    assert body["type"] == "local-disk"
    assert body["storage"]["totalFiles"] == 1
    assert body["storage"]["files"][0]["filename"] == "report.csv"
