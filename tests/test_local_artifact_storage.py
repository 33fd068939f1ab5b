import os

import pytest

from local_storages.local_artifact_storage import LocalArtifactStorage
from support.exceptions import ArtifactNotFoundError


@pytest.mark.asyncio
async def test_save_and_open(artifact_storage):
    info = await artifact_storage.save_artifact(b"a,b\n", "report.csv", "text/csv", "job-1")

    artifact = await artifact_storage.open_artifact(info.file_id)
    assert artifact.info == info
    assert b"".join(artifact.chunks) == b"a,b\n"


@pytest.mark.asyncio
async def test_large_artifact_is_streamed_in_chunks(tmp_path):
    storage = LocalArtifactStorage(str(tmp_path), chunk_size=4)
    info = await storage.save_artifact(b"0123456789", "big.csv", "text/csv")

    artifact = await storage.open_artifact(info.file_id)
    assert list(artifact.chunks) == [b"0123", b"4567", b"89"]


@pytest.mark.asyncio
@pytest.mark.parametrize("file_id", ["0" * 32, "../secrets", "", "ABCDEF" * 6])
async def test_unknown_or_malformed_ids(artifact_storage, file_id):
    with pytest.raises(ArtifactNotFoundError):
        await artifact_storage.open_artifact(file_id)
    with pytest.raises(ArtifactNotFoundError):
        await artifact_storage.generate_download_url(file_id, 60)


@pytest.mark.asyncio
async def test_download_url_uses_public_base_url(tmp_path):
    storage = LocalArtifactStorage(str(tmp_path), public_base_url="https://gateway.example/")
    info = await storage.save_artifact(b"x", "a.csv", "text/csv")

    url = await storage.generate_download_url(info.file_id, 3600)
    assert url == f"https://gateway.example/v1/files/download/{info.file_id}"


@pytest.mark.asyncio
async def test_delete_removes_payload_and_metadata(tmp_path):
    storage = LocalArtifactStorage(str(tmp_path))
    info = await storage.save_artifact(b"x", "a.csv", "text/csv")

    deleted = await storage.delete_artifact(info.file_id)
    assert deleted.filename == "a.csv"
    assert os.listdir(tmp_path) == []
    with pytest.raises(ArtifactNotFoundError):
        await storage.delete_artifact(info.file_id)


@pytest.mark.asyncio
async def test_list_skips_corrupt_metadata(tmp_path):
    storage = LocalArtifactStorage(str(tmp_path))
    info = await storage.save_artifact(b"x", "a.csv", "text/csv")
    (tmp_path / ("f" * 32 + ".json")).write_text("{not json")

    infos = await storage.list_artifacts()
    assert [i.file_id for i in infos] == [info.file_id]


@pytest.mark.asyncio
async def test_health_check(artifact_storage):
    assert await artifact_storage.health_check() is True
