"""Tests for the artifact stores.

The local store runs against ``tmp_path``; the blob store runs against a
mocked ``BlobServiceClient`` so no Azure account is needed.
"""

from __future__ import annotations

import threading
import unittest
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from azure.core.exceptions import ResourceExistsError, ResourceNotFoundError

from climate_ops.core.config import STORAGE_BLOB, PipelineConfig
from climate_ops.core.exceptions import ArtifactNotFoundError, InvalidRequestError
from climate_ops.storage import LocalArtifactStore, get_artifact_store, validate_artifact_name
from climate_ops.storage.blob import BlobArtifactStore

CONTAINER_URL = "https://acct.blob.core.windows.net/artifacts"

# ---------------------------------------------------------------------------
# Name validation
# ---------------------------------------------------------------------------


class TestValidateArtifactName:
    @pytest.mark.parametrize(
        "name",
        ["a.png", "sentinel-2_3f0c9a0d5b1e2c47.tiff", "processed_blob_ab12.webp", "catalog.json"],
    )
    def test_valid(self, name: str) -> None:
        assert validate_artifact_name(name) == name

    @pytest.mark.parametrize(
        "name",
        ["", "../etc/passwd", "a/b.png", ".hidden", "a..b", "with space.png", "x" * 300],
    )
    def test_invalid(self, name: str) -> None:
        with pytest.raises(InvalidRequestError):
            validate_artifact_name(name)


# ---------------------------------------------------------------------------
# Local store
# ---------------------------------------------------------------------------


class TestLocalArtifactStore:
    def test_save_and_load(self, local_store) -> None:
        locator = local_store.save(b"payload", "a.png", content_type="image/png")
        assert locator.startswith("file://")
        assert locator.endswith("/a.png")
        assert local_store.load("a.png") == b"payload"
        assert local_store.load(locator) == b"payload"

    def test_overwrite(self, local_store) -> None:
        local_store.save(b"one", "a.png")
        local_store.save(b"two", "a.png")
        assert local_store.load("a.png") == b"two"

    def test_missing(self, local_store) -> None:
        with pytest.raises(ArtifactNotFoundError) as info:
            local_store.load("missing.png")
        assert info.value.name == "missing.png"

    def test_list_sorted_and_skips_temp_files(self, local_store) -> None:
        local_store.save(b"b", "b.png")
        local_store.save(b"a", "a.png")
        (local_store.root / ".tmp-leftover").write_bytes(b"x")
        assert local_store.list() == ["a.png", "b.png"]

    def test_delete_and_exists(self, local_store) -> None:
        local_store.save(b"x", "a.png")
        assert local_store.exists("a.png")
        local_store.delete("a.png")
        assert not local_store.exists("a.png")
        local_store.delete("a.png")

    def test_locator_outside_root_rejected(self, local_store, tmp_path) -> None:
        outside = (tmp_path / "elsewhere.png").as_uri()
        with pytest.raises(InvalidRequestError, match="outside"):
            local_store.load(outside)

    def test_locator_matches_save(self, local_store) -> None:
        assert local_store.locator("a.png") == local_store.save(b"x", "a.png")

    def test_concurrent_writers(self, local_store) -> None:
        payloads = [bytes([i]) * 1000 for i in range(8)]

        def write(data: bytes) -> None:
            local_store.save(data, "shared.bin")

        threads = [threading.Thread(target=write, args=(p,)) for p in payloads]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert local_store.load("shared.bin") in payloads
        assert local_store.list() == ["shared.bin"]


# ---------------------------------------------------------------------------
# Blob store
# ---------------------------------------------------------------------------


def _blob_client(name: str, *, data: bytes | None = None) -> MagicMock:
    client = MagicMock()
    client.blob_name = name
    client.url = f"{CONTAINER_URL}/{name}"
    if data is None:
        client.download_blob.side_effect = ResourceNotFoundError("missing")
        client.exists.return_value = False
    else:
        client.download_blob.return_value.readall.return_value = data
        client.exists.return_value = True
    return client


class TestBlobArtifactStore(unittest.TestCase):
    """BlobArtifactStore against a mocked service client."""

    def setUp(self) -> None:
        self.service = MagicMock()
        self.container = self.service.get_container_client.return_value
        self.container.url = CONTAINER_URL
        self.blobs: dict[str, MagicMock] = {}

        def get_blob_client(*, container: str, blob: str) -> MagicMock:
            assert container == "artifacts"
            return self.blobs.setdefault(blob, _blob_client(blob))

        self.service.get_blob_client.side_effect = get_blob_client
        self.store = BlobArtifactStore(self.service, "artifacts")

    def test_save_uploads_under_prefix(self) -> None:
        locator = self.store.save(b"data", "a.png", content_type="image/png")
        assert locator == f"{CONTAINER_URL}/imagery/a.png"
        blob = self.blobs["imagery/a.png"]
        _args, kwargs = blob.upload_blob.call_args
        assert kwargs["overwrite"] is True
        assert kwargs["content_settings"].content_type == "image/png"

    def test_save_without_content_type(self) -> None:
        self.store.save(b"data", "a.bin")
        _args, kwargs = self.blobs["imagery/a.bin"].upload_blob.call_args
        assert "content_settings" not in kwargs

    def test_container_created_once(self) -> None:
        self.container.create_container.side_effect = ResourceExistsError("exists")
        self.store.save(b"1", "a.png")
        self.store.save(b"2", "b.png")
        assert self.container.create_container.call_count == 1

    def test_load(self) -> None:
        self.blobs["imagery/a.png"] = _blob_client("imagery/a.png", data=b"bytes")
        assert self.store.load("a.png") == b"bytes"

    def test_load_by_locator(self) -> None:
        self.blobs["imagery/a.png"] = _blob_client("imagery/a.png", data=b"bytes")
        assert self.store.load(f"{CONTAINER_URL}/imagery/a.png") == b"bytes"

    def test_load_missing(self) -> None:
        with pytest.raises(ArtifactNotFoundError):
            self.store.load("missing.png")

    def test_list_strips_prefix(self) -> None:
        self.container.list_blobs.return_value = [
            SimpleNamespace(name="imagery/b.png"),
            SimpleNamespace(name="imagery/a.png"),
        ]
        assert self.store.list() == ["a.png", "b.png"]
        self.container.list_blobs.assert_called_once_with(name_starts_with="imagery/")

    def test_list_missing_container(self) -> None:
        self.container.list_blobs.side_effect = ResourceNotFoundError("no container")
        assert self.store.list() == []

    def test_delete_missing_is_noop(self) -> None:
        blob = _blob_client("imagery/a.png")
        blob.delete_blob.side_effect = ResourceNotFoundError("gone")
        self.blobs["imagery/a.png"] = blob
        self.store.delete("a.png")
        blob.delete_blob.assert_called_once()

    def test_exists(self) -> None:
        self.blobs["imagery/a.png"] = _blob_client("imagery/a.png", data=b"x")
        assert self.store.exists("a.png") is True
        assert self.store.exists("b.png") is False

    def test_invalid_name_rejected(self) -> None:
        with pytest.raises(InvalidRequestError):
            self.store.save(b"x", "../escape.png")


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


class TestGetArtifactStore:
    def test_local_by_default(self, tmp_path) -> None:
        store = get_artifact_store(PipelineConfig(data_dir=str(tmp_path / "data")))
        assert isinstance(store, LocalArtifactStore)
        assert store.root == (tmp_path / "data").resolve()

    def test_blob(self, monkeypatch) -> None:
        built = MagicMock()
        monkeypatch.setattr(BlobArtifactStore, "from_connection_string", built)
        cfg = PipelineConfig(
            storage_type=STORAGE_BLOB,
            storage_connection_string="UseDevelopmentStorage=true",
            artifact_container="imagery-artifacts",
        )
        assert get_artifact_store(cfg) is built.return_value
        built.assert_called_once_with("UseDevelopmentStorage=true", "imagery-artifacts")
