"""Azure Blob Storage artifact store.

Artifacts live in one container under a fixed ``imagery/`` prefix;
locators are the blob URLs.
"""

from __future__ import annotations

import contextlib
import logging
from typing import TYPE_CHECKING

from azure.core.exceptions import ResourceExistsError, ResourceNotFoundError
from azure.storage.blob import BlobServiceClient, ContentSettings

from climate_ops.core.exceptions import ArtifactNotFoundError
from climate_ops.storage.base import ArtifactStore, validate_artifact_name

if TYPE_CHECKING:
    from azure.storage.blob import BlobClient

logger = logging.getLogger("climate_ops.storage.blob")

IMAGERY_PREFIX = "imagery/"


class BlobArtifactStore(ArtifactStore):
    """Artifact store backed by a single blob container."""

    def __init__(
        self,
        service_client: BlobServiceClient,
        container: str,
        *,
        prefix: str = IMAGERY_PREFIX,
    ) -> None:
        self._service = service_client
        self._container = container
        self._prefix = prefix
        self._container_client = service_client.get_container_client(container)
        self._container_ready = False

    @classmethod
    def from_connection_string(cls, connection_string: str, container: str) -> BlobArtifactStore:
        return cls(BlobServiceClient.from_connection_string(connection_string), container)

    def _name(self, name_or_locator: str) -> str:
        if "://" in name_or_locator:
            container_url = self._container_client.url.rstrip("/")
            blob_path = name_or_locator.removeprefix(f"{container_url}/")
            name_or_locator = blob_path.removeprefix(self._prefix)
        return validate_artifact_name(name_or_locator)

    def _blob(self, name_or_locator: str) -> BlobClient:
        name = self._name(name_or_locator)
        return self._service.get_blob_client(container=self._container, blob=self._prefix + name)

    def _ensure_container(self) -> None:
        if self._container_ready:
            return
        with contextlib.suppress(ResourceExistsError):
            self._container_client.create_container()
        self._container_ready = True

    def locator(self, name: str) -> str:
        return self._blob(name).url

    def save(self, data: bytes, name: str, *, content_type: str = "") -> str:
        self._ensure_container()
        blob_client = self._blob(name)
        if content_type:
            blob_client.upload_blob(
                data, overwrite=True, content_settings=ContentSettings(content_type=content_type)
            )
        else:
            blob_client.upload_blob(data, overwrite=True)
        logger.info(
            "Artifact uploaded | container=%s | blob=%s | size=%d bytes",
            self._container,
            blob_client.blob_name,
            len(data),
        )
        return blob_client.url

    def load(self, name_or_locator: str) -> bytes:
        blob_client = self._blob(name_or_locator)
        try:
            return blob_client.download_blob().readall()
        except ResourceNotFoundError as exc:
            raise ArtifactNotFoundError(self._name(name_or_locator)) from exc

    def list(self) -> list[str]:
        try:
            blobs = self._container_client.list_blobs(name_starts_with=self._prefix)
            return sorted(blob.name.removeprefix(self._prefix) for blob in blobs)
        except ResourceNotFoundError:
            return []

    def delete(self, name_or_locator: str) -> None:
        with contextlib.suppress(ResourceNotFoundError):
            self._blob(name_or_locator).delete_blob()

    def exists(self, name_or_locator: str) -> bool:
        return bool(self._blob(name_or_locator).exists())
