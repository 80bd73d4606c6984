"""Artifact storage backends.

- ArtifactStore: save/load/list/delete contract
- LocalArtifactStore: files under a local directory
- BlobArtifactStore: Azure Blob Storage container

``get_artifact_store(config)`` picks the backend from ``STORAGE_TYPE``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from climate_ops.core.config import STORAGE_BLOB
from climate_ops.storage.base import ArtifactStore, validate_artifact_name
from climate_ops.storage.local import LocalArtifactStore

if TYPE_CHECKING:
    from climate_ops.core.config import PipelineConfig


def get_artifact_store(config: PipelineConfig) -> ArtifactStore:
    """Build the artifact store selected by *config*."""
    if config.storage_type == STORAGE_BLOB:
        from climate_ops.storage.blob import BlobArtifactStore

        return BlobArtifactStore.from_connection_string(
            config.storage_connection_string, config.artifact_container
        )
    return LocalArtifactStore(config.data_dir)


__all__ = [
    "ArtifactStore",
    "LocalArtifactStore",
    "get_artifact_store",
    "validate_artifact_name",
]
