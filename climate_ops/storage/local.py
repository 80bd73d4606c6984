"""Local-directory artifact store (``file://`` locators)."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from urllib.parse import unquote, urlparse

from climate_ops.core.exceptions import ArtifactNotFoundError, InvalidRequestError
from climate_ops.storage.base import ArtifactStore, validate_artifact_name

logger = logging.getLogger("climate_ops.storage.local")

FILE_SCHEME = "file"


class LocalArtifactStore(ArtifactStore):
    """Stores each artifact as one file directly under ``root``.

    Writes go to a temporary file first and are renamed into place, so a
    concurrent reader never sees a partially written artifact.
    """

    def __init__(self, root: str | os.PathLike[str]) -> None:
        self._root = Path(root).resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def _path(self, name_or_locator: str) -> Path:
        if name_or_locator.startswith(f"{FILE_SCHEME}://"):
            path = Path(unquote(urlparse(name_or_locator).path)).resolve()
            if path.parent != self._root:
                msg = f"Locator is outside the artifact directory: {name_or_locator}"
                raise InvalidRequestError(msg)
            return path
        return self._root / validate_artifact_name(name_or_locator)

    def locator(self, name: str) -> str:
        return self._path(name).as_uri()

    def save(self, data: bytes, name: str, *, content_type: str = "") -> str:
        path = self._path(name)
        fd, tmp_name = tempfile.mkstemp(dir=self._root, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            Path(tmp_name).replace(path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("Artifact saved | path=%s | size=%d bytes", path, len(data))
        return path.as_uri()

    def load(self, name_or_locator: str) -> bytes:
        path = self._path(name_or_locator)
        try:
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise ArtifactNotFoundError(path.name) from exc

    def list(self) -> list[str]:
        return sorted(
            p.name for p in self._root.iterdir() if p.is_file() and not p.name.startswith(".")
        )

    def delete(self, name_or_locator: str) -> None:
        self._path(name_or_locator).unlink(missing_ok=True)

    def exists(self, name_or_locator: str) -> bool:
        return self._path(name_or_locator).is_file()
