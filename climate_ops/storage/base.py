"""ArtifactStore abstract base class.

The durable artifact store is an external collaborator: the pipeline
only needs save / load / list / delete keyed by a flat artifact name.
Each backend also hands out a *locator* (``file://`` URI or blob URL)
that ``load`` and ``delete`` accept in place of the name.
"""

from __future__ import annotations

import abc
import re

from climate_ops.core.exceptions import InvalidRequestError

# Flat names only: no separators, no leading dot.
_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,254}$")


def validate_artifact_name(name: str) -> str:
    """Return *name* unchanged if it is a safe flat artifact name.

    Raises:
        InvalidRequestError: If the name is empty or contains path syntax.
    """
    if not isinstance(name, str) or not _NAME_RE.match(name) or ".." in name:
        msg = f"Invalid artifact name: {name!r}"
        raise InvalidRequestError(msg)
    return name


class ArtifactStore(abc.ABC):
    """Save/load/list/delete contract keyed by artifact name."""

    @abc.abstractmethod
    def save(self, data: bytes, name: str, *, content_type: str = "") -> str:
        """Persist *data* under *name*, overwriting, and return its locator."""

    @abc.abstractmethod
    def load(self, name_or_locator: str) -> bytes:
        """Return the bytes of an artifact.

        Raises:
            ArtifactNotFoundError: If the artifact does not exist.
        """

    @abc.abstractmethod
    def list(self) -> list[str]:
        """Return all artifact names, sorted."""

    @abc.abstractmethod
    def delete(self, name_or_locator: str) -> None:
        """Remove an artifact; deleting a missing artifact is a no-op."""

    @abc.abstractmethod
    def exists(self, name_or_locator: str) -> bool:
        """Whether the artifact currently exists."""

    @abc.abstractmethod
    def locator(self, name: str) -> str:
        """Return the locator for *name* without touching storage."""
