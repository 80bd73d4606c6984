"""Deterministic artifact names.

Artifact names are flat (no directories) and stable for identical
inputs, so re-running a request overwrites the same artifact:

    {sensor_id}_{fingerprint}.tiff          raw acquisition
    placeholder_{fingerprint}.png            degraded-mode placeholder
    upload_{fingerprint}.{ext}               caller upload
    processed_{stem}_{fingerprint}.{ext}     preprocessed output

The underscore-delimited tokens let extraction recover the sensor id
from a name. Sensor ids themselves never contain underscores.
"""

from __future__ import annotations

import re

PROCESSED_PREFIX = "processed"

# Everything but alphanumerics, dot and hyphen; underscores are separators.
_UNSAFE_RE = re.compile(r"[^A-Za-z0-9.-]+")


def sanitise_token(value: str) -> str:
    """Make *value* safe as a single name token; ``"unknown"`` if nothing is left."""
    token = _UNSAFE_RE.sub("-", value.strip()).strip("-.")
    return token or "unknown"


def _digest(fingerprint: str) -> str:
    # Cache fingerprints are "namespace:hexdigest".
    return fingerprint.rsplit(":", 1)[-1]


def build_raw_artifact_name(source: str, fingerprint: str, extension: str) -> str:
    return f"{sanitise_token(source)}_{_digest(fingerprint)}.{extension}"


def artifact_stem(name: str) -> str:
    """Strip any directory prefix and the final extension."""
    base = name.rsplit("/", 1)[-1]
    stem, _dot, _ext = base.rpartition(".")
    return stem or base


def build_processed_artifact_name(source_name: str, fingerprint: str, extension: str) -> str:
    return f"{PROCESSED_PREFIX}_{artifact_stem(source_name)}_{_digest(fingerprint)}.{extension}"


def name_tokens(name: str) -> list[str]:
    """Underscore-delimited tokens of the artifact stem."""
    return artifact_stem(name).split("_")
