"""Data models shared across the pipeline.

- BoundingBox, RiskPolygon, PolygonCollection: geometry
- SensorProfile, Provenance, RasterArtifact: imagery acquisition
- ConfidenceMetrics: scored analysis output
"""

from climate_ops.models._validation import ModelValidationError
from climate_ops.models.confidence import ConfidenceMetrics
from climate_ops.models.geometry import BoundingBox, PolygonCollection, RiskPolygon
from climate_ops.models.imagery import (
    AcquisitionRequest,
    AcquisitionResult,
    ExtractionPreset,
    Modality,
    Provenance,
    ProviderConfig,
    RasterArtifact,
    SensorProfile,
)

__all__ = [
    "AcquisitionRequest",
    "AcquisitionResult",
    "BoundingBox",
    "ConfidenceMetrics",
    "ExtractionPreset",
    "Modality",
    "ModelValidationError",
    "PolygonCollection",
    "Provenance",
    "ProviderConfig",
    "RasterArtifact",
    "RiskPolygon",
    "SensorProfile",
]
