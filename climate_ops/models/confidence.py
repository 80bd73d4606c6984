"""Confidence scores attached to an analysis result."""

from __future__ import annotations

from dataclasses import dataclass

from climate_ops.models._validation import ModelValidationError


@dataclass(frozen=True, slots=True)
class ConfidenceMetrics:
    """Integer confidence scores, each in [0, 100].

    Attributes:
        satellite: Blend of imagery quality and polygon confidence.
        weather: Confidence in the weather signal.
        documents: Confidence in supporting evidence.
        overall: Weighted blend of the three.
    """

    satellite: int
    weather: int
    documents: int
    overall: int

    def __post_init__(self) -> None:
        for name in ("satellite", "weather", "documents", "overall"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise ModelValidationError("ConfidenceMetrics", name, value, "must be an int")
            if not 0 <= value <= 100:
                raise ModelValidationError("ConfidenceMetrics", name, value, "must be in [0, 100]")

    def to_dict(self) -> dict[str, int]:
        return {
            "satellite": self.satellite,
            "weather": self.weather,
            "documents": self.documents,
            "overall": self.overall,
        }
