"""Pipeline activities.

Each activity performs a single unit of work:
- acquire_imagery: authenticate, sweep sensors, fall back in time
- preprocess_imagery: normalise, resize and re-encode a raster
- extract_polygons: iso-contours to merged, noise-guarded risk polygons
- score_confidence: confidence scores for an analysis result
"""
