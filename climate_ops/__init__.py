"""Climate Ops imagery-to-polygon pipeline.

Acquires satellite imagery for a bounding box and date, derives a water
index raster, extracts geographic risk polygons from it, and scores the
result so an external planning layer can weigh it.
"""

__version__ = "0.1.0"
