"""Core utilities and shared infrastructure.

- config: Configuration loading and validation
- constants: Named constants (fallback schedule, guard limits, timeouts)
- exceptions: Custom exception hierarchy
- cache: TTL-keyed artifact cache
- deadline: Request deadline and cancellation signal
- raster: Raster payload decoding into intensity grids
"""
