"""Small shared helpers: request parsing, rounding, artifact naming."""
