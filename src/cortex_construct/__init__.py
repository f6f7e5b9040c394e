"""PDF upload, Cortex search and chunk highlighting service."""

__version__ = "0.1.0"
