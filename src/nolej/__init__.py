"""Nolej bridge: document workflow, webhook ingestion and H5P package import."""

__version__ = "1.2.0"
