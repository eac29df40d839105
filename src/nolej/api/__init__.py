"""Nolej bridge HTTP API."""

from nolej.api.main import create_app

__all__ = ["create_app"]
