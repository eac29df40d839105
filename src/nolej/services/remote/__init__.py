"""Nolej REST API client."""

from nolej.services.remote.client import RESOURCES, NolejApiError, NolejClient

__all__ = ["NolejApiError", "NolejClient", "RESOURCES"]
