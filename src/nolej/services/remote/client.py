"""HTTP client for the Nolej REST API.

Every call is a synchronous, blocking request performed inline in the
request path. Authentication uses the "X-API-KEY <key>" authorization
scheme expected by Nolej.
"""

from __future__ import annotations

import logging
from typing import Any, Final

import httpx
from pydantic import ValidationError

from nolej.models.package import PackageDescriptor

logger = logging.getLogger(__name__)

NOLEJ_USER_AGENT: Final[str] = "NolejBridge/1.2"
DEFAULT_TIMEOUT_SECONDS: Final[float] = 30.0

# Document resources that can be read and written through the API.
RESOURCES: Final[frozenset[str]] = frozenset({"concepts", "questions", "summary", "settings"})


class NolejApiError(Exception):
    """Raised when a call to the Nolej API fails.

    Attributes:
        status_code: HTTP status of the response, None on transport errors.
        payload: Decoded response body, when there was one.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        payload: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class NolejClient:
    """Client for the Nolej documents API.

    Args:
        base_url: API endpoint, e.g. https://api-live.nolej.io.
        api_key: Nolej API key.
        timeout_seconds: Per-request timeout when the client owns its transport.
        http_client: Optional httpx.Client for dependency injection (testing).
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout_seconds
        self._http_client = http_client

    @property
    def has_api_key(self) -> bool:
        return bool(self._api_key)

    def create_document(self, payload: dict[str, Any]) -> str:
        """Create a document on Nolej.

        Args:
            payload: Creation body (userID, organisationID, title, ...).

        Returns:
            Identifier of the new document.

        Raises:
            NolejApiError: If the call fails or the response has no id.
        """
        result = self._request_json("POST", "/documents", json_body=payload)
        document_id = result.get("id") if isinstance(result, dict) else None
        if not isinstance(document_id, str) or not document_id:
            raise NolejApiError("Nolej did not return a document id", payload=result)
        return document_id

    def get_transcription(self, document_id: str) -> dict[str, Any]:
        """Transcription metadata: {"title": ..., "result": <download url>}."""
        result = self._request_json("GET", f"/documents/{document_id}/transcription")
        if not isinstance(result, dict) or not isinstance(result.get("result"), str):
            raise NolejApiError("Transcription is not available", payload=result)
        return result

    def start_analysis(self, document_id: str, s3_url: str, automatic_mode: bool) -> None:
        """Submit the (reviewed) transcription and start the analysis.

        Raises:
            NolejApiError: If Nolej does not answer with result "ok".
        """
        result = self._request_json(
            "PUT",
            f"/documents/{document_id}/transcription",
            json_body={"s3URL": s3_url, "automaticMode": automatic_mode},
        )
        if not isinstance(result, dict) or result.get("result") != "ok":
            raise NolejApiError("Analysis could not be started", payload=result)

    def get_resource(self, document_id: str, resource: str) -> Any:
        """Read a document resource (concepts, questions, summary, settings)."""
        self._check_resource(resource)
        return self._request_json("GET", f"/documents/{document_id}/{resource}")

    def put_resource(self, document_id: str, resource: str, content: Any) -> Any:
        """Write a document resource back to Nolej."""
        self._check_resource(resource)
        return self._request_json("PUT", f"/documents/{document_id}/{resource}", json_body=content)

    def list_activities(self, document_id: str) -> list[PackageDescriptor]:
        """Generated H5P packages available for download.

        Raises:
            NolejApiError: If the call fails or the list is malformed.
        """
        result = self._request_json(
            "GET",
            f"/documents/{document_id}/activities",
            params={"format": "h5p"},
        )
        items = result.get("activities") if isinstance(result, dict) else None
        if not isinstance(items, list):
            raise NolejApiError("Activity list is malformed", payload=result)
        try:
            return [PackageDescriptor.model_validate(item) for item in items]
        except ValidationError as e:
            raise NolejApiError(f"Activity list is malformed: {e}", payload=result) from e

    def get_last_webhook(self, document_id: str) -> Any:
        """Last webhook payload Nolej sent for a document."""
        return self._request_json("GET", f"/documents/{document_id}/lastwebhook")

    def download(self, url: str) -> bytes:
        """Download a file published by Nolej (transcription, package).

        Args:
            url: Absolute URL returned by a previous API call.

        Returns:
            Response body.

        Raises:
            NolejApiError: On network or HTTP errors.
        """
        response = self._send("GET", url, headers={"User-Agent": NOLEJ_USER_AGENT})
        return response.content

    def _check_resource(self, resource: str) -> None:
        if resource not in RESOURCES:
            raise ValueError(f"Unknown document resource: {resource}")

    def _request_json(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        params: dict[str, str] | None = None,
    ) -> Any:
        """Call an API path and decode the JSON response.

        Raises:
            NolejApiError: On network errors, non-2xx responses or invalid JSON.
        """
        headers = {
            "Authorization": f"X-API-KEY {self._api_key}",
            "User-Agent": NOLEJ_USER_AGENT,
            "Content-Type": "application/json",
        }
        response = self._send(
            method,
            f"{self._base_url}{path}",
            headers=headers,
            json_body=json_body,
            params=params,
        )
        try:
            return response.json()
        except ValueError as e:
            raise NolejApiError(
                f"Invalid JSON from Nolej for {method} {path}",
                status_code=response.status_code,
            ) from e

    def _send(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        json_body: Any = None,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        client = self._http_client
        should_close = False
        if client is None:
            client = httpx.Client(timeout=self._timeout, follow_redirects=True)
            should_close = True
        try:
            response = client.request(
                method,
                url,
                headers=headers,
                json=json_body,
                params=params,
            )
        except httpx.HTTPError as e:
            logger.warning("Nolej request %s %s failed: %s", method, _strip_query(url), e)
            raise NolejApiError(f"Request failed: {e}") from e
        finally:
            if should_close:
                client.close()

        if response.status_code >= 400:
            payload: Any
            try:
                payload = response.json()
            except ValueError:
                payload = response.text
            logger.warning(
                "Nolej request %s %s returned %d",
                method,
                _strip_query(url),
                response.status_code,
            )
            raise NolejApiError(
                f"Nolej returned HTTP {response.status_code}",
                status_code=response.status_code,
                payload=payload,
            )
        return response


def _strip_query(url: str) -> str:
    """URL without query string, safe for logs."""
    return url.split("?", 1)[0]
