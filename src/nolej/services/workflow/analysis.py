"""Transcription download and analysis start.

Shared by the client workflow (user confirms the transcription) and the
webhook ingestor (automatic advance for media that needs no review).
Nolej reads the transcription back from the public file URL of the
document workspace.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from nolej.config import NolejSettings
from nolej.models.document import Document
from nolej.persistence.db import begin_conn
from nolej.persistence.repositories.documents import DocumentsRepository
from nolej.services.remote.client import NolejClient
from nolej.storage.workspace import TRANSCRIPTION_FILE, DocumentWorkspace

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


class AnalysisStarter:
    """Submits transcriptions for analysis.

    Args:
        engine: Database engine (title updates).
        settings: Resolved settings (workspace root, public URL).
        client: Nolej API client.
    """

    def __init__(self, engine: Engine, settings: NolejSettings, client: NolejClient) -> None:
        self._engine = engine
        self._settings = settings
        self._client = client

    def workspace(self, document_id: str) -> DocumentWorkspace:
        return DocumentWorkspace(self._settings.data_dir, document_id)

    def download_transcription(self, document_id: str) -> str | None:
        """Fetch the transcription into the workspace.

        The document title is replaced by the transcription title when
        Nolej provides one.

        Returns:
            Transcription title, if any.

        Raises:
            NolejApiError: If the transcription cannot be fetched.
            StorageError: If it cannot be written to the workspace.
        """
        data = self._client.get_transcription(document_id)
        content = self._client.download(data["result"])
        self.workspace(document_id).write_bytes(TRANSCRIPTION_FILE, content)

        title = data.get("title")
        if isinstance(title, str) and title:
            with begin_conn(self._engine) as conn:
                DocumentsRepository(conn).update_title(document_id, title)
            logger.info("Downloaded transcription of %s (%s)", document_id, title)
            return title
        logger.info("Downloaded transcription of %s", document_id)
        return None

    def start(self, document: Document) -> None:
        """Ask Nolej to analyse the workspace transcription.

        Raises:
            NolejApiError: If Nolej refuses or cannot be reached.
            StorageError: If the transcription cannot be stored locally.
        """
        if not self.workspace(document.document_id).has(TRANSCRIPTION_FILE):
            self.download_transcription(document.document_id)

        self._client.start_analysis(
            document.document_id,
            s3_url=self._settings.document_file_url(document.document_id, TRANSCRIPTION_FILE),
            automatic_mode=document.automatic_mode,
        )
        logger.info("Analysis requested for document %s", document.document_id)
