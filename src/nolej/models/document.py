"""Document model: one unit of content-generation work on Nolej.

Aligned to the nolej_documents table. The document_id is issued by the
remote service when the document is created and is the primary key.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

from nolej.models.status import DocumentStatus


class MediaType(str, Enum):
    """Source media accepted by Nolej."""

    WEB = "web"
    AUDIO = "audio"
    VIDEO = "video"
    DOCUMENT = "document"
    FREETEXT = "freetext"
    YOUTUBE = "youtube"

    @property
    def requires_transcription_review(self) -> bool:
        """Audio and video transcriptions are reviewed by a human before analysis."""
        return self in (MediaType.AUDIO, MediaType.VIDEO)


class Document(BaseModel):
    """Snapshot of a stored document row.

    Attributes:
        document_id: Opaque identifier issued by Nolej.
        status: Current workflow status.
        title: Module title (may be replaced by the transcription title).
        consumed_credit: Credits consumed so far, as reported by Nolej.
        doc_url: Source URL sent to Nolej.
        media_type: Source media type.
        automatic_mode: Whether Nolej runs the stages without review.
        language: Source language code.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    document_id: Annotated[str, Field(min_length=1, description="Nolej document identifier")]
    status: DocumentStatus
    title: str | None = None
    consumed_credit: int = 0
    doc_url: str = ""
    media_type: str = MediaType.DOCUMENT.value
    automatic_mode: bool = False
    language: str = "en"

    @property
    def requires_transcription_review(self) -> bool:
        """True if the analysis must wait for a user to check the transcription."""
        try:
            return MediaType(self.media_type).requires_transcription_review
        except ValueError:
            return False
