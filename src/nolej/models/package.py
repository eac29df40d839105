"""Generated package record: one imported H5P artifact.

Rows are never updated. A newer import of the same (document_id, type)
supersedes the previous one; the current package is the most recent by
generated timestamp.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class GeneratedPackage(BaseModel):
    """Metadata of an imported package.

    Attributes:
        content_id: Identifier in the host content store.
        document_id: Document that produced the package.
        type: Artifact kind, e.g. "glossary" or "ibook".
        generated_at: Unix timestamp of the import run.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    content_id: int
    document_id: str
    type: str
    generated_at: int


class PackageDescriptor(BaseModel):
    """Artifact advertised by Nolej for download."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    activity_name: str
    url: str
