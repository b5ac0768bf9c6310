"""Exception hierarchy shared by the ingestion pipeline, storage and API."""

from __future__ import annotations


class DocRagError(Exception):
    """Base class for every error raised by ``docrag``."""


class UnsupportedTypeError(DocRagError):
    """The document's content type has no extractor."""

    def __init__(self, content_type: str) -> None:
        super().__init__(f"Unsupported file type: {content_type}")
        self.content_type = content_type


class ExtractionError(DocRagError):
    """Every text-extraction strategy failed, or no usable text remained."""


class EmbeddingError(DocRagError):
    """Even the terminal embedding fallback failed."""


class PersistenceError(DocRagError):
    """A datastore write failed; nothing from the batch was committed."""


class DocumentNotFoundError(DocRagError):
    """No document with this id belongs to the owner."""


class DocumentAlreadyProcessedError(DocRagError):
    """The document was already processed and has not been reset."""


class DocumentBusyError(DocRagError):
    """Another run is already processing the document."""
