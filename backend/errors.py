"""Error taxonomy for the RAG pipeline."""
from typing import Any, Dict, Optional


class RAGError(Exception):
    """Base class for every error raised by the pipeline."""


class ConfigurationError(RAGError):
    """Invalid configuration, e.g. chunk overlap not smaller than chunk size."""


class NotFoundError(RAGError):
    """A source file or directory does not exist."""


class StorageError(RAGError):
    """The vector store rejected a read or write."""


class EmbeddingServiceError(RAGError):
    """The embedding endpoint is unreachable or returned an error."""


class GenerationServiceError(RAGError):
    """The generation model is unreachable or returned an error."""

    def __init__(
        self,
        message: str,
        code: str = "API_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.code = code
        self.details = details or {}
        super().__init__(message)


class ServiceTimeoutError(RAGError, TimeoutError):
    """An embedding or generation call exceeded its timeout."""

    def __init__(self, service: str, timeout: float):
        self.service = service
        self.timeout = timeout
        super().__init__(f"{service} request timed out after {timeout}s")


class EmptyQueryError(RAGError):
    """The question is blank."""


class IngestionError(RAGError):
    """Ingestion of a single document failed."""

    def __init__(self, document_id: str, message: str, cause: Optional[BaseException] = None):
        self.document_id = document_id
        self.cause = cause
        super().__init__(f"Failed to ingest '{document_id}': {message}")
