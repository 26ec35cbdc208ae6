"""Ingestion pipeline: load, chunk, embed and index documents."""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Union

from models.document import Document, normalize_document_id
from services.chunking_engine import ChunkingEngine
from services.document_loader import DocumentLoader
from services.embedding_model import EmbeddingModel
from services.event_reporter import EventReporter
from services.vector_store import VectorStore
from config import EMBEDDING_BATCH_SIZE
from errors import (
    EmbeddingServiceError,
    IngestionError,
    RAGError,
    ServiceTimeoutError,
    StorageError,
)

logger = logging.getLogger(__name__)


@dataclass
class IngestionResult:
    """Outcome of ingesting one document."""
    document_id: str
    source_name: str
    chunk_ids: List[str]


class IngestionPipeline:
    """Turns source files into indexed, embedded chunks, one document at a time."""

    def __init__(
        self,
        document_loader: DocumentLoader,
        chunking_engine: ChunkingEngine,
        embedding_model: EmbeddingModel,
        vector_store: VectorStore,
        reporter: Optional[EventReporter] = None,
        batch_size: int = EMBEDDING_BATCH_SIZE
    ):
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")

        self.document_loader = document_loader
        self.chunking_engine = chunking_engine
        self.embedding_model = embedding_model
        self.vector_store = vector_store
        self.reporter = reporter or EventReporter()
        self.batch_size = batch_size

    def ingest_document(self, document: Document) -> List[str]:
        """
        Chunk, embed and index a loaded document, replacing any earlier version.

        Every embedding is computed before the first write, so a failure
        leaves the index as it was.

        Args:
            document: Loaded document

        Returns:
            Ids of the stored chunks, in document order

        Raises:
            IngestionError: If the document is empty or embedding/storage fails
        """
        if not document.text or not document.text.strip():
            raise IngestionError(document.document_id, "document is empty")

        chunks = self.chunking_engine.chunk_document(document)

        try:
            for i in range(0, len(chunks), self.batch_size):
                batch = chunks[i:i + self.batch_size]
                embeddings = self.embedding_model.embed_batch([chunk.text for chunk in batch])
                for chunk, embedding in zip(batch, embeddings):
                    chunk.embedding = embedding
                logger.debug(
                    f"Embedded chunks {i + 1}-{i + len(batch)}/{len(chunks)} of {document.document_id}"
                )

            self.vector_store.replace_document(document.document_id, chunks)

        except (EmbeddingServiceError, ServiceTimeoutError, StorageError, ValueError) as e:
            raise IngestionError(document.document_id, str(e), cause=e) from e

        return [chunk.chunk_id for chunk in chunks]

    def ingest(self, path: Union[str, Path]) -> IngestionResult:
        """
        Load and ingest a single file.

        Raises:
            NotFoundError: If the file does not exist
            IngestionError: If the file cannot be decoded, is empty, or indexing fails
        """
        path = Path(path)
        try:
            document = self.document_loader.load_document(path)
        except UnicodeDecodeError as e:
            raise IngestionError(normalize_document_id(path.name), f"file is not valid UTF-8: {e}", cause=e) from e

        chunk_ids = self.ingest_document(document)
        self.reporter.document_ingested(document.document_id, document.source_name, len(chunk_ids))
        return IngestionResult(
            document_id=document.document_id,
            source_name=document.source_name,
            chunk_ids=chunk_ids
        )

    def ingest_all(self, paths: Iterable[Union[str, Path]]) -> List[IngestionResult]:
        """
        Ingest files in order, aborting on the first failure.

        Missing or corrupt sources must not be skipped silently, so each
        failure is reported with its document id and re-raised.

        Returns:
            One IngestionResult per file

        Raises:
            NotFoundError, IngestionError: From the first failing document
        """
        results = []
        for path in paths:
            path = Path(path)
            try:
                results.append(self.ingest(path))
            except RAGError as e:
                document_id = getattr(e, "document_id", normalize_document_id(path.name))
                self.reporter.ingestion_failed(document_id, str(e), type(e).__name__)
                logger.error(f"Ingestion aborted at {path}: {e}")
                raise

        logger.info(
            f"Ingested {len(results)} documents "
            f"({sum(len(r.chunk_ids) for r in results)} chunks)"
        )
        return results
