"""Vector store implementation using a Supabase table."""
import json
import logging
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from supabase import create_client, Client

from models.chunk import Chunk, ScoredChunk
from models.tag_filter import TagFilter
from config import SUPABASE_URL, SUPABASE_KEY, SUPABASE_TABLE
from errors import StorageError

logger = logging.getLogger(__name__)

# Table layout expected by the store:
#
# CREATE EXTENSION IF NOT EXISTS vector;
# CREATE TABLE document_chunks (
#   id bigserial PRIMARY KEY,            -- ingestion order, used for tie-breaks
#   chunk_id text UNIQUE NOT NULL,       -- "{document_id}_{position}"
#   document_id text NOT NULL,
#   source_name text NOT NULL,
#   position int NOT NULL,
#   text text NOT NULL,
#   token_count int NOT NULL DEFAULT 0,
#   tags jsonb NOT NULL DEFAULT '{}'::jsonb,
#   embedding vector(768) NOT NULL,
#   ingested_at timestamptz NOT NULL DEFAULT now()
# );
# CREATE INDEX document_chunks_document_id_idx ON document_chunks (document_id);
# CREATE INDEX document_chunks_tags_idx ON document_chunks USING gin (tags);

SELECT_COLUMNS = "id,chunk_id,document_id,source_name,position,text,token_count,tags,embedding"
PAGE_SIZE = 1000


def cosine_similarities(query: Sequence[float], matrix: np.ndarray) -> np.ndarray:
    """
    Cosine similarity of `query` against every row of `matrix`.

    Rows (or a query) with zero norm score 0.0.
    """
    query_vector = np.asarray(query, dtype=np.float64)
    if matrix.ndim != 2 or matrix.shape[1] != query_vector.shape[0]:
        raise ValueError(
            f"Query dimension {query_vector.shape[0]} does not match stored dimension "
            f"{matrix.shape[1] if matrix.ndim == 2 else matrix.shape}"
        )

    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query_vector)
    dots = matrix @ query_vector
    with np.errstate(divide="ignore", invalid="ignore"):
        scores = np.where(norms > 0, dots / norms, 0.0)
    return scores


def rank_chunks(
    query_embedding: Sequence[float],
    chunks: Sequence[Chunk],
    tag_filter: Optional[TagFilter] = None,
    top_k: int = 5
) -> List[ScoredChunk]:
    """
    Rank chunks by cosine similarity to the query.

    Chunks failing the tag filter are dropped before any score is computed.
    The sort is stable, so equal scores keep the order of `chunks`, which
    callers pass in ingestion order.

    Args:
        query_embedding: Query vector
        chunks: Candidate chunks carrying embeddings, in ingestion order
        tag_filter: Conjunctive tag constraints (None matches everything)
        top_k: Maximum number of results

    Returns:
        At most top_k ScoredChunk objects, descending by score
    """
    if tag_filter is not None and not tag_filter.is_empty:
        chunks = [chunk for chunk in chunks if tag_filter.matches(chunk.tags)]

    if not chunks:
        return []

    matrix = np.asarray([chunk.embedding for chunk in chunks], dtype=np.float64)
    scores = cosine_similarities(query_embedding, matrix)

    order = sorted(range(len(chunks)), key=lambda i: -scores[i])
    return [
        ScoredChunk(chunk=chunks[i], relevance_score=float(scores[i]))
        for i in order[:top_k]
    ]


class VectorStore:
    """Store chunk embeddings and run filtered similarity search over a Supabase table."""

    def __init__(
        self,
        supabase_url: Optional[str] = SUPABASE_URL,
        supabase_key: Optional[str] = SUPABASE_KEY,
        table_name: str = SUPABASE_TABLE
    ):
        """
        Initialize the vector store with Supabase client.

        Args:
            supabase_url: Supabase project URL
            supabase_key: Supabase API key
            table_name: Name of the table to store chunks

        Raises:
            ValueError: If Supabase credentials are missing
        """
        if not supabase_url or not supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY environment variables are required")

        self.table_name = table_name

        # Initialize Supabase client
        self.client: Client = create_client(supabase_url, supabase_key)

        logger.info(f"Initialized VectorStore with table: {table_name}")

    @staticmethod
    def _to_record(chunk: Chunk) -> Dict[str, Any]:
        if not chunk.embedding:
            raise ValueError(f"Chunk {chunk.chunk_id} has no embedding")
        return {
            "chunk_id": chunk.chunk_id,
            "document_id": chunk.document_id,
            "source_name": chunk.source_name,
            "position": chunk.position,
            "text": chunk.text,
            "token_count": chunk.token_count,
            "tags": dict(chunk.tags),
            "embedding": list(chunk.embedding),
        }

    @staticmethod
    def _from_row(row: Dict[str, Any]) -> Chunk:
        embedding = row.get("embedding")
        # pgvector columns come back from PostgREST as "[0.1,0.2,...]"
        if isinstance(embedding, str):
            embedding = json.loads(embedding)
        return Chunk(
            chunk_id=row["chunk_id"],
            text=row["text"],
            document_id=row["document_id"],
            source_name=row.get("source_name") or row["document_id"],
            position=row["position"],
            token_count=row.get("token_count", 0),
            tags=row.get("tags") or {},
            embedding=[float(x) for x in embedding] if embedding else None
        )

    def upsert(self, chunks: List[Chunk]) -> None:
        """
        Write chunks with their embeddings in a single request keyed by chunk_id.

        Raises:
            ValueError: If chunks list is empty or a chunk has no embedding
            StorageError: If the database rejects the write
        """
        if not chunks:
            raise ValueError("Chunks list cannot be empty")

        records = [self._to_record(chunk) for chunk in chunks]

        try:
            self.client.table(self.table_name).upsert(records, on_conflict="chunk_id").execute()
        except Exception as e:
            error_msg = f"Failed to add chunks to vector store: {str(e)}"
            logger.error(error_msg)
            raise StorageError(error_msg) from e

        logger.debug(f"Upserted {len(records)} chunks into {self.table_name}")

    def replace_document(self, document_id: str, chunks: List[Chunk]) -> None:
        """
        Replace every stored chunk of a document with `chunks`.

        New rows are written first in one statement, then rows at positions
        past the new chunk count are removed in a second one. The two are not
        atomic:

        - if the write fails, the previous version of the document stays intact;
        - if the cleanup fails, the new chunks are stored but positions from a
          longer previous version remain searchable until the document is
          ingested again (replacing is idempotent, so a retry completes it).

        Raises:
            StorageError: If the database rejects the write or the cleanup
        """
        if any(chunk.document_id != document_id for chunk in chunks):
            raise ValueError(f"All chunks must belong to document '{document_id}'")

        if chunks:
            self.upsert(chunks)

        try:
            self.client.table(self.table_name).delete() \
                .eq("document_id", document_id) \
                .gte("position", len(chunks)) \
                .execute()
        except Exception as e:
            error_msg = (
                f"Stored {len(chunks)} new chunks of {document_id} but failed to remove "
                f"chunks from position {len(chunks)} on; ingest the document again: {str(e)}"
            )
            logger.error(error_msg)
            raise StorageError(error_msg) from e

        logger.info(f"Stored {len(chunks)} chunks for document {document_id}")

    def delete_document(self, document_id: str) -> None:
        """
        Remove every chunk of a document.

        Raises:
            StorageError: If database operation fails
        """
        try:
            self.client.table(self.table_name).delete().eq("document_id", document_id).execute()
            logger.info(f"Deleted chunks of document {document_id}")
        except Exception as e:
            error_msg = f"Failed to delete document {document_id}: {str(e)}"
            logger.error(error_msg)
            raise StorageError(error_msg) from e

    def _select_all(self, columns: str, tag_filter: Optional[TagFilter] = None) -> List[Dict[str, Any]]:
        """
        Read every matching row in ingestion order, one page at a time.

        The server may cap a page below PAGE_SIZE (PostgREST max-rows), so
        only an empty page ends the scan and the offset advances by the
        rows actually received.
        """
        rows: List[Dict[str, Any]] = []
        while True:
            query = self.client.table(self.table_name).select(columns)
            if tag_filter is not None and not tag_filter.is_empty:
                query = query.contains("tags", tag_filter.as_dict())
            offset = len(rows)
            response = query.order("id").range(offset, offset + PAGE_SIZE - 1).execute()

            page = response.data or []
            if not page:
                return rows
            rows.extend(page)

    def _fetch_chunks(self, tag_filter: Optional[TagFilter]) -> List[Chunk]:
        """Load candidate rows in ingestion order, pushing the tag filter down."""
        return [self._from_row(row) for row in self._select_all(SELECT_COLUMNS, tag_filter)]

    def search(
        self,
        query_embedding: List[float],
        tag_filter: Optional[TagFilter] = None,
        top_k: int = 5
    ) -> List[ScoredChunk]:
        """
        Find the chunks most similar to the query among those passing the filter.

        Args:
            query_embedding: Embedding vector for user query
            tag_filter: Conjunctive tag constraints (None matches everything)
            top_k: Number of chunks to retrieve

        Returns:
            List of ScoredChunk objects, descending by cosine similarity,
            ties in ingestion order

        Raises:
            ValueError: If query_embedding is empty or top_k is invalid
            StorageError: If database operation fails
        """
        if not query_embedding:
            raise ValueError("Query embedding cannot be empty")

        if top_k <= 0:
            raise ValueError("top_k must be positive")

        try:
            candidates = self._fetch_chunks(tag_filter)
        except Exception as e:
            error_msg = f"Failed to search vector store: {str(e)}"
            logger.error(error_msg)
            raise StorageError(error_msg) from e

        try:
            scored_chunks = rank_chunks(query_embedding, candidates, tag_filter, top_k)
        except ValueError as e:
            raise StorageError(f"Failed to rank stored chunks: {str(e)}") from e

        logger.debug(
            f"Found {len(scored_chunks)} chunks for query "
            f"({len(candidates)} candidates, filter: {tag_filter or TagFilter()})"
        )
        return scored_chunks

    def list_documents(self) -> List[Dict[str, Any]]:
        """
        List stored documents with their chunk counts, in ingestion order.

        Raises:
            StorageError: If database operation fails
        """
        try:
            rows = self._select_all("document_id,source_name")
        except Exception as e:
            error_msg = f"Failed to list documents in vector store: {str(e)}"
            logger.error(error_msg)
            raise StorageError(error_msg) from e

        documents: Dict[str, Dict[str, Any]] = {}
        for row in rows:
            entry = documents.setdefault(
                row["document_id"],
                {"document_id": row["document_id"], "source_name": row.get("source_name"), "chunks": 0}
            )
            entry["chunks"] += 1
        return list(documents.values())

    def clear(self) -> None:
        """
        Clear all chunks from the vector store.

        Raises:
            StorageError: If database operation fails
        """
        try:
            self.client.table(self.table_name).delete().neq("chunk_id", "").execute()
            logger.info("Cleared all chunks from vector store")
        except Exception as e:
            error_msg = f"Failed to clear vector store: {str(e)}"
            logger.error(error_msg)
            raise StorageError(error_msg) from e

    def count(self) -> int:
        """
        Get the total number of chunks in the vector store.

        Raises:
            StorageError: If database operation fails
        """
        try:
            response = self.client.table(self.table_name).select("chunk_id", count="exact").execute()
            return response.count if response.count is not None else 0
        except Exception as e:
            error_msg = f"Failed to count chunks in vector store: {str(e)}"
            logger.error(error_msg)
            raise StorageError(error_msg) from e
