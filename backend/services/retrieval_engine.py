"""Retrieval engine for orchestrating query embedding and chunk retrieval."""
import logging
from typing import Dict, List, Optional
from models.chunk import ScoredChunk
from models.answer import SourceDocument
from models.tag_filter import TagFilter
from services.vector_store import VectorStore
from services.embedding_model import EmbeddingModel
from config import TOP_K

logger = logging.getLogger(__name__)


class RetrievalEngine:
    """Embed queries and fetch the best matching chunks under a tag filter."""

    def __init__(self, vector_store: VectorStore, embedding_model: EmbeddingModel):
        """
        Initialize the retrieval engine.

        Args:
            vector_store: VectorStore instance for similarity search
            embedding_model: EmbeddingModel instance for query embedding
        """
        self.vector_store = vector_store
        self.embedding_model = embedding_model
        logger.info("Initialized RetrievalEngine")

    def retrieve(
        self,
        query: str,
        tag_filter: Optional[TagFilter] = None,
        top_k: int = TOP_K,
        min_relevance: Optional[float] = None
    ) -> List[ScoredChunk]:
        """
        Retrieve relevant chunks for a query.

        1. Embed the user query
        2. Search the vector store under the tag filter
        3. Optionally drop chunks scoring below `min_relevance`

        Args:
            query: User question
            tag_filter: Conjunctive tag constraints (None matches everything)
            top_k: Maximum number of chunks to retrieve
            min_relevance: Score floor, disabled when None

        Returns:
            List of scored chunks, descending by relevance; empty for an empty query

        Raises:
            EmbeddingServiceError, ServiceTimeoutError: If the query cannot be embedded
            StorageError: If the search fails
        """
        if not query or not query.strip():
            logger.warning("Empty query string provided, returning empty results")
            return []

        logger.debug(f"Embedding query: {query[:100]}...")
        query_embedding = self.embedding_model.embed_text(query)

        logger.debug(f"Searching for top {top_k} chunks (filter: {tag_filter or TagFilter()})")
        scored_chunks = self.vector_store.search(query_embedding, tag_filter=tag_filter, top_k=top_k)

        if min_relevance is not None:
            scored_chunks = [c for c in scored_chunks if c.relevance_score >= min_relevance]

        if scored_chunks:
            logger.info(
                f"Retrieved {len(scored_chunks)} chunks "
                f"(top score: {scored_chunks[0].relevance_score:.3f})"
            )
        else:
            logger.info("No chunks found for query")

        return scored_chunks

    @staticmethod
    def group_by_document(scored_chunks: List[ScoredChunk]) -> List[SourceDocument]:
        """
        Group chunks by source document.

        Chunks within a document are ordered by descending relevance and
        documents by the relevance of their first chunk; equal documents keep
        the order in which they were first seen.
        """
        groups: Dict[str, SourceDocument] = {}
        for scored in scored_chunks:
            chunk = scored.chunk
            source = groups.get(chunk.document_id)
            if source is None:
                source = SourceDocument(
                    document_id=chunk.document_id,
                    source_name=chunk.source_name,
                    chunks=[]
                )
                groups[chunk.document_id] = source
            source.chunks.append(scored)

        sources = list(groups.values())
        for source in sources:
            source.chunks.sort(key=lambda c: -c.relevance_score)
        sources.sort(key=lambda s: -s.relevance)
        return sources
