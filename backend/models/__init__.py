"""Data models for the document search RAG console."""
from .document import Document, normalize_document_id
from .chunk import Chunk, ScoredChunk
from .answer import Answer, SourceDocument
from .tag_filter import TagFilter

__all__ = [
    "Document",
    "normalize_document_id",
    "Chunk",
    "ScoredChunk",
    "Answer",
    "SourceDocument",
    "TagFilter",
]
