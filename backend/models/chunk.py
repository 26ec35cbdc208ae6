"""Chunk data models."""
from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass
class Chunk:
    """Represents a document chunk for retrieval."""
    chunk_id: str  # Format: "{document_id}_{position}"
    text: str
    document_id: str
    source_name: str
    position: int
    token_start: int = 0
    token_end: int = 0
    token_count: int = 0
    tags: Dict[str, str] = field(default_factory=dict)
    embedding: Optional[List[float]] = None


@dataclass
class ScoredChunk:
    """Chunk with relevance score from retrieval."""
    chunk: Chunk
    relevance_score: float  # cosine similarity, -1.0 to 1.0
