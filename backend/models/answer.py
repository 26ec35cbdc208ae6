"""Answer data models."""
from dataclasses import dataclass, field
from typing import List, Optional

from models.chunk import ScoredChunk


@dataclass
class SourceDocument:
    """A document that contributed chunks to an answer."""
    document_id: str
    source_name: str
    chunks: List[ScoredChunk]  # descending relevance

    @property
    def relevance(self) -> float:
        """Relevance of the document's best chunk."""
        return self.chunks[0].relevance_score if self.chunks else 0.0


@dataclass
class Answer:
    """Generated answer together with the evidence that produced it."""
    question: str
    text: str
    sources: List[SourceDocument]
    average_relevance: Optional[float]  # None when nothing was retrieved
    used_fallback: bool = False
    model_used: Optional[str] = None
    tokens_input: int = 0
    tokens_output: int = 0
    latency_ms: int = 0
    flags: List[str] = field(default_factory=list)

    @property
    def chunks_retrieved(self) -> int:
        return sum(len(source.chunks) for source in self.sources)
