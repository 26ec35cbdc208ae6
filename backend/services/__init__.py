"""Services for the document search RAG console."""
from .document_loader import DocumentLoader
from .chunking_engine import ChunkingEngine
from .embedding_model import EmbeddingModel
from .vector_store import VectorStore, rank_chunks, cosine_similarities
from .retrieval_engine import RetrievalEngine
from .llm_client import LLMClient, LLMResponse
from .output_evaluator import OutputEvaluator
from .event_reporter import EventReporter, JSONLinesEventReporter
from .ingestion_pipeline import IngestionPipeline, IngestionResult
from .rag_pipeline import RAGPipeline

__all__ = ['DocumentLoader', 'ChunkingEngine', 'EmbeddingModel', 'VectorStore', 'rank_chunks', 'cosine_similarities', 'RetrievalEngine', 'LLMClient', 'LLMResponse', 'OutputEvaluator', 'EventReporter', 'JSONLinesEventReporter', 'IngestionPipeline', 'IngestionResult', 'RAGPipeline']
