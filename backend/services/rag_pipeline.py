"""RAG pipeline: the ingest and ask entry points used by the console."""
import logging
import time
from pathlib import Path
from typing import Iterable, List, Optional, Union

from models.answer import Answer
from models.tag_filter import TagFilter
from services.event_reporter import EventReporter
from services.ingestion_pipeline import IngestionPipeline, IngestionResult
from services.llm_client import LLMClient
from services.output_evaluator import OutputEvaluator
from services.retrieval_engine import RetrievalEngine
from config import FALLBACK_ANSWER, MAX_ANSWER_LINES, TOP_K
from errors import EmptyQueryError

logger = logging.getLogger(__name__)


class RAGPipeline:
    """Answers questions from the indexed corpus."""

    def __init__(
        self,
        ingestion_pipeline: IngestionPipeline,
        retrieval_engine: RetrievalEngine,
        llm_client: LLMClient,
        output_evaluator: Optional[OutputEvaluator] = None,
        reporter: Optional[EventReporter] = None,
        top_k: int = TOP_K,
        min_relevance: Optional[float] = None,
        fallback_answer: str = FALLBACK_ANSWER,
        max_answer_lines: int = MAX_ANSWER_LINES
    ):
        self.ingestion_pipeline = ingestion_pipeline
        self.retrieval_engine = retrieval_engine
        self.llm_client = llm_client
        self.output_evaluator = output_evaluator or OutputEvaluator(fallback_answer, max_answer_lines)
        self.reporter = reporter or EventReporter()
        self.top_k = top_k
        self.min_relevance = min_relevance
        self.fallback_answer = fallback_answer
        self.max_answer_lines = max_answer_lines

    def ingest_all(self, paths: Iterable[Union[str, Path]]) -> List[IngestionResult]:
        """Ingest source files; see IngestionPipeline.ingest_all."""
        return self.ingestion_pipeline.ingest_all(paths)

    def ask(self, question: str, tag_filter: Optional[TagFilter] = None) -> Answer:
        """
        Answer a question using only chunks retrieved under `tag_filter`.

        Steps: embed and retrieve, group sources, build the augmented
        prompt, generate, score. With no retrieved chunks the model is not
        called and the fallback phrase is returned.

        Args:
            question: User question
            tag_filter: Conjunctive tag constraints (None matches everything)

        Returns:
            Answer with text, ranked sources and average relevance

        Raises:
            EmptyQueryError: If the question is blank (nothing is called)
            EmbeddingServiceError, GenerationServiceError, ServiceTimeoutError, StorageError
        """
        if not question or not question.strip():
            raise EmptyQueryError("Question cannot be empty")

        question = question.strip()
        start_time = time.time()
        logger.info(f"Processing query: {question[:100]}...")

        retrieved = self.retrieval_engine.retrieve(
            question,
            tag_filter=tag_filter,
            top_k=self.top_k,
            min_relevance=self.min_relevance
        )
        self.reporter.chunks_retrieved(
            query=question,
            chunks_retrieved=len(retrieved),
            tag_filter=tag_filter.as_dict() if tag_filter else None,
            top_score=retrieved[0].relevance_score if retrieved else None
        )

        sources = self.retrieval_engine.group_by_document(retrieved)

        if retrieved:
            prompt = LLMClient.build_prompt(
                query=question,
                retrieved_chunks=[scored.chunk.text for scored in retrieved],
                fallback_answer=self.fallback_answer,
                max_lines=self.max_answer_lines
            )
            llm_response = self.llm_client.generate(prompt)
            text = llm_response.text
            model_used = llm_response.model_used
            tokens_input, tokens_output = llm_response.tokens_input, llm_response.tokens_output
            average_relevance = sum(c.relevance_score for c in retrieved) / len(retrieved)
        else:
            logger.info("No context retrieved, answering with fallback phrase")
            text = self.fallback_answer
            model_used = None
            tokens_input = tokens_output = 0
            average_relevance = None

        flags = self.output_evaluator.evaluate(
            response=text,
            chunks_retrieved=len(retrieved),
            sources=retrieved
        )
        latency_ms = int((time.time() - start_time) * 1000)

        answer = Answer(
            question=question,
            text=text,
            sources=sources,
            average_relevance=average_relevance,
            used_fallback=self.output_evaluator.is_fallback(text),
            model_used=model_used,
            tokens_input=tokens_input,
            tokens_output=tokens_output,
            latency_ms=latency_ms,
            flags=flags
        )

        self.reporter.question_answered(
            query=question,
            model_used=model_used,
            latency_ms=latency_ms,
            chunks_retrieved=len(retrieved),
            average_relevance=average_relevance,
            used_fallback=answer.used_fallback,
            tokens_input=tokens_input,
            tokens_output=tokens_output,
            evaluator_flags=flags
        )
        return answer
