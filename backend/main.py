"""
Interactive console for asking questions about the company documents.

Ingests every .txt file of the documents directory, then answers questions
until the operator types 'exit' (or 'sair').

Usage:
    python main.py
    python main.py --skip-ingest --filter "type=policy, department=hr"

Console commands:
    :filter key=value, ...   restrict retrieval to documents with these tags
    :filter                  clear the filter
    exit | sair              quit
"""
import argparse
import logging
import sys
import time
from typing import Callable, Optional

from config import (
    DOCUMENTS_DIR,
    EVENT_LOG_PATH,
    EXIT_COMMANDS,
    LOG_FORMAT,
    LOG_LEVEL,
    TOP_K,
)
from errors import (
    EmbeddingServiceError,
    EmptyQueryError,
    GenerationServiceError,
    RAGError,
    ServiceTimeoutError,
    StorageError,
)
from logger import setup_logging
from models.answer import Answer
from models.tag_filter import TagFilter
from services.chunking_engine import ChunkingEngine
from services.document_loader import DocumentLoader
from services.embedding_model import EmbeddingModel
from services.event_reporter import EventReporter, JSONLinesEventReporter
from services.ingestion_pipeline import IngestionPipeline
from services.llm_client import LLMClient
from services.rag_pipeline import RAGPipeline
from services.retrieval_engine import RetrievalEngine
from services.vector_store import VectorStore

logger = logging.getLogger(__name__)

FILTER_COMMAND = ":filter"
QUERY_ERRORS = (EmbeddingServiceError, GenerationServiceError, ServiceTimeoutError, StorageError)


def build_pipeline(
    docs_directory: str = DOCUMENTS_DIR,
    reporter: Optional[EventReporter] = None,
    top_k: int = TOP_K
) -> RAGPipeline:
    """Wire the services together from configuration."""
    reporter = reporter or EventReporter()

    embedding_model = EmbeddingModel()
    vector_store = VectorStore()
    ingestion_pipeline = IngestionPipeline(
        document_loader=DocumentLoader(docs_directory=docs_directory),
        chunking_engine=ChunkingEngine(),
        embedding_model=embedding_model,
        vector_store=vector_store,
        reporter=reporter
    )
    return RAGPipeline(
        ingestion_pipeline=ingestion_pipeline,
        retrieval_engine=RetrievalEngine(vector_store, embedding_model),
        llm_client=LLMClient(),
        reporter=reporter,
        top_k=top_k
    )


def format_answer(answer: Answer, elapsed: float) -> str:
    """Render an answer, its timing and its sources for the console."""
    lines = [
        f"\nTime to answer: {elapsed:.2f} seconds",
        "\n --- AI Answer ---",
        answer.text,
        "\n ---------------------",
    ]

    if answer.sources:
        lines.append("\n --- AI Context ---")
        for source in answer.sources:
            lines.append(
                f"\n--> Relevant source ({source.document_id}) file: '{source.source_name}' "
                f"--> Relevance: {source.relevance:.5f}"
            )
            for scored in source.chunks:
                lines.append(f"\n- {scored.chunk.text}")
            lines.append("\n ---------------------")
    else:
        lines.append("No relevant sources found.")

    if answer.average_relevance is None:
        lines.append("Average relevance: n/a")
    else:
        lines.append(f"Average relevance: {answer.average_relevance:.5f}")
    if answer.flags:
        lines.append(f"Evaluator flags: {', '.join(answer.flags)}")
    return "\n".join(lines)


def run_console(
    pipeline: RAGPipeline,
    tag_filter: Optional[TagFilter] = None,
    input_fn: Callable[[str], str] = input,
    output: Callable[[str], None] = print
) -> None:
    """
    Request/response loop: one question is fully answered before the next is read.

    Query-time service errors are shown and the loop continues; blank input
    re-prompts; an exit command, EOF or Ctrl+C ends the loop.
    """
    tag_filter = tag_filter or TagFilter()
    output("Model ready for questions.")

    while True:
        try:
            line = input_fn(
                f"\nAsk a question about the company policies (filter: {tag_filter}; "
                f"type '{EXIT_COMMANDS[0]}' to quit): "
            )
        except (EOFError, KeyboardInterrupt):
            output("")
            break

        text = line.strip()
        if text.lower() in EXIT_COMMANDS:
            break

        if text.startswith(FILTER_COMMAND):
            try:
                tag_filter = TagFilter.parse(text[len(FILTER_COMMAND):])
                output(f"Active filter: {tag_filter}")
            except ValueError as e:
                output(f"Invalid filter: {e}")
            continue

        start_time = time.time()
        try:
            answer = pipeline.ask(text, tag_filter)
        except EmptyQueryError:
            continue
        except QUERY_ERRORS as e:
            logger.error(f"Query failed: {e}")
            output(f"Error: {e}")
            continue

        output(format_answer(answer, time.time() - start_time))


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Ask questions about company documents via RAG")
    parser.add_argument("--docs-dir", default=DOCUMENTS_DIR, help=f"Documents directory (default: {DOCUMENTS_DIR})")
    parser.add_argument("--skip-ingest", action="store_true", help="Use the existing index without ingesting")
    parser.add_argument("--filter", default="", help='Initial tag filter, e.g. "type=policy, department=hr"')
    parser.add_argument("--top-k", type=int, default=TOP_K, help=f"Chunks retrieved per question (default: {TOP_K})")
    args = parser.parse_args(argv)

    setup_logging(LOG_LEVEL, json_format=LOG_FORMAT == "json")
    logger.info("Querying a company document base via RAG")

    try:
        tag_filter = TagFilter.parse(args.filter)
    except ValueError as e:
        logger.error(f"Invalid --filter: {e}")
        return 2

    reporter = JSONLinesEventReporter(EVENT_LOG_PATH) if EVENT_LOG_PATH else EventReporter()
    try:
        pipeline = build_pipeline(args.docs_dir, reporter=reporter, top_k=args.top_k)

        if not args.skip_ingest:
            logger.info("Starting document ingestion...")
            paths = pipeline.ingestion_pipeline.document_loader.list_documents()
            for result in pipeline.ingest_all(paths):
                logger.info(f"Document '{result.document_id}' ingested ({len(result.chunk_ids)} chunks)")

        run_console(pipeline, tag_filter)
        return 0

    except RAGError as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1
    except ValueError as e:
        # Missing credentials
        logger.error(f"Configuration error: {e}")
        return 1
    finally:
        reporter.close()


if __name__ == "__main__":
    sys.exit(main())
