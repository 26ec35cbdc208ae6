"""
Document Ingestion Script for the RAG console.

This script:
1. Optionally clears existing data from Supabase
2. Lists all .txt files of the documents directory
3. Chunks each document into overlapping token windows
4. Generates embeddings for every chunk
5. Replaces the document's chunks in the vector store

Ingestion stops at the first document that fails.

Usage:
    python ingest_documents.py
    python ingest_documents.py --rebuild --docs-dir Files
    python ingest_documents.py --list
    python ingest_documents.py --remove policy_vacation_txt --remove handbook_txt
"""
import argparse
import logging
import sys

from config import DOCUMENTS_DIR, EVENT_LOG_PATH, LOG_FORMAT, LOG_LEVEL
from errors import RAGError
from logger import setup_logging
from main import build_pipeline
from services.event_reporter import EventReporter, JSONLinesEventReporter

logger = logging.getLogger(__name__)


def list_stored(vector_store) -> int:
    """Log every indexed document with its chunk count."""
    documents = vector_store.list_documents()
    if not documents:
        logger.info("The index is empty")
        return 0

    for document in documents:
        logger.info(f"  - {document['document_id']} ({document['source_name']}): {document['chunks']} chunks")
    logger.info(f"Documents in index: {len(documents)}")
    return 0


def remove_stored(vector_store, document_ids) -> int:
    """Delete the chunks of each document id; unknown ids are reported and fail the run."""
    stored = {document["document_id"] for document in vector_store.list_documents()}
    missing = [document_id for document_id in document_ids if document_id not in stored]

    for document_id in document_ids:
        if document_id in stored:
            vector_store.delete_document(document_id)
            logger.info(f"Removed document '{document_id}' from the index")
    for document_id in missing:
        logger.error(f"No indexed document '{document_id}'")
    return 1 if missing else 0


def main(argv=None) -> int:
    """Main ingestion process."""
    parser = argparse.ArgumentParser(description="Ingest .txt documents into the vector store")
    parser.add_argument("--docs-dir", default=DOCUMENTS_DIR, help=f"Documents directory (default: {DOCUMENTS_DIR})")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--rebuild", action="store_true", help="Clear the whole index before ingesting")
    mode.add_argument("--list", action="store_true", help="List indexed documents and exit")
    mode.add_argument(
        "--remove",
        action="append",
        metavar="DOCUMENT_ID",
        help="Remove a document's chunks from the index and exit (repeatable)"
    )
    args = parser.parse_args(argv)

    setup_logging(LOG_LEVEL, json_format=LOG_FORMAT == "json")
    reporter = JSONLinesEventReporter(EVENT_LOG_PATH) if EVENT_LOG_PATH else EventReporter()

    try:
        pipeline = build_pipeline(args.docs_dir, reporter=reporter)
        ingestion = pipeline.ingestion_pipeline
        vector_store = ingestion.vector_store

        if args.list:
            return list_stored(vector_store)
        if args.remove:
            return remove_stored(vector_store, args.remove)

        logger.info("=" * 60)
        logger.info("Starting Document Ingestion")
        logger.info("=" * 60)

        if args.rebuild:
            logger.info(f"Clearing {vector_store.count()} existing chunks...")
            vector_store.clear()

        logger.info("Warming up embedding model...")
        ingestion.embedding_model.warmup()

        paths = ingestion.document_loader.list_documents()
        if not paths:
            logger.error(f"No documents found! Check that {args.docs_dir}/ contains .txt files")
            return 1

        results = pipeline.ingest_all(paths)

        logger.info("=" * 60)
        logger.info("INGESTION COMPLETE!")
        logger.info("=" * 60)
        for result in results:
            logger.info(f"  - {result.document_id}: {len(result.chunk_ids)} chunks")
        logger.info(f"Documents processed: {len(results)}")
        logger.info(f"Chunks in database: {vector_store.count()}")
        return 0

    except KeyboardInterrupt:
        logger.warning("Ingestion interrupted by user")
        return 1
    except (RAGError, ValueError) as e:
        logger.error(f"Ingestion failed: {str(e)}", exc_info=True)
        return 1
    finally:
        reporter.close()


if __name__ == "__main__":
    sys.exit(main())
