"""Structured pipeline event reporting."""
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class EventReporter:
    """
    Sink for pipeline events (ingested, failed, retrieved, answered).

    The base reporter writes each event to the standard logger; subclasses
    add destinations by overriding `emit`.
    """

    def report(self, event: str, level: int = logging.INFO, **fields: Any) -> Dict[str, Any]:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "event": event,
        }
        entry.update(fields)
        logger.log(level, f"{event}: {fields}", extra={"event": event})
        self.emit(entry)
        return entry

    def emit(self, entry: Dict[str, Any]) -> None:
        """Deliver an event entry to an additional destination."""

    def document_ingested(self, document_id: str, source_name: str, chunk_count: int) -> None:
        self.report(
            "document_ingested",
            document_id=document_id,
            source_name=source_name,
            chunk_count=chunk_count
        )

    def ingestion_failed(self, document_id: str, error: str, error_type: str) -> None:
        self.report(
            "ingestion_failed",
            level=logging.ERROR,
            document_id=document_id,
            error=error,
            error_type=error_type
        )

    def chunks_retrieved(
        self,
        query: str,
        chunks_retrieved: int,
        tag_filter: Optional[Dict[str, str]] = None,
        top_score: Optional[float] = None
    ) -> None:
        self.report(
            "chunks_retrieved",
            query=query,
            chunks_retrieved=chunks_retrieved,
            tag_filter=tag_filter or {},
            top_score=top_score
        )

    def question_answered(
        self,
        query: str,
        model_used: Optional[str],
        latency_ms: int,
        chunks_retrieved: int = 0,
        average_relevance: Optional[float] = None,
        used_fallback: bool = False,
        tokens_input: int = 0,
        tokens_output: int = 0,
        evaluator_flags: Optional[List[str]] = None
    ) -> None:
        self.report(
            "question_answered",
            query=query,
            model_used=model_used,
            latency_ms=latency_ms,
            chunks_retrieved=chunks_retrieved,
            average_relevance=average_relevance,
            used_fallback=used_fallback,
            tokens_input=tokens_input,
            tokens_output=tokens_output,
            evaluator_flags=evaluator_flags or []
        )

    def close(self) -> None:
        """Release any resources held by the reporter."""


class JSONLinesEventReporter(EventReporter):
    """Reporter that also appends every event to a JSON Lines file."""

    def __init__(self, log_file_path: str):
        self.log_file_path = Path(log_file_path)
        self.log_file_path.parent.mkdir(parents=True, exist_ok=True)
        self._file = open(self.log_file_path, "a", encoding="utf-8")

    def emit(self, entry: Dict[str, Any]) -> None:
        self._file.write(json.dumps(entry, default=str) + "\n")
        self._file.flush()

    def close(self) -> None:
        if not self._file.closed:
            self._file.close()
