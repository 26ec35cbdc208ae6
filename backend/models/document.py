"""Document data models."""
import re
from dataclasses import dataclass, field
from typing import Dict

_NON_ALPHANUMERIC = re.compile(r"[^a-zA-Z0-9]")


def normalize_document_id(filename: str) -> str:
    """Derive a document id from a file name: every non-alphanumeric character becomes '_'."""
    return _NON_ALPHANUMERIC.sub("_", filename)


@dataclass(frozen=True)
class Document:
    """Represents a loaded plain-text document."""
    document_id: str
    source_name: str  # Original file name
    source_path: str
    text: str
    tags: Dict[str, str] = field(default_factory=dict)
