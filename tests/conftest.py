"""Shared fixtures and test doubles."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import re
import unicodedata

import pytest
from unittest.mock import Mock

from models.chunk import Chunk
from services.embedding_model import EmbeddingModel
from services.vector_store import rank_chunks


class WordTokenizer:
    """Whitespace tokenizer: one token per word, ids assigned on first sight."""

    pattern = re.compile(r"\S+")

    def __init__(self):
        self.vocab = []
        self.ids = {}

    def normalize(self, word):
        return word

    def __call__(self, text, add_special_tokens=False, return_offsets_mapping=False):
        token_ids = []
        offsets = []
        for match in self.pattern.finditer(text):
            word = self.normalize(match.group())
            if word not in self.ids:
                self.ids[word] = len(self.vocab)
                self.vocab.append(word)
            token_ids.append(self.ids[word])
            offsets.append((match.start(), match.end()))
        encoding = {"input_ids": token_ids}
        if return_offsets_mapping:
            encoding["offset_mapping"] = offsets
        return encoding


class NormalizingTokenizer(WordTokenizer):
    """Lowercases and strips accents like uncased vocabularies do; punctuation is split off."""

    pattern = re.compile(r"\w+|[^\w\s]")

    def normalize(self, word):
        decomposed = unicodedata.normalize("NFD", word.lower())
        return "".join(c for c in decomposed if not unicodedata.combining(c))


class InMemoryVectorStore:
    """VectorStore double keeping rows in ingestion order."""

    def __init__(self):
        self.rows = []

    def upsert(self, chunks):
        for chunk in chunks:
            for i, row in enumerate(self.rows):
                if row.chunk_id == chunk.chunk_id:
                    self.rows[i] = chunk
                    break
            else:
                self.rows.append(chunk)

    def replace_document(self, document_id, chunks):
        self.upsert(chunks)
        self.rows = [
            row for row in self.rows
            if row.document_id != document_id or row.position < len(chunks)
        ]

    def search(self, query_embedding, tag_filter=None, top_k=5):
        return rank_chunks(query_embedding, self.rows, tag_filter, top_k)

    def count(self):
        return len(self.rows)


KEYWORDS = ["vacation", "days", "salary", "expense", "remote"]


def keyword_vector(text):
    """Bag-of-keywords embedding plus a constant component."""
    words = text.lower().replace("?", " ").replace(".", " ").split()
    return [float(words.count(k)) for k in KEYWORDS] + [0.1]


@pytest.fixture
def word_tokenizer():
    return WordTokenizer()


@pytest.fixture
def memory_store():
    return InMemoryVectorStore()


@pytest.fixture
def keyword_embedder():
    """EmbeddingModel mock producing bag-of-keywords vectors."""
    model = Mock(spec=EmbeddingModel)
    model.embed_text.side_effect = keyword_vector
    model.embed_batch.side_effect = lambda texts: [keyword_vector(t) for t in texts]
    return model


def make_chunk(chunk_id, embedding, tags=None, document_id="doc", position=0, text=None):
    """Build a stored chunk for ranking tests."""
    return Chunk(
        chunk_id=chunk_id,
        text=text or f"text of {chunk_id}",
        document_id=document_id,
        source_name=f"{document_id}.txt",
        position=position,
        tags=tags or {},
        embedding=embedding
    )
