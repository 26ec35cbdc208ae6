"""Chunking engine with token-bounded overlapping windows."""
import logging
from typing import Iterator, List, Optional, Sequence, Tuple

from models.document import Document
from models.chunk import Chunk
from config import CHUNK_SIZE, CHUNK_OVERLAP, TOKENIZER_MODEL
from errors import ConfigurationError

logger = logging.getLogger(__name__)


class ChunkingEngine:
    """Segments documents into overlapping token windows."""

    def __init__(
        self,
        chunk_size: int = CHUNK_SIZE,
        chunk_overlap: int = CHUNK_OVERLAP,
        tokenizer=None,
        tokenizer_name: str = TOKENIZER_MODEL
    ):
        """
        Initialize ChunkingEngine.

        Args:
            chunk_size: Maximum chunk size in tokens
            chunk_overlap: Tokens shared with the preceding chunk
            tokenizer: Fast tokenizer callable as tokenizer(text, add_special_tokens=False,
                return_offsets_mapping=True), returning input_ids and offset_mapping;
                a Hugging Face tokenizer is loaded on first use when omitted
            tokenizer_name: Hugging Face model id of the tokenizer to load

        Raises:
            ConfigurationError: If sizes are invalid
        """
        if chunk_size <= 0:
            raise ConfigurationError(f"chunk_size must be positive, got {chunk_size}")
        if chunk_overlap < 0 or chunk_overlap >= chunk_size:
            raise ConfigurationError(
                f"chunk_overlap ({chunk_overlap}) must be in [0, chunk_size ({chunk_size}))"
            )

        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.stride = chunk_size - chunk_overlap
        self.tokenizer_name = tokenizer_name
        self._tokenizer = tokenizer

    @property
    def tokenizer(self):
        if self._tokenizer is None:
            from transformers import AutoTokenizer

            logger.info(f"Loading tokenizer for chunking: {self.tokenizer_name}")
            self._tokenizer = AutoTokenizer.from_pretrained(self.tokenizer_name)
        return self._tokenizer

    def split_tokens(self, token_ids: Sequence[int]) -> Iterator[Tuple[int, int]]:
        """
        Yield half-open (start, end) windows over a token stream.

        Windows are chunk_size long and advance by chunk_size - chunk_overlap.
        The last window may be shorter; no window starts after one has
        already reached the end of the stream.
        """
        total = len(token_ids)
        start = 0
        while start < total:
            end = min(start + self.chunk_size, total)
            yield start, end
            if end == total:
                break
            start += self.stride

    def tokenize(self, text: str) -> Tuple[List[int], List[Tuple[int, int]]]:
        """
        Encode text into token ids and the character span of each token.

        Spans index into `text` itself, so chunk texts are cut from the
        original string instead of being decoded from normalized tokens.
        """
        encoding = self.tokenizer(text, add_special_tokens=False, return_offsets_mapping=True)
        token_ids = list(encoding["input_ids"])
        offsets = [(int(start), int(end)) for start, end in encoding["offset_mapping"]]
        return token_ids, offsets

    @staticmethod
    def _slice(text: str, offsets: List[Tuple[int, int]], start: int, end: int) -> str:
        return text[offsets[start][0]:offsets[end - 1][1]]

    def chunk_text(self, text: str) -> List[str]:
        """
        Split text into overlapping token-bounded chunk texts.

        Args:
            text: Raw document text

        Returns:
            Chunk texts in document order, empty for blank text
        """
        if not text or not text.strip():
            return []

        token_ids, offsets = self.tokenize(text)
        return [
            self._slice(text, offsets, start, end)
            for start, end in self.split_tokens(token_ids)
        ]

    def chunk_document(self, document: Document) -> List[Chunk]:
        """
        Chunk a document, assigning positions, token spans and stable ids.

        Args:
            document: Loaded document

        Returns:
            List of Chunk objects without embeddings
        """
        if not document.text or not document.text.strip():
            return []

        token_ids, offsets = self.tokenize(document.text)
        chunks = []
        for position, (start, end) in enumerate(self.split_tokens(token_ids)):
            chunks.append(Chunk(
                chunk_id=f"{document.document_id}_{position}",
                text=self._slice(document.text, offsets, start, end),
                document_id=document.document_id,
                source_name=document.source_name,
                position=position,
                token_start=start,
                token_end=end,
                token_count=end - start,
                tags=dict(document.tags)
            ))

        logger.info(
            f"Chunked {document.document_id}: {len(token_ids)} tokens -> {len(chunks)} chunks "
            f"(size={self.chunk_size}, overlap={self.chunk_overlap})"
        )
        return chunks
