"""Output evaluator for the answer contract."""
import re
from typing import List, Set
from models.chunk import ScoredChunk
from config import FALLBACK_ANSWER, MAX_ANSWER_LINES


class OutputEvaluator:
    """
    Flags answers that break the prompt-level contract.

    The contract (answer only from context, exact fallback phrase, short
    answers) is enforced by the prompt alone; this class only reports.
    """

    # Words that may be capitalized without naming anything from the context
    STOP_WORDS = {
        "the", "this", "that", "these", "those", "it", "they", "we", "you",
        "a", "an", "and", "or", "but", "for", "i", "if", "in", "on", "yes", "no"
    }

    def __init__(self, fallback_answer: str = FALLBACK_ANSWER, max_lines: int = MAX_ANSWER_LINES):
        self.fallback_answer = fallback_answer
        self.max_lines = max_lines

    def evaluate(
        self,
        response: str,
        chunks_retrieved: int,
        sources: List[ScoredChunk]
    ) -> List[str]:
        """
        Evaluate response quality and return flags.

        Args:
            response: Generated answer text
            chunks_retrieved: Number of chunks retrieved
            sources: Retrieved chunks with metadata

        Returns:
            List of flag strings (empty if no issues)
        """
        flags = []
        is_fallback = self.is_fallback(response)

        # Check 1: answered without any retrieved context
        if chunks_retrieved == 0 and not is_fallback:
            flags.append("no_context")

        # Check 2: model declined with the fallback phrase
        if is_fallback:
            flags.append("fallback")

        # Check 3: answer longer than allowed
        if self._count_lines(response) > self.max_lines:
            flags.append("too_long")

        # Check 4: names that do not occur in the retrieved context
        if not is_fallback and self._has_unverified_terms(response, sources):
            flags.append("unverified_term")

        return flags

    @staticmethod
    def _normalize(text: str) -> str:
        text = text.strip().strip('"“”\'').strip()
        return re.sub(r"\s+", " ", text).lower()

    def is_fallback(self, response: str) -> bool:
        """True if the response is the fallback phrase, ignoring case, quotes and spacing."""
        return self._normalize(response) == self._normalize(self.fallback_answer)

    @staticmethod
    def _count_lines(response: str) -> int:
        return len([line for line in response.splitlines() if line.strip()])

    def _has_unverified_terms(self, response: str, sources: List[ScoredChunk]) -> bool:
        """
        Detect proper nouns in the answer that appear in none of the retrieved chunks.

        This catches details the model brought in from general knowledge.
        """
        response_terms = self._extract_proper_nouns(response)
        if not response_terms:
            return False

        chunks_text = " ".join(chunk.chunk.text for chunk in sources).lower()
        unverified = {
            term for term in response_terms
            if len(term) > 2 and term not in self.STOP_WORDS and term not in chunks_text
        }
        return len(unverified) > 0

    def _extract_proper_nouns(self, text: str) -> Set[str]:
        """
        Extract capitalized words that are not at a sentence start, lowercased.

        All-caps and camelCase words count even at a sentence start.
        """
        proper_nouns = set()

        words = text.split()
        for i, word in enumerate(words):
            # Strip possessives first to avoid "Acme's" becoming "Acmes"
            word = word.replace("'s", "").replace("’s", "")
            clean_word = re.sub(r'[^\w\s-]', '', word)
            if not clean_word or not clean_word[0].isupper():
                continue

            is_sentence_start = (i == 0)
            if i > 0:
                prev_word = words[i - 1].strip()
                # Punctuation endings or markdown list markers (-, *, +, >, 1., 1))
                if (prev_word.endswith(('.', '!', '?', ':')) or
                        re.match(r'^(\d+[.)]|[-*+>])$', prev_word)):
                    is_sentence_start = True

            if not is_sentence_start:
                proper_nouns.add(clean_word.lower())
            elif clean_word.isupper() or any(c.isupper() for c in clean_word[1:]):
                proper_nouns.add(clean_word.lower())

        return proper_nouns
