"""Embedding model integration over HTTP (Hugging Face Inference API or Ollama)."""
import time
import logging
from typing import List, Optional
import httpx
from config import (
    HUGGINGFACE_API_KEY,
    EMBEDDING_MODEL,
    EMBEDDING_PROVIDER,
    EMBEDDING_API_URL,
    OLLAMA_BASE_URL,
    REQUEST_TIMEOUT,
)
from errors import ConfigurationError, EmbeddingServiceError, ServiceTimeoutError

logger = logging.getLogger(__name__)

PROVIDERS = ("huggingface", "ollama")


class EmbeddingModel:
    """Client for a remote embedding model producing fixed-dimension vectors."""

    def __init__(
        self,
        api_key: Optional[str] = HUGGINGFACE_API_KEY,
        model_name: str = EMBEDDING_MODEL,
        provider: str = EMBEDDING_PROVIDER,
        api_url: Optional[str] = EMBEDDING_API_URL,
        max_retries: int = 5,
        initial_delay: float = 5.0,
        timeout: float = REQUEST_TIMEOUT
    ):
        """
        Initialize the embedding model client.

        Args:
            api_key: Hugging Face API key (not needed for Ollama)
            model_name: Model identifier
            provider: "huggingface" or "ollama"
            api_url: Endpoint override; defaults depend on the provider
            max_retries: Maximum attempts for model-loading (503) and connection errors
            initial_delay: Initial delay in seconds for exponential backoff
            timeout: Request timeout in seconds; a timeout is never retried

        Raises:
            ConfigurationError: If the provider is unknown or the API key is missing
        """
        if provider not in PROVIDERS:
            raise ConfigurationError(f"Unknown embedding provider '{provider}', expected one of {PROVIDERS}")
        if provider == "huggingface" and not api_key:
            raise ConfigurationError("HUGGINGFACE_API_KEY environment variable is required")

        self.api_key = api_key
        self.model_name = model_name
        self.provider = provider
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.timeout = timeout
        self.dimension: Optional[int] = None

        if api_url:
            self.api_url = api_url
        elif provider == "ollama":
            self.api_url = f"{OLLAMA_BASE_URL.rstrip('/')}/api/embed"
        else:
            self.api_url = f"https://api-inference.huggingface.co/models/{model_name}"

        logger.info(f"Initialized EmbeddingModel with model: {model_name} ({provider})")

    def embed_text(self, text: str) -> List[float]:
        """
        Generate embedding for a single text string.

        Raises:
            ValueError: If text is empty
            EmbeddingServiceError: If the endpoint fails after all retries
            ServiceTimeoutError: If the request times out
        """
        if not text or not text.strip():
            raise ValueError("Text cannot be empty")

        return self._embed_with_retry([text])[0]

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for multiple texts in a single API call.

        The result is aligned with `texts`, so blank entries are rejected
        instead of being dropped.

        Raises:
            ValueError: If texts list is empty or contains blank strings
            EmbeddingServiceError: If the endpoint fails after all retries
            ServiceTimeoutError: If the request times out
        """
        if not texts:
            raise ValueError("Texts list cannot be empty")

        blank = [i for i, t in enumerate(texts) if not t or not t.strip()]
        if blank:
            raise ValueError(f"Texts at positions {blank} are empty")

        return self._embed_with_retry(list(texts))

    def _build_request(self, texts: List[str]):
        headers = {"Content-Type": "application/json"}
        if self.provider == "ollama":
            payload = {"model": self.model_name, "input": texts}
        else:
            headers["Authorization"] = f"Bearer {self.api_key}"
            payload = {
                "inputs": texts,
                "options": {
                    "wait_for_model": True  # Wait for model to load if sleeping
                }
            }
        return headers, payload

    def _parse_embeddings(self, data, expected: int) -> List[List[float]]:
        embeddings = data.get("embeddings") if isinstance(data, dict) else data
        if not isinstance(embeddings, list) or len(embeddings) != expected:
            raise EmbeddingServiceError(
                f"Expected {expected} embeddings from {self.model_name}, got {type(embeddings).__name__}"
            )

        try:
            vectors = [[float(x) for x in vector] for vector in embeddings]
        except (TypeError, ValueError) as e:
            raise EmbeddingServiceError(
                f"Malformed embedding response from {self.model_name}: {e}"
            ) from e

        for vector in vectors:
            if not vector:
                raise EmbeddingServiceError("Embedding service returned an empty vector")
            if self.dimension is None:
                self.dimension = len(vector)
            elif len(vector) != self.dimension:
                raise EmbeddingServiceError(
                    f"Embedding dimension changed from {self.dimension} to {len(vector)}"
                )
        return vectors

    def _embed_with_retry(self, texts: List[str]) -> List[List[float]]:
        """
        Call the embedding endpoint with exponential backoff.

        Sleeping models (503) and connection errors are retried; timeouts are
        raised straight away so the caller decides whether to try again.
        """
        headers, payload = self._build_request(texts)

        delay = self.initial_delay
        last_error = None

        for attempt in range(self.max_retries):
            try:
                start_time = time.time()

                with httpx.Client(timeout=self.timeout) as client:
                    response = client.post(
                        self.api_url,
                        headers=headers,
                        json=payload
                    )

                elapsed = time.time() - start_time

            except httpx.TimeoutException:
                logger.error(f"Embedding request timed out after {self.timeout}s")
                raise ServiceTimeoutError("embedding", self.timeout)

            except httpx.RequestError as e:
                last_error = f"Network error: {str(e)}"
                logger.error(f"{last_error} on attempt {attempt + 1}/{self.max_retries}")

                if attempt < self.max_retries - 1:
                    time.sleep(delay)
                    delay = min(delay * 2, 60.0)
                continue

            # Handle 503 Service Unavailable (model loading)
            if response.status_code == 503:
                logger.warning(
                    f"Model loading (503) on attempt {attempt + 1}/{self.max_retries}. "
                    f"Retrying in {delay}s..."
                )
                last_error = f"Model failed to load after {self.max_retries} attempts"

                if attempt < self.max_retries - 1:
                    time.sleep(delay)
                    delay = min(delay * 2, 60.0)  # Exponential backoff, max 60s
                continue

            if response.status_code == 429:
                logger.error("Rate limit exceeded for embedding API")
                raise EmbeddingServiceError("Rate limit exceeded. Please try again later.")

            if response.status_code == 401:
                logger.error("Authentication failed for embedding API")
                raise EmbeddingServiceError("Invalid API key")

            if response.status_code != 200:
                error_msg = f"API request failed with status {response.status_code}: {response.text}"
                logger.error(error_msg)
                raise EmbeddingServiceError(error_msg)

            try:
                data = response.json()
            except ValueError as e:
                raise EmbeddingServiceError(f"Invalid JSON from embedding API: {e}")

            embeddings = self._parse_embeddings(data, len(texts))

            if elapsed > 10.0:
                logger.info(
                    f"Slow embedding response: {elapsed:.1f}s for {len(texts)} texts "
                    f"(attempt {attempt + 1})"
                )
            else:
                logger.debug(f"Generated embeddings for {len(texts)} texts in {elapsed:.2f}s")

            return embeddings

        # All retries exhausted
        error_msg = f"Failed to generate embeddings after {self.max_retries} attempts. Last error: {last_error}"
        logger.error(error_msg)
        raise EmbeddingServiceError(error_msg)

    def warmup(self) -> bool:
        """
        Warm up the model with a dummy query to avoid cold start delays.

        Returns:
            True if warmup successful, False otherwise
        """
        try:
            logger.info("Warming up embedding model...")
            start_time = time.time()

            self.embed_text("warmup query")

            elapsed = time.time() - start_time
            logger.info(f"Model warmup completed in {elapsed:.1f}s")
            return True

        except (EmbeddingServiceError, ServiceTimeoutError) as e:
            logger.error(f"Model warmup failed: {str(e)}")
            return False
