"""LLM Client for Groq API integration."""
import time
from dataclasses import dataclass
from typing import List, Optional
from groq import Groq
from groq import RateLimitError, AuthenticationError, APIError, APITimeoutError
import logging

from config import (
    GROQ_API_KEY,
    GENERATION_MODEL,
    GENERATION_TEMPERATURE,
    REQUEST_TIMEOUT,
    FALLBACK_ANSWER,
    MAX_ANSWER_LINES,
)
from errors import ConfigurationError, GenerationServiceError, ServiceTimeoutError

logger = logging.getLogger(__name__)


@dataclass
class LLMResponse:
    """Response from LLM generation."""
    text: str
    tokens_input: int
    tokens_output: int
    latency_ms: int
    model_used: str


class LLMClient:
    """Client for interfacing with Groq API for text generation."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = GENERATION_MODEL,
        timeout: float = REQUEST_TIMEOUT,
        temperature: float = GENERATION_TEMPERATURE
    ):
        """
        Initialize LLM client with Groq API key.

        Args:
            api_key: Groq API key (defaults to GROQ_API_KEY from environment)
            model: Model name used for every generation
            timeout: Request timeout in seconds
            temperature: Sampling temperature
        """
        self.api_key = api_key or GROQ_API_KEY
        if not self.api_key:
            raise ConfigurationError("GROQ_API_KEY must be provided or set in environment")

        self.model = model
        self.timeout = timeout
        self.temperature = temperature
        # Timeouts surface to the caller instead of being retried by the SDK
        self.client = Groq(api_key=self.api_key, timeout=timeout, max_retries=0)
        logger.info(f"LLMClient initialized with model {model}")

    def generate(self, prompt: str, max_tokens: int = 500) -> LLMResponse:
        """
        Generate response using Groq API.

        Args:
            prompt: Complete prompt with context and query
            max_tokens: Maximum tokens to generate

        Returns:
            LLMResponse with text, token counts, and latency

        Raises:
            ServiceTimeoutError: If the request exceeds the timeout
            GenerationServiceError: Structured error with code and details
        """
        start_time = time.time()
        model = self.model

        try:
            logger.debug(f"Generating response with model: {model}")

            response = self.client.chat.completions.create(
                model=model,
                messages=[
                    {
                        "role": "user",
                        "content": prompt
                    }
                ],
                max_tokens=max_tokens,
                temperature=self.temperature
            )

        except APITimeoutError as e:
            latency_ms = int((time.time() - start_time) * 1000)
            logger.error(f"Timeout error: model={model}, latency={latency_ms}ms, error={e}")
            raise ServiceTimeoutError("generation", self.timeout) from e

        except RateLimitError as e:
            raise self._error(
                "RATE_LIMIT_ERROR",
                "Rate limit exceeded. Please try again in a few moments.",
                model, start_time, e, retry_after=60
            ) from e

        except AuthenticationError as e:
            raise self._error(
                "AUTHENTICATION_ERROR",
                "Authentication failed. Please check your API key.",
                model, start_time, e
            ) from e

        except APIError as e:
            raise self._error("API_ERROR", f"Groq API error: {str(e)}", model, start_time, e) from e

        except Exception as e:
            raise self._error(
                "UNKNOWN_ERROR",
                f"Unexpected error during generation: {str(e)}",
                model, start_time, e, error_type=type(e).__name__
            ) from e

        latency_ms = int((time.time() - start_time) * 1000)

        text = response.choices[0].message.content or ""
        tokens_input = response.usage.prompt_tokens
        tokens_output = response.usage.completion_tokens

        logger.info(
            f"Generated response: model={model}, "
            f"input_tokens={tokens_input}, output_tokens={tokens_output}, "
            f"latency={latency_ms}ms"
        )

        return LLMResponse(
            text=text.strip(),
            tokens_input=tokens_input,
            tokens_output=tokens_output,
            latency_ms=latency_ms,
            model_used=model
        )

    @staticmethod
    def _error(
        code: str,
        message: str,
        model: str,
        start_time: float,
        original: Exception,
        **details
    ) -> GenerationServiceError:
        latency_ms = int((time.time() - start_time) * 1000)
        details.update({
            "model": model,
            "latency_ms": latency_ms,
            "original_error": str(original)
        })
        logger.error(
            f"{code}: model={model}, latency={latency_ms}ms, error={original}",
            exc_info=True,
            extra={"error_code": code, "error_details": details}
        )
        return GenerationServiceError(message, code=code, details=details)

    @staticmethod
    def build_prompt(
        query: str,
        retrieved_chunks: List[str],
        fallback_answer: str = FALLBACK_ANSWER,
        max_lines: int = MAX_ANSWER_LINES
    ) -> str:
        """
        Build the augmented prompt: instruction header, context, question.

        Args:
            query: User question
            retrieved_chunks: Retrieved chunk texts, most relevant first
            fallback_answer: Exact reply required when the context is insufficient
            max_lines: Maximum answer length in lines

        Returns:
            Complete prompt string
        """
        context_text = "\n\n".join(retrieved_chunks)

        prompt = f"""You are an assistant that answers ONLY from the content given in the CONTEXT.

MANDATORY RULES:
- Use only information that is explicitly stated in the context.
- Do NOT use prior or external knowledge.
- Do NOT make inferences or fill in missing information.
- If the answer is not clearly in the context, reply exactly:
  "{fallback_answer}"
- Answer in at most {max_lines} lines.

CONTEXT:
{context_text}

QUESTION:
{query}

ANSWER:"""

        return prompt
