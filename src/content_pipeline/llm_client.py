# src/content_pipeline/llm_client.py
"""
Thin wrapper around the OpenAI chat completions API.

Every call carries an explicit timeout and passes through a bounded
semaphore, so fan-out stages cannot flood the provider. Failures of any
kind surface as LLMError.
"""
import time
import logging
import threading
from typing import Any, Dict, List, Optional

from openai import OpenAI, OpenAIError

from .exceptions import ConfigurationError, LLMError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"


class LLMClient:
    """Rate-bounded, timeout-bounded access to a text-generation model"""

    def __init__(self,
                 api_key: Optional[str] = None,
                 model: str = DEFAULT_MODEL,
                 timeout: float = 60.0,
                 max_concurrency: int = 4,
                 client: Optional[Any] = None):
        """
        Args:
            api_key: OpenAI API key (required unless client is given)
            model: Default model for calls that do not name one
            timeout: Per-call timeout in seconds
            max_concurrency: Maximum simultaneous in-flight calls
            client: Pre-built OpenAI-compatible client
        """
        self.model = model
        self.timeout = timeout
        self._semaphore = threading.BoundedSemaphore(max_concurrency)

        if client is not None:
            self.client = client
            return

        if not api_key:
            raise ConfigurationError("OPENAI_API_KEY is not set")
        try:
            self.client = OpenAI(api_key=api_key, timeout=timeout, max_retries=1)
        except OpenAIError as e:
            raise ConfigurationError(f"Failed to initialize OpenAI client: {str(e)}")
        logger.info("OpenAI client initialized successfully.")

    def complete(self,
                 prompt: str,
                 *,
                 model: Optional[str] = None,
                 system: Optional[str] = None,
                 temperature: float = 0.7,
                 max_tokens: int = 2000,
                 json_mode: bool = False,
                 caller: str = "") -> str:
        """
        Send a single prompt and return the response text.

        Raises:
            LLMError: On any API failure, timeout or empty response
        """
        model = model or self.model
        messages: List[Dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        request: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "timeout": self.timeout,
        }
        if json_mode:
            request["response_format"] = {"type": "json_object"}

        start = time.monotonic()
        with self._semaphore:
            try:
                completion = self.client.chat.completions.create(**request)
            except OpenAIError as e:
                duration_ms = int((time.monotonic() - start) * 1000)
                logger.error(f"LLM call failed: model={model} caller={caller} duration_ms={duration_ms} error={e}")
                raise LLMError(f"Model call failed: {str(e)}") from e

        duration_ms = int((time.monotonic() - start) * 1000)
        usage = getattr(completion, "usage", None)
        logger.info(
            f"LLM call: model={model} caller={caller} "
            f"input_tokens={getattr(usage, 'prompt_tokens', 0) or 0} "
            f"output_tokens={getattr(usage, 'completion_tokens', 0) or 0} "
            f"duration_ms={duration_ms}"
        )

        choices = getattr(completion, "choices", None) or []
        content = choices[0].message.content if choices else None
        if not content:
            raise LLMError(f"Model returned an empty response (caller: {caller})")
        return content
