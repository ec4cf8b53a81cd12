import math
import time
import logging
from functools import wraps
from typing import Callable, List, Tuple, Type, TypeVar, ParamSpec

import tiktoken

logger = logging.getLogger(__name__)

P = ParamSpec('P')
T = TypeVar('T')

WORDS_PER_MINUTE = 200
TOKEN_ENCODING_MODEL = "gpt-4o-mini"


def retry(max_attempts: int = 3,
          delay: float = 1.0,
          exceptions: Tuple[Type[BaseException], ...] = (Exception,)) -> Callable:
    """
    Retry decorator for handling transient API errors

    Args:
        max_attempts: Maximum number of attempts
        delay: Delay between retries in seconds
        exceptions: Exception types that trigger another attempt

    Returns:
        Decorated function
    """
    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            attempts = 0
            while True:
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    attempts += 1
                    if attempts >= max_attempts:
                        logger.error(f"Failed after {max_attempts} attempts: {str(e)}")
                        raise

                    logger.warning(f"Attempt {attempts} failed: {str(e)}. Retrying...")
                    time.sleep(delay * attempts)  # Linear backoff
        return wrapper
    return decorator


def normalize_whitespace(text: str) -> str:
    """Collapse runs of whitespace into single spaces and trim the ends."""
    return " ".join((text or "").split())


def count_words(text: str) -> int:
    """Count whitespace-delimited tokens. Model-reported counts are never used."""
    return len((text or "").split())


def calculate_reading_time(text: str) -> int:
    """Reading time in whole minutes at 200 words per minute."""
    return math.ceil(count_words(text) / WORDS_PER_MINUTE)


def _get_encoding():
    return tiktoken.encoding_for_model(TOKEN_ENCODING_MODEL)


def split_content_chunks(content: str, max_tokens: int = 4000) -> List[str]:
    """
    Split content into manageable chunks for LLM based on actual token count

    Args:
        content: Content to split
        max_tokens: Maximum tokens per chunk

    Returns:
        List of content chunks
    """
    # Handle empty content edge case
    if not content:
        return [""]

    encoding = _get_encoding()
    tokens = encoding.encode(content)
    return [
        encoding.decode(tokens[start:start + max_tokens])
        for start in range(0, len(tokens), max_tokens)
    ]


def truncate_to_tokens(content: str, max_tokens: int) -> str:
    """
    Trim content to at most max_tokens tokens.

    A token is never shorter than one character, so text with no more
    characters than the budget is returned without encoding it.
    """
    if not content or len(content) <= max_tokens:
        return content or ""
    return split_content_chunks(content, max_tokens)[0]
