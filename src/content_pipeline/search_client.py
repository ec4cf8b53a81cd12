# src/content_pipeline/search_client.py
"""
Tavily search client returning normalized search hits.
"""
from typing import Any, List, Optional
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
import logging
import threading

from pydantic import ValidationError
from tavily import TavilyClient

from .exceptions import ConfigurationError, SearchError
from .models import SearchHit
from .utils import retry

logger = logging.getLogger(__name__)

SEARCH_ATTEMPTS = 2
SEARCH_RETRY_DELAY = 0.5


def parse_published_date(value: Any) -> Optional[datetime]:
    """Parse ISO-8601 or RFC 2822 dates; anything else is treated as unknown"""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        try:
            parsed = parsedate_to_datetime(text)
        except (TypeError, ValueError):
            logger.debug(f"Unrecognized published date: {text}")
            return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class SearchConfig:
    """Configuration for Tavily search parameters"""
    def __init__(
        self,
        search_depth: str = "basic",
        topic: str = "general",
        include_raw_content: bool = False,
        timeout: float = 30.0
    ):
        self.search_depth = search_depth
        self.topic = topic
        self.include_raw_content = include_raw_content
        self.timeout = timeout


class SearchClient:
    """Search provider access with bounded concurrency and per-call timeouts"""

    def __init__(self,
                 api_key: Optional[str] = None,
                 config: Optional[SearchConfig] = None,
                 max_concurrency: int = 5,
                 client: Optional[Any] = None):
        self.config = config or SearchConfig()
        self._semaphore = threading.BoundedSemaphore(max_concurrency)

        if client is not None:
            self.tavily_client = client
            return

        if not api_key:
            raise ConfigurationError("TAVILY_API_KEY is not set")
        try:
            self.tavily_client = TavilyClient(api_key=api_key)
        except Exception as e:
            raise ConfigurationError(f"Failed to initialize Tavily client: {str(e)}")
        logger.info("Tavily client initialized")

    @staticmethod
    def _process_search_response(response: Any) -> List[SearchHit]:
        """
        Convert a Tavily response into search hits.

        Entries without a URL or with fields of the wrong type are skipped.

        Raises:
            SearchError: When the response itself is not a result mapping
        """
        if not isinstance(response, dict):
            raise SearchError(f"Unexpected search response type: {type(response).__name__}")
        results = response.get('results') or []
        if not isinstance(results, list):
            raise SearchError(f"Unexpected search results type: {type(results).__name__}")

        hits = []
        for result in results:
            if not isinstance(result, dict):
                logger.debug(f"Skipping non-object search result: {result!r}")
                continue
            url = result.get('url')
            if not isinstance(url, str) or not url.strip():
                continue
            try:
                hits.append(SearchHit(
                    title=result.get('title') or '',
                    url=url.strip(),
                    snippet=result.get('content') or '',
                    published_date=parse_published_date(result.get('published_date')),
                    content=result.get('raw_content'),
                ))
            except ValidationError as e:
                logger.warning(f"Skipping malformed search result {url}: {e.error_count()} validation errors")
        return hits

    @retry(max_attempts=SEARCH_ATTEMPTS, delay=SEARCH_RETRY_DELAY, exceptions=(SearchError,))
    def search(self, query: str, result_count: int = 3) -> List[SearchHit]:
        """
        Run one search query.

        Args:
            query: Search query
            result_count: Maximum number of results requested

        Returns:
            Normalized hits in provider order (possibly empty)

        Raises:
            SearchError: When the provider call fails or times out
        """
        logger.info(f"Performing search for: {query}")
        with self._semaphore:
            try:
                response = self.tavily_client.search(
                    query=query,
                    max_results=result_count,
                    search_depth=self.config.search_depth,
                    topic=self.config.topic,
                    include_raw_content=self.config.include_raw_content,
                    timeout=self.config.timeout,
                )
            except Exception as e:
                logger.error(f"Search failed: {str(e)}")
                raise SearchError(f"Search operation failed: {str(e)}") from e

        hits = self._process_search_response({} if response is None else response)
        logger.info(f"Found {len(hits)} results for: {query}")
        return hits
