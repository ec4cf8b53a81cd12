# src/content_pipeline/research.py
"""
Research orchestration: plan queries, search in parallel, rank, summarize.

Results are memoized per (topic, keywords) in the research cache. Upstream
failures never escape; an empty list means "proceed without grounding data".
"""
from typing import Any, Dict, List, Optional, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from urllib.parse import urlparse, urlunparse
import logging
import math

from pydantic import BaseModel, Field, ValidationError, field_validator

from .config import PipelineConfig, ResearchFailurePolicy
from .exceptions import LLMError, SearchError
from .extractor import FALLBACK_RESEARCH_SCHEMA, Ok, extract
from .llm_client import LLMClient
from .models import ResearchSummary, SearchHit
from .query_planner import QueryPlanner
from .research_cache import ResearchCache
from .search_client import SearchClient
from .source_ranker import SourceRanker
from .summarizer import AttributionSummarizer, clamp_relevance, string_list

logger = logging.getLogger(__name__)

FALLBACK_SUMMARY_COUNT = 3
DEFAULT_BACKGROUND_RELEVANCE = 50.0


class BackgroundPayload(BaseModel):
    """One item of the model's unsourced background answer"""
    title: str = Field(min_length=1)
    key_points: List[str] = Field(default_factory=list)
    relevance_score: float = Field(default=DEFAULT_BACKGROUND_RELEVANCE, allow_inf_nan=False)

    @field_validator("title", mode="before")
    @classmethod
    def strip_title(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("key_points", mode="before")
    @classmethod
    def keep_strings(cls, value: Any) -> List[str]:
        return string_list(value)

    @field_validator("relevance_score", mode="before")
    @classmethod
    def default_unusable_score(cls, value: Any) -> Any:
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            return DEFAULT_BACKGROUND_RELEVANCE
        return value


def normalize_url(url: str) -> str:
    """Canonical form used to detect the same page found by several queries"""
    parsed = urlparse(url.strip())
    host = (parsed.hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    path = parsed.path.rstrip("/")
    return urlunparse((parsed.scheme.lower(), host, path, "", parsed.query, ""))


def dedupe_hits(hits: Sequence[SearchHit]) -> List[SearchHit]:
    """Drop repeated URLs, keeping the first discovery"""
    seen = set()
    unique = []
    for hit in hits:
        key = normalize_url(hit.url)
        if key in seen:
            continue
        seen.add(key)
        unique.append(hit)
    return unique


class _EmptyResearch(Exception):
    """Signals that a research run produced nothing worth caching"""

    def __init__(self, summaries: List[ResearchSummary]):
        super().__init__("research produced no grounded summaries")
        self.summaries = summaries


class ResearchPipeline:
    """Search-backed research with caching and a configurable failure policy"""

    def __init__(self,
                 search_client: SearchClient,
                 summarizer: AttributionSummarizer,
                 cache: Optional[ResearchCache] = None,
                 planner: Optional[QueryPlanner] = None,
                 ranker: Optional[SourceRanker] = None,
                 config: Optional[PipelineConfig] = None,
                 llm: Optional[LLMClient] = None):
        self.config = config or PipelineConfig()
        self.search_client = search_client
        self.summarizer = summarizer
        self.cache = cache or ResearchCache(
            ttl_seconds=self.config.cache_ttl_seconds,
            max_entries=self.config.cache_max_entries,
            single_flight=self.config.single_flight,
        )
        self.planner = planner or QueryPlanner()
        self.ranker = ranker or SourceRanker()
        self.llm = llm

    def research(self, topic: str, keywords: Optional[Sequence[str]] = None) -> List[ResearchSummary]:
        """
        Research a topic.

        Args:
            topic: Subject to research
            keywords: Optional keywords used to focus queries

        Returns:
            Up to max_summaries summaries, best first. May be empty.
        """
        keywords = list(keywords or [])
        key = ResearchCache.make_key(topic, keywords)
        logger.info(f"\nInitiating research for: {topic}")

        try:
            return self.cache.get_or_compute(key, lambda: self._run_or_signal_empty(topic, keywords))
        except _EmptyResearch as empty:
            return empty.summaries
        except Exception as e:
            logger.error(f"Research failed for '{topic}': {str(e)}")
            return []

    def _run_or_signal_empty(self, topic: str, keywords: List[str]) -> List[ResearchSummary]:
        summaries = self.run_uncached(topic, keywords)
        if summaries:
            return summaries
        # Fallback output is never cached, so it travels out of the cache as an exception
        raise _EmptyResearch(self._handle_research_failure(topic))

    def run_uncached(self, topic: str, keywords: Sequence[str]) -> List[ResearchSummary]:
        """Plan, search, rank and summarize without touching the cache"""
        queries = self.planner.plan(topic, keywords)
        if not queries:
            logger.warning("No search queries could be planned")
            return []

        hits = self.search_all(queries)
        unique_hits = dedupe_hits(hits)
        logger.info(f"Collected {len(hits)} hits, {len(unique_hits)} unique")

        ranked = self.ranker.rank(unique_hits, topic)
        if not ranked:
            logger.warning(f"No sources passed ranking for: {topic}")
            return []

        summaries = self.summarizer.summarize_many(ranked, topic)
        return summaries[:self.config.max_summaries]

    def search_all(self, queries: Sequence[str]) -> List[SearchHit]:
        """
        Dispatch every query concurrently and wait for all of them.

        A failed query contributes nothing. Hits keep query order so that
        discovery order is reproducible.
        """
        per_query: Dict[int, List[SearchHit]] = {}
        workers = min(self.config.max_search_concurrency, len(queries))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            future_to_index = {
                executor.submit(self.search_client.search, query, self.config.search_results_per_query): index
                for index, query in enumerate(queries)
            }
            for future in as_completed(future_to_index):
                index = future_to_index[future]
                try:
                    per_query[index] = future.result()
                except SearchError as e:
                    logger.warning(f"Dropping query '{queries[index]}': {e}")
                except Exception as e:
                    logger.error(f"Unexpected error searching '{queries[index]}': {str(e)}")

        failed = len(queries) - len(per_query)
        if failed:
            logger.info(f"{failed} of {len(queries)} queries failed")
        return [hit for index in sorted(per_query) for hit in per_query[index]]

    def _handle_research_failure(self, topic: str) -> List[ResearchSummary]:
        policy = self.config.on_research_failure
        if policy == ResearchFailurePolicy.MODEL_FALLBACK:
            return self.model_fallback(topic)
        logger.warning(f"Research returned no sources for '{topic}'; proceeding without research data")
        return []

    def model_fallback(self, topic: str) -> List[ResearchSummary]:
        """
        Ask the model for general background on the topic.

        The result carries no source: every summary is marked low authority
        with an empty URL.
        """
        if self.llm is None:
            logger.warning("Model fallback requested but no LLM client is configured")
            return []

        prompt = f"""Provide general background knowledge about "{topic}" for a content writer.

Do not cite sources, name publications or invent statistics. State only widely accepted facts.

Return valid JSON only, in this shape:
{{
  "summaries": [
    {{
      "title": "Short title for one aspect of the topic",
      "key_points": ["General, widely accepted point"],
      "relevance_score": 50
    }}
  ]
}}

Return at most {FALLBACK_SUMMARY_COUNT} summaries."""

        try:
            raw = self.llm.complete(
                prompt,
                model=self.config.summary_model,
                temperature=0.3,
                max_tokens=1200,
                json_mode=True,
                caller="research_fallback",
            )
        except LLMError as e:
            logger.warning(f"Model fallback failed: {e}")
            return []

        result = extract(raw, FALLBACK_RESEARCH_SCHEMA)
        if not isinstance(result, Ok):
            logger.warning("Model fallback returned unusable output")
            return []

        summaries = []
        for item in result.value["summaries"][:FALLBACK_SUMMARY_COUNT]:
            summary = self._fallback_summary(item)
            if summary is not None:
                summaries.append(summary)
        logger.warning(f"Using {len(summaries)} model-generated background summaries for '{topic}'")
        return summaries

    @staticmethod
    def _fallback_summary(item: Any) -> Optional[ResearchSummary]:
        try:
            payload = BackgroundPayload.model_validate(item)
        except ValidationError as e:
            logger.debug(f"Skipping background item: {e.error_count()} validation errors")
            return None
        return ResearchSummary(
            title=payload.title,
            url="",
            key_points=payload.key_points,
            relevance_score=clamp_relevance(payload.relevance_score),
            source_authority="low",
        )
