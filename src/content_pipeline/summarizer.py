# src/content_pipeline/summarizer.py

from typing import Any, List, Literal, Optional, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
import logging

from pydantic import BaseModel, Field, ValidationError, field_validator

from .exceptions import LLMError
from .extractor import RESEARCH_SUMMARY_SCHEMA, InvalidSchema, Malformed, Ok, extract
from .llm_client import LLMClient
from .models import ResearchSummary, SearchHit
from .utils import truncate_to_tokens

logger = logging.getLogger(__name__)

MAX_SOURCE_TOKENS = 3000
MAX_ITEMS_PER_LIST = 5

SUMMARY_SYSTEM_PROMPT = (
    "You are a senior content strategist and research analyst. You only report "
    "what the supplied source says and never invent facts, quotes or numbers."
)


def string_list(value: Any) -> List[str]:
    """Keep the non-empty strings of a model-supplied list"""
    if not isinstance(value, list):
        return []
    items = [item.strip() for item in value if isinstance(item, str) and item.strip()]
    return items[:MAX_ITEMS_PER_LIST]


def clamp_relevance(value: float) -> int:
    return max(0, min(100, int(round(value))))


class SummaryPayload(BaseModel):
    """Schema for the summary the model returns for one source"""
    title: str = Field(min_length=1, description="Concise title of the main insight")
    key_points: List[str] = Field(default_factory=list, description="Attributed insights")
    expert_quotes: List[str] = Field(default_factory=list, description="Quotes with speaker attribution")
    data_points: List[str] = Field(default_factory=list, description="Statistics with source attribution")
    relevance_score: float = Field(allow_inf_nan=False, description="Relevance to the topic, 0-100")
    source_authority: Literal["high", "medium", "low"]

    @field_validator("title", mode="before")
    @classmethod
    def strip_title(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("key_points", "expert_quotes", "data_points", mode="before")
    @classmethod
    def keep_strings(cls, value: Any) -> List[str]:
        return string_list(value)

    @field_validator("source_authority", mode="before")
    @classmethod
    def normalize_tier(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @property
    def relevance(self) -> int:
        return clamp_relevance(self.relevance_score)


class AttributionSummarizer:
    """Turns a ranked source into an attributed ResearchSummary"""

    def __init__(self, llm: LLMClient, model: Optional[str] = None, max_workers: int = 4):
        self.llm = llm
        self.model = model
        self.max_workers = max_workers

    def build_prompt(self, source: SearchHit, topic: str) -> str:
        source_text = source.snippet or ""
        if source.content:
            source_text = f"{source_text}\n\n{source.content}".strip()
        source_text = truncate_to_tokens(source_text, MAX_SOURCE_TOKENS) or "No content available"

        return f"""Extract the most valuable insights from the search result below and create a well-attributed summary.

CONTEXT:
- Topic: {topic}
- Source: {source.title or 'Unknown'}
- URL: {source.url}

SOURCE CONTENT:
{source_text}

INSTRUCTIONS:
1. Identify the 3-5 most valuable insights related to {topic}
2. Extract specific data points, statistics, or expert quotes with proper attribution
3. Use ONLY information present in the source content above; leave a list empty rather than guessing
4. Rate the relevance of this source to the topic (0-100)
5. Rate the authority of the source as "high", "medium" or "low"

REQUIRED OUTPUT FORMAT (valid JSON only):
{{
  "title": "Concise title summarizing the main insight",
  "key_points": ["Specific insight with attribution (e.g. 'According to [Source], ...')"],
  "expert_quotes": ["Expert quote with speaker attribution"],
  "data_points": ["Statistic with source attribution"],
  "relevance_score": 85,
  "source_authority": "high|medium|low"
}}"""

    def summarize(self, source: SearchHit, topic: str) -> Optional[ResearchSummary]:
        """
        Summarize one source.

        Returns:
            The summary, or None when the model fails or its output cannot be
            used. A dropped source is never replaced with invented content.
        """
        try:
            raw = self.llm.complete(
                self.build_prompt(source, topic),
                model=self.model,
                system=SUMMARY_SYSTEM_PROMPT,
                temperature=0.2,
                max_tokens=1200,
                json_mode=True,
                caller="summarizer",
            )
        except LLMError as e:
            logger.warning(f"Dropping source {source.url}: {e}")
            return None

        result = extract(raw, RESEARCH_SUMMARY_SCHEMA)
        if isinstance(result, Malformed):
            logger.warning(f"Dropping source {source.url}: malformed summary output")
            return None
        elif isinstance(result, InvalidSchema):
            logger.warning(f"Dropping source {source.url}: summary missing {list(result.missing_fields)}")
            return None
        elif isinstance(result, Ok):
            try:
                payload = SummaryPayload.model_validate(result.value)
            except ValidationError as e:
                logger.warning(f"Dropping source {source.url}: invalid summary output ({e.error_count()} errors)")
                return None
        else:
            logger.error(f"Dropping source {source.url}: unexpected extraction result {type(result).__name__}")
            return None

        summary = ResearchSummary(
            title=payload.title,
            url=source.url,
            key_points=payload.key_points,
            expert_quotes=payload.expert_quotes,
            data_points=payload.data_points,
            relevance_score=payload.relevance,
            source_authority=payload.source_authority,
            publication_date=source.published_date.date().isoformat() if source.published_date else None,
        )
        logger.info(f"Successfully summarized source: {source.url}")
        return summary

    def summarize_many(self, sources: Sequence[SearchHit], topic: str) -> List[ResearchSummary]:
        """
        Summarize sources in parallel using ThreadPoolExecutor.

        Failed sources are dropped. Results are ordered by relevance, with
        ties kept in source order.
        """
        if not sources:
            return []

        results: List[Optional[ResearchSummary]] = [None] * len(sources)
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(sources))) as executor:
            future_to_index = {
                executor.submit(self.summarize, source, topic): index
                for index, source in enumerate(sources)
            }
            for future in as_completed(future_to_index):
                index = future_to_index[future]
                try:
                    results[index] = future.result()
                except Exception as e:
                    logger.error(f"Error summarizing '{sources[index].url}': {e}")

        summaries = [summary for summary in results if summary is not None]
        summaries.sort(key=lambda s: s.relevance_score, reverse=True)

        logger.info(f"Summarization completed. Successful: {len(summaries)}, Dropped: {len(sources) - len(summaries)}")
        return summaries
