# conftest.py
"""
Shared fixtures. External collaborators are always mocked.
"""
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from src.content_pipeline.llm_client import LLMClient
from src.content_pipeline.models import ResearchSummary, SearchHit
from src.content_pipeline.search_client import SearchClient

FIXED_NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def mock_llm():
    """LLM client double; set return_value or side_effect on mock_llm.complete"""
    return MagicMock(spec=LLMClient)


@pytest.fixture
def mock_search():
    return MagicMock(spec=SearchClient)


@pytest.fixture
def make_hit():
    def _make(url="https://example.com/article", title="Content marketing trends",
              snippet="Short snippet", days_old=None, content=None):
        published = FIXED_NOW - timedelta(days=days_old) if days_old is not None else None
        return SearchHit(title=title, url=url, snippet=snippet, published_date=published, content=content)
    return _make


@pytest.fixture
def make_summary():
    def _make(title="Insight", url="https://example.com/a", relevance=80, authority="high"):
        return ResearchSummary(
            title=title,
            url=url,
            key_points=[f"According to {title}, point one"],
            expert_quotes=[],
            data_points=[],
            relevance_score=relevance,
            source_authority=authority,
        )
    return _make


@pytest.fixture
def summary_json():
    def _make(title="Insight", relevance=80, authority="high", **extra):
        payload = {
            "title": title,
            "key_points": ["According to the source, demand is growing"],
            "expert_quotes": [],
            "data_points": ["42% of teams plan to increase spend"],
            "relevance_score": relevance,
            "source_authority": authority,
        }
        payload.update(extra)
        return json.dumps(payload)
    return _make
