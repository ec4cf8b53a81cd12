# src/content_pipeline/models.py

from typing import Dict, List, Literal, Optional
from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field


class GenerationState(str, Enum):
    """States of the word-count compliance state machine"""
    DRAFTING = "drafting"
    EVALUATING = "evaluating"
    RETRYING = "retrying"
    ACCEPTED = "accepted"
    ACCEPTED_BEST_EFFORT = "accepted_best_effort"
    FAILED = "failed"


class SearchHit(BaseModel):
    """Normalized search provider result"""
    model_config = ConfigDict(frozen=True)

    title: str = ""
    url: str
    snippet: str = ""
    published_date: Optional[datetime] = None
    content: Optional[str] = None
    rank_score: Optional[int] = None


class ResearchSummary(BaseModel):
    """Attributed insights extracted from one web source"""
    model_config = ConfigDict(frozen=True)

    title: str
    url: str
    key_points: List[str] = Field(default_factory=list)
    expert_quotes: List[str] = Field(default_factory=list)
    data_points: List[str] = Field(default_factory=list)
    relevance_score: int = Field(ge=0, le=100)
    source_authority: Literal["high", "medium", "low"]
    publication_date: Optional[str] = None


class ContentDraft(BaseModel):
    """Generated content with derived metrics"""
    model_config = ConfigDict(frozen=True)

    title: str
    content: str
    word_count: int = Field(ge=0)
    reading_time: int = Field(ge=0)
    keywords: List[str] = Field(default_factory=list)
    meta_description: str = ""
    seo_score: int = Field(default=0, ge=0, le=100)
    target_word_count: Optional[int] = None
    generation_state: GenerationState = GenerationState.ACCEPTED


class InternalLink(BaseModel):
    """Internal link opportunity for a target keyword"""
    model_config = ConfigDict(frozen=True)

    text: str
    url: str
    relevance: int = Field(ge=0, le=100)


class SEORecommendation(BaseModel):
    """Single prioritized optimization suggestion"""
    model_config = ConfigDict(frozen=True)

    type: Literal["keyword", "readability", "links", "structure"]
    priority: Literal["high", "medium", "low"]
    message: str
    suggestion: str
    current_value: float
    target_value: float


class SEOAnalysis(BaseModel):
    """Deterministic SEO and readability analysis of a text"""
    model_config = ConfigDict(frozen=True)

    keyword_density: Dict[str, float] = Field(default_factory=dict)
    readability_score: int
    internal_links: List[InternalLink] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)
    recommendations: List[SEORecommendation] = Field(default_factory=list)
    seo_score: int = Field(ge=0, le=100)
