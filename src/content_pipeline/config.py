# src/content_pipeline/config.py
"""
Pipeline configuration loaded from the environment (and a local .env file).
"""
import os
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from dotenv import load_dotenv

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class ResearchFailurePolicy(str, Enum):
    """What research returns when no grounded source survives"""
    PROPAGATE_EMPTY = "propagate_empty"
    MODEL_FALLBACK = "model_fallback"


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {value!r}")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class SEOThresholds:
    """Bands used by the SEO scorer"""
    min_keyword_density: float = 0.5
    max_keyword_density: float = 2.5
    readability_target: float = 60.0


@dataclass
class PipelineConfig:
    """Configuration for the content synthesis pipeline"""
    openai_api_key: Optional[str] = None
    tavily_api_key: Optional[str] = None

    generation_model: str = "gpt-4o"
    summary_model: str = "gpt-4o-mini"
    meta_model: str = "gpt-4o-mini"

    llm_timeout: float = 60.0
    search_timeout: float = 30.0
    max_llm_concurrency: int = 4
    max_search_concurrency: int = 5

    search_results_per_query: int = 3
    max_summaries: int = 5

    cache_ttl_seconds: float = 24 * 60 * 60
    cache_max_entries: int = 256
    single_flight: bool = True

    on_research_failure: ResearchFailurePolicy = ResearchFailurePolicy.PROPAGATE_EMPTY
    seo_thresholds: SEOThresholds = field(default_factory=SEOThresholds)
    seo_optimization_pass: bool = False

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        """Build configuration from environment variables"""
        load_dotenv()

        try:
            policy = ResearchFailurePolicy(
                os.getenv('ON_RESEARCH_FAILURE', ResearchFailurePolicy.PROPAGATE_EMPTY.value).strip().lower()
            )
        except ValueError:
            raise ConfigurationError(
                f"ON_RESEARCH_FAILURE must be one of "
                f"{[p.value for p in ResearchFailurePolicy]}, got {os.getenv('ON_RESEARCH_FAILURE')!r}"
            )

        config = cls(
            openai_api_key=os.getenv('OPENAI_API_KEY'),
            tavily_api_key=os.getenv('TAVILY_API_KEY'),
            generation_model=os.getenv('GENERATION_MODEL', cls.generation_model),
            summary_model=os.getenv('SUMMARY_MODEL', cls.summary_model),
            meta_model=os.getenv('META_MODEL', cls.meta_model),
            llm_timeout=_env_float('LLM_TIMEOUT', cls.llm_timeout),
            search_timeout=_env_float('SEARCH_TIMEOUT', cls.search_timeout),
            max_llm_concurrency=_env_int('MAX_LLM_CONCURRENCY', cls.max_llm_concurrency),
            max_search_concurrency=_env_int('MAX_SEARCH_CONCURRENCY', cls.max_search_concurrency),
            search_results_per_query=_env_int('SEARCH_RESULTS_PER_QUERY', cls.search_results_per_query),
            max_summaries=_env_int('MAX_SUMMARIES', cls.max_summaries),
            cache_ttl_seconds=_env_float('RESEARCH_CACHE_TTL', cls.cache_ttl_seconds),
            cache_max_entries=_env_int('RESEARCH_CACHE_MAX_ENTRIES', cls.cache_max_entries),
            single_flight=_env_bool('RESEARCH_SINGLE_FLIGHT', cls.single_flight),
            on_research_failure=policy,
            seo_thresholds=SEOThresholds(
                min_keyword_density=_env_float('MIN_KEYWORD_DENSITY', 0.5),
                max_keyword_density=_env_float('MAX_KEYWORD_DENSITY', 2.5),
                readability_target=_env_float('READABILITY_TARGET', 60.0),
            ),
            seo_optimization_pass=_env_bool('SEO_OPTIMIZATION_PASS', cls.seo_optimization_pass),
        )
        config.validate()
        logger.info(f"Configuration loaded (research failure policy: {config.on_research_failure.value})")
        return config

    def validate(self) -> None:
        """Raise ConfigurationError when a value is out of range"""
        positive = {
            'llm_timeout': self.llm_timeout,
            'search_timeout': self.search_timeout,
            'max_llm_concurrency': self.max_llm_concurrency,
            'max_search_concurrency': self.max_search_concurrency,
            'search_results_per_query': self.search_results_per_query,
            'max_summaries': self.max_summaries,
            'cache_ttl_seconds': self.cache_ttl_seconds,
            'cache_max_entries': self.cache_max_entries,
        }
        for name, value in positive.items():
            if value <= 0:
                raise ConfigurationError(f"{name} must be positive, got {value}")

        if not isinstance(self.on_research_failure, ResearchFailurePolicy):
            raise ConfigurationError(f"Unknown research failure policy: {self.on_research_failure!r}")

        thresholds = self.seo_thresholds
        if thresholds.min_keyword_density < 0 or thresholds.min_keyword_density > thresholds.max_keyword_density:
            raise ConfigurationError(
                f"Invalid keyword density band: "
                f"[{thresholds.min_keyword_density}, {thresholds.max_keyword_density}]"
            )
