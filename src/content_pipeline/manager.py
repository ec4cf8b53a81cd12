# src/content_pipeline/manager.py
"""
Content pipeline manager.
Wires the search provider, the language model, research caching, generation
and SEO scoring together and exposes the operations the surrounding
application calls.
"""
from typing import List, Optional, Sequence, Tuple
import logging

from .config import PipelineConfig
from .exceptions import ConfigurationError
from .generator import GenerationController
from .llm_client import LLMClient
from .logging_config import setup_logging
from .models import ContentDraft, ResearchSummary, SEOAnalysis
from .research import ResearchPipeline
from .research_cache import ResearchCache
from .search_client import SearchClient, SearchConfig
from .seo_scorer import SEOScorer
from .summarizer import AttributionSummarizer

logger = logging.getLogger(__name__)


class ContentManager:
    """Manages the content synthesis process end-to-end"""

    def __init__(self,
                 config: Optional[PipelineConfig] = None,
                 llm: Optional[LLMClient] = None,
                 search_client: Optional[SearchClient] = None,
                 cache: Optional[ResearchCache] = None):
        """
        Args:
            config: Pipeline configuration (defaults are used when omitted)
            llm: Pre-built model client
            search_client: Pre-built search client
            cache: Shared research cache

        Raises:
            ConfigurationError: If configuration is invalid or API keys are missing
        """
        self.config = config or PipelineConfig()
        self.config.validate()

        try:
            self.llm = llm or LLMClient(
                api_key=self.config.openai_api_key,
                model=self.config.generation_model,
                timeout=self.config.llm_timeout,
                max_concurrency=self.config.max_llm_concurrency,
            )
            self.search_client = search_client or SearchClient(
                api_key=self.config.tavily_api_key,
                config=SearchConfig(timeout=self.config.search_timeout),
                max_concurrency=self.config.max_search_concurrency,
            )
        except ConfigurationError:
            raise
        except Exception as e:
            logger.error(f"Failed to initialize ContentManager: {str(e)}")
            raise ConfigurationError(f"Manager initialization failed: {str(e)}")

        self.scorer = SEOScorer(self.config.seo_thresholds)
        self.research_pipeline = ResearchPipeline(
            search_client=self.search_client,
            summarizer=AttributionSummarizer(
                self.llm,
                model=self.config.summary_model,
                max_workers=self.config.max_llm_concurrency,
            ),
            cache=cache,
            config=self.config,
            llm=self.llm,
        )
        self.generator = GenerationController(
            self.llm,
            scorer=self.scorer,
            model=self.config.generation_model,
            meta_model=self.config.meta_model,
        )
        logger.info("ContentManager initialized successfully")

    @classmethod
    def from_env(cls) -> "ContentManager":
        """Configure logging and build a manager from environment variables"""
        setup_logging()
        return cls(PipelineConfig.from_env())

    @property
    def cache(self) -> ResearchCache:
        return self.research_pipeline.cache

    def research(self, topic: str, keywords: Optional[Sequence[str]] = None) -> List[ResearchSummary]:
        """
        Research a topic.

        An empty list means "proceed without grounding data", not an error.
        """
        return self.research_pipeline.research(topic, keywords)

    def generate(self,
                 topic: str,
                 content_type: str,
                 audience: str,
                 tone: str,
                 purpose: str,
                 research: Sequence[ResearchSummary],
                 target_word_count: int,
                 keywords: Optional[Sequence[str]] = None) -> Optional[ContentDraft]:
        """
        Generate a draft, with the optional SEO rewrite pass when enabled.

        Returns:
            ContentDraft, or None on total generation failure
        """
        draft = self.generator.generate(
            topic, content_type, audience, tone, purpose, research, target_word_count, keywords
        )
        if draft is not None and self.config.seo_optimization_pass:
            draft = self.generator.optimize_for_seo(draft, list(keywords or []))
        return draft

    def analyze(self,
                content: str,
                target_keywords: Sequence[str],
                existing_internal_urls: Optional[Sequence[str]] = None) -> SEOAnalysis:
        return self.scorer.analyze(content, target_keywords, existing_internal_urls)

    def create_content(self,
                       topic: str,
                       keywords: Optional[Sequence[str]] = None,
                       target_word_count: int = 1000,
                       content_type: str = "blog",
                       audience: str = "general",
                       tone: str = "professional",
                       purpose: str = "informational",
                       existing_internal_urls: Optional[Sequence[str]] = None
                       ) -> Optional[Tuple[ContentDraft, SEOAnalysis]]:
        """
        Run research, generation and analysis for one topic.

        Returns:
            The draft and its SEO analysis, or None when generation failed
        """
        keywords = list(keywords or [])
        logger.info(f"Creating {content_type} for: {topic}")

        research = self.research(topic, keywords)
        if not research:
            logger.info("No research data available, generating from general knowledge")

        draft = self.generate(topic, content_type, audience, tone, purpose, research, target_word_count, keywords)
        if draft is None:
            logger.error(f"Content generation failed for: {topic}")
            return None

        analysis = self.analyze(draft.content, keywords, existing_internal_urls)
        logger.info(
            f"Content created: {draft.word_count} words, SEO score {analysis.seo_score}, "
            f"{len(research)} sources"
        )
        return draft, analysis
