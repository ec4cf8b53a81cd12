# src/content_pipeline/query_planner.py
"""
Search query planning for a topic and optional keyword list.
"""
from typing import Dict, List, Optional, Sequence, Tuple
import logging

from .utils import normalize_whitespace

logger = logging.getLogger(__name__)

MAX_QUERIES = 15

BASE_TEMPLATES: Tuple[str, ...] = (
    "{topic} trends",
    "{topic} best practices",
    "{topic} industry insights",
    "{topic} guide",
    "{topic} tips",
    "{topic} strategies",
    "{topic} examples",
)

# Concept -> (trigger substrings, focused query templates)
CONCEPT_VOCABULARY: Dict[str, Tuple[Tuple[str, ...], Tuple[str, ...]]] = {
    "health": (
        ("health", "medical", "clinical", "wellness", "nutrition", "fitness", "disease"),
        ("{topic} clinical guidelines", "{topic} treatment outcomes"),
    ),
    "scientific": (
        ("research", "science", "scientific", "study", "biology", "physics", "climate"),
        ("{topic} systematic review", "{topic} research study"),
    ),
    "news": (
        ("news", "policy", "election", "regulation", "economy", "stock market"),
        ("{topic} latest news", "{topic} recent updates"),
    ),
    "technology": (
        ("software", "cloud", "artificial intelligence", "machine learning", "cybersecurity",
         "technology", "data", "automation", "blockchain"),
        ("{topic} tools", "{topic} implementation"),
    ),
    "business": (
        ("marketing", "sales", "business", "startup", "finance", "seo", "ecommerce", "management"),
        ("{topic} case study", "{topic} statistics"),
    ),
}


class QueryPlanner:
    """Derives a bounded, ordered set of search queries for a topic"""

    def __init__(self, max_queries: int = MAX_QUERIES):
        self.max_queries = max_queries

    @staticmethod
    def extract_concepts(topic: str) -> List[str]:
        """
        Coarse concept extraction by substring match against a small vocabulary.

        Example:
            >>> QueryPlanner.extract_concepts("Content marketing for health startups")
            ['health', 'business']
        """
        topic_lower = normalize_whitespace(topic).lower()
        return [
            concept
            for concept, (triggers, _) in CONCEPT_VOCABULARY.items()
            if any(trigger in topic_lower for trigger in triggers)
        ]

    def plan(self, topic: str, keywords: Optional[Sequence[str]] = None) -> List[str]:
        """
        Build the search query list.

        Args:
            topic: Research topic
            keywords: Optional keywords, each combined with the topic

        Returns:
            Deduplicated queries in a stable order, capped at max_queries
        """
        topic = normalize_whitespace(topic)
        if not topic:
            return []

        candidates = [template.format(topic=topic) for template in BASE_TEMPLATES]

        for keyword in keywords or []:
            keyword = normalize_whitespace(keyword)
            if keyword:
                candidates.append(f"{topic} {keyword}")

        for concept in self.extract_concepts(topic):
            _, templates = CONCEPT_VOCABULARY[concept]
            candidates.extend(template.format(topic=topic) for template in templates)

        queries = []
        seen = set()
        for query in candidates:
            query = normalize_whitespace(query)
            marker = query.lower()
            if marker in seen:
                continue
            seen.add(marker)
            queries.append(query)
            if len(queries) >= self.max_queries:
                break

        logger.debug(f"Planned {len(queries)} queries for topic: {topic}")
        return queries
