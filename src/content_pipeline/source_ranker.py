# src/content_pipeline/source_ranker.py
"""
Deterministic scoring and filtering of raw search hits.
"""
import re
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence
from urllib.parse import urlparse

from .models import SearchHit

logger = logging.getLogger(__name__)

# Curated base authority (0-100) for well-known sources
DOMAIN_AUTHORITY: Dict[str, int] = {
    # Medical research
    "pubmed.ncbi.nlm.nih.gov": 95,
    "ncbi.nlm.nih.gov": 95,
    "medlineplus.gov": 90,
    "clinicaltrials.gov": 90,
    "bmj.com": 90,
    "thelancet.com": 95,
    "nejm.org": 95,
    "jamanetwork.com": 90,
    # Scientific journals
    "nature.com": 95,
    "science.org": 95,
    "sciencedirect.com": 85,
    "springer.com": 85,
    "wiley.com": 80,
    "frontiersin.org": 75,
    "cell.com": 90,
    "plos.org": 80,
    # Academic repositories
    "scholar.google.com": 80,
    "researchgate.net": 70,
    "academia.edu": 60,
    "arxiv.org": 80,
    "biorxiv.org": 70,
    "medrxiv.org": 70,
    "ssrn.com": 70,
    "semanticscholar.org": 75,
    # Health organizations
    "who.int": 95,
    "cdc.gov": 95,
    "nih.gov": 95,
    "mayoclinic.org": 90,
    "clevelandclinic.org": 85,
    "hopkinsmedicine.org": 85,
    "webmd.com": 70,
    "healthline.com": 70,
    # News and media
    "reuters.com": 90,
    "bloomberg.com": 85,
    "nytimes.com": 85,
    "bbc.com": 85,
    "theguardian.com": 80,
    "scientificamerican.com": 80,
    "newscientist.com": 75,
    "sciencedaily.com": 70,
    # Universities
    "harvard.edu": 95,
    "stanford.edu": 95,
    "mit.edu": 95,
    "ox.ac.uk": 95,
    "cam.ac.uk": 95,
    "berkeley.edu": 90,
    "ucla.edu": 90,
    "columbia.edu": 90,
    # Industry and reference
    "wikipedia.org": 75,
    "forbes.com": 75,
    "hbr.org": 85,
    "mckinsey.com": 85,
    "gartner.com": 85,
    "statista.com": 80,
    "pewresearch.org": 90,
    "hubspot.com": 70,
    "moz.com": 70,
    "searchenginejournal.com": 70,
    "techcrunch.com": 70,
    "wired.com": 70,
    "github.com": 65,
}

GENERIC_TLDS = frozenset({
    "com", "org", "net", "edu", "gov", "int", "io", "co", "info", "biz", "us", "uk", "ca", "au",
})
GENERIC_TLD_BASELINE = 50

RECENT_DAYS = 365
RECENT_BONUS = 20
SEMI_RECENT_DAYS = 730
SEMI_RECENT_BONUS = 10

HIGH_OVERLAP_RATIO = 0.3
HIGH_OVERLAP_BONUS = 20
LOW_OVERLAP_RATIO = 0.1
LOW_OVERLAP_BONUS = 10

SUBSTANTIAL_SNIPPET_CHARS = 100
SNIPPET_BONUS = 10

MAX_SCORE = 100
SCORE_THRESHOLD = 25
FALLBACK_SCORE_THRESHOLD = 15
MIN_RESULTS_BEFORE_FALLBACK = 3
MAX_RANKED_SOURCES = 8

_TOKEN_PATTERN = re.compile(r"[a-z0-9]+")


def _hostname(url: str) -> str:
    host = (urlparse(url).hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


def _tokens(text: str) -> List[str]:
    return [token for token in _TOKEN_PATTERN.findall((text or "").lower()) if len(token) > 2]


class SourceRanker:
    """Scores search hits by authority, recency, relevance and substance"""

    def __init__(self,
                 authority_table: Optional[Dict[str, int]] = None,
                 max_results: int = MAX_RANKED_SOURCES):
        self.authority_table = authority_table if authority_table is not None else DOMAIN_AUTHORITY
        self.max_results = max_results

    def domain_authority(self, url: str) -> int:
        """Base authority for a URL's host, matching parent domains as well"""
        host = _hostname(url)
        if not host:
            return 0

        labels = host.split(".")
        for start in range(len(labels) - 1):
            candidate = ".".join(labels[start:])
            if candidate in self.authority_table:
                return self.authority_table[candidate]

        if labels[-1] in GENERIC_TLDS:
            return GENERIC_TLD_BASELINE
        return 0

    @staticmethod
    def recency_bonus(published: Optional[datetime], now: datetime) -> int:
        if published is None:
            return 0
        if published.tzinfo is None:
            published = published.replace(tzinfo=timezone.utc)
        age_days = (now - published).days
        if age_days < RECENT_DAYS:
            return RECENT_BONUS
        if age_days < SEMI_RECENT_DAYS:
            return SEMI_RECENT_BONUS
        return 0

    @staticmethod
    def title_relevance_bonus(title: str, topic: str) -> int:
        topic_tokens = _tokens(topic)
        if not topic_tokens:
            return 0
        title_tokens = _tokens(title)
        overlap = sum(
            1 for topic_token in topic_tokens
            if any(topic_token in title_token or title_token in topic_token for title_token in title_tokens)
        )
        ratio = overlap / len(topic_tokens)
        if ratio >= HIGH_OVERLAP_RATIO:
            return HIGH_OVERLAP_BONUS
        if ratio >= LOW_OVERLAP_RATIO:
            return LOW_OVERLAP_BONUS
        return 0

    def score(self, hit: SearchHit, topic: str, now: Optional[datetime] = None) -> int:
        """Score a single hit, capped at 100"""
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)

        total = self.domain_authority(hit.url)
        total += self.recency_bonus(hit.published_date, now)
        total += self.title_relevance_bonus(hit.title, topic)
        if len(hit.snippet or "") > SUBSTANTIAL_SNIPPET_CHARS:
            total += SNIPPET_BONUS
        return min(total, MAX_SCORE)

    def rank(self, hits: Sequence[SearchHit], topic: str, now: Optional[datetime] = None) -> List[SearchHit]:
        """
        Score, filter and order search hits.

        Hits scoring above 25 are kept. When fewer than three survive, the
        threshold is relaxed to 15 once. Ties keep discovery order.

        Args:
            hits: Raw hits in discovery order
            topic: Research topic used for title relevance
            now: Reference time for recency scoring

        Returns:
            At most max_results hits, best first, with rank_score set
        """
        now = now or datetime.now(timezone.utc)
        scored = [(self.score(hit, topic, now), hit) for hit in hits]

        kept = [(score, hit) for score, hit in scored if score > SCORE_THRESHOLD]
        if len(kept) < MIN_RESULTS_BEFORE_FALLBACK:
            logger.info(
                f"Only {len(kept)} sources scored above {SCORE_THRESHOLD}; "
                f"relaxing threshold to {FALLBACK_SCORE_THRESHOLD}"
            )
            kept = [(score, hit) for score, hit in scored if score > FALLBACK_SCORE_THRESHOLD]

        # sorted() is stable, so equal scores keep discovery order
        ordered = sorted(kept, key=lambda pair: pair[0], reverse=True)[:self.max_results]

        logger.info(f"Ranked {len(hits)} hits, kept {len(ordered)}")
        return [hit.model_copy(update={"rank_score": score}) for score, hit in ordered]
