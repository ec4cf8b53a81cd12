# src/content_pipeline/seo_scorer.py
"""
Deterministic SEO and readability scoring.

Everything here is a pure function of the text, the target keywords and the
candidate internal URLs: no model calls, no clock, no randomness.
"""
import re
import math
import logging
from typing import Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

from rapidfuzz.distance import Levenshtein

from .config import SEOThresholds
from .models import InternalLink, SEOAnalysis, SEORecommendation
from .utils import count_words

logger = logging.getLogger(__name__)

MIN_LINK_RELEVANCE = 0.3
TARGET_INTERNAL_LINKS = 3
MIN_HEADINGS = 2
TARGET_HEADINGS = 3

KEYWORD_PENALTY = 10
NO_LINKS_PENALTY = 15
FEW_LINKS_PENALTY = 5
HIGH_PRIORITY_PENALTY = 10

PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}

_SENTENCE_SPLIT = re.compile(r"[.!?]+")
_NON_LETTERS = re.compile(r"[^a-z]")
_SYLLABLE_ENDINGS = re.compile(r"(?:[^laeiouy]es|ed|[^laeiouy]e)$")
_LEADING_Y = re.compile(r"^y")
_VOWEL_GROUP = re.compile(r"[aeiouy]{1,2}")
_MARKDOWN_HEADING = re.compile(r"^#{1,6}\s+.+$", re.MULTILINE)
_HTML_HEADING = re.compile(r"<h[1-6][^>]*>", re.IGNORECASE)
_MARKDOWN_LINK = re.compile(r"(?<!!)\[([^\]]+)\]\([^)]+\)")
_HTML_LINK = re.compile(r"<a\s[^>]*>(.*?)</a>", re.IGNORECASE | re.DOTALL)
_URL_PATH_SPLIT = re.compile(r"[/\-_]+")


def _keyword_pattern(keyword: str) -> re.Pattern:
    return re.compile(rf"(?<!\w){re.escape(keyword.lower())}(?!\w)", re.IGNORECASE)


def count_word_syllables(word: str) -> int:
    """Heuristic syllable count for one word, never less than one"""
    word = _NON_LETTERS.sub("", word.lower())
    word = _SYLLABLE_ENDINGS.sub("", word)
    word = _LEADING_Y.sub("", word)
    return len(_VOWEL_GROUP.findall(word)) or 1


def flesch_reading_ease(text: str) -> float:
    """
    Flesch Reading Ease of a text.

    206.835 - 1.015 * (words / sentences) - 84.6 * (syllables / words).
    Empty text scores 0.
    """
    sentences = [s for s in _SENTENCE_SPLIT.split(text or "") if s.strip()]
    words = (text or "").split()
    if not sentences or not words:
        return 0.0

    syllables = sum(count_word_syllables(word) for word in words)
    return 206.835 - 1.015 * (len(words) / len(sentences)) - 84.6 * (syllables / len(words))


def keyword_density(content: str, keywords: Sequence[str]) -> Dict[str, float]:
    """Whole-word, case-insensitive occurrences per keyword as a percentage of all words"""
    total_words = count_words(content)
    density = {}
    for keyword in keywords:
        if not keyword.strip():
            continue
        matches = len(_keyword_pattern(keyword).findall(content or ""))
        density[keyword] = (matches / total_words) * 100 if total_words else 0.0
    return density


def count_headings(content: str) -> int:
    return len(_MARKDOWN_HEADING.findall(content or "")) + len(_HTML_HEADING.findall(content or ""))


def linked_texts(content: str) -> List[str]:
    """Anchor texts of markdown and HTML links already present in the content"""
    texts = _MARKDOWN_LINK.findall(content or "") + _HTML_LINK.findall(content or "")
    return [text.lower() for text in texts]


def url_path_segments(url: str) -> List[str]:
    path = urlparse(url).path
    return [segment for segment in _URL_PATH_SPLIT.split(path) if segment]


def _best_segment_relevance(keyword: str, url: str) -> float:
    keyword = keyword.lower()
    best = 0.0
    for segment in url_path_segments(url):
        distance = Levenshtein.distance(keyword, segment.lower())
        best = max(best, 1 / (distance + 1))
    return best


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class SEOScorer:
    """Computes keyword density, readability, link opportunities and an aggregate score"""

    def __init__(self, thresholds: Optional[SEOThresholds] = None):
        self.thresholds = thresholds or SEOThresholds()

    def find_internal_links(self,
                            content: str,
                            keywords: Sequence[str],
                            existing_internal_urls: Sequence[str]) -> List[InternalLink]:
        """
        Suggest an internal URL for each keyword that appears in the content
        and is not linked yet.

        The best URL has the path segment with the smallest edit distance to
        the keyword. Equal matches resolve to the earlier URL.
        """
        if not existing_internal_urls:
            return []

        anchors = linked_texts(content)
        opportunities: List[InternalLink] = []
        for keyword in keywords:
            if not keyword.strip() or not _keyword_pattern(keyword).search(content or ""):
                continue
            if any(keyword.lower() in anchor for anchor in anchors):
                continue

            best_url: Optional[str] = None
            best_relevance = 0.0
            for url in existing_internal_urls:
                relevance = _best_segment_relevance(keyword, url)
                if relevance > best_relevance and relevance > MIN_LINK_RELEVANCE:
                    best_url, best_relevance = url, relevance

            if best_url is not None:
                opportunities.append(InternalLink(
                    text=keyword,
                    url=best_url,
                    relevance=_round_half_up(best_relevance * 100),
                ))

        return sorted(opportunities, key=lambda link: link.relevance, reverse=True)

    def recommendations(self,
                        content: str,
                        density: Dict[str, float],
                        readability: int,
                        internal_links: Sequence[InternalLink]) -> List[SEORecommendation]:
        """Prioritized optimization suggestions, high priority first"""
        t = self.thresholds
        found: List[SEORecommendation] = []

        for keyword, value in density.items():
            if value < t.min_keyword_density:
                found.append(SEORecommendation(
                    type="keyword",
                    priority="high",
                    message=f'Keyword "{keyword}" is underused ({value:.1f}% density)',
                    suggestion=f'Increase usage of "{keyword}" to reach target density of {t.min_keyword_density}%',
                    current_value=value,
                    target_value=t.min_keyword_density,
                ))
            elif value > t.max_keyword_density:
                found.append(SEORecommendation(
                    type="keyword",
                    priority="medium",
                    message=f'Keyword "{keyword}" is overused ({value:.1f}% density)',
                    suggestion=f'Reduce usage of "{keyword}" to avoid keyword stuffing',
                    current_value=value,
                    target_value=t.max_keyword_density,
                ))

        if readability < t.readability_target:
            found.append(SEORecommendation(
                type="readability",
                priority="high",
                message=f"Content readability score is {readability} (target: {t.readability_target:g})",
                suggestion="Simplify sentence structure and use shorter words to improve readability",
                current_value=readability,
                target_value=t.readability_target,
            ))

        if not internal_links:
            found.append(SEORecommendation(
                type="links",
                priority="medium",
                message="No internal links found in content",
                suggestion="Add relevant internal links to improve site structure and SEO",
                current_value=0,
                target_value=TARGET_INTERNAL_LINKS,
            ))
        elif len(internal_links) < TARGET_INTERNAL_LINKS:
            found.append(SEORecommendation(
                type="links",
                priority="low",
                message=f"Only {len(internal_links)} internal links found",
                suggestion="Consider adding more internal links to improve site structure",
                current_value=len(internal_links),
                target_value=TARGET_INTERNAL_LINKS,
            ))

        headings = count_headings(content)
        if headings < MIN_HEADINGS:
            found.append(SEORecommendation(
                type="structure",
                priority="medium",
                message="Content lacks proper heading structure",
                suggestion="Add H2 and H3 headings to improve content organization and SEO",
                current_value=headings,
                target_value=TARGET_HEADINGS,
            ))

        return sorted(found, key=lambda rec: PRIORITY_ORDER[rec.priority])

    def score(self,
              density: Dict[str, float],
              readability: int,
              internal_link_count: int,
              recommendations: Sequence[SEORecommendation]) -> int:
        t = self.thresholds
        total = 100.0

        for value in density.values():
            if value < t.min_keyword_density or value > t.max_keyword_density:
                total -= KEYWORD_PENALTY

        if readability < t.readability_target:
            total -= (t.readability_target - readability) / 2

        if internal_link_count == 0:
            total -= NO_LINKS_PENALTY
        elif internal_link_count < TARGET_INTERNAL_LINKS:
            total -= FEW_LINKS_PENALTY

        total -= HIGH_PRIORITY_PENALTY * sum(1 for rec in recommendations if rec.priority == "high")
        return max(0, _round_half_up(total))

    def analyze(self,
                content: str,
                target_keywords: Sequence[str],
                existing_internal_urls: Optional[Sequence[str]] = None) -> SEOAnalysis:
        """
        Analyze a text against target keywords.

        Args:
            content: Text to score (markdown or HTML)
            target_keywords: Keywords the text should rank for
            existing_internal_urls: Candidate internal link targets

        Returns:
            SEOAnalysis with an aggregate 0-100 score
        """
        keywords = list(target_keywords or [])
        density = keyword_density(content, keywords)
        readability = _round_half_up(flesch_reading_ease(content))
        internal_links = self.find_internal_links(content, keywords, list(existing_internal_urls or []))
        recs = self.recommendations(content, density, readability, internal_links)
        seo_score = self.score(density, readability, len(internal_links), recs)

        logger.debug(
            f"SEO analysis: score={seo_score} readability={readability} "
            f"links={len(internal_links)} recommendations={len(recs)}"
        )
        return SEOAnalysis(
            keyword_density=density,
            readability_score=readability,
            internal_links=internal_links,
            suggestions=[rec.message for rec in recs],
            recommendations=recs,
            seo_score=seo_score,
        )
