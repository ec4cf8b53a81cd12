# src/content_pipeline/generator.py
"""
Content generation driven by research summaries.

An outline call is followed by a structured draft call. The draft's word
count is measured locally and enforced by a bounded retry state machine:

    DRAFTING -> EVALUATING -> ACCEPTED
                           -> RETRYING -> EVALUATING -> ACCEPTED
                                                    -> ACCEPTED_BEST_EFFORT
                                                    -> FAILED

A missed word-count target is never an error. Only a run that produces no
parseable draft at all fails.
"""
import json
import math
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .exceptions import GenerationError, LLMError
from .extractor import (
    CONTENT_SCHEMA,
    OUTLINE_SCHEMA,
    SEO_SCHEMA,
    InvalidSchema,
    Malformed,
    Ok,
    extract,
)
from .llm_client import LLMClient
from .models import ContentDraft, GenerationState, ResearchSummary
from .seo_scorer import SEOScorer
from .utils import calculate_reading_time, count_words, normalize_whitespace

logger = logging.getLogger(__name__)

MAX_WORD_COUNT_RETRIES = 1
FIRST_PASS_TOLERANCE = 0.05
RETRY_TOLERANCE = 0.10

META_DESCRIPTION_MAX_CHARS = 160
META_SOURCE_CHARS = 500
MIN_DRAFT_TOKENS = 2000
MAX_DRAFT_TOKENS = 16000

_SENTENCE_END = re.compile(r"(?<=[.!?])\s")
_MARKDOWN_MARKUP = re.compile(r"^#{1,6}\s+|[*_`>]", re.MULTILINE)


def tolerance_window(target: int, tolerance: float) -> Tuple[int, int]:
    """Inclusive [low, high] word range, never wider than target * (1 ± tolerance)"""
    margin = math.floor(target * tolerance)
    return target - margin, target + margin


def _within(count: int, window: Tuple[int, int]) -> bool:
    return window[0] <= count <= window[1]


def format_research_context(research: Sequence[ResearchSummary]) -> str:
    """
    Build a context string from research summaries.

    Each source is numbered and lists its key points, quotes and data points
    with attribution instructions.
    """
    if not research:
        return (
            "No specific research insights available. Use general best practices and "
            "industry knowledge. Do not cite sources, quote experts or state statistics."
        )

    parts = []
    for index, summary in enumerate(research, start=1):
        source = f"{summary.title} ({summary.url})" if summary.url else f"{summary.title} (general background, no source)"
        part = f"SOURCE {index}: {source}\n"
        if summary.key_points:
            part += "KEY INSIGHTS:\n" + "\n".join(f"- {point}" for point in summary.key_points) + "\n"
        if summary.expert_quotes:
            part += "EXPERT QUOTES:\n" + "\n".join(f'- "{quote}"' for quote in summary.expert_quotes) + "\n"
        if summary.data_points:
            part += "DATA POINTS:\n" + "\n".join(f"- {data}" for data in summary.data_points) + "\n"
        if summary.url:
            part += (
                f'When citing this source, write "According to {summary.title}..." or '
                f'"Research from {summary.title} shows...". Only use quotes and data points listed above.\n'
            )
        parts.append(part)
    return "\n".join(parts)


def first_sentence(text: str) -> str:
    plain = normalize_whitespace(_MARKDOWN_MARKUP.sub("", text or ""))
    return _SENTENCE_END.split(plain, maxsplit=1)[0] if plain else ""


def clip_meta_description(text: str, limit: int = META_DESCRIPTION_MAX_CHARS) -> str:
    """Trim to the limit on a word boundary"""
    text = normalize_whitespace(text).strip('"\'')
    if len(text) <= limit:
        return text
    clipped = text[:limit]
    if text[limit] != " " and " " in clipped:
        clipped = clipped.rsplit(" ", 1)[0]
    return clipped.rstrip(" ,;:-")


@dataclass(frozen=True)
class DraftAttempt:
    title: str
    content: str
    meta_description: str
    word_count: int


@dataclass(frozen=True)
class GenerationRequest:
    topic: str
    content_type: str
    audience: str
    tone: str
    purpose: str
    target_word_count: int
    keywords: Tuple[str, ...] = ()

    @property
    def keywords_context(self) -> str:
        return f"\n- Primary SEO Keywords: {', '.join(self.keywords)}" if self.keywords else ""


class GenerationController:
    """Outline, draft and meta description generation with word-count enforcement"""

    def __init__(self,
                 llm: LLMClient,
                 scorer: Optional[SEOScorer] = None,
                 model: Optional[str] = None,
                 meta_model: Optional[str] = None):
        self.llm = llm
        self.scorer = scorer or SEOScorer()
        self.model = model
        self.meta_model = meta_model

    # Prompts

    def build_outline_prompt(self, request: GenerationRequest, research_context: str) -> str:
        return f"""You are a senior content strategist and editor. Create a detailed outline for a {request.content_type} about "{request.topic}".

CONTEXT:
- Topic: {request.topic}
- Content Type: {request.content_type}
- Target Audience: {request.audience}
- Tone: {request.tone}
- Target Word Count: {request.target_word_count} words
- Content Purpose: {request.purpose}{request.keywords_context}

RESEARCH INSIGHTS:
{research_context}

OUTLINE REQUIREMENTS:
1. A compelling headline that uses the topic and primary keywords naturally
2. An introduction that hooks the reader
3. 3-5 main sections with clear headings, key points and the research to integrate
4. A conclusion with actionable takeaways
5. A word allocation per section adding up to {request.target_word_count}

REQUIRED OUTPUT FORMAT (valid JSON only):
{{
  "headline": "Compelling headline",
  "introduction": {{"hook": "Opening hook", "target_length": 100}},
  "sections": [
    {{
      "heading": "Section heading",
      "key_points": ["Point 1", "Point 2"],
      "research_integration": ["Which research insights to include"],
      "target_length": 150
    }}
  ],
  "conclusion": {{"summary": "Key takeaways", "target_length": 100}}
}}"""

    def build_draft_prompt(self,
                           request: GenerationRequest,
                           research_context: str,
                           outline: Optional[Dict[str, Any]]) -> str:
        low, high = tolerance_window(request.target_word_count, FIRST_PASS_TOLERANCE)
        outline_text = json.dumps(outline, indent=2) if outline else "No outline available. Structure the piece with an introduction, 3-5 headed sections and a conclusion."

        return f"""You are a professional content writer specializing in {request.content_type} creation. Write high-quality content based on the outline and research below.

CONTEXT:
- Topic: {request.topic}
- Content Type: {request.content_type}
- Target Audience: {request.audience}
- Tone: {request.tone}
- Target Word Count: {request.target_word_count} words (must be between {low} and {high} words)
- Content Purpose: {request.purpose}{request.keywords_context}

OUTLINE:
{outline_text}

RESEARCH INSIGHTS:
{research_context}

WRITING REQUIREMENTS:
1. Follow the outline structure and use markdown headings (## and ###) for sections
2. Integrate research insights naturally with attribution: "According to [Source Name], ..."
3. Do NOT fabricate quotes, statistics or sources. Use only what the research provides
4. Incorporate SEO keywords naturally, without keyword stuffing
5. Keep the specified tone throughout
6. The content MUST be between {low} and {high} words

REQUIRED OUTPUT FORMAT (valid JSON only, escape quotes inside strings):
{{
  "title": "Compelling title about the topic",
  "content": "Full content as a single markdown string",
  "meta_description": "One or two sentence summary under 160 characters"
}}"""

    def build_retry_prompt(self, request: GenerationRequest, base_prompt: str, previous: Optional[DraftAttempt]) -> str:
        low, high = tolerance_window(request.target_word_count, RETRY_TOLERANCE)
        if previous is None:
            problem = "The previous response could not be parsed as the required JSON object."
        else:
            problem = f"The previous content was {previous.word_count} words, but the target is {request.target_word_count} words."

        return f"""{problem}

Please regenerate the content. The content must be between {low} and {high} words.

{base_prompt}

CRITICAL: The final content MUST be between {low} and {high} words. Count carefully and adjust accordingly."""

    # Model calls

    def create_outline(self, request: GenerationRequest, research_context: str) -> Optional[Dict[str, Any]]:
        """Returns the outline, or None when it cannot be produced"""
        try:
            raw = self.llm.complete(
                self.build_outline_prompt(request, research_context),
                model=self.model,
                temperature=0.3,
                max_tokens=1500,
                json_mode=True,
                caller="outline",
            )
        except LLMError as e:
            logger.warning(f"Outline generation failed, drafting without an outline: {e}")
            return None

        result = extract(raw, OUTLINE_SCHEMA)
        if isinstance(result, Ok):
            return result.value
        logger.warning("Outline output unusable, drafting without an outline")
        return None

    def request_draft(self, prompt: str, request: GenerationRequest, temperature: float) -> DraftAttempt:
        """
        Run one structured draft call.

        Raises:
            GenerationError: When the call fails or its output cannot be parsed
        """
        max_tokens = min(MAX_DRAFT_TOKENS, max(MIN_DRAFT_TOKENS, request.target_word_count * 3))
        try:
            raw = self.llm.complete(
                prompt,
                model=self.model,
                temperature=temperature,
                max_tokens=max_tokens,
                json_mode=True,
                caller="draft",
            )
        except LLMError as e:
            raise GenerationError(f"Draft call failed: {e}") from e

        result = extract(raw, CONTENT_SCHEMA)
        if isinstance(result, Malformed):
            raise GenerationError("Draft output is not valid JSON")
        elif isinstance(result, InvalidSchema):
            raise GenerationError(f"Draft output is missing {list(result.missing_fields)}")
        elif not isinstance(result, Ok):
            raise GenerationError(f"Unexpected extraction result: {type(result).__name__}")

        data = result.value
        meta = data.get("meta_description")
        content = data["content"].strip()
        return DraftAttempt(
            title=data["title"].strip(),
            content=content,
            meta_description=meta.strip() if isinstance(meta, str) else "",
            word_count=count_words(content),
        )

    def _attempt(self, prompt: str, request: GenerationRequest, temperature: float) -> Optional[DraftAttempt]:
        try:
            return self.request_draft(prompt, request, temperature)
        except GenerationError as e:
            logger.warning(f"Draft attempt discarded: {e}")
            return None

    def draft_with_word_count(self,
                              request: GenerationRequest,
                              prompt: str) -> Tuple[GenerationState, Optional[DraftAttempt]]:
        """
        Drive the word-count state machine.

        Returns:
            The terminal state and the chosen draft (None when FAILED)
        """
        first_window = tolerance_window(request.target_word_count, FIRST_PASS_TOLERANCE)
        retry_window = tolerance_window(request.target_word_count, RETRY_TOLERANCE)

        state = GenerationState.DRAFTING
        original: Optional[DraftAttempt] = None
        candidate: Optional[DraftAttempt] = None
        retries = 0

        while True:
            if state == GenerationState.DRAFTING:
                candidate = self._attempt(prompt, request, temperature=0.4)
                original = candidate
                state = GenerationState.EVALUATING

            elif state == GenerationState.RETRYING:
                retries += 1
                candidate = self._attempt(
                    self.build_retry_prompt(request, prompt, original), request, temperature=0.3
                )
                state = GenerationState.EVALUATING

            elif state == GenerationState.EVALUATING:
                window = first_window if retries == 0 else retry_window
                if candidate is not None and _within(candidate.word_count, window):
                    logger.info(
                        f"Draft accepted: {candidate.word_count} words "
                        f"(target {request.target_word_count}, window {window[0]}-{window[1]})"
                    )
                    return GenerationState.ACCEPTED, candidate

                if retries < MAX_WORD_COUNT_RETRIES:
                    if candidate is not None:
                        logger.warning(
                            f"Word count {candidate.word_count} is outside target range "
                            f"{window[0]}-{window[1]}. Attempting regeneration..."
                        )
                    state = GenerationState.RETRYING
                    continue

                best_effort = original or candidate
                if best_effort is None:
                    logger.error("No parseable draft after retry")
                    return GenerationState.FAILED, None

                logger.warning(
                    f"Retry did not meet the word count. Using "
                    f"{'original' if best_effort is original else 'retry'} draft with "
                    f"{best_effort.word_count} words (target: {request.target_word_count})"
                )
                return GenerationState.ACCEPTED_BEST_EFFORT, best_effort

    def generate_meta_description(self, content: str, topic: str, keywords: Sequence[str]) -> Optional[str]:
        """Short model call scoped to the final body. None when it fails."""
        keywords_context = f"\nPRIMARY KEYWORDS: {', '.join(keywords)}" if keywords else ""
        prompt = f"""Create a compelling meta description for the following content. The meta description should be 150-160 characters and include primary keywords naturally.

CONTENT TOPIC: {topic}{keywords_context}
CONTENT PREVIEW: {content[:META_SOURCE_CHARS]}...

REQUIREMENTS:
- 150-160 characters maximum
- Include primary keywords naturally if provided
- Accurately describe the content

Provide only the meta description text, no additional formatting."""

        try:
            raw = self.llm.complete(
                prompt,
                model=self.meta_model,
                temperature=0.3,
                max_tokens=100,
                caller="meta_description",
            )
        except LLMError as e:
            logger.warning(f"Meta description call failed: {e}")
            return None

        meta = clip_meta_description(raw)
        return meta or None

    def optimize_for_seo(self, draft: ContentDraft, keywords: Sequence[str]) -> ContentDraft:
        """
        Optional rewrite pass that improves keyword use and heading structure.

        The input draft is returned unchanged on any failure, and also when
        the rewrite leaves the retry window around the draft's target word
        count. Metrics on the result are recomputed locally; the model's own
        score is ignored.
        """
        prompt = f"""You are an SEO expert. Optimize the content below for search engines while keeping its meaning, facts, attributions and length.

TITLE: {draft.title}
TARGET KEYWORDS: {', '.join(keywords) or 'none'}

CONTENT:
{draft.content}

OPTIMIZATION REQUIREMENTS:
1. Include primary keywords naturally in the title and headings
2. Improve keyword density without stuffing
3. Use a proper heading hierarchy (##, ###)
4. Keep the word count within 10% of {draft.word_count} words
5. Do not add quotes, statistics or sources that are not already present

OUTPUT FORMAT (valid JSON only):
{{
  "title": "Optimized title",
  "content": "Optimized content",
  "seo_score": 85,
  "optimization_notes": ["Note 1"]
}}"""

        try:
            raw = self.llm.complete(
                prompt,
                model=self.model,
                temperature=0.2,
                max_tokens=min(MAX_DRAFT_TOKENS, max(MIN_DRAFT_TOKENS, draft.word_count * 3)),
                json_mode=True,
                caller="seo_optimization",
            )
        except LLMError as e:
            logger.warning(f"SEO optimization skipped: {e}")
            return draft

        result = extract(raw, SEO_SCHEMA)
        if not isinstance(result, Ok):
            logger.warning("SEO optimization output unusable, keeping the original draft")
            return draft

        content = result.value["content"].strip()
        word_count = count_words(content)
        state = draft.generation_state
        if draft.target_word_count:
            window = tolerance_window(draft.target_word_count, RETRY_TOLERANCE)
            if not _within(word_count, window):
                logger.warning(
                    f"SEO rewrite has {word_count} words, outside {window[0]}-{window[1]}. "
                    f"Keeping the original draft"
                )
                return draft
            state = GenerationState.ACCEPTED

        optimized = draft.model_copy(update={
            "title": result.value["title"].strip(),
            "content": content,
            "word_count": word_count,
            "reading_time": calculate_reading_time(content),
            "seo_score": self.scorer.analyze(content, keywords).seo_score,
            "generation_state": state,
        })
        logger.info(f"SEO optimization applied: score {draft.seo_score} -> {optimized.seo_score}")
        return optimized

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
        Generate a draft grounded in research.

        Args:
            topic: Subject of the piece
            content_type: e.g. "blog", "article"
            audience: Intended readers
            tone: Writing tone
            purpose: Content purpose, e.g. "informational"
            research: Ranked research summaries (may be empty)
            target_word_count: Desired length in words
            keywords: SEO keywords to weave in

        Returns:
            ContentDraft, or None when no parseable draft could be produced
        """
        if target_word_count <= 0:
            logger.error(f"Invalid target word count: {target_word_count}")
            return None

        request = GenerationRequest(
            topic=topic,
            content_type=content_type,
            audience=audience,
            tone=tone,
            purpose=purpose,
            target_word_count=target_word_count,
            keywords=tuple(keywords or ()),
        )
        logger.info(f"Generating {content_type} about '{topic}' ({target_word_count} words)")

        research_context = format_research_context(research)
        outline = self.create_outline(request, research_context)
        prompt = self.build_draft_prompt(request, research_context, outline)

        state, attempt = self.draft_with_word_count(request, prompt)
        if state == GenerationState.FAILED or attempt is None:
            return None

        meta = (
            self.generate_meta_description(attempt.content, topic, request.keywords)
            or clip_meta_description(attempt.meta_description)
            or clip_meta_description(first_sentence(attempt.content))
        )
        keywords_list: List[str] = list(request.keywords)

        draft = ContentDraft(
            title=attempt.title,
            content=attempt.content,
            word_count=attempt.word_count,
            reading_time=calculate_reading_time(attempt.content),
            keywords=keywords_list,
            meta_description=meta,
            seo_score=self.scorer.analyze(attempt.content, keywords_list).seo_score,
            target_word_count=target_word_count,
            generation_state=state,
        )
        logger.info(f"Content generation completed: {draft.word_count} words, state={state.value}")
        return draft
