# tests/test_generator.py

import json

import pytest

from src.content_pipeline.exceptions import LLMError
from src.content_pipeline.generator import (
    MAX_WORD_COUNT_RETRIES,
    GenerationController,
    clip_meta_description,
    first_sentence,
    format_research_context,
    tolerance_window,
)
from src.content_pipeline.models import ContentDraft, GenerationState
from src.content_pipeline.seo_scorer import SEOScorer

OUTLINE = json.dumps({"headline": "Trends", "sections": [{"heading": "One"}]})
META = "Discover the content marketing trends shaping strategy this year."


def draft_json(title, words, meta="Draft meta."):
    return json.dumps({"title": title, "content": " ".join(["word"] * words), "meta_description": meta})


@pytest.fixture
def controller(mock_llm):
    return GenerationController(mock_llm, model="gpt-4o", meta_model="gpt-4o-mini")


def generate(controller, target=1000, research=(), keywords=("marketing",)):
    return controller.generate(
        "content marketing", "blog", "marketers", "professional", "informational",
        list(research), target, list(keywords),
    )


def test_first_draft_inside_window_is_accepted(controller, mock_llm):
    mock_llm.complete.side_effect = [OUTLINE, draft_json("First", 1000), META]

    draft = generate(controller)

    assert draft.generation_state == GenerationState.ACCEPTED
    assert draft.title == "First"
    assert draft.word_count == 1000
    assert draft.reading_time == 5
    assert draft.meta_description == META
    assert draft.target_word_count == 1000
    assert mock_llm.complete.call_count == 3


def test_short_draft_retries_once_and_accepts_retry(controller, mock_llm):
    mock_llm.complete.side_effect = [OUTLINE, draft_json("First", 317), draft_json("Retry", 980), META]

    draft = generate(controller)

    assert draft.generation_state == GenerationState.ACCEPTED
    assert draft.title == "Retry"
    assert draft.word_count == 980
    assert mock_llm.complete.call_count == 4


def test_retry_missing_target_returns_original_draft(controller, mock_llm):
    mock_llm.complete.side_effect = [OUTLINE, draft_json("First", 317), draft_json("Retry", 317), META]

    draft = generate(controller)

    assert draft.generation_state == GenerationState.ACCEPTED_BEST_EFFORT
    assert draft.title == "First"
    assert draft.word_count == 317
    # Outline, first draft, exactly one retry, meta description
    assert mock_llm.complete.call_count == 3 + MAX_WORD_COUNT_RETRIES


def test_retry_prompt_states_prior_count_and_window(controller, mock_llm):
    mock_llm.complete.side_effect = [OUTLINE, draft_json("First", 317), draft_json("Retry", 980), META]

    generate(controller)

    retry_prompt = mock_llm.complete.call_args_list[2].args[0]
    assert "The previous content was 317 words" in retry_prompt
    assert "between 900 and 1100 words" in retry_prompt


def test_retry_uses_wider_tolerance(controller, mock_llm):
    mock_llm.complete.side_effect = [OUTLINE, draft_json("First", 1200), draft_json("Retry", 1080), META]

    draft = generate(controller)

    assert draft.title == "Retry"
    assert draft.generation_state == GenerationState.ACCEPTED


def test_unparseable_first_draft_triggers_retry(controller, mock_llm):
    mock_llm.complete.side_effect = [OUTLINE, "I cannot comply", draft_json("Retry", 990), META]

    draft = generate(controller)

    assert draft.title == "Retry"
    assert draft.generation_state == GenerationState.ACCEPTED
    retry_prompt = mock_llm.complete.call_args_list[2].args[0]
    assert "could not be parsed" in retry_prompt


def test_only_parseable_draft_is_returned_best_effort(controller, mock_llm):
    mock_llm.complete.side_effect = [OUTLINE, '{"title": "x"}', draft_json("Retry", 317), META]

    draft = generate(controller)

    assert draft.title == "Retry"
    assert draft.generation_state == GenerationState.ACCEPTED_BEST_EFFORT


def test_no_parseable_draft_is_a_total_failure(controller, mock_llm):
    mock_llm.complete.side_effect = [OUTLINE, "garbage", LLMError("timeout")]

    assert generate(controller) is None
    assert mock_llm.complete.call_count == 3


def test_outline_failure_does_not_stop_generation(controller, mock_llm):
    mock_llm.complete.side_effect = [LLMError("outline timeout"), draft_json("First", 1000), META]

    draft = generate(controller)

    assert draft.title == "First"
    draft_prompt = mock_llm.complete.call_args_list[1].args[0]
    assert "No outline available" in draft_prompt


def test_meta_description_falls_back_to_draft_meta(controller, mock_llm):
    mock_llm.complete.side_effect = [OUTLINE, draft_json("First", 1000, meta="From the draft."), LLMError("down")]
    assert generate(controller).meta_description == "From the draft."


def test_meta_description_falls_back_to_first_sentence(controller, mock_llm):
    body = "## Intro\nMarketing is changing fast. " + " ".join(["word"] * 995)
    payload = json.dumps({"title": "First", "content": body})
    mock_llm.complete.side_effect = [OUTLINE, payload, LLMError("down")]

    assert generate(controller).meta_description == "Intro Marketing is changing fast."


def test_meta_call_is_scoped_to_final_body(controller, mock_llm):
    mock_llm.complete.side_effect = [OUTLINE, draft_json("First", 317), draft_json("Retry", 980), META]
    generate(controller)

    meta_call = mock_llm.complete.call_args_list[-1]
    assert meta_call.kwargs["model"] == "gpt-4o-mini"
    assert meta_call.kwargs["max_tokens"] == 100
    assert "word word" in meta_call.args[0]


def test_seo_score_is_computed_locally(controller, mock_llm):
    mock_llm.complete.side_effect = [OUTLINE, draft_json("First", 1000), META]
    draft = generate(controller)
    expected = SEOScorer().analyze(" ".join(["word"] * 1000), ["marketing"]).seo_score
    assert draft.seo_score == expected


def test_research_is_included_in_prompts(controller, mock_llm, make_summary):
    mock_llm.complete.side_effect = [OUTLINE, draft_json("First", 1000), META]
    generate(controller, research=[make_summary("HBR study", url="https://hbr.org/study")])

    draft_prompt = mock_llm.complete.call_args_list[1].args[0]
    assert "SOURCE 1: HBR study (https://hbr.org/study)" in draft_prompt


def test_invalid_target_returns_none(controller, mock_llm):
    assert generate(controller, target=0) is None
    mock_llm.complete.assert_not_called()


def test_tolerance_window():
    assert tolerance_window(1000, 0.05) == (950, 1050)
    assert tolerance_window(1000, 0.10) == (900, 1100)


@pytest.mark.parametrize("target, tolerance", [(1030, 0.05), (30, 0.05), (995, 0.10), (45, 0.10)])
def test_tolerance_window_never_exceeds_the_fractional_bounds(target, tolerance):
    low, high = tolerance_window(target, tolerance)
    assert low >= target * (1 - tolerance)
    assert high <= target * (1 + tolerance)


def test_draft_just_outside_a_non_round_window_is_retried(controller, mock_llm):
    mock_llm.complete.side_effect = [OUTLINE, draft_json("First", 1082), draft_json("Retry", 1081), META]

    draft = generate(controller, target=1030)

    assert draft.title == "Retry"
    assert draft.generation_state == GenerationState.ACCEPTED


def test_research_context_without_research():
    context = format_research_context([])
    assert "No specific research insights available" in context
    assert "Do not cite sources" in context


def test_research_context_for_fallback_summaries(make_summary):
    context = format_research_context([make_summary("Background", url="")])
    assert "general background, no source" in context
    assert "When citing this source" not in context


def test_clip_meta_description():
    text = "word " * 50
    clipped = clip_meta_description(text)
    assert len(clipped) <= 160
    assert clipped.endswith("word")
    assert clip_meta_description('"Short and quoted"') == "Short and quoted"


def test_first_sentence():
    assert first_sentence("# Title\n\nFirst one. Second one.") == "Title First one."
    assert first_sentence("") == ""


@pytest.fixture
def base_draft():
    return ContentDraft(
        title="Original",
        content="Original body about marketing.",
        word_count=4,
        reading_time=1,
        keywords=["marketing"],
        seo_score=40,
        generation_state=GenerationState.ACCEPTED_BEST_EFFORT,
    )


def test_optimize_for_seo_recomputes_metrics(controller, mock_llm, base_draft):
    mock_llm.complete.return_value = json.dumps({
        "title": "Marketing guide",
        "content": "## Marketing\n\nA new body about marketing today.",
        "seo_score": 99,
    })

    optimized = controller.optimize_for_seo(base_draft, ["marketing"])

    assert optimized.title == "Marketing guide"
    assert optimized.word_count == 8
    assert optimized.seo_score == SEOScorer().analyze(optimized.content, ["marketing"]).seo_score
    assert optimized.generation_state == GenerationState.ACCEPTED_BEST_EFFORT


@pytest.mark.parametrize("response", [
    LLMError("down"),
    "not json",
    json.dumps({"title": "T", "content": "C"}),
])
def test_optimize_for_seo_failure_keeps_draft(controller, mock_llm, base_draft, response):
    if isinstance(response, Exception):
        mock_llm.complete.side_effect = response
    else:
        mock_llm.complete.return_value = response

    assert controller.optimize_for_seo(base_draft, ["marketing"]) is base_draft


def test_optimize_for_seo_rejects_rewrite_outside_target_window(controller, mock_llm, base_draft):
    draft = base_draft.model_copy(update={"target_word_count": 100, "generation_state": GenerationState.ACCEPTED})
    mock_llm.complete.return_value = json.dumps({
        "title": "Marketing guide",
        "content": " ".join(["marketing"] * 140),
        "seo_score": 99,
    })

    assert controller.optimize_for_seo(draft, ["marketing"]) is draft


def test_optimize_for_seo_reevaluates_state_against_target(controller, mock_llm, base_draft):
    draft = base_draft.model_copy(update={"target_word_count": 100})
    mock_llm.complete.return_value = json.dumps({
        "title": "Marketing guide",
        "content": " ".join(["marketing"] * 95),
        "seo_score": 99,
    })

    optimized = controller.optimize_for_seo(draft, ["marketing"])

    assert optimized.word_count == 95
    assert optimized.generation_state == GenerationState.ACCEPTED
