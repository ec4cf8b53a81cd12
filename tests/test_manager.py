# tests/test_manager.py

import json
from unittest.mock import patch

import pytest

from src.content_pipeline.config import PipelineConfig
from src.content_pipeline.exceptions import ConfigurationError
from src.content_pipeline.manager import ContentManager
from src.content_pipeline.models import GenerationState

OUTLINE = json.dumps({"headline": "Trends", "sections": [{"heading": "One"}]})
BODY = "## Intro\n" + " ".join(["marketing"] * 5 + ["word"] * 493) + "\n## Outro\nDone."
DRAFT = json.dumps({"title": "Marketing trends", "content": BODY})
SUMMARY = json.dumps({
    "title": "Budgets grow",
    "key_points": ["According to HBR, budgets grow"],
    "relevance_score": 88,
    "source_authority": "high",
})


@pytest.fixture
def manager(mock_llm, mock_search):
    return ContentManager(config=PipelineConfig(max_llm_concurrency=2), llm=mock_llm, search_client=mock_search)


def test_missing_keys_raise_configuration_error():
    with pytest.raises(ConfigurationError):
        ContentManager(config=PipelineConfig(openai_api_key=None, tavily_api_key=None))


def test_invalid_config_is_rejected(mock_llm, mock_search):
    with pytest.raises(ConfigurationError):
        ContentManager(config=PipelineConfig(max_summaries=0), llm=mock_llm, search_client=mock_search)


def test_from_env_configures_logging(monkeypatch):
    monkeypatch.setattr("src.content_pipeline.config.load_dotenv", lambda: None)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("TAVILY_API_KEY", "tvly-test")
    with patch('src.content_pipeline.manager.setup_logging') as mock_setup, \
            patch('src.content_pipeline.manager.LLMClient') as mock_llm_cls, \
            patch('src.content_pipeline.manager.SearchClient') as mock_search_cls:
        manager = ContentManager.from_env()

    mock_setup.assert_called_once()
    assert mock_llm_cls.call_args.kwargs["api_key"] == "sk-test"
    assert mock_search_cls.call_args.kwargs["api_key"] == "tvly-test"
    assert manager.config.openai_api_key == "sk-test"


def test_analyze_uses_configured_thresholds(mock_llm, mock_search):
    config = PipelineConfig()
    config.seo_thresholds.readability_target = 130
    manager = ContentManager(config=config, llm=mock_llm, search_client=mock_search)

    analysis = manager.analyze("Short text.", [])

    # Scores about 120, which only misses a target raised above the default
    assert any(r.type == "readability" for r in analysis.recommendations)


def test_create_content_end_to_end(manager, mock_llm, mock_search, make_hit):
    mock_search.search.return_value = [make_hit(url="https://hbr.org/budgets", title="Marketing budgets")]

    def complete(prompt, **kwargs):
        caller = kwargs.get("caller")
        return {
            "summarizer": SUMMARY,
            "outline": OUTLINE,
            "draft": DRAFT,
            "meta_description": "Marketing trends explained.",
        }[caller]

    mock_llm.complete.side_effect = complete

    result = manager.create_content("marketing", ["marketing"], target_word_count=500,
                                    existing_internal_urls=["/blog/marketing-101"])

    draft, analysis = result
    assert draft.title == "Marketing trends"
    assert draft.generation_state == GenerationState.ACCEPTED
    assert draft.meta_description == "Marketing trends explained."
    assert analysis.internal_links[0].url == "/blog/marketing-101"
    draft_prompt = next(c.args[0] for c in mock_llm.complete.call_args_list if c.kwargs["caller"] == "draft")
    assert "According to Budgets grow" in draft_prompt


def test_create_content_without_research_still_generates(manager, mock_llm, mock_search):
    mock_search.search.return_value = []
    mock_llm.complete.side_effect = [OUTLINE, DRAFT, "Meta."]

    draft, _ = manager.create_content("marketing", ["marketing"], target_word_count=500)

    assert draft.title == "Marketing trends"
    draft_prompt = mock_llm.complete.call_args_list[1].args[0]
    assert "No specific research insights available" in draft_prompt


def test_create_content_returns_none_on_generation_failure(manager, mock_llm, mock_search):
    mock_search.search.return_value = []
    mock_llm.complete.side_effect = [OUTLINE, "garbage", "still garbage"]

    assert manager.create_content("marketing", [], target_word_count=500) is None


def test_seo_optimization_pass_runs_when_enabled(mock_llm, mock_search):
    manager = ContentManager(
        config=PipelineConfig(seo_optimization_pass=True), llm=mock_llm, search_client=mock_search
    )
    optimized = json.dumps({"title": "Optimized", "content": BODY, "seo_score": 90})
    mock_llm.complete.side_effect = [OUTLINE, DRAFT, "Meta.", optimized]

    draft = manager.generate("marketing", "blog", "general", "professional", "informational",
                             [], 500, ["marketing"])

    assert draft.title == "Optimized"
    assert mock_llm.complete.call_args_list[-1].kwargs["caller"] == "seo_optimization"


def test_research_is_cached_across_calls(manager, mock_llm, mock_search, make_hit):
    mock_search.search.return_value = [make_hit(url="https://hbr.org/budgets")]
    mock_llm.complete.return_value = SUMMARY

    first = manager.research("marketing", ["seo"])
    second = manager.research("Marketing", ["SEO"])

    assert first == second
    assert mock_llm.complete.call_count == 1
    assert len(manager.cache) == 1
