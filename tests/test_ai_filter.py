import pytest

from ai_filter import (
    RelevanceFilter,
    build_relevance_prompt,
    dedupe_by_title_company,
    parse_relevant_ids,
    pre_filter_by_keywords,
)
from models import ScrapedPosting

RULES = {
    "target_seniority": ["Mid"],
    "exclude_title_keywords": ["Intern", "Director"],
    "preferred_tech_stack": ["Python", "AWS"],
}


def _posting(site_id, title, company="Acme"):
    return ScrapedPosting(
        site_id=site_id,
        title=title,
        company=company,
        link=f"https://www.linkedin.com/jobs/view/{site_id}/",
        minutes_ago=3,
    )


POSTINGS = [
    _posting("11111111", "Backend Engineer"),
    _posting("22222222", "Software Engineering Intern"),
    _posting("33333333", "backend engineer ", company="ACME"),
    _posting("44444444", "Python Developer", company="Globex"),
    _posting("55555555", "Director of Engineering", company="Globex"),
]


def test_pre_filter_rejects_excluded_title_keywords():
    passed, rejected = pre_filter_by_keywords(POSTINGS, RULES["exclude_title_keywords"])
    assert [p.site_id for p in rejected] == ["22222222", "55555555"]
    assert len(passed) == 3


def test_dedupe_keeps_first_title_company_pair():
    unique, duplicates = dedupe_by_title_company(POSTINGS[:4])
    assert duplicates == 1
    assert [p.site_id for p in unique] == ["11111111", "22222222", "44444444"]


def test_prompt_lists_ids_and_rules():
    prompt = build_relevance_prompt("Python backend engineer", POSTINGS[:1], RULES)
    assert '- ID: 11111111 | Title: "Backend Engineer" | Company: "Acme"' in prompt
    assert "TARGET SENIORITY LEVELS: Mid" in prompt
    assert "CANDIDATE'S TECH STACK: Python, AWS" in prompt
    assert '"relevantIds"' in prompt


def test_parse_relevant_ids_tolerates_code_fences_and_chatter():
    assert parse_relevant_ids('{"relevantIds": ["1", 2]}') == ["1", "2"]
    assert parse_relevant_ids('```json\n{"relevantIds": ["9"]}\n```') == ["9"]
    assert parse_relevant_ids('Sure! {"relevantIds": []} Hope that helps.') == []
    with pytest.raises(ValueError):
        parse_relevant_ids('{"ids": ["1"]}')


def test_disabled_filter_returns_pre_filtered_ids(make_config):
    relevance = RelevanceFilter(make_config(ai_filter={"enabled": False}))
    assert relevance.filter_relevant("profile", POSTINGS, RULES) == {"11111111", "44444444"}


def test_model_answer_is_applied(make_config, monkeypatch):
    relevance = RelevanceFilter(make_config(ai_filter={"enabled": True}))
    monkeypatch.setattr(relevance, "_generate", lambda prompt: '{"relevantIds": ["44444444", "99999999"]}')
    assert relevance.filter_relevant("profile", POSTINGS, RULES) == {"44444444"}


def test_backend_failure_fails_open(make_config, monkeypatch):
    relevance = RelevanceFilter(make_config(ai_filter={"enabled": True, "timeout_seconds": 1}))

    def timeout(prompt):
        raise TimeoutError("timed out")

    monkeypatch.setattr(relevance, "_generate", timeout)
    assert relevance.filter_relevant("profile", POSTINGS, RULES) == {"11111111", "44444444"}


def test_unknown_backend_falls_back_to_ollama(make_config):
    relevance = RelevanceFilter(make_config(ai_filter={"enabled": True, "backend": "openai"}))
    assert relevance.backend == "ollama"


def test_groq_without_key_fails_open(make_config, monkeypatch):
    monkeypatch.delenv("GROQ_API_KEY", raising=False)
    relevance = RelevanceFilter(make_config(ai_filter={"enabled": True, "backend": "groq"}))
    assert relevance.filter_relevant("profile", POSTINGS[:1], RULES) == {"11111111"}


def test_empty_input():
    class _Config:
        def is_ai_enabled(self): return True
        def get_ai_backend(self): return "ollama"
        def get_ai_model(self): return "llama3.1:8b"
        def get_ai_timeout_seconds(self): return 5.0
        def get_ai_debug(self): return False

    assert RelevanceFilter(_Config()).filter_relevant("profile", [], RULES) == set()
