import pytest

from config_loader import ConfigLoader, ConfigValidationError, load_config


def test_defaults_when_sections_missing(tmp_path):
    config = ConfigLoader.from_dict({"search": {"keywords": ["sre"]}})
    assert config.get_interval_minutes() == 2
    assert config.get_max_minutes_ago() == 10
    assert config.get_max_consecutive_errors() == 5
    assert config.get_error_pause_minutes() == 30
    assert config.get_navigation_delay() == (2.0, 5.0)
    assert config.get_click_delay() == (1.0, 3.0)
    assert config.get_geo_id() == "103644278"
    assert config.get_location() == "United States"
    assert config.is_headless() is True
    assert config.validate() == []


def test_load_yaml_file(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text(
        "search:\n  keywords: ['backend engineer', '  ']\n  locations: ['Canada']\n"
        "scraper:\n  interval_minutes: 5\n",
        encoding="utf-8",
    )
    config = load_config(str(path))
    assert config.get_keywords() == ["backend engineer"]
    assert config.get_location() == "Canada"
    assert config.get_interval_minutes() == 5


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "nope.yaml"))


@pytest.mark.parametrize(
    "data",
    [
        {"scraper": {"interval_minutes": 0}},
        {"scraper": {"max_consecutive_errors": -1}},
        {"browser": {"navigation_delay_min": 6, "navigation_delay_max": 2}},
        {"browser": {"click_delay_min": -1}},
        {"ai_filter": {"timeout_seconds": 0}},
    ],
)
def test_invalid_values_are_rejected(data):
    with pytest.raises(ConfigValidationError):
        ConfigLoader.from_dict(data)


def test_validate_itemizes_blocking_problems(monkeypatch):
    monkeypatch.delenv("GROQ_API_KEY", raising=False)
    config = ConfigLoader.from_dict({"ai_filter": {"enabled": True, "backend": "groq"}})
    errors = config.validate()
    assert len(errors) == 3
    assert any("keywords" in e for e in errors)
    assert any("GROQ_API_KEY" in e for e in errors)
    assert any("profile summary" in e for e in errors)


def test_profile_summary_from_file(tmp_path):
    summary = tmp_path / "profile.md"
    summary.write_text("Backend engineer, Python\n", encoding="utf-8")
    config = ConfigLoader.from_dict({"profile": {"summary_file": str(summary)}})
    assert config.get_profile_summary() == "Backend engineer, Python"


def test_preference_rules_default_to_empty_lists():
    rules = ConfigLoader.from_dict({}).get_preference_rules()
    assert rules == {"target_seniority": [], "exclude_title_keywords": [], "preferred_tech_stack": []}
