import json

import pytest

from conversation_monitor.services.analysis_config import (
    DEFAULT_MENTION_TYPE_RULES,
    DEFAULT_TOPIC_RULES,
    AnalysisConfig,
    load_analysis_config,
    merge_analysis_config,
    parse_mention_type_rules,
    parse_topic_rules,
)


def test_defaults_cover_both_lexicon_polarities():
    config = AnalysisConfig()
    assert config.sentiment_weights["great"] == pytest.approx(0.1)
    assert config.sentiment_weights["poor"] == pytest.approx(-0.1)
    assert [rule.mention_type for rule in config.mention_type_rules] == ["recommendation", "comparison", "indirect"]
    assert config.default_mention_type == "direct"


def test_merge_replaces_only_provided_sections():
    config = merge_analysis_config({
        "sentiment": {"positive": ["Solid"], "negative": {"meh": -0.3}},
    })

    assert config.sentiment_weights == {"solid": pytest.approx(0.1), "meh": pytest.approx(-0.3)}
    assert config.mention_type_rules == DEFAULT_MENTION_TYPE_RULES
    assert config.topic_rules == DEFAULT_TOPIC_RULES


def test_merge_with_no_overrides_returns_defaults():
    assert merge_analysis_config(None) == AnalysisConfig()


def test_mention_type_rules_keep_declared_order():
    rules = parse_mention_type_rules([
        {"mention_type": "comparison", "cues": ["Head To Head"]},
        {"mention_type": "recommendation", "cues": ["go with"]},
    ])
    assert [rule.mention_type for rule in rules] == ["comparison", "recommendation"]
    assert rules[0].cues == ("head to head",)
    assert rules[0].matches("a head to head review")


def test_topic_relevance_must_be_a_probability():
    with pytest.raises(ValueError):
        parse_topic_rules([{"name": "X", "category": "Y", "relevance": 1.5, "triggers": ["x"]}])


def test_blank_trigger_is_rejected():
    with pytest.raises(ValueError):
        parse_topic_rules([{"name": "X", "category": "Y", "relevance": 0.5, "triggers": ["  "]}])


def test_load_from_json_file(tmp_path):
    path = tmp_path / "analysis.json"
    path.write_text(json.dumps({
        "default_mention_type": "direct",
        "topics": [{"name": "Payments", "category": "Finance", "relevance": 0.7, "triggers": ["billing"]}],
    }))

    config = load_analysis_config(str(path))

    assert [rule.name for rule in config.topic_rules] == ["Payments"]
    assert config.sentiment_weights == AnalysisConfig().sentiment_weights


def test_load_without_path_returns_defaults():
    assert load_analysis_config(None) == AnalysisConfig()


def test_load_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_analysis_config(str(tmp_path / "missing.json"))
