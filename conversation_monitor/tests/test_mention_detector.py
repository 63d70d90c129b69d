"""
Tests for MentionDetector: whole-word matching, scoring and classification

Run with: pytest conversation_monitor/tests/test_mention_detector.py -v
"""

import pytest

from conversation_monitor.services.analysis_config import AnalysisConfig
from conversation_monitor.services.mention_detector import (
    MentionDetector,
    fold_case,
    score_relevance,
    score_sentiment,
    search_terms,
    sentiment_label_for,
)


@pytest.fixture
def detector():
    return MentionDetector(config=AnalysisConfig())


def test_detects_brand_and_keyword_matches_with_positive_sentiment(detector):
    """Overlapping terms are scanned independently, grouped by term order"""
    text = "TechCorp is great and TechCorp AI is the best choice"

    mentions = detector.detect(text, ["TechCorp", "TechCorp AI"])

    assert [(m.term, m.position) for m in mentions] == [
        ("TechCorp", 0),
        ("TechCorp", 22),
        ("TechCorp AI", 22),
    ]
    assert [m.mention_text for m in mentions] == ["TechCorp", "TechCorp", "TechCorp AI"]
    for mention in mentions:
        assert mention.context == text
        assert mention.sentiment_score == pytest.approx(0.2)
        assert mention.sentiment_label == "positive"
        assert mention.mention_type == "direct"
        assert mention.confidence == pytest.approx(0.8)

    assert mentions[0].relevance_score == pytest.approx(0.7)
    assert mentions[2].relevance_score == pytest.approx(0.8)


def test_term_inside_longer_word_is_not_a_mention(detector):
    assert detector.detect("I use MyTechCorporation daily", ["TechCorp"]) == []


@pytest.mark.parametrize(
    "text,expected_positions",
    [
        ("Try TechCorp, it's fine.", [4]),
        ("(TechCorp)", [1]),
        ("TechCorp_v2 is out", []),
        ("TechCorp2 is out", []),
        ("techcorp rocks", [0]),
        ("TechCorp", [0]),
    ],
)
def test_whole_word_boundaries(detector, text, expected_positions):
    assert [m.position for m in detector.detect(text, ["TechCorp"])] == expected_positions


def test_mention_text_keeps_original_casing(detector):
    mentions = detector.detect("We moved to TECHCORP last year", ["TechCorp"])
    assert mentions[0].mention_text == "TECHCORP"
    assert mentions[0].term == "TechCorp"


def test_rejected_candidates_count_toward_the_scan_cap():
    detector = MentionDetector(config=AnalysisConfig(), max_matches_per_term=3)
    text = "TechCorpX TechCorp TechCorp TechCorp"

    mentions = detector.detect(text, ["TechCorp"])

    assert [m.position for m in mentions] == [10, 19]


def test_scan_cap_bounds_large_inputs():
    detector = MentionDetector(config=AnalysisConfig(), max_matches_per_term=100)
    mentions = detector.detect("TechCorp " * 150, ["TechCorp"])
    assert len(mentions) == 100


def test_context_window_is_clipped_to_radius(detector):
    text = "x" * 100 + " TechCorp " + "y" * 100

    mention = detector.detect(text, ["TechCorp"])[0]

    assert mention.position == 101
    assert mention.context == text[51:159]


@pytest.mark.parametrize(
    "text,expected_type",
    [
        ("We recommend TechCorp versus the rest", "recommendation"),
        ("You should consider TechCorp", "recommendation"),
        ("TechCorp vs Rival for small teams", "comparison"),
        ("TechCorp is better than Rival", "comparison"),
        ("Tools such as TechCorp help", "indirect"),
        ("TechCorp ships weekly", "direct"),
    ],
)
def test_mention_type_first_matching_rule_wins(detector, text, expected_type):
    assert detector.detect(text, ["TechCorp"])[0].mention_type == expected_type


def test_matched_term_itself_is_not_a_cue(detector):
    """A brand named after a cue word is still a direct mention"""
    mentions = detector.detect("Versus Labs makes tools", ["Versus Labs"])
    assert mentions[0].mention_type == "direct"


def test_negative_sentiment(detector):
    mention = detector.detect("TechCorp support is terrible and the docs are poor", ["TechCorp"])[0]
    assert mention.sentiment_score == pytest.approx(-0.2)
    assert mention.sentiment_label == "negative"


def test_single_lexicon_hit_stays_neutral(detector):
    mention = detector.detect("TechCorp is good", ["TechCorp"])[0]
    assert mention.sentiment_score == pytest.approx(0.1)
    assert mention.sentiment_label == "neutral"


def test_mixed_case_lexicon_words_still_match():
    detector = MentionDetector(config=AnalysisConfig(sentiment_weights={"Solid": 0.5}))
    mention = detector.detect("TechCorp is SOLID", ["TechCorp"])[0]
    assert mention.sentiment_score == pytest.approx(0.5)
    assert mention.sentiment_label == "positive"


def test_every_occurrence_counts_toward_sentiment(detector):
    mention = detector.detect("TechCorp is great, great, great", ["TechCorp"])[0]
    assert mention.sentiment_score == pytest.approx(0.3)


def test_sentiment_is_clamped():
    detector = MentionDetector(config=AnalysisConfig(), context_radius=200)
    mention = detector.detect("TechCorp " + "best " * 15, ["TechCorp"])[0]
    assert mention.sentiment_score == pytest.approx(1.0)


@pytest.mark.parametrize(
    "score,label",
    [(0.5, "positive"), (0.11, "positive"), (0.1, "neutral"), (0.0, "neutral"),
     (-0.1, "neutral"), (-0.11, "negative"), (-1.0, "negative")],
)
def test_sentiment_label_thresholds(score, label):
    assert sentiment_label_for(score) == label


def test_custom_lexicon_is_used():
    detector = MentionDetector(config=AnalysisConfig(sentiment_weights={"solid": 0.5}))
    mention = detector.detect("TechCorp is solid and great", ["TechCorp"])[0]
    assert mention.sentiment_score == pytest.approx(0.5)
    assert mention.sentiment_label == "positive"


def test_default_confidence_is_overridable():
    detector = MentionDetector(config=AnalysisConfig(), default_confidence=0.55)
    assert detector.detect("TechCorp", ["TechCorp"])[0].confidence == pytest.approx(0.55)


def test_confidence_estimator_is_clamped():
    detector = MentionDetector(config=AnalysisConfig(), confidence_estimator=lambda context, term: 1.7)
    assert detector.detect("TechCorp", ["TechCorp"])[0].confidence == pytest.approx(1.0)


def test_detection_is_idempotent(detector):
    text = "We recommend TechCorp. TechCorp AI is amazing, but TechCorp support is poor."
    terms = ["TechCorp", "TechCorp AI"]

    first = detector.detect(text, terms)
    second = detector.detect(text, terms)

    assert first == second
    assert [m.to_dict() for m in first] == [m.to_dict() for m in second]


def test_malformed_terms_are_skipped(detector):
    mentions = detector.detect("TechCorp works", ["TechCorp", None, "", "   ", 42])
    assert len(mentions) == 1


def test_empty_text_yields_nothing(detector):
    assert detector.detect("", ["TechCorp"]) == []


def test_search_terms_dedupes_case_insensitively():
    terms = search_terms("TechCorp", ["techcorp", " TechCorp AI ", "", None, 42, "TECHCORP ai"])
    assert terms == ["TechCorp", "TechCorp AI"]


def test_search_terms_without_keywords():
    assert search_terms("TechCorp", None) == ["TechCorp"]
    assert search_terms(None, ["Widget"]) == ["Widget"]


def test_score_helpers():
    assert score_sentiment("great but terrible", {"great": 0.1, "terrible": -0.1}) == pytest.approx(0.0)
    assert score_relevance("TechCorp and TechCorp again", "TechCorp") == pytest.approx(0.7)
    assert score_relevance(" ".join(["TechCorp"] * 10), "TechCorp") == pytest.approx(1.0)


def test_fold_case_preserves_length():
    text = "İstanbul TechCorp"
    assert len(fold_case(text)) == len(text)
    assert fold_case(text).endswith("techcorp")
