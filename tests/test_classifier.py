"""Tests for classifier.py — H1B sponsorship confidence scoring."""

import pytest

from classifier import classify


def test_explicit_sponsorship_is_confident():
    result = classify("We sponsor H1B visas for all engineers")
    assert result.confidence >= 0.6
    assert "h1b visa" in result.matched_keywords


def test_citizens_only_scores_low():
    result = classify("US Citizens only, no visa sponsorship")
    assert result.confidence < 0.3
    assert "us citizens only" in result.negative_indicators
    assert "no visa sponsorship" in result.negative_indicators


def test_deterministic():
    text = "Visa sponsorship available for international candidates."
    assert classify(text, "Engineer", "Acme") == classify(text, "Engineer", "Acme")


def test_empty_text_raises():
    with pytest.raises(ValueError):
        classify("")


def test_neutral_text_is_midpoint():
    """No signals at all maps a zero score to 0.5."""
    result = classify("Build APIs and data pipelines in Python.")
    assert result.confidence == 0.5
    assert result.matched_keywords == []
    assert result.total_score == 0.0


def test_known_sponsor_bonus():
    plain = classify("Build APIs in Python.", employer_name="Acme Corp")
    known = classify("Build APIs in Python.", employer_name="Google LLC")
    assert known.confidence == pytest.approx(plain.confidence + 0.1)


def test_title_is_searched():
    result = classify("Backend role.", job_title="Engineer - H1B Sponsorship")
    assert "h1b sponsorship" in result.matched_keywords
    assert result.explicit_matches >= 1


def test_pattern_bonus_counts_as_implicit():
    """'visa ... support' phrasing hits a pattern, not the keyword table."""
    result = classify("We provide visa and relocation support.")
    assert result.explicit_matches == 0
    assert result.implicit_matches == 1
    assert result.total_score == pytest.approx(0.3)
    assert result.confidence == pytest.approx(0.65)


def test_patterns_do_not_span_lines():
    same_line = classify("We sponsor many roles, H1B holders welcome.")
    split = classify("We sponsor many roles.\nH1B holders welcome.")

    assert same_line.total_score == pytest.approx(0.3)
    assert split.total_score == 0
    assert split.implicit_matches == 0


def test_negative_without_explicit_penalised():
    result = classify("Candidates must be authorized to work in the US.")
    # (-0.3 + 1) / 2 = 0.35, minus 0.3 for one negative phrase
    assert result.confidence == pytest.approx(0.05)
    assert result.negative_matches == 1


def test_negative_with_explicit_not_penalised():
    result = classify("H1B sponsorship available. Must be authorized to work after transfer.")
    assert result.explicit_matches >= 1
    assert result.negative_matches == 1
    assert result.confidence >= 0.6


def test_confidence_clamped_to_unit_interval():
    text = "H1B sponsorship, visa sponsorship, will sponsor h1b, h1b friendly, immigration sponsorship"
    assert classify(text).confidence == 1.0
    negative = "No sponsorship. US citizens only. No visa sponsorship."
    assert classify(negative).confidence == 0.0


def test_analysis_details():
    result = classify("Work authorization support provided.")
    details = result.analysis_details
    assert set(details) == {"explicit_matches", "implicit_matches", "negative_matches", "total_score"}
