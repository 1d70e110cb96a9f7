"""Tests for the relevance scorer."""
import pytest

from sflibrary.catalog.scoring import normalize, score


def test_normalize_folds_case_and_diacritics():
    assert normalize("  Karel Čapek ") == "karel capek"
    assert normalize("STANISŁAW") == "stanisław"  # ł has no decomposition
    assert normalize("Jérôme") == "jerome"
    assert normalize(None) == ""


@pytest.mark.parametrize("text", ["Dune", "  the left hand of darkness ", "Éric Frank Russell"])
def test_exact_match_scores_100(text):
    assert score(text, text) == 100


@pytest.mark.parametrize("query", ["", "   ", "\t\n"])
def test_blank_query_scores_zero(query):
    assert score(query, "Foundation") == 0
    assert score(query, "") == 0


def test_tiers():
    assert score("found", "Foundation") == 80
    assert score("asimov", "Isaac Asimov") == 65
    assert score("dation", "Foundation") == 45
    assert score("heinlein", "Foundation") == 0


def test_match_ignores_accents_and_case():
    assert score("capek", "Karel Čapek") == 65
    assert score("CAPEK", "čapek") == 100


def test_prefix_takes_precedence_over_word_prefix():
    assert score("asimov", "Asimov, Isaac") == 80


def test_missing_candidate_scores_zero():
    assert score("dune", None) == 0
