"""Regression tests for text helpers."""

from storefront_search.text import auto_fuzziness, edit_distance, fold, fuzzy_match, normalize_query, tokenize


def test_normalize_query_collapses_whitespace():
    assert normalize_query("  face   serum ") == "face serum"
    assert normalize_query(None) == ""


def test_fold_strips_accents_and_case():
    assert fold("Crème BRÛLÉE") == "creme brulee"


def test_tokenize_splits_on_punctuation():
    assert tokenize("Lash-Lab Volume, 10ml") == ["lash", "lab", "volume", "10ml"]


def test_auto_fuzziness_scales_with_length():
    assert auto_fuzziness("ab") == 0
    assert auto_fuzziness("serm") == 1
    assert auto_fuzziness("lipstik") == 2


def test_edit_distance_counts_transpositions_once():
    assert edit_distance("lipstick", "lipstik") == 1
    assert edit_distance("serum", "sreum") == 1
    assert edit_distance("abc", "xyz") == 3
    assert edit_distance("abcdef", "a", limit=2) == 3


def test_fuzzy_match_respects_prefix_length():
    assert fuzzy_match("lipstik", "lipstick")
    assert fuzzy_match("serm", "seru", prefix_length=1)
    assert not fuzzy_match("kerum", "serum", prefix_length=1)
    assert not fuzzy_match("ab", "ac")
