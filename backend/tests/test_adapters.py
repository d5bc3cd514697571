from rentalscout.search.adapters import PHRASE_BONUS, lexical_score, query_terms


def test_query_terms_drop_stopwords_numbers_and_duplicates():
    assert query_terms("Find me a 2 bedroom apartment in Manhattan under 500, apartment!") == [
        "bedroom", "apartment", "manhattan",
    ]


def test_query_terms_empty():
    assert query_terms(None) == []
    assert query_terms("in the of") == []


def test_lexical_score_is_case_insensitive_and_weighted():
    row = {"name": "Cozy LOFT", "summary": "loft in Brooklyn", "description": "", "neighborhood_overview": None}
    # name: loft (3) ; summary: loft + brooklyn (2 * 2)
    assert lexical_score(row, ["loft", "brooklyn"]) == 7.0


def test_lexical_score_matches_substrings():
    assert lexical_score({"name": "Two bedrooms"}, ["bedroom"]) == 3.0


def test_phrase_bonus():
    row = {"name": "ocean view studio"}
    assert lexical_score(row, ["ocean", "view"], "ocean view") == 6.0 + PHRASE_BONUS


def test_no_terms_scores_zero():
    assert lexical_score({"name": "anything"}, []) == 0.0
