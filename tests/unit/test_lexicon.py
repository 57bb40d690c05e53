"""Unit tests for lexical persona classifiers."""

from personasim.persona import lexicon


def test_terms_match_whole_words_only():
    assert lexicon.count_terms("I booked a room in the capital", ["ok", "api"]) == 0
    assert lexicon.count_terms("The API and DNS are fine, ok?", ["ok", "api", "dns"]) == 3


def test_count_terms_counts_distinct_terms():
    assert lexicon.count_terms("dns dns dns", lexicon.TECHNICAL_TERMS) == 1


def test_phrases_and_curly_apostrophes():
    assert lexicon.contains_any("I don’t understand this", ["don't understand"])
    assert lexicon.contains_any("Could you please help", lexicon.FORMAL_MARKERS)


def test_detect_emotional_state_order():
    assert lexicon.detect_emotional_state("This is broken and ridiculous") == "frustrated"
    assert lexicon.detect_emotional_state("This is unacceptable") == "angry"
    assert lexicon.detect_emotional_state("I'm not sure what that means") == "confused"
    assert lexicon.detect_emotional_state("Thanks, that's perfect") == "calm"
    assert lexicon.detect_emotional_state("The printer is on the second floor") == "neutral"


def test_detect_response_pattern():
    assert lexicon.detect_response_pattern("But I already did that?") == "questioning"
    assert lexicon.detect_response_pattern("But I already did that") == "reporting_attempts"
    assert lexicon.detect_response_pattern("Sure, let me check") == "cooperative"
    assert lexicon.detect_response_pattern("However, it did not help") == "resistant"
    assert lexicon.detect_response_pattern("It shows a blue screen") == "informative"


def test_allowed_transitions_include_self():
    for state, allowed in lexicon.ALLOWED_TRANSITIONS.items():
        assert state in allowed
    assert "angry" not in lexicon.ALLOWED_TRANSITIONS["calm"]
