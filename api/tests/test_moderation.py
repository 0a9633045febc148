from __future__ import annotations

import pytest

from cities_collective.services import moderation
from cities_collective.services.moderation import (
    REASON_LINKS,
    REASON_PROFANITY,
    REASON_PUNCTUATION,
    REASON_REPETITION,
    REASON_SHOUTING,
    REASON_SPAM,
    REASON_TOO_LONG,
    REASON_TOO_SHORT,
    moderate_comment,
    should_reject_comment,
)


def _base(reasons):
    return [reason.split(":", 1)[0] for reason in reasons]


def test_clean_comment(db):
    result = moderate_comment(db, "Great road layout and tidy districts")

    assert result.is_clean is True
    assert result.reasons == []
    assert result.filtered_content == result.original_content


@pytest.mark.parametrize(
    "content,reason",
    [
        ("Click here for the best deals", REASON_SPAM),
        ("This city is shit honestly", REASON_PROFANITY),
        ("nice nice nice nice nice nice nice", REASON_REPETITION),
        ("see http://a.test http://b.test http://c.test", REASON_LINKS),
        ("ok", REASON_TOO_SHORT),
        ("x" * 1001, REASON_TOO_LONG),
    ],
)
def test_rejecting_rules(db, content, reason):
    result = moderate_comment(db, content)

    assert reason in _base(result.reasons)
    assert should_reject_comment(result.reasons) is True


def test_excessive_punctuation_is_cleaned_not_rejected(db):
    result = moderate_comment(db, "Best city ever!!!! Really???")

    assert _base(result.reasons) == [REASON_PUNCTUATION]
    assert result.filtered_content == "Best city ever!! Really??"
    assert should_reject_comment(result.reasons) is False


def test_shouting_is_lowered(db):
    result = moderate_comment(db, "THIS CITY IS GREAT")

    assert REASON_SHOUTING in result.reasons
    assert result.filtered_content == "This city is great"
    assert should_reject_comment(result.reasons) is False


def test_profanity_is_masked(db):
    result = moderate_comment(db, "what the shit")

    assert "shit" not in result.filtered_content
    assert "*" in result.filtered_content


def test_custom_spam_list(db):
    moderation.set_moderation_setting(db, moderation.SPAM_INDICATORS_KEY, ["visit my channel"])

    assert REASON_SPAM in _base(moderate_comment(db, "Please visit my channel for more").reasons)
    # defaults are replaced, not extended
    assert moderate_comment(db, "Click here for the best deals").is_clean is True


def test_moderation_message():
    assert moderation.get_moderation_message([]) == ""
    assert "spam" in moderation.get_moderation_message([f"{REASON_SPAM}: casino"])
