"""Comment moderation and the admin-managed moderation settings."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from better_profanity import profanity
from sqlalchemy.orm import Session

from .. import models, settings

logger = logging.getLogger(__name__)

# Load default censor words on module import
profanity.load_censor_words()

PROFANITY_LIST_KEY = "profanity_list"
SPAM_INDICATORS_KEY = "spam_indicators"

DEFAULT_PROFANITY_LIST = [
    "f***", "s***", "b****", "c***", "d***", "p***", "t***", "w***",
    "f*ck", "sh*t", "a**hole", "b*tch", "c*nt", "d*ck", "p*ssy", "t*ts", "wh*re",
    "fck", "sht", "btch", "cnt", "dck", "pssy", "whre",
    "n***er", "n*gger", "f*ggot", "f*gg*t", "k*ke", "sp*c", "ch*nk", "g**k",
]

DEFAULT_SPAM_INDICATORS = [
    "buy now", "click here", "free money", "make money fast", "earn cash",
    "work from home", "get rich quick", "lottery winner", "inheritance",
    "viagra", "cialis", "weight loss", "diet pills", "casino", "poker",
    "bitcoin", "crypto", "investment opportunity", "limited time offer",
]

EXCESSIVE_PUNCTUATION = [
    re.compile(r"!{3,}"),
    re.compile(r"\?{3,}"),
    re.compile(r"\.{4,}"),
    re.compile(r"[A-Z]{10,}"),
]
LINK_RE = re.compile(r"https?://\S+")

MAX_LINKS = 2
MIN_WORDS_FOR_REPETITION_CHECK = 5
MIN_UNIQUE_WORD_RATIO = 0.3
MAX_UPPERCASE_RATIO = 0.7

# Reasons (prefixes; some carry a ": details" suffix)
REASON_PROFANITY = "Contains inappropriate language"
REASON_SPAM = "Contains spam indicators"
REASON_PUNCTUATION = "Contains excessive punctuation or capitalization"
REASON_REPETITION = "Contains excessive word repetition"
REASON_SHOUTING = "Contains excessive capitalization (shouting)"
REASON_LINKS = "Contains too many links"
REASON_TOO_SHORT = "Comment is too short"
REASON_TOO_LONG = "Comment is too long"

REJECTION_REASONS = (
    REASON_PROFANITY,
    REASON_SPAM,
    REASON_REPETITION,
    REASON_LINKS,
    REASON_TOO_SHORT,
    REASON_TOO_LONG,
)

MODERATION_MESSAGES = {
    REASON_PROFANITY: "Your comment contained inappropriate language and has been filtered.",
    REASON_SPAM: "Your comment appears to be spam and has been filtered.",
    REASON_PUNCTUATION: "Your comment contained excessive punctuation or capitalization and has been cleaned up.",
    REASON_REPETITION: "Your comment contained excessive repetition and has been filtered.",
    REASON_SHOUTING: "Your comment was written in all caps and has been converted to proper case.",
    REASON_LINKS: "Your comment contained too many links and has been filtered.",
    REASON_TOO_SHORT: "Your comment is too short. Please write a meaningful comment.",
    REASON_TOO_LONG: f"Your comment is too long. Please keep it under {settings.COMMENT_MAX_LENGTH} characters.",
}


@dataclass
class ModerationResult:
    is_clean: bool
    filtered_content: str
    original_content: str
    reasons: list[str] = field(default_factory=list)


# ============================================================================
# SETTINGS
# ============================================================================


def get_moderation_setting(db: Session, key: str) -> Any | None:
    row = db.query(models.ModerationSetting).filter(models.ModerationSetting.key == key).first()
    return row.value if row else None


def set_moderation_setting(db: Session, key: str, value: Any) -> models.ModerationSetting:
    row = db.query(models.ModerationSetting).filter(models.ModerationSetting.key == key).first()
    if row is None:
        row = models.ModerationSetting(key=key, value=value)
        db.add(row)
    else:
        row.value = value
        row.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(row)
    logger.info(f"Moderation setting '{key}' updated")
    return row


def get_all_moderation_settings(db: Session) -> dict[str, Any]:
    """Stored settings merged over the built-in defaults."""
    stored = {row.key: row.value for row in db.query(models.ModerationSetting).all()}
    return {
        PROFANITY_LIST_KEY: DEFAULT_PROFANITY_LIST,
        SPAM_INDICATORS_KEY: DEFAULT_SPAM_INDICATORS,
        **stored,
    }


def _word_list(db: Session, key: str, default: list[str]) -> list[str]:
    value = get_moderation_setting(db, key)
    if isinstance(value, list):
        return [str(item) for item in value if str(item).strip()]
    return default


# ============================================================================
# MODERATION
# ============================================================================


def _word_pattern(word: str) -> re.Pattern:
    return re.compile(rf"(?<!\w){re.escape(word)}(?!\w)", re.IGNORECASE)


def moderate_comment(db: Session, content: str) -> ModerationResult:
    """
    Check a comment against the moderation rules.

    ``filtered_content`` holds a cleaned-up version (profanity masked,
    punctuation runs shortened, shouting lowered) when any rule matched.
    """
    filtered = content
    reasons: list[str] = []

    profanity_list = _word_list(db, PROFANITY_LIST_KEY, DEFAULT_PROFANITY_LIST)
    found = [word for word in profanity_list if _word_pattern(word).search(content)]
    if found or profanity.contains_profanity(content):
        detail = f": {', '.join(found)}" if found else ""
        reasons.append(f"{REASON_PROFANITY}{detail}")
        for word in found:
            filtered = _word_pattern(word).sub("*" * len(word), filtered)
        filtered = profanity.censor(filtered)

    lower = content.lower()
    spam = [phrase for phrase in _word_list(db, SPAM_INDICATORS_KEY, DEFAULT_SPAM_INDICATORS) if phrase.lower() in lower]
    if spam:
        reasons.append(f"{REASON_SPAM}: {', '.join(spam)}")

    if any(pattern.search(content) for pattern in EXCESSIVE_PUNCTUATION):
        reasons.append(REASON_PUNCTUATION)
        filtered = re.sub(r"!{3,}", "!!", filtered)
        filtered = re.sub(r"\?{3,}", "??", filtered)
        filtered = re.sub(r"\.{4,}", "...", filtered)
        filtered = re.sub(r"([A-Z])\1{9,}", lambda m: m.group(1) * 3, filtered)

    words = content.split()
    if len(words) > MIN_WORDS_FOR_REPETITION_CHECK:
        unique = {w.lower() for w in words}
        if len(unique) / len(words) < MIN_UNIQUE_WORD_RATIO:
            reasons.append(REASON_REPETITION)

    if len(content) > 10:
        upper = sum(1 for ch in content if "A" <= ch <= "Z")
        if upper / len(content) > MAX_UPPERCASE_RATIO:
            reasons.append(REASON_SHOUTING)
            filtered = filtered.lower().capitalize()

    if len(LINK_RE.findall(content)) > MAX_LINKS:
        reasons.append(REASON_LINKS)

    if len(content.strip()) < settings.COMMENT_MIN_LENGTH:
        reasons.append(REASON_TOO_SHORT)
    if len(content) > settings.COMMENT_MAX_LENGTH:
        reasons.append(REASON_TOO_LONG)

    is_clean = not reasons
    return ModerationResult(
        is_clean=is_clean,
        filtered_content=content if is_clean else filtered,
        original_content=content,
        reasons=reasons,
    )


def _base_reason(reason: str) -> str:
    return reason.split(":", 1)[0]


def should_reject_comment(reasons: list[str]) -> bool:
    return any(_base_reason(reason) in REJECTION_REASONS for reason in reasons)


def get_moderation_message(reasons: list[str]) -> str:
    """User-facing explanation for the first reason."""
    if not reasons:
        return ""
    return MODERATION_MESSAGES.get(
        _base_reason(reasons[0]), "Your comment has been filtered due to community guidelines."
    )
