"""Text normalization for post similarity.

Turns the free-text fields of a post into a flat, lowercase token string.
The document builder repeats fields to weight them: title x3, anime name x2,
tags x2, body x1 (body capped at the first 200 tokens so one long review
cannot dominate the term model).
"""

import re

STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "is", "are", "was", "were",
    "be", "been", "being", "have", "has", "had", "do", "does", "did",
    "will", "would", "should", "could", "may", "might", "must", "can",
    "of", "to", "in", "for", "on", "with", "at", "by", "from", "as",
    "this", "that", "these", "those", "it", "its", "i", "you", "he",
    "she", "they", "we", "him", "her", "them", "us", "anime", "episode",
})

MIN_TOKEN_LENGTH = 3
MAX_BODY_TOKENS = 200

TITLE_REPEAT = 3
ANIME_REPEAT = 2
TAGS_REPEAT = 2

_HTML_TAG_RE = re.compile(r"<[^>]*>")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")


def preprocess(text: str | None) -> str:
    """Strip HTML, lowercase, and drop stop words and tokens shorter than 3 chars."""
    if not text:
        return ""

    cleaned = _HTML_TAG_RE.sub(" ", str(text)).lower()
    cleaned = _NON_ALNUM_RE.sub(" ", cleaned)

    return " ".join(
        token for token in cleaned.split()
        if len(token) >= MIN_TOKEN_LENGTH and token not in STOP_WORDS
    )


def compose_document(post) -> str:
    """Build the weighted text document for one post."""
    parts: list[str] = []

    if post.title:
        title_text = preprocess(post.title)
        parts.extend([title_text] * TITLE_REPEAT)

    if post.anime_name:
        anime_text = preprocess(post.anime_name)
        parts.extend([anime_text] * ANIME_REPEAT)

    if post.tags:
        tags_text = preprocess(" ".join(str(tag) for tag in post.tags))
        parts.extend([tags_text] * TAGS_REPEAT)

    body = preprocess(post.excerpt or post.content or "")
    parts.append(" ".join(body.split()[:MAX_BODY_TOKENS]))

    # Empty fields leave gaps; collapse so the document is single-spaced.
    return " ".join(" ".join(parts).split())
