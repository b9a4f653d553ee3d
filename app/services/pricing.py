"""Word-count pricing: how many credits one originality scan costs."""

from app.core.exceptions import EmptyDocumentError

# (inclusive upper word bound, credits); anything above the last bound costs MAX_CREDITS
TIERS = ((3000, 1), (6000, 2))
MAX_CREDITS = 3

# Flat price for services that are not priced by length
FLAT_UPLOAD_CREDITS = 1


def count_words(text: str) -> int:
    """Whitespace-delimited tokens; runs of whitespace count once."""
    return len(text.split())


def required_credits(word_count: int) -> int:
    if word_count <= 0:
        raise EmptyDocumentError()
    for upper, credits in TIERS:
        if word_count <= upper:
            return credits
    return MAX_CREDITS


def flat_credits(word_count: int) -> int:
    if word_count <= 0:
        raise EmptyDocumentError()
    return FLAT_UPLOAD_CREDITS
