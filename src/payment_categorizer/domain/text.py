import re

from sklearn.feature_extraction.text import CountVectorizer, strip_accents_unicode

_WHITESPACE_RE = re.compile(r"\s+")
_PAYEE_DROP_RE = re.compile(r"[^\w\s]|_")

# Lowercase, strip accents, split on anything that is not a letter or digit and
# keep tokens of two or more characters.
_analyzer = CountVectorizer(
    lowercase=True,
    strip_accents="unicode",
    token_pattern=r"(?u)[^\W_]{2,}",
).build_analyzer()


def tokenize(text: str | None) -> list[str]:
    if not text or not text.strip():
        return []
    return _analyzer(text)


def normalize_payee(payee: str | None) -> str | None:
    """Key form of a payee name: case, accents, punctuation and spacing insensitive.

    Returns None when nothing meaningful is left.
    """
    if payee is None:
        return None
    text = strip_accents_unicode(payee.lower())
    text = _PAYEE_DROP_RE.sub("", text)
    text = _WHITESPACE_RE.sub(" ", text).strip()
    return text or None


def normalize_iban(iban: str | None) -> str | None:
    if iban is None:
        return None
    compact = _WHITESPACE_RE.sub("", iban).upper()
    return compact or None
