import re
from typing import Iterable, Optional, Set

_WHITESPACE = re.compile(r"\s+")

# Plural-looking names that must not lose their trailing "s"
_KEEP_AS_IS = {"presales"}


def normalize(value: Optional[str]) -> str:
    """
    Canonicalize a department name for equality comparison.

    Must be applied to both sides of every comparison: the stored project tags
    and the requester's department.
    """
    if not value:
        return ""
    text = _WHITESPACE.sub(" ", value.strip()).lower()
    if text in _KEEP_AS_IS:
        return text
    # Only a plural "s" on a word is dropped: not "ss" ("business"), not a lone "s".
    # normalize(normalize(x)) == normalize(x) depends on this.
    if len(text) > 3 and text.endswith("s") and text[-2] not in "s ":
        return text[:-1]
    return text


def normalize_all(values: Iterable[Optional[str]]) -> Set[str]:
    """Normalize a collection of tags, dropping the ones that end up empty."""
    return {n for n in (normalize(v) for v in values) if n}
