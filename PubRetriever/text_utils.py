from __future__ import annotations

import urllib.parse
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, TypeVar

from unidecode import unidecode

from .exceptions import PARSE_ERRORS, DECODE_ERRORS

T = TypeVar("T")

__all__ = [
    "build_url",
    "strip_accents",
    "split_fore_name",
    "safe_get_nested",
    "chunked",
]


def build_url(base: str, params: Dict[str, Any]) -> str:
    """
    Attach query parameters to a base URL and return the fully encoded address as a string.
    """
    q = urllib.parse.urlencode(params)
    return f"{base}?{q}"


def strip_accents(s: Optional[str]) -> Optional[str]:
    """
    Transliterate a string to ASCII so "José Müller" and "Jose Muller" compare
    and search the same way. None passes through.
    """
    if s is None:
        return None
    try:
        return unidecode(s)
    except PARSE_ERRORS + DECODE_ERRORS:
        return s


def split_fore_name(fore_name: Optional[str]) -> Tuple[str, Optional[str]]:
    """
    Split a PubMed ForeName such as "John A" or "Mary-Ann K L" into a first
    name and an optional middle name.
    """
    tokens = (fore_name or "").split()
    if not tokens:
        return "", None
    middle = " ".join(tokens[1:]) or None
    return tokens[0], middle


def safe_get_nested(obj: Any, *keys: str, default=None) -> Any:
    """
    Safely get a nested dictionary value with null-safety, traversing multiple keys
    and returning a default if any key is missing.
    """
    current = obj
    for key in keys:
        if not isinstance(current, dict):
            return default
        current = current.get(key)
        if current is None:
            return default
    return current


def chunked(items: Iterable[T], size: int) -> Iterator[List[T]]:
    """
    Yield consecutive lists of at most `size` items.
    """
    batch: List[T] = []
    for item in items:
        batch.append(item)
        if len(batch) >= size:
            yield batch
            batch = []
    if batch:
        yield batch
