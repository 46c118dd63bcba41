from __future__ import annotations

import re
from typing import Optional, Set

from .config import NAME_SUFFIX_PATTERN, DERIVED_NAME_MIN_PART_LENGTH
from .models import AuthorName, Identity, NameOrigin, NameVariantSet
from .text_utils import strip_accents

__all__ = [
    "strip_name_suffix",
    "clean_author_name",
    "derive_additional_names",
    "identity_author_names",
    "is_full_name_match",
    "is_last_name_and_first_initial_match",
]

_SUFFIX_RE = re.compile(NAME_SUFFIX_PATTERN, flags=re.IGNORECASE)
_SURNAME_SPLIT_RE = re.compile(r"\s+|-")


def strip_name_suffix(last_name: Optional[str]) -> str:
    """
    Remove one trailing credential or generational suffix ("Jr", ", MD PhD",
    "III", ...) from a last name.
    """
    return _SUFFIX_RE.sub("", last_name or "").rstrip(" ,")


def clean_author_name(name: AuthorName) -> AuthorName:
    """
    Return the name transliterated to ASCII with the suffix stripped from the last name.
    """
    return AuthorName(
        first_name=strip_accents(name.first_name) or "",
        middle_name=strip_accents(name.middle_name),
        last_name=strip_accents(strip_name_suffix(name.last_name)) or "",
    )


def derive_additional_names(name: AuthorName) -> Optional[Set[AuthorName]]:
    """
    Split a compound surname ("Vander Berg", "Garcia-Lopez") at its first
    space or hyphen and return one name per half, keeping first and middle
    names. Both halves must be long enough to be searched alone; when they
    are not, or the surname does not split, None is returned.
    """
    parts = _SURNAME_SPLIT_RE.split(name.last_name or "", maxsplit=1)
    if len(parts) != 2:
        return None
    left, right = parts
    if len(left) < DERIVED_NAME_MIN_PART_LENGTH or len(right) < DERIVED_NAME_MIN_PART_LENGTH:
        return None
    return {
        AuthorName(name.first_name, name.middle_name, left),
        AuthorName(name.first_name, name.middle_name, right),
    }


def identity_author_names(identity: Identity) -> NameVariantSet:
    """
    Clean every registered name of the identity and derive compound-surname
    variants.

    The identity is updated in place with the cleaned names. ORIGINAL holds
    the cleaned primary and alternate names; DERIVED holds the halves of
    splittable surnames and is empty when none qualify.
    """
    original: Set[AuthorName] = set()
    derived: Set[AuthorName] = set()

    identity.primary_name = clean_author_name(identity.primary_name)
    identity.alternate_names = [clean_author_name(n) for n in identity.alternate_names]

    for name in [identity.primary_name, *identity.alternate_names]:
        original.add(name)
        if " " in name.last_name or "-" in name.last_name:
            derived.update(derive_additional_names(name) or ())

    return {NameOrigin.ORIGINAL: original, NameOrigin.DERIVED: derived}


def _equals_ignore_case(a: Optional[str], b: Optional[str]) -> bool:
    return (a or "").lower() == (b or "").lower()


def is_full_name_match(name: AuthorName, other: AuthorName) -> bool:
    """
    True when first, middle and last name all match ignoring case.
    """
    return name == other


def is_last_name_and_first_initial_match(name: AuthorName, other: AuthorName) -> bool:
    """
    True when the last names match and the first names share an initial, ignoring case.
    """
    if name is None or other is None:
        return False
    return (_equals_ignore_case(name.last_name, other.last_name)
            and _equals_ignore_case(name.first_initial, other.first_initial))
