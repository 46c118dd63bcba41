from __future__ import annotations

import re
from typing import Any, Optional


def _norm_doi(doi: Optional[str]) -> Optional[str]:
    """
    Clean up a DOI string by removing common URL and prefix wrappers and
    normalizing to lowercase, since DOIs compare case-insensitively.

    PubMed may report "10.1038/NPLANTS.2016.112" where Scopus has
    "10.1038/nplants.2016.112", so both sides go through this before joining.
    """
    if not doi:
        return None
    d = str(doi).strip()
    # strip URL prefixes
    d = re.sub(r"^https?://(dx\.)?doi\.org/", "", d, flags=re.IGNORECASE)
    # remove "doi:" prefix
    d = re.sub(r"^doi:\s*", "", d, flags=re.IGNORECASE)
    d = d.strip()
    if not d:
        return None
    return d.lower()


def normalize_doi(doi: Optional[str]) -> Optional[str]:
    """
    Public helper that normalizes DOIs into the canonical form used for lookups.
    """
    return _norm_doi(doi)


def parse_pmid(value: Any) -> Optional[int]:
    """
    Turn a PMID given as int or digit string into an int; anything else is None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    s = str(value).strip()
    if not s.isdigit():
        return None
    pmid = int(s)
    return pmid if pmid > 0 else None
