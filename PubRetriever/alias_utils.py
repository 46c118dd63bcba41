from __future__ import annotations

from typing import Dict, Iterable, List

from .models import Alias, AuthorName, Identity, PubMedArticle
from .name_utils import is_full_name_match, is_last_name_and_first_initial_match


def extract_alternate_names(
        articles: Iterable[PubMedArticle],
        known_names: Iterable[AuthorName],
) -> Dict[int, List[AuthorName]]:
    """
    Find author names that are probably the researcher writing under a name
    not registered on the identity, keyed by the PMID they were seen on.

    An article that already lists one of the known names is no evidence of
    an alias, so it is skipped entirely even if it also carries other
    last-name/initial matches. Otherwise every author sharing a known name's
    last name and first initial is a candidate.
    """
    known = list(known_names)
    found: Dict[int, List[AuthorName]] = {}
    for article in articles:
        has_full_name_match = False
        likely_alternatives: List[AuthorName] = []
        for author in article.authors or []:
            if any(is_full_name_match(author, k) for k in known):
                has_full_name_match = True
                break
            if any(is_last_name_and_first_initial_match(author, k) for k in known):
                likely_alternatives.append(author)
        if not has_full_name_match and likely_alternatives:
            found[article.pmid] = likely_alternatives
    return found


def calculate_potential_aliases(identity: Identity, articles: Iterable[PubMedArticle]) -> List[Alias]:
    """
    Alias values for an identity, checked against its primary and alternate names.
    """
    known = [identity.primary_name, *identity.alternate_names]
    aliases: List[Alias] = []
    for pmid, names in extract_alternate_names(articles, known).items():
        for name in names:
            alias = Alias(author_name=name, pmid=pmid)
            if alias not in aliases:
                aliases.append(alias)
    return aliases
