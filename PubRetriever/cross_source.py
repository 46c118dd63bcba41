from __future__ import annotations

from typing import Dict, Iterable, List, Set

from .exceptions import PERSISTENCE_ERRORS, RETRIEVAL_ERRORS
from .id_utils import normalize_doi
from .log_utils import logger, LogSource, LogCategory
from .models import PubMedArticle, ScopusArticle
from .stores import ScopusStore
from .strategies import RetrievalStrategy


def doi_to_pmid_map(
        pmids: Iterable[int],
        articles: Dict[int, PubMedArticle],
) -> Dict[str, int]:
    """
    Lowercased DOI -> PMID for the given PMIDs whose PubMed record carries a DOI.
    """
    mapping: Dict[str, int] = {}
    for pmid in pmids:
        article = articles.get(pmid)
        doi = normalize_doi(article.doi) if article is not None else None
        if doi:
            mapping.setdefault(doi, pmid)
    return mapping


def attach_pmids_by_doi(scopus_articles: Iterable[ScopusArticle], doi_to_pmid: Dict[str, int]) -> int:
    """
    Set `pubmed_id` on Scopus records that lack one and whose DOI matches a
    PubMed record. Returns how many records were updated.
    """
    attached = 0
    for article in scopus_articles:
        if article.pubmed_id is not None:
            continue
        pmid = doi_to_pmid.get(normalize_doi(article.doi) or "")
        if pmid is not None:
            article.pubmed_id = pmid
            attached += 1
    return attached


def _save(store: ScopusStore, articles: List[ScopusArticle], uid: str) -> None:
    if not articles:
        return
    try:
        store.save(articles)
    except PERSISTENCE_ERRORS as e:
        logger.error(f"Saving {len(articles)} Scopus article(s) failed for uid=[{uid}]: {e}",
                     source=LogSource.SCOPUS, category=LogCategory.SAVE)


def resolve_scopus(
        uid: str,
        strategy: RetrievalStrategy,
        store: ScopusStore,
        pmids: Set[int],
        articles: Dict[int, PubMedArticle],
) -> List[ScopusArticle]:
    """
    Look the identity's PubMed records up in Scopus, first by PMID and then,
    for the PMIDs Scopus did not know, by DOI.

    Records found by DOI get the matching PMID attached before they are
    saved. Returns every Scopus record saved during the call.
    """
    if not pmids:
        return []

    ordered = sorted(pmids)
    try:
        by_pmid = strategy.retrieve_scopus(ordered)
    except RETRIEVAL_ERRORS as e:
        logger.error(f"Scopus lookup by PMID failed for uid=[{uid}]: {e}",
                     source=LogSource.SCOPUS, category=LogCategory.ERROR)
        by_pmid = []
    _save(store, by_pmid, uid)

    found = {a.pubmed_id for a in by_pmid if a.pubmed_id is not None}
    not_found = [p for p in ordered if p not in found]
    doi_to_pmid = doi_to_pmid_map(not_found, articles)
    logger.info(
        f"Scopus matched {len(found)}/{len(ordered)} PMID(s); {len(doi_to_pmid)} left to try by DOI",
        source=LogSource.SCOPUS, category=LogCategory.MATCH,
    )
    if not doi_to_pmid:
        return by_pmid

    try:
        by_doi = strategy.retrieve_scopus_by_dois(list(doi_to_pmid))
    except RETRIEVAL_ERRORS as e:
        logger.error(f"Scopus lookup by DOI failed for uid=[{uid}]: {e}",
                     source=LogSource.SCOPUS, category=LogCategory.ERROR)
        return by_pmid

    attached = attach_pmids_by_doi(by_doi, doi_to_pmid)
    logger.info(f"Attached PMIDs to {attached} Scopus record(s) found by DOI",
                source=LogSource.SCOPUS, category=LogCategory.MATCH)
    _save(store, by_doi, uid)
    return by_pmid + by_doi
