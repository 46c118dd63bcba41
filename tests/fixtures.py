from __future__ import annotations

from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from PubRetriever.engine import RetrievalEngine
from PubRetriever.exceptions import PersistenceFailure, TransportFailure
from PubRetriever.id_utils import normalize_doi
from PubRetriever.models import AuthorName, Identity, PubMedArticle, QueryDiagnostic, ScopusArticle
from PubRetriever.strategies import StrategySet, build_strategies

FIXED_NOW = datetime(2024, 5, 1, 9, 30, 0)


def make_name(first: str, last: str, middle: Optional[str] = None) -> AuthorName:
    return AuthorName(first_name=first, middle_name=middle, last_name=last)


def make_identity(uid: str = "jas2001", first: str = "John", last: str = "Smith", middle: Optional[str] = "A",
                  **kwargs) -> Identity:
    """
    Identity with sensible defaults; keyword arguments override any field.
    """
    return Identity(uid=uid, primary_name=make_name(first, last, middle), **kwargs)


def make_article(pmid: int, *authors: AuthorName, doi: Optional[str] = None, title: str = "") -> PubMedArticle:
    return PubMedArticle(pmid=pmid, title=title or f"Article {pmid}", authors=list(authors), doi=doi)


class FakePubMedClient:
    """
    Stands in for PubMedClient. `results` maps a query string to the count
    PubMed would report and the PMIDs it would return; unknown queries match
    nothing. Queries listed in `failing` raise a TransportFailure.
    """

    def __init__(self, results: Optional[Dict[str, Tuple[int, List[int]]]] = None,
                 articles: Iterable[PubMedArticle] = (), failing: Iterable[str] = ()):
        self.results = dict(results or {})
        self.articles = {a.pmid: a for a in articles}
        self.failing = set(failing)
        self.searches: List[Tuple[str, Optional[date], Optional[date]]] = []
        self.fetches: List[List[int]] = []

    @property
    def queries(self) -> List[str]:
        return [q for q, _, _ in self.searches]

    def search(self, query: str, start_date: Optional[date] = None, end_date: Optional[date] = None,
               retmax: int = 5000) -> Tuple[int, List[int]]:
        self.searches.append((query, start_date, end_date))
        if query in self.failing:
            raise TransportFailure(f"search failed for {query}")
        count, pmids = self.results.get(query, (0, []))
        return count, list(pmids)[:retmax]

    def fetch(self, pmids: Sequence[int]) -> List[PubMedArticle]:
        self.fetches.append(list(pmids))
        return [self.articles[p] for p in pmids if p in self.articles]


class FakeScopusClient:
    """
    Stands in for ScopusClient, answering from records keyed by PMID and by DOI.
    """

    def __init__(self, by_pmid: Iterable[ScopusArticle] = (), by_doi: Iterable[ScopusArticle] = ()):
        self.by_pmid = {a.pubmed_id: a for a in by_pmid}
        self.by_doi = {normalize_doi(a.doi): a for a in by_doi}
        self.pmid_calls: List[List[int]] = []
        self.doi_calls: List[List[str]] = []

    def search_by_pmids(self, pmids: Sequence[int]) -> List[ScopusArticle]:
        self.pmid_calls.append(list(pmids))
        return [self.by_pmid[p] for p in pmids if p in self.by_pmid]

    def search_by_dois(self, dois: Sequence[str]) -> List[ScopusArticle]:
        self.doi_calls.append(list(dois))
        return [self.by_doi[d] for d in (normalize_doi(x) for x in dois) if d in self.by_doi]


class MemoryIdentityStore:
    def __init__(self):
        self.saved: List[dict] = []

    def save(self, identity: Identity) -> None:
        self.saved.append(identity.to_dict())


class MemoryPubMedStore:
    """
    Records every save as (uid, strategy name, PMIDs, diagnostics).
    Strategy names in `failing` raise a PersistenceFailure.
    """

    def __init__(self, failing: Iterable[str] = ()):
        self.saved: List[Tuple[str, str, Set[int], List[QueryDiagnostic]]] = []
        self.failing = set(failing)

    def save(self, uid: str, strategy_name: str, articles: Iterable[PubMedArticle],
             query_results: Sequence[QueryDiagnostic]) -> None:
        if strategy_name in self.failing:
            raise PersistenceFailure(f"cannot save {strategy_name}")
        self.saved.append((uid, strategy_name, {a.pmid for a in articles}, list(query_results)))

    def by_strategy(self) -> Dict[str, Set[int]]:
        return {name: pmids for _, name, pmids, _ in self.saved}

    def strategy_names(self) -> List[str]:
        return [name for _, name, _, _ in self.saved]


class MemoryScopusStore:
    def __init__(self):
        self.saved: List[ScopusArticle] = []

    def save(self, articles: Iterable[ScopusArticle]) -> None:
        self.saved.extend(articles)

    def find_by_pmids(self, pmids: Iterable[int]) -> List[ScopusArticle]:
        wanted = set(pmids)
        return [a for a in self.saved if a.pubmed_id in wanted]

    def find_by_dois(self, dois: Iterable[str]) -> List[ScopusArticle]:
        wanted = {normalize_doi(d) for d in dois}
        return [a for a in self.saved if normalize_doi(a.doi) in wanted]


def make_engine(
        pubmed: FakePubMedClient,
        scopus: Optional[FakeScopusClient] = None,
        pubmed_store: Optional[MemoryPubMedStore] = None,
        keywords: Sequence[str] = (),
        lenient_threshold: int = 2000,
        strategy_threshold: int = 2000,
) -> Tuple[RetrievalEngine, MemoryIdentityStore, MemoryPubMedStore, MemoryScopusStore]:
    """
    Engine wired to fakes, with a fixed clock. Scopus enrichment is on only
    when a Scopus client is given.
    """
    strategies: StrategySet = build_strategies(pubmed, scopus, home_institution_keywords=list(keywords),
                                               threshold=strategy_threshold)
    identity_store = MemoryIdentityStore()
    pubmed_store = pubmed_store if pubmed_store is not None else MemoryPubMedStore()
    scopus_store = MemoryScopusStore()
    engine = RetrievalEngine(
        strategies,
        identity_store,
        pubmed_store,
        scopus_store,
        use_scopus=scopus is not None,
        lenient_threshold=lenient_threshold,
        clock=lambda: FIXED_NOW,
    )
    return engine, identity_store, pubmed_store, scopus_store
