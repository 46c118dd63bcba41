from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Callable, Iterable, List, Optional, Sequence

from .api_clients import PubMedClient, ScopusClient
from .config import STRATEGY_RESULT_THRESHOLD, PUBMED_RETMAX, HOME_INSTITUTION_KEYWORDS
from .exceptions import RETRIEVAL_ERRORS
from .log_utils import logger, LogSource, LogCategory
from .models import (
    AuthorName,
    Identity,
    NameOrigin,
    NameVariantSet,
    PubMedArticle,
    QueryDiagnostic,
    RetrievalResult,
    ScopusArticle,
)

# Builds a PubMed query for an identity, or None when the identity lacks the
# data the strategy searches on.
QueryBuilder = Callable[[Identity, NameVariantSet], Optional[str]]

GOLD_STANDARD = "gold_standard"
EMAIL = "email"
FIRST_NAME_INITIAL = "first_name_initial"
FULL_NAME = "full_name"
AFFILIATION_IN_DB = "affiliation_in_db"
AFFILIATION = "affiliation"
DEPARTMENT = "department"
GRANT = "grant"


# ============================================================================================
# Query construction
# ============================================================================================

def construct_email_query(emails: Iterable[str]) -> Optional[str]:
    """
    Join email addresses with " OR ". A comma inside an address is a known
    data-entry slip for a period ("ayr2001@med.cornell,edu") and is fixed
    first. No addresses gives None; one address is returned as is.
    """
    cleaned = [e.strip().replace(",", ".") for e in emails if e and e.strip()]
    if not cleaned:
        return None
    if len(cleaned) == 1:
        return cleaned[0]
    return " OR ".join(cleaned)


def _search_names(names: NameVariantSet, strict: bool) -> List[AuthorName]:
    """
    Names a strategy searches on: the registered names, plus the
    compound-surname halves in strict mode. Sorted so queries are stable.
    """
    selected = set(names.get(NameOrigin.ORIGINAL) or ())
    if strict:
        selected |= set(names.get(NameOrigin.DERIVED) or ())
    return sorted(selected, key=lambda n: (n.last_name.lower(), n.first_name.lower(), (n.middle_name or "").lower()))


def _or_group(terms: Iterable[str]) -> Optional[str]:
    unique = list(dict.fromkeys(t for t in terms if t))
    if not unique:
        return None
    return f"({' OR '.join(unique)})"


def _field_term(value: str, tag: str) -> str:
    value = value.replace('"', "").strip()
    if not value:
        return ""
    if " " in value:
        return f'"{value}"[{tag}]'
    return f"{value}[{tag}]"


def initial_author_term(name: AuthorName) -> str:
    return f"{name.last_name} {name.first_initial}[au]"


def first_name_author_term(name: AuthorName) -> str:
    return f"{name.last_name} {name.first_name}[fau]"


def full_name_author_term(name: AuthorName) -> str:
    parts = [name.last_name, name.first_name, name.middle_name]
    return f"{' '.join(p for p in parts if p)}[fau]"


def author_clause(names: NameVariantSet, strict: bool) -> Optional[str]:
    """
    Author part shared by the name-based strategies: last name plus first
    initial normally, last name plus full first name (and the derived
    surnames) when strict.
    """
    term = first_name_author_term if strict else initial_author_term
    return _or_group(term(n) for n in _search_names(names, strict) if n.last_name)


def _restricted(names: NameVariantSet, strict: bool, values: Sequence[str], tag: str) -> Optional[str]:
    """
    Author clause AND-ed with an OR group over `values` in field `tag`;
    None when there is nothing to restrict on.
    """
    restriction = _or_group(_field_term(v, tag) for v in values)
    authors = author_clause(names, strict)
    if not restriction or not authors:
        return None
    return f"{authors} AND {restriction}"


def gold_standard_query(identity: Identity, names: NameVariantSet) -> Optional[str]:
    if not identity.known_pmids:
        return None
    return " OR ".join(f"{p}[uid]" for p in dict.fromkeys(identity.known_pmids))


def email_query(identity: Identity, names: NameVariantSet) -> Optional[str]:
    return construct_email_query(identity.emails)


def first_name_initial_query(identity: Identity, names: NameVariantSet) -> Optional[str]:
    return author_clause(names, strict=False)


def first_name_initial_strict_query(identity: Identity, names: NameVariantSet) -> Optional[str]:
    return author_clause(names, strict=True)


def full_name_query(identity: Identity, names: NameVariantSet) -> Optional[str]:
    return _or_group(full_name_author_term(n) for n in _search_names(names, False) if n.last_name)


def full_name_strict_query(identity: Identity, names: NameVariantSet) -> Optional[str]:
    return _or_group(full_name_author_term(n) for n in _search_names(names, True) if n.last_name)


def affiliation_in_db_query(strict: bool) -> QueryBuilder:
    def build(identity: Identity, names: NameVariantSet) -> Optional[str]:
        return _restricted(names, strict, identity.affiliations, "ad")
    return build


def affiliation_query(keywords: Sequence[str], strict: bool) -> QueryBuilder:
    def build(identity: Identity, names: NameVariantSet) -> Optional[str]:
        return _restricted(names, strict, keywords, "ad")
    return build


def department_query(strict: bool) -> QueryBuilder:
    def build(identity: Identity, names: NameVariantSet) -> Optional[str]:
        return _restricted(names, strict, identity.departments, "ad")
    return build


def grant_query(strict: bool) -> QueryBuilder:
    def build(identity: Identity, names: NameVariantSet) -> Optional[str]:
        return _restricted(names, strict, identity.grants, "gr")
    return build


# ============================================================================================
# Strategy
# ============================================================================================

@dataclass
class RetrievalStrategy:
    """
    One way of finding an identity's articles: an initial query, a strict
    query, and the clients that run them.

    Without `strict_only` the initial query runs first; when it matches more
    than `threshold` articles and the strict query is different, the strict
    query is run as well and its PMIDs are fetched instead. The first query
    issued is always first in the diagnostics.
    """
    name: str
    initial_query: QueryBuilder
    strict_query: QueryBuilder
    pubmed: PubMedClient
    scopus: Optional[ScopusClient] = None
    threshold: int = STRATEGY_RESULT_THRESHOLD
    retmax: int = PUBMED_RETMAX

    def get_name(self) -> str:
        return self.name

    def _search(self, query: str, start_date: Optional[date], end_date: Optional[date]) -> tuple:
        return self.pubmed.search(query, start_date=start_date, end_date=end_date, retmax=self.retmax)

    def _result(self, pmids: Sequence[int], diagnostics: List[QueryDiagnostic]) -> RetrievalResult:
        articles: List[PubMedArticle] = self.pubmed.fetch(list(dict.fromkeys(pmids))) if pmids else []
        return RetrievalResult(
            pubmed_articles={a.pmid: a for a in articles},
            query_results=diagnostics,
        )

    def retrieve(
            self,
            identity: Identity,
            names: NameVariantSet,
            strict_only: bool,
            start_date: Optional[date] = None,
            end_date: Optional[date] = None,
            keep_below: Optional[float] = None,
    ) -> RetrievalResult:
        """
        Run the strategy for an identity, optionally restricted to a
        publication date window.

        With `keep_below`, a first search matching that many articles or
        more only reports its count; nothing else is searched or fetched.
        A failure after the first search returns the diagnostics gathered
        so far without articles.
        """
        builder = self.strict_query if strict_only else self.initial_query
        query = builder(identity, names)
        if not query:
            logger.debug(f"{self.name}: nothing to search for uid=[{identity.uid}]",
                         source=LogSource.PUBMED, category=LogCategory.SKIP)
            return RetrievalResult()

        count, pmids = self._search(query, start_date, end_date)
        diagnostics = [QueryDiagnostic(query=query, num_result=count)]

        if keep_below is not None and count >= keep_below:
            logger.debug(f"{self.name}: {count} matches, records not fetched",
                         source=LogSource.PUBMED, category=LogCategory.SKIP)
            return RetrievalResult(query_results=diagnostics)

        # once the first search has succeeded its count is kept even if a later call fails
        try:
            if not strict_only and count > self.threshold:
                strict = self.strict_query(identity, names)
                if strict and strict != query:
                    logger.info(
                        f"{self.name}: {count} matches exceed {self.threshold}; using strict query",
                        source=LogSource.PUBMED, category=LogCategory.SEARCH,
                    )
                    strict_count, pmids = self._search(strict, start_date, end_date)
                    diagnostics.append(QueryDiagnostic(query=strict, num_result=strict_count))

            return self._result(pmids, diagnostics)
        except RETRIEVAL_ERRORS as e:
            logger.error(f"{self.name} stopped after {len(diagnostics)} quer"
                         f"{'y' if len(diagnostics) == 1 else 'ies'} for uid=[{identity.uid}]: {e}",
                         source=LogSource.PUBMED, category=LogCategory.ERROR)
            return RetrievalResult(query_results=diagnostics)

    def retrieve_by_pmids(self, pmids: Sequence[int]) -> RetrievalResult:
        """
        Fetch the given PMIDs directly, without a search.
        """
        unique = list(dict.fromkeys(pmids))
        if not unique:
            return RetrievalResult()
        result = self._result(unique, [])
        query = " OR ".join(f"{p}[uid]" for p in unique)
        result.query_results.append(QueryDiagnostic(query=query, num_result=len(result.pubmed_articles)))
        return result

    def retrieve_scopus(self, pmids: Sequence[int]) -> List[ScopusArticle]:
        if self.scopus is None or not pmids:
            return []
        return self.scopus.search_by_pmids(list(pmids))

    def retrieve_scopus_by_dois(self, dois: Sequence[str]) -> List[ScopusArticle]:
        if self.scopus is None or not dois:
            return []
        return self.scopus.search_by_dois(list(dois))


@dataclass
class StrategySet:
    """
    The strategies the engine sequences, one per role.
    """
    gold_standard: RetrievalStrategy
    email: RetrievalStrategy
    first_name_initial: RetrievalStrategy
    affiliation_in_db: RetrievalStrategy
    affiliation: RetrievalStrategy
    department: RetrievalStrategy
    grant: RetrievalStrategy
    full_name: RetrievalStrategy

    def broadening(self) -> List[RetrievalStrategy]:
        """
        Strategies run when the first-initial search is too loose or the
        name is ambiguous, in run order.
        """
        return [self.affiliation_in_db, self.affiliation, self.department, self.grant, self.full_name]


def build_strategies(
        pubmed: PubMedClient,
        scopus: Optional[ScopusClient] = None,
        home_institution_keywords: Optional[Sequence[str]] = None,
        threshold: int = STRATEGY_RESULT_THRESHOLD,
) -> StrategySet:
    """
    Wire the standard strategies to a pair of clients.
    """
    keywords = list(home_institution_keywords if home_institution_keywords is not None else HOME_INSTITUTION_KEYWORDS)

    def make(name: str, initial: QueryBuilder, strict: QueryBuilder) -> RetrievalStrategy:
        return RetrievalStrategy(name=name, initial_query=initial, strict_query=strict,
                                 pubmed=pubmed, scopus=scopus, threshold=threshold)

    return StrategySet(
        gold_standard=make(GOLD_STANDARD, gold_standard_query, gold_standard_query),
        email=make(EMAIL, email_query, email_query),
        first_name_initial=make(FIRST_NAME_INITIAL, first_name_initial_query, first_name_initial_strict_query),
        affiliation_in_db=make(AFFILIATION_IN_DB, affiliation_in_db_query(False), affiliation_in_db_query(True)),
        affiliation=make(AFFILIATION, affiliation_query(keywords, False), affiliation_query(keywords, True)),
        department=make(DEPARTMENT, department_query(False), department_query(True)),
        grant=make(GRANT, grant_query(False), grant_query(True)),
        full_name=make(FULL_NAME, full_name_query, full_name_strict_query),
    )
