from __future__ import annotations

import xml.etree.ElementTree as ElementTree
from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .config import (
    PUBMED_BASE,
    SCOPUS_BASE,
    PUBMED_RETMAX,
    PUBMED_FETCH_BATCH_SIZE,
    PUBMED_DATE_FORMAT,
    SCOPUS_BATCH_SIZE,
    HTTP_TIMEOUT_DEFAULT,
)
from .http_utils import http_get_json, http_get_xml
from .id_utils import normalize_doi, parse_pmid
from .log_utils import logger, LogSource, LogCategory
from .models import AuthorName, PubMedArticle, ScopusArticle
from .text_utils import build_url, chunked, safe_get_nested, split_fore_name


# ============================================================================================
# PubMed E-utilities
# ============================================================================================

def _xml_text(el: Optional[ElementTree.Element]) -> str:
    """
    Full text of an element including inline markup such as <i> in titles.
    """
    if el is None:
        return ""
    return "".join(el.itertext()).strip()


def _parse_pubmed_author(el: ElementTree.Element) -> Optional[AuthorName]:
    """
    Build an AuthorName from an <Author> element. Collective (group) authors
    have no LastName and are skipped.
    """
    last = _xml_text(el.find("LastName"))
    if not last:
        return None
    first, middle = split_fore_name(_xml_text(el.find("ForeName")))
    if not first:
        # some records only carry initials, e.g. "JA"
        initials = _xml_text(el.find("Initials"))
        first, middle = initials[:1], (initials[1:] or None)
    return AuthorName(first_name=first, middle_name=middle, last_name=last)


def _parse_pubmed_year(article_el: ElementTree.Element) -> Optional[int]:
    pub_date = article_el.find("Journal/JournalIssue/PubDate")
    if pub_date is None:
        return None
    year = _xml_text(pub_date.find("Year")) or _xml_text(pub_date.find("MedlineDate"))[:4]
    return int(year) if year.isdigit() else None


def parse_pubmed_articles(raw: bytes) -> List[PubMedArticle]:
    """
    Parse an efetch PubmedArticleSet document into PubMedArticle values.
    Records without a usable PMID are dropped.
    """
    root = ElementTree.fromstring(raw)
    articles: List[PubMedArticle] = []
    for pa in root.iter("PubmedArticle"):
        citation = pa.find("MedlineCitation")
        if citation is None:
            continue
        pmid = parse_pmid(_xml_text(citation.find("PMID")))
        article_el = citation.find("Article")
        if pmid is None or article_el is None:
            continue

        doi = None
        for loc in article_el.findall("ELocationID"):
            if (loc.get("EIdType") or "").lower() == "doi" and _xml_text(loc):
                doi = _xml_text(loc)
                break

        authors = []
        for author_el in article_el.findall("AuthorList/Author"):
            name = _parse_pubmed_author(author_el)
            if name is not None:
                authors.append(name)

        articles.append(PubMedArticle(
            pmid=pmid,
            title=_xml_text(article_el.find("ArticleTitle")),
            journal=_xml_text(article_el.find("Journal/Title")),
            pub_year=_parse_pubmed_year(article_el),
            authors=authors,
            doi=doi,
        ))
    return articles


class PubMedClient:
    """
    Thin client over ESearch (counts and PMIDs for a query) and EFetch
    (full records for PMIDs).
    """

    def __init__(self, api_key: Optional[str] = None, timeout: float = HTTP_TIMEOUT_DEFAULT,
                 fetch_batch_size: int = PUBMED_FETCH_BATCH_SIZE):
        self.api_key = api_key
        self.timeout = timeout
        self.fetch_batch_size = fetch_batch_size

    def _params(self, params: Dict[str, Any]) -> Dict[str, Any]:
        if self.api_key:
            params["api_key"] = self.api_key
        return params

    def search(
            self,
            query: str,
            start_date: Optional[date] = None,
            end_date: Optional[date] = None,
            retmax: int = PUBMED_RETMAX,
    ) -> Tuple[int, List[int]]:
        """
        Run a query and return the total match count reported by PubMed
        together with up to `retmax` PMIDs. A date window restricts the
        search to publication dates inside it.
        """
        params: Dict[str, Any] = {
            "db": "pubmed",
            "term": query,
            "retmax": retmax,
            "retmode": "json",
        }
        if start_date is not None or end_date is not None:
            params["datetype"] = "pdat"
            if start_date is not None:
                params["mindate"] = start_date.strftime(PUBMED_DATE_FORMAT)
            if end_date is not None:
                params["maxdate"] = end_date.strftime(PUBMED_DATE_FORMAT)

        url = build_url(f"{PUBMED_BASE}/esearch.fcgi", self._params(params))
        data = http_get_json(url, timeout=self.timeout)
        result = safe_get_nested(data, "esearchresult", default={})
        if "ERROR" in result:
            raise ValueError(f"ESearch error for {query!r}: {result['ERROR']}")
        count = int(result.get("count") or 0)
        pmids = [p for p in (parse_pmid(x) for x in result.get("idlist") or []) if p is not None]
        logger.debug(f"{count} match(es) for {query!r}", source=LogSource.PUBMED, category=LogCategory.SEARCH)
        return count, pmids

    def fetch(self, pmids: Sequence[int]) -> List[PubMedArticle]:
        """
        Fetch and parse the records for the given PMIDs, in batches.
        """
        articles: List[PubMedArticle] = []
        for batch in chunked(pmids, self.fetch_batch_size):
            url = build_url(f"{PUBMED_BASE}/efetch.fcgi", self._params({
                "db": "pubmed",
                "id": ",".join(str(p) for p in batch),
                "retmode": "xml",
            }))
            articles.extend(parse_pubmed_articles(http_get_xml(url, timeout=self.timeout)))
        logger.debug(f"{len(articles)} record(s) fetched for {len(pmids)} PMID(s)",
                     source=LogSource.PUBMED, category=LogCategory.FETCH)
        return articles


# ============================================================================================
# Scopus Search API
# ============================================================================================

def parse_scopus_entry(entry: Dict[str, Any]) -> Optional[ScopusArticle]:
    """
    Convert one Scopus search entry into a ScopusArticle. The "Result set was
    empty" placeholder entry and entries without an EID give None.
    """
    if not isinstance(entry, dict) or entry.get("error"):
        return None
    eid = entry.get("eid")
    if not eid:
        return None
    try:
        cited_by = int(entry.get("citedby-count") or 0)
    except (TypeError, ValueError):
        cited_by = 0
    return ScopusArticle(
        eid=str(eid),
        doi=entry.get("prism:doi") or None,
        pubmed_id=parse_pmid(entry.get("pubmed-id")),
        title=entry.get("dc:title") or "",
        cited_by_count=cited_by,
    )


def parse_scopus_response(data: Dict[str, Any]) -> List[ScopusArticle]:
    entries = safe_get_nested(data, "search-results", "entry", default=[]) or []
    return [a for a in (parse_scopus_entry(e) for e in entries) if a is not None]


class ScopusClient:
    """
    Client for the Scopus Search API, looking articles up by PMID or by DOI.
    """

    def __init__(self, api_key: str, timeout: float = HTTP_TIMEOUT_DEFAULT, batch_size: int = SCOPUS_BATCH_SIZE):
        self.api_key = api_key
        self.timeout = timeout
        self.batch_size = batch_size

    def _search(self, query: str, expected: int) -> List[ScopusArticle]:
        url = build_url(SCOPUS_BASE, {"query": query, "count": expected, "field": ",".join([
            "eid", "prism:doi", "pubmed-id", "dc:title", "citedby-count",
        ])})
        data = http_get_json(url, timeout=self.timeout, extra_headers={"X-ELS-APIKey": self.api_key})
        return parse_scopus_response(data)

    def search_by_pmids(self, pmids: Sequence[int]) -> List[ScopusArticle]:
        articles: List[ScopusArticle] = []
        for batch in chunked(pmids, self.batch_size):
            query = " OR ".join(f"PMID({p})" for p in batch)
            articles.extend(self._search(query, len(batch)))
        logger.debug(f"{len(articles)} article(s) found for {len(pmids)} PMID(s)",
                     source=LogSource.SCOPUS, category=LogCategory.FETCH)
        return articles

    def search_by_dois(self, dois: Sequence[str]) -> List[ScopusArticle]:
        articles: List[ScopusArticle] = []
        cleaned = [d for d in (normalize_doi(x) for x in dois) if d]
        for batch in chunked(cleaned, self.batch_size):
            query = " OR ".join(f'DOI("{d}")' for d in batch)
            articles.extend(self._search(query, len(batch)))
        logger.debug(f"{len(articles)} article(s) found for {len(cleaned)} DOI(s)",
                     source=LogSource.SCOPUS, category=LogCategory.FETCH)
        return articles
