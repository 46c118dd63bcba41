from __future__ import annotations

import os
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence

from .exceptions import PersistenceFailure
from .id_utils import normalize_doi
from .io_utils import safe_read_json, safe_write_json
from .models import Identity, PubMedArticle, QueryDiagnostic, ScopusArticle


class IdentityStore(Protocol):
    def save(self, identity: Identity) -> None: ...


class PubMedStore(Protocol):
    def save(self, uid: str, strategy_name: str, articles: Iterable[PubMedArticle],
             query_results: Sequence[QueryDiagnostic]) -> None: ...


class ScopusStore(Protocol):
    def save(self, articles: Iterable[ScopusArticle]) -> None: ...

    def find_by_pmids(self, pmids: Iterable[int]) -> List[ScopusArticle]: ...

    def find_by_dois(self, dois: Iterable[str]) -> List[ScopusArticle]: ...


class _JsonFile:
    """
    A JSON document kept in memory and rewritten on every change. One lock
    per file serialises writers from parallel identity passes.
    """

    def __init__(self, path: str, default: Any):
        self.path = path
        self.lock = threading.Lock()
        data = safe_read_json(path, default=None)
        self.data = data if isinstance(data, type(default)) else default

    def flush(self) -> None:
        if not safe_write_json(self.path, self.data):
            raise PersistenceFailure(f"Could not write {self.path}")


class JsonIdentityStore:
    """
    Identities keyed by uid; saving the same uid again replaces the entry.
    """

    def __init__(self, path: str):
        self._file = _JsonFile(path, {})

    def save(self, identity: Identity) -> None:
        with self._file.lock:
            self._file.data[identity.uid] = identity.to_dict()
            self._file.flush()

    def find_by_uid(self, uid: str) -> Optional[Identity]:
        with self._file.lock:
            raw = self._file.data.get(uid)
        return Identity.from_dict(raw) if raw else None


class JsonPubMedStore:
    """
    PubMed articles keyed by PMID, plus one search-result entry per
    (uid, strategy) with the PMIDs found and the queries that found them.
    """

    ARTICLES_FILE = "pubmed_articles.json"
    SEARCH_RESULTS_FILE = "esearch_results.json"

    def __init__(self, out_dir: str):
        self._articles = _JsonFile(os.path.join(out_dir, self.ARTICLES_FILE), {})
        self._results = _JsonFile(os.path.join(out_dir, self.SEARCH_RESULTS_FILE), {})

    def save(self, uid: str, strategy_name: str, articles: Iterable[PubMedArticle],
             query_results: Sequence[QueryDiagnostic]) -> None:
        articles = list(articles)
        with self._articles.lock:
            for article in articles:
                self._articles.data[str(article.pmid)] = article.to_dict()
            self._articles.flush()

        with self._results.lock:
            per_uid = self._results.data.setdefault(uid, {})
            per_uid[strategy_name] = {
                "pmids": sorted(a.pmid for a in articles),
                "queries": [q.to_dict() for q in query_results],
                "retrievedAt": datetime.now(timezone.utc).isoformat(),
            }
            self._results.flush()

    def find_search_results(self, uid: str) -> Dict[str, Any]:
        with self._results.lock:
            return dict(self._results.data.get(uid) or {})

    def find_by_pmid(self, pmid: int) -> Optional[Dict[str, Any]]:
        with self._articles.lock:
            return self._articles.data.get(str(pmid))


class JsonScopusStore:
    """
    Scopus articles keyed by EID, searchable by PMID and by DOI.
    """

    def __init__(self, path: str):
        self._file = _JsonFile(path, {})

    def save(self, articles: Iterable[ScopusArticle]) -> None:
        with self._file.lock:
            for article in articles:
                self._file.data[article.eid] = article.to_dict()
            self._file.flush()

    def _all(self) -> List[ScopusArticle]:
        with self._file.lock:
            return [ScopusArticle.from_dict(v) for v in self._file.data.values()]

    def find_by_pmids(self, pmids: Iterable[int]) -> List[ScopusArticle]:
        wanted = set(pmids)
        return [a for a in self._all() if a.pubmed_id is not None and a.pubmed_id in wanted]

    def find_by_dois(self, dois: Iterable[str]) -> List[ScopusArticle]:
        wanted = {d for d in (normalize_doi(x) for x in dois) if d}
        return [a for a in self._all() if normalize_doi(a.doi) in wanted]
