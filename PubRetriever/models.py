from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set


class NameOrigin(Enum):
    """
    Where a searchable name came from: registered on the identity, or
    derived from a compound surname.
    """
    ORIGINAL = "ORIGINAL"
    DERIVED = "DERIVED"


class RetrievalRefreshFlag(Enum):
    """
    Batch mode: retrieve everything, or only what was published in a date window.
    """
    ALL_PUBLICATIONS = "ALL_PUBLICATIONS"
    ONLY_NEWLY_ADDED_PUBLICATIONS = "ONLY_NEWLY_ADDED_PUBLICATIONS"


@dataclass(frozen=True, eq=False)
class AuthorName:
    """
    A person name split into first, middle and last parts. Two names are
    equal when all three parts match ignoring case; a missing middle name
    equals an empty one.
    """
    first_name: str
    middle_name: Optional[str] = None
    last_name: str = ""

    @property
    def first_initial(self) -> str:
        return self.first_name[:1] if self.first_name else ""

    def _key(self) -> tuple:
        return (
            (self.first_name or "").lower(),
            (self.middle_name or "").lower(),
            (self.last_name or "").lower(),
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AuthorName):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __str__(self) -> str:
        parts = [self.first_name, self.middle_name, self.last_name]
        return " ".join(p for p in parts if p)

    def to_dict(self) -> Dict[str, Any]:
        return {"firstName": self.first_name, "middleName": self.middle_name, "lastName": self.last_name}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "AuthorName":
        return cls(
            first_name=str(d.get("firstName") or ""),
            middle_name=d.get("middleName") or None,
            last_name=str(d.get("lastName") or ""),
        )


@dataclass(frozen=True)
class Alias:
    """
    A name variant seen on a retrieved article but not registered on the identity.
    """
    author_name: AuthorName
    pmid: int

    def to_dict(self) -> Dict[str, Any]:
        return {"authorName": self.author_name.to_dict(), "pmid": self.pmid}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Alias":
        return cls(author_name=AuthorName.from_dict(d.get("authorName") or {}), pmid=int(d["pmid"]))


@dataclass
class Identity:
    """
    One researcher to retrieve publications for. Names are cleaned in place
    at the start of each pass; aliases and run dates are filled in by it.
    """
    uid: str
    primary_name: AuthorName
    alternate_names: List[AuthorName] = field(default_factory=list)
    emails: List[str] = field(default_factory=list)
    affiliations: List[str] = field(default_factory=list)
    departments: List[str] = field(default_factory=list)
    grants: List[str] = field(default_factory=list)
    known_pmids: List[int] = field(default_factory=list)
    date_initial_run: Optional[datetime] = None
    date_last_run: Optional[datetime] = None
    aliases: List[Alias] = field(default_factory=list)

    def __post_init__(self):
        # the same address listed twice would only duplicate an OR term
        self.emails = list(dict.fromkeys(e for e in self.emails if e))

    def add_aliases(self, aliases: Iterable[Alias]) -> int:
        """
        Append aliases not already recorded, returning how many were new.
        """
        added = 0
        for alias in aliases:
            if alias not in self.aliases:
                self.aliases.append(alias)
                added += 1
        return added

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uid": self.uid,
            "primaryName": self.primary_name.to_dict(),
            "alternateNames": [n.to_dict() for n in self.alternate_names],
            "emails": list(self.emails),
            "affiliations": list(self.affiliations),
            "departments": list(self.departments),
            "grants": list(self.grants),
            "knownPmids": list(self.known_pmids),
            "dateInitialRun": self.date_initial_run.isoformat() if self.date_initial_run else None,
            "dateLastRun": self.date_last_run.isoformat() if self.date_last_run else None,
            "aliases": [a.to_dict() for a in self.aliases],
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Identity":
        def _date(value: Optional[str]) -> Optional[datetime]:
            return datetime.fromisoformat(value) if value else None

        return cls(
            uid=str(d["uid"]),
            primary_name=AuthorName.from_dict(d.get("primaryName") or {}),
            alternate_names=[AuthorName.from_dict(n) for n in d.get("alternateNames") or []],
            emails=[str(e) for e in d.get("emails") or []],
            affiliations=[str(a) for a in d.get("affiliations") or []],
            departments=[str(a) for a in d.get("departments") or []],
            grants=[str(g) for g in d.get("grants") or []],
            known_pmids=[int(p) for p in d.get("knownPmids") or []],
            date_initial_run=_date(d.get("dateInitialRun")),
            date_last_run=_date(d.get("dateLastRun")),
            aliases=[Alias.from_dict(a) for a in d.get("aliases") or []],
        )


@dataclass
class PubMedArticle:
    """
    A PubMed record, keyed by PMID. The DOI comes from the article's
    ELocationID and is the join key towards Scopus.
    """
    pmid: int
    title: str = ""
    journal: str = ""
    pub_year: Optional[int] = None
    authors: List[AuthorName] = field(default_factory=list)
    doi: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pmid": self.pmid,
            "title": self.title,
            "journal": self.journal,
            "pubYear": self.pub_year,
            "authors": [a.to_dict() for a in self.authors],
            "doi": self.doi,
        }


@dataclass
class ScopusArticle:
    """
    A Scopus record, keyed by EID. `pubmed_id` is only known when Scopus
    reports it or when it is attached from a DOI match.
    """
    eid: str
    doi: Optional[str] = None
    pubmed_id: Optional[int] = None
    title: str = ""
    cited_by_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "eid": self.eid,
            "doi": self.doi,
            "pubmedId": self.pubmed_id,
            "title": self.title,
            "citedByCount": self.cited_by_count,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ScopusArticle":
        pubmed_id = d.get("pubmedId")
        return cls(
            eid=str(d["eid"]),
            doi=d.get("doi"),
            pubmed_id=int(pubmed_id) if pubmed_id is not None else None,
            title=d.get("title") or "",
            cited_by_count=int(d.get("citedByCount") or 0),
        )


@dataclass(frozen=True)
class QueryDiagnostic:
    """
    One query sent to PubMed and the raw number of matches it reported.
    """
    query: str
    num_result: int

    def to_dict(self) -> Dict[str, Any]:
        return {"query": self.query, "numResult": self.num_result}


@dataclass
class RetrievalResult:
    """
    What one strategy call produced: articles unique by PMID plus the
    diagnostics of every query it ran, first query first.
    """
    pubmed_articles: Dict[int, PubMedArticle] = field(default_factory=dict)
    query_results: List[QueryDiagnostic] = field(default_factory=list)

    @property
    def primary_count(self) -> Optional[int]:
        """
        Match count of the first query, or None when no query was issued.
        """
        return self.query_results[0].num_result if self.query_results else None

    def merge_into(self, accumulator: Dict[int, PubMedArticle]) -> Set[int]:
        """
        Insert this result's articles into an accumulator without replacing
        PMIDs already present; returns the PMIDs that were newly added.
        """
        added = set()
        for pmid, article in self.pubmed_articles.items():
            if pmid not in accumulator:
                accumulator[pmid] = article
                added.add(pmid)
        return added


# Names of an identity grouped by origin
NameVariantSet = Dict[NameOrigin, Set[AuthorName]]
