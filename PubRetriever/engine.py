from __future__ import annotations

from datetime import date, datetime
from typing import Callable, Dict, Optional, Sequence, Set

from .alias_utils import calculate_potential_aliases
from .config import SEARCH_STRATEGY_LENIENT_THRESHOLD, USE_SCOPUS_ARTICLES
from .cross_source import resolve_scopus
from .exceptions import PERSISTENCE_ERRORS, RETRIEVAL_ERRORS
from .log_utils import logger, LogSource, LogCategory
from .models import Identity, NameOrigin, NameVariantSet, PubMedArticle, RetrievalResult
from .name_utils import identity_author_names
from .stores import IdentityStore, PubMedStore, ScopusStore
from .strategies import RetrievalStrategy, StrategySet


class RetrievalEngine:
    """
    Runs the retrieval strategies for one identity at a time, in a fixed
    order, and hands everything found to the stores.

    One engine is shared by all worker threads of a batch: it holds no
    per-identity state, every pass keeps its accumulators local.
    """

    def __init__(
            self,
            strategies: StrategySet,
            identity_store: IdentityStore,
            pubmed_store: PubMedStore,
            scopus_store: ScopusStore,
            use_scopus: bool = USE_SCOPUS_ARTICLES,
            lenient_threshold: float = SEARCH_STRATEGY_LENIENT_THRESHOLD,
            clock: Callable[[], datetime] = datetime.now,
    ):
        self.strategies = strategies
        self.identity_store = identity_store
        self.pubmed_store = pubmed_store
        self.scopus_store = scopus_store
        self.use_scopus = use_scopus
        self.lenient_threshold = lenient_threshold
        self.clock = clock

    # ----------------------------------------------------------------------------------------
    # Guarded collaborator calls
    # ----------------------------------------------------------------------------------------

    def _run_strategy(
            self,
            strategy: RetrievalStrategy,
            identity: Identity,
            names: NameVariantSet,
            strict_only: bool,
            start_date: Optional[date],
            end_date: Optional[date],
            keep_below: Optional[float] = None,
    ) -> RetrievalResult:
        logger.step(f"{strategy.get_name()} (strict={strict_only}) uid=[{identity.uid}]",
                    source=LogSource.PUBMED, category=LogCategory.STRATEGY)
        try:
            result = strategy.retrieve(identity, names, strict_only, start_date=start_date, end_date=end_date,
                                     keep_below=keep_below)
        except RETRIEVAL_ERRORS as e:
            logger.error(f"{strategy.get_name()} failed for uid=[{identity.uid}]: {e}",
                         source=LogSource.PUBMED, category=LogCategory.ERROR)
            return RetrievalResult()
        logger.info(
            f"{strategy.get_name()}: {len(result.pubmed_articles)} record(s), "
            f"{len(result.query_results)} quer{'y' if len(result.query_results) == 1 else 'ies'}",
            source=LogSource.PUBMED, category=LogCategory.STRATEGY,
        )
        return result

    def _save_articles(self, uid: str, strategy: RetrievalStrategy, result: RetrievalResult) -> None:
        try:
            self.pubmed_store.save(uid, strategy.get_name(), result.pubmed_articles.values(), result.query_results)
        except PERSISTENCE_ERRORS as e:
            logger.error(f"Saving {strategy.get_name()} results failed for uid=[{uid}]: {e}",
                         source=LogSource.SYSTEM, category=LogCategory.SAVE)

    def _save_identity(self, identity: Identity) -> None:
        try:
            self.identity_store.save(identity)
        except PERSISTENCE_ERRORS as e:
            logger.error(f"Saving identity uid=[{identity.uid}] failed: {e}",
                         source=LogSource.SYSTEM, category=LogCategory.SAVE)

    def _record_aliases(self, identity: Identity, result: RetrievalResult) -> None:
        aliases = calculate_potential_aliases(identity, result.pubmed_articles.values())
        added = identity.add_aliases(aliases)
        if added:
            logger.info(f"{added} new alias(es) for uid=[{identity.uid}]",
                        source=LogSource.PUBMED, category=LogCategory.ALIAS)

        now = self.clock()
        if identity.date_initial_run is None:
            identity.date_initial_run = now
        identity.date_last_run = now
        self._save_identity(identity)

    # ----------------------------------------------------------------------------------------
    # Passes
    # ----------------------------------------------------------------------------------------

    def retrieve_data(
            self,
            identity: Identity,
            start_date: Optional[date] = None,
            end_date: Optional[date] = None,
    ) -> Set[int]:
        """
        Retrieve the identity's PubMed records, restricted to a publication
        date window when one is given, and return the PMIDs collected.

        Gold-standard records are saved but are not part of the returned
        set. The first-initial records are only kept when that search was
        narrow enough; when it was too broad, or the surname is compound,
        the affiliation, department, grant and full-name searches run.
        """
        uid = identity.uid
        logger.step(f"Retrieving articles for uid=[{uid}]", source=LogSource.SYSTEM, category=LogCategory.IDENTITY)

        names = identity_author_names(identity)
        use_strict_query_only = bool(names.get(NameOrigin.DERIVED))
        if use_strict_query_only:
            logger.info(f"Compound surname for uid=[{uid}]; broadening searches use strict queries",
                        source=LogSource.SYSTEM, category=LogCategory.PLAN)

        unique_pmids: Set[int] = set()
        strategies = self.strategies

        gold = self._run_strategy(strategies.gold_standard, identity, names, use_strict_query_only,
                                  start_date, end_date)
        self._save_articles(uid, strategies.gold_standard, gold)

        email = self._run_strategy(strategies.email, identity, names, use_strict_query_only, start_date, end_date)
        accumulator: Dict[int, PubMedArticle] = dict(email.pubmed_articles)
        if email.pubmed_articles:
            self._record_aliases(identity, email)
            unique_pmids.update(email.pubmed_articles)
        self._save_articles(uid, strategies.email, email)

        # first-initial stays lenient even for compound surnames; records are only
        # fetched when they will be kept
        first_initial = self._run_strategy(strategies.first_name_initial, identity, names, False,
                                           start_date, end_date, keep_below=self.lenient_threshold)
        count = first_initial.primary_count
        if count is not None and count < self.lenient_threshold:
            first_initial.merge_into(accumulator)
            self._save_articles(uid, strategies.first_name_initial, first_initial)
            unique_pmids.update(first_initial.pubmed_articles)
        elif count is not None:
            logger.info(f"first-initial search matched {count} record(s); not kept",
                        source=LogSource.PUBMED, category=LogCategory.SKIP)

        if (count is not None and count > self.lenient_threshold) or use_strict_query_only:
            for strategy in strategies.broadening():
                result = self._run_strategy(strategy, identity, names, use_strict_query_only, start_date, end_date)
                result.merge_into(accumulator)
                self._save_articles(uid, strategy, result)
                unique_pmids.update(result.pubmed_articles)

        if self.use_scopus:
            resolve_scopus(uid, strategies.gold_standard, self.scopus_store, unique_pmids, accumulator)

        logger.success(f"uid=[{uid}] done: {len(unique_pmids)} unique PMID(s)",
                       source=LogSource.SYSTEM, category=LogCategory.IDENTITY)
        return unique_pmids

    def retrieve_by_pmids(self, uid: str, pmids: Sequence[int]) -> Set[int]:
        """
        Fetch the given PMIDs directly, save them as gold-standard records,
        and look the same PMIDs up in Scopus.
        """
        if not pmids:
            return set()
        strategy = self.strategies.gold_standard
        try:
            result = strategy.retrieve_by_pmids(pmids)
        except RETRIEVAL_ERRORS as e:
            logger.error(f"Direct lookup failed for uid=[{uid}]: {e}",
                         source=LogSource.PUBMED, category=LogCategory.ERROR)
            return set()
        self._save_articles(uid, strategy, result)

        if self.use_scopus:
            resolve_scopus(uid, strategy, self.scopus_store, set(pmids), result.pubmed_articles)
        return set(result.pubmed_articles)
