from __future__ import annotations

import argparse
import os
from datetime import date
from typing import List, Optional

from PubRetriever.api_clients import PubMedClient, ScopusClient
from PubRetriever.batch import retrieve_articles
from PubRetriever.config import (
    DEFAULT_INPUT,
    DEFAULT_NCBI_KEY_FILE,
    DEFAULT_OUT_DIR,
    DEFAULT_SCOPUS_KEY_FILE,
    DEFAULT_SETTINGS_FILE,
    HOME_INSTITUTION_KEYWORDS,
    LOGS_DIR,
    RETRIEVAL_POOL_SIZE,
    SEARCH_STRATEGY_LENIENT_THRESHOLD,
    STRATEGY_RESULT_THRESHOLD,
    USE_SCOPUS_ARTICLES,
)
from PubRetriever.engine import RetrievalEngine
from PubRetriever.exceptions import FILE_IO_ERRORS, FILE_READ_ERRORS
from PubRetriever.io_utils import read_identities, read_ncbi_api_key, read_scopus_api_key, read_settings
from PubRetriever.log_utils import logger, LogCategory
from PubRetriever.models import RetrievalRefreshFlag
from PubRetriever.stores import JsonIdentityStore, JsonPubMedStore, JsonScopusStore
from PubRetriever.strategies import build_strategies


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid date '{value}', expected YYYY-MM-DD") from e


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Retrieve PubMed and Scopus articles for researcher identities.")
    parser.add_argument("--mode", choices=["full", "range"], default="full",
                        help="full: all publications; range: only those published between --start and --end")
    parser.add_argument("--start", type=_parse_date, help="start of the publication window (YYYY-MM-DD)")
    parser.add_argument("--end", type=_parse_date, help="end of the publication window (YYYY-MM-DD)")
    parser.add_argument("--input", default=DEFAULT_INPUT, help="JSON file with the identities to process")
    parser.add_argument("--settings", default=DEFAULT_SETTINGS_FILE, help="optional JSON settings overrides")
    parser.add_argument("--out-dir", default=None, help="directory for stores and logs")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Load identities, keys and settings, wire the clients, stores and engine,
    and run one batch.

    Returns 0 when the batch ran to completion, 1 when it was interrupted or
    rejected, and 2 when setup failed.
    """
    args = parse_args(argv)
    if args.mode == "range" and (args.start is None or args.end is None):
        logger.error("--mode range needs both --start and --end", category=LogCategory.PLAN)
        return 2

    out_dir = args.out_dir or os.path.join(os.path.dirname(os.path.abspath(__file__)), DEFAULT_OUT_DIR)
    try:
        os.makedirs(out_dir, exist_ok=True)
    except OSError as e:
        logger.error(f"Cannot create output directory '{out_dir}': {e}", category=LogCategory.ERROR)
        return 2

    logger.set_log_file(os.path.join(out_dir, "run.log"))
    logger.step("PubRetriever run started", category=LogCategory.PLAN)

    settings = read_settings(args.settings)
    if settings:
        logger.info(f"Settings overrides: {', '.join(sorted(settings))}", category=LogCategory.PLAN)
    use_scopus = settings.get("use_scopus_articles", USE_SCOPUS_ARTICLES)

    scopus_client = None
    if use_scopus:
        try:
            scopus_client = ScopusClient(read_scopus_api_key(DEFAULT_SCOPUS_KEY_FILE))
            logger.success("Scopus key loaded", category=LogCategory.PLAN)
        except FILE_READ_ERRORS as e:
            logger.error(f"Error reading Scopus key: {e}", category=LogCategory.ERROR)
            logger.close()
            return 2

    ncbi_key = read_ncbi_api_key(DEFAULT_NCBI_KEY_FILE)
    if not ncbi_key:
        logger.warn("NCBI key not found; PubMed requests are rate-limited more strictly", category=LogCategory.PLAN)
    else:
        logger.success("NCBI key loaded", category=LogCategory.PLAN)

    try:
        identities = read_identities(args.input)
        logger.success(f"Input loaded: {len(identities)} identit{'y' if len(identities) == 1 else 'ies'}",
                       category=LogCategory.PLAN)
    except FILE_READ_ERRORS as e:
        logger.error(f"Error reading input file: {e}", category=LogCategory.ERROR)
        logger.close()
        return 2

    strategies = build_strategies(
        PubMedClient(api_key=ncbi_key),
        scopus_client,
        home_institution_keywords=settings.get("home_institution_keywords", HOME_INSTITUTION_KEYWORDS),
        threshold=settings.get("strategy_result_threshold", STRATEGY_RESULT_THRESHOLD),
    )
    try:
        engine = RetrievalEngine(
            strategies,
            JsonIdentityStore(os.path.join(out_dir, "identities.json")),
            JsonPubMedStore(out_dir),
            JsonScopusStore(os.path.join(out_dir, "scopus_articles.json")),
            use_scopus=use_scopus,
            lenient_threshold=settings.get("search_strategy_lenient_threshold", SEARCH_STRATEGY_LENIENT_THRESHOLD),
        )
    except FILE_IO_ERRORS as e:
        logger.error(f"Cannot open stores under '{out_dir}': {e}", category=LogCategory.ERROR)
        logger.close()
        return 2

    if args.mode == "range":
        refresh_flag = RetrievalRefreshFlag.ONLY_NEWLY_ADDED_PUBLICATIONS
    else:
        refresh_flag = RetrievalRefreshFlag.ALL_PUBLICATIONS

    ok = retrieve_articles(
        engine,
        identities,
        refresh_flag,
        start_date=args.start,
        end_date=args.end,
        max_workers=settings.get("retrieval_pool_size", RETRIEVAL_POOL_SIZE),
        log_dir=os.path.join(out_dir, LOGS_DIR),
    )

    logger.step("Run complete" if ok else "Run did not complete", category=LogCategory.PLAN)
    logger.info(f"Log file: {logger.log_file_path or 'n/a'}", category=LogCategory.PLAN)
    logger.close()
    return 0 if ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
