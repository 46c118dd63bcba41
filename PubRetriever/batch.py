from __future__ import annotations

import os
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FuturesTimeoutError, as_completed
from datetime import date
from typing import Dict, Iterable, Optional, Set

from .config import RETRIEVAL_POOL_SIZE
from .engine import RetrievalEngine
from .exceptions import BatchInterrupted
from .log_utils import logger, LogSource, LogCategory
from .models import Identity, RetrievalRefreshFlag


def _retrieve_one(
        engine: RetrievalEngine,
        identity: Identity,
        start_date: Optional[date],
        end_date: Optional[date],
        log_dir: Optional[str],
) -> Set[int]:
    """
    Run one identity's pass on a worker thread, mirroring its log lines to
    `<log_dir>/<uid>.log` when a log directory is given.
    """
    if log_dir:
        logger.set_log_file(os.path.join(log_dir, f"{identity.uid}.log"))
    try:
        return engine.retrieve_data(identity, start_date=start_date, end_date=end_date)
    finally:
        if log_dir:
            logger.close()


def _wait_for_all(future_to_identity: Dict[Future, Identity], timeout: Optional[float]) -> int:
    """
    Wait for every task, logging failures with the identity's uid. Returns
    how many passes completed without error.
    """
    completed = 0
    try:
        for future in as_completed(future_to_identity, timeout=timeout):
            identity = future_to_identity[future]
            try:
                pmids = future.result()
                completed += 1
                logger.success(f"Finished uid=[{identity.uid}] ({len(pmids)} PMID(s))",
                               source=LogSource.SYSTEM, category=LogCategory.IDENTITY)
            except Exception as e:
                logger.error(f"Retrieval failed for uid=[{identity.uid}]: {e}",
                             source=LogSource.SYSTEM, category=LogCategory.ERROR)
    except KeyboardInterrupt as e:
        raise BatchInterrupted("wait for retrieval tasks was interrupted") from e
    except FuturesTimeoutError as e:
        raise BatchInterrupted(f"retrieval tasks did not finish within {timeout}s") from e
    return completed


def retrieve_articles(
        engine: RetrievalEngine,
        identities: Iterable[Identity],
        refresh_flag: RetrievalRefreshFlag,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        max_workers: int = RETRIEVAL_POOL_SIZE,
        timeout: Optional[float] = None,
        log_dir: Optional[str] = None,
) -> bool:
    """
    Retrieve articles for a batch of identities on a fixed-size thread pool.

    ALL_PUBLICATIONS ignores the dates; ONLY_NEWLY_ADDED_PUBLICATIONS needs
    both of them and restricts every search to that publication window.
    A failing identity is logged and does not affect the others. Returns
    False when the wait is interrupted or times out; tasks already running
    are left to finish and whatever they saved is kept.
    """
    if refresh_flag is RetrievalRefreshFlag.ONLY_NEWLY_ADDED_PUBLICATIONS:
        if start_date is None or end_date is None:
            logger.error("A date-range run needs both a start and an end date",
                         source=LogSource.SYSTEM, category=LogCategory.PLAN)
            return False
    else:
        start_date = end_date = None

    identities = list(identities)
    window = f" from {start_date} to {end_date}" if start_date else ""
    logger.step(f"Retrieving {len(identities)} identit{'y' if len(identities) == 1 else 'ies'}{window} "
                f"with {max_workers} workers", source=LogSource.SYSTEM, category=LogCategory.PLAN)

    executor = ThreadPoolExecutor(max_workers=max_workers)
    future_to_identity = {
        executor.submit(_retrieve_one, engine, identity, start_date, end_date, log_dir): identity
        for identity in identities
    }

    try:
        completed = _wait_for_all(future_to_identity, timeout)
    except BatchInterrupted as e:
        logger.error(f"Batch interrupted: {e}", source=LogSource.SYSTEM, category=LogCategory.ERROR)
        executor.shutdown(wait=False)
        return False

    executor.shutdown(wait=True)
    logger.info(f"{completed}/{len(identities)} identit{'y' if len(identities) == 1 else 'ies'} completed",
                source=LogSource.SYSTEM, category=LogCategory.PLAN)
    return True
