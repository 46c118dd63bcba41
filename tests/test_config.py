import re

from PubRetriever.config import (
    DERIVED_NAME_MIN_PART_LENGTH,
    HTTP_MAX_RETRIES,
    NAME_SUFFIX_PATTERN,
    PUBMED_FETCH_BATCH_SIZE,
    PUBMED_RETMAX,
    RETRIEVAL_POOL_SIZE,
    SCOPUS_BATCH_SIZE,
    SEARCH_STRATEGY_LENIENT_THRESHOLD,
    STRATEGY_RESULT_THRESHOLD,
)


def test_thresholds_positive():
    """
    Test that the result thresholds are positive numbers.
    """
    assert SEARCH_STRATEGY_LENIENT_THRESHOLD > 0, "SEARCH_STRATEGY_LENIENT_THRESHOLD must be positive"
    assert STRATEGY_RESULT_THRESHOLD > 0, "STRATEGY_RESULT_THRESHOLD must be positive"


def test_pool_size():
    """
    Test that identities are retrieved on a fixed pool of ten workers.
    """
    assert RETRIEVAL_POOL_SIZE == 10, f"Expected a pool of 10, got {RETRIEVAL_POOL_SIZE}"


def test_batch_sizes_reasonable():
    """
    Test the paging limits against what the remote APIs accept.
    """
    assert 1 <= PUBMED_FETCH_BATCH_SIZE <= PUBMED_RETMAX
    assert PUBMED_RETMAX <= 10000, "ESearch does not return more than 10000 ids"
    assert 1 <= SCOPUS_BATCH_SIZE <= 25, "The Scopus Search API returns at most 25 entries per page"
    assert HTTP_MAX_RETRIES >= 0


def test_suffix_pattern_is_anchored():
    """
    Test that the suffix pattern compiles and only matches at the end of a name.
    """
    pattern = re.compile(NAME_SUFFIX_PATTERN)
    assert pattern.search("Smith, MD PhD")
    assert not pattern.search("Jrinka Walker")
    assert DERIVED_NAME_MIN_PART_LENGTH == 4
