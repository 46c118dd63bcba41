from __future__ import annotations

PUBMED_BASE = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils"
SCOPUS_BASE = "https://api.elsevier.com/content/search/scopus"

DEFAULT_INPUT = "data/identities.json"
DEFAULT_SETTINGS_FILE = "data/settings.json"
DEFAULT_SCOPUS_KEY_FILE = "keys/Scopus.key"
DEFAULT_NCBI_KEY_FILE = "keys/NCBI.key"

DEFAULT_OUT_DIR = "output"
LOGS_DIR = "logs"

# Number of identities retrieved in parallel. Each worker owns one identity
# for the whole pass, so this also caps concurrent requests per source.
RETRIEVAL_POOL_SIZE = 10

# When the first-initial query returns fewer hits than this, its records are
# kept. When it returns more, the narrower affiliation/department/grant
# strategies run instead. Exactly at the threshold neither happens.
SEARCH_STRATEGY_LENIENT_THRESHOLD = 2000

# Per-strategy ceiling on the initial query. Above it the strategy falls back
# to its strict query (when that query differs).
STRATEGY_RESULT_THRESHOLD = 2000

# Cross-reference every retrieved PMID against Scopus
USE_SCOPUS_ARTICLES = True

# Free-text affiliation keywords for the home institution, matched with [ad]
HOME_INSTITUTION_KEYWORDS: list = []

# PubMed paging limits
PUBMED_RETMAX = 5000
PUBMED_FETCH_BATCH_SIZE = 200

# Scopus Search API limits a query to 25 entries per page
SCOPUS_BATCH_SIZE = 25

# PubMed date window format for mindate/maxdate
PUBMED_DATE_FORMAT = "%Y/%m/%d"

# Trailing credentials stripped from last names before searching.
# Order matters: the longer comma forms must win over the bare tokens, which
# must not follow a letter so that surnames like Fujii keep their ending.
NAME_SUFFIX_PATTERN = (
    r"(,Jr|, Jr|, MD PhD|,MD PhD|, MD-PhD|,MD-PhD|, PhD|,PhD|, MD|,MD|, III|,III|, II|,II|, Sr|,Sr"
    r"|(?<![A-Za-z])(?:Jr|MD PhD|MD-PhD|PhD|MD|III|II|Sr))$"
)

# Minimum length of each half of a compound surname before it is searched on its own
DERIVED_NAME_MIN_PART_LENGTH = 4

# HTTP request configuration
HTTP_TIMEOUT_DEFAULT = 20.0

# Exponential backoff configuration for retries
HTTP_BACKOFF_INITIAL = 0.25  # Initial backoff delay in seconds
HTTP_MAX_RETRIES = 2         # Maximum number of retry attempts

# HTTP status codes that should trigger retries
HTTP_RETRY_STATUS_CODES = (408, 429, 500, 502, 503, 504)
