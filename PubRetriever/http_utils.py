from __future__ import annotations

import json
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .exceptions import DECODE_ERRORS, TransportFailure
from .config import (
    HTTP_TIMEOUT_DEFAULT,
    HTTP_BACKOFF_INITIAL,
    HTTP_MAX_RETRIES,
    HTTP_RETRY_STATUS_CODES,
    RETRIEVAL_POOL_SIZE,
)

# Standard HTTP headers for API requests
DEFAULT_JSON_HEADERS = {
    "User-Agent": "Mozilla/5.0 (PubRetriever Client)",
    "Accept": "application/json",
}

DEFAULT_XML_HEADERS = {
    "User-Agent": "Mozilla/5.0 (PubRetriever Client)",
    "Accept": "application/xml",
}

# Global session for connection pooling, shared by every worker thread
_SESSION = requests.Session()

# Configure retries
_RETRY_STRATEGY = Retry(
    total=HTTP_MAX_RETRIES,
    backoff_factor=HTTP_BACKOFF_INITIAL,
    status_forcelist=HTTP_RETRY_STATUS_CODES,
    allowed_methods=["GET", "POST"],
)
_ADAPTER = HTTPAdapter(max_retries=_RETRY_STRATEGY, pool_maxsize=RETRIEVAL_POOL_SIZE)
_SESSION.mount("https://", _ADAPTER)
_SESSION.mount("http://", _ADAPTER)


def http_fetch_bytes(url: str, headers: Dict[str, str], timeout: float = HTTP_TIMEOUT_DEFAULT) -> bytes:
    """
    Perform an HTTP GET through the pooled session, with the session's retry
    policy, and return the body. Any request failure becomes a TransportFailure.
    """
    try:
        resp = _SESSION.get(url, headers=headers, timeout=timeout)
        resp.raise_for_status()
        return resp.content
    except requests.exceptions.RequestException as e:
        raise TransportFailure(f"GET {url} failed: {e}") from e


def _decode_json_bytes(raw: bytes, url: str) -> Dict[str, Any]:
    """
    Decode a UTF-8 JSON response and parse it into a Python object, including a
    short preview of invalid data in error messages.
    """
    try:
        return json.loads(raw.decode("utf-8"))
    except json.JSONDecodeError as ex:
        preview = raw[:256].decode("utf-8", errors="replace")
        raise TransportFailure(f"Invalid JSON from {url!r}: {ex.msg} at pos {ex.pos}; preview={preview!r}") from ex
    except DECODE_ERRORS as ex:
        raise TransportFailure(f"Undecodable response from {url!r}: {ex}") from ex


def http_get_json(
        url: str,
        timeout: float = HTTP_TIMEOUT_DEFAULT,
        extra_headers: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """
    Fetch JSON from a URL, adding any extra headers (such as an API key) to
    the defaults, and return the parsed response.
    """
    headers = DEFAULT_JSON_HEADERS.copy()
    if extra_headers:
        headers.update(extra_headers)
    raw = http_fetch_bytes(url, headers, timeout)
    return _decode_json_bytes(raw, url)


def http_get_xml(url: str, timeout: float = HTTP_TIMEOUT_DEFAULT) -> bytes:
    """
    Fetch an XML document and return its raw bytes for ElementTree to parse,
    which honours the document's own encoding declaration.
    """
    return http_fetch_bytes(url, DEFAULT_XML_HEADERS.copy(), timeout)
