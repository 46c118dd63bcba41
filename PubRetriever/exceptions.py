from __future__ import annotations

import json
import socket
import xml.etree.ElementTree as ElementTree
import requests

__all__ = [
    "TransportFailure",
    "PersistenceFailure",
    "BatchInterrupted",
    "HTTP_ERRORS",
    "TIMEOUT_ERRORS",
    "NETWORK_ERRORS",
    "DECODE_ERRORS",
    "PARSE_ERRORS",
    "XML_PARSE_ERRORS",
    "RETRIEVAL_ERRORS",
    "FILE_IO_ERRORS",
    "JSON_ERRORS",
    "FILE_READ_ERRORS",
    "PERSISTENCE_ERRORS",
]


class TransportFailure(RuntimeError):
    """
    Raised by the query clients when an external bibliographic source cannot
    be reached or answers with something that cannot be decoded.
    """


class PersistenceFailure(RuntimeError):
    """
    Raised by a store when a batch of records or an identity cannot be written.
    """


class BatchInterrupted(RuntimeError):
    """
    Raised when waiting on a batch of identity passes is cut short.
    """


# errors raised by requests when an HTTP request fails or a URL cannot be reached
HTTP_ERRORS = (requests.exceptions.RequestException,)

# errors that signal an operation has taken too long and hit a timeout at the OS or socket level
TIMEOUT_ERRORS = (TimeoutError, socket.timeout)

# umbrella group for network-related failures
NETWORK_ERRORS = HTTP_ERRORS + TIMEOUT_ERRORS + (TransportFailure,)

# errors that occur when converting response bytes into text using a specific encoding
DECODE_ERRORS = (UnicodeDecodeError, UnicodeError)

# errors raised while interpreting structured data such as JSON, XML, or response fields
PARSE_ERRORS = (ValueError, TypeError, KeyError)

# XML parsing errors when processing PubMed efetch responses
XML_PARSE_ERRORS = (ElementTree.ParseError, ValueError, TypeError)

# everything a strategy may raise while querying a source and parsing the answer;
# the engine degrades these to an empty step instead of abandoning the pass
RETRIEVAL_ERRORS = NETWORK_ERRORS + DECODE_ERRORS + PARSE_ERRORS + XML_PARSE_ERRORS

# file system operation errors when reading configuration files, API keys, or data files
FILE_IO_ERRORS = (FileNotFoundError, OSError)

# JSON parsing errors when loading identity, settings, or store files
JSON_ERRORS = (json.JSONDecodeError, ValueError, TypeError)

# combined file read errors including I/O failures, encoding issues, and malformed data
FILE_READ_ERRORS = FILE_IO_ERRORS + DECODE_ERRORS + PARSE_ERRORS

# store write failures; logged by the engine without blocking later strategies
PERSISTENCE_ERRORS = (PersistenceFailure, OSError, TypeError, ValueError)
