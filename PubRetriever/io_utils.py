from __future__ import annotations

import json
import os
from typing import Any, Dict, List, Optional

from .config import DEFAULT_INPUT, DEFAULT_SCOPUS_KEY_FILE, DEFAULT_NCBI_KEY_FILE
from .exceptions import FILE_READ_ERRORS, JSON_ERRORS, PARSE_ERRORS
from .log_utils import logger, LogCategory
from .models import Identity


# Settings that may be overridden from the settings file, with their expected types
_SETTINGS_TYPES = {
    "search_strategy_lenient_threshold": (int, float),
    "strategy_result_threshold": (int,),
    "use_scopus_articles": (bool,),
    "retrieval_pool_size": (int,),
    "home_institution_keywords": (list,),
}


def _project_root() -> str:
    """
    Return the absolute path to the project root directory, inferred from the location of this module on disk.
    """
    return os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))


def _candidate_paths(primary: str) -> List[str]:
    """
    Paths to try for a file: as given, then relative to the project root.
    """
    candidates: List[str] = [primary]
    if not os.path.isabs(primary):
        rooted = os.path.join(_project_root(), primary)
        if rooted != primary:
            candidates.append(rooted)
    return candidates


def _read_key_file(path: str, required: bool = True) -> Optional[str]:
    """
    Return the first non-empty line of a key file, trying the usual locations.
    A missing file raises when `required`, otherwise gives None.
    """
    candidates = _candidate_paths(path)
    last_err: Optional[Exception] = None
    for p in candidates:
        try:
            with open(p, "r", encoding="utf-8") as f:
                lines = [ln.strip() for ln in f.read().splitlines() if ln.strip()]
        except FileNotFoundError as e:
            last_err = e
            continue
        if lines:
            return lines[0]
        last_err = ValueError(f"{os.path.basename(p)} is empty")

    if required:
        raise last_err or FileNotFoundError(f"Key file not found (tried: {', '.join(candidates)})")
    return None


def read_scopus_api_key(path: str = DEFAULT_SCOPUS_KEY_FILE) -> str:
    """
    Load the Elsevier API key used for Scopus lookups.
    """
    return _read_key_file(path, required=True) or ""


def read_ncbi_api_key(path: str = DEFAULT_NCBI_KEY_FILE) -> Optional[str]:
    """
    Load the optional NCBI key; without it E-utilities allows fewer requests per second.
    """
    return _read_key_file(path, required=False)


def read_identities(path: str = DEFAULT_INPUT) -> List[Identity]:
    """
    Load identities from a JSON file holding a list of identity objects.
    Entries that cannot be parsed are logged and skipped.
    """
    for p in _candidate_paths(path):
        try:
            with open(p, "r", encoding="utf-8") as f:
                raw = json.load(f)
            break
        except FileNotFoundError:
            continue
    else:
        raise FileNotFoundError(f"Identity file not found (tried: {', '.join(_candidate_paths(path))})")

    if not isinstance(raw, list):
        raise ValueError("Identity file must contain a JSON list")

    identities: List[Identity] = []
    for idx, item in enumerate(raw):
        try:
            identities.append(Identity.from_dict(item))
        except PARSE_ERRORS + (AttributeError,) as e:
            logger.warn(f"Skipping identity #{idx}: {e}", category=LogCategory.SKIP)
    if not identities:
        raise ValueError("No valid identities found in input file.")
    return identities


def read_settings(path: str) -> Dict[str, Any]:
    """
    Load overrides for the engine settings from a JSON object. A missing or
    unreadable file gives no overrides; unknown keys and values of the wrong
    type are ignored with a warning.
    """
    data = safe_read_json(path, default=None)
    if data is None:
        for p in _candidate_paths(path)[1:]:
            data = safe_read_json(p, default=None)
            if data is not None:
                break
    if not isinstance(data, dict):
        return {}

    settings: Dict[str, Any] = {}
    for key, value in data.items():
        expected = _SETTINGS_TYPES.get(key)
        if expected is None:
            logger.warn(f"Unknown setting '{key}' ignored", category=LogCategory.PLAN)
            continue
        # bool is an int subclass; keep it out of numeric settings
        if not isinstance(value, expected) or (bool not in expected and isinstance(value, bool)):
            logger.warn(f"Setting '{key}' has wrong type; ignored", category=LogCategory.PLAN)
            continue
        settings[key] = value
    return settings


def safe_read_json(path: str, default: Any = None) -> Any:
    """
    Safely read a JSON file and return its parsed contents, returning a default value on error.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FILE_READ_ERRORS + JSON_ERRORS:
        return default


def safe_write_json(path: str, data: Any, makedirs: bool = True, indent: Optional[int] = 2) -> bool:
    """
    Write data to a JSON file through a temporary file, optionally creating
    parent directories. Returns False instead of raising on failure.
    """
    if makedirs:
        parent_dir = os.path.dirname(path)
        if parent_dir:
            try:
                os.makedirs(parent_dir, exist_ok=True)
            except OSError:
                return False

    tmp_path = f"{path}.tmp"
    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=indent)
        os.replace(tmp_path, path)
        return True
    except (OSError, TypeError, ValueError):
        return False
