from __future__ import annotations

import logging
import os
import sys
import threading
from typing import Dict, Optional

# STEP marks the start of a pass or strategy, SUCCESS its completion; both sit
# above INFO so they survive an INFO console threshold.
STEP_LEVEL = 25
SUCCESS_LEVEL = 22

logging.addLevelName(STEP_LEVEL, "STEP")
logging.addLevelName(SUCCESS_LEVEL, "SUCCESS")


class LogSource:
    """
    Names of the external sources, so every message about one source is
    tagged and coloured the same way.
    """
    PUBMED = "PubMed"
    SCOPUS = "Scopus"
    SYSTEM = "System"


class LogCategory:
    """
    Semantic tags for the phases of a retrieval pass.
    """
    IDENTITY = "IDENTITY"
    STRATEGY = "STRATEGY"
    FETCH = "FETCH"
    SEARCH = "SEARCH"
    ALIAS = "ALIAS"
    MATCH = "MATCH"
    SAVE = "SAVE"
    SKIP = "SKIP"
    ERROR = "ERROR"
    PLAN = "PLAN"


# ANSI SGR codes
_LEVEL_CODES: Dict[str, str] = {
    "DEBUG": "36",
    "INFO": "37",
    "STEP": "1;36",
    "SUCCESS": "1;32",
    "WARNING": "33",
    "ERROR": "31",
    "CRITICAL": "1;31",
}

_TAG_CODES: Dict[str, str] = {
    LogSource.PUBMED: "94",
    LogSource.SCOPUS: "95",
    LogSource.SYSTEM: "37",
    LogCategory.IDENTITY: "1;35",
    LogCategory.STRATEGY: "1;34",
    LogCategory.FETCH: "36",
    LogCategory.SEARCH: "33",
    LogCategory.ALIAS: "35",
    LogCategory.MATCH: "1;32",
    LogCategory.SAVE: "32",
    LogCategory.SKIP: "90",
    LogCategory.ERROR: "31",
    LogCategory.PLAN: "35",
}


def _paint(text: str, code: Optional[str]) -> str:
    return f"\033[{code}m{text}\033[0m" if code else text


class TaggedFormatter(logging.Formatter):
    """
    Prefixes each message with its [source] and [category] tags. With colour
    on, the tags and the level name are painted for the terminal.
    """

    FORMAT = "%(asctime)s [%(levelname)-8s] %(message)s"
    DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

    def __init__(self, use_color: bool):
        super().__init__(self.FORMAT, datefmt=self.DATE_FORMAT)
        self.use_color = use_color

    def _tags(self, record: logging.LogRecord) -> str:
        tags = []
        for value in (getattr(record, "source", None), getattr(record, "category", None)):
            if value:
                tag = f"[{value}]"
                tags.append(_paint(tag, _TAG_CODES.get(value)) if self.use_color else tag)
        return " ".join(tags)

    def format(self, record: logging.LogRecord) -> str:
        # the record is shared with the other handlers; restore what we touch
        saved_msg, saved_level = record.msg, record.levelname
        tags = self._tags(record)
        if tags:
            record.msg = f"{tags} {record.msg}"
        if self.use_color:
            record.levelname = _paint(record.levelname, _LEVEL_CODES.get(record.levelname))
        try:
            return super().format(record)
        finally:
            record.msg, record.levelname = saved_msg, saved_level


class MainThreadOnly(logging.Filter):
    """
    Keeps worker threads off the console so parallel passes do not interleave;
    their output goes to their own log files instead.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        return threading.current_thread() is threading.main_thread()


class PerThreadFileHandler(logging.Handler):
    """
    Writes each record to the file opened by the emitting thread, if any.
    """

    def __init__(self):
        super().__init__(level=logging.DEBUG)
        self._local = threading.local()

    @property
    def path(self) -> Optional[str]:
        return getattr(self._local, "path", None)

    def open(self, path: str) -> None:
        self.close_current()
        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        target = logging.FileHandler(path, mode="w", encoding="utf-8")
        target.setLevel(logging.DEBUG)
        target.setFormatter(TaggedFormatter(use_color=False))
        self._local.target = target
        self._local.path = path

    def close_current(self) -> None:
        target = getattr(self._local, "target", None)
        if target is not None:
            target.close()
        self._local.target = None
        self._local.path = None

    def emit(self, record: logging.LogRecord) -> None:
        target = getattr(self._local, "target", None)
        if target is not None:
            target.emit(record)


class Logger:
    """
    Project logger on top of the logging module.

    Console output comes from the main thread only and starts at INFO. Every
    thread can mirror its own messages, DEBUG included, to a file with
    `set_log_file`; a batch worker uses this to keep one file per identity.
    Messages take optional `source` and `category` tags.
    """

    def __init__(self, name: str = "PubRetriever"):
        self._logger = logging.getLogger(name)
        self._logger.setLevel(logging.DEBUG)
        self._logger.propagate = False
        self._logger.handlers.clear()

        console = logging.StreamHandler(sys.stdout)
        console.setLevel(logging.INFO)
        console.addFilter(MainThreadOnly())
        console.setFormatter(TaggedFormatter(use_color=sys.stdout.isatty()))
        self._logger.addHandler(console)

        self._files = PerThreadFileHandler()
        self._logger.addHandler(self._files)

    def set_log_file(self, path: str):
        """
        Mirror the current thread's messages to `path`, replacing any file it
        had open. A file that cannot be opened is reported and skipped.
        """
        try:
            self._files.open(path)
        except OSError as e:
            self._files.close_current()
            self.error(f"Failed to open log file {path}: {e}", category=LogCategory.ERROR)

    def close(self):
        """
        Stop mirroring the current thread's messages to its file.
        """
        self._files.close_current()

    def _log(self, level: int, msg: str, source: Optional[str], category: Optional[str]):
        extra = {}
        if source:
            extra["source"] = source
        if category:
            extra["category"] = category
        self._logger.log(level, msg, extra=extra)

    def step(self, msg: str, source: Optional[str] = None, category: Optional[str] = None):
        self._log(STEP_LEVEL, msg, source, category)

    def debug(self, msg: str, *, source: Optional[str] = None, category: Optional[str] = None):
        self._log(logging.DEBUG, msg, source, category)

    def info(self, msg: str, *, source: Optional[str] = None, category: Optional[str] = None):
        self._log(logging.INFO, msg, source, category)

    def warn(self, msg: str, *, source: Optional[str] = None, category: Optional[str] = None):
        self._log(logging.WARNING, msg, source, category)

    def error(self, msg: str, *, source: Optional[str] = None, category: Optional[str] = None):
        self._log(logging.ERROR, msg, source, category)

    def success(self, msg: str, *, source: Optional[str] = None, category: Optional[str] = None):
        self._log(SUCCESS_LEVEL, msg, source, category)

    @property
    def log_file_path(self) -> Optional[str]:
        """
        Log file of the current thread, if any.
        """
        return self._files.path


# Global logger instance
logger = Logger()
