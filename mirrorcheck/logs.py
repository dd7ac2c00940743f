from __future__ import annotations

import logging
import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional


_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"
_RUN_HEADER = "=== RUN START ==="


def configure_logging(log_path: Path, verbose: bool = False) -> logging.Logger:
    """Attach file and stderr handlers to the ``mirrorcheck`` logger once."""

    logger = logging.getLogger("mirrorcheck")
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False
    if logger.handlers:
        return logger

    log_path.parent.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT)

    fh = logging.FileHandler(log_path, encoding="utf-8", errors="backslashreplace")
    fh.setFormatter(formatter)
    logger.addHandler(fh)

    ch = logging.StreamHandler(sys.stderr)
    ch.setFormatter(formatter)
    logger.addHandler(ch)

    logger.debug("Logging to: %s", log_path)
    return logger


def _timestamp() -> str:
    return datetime.now().isoformat(timespec="seconds")


class ActivityLog:
    """Append-only, tab-separated log shared by the validation workers.

    Lines look like ``<timestamp>\\t<status>\\t<path>[\\t<detail>]``. The file
    is never truncated; each run starts with a header line instead.
    """

    def __init__(self, path: Path):
        self.path = path
        self._lock = threading.Lock()
        self._handle = None

    def open(self, header: str = "") -> "ActivityLog":
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._handle = self.path.open("a", encoding="utf-8", errors="surrogateescape")
        self._write_line(_timestamp(), _RUN_HEADER, header)
        return self

    def append(self, status: str, path: str, detail: Optional[str] = None) -> None:
        fields = [_timestamp(), str(status), path]
        if detail:
            fields.append(_single_line(detail))
        self._write_line(*fields)

    def _write_line(self, *fields: str) -> None:
        with self._lock:
            if not self._handle:
                return
            self._handle.write("\t".join(fields) + "\n")
            self._handle.flush()

    def close(self) -> None:
        with self._lock:
            handle = self._handle
            self._handle = None
        if handle:
            handle.close()

    def __enter__(self) -> "ActivityLog":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def _single_line(text: str) -> str:
    return " ".join(text.replace("\t", " ").splitlines())
