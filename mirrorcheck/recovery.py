from __future__ import annotations

import logging
import ntpath
import os
import shutil
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional, Sequence

from .hashing import hash_file
from .logs import ActivityLog
from .models import FileRecord, MirrorConfig, Status


logger = logging.getLogger(__name__)

_LONG_PREFIX = "\\\\?\\"
_UNC_PREFIX = "\\\\"

Copier = Callable[[str, str], object]


def escape_long_path(path: str, windows: Optional[bool] = None) -> str:
    """Return ``path`` in a form that is not subject to the classic path limit.

    On Windows that is the ``\\\\?\\`` prefix (``\\\\?\\UNC\\`` for shares).
    Other platforms have no such notation, so the absolute path is returned.
    """

    if windows is None:
        windows = os.name == "nt"
    if not windows:
        return os.path.abspath(path)
    if path.startswith(_LONG_PREFIX):
        return path
    text = ntpath.normpath(path)
    if text.startswith(_UNC_PREFIX):
        return _LONG_PREFIX + "UNC\\" + text[len(_UNC_PREFIX):]
    return _LONG_PREFIX + text


def _plain_path(path: str) -> str:
    return path


class OutcomeKind(str, Enum):
    COPIED = "copied"
    MISMATCH = "mismatch"
    ERROR = "error"


@dataclass
class CopyOutcome:
    kind: OutcomeKind
    src_hash: Optional[str] = None
    dst_hash: Optional[str] = None
    error: Optional[str] = None


@dataclass
class CopyStrategy:
    """One rung of the recovery ladder: copy, then verify both sides by hash."""

    name: str
    fixed_status: Status
    map_path: Callable[[str], str] = _plain_path
    copier: Copier = shutil.copy2

    def attempt(self, source: str, destination: str, algorithm: str) -> CopyOutcome:
        src = self.map_path(source)
        dst = self.map_path(destination)
        try:
            os.makedirs(os.path.dirname(dst), exist_ok=True)
            self.copier(src, dst)
            src_hash = hash_file(src, algorithm)
            dst_hash = hash_file(dst, algorithm)
            if src_hash == dst_hash:
                return CopyOutcome(OutcomeKind.COPIED, src_hash, dst_hash)
            _remove_quietly(dst)
            return CopyOutcome(
                OutcomeKind.MISMATCH,
                src_hash,
                dst_hash,
                f"hash mismatch after {self.name} copy",
            )
        except Exception as exc:
            return CopyOutcome(OutcomeKind.ERROR, error=str(exc))


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


def default_strategies() -> List[CopyStrategy]:
    return [
        CopyStrategy("plain", Status.FIXED_BY_COPY),
        CopyStrategy("long-path", Status.FIXED_BY_COPY_LONGPATH, map_path=escape_long_path),
    ]


class RecoveryEngine:
    """Re-copies broken files one at a time, walking the strategy ladder.

    A strategy that copies and verifies resolves the record with its
    ``fixed_status``. When the last strategy also fails the record ends as
    FAILED_AFTER_COPY_HASHMISMATCH (copy landed but hashes differ) or
    RECOVERY_FAILED (the copy itself raised).
    """

    def __init__(
        self,
        config: MirrorConfig,
        strategies: Optional[Sequence[CopyStrategy]] = None,
        activity_log: Optional[ActivityLog] = None,
    ) -> None:
        self.config = config
        self.strategies = list(strategies) if strategies is not None else default_strategies()
        if not self.strategies:
            raise ValueError("at least one copy strategy is required")
        self.activity_log = activity_log

    def recover(self, records: Iterable[FileRecord]) -> List[FileRecord]:
        touched = []
        for record in records:
            self.recover_one(record)
            touched.append(record)
        return touched

    def recover_one(self, record: FileRecord) -> FileRecord:
        source = self.config.source_for(record.relative_path)
        destination = self.config.mirror_for(record.relative_path)
        previous = record.status
        outcome = CopyOutcome(OutcomeKind.ERROR)
        for strategy in self.strategies:
            outcome = strategy.attempt(source, destination, self.config.hash_algorithm)
            if outcome.kind == OutcomeKind.COPIED:
                record.status = strategy.fixed_status
                record.error = None
                break
            logger.debug("%s copy of %s failed: %s", strategy.name, record.relative_path, outcome.error)
        else:
            if outcome.kind == OutcomeKind.MISMATCH:
                record.status = Status.FAILED_AFTER_COPY_HASHMISMATCH
            else:
                record.status = Status.RECOVERY_FAILED
            record.error = outcome.error
            logger.warning("Recovery of %s failed: %s", record.relative_path, record.error)
        record.src_hash = outcome.src_hash
        record.dst_hash = outcome.dst_hash
        logger.info("Recovery of %s: %s -> %s", record.relative_path, previous.value, record.status.value)
        if self.activity_log:
            self.activity_log.append(record.status.value, record.relative_path, record.error)
        return record
