from __future__ import annotations

import hashlib
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Tuple


_MAX_HASH_WORKERS = 32
_DEFAULT_EXCLUDES = ("$RECYCLE.BIN", "System Volume Information")


class Status(str, Enum):
    OK = "OK"
    MISSING = "MISSING"
    MISMATCH = "MISMATCH"
    ERROR = "ERROR"
    FIXED_BY_COPY = "FIXED_BY_COPY"
    FIXED_BY_COPY_LONGPATH = "FIXED_BY_COPY_LONGPATH"
    FAILED_AFTER_COPY_HASHMISMATCH = "FAILED_AFTER_COPY_HASHMISMATCH"
    RECOVERY_FAILED = "RECOVERY_FAILED"
    MISSING_SRC = "MISSING_SRC"
    MISSING_DST = "MISSING_DST"
    FAILED_AFTER_RETRY = "FAILED_AFTER_RETRY"
    REVAL_ERROR = "REVAL_ERROR"

    def __str__(self) -> str:
        return self.value


RECOVERABLE = frozenset({Status.MISSING, Status.MISMATCH, Status.ERROR})
FIXED = frozenset({Status.FIXED_BY_COPY, Status.FIXED_BY_COPY_LONGPATH})


@dataclass(frozen=True)
class Candidate:
    """A file discovered under the source root."""

    path: str
    size: int


@dataclass
class FileRecord:
    relative_path: str
    full_path: str
    size_bytes: int
    status: Status
    src_hash: Optional[str] = None
    dst_hash: Optional[str] = None
    error: Optional[str] = None

    def sort_key(self) -> Tuple[str, str]:
        return (self.status.value, self.relative_path)

    @property
    def settled(self) -> bool:
        return self.status == Status.OK


def _default_workers() -> int:
    return min(_MAX_HASH_WORKERS, max(1, os.cpu_count() or 1) * 2)


@dataclass(frozen=True)
class MirrorConfig:
    """Static settings for one validation run. Never mutated once built."""

    source_root: Path
    destination_root: Path
    log_dir: Path
    workers: int = field(default_factory=_default_workers)
    hash_algorithm: str = "sha256"
    exclude_fragments: Tuple[str, ...] = _DEFAULT_EXCLUDES
    run_mirror: bool = False
    excel_report: Optional[Path] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "source_root", Path(self.source_root).expanduser().absolute())
        object.__setattr__(self, "destination_root", Path(self.destination_root).expanduser().absolute())
        object.__setattr__(self, "log_dir", Path(self.log_dir).expanduser().absolute())
        object.__setattr__(self, "exclude_fragments", tuple(self.exclude_fragments))
        if self.excel_report is not None:
            object.__setattr__(self, "excel_report", Path(self.excel_report).expanduser())
        if self.workers < 1:
            raise ValueError(f"workers must be at least 1, got {self.workers}")
        try:
            hashlib.new(self.hash_algorithm)
        except ValueError as exc:
            raise ValueError(f"Unknown hash algorithm: {self.hash_algorithm}") from exc

    @property
    def report_path(self) -> Path:
        return self.log_dir / "validation_report.csv"

    @property
    def mismatch_path(self) -> Path:
        return self.log_dir / "mismatches.txt"

    @property
    def activity_log_path(self) -> Path:
        return self.log_dir / "activity.log"

    @property
    def hash_log_path(self) -> Path:
        return self.log_dir / "hash.log"

    @property
    def diagnostic_log_path(self) -> Path:
        return self.log_dir / "mirrorcheck.log"

    def relative_path(self, full_path: str) -> str:
        return os.path.relpath(full_path, str(self.source_root))

    def destination_for(self, full_path: str) -> str:
        return os.path.join(str(self.destination_root), self.relative_path(full_path))

    def source_for(self, relative_path: str) -> str:
        return os.path.join(str(self.source_root), relative_path)

    def mirror_for(self, relative_path: str) -> str:
        return os.path.join(str(self.destination_root), relative_path)


@dataclass(frozen=True)
class ProgressEvent:
    completed: int
    total: int
    current: str
    status: Status


@dataclass
class RunSummary:
    candidates: int = 0
    validated: int = 0
    recovered: int = 0
    counts: Dict[str, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    @property
    def ok(self) -> bool:
        return all(status == Status.OK.value for status in self.counts)

    def as_dict(self) -> Dict[str, object]:
        return {
            "candidates": self.candidates,
            "validated": self.validated,
            "recovered": self.recovered,
            "total": self.total,
            "counts": dict(sorted(self.counts.items())),
        }
