from __future__ import annotations

import logging
import os
import queue
import threading
from typing import Callable, Dict, Iterable, List, Optional

from .hashing import hash_file
from .logs import ActivityLog
from .models import Candidate, FileRecord, MirrorConfig, ProgressEvent, Status


logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]


def validate_candidate(config: MirrorConfig, candidate: Candidate) -> FileRecord:
    """Compare one source file with its mirror copy. Never raises."""

    record = FileRecord(
        relative_path=candidate.path,
        full_path=candidate.path,
        size_bytes=candidate.size,
        status=Status.ERROR,
    )
    try:
        record.relative_path = config.relative_path(candidate.path)
        destination = config.destination_for(candidate.path)
        if not os.path.exists(destination):
            record.status = Status.MISSING
            return record
        record.src_hash = hash_file(candidate.path, config.hash_algorithm)
        record.dst_hash = hash_file(destination, config.hash_algorithm)
        record.status = Status.OK if record.src_hash == record.dst_hash else Status.MISMATCH
    except Exception as exc:
        record.status = Status.ERROR
        record.error = str(exc)
    return record


class ValidationPool:
    """Fixed set of worker threads draining one FIFO queue of candidates.

    Each worker stores its record under the record's own relative path, so
    the lock around the result map only protects the dictionary itself.
    ``current`` is a best-effort view of the last file picked up by any
    worker and may skip entries.
    """

    def __init__(
        self,
        config: MirrorConfig,
        activity_log: Optional[ActivityLog] = None,
        hash_log: Optional[ActivityLog] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> None:
        self.config = config
        self.activity_log = activity_log
        self.hash_log = hash_log
        self.progress_callback = progress_callback
        self.current: Optional[str] = None
        self._queue: "queue.Queue[Candidate]" = queue.Queue()
        self._results: Dict[str, FileRecord] = {}
        self._lock = threading.Lock()
        self._completed = 0
        self._total = 0

    @property
    def completed(self) -> int:
        return self._completed

    def run(self, candidates: Iterable[Candidate]) -> Dict[str, FileRecord]:
        """Validate every candidate and return once all workers have finished."""

        for candidate in candidates:
            self._queue.put(candidate)
        self._total = self._queue.qsize()
        if not self._total:
            return {}
        worker_count = min(self.config.workers, self._total)
        logger.info("Validating %d file(s) with %d worker(s)", self._total, worker_count)
        workers: List[threading.Thread] = []
        for index in range(worker_count):
            worker = threading.Thread(target=self._work, name=f"mirror-hash-{index}", daemon=True)
            workers.append(worker)
            worker.start()
        for worker in workers:
            worker.join()
        with self._lock:
            if self._completed != self._total:
                logger.error("Only %d of %d file(s) were validated", self._completed, self._total)
            return dict(self._results)

    def _work(self) -> None:
        while True:
            try:
                candidate = self._queue.get_nowait()
            except queue.Empty:
                return
            self.current = candidate.path
            record = validate_candidate(self.config, candidate)
            with self._lock:
                self._results[record.relative_path] = record
                self._completed += 1
                completed = self._completed
            try:
                self._log(record)
            except Exception:
                logger.exception("Could not log result for %s", record.full_path)
            self._emit(ProgressEvent(completed, self._total, record.full_path, record.status))

    def _log(self, record: FileRecord) -> None:
        if record.status == Status.ERROR:
            logger.warning("Error validating %s: %s", record.full_path, record.error)
        if self.activity_log:
            self.activity_log.append(record.status.value, record.full_path, record.error)
        if self.hash_log:
            detail = record.error
            if record.src_hash or record.dst_hash:
                detail = f"src={record.src_hash or '-'} dst={record.dst_hash or '-'}"
            self.hash_log.append(record.status.value, record.full_path, detail)

    def _emit(self, event: ProgressEvent) -> None:
        if not self.progress_callback:
            return
        try:
            self.progress_callback(event)
        except Exception:
            logger.exception("Progress callback failed for %s", event.current)
