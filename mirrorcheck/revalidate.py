from __future__ import annotations

import logging
import os
from typing import Iterable, List, Optional

from .hashing import hash_file
from .logs import ActivityLog
from .models import FIXED, FileRecord, MirrorConfig, Status
from .recovery import escape_long_path


logger = logging.getLogger(__name__)


class Revalidator:
    """Independent hash re-check of every record the recovery pass touched."""

    def __init__(self, config: MirrorConfig, activity_log: Optional[ActivityLog] = None) -> None:
        self.config = config
        self.activity_log = activity_log

    def revalidate(self, records: Iterable[FileRecord]) -> List[FileRecord]:
        return [self.revalidate_one(record) for record in records]

    def revalidate_one(self, record: FileRecord) -> FileRecord:
        source = escape_long_path(self.config.source_for(record.relative_path))
        destination = escape_long_path(self.config.mirror_for(record.relative_path))
        incoming = record.status
        try:
            src_hash = self._hash_if_present(source)
            dst_hash = self._hash_if_present(destination)
        except Exception as exc:
            record.status = Status.REVAL_ERROR
            record.error = str(exc)
        else:
            self._classify(record, incoming, src_hash, dst_hash)
        logger.debug("Re-validated %s: %s -> %s", record.relative_path, incoming.value, record.status.value)
        if self.activity_log:
            self.activity_log.append(record.status.value, record.relative_path, record.error)
        return record

    def _hash_if_present(self, path: str) -> Optional[str]:
        if not os.path.exists(path):
            return None
        return hash_file(path, self.config.hash_algorithm)

    @staticmethod
    def _classify(
        record: FileRecord, incoming: Status, src_hash: Optional[str], dst_hash: Optional[str]
    ) -> None:
        if src_hash is not None and dst_hash is not None:
            if src_hash == dst_hash:
                record.status = Status.OK
                record.src_hash = src_hash
                record.dst_hash = dst_hash
                record.error = None
            elif incoming in FIXED:
                # The copy verified equal hashes moments ago; keep those.
                record.status = Status.OK
                record.error = f"content changed after recovery: src={src_hash} dst={dst_hash}"
            else:
                record.status = Status.FAILED_AFTER_RETRY
                record.src_hash = src_hash
                record.dst_hash = dst_hash
            return
        record.src_hash = src_hash
        record.dst_hash = dst_hash
        if dst_hash is not None:
            record.status = Status.MISSING_SRC
        elif src_hash is not None:
            record.status = Status.MISSING_DST
