from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional, Sequence

from .export_excel import export_report_xlsx
from .filters import iter_candidates
from .logs import ActivityLog
from .mirror_tool import MirrorTool
from .models import RECOVERABLE, Candidate, FileRecord, MirrorConfig, RunSummary
from .pool import ProgressCallback, ValidationPool
from .recovery import CopyStrategy, RecoveryEngine
from .report import is_settled, load_resume, merge, persist, write_mismatches
from .revalidate import Revalidator


logger = logging.getLogger(__name__)


class MirrorValidator:
    """Validate a mirrored tree against its source, then repair what is broken.

    Stages run strictly one after another: enumeration, the concurrent
    validation pool, merge and persist, sequential recovery, re-validation and
    a final persist. Only the validation pool is multi-threaded.
    """

    def __init__(
        self,
        config: MirrorConfig,
        progress_callback: Optional[ProgressCallback] = None,
        strategies: Optional[Sequence[CopyStrategy]] = None,
        mirror_tool: Optional[MirrorTool] = None,
    ) -> None:
        self.config = config
        self.progress_callback = progress_callback
        self.strategies = strategies
        self.mirror_tool = mirror_tool
        self.records: Dict[str, FileRecord] = {}
        self.summary = RunSummary()

    def run(self) -> RunSummary:
        config = self.config
        if config.run_mirror:
            (self.mirror_tool or MirrorTool()).run(config)

        header = f"{config.source_root} -> {config.destination_root}"
        activity_log = ActivityLog(config.activity_log_path).open(header)
        hash_log = ActivityLog(config.hash_log_path).open(header)
        try:
            self._run_internal(activity_log, hash_log)
        finally:
            activity_log.close()
            hash_log.close()
        return self.summary

    def _run_internal(self, activity_log: ActivityLog, hash_log: ActivityLog) -> None:
        config = self.config
        resume = load_resume(config.report_path)
        self.records = dict(resume)

        candidates = list(iter_candidates(str(config.source_root), config.exclude_fragments))
        self.summary.candidates = len(candidates)
        if not candidates:
            logger.info("No files to validate under %s", config.source_root)
            self._finish()
            return

        queue = build_work_queue(config, candidates, resume)
        logger.info(
            "%d candidate(s), %d already verified, %d queued",
            len(candidates),
            len(candidates) - len(queue),
            len(queue),
        )
        if not queue:
            logger.info("Nothing to validate, every file is already verified")
            write_mismatches(config.mismatch_path, self.records.values())
            self._export()
            self._finish()
            return

        pool = ValidationPool(config, activity_log, hash_log, self.progress_callback)
        fresh = pool.run(queue)
        self.summary.validated = len(fresh)

        self.records = merge(resume, fresh)
        persist(config.report_path, config.mismatch_path, self.records)

        broken = [record for record in self.records.values() if record.status in RECOVERABLE]
        if broken:
            logger.info("Recovering %d file(s)", len(broken))
            touched = RecoveryEngine(config, self.strategies, activity_log).recover(broken)
            Revalidator(config, activity_log).revalidate(touched)
            self.summary.recovered = len(touched)
            self.records = merge(self.records, {record.relative_path: record for record in touched})
            persist(config.report_path, config.mismatch_path, self.records)

        self._export()
        self._finish()

    def _export(self) -> None:
        if self.config.excel_report:
            export_report_xlsx(self.config.excel_report, self.records.values())
            logger.info("Excel report written to %s", self.config.excel_report)

    def _finish(self) -> None:
        self.summary.counts = count_statuses(self.records.values())


def build_work_queue(
    config: MirrorConfig, candidates: Sequence[Candidate], resume: Mapping[str, FileRecord]
) -> List[Candidate]:
    """Candidates whose last recorded status is not OK, or that were never seen."""

    return [c for c in candidates if not is_settled(resume.get(config.relative_path(c.path)))]


def count_statuses(records) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for record in records:
        counts[record.status.value] = counts.get(record.status.value, 0) + 1
    return counts
