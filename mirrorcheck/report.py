from __future__ import annotations

import csv
import logging
import os
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional

from .models import FileRecord, Status


logger = logging.getLogger(__name__)

COLUMNS = ["FullPath", "RelativePath", "SizeBytes", "SrcHash", "DstHash", "Status", "Error"]


def is_settled(record: Optional[FileRecord]) -> bool:
    return record is not None and record.settled


def _optional(value: Optional[str]) -> Optional[str]:
    if value is None or value == "":
        return None
    return value


def _row_to_record(row: Mapping[str, str]) -> Optional[FileRecord]:
    rel = row.get("RelativePath")
    status = row.get("Status")
    if not rel or not status:
        return None
    try:
        return FileRecord(
            relative_path=rel,
            full_path=row.get("FullPath") or "",
            size_bytes=int(row.get("SizeBytes") or 0),
            status=Status(status),
            src_hash=_optional(row.get("SrcHash")),
            dst_hash=_optional(row.get("DstHash")),
            error=_optional(row.get("Error")),
        )
    except ValueError:
        return None


def load_resume(report_path: Path) -> Dict[str, FileRecord]:
    """Read a previous run's report, keyed by relative path.

    A missing report is a cold start. An unreadable or structurally broken
    report is also a cold start, with a warning. Individual malformed rows are
    dropped so the rest of the history survives.
    """

    if not report_path.exists():
        logger.info("No previous report at %s, starting fresh", report_path)
        return {}
    records: Dict[str, FileRecord] = {}
    skipped = 0
    try:
        with report_path.open("r", encoding="utf-8", errors="surrogateescape", newline="") as handle:
            reader = csv.DictReader(handle)
            missing = [name for name in ("RelativePath", "Status") if name not in (reader.fieldnames or [])]
            if missing:
                logger.warning(
                    "Ignoring previous report %s: missing column(s) %s", report_path, ", ".join(missing)
                )
                return {}
            for row in reader:
                record = _row_to_record(row)
                if record is None:
                    skipped += 1
                    continue
                records[record.relative_path] = record
    except (OSError, UnicodeDecodeError, csv.Error) as exc:
        logger.warning("Could not read previous report %s (%s), starting fresh", report_path, exc)
        return {}
    if skipped:
        logger.warning("Skipped %d malformed row(s) in %s", skipped, report_path)
    logger.info("Loaded %d record(s) from %s", len(records), report_path)
    return records


def sort_records(records: Iterable[FileRecord]) -> List[FileRecord]:
    return sorted(records, key=FileRecord.sort_key)


def merge(resume: Mapping[str, FileRecord], fresh: Mapping[str, FileRecord]) -> Dict[str, FileRecord]:
    """Fresh results win; anything only known from the resume map is kept as is."""

    merged = dict(resume)
    merged.update(fresh)
    return {record.relative_path: record for record in sort_records(merged.values())}


def _atomic_write(path: Path, write) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + f".tmp.{os.getpid()}")
    try:
        with tmp.open("w", encoding="utf-8", errors="surrogateescape", newline="") as handle:
            write(handle)
        os.replace(tmp, path)
    except BaseException:
        try:
            tmp.unlink()
        except FileNotFoundError:
            pass
        raise


def write_report(path: Path, records: Iterable[FileRecord]) -> None:
    ordered = sort_records(records)

    def _write(handle) -> None:
        writer = csv.writer(handle)
        writer.writerow(COLUMNS)
        for record in ordered:
            writer.writerow(
                [
                    record.full_path,
                    record.relative_path,
                    record.size_bytes,
                    record.src_hash or "",
                    record.dst_hash or "",
                    record.status.value,
                    record.error or "",
                ]
            )

    _atomic_write(path, _write)
    logger.debug("Wrote %d record(s) to %s", len(ordered), path)


def write_mismatches(path: Path, records: Iterable[FileRecord]) -> int:
    broken = [record for record in sort_records(records) if record.status != Status.OK]

    def _write(handle) -> None:
        for record in broken:
            error = " ".join((record.error or "").split())
            handle.write(f"{record.status.value}\t{record.relative_path}\t{error}\n")

    _atomic_write(path, _write)
    return len(broken)


def persist(report_path: Path, mismatch_path: Path, records: Mapping[str, FileRecord]) -> None:
    write_report(report_path, records.values())
    broken = write_mismatches(mismatch_path, records.values())
    logger.info("Report saved: %d record(s), %d not OK", len(records), broken)
