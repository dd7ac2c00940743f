from __future__ import annotations

import errno
import os
import shutil
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from mirrorcheck.hashing import hash_file
from mirrorcheck.models import FileRecord, MirrorConfig, Status
from mirrorcheck.recovery import (
    CopyStrategy,
    OutcomeKind,
    RecoveryEngine,
    default_strategies,
    escape_long_path,
)
from mirrorcheck.revalidate import Revalidator

_CLASSIC_LIMIT = 260


def _write_file(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


def _config(tmp_path: Path) -> MirrorConfig:
    return MirrorConfig(
        source_root=tmp_path / "src",
        destination_root=tmp_path / "dst",
        log_dir=tmp_path / "logs",
        workers=1,
    )


def _record(config: MirrorConfig, rel: str, status: Status) -> FileRecord:
    return FileRecord(
        relative_path=rel,
        full_path=config.source_for(rel),
        size_bytes=0,
        status=status,
    )


def _short_path_copy(src: str, dst: str):
    if len(dst) > _CLASSIC_LIMIT:
        raise OSError(errno.ENAMETOOLONG, "The filename or extension is too long", dst)
    return shutil.copy2(src, dst)


def _corrupting_copy(src: str, dst: str):
    Path(dst).write_bytes(b"garbage")


def _exploding_copy(src: str, dst: str):
    raise PermissionError(errno.EACCES, "Access is denied", dst)


# --------------------------- long-path escape ------------------------------


def test_escape_long_path_windows_forms():
    assert escape_long_path("C:\\data\\file.txt", windows=True) == "\\\\?\\C:\\data\\file.txt"
    assert escape_long_path("C:\\data\\..\\data\\file.txt", windows=True) == "\\\\?\\C:\\data\\file.txt"
    assert escape_long_path("\\\\nas\\share\\f.txt", windows=True) == "\\\\?\\UNC\\nas\\share\\f.txt"
    assert escape_long_path("\\\\?\\C:\\already", windows=True) == "\\\\?\\C:\\already"


def test_escape_long_path_posix_is_absolute(tmp_path: Path):
    target = str(tmp_path / "a" / ".." / "b.txt")
    assert escape_long_path(target, windows=False) == str(tmp_path / "b.txt")


# --------------------------- recovery ladder -------------------------------


def test_missing_file_fixed_by_plain_copy(tmp_path: Path):
    config = _config(tmp_path)
    _write_file(config.source_root / "docs" / "b.txt", b"bravo")
    record = _record(config, os.path.join("docs", "b.txt"), Status.MISSING)

    RecoveryEngine(config).recover([record])

    assert record.status == Status.FIXED_BY_COPY
    assert record.error is None
    assert record.src_hash == record.dst_hash
    assert (config.destination_root / "docs" / "b.txt").read_bytes() == b"bravo"


def test_mismatched_file_is_overwritten(tmp_path: Path):
    config = _config(tmp_path)
    _write_file(config.source_root / "c.txt", b"fresh content")
    _write_file(config.destination_root / "c.txt", b"stale")
    record = _record(config, "c.txt", Status.MISMATCH)

    RecoveryEngine(config).recover_one(record)

    assert record.status == Status.FIXED_BY_COPY
    assert (config.destination_root / "c.txt").read_bytes() == b"fresh content"


def test_long_path_fallback_after_plain_copy_fails(tmp_path: Path):
    config = _config(tmp_path)
    rel = os.path.join(*(["segment_" + "x" * 52] * 4), "deep.bin")
    _write_file(config.source_root / rel, b"deep payload")
    assert len(config.mirror_for(rel)) > _CLASSIC_LIMIT
    record = _record(config, rel, Status.MISSING)

    strategies = [
        CopyStrategy("plain", Status.FIXED_BY_COPY, copier=_short_path_copy),
        CopyStrategy("long-path", Status.FIXED_BY_COPY_LONGPATH, map_path=escape_long_path),
    ]
    RecoveryEngine(config, strategies).recover_one(record)

    assert record.status == Status.FIXED_BY_COPY_LONGPATH
    assert (config.destination_root / rel).read_bytes() == b"deep payload"

    Revalidator(config).revalidate_one(record)
    assert record.status == Status.OK
    assert record.src_hash == record.dst_hash


def test_hash_mismatch_on_every_rung(tmp_path: Path):
    config = _config(tmp_path)
    _write_file(config.source_root / "c.txt", b"expected")
    record = _record(config, "c.txt", Status.MISMATCH)
    strategies = [
        CopyStrategy("plain", Status.FIXED_BY_COPY, copier=_corrupting_copy),
        CopyStrategy("long-path", Status.FIXED_BY_COPY_LONGPATH, map_path=escape_long_path, copier=_corrupting_copy),
    ]

    RecoveryEngine(config, strategies).recover_one(record)

    assert record.status == Status.FAILED_AFTER_COPY_HASHMISMATCH
    assert record.src_hash != record.dst_hash
    assert not (config.destination_root / "c.txt").exists()


def test_mismatch_then_exception_is_recovery_failed(tmp_path: Path):
    config = _config(tmp_path)
    _write_file(config.source_root / "c.txt", b"expected")
    record = _record(config, "c.txt", Status.MISMATCH)
    strategies = [
        CopyStrategy("plain", Status.FIXED_BY_COPY, copier=_corrupting_copy),
        CopyStrategy("long-path", Status.FIXED_BY_COPY_LONGPATH, copier=_exploding_copy),
    ]

    RecoveryEngine(config, strategies).recover_one(record)

    assert record.status == Status.RECOVERY_FAILED
    assert "Access is denied" in record.error


def test_vanished_source_is_recovery_failed(tmp_path: Path):
    config = _config(tmp_path)
    config.source_root.mkdir(parents=True)
    record = _record(config, "b.txt", Status.MISSING)

    RecoveryEngine(config).recover_one(record)

    assert record.status == Status.RECOVERY_FAILED
    assert record.error
    assert record.src_hash is None and record.dst_hash is None

    # Nothing reappeared: the failure stands.
    Revalidator(config).revalidate_one(record)
    assert record.status == Status.RECOVERY_FAILED

    # The mirror copy shows up on its own later.
    _write_file(config.destination_root / "b.txt", b"orphan")
    Revalidator(config).revalidate_one(record)
    assert record.status == Status.MISSING_SRC
    assert record.dst_hash is not None


def test_strategy_attempt_reports_outcome(tmp_path: Path):
    src = tmp_path / "in.txt"
    dst = tmp_path / "out" / "nested" / "in.txt"
    _write_file(src, b"payload")
    plain = default_strategies()[0]

    outcome = plain.attempt(str(src), str(dst), "sha256")

    assert outcome.kind == OutcomeKind.COPIED
    assert outcome.src_hash == outcome.dst_hash == hash_file(str(src))


# ----------------------------- re-validation -------------------------------


def test_revalidator_forces_ok_after_fixed_copy(tmp_path: Path):
    config = _config(tmp_path)
    _write_file(config.source_root / "live.log", b"line 1\nline 2\n")
    _write_file(config.destination_root / "live.log", b"line 1\n")
    record = _record(config, "live.log", Status.FIXED_BY_COPY)
    record.src_hash = record.dst_hash = "recorded-at-copy"

    Revalidator(config).revalidate_one(record)

    assert record.status == Status.OK
    assert record.src_hash == record.dst_hash == "recorded-at-copy"
    assert record.error.startswith("content changed after recovery")


def test_revalidator_flags_unfixed_difference(tmp_path: Path):
    config = _config(tmp_path)
    _write_file(config.source_root / "c.txt", b"one")
    _write_file(config.destination_root / "c.txt", b"two")
    record = _record(config, "c.txt", Status.FAILED_AFTER_COPY_HASHMISMATCH)

    Revalidator(config).revalidate_one(record)

    assert record.status == Status.FAILED_AFTER_RETRY


def test_revalidator_missing_destination(tmp_path: Path):
    config = _config(tmp_path)
    _write_file(config.source_root / "c.txt", b"one")
    record = _record(config, "c.txt", Status.RECOVERY_FAILED)

    Revalidator(config).revalidate_one(record)

    assert record.status == Status.MISSING_DST
    assert record.src_hash is not None and record.dst_hash is None


def test_revalidator_error(tmp_path: Path):
    config = _config(tmp_path)
    _write_file(config.source_root / "c.txt", b"one")
    (config.destination_root / "c.txt").mkdir(parents=True)
    record = _record(config, "c.txt", Status.FIXED_BY_COPY)

    Revalidator(config).revalidate_one(record)

    assert record.status == Status.REVAL_ERROR
    assert record.error
