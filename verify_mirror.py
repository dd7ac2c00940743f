from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Sequence

from mirrorcheck.logs import configure_logging
from mirrorcheck.mirror_tool import MirrorToolError
from mirrorcheck.models import MirrorConfig, ProgressEvent, Status
from mirrorcheck.pipeline import MirrorValidator

_PROGRESS_EVERY = 1000

logger = logging.getLogger("mirrorcheck.cli")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Verify a mirrored tree by hash and repair broken files")
    parser.add_argument("--source", required=True, help="Source directory that was mirrored")
    parser.add_argument("--destination", required=True, help="Mirror directory to verify")
    parser.add_argument("--log-dir", default=None, help="Where reports and logs go (default: ./mirrorcheck-logs)")
    parser.add_argument("--threads", type=int, default=None, help="Validation worker count")
    parser.add_argument("--algorithm", default="sha256", help="hashlib algorithm name")
    parser.add_argument(
        "--exclude",
        dest="excludes",
        action="append",
        default=None,
        help="Path fragment to skip (repeatable, case-insensitive)",
    )
    parser.add_argument("--mirror", action="store_true", help="Run robocopy/rsync before validating")
    parser.add_argument("--xlsx", default=None, help="Also export the final report to this .xlsx file")
    parser.add_argument("--out", choices=["JSON", "TEXT"], default="TEXT", help="Output format")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    return parser


def _build_config(args: argparse.Namespace) -> MirrorConfig:
    source = Path(args.source).expanduser()
    if not source.is_dir():
        raise SystemExit(f"Source path does not exist: {source}")
    kwargs = {
        "source_root": source,
        "destination_root": Path(args.destination).expanduser(),
        "log_dir": Path(args.log_dir).expanduser() if args.log_dir else Path.cwd() / "mirrorcheck-logs",
        "hash_algorithm": args.algorithm,
        "run_mirror": args.mirror,
        "excel_report": Path(args.xlsx) if args.xlsx else None,
    }
    if args.threads is not None:
        kwargs["workers"] = args.threads
    if args.excludes is not None:
        kwargs["exclude_fragments"] = tuple(args.excludes)
    try:
        return MirrorConfig(**kwargs)
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc


def _log_progress(event: ProgressEvent) -> None:
    if event.completed % _PROGRESS_EVERY == 0 or event.completed == event.total:
        logger.info("Validated %d/%d files", event.completed, event.total)


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    config = _build_config(args)
    configure_logging(config.diagnostic_log_path, verbose=args.verbose)
    # Undecodable file names are printed as \udcXX escapes.
    sys.stdout.reconfigure(errors="backslashreplace")

    validator = MirrorValidator(config, progress_callback=_log_progress)
    try:
        summary = validator.run()
    except MirrorToolError as exc:
        logger.error("Mirror step failed: %s", exc)
        return 1

    broken = [record for record in validator.records.values() if record.status != Status.OK]
    if args.out == "JSON":
        output = {
            "summary": summary.as_dict(),
            "records": [
                {
                    "status": record.status.value,
                    "relative_path": record.relative_path,
                    "error": record.error,
                }
                for record in broken
            ],
        }
        json.dump(output, sys.stdout, ensure_ascii=False, indent=2)
        sys.stdout.write("\n")
    else:
        counts = ", ".join(f"{count} {status}" for status, count in sorted(summary.counts.items()))
        print(f"Checked {summary.total} files ({counts or 'nothing to do'})")
        for record in broken:
            print(f"{record.status.value:<8} {record.relative_path} {record.error or ''}".rstrip())

    return 0 if summary.ok else 2


if __name__ == "__main__":
    sys.exit(main())
