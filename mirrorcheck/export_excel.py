"""Excel export of the validation report."""
from __future__ import annotations

from pathlib import Path
from typing import Iterable

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter

from .models import FileRecord, Status
from .report import COLUMNS, sort_records

GREEN_FILL = PatternFill(start_color="C6EFCE", end_color="C6EFCE", fill_type="solid")
RED_FILL = PatternFill(start_color="FFC7CE", end_color="FFC7CE", fill_type="solid")
BOLD = Font(bold=True)

_STATUS_COLUMN = COLUMNS.index("Status") + 1
_MAX_WIDTH = 80


def _text(value: str) -> str:
    # Lone surrogates from undecodable file names cannot be stored in XML.
    return value.encode("utf-8", "surrogateescape").decode("utf-8", "replace")


def export_report_xlsx(path: Path, records: Iterable[FileRecord]) -> None:
    wb = Workbook()
    ws = wb.active
    ws.title = "Report"

    ws.append(COLUMNS)
    for cell in ws[1]:
        cell.font = BOLD

    for row_idx, record in enumerate(sort_records(records), start=2):
        ws.append(
            [
                _text(record.full_path),
                _text(record.relative_path),
                record.size_bytes,
                record.src_hash or "",
                record.dst_hash or "",
                record.status.value,
                _text(record.error or ""),
            ]
        )
        status_cell = ws.cell(row=row_idx, column=_STATUS_COLUMN)
        status_cell.fill = GREEN_FILL if record.status == Status.OK else RED_FILL

    # Freeze header row and add filter
    ws.freeze_panes = "A2"
    ws.auto_filter.ref = ws.dimensions

    for column_idx, column_title in enumerate(COLUMNS, start=1):
        column_letter = get_column_letter(column_idx)
        max_length = len(column_title)
        for cell in ws[column_letter]:
            if cell.value is None:
                continue
            max_length = max(max_length, len(str(cell.value)))
        ws.column_dimensions[column_letter].width = min(max_length + 2, _MAX_WIDTH)

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(path)
