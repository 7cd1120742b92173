import io
import re
from datetime import datetime
from typing import Iterable, Sequence
from urllib.parse import quote

from fastapi.responses import Response
from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def norm_str(v, default: str = "") -> str:
    if v is None:
        return default
    if hasattr(v, "value"):
        v = v.value
    s = str(v).strip()
    return s if s else default


def norm_dt(v):
    if isinstance(v, datetime):
        return v.replace(tzinfo=None) if v.tzinfo else v
    return None


def build_register(
    sheet_title: str,
    columns: Sequence[tuple[str, int]],
    rows: Iterable[Sequence],
    number_formats: dict[int, str] | None = None,
) -> bytes:
    """Write a styled register sheet: bold header, frozen first row, table stripes, export stamp.

    ``columns`` is (header, width) per column; ``number_formats`` maps 1-based column
    index to an Excel number format applied to every data row.
    """
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_title

    header_font = Font(bold=True)
    header_fill = PatternFill("solid", fgColor="DDDDDD")
    header_align = Alignment(horizontal="center", vertical="center")

    ws.append([header for header, _ in columns])
    ws.row_dimensions[1].height = 24
    for col in range(1, len(columns) + 1):
        cell = ws.cell(row=1, column=col)
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = header_align

    data_rows = 0
    for row in rows:
        ws.append(list(row))
        data_rows += 1
    last_row = 1 + data_rows

    ws.freeze_panes = "A2"

    for col, fmt in (number_formats or {}).items():
        for r in range(2, last_row + 1):
            ws.cell(row=r, column=col).number_format = fmt

    for idx, (_, width) in enumerate(columns, start=1):
        ws.column_dimensions[get_column_letter(idx)].width = width

    # a table needs at least one data row to be valid
    if data_rows:
        last_col = get_column_letter(len(columns))
        display_name = re.sub(r"\W", "", sheet_title.title()) or "Register"
        table = Table(displayName=display_name, ref=f"A1:{last_col}{last_row}")
        table.tableStyleInfo = TableStyleInfo(
            name="TableStyleMedium9",
            showFirstColumn=False,
            showLastColumn=False,
            showRowStripes=True,
            showColumnStripes=False,
        )
        ws.add_table(table)

    # export stamp sits below the table
    ws.append([])
    ws.append(["Exported at", datetime.now().strftime("%Y-%m-%d %H:%M:%S")])

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def xlsx_response(content: bytes, filename: str) -> Response:
    headers = {
        "Content-Disposition": f"attachment; filename=\"{filename}\"; filename*=UTF-8''{quote(filename)}"
    }
    return Response(content=content, media_type=XLSX_MEDIA_TYPE, headers=headers)
