"""
REPORT - Turn query rows into an .xlsx workbook.
"""

import io
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
HEADER_FILL = PatternFill(fill_type="solid", start_color="034C8C", end_color="034C8C")
HEADER_FONT = Font(bold=True, color="FFFFFF")


def report_filename(now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return f"Lucy_Report_{now.strftime('%Y-%m-%d_%H%M%S')}.xlsx"


def _cell_value(value: Any) -> Any:
    # openpyxl takes numbers, strings and dates as they are
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (dict, list, bytes)):
        return str(value)
    return value


def build_workbook(rows: List[Dict[str, Any]]) -> bytes:
    """
    Write `rows` to a single sheet, header row styled, and return the file bytes.

    Empty results still produce a workbook saying so.
    """
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Report"

    if not rows:
        sheet.append(["No data available"])
    else:
        headers = list(rows[0].keys())
        sheet.append(headers)
        for cell in sheet[1]:
            cell.font = HEADER_FONT
            cell.fill = HEADER_FILL
        for row in rows:
            sheet.append([_cell_value(row.get(header)) for header in headers])

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()
