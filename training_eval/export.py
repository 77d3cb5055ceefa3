from datetime import date
from io import BytesIO
from typing import Sequence

from openpyxl import Workbook
from openpyxl.styles import Font

from .analytics import Recommendation

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

HEADERS = ["No.", "Name", "Phone Number", "Email Address"]
COLUMN_WIDTHS = {"A": 8, "B": 25, "C": 20, "D": 30}


def recommendations_filename(session_name: str, export_date: date) -> str:
    return f"{session_name}_Recommendations_{export_date.isoformat()}.xlsx"


def build_recommendations_excel(
    session_name: str, rows: Sequence[Recommendation], export_date: date
) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "Recommendations"

    ws.append([f"Training: {session_name}"])
    ws.append([f"Export Date: {export_date.isoformat()}"])
    ws.append([])
    ws.append(HEADERS)
    ws.merge_cells("A1:D1")
    ws.merge_cells("A2:D2")
    ws["A1"].font = Font(bold=True, size=14)
    for cell in ws[4]:
        cell.font = Font(bold=True)

    for r in rows:
        ws.append([r.number, r.name, r.phone, r.email])

    for column, width in COLUMN_WIDTHS.items():
        ws.column_dimensions[column].width = width

    buf = BytesIO()
    wb.save(buf)
    return buf.getvalue()
