"""Tabular exports of a form's submissions (CSV / XLSX) and the share QR code."""

import csv
import io
import re
from datetime import date, datetime
from typing import Any, Iterable, Iterator, List, Optional
from urllib.parse import quote

import qrcode
from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from schemas import FormSchema, Submission

SUBMITTED_AT = "Submitted At"


def share_url(base_url: str, form_id: str) -> str:
    return f"{base_url.rstrip('/')}/view/{form_id}"


def export_filename(form: FormSchema, ext: str, today: Optional[date] = None) -> str:
    today = today or date.today()
    stem = re.sub(r"\s+", "_", form.title)
    return f"{stem}_submissions_{today.isoformat()}.{ext}"


def content_disposition(filename: str) -> str:
    """Attachment header with an ASCII fallback name and the RFC 5987 UTF-8 form."""
    fallback = re.sub(r'[";\\]', "_", filename.encode("ascii", "ignore").decode())
    if not fallback.split(".")[0].strip("_"):
        fallback = "submissions." + filename.rsplit(".", 1)[-1]
    return f'attachment; filename="{fallback}"; filename*=UTF-8\'\'{quote(filename, safe="")}'


def cell_value(value: Any) -> Any:
    if isinstance(value, list):
        return ", ".join(map(str, value))
    if value is None or value == "":
        return ""
    return value


def _submitted_at(submission: Submission) -> str:
    try:
        return datetime.fromisoformat(submission.submittedAt).strftime("%Y-%m-%d %H:%M:%S")
    except ValueError:
        return submission.submittedAt


def header_row(form: FormSchema) -> List[str]:
    return [SUBMITTED_AT] + [f.label for f in form.fields]


def submission_row(form: FormSchema, submission: Submission) -> List[Any]:
    row = [_submitted_at(submission)]
    for field in form.fields:
        row.append(cell_value(submission.data.get(field.id)))
    return row


def iter_csv(form: FormSchema, submissions: Iterable[Submission]) -> Iterator[str]:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(header_row(form))
    yield output.getvalue(); output.seek(0); output.truncate(0)
    for s in submissions:
        writer.writerow(submission_row(form, s))
        yield output.getvalue(); output.seek(0); output.truncate(0)


def build_xlsx(form: FormSchema, submissions: Iterable[Submission]) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "Submissions"

    headers = header_row(form)
    ws.append(headers)
    for cell in ws[1]:
        cell.font = Font(bold=True)
    for s in submissions:
        ws.append(submission_row(form, s))

    for col, header in enumerate(headers, start=1):
        ws.column_dimensions[get_column_letter(col)].width = max(12, min(len(header) + 2, 50))

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def qr_png(url: str) -> bytes:
    img = qrcode.make(url)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()
