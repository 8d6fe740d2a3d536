"""
Google Sheets sync for form submissions.

Every form gets its own tab in the master spreadsheet (MASTER_SPREADSHEET_ID);
the tab name is stored on the form as ``sheetName``. Credentials come from a
service account, given either as a JSON string or a file path in
GOOGLE_SERVICE_ACCOUNT_JSON.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional

from google.oauth2.service_account import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

import config
from errors import SheetsError
from exports import header_row, submission_row
from schemas import FormSchema, Submission

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]


def sheets_enabled() -> bool:
    return bool(config.MASTER_SPREADSHEET_ID and config.SERVICE_ACCOUNT_JSON)


def get_sheets_service():
    """Build the Sheets service from service account credentials."""
    if not config.SERVICE_ACCOUNT_JSON:
        raise SheetsError("GOOGLE_SERVICE_ACCOUNT_JSON not set")
    try:
        # Allow passing either full JSON string or a file path
        if config.SERVICE_ACCOUNT_JSON.strip().startswith("{"):
            info = json.loads(config.SERVICE_ACCOUNT_JSON)
            creds = Credentials.from_service_account_info(info, scopes=SCOPES)
        else:
            creds = Credentials.from_service_account_file(config.SERVICE_ACCOUNT_JSON, scopes=SCOPES)
    except (ValueError, OSError) as e:
        raise SheetsError(f"Invalid Google service account credentials: {e}") from e
    return build("sheets", "v4", credentials=creds)


def _spreadsheet_id() -> str:
    if not config.MASTER_SPREADSHEET_ID:
        raise SheetsError("MASTER_SPREADSHEET_ID not set")
    return config.MASTER_SPREADSHEET_ID


def create_sheet_tab(service, form: FormSchema, sheet_name: Optional[str] = None) -> str:
    """Add a tab for the form with a header row and return its name."""
    spreadsheet_id = _spreadsheet_id()
    sheet_title = sheet_name or f"{form.title[:25]}-{int(datetime.now(timezone.utc).timestamp())}"
    headers = header_row(form)

    body = {
        "requests": [
            {
                "addSheet": {
                    "properties": {
                        "title": sheet_title,
                        "gridProperties": {"rowCount": 1000, "columnCount": len(headers) + 2},
                    }
                }
            }
        ]
    }
    try:
        service.spreadsheets().batchUpdate(spreadsheetId=spreadsheet_id, body=body).execute()
        service.spreadsheets().values().update(
            spreadsheetId=spreadsheet_id,
            range=f"{sheet_title}!A1",
            valueInputOption="RAW",
            body={"values": [headers]},
        ).execute()
    except HttpError as e:
        raise SheetsError(f"Failed to create sheet tab '{sheet_title}': {e}") from e
    logger.info("Created sheet tab %s for form %s", sheet_title, form.id)
    return sheet_title


def append_rows(service, sheet_name: str, rows: List[List[Any]]) -> None:
    if not rows:
        return
    try:
        service.spreadsheets().values().append(
            spreadsheetId=_spreadsheet_id(),
            range=f"{sheet_name}!A1",
            valueInputOption="RAW",
            body={"values": rows},
        ).execute()
    except HttpError as e:
        raise SheetsError(f"Failed to append to sheet '{sheet_name}': {e}") from e


def sync_submissions(form: FormSchema, submissions: Iterable[Submission], service=None) -> FormSchema:
    """Append submissions to the form's tab, creating the tab on first use.

    Returns the form, with ``sheetName`` set; the caller persists it.
    """
    service = service or get_sheets_service()
    if not form.sheetName:
        form = form.model_copy(update={"sheetName": create_sheet_tab(service, form)})
    append_rows(service, form.sheetName, [submission_row(form, s) for s in submissions])
    return form
