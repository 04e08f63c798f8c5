# listing_tracker/sheets.py
"""Spreadsheet synchronization of listing batches.

The destination sheet itself is the dedup oracle: listing ids already present
in the Listing ID column are never written again, so re-running a sync against
an unchanged page leaves the sheet untouched.

Two write paths exist and a caller picks one per job with `SyncMode`:

* APPEND_ONLY bulk-appends only the unseen listings, then reapplies the
  presentation rules for the new row count.
* FULL_REPLACE clears the sheet and writes header + batch. It is meant for
  destinations that were never append-synced, and refuses to run when the
  sheet holds listings the batch would drop.

A spreadsheet created by the synchronizer is populated with the replace path,
since nothing can have been appended to it yet.
"""
import enum
import re
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Set

from google.oauth2.service_account import Credentials
from googleapiclient.discovery import build as gapi_build

from .config import SheetConfig
from .errors import ConfigurationError, SheetSyncError
from .extract import is_known
from .schemas import Listing
from .utils import logger

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]
TOKEN_URI = "https://oauth2.googleapis.com/token"
SHEET_ID_RE = re.compile(r"spreadsheets/d/([a-zA-Z0-9-_]+)")
BARE_ID_RE = re.compile(r"^[a-zA-Z0-9-_]{20,}$")

HEADERS = [
    "Address",
    "Listing ID",
    "Zip Code",
    "Price",
    "Beds",
    "Baths",
    "Sq Ft",
    "Price per Sq Ft",
    "Listing Status",
    "Is Open House?",
    "Open House Info",
    "Link",
    "Date Added",
]
COL_LISTING_ID = HEADERS.index("Listing ID")
COL_PRICE = HEADERS.index("Price")
COL_SQFT = HEADERS.index("Sq Ft")
COL_PRICE_PER_SQFT = HEADERS.index("Price per Sq Ft")
COL_DATE_ADDED = HEADERS.index("Date Added")

CURRENCY = {"type": "CURRENCY", "pattern": '"$"#,##0'}
PLAIN_NUMBER = {"type": "NUMBER", "pattern": "#,##0"}
ISO_DATE = {"type": "DATE", "pattern": "yyyy-mm-dd"}


class SyncMode(str, enum.Enum):
    APPEND_ONLY = "append"
    FULL_REPLACE = "replace"


@dataclass
class SyncResult:
    spreadsheet_id: str
    spreadsheet_url: str
    new_count: int
    created: bool = False


def spreadsheet_id_from_ref(ref: Optional[str]) -> Optional[str]:
    """Accept a spreadsheet URL or a bare spreadsheet id."""
    if not ref:
        return None
    ref = ref.strip()
    m = SHEET_ID_RE.search(ref)
    if m:
        return m.group(1)
    return ref if BARE_ID_RE.match(ref) else None


def spreadsheet_url(spreadsheet_id: str) -> str:
    return f"https://docs.google.com/spreadsheets/d/{spreadsheet_id}"


def column_letter(index: int) -> str:
    letters = ""
    index += 1
    while index:
        index, rem = divmod(index - 1, 26)
        letters = chr(ord("A") + rem) + letters
    return letters


def listing_to_row(listing: Listing, today: Optional[date] = None) -> list:
    def cell(value):
        return "" if value is None else value

    price = listing.price_numeric if is_known(listing.price_numeric) else listing.price
    return [
        cell(listing.address),
        listing.listing_id,
        cell(listing.zip_code),
        cell(price),
        cell(listing.beds),
        cell(listing.baths),
        cell(listing.sqft),
        cell(listing.price_per_sqft),
        cell(listing.listing_status),
        "Yes" if listing.is_open_house else "No",
        cell(listing.open_house_info),
        cell(listing.link),
        (today or listing.date_added).isoformat(),
    ]


def _grid(sheet_id, start_row, end_row, start_col, end_col):
    return {
        "sheetId": sheet_id,
        "startRowIndex": start_row,
        "endRowIndex": end_row,
        "startColumnIndex": start_col,
        "endColumnIndex": end_col,
    }


def _column_format(sheet_id, row_count, column, number_format):
    return {
        "repeatCell": {
            "range": _grid(sheet_id, 1, row_count, column, column + 1),
            "cell": {"userEnteredFormat": {"numberFormat": number_format}},
            "fields": "userEnteredFormat.numberFormat",
        }
    }


def build_formatting_requests(row_count: int, column_count: int = len(HEADERS), sheet_id: int = 0) -> List[dict]:
    """Presentation rules for a sheet holding `row_count` rows including the header."""
    solid = {"style": "SOLID", "width": 1}
    return [
        {
            "repeatCell": {
                "range": _grid(sheet_id, 0, 1, 0, column_count),
                "cell": {
                    "userEnteredFormat": {
                        "textFormat": {"foregroundColor": {"red": 0.2, "green": 0.2, "blue": 0.2}, "bold": True},
                        "horizontalAlignment": "CENTER",
                        "verticalAlignment": "MIDDLE",
                    }
                },
                "fields": "userEnteredFormat(textFormat,horizontalAlignment,verticalAlignment)",
            }
        },
        {
            "updateBorders": {
                "range": _grid(sheet_id, 0, row_count, 0, column_count),
                "top": solid,
                "bottom": solid,
                "left": solid,
                "right": solid,
                "innerHorizontal": solid,
                "innerVertical": solid,
            }
        },
        {
            "updateSheetProperties": {
                "properties": {
                    "sheetId": sheet_id,
                    "gridProperties": {"frozenRowCount": 1, "frozenColumnCount": 1},
                },
                "fields": "gridProperties.frozenRowCount,gridProperties.frozenColumnCount",
            }
        },
        {"setBasicFilter": {"filter": {"range": _grid(sheet_id, 0, row_count, 0, column_count)}}},
        _column_format(sheet_id, row_count, COL_PRICE, CURRENCY),
        _column_format(sheet_id, row_count, COL_PRICE_PER_SQFT, CURRENCY),
        _column_format(sheet_id, row_count, COL_SQFT, PLAIN_NUMBER),
        _column_format(sheet_id, row_count, COL_DATE_ADDED, ISO_DATE),
    ]


class GoogleSheetsClient:
    """Google Sheets v4 transport authenticated with a service account."""

    def __init__(self, config: SheetConfig, service=None):
        self.config = config
        self._service = service

    def _credentials(self):
        if self.config.service_account_file:
            return Credentials.from_service_account_file(self.config.service_account_file, scopes=SCOPES)
        if self.config.service_account_email and self.config.private_key:
            info = {
                "type": "service_account",
                "client_email": self.config.service_account_email,
                # keys stored in env vars usually carry escaped newlines
                "private_key": self.config.private_key.replace("\\n", "\n"),
                "token_uri": TOKEN_URI,
            }
            return Credentials.from_service_account_info(info, scopes=SCOPES)
        raise ConfigurationError(
            "No Google credentials found. Set GOOGLE_SERVICE_ACCOUNT_FILE or "
            "GOOGLE_SERVICE_ACCOUNT_EMAIL and GOOGLE_PRIVATE_KEY"
        )

    @property
    def service(self):
        if self._service is None:
            self._service = gapi_build("sheets", "v4", credentials=self._credentials(), cache_discovery=False)
        return self._service

    def create(self, title):
        resp = self.service.spreadsheets().create(
            body={"properties": {"title": title}}, fields="spreadsheetId"
        ).execute()
        return resp["spreadsheetId"]

    def read_range(self, spreadsheet_id, range_ref):
        resp = self.service.spreadsheets().values().get(
            spreadsheetId=spreadsheet_id, range=range_ref, majorDimension="ROWS"
        ).execute()
        return resp.get("values", [])

    def clear_range(self, spreadsheet_id, range_ref):
        self.service.spreadsheets().values().clear(spreadsheetId=spreadsheet_id, range=range_ref, body={}).execute()

    def write_range(self, spreadsheet_id, range_ref, values):
        self.service.spreadsheets().values().update(
            spreadsheetId=spreadsheet_id,
            range=range_ref,
            valueInputOption="RAW",
            body={"values": values},
        ).execute()

    def append_range(self, spreadsheet_id, range_ref, values):
        self.service.spreadsheets().values().append(
            spreadsheetId=spreadsheet_id,
            range=range_ref,
            valueInputOption="RAW",
            insertDataOption="INSERT_ROWS",
            body={"values": values},
        ).execute()

    def batch_format(self, spreadsheet_id, requests):
        self.service.spreadsheets().batchUpdate(
            spreadsheetId=spreadsheet_id, body={"requests": requests}
        ).execute()


class SheetSynchronizer:
    def __init__(self, client, config: SheetConfig = SheetConfig()):
        self.client = client
        self.config = config
        last_col = column_letter(len(HEADERS) - 1)
        id_col = column_letter(COL_LISTING_ID)
        self.table_range = f"{config.sheet_name}!A:{last_col}"
        self.ids_range = f"{config.sheet_name}!{id_col}2:{id_col}"
        self.rows_range = f"{config.sheet_name}!A:A"

    def sync(self, sheet_ref: Optional[str], listings: List[Listing], mode: SyncMode = SyncMode.APPEND_ONLY) -> SyncResult:
        """Record every listing the destination has not seen; return how many were added."""
        spreadsheet_id = spreadsheet_id_from_ref(sheet_ref)
        if spreadsheet_id is None:
            spreadsheet_id = self.client.create(self.config.spreadsheet_title)
            logger.info("Created new spreadsheet %s", spreadsheet_id)
            new_count = self._replace(spreadsheet_id, listings, existing_ids=set())
            return SyncResult(spreadsheet_id, spreadsheet_url(spreadsheet_id), new_count, created=True)

        if mode == SyncMode.FULL_REPLACE:
            # an unreadable id column aborts the replace
            existing_ids = self.existing_listing_ids(spreadsheet_id, strict=True)
            new_count = self._replace(spreadsheet_id, listings, existing_ids)
        else:
            existing_ids = self.existing_listing_ids(spreadsheet_id)
            new_count = self._append(spreadsheet_id, listings, existing_ids)
        return SyncResult(spreadsheet_id, spreadsheet_url(spreadsheet_id), new_count)

    def existing_listing_ids(self, spreadsheet_id, strict=False) -> Set[str]:
        """Ids already in the sheet.

        A failed read counts as an empty sheet, unless `strict`, in which case it
        raises `SheetSyncError`.
        """
        try:
            rows = self.client.read_range(spreadsheet_id, self.ids_range)
            return {str(row[0]).strip() for row in rows if row and str(row[0]).strip()}
        except Exception as e:
            if strict:
                raise SheetSyncError(f"Could not read existing listing IDs from {spreadsheet_id}: {e}") from e
            logger.error("Error fetching existing listing IDs from %s: %s", spreadsheet_id, e)
            return set()

    def _append(self, spreadsheet_id, listings, existing_ids):
        current_rows = len(self.client.read_range(spreadsheet_id, self.rows_range))
        fresh = _unseen(listings, existing_ids)
        if not fresh:
            logger.info("No new listings to append to %s", spreadsheet_id)
            return 0
        rows = [listing_to_row(listing) for listing in fresh]
        if current_rows == 0:
            rows.insert(0, list(HEADERS))
        self.client.append_range(spreadsheet_id, self.table_range, rows)
        self._format(spreadsheet_id, current_rows + len(rows))
        logger.info("Added %d new listings to %s", len(fresh), spreadsheet_id)
        return len(fresh)

    def _replace(self, spreadsheet_id, listings, existing_ids):
        batch = _unseen(listings, set())
        incoming = {listing.listing_id for listing in batch}
        dropped = existing_ids - incoming
        if dropped:
            raise SheetSyncError(
                f"Refusing full replace of {spreadsheet_id}: it holds {len(dropped)} "
                "listings that the new batch does not include"
            )
        rows = [listing_to_row(listing) for listing in batch]
        self.client.clear_range(spreadsheet_id, self.config.sheet_name)
        self.client.write_range(spreadsheet_id, f"{self.config.sheet_name}!A1", [list(HEADERS)] + rows)
        self._format(spreadsheet_id, len(rows) + 1)
        new_count = len(incoming - existing_ids)
        logger.info("Wrote %d listings to %s (%d new)", len(rows), spreadsheet_id, new_count)
        return new_count

    def _format(self, spreadsheet_id, row_count):
        requests = build_formatting_requests(row_count, len(HEADERS), self.config.sheet_id)
        self.client.batch_format(spreadsheet_id, requests)


def _unseen(listings, known_ids):
    """Listings whose id is not in `known_ids`, first occurrence of each id only."""
    seen = set(known_ids)
    out = []
    for listing in listings:
        if listing.listing_id in seen:
            continue
        seen.add(listing.listing_id)
        out.append(listing)
    return out
