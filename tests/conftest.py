import re

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from listing_tracker import models  # noqa: F401 register tables
from listing_tracker.db import Base
from listing_tracker.schemas import Listing


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


def make_listing(listing_id, **kw):
    kw.setdefault("address", f"{listing_id} Main St, Oakland, CA 94610")
    kw.setdefault("price", "$500,000")
    kw.setdefault("price_numeric", 500000)
    return Listing(listing_id=str(listing_id), **kw)


class FakeCard:
    """CardElement backed by dicts: selector -> text, (selector, attr) -> value."""

    def __init__(self, texts=None, attrs=None, own_text=""):
        self.texts = texts or {}
        self.attrs = attrs or {}
        self.own_text = own_text

    def find_text(self, selector=None):
        if selector is None:
            return self.own_text or None
        return self.texts.get(selector)

    def find_attribute(self, selector, attr):
        return self.attrs.get((selector, attr))


class FakeSheetsClient:
    """In-memory spreadsheet service keyed by spreadsheet id."""

    def __init__(self, sheets=None, fail_ranges=()):
        self.sheets = {k: [list(r) for r in v] for k, v in (sheets or {}).items()}
        self.fail_ranges = set(fail_ranges)
        self.calls = []
        self.created = 0

    def create(self, title):
        self.created += 1
        sheet_id = f"createdSheet{self.created:012d}"
        self.sheets[sheet_id] = []
        self.calls.append(("create", title))
        return sheet_id

    def read_range(self, spreadsheet_id, range_ref):
        self.calls.append(("read", range_ref))
        if range_ref in self.fail_ranges:
            raise ConnectionError(f"read of {range_ref} failed")
        rows = self.sheets.get(spreadsheet_id, [])
        m = re.match(r"^[^!]+!([A-Z]+)(\d*):([A-Z]+)$", range_ref)
        col = ord(m.group(1)) - ord("A")
        start = int(m.group(2) or 1) - 1
        return [[row[col]] for row in rows[start:] if len(row) > col]

    def clear_range(self, spreadsheet_id, range_ref):
        self.calls.append(("clear", range_ref))
        self.sheets[spreadsheet_id] = []

    def write_range(self, spreadsheet_id, range_ref, values):
        self.calls.append(("write", range_ref))
        self.sheets[spreadsheet_id] = [list(v) for v in values]

    def append_range(self, spreadsheet_id, range_ref, values):
        self.calls.append(("append", range_ref))
        self.sheets.setdefault(spreadsheet_id, []).extend(list(v) for v in values)

    def batch_format(self, spreadsheet_id, requests):
        self.calls.append(("format", requests))

    def call_names(self):
        return [c[0] for c in self.calls]
