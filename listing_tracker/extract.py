# listing_tracker/extract.py
"""Turn rendered listing cards into normalized `Listing` records.

Extraction only talks to cards through the small `CardElement` interface, so
the mapping below works the same for BeautifulSoup tags (`SoupCard`) and for
the plain fakes used in tests. Nothing here performs I/O.
"""
import math
import re
from datetime import date
from typing import Iterable, List, Optional, Protocol
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from .config import CardSelectors
from .schemas import Listing, PLACEHOLDER, StatusKind

# prefer lxml when installed
try:
    import lxml  # type: ignore  # noqa: F401
    _bs_parser = "lxml"
except Exception:
    _bs_parser = "html.parser"

LISTING_ID_RE = re.compile(r"/home/(\d+)")
ZIP_RE = re.compile(r"(\d{5})(?:[-\s]|$)")
DAYS_ON_MARKET_RE = re.compile(r"(\d+) days? on market", re.I)
OPEN_HOUSE_RE = re.compile(r"OPEN", re.I)
LIFECYCLE_RE = re.compile(
    r"COMING SOON|NEW|ACTIVE|PENDING|CONTINGENT|SOLD|VIDEO TOUR|3D WALKTHROUGH|NEW CONSTRUCTION",
    re.I,
)
# layout label rendered in the status slot of some cards
NOT_A_STATUS = "ABOUT THIS HOME"


class CardElement(Protocol):
    """What extraction needs from a card. A `None` selector means the card itself."""

    def find_text(self, selector: Optional[str]) -> Optional[str]:
        ...

    def find_attribute(self, selector: Optional[str], attr: str) -> Optional[str]:
        ...


class SoupCard:
    """`CardElement` over a BeautifulSoup tag."""

    def __init__(self, tag):
        self.tag = tag

    def _node(self, selector):
        if selector is None:
            return self.tag
        return self.tag.select_one(selector)

    def find_text(self, selector=None):
        node = self._node(selector)
        if node is None:
            return None
        text = node.get_text(" ", strip=True)
        return text or None

    def find_attribute(self, selector, attr):
        node = self._node(selector)
        if node is None:
            return None
        value = node.get(attr)
        if isinstance(value, list):
            value = " ".join(value)
        return value or None


def cards_from_html(html: str, selectors: CardSelectors = CardSelectors()) -> List[SoupCard]:
    soup = BeautifulSoup(html, _bs_parser)
    return [SoupCard(tag) for tag in soup.select(selectors.cards)]


def parse_number(text):
    """Digits and dots only; returns PLACEHOLDER when nothing parses."""
    if not text:
        return PLACEHOLDER
    # trailing dots come from abbreviations like "sq. ft."
    cleaned = re.sub(r"[^\d.]", "", text).rstrip(".")
    if not cleaned:
        return PLACEHOLDER
    try:
        value = float(cleaned)
    except ValueError:
        return PLACEHOLDER
    if math.isnan(value) or math.isinf(value):
        return PLACEHOLDER
    return int(value) if value.is_integer() else value


def parse_price(text):
    if not text or text == PLACEHOLDER:
        return PLACEHOLDER
    digits = re.sub(r"[^\d]", "", text)
    return int(digits) if digits else PLACEHOLDER


def is_known(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def price_per_sqft(price, sqft):
    if not (is_known(price) and is_known(sqft)) or sqft == 0:
        return PLACEHOLDER
    # half-up, not banker's rounding
    return int(math.floor(price / sqft + 0.5))


def parse_listing_id(link: Optional[str]) -> Optional[str]:
    if not link:
        return None
    m = LISTING_ID_RE.search(link)
    return m.group(1) if m else None


def parse_zip(address: Optional[str]) -> str:
    if not address or address == PLACEHOLDER:
        return PLACEHOLDER
    # the last match, so a five-digit street number is not taken for the zip
    matches = ZIP_RE.findall(address)
    return matches[-1] if matches else PLACEHOLDER


def classify_status(status: Optional[str]):
    """Return (status_kind, listing_status, is_open_house, open_house_info)."""
    if not status or status.strip().upper() == NOT_A_STATUS:
        return None, PLACEHOLDER, False, None
    if OPEN_HOUSE_RE.search(status):
        return StatusKind.OPEN_HOUSE, PLACEHOLDER, True, status
    if LIFECYCLE_RE.search(status):
        return StatusKind.LIFECYCLE, status, False, None
    # unknown tags are kept verbatim so they stay visible in the sheet
    return StatusKind.UNCLASSIFIED, status, False, None


def extract_listing(
    card: CardElement,
    selectors: CardSelectors = CardSelectors(),
    base_url: Optional[str] = None,
    today: Optional[date] = None,
) -> Optional[Listing]:
    """Map one card to a `Listing`, or None when it has no listing id."""
    link = card.find_attribute(None, "href") or card.find_attribute("a", "href")
    if link and base_url:
        link = urljoin(base_url, link)
    listing_id = parse_listing_id(link)
    if listing_id is None:
        return None

    price = card.find_text(selectors.price) or PLACEHOLDER
    address = card.find_text(selectors.address) or PLACEHOLDER
    sqft = parse_number(card.find_text(selectors.sqft))
    price_numeric = parse_price(price)
    status_kind, listing_status, is_open_house, open_house_info = classify_status(
        card.find_text(selectors.status)
    )

    image_url = card.find_attribute("img", "src")
    if image_url and base_url:
        image_url = urljoin(base_url, image_url)

    days_on_market = PLACEHOLDER
    m = DAYS_ON_MARKET_RE.search(card.find_text(None) or "")
    if m:
        days_on_market = int(m.group(1))

    return Listing(
        listing_id=listing_id,
        address=address,
        zip_code=parse_zip(address),
        price=price,
        price_numeric=price_numeric,
        beds=parse_number(card.find_text(selectors.beds)),
        baths=parse_number(card.find_text(selectors.baths)),
        sqft=sqft,
        price_per_sqft=price_per_sqft(price_numeric, sqft),
        status_kind=status_kind,
        listing_status=listing_status,
        is_open_house=is_open_house,
        open_house_info=open_house_info,
        neighborhood=card.find_text(selectors.neighborhood) or PLACEHOLDER,
        days_on_market=days_on_market,
        link=link,
        image_url=image_url,
        date_added=today or date.today(),
    )


def extract_listings(
    cards: Iterable[CardElement],
    selectors: CardSelectors = CardSelectors(),
    base_url: Optional[str] = None,
    today: Optional[date] = None,
) -> List[Listing]:
    """Extract a batch, dropping id-less cards and keeping the first of each id."""
    seen = set()
    out = []
    for card in cards:
        listing = extract_listing(card, selectors, base_url=base_url, today=today)
        if listing is None or listing.listing_id in seen:
            continue
        seen.add(listing.listing_id)
        out.append(listing)
    return out
