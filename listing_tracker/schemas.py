# listing_tracker/schemas.py
import enum
from datetime import date, datetime
from typing import Optional, Union
from pydantic import BaseModel, ConfigDict, Field

# Marker for a value the card did not carry. Distinct from None and from 0.
PLACEHOLDER = "—"

MaybeNumber = Union[int, float, str]


class StatusKind(str, enum.Enum):
    OPEN_HOUSE = "open_house"
    LIFECYCLE = "lifecycle"
    UNCLASSIFIED = "unclassified"


class Listing(BaseModel):
    listing_id: str = Field(..., min_length=1)
    address: str = PLACEHOLDER
    zip_code: str = PLACEHOLDER
    price: str = PLACEHOLDER
    price_numeric: MaybeNumber = PLACEHOLDER
    beds: MaybeNumber = PLACEHOLDER
    baths: MaybeNumber = PLACEHOLDER
    sqft: MaybeNumber = PLACEHOLDER
    price_per_sqft: MaybeNumber = PLACEHOLDER
    status_kind: Optional[StatusKind] = None
    listing_status: str = PLACEHOLDER
    is_open_house: bool = False
    open_house_info: Optional[str] = None
    neighborhood: str = PLACEHOLDER
    days_on_market: MaybeNumber = PLACEHOLDER
    link: Optional[str] = None
    image_url: Optional[str] = None
    date_added: date = Field(default_factory=date.today)


class JobOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    source_url: str
    sheet_ref: Optional[str] = None
    active: bool
    status: str
    sync_mode: str
    last_run: Optional[datetime] = None
    next_run: Optional[datetime] = None
    owner_email: Optional[str] = None


class SweepSummary(BaseModel):
    total: int
    succeeded: int
    failed: int
