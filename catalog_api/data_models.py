from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

UNSET_PRICE = -1


class Book(BaseModel):
    title: str = ""
    author_name: str = ""
    price: int = 0
    ebook_available: bool = False
    publish_date: Optional[datetime] = None


class PriceRange(BaseModel):
    """Inclusive price bounds; ``to=None`` means "from ``from`` upward"."""

    model_config = ConfigDict(populate_by_name=True)

    from_: int = Field(alias="from")
    to: Optional[int] = None

    @property
    def is_unset(self) -> bool:
        return self.from_ == UNSET_PRICE and self.to == UNSET_PRICE

    @model_validator(mode="after")
    def check_bounds(self):
        if not self.is_unset and self.to is not None and self.from_ > self.to:
            raise ValueError(f"price range lower bound {self.from_} exceeds upper bound {self.to}")
        return self


class SearchCriteria(BaseModel):
    """
    Optional search filters. ``None`` is the only "no filter" value: blank
    strings and the (-1, -1) price sentinel are normalized to ``None``.
    """

    title: Optional[str] = None
    author_name: Optional[str] = None
    price_range: Optional[PriceRange] = None

    @field_validator("title", "author_name")
    @classmethod
    def blank_is_absent(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value

    @field_validator("price_range")
    @classmethod
    def sentinel_is_absent(cls, value: Optional[PriceRange]) -> Optional[PriceRange]:
        if value is not None and value.is_unset:
            return None
        return value

    @property
    def is_empty(self) -> bool:
        return self.title is None and self.author_name is None and self.price_range is None


class AggregateSummary(BaseModel):
    books: int = Field(ge=0)
    authors: int = Field(ge=0)


class ActivityEntry(BaseModel):
    user_id: str
    label: str
    score: float
    event_id: Optional[str] = None
    recorded_at: Optional[datetime] = None


class RecordedResponse(BaseModel):
    # set when the request succeeded but its activity could not be recorded
    activity_error: Optional[str] = None


class BookResponse(RecordedResponse):
    id: str
    book: Dict[str, Any]


class BookWriteResponse(RecordedResponse):
    id: str
    result: str
    found: bool = True
    version: Optional[int] = None


class SearchResponse(RecordedResponse):
    total: int
    books: List[Dict[str, Any]]


class StoreResponse(RecordedResponse):
    books: int
    authors: int


class ActivityResponse(BaseModel):
    user_id: Optional[str] = None
    entries: List[ActivityEntry]
