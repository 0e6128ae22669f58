"""Pydantic request/response schemas used by the API and services.

Schemas keep API input/output shapes stable, validate filters before any
store is touched, and define the search projection that is sent to the
index.
"""

from datetime import datetime
from enum import Enum
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .models import SyncOperation

T = TypeVar("T")

MAX_PRICE = 2147483647
# Elasticsearch default index.max_result_window
MAX_RESULT_WINDOW = 10000


class OrderBy(str, Enum):
    """Ordering fields accepted by the workshop listing."""
    ID = "Id"
    RATING = "Rating"
    PRICE_ASC = "PriceAsc"
    PRICE_DESC = "PriceDesc"
    ALPHABET = "Alphabet"


class AddressDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    city: str = Field(min_length=1, max_length=30)
    street: str = ""
    building_number: str = ""
    region: Optional[str] = None
    district: Optional[str] = None
    latitude: float = 0.0
    longitude: float = 0.0


class TeacherDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    middle_name: Optional[str] = None
    description: Optional[str] = None


class WorkshopDTO(BaseModel):
    """Workshop as accepted and returned by the API.

    `id` is ignored on create and required on update.
    """
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    title: str = Field(min_length=1, max_length=60)
    phone: str = ""
    email: str = ""
    website: Optional[str] = None
    description: str = ""
    head: str = ""
    keywords: Optional[str] = None
    min_age: int = Field(default=0, ge=0, le=100)
    max_age: int = Field(default=100, ge=0, le=100)
    price: int = Field(default=0, ge=0)
    with_disability_options: bool = False
    disability_options_desc: Optional[str] = None
    rating: float = Field(default=0.0, ge=0)
    direction_id: int = Field(default=0, ge=0)
    category_id: int = Field(default=0, ge=0)
    provider_id: int = Field(gt=0)
    provider_title: str = ""
    address: AddressDTO
    teachers: List[TeacherDTO] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_age_range(self):
        if self.min_age > self.max_age:
            raise ValueError("min_age must not exceed max_age")
        return self


class WorkshopCard(BaseModel):
    """Short workshop representation used by listings."""
    workshop_id: int
    title: str
    provider_id: int
    provider_title: str = ""
    price: int
    min_age: int
    max_age: int
    rating: float = 0.0
    direction_id: int = 0
    category_id: int = 0
    address_city: str = ""
    with_disability_options: bool = False


class WorkshopDocument(BaseModel):
    """Denormalized projection of a workshop stored in the search index."""
    id: int
    title: str
    description: str = ""
    keywords: Optional[str] = None
    category_id: int = 0
    direction_id: int = 0
    provider_id: int
    provider_title: str = ""
    price: int = 0
    is_free: bool = True
    min_age: int = 0
    max_age: int = 100
    city: str = ""
    rating: float = 0.0
    with_disability_options: bool = False


class SearchResult(BaseModel, Generic[T]):
    """A page of entities plus the total number of matches."""
    total_amount: int = Field(default=0, ge=0)
    entities: List[T] = Field(default_factory=list)


class OffsetFilter(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_: int = Field(default=0, ge=0, alias="from")
    size: int = Field(default=12, ge=1, le=100)

    @model_validator(mode="after")
    def _check_result_window(self):
        if self.from_ + self.size > MAX_RESULT_WINDOW:
            raise ValueError(f"from + size must not exceed {MAX_RESULT_WINDOW}")
        return self


class WorkshopFilter(OffsetFilter):
    """Search parameters shared by the index and the database query.

    `direction_ids == [0]` means any direction. `is_free` restricts the
    result to workshops with price 0 and takes precedence over the price
    range.
    """
    ids: Optional[List[int]] = None
    search_text: str = ""
    order_by_field: OrderBy = OrderBy.RATING
    min_age: int = Field(default=0, ge=0, le=100)
    max_age: int = Field(default=100, ge=0, le=100)
    is_free: bool = False
    min_price: int = Field(default=0, ge=0)
    max_price: int = Field(default=MAX_PRICE, ge=0)
    direction_ids: List[int] = Field(default_factory=lambda: [0])
    city: str = ""
    with_disability_options: bool = False

    @model_validator(mode="after")
    def _check_ranges(self):
        if self.min_age > self.max_age:
            raise ValueError("min_age must not exceed max_age")
        if self.min_price > self.max_price:
            raise ValueError("min_price must not exceed max_price")
        return self

    @property
    def effective_direction_ids(self) -> List[int]:
        """Direction ids to filter on; empty means no restriction."""
        return [d for d in self.direction_ids if d != 0]


class SyncRecordDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    record_id: int
    operation: SyncOperation
    operation_date: datetime


class SyncReport(BaseModel):
    """Outcome of one reconciliation pass."""
    scanned: int = 0
    synchronized: int = 0
    failed: int = 0
    superseded: int = 0
