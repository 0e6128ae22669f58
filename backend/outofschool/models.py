"""SQLModel data models.

This module defines the Record Store tables using SQLModel. A `Workshop`
owns its address, teachers and applications: they are removed together
with it in one transaction. The synchronization ledger and its
checkpoints live here too so they share the store's durability.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from sqlmodel import SQLModel, Field, Relationship

_OWNED = {"cascade": "all, delete-orphan"}


class SyncOperation(str, Enum):
    """Index operation that failed to propagate."""
    CREATE = "Create"
    UPDATE = "Update"
    DELETE = "Delete"


class Workshop(SQLModel, table=True):
    """A workshop published by a provider.

    `price == 0` means the workshop is free. Age bounds are inclusive.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str = Field(index=True, max_length=60)
    phone: str = ""
    email: str = ""
    website: Optional[str] = None
    description: str = ""
    head: str = ""
    keywords: Optional[str] = None
    min_age: int = 0
    max_age: int = 100
    price: int = Field(default=0, index=True)
    with_disability_options: bool = False
    disability_options_desc: Optional[str] = None
    rating: float = 0.0
    direction_id: int = Field(default=0, index=True)
    category_id: int = Field(default=0, index=True)
    provider_id: int = Field(index=True)
    provider_title: str = ""
    address: Optional['Address'] = Relationship(
        back_populates='workshop',
        sa_relationship_kwargs={"uselist": False, **_OWNED},
    )
    teachers: List['Teacher'] = Relationship(back_populates='workshop', sa_relationship_kwargs=_OWNED)
    applications: List['Application'] = Relationship(back_populates='workshop', sa_relationship_kwargs=_OWNED)


class Address(SQLModel, table=True):
    """Where a workshop takes place."""
    id: Optional[int] = Field(default=None, primary_key=True)
    workshop_id: Optional[int] = Field(default=None, foreign_key='workshop.id', index=True)
    city: str = Field(index=True)
    street: str = ""
    building_number: str = ""
    region: Optional[str] = None
    district: Optional[str] = None
    latitude: float = 0.0
    longitude: float = 0.0
    workshop: Optional[Workshop] = Relationship(back_populates='address')


class Teacher(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    workshop_id: Optional[int] = Field(default=None, foreign_key='workshop.id', index=True)
    first_name: str
    last_name: str
    middle_name: Optional[str] = None
    description: Optional[str] = None
    workshop: Optional[Workshop] = Relationship(back_populates='teachers')


class Application(SQLModel, table=True):
    """A parent's application of a child to a workshop.

    Created by the application service; the workshop only owns them.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    workshop_id: Optional[int] = Field(default=None, foreign_key='workshop.id', index=True)
    child_id: int
    parent_id: int
    status: int = 0
    creation_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    workshop: Optional[Workshop] = Relationship(back_populates='applications')


class ElasticsearchSyncRecord(SQLModel, table=True):
    """One failed index propagation awaiting replay.

    Rows are only ever inserted. `id` is a monotonically increasing
    sequence and breaks ties between equal `operation_date` values.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    record_id: int = Field(index=True)
    operation: SyncOperation
    operation_date: datetime = Field(index=True)


class ElasticsearchSyncCheckpoint(SQLModel, table=True):
    """Highest ledger entry replayed for a workshop.

    Entries with `id <= synced_record_id` are no longer outstanding.
    """
    record_id: int = Field(primary_key=True)
    synced_record_id: int
    synced_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
