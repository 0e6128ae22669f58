"""Repository classes encapsulating database operations.

`WorkshopRepository` is the Record Store for workshops and their owned
rows. `SyncRecordRepository` is the append-only synchronization ledger
plus the per-workshop checkpoints written by the reconciler.
"""

from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import func, or_
from sqlmodel import Session, select

from . import models
from .schemas import OrderBy, WorkshopFilter

_ORDERING = {
    OrderBy.ID: (models.Workshop.id.asc(),),
    OrderBy.RATING: (models.Workshop.rating.desc(), models.Workshop.id.asc()),
    OrderBy.PRICE_ASC: (models.Workshop.price.asc(), models.Workshop.id.asc()),
    OrderBy.PRICE_DESC: (models.Workshop.price.desc(), models.Workshop.id.asc()),
    OrderBy.ALPHABET: (models.Workshop.title.asc(), models.Workshop.id.asc()),
}


class WorkshopRepository:
    """CRUD and filtering for `Workshop` aggregates."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, workshop: models.Workshop) -> models.Workshop:
        """Persist a new workshop with its owned rows and return it."""
        self.session.add(workshop)
        self.session.commit()
        self.session.refresh(workshop)
        return workshop

    def get(self, workshop_id: int) -> Optional[models.Workshop]:
        """Get a `Workshop` by primary key."""
        return self.session.get(models.Workshop, workshop_id)

    def get_all(self) -> List[models.Workshop]:
        stmt = select(models.Workshop).order_by(models.Workshop.id)
        return self.session.exec(stmt).all()

    def get_by_provider_id(self, provider_id: int) -> List[models.Workshop]:
        """Return every workshop published by `provider_id`."""
        stmt = select(models.Workshop).where(models.Workshop.provider_id == provider_id).order_by(models.Workshop.id)
        return self.session.exec(stmt).all()

    def get_by_filter(self, flt: WorkshopFilter) -> Tuple[int, List[models.Workshop]]:
        """Return `(total, page)` for workshops matching `flt`.

        The predicate mirrors the search index query so both read paths
        agree on which workshops match and in what order.
        """
        W, A = models.Workshop, models.Address
        stmt = select(W).join(A, A.workshop_id == W.id, isouter=True)
        if flt.ids:
            stmt = stmt.where(W.id.in_(flt.ids))
        text = flt.search_text.strip()
        if text:
            pattern = f"%{_escape_like(text)}%"
            stmt = stmt.where(or_(
                W.title.ilike(pattern, escape="\\"),
                W.keywords.ilike(pattern, escape="\\"),
                W.description.ilike(pattern, escape="\\"),
            ))
        stmt = stmt.where(W.min_age <= flt.max_age, W.max_age >= flt.min_age)
        if flt.is_free:
            stmt = stmt.where(W.price == 0)
        else:
            stmt = stmt.where(W.price >= flt.min_price, W.price <= flt.max_price)
        directions = flt.effective_direction_ids
        if directions:
            stmt = stmt.where(W.direction_id.in_(directions))
        city = flt.city.strip()
        if city:
            stmt = stmt.where(func.lower(A.city) == city.lower())
        if flt.with_disability_options:
            stmt = stmt.where(W.with_disability_options.is_(True))

        total = self.session.exec(select(func.count()).select_from(stmt.subquery())).one()
        page = stmt.order_by(*_ORDERING[flt.order_by_field]).offset(flt.from_).limit(flt.size)
        return total, self.session.exec(page).all()

    def update(self, workshop: models.Workshop) -> models.Workshop:
        self.session.add(workshop)
        self.session.commit()
        self.session.refresh(workshop)
        return workshop

    def delete(self, workshop: models.Workshop) -> None:
        """Delete a workshop together with its address, teachers and applications.

        Everything is removed in a single commit through the relationship
        cascades declared on `Workshop`.
        """
        self.session.delete(workshop)
        self.session.commit()


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _latest_entries_subquery():
    """Rank ledger rows per workshop; `rn == 1` is the effective entry.

    The autoincrement id breaks ties between equal operation dates.
    """
    R = models.ElasticsearchSyncRecord
    rn = func.row_number().over(
        partition_by=R.record_id,
        order_by=(R.operation_date.desc(), R.id.desc()),
    ).label("rn")
    return select(R.id, R.record_id, R.operation, rn).subquery()


class SyncRecordRepository:
    """Append-only ledger of failed index operations."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, record: models.ElasticsearchSyncRecord) -> models.ElasticsearchSyncRecord:
        self.session.add(record)
        self.session.commit()
        self.session.refresh(record)
        return record

    def get_all(self) -> List[models.ElasticsearchSyncRecord]:
        stmt = select(models.ElasticsearchSyncRecord).order_by(models.ElasticsearchSyncRecord.id)
        return self.session.exec(stmt).all()

    def latest_per_record(self) -> List[models.ElasticsearchSyncRecord]:
        """Return the effective (newest) entry for every workshop id in the ledger."""
        latest = _latest_entries_subquery()
        stmt = (
            select(models.ElasticsearchSyncRecord)
            .join(latest, latest.c.id == models.ElasticsearchSyncRecord.id)
            .where(latest.c.rn == 1)
            .order_by(models.ElasticsearchSyncRecord.id)
        )
        return self.session.exec(stmt).all()

    def get_by_operation(self, operation: models.SyncOperation) -> List[models.ElasticsearchSyncRecord]:
        """Effective entries whose operation is `operation`."""
        return [r for r in self.latest_per_record() if r.operation == operation]

    def latest_for_record(self, record_id: int) -> Optional[models.ElasticsearchSyncRecord]:
        R = models.ElasticsearchSyncRecord
        stmt = (
            select(R)
            .where(R.record_id == record_id)
            .order_by(R.operation_date.desc(), R.id.desc())
            .limit(1)
        )
        return self.session.exec(stmt).first()

    def get_checkpoint(self, record_id: int) -> Optional[models.ElasticsearchSyncCheckpoint]:
        return self.session.get(models.ElasticsearchSyncCheckpoint, record_id)

    def outstanding(self) -> List[models.ElasticsearchSyncRecord]:
        """Effective entries that no checkpoint covers yet."""
        R, C = models.ElasticsearchSyncRecord, models.ElasticsearchSyncCheckpoint
        latest = _latest_entries_subquery()
        stmt = (
            select(R)
            .join(latest, latest.c.id == R.id)
            .join(C, C.record_id == R.record_id, isouter=True)
            .where(latest.c.rn == 1)
            .where(or_(C.synced_record_id.is_(None), C.synced_record_id < R.id))
            .order_by(R.id)
        )
        return self.session.exec(stmt).all()

    def mark_synced(self, record: models.ElasticsearchSyncRecord) -> models.ElasticsearchSyncCheckpoint:
        """Record that `record` was replayed.

        The checkpoint only moves forward, so a slower pass can never
        un-sync a newer replay.
        """
        checkpoint = self.get_checkpoint(record.record_id)
        if checkpoint is None:
            checkpoint = models.ElasticsearchSyncCheckpoint(record_id=record.record_id, synced_record_id=record.id)
        elif checkpoint.synced_record_id < record.id:
            checkpoint.synced_record_id = record.id
            checkpoint.synced_at = datetime.now(timezone.utc)
        else:
            return checkpoint
        self.session.add(checkpoint)
        self.session.commit()
        self.session.refresh(checkpoint)
        return checkpoint
