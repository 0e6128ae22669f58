"""Business logic services used by HTTP controllers.

`WorkshopService` is the database-backed workshop service: it validates
input, delegates to `WorkshopRepository` and maps rows to DTOs.
`WorkshopServicesCombiner` puts the search index next to it: every
mutation is written to the database first and then propagated to the
index, and failed propagation is recorded in the sync ledger instead of
failing the request.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Union

from sqlmodel import Session

from . import mappers, models, repositories
from .errors import SearchIndexError, WorkshopNotFoundError, WorkshopValidationError
from .schemas import OffsetFilter, OrderBy, SearchResult, WorkshopCard, WorkshopDTO, WorkshopFilter
from .search import ElasticsearchWorkshopIndex
from .utils.clock import MonotonicClock, utc_clock


@dataclass(frozen=True)
class Found:
    workshop: models.Workshop


@dataclass(frozen=True)
class NotFound:
    workshop_id: int


Lookup = Union[Found, NotFound]


def _validate_id(workshop_id) -> int:
    if isinstance(workshop_id, bool) or not isinstance(workshop_id, int) or workshop_id <= 0:
        raise WorkshopValidationError(f"invalid workshop id: {workshop_id!r}")
    return workshop_id


class WorkshopService:
    """CRUD over the workshop Record Store."""
    def __init__(self, session: Session, logger: Optional[logging.Logger] = None):
        self.session = session
        self.repo = repositories.WorkshopRepository(session)
        self.logger = logger or logging.getLogger("outofschool.workshops")

    def create(self, dto: WorkshopDTO) -> WorkshopDTO:
        """Persist a new workshop with its address and teachers."""
        workshop = self.repo.create(mappers.to_model(dto))
        self.logger.info("workshop %s created", workshop.id)
        return mappers.to_dto(workshop)

    def get_by_id(self, workshop_id: int) -> Optional[WorkshopDTO]:
        """Return the workshop or `None` if it does not exist."""
        lookup = self.find(workshop_id)
        if isinstance(lookup, NotFound):
            return None
        return mappers.to_dto(lookup.workshop)

    def get_all(self) -> List[WorkshopDTO]:
        return [mappers.to_dto(w) for w in self.repo.get_all()]

    def get_by_provider_id(self, provider_id: int) -> List[WorkshopDTO]:
        _validate_id(provider_id)
        return [mappers.to_dto(w) for w in self.repo.get_by_provider_id(provider_id)]

    def get_by_filter(self, flt: Optional[WorkshopFilter] = None) -> SearchResult[WorkshopDTO]:
        flt = flt or WorkshopFilter()
        total, rows = self.repo.get_by_filter(flt)
        return SearchResult[WorkshopDTO](total_amount=total, entities=[mappers.to_dto(w) for w in rows])

    def find(self, workshop_id: int) -> Lookup:
        """Look a workshop up without raising when it is missing."""
        workshop = self.repo.get(_validate_id(workshop_id))
        if workshop is None:
            return NotFound(workshop_id)
        return Found(workshop)

    def update(self, dto: WorkshopDTO) -> WorkshopDTO:
        """Overwrite an existing workshop.

        Raises `WorkshopNotFoundError` when there is nothing to update.
        """
        if dto.id is None:
            raise WorkshopValidationError("workshop id is required for update")
        lookup = self.find(dto.id)
        if isinstance(lookup, NotFound):
            raise WorkshopNotFoundError(dto.id)
        workshop = self.repo.update(mappers.apply_to_model(dto, lookup.workshop))
        self.logger.info("workshop %s updated", workshop.id)
        return mappers.to_dto(workshop)

    def delete(self, workshop_id: int) -> None:
        """Delete a workshop and everything it owns."""
        lookup = self.find(workshop_id)
        if isinstance(lookup, NotFound):
            raise WorkshopNotFoundError(workshop_id)
        self.repo.delete(lookup.workshop)
        self.logger.info("workshop %s deleted", workshop_id)


class WorkshopServicesCombiner:
    """Keep the database and the search index in step for workshops.

    The database write is authoritative and always happens first. The
    index write is attempted afterwards; if it fails, a ledger entry is
    appended for the reconciler and the caller still gets its result.
    Reads of single workshops go to the database; listings go to the
    index and fall back to the database only when the index is empty
    because it is down.
    """

    def __init__(
        self,
        database_service: WorkshopService,
        search_index: ElasticsearchWorkshopIndex,
        sync_records: repositories.SyncRecordRepository,
        logger: logging.Logger,
        clock: MonotonicClock = utc_clock,
    ):
        self.database_service = database_service
        self.search_index = search_index
        self.sync_records = sync_records
        self.logger = logger
        self.clock = clock

    def create(self, dto: WorkshopDTO) -> WorkshopDTO:
        workshop = self.database_service.create(dto)
        self._propagate(
            workshop.id,
            models.SyncOperation.CREATE,
            lambda: self.search_index.index(mappers.to_document(workshop)),
        )
        return workshop

    def get_by_id(self, workshop_id: int) -> Optional[WorkshopDTO]:
        return self.database_service.get_by_id(workshop_id)

    def get_by_provider_id(self, provider_id: int) -> List[WorkshopDTO]:
        return self.database_service.get_by_provider_id(provider_id)

    def update(self, dto: WorkshopDTO) -> WorkshopDTO:
        workshop = self.database_service.update(dto)
        self._propagate(
            workshop.id,
            models.SyncOperation.UPDATE,
            lambda: self.search_index.update(mappers.to_document(workshop)),
        )
        return workshop

    def delete(self, workshop_id: int) -> None:
        self.database_service.delete(workshop_id)
        self._propagate(
            workshop_id,
            models.SyncOperation.DELETE,
            lambda: self.search_index.delete(workshop_id),
        )

    def get_all(self, offset_filter: Optional[OffsetFilter] = None) -> SearchResult[WorkshopCard]:
        """List workshops by id using only the offset's paging."""
        offset_filter = offset_filter or OffsetFilter()
        flt = WorkshopFilter(from_=offset_filter.from_, size=offset_filter.size, order_by_field=OrderBy.ID)
        return self.get_by_filter(flt)

    def get_by_filter(self, flt: Optional[WorkshopFilter] = None) -> SearchResult[WorkshopCard]:
        flt = flt or WorkshopFilter()
        try:
            result = self.search_index.search(flt)
        except SearchIndexError:
            self.logger.exception("search index rejected the workshop query, serving it from the database")
            return self._from_database(flt)
        if result.total_amount > 0 or self.search_index.ping_server():
            return SearchResult[WorkshopCard](
                total_amount=result.total_amount,
                entities=[mappers.document_to_card(d) for d in result.entities],
            )
        self.logger.warning("search index is unreachable, serving workshop listing from the database")
        return self._from_database(flt)

    def _from_database(self, flt: WorkshopFilter) -> SearchResult[WorkshopCard]:
        database_result = self.database_service.get_by_filter(flt)
        return SearchResult[WorkshopCard](
            total_amount=database_result.total_amount,
            entities=mappers.to_cards(database_result.entities),
        )

    def _propagate(self, workshop_id: int, operation: models.SyncOperation, action: Callable[[], bool]) -> None:
        try:
            accepted = action()
        except SearchIndexError:
            self.logger.exception(
                "search index rejected %s of workshop %s, queued for synchronization",
                operation.value.lower(), workshop_id,
            )
        else:
            if accepted:
                return
            self.logger.warning(
                "could not %s workshop %s in the search index, queued for synchronization",
                operation.value.lower(), workshop_id,
            )
        self._add_sync_record(workshop_id, operation)

    def _add_sync_record(self, workshop_id: int, operation: models.SyncOperation) -> models.ElasticsearchSyncRecord:
        record = models.ElasticsearchSyncRecord(
            record_id=workshop_id,
            operation=operation,
            operation_date=self.clock.now(),
        )
        return self.sync_records.create(record)
