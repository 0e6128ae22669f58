"""Replay of the synchronization ledger against the search index.

Every failed index write leaves an `ElasticsearchSyncRecord`. For each
workshop only the newest entry matters; older ones are superseded and
kept for audit. A pass replays each outstanding newest entry using the
workshop's current database state, then moves the workshop's checkpoint
to that entry unless a newer entry arrived while it was being replayed.
"""

import logging
from typing import Callable, List, Optional

from sqlmodel import Session

from . import models
from .errors import SearchIndexError
from .mappers import to_document
from .repositories import SyncRecordRepository, WorkshopRepository
from .schemas import SyncRecordDTO, SyncReport
from .search import ElasticsearchWorkshopIndex


class ElasticsearchSynchronizationService:
    """Reconciler for workshops the search index missed."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        search_index: ElasticsearchWorkshopIndex,
        logger: Optional[logging.Logger] = None,
    ):
        self._session_factory = session_factory
        self.search_index = search_index
        self.logger = logger or logging.getLogger("outofschool.sync")

    def get_all(self) -> List[SyncRecordDTO]:
        """Return the whole ledger, oldest first."""
        with self._session_factory() as session:
            return [SyncRecordDTO.model_validate(r) for r in SyncRecordRepository(session).get_all()]

    def list_pending(self) -> List[SyncRecordDTO]:
        """Return the effective entries that still need replaying."""
        with self._session_factory() as session:
            return [SyncRecordDTO.model_validate(r) for r in SyncRecordRepository(session).outstanding()]

    def synchronize(self) -> SyncReport:
        """Run one reconciliation pass.

        Failed replays stay outstanding and are retried by the next pass.
        """
        report = SyncReport()
        with self._session_factory() as session:
            ledger = SyncRecordRepository(session)
            workshops = WorkshopRepository(session)
            pending = ledger.outstanding()
            report.scanned = len(pending)
            for entry in pending:
                if not self._replay(entry, workshops):
                    report.failed += 1
                    continue
                latest = ledger.latest_for_record(entry.record_id)
                if latest is not None and latest.id != entry.id:
                    self.logger.info(
                        "workshop %s got a newer %s while replaying %s, leaving it pending",
                        entry.record_id, latest.operation.value, entry.operation.value,
                    )
                    report.superseded += 1
                    continue
                ledger.mark_synced(entry)
                report.synchronized += 1
        if report.scanned:
            self.logger.info(
                "synchronization pass: scanned=%s synchronized=%s failed=%s superseded=%s",
                report.scanned, report.synchronized, report.failed, report.superseded,
            )
        return report

    def _replay(self, entry: models.ElasticsearchSyncRecord, workshops: WorkshopRepository) -> bool:
        try:
            if entry.operation == models.SyncOperation.DELETE:
                return self.search_index.delete(entry.record_id)
            workshop = workshops.get(entry.record_id)
            if workshop is None:
                # deleted after the entry was written; the delete's own entry may not exist
                return self.search_index.delete(entry.record_id)
            document = to_document(workshop)
            if entry.operation == models.SyncOperation.CREATE:
                return self.search_index.index(document)
            return self.search_index.update(document)
        except SearchIndexError:
            self.logger.exception("search index rejected replay of %s for workshop %s", entry.operation.value, entry.record_id)
            return False
