"""FastAPI application entrypoint and HTTP controllers.

Controllers are intentionally thin: they accept requests, delegate to the
workshop combiner or the synchronization service, and return JSON.

Endpoints implemented:
- POST /workshops
- GET /workshops
- POST /workshops/filter
- GET /workshops/{workshop_id}
- GET /workshops/provider/{provider_id}
- PUT /workshops
- DELETE /workshops/{workshop_id}
- GET /sync/records
- GET /sync/pending
- POST /sync/run
- GET /health
"""

import json
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import List

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError
from sqlmodel import Session

from .config import settings
from .database import create_db_and_tables, engine, get_session
from .errors import WorkshopNotFoundError, WorkshopValidationError
from .repositories import SyncRecordRepository
from .schemas import (
    OffsetFilter,
    SearchResult,
    SyncRecordDTO,
    SyncReport,
    WorkshopCard,
    WorkshopDTO,
    WorkshopFilter,
)
from .search import ElasticsearchWorkshopIndex
from .services import WorkshopService, WorkshopServicesCombiner
from .sync import ElasticsearchSynchronizationService
from .utils.scheduler import SyncScheduler

logger = logging.getLogger("outofschool.api")
if not logging.getLogger().handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)


def build_runtime():
    """Create the search index client, the reconciler and its scheduler."""
    index = ElasticsearchWorkshopIndex.from_settings(settings)
    sync_service = ElasticsearchSynchronizationService(lambda: Session(engine), index)
    return index, sync_service, SyncScheduler(sync_service, settings.SYNC_INTERVAL_SECONDS)


search_index, reconciler, scheduler = build_runtime()

create_db_and_tables()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    global search_index, reconciler, scheduler
    # a previous lifespan closed the client
    if search_index.closed:
        search_index, reconciler, scheduler = build_runtime()
    if not search_index.ensure_index():
        logger.warning("search index %s is not ready; writes will be queued for synchronization", search_index.index_name)
    if settings.SYNC_ENABLED:
        scheduler.start()
    try:
        yield
    finally:
        scheduler.stop()
        search_index.close()


app = FastAPI(title="OutOfSchool Workshop API", lifespan=lifespan)

if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    context = {"request_id": req_id, "path": request.url.path, "method": request.method}
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        context["duration_ms"] = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception("request_failed %s", json.dumps(context, ensure_ascii=True))
        raise
    response.headers["X-Request-ID"] = req_id
    context["status_code"] = response.status_code
    context["duration_ms"] = round((time.perf_counter() - started) * 1000.0, 2)
    logger.info("request_done %s", json.dumps(context, ensure_ascii=True))
    return response


def get_search_index() -> ElasticsearchWorkshopIndex:
    return search_index


def get_reconciler() -> ElasticsearchSynchronizationService:
    return reconciler


def get_combiner(
    db: Session = Depends(get_session),
    index: ElasticsearchWorkshopIndex = Depends(get_search_index),
) -> WorkshopServicesCombiner:
    """Build a combiner bound to the request's database session."""
    return WorkshopServicesCombiner(
        WorkshopService(db),
        index,
        SyncRecordRepository(db),
        logging.getLogger("outofschool.combiner"),
    )


@app.post('/workshops', response_model=WorkshopDTO, status_code=201)
def create_workshop(dto: WorkshopDTO, combiner: WorkshopServicesCombiner = Depends(get_combiner)):
    return combiner.create(dto)


@app.get('/workshops', response_model=SearchResult[WorkshopCard])
def list_workshops(
    from_: int = Query(0, alias="from", ge=0),
    size: int = Query(12, ge=1, le=100),
    combiner: WorkshopServicesCombiner = Depends(get_combiner),
):
    try:
        offset_filter = OffsetFilter(from_=from_, size=size)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return combiner.get_all(offset_filter)


@app.post('/workshops/filter', response_model=SearchResult[WorkshopCard])
def filter_workshops(flt: WorkshopFilter, combiner: WorkshopServicesCombiner = Depends(get_combiner)):
    return combiner.get_by_filter(flt)


@app.get('/workshops/provider/{provider_id}', response_model=List[WorkshopDTO])
def workshops_by_provider(provider_id: int, combiner: WorkshopServicesCombiner = Depends(get_combiner)):
    try:
        return combiner.get_by_provider_id(provider_id)
    except WorkshopValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get('/workshops/{workshop_id}', response_model=WorkshopDTO)
def get_workshop(workshop_id: int, combiner: WorkshopServicesCombiner = Depends(get_combiner)):
    try:
        workshop = combiner.get_by_id(workshop_id)
    except WorkshopValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if workshop is None:
        raise HTTPException(status_code=404, detail='workshop not found')
    return workshop


@app.put('/workshops', response_model=WorkshopDTO)
def update_workshop(dto: WorkshopDTO, combiner: WorkshopServicesCombiner = Depends(get_combiner)):
    try:
        return combiner.update(dto)
    except WorkshopValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except WorkshopNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.delete('/workshops/{workshop_id}', status_code=204)
def delete_workshop(workshop_id: int, combiner: WorkshopServicesCombiner = Depends(get_combiner)):
    try:
        combiner.delete(workshop_id)
    except WorkshopValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except WorkshopNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return Response(status_code=204)


@app.get('/sync/records', response_model=List[SyncRecordDTO])
def sync_records(service: ElasticsearchSynchronizationService = Depends(get_reconciler)):
    return service.get_all()


@app.get('/sync/pending', response_model=List[SyncRecordDTO])
def sync_pending(service: ElasticsearchSynchronizationService = Depends(get_reconciler)):
    return service.list_pending()


@app.post('/sync/run', response_model=SyncReport)
def sync_run(service: ElasticsearchSynchronizationService = Depends(get_reconciler)):
    """Run a synchronization pass now instead of waiting for the scheduler."""
    return service.synchronize()


@app.get("/health")
def health(index: ElasticsearchWorkshopIndex = Depends(get_search_index)):
    return {"status": "ok", "search_index": "up" if index.ping_server() else "down"}
