import os
import tempfile
from pathlib import Path

import pytest

# The app module creates its tables at import time; keep that out of the repo.
_TMP_DB = Path(tempfile.mkdtemp()) / "outofschool-test.db"
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TMP_DB}")
os.environ.setdefault("ELASTICSEARCH_URL", "http://127.0.0.1:9")

from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session  # noqa: E402

from outofschool.database import build_engine, create_db_and_tables  # noqa: E402
from outofschool.errors import SearchIndexError  # noqa: E402
from outofschool.schemas import (  # noqa: E402
    AddressDTO,
    SearchResult,
    TeacherDTO,
    WorkshopDocument,
    WorkshopDTO,
)


class FakeSearchIndex:
    """In-memory stand-in for `ElasticsearchWorkshopIndex`.

    `available = False` makes every call behave like an unreachable
    cluster; `reject = True` makes writes and searches raise as for a
    malformed document or query. `observer` is called before each write with `(name, key)`.
    """

    def __init__(self):
        self.documents = {}
        self.calls = []
        self.available = True
        self.reject = False
        self.observer = None
        self.closed = False

    def _write(self, name, key):
        self.calls.append((name, key))
        if self.observer is not None:
            self.observer(name, key)
        if self.reject:
            raise SearchIndexError("mapper_parsing_exception", status_code=400)
        return self.available

    def index(self, document):
        if not self._write("index", document.id):
            return False
        self.documents[document.id] = document
        return True

    def update(self, document):
        if not self._write("update", document.id):
            return False
        self.documents[document.id] = document
        return True

    def delete(self, workshop_id):
        if not self._write("delete", workshop_id):
            return False
        self.documents.pop(workshop_id, None)
        return True

    def search(self, flt):
        self.calls.append(("search", None))
        if self.reject:
            raise SearchIndexError("result window is too large", status_code=400)
        if not self.available:
            return SearchResult[WorkshopDocument]()
        docs = [
            d for _, d in sorted(self.documents.items())
            if (not flt.ids or d.id in flt.ids)
            and (d.is_free if flt.is_free else flt.min_price <= d.price <= flt.max_price)
        ]
        page = docs[flt.from_:flt.from_ + flt.size]
        return SearchResult[WorkshopDocument](total_amount=len(docs), entities=page)

    def ping_server(self):
        self.calls.append(("ping", None))
        return self.available

    def ensure_index(self):
        self.calls.append(("ensure_index", None))
        return self.available

    def close(self):
        self.closed = True

    def call_names(self):
        return [name for name, _ in self.calls]


@pytest.fixture
def engine():
    eng = build_engine("sqlite://", poolclass=StaticPool)
    create_db_and_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as s:
        yield s


@pytest.fixture
def fake_index():
    return FakeSearchIndex()


def make_workshop(**overrides) -> WorkshopDTO:
    """A valid workshop payload; keyword arguments replace fields."""
    city = overrides.pop("city", "Kyiv")
    address = overrides.pop("address", None) or AddressDTO(city=city, street="Khreshchatyk", building_number="1")
    data = {
        "title": "Robotics for beginners",
        "phone": "+380501234567",
        "email": "robots@example.com",
        "description": "Build and program small robots",
        "head": "Olena Kovalenko",
        "keywords": "robots,lego",
        "min_age": 8,
        "max_age": 14,
        "price": 500,
        "provider_id": 1,
        "provider_title": "Tech Club",
        "direction_id": 3,
        "category_id": 2,
        "address": address,
        "teachers": [TeacherDTO(first_name="Ivan", last_name="Petrenko")],
    }
    data.update(overrides)
    return WorkshopDTO(**data)
