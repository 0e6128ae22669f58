import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from conftest import make_workshop
from outofschool import main
from outofschool.database import get_session
from outofschool.main import app, get_reconciler, get_search_index
from outofschool.schemas import SyncReport
from outofschool.sync import ElasticsearchSynchronizationService
from outofschool.utils.scheduler import SyncScheduler


@pytest.fixture
def client(engine, fake_index):
    def session_override():
        with Session(engine) as s:
            yield s

    app.dependency_overrides[get_session] = session_override
    app.dependency_overrides[get_search_index] = lambda: fake_index
    app.dependency_overrides[get_reconciler] = lambda: ElasticsearchSynchronizationService(lambda: Session(engine), fake_index)
    yield TestClient(app)
    app.dependency_overrides.clear()


def _payload(**overrides):
    return make_workshop(**overrides).model_dump(mode="json")


def test_create_and_fetch_workshop(client):
    r = client.post('/workshops', json=_payload())
    assert r.status_code == 201
    created = r.json()
    assert created['id'] > 0
    assert created['teachers'][0]['last_name'] == 'Petrenko'

    r2 = client.get(f"/workshops/{created['id']}")
    assert r2.status_code == 200
    assert r2.json()['address']['city'] == 'Kyiv'


def test_create_succeeds_while_index_is_down(client, fake_index):
    fake_index.available = False
    r = client.post('/workshops', json=_payload())
    assert r.status_code == 201

    records = client.get('/sync/records').json()
    assert [(e['record_id'], e['operation']) for e in records] == [(r.json()['id'], 'Create')]
    pending = client.get('/sync/pending').json()
    assert len(pending) == 1

    fake_index.available = True
    report = client.post('/sync/run').json()
    assert report['synchronized'] == 1
    assert client.get('/sync/pending').json() == []


def test_listing_falls_back_when_index_is_down(client, fake_index):
    fake_index.available = False
    client.post('/workshops', json=_payload(title='Ballet', price=1500))
    client.post('/workshops', json=_payload(title='Drawing', price=200))

    r = client.post('/workshops/filter', json={'min_price': 1000, 'max_price': 2000})
    assert r.status_code == 200
    body = r.json()
    assert body['total_amount'] == 1
    assert body['entities'][0]['title'] == 'Ballet'

    listing = client.get('/workshops', params={'from': 0, 'size': 1})
    assert listing.status_code == 200
    assert listing.json()['total_amount'] == 2
    assert len(listing.json()['entities']) == 1


def test_invalid_filter_is_rejected(client, fake_index):
    r = client.post('/workshops/filter', json={'min_price': 2000, 'max_price': 1000})
    assert r.status_code == 422
    assert fake_index.calls == []


def test_page_beyond_result_window_is_rejected(client, fake_index):
    assert client.get('/workshops', params={'from': 10000}).status_code == 422
    r = client.post('/workshops/filter', json={'from': 9995, 'size': 10})
    assert r.status_code == 422
    assert fake_index.calls == []


def test_rejected_document_still_returns_created(client, fake_index):
    fake_index.reject = True
    r = client.post('/workshops', json=_payload())
    assert r.status_code == 201

    records = client.get('/sync/records').json()
    assert [(e['record_id'], e['operation']) for e in records] == [(r.json()['id'], 'Create')]


def test_update_and_delete(client):
    created = client.post('/workshops', json=_payload()).json()

    r = client.put('/workshops', json=_payload(id=created['id'], title='Chess'))
    assert r.status_code == 200
    assert r.json()['title'] == 'Chess'

    d = client.delete(f"/workshops/{created['id']}")
    assert d.status_code == 204
    assert client.get(f"/workshops/{created['id']}").status_code == 404


def test_missing_and_invalid_ids(client):
    assert client.get('/workshops/999').status_code == 404
    assert client.get('/workshops/0').status_code == 400
    assert client.delete('/workshops/999').status_code == 404
    assert client.put('/workshops', json=_payload(id=999)).status_code == 404
    assert client.put('/workshops', json=_payload()).status_code == 400


def test_workshops_by_provider(client):
    client.post('/workshops', json=_payload(provider_id=4))
    client.post('/workshops', json=_payload(provider_id=5))

    r = client.get('/workshops/provider/4')
    assert r.status_code == 200
    assert [w['provider_id'] for w in r.json()] == [4]


def test_health_reports_index_state_and_request_id(client, fake_index):
    fake_index.available = False
    r = client.get('/health')
    assert r.status_code == 200
    assert r.json() == {'status': 'ok', 'search_index': 'down'}
    assert 'X-Request-ID' in r.headers


class _IdleReconciler:
    def synchronize(self):
        return SyncReport()


@pytest.mark.parametrize("enabled", [True, False])
def test_lifespan_prepares_index_and_toggles_scheduler(monkeypatch, fake_index, enabled):
    sync_scheduler = SyncScheduler(_IdleReconciler(), interval_seconds=60)
    monkeypatch.setattr(main.settings, "SYNC_ENABLED", enabled)
    monkeypatch.setattr(main, "search_index", fake_index)
    monkeypatch.setattr(main, "scheduler", sync_scheduler)

    with TestClient(app):
        assert fake_index.call_names() == ["ensure_index"]
        assert sync_scheduler.running is enabled

    assert sync_scheduler.running is False
    assert fake_index.closed is True


def test_app_can_start_again_after_shutdown(monkeypatch):
    monkeypatch.setattr(main.settings, "SYNC_ENABLED", False)
    # restore the module objects once the test replaced them
    monkeypatch.setattr(main, "search_index", main.search_index)
    monkeypatch.setattr(main, "reconciler", main.reconciler)
    monkeypatch.setattr(main, "scheduler", main.scheduler)

    with TestClient(app):
        first = main.search_index
    assert first.closed is True

    with TestClient(app) as c:
        assert main.search_index is not first
        assert main.search_index.closed is False
        r = c.get('/health')
        assert r.status_code == 200
        assert r.json()['search_index'] == 'down'
