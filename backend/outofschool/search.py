"""Elasticsearch adapter for workshop documents.

The adapter talks to the Elasticsearch REST API through `httpx` and is
the only module that knows the query DSL. Expected failures (the cluster
is unreachable, times out, throttles, or the index is missing) are
reported as `False` or an empty `SearchResult` so callers can fall back
or record the failure. A 400 response means the request itself is
malformed and raises `SearchIndexError`.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from .errors import SearchIndexError
from .schemas import OrderBy, SearchResult, WorkshopDocument, WorkshopFilter

_LOGGER = logging.getLogger("outofschool.search")

_SORTS = {
    OrderBy.ID: [{"id": "asc"}],
    OrderBy.RATING: [{"rating": "desc"}, {"id": "asc"}],
    OrderBy.PRICE_ASC: [{"price": "asc"}, {"id": "asc"}],
    OrderBy.PRICE_DESC: [{"price": "desc"}, {"id": "asc"}],
    OrderBy.ALPHABET: [{"title.keyword": "asc"}, {"id": "asc"}],
}

INDEX_DEFINITION = {
    "settings": {
        "analysis": {
            "normalizer": {
                "lowercase_normalizer": {"type": "custom", "filter": ["lowercase"]},
            },
        },
    },
    "mappings": {
        "properties": {
            "id": {"type": "long"},
            "title": {"type": "text", "fields": {"keyword": {"type": "keyword"}}},
            "description": {"type": "text"},
            "keywords": {"type": "text"},
            "category_id": {"type": "long"},
            "direction_id": {"type": "long"},
            "provider_id": {"type": "long"},
            "provider_title": {"type": "text"},
            "price": {"type": "long"},
            "is_free": {"type": "boolean"},
            "min_age": {"type": "integer"},
            "max_age": {"type": "integer"},
            "city": {"type": "keyword", "normalizer": "lowercase_normalizer"},
            "rating": {"type": "float"},
            "with_disability_options": {"type": "boolean"},
        },
    },
}


def build_search_body(flt: WorkshopFilter) -> dict:
    """Translate a `WorkshopFilter` into an Elasticsearch `_search` body.

    The predicate matches `WorkshopRepository.get_by_filter`: age ranges
    overlap, `is_free` wins over the price range, direction id 0 means any.
    """
    filters: list[dict[str, Any]] = [
        {"range": {"min_age": {"lte": flt.max_age}}},
        {"range": {"max_age": {"gte": flt.min_age}}},
    ]
    if flt.is_free:
        filters.append({"term": {"is_free": True}})
    else:
        filters.append({"range": {"price": {"gte": flt.min_price, "lte": flt.max_price}}})
    if flt.ids:
        filters.append({"terms": {"id": list(flt.ids)}})
    directions = flt.effective_direction_ids
    if directions:
        filters.append({"terms": {"direction_id": directions}})
    city = flt.city.strip()
    if city:
        filters.append({"term": {"city": city}})
    if flt.with_disability_options:
        filters.append({"term": {"with_disability_options": True}})

    text = flt.search_text.strip()
    if text:
        must = [{
            "multi_match": {
                "query": text,
                "type": "phrase_prefix",
                "fields": ["title^2", "keywords", "description"],
            },
        }]
    else:
        must = [{"match_all": {}}]

    return {
        "from": flt.from_,
        "size": flt.size,
        "track_total_hits": True,
        "query": {"bool": {"must": must, "filter": filters}},
        "sort": _SORTS[flt.order_by_field],
    }


class ElasticsearchWorkshopIndex:
    """Index, update, delete and search workshop documents."""

    def __init__(self, client: httpx.Client, index_name: str = "workshop", logger: Optional[logging.Logger] = None):
        self._http = client
        self.index_name = index_name
        self._logger = logger or _LOGGER

    @classmethod
    def from_settings(cls, settings) -> "ElasticsearchWorkshopIndex":
        auth = None
        if settings.ELASTICSEARCH_USER:
            auth = httpx.BasicAuth(settings.ELASTICSEARCH_USER, settings.ELASTICSEARCH_PASSWORD)
        client = httpx.Client(
            base_url=settings.ELASTICSEARCH_URL,
            timeout=settings.ELASTICSEARCH_TIMEOUT_SECONDS,
            auth=auth,
            headers={"Content-Type": "application/json"},
        )
        return cls(client, settings.ELASTICSEARCH_INDEX)

    @property
    def closed(self) -> bool:
        return self._http.is_closed

    def close(self) -> None:
        self._http.close()

    def _send(self, method: str, url: str, **kwargs) -> Optional[httpx.Response]:
        if self.closed:
            self._logger.warning("elasticsearch %s %s skipped: client is closed", method, url)
            return None
        try:
            return self._http.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            self._logger.warning("elasticsearch %s %s failed: %s", method, url, exc)
            return None

    def _accepted(self, resp: Optional[httpx.Response], action: str) -> bool:
        if resp is None:
            return False
        if resp.is_success:
            return True
        if resp.status_code == 400:
            raise SearchIndexError(f"elasticsearch rejected {action}: {resp.text}", status_code=400)
        self._logger.warning("elasticsearch %s returned %s", action, resp.status_code)
        return False

    def ensure_index(self) -> bool:
        """Create the workshop index with its mapping when it does not exist."""
        resp = self._send("HEAD", f"/{self.index_name}")
        if resp is None:
            return False
        if resp.is_success:
            return True
        if resp.status_code != 404:
            self._logger.warning("elasticsearch index probe returned %s", resp.status_code)
            return False
        created = self._send("PUT", f"/{self.index_name}", json=INDEX_DEFINITION)
        if created is not None and created.status_code == 400 and "resource_already_exists" in created.text:
            return True
        return self._accepted(created, f"create index {self.index_name}")

    def index(self, document: WorkshopDocument) -> bool:
        """Store `document` under its id, replacing any previous version."""
        resp = self._send("PUT", f"/{self.index_name}/_doc/{document.id}", json=document.model_dump(mode="json"))
        return self._accepted(resp, f"index workshop {document.id}")

    def update(self, document: WorkshopDocument) -> bool:
        """Overwrite the document's fields, creating it if the index lost it."""
        body = {"doc": document.model_dump(mode="json"), "doc_as_upsert": True}
        resp = self._send("POST", f"/{self.index_name}/_update/{document.id}", json=body)
        return self._accepted(resp, f"update workshop {document.id}")

    def delete(self, workshop_id: int) -> bool:
        """Remove a document. A document that is already gone counts as deleted."""
        resp = self._send("DELETE", f"/{self.index_name}/_doc/{workshop_id}")
        if resp is not None and resp.status_code == 404 and _json(resp).get("result") == "not_found":
            return True
        return self._accepted(resp, f"delete workshop {workshop_id}")

    def search(self, flt: WorkshopFilter) -> SearchResult[WorkshopDocument]:
        resp = self._send("POST", f"/{self.index_name}/_search", json=build_search_body(flt))
        if not self._accepted(resp, "search"):
            return SearchResult[WorkshopDocument]()
        hits = _json(resp).get("hits", {})
        total = hits.get("total", 0)
        if isinstance(total, dict):
            total = total.get("value", 0)
        try:
            entities = [WorkshopDocument.model_validate(h["_source"]) for h in hits.get("hits", [])]
        except (KeyError, ValidationError) as exc:
            raise SearchIndexError(f"unexpected search response: {exc}") from exc
        return SearchResult[WorkshopDocument](total_amount=total, entities=entities)

    def ping_server(self) -> bool:
        """Return True when the cluster answers the liveness probe."""
        resp = self._send("HEAD", "/")
        return resp is not None and resp.is_success


def _json(resp: httpx.Response) -> dict:
    try:
        payload = resp.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}
