"""
Shared fixtures for the pipeline test suite.

Provides BaseCity factories, a mocked Anthropic client, and a
fake search index API for httpx.MockTransport.
"""

import json
from typing import Any, Optional
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from services.destinations.pipeline.base_cities import BaseCity


# ---------------------------------------------------------------------------
# BaseCity factories
# ---------------------------------------------------------------------------

def make_base_city(**overrides) -> BaseCity:
    defaults = {
        "city": "Paris",
        "country": "France",
        "continent": "Europe",
        "climate_type": "Oceanic",
        "best_time_to_visit": "April to June",
    }
    defaults.update(overrides)
    return BaseCity(**defaults)


def make_raw_entry(**overrides) -> dict[str, Any]:
    entry = {
        "city": "Paris",
        "country": "France",
        "continent": "Europe",
        "climate_type": "Oceanic",
        "best_time_to_visit": "April to June",
    }
    entry.update(overrides)
    return entry


@pytest.fixture
def paris() -> BaseCity:
    return make_base_city()


@pytest.fixture
def tokyo() -> BaseCity:
    return make_base_city(
        city="Tokyo",
        country="Japan",
        continent="Asia",
        climate_type="Humid subtropical",
        best_time_to_visit="March to May",
    )


# ---------------------------------------------------------------------------
# Anthropic mocks
# ---------------------------------------------------------------------------

def make_llm_response(text: str, input_tokens: int = 120, output_tokens: int = 340) -> MagicMock:
    """Mimics anthropic Message: .content blocks and .usage."""
    response = MagicMock()
    response.content = [MagicMock(type="text", text=text)]
    response.usage = MagicMock(input_tokens=input_tokens, output_tokens=output_tokens)
    return response


def enrichment_json(**overrides) -> str:
    payload = {
        "description": "A luminous city of boulevards, cafes and world-class museums.",
        "vibe_tags": ["Romantic", "cultural", "Historic "],
        "keywords": ["Art Museums", "cafe culture"],
    }
    payload.update(overrides)
    return json.dumps(payload)


@pytest.fixture
def mock_anthropic() -> MagicMock:
    """AsyncAnthropic stand-in; set messages.create.return_value/side_effect per test."""
    client = MagicMock()
    client.messages = MagicMock()
    client.messages.create = AsyncMock(return_value=make_llm_response(enrichment_json()))
    client.close = AsyncMock()
    return client


# ---------------------------------------------------------------------------
# Fake search index REST API
# ---------------------------------------------------------------------------

class FakeIndexAPI:
    """
    Minimal in-process model of the index admin REST API.

    Use ``transport()`` with httpx.AsyncClient. ``fail_batch`` (1-based)
    returns a 500 for that batch request. ``pending_polls`` makes each
    task report ``notPublished`` that many times before ``published``.
    """

    def __init__(self, index_name: str = "travel_destinations",
                 fail_batch: Optional[int] = None, pending_polls: int = 0):
        self.index_name = index_name
        self.fail_batch = fail_batch
        self.pending_polls = pending_polls
        self.records: dict[str, dict[str, Any]] = {}
        self.settings: Optional[dict[str, Any]] = None
        self.synonyms: Optional[list[dict[str, Any]]] = None
        self.requests: list[httpx.Request] = []
        self.batch_calls = 0
        self._polls: dict[int, int] = {}
        self._next_task = 100

    def _task(self) -> dict[str, Any]:
        self._next_task += 1
        return {"taskID": self._next_task}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        prefix = f"/1/indexes/{self.index_name}"
        path = request.url.path
        method = request.method

        if path == "/1/indexes" and method == "GET":
            return httpx.Response(200, json={"items": [
                {"name": "other", "entries": 1, "dataSize": 10},
                {"name": self.index_name, "entries": len(self.records),
                 "dataSize": 2048, "updatedAt": "2026-01-01T00:00:00Z"},
            ]})

        if not path.startswith(prefix):
            return httpx.Response(404, json={"message": "Index does not exist"})
        rest = path[len(prefix):]

        if rest == "/settings" and method == "PUT":
            self.settings = json.loads(request.content)
            return httpx.Response(200, json=self._task())
        if rest == "/settings" and method == "GET":
            if self.settings is None:
                return httpx.Response(404, json={"message": "Index does not exist"})
            return httpx.Response(200, json=self.settings)
        if rest == "/synonyms/batch" and method == "POST":
            self.synonyms = json.loads(request.content)
            return httpx.Response(200, json=self._task())
        if rest == "/batch" and method == "POST":
            self.batch_calls += 1
            if self.fail_batch is not None and self.batch_calls == self.fail_batch:
                return httpx.Response(500, json={"message": "Internal error"})
            ids = []
            for op in json.loads(request.content)["requests"]:
                body = op["body"]
                if op["action"] == "deleteObject":
                    self.records.pop(body["objectID"], None)
                    continue
                oid = body.get("objectID") or f"auto-{len(self.records)}"
                self.records[oid] = {**body, "objectID": oid}
                ids.append(oid)
            return httpx.Response(200, json={**self._task(), "objectIDs": ids})
        if rest == "/clear" and method == "POST":
            self.records.clear()
            return httpx.Response(200, json=self._task())
        if rest.startswith("/task/") and method == "GET":
            task_id = int(rest.split("/")[-1])
            seen = self._polls.get(task_id, 0)
            self._polls[task_id] = seen + 1
            status = "published" if seen >= self.pending_polls else "notPublished"
            return httpx.Response(200, json={"status": status, "pendingTask": status != "published"})
        if method == "GET":
            record = self.records.get(rest.lstrip("/"))
            if record is None:
                return httpx.Response(404, json={"message": "ObjectID does not exist"})
            return httpx.Response(200, json=record)

        return httpx.Response(400, json={"message": f"Unhandled {method} {path}"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def fake_index_api() -> FakeIndexAPI:
    return FakeIndexAPI()
