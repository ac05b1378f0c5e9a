"""
Search index administrative client.

Publishes AssembledCity records to the hosted destinations index.

Surface (shared by both implementations via BaseIndexClient):
  - configure_settings / configure_synonyms / configure_index
  - upload_records: chunked upsert with progress + optional task waiting
  - clear_index / delete_records
  - get_record (None on miss) / index_exists / get_index_stats

Upload semantics are at-least-once: batches are submitted sequentially and
a failure mid-way returns a structured UploadResult(success=False) holding
the objectIDs and taskIDs accumulated so far. Records carry a stable
objectID, so re-submitting the remainder (or everything) is safe.

Implementations:
  - AlgoliaIndexClient  -- REST admin API over httpx
  - InMemoryIndexClient -- dict-backed double for offline runs and tests
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Sequence
from urllib.parse import quote

import httpx

from services.destinations.pipeline.index_config import INDEX_NAME

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_BATCH_SIZE = 1000
DEFAULT_POLL_INTERVAL_S = 0.5
DEFAULT_TASK_TIMEOUT_S = 300.0
DEFAULT_HTTP_TIMEOUT_S = 30.0

SleepFn = Callable[[float], Awaitable[None]]


class IndexClientError(Exception):
    """The index API rejected a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class IndexTaskTimeout(IndexClientError):
    """An indexing task was not published within the timeout."""


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass
class UploadProgress:
    uploaded: int
    total: int


@dataclass
class UploadResult:
    success: bool
    object_ids: list[str] = field(default_factory=list)
    task_ids: list[int] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class IndexStats:
    entries: int = 0
    data_size: int = 0
    updated_at: Optional[str] = None


UploadProgressCallback = Callable[[UploadProgress], None]


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------

class BaseIndexClient(ABC):
    """Capability interface over the search index's admin API."""

    index_name: str

    @abstractmethod
    async def configure_settings(self, settings: dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def configure_synonyms(self, synonyms: list[dict[str, Any]]) -> None:
        ...

    @abstractmethod
    async def _save_batch(self, records: list[dict[str, Any]]) -> tuple[list[str], int]:
        """Upsert one chunk. Returns (objectIDs, taskID)."""

    @abstractmethod
    async def wait_for_task(self, task_id: int) -> None:
        ...

    @abstractmethod
    async def clear_index(self) -> None:
        ...

    @abstractmethod
    async def delete_records(self, object_ids: list[str]) -> None:
        ...

    @abstractmethod
    async def get_record(self, object_id: str) -> Optional[dict[str, Any]]:
        ...

    @abstractmethod
    async def index_exists(self) -> bool:
        ...

    @abstractmethod
    async def get_index_stats(self) -> IndexStats:
        ...

    async def configure_index(
        self,
        settings: dict[str, Any],
        synonyms: Optional[list[dict[str, Any]]] = None,
    ) -> None:
        """Settings first, then synonyms (if any)."""
        await self.configure_settings(settings)
        if synonyms:
            await self.configure_synonyms(synonyms)

    async def upload_records(
        self,
        records: Sequence[dict[str, Any]],
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        wait_for_completion: bool = False,
        on_progress: Optional[UploadProgressCallback] = None,
    ) -> UploadResult:
        """
        Upload ``records`` in chunks of ``batch_size``.

        Never raises for index/network failures: returns
        UploadResult(success=False, error=...) with partial results instead.
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")

        total = len(records)
        object_ids: list[str] = []
        task_ids: list[int] = []

        try:
            for offset in range(0, total, batch_size):
                chunk = list(records[offset : offset + batch_size])
                ids, task_id = await self._save_batch(chunk)
                object_ids.extend(ids)
                task_ids.append(task_id)

                uploaded = min(offset + batch_size, total)
                logger.info(
                    "Upload progress [%s]: %d/%d records (task=%s)",
                    self.index_name, uploaded, total, task_id,
                )
                if on_progress is not None:
                    on_progress(UploadProgress(uploaded=uploaded, total=total))

            if total == 0 and on_progress is not None:
                on_progress(UploadProgress(uploaded=0, total=0))

            if wait_for_completion:
                for task_id in task_ids:
                    await self.wait_for_task(task_id)

        except Exception as exc:
            logger.exception(
                "Upload to %s failed after %d/%d records",
                self.index_name, len(object_ids), total,
            )
            return UploadResult(
                success=False,
                object_ids=object_ids,
                task_ids=task_ids,
                error=str(exc) or type(exc).__name__,
            )

        return UploadResult(success=True, object_ids=object_ids, task_ids=task_ids)

    async def aclose(self) -> None:
        """Release network resources, if any."""


# ---------------------------------------------------------------------------
# Live implementation
# ---------------------------------------------------------------------------

def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return resp.text[:200]


class AlgoliaIndexClient(BaseIndexClient):
    """Admin client for one index, speaking the REST API directly."""

    def __init__(
        self,
        app_id: str,
        api_key: str,
        index_name: str = INDEX_NAME,
        *,
        client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
        timeout_s: float = DEFAULT_HTTP_TIMEOUT_S,
        poll_interval_s: float = DEFAULT_POLL_INTERVAL_S,
        task_timeout_s: float = DEFAULT_TASK_TIMEOUT_S,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.app_id = app_id
        self.index_name = index_name
        self.base_url = (base_url or f"https://{app_id}.algolia.net").rstrip("/")
        self.poll_interval_s = poll_interval_s
        self.task_timeout_s = task_timeout_s
        self._sleep = sleep
        self._headers = {
            "X-Algolia-Application-Id": app_id,
            "X-Algolia-API-Key": api_key,
        }
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout_s)

    # -- transport ----------------------------------------------------------

    def _index_path(self, suffix: str = "") -> str:
        return f"/1/indexes/{quote(self.index_name, safe='')}{suffix}"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        resp = await self.client.request(
            method,
            f"{self.base_url}{path}",
            json=json,
            params=params,
            headers=self._headers,
        )
        if resp.status_code >= 400:
            raise IndexClientError(
                f"{method} {path} failed: HTTP {resp.status_code}: {_error_message(resp)}",
                status_code=resp.status_code,
            )
        if not resp.content:
            return {}
        return resp.json()

    # -- configuration ------------------------------------------------------

    async def configure_settings(self, settings: dict[str, Any]) -> None:
        body = await self._request("PUT", self._index_path("/settings"), json=settings)
        await self.wait_for_task(body["taskID"])
        logger.info("Configured settings for index %s", self.index_name)

    async def configure_synonyms(self, synonyms: list[dict[str, Any]]) -> None:
        body = await self._request(
            "POST",
            self._index_path("/synonyms/batch"),
            json=synonyms,
            params={"replaceExistingSynonyms": "true"},
        )
        await self.wait_for_task(body["taskID"])
        logger.info("Configured %d synonym groups for %s", len(synonyms), self.index_name)

    # -- writes -------------------------------------------------------------

    async def _save_batch(self, records: list[dict[str, Any]]) -> tuple[list[str], int]:
        requests = [
            {"action": "updateObject" if r.get("objectID") else "addObject", "body": r}
            for r in records
        ]
        body = await self._request("POST", self._index_path("/batch"), json={"requests": requests})
        return list(body.get("objectIDs", [])), body["taskID"]

    async def wait_for_task(self, task_id: int) -> None:
        """Poll until the task is published or ``task_timeout_s`` elapses."""
        deadline = time.monotonic() + self.task_timeout_s
        while True:
            body = await self._request("GET", self._index_path(f"/task/{task_id}"))
            if body.get("status") == "published":
                return
            if time.monotonic() >= deadline:
                raise IndexTaskTimeout(
                    f"Task {task_id} on {self.index_name} not published "
                    f"after {self.task_timeout_s:.0f}s"
                )
            await self._sleep(self.poll_interval_s)

    async def clear_index(self) -> None:
        body = await self._request("POST", self._index_path("/clear"))
        await self.wait_for_task(body["taskID"])
        logger.info("Cleared index %s", self.index_name)

    async def delete_records(self, object_ids: list[str]) -> None:
        if not object_ids:
            return
        requests = [{"action": "deleteObject", "body": {"objectID": oid}} for oid in object_ids]
        body = await self._request("POST", self._index_path("/batch"), json={"requests": requests})
        await self.wait_for_task(body["taskID"])
        logger.info("Deleted %d records from %s", len(object_ids), self.index_name)

    # -- reads --------------------------------------------------------------

    async def get_record(self, object_id: str) -> Optional[dict[str, Any]]:
        try:
            return await self._request(
                "GET", self._index_path(f"/{quote(object_id, safe='')}")
            )
        except IndexClientError as exc:
            if exc.status_code == 404:
                return None
            raise

    async def index_exists(self) -> bool:
        try:
            await self._request("GET", self._index_path("/settings"))
        except IndexClientError as exc:
            if exc.status_code == 404:
                return False
            raise
        return True

    async def get_index_stats(self) -> IndexStats:
        body = await self._request("GET", "/1/indexes")
        for item in body.get("items", []):
            if item.get("name") == self.index_name:
                return IndexStats(
                    entries=int(item.get("entries", 0)),
                    data_size=int(item.get("dataSize", 0)),
                    updated_at=item.get("updatedAt"),
                )
        return IndexStats()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------

class InMemoryIndexClient(BaseIndexClient):
    """
    Dict-backed index with the same contract as the live client.

    ``fail_on_batch`` (1-based) makes that upload chunk raise, for
    partial-failure tests.
    """

    def __init__(self, index_name: str = "mock-index", fail_on_batch: Optional[int] = None):
        self.index_name = index_name
        self.fail_on_batch = fail_on_batch
        self.records: dict[str, dict[str, Any]] = {}
        self.settings: dict[str, Any] = {}
        self.synonyms: list[dict[str, Any]] = []
        self.batches_saved = 0
        self.waited_tasks: list[int] = []
        self._next_task_id = 1
        self._auto_id = 0

    def _task(self) -> int:
        task_id = self._next_task_id
        self._next_task_id += 1
        return task_id

    async def configure_settings(self, settings: dict[str, Any]) -> None:
        self.settings = dict(settings)

    async def configure_synonyms(self, synonyms: list[dict[str, Any]]) -> None:
        self.synonyms = [dict(s) for s in synonyms]

    async def _save_batch(self, records: list[dict[str, Any]]) -> tuple[list[str], int]:
        if self.fail_on_batch is not None and self.batches_saved + 1 == self.fail_on_batch:
            raise IndexClientError(f"Simulated failure on batch {self.fail_on_batch}")

        ids: list[str] = []
        for record in records:
            object_id = record.get("objectID")
            if not object_id:
                object_id = f"mock-{self._auto_id}"
                self._auto_id += 1
            self.records[object_id] = {**record, "objectID": object_id}
            ids.append(object_id)

        self.batches_saved += 1
        return ids, self._task()

    async def wait_for_task(self, task_id: int) -> None:
        self.waited_tasks.append(task_id)

    async def clear_index(self) -> None:
        self.records.clear()

    async def delete_records(self, object_ids: list[str]) -> None:
        for object_id in object_ids:
            self.records.pop(object_id, None)

    async def get_record(self, object_id: str) -> Optional[dict[str, Any]]:
        record = self.records.get(object_id)
        return dict(record) if record is not None else None

    async def index_exists(self) -> bool:
        return True

    async def get_index_stats(self) -> IndexStats:
        return IndexStats(entries=len(self.records), data_size=0)
