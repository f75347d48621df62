"""
Remote Replication

Mirrors local mutations to the companion REST backend.

DESIGN DECISION: Replication is one-way and best-effort.
The local store is the source of truth. A mutation is persisted locally
first, then a notification is scheduled in the background; the caller never
waits for it and never learns whether it worked. Failures are written to
the audit log and dropped.

The backend assigns its own ids. The id returned by each POST is kept in
memory against the local id, so a later deletion targets the right row.
Expenses replicated by an earlier process have no mapping and their
deletion is reported as a replication failure.
"""

import asyncio
import threading
from decimal import Decimal
from typing import Any, Optional

import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from vozfinancas.audit import AuditLogger
from vozfinancas.config import get_settings
from vozfinancas.models.audit import AuditEventBuilder


log = structlog.get_logger(__name__)


class ReplicationError(Exception):
    """A best-effort call to the companion backend failed."""
    pass


def _jsonable(args: dict[str, Any]) -> dict[str, Any]:
    return {
        key: float(value) if isinstance(value, Decimal) else value
        for key, value in args.items()
    }


class RemoteSyncClient:
    """
    Thin client for the companion backend's expense API.

    Usage:
        client = RemoteSyncClient("http://localhost:3000/api")
        client.notify_created(expense_id, {"amount": 25, "description": "almoço", "category": "Alimentação"})
        await client.drain()  # only needed when shutting down or in tests
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: Backend API root. Uses settings if not provided.
            timeout: Per-request timeout in seconds. Uses settings if not provided.
            transport: Optional httpx transport (tests pass a MockTransport).
            audit_logger: Where replication failures are recorded.
        """
        if base_url is None or timeout is None:
            sync_settings = get_settings().remote_sync
            base_url = base_url or sync_settings.base_url
            timeout = timeout or sync_settings.timeout_seconds
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._audit = audit_logger
        self._pending: set[asyncio.Task] = set()
        self._creations: dict[int, asyncio.Task] = {}
        self._remote_ids: dict[int, int] = {}

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def create_expense(self, args: dict[str, Any]) -> dict:
        """POST /expenses with the assistant's add_expense arguments."""
        try:
            async with self._client() as client:
                response = await client.post("/expenses", json=_jsonable(args))
                response.raise_for_status()
                return response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ReplicationError(f"create failed: {e}") from e

    async def delete_expense(self, expense_id: int) -> dict:
        """DELETE /expenses/{id}."""
        try:
            async with self._client() as client:
                response = await client.delete(f"/expenses/{expense_id}")
                response.raise_for_status()
                return response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ReplicationError(f"delete failed: {e}") from e

    @retry(
        retry=retry_if_exception_type(ReplicationError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def fetch_expenses(self) -> list[dict]:
        """GET /expenses. Retries transient failures."""
        try:
            async with self._client() as client:
                response = await client.get("/expenses")
                response.raise_for_status()
                return response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ReplicationError(f"fetch failed: {e}") from e

    async def probe(self) -> Optional[int]:
        """
        Fetch the remote list once at startup.

        The local store stays authoritative: the list is only counted and
        logged, never merged. Returns the remote count, or None on failure.
        """
        try:
            remote = await self.fetch_expenses()
        except ReplicationError as e:
            log.debug("remote_probe_failed", error=str(e))
            return None
        log.info("remote_probe", remote_count=len(remote))
        return len(remote)

    def notify_created(self, expense_id: int, args: dict[str, Any]) -> None:
        """Replicate an added expense in the background."""
        task = self._schedule("create", self._create_remote(expense_id, dict(args)))
        if task is not None:
            self._creations[expense_id] = task
            task.add_done_callback(lambda _: self._creations.pop(expense_id, None))

    def notify_deleted(self, expense_id: int) -> None:
        """Replicate a deletion in the background."""
        self._schedule("delete", self._delete_remote(expense_id))

    def remote_id(self, expense_id: int) -> Optional[int]:
        """The backend id assigned to a local expense, if it was replicated."""
        return self._remote_ids.get(expense_id)

    async def drain(self) -> None:
        """Wait for every replication scheduled on the running loop."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _create_remote(self, expense_id: int, args: dict[str, Any]) -> None:
        created = await self.create_expense(args)
        try:
            self._remote_ids[expense_id] = int(created["id"])
        except (KeyError, TypeError, ValueError) as e:
            raise ReplicationError(f"create returned no id: {created!r}") from e

    async def _delete_remote(self, expense_id: int) -> None:
        creation = self._creations.get(expense_id)
        if creation is not None and creation.get_loop() is asyncio.get_running_loop():
            # Added and deleted in the same session: wait for the POST
            await asyncio.wait([creation])
        remote_id = self._remote_ids.pop(expense_id, None)
        if remote_id is None:
            raise ReplicationError(f"expense {expense_id} has no remote copy")
        await self.delete_expense(remote_id)

    async def _swallow(self, operation: str, coro) -> None:
        try:
            await coro
        except ReplicationError as e:
            log.debug("replication_failed", operation=operation, error=str(e))
            if self._audit is not None:
                self._audit.log(AuditEventBuilder.replication_failed(operation, str(e)))
        else:
            log.debug("replicated", operation=operation)

    def _schedule(self, operation: str, coro) -> Optional[asyncio.Task]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is not None:
            task = loop.create_task(self._swallow(operation, coro))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            return task

        # Called from plain synchronous code (CLI summary, Streamlit delete)
        thread = threading.Thread(
            target=asyncio.run,
            args=(self._swallow(operation, coro),),
            name=f"replicate-{operation}",
            daemon=True,
        )
        thread.start()
        return None
