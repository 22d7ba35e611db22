"""Change detection and debounced refetching.

``RefreshDebouncer`` owns the scheduled ``asyncio.TimerHandle`` for a
pending refetch; ``ChangeFeed`` polls the backend and triggers it.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterable, Optional

import httpx

from gearflow.exceptions import BackendError
from gearflow.integrations.backend_client import BackendClient

logger = logging.getLogger(__name__)

# table -> column that moves when a row changes
DEFAULT_WATCH = {
    "gear_requests": "updated_at",
    "gears": "updated_at",
    "checkins": "updated_at",
    "notifications": "created_at",
    "gear_activity_log": "created_at",
}


class RefreshDebouncer:
    """Collapse bursts of change events into single refetches.

    Each ``trigger()`` pushes the refetch ``delay`` seconds into the
    future. A trigger that fires while a refetch is running queues exactly
    one follow-up run instead of starting a concurrent one.

    Usage::

        debouncer = RefreshDebouncer(reload_dashboard, delay=0.5)
        debouncer.start()
        debouncer.trigger()
        ...
        await debouncer.aclose()
    """

    def __init__(self, callback: Callable[[], Awaitable[Any]], delay: float = 0.5):
        if delay < 0:
            raise ValueError("delay must be non-negative")
        self._callback = callback
        self._delay = delay
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._handle: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None
        self._active = False
        self._running = False
        self._rerun = False
        self.refresh_count = 0

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def is_scheduled(self) -> bool:
        return self._handle is not None

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Begin a session; must be called from inside the event loop."""
        self._loop = asyncio.get_running_loop()
        self._active = True

    def trigger(self) -> bool:
        """(Re)schedule a refetch. Returns False outside a session."""
        if not self._active or self._loop is None:
            return False
        if self._handle is not None:
            self._handle.cancel()
        self._handle = self._loop.call_later(self._delay, self._fire)
        return True

    def _fire(self) -> None:
        self._handle = None
        if not self._active:
            return
        if self._running:
            self._rerun = True
            return
        self._task = self._loop.create_task(self._run())

    async def _run(self) -> None:
        self._running = True
        try:
            while True:
                self._rerun = False
                try:
                    await self._callback()
                except Exception:
                    logger.exception("Refresh callback failed")
                self.refresh_count += 1
                if not (self._rerun and self._active):
                    break
        finally:
            self._running = False
            self._rerun = False

    def stop(self) -> None:
        """Cancel any scheduled refetch and end the session."""
        self._active = False
        self._rerun = False
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    async def wait_idle(self) -> None:
        """Wait for an in-flight refetch to finish."""
        if self._task is not None and not self._task.done():
            await self._task

    async def aclose(self) -> None:
        self.stop()
        await self.wait_idle()


class ChangeFeed:
    """Poll tables for their newest change timestamp and trigger on movement.

    Each table's first successful poll records its baseline without triggering.
    """

    def __init__(
        self,
        client: BackendClient,
        debouncer: RefreshDebouncer,
        tables: Optional[Iterable[str]] = None,
        interval: float = 5.0,
    ):
        self._client = client
        self._debouncer = debouncer
        names = list(tables) if tables is not None else list(DEFAULT_WATCH)
        self._watch = {t: DEFAULT_WATCH.get(t, "created_at") for t in names}
        self._interval = interval
        self._fingerprints: dict[str, Any] = {}

    @property
    def fingerprints(self) -> dict[str, Any]:
        return dict(self._fingerprints)

    async def _latest(self, table: str, column: str) -> Any:
        rows = await self._client.select(
            table, columns=column, order=column + ".desc.nullslast", limit=1,
        )
        return rows[0].get(column) if rows else None

    async def poll_once(self) -> list[str]:
        """Return the tables that changed since the previous poll."""
        changed = []
        for table, column in self._watch.items():
            try:
                latest = await self._latest(table, column)
            except (BackendError, httpx.HTTPError) as exc:
                logger.warning("Polling %s failed: %s", table, exc)
                continue
            if table in self._fingerprints and self._fingerprints[table] != latest:
                changed.append(table)
            self._fingerprints[table] = latest

        if changed:
            logger.debug("Change detected in %s", ", ".join(changed))
            self._debouncer.trigger()
        return changed

    async def run(
        self,
        stop_event: Optional[asyncio.Event] = None,
        max_polls: Optional[int] = None,
    ) -> None:
        """Poll until *stop_event* is set or *max_polls* polls have run."""
        polls = 0
        while not (stop_event and stop_event.is_set()):
            await self.poll_once()
            polls += 1
            if max_polls is not None and polls >= max_polls:
                break
            if stop_event is None:
                await asyncio.sleep(self._interval)
                continue
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass
