"""Active run tracking and background request tasks.

An :class:`ActiveRun` lets clients observe a request in flight (status,
partial text, tools used). Runs move ``thinking -> streaming ->
complete|error``; completed runs are removed after a short delay.
"""

import asyncio
import logging
import time
from collections.abc import Coroutine
from dataclasses import dataclass, field
from typing import Any

from parley.llm.client import CancelToken
from parley.store.base import DocumentStore
from parley.store.schema import ActiveRun, new_id, utcnow

logger = logging.getLogger(__name__)

DEFAULT_CLEANUP_DELAY = 5.0
PERSIST_INTERVAL = 0.25


@dataclass
class BackgroundTask:
    """A request being processed without a waiting client."""

    session_id: str
    task: asyncio.Task[Any]
    id: str = field(default_factory=new_id)

    @property
    def status(self) -> str:
        if not self.task.done():
            return "running"
        if self.task.cancelled():
            return "cancelled"
        return "failed" if self.task.exception() is not None else "done"


class RunTracker:
    """Persists run state and owns cancellation tokens and background tasks."""

    def __init__(
        self,
        store: DocumentStore,
        cleanup_delay: float = DEFAULT_CLEANUP_DELAY,
        persist_interval: float = PERSIST_INTERVAL,
    ):
        """Initialize the tracker.

        Args:
            store: Document store holding run records
            cleanup_delay: Seconds before a completed run is removed
            persist_interval: Minimum seconds between partial-text writes
        """
        self.store = store
        self.cleanup_delay = cleanup_delay
        self.persist_interval = persist_interval
        self._cancels: dict[str, tuple[str, CancelToken]] = {}  # session id -> (run id, token)
        self._last_persist: dict[str, float] = {}
        self._background: dict[str, BackgroundTask] = {}
        self._cleanups: set[asyncio.Task[Any]] = set()

    async def start(self, session_id: str, model: str | None = None) -> tuple[ActiveRun, CancelToken]:
        """Record a new run for a session, replacing any previous one."""
        run = await self.store.save_run(ActiveRun(session_id=session_id, status="thinking", model=model))
        cancel = CancelToken()
        self._cancels[session_id] = (run.id, cancel)
        return run, cancel

    async def set_model(self, run: ActiveRun, model: str) -> ActiveRun:
        run.model = model
        return await self._save(run)

    async def stream_text(self, run: ActiveRun, partial_text: str, force: bool = False) -> None:
        """Update a run's partial text, writing at most once per interval."""
        run.status = "streaming"
        run.partial_text = partial_text
        now = time.monotonic()
        if not force and now - self._last_persist.get(run.id, 0.0) < self.persist_interval:
            return
        self._last_persist[run.id] = now
        await self._save(run)

    async def add_tools(self, run: ActiveRun, names: list[str]) -> None:
        run.tools.extend(names)
        await self._save(run)

    async def complete(self, run: ActiveRun, text: str | None = None) -> None:
        """Mark a run complete and schedule its removal."""
        run.status = "complete"
        if text is not None:
            run.partial_text = text
        await self._save(run)
        self._finish(run)
        self._schedule_cleanup(run)

    async def fail(self, run: ActiveRun, error: str) -> None:
        """Mark a run failed. Failed runs stay visible until replaced."""
        run.status = "error"
        run.error = error
        try:
            await self._save(run)
        except Exception as e:
            logger.error("Failed to record run error for session %s: %s", run.session_id, e)
        self._finish(run)

    def stop(self, session_id: str, reason: str = "stopped") -> bool:
        """Request cancellation of a session's in-flight run.

        Returns:
            True if a run was in flight
        """
        entry = self._cancels.get(session_id)
        if entry is None or entry[1].cancelled:
            return False
        entry[1].cancel(reason)
        logger.info("Stop requested for session %s", session_id)
        return True

    def spawn(self, session_id: str, coro: Coroutine[Any, Any, Any]) -> BackgroundTask:
        """Process a request in the background, keeping a handle to it."""
        task = asyncio.create_task(coro, name=f"run {session_id}")
        background = BackgroundTask(session_id=session_id, task=task)
        self._background[background.id] = background
        task.add_done_callback(lambda t: self._background_done(background))
        return background

    def background(self, task_id: str) -> BackgroundTask | None:
        return self._background.get(task_id)

    def _background_done(self, background: BackgroundTask) -> None:
        self._background.pop(background.id, None)
        if background.status == "failed":
            logger.error(
                "Background run for session %s failed: %s",
                background.session_id,
                background.task.exception(),
            )

    async def _save(self, run: ActiveRun) -> ActiveRun:
        run.updated_at = utcnow()
        return await self.store.save_run(run)

    def _finish(self, run: ActiveRun) -> None:
        self._last_persist.pop(run.id, None)
        entry = self._cancels.get(run.session_id)
        # A newer run on the same session keeps its token
        if entry is not None and entry[0] == run.id:
            del self._cancels[run.session_id]

    def _schedule_cleanup(self, run: ActiveRun) -> None:
        task = asyncio.create_task(self._cleanup(run.session_id, run.id))
        self._cleanups.add(task)
        task.add_done_callback(self._cleanups.discard)

    async def _cleanup(self, session_id: str, run_id: str) -> None:
        if self.cleanup_delay > 0:
            await asyncio.sleep(self.cleanup_delay)
        try:
            await self.store.delete_run(session_id, run_id)
        except Exception as e:
            logger.error("Failed to remove run %s: %s", run_id, e)

    async def drain(self) -> None:
        """Wait for background runs and pending cleanups."""
        while self._background or self._cleanups:
            pending = [b.task for b in self._background.values()] + list(self._cleanups)
            await asyncio.gather(*pending, return_exceptions=True)
