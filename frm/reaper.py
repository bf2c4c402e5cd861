"""Background task deleting drafts that have not been touched for too long.

The reaper runs as a single asyncio task. Each pass lists drafts last updated
before ``now - max_age`` in every workspace and deletes them one by one. A
draft that fails to delete is logged and reported to ``on_error``; the pass
moves on to the next draft and the loop keeps running. Storage calls run in a
worker thread so the event loop is never blocked.

Usage:
    >>> import asyncio
    >>> from datetime import timedelta
    >>> from frm.storage import MemoryStorage
    >>> reaper = DraftReaper(MemoryStorage(), max_age=timedelta(days=7))
    >>> asyncio.run(reaper.run_once()).deleted
    []
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from frm.errors import NotFoundError
from frm.events import EventEmitter, FormEvent
from frm.models import Form, utcnow
from frm.state_machine import ReaperState, ReaperStateMachine
from frm.storage.base import Storage
from frm.types import EventType

logger = logging.getLogger(__name__)

DEFAULT_REAPER_INTERVAL = timedelta(seconds=60)

ErrorCallback = Callable[[Form, Exception], None]


@dataclass
class ReapReport:
    """Outcome of one reaper pass.

    Attributes:
        deleted: IDs of drafts removed in this pass
        failures: Draft ID to error message for drafts that could not be removed
    """

    deleted: List[int] = field(default_factory=list)
    failures: Dict[int, str] = field(default_factory=dict)


class DraftReaper:
    """Periodically deletes stale drafts.

    A reaper with no ``max_age`` (or a non-positive one) is disabled: ``start``
    returns ``None`` and no task is created.
    """

    def __init__(
        self,
        storage: Storage,
        max_age: Optional[timedelta],
        interval: timedelta = DEFAULT_REAPER_INTERVAL,
        emitter: Optional[EventEmitter] = None,
        on_error: Optional[ErrorCallback] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        if interval <= timedelta(0):
            raise ValueError("reaper interval must be positive")
        self.storage = storage
        self.max_age = max_age
        self.interval = interval
        self.emitter = emitter
        self.on_error = on_error
        self._clock = clock
        self._machine = ReaperStateMachine()
        self._task: Optional[asyncio.Task] = None

    @property
    def state(self) -> ReaperState:
        return self._machine.state

    @property
    def enabled(self) -> bool:
        return self.max_age is not None and self.max_age > timedelta(0)

    async def run_once(self) -> ReapReport:
        """Run a single pass and report what was deleted.

        Meant for a reaper that has not been started; passes of a started
        reaper belong to its background task.

        Raises:
            RuntimeError: If the background task is running or the reaper
                has been stopped
        """
        if self._task is not None and not self._task.done():
            raise RuntimeError("draft reaper is running in the background")
        if self._machine.is_terminal():
            raise RuntimeError("draft reaper has been stopped")
        return await self._run_pass()

    async def _run_pass(self) -> ReapReport:
        report = ReapReport()
        if not self.enabled:
            return report

        self._machine.transition_to(ReaperState.SCANNING)
        cutoff = self._clock() - self.max_age
        try:
            drafts = await asyncio.to_thread(self.storage.list_drafts, cutoff)
        except Exception:
            logger.exception("draft reaper could not list drafts older than %s", cutoff.isoformat())
            self._machine.transition_to(ReaperState.IDLE)
            return report

        if not drafts:
            self._machine.transition_to(ReaperState.IDLE)
            return report

        self._machine.transition_to(ReaperState.DELETING)
        for draft in drafts:
            try:
                await asyncio.to_thread(self.storage.delete_form, draft.workspace_id, draft.id)
            except NotFoundError:
                # published or deleted since the scan
                logger.debug("draft %s in workspace %s already gone", draft.id, draft.workspace_id)
                continue
            except Exception as e:
                logger.exception("draft reaper failed to delete draft %s in workspace %s",
                                 draft.id, draft.workspace_id)
                report.failures[draft.id] = str(e)
                self._report_error(draft, e)
                continue

            report.deleted.append(draft.id)
            if self.emitter is not None:
                self.emitter.emit(FormEvent.new(
                    EventType.DRAFT_REAPED,
                    draft.workspace_id,
                    draft.id,
                    {"updated_at": draft.updated_at.isoformat() if draft.updated_at else None},
                ))

        self._machine.transition_to(ReaperState.IDLE)
        if report.deleted or report.failures:
            logger.info("draft reaper deleted %d drafts, %d failures",
                        len(report.deleted), len(report.failures))
        return report

    def _report_error(self, draft: Form, error: Exception) -> None:
        if self.on_error is None:
            return
        try:
            self.on_error(draft, error)
        except Exception:
            logger.exception("draft reaper error callback raised")

    async def _loop(self) -> None:
        try:
            while True:
                try:
                    await self._run_pass()
                except Exception:
                    logger.exception("draft reaper pass failed")
                    if self._machine.can_transition_to(ReaperState.IDLE):
                        self._machine.transition_to(ReaperState.IDLE)
                await asyncio.sleep(self.interval.total_seconds())
        finally:
            if not self._machine.is_terminal():
                self._machine.transition_to(ReaperState.STOPPED)

    def start(self) -> Optional[asyncio.Task]:
        """Schedule the reaper on the running event loop.

        Returns the running task, or ``None`` when the reaper is disabled.
        Must be called from within a running event loop.
        """
        if not self.enabled:
            logger.info("draft reaper disabled: no maximum draft age configured")
            return None
        if self._machine.is_terminal():
            raise RuntimeError("draft reaper has been stopped")
        if self._task is not None and not self._task.done():
            return self._task

        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._loop())
        logger.info("draft reaper started: max age %s, interval %s", self.max_age, self.interval)
        return self._task

    async def stop(self) -> None:
        """Cancel the reaper task and wait for it to finish."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if not self._machine.is_terminal():
            self._machine.transition_to(ReaperState.STOPPED)
        logger.info("draft reaper stopped")


__all__ = [
    "DEFAULT_REAPER_INTERVAL",
    "ReapReport",
    "DraftReaper",
]
