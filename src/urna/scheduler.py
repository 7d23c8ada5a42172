"""Programador de consultas periódicas del conteo.

Bilingual: Periodic snapshot polling with in-flight de-duplication.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional

import structlog

from .config import DEFAULT_POLL_INTERVAL_SECONDS
from .models import TallySnapshot

FetchSnapshot = Callable[[], Awaitable[TallySnapshot]]
SnapshotCallback = Callable[[TallySnapshot], None]


class PollHandle:
    """Handle de una consulta periódica en curso.

    Bilingual: Handle for a running poll loop.

    At most one fetch is outstanding at any time. A tick that finds a fetch
    outstanding is skipped, not queued. ``cancel()`` is synchronous, safe to
    call at any time (including from inside ``on_snapshot``), and guarantees
    that no snapshot is delivered afterwards.
    """

    def __init__(
        self,
        fetch_snapshot: FetchSnapshot,
        on_snapshot: SnapshotCallback,
        interval_seconds: float,
        *,
        logger: Optional[Any] = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._fetch_snapshot = fetch_snapshot
        self._on_snapshot = on_snapshot
        self.interval_seconds = float(interval_seconds)
        self.logger = logger or structlog.get_logger(__name__)
        self._cancelled = False
        self._in_flight: Optional[asyncio.Task] = None
        self._loop_task: Optional[asyncio.Task] = None
        self.fetches = 0
        self.skipped_ticks = 0
        self.failures = 0

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def in_flight(self) -> bool:
        return self._in_flight is not None and not self._in_flight.done()

    def _start(self) -> None:
        loop = asyncio.get_running_loop()
        self._loop_task = loop.create_task(self._run())

    async def _run(self) -> None:
        while not self._cancelled:
            self._tick()
            await asyncio.sleep(self.interval_seconds)

    def _tick(self) -> Optional[asyncio.Task]:
        if self._cancelled:
            return None
        if self.in_flight:
            self.skipped_ticks += 1
            self.logger.debug("poll_tick_skipped", skipped_ticks=self.skipped_ticks)
            return None
        self._in_flight = asyncio.get_running_loop().create_task(self._fetch_once())
        return self._in_flight

    async def _fetch_once(self) -> None:
        self.fetches += 1
        try:
            snapshot = await self._fetch_snapshot()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.failures += 1
            self.logger.warning(
                "poll_fetch_failed",
                error=str(exc),
                error_type=type(exc).__name__,
                failures=self.failures,
            )
            return

        if self._cancelled:
            self.logger.debug("poll_result_discarded_after_cancel")
            return
        try:
            self._on_snapshot(snapshot)
        except Exception:
            self.logger.error("poll_snapshot_callback_failed", exc_info=True)

    async def refresh_now(self) -> None:
        """Consulta inmediata, sujeta a la de-duplicación.

        English: Fetch now without waiting for the next tick. If a fetch is
        already outstanding this issues nothing and resolves when that fetch
        completes. A no-op once cancelled.
        """
        task = self._in_flight if self.in_flight else self._tick()
        if task is None:
            return
        # wait() neither raises nor propagates cancellation of the fetch task.
        await asyncio.wait({task})

    def cancel(self) -> None:
        """Stop polling; in-flight responses arriving later are discarded."""
        if self._cancelled:
            return
        self._cancelled = True
        current = asyncio.current_task() if _loop_running() else None
        if self._loop_task is not None and self._loop_task is not current:
            self._loop_task.cancel()
        if self._in_flight is not None and self._in_flight is not current and not self._in_flight.done():
            self._in_flight.cancel()
        self.logger.info("poll_cancelled", fetches=self.fetches, skipped_ticks=self.skipped_ticks)


def _loop_running() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


def start(
    fetch_snapshot: FetchSnapshot,
    on_snapshot: SnapshotCallback,
    interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
    *,
    logger: Optional[Any] = None,
) -> PollHandle:
    """Inicia la consulta periódica; requiere un event loop en ejecución.

    English: Start polling: fetch immediately, then every
    ``interval_seconds`` until cancelled. Must be called from a running
    event loop.
    """
    handle = PollHandle(fetch_snapshot, on_snapshot, interval_seconds, logger=logger)
    handle._start()
    return handle


def cancel(handle: Optional[PollHandle]) -> None:
    if handle is not None:
        handle.cancel()
