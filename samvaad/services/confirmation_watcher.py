"""
Dual-Clock Confirmation Watcher.

Drives the waiting screen of a freshly signed-up account.  Two periodic
activities share one countdown:

* **poll** (every ``poll_interval_s``): asks the confirmation tracker.
  ``confirmed`` ends the watch as CONFIRMED, ``expired`` as EXPIRED, and a
  pending answer resets the countdown to ``minutes_left * 60``.
* **tick** (every ``tick_interval_s``): decrements the countdown and ends
  the watch as EXPIRED at zero, whether or not a poll is in flight.

Both activities run from one scheduler task with one stop event.  Polls
run as child tasks so a slow poll never delays a tick.

State machine::

    IDLE ──start()──► WATCHING ──► CONFIRMED
                                ├─► EXPIRED
                                └─► STOPPED   (stop(), no callback)

Terminal transitions go through :meth:`_transition`, a compare-and-set on
``WATCHING``.  The first caller wins; later callers (a poll that resolves
after the countdown expired, a tick after a manual confirmation, any
poll that resolves after teardown) are no-ops.  ``on_confirmed`` and ``on_timeout`` are each invoked at most once
and never both.

An identity that exists without a profile row has no confirmation clock
yet.  Such a poll leaves the countdown alone and awaits ``on_profile_missing``
so the owner can reconcile the row; the next poll then reads a real
``confirmation_sent_at``.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from samvaad.logger import StructuredLogger
from samvaad.models.auth_models import ConfirmationStatus
from samvaad.models.enums import WatcherState
from samvaad.services.base_service import BaseService
from samvaad.services.confirmation_tracker import ConfirmationTracker

LifecycleCallback = Callable[[], None]
PollErrorCallback = Callable[[Exception], None]
ProfileMissingHook = Callable[[], Awaitable[None]]
Sleep = Callable[[float], Awaitable[None]]


class ConfirmationWatcher(BaseService):
    """Watches one identity until it is confirmed or its window expires.

    A watcher instance serves a single watch session; create a new one to
    watch again.

    Parameters
    ----------
    tracker:
        The confirmation tracker polled for server-side status.
    logger:
        Structured logger.
    window_s:
        Initial countdown when the first poll has not answered yet.
    poll_interval_s, tick_interval_s:
        Periods of the two activities.
    on_poll_error:
        Receives poll failures.  A failing poll never ends the watch.
    on_profile_missing:
        Awaited when a poll reports that the identity has no profile row.
    sleep:
        Awaitable used for scheduling; replaced in tests.
    """

    def __init__(
        self,
        tracker: ConfirmationTracker,
        logger: StructuredLogger,
        window_s: float = 600,
        poll_interval_s: float = 15.0,
        tick_interval_s: float = 1.0,
        on_poll_error: Optional[PollErrorCallback] = None,
        on_profile_missing: Optional[ProfileMissingHook] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        super().__init__(logger)
        self._tracker = tracker
        self._poll_interval: float = poll_interval_s
        self._tick_interval: float = tick_interval_s
        self._on_poll_error = on_poll_error
        self._on_profile_missing = on_profile_missing
        self._sleep = sleep

        self._state: WatcherState = WatcherState.IDLE
        self._remaining: float = float(window_s)
        self._identity_id: Optional[str] = None
        self._on_confirmed: Optional[LifecycleCallback] = None
        self._on_timeout: Optional[LifecycleCallback] = None

        self._stop_event: asyncio.Event = asyncio.Event()
        self._scheduler: Optional[asyncio.Task[None]] = None
        self._polls: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    @property
    def state(self) -> WatcherState:
        return self._state

    @property
    def remaining_s(self) -> float:
        """Seconds left on the shared countdown (never negative)."""
        return max(self._remaining, 0.0)

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and not self._scheduler.done()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(
        self,
        identity_id: str,
        on_confirmed: LifecycleCallback,
        on_timeout: LifecycleCallback,
    ) -> bool:
        """Enter WATCHING and schedule both activities.

        Must be called from a running event loop.  Returns ``False`` when
        the watcher has already been started.
        """
        if self._state is not WatcherState.IDLE:
            self._logger.warning(
                "Watcher already %s; ignoring start for %s", self._state, identity_id,
            )
            return False

        self._state = WatcherState.WATCHING
        self._identity_id = identity_id
        self._on_confirmed = on_confirmed
        self._on_timeout = on_timeout
        self._scheduler = asyncio.create_task(
            self._run(), name=f"confirmation-watcher-{identity_id}",
        )
        self._logger.info(
            "Confirmation watch started for %s (%.0fs left)", identity_id, self._remaining,
        )
        return True

    async def stop(self) -> None:
        """Cancel both activities and move WATCHING to STOPPED.

        In-flight polls are left to finish; their results are discarded by
        the terminal-state guard.
        """
        self._transition(WatcherState.STOPPED, reason="teardown")
        self._stop_event.set()
        scheduler = self._scheduler
        if scheduler is not None and scheduler is not asyncio.current_task() and not scheduler.done():
            scheduler.cancel()
            try:
                await scheduler
            except asyncio.CancelledError:
                pass

    def confirm_now(self) -> bool:
        """Resolve the watch as CONFIRMED (manual override).

        Returns ``True`` if this call performed the transition.
        """
        return self._transition(WatcherState.CONFIRMED, reason="manual")

    # ------------------------------------------------------------------
    # Scheduler
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        self._spawn_poll()
        since_poll = 0.0
        while not self._stop_event.is_set():
            await self._sleep(self._tick_interval)
            if self._stop_event.is_set():
                break

            self._remaining -= self._tick_interval
            if self._remaining <= 0:
                self._transition(WatcherState.EXPIRED, reason="countdown")
                break

            since_poll += self._tick_interval
            if since_poll >= self._poll_interval:
                since_poll = 0.0
                self._spawn_poll()

    def _spawn_poll(self) -> None:
        task = asyncio.create_task(self._poll_once())
        self._polls.add(task)
        task.add_done_callback(self._polls.discard)

    async def _poll_once(self) -> None:
        assert self._identity_id is not None
        try:
            status: ConfirmationStatus = await self._tracker.check_status(self._identity_id)
        except Exception as exc:
            self._logger.warning("Confirmation poll failed for %s: %s", self._identity_id, exc)
            if self._on_poll_error is not None and self._state is WatcherState.WATCHING:
                self._on_poll_error(exc)
            return

        if self._state is not WatcherState.WATCHING:
            return

        if status.needs_profile_creation:
            await self._reconcile_missing_profile()
            return

        if status.confirmed:
            self._transition(WatcherState.CONFIRMED, reason="poll")
        elif status.expired:
            self._transition(WatcherState.EXPIRED, reason="poll")
        elif status.minutes_left is not None:
            self._remaining = float(status.minutes_left * 60)

    async def _reconcile_missing_profile(self) -> None:
        if self._on_profile_missing is None:
            self._logger.warning(
                "No profile for %s and no reconciliation hook; countdown continues",
                self._identity_id,
            )
            return
        try:
            await self._on_profile_missing()
        except Exception as exc:
            self._logger.warning(
                "Profile reconciliation during watch failed for %s: %s", self._identity_id, exc,
            )

    # ------------------------------------------------------------------
    # Terminal guard
    # ------------------------------------------------------------------

    def _transition(self, target: WatcherState, *, reason: str) -> bool:
        # No await between the check and the write: this is the CAS.
        if self._state is not WatcherState.WATCHING:
            return False
        self._state = target
        self._stop_event.set()

        scheduler = self._scheduler
        if scheduler is not None and scheduler is not asyncio.current_task() and not scheduler.done():
            scheduler.cancel()

        self._logger.info(
            "Confirmation watch for %s ended: %s (%s)", self._identity_id, target, reason,
        )
        callback: Optional[LifecycleCallback] = None
        if target is WatcherState.CONFIRMED:
            callback = self._on_confirmed
        elif target is WatcherState.EXPIRED:
            callback = self._on_timeout
        if callback is not None:
            try:
                callback()
            except Exception as exc:
                self._logger.error("Watcher %s callback raised: %s", target, exc, exc_info=True)
        return True
