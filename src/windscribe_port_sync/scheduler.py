"""Self-scheduling run loop: one timer, an optional cron trigger, never two passes at once."""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from .cache import Clock, SystemClock
from .errors import ForwardingError, InvariantViolation, ReconcileError
from .forwarding import CachedPort, ForwardingLifecycleManager
from .health import HealthState
from .reconciler import PortReconciler


@dataclass(frozen=True)
class ScheduleDecision:
    """When to wake up next. A retry always wins over a normal run."""

    next_retry_at: datetime | None = None
    next_run_at: datetime | None = None

    @property
    def is_retry(self) -> bool:
        return self.next_retry_at is not None

    @property
    def wake_at(self) -> datetime | None:
        return self.next_retry_at if self.next_retry_at is not None else self.next_run_at


class CalendarTrigger:
    """Cron based trigger that can be switched on and off between passes."""

    JOB_ID = "port-sync-schedule"

    def __init__(
        self,
        expression: str,
        logger: logging.Logger,
        scheduler: BackgroundScheduler | None = None,
    ):
        self.expression = expression
        self.logger = logger
        self._trigger = CronTrigger.from_crontab(expression)
        self._scheduler = scheduler or BackgroundScheduler()

    def start(self, callback: Callable[[], None]) -> None:
        # added paused, the first successful pass enables it
        self._scheduler.add_job(
            callback,
            self._trigger,
            id=self.JOB_ID,
            max_instances=1,
            coalesce=True,
            next_run_time=None,
        )
        self._scheduler.start()
        self.logger.info(f"Cron schedule registered: {self.expression}")

    def enable(self) -> None:
        self._scheduler.resume_job(self.JOB_ID)

    def disable(self) -> None:
        self._scheduler.pause_job(self.JOB_ID)

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)


class RunScheduler:
    """
    Drives reconciliation passes.

    Each pass disarms every trigger first and arms exactly one timer when it
    is done: a retry after a failure, or a normal run shortly after the
    Windscribe port expires. The cron trigger is only live while a normal run
    is pending, so a known-bad state is always revisited on the retry delay.
    """

    def __init__(
        self,
        forwarding: ForwardingLifecycleManager,
        reconciler: PortReconciler,
        logger: logging.Logger,
        forwarding_retry_delay: timedelta = timedelta(hours=1),
        client_retry_delay: timedelta = timedelta(minutes=5),
        extra_delay: timedelta = timedelta(minutes=1),
        calendar: CalendarTrigger | None = None,
        health_state: HealthState | None = None,
        clock: Clock | None = None,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ):
        self.forwarding = forwarding
        self.reconciler = reconciler
        self.logger = logger
        self.forwarding_retry_delay = forwarding_retry_delay
        self.client_retry_delay = client_retry_delay
        self.extra_delay = extra_delay
        self.calendar = calendar
        self.health_state = health_state
        self.clock = clock or SystemClock()
        self._timer_factory = timer_factory

        self._timer: threading.Timer | None = None
        self._calendar_enabled = False
        self._run_lock = threading.Lock()
        self._stopped = threading.Event()
        self._fatal: Exception | None = None

    @property
    def calendar_enabled(self) -> bool:
        return self._calendar_enabled

    @property
    def timer(self) -> threading.Timer | None:
        return self._timer

    def start(self) -> None:
        """Register the cron trigger and run the initial pass."""
        if self.calendar is not None:
            self.calendar.start(lambda: self._fire("schedule"))
        self.run_once("initial")

    def stop(self) -> None:
        self._stopped.set()
        self._cancel_timer()
        if self.calendar is not None:
            self.calendar.shutdown()

    def wait(self) -> None:
        """Block until stopped, re-raising whatever stopped a background pass."""
        self._stopped.wait()
        if self._fatal is not None:
            raise self._fatal

    def run_once(self, trigger: str = "manual") -> ScheduleDecision | None:
        """Run one pass now and arm the next wake-up. Skipped if a pass is running."""
        if not self._run_lock.acquire(blocking=False):
            self.logger.info(f"Skipping {trigger} run, another update is in progress")
            return None

        try:
            self.logger.info(f"Starting update, trigger type: {trigger}")
            self._cancel_timer()
            self._set_calendar(False)

            decision = self.run_pass()
            self.apply(decision)
            return decision
        finally:
            self._run_lock.release()

    def run_pass(self) -> ScheduleDecision:
        """Refresh the Windscribe port, apply it to the client and decide what comes next."""
        next_retry_at: datetime | None = None
        next_run_at: datetime | None = None

        port: CachedPort | None
        try:
            port = self.forwarding.reconcile_forwarding()
            self.logger.info(f"Windscribe port {port.port} is valid until {port.expires_at}")

            next_run_at = port.expires_at + self.extra_delay
            earliest_run_at = self.clock.now() + self.forwarding_retry_delay
            if next_run_at < earliest_run_at:
                self.logger.warning(
                    f"Windscribe port expiry {port.expires_at} is stale, "
                    f"checking again in {self.forwarding_retry_delay}"
                )
                next_run_at = earliest_run_at
        except ForwardingError as e:
            next_retry_at = self.clock.now() + self.forwarding_retry_delay
            self.logger.error(f"{e}; retrying in {self.forwarding_retry_delay}")

            port = self.forwarding.get_cached_port()
            if port is not None:
                self.logger.info(f"Falling back to cached windscribe port {port.port}")

        try:
            self.reconciler.reconcile(port)
        except ReconcileError as e:
            client_retry_at = self.clock.now() + self.client_retry_delay
            self.logger.error(f"{e}; retrying in {self.client_retry_delay}")
            if next_retry_at is None or client_retry_at < next_retry_at:
                next_retry_at = client_retry_at

        if self.health_state is not None:
            self.health_state.set_active_port(port)

        return ScheduleDecision(next_retry_at=next_retry_at, next_run_at=next_run_at)

    def apply(self, decision: ScheduleDecision) -> None:
        """Arm the single timer for ``decision``."""
        if decision.next_retry_at is not None:
            self._set_calendar(False)
            self._arm_timer(decision.next_retry_at, "retry")
            if self.health_state is not None:
                self.health_state.set_healthy(False, "Last update failed, retry pending")
        elif decision.next_run_at is not None:
            self._set_calendar(True)
            self._arm_timer(decision.next_run_at, "normal")
            if self.calendar is not None:
                self.logger.info("Cron schedule is configured, there might be runs happening sooner!")
            if self.health_state is not None:
                self.health_state.set_healthy(True)
        else:
            raise InvariantViolation("Invalid state, no next retry/run date present")

        if self.health_state is not None:
            self.health_state.set_next_wake(decision.wake_at, "retry" if decision.is_retry else "normal")

    def _arm_timer(self, at: datetime, kind: str) -> None:
        if self._stopped.is_set():
            return

        delay = max((at - self.clock.now()).total_seconds(), 0.0)
        self.logger.info(
            f"Next {kind} run scheduled for {at.astimezone():%Y-%m-%d %H:%M:%S} (in {delay:.1f} seconds)"
        )

        timer = self._timer_factory(delay, self._fire, args=(kind,))
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _set_calendar(self, enabled: bool) -> None:
        if self.calendar is None or self._calendar_enabled == enabled:
            return
        if enabled:
            self.calendar.enable()
        else:
            self.calendar.disable()
        self._calendar_enabled = enabled

    def _fire(self, trigger: str) -> None:
        """Timer and cron entry point: any escape from a pass stops the service."""
        try:
            self.run_once(trigger)
        except Exception as e:
            self.logger.critical(f"Update loop stopped: {e}", exc_info=True)
            self._fatal = e
            self.stop()
