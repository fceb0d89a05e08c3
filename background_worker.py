"""Background Worker for Event Planner Service.

This module implements the reminder sweep: a single asyncio loop that wakes
every WORKER_CHECK_INTERVAL seconds, reads upcoming events from the record
store, and delivers every reminder whose trigger instant lies within the
tolerance window of the current time.

The worker:
- Sleeps for a fixed period between sweeps (no drift correction)
- Never runs two sweeps at once; a slow sweep simply delays the next one
- Logs and skips reminders that fail to deliver or have a malformed offset
- Abandons a tick on store errors; the next tick retries from scratch
"""

import asyncio
import enum
import signal
import sys
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import database
from config import settings
from logger_config import setup_logger
from notifier import Notifier, ReminderNotification
from record_store import CandidateEvent, RecordStore, ReminderSnapshot, SqlRecordStore, StoreError
from reminder_engine import OffsetParseError, is_due, trigger_instant

# Configure logging
logger = setup_logger(__name__, 'worker.log')


class SweepState(enum.Enum):
    IDLE = "idle"
    SWEEPING = "sweeping"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ReminderSweepScheduler:
    """Periodic due-reminder scan.

    Args:
        store: Source of candidate events
        notifier: Delivery dispatcher
        period: Seconds between sweeps
        tolerance: Inclusive window around each trigger instant
        at_most_once: Skip reminders already delivered for their current
            trigger instant and record each successful delivery
        clock: Returns the current aware datetime
        notify_timeout: Upper bound in seconds for one delivery
    """

    def __init__(
        self,
        store: RecordStore,
        notifier: Notifier,
        period: int = 60,
        tolerance: timedelta = timedelta(seconds=60),
        at_most_once: bool = False,
        clock: Callable[[], datetime] = utc_now,
        notify_timeout: Optional[float] = 30.0,
    ):
        self.store = store
        self.notifier = notifier
        self.period = period
        self.tolerance = tolerance
        self.at_most_once = at_most_once
        self.clock = clock
        self.notify_timeout = notify_timeout
        self.state = SweepState.IDLE
        self._stop_requested = False

    @classmethod
    def from_settings(cls) -> "ReminderSweepScheduler":
        return cls(
            store=SqlRecordStore(database.SessionLocal, settings.TIMEZONE),
            notifier=Notifier(),
            period=settings.WORKER_CHECK_INTERVAL,
            tolerance=timedelta(seconds=settings.REMINDER_TOLERANCE_SECONDS),
            at_most_once=settings.REMINDER_AT_MOST_ONCE,
            notify_timeout=settings.NOTIFY_TIMEOUT_SECONDS,
        )

    def stop(self):
        """Stop scheduling further sweeps. A sweep in progress runs to completion."""
        self._stop_requested = True

    @property
    def stopped(self) -> bool:
        return self._stop_requested

    def _already_fired(self, event: CandidateEvent, reminder: ReminderSnapshot) -> bool:
        if not self.at_most_once or reminder.last_fired_at is None:
            return False
        trigger = trigger_instant(event.instant, reminder.offset)
        return reminder.last_fired_at >= trigger - self.tolerance

    def due_reminders(self, events, now: datetime):
        """Yield (event, reminder) pairs due at `now`."""
        for event in events:
            for reminder in event.reminders:
                try:
                    due = is_due(event.instant, reminder.offset, now, self.tolerance)
                except OffsetParseError as e:
                    logger.warning(f"Skipping reminder {reminder.id} on event {event.id}: {e}")
                    continue
                if due and not self._already_fired(event, reminder):
                    yield event, reminder

    async def _deliver(self, event: CandidateEvent, reminder: ReminderSnapshot, now: datetime) -> bool:
        notification = ReminderNotification(
            event_id=event.id,
            reminder_id=reminder.id,
            event_name=event.name,
            event_description=event.description,
            event_instant=event.instant,
            recipient_address=event.recipient_address,
            delivery_type=reminder.delivery_type,
        )
        try:
            delivered = await asyncio.wait_for(
                self.notifier.notify(notification), timeout=self.notify_timeout
            )
        except asyncio.TimeoutError:
            logger.error(f"Timed out delivering reminder {reminder.id} for event {event.id}")
            return False
        except Exception as e:
            logger.error(f"Error delivering reminder {reminder.id} for event {event.id}: {str(e)}", exc_info=True)
            return False

        if delivered and self.at_most_once:
            try:
                self.store.mark_reminder_fired(reminder.id, now)
            except StoreError as e:
                logger.error(str(e))
        return delivered

    async def sweep(self, now: Optional[datetime] = None) -> int:
        """Run one tick.

        Args:
            now: Tick time, defaults to the scheduler clock

        Returns:
            int: Number of reminders delivered during this tick
        """
        now = now or self.clock()
        self.state = SweepState.SWEEPING
        try:
            try:
                events = self.store.fetch_candidate_events(now)
            except StoreError as e:
                logger.error(f"Error processing reminders: {e}")
                return 0

            due = list(self.due_reminders(events, now))
            if not due:
                logger.debug(f"No reminders due at {now.isoformat()} ({len(events)} candidate event(s))")
                return 0

            logger.info(f"Found {len(due)} due reminder(s) across {len(events)} candidate event(s)")
            delivered = 0
            for event, reminder in due:
                if await self._deliver(event, reminder, now):
                    delivered += 1
            return delivered
        finally:
            self.state = SweepState.IDLE

    async def run_forever(self):
        """Sleep one period, sweep, repeat until stop() is called."""
        logger.info(f"Reminder sweep started (period={self.period}s, tolerance={self.tolerance})")

        iteration = 0
        while not self._stop_requested:
            # Break sleep into 1-second intervals to allow quick shutdown
            remaining = self.period
            while remaining > 0 and not self._stop_requested:
                step = min(1, remaining)
                await asyncio.sleep(step)
                remaining -= step
            if self._stop_requested:
                break

            iteration += 1
            try:
                delivered = await self.sweep()
                logger.debug(f"Sweep {iteration} delivered {delivered} reminder(s)")
            except Exception as e:
                logger.error(f"Error in sweep {iteration}: {str(e)}", exc_info=True)

        logger.info("Reminder sweep stopped")


def main():
    """Main entry point for the background worker."""
    logger.info("=" * 60)
    logger.info("Event Planner Service - Reminder Worker")
    logger.info("=" * 60)

    if not settings.WORKER_ENABLED:
        logger.warning("Worker is disabled in configuration. Exiting.")
        return

    database.init_db()
    scheduler = ReminderSweepScheduler.from_settings()

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, initiating graceful shutdown...")
        scheduler.stop()

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    try:
        asyncio.run(scheduler.run_forever())
    except Exception as e:
        logger.error(f"Fatal error in background worker: {str(e)}", exc_info=True)
        sys.exit(1)

    logger.info("Background worker stopped")


if __name__ == "__main__":
    main()
