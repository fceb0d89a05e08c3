"""Tests for the reminder sweep scheduler."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

import background_worker
from background_worker import ReminderSweepScheduler, SweepState
from database import DeliveryTypeEnum
from record_store import CandidateEvent, ReminderSnapshot, StoreError

UTC = timezone.utc
EVENT_AT = datetime(2025, 4, 1, 14, 0, tzinfo=UTC)


class FakeStore:
    def __init__(self, events=None, error=None):
        self.events = events or []
        self.error = error
        self.fetched_at = []
        self.fired = {}

    def fetch_candidate_events(self, now):
        self.fetched_at.append(now)
        if self.error:
            raise self.error
        return [event for event in self.events if event.instant > now]

    def mark_reminder_fired(self, reminder_id, fired_at):
        self.fired[reminder_id] = fired_at


class FakeNotifier:
    def __init__(self, fail_for=(), result=True):
        self.fail_for = set(fail_for)
        self.result = result
        self.sent = []

    async def notify(self, notification):
        if notification.reminder_id in self.fail_for:
            raise RuntimeError("mail relay unreachable")
        self.sent.append(notification)
        return self.result


def make_event(event_id="evt-1", instant=EVENT_AT, reminders=None):
    return CandidateEvent(
        id=event_id,
        name="Team Meeting",
        description="Weekly sync",
        instant=instant,
        recipient_address="alice@example.com",
        reminders=reminders if reminders is not None else [ReminderSnapshot("rem-1", "30 minutes")],
    )


def make_scheduler(store, notifier, **kwargs):
    return ReminderSweepScheduler(store, notifier, period=60, tolerance=timedelta(seconds=60), **kwargs)


def test_sweep_delivers_due_reminder():
    store = FakeStore([make_event(reminders=[
        ReminderSnapshot("rem-1", "30 minutes", DeliveryTypeEnum.EMAIL),
        ReminderSnapshot("rem-2", "2 hours"),
    ])])
    notifier = FakeNotifier()
    scheduler = make_scheduler(store, notifier)

    delivered = asyncio.run(scheduler.sweep(datetime(2025, 4, 1, 13, 30, 20, tzinfo=UTC)))

    assert delivered == 1
    [sent] = notifier.sent
    assert sent.reminder_id == "rem-1"
    assert sent.event_name == "Team Meeting"
    assert sent.event_description == "Weekly sync"
    assert sent.event_instant == EVENT_AT
    assert sent.recipient_address == "alice@example.com"
    assert sent.delivery_type is DeliveryTypeEnum.EMAIL
    assert scheduler.state is SweepState.IDLE


def test_sweep_outside_window_sends_nothing():
    notifier = FakeNotifier()
    scheduler = make_scheduler(FakeStore([make_event()]), notifier)

    assert asyncio.run(scheduler.sweep(datetime(2025, 4, 1, 13, 28, tzinfo=UTC))) == 0
    assert notifier.sent == []


def test_past_events_are_never_evaluated():
    # A "-30 minutes" reminder would trigger after the event, which the fetch filter excludes
    store = FakeStore([make_event(reminders=[ReminderSnapshot("rem-1", "-30 minutes")])])
    notifier = FakeNotifier()
    scheduler = make_scheduler(store, notifier)

    assert asyncio.run(scheduler.sweep(datetime(2025, 4, 1, 14, 30, tzinfo=UTC))) == 0
    assert notifier.sent == []


def test_notifier_failure_does_not_abort_sweep():
    store = FakeStore([
        make_event("evt-1", reminders=[ReminderSnapshot("rem-1", "30 minutes", DeliveryTypeEnum.EMAIL)]),
        make_event("evt-2", reminders=[ReminderSnapshot("rem-2", "30 minutes")]),
    ])
    notifier = FakeNotifier(fail_for={"rem-1"})
    scheduler = make_scheduler(store, notifier)

    delivered = asyncio.run(scheduler.sweep(datetime(2025, 4, 1, 13, 30, tzinfo=UTC)))

    assert delivered == 1
    assert [n.reminder_id for n in notifier.sent] == ["rem-2"]


def test_store_error_aborts_only_the_tick():
    store = FakeStore([make_event()], error=StoreError("database is locked"))
    notifier = FakeNotifier()
    scheduler = make_scheduler(store, notifier)

    assert asyncio.run(scheduler.sweep(datetime(2025, 4, 1, 13, 30, tzinfo=UTC))) == 0
    assert scheduler.state is SweepState.IDLE

    store.error = None
    assert asyncio.run(scheduler.sweep(datetime(2025, 4, 1, 13, 30, tzinfo=UTC))) == 1


def test_malformed_offset_is_skipped():
    store = FakeStore([make_event(reminders=[
        ReminderSnapshot("bad", "soon minutes"),
        ReminderSnapshot("good", "30 minutes"),
    ])])
    notifier = FakeNotifier()
    scheduler = make_scheduler(store, notifier)

    assert asyncio.run(scheduler.sweep(datetime(2025, 4, 1, 13, 30, tzinfo=UTC))) == 1
    assert [n.reminder_id for n in notifier.sent] == ["good"]


def test_repeated_ticks_inside_window_fire_twice_by_default():
    notifier = FakeNotifier()
    scheduler = make_scheduler(FakeStore([make_event()]), notifier)

    asyncio.run(scheduler.sweep(datetime(2025, 4, 1, 13, 29, 30, tzinfo=UTC)))
    asyncio.run(scheduler.sweep(datetime(2025, 4, 1, 13, 30, 30, tzinfo=UTC)))

    assert len(notifier.sent) == 2


def test_at_most_once_suppresses_second_delivery():
    store = FakeStore()
    notifier = FakeNotifier()
    scheduler = make_scheduler(store, notifier, at_most_once=True)

    first_tick = datetime(2025, 4, 1, 13, 29, 30, tzinfo=UTC)
    store.events = [make_event()]
    assert asyncio.run(scheduler.sweep(first_tick)) == 1
    assert store.fired == {"rem-1": first_tick}

    store.events = [make_event(reminders=[ReminderSnapshot("rem-1", "30 minutes", last_fired_at=first_tick)])]
    assert asyncio.run(scheduler.sweep(datetime(2025, 4, 1, 13, 30, 30, tzinfo=UTC))) == 0
    assert len(notifier.sent) == 1


def test_at_most_once_fires_again_after_reschedule():
    fired_long_ago = datetime(2025, 3, 31, 13, 30, tzinfo=UTC)
    store = FakeStore([make_event(reminders=[
        ReminderSnapshot("rem-1", "30 minutes", last_fired_at=fired_long_ago),
    ])])
    notifier = FakeNotifier()
    scheduler = make_scheduler(store, notifier, at_most_once=True)

    assert asyncio.run(scheduler.sweep(datetime(2025, 4, 1, 13, 30, tzinfo=UTC))) == 1


def test_undelivered_reminder_is_not_marked_fired():
    store = FakeStore([make_event()])
    scheduler = make_scheduler(store, FakeNotifier(result=False), at_most_once=True)

    assert asyncio.run(scheduler.sweep(datetime(2025, 4, 1, 13, 30, tzinfo=UTC))) == 0
    assert store.fired == {}


def test_slow_notifier_times_out():
    class SlowNotifier:
        async def notify(self, notification):
            await asyncio.sleep(5)
            return True

    scheduler = make_scheduler(FakeStore([make_event()]), SlowNotifier(), notify_timeout=0.01)

    assert asyncio.run(scheduler.sweep(datetime(2025, 4, 1, 13, 30, tzinfo=UTC))) == 0


def test_sweep_uses_clock_when_now_omitted():
    store = FakeStore([make_event()])
    tick = datetime(2025, 4, 1, 13, 30, tzinfo=UTC)
    scheduler = make_scheduler(store, FakeNotifier(), clock=lambda: tick)

    assert asyncio.run(scheduler.sweep()) == 1
    assert store.fetched_at == [tick]


def test_run_forever_sleeps_then_sweeps_until_stopped(monkeypatch):
    store = FakeStore([make_event()])
    tick = datetime(2025, 4, 1, 13, 30, tzinfo=UTC)
    scheduler = ReminderSweepScheduler(store, FakeNotifier(), period=2, clock=lambda: tick)

    sleeps = []
    real_sleep = asyncio.sleep

    async def fake_sleep(seconds):
        sleeps.append(seconds)
        if len(store.fetched_at) >= 2:
            scheduler.stop()
        await real_sleep(0)

    monkeypatch.setattr(background_worker.asyncio, "sleep", fake_sleep)

    asyncio.run(scheduler.run_forever())

    assert scheduler.stopped
    assert len(store.fetched_at) == 2
    # Each tick is preceded by a full period of one-second sleeps
    assert sleeps[:4] == [1, 1, 1, 1]


def test_stop_before_start_runs_no_sweep():
    store = FakeStore([make_event()])
    scheduler = make_scheduler(store, FakeNotifier())
    scheduler.stop()

    asyncio.run(scheduler.run_forever())

    assert store.fetched_at == []
