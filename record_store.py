"""Read snapshots of upcoming events for the reminder sweep.

The sweep never touches ORM objects directly: the store copies each
candidate event into plain dataclasses inside a short-lived session, so a
tick works on a consistent snapshot and holds no database resources while it
evaluates and delivers reminders.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import crud
from config import settings
from database import DeliveryTypeEnum
from reminder_engine import event_instant


class StoreError(Exception):
    """Raised when candidate events cannot be read or a reminder cannot be marked."""


@dataclass(frozen=True)
class ReminderSnapshot:
    id: str
    offset: str
    delivery_type: DeliveryTypeEnum = DeliveryTypeEnum.NOTIFICATION
    last_fired_at: Optional[datetime] = None


@dataclass(frozen=True)
class CandidateEvent:
    """An event starting after the sweep tick, with at least one reminder."""

    id: str
    name: str
    description: str
    instant: datetime
    recipient_address: Optional[str]
    reminders: List[ReminderSnapshot] = field(default_factory=list)


class RecordStore(Protocol):
    def fetch_candidate_events(self, now: datetime) -> List[CandidateEvent]:
        ...

    def mark_reminder_fired(self, reminder_id: str, fired_at: datetime) -> None:
        ...


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SqlRecordStore:
    """RecordStore backed by the service's SQLAlchemy database."""

    def __init__(self, session_factory: Callable[[], Session], tz_name: Optional[str] = None):
        self._session_factory = session_factory
        self._tz_name = tz_name or settings.TIMEZONE

    def fetch_candidate_events(self, now: datetime) -> List[CandidateEvent]:
        db = self._session_factory()
        try:
            events = crud.get_upcoming_reminders(db, now, self._tz_name)
            return [
                CandidateEvent(
                    id=event.id,
                    name=event.name,
                    description=event.description or "",
                    instant=event_instant(event.date, event.time, self._tz_name),
                    recipient_address=event.owner.email if event.owner else None,
                    reminders=[
                        ReminderSnapshot(
                            id=r.id,
                            offset=r.offset,
                            delivery_type=r.delivery_type,
                            last_fired_at=_utc(r.last_fired_at),
                        )
                        for r in event.reminders
                    ],
                )
                for event in events
            ]
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to fetch candidate events: {e}") from e
        finally:
            db.close()

    def mark_reminder_fired(self, reminder_id: str, fired_at: datetime) -> None:
        db = self._session_factory()
        try:
            crud.mark_reminder_fired(db, reminder_id, fired_at)
        except SQLAlchemyError as e:
            db.rollback()
            raise StoreError(f"Failed to mark reminder {reminder_id} as fired: {e}") from e
        finally:
            db.close()
