"""CRUD operations for Event Planner Service.

This module provides database operations for users, events, reminders and
categories. Events are always scoped to their owner's user id.
"""

from sqlalchemy.orm import Session, selectinload
from typing import Iterable, List, Optional
import uuid
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from database import Category, DeliveryTypeEnum, Event, Reminder, User
from logger_config import setup_logger
from reminder_engine import event_instant

logger = setup_logger(__name__, 'crud.log')


def _new_reminder(reminder_data: dict, position: int, now: datetime) -> Reminder:
    delivery_type = reminder_data.get('type') or DeliveryTypeEnum.NOTIFICATION
    if not isinstance(delivery_type, DeliveryTypeEnum):
        delivery_type = DeliveryTypeEnum(delivery_type)

    return Reminder(
        id=str(uuid.uuid4()),
        position=position,
        offset=reminder_data['offset'],
        delivery_type=delivery_type,
        created_at=now,
    )


# --- Users ---------------------------------------------------------------

def create_user(db: Session, user_data: dict) -> User:
    """Create a new user.

    Args:
        db: Database session
        user_data: Dictionary with user fields
            - username: str
            - email: str
            - password_hash: str (already hashed!)

    Returns:
        User: Created user object

    Raises:
        ValueError: If the username is already taken
    """
    if get_user_by_username(db, user_data['username']):
        raise ValueError("Username already exists")

    user = User(
        id=str(uuid.uuid4()),
        username=user_data['username'],
        email=user_data['email'],
        password_hash=user_data['password_hash'],
        created_at=datetime.now(timezone.utc),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def get_user(db: Session, user_id: str) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()


def get_user_by_username(db: Session, username: str) -> Optional[User]:
    return db.query(User).filter(User.username == username).first()


# --- Events --------------------------------------------------------------

def create_event(db: Session, event_data: dict, user_id: str) -> Event:
    """Create a new event with its initial reminders.

    Args:
        db: Database session
        event_data: Dictionary with event fields
            - name: str
            - date: date
            - time: time
            - description: Optional[str]
            - category: Optional[str]
            - reminders: Optional[List[dict]] with 'offset' and 'type'
        user_id: Owner's user ID

    Returns:
        Event: Created event object
    """
    now = datetime.now(timezone.utc)

    event = Event(
        id=str(uuid.uuid4()),
        user_id=user_id,
        name=event_data['name'],
        description=event_data.get('description') or '',
        date=event_data['date'],
        time=event_data['time'],
        category=event_data.get('category') or 'Personal',
        created_at=now,
    )
    for position, reminder_data in enumerate(event_data.get('reminders') or []):
        event.reminders.append(_new_reminder(reminder_data, position, now))

    db.add(event)
    db.commit()
    db.refresh(event)
    logger.info(f"Created event {event.id} for user {user_id} with {len(event.reminders)} reminder(s)")
    return event


def get_user_events(db: Session, user_id: str) -> List[Event]:
    """Get all events for a user, in creation order."""
    return db.query(Event).options(selectinload(Event.reminders)).filter(
        Event.user_id == user_id
    ).order_by(Event.created_at).all()


def get_sorted_events(db: Session, user_id: str, sort_by: str = 'date') -> List[Event]:
    """Get a user's events sorted by criteria.

    Args:
        db: Database session
        user_id: Owner's user ID
        sort_by: "date" (chronological), "category" (alphabetical) or
            "reminder" (events with reminders first). Anything else keeps
            creation order.

    Returns:
        List[Event]: Sorted events
    """
    events = get_user_events(db, user_id)

    if sort_by == 'date':
        return sorted(events, key=lambda e: (e.date, e.time))
    if sort_by == 'category':
        return sorted(events, key=lambda e: e.category)
    if sort_by == 'reminder':
        return sorted(events, key=lambda e: not e.reminders)
    return events


def get_event(db: Session, event_id: str, user_id: str) -> Optional[Event]:
    """Get a specific event by ID.

    Args:
        db: Database session
        event_id: Event UUID
        user_id: Owner's user ID (for security)

    Returns:
        Optional[Event]: Event object if found, None otherwise
    """
    return db.query(Event).filter(
        Event.id == event_id,
        Event.user_id == user_id
    ).first()


def update_event(
    db: Session,
    event_id: str,
    user_id: str,
    updates: dict
) -> Optional[Event]:
    """Update an existing event.

    Only keys present in `updates` are changed. A 'reminders' key replaces
    the whole reminder list.

    Returns:
        Optional[Event]: Updated event object if found, None otherwise
    """
    event = get_event(db, event_id, user_id)
    if not event:
        return None

    now = datetime.now(timezone.utc)
    for key, value in updates.items():
        if key == 'reminders':
            event.reminders = [
                _new_reminder(reminder_data, position, now)
                for position, reminder_data in enumerate(value or [])
            ]
        elif key == 'description':
            event.description = value or ''
        elif value is not None:
            setattr(event, key, value)

    event.updated_at = now

    db.commit()
    db.refresh(event)
    return event


def delete_event(db: Session, event_id: str, user_id: str) -> bool:
    """Delete an event and its reminders.

    Returns:
        bool: True if deleted, False if not found
    """
    event = get_event(db, event_id, user_id)
    if not event:
        return False

    db.delete(event)
    db.commit()
    return True


def add_reminder(
    db: Session,
    event_id: str,
    reminder_data: dict,
    user_id: str
) -> Optional[Event]:
    """Append a reminder to an event.

    Returns:
        Optional[Event]: The updated event, None if the event was not found
    """
    event = get_event(db, event_id, user_id)
    if not event:
        return None

    event.reminders.append(
        _new_reminder(reminder_data, len(event.reminders), datetime.now(timezone.utc))
    )
    db.commit()
    db.refresh(event)
    return event


# --- Categories ----------------------------------------------------------

def get_categories(db: Session) -> List[str]:
    return [c.name for c in db.query(Category).order_by(Category.id).all()]


def add_category(db: Session, name: str) -> List[str]:
    """Add a category if it does not exist yet and return the full list."""
    if not db.query(Category).filter(Category.name == name).first():
        db.add(Category(name=name, created_at=datetime.now(timezone.utc)))
        db.commit()
    return get_categories(db)


def ensure_default_categories(db: Session, names: Iterable[str]) -> None:
    """Seed categories into an empty table."""
    if db.query(Category).count():
        return
    now = datetime.now(timezone.utc)
    for name in dict.fromkeys(names):
        db.add(Category(name=name, created_at=now))
    db.commit()


# --- Reminder sweep ------------------------------------------------------

def get_upcoming_reminders(db: Session, now: datetime, tz_name: str = "UTC") -> List[Event]:
    """Get events that start strictly after `now` and have at least one reminder.

    Event instants are derived from the local date and time-of-day in
    `tz_name`, so the date filter only prunes rows that cannot qualify and
    the exact comparison happens in Python.

    Args:
        db: Database session
        now: Aware datetime of the current sweep tick
        tz_name: Timezone events are interpreted in

    Returns:
        List[Event]: Candidate events with reminders and owners loaded
    """
    local_today = now.astimezone(ZoneInfo(tz_name)).date()

    rows = db.query(Event).options(
        selectinload(Event.reminders),
        selectinload(Event.owner),
    ).filter(
        Event.date >= local_today,
        Event.reminders.any(),
    ).all()

    return [
        event for event in rows
        if event_instant(event.date, event.time, tz_name) > now
    ]


def mark_reminder_fired(db: Session, reminder_id: str, fired_at: datetime) -> bool:
    """Record a successful delivery for at-most-once mode.

    Returns:
        bool: True if the reminder exists
    """
    reminder = db.query(Reminder).filter(Reminder.id == reminder_id).first()
    if not reminder:
        return False
    reminder.last_fired_at = fired_at
    db.commit()
    return True
