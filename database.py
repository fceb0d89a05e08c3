"""Database module for Event Planner Service.

This module defines SQLAlchemy models and database session management.
Event date and time-of-day are stored as separate Date/Time columns; the
absolute event instant is derived from them together with settings.TIMEZONE.
"""

from sqlalchemy import (
    create_engine, Column, String, Integer, Date, Time, DateTime, ForeignKey,
    Enum as SQLEnum, Index,
)
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import relationship, sessionmaker
from sqlalchemy.pool import StaticPool
import enum

from config import settings

# SQLAlchemy Base
Base = declarative_base()


class DeliveryTypeEnum(enum.Enum):
    """Channels a reminder can be delivered through.

    Any unrecognised value falls back to NOTIFICATION (the log channel).
    """
    EMAIL = "email"
    NOTIFICATION = "notification"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            for member in cls:
                if member.value == value.lower():
                    return member
        return cls.NOTIFICATION


class User(Base):
    """Registered user. password_hash never leaves the service."""

    __tablename__ = "users"

    id = Column(String, primary_key=True, doc="Unique user ID (UUID)")
    username = Column(String, nullable=False, unique=True, index=True)
    email = Column(String, nullable=False, doc="Address used for email reminders")
    password_hash = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)

    events = relationship("Event", back_populates="owner", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User(id={self.id}, username={self.username})>"


class Event(Base):
    """Calendar event owned by a user."""

    __tablename__ = "events"

    id = Column(String, primary_key=True, doc="Unique event ID (UUID)")
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)

    name = Column(String, nullable=False)
    description = Column(String, default="")

    # Local calendar date and time-of-day, interpreted in settings.TIMEZONE
    date = Column(Date, nullable=False)
    time = Column(Time, nullable=False)

    category = Column(String, nullable=False, default="Personal")

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    owner = relationship("User", back_populates="events")
    reminders = relationship(
        "Reminder",
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="Reminder.position",
    )

    __table_args__ = (
        Index('idx_event_user_date', 'user_id', 'date'),
    )

    def __repr__(self):
        return f"<Event(id={self.id}, name={self.name}, date={self.date}, time={self.time})>"


class Reminder(Base):
    """Reminder attached to an event, firing `offset` before the event instant."""

    __tablename__ = "reminders"

    id = Column(String, primary_key=True, doc="Unique reminder ID (UUID)")
    event_id = Column(String, ForeignKey("events.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0, doc="Order within the event")

    offset = Column(String, nullable=False, doc='Relative offset, e.g. "30 minutes"')
    delivery_type = Column(
        SQLEnum(DeliveryTypeEnum),
        nullable=False,
        default=DeliveryTypeEnum.NOTIFICATION,
    )

    created_at = Column(DateTime(timezone=True), nullable=False)
    last_fired_at = Column(
        DateTime(timezone=True),
        nullable=True,
        doc="Last successful delivery, only maintained in at-most-once mode",
    )

    event = relationship("Event", back_populates="reminders")

    def __repr__(self):
        return (
            f"<Reminder(id={self.id}, event={self.event_id}, "
            f"offset={self.offset}, type={self.delivery_type.value})>"
        )


class Category(Base):
    """Global category list shared by all users."""

    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


def make_engine(url: str):
    """Create an engine, sharing one connection for in-memory SQLite."""
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=False, **kwargs)
    return create_engine(url, echo=False)


# Database Engine Setup
engine = make_engine(settings.DATABASE_URL)

# Session Factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Database session dependency for FastAPI.

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None, session_factory=None):
    """Create all tables and seed the default categories."""
    import crud

    Base.metadata.create_all(bind=bind or engine)
    db = (session_factory or SessionLocal)()
    try:
        crud.ensure_default_categories(db, settings.DEFAULT_CATEGORIES)
    finally:
        db.close()
