"""Pydantic schemas for Event Planner Service.

This module defines request and response schemas for API validation.
Event dates ("2025-04-01") and times ("14:00") are parsed into date and
time objects; reminder offsets are checked when the reminder is created.
"""

import datetime as dt
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from database import DeliveryTypeEnum
from logger_config import setup_logger
from reminder_engine import is_recognized_unit

logger = setup_logger(__name__, 'api.log')


class UserCreate(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3, pattern=r'^[^@\s]+@[^@\s]+$')


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class UserResponse(BaseModel):
    """Public view of a user (never includes the password hash)."""

    id: str
    username: str
    email: str
    created_at: dt.datetime

    class Config:
        from_attributes = True


class TokenResponse(BaseModel):
    token: str
    user: UserResponse


class ReminderCreate(BaseModel):
    """Schema for adding a reminder.

    A malformed magnitude ("soon minutes") is rejected. An unknown unit
    ("3 fortnights") is accepted and behaves as a zero offset, so the
    reminder fires at the event instant itself.
    """

    offset: str = Field(
        ...,
        min_length=1,
        description='How long before the event to fire, e.g. "30 minutes", "1 hours", "2 days"',
        examples=["30 minutes", "2 days"]
    )

    type: DeliveryTypeEnum = Field(
        default=DeliveryTypeEnum.NOTIFICATION,
        description="Delivery channel: email or notification (unknown values fall back to notification)"
    )

    @field_validator('offset')
    @classmethod
    def validate_offset(cls, value: str) -> str:
        # OffsetParseError is a ValueError, so pydantic reports it as a 422
        if not is_recognized_unit(value):
            logger.warning(f"Reminder offset {value!r} has no recognised unit; it will fire at the event time")
        return value

    @field_validator('type', mode='before')
    @classmethod
    def fallback_type(cls, value):
        if value is None:
            return DeliveryTypeEnum.NOTIFICATION
        return DeliveryTypeEnum(value)


class ReminderResponse(BaseModel):
    id: str
    offset: str
    type: DeliveryTypeEnum = Field(..., validation_alias="delivery_type")
    created_at: dt.datetime

    class Config:
        from_attributes = True


class EventCreate(BaseModel):
    """Schema for creating a new event."""

    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default="")
    date: dt.date = Field(..., examples=["2025-04-01"])
    time: dt.time = Field(..., examples=["14:00"])
    category: Optional[str] = Field(default="Personal")
    reminders: List[ReminderCreate] = Field(default_factory=list)


class EventUpdate(BaseModel):
    """Schema for updating an event. Only provided fields are changed.

    Sending `reminders` replaces the whole reminder list.
    """

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    date: Optional[dt.date] = None
    time: Optional[dt.time] = None
    category: Optional[str] = None
    reminders: Optional[List[ReminderCreate]] = None


class EventResponse(BaseModel):
    id: str
    user_id: str
    name: str
    description: str
    date: dt.date
    time: dt.time
    category: str
    reminders: List[ReminderResponse]
    created_at: dt.datetime
    updated_at: Optional[dt.datetime] = None

    class Config:
        from_attributes = True


class CategoryCreate(BaseModel):
    category: str = Field(..., min_length=1, max_length=100)
