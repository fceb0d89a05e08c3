"""FastAPI REST API server for Event Planner Service.

This module provides HTTP endpoints for registering users, logging in and
managing events, reminders and categories. Every /api/events route requires
an `Authorization: Bearer <token>` header.

The reminder sweep runs in its own process (see background_worker.py).
"""

from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, Depends, HTTPException, Query, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

import auth
import crud
import schemas
import database
from config import settings
from logger_config import setup_logger

logger = setup_logger(__name__, 'api.log')


@asynccontextmanager
async def lifespan(app: FastAPI):
    database.init_db()
    logger.info("Event Planner API started")
    yield


# Create FastAPI application
app = FastAPI(
    title="Event Planner API",
    description="Personal event planning with categories and reminders",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    """Resolve the caller from the bearer token.

    Missing token -> 401, invalid or expired token -> 403.
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Authentication token required")
    try:
        payload = auth.decode_access_token(credentials.credentials)
    except auth.InvalidTokenError as e:
        raise HTTPException(status_code=403, detail=str(e))
    return payload["sub"]


@app.get("/")
def root():
    """Root endpoint - service information"""
    return {
        "service": "Event Planning and Reminder System API",
        "version": "1.0.0",
        "endpoints": {
            "docs": "/docs",
            "health": "/health",
            "auth": "/api/auth",
            "events": "/api/events"
        }
    }


@app.get("/health")
def health_check():
    """Health check endpoint for monitoring"""
    return {
        "status": "healthy",
        "service": "event_planner",
        "database": settings.DATABASE_URL.split("://")[0]
    }


# --- Auth ----------------------------------------------------------------

@app.post("/api/auth/register", response_model=schemas.UserResponse, status_code=201)
def register(user: schemas.UserCreate, db: Session = Depends(database.get_db)):
    """Register a new user.

    Request body example:
    ```json
    {"username": "alice", "password": "s3cret", "email": "alice@example.com"}
    ```
    """
    try:
        created = auth.register_user(db, user.username, user.password, user.email)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    logger.info(f"Registered user {created.id} ({created.username})")
    return created


@app.post("/api/auth/login", response_model=schemas.TokenResponse)
def login(credentials: schemas.LoginRequest, db: Session = Depends(database.get_db)):
    """Exchange username and password for an access token."""
    try:
        token, user = auth.login_user(db, credentials.username, credentials.password)
    except auth.InvalidCredentialsError as e:
        raise HTTPException(status_code=401, detail=str(e))
    return {"token": token, "user": user}


# --- Categories (declared before /{event_id} so the paths do not collide) ---

@app.get("/api/events/categories/all", response_model=List[str])
def list_categories(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(database.get_db)
):
    return crud.get_categories(db)


@app.post("/api/events/categories", response_model=List[str])
def add_category(
    body: schemas.CategoryCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(database.get_db)
):
    """Add a category. Adding an existing name is a no-op."""
    return crud.add_category(db, body.category)


# --- Events --------------------------------------------------------------

@app.get("/api/events", response_model=List[schemas.EventResponse])
def list_events(
    sort_by: str = Query("date", alias="sortBy", description="date, category or reminder"),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(database.get_db)
):
    """List the caller's events.

    Query parameters:
    - sortBy: "date" (default), "category" or "reminder" (events with
      reminders first). Any other value keeps creation order.
    """
    return crud.get_sorted_events(db, user_id, sort_by)


@app.post("/api/events", response_model=schemas.EventResponse, status_code=201)
def create_event(
    event: schemas.EventCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(database.get_db)
):
    """Create a new event.

    Request body example:
    ```json
    {
        "name": "Team Meeting",
        "description": "Weekly sync",
        "date": "2025-04-01",
        "time": "14:00",
        "category": "Meetings",
        "reminders": [{"offset": "30 minutes", "type": "notification"}]
    }
    ```
    """
    return crud.create_event(db, event.model_dump(), user_id)


@app.get("/api/events/{event_id}", response_model=schemas.EventResponse)
def get_event(
    event_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(database.get_db)
):
    event = crud.get_event(db, event_id, user_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


@app.put("/api/events/{event_id}", response_model=schemas.EventResponse)
def update_event(
    event_id: str,
    updates: schemas.EventUpdate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(database.get_db)
):
    """Update an existing event. Only provided fields are updated."""
    event = crud.update_event(db, event_id, user_id, updates.model_dump(exclude_unset=True))
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


@app.delete("/api/events/{event_id}", status_code=204)
def delete_event(
    event_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(database.get_db)
):
    if not crud.delete_event(db, event_id, user_id):
        raise HTTPException(status_code=404, detail="Event not found")
    return Response(status_code=204)


@app.post("/api/events/{event_id}/reminders", response_model=schemas.EventResponse)
def add_reminder(
    event_id: str,
    reminder: schemas.ReminderCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(database.get_db)
):
    """Add a reminder to an event.

    Request body example:
    ```json
    {"offset": "1 hours", "type": "email"}
    ```
    """
    event = crud.add_reminder(db, event_id, reminder.model_dump(), user_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level="info"
    )
