"""Credential service for Event Planner Service.

Password hashing with passlib (bcrypt) and HS256 access tokens with
python-jose. Tokens carry the user id in `sub` and expire after
ACCESS_TOKEN_EXPIRE_MINUTES.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

import crud
from config import settings
from database import User

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class InvalidCredentialsError(Exception):
    """Unknown username or wrong password."""


class InvalidTokenError(Exception):
    """Token is malformed, expired or signed with another key."""


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(user: User, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode = {"sub": user.id, "username": user.username, "exp": expire}
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Return the token claims.

    Raises:
        InvalidTokenError: If the token cannot be verified
    """
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        raise InvalidTokenError("Invalid token") from e
    if not payload.get("sub"):
        raise InvalidTokenError("Invalid token")
    return payload


def register_user(db: Session, username: str, password: str, email: str) -> User:
    """Create a user with a hashed password.

    Raises:
        ValueError: If the username is already taken
    """
    return crud.create_user(db, {
        'username': username,
        'email': email,
        'password_hash': hash_password(password),
    })


def login_user(db: Session, username: str, password: str) -> Tuple[str, User]:
    """Check credentials and issue an access token.

    Raises:
        InvalidCredentialsError: If the username or password is wrong
    """
    user = crud.get_user_by_username(db, username)
    if not user or not verify_password(password, user.password_hash):
        raise InvalidCredentialsError("Invalid credentials")
    return create_access_token(user), user
