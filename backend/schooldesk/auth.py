"""
Authentication helpers for SchoolDesk.

Provides:
 - get_password_hash(password) -> str
 - verify_password(plain_password, hashed_password) -> bool
 - create_access_token(user, location_ids, expires_delta=None) -> str
 - decode_access_token(token) -> dict of verified claims
 - authenticate_user(db, email, password) -> (user, token)
 - get_current_user: FastAPI dependency resolving the bearer token to an Identity

Hashes are produced by passlib's CryptContext (pbkdf2_sha256 by default; bcrypt
hashes from older deployments still verify and are flagged for rehash).
Tokens are HS256 JWTs signed with python-jose.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional
from uuid import UUID
import logging

from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from . import models
from .config import settings
from .database import get_db
from .errors import ExpiredToken, InvalidCredentials, InvalidToken

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256", "bcrypt"], deprecated="auto", default="pbkdf2_sha256")

security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    """The authenticated caller as seen by authorization checks."""

    user_id: UUID
    email: str
    role: models.Role
    location_ids: frozenset = field(default_factory=frozenset)

    @property
    def is_developer(self) -> bool:
        return self.role is models.Role.DEVELOPER


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        # unknown or malformed hash -> treat as verification failure
        return False


def accessible_location_ids(db: Session, user: models.User) -> list[UUID]:
    """Location ids the user may act in; developers get every location.

    Memberships switched inactive at a location are left out.
    """
    if user.role is models.Role.DEVELOPER:
        rows = db.query(models.Location.id).all()
    else:
        rows = (
            db.query(models.user_locations.c.location_id)
            .filter(
                models.user_locations.c.user_id == user.id,
                models.user_locations.c.is_active.is_(True),
            )
            .all()
        )
    return [r[0] for r in rows]


def create_access_token(
    user: models.User,
    location_ids: Iterable[UUID],
    expires_delta: Optional[timedelta] = None,
) -> str:
    issued_at = datetime.now(timezone.utc)
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.access_token_expire_minutes)
    claims = {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role.value,
        "locations": [str(loc) for loc in location_ids],
        "iat": issued_at,
        "exp": issued_at + expires_delta,
    }
    return jwt.encode(claims, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict:
    try:
        claims = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError as exc:
        raise ExpiredToken() from exc
    except JWTError as exc:
        raise InvalidToken() from exc
    if not claims.get("sub"):
        raise InvalidToken()
    return claims


def authenticate_user(db: Session, email: str, password: str) -> tuple[models.User, str]:
    """
    Check an email/password pair and mint a session token.
    Unknown email, wrong password and inactive account all raise the same
    InvalidCredentials.
    """
    user = db.query(models.User).filter(models.User.email == email).first()
    if user is None:
        # keep timing comparable to a real verification
        pwd_context.dummy_verify()
        raise InvalidCredentials()
    if not verify_password(password, user.hashed_password) or not user.is_active:
        raise InvalidCredentials()
    if pwd_context.needs_update(user.hashed_password):
        user.hashed_password = get_password_hash(password)
        db.add(user)
    location_ids = accessible_location_ids(db, user)
    return user, create_access_token(user, location_ids)


def identity_for(db: Session, user: models.User) -> Identity:
    return Identity(
        user_id=user.id,
        email=user.email,
        role=user.role,
        location_ids=frozenset(accessible_location_ids(db, user)),
    )


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
    db: Session = Depends(get_db),
) -> Identity:
    """Resolve the bearer token against current account and membership state."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise InvalidToken("Authentication required")
    claims = decode_access_token(credentials.credentials)
    try:
        user_id = UUID(claims["sub"])
    except ValueError as exc:
        raise InvalidToken() from exc
    user = db.get(models.User, user_id)
    if user is None or not user.is_active:
        raise InvalidToken()
    return identity_for(db, user)
