"""FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.orm import Session

from friendradar.core.security import decode_access_token
from friendradar.db.session import get_db
from friendradar.models.user import User
from friendradar.services.engine import PresenceEngine

security = HTTPBearer(auto_error=False)


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.execute(select(User).where(User.email == email)).scalar_one_or_none()


def user_from_token(db: Session, token: str) -> User | None:
    """Resolve an active user from a bearer token, or None."""
    payload = decode_access_token(token)
    if not payload or "sub" not in payload:
        return None
    user = get_user_by_email(db, payload["sub"])
    if not user or not user.is_active:
        return None
    return user


def get_current_user(
    db: Annotated[Session, Depends(get_db)],
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> User:
    """Require authenticated user. Raises 401 if not authenticated."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    user = user_from_token(db, credentials.credentials)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def get_engine(request: Request) -> PresenceEngine:
    """The engine created in the application lifespan."""
    return request.app.state.engine
