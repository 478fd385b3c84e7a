"""
FastAPI dependencies for authentication.
Provides get_current_user, which verifies Firebase ID tokens and syncs the
caller into the users table, and require_admin for admin-only routes.
"""
import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.config import settings
from app.database import get_db
from app.models.base import generate_uuid, utc_now
from app.models.user import User
from app.auth.firebase import verify_firebase_token, AuthUnavailable, InvalidToken, TokenExpired

logger = logging.getLogger(__name__)

_UPSERT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}

# HTTPBearer scheme for extracting Authorization header
security = HTTPBearer(auto_error=False)


def _unauthorized(error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": error, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _get_or_create_user(
    db: AsyncSession,
    firebase_uid: str,
    email: Optional[str],
    name: Optional[str],
    avatar_url: Optional[str],
) -> User:
    result = await db.execute(
        select(User).where(User.firebase_uid == firebase_uid)
    )
    user = result.scalar_one_or_none()
    if user is not None:
        return user

    # Concurrent first requests for one uid: only one insert lands, the rest no-op
    insert = _UPSERT_INSERTS[db.get_bind().dialect.name]
    created = await db.execute(
        insert(User)
        .values(
            id=generate_uuid(),
            firebase_uid=firebase_uid,
            email=email,
            name=name,
            avatar_url=avatar_url,
            created_at=utc_now(),
        )
        .on_conflict_do_nothing(index_elements=[User.firebase_uid])
    )
    if created.rowcount:
        logger.info(f"Created user for firebase uid {firebase_uid}")

    result = await db.execute(
        select(User).where(User.firebase_uid == firebase_uid)
    )
    return result.scalar_one()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> User:
    """
    FastAPI dependency that verifies a Firebase ID token and returns the User.

    Flow:
    1. Extract Bearer token from Authorization header
    2. Verify token with Firebase Admin SDK
    3. Lookup user by firebase_uid, creating it on first sight
    4. Refresh profile fields (email, name, avatar) from the token claims

    Raises:
        HTTPException 401: If token is missing, invalid, or expired
        HTTPException 503: If token verification is not available
    """
    if credentials is None or not credentials.credentials:
        raise _unauthorized("missing_token", "Sign in to use this feature")

    try:
        decoded_token = verify_firebase_token(credentials.credentials)
    except AuthUnavailable as e:
        logger.error(f"Token verification unavailable: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "auth_unavailable", "message": "Sign-in is temporarily unavailable"},
        )
    except TokenExpired:
        raise _unauthorized("token_expired", "Session expired, please sign in again")
    except InvalidToken as e:
        raise _unauthorized("invalid_token", str(e))

    firebase_uid = decoded_token.get("uid")
    if not firebase_uid:
        raise _unauthorized("invalid_token", "Invalid token: missing uid")

    email = decoded_token.get("email")
    name = decoded_token.get("name") or (email.split("@")[0] if email else None)
    avatar_url = decoded_token.get("picture")

    user = await _get_or_create_user(db, firebase_uid, email, name, avatar_url)
    user.email = email or user.email
    user.name = name or user.name
    user.avatar_url = avatar_url or user.avatar_url
    user.last_seen_at = utc_now()
    await db.commit()
    await db.refresh(user)
    return user


async def require_admin(current_user: User = Depends(get_current_user)) -> User:
    """
    Dependency for admin-only routes.

    Raises:
        HTTPException 403: If the caller's email is not in ADMIN_EMAILS
    """
    if not current_user.email or current_user.email.lower() not in settings.admin_email_list:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": "forbidden", "message": "Admin access required"},
        )
    return current_user
