"""
Firebase Admin SDK initialization and ID token verification.
Initializes Firebase Admin SDK once at application startup.
"""
import json
import os
import logging
from typing import Optional
import firebase_admin
from firebase_admin import credentials, auth
from firebase_admin import exceptions as firebase_exceptions
from app.config import settings

logger = logging.getLogger(__name__)


class InvalidToken(ValueError):
    """Token is malformed, has a bad signature, or was revoked."""


class TokenExpired(InvalidToken):
    """Token was valid but has expired; the client should refresh it."""


class AuthUnavailable(RuntimeError):
    """Tokens cannot be verified because Firebase was never initialized."""


# Global Firebase app instance
_firebase_app: Optional[firebase_admin.App] = None


def _load_credentials():
    """
    Resolve Firebase credentials.

    Supports two forms of FIREBASE_CREDENTIALS_JSON:
    1. Path to a service account file (absolute, or relative to backend/)
    2. The service account JSON itself

    Without it, uses application default credentials (local dev with gcloud).
    """
    if not settings.firebase_credentials_json:
        return credentials.ApplicationDefault()

    credential_path = settings.firebase_credentials_json
    if os.path.isabs(credential_path):
        candidates = [credential_path]
    else:
        backend_dir = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
        candidates = [os.path.join(backend_dir, credential_path), credential_path]

    for path in candidates:
        if os.path.exists(path):
            logger.info(f"Loaded Firebase credentials from file: {path}")
            return credentials.Certificate(path)

    try:
        cred_dict = json.loads(credential_path)
    except json.JSONDecodeError:
        raise ValueError(
            "FIREBASE_CREDENTIALS_JSON must be a valid file path or JSON string. "
            f"Tried: {', '.join(candidates)}"
        )
    logger.info("Loaded Firebase credentials from JSON string")
    return credentials.Certificate(cred_dict)


def initialize_firebase() -> None:
    """Initialize Firebase Admin SDK (idempotent)."""
    global _firebase_app

    if _firebase_app is not None:
        return

    if not settings.firebase_project_id:
        raise ValueError("FIREBASE_PROJECT_ID must be set")

    _firebase_app = firebase_admin.initialize_app(
        _load_credentials(),
        {"projectId": settings.firebase_project_id}
    )
    logger.info(f"Firebase initialized for project {settings.firebase_project_id}")


def verify_firebase_token(token: str) -> dict:
    """
    Verify Firebase ID token and return decoded token claims.

    Args:
        token: Firebase JWT ID token string

    Returns:
        Decoded token claims dict with uid, email, name, picture

    Raises:
        TokenExpired: If the token has expired
        InvalidToken: If the token is invalid or revoked
        AuthUnavailable: If Firebase has not been initialized
    """
    if _firebase_app is None:
        raise AuthUnavailable("Firebase Admin SDK not initialized. Call initialize_firebase() first.")

    try:
        # Verifies signature, expiration, issuer and audience
        return auth.verify_id_token(token, app=_firebase_app)
    except auth.ExpiredIdTokenError as e:
        raise TokenExpired(f"Token expired: {e}") from e
    except (auth.InvalidIdTokenError, ValueError) as e:
        raise InvalidToken(f"Invalid token: {e}") from e
    except firebase_exceptions.FirebaseError as e:
        raise InvalidToken(f"Token verification failed: {e}") from e
