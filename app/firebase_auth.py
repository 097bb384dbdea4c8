"""
Caller authentication.

Callers send `Authorization: Bearer <Firebase ID token>`. The verified uid is
the user every trust, ownership and moderation decision is made for. With
AUTH_TEST_MODE enabled the bearer value itself is used as the uid.
"""
import json
import logging
import os

import firebase_admin
from firebase_admin import auth, credentials
from fastapi import Header

from app.config import settings
from app.errors import AuthenticationError
from app.sanitization import sanitize_user_id

logger = logging.getLogger(__name__)

_firebase_initialized = False


def initialize_firebase_admin() -> None:
    """
    Initialize Firebase Admin SDK for token verification.

    Called once at application startup. Credentials are taken from, in order:
    1. Service account key file (FIREBASE_SERVICE_ACCOUNT_PATH)
    2. Service account JSON in an environment variable (FIREBASE_SERVICE_ACCOUNT_JSON)
    3. Default credentials (Google Cloud environments)
    """
    global _firebase_initialized

    if settings.auth_test_mode:
        logger.warning("AUTH_TEST_MODE enabled: bearer tokens are used as user ids")
        return

    if firebase_admin._apps:
        _firebase_initialized = True
        return

    service_account_path = os.getenv("FIREBASE_SERVICE_ACCOUNT_PATH")
    service_account_json = os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON")

    if service_account_path and os.path.exists(service_account_path):
        firebase_admin.initialize_app(credentials.Certificate(service_account_path))
        logger.info("Firebase Admin SDK initialized from service account file")
    elif service_account_json:
        firebase_admin.initialize_app(credentials.Certificate(json.loads(service_account_json)))
        logger.info("Firebase Admin SDK initialized from environment variable")
    else:
        try:
            firebase_admin.initialize_app()
        except ValueError as e:
            logger.warning(
                f"Firebase Admin SDK initialization failed: {e}. "
                "Set FIREBASE_SERVICE_ACCOUNT_PATH or FIREBASE_SERVICE_ACCOUNT_JSON."
            )
            return
        logger.info("Firebase Admin SDK initialized with default credentials")

    _firebase_initialized = True


def verify_id_token(token: str, check_revoked: bool = True) -> dict:
    """
    Verify a Firebase ID token and return the decoded token.

    Args:
        token: The Firebase ID token to verify
        check_revoked: Whether to check if the token has been revoked

    Returns:
        Decoded token dictionary containing user information

    Raises:
        ValueError: If token is invalid, expired, or revoked, or Firebase is not initialized
    """
    if not _firebase_initialized:
        raise ValueError("Firebase Admin SDK not initialized")

    try:
        return auth.verify_id_token(token, check_revoked=check_revoked)
    except auth.ExpiredIdTokenError as e:
        raise ValueError(f"Token expired: {e}") from e
    except auth.RevokedIdTokenError as e:
        raise ValueError(f"Token revoked: {e}") from e
    except auth.InvalidIdTokenError as e:
        raise ValueError(f"Invalid token: {e}") from e


def get_current_user_id(authorization: str = Header(None)) -> str:
    """Dependency: the authenticated caller's user id."""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise AuthenticationError()

    token = authorization[7:].strip()
    if settings.auth_test_mode:
        uid = token
    else:
        try:
            uid = verify_id_token(token)["uid"]
        except ValueError as e:
            logger.warning(f"Rejected bearer token: {e}")
            raise AuthenticationError("Invalid or expired authentication token") from e

    try:
        return sanitize_user_id(uid)
    except ValueError as e:
        raise AuthenticationError(str(e)) from e
