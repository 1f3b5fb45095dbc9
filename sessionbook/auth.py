import logging
from typing import Optional

import firebase_admin
from fastapi import Depends, HTTPException, Query, WebSocketException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from firebase_admin import auth as firebase_auth
from firebase_admin import credentials
from firebase_admin import exceptions as firebase_exceptions

from .config import ADMIN_UID, FIREBASE_CREDENTIALS_PATH, FIREBASE_PROJECT_ID
from .shared.errors import PermissionDeniedError

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def _ensure_firebase_app():
    """Initialize the Firebase Admin SDK once, on first use"""
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    if FIREBASE_CREDENTIALS_PATH:
        cred = credentials.Certificate(FIREBASE_CREDENTIALS_PATH)
        logger.info("Firebase Admin initialized with service account credentials")
    else:
        cred = credentials.ApplicationDefault()
        logger.info("Firebase Admin initialized with default credentials")
    return firebase_admin.initialize_app(cred, {"projectId": FIREBASE_PROJECT_ID})


def verify_id_token(token: str) -> dict:
    """Verify a Firebase ID token and return its decoded claims"""
    if not FIREBASE_PROJECT_ID:
        logger.error("❌ FIREBASE_PROJECT_ID not configured")
        raise HTTPException(status_code=500, detail="Firebase not configured")

    try:
        _ensure_firebase_app()
        return firebase_auth.verify_id_token(token)
    except firebase_auth.ExpiredIdTokenError as e:
        raise HTTPException(
            status_code=401,
            detail="Token has expired. Please refresh your session.",
            headers={"X-Token-Expired": "true"},
        ) from e
    except (firebase_auth.InvalidIdTokenError, ValueError) as e:
        logger.warning(f"⚠️ Invalid ID token: {e}")
        raise HTTPException(status_code=401, detail="Invalid token") from e
    except firebase_exceptions.FirebaseError as e:
        logger.error(f"❌ Token verification failed: {e}")
        raise HTTPException(status_code=401, detail="Token verification failed") from e


def get_admin_uid() -> str:
    """The single provider/admin identity for this deployment"""
    return ADMIN_UID


async def get_current_uid(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """Get the authenticated user's uid from the Firebase bearer token"""
    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Please provide a valid Bearer token in the Authorization header.",
        )

    return uid_from_token(credentials.credentials)


def uid_from_token(token: str) -> str:
    """Verify a Firebase ID token and pull the user's uid out of its claims"""
    if len(token.split(".")) != 3:
        logger.warning(f"⚠️ Malformed token received, length: {len(token)}")
        raise HTTPException(
            status_code=401, detail="Invalid token format. Expected a valid JWT token."
        )

    decoded_token = verify_id_token(token)
    uid = decoded_token.get("uid") or decoded_token.get("sub") or decoded_token.get("user_id")
    if not uid:
        logger.error(f"❌ Token missing user ID claim. Available claims: {list(decoded_token)}")
        raise HTTPException(status_code=401, detail="Invalid token claims")

    logger.debug(f"✅ User authenticated: {uid}")
    return uid


async def get_socket_uid(token: Optional[str] = Query(None)) -> str:
    """
    Authenticate a WebSocket from its ``token`` query parameter.
    Browsers cannot set headers on a WebSocket handshake, so the Firebase ID
    token travels in the URL; a bad token closes the socket with 1008.
    """
    if not token:
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION, reason="Not authenticated")
    try:
        return uid_from_token(token)
    except HTTPException as e:
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION, reason=str(e.detail)) from e


async def require_admin(
    uid: str = Depends(get_current_uid),
    admin_uid: str = Depends(get_admin_uid),
) -> str:
    """Allow only the configured admin through"""
    if not admin_uid or uid != admin_uid:
        logger.warning(f"⚠️ Non-admin user {uid} attempted an admin operation")
        raise PermissionDeniedError("Admin access required")
    return uid
