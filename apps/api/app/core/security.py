"""Security utilities: session JWTs, password hashing, OAuth state."""

import hashlib
import json
import secrets
from datetime import datetime, timedelta, timezone
from uuid import UUID

import jwt
from passlib.context import CryptContext

from app.core.config import settings


MIN_PASSWORD_LENGTH = 6

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


# =============================================================================
# Session Token (JWT in cookie)
# =============================================================================

def create_session_token(user_id: UUID, role: str, token_version: int) -> str:
    """
    Create signed session JWT.

    Always signs with current secret (JWT_SECRET). The role claim is
    informational only; authorization re-resolves the role from the database.
    """
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "role": role,
        "token_version": token_version,
        "iat": now,
        "exp": now + timedelta(hours=settings.JWT_EXPIRES_HOURS),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm="HS256")


def decode_session_token(token: str) -> dict:
    """
    Decode and verify session JWT.

    Tries current secret first, then previous (for rotation support).

    Raises:
        jwt.InvalidTokenError: If token invalid with all secrets
    """
    last_error = None
    for secret in settings.jwt_secrets:
        try:
            return jwt.decode(token, secret, algorithms=["HS256"])
        except jwt.InvalidTokenError as e:
            last_error = e
            continue
    raise last_error  # type: ignore


# =============================================================================
# Passwords
# =============================================================================

def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str | None) -> bool:
    """Constant-time check; accounts without a local password never match."""
    if not password_hash:
        return False
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError:
        return False


# =============================================================================
# OAuth State/Nonce with User-Agent Binding
# =============================================================================

def generate_oauth_state() -> str:
    """Generate cryptographically random state (32 bytes, URL-safe base64)."""
    return secrets.token_urlsafe(32)


def generate_oauth_nonce() -> str:
    return secrets.token_urlsafe(32)


def hash_user_agent(user_agent: str) -> str:
    return hashlib.sha256(user_agent.encode()).hexdigest()[:16]


def create_oauth_state_payload(state: str, nonce: str, user_agent: str) -> str:
    """JSON payload for the OAuth state cookie (state, nonce, user-agent hash)."""
    return json.dumps(
        {
            "state": state,
            "nonce": nonce,
            "ua_hash": hash_user_agent(user_agent),
        }
    )


def parse_oauth_state_payload(cookie_value: str) -> dict:
    return json.loads(cookie_value)


def verify_oauth_state(
    stored_payload: dict,
    received_state: str,
    user_agent: str,
) -> tuple[bool, str]:
    """
    Verify OAuth callback state matches stored state.

    Returns:
        (success, error_message)
    """
    if stored_payload.get("state") != received_state:
        return False, "State mismatch"
    if stored_payload.get("ua_hash") != hash_user_agent(user_agent):
        return False, "User-agent mismatch"
    return True, ""
