"""Google OAuth and OIDC token verification service."""

import httpx
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token
from pydantic import BaseModel

from app.core.config import settings

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"


class GoogleUserInfo(BaseModel):
    """Verified user info extracted from Google ID token."""

    sub: str  # Google's unique user identifier
    email: str  # Normalized to lowercase
    name: str
    picture: str | None = None


async def exchange_code_for_tokens(code: str) -> dict:
    """
    Exchange authorization code for tokens.

    Raises:
        httpx.HTTPStatusError: If token exchange fails
    """
    async with httpx.AsyncClient(timeout=15.0) as client:
        response = await client.post(
            GOOGLE_TOKEN_URL,
            data={
                "code": code,
                "client_id": settings.GOOGLE_CLIENT_ID,
                "client_secret": settings.GOOGLE_CLIENT_SECRET,
                "redirect_uri": settings.GOOGLE_REDIRECT_URI,
                "grant_type": "authorization_code",
            },
        )
        response.raise_for_status()
        return response.json()


def verify_id_token(token: str, expected_nonce: str) -> GoogleUserInfo:
    """
    Verify Google ID token using google-auth library.

    google-auth checks signature, issuer, audience and expiry; we add
    email_verified and nonce.

    Raises:
        ValueError: If any validation fails
    """
    idinfo = id_token.verify_oauth2_token(
        token, google_requests.Request(), settings.GOOGLE_CLIENT_ID
    )

    if idinfo.get("iss") not in ["accounts.google.com", "https://accounts.google.com"]:
        raise ValueError("Invalid issuer")

    if not idinfo.get("email_verified"):
        raise ValueError("Email not verified by Google")

    if idinfo.get("nonce") != expected_nonce:
        raise ValueError("Nonce mismatch")

    return GoogleUserInfo(
        sub=idinfo["sub"],
        email=idinfo["email"].lower(),
        name=idinfo.get("name", ""),
        picture=idinfo.get("picture"),
    )
