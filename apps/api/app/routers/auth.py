"""Authentication router: local credentials, Google OAuth and session management."""

import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.deps import (
    COOKIE_NAME,
    get_current_session,
    get_current_user,
    get_db,
    require_csrf_header,
)
from app.core.rate_limit import AUTH_LIMIT, limiter
from app.core.security import (
    create_oauth_state_payload,
    create_session_token,
    generate_oauth_nonce,
    generate_oauth_state,
    parse_oauth_state_payload,
    verify_oauth_state,
)
from app.core.tenancy import resolve_caller
from app.db.models import User
from app.schemas.auth import (
    CallerContext,
    LoginRequest,
    MeResponse,
    PasswordChange,
    ProfileUpdate,
    SignupRequest,
)
from app.services import auth_service, link_service, org_service
from app.services.google_oauth import (
    GOOGLE_AUTH_URL,
    exchange_code_for_tokens,
    verify_id_token,
)

logger = logging.getLogger(__name__)

router = APIRouter()

OAUTH_STATE_COOKIE = "oauth_state"
OAUTH_STATE_MAX_AGE = 300  # 5 minutes


def _set_session_cookie(response: Response, user: User) -> None:
    token = create_session_token(user.id, user.role, user.token_version)
    response.set_cookie(
        key=COOKIE_NAME,
        value=token,
        max_age=settings.JWT_EXPIRES_HOURS * 3600,
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
        path="/",
    )


def _me_response(user: User, caller: CallerContext) -> MeResponse:
    return MeResponse(
        user_id=user.id,
        email=user.email,
        display_name=user.display_name,
        company_name=user.company_name,
        role=caller.role,
        is_master_admin=user.is_master_admin,
        unrestricted=caller.unrestricted,
        organization_ids=list(caller.org_ids or ()),
        primary_organization_id=caller.primary_org_id,
    )


# =============================================================================
# Local Credentials
# =============================================================================

@router.post("/signup", dependencies=[Depends(require_csrf_header)])
@limiter.limit(AUTH_LIMIT)
def signup(
    request: Request,
    response: Response,
    body: SignupRequest,
    db: Session = Depends(get_db),
) -> MeResponse:
    """
    Create an account and start a session.

    Clients join the organization behind their invite code. Providers are
    provisioned immediately in demo mode, otherwise after checkout.
    """
    try:
        user = auth_service.signup(db, body)
    except (auth_service.SignupError, link_service.InviteError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except org_service.ProvisioningError:
        logger.exception("Demo provisioning failed at signup")
        raise HTTPException(status_code=500, detail="Could not provision organization")

    _set_session_cookie(response, user)
    return _me_response(user, resolve_caller(db, user))


@router.post("/login", dependencies=[Depends(require_csrf_header)])
@limiter.limit(AUTH_LIMIT)
def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    db: Session = Depends(get_db),
) -> MeResponse:
    user = auth_service.authenticate(db, body.email, body.password)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid email or password")
    try:
        caller = resolve_caller(db, user)
    except ValueError as e:
        raise HTTPException(status_code=403, detail=f"{e}. Contact administrator.")
    _set_session_cookie(response, user)
    return _me_response(user, caller)


# =============================================================================
# OAuth Endpoints
# =============================================================================

@router.get("/google/login")
@limiter.limit(AUTH_LIMIT)
def google_login(request: Request):
    """
    Initiate Google OAuth flow.

    State and nonce are stored in a short-lived cookie bound to the user
    agent; the nonce is checked again inside the ID token.
    """
    if not settings.GOOGLE_CLIENT_ID:
        raise HTTPException(status_code=404, detail="Google login is not configured")

    state = generate_oauth_state()
    nonce = generate_oauth_nonce()
    user_agent = request.headers.get("user-agent", "")
    state_payload = create_oauth_state_payload(state, nonce, user_agent)

    params = {
        "client_id": settings.GOOGLE_CLIENT_ID,
        "redirect_uri": settings.GOOGLE_REDIRECT_URI,
        "response_type": "code",
        "scope": "openid email profile",
        "state": state,
        "nonce": nonce,
    }
    response = RedirectResponse(url=f"{GOOGLE_AUTH_URL}?{urlencode(params)}", status_code=302)
    response.set_cookie(
        key=OAUTH_STATE_COOKIE,
        value=state_payload,
        max_age=OAUTH_STATE_MAX_AGE,
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
        path="/auth",
    )
    return response


@router.get("/google/callback")
async def google_callback(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    db: Session = Depends(get_db),
):
    """
    Handle Google OAuth callback.

    Every failure redirects to the frontend login page with an error code
    and clears the state cookie.
    """
    error_response = RedirectResponse(url=_get_error_redirect("auth_failed"), status_code=302)
    error_response.delete_cookie(OAUTH_STATE_COOKIE, path="/auth")

    if error:
        error_response.headers["location"] = _get_error_redirect(f"google_{error}")
        return error_response

    if not code or not state:
        error_response.headers["location"] = _get_error_redirect("missing_params")
        return error_response

    state_cookie = request.cookies.get(OAUTH_STATE_COOKIE)
    if not state_cookie:
        error_response.headers["location"] = _get_error_redirect("state_expired")
        return error_response

    try:
        stored_payload = parse_oauth_state_payload(state_cookie)
    except ValueError:
        error_response.headers["location"] = _get_error_redirect("invalid_state")
        return error_response

    user_agent = request.headers.get("user-agent", "")
    valid, _ = verify_oauth_state(stored_payload, state, user_agent)
    if not valid:
        error_response.headers["location"] = _get_error_redirect("state_mismatch")
        return error_response

    try:
        tokens = await exchange_code_for_tokens(code)
    except Exception as e:
        logger.warning("Google token exchange failed: %s", type(e).__name__)
        error_response.headers["location"] = _get_error_redirect("token_exchange_failed")
        return error_response

    try:
        google_user = verify_id_token(tokens.get("id_token", ""), expected_nonce=stored_payload["nonce"])
    except ValueError:
        error_response.headers["location"] = _get_error_redirect("token_invalid")
        return error_response

    try:
        user = auth_service.resolve_google_user(db, google_user)
    except auth_service.AccountDisabledError:
        error_response.headers["location"] = _get_error_redirect("account_disabled")
        return error_response

    success_response = RedirectResponse(url=_get_success_redirect(), status_code=302)
    success_response.delete_cookie(OAUTH_STATE_COOKIE, path="/auth")
    _set_session_cookie(success_response, user)
    return success_response


# =============================================================================
# Session Endpoints
# =============================================================================

@router.get("/me")
def get_me(
    session: CallerContext = Depends(get_current_session),
    user: User = Depends(get_current_user),
) -> MeResponse:
    """
    Get current authenticated user info with effective role and scope.

    Used by the frontend to bootstrap auth state on page load.
    """
    return _me_response(user, session)


@router.patch("/me", dependencies=[Depends(require_csrf_header)])
def update_me(
    body: ProfileUpdate,
    session: CallerContext = Depends(get_current_session),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MeResponse:
    """Update display name and (clients only) company name."""
    try:
        user = auth_service.update_profile(
            db, user, display_name=body.display_name, company_name=body.company_name
        )
    except auth_service.SignupError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _me_response(user, session)


@router.post("/me/password", dependencies=[Depends(require_csrf_header)])
def change_password(
    body: PasswordChange,
    response: Response,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Change password; other sessions are revoked and this one is reissued."""
    try:
        user = auth_service.change_password(db, user, body.current_password, body.new_password)
    except auth_service.SignupError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _set_session_cookie(response, user)
    return {"status": "password_changed"}


@router.post("/logout", dependencies=[Depends(require_csrf_header)])
def logout(
    response: Response,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Clear the session cookie and revoke outstanding tokens.

    Requires X-Requested-With header for CSRF protection.
    """
    auth_service.revoke_sessions(db, user)
    response.delete_cookie(COOKIE_NAME, path="/")
    return {"status": "logged_out"}


# =============================================================================
# Helper Functions
# =============================================================================

def _get_success_redirect() -> str:
    """Safe success redirect URL - fixed path, no user input."""
    return f"{settings.FRONTEND_URL.rstrip('/')}/dashboard"


def _get_error_redirect(error_code: str) -> str:
    """Safe error redirect URL - fixed path with error code."""
    return f"{settings.FRONTEND_URL.rstrip('/')}/login?error={error_code}"
