"""Auth endpoints.

Endpoints:
- POST /api/auth/signup: Email signup; provisions the user's organization inline
- POST /api/auth/login: Email/password login (session cookies + tokens)
- POST /api/auth/logout: Clears session cookies
- GET /api/auth/callback: Email confirmation link target; re-checks provisioning
- POST /api/auth/ensure-org: Idempotent "make sure I have an organization"
- GET /api/auth/me: Current user and organization

PROVISIONING:
Signup, callback and ensure-org all go through ensure_organization, which
only bootstraps when no membership exists. A failed inline attempt during
signup is logged and tolerated; the callback and the first authenticated
request retry it.

SECURITY:
- emailRedirectTo is FORCED to APP_BASE_URL/api/auth/callback
- Callback redirects only to relative paths (no open redirect)
- Callback failures redirect with a coarse error code, never raw detail
- Passwords and tokens are never logged
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from fastapi.responses import RedirectResponse

from crm_api.auth.identity import AuthUser
from crm_api.auth.org_resolver import ensure_organization
from crm_api.auth.privileged import PrivilegedAccessClient
from crm_api.auth.session_auth import (
    ACCESS_TOKEN_COOKIE,
    REFRESH_TOKEN_COOKIE,
    AuthContext,
    get_auth_client,
    get_current_user,
    get_privileged_client,
    require_auth,
)
from crm_api.config.env import get_app_base_url, use_secure_cookies
from crm_api.context import user_id_var
from crm_api.errors import InternalError, ProvisioningFailed, Unauthenticated, ValidationError
from crm_api.schemas import (
    DataResponse,
    EnsureOrgResult,
    LoginRequest,
    LoginResult,
    LogoutResult,
    MeResult,
    OrgRef,
    SessionOut,
    SignupRequest,
    SignupResult,
    UserOut,
)

router = APIRouter(prefix="/api/auth", tags=["auth"])
logger = logging.getLogger(__name__)

ACCESS_TOKEN_MAX_AGE = 60 * 60 * 24 * 7  # 7 days
REFRESH_TOKEN_MAX_AGE = 60 * 60 * 24 * 30  # 30 days

DEFAULT_NEXT_PATH = "/dashboard"
LOGIN_PATH = "/login"


def _get_redirect_url() -> str:
    """Confirmation email target (APP_BASE_URL/api/auth/callback)."""
    return f"{get_app_base_url()}/api/auth/callback"


def _safe_next(next_path: Optional[str]) -> str:
    """Only same-site relative paths; anything else falls back to the dashboard."""
    if not next_path or not next_path.startswith("/") or next_path.startswith("//") or "\\" in next_path:
        return DEFAULT_NEXT_PATH
    return next_path


def _login_redirect(error_code: str) -> RedirectResponse:
    return RedirectResponse(f"{LOGIN_PATH}?error={error_code}", status_code=status.HTTP_303_SEE_OTHER)


def _set_session_cookies(response: Response, session: Any) -> None:
    secure = use_secure_cookies()
    response.set_cookie(
        ACCESS_TOKEN_COOKIE,
        session.access_token,
        max_age=ACCESS_TOKEN_MAX_AGE,
        httponly=True,
        secure=secure,
        samesite="lax",
        path="/",
    )
    if getattr(session, "refresh_token", None):
        response.set_cookie(
            REFRESH_TOKEN_COOKIE,
            session.refresh_token,
            max_age=REFRESH_TOKEN_MAX_AGE,
            httponly=True,
            secure=secure,
            samesite="lax",
            path="/",
        )


def _user_out(user: AuthUser) -> UserOut:
    return UserOut(id=user.id, email=user.email, metadata=user.metadata)


@router.post(
    "/signup",
    status_code=status.HTTP_201_CREATED,
    response_model=DataResponse[SignupResult],
    response_model_exclude_none=True,
)
def signup(
    request: SignupRequest,
    response: Response,
    auth_client: Any = Depends(get_auth_client),
    client: PrivilegedAccessClient = Depends(get_privileged_client),
) -> DataResponse:
    """Register a new user with email/password.

    Flow:
    1. Supabase creates the user (full_name stored in user metadata)
    2. If Supabase issued a session (confirmation disabled), cookies are set
    3. The user's organization is provisioned inline (best effort)
    4. If no session was issued, the user must follow the confirmation email

    Raises:
        ValidationError: 400, Supabase rejected the signup
        InternalError: 500, Supabase returned no user
    """
    redirect_url = _get_redirect_url()

    # NOTE: Do NOT log password
    logger.info("auth.signup.attempt", extra={"email": request.email, "redirect_to": redirect_url})

    try:
        result = auth_client.auth.sign_up(
            {
                "email": request.email,
                "password": request.password,
                "options": {
                    "data": {"full_name": request.name},
                    "email_redirect_to": redirect_url,
                },
            }
        )
    except Exception as e:
        logger.warning("auth.signup.rejected", extra={"error": str(e), "error_type": type(e).__name__})
        error_msg = str(e).lower()
        if "already registered" in error_msg or "already exists" in error_msg:
            raise ValidationError.for_field("email", "Email already registered") from e
        raise ValidationError("Signup failed") from e

    if not result or not result.user:
        logger.error("auth.signup.no_user")
        raise InternalError("Failed to create user")

    supabase_user = AuthUser.from_supabase(result.user)
    user = AuthUser(
        id=supabase_user.id,
        email=supabase_user.email or request.email,
        metadata={"full_name": request.name, **supabase_user.metadata},
    )
    user_id_var.set(user.id)

    session = getattr(result, "session", None)
    if session is not None:
        _set_session_cookies(response, session)

    try:
        membership = ensure_organization(user, client)
        logger.info("auth.signup.org_ready", extra={"user_id": user.id, "org_id": membership.org_id})
    except ProvisioningFailed:
        # callback / first authenticated request will retry
        logger.warning("auth.signup.org_deferred", extra={"user_id": user.id}, exc_info=True)

    logger.info(
        "auth.signup.success",
        extra={"user_id": user.id, "requires_confirmation": session is None},
    )

    return DataResponse(
        data=SignupResult(
            user=_user_out(user),
            requires_confirmation=True if session is None else None,
        )
    )


@router.post("/login", response_model=DataResponse[LoginResult])
def login(
    request: LoginRequest,
    response: Response,
    auth_client: Any = Depends(get_auth_client),
) -> DataResponse:
    """Login with email/password.

    Raises:
        Unauthenticated: 401, invalid credentials or email not confirmed
        InternalError: 500, Supabase failure
    """
    logger.info("auth.login.attempt", extra={"email": request.email})

    try:
        result = auth_client.auth.sign_in_with_password(
            {"email": request.email, "password": request.password}
        )
    except Exception as e:
        logger.warning("auth.login.error", extra={"error": str(e), "error_type": type(e).__name__})
        error_msg = str(e).lower()
        if "not confirmed" in error_msg or "not verified" in error_msg:
            raise Unauthenticated("Email not confirmed") from e
        if "invalid" in error_msg or "wrong" in error_msg or "not found" in error_msg:
            raise Unauthenticated("Invalid credentials") from e
        raise InternalError("Login failed") from e

    if not result or not result.user or not result.session:
        raise Unauthenticated("Invalid credentials")

    user = AuthUser.from_supabase(result.user)
    _set_session_cookies(response, result.session)

    logger.info("auth.login.success", extra={"user_id": user.id})

    return DataResponse(
        data=LoginResult(
            user=_user_out(user),
            session=SessionOut(
                access_token=result.session.access_token,
                refresh_token=getattr(result.session, "refresh_token", None),
                expires_at=getattr(result.session, "expires_at", None),
            ),
        )
    )


@router.post("/logout", response_model=DataResponse[LogoutResult])
def logout(response: Response, auth_client: Any = Depends(get_auth_client)) -> DataResponse:
    """Sign out and clear session cookies. Always succeeds for the caller."""
    try:
        auth_client.auth.sign_out()
    except Exception as e:
        logger.warning("auth.logout.error", extra={"error_type": type(e).__name__})

    response.delete_cookie(ACCESS_TOKEN_COOKIE, path="/")
    response.delete_cookie(REFRESH_TOKEN_COOKIE, path="/")

    logger.info("auth.logout.success")
    return DataResponse(data=LogoutResult(success=True))


@router.get("/callback", response_class=RedirectResponse)
def auth_callback(
    token_hash: Optional[str] = Query(None),
    otp_type: Optional[str] = Query(None, alias="type"),
    next_path: Optional[str] = Query(None, alias="next"),
    auth_client: Any = Depends(get_auth_client),
    client: PrivilegedAccessClient = Depends(get_privileged_client),
) -> RedirectResponse:
    """Email confirmation link target.

    Exchanges the token for a session, makes sure the user has an
    organization (signup may have failed to create it), sets session cookies
    and redirects to ``next``.

    Failures redirect to /login?error=<code>:
    - invalid_confirmation_link: missing token, or no session issued
    - email_confirmation_failed: Supabase rejected the token
    - organization_setup_failed: provisioning failed
    """
    # NOTE: token_hash is never logged
    if not token_hash or not otp_type:
        logger.info("auth.callback.invalid_link")
        return _login_redirect("invalid_confirmation_link")

    try:
        result = auth_client.auth.verify_otp({"token_hash": token_hash, "type": otp_type})
    except Exception as e:
        logger.warning(
            "auth.callback.verify_failed",
            extra={"otp_type": otp_type, "error_type": type(e).__name__},
        )
        return _login_redirect("email_confirmation_failed")

    if not result or not result.user or not result.session:
        logger.info("auth.callback.no_session", extra={"otp_type": otp_type})
        return _login_redirect("invalid_confirmation_link")

    user = AuthUser.from_supabase(result.user)
    user_id_var.set(user.id)

    try:
        membership = ensure_organization(user, client)
    except ProvisioningFailed:
        logger.error("auth.callback.org_setup_failed", extra={"user_id": user.id}, exc_info=True)
        return _login_redirect("organization_setup_failed")

    redirect = RedirectResponse(_safe_next(next_path), status_code=status.HTTP_303_SEE_OTHER)
    _set_session_cookies(redirect, result.session)

    logger.info(
        "auth.callback.success",
        extra={"user_id": user.id, "org_id": membership.org_id, "otp_type": otp_type},
    )
    return redirect


@router.post("/ensure-org", response_model=DataResponse[EnsureOrgResult])
def ensure_org(
    user: AuthUser = Depends(get_current_user),
    client: PrivilegedAccessClient = Depends(get_privileged_client),
) -> DataResponse:
    """Return the caller's organization id, provisioning one if needed.

    Raises:
        Unauthenticated: 401
        ProvisioningFailed: 500
    """
    membership = ensure_organization(user, client)
    return DataResponse(data=EnsureOrgResult(org_id=membership.org_id))


@router.get("/me", response_model=DataResponse[MeResult])
def me(auth: AuthContext = Depends(require_auth)) -> DataResponse:
    return DataResponse(
        data=MeResult(
            user=_user_out(auth.user),
            org=OrgRef(org_id=auth.org_id, role=auth.role),
        )
    )
