"""
api/routes/v1/auth.py -- Email-code login REST endpoints.

Routes:
  POST /api/v1/auth/send-code    -- mail a 6-digit code (public, rate-limited)
  POST /api/v1/auth/verify-code  -- exchange email + code for a JWT (public, rate-limited)
  GET  /api/v1/auth/profile      -- current profile with roles (requires auth)
  POST /api/v1/auth/refresh      -- re-issue the JWT with a fresh expiry (requires auth)

Security:
  [H2] The two public routes are rate-limited per IP (AUTH_RATE_LIMIT) on top
       of the per-address cooldown CodeIssuer enforces.
  [M5] Cache-Control: no-store on every response that carries a token.
  A wrong, expired or already-used code all produce the same 401 so the
  response does not reveal which case applied.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import AUTH_RATE_LIMIT, limiter
from api.models import SendCodeRequest, VerifyCodeRequest, ok
from auth.codes import CodeIssuer
from auth.dependencies import get_current_subject
from auth.login import LoginVerifier, SessionRefresher
from auth.models import Subject
from directory.service import DirectoryService

# Auth policy:
# - POST /api/v1/auth/send-code:    public -- this is how an unauthenticated client starts a login
# - POST /api/v1/auth/verify-code:  public -- completes the login
# - GET  /api/v1/auth/profile:      requires auth (get_current_subject)
# - POST /api/v1/auth/refresh:      requires auth (get_current_subject)
router = APIRouter()


def _no_store(content: dict) -> JSONResponse:
    resp = JSONResponse(status_code=200, content=content)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/send-code")
@limiter.limit(AUTH_RATE_LIMIT)  # [H2] must sit BELOW @router so the limited wrapper is what gets registered
def send_code(request: Request, body: SendCodeRequest) -> dict:
    """Mail a fresh verification code to the given address.

    429 while the address is in its cooldown window; 502 if the mail server
    refuses the message.
    """
    issuer: CodeIssuer = request.app.state.code_issuer
    issuer.issue(body.email)
    return ok(message="Verification code sent")


@router.post("/auth/verify-code")
@limiter.limit(AUTH_RATE_LIMIT)  # [H2]
def verify_code(request: Request, body: VerifyCodeRequest) -> JSONResponse:
    """Exchange a valid code for an access token and the user's profile.

    A first successful login creates the profile.
    """
    verifier: LoginVerifier = request.app.state.login_verifier
    result = verifier.verify(
        body.email,
        body.code,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    return _no_store(ok({"access_token": result.access_token, "user": result.user}, "Login successful"))


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/profile")
def profile(request: Request, subject: Subject = Depends(get_current_subject)) -> dict:
    """Return the caller's profile with its roles."""
    directory: DirectoryService = request.app.state.directory
    return ok(directory.get_user(subject.profile_id))


@router.post("/auth/refresh")
def refresh(request: Request, subject: Subject = Depends(get_current_subject)) -> JSONResponse:
    """Re-issue the access token with the same claims and a fresh expiry."""
    refresher: SessionRefresher = request.app.state.session_refresher
    return _no_store(ok(refresher.refresh(subject), "Token refreshed"))
