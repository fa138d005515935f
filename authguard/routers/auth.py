from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import OAuth2PasswordRequestForm

from authguard.core.bruteforce import LockoutTracker
from authguard.core.deps import (
    CredentialVerifier,
    get_audit_log,
    get_credential_verifier,
    get_lockout_tracker,
    get_request_context,
)
from authguard.services.audit import RequestContext, SecurityAuditLog

router = APIRouter(prefix="/auth", tags=["Auth"])


def _locked_response(tracker: LockoutTracker, identifier: str) -> HTTPException:
    minutes = tracker.get_remaining_lockout_time(identifier)
    unit = "minute" if minutes == 1 else "minutes"
    return HTTPException(
        status_code=429,
        detail=f"Account temporarily locked. Try again in {minutes} {unit}.",
        headers={"Retry-After": str(max(minutes, 1) * 60)},
    )


@router.post("/login")
def login(
    form: OAuth2PasswordRequestForm = Depends(),
    tracker: LockoutTracker = Depends(get_lockout_tracker),
    audit: SecurityAuditLog = Depends(get_audit_log),
    verify: CredentialVerifier = Depends(get_credential_verifier),
    ctx: RequestContext = Depends(get_request_context),
):
    identifier = form.username.strip().lower()

    if tracker.is_locked(identifier):
        audit.security_event(
            "LOCKED_ACCOUNT_LOGIN_ATTEMPT",
            ctx,
            {"email": identifier, "attempts": tracker.get_failed_attempts(identifier)},
        )
        raise _locked_response(tracker, identifier)

    if not verify(form.username, form.password):
        locked_now = tracker.record_failed_attempt(identifier)
        audit.failed_login(identifier, ctx, reason="invalid_credentials")
        if locked_now:
            audit.account_locked(identifier, ctx)
            raise _locked_response(tracker, identifier)
        raise HTTPException(status_code=401, detail="Invalid username or password")

    tracker.clear_attempts(identifier)
    audit.successful_login(identifier, ctx)
    return {"status": "ok", "username": identifier}
