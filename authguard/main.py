from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from authguard.core.bruteforce import LockoutTracker
from authguard.core.config import settings
from authguard.core.deps import CredentialVerifier
from authguard.core.middleware import RequestIdMiddleware
from authguard.routers.auth import router as auth_router
from authguard.services.audit import RequestContext, SecurityAuditLog


def reject_all(username: str, password: str) -> bool:
    return False


def create_app(
    credential_verifier: CredentialVerifier | None = None,
    tracker: LockoutTracker | None = None,
    audit_log: SecurityAuditLog | None = None,
) -> FastAPI:
    tracker = tracker or LockoutTracker(
        max_attempts=settings.MAX_LOGIN_ATTEMPTS,
        lockout_seconds=settings.LOCKOUT_SECONDS,
        cleanup_interval_seconds=settings.LOCKOUT_CLEANUP_INTERVAL_SECONDS,
    )
    audit_log = audit_log or SecurityAuditLog(production=settings.is_production)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if credential_verifier is None:
            audit_log.warn("No credential verifier configured, every login will be rejected")
        tracker.start()
        try:
            yield
        finally:
            tracker.stop()

    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
    app.state.lockout_tracker = tracker
    app.state.audit_log = audit_log
    app.state.credential_verifier = credential_verifier or reject_all

    app.add_middleware(RequestIdMiddleware)
    app.include_router(auth_router)

    @app.exception_handler(Exception)
    async def unhandled_exception(request: Request, exc: Exception):
        ctx = RequestContext.from_request(request)
        audit_log.log_error(exc, ctx)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "requestId": ctx.request_id},
        )

    @app.get("/")
    def root():
        return {"status": "ok", "message": f"{settings.APP_NAME} is running"}

    return app


app = create_app()
