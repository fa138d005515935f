from typing import Callable

from fastapi import Request

from authguard.core.bruteforce import LockoutTracker
from authguard.services.audit import RequestContext, SecurityAuditLog

# (username, password) -> valid?
CredentialVerifier = Callable[[str, str], bool]


def get_lockout_tracker(request: Request) -> LockoutTracker:
    return request.app.state.lockout_tracker


def get_audit_log(request: Request) -> SecurityAuditLog:
    return request.app.state.audit_log


def get_credential_verifier(request: Request) -> CredentialVerifier:
    return request.app.state.credential_verifier


def get_request_context(request: Request) -> RequestContext:
    return RequestContext.from_request(request)
