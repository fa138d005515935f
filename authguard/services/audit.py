"""Structured security audit logging.

Every call writes exactly one JSON record: security events and warnings to the
info channel (stdout), errors to the error channel (stderr). Context mappings
are sanitized before they reach a sink, and serialization problems never
propagate into the caller's request path.
"""
import json
import logging
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping

from fastapi import Request

from authguard.core.logging import SECURITY, get_error_logger, get_security_logger

SENSITIVE_KEYS = ("password", "token", "secret", "key", "auth", "credential")
REDACTED = "[REDACTED]"
MAX_VALUE_LENGTH = 100
TRUNCATED_SUFFIX = "... [TRUNCATED]"

RETRYABLE_ERROR_NAMES = frozenset(
    {"AuthRetryableFetchError", "ConnectError", "ConnectionError", "ConnectionRefusedError"}
)
RETRYABLE_ERROR_MESSAGES = frozenset({"fetch failed"})
TIMEOUT_MARKERS = ("timeout", "CONNECT_TIMEOUT")
TIMEOUT_SUGGESTIONS = (
    "Check network connectivity",
    "Verify upstream service URL and credentials",
    "Consider increasing timeout settings",
    "Check if the upstream service is operational",
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _compact(values: Mapping[str, Any]) -> dict:
    return {k: v for k, v in values.items() if v is not None}


def sanitize(context: Mapping[Any, Any] | None) -> dict:
    """
    Return a copy of ``context`` that is safe to log.

    Values under keys that look sensitive are replaced with ``[REDACTED]`` and
    long strings are cut to 100 characters.
    """
    sanitized = {}
    if not context:
        return sanitized

    for key, value in context.items():
        key_lower = str(key).lower()
        if any(sensitive in key_lower for sensitive in SENSITIVE_KEYS):
            sanitized[key] = REDACTED
        elif isinstance(value, str) and len(value) > MAX_VALUE_LENGTH:
            sanitized[key] = value[:MAX_VALUE_LENGTH] + TRUNCATED_SUFFIX
        else:
            sanitized[key] = value

    return sanitized


def is_retryable_upstream_error(error: BaseException) -> bool:
    return (
        type(error).__name__ in RETRYABLE_ERROR_NAMES
        or str(error) in RETRYABLE_ERROR_MESSAGES
    )


def is_timeout_error(error: BaseException) -> bool:
    message = str(error)
    return any(marker in message for marker in TIMEOUT_MARKERS)


@dataclass(frozen=True)
class RequestContext:
    request_id: str | None = None
    ip: str | None = None
    method: str | None = None
    url: str | None = None
    user_agent: str | None = None

    @classmethod
    def from_request(cls, request: Request) -> "RequestContext":
        url = request.url.path
        if request.url.query:
            url = f"{url}?{request.url.query}"

        return cls(
            request_id=getattr(request.state, "request_id", None)
            or request.headers.get("X-Request-ID"),
            ip=request.client.host if request.client else None,
            method=request.method,
            url=url,
            user_agent=request.headers.get("User-Agent"),
        )


@dataclass(frozen=True)
class SecurityLogEvent:
    event: str
    email: str | None = None
    ip: str | None = None
    user_agent: str | None = None
    request_id: str | None = None
    details: Mapping[str, Any] | None = None
    timestamp: str = field(default_factory=_now)

    def to_dict(self) -> dict:
        return _compact(
            {
                "event": self.event,
                "email": self.email,
                "ip": self.ip,
                "timestamp": self.timestamp,
                "requestId": self.request_id,
                "userAgent": self.user_agent,
                "details": sanitize(self.details) if self.details is not None else None,
            }
        )


class SecurityAuditLog:
    """
    Formats security events into structured log records.

    ``production`` is resolved once by whoever builds the instance; outside
    production, error records carry stack traces and raw error messages.
    """

    sanitize = staticmethod(sanitize)

    def __init__(
        self,
        production: bool = True,
        logger: logging.Logger | None = None,
        error_logger: logging.Logger | None = None,
    ):
        self.production = production
        self.logger = logger or get_security_logger()
        self.error_logger = error_logger or get_error_logger()

    def emit(self, event: SecurityLogEvent) -> None:
        record = {"level": "security", **event.to_dict()}
        self.logger.log(SECURITY, self._dumps(record))

    def _emit_event(
        self,
        event: str,
        email: str | None,
        context: RequestContext | None,
        details: Mapping[str, Any] | None = None,
        include_user_agent: bool = False,
    ) -> None:
        ctx = context or RequestContext()
        self.emit(
            SecurityLogEvent(
                event=event,
                email=email,
                ip=ctx.ip,
                request_id=ctx.request_id,
                user_agent=ctx.user_agent if include_user_agent else None,
                details=details,
            )
        )

    def failed_login(
        self, email: str, context: RequestContext | None = None, reason: str | None = None
    ) -> None:
        details = {"reason": reason} if reason is not None else None
        self._emit_event("LOGIN_FAILED", email, context, details)

    def successful_login(self, email: str, context: RequestContext | None = None) -> None:
        self._emit_event("LOGIN_SUCCESS", email, context)

    def password_reset_requested(self, email: str, context: RequestContext | None = None) -> None:
        self._emit_event("PASSWORD_RESET_REQUESTED", email, context)

    def user_registered(self, email: str, context: RequestContext | None = None) -> None:
        self._emit_event("USER_REGISTERED", email, context)

    def account_locked(self, email: str, context: RequestContext | None = None) -> None:
        self._emit_event("ACCOUNT_LOCKED", email, context)

    def security_event(
        self,
        event: str,
        context: RequestContext | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        """Suspicious activity that has no dedicated category."""
        self._emit_event(f"SECURITY_{event}", None, context, details, include_user_agent=True)

    def registration_error(
        self, email: str, error: BaseException, context: RequestContext | None = None
    ) -> None:
        details = _compact(
            {
                "errorName": type(error).__name__,
                "errorCode": getattr(error, "code", None),
                "isRetryable": is_retryable_upstream_error(error),
            }
        )
        if not self.production:
            details["errorMessage"] = str(error)

        self._emit_event("REGISTRATION_FAILED", email, context, details)
        self.log_error(error, context, {"operation": "registration", "email": email})

    def log_error(
        self,
        error: BaseException,
        context: RequestContext | None = None,
        extra: Mapping[str, Any] | None = None,
    ) -> None:
        record: dict[str, Any] = {
            "level": "error",
            "timestamp": _now(),
            "name": type(error).__name__,
            "message": str(error),
        }
        if not self.production:
            record["stack"] = "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            )

        if context is not None:
            record.update(
                _compact(
                    {
                        "requestId": context.request_id,
                        "ip": context.ip,
                        "method": context.method,
                        "url": context.url,
                        "userAgent": context.user_agent,
                    }
                )
            )

        if extra:
            record["context"] = sanitize(extra)

        cause = error.__cause__
        if cause is not None:
            record["cause"] = _compact(
                {
                    "name": type(cause).__name__,
                    "message": str(cause),
                    "code": getattr(cause, "code", None),
                }
            )

        if is_retryable_upstream_error(error):
            record["errorType"] = "UPSTREAM_CONNECTION_ERROR"
            record["isRetryable"] = True
            status = getattr(error, "status", None)
            if status is None:
                status = getattr(error, "status_code", None)
            if status is not None:
                record["httpStatus"] = status
            code = getattr(error, "code", None)
            if code is not None:
                record["errorCode"] = code

        if is_timeout_error(error):
            record["errorType"] = "CONNECTION_TIMEOUT"
            record["troubleshooting"] = {"suggestions": list(TIMEOUT_SUGGESTIONS)}

        self.error_logger.error(self._dumps(record, indent=None if self.production else 2))

    def warn(self, message: str, context: Mapping[str, Any] | None = None) -> None:
        record: dict[str, Any] = {"level": "warn", "timestamp": _now(), "message": message}
        if context is not None:
            record["context"] = sanitize(context)
        self.logger.warning(self._dumps(record))

    @staticmethod
    def _dumps(record: Mapping[str, Any], indent: int | None = None) -> str:
        try:
            return json.dumps(record, default=str, ensure_ascii=False, indent=indent)
        except Exception as exc:
            fallback = _compact(
                {
                    "level": record.get("level"),
                    "event": record.get("event") or record.get("name"),
                    "timestamp": record.get("timestamp") or _now(),
                    "serializationError": type(exc).__name__,
                }
            )
            return json.dumps(fallback, default=str)
