import json
import logging

import pytest

from authguard.core.bruteforce import LockoutTracker
from authguard.services.audit import SecurityAuditLog

INFO_LOGGER = "tests.audit"
ERROR_LOGGER = "tests.audit.errors"


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tracker(clock):
    return LockoutTracker(max_attempts=5, lockout_seconds=15 * 60, clock=clock)


@pytest.fixture
def make_audit():
    """Audit logs writing to propagating test loggers, so caplog sees both channels."""

    def make(production: bool = True) -> SecurityAuditLog:
        return SecurityAuditLog(
            production=production,
            logger=logging.getLogger(INFO_LOGGER),
            error_logger=logging.getLogger(ERROR_LOGGER),
        )

    return make


@pytest.fixture
def records(caplog):
    """Return the JSON records written by the audit log so far, per channel."""
    caplog.set_level(logging.DEBUG)

    def collect(channel: str = INFO_LOGGER) -> list[dict]:
        return [
            json.loads(r.getMessage())
            for r in caplog.records
            if r.name == channel
        ]

    return collect
