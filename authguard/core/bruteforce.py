"""In-memory brute-force protection.

Tracks consecutive failed login attempts per identifier (email, account id)
and locks the identifier out once the threshold is reached. State lives in
process memory only; every instance owns its own map.
"""
import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 5
LOCKOUT_SECONDS = 15 * 60
CLEANUP_INTERVAL_SECONDS = 60 * 60


@dataclass
class AttemptRecord:
    count: int = 0
    locked_until: Optional[float] = None


class LockoutTracker:
    """
    Failed-attempt counter with time-bounded lockout.

    All public operations are atomic with respect to the internal map,
    including the periodic sweep, which runs on a daemon thread between
    start() and stop().
    """

    def __init__(
        self,
        max_attempts: int = MAX_ATTEMPTS,
        lockout_seconds: int = LOCKOUT_SECONDS,
        cleanup_interval_seconds: float = CLEANUP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.max_attempts = max_attempts
        self.lockout_seconds = lockout_seconds
        self.cleanup_interval = cleanup_interval_seconds
        self._clock = clock
        self._records: Dict[str, AttemptRecord] = {}
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._sweep_thread: Optional[threading.Thread] = None

    def is_locked(self, identifier: str) -> bool:
        with self._lock:
            record = self._records.get(identifier)
            if record is None or record.locked_until is None:
                return False

            if self._clock() > record.locked_until:
                # expired: forget the whole history, not just the lock
                del self._records[identifier]
                return False

            return True

    def record_failed_attempt(self, identifier: str) -> bool:
        """
        Count one failure. Returns True if the identifier is now locked.

        Every failure at or past the threshold resets the lockout window to
        start from now, so failures during a lockout extend it.
        """
        with self._lock:
            record = self._records.get(identifier)
            if record is None:
                record = AttemptRecord()
                self._records[identifier] = record

            record.count += 1

            if record.count >= self.max_attempts:
                record.locked_until = self._clock() + self.lockout_seconds
                logger.info(
                    "Lockout set for identifier after %d failed attempts", record.count
                )
                return True

            return False

    def clear_attempts(self, identifier: str) -> None:
        with self._lock:
            self._records.pop(identifier, None)

    def get_remaining_lockout_time(self, identifier: str) -> int:
        """Minutes left on the lockout, rounded up. 0 when not locked."""
        with self._lock:
            record = self._records.get(identifier)
            if record is None or record.locked_until is None:
                return 0
            remaining = record.locked_until - self._clock()

        return max(0, math.ceil(remaining / 60))

    def get_failed_attempts(self, identifier: str) -> int:
        with self._lock:
            record = self._records.get(identifier)
            return record.count if record else 0

    def sweep(self) -> int:
        """Drop records whose lockout has expired. Returns how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [
                identifier
                for identifier, record in self._records.items()
                if record.locked_until is not None and now > record.locked_until
            ]
            for identifier in expired:
                del self._records[identifier]

        if expired:
            logger.info("Lockout sweep removed %d expired entries", len(expired))
        return len(expired)

    def start(self) -> None:
        """Start the periodic sweep. No-op if already running."""
        if self._sweep_thread is not None and self._sweep_thread.is_alive():
            return

        # one stop event per sweep thread
        self._stop_event = threading.Event()
        self._sweep_thread = threading.Thread(
            target=self._sweep_loop,
            args=(self._stop_event,),
            name="lockout-sweep",
            daemon=True,
        )
        self._sweep_thread.start()
        logger.debug("Started lockout sweep every %ss", self.cleanup_interval)

    def stop(self, timeout: float = 1.0) -> None:
        self._stop_event.set()
        if self._sweep_thread is not None:
            self._sweep_thread.join(timeout=timeout)
            if self._sweep_thread.is_alive():
                logger.warning("Lockout sweep still finishing after stop")
            self._sweep_thread = None
        logger.debug("Stopped lockout sweep")

    @property
    def running(self) -> bool:
        return self._sweep_thread is not None and self._sweep_thread.is_alive()

    def _sweep_loop(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self.cleanup_interval):
            try:
                self.sweep()
            except Exception:
                logger.exception("Lockout sweep failed")

    def __enter__(self) -> "LockoutTracker":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()
