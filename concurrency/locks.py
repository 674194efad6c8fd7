"""
Pattern Relay - Operation Guard
Per-user single-flight guard with acquisition tracking and statistics
"""

import threading
import time
from datetime import datetime
from typing import Dict, Optional, Any
from dataclasses import dataclass
from contextlib import contextmanager

from core.errors import OperationInProgressError
from core.logger import log_warning, log_section, log_subsection


@dataclass
class GuardStats:
    """Statistics for the operation guard."""
    acquisitions: int = 0
    rejections: int = 0  # Second operation while one was in flight
    total_hold_time: float = 0.0
    max_hold_time: float = 0.0
    last_acquired: Optional[datetime] = None
    last_released: Optional[datetime] = None


@dataclass
class _InFlight:
    operation: str
    thread_id: Optional[int]
    started: float


class OperationGuard:
    """
    Rejects a second in-flight pattern operation for the same user.

    Different users never block each other. Navigation and menu actions
    are not guarded; only operations that call the generation backend.
    """

    def __init__(self):
        self._meta_lock = threading.Lock()  # Protects the dictionaries
        self._in_flight: Dict[str, _InFlight] = {}
        self._stats = GuardStats()

    @contextmanager
    def hold(self, user_id: str, operation: str = "pattern"):
        """
        Hold the user's single-flight slot for the duration of the block.

        Args:
            user_id: User the operation runs for
            operation: Label for logs and the rejection error

        Raises:
            OperationInProgressError: If the user already has an operation running
        """
        with self._meta_lock:
            current = self._in_flight.get(user_id)
            if current is not None:
                self._stats.rejections += 1
                log_warning(
                    f"Rejected '{operation}' for {user_id}: "
                    f"'{current.operation}' still running"
                )
                raise OperationInProgressError(user_id, current.operation)

            started = time.time()
            self._in_flight[user_id] = _InFlight(
                operation=operation,
                thread_id=threading.current_thread().ident,
                started=started
            )
            self._stats.acquisitions += 1
            self._stats.last_acquired = datetime.now()

        try:
            yield
        finally:
            hold_time = time.time() - started
            with self._meta_lock:
                self._in_flight.pop(user_id, None)
                self._stats.total_hold_time += hold_time
                self._stats.max_hold_time = max(self._stats.max_hold_time, hold_time)
                self._stats.last_released = datetime.now()

    def is_busy(self, user_id: str) -> bool:
        """Check if the user has an operation in flight."""
        with self._meta_lock:
            return user_id in self._in_flight

    def get_stats(self) -> Dict[str, Any]:
        """
        Get guard statistics.

        Returns:
            Dict of counters and timings
        """
        with self._meta_lock:
            stats = self._stats
            return {
                "acquisitions": stats.acquisitions,
                "rejections": stats.rejections,
                "avg_hold_time": stats.total_hold_time / max(stats.acquisitions, 1),
                "max_hold_time": stats.max_hold_time,
                "in_flight": len(self._in_flight),
            }

    def log_stats(self) -> None:
        """Log current guard statistics."""
        data = self.get_stats()

        log_section("Operation Guard", "🔒")
        log_subsection(
            f"{data['acquisitions']} operations, "
            f"{data['rejections']} rejected, "
            f"avg hold {data['avg_hold_time']:.1f}s, "
            f"max hold {data['max_hold_time']:.1f}s"
        )


# Global guard instance
_operation_guard: Optional[OperationGuard] = None


def get_operation_guard() -> OperationGuard:
    """Get the global operation guard instance."""
    global _operation_guard
    if _operation_guard is None:
        _operation_guard = OperationGuard()
    return _operation_guard


def init_operation_guard() -> OperationGuard:
    """Initialize the global operation guard."""
    global _operation_guard
    _operation_guard = OperationGuard()
    return _operation_guard
