"""Admission control: cap the number of requests processed at once.

Excess load is rejected immediately rather than queued; callers retry.
"""

import logging
import threading

logger = logging.getLogger(__name__)


class AdmissionController:
    def __init__(self, max_concurrent=20):
        """
        Args:
            max_concurrent: Maximum number of requests between admission
                and completion at any moment.
        """
        if max_concurrent < 1:
            raise ValueError('max_concurrent must be at least 1')
        self.max_concurrent = max_concurrent
        self.active_requests = 0
        self.peak = 0
        self.rejected = 0
        self.lock = threading.Lock()

    def enter(self, exchange) -> bool:
        """Try to admit a request. Returns False when at the ceiling."""
        with self.lock:
            if self.active_requests >= self.max_concurrent:
                self.rejected += 1
                active = self.active_requests
                admitted = False
            else:
                self.active_requests += 1
                self.peak = max(self.peak, self.active_requests)
                exchange.admitted = True
                admitted = True
        if not admitted:
            logger.warning(
                'Rejecting %s %s: %d/%d requests active',
                exchange.method, exchange.path, active, self.max_concurrent,
            )
        return admitted

    def exit(self, exchange) -> None:
        """Release the slot held by an admitted request (at most once)."""
        with self.lock:
            if not exchange.admitted:
                return
            exchange.admitted = False
            self.active_requests -= 1

    def status(self) -> dict:
        with self.lock:
            return {
                'active_requests': self.active_requests,
                'max_concurrent': self.max_concurrent,
                'slots_available': self.max_concurrent - self.active_requests,
                'peak': self.peak,
                'rejected': self.rejected,
            }
