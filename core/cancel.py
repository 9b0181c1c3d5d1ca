"""
core/cancel.py
Run-scoped cooperative cancellation.

Workers check the token before every connection attempt and every
fingerprint stage; nothing is force-killed, in-flight operations finish
within their own timeout and then stop picking up work.
"""

from __future__ import annotations

from typing import Optional


class ScanCancelled(Exception):
    """Raised inside a stage when the run has been cancelled."""


class CancelToken:

    def __init__(self) -> None:
        self._cancelled = False
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        """Safe to call from a signal handler on the loop thread."""
        if self._cancelled:
            return
        self._cancelled = True
        self.reason = reason

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise ScanCancelled(self.reason)
