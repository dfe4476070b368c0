"""
Cooperative cancellation for long-running import phases.

Each phase (reconcile, enrich, commit, image persistence) receives its
own token; the pipeline checks it between chunks and waves. In-flight
requests are allowed to finish.
"""

from typing import Optional

from exceptions import ImportCancelledError


class CancellationToken:
    """Flag shared between a running phase and whoever may cancel it."""

    def __init__(self, phase: str):
        self.phase = phase
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self, details: Optional[dict] = None) -> None:
        """Raise ImportCancelledError once cancel() has been called."""
        if self._cancelled:
            raise ImportCancelledError(self.phase, details=details)


def check_cancelled(token: Optional[CancellationToken], details: Optional[dict] = None) -> None:
    """raise_if_cancelled() that tolerates a missing token."""
    if token is not None:
        token.raise_if_cancelled(details)
