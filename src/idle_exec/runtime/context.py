"""Cancellation context and idle timer for one invocation.

idle-exec runtime module v0.1.0

Both are built on a single anyio.CancelScope:
- The idle timer moves the scope's deadline forward on every output line
- External cancellation calls cancel() on the same scope with a reason tag

Moving the deadline is a plain attribute assignment on the event loop, so
both stream readers can reset the timer without any locking.
"""

from __future__ import annotations

import logging

import anyio

from ..types import CancelReason

__all__ = ["ExecutionContext", "IdleTimer"]

logger = logging.getLogger(__name__)


class IdleTimer:
    """Resettable countdown that cancels its scope after a period of silence.

    Attributes:
        timeout: Seconds allowed between two resets
    """

    def __init__(self, scope: anyio.CancelScope, timeout: float) -> None:
        self._scope = scope
        self.timeout = timeout

    def reset(self) -> None:
        """Re-arm the countdown to `timeout` seconds from now.

        Does nothing once the scope has been cancelled; cancellation is final.
        """
        if self._scope.cancel_called:
            return
        self._scope.deadline = anyio.current_time() + self.timeout

    @property
    def remaining(self) -> float:
        """Seconds left before the timer fires (0 once fired)."""
        if self._scope.cancel_called:
            return 0.0
        return max(0.0, self._scope.deadline - anyio.current_time())


class ExecutionContext:
    """Cancel signal shared by the supervisor loop and its tasks.

    Example:
        context = ExecutionContext(idle_timeout=5.0)
        with context.scope:
            ...  # work; context.timer.reset() on progress
        if context.cancelled:
            print(context.reason)

    Attributes:
        scope: Cancel scope the supervised work runs in
        timer: Idle timer moving the scope's deadline
    """

    def __init__(self, idle_timeout: float) -> None:
        self.scope = anyio.CancelScope(deadline=anyio.current_time() + idle_timeout)
        self.timer = IdleTimer(self.scope, idle_timeout)
        self._reason: CancelReason | None = None

    def cancel(self, reason: CancelReason = CancelReason.EXTERNAL) -> None:
        """Cancel the context. The first cause recorded wins."""
        if self.scope.cancel_called:
            return
        logger.debug(f"Cancelling execution context: reason={reason.value}")
        self._reason = reason
        self.scope.cancel()

    @property
    def cancelled(self) -> bool:
        return self.scope.cancel_called

    @property
    def reason(self) -> CancelReason | None:
        """Cause of cancellation, None while still running.

        The scope cancels itself when its deadline passes without recording
        a reason, which is how an idle timeout shows up here.
        """
        if not self.scope.cancel_called:
            return None
        return self._reason or CancelReason.TIMEOUT
