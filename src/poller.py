"""
Wait-until-done primitive for Compute Engine long-running operations.
"""

import logging
import time
from typing import Optional

from errors import (
    CONDITION_NOT_MET,
    NOT_FOUND,
    OPERATION_ERROR_CODES,
    Conflict,
    OperationFailed,
    OperationLost,
    OperationTimeout,
    PlatformError,
    TransportFailure,
)
from models import OperationHandle, OperationStatus, ResourceRef

logger = logging.getLogger(__name__)


class OperationPoller:
    """Polls an operation until it is DONE or a deadline passes."""

    def __init__(
        self,
        api,
        timeout: float = 600,
        poll_interval: float = 2.0,
        max_poll_interval: float = 10.0,
        backoff_factor: float = 1.5,
        max_fetch_failures: int = 3,
    ):
        """
        Args:
            api: Client exposing ``get_operation(handle)``
            timeout: Default deadline per operation (seconds)
            poll_interval: First delay between polls (seconds)
            max_poll_interval: Upper bound for the delay between polls (seconds)
            backoff_factor: Growth factor applied to the delay after each poll
            max_fetch_failures: Consecutive transport failures tolerated
        """
        self.api = api
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.max_poll_interval = max_poll_interval
        self.backoff_factor = backoff_factor
        self.max_fetch_failures = max_fetch_failures

    @classmethod
    def from_config(cls, api, config) -> "OperationPoller":
        return cls(
            api,
            timeout=config.timeout,
            poll_interval=config.poll_interval,
            max_poll_interval=config.max_poll_interval,
            backoff_factor=config.backoff_factor,
            max_fetch_failures=config.max_fetch_failures,
        )

    def await_done(
        self, handle: OperationHandle, timeout: Optional[float] = None
    ) -> ResourceRef:
        """
        Block until the operation is DONE.

        Args:
            handle: Operation returned by a mutating call
            timeout: Deadline in seconds; defaults to the poller's timeout

        Returns:
            Reference to the operation's target resource

        Raises:
            OperationFailed: DONE with errors (Conflict for CONDITION_NOT_MET)
            OperationTimeout: deadline passed before DONE
            OperationLost: the operation record no longer exists
            TransportFailure: fetching failed too many times in a row
        """
        budget = self.timeout if timeout is None else timeout
        start = time.monotonic()
        deadline = start + budget
        interval = self.poll_interval
        failures = 0

        while True:
            try:
                op = self.api.get_operation(handle, deadline=deadline)
                failures = 0
            except TransportFailure as e:
                failures += 1
                if failures > self.max_fetch_failures:
                    logger.error(
                        f"Giving up polling {handle.name} after {failures} failed fetches"
                    )
                    raise
                logger.warning(
                    f"Failed polling {handle.name} ({failures}/{self.max_fetch_failures}): {e}"
                )
                op = None
            except PlatformError as e:
                if e.code == NOT_FOUND:
                    raise OperationLost(handle) from e
                raise

            if op is not None:
                status = OperationStatus(op.get("status", "PENDING"))
                if status is OperationStatus.DONE:
                    return self._outcome(handle, op)
                logger.debug(f"Operation {handle.name} is {status.value}")

            now = time.monotonic()
            if now >= deadline:
                raise OperationTimeout(handle, now - start)

            time.sleep(min(interval, deadline - now))
            interval = min(interval * self.backoff_factor, self.max_poll_interval)

    def _outcome(self, handle: OperationHandle, op: dict) -> ResourceRef:
        errors = (op.get("error") or {}).get("errors") or []
        if errors:
            first = errors[0]
            code = first.get("code", "UNKNOWN")
            code = OPERATION_ERROR_CODES.get(code, code)
            message = first.get("message", "")
            logger.debug(f"Operation {handle.name} failed: {code} {message}")
            if code == CONDITION_NOT_MET:
                raise Conflict(message, operation=handle)
            raise OperationFailed(code, message, operation=handle)

        target = op.get("targetLink") or handle.target_link
        logger.debug(f"Operation {handle.name} DONE ({target})")
        return ResourceRef.from_link(target)
