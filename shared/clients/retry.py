"""Retry helpers for transient network errors of the HTTP clients.

Retries:
- httpx.TimeoutException (Connect/Read/Write/PoolTimeout)
- httpx.NetworkError (Connect/Read/Write/CloseError)
- httpx.RemoteProtocolError (server sent invalid HTTP)

Everything else propagates, including local protocol and proxy errors and the
BackendRequestError that ClientInterface.do_request() raises for HTTP error
statuses.
"""

import logging

import httpx
import tenacity


def is_retryable_httpx_error(exc: BaseException) -> bool:
    """Check if exception is a retryable transient httpx error."""
    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError)):
        return True
    if isinstance(exc, httpx.RemoteProtocolError):
        return True
    return False


def build_linear_retrying(attempts: int, delay: float, logger: logging.Logger, action: str) -> tenacity.AsyncRetrying:
    """Build an AsyncRetrying that waits delay, 2*delay, 3*delay, ... between attempts.

    Args:
        attempts (int): Total number of attempts, including the first one.
        delay (float): Base delay in seconds.
        logger: Logger used for the retry warnings.
        action (str): Human readable name of the retried operation, for the log.

    Returns:
        tenacity.AsyncRetrying: Call it with the coroutine function and its arguments.
    """

    def _log_retry(retry_state: tenacity.RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if exc is None:
            return
        logger.warning(
            "[RETRY] %s attempt %d of %d failed: %s: %s",
            action, retry_state.attempt_number, attempts, type(exc).__name__, exc,
        )

    return tenacity.AsyncRetrying(
        retry=tenacity.retry_if_exception(is_retryable_httpx_error),
        stop=tenacity.stop_after_attempt(max(attempts, 1)),
        wait=tenacity.wait_incrementing(start=delay, increment=delay),
        before_sleep=_log_retry,
        reraise=True,
    )
