"""Retry predicate shared by the outbound HTTP clients."""

import httpx


def is_transient(exc: BaseException) -> bool:
    """Timeouts, connection errors, 429 and 5xx are worth another try."""
    if isinstance(exc, (httpx.TimeoutException, httpx.TransportError)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return False
