"""Error taxonomy shared by fetchers, steps and the workflow runtime.

- ``FatalError``: permanent for this attempt; the step is not retried.
- ``RetryableError``: transient; the step is retried with backoff.
- ``PersistenceError``: a database write failed; not retried by the step,
  the runtime retries the whole run instead.
"""

import asyncio
import socket
import ssl

import dns.exception
import httpx
from sqlalchemy.exc import SQLAlchemyError

# Error codes carried by FetchOutcome and the exceptions below
DNS_ERROR = "dns_error"
TLS_ERROR = "tls_error"
CONNECTION_FAILED = "connection_failed"
FETCH_ERROR = "fetch_error"
TIMEOUT = "timeout"
SNAPSHOT_NOT_FOUND = "snapshot_not_found"


class WorkflowError(Exception):
    """Base class for errors raised inside workflow steps."""

    def __init__(self, message: str, code: str = FETCH_ERROR):
        super().__init__(message)
        self.code = code


class FatalError(WorkflowError):
    """Permanent failure: do not retry the step."""


class RetryableError(WorkflowError):
    """Transient failure: retry the step with backoff."""

    def __init__(self, message: str, code: str = FETCH_ERROR, retry_after: float | None = None):
        super().__init__(message, code)
        self.retry_after = retry_after


class PersistenceError(WorkflowError):
    """A database write failed."""

    def __init__(self, message: str):
        super().__init__(message, code="persistence_error")


def classify_fetch_error(err: BaseException, context: str) -> WorkflowError:
    """Map a network exception to the workflow error taxonomy.

    Args:
        err: Exception raised by a DNS, TLS or HTTP call
        context: Short description used in the error message (e.g. "dns lookup")

    Returns:
        FatalError for DNS/TLS/connection failures, RetryableError otherwise
    """
    if isinstance(err, WorkflowError):
        return err

    message = f"{context}: {type(err).__name__}: {err}"

    # Timeouts first: several of them subclass OSError
    if isinstance(err, httpx.TimeoutException | dns.exception.Timeout | asyncio.TimeoutError):
        return RetryableError(message, code=TIMEOUT)
    if isinstance(err, dns.exception.DNSException):
        return FatalError(message, code=DNS_ERROR)
    if isinstance(err, ssl.SSLError | ssl.CertificateError):
        return FatalError(message, code=TLS_ERROR)
    if isinstance(err, socket.gaierror):
        return FatalError(message, code=DNS_ERROR)
    if isinstance(err, httpx.ConnectError | OSError):
        return FatalError(message, code=CONNECTION_FAILED)
    if isinstance(err, SQLAlchemyError):
        return PersistenceError(message)
    return RetryableError(message, code=FETCH_ERROR)
