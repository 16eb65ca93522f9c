"""
Error classes for pipedeck.

These error types enable retry classification at lookup boundaries:
- TransientError: Safe to retry (network issues, 5xx, rate limits, bad bodies)
- PermanentError: Do not retry (rejected requests, missing resources)

Clients raise these errors to signal retry behavior.
The poller catches at the boundary for backoff and retry.

Error handling contract:
- A failed job is a PollState value, not an exception
- A short or malformed progress log means "not ready yet", not an error
- Schema problems fail the whole compile
"""

from typing import Optional


class PipedeckError(Exception):
    """Base exception for pipedeck."""
    pass


class TransientError(PipedeckError):
    """
    Transient error - safe to retry.

    Examples:
    - Connection refused or reset
    - Request timeout
    - Backend returned 5xx or 429
    - Response body could not be decoded
    """
    pass


class TransientLookupError(TransientError):
    """
    A status or job-detail lookup failed transiently.

    Recovered inside the poller with the backoff interval; never surfaced
    to callers as a terminal failure.
    """
    pass


class PermanentError(PipedeckError):
    """
    Permanent error - do not retry.

    Examples:
    - Invalid payload (400)
    - Resource not found (404)
    - Authorization failed (401/403)
    """
    pass


class ApiError(PermanentError):
    """The backend rejected a request."""

    def __init__(self, status: int, detail: str, path: Optional[str] = None):
        self.status = status
        self.detail = detail
        self.path = path
        location = f" {path}" if path else ""
        super().__init__(f"API error ({status}){location}: {detail}")


class CompileError(PipedeckError):
    """Raised when a connector schema cannot be compiled into fields."""
    pass


class SchemaAmbiguityError(CompileError):
    """
    A union in the schema has no resolvable discriminator.

    Raised when a variant lacks a required list, when the intersection of
    required lists is empty, or when no single constant-bearing field can be
    chosen among several common ones.
    """

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"{path}: {message}")


class WorkflowError(PipedeckError):
    """Raised when a workflow is given input it cannot act on."""
    pass
