"""
Domain errors for the agent core.

Services raise these; the API layer maps each one to an HTTP status via the
exception handler registered in ``workmate.main``.
"""

from typing import Any, Dict, Optional


class WorkmateError(Exception):
    """Base class for all agent-core errors."""
    status_code: int = 500

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message}


class NotFound(WorkmateError):
    """Referenced conversation, agent, business or training row does not exist."""
    status_code = 404


class Unauthorized(WorkmateError):
    """Tenant ownership check failed."""
    status_code = 403


class ValidationError(WorkmateError):
    """A required field is missing or a value is not allowed."""
    status_code = 400


class UpstreamFetchError(WorkmateError):
    """A crawl target returned a non-success status or was unreachable."""
    status_code = 502

    def __init__(self, url: str, upstream_status: Optional[int] = None, reason: str = ""):
        if upstream_status is not None:
            message = f"Failed to fetch website: {upstream_status}"
        else:
            message = f"Failed to fetch website: {reason or 'unreachable'}"
        super().__init__(message, url=url, upstream_status=upstream_status)
        self.url = url
        self.upstream_status = upstream_status

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "upstream_status": self.upstream_status}


class GenerationError(WorkmateError):
    """The language model call failed or returned unusable output."""
    status_code = 502


class RateLimitError(GenerationError):
    """The language model provider rejected the call for rate or quota reasons."""
    status_code = 429


class BatchError(GenerationError):
    """
    One or more batch items exhausted their retries.

    ``results`` holds every slot in input order: the item's value on success,
    the final exception on failure.
    """

    def __init__(self, results: list, failures: Dict[int, BaseException]):
        first_index = min(failures)
        super().__init__(
            f"{len(failures)} of {len(results)} batch items failed "
            f"(first failure at index {first_index}: {failures[first_index]})",
        )
        self.results = results
        self.failures = failures
