"""
Shared workflow types.

Workflows report outcomes as WorkflowResult values. Presentation (toasts,
dialogs, console output) is left to the caller.
"""

from dataclasses import dataclass
from typing import Any, Optional

from pipedeck.errors import ApiError, PipedeckError
from pipedeck.schemas import PollState


@dataclass(frozen=True)
class WorkflowResult:
    """
    Outcome of a workflow operation.

    Attributes:
        ok: Whether the operation succeeded
        state: Final poll snapshot, for operations that tracked a task
        message: Short human readable summary
        logs: Lines to show the user (progress lines or backend logs)
        data: Operation specific payload
    """
    ok: bool
    state: Optional[PollState] = None
    message: Optional[str] = None
    logs: tuple[str, ...] = ()
    data: Any = None


def describe_error(error: PipedeckError) -> str:
    """Prefer the backend's detail over the generic message."""
    if isinstance(error, ApiError):
        return error.detail
    return str(error)
