"""
Client protocols for the console backend.

These interfaces keep the poller and the workflows free of transport
details, so that:
1. The backend can be swapped (HTTP, in-process, recorded fixtures)
2. Testing is simplified via fake implementations
3. Error classification stays at a single boundary

Implementations:
- BackendClient: aiohttp client for the console REST API
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, runtime_checkable

from pipedeck.schemas import JobDetail, ProgressEntry


@dataclass(frozen=True)
class ActionRequest:
    """
    A state-changing call that may start a background task.

    Attributes:
        method: HTTP method (POST, PUT, ...)
        path: Endpoint path relative to the API root, e.g. "dbt/workspace/"
        payload: JSON body
    """
    method: str
    path: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ActionReceipt:
    """
    Backend response to an ActionRequest.

    Attributes:
        task_id: Background task to track, if the action started one
        success: Whether the backend accepted the action
        body: Full response body
    """
    task_id: Optional[str] = None
    success: bool = True
    body: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_response(cls, body: Any) -> "ActionReceipt":
        """Read task_id (or celery_task_id) and success from a response body."""
        if not isinstance(body, dict):
            return cls(body={})
        task_id = body.get("task_id") or body.get("celery_task_id")
        return cls(
            task_id=str(task_id) if task_id else None,
            success=bool(body.get("success", True)),
            body=body,
        )


@runtime_checkable
class TaskStatusClient(Protocol):
    """Looks up the progress log of an outer task."""

    async def fetch_task_progress(self, task_id: str) -> list[ProgressEntry]:
        """
        Fetch the task's current progress log.

        Raises:
            TransientLookupError: If the lookup failed and may be retried
        """
        ...


@runtime_checkable
class JobDetailClient(Protocol):
    """Looks up a nested job."""

    async def fetch_job_detail(self, job_id: str) -> JobDetail:
        """
        Fetch the authoritative status of a nested job.

        Raises:
            TransientLookupError: If the lookup failed and may be retried
        """
        ...


@runtime_checkable
class ConnectorSchemaClient(Protocol):
    """Looks up connector specifications and source catalogs."""

    async def fetch_connector_schema(self, definition_id: str) -> dict[str, Any]:
        """Fetch the configuration JSON schema of a connector definition."""
        ...

    async def fetch_source_catalog(self, source_id: str) -> dict[str, Any]:
        """Discover the stream catalog of a configured source."""
        ...


@runtime_checkable
class ActionClient(Protocol):
    """Submits state-changing actions."""

    async def submit_action(self, request: ActionRequest) -> ActionReceipt:
        """
        Submit an action.

        Raises:
            TransientError: If the request failed and may be retried
            PermanentError: If the backend rejected the request
        """
        ...
