"""
pipedeck.clients - Collaborators the poller and workflows depend on.

Protocols:
- TaskStatusClient: progress log of an outer task
- JobDetailClient: authoritative status of a nested job
- ConnectorSchemaClient: connector specifications and source catalogs
- ActionClient: state-changing actions that may start a task

BackendClient implements all four over HTTP.
"""

from .base import (
    ActionClient,
    ActionReceipt,
    ActionRequest,
    ConnectorSchemaClient,
    JobDetailClient,
    TaskStatusClient,
)
from .http import BackendClient

__all__ = [
    "ActionClient",
    "ActionReceipt",
    "ActionRequest",
    "ConnectorSchemaClient",
    "JobDetailClient",
    "TaskStatusClient",
    "BackendClient",
]
