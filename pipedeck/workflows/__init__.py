"""
pipedeck.workflows - Thin orchestrators over the compiler and the poller.

- ConnectionSyncWorkflow: streams, connections, syncs
- WorkspaceSetupWorkflow: transformation workspace create / edit
- DestinationSetupWorkflow: destination forms and warehouse setup
"""

from .base import WorkflowResult, describe_error
from .connection import ConnectionSyncWorkflow
from .destination import DestinationForm, DestinationSetupWorkflow, WarehouseDraft
from .workspace import WorkspaceParams, WorkspaceSetupWorkflow

__all__ = [
    "WorkflowResult",
    "describe_error",
    "ConnectionSyncWorkflow",
    "DestinationForm",
    "DestinationSetupWorkflow",
    "WarehouseDraft",
    "WorkspaceParams",
    "WorkspaceSetupWorkflow",
]
