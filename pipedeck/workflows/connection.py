"""
Connection workflows - stream selection, connection creation and syncs.

A sync is dispatched to a task queue; the returned task id is tracked with
JobLinkedProgress until the nested sync job succeeds or fails.
"""

import logging
from typing import Optional, Union

from pipedeck.clients import ActionClient, ActionRequest, ConnectorSchemaClient
from pipedeck.config import PipedeckConfig
from pipedeck.errors import PipedeckError, WorkflowError
from pipedeck.poller import JobLinkedProgress, JobStatusPoller, Listener, TrackingHandle
from pipedeck.schemas import ConnectionDraft, SourceStream, any_selected, parse_catalog

from .base import WorkflowResult, describe_error


logger = logging.getLogger(__name__)


class ConnectionSyncWorkflow:
    """
    Orchestrates connection creation and syncs.

    Usage:
        workflow = ConnectionSyncWorkflow(client, poller)
        result = await workflow.sync(block_id)
        workflow.close()
    """

    def __init__(
        self,
        client: Union[ActionClient, ConnectorSchemaClient],
        poller: JobStatusPoller,
    ):
        """
        Initialize the workflow.

        Args:
            client: Implements ActionClient and ConnectorSchemaClient
            poller: Poller used to track sync tasks
        """
        self._client = client
        self._poller = poller
        self._handles: list[TrackingHandle] = []

    @classmethod
    def from_config(cls, client, config: PipedeckConfig) -> "ConnectionSyncWorkflow":
        """Build the workflow with a poller configured from settings."""
        poller = JobStatusPoller(
            tasks=client,
            jobs=client,
            policy=JobLinkedProgress(),
            interval=config.poll_interval_s,
            backoff_interval=config.poll_backoff_s,
        )
        return cls(client, poller)

    async def discover_streams(self, source_id: str) -> list[SourceStream]:
        """Discover a source's streams, all unselected and in full refresh / append mode."""
        catalog = await self._client.fetch_source_catalog(source_id)
        return parse_catalog(catalog)

    async def create_connection(self, draft: ConnectionDraft) -> WorkflowResult:
        """
        Create a connection from a draft.

        Raises:
            WorkflowError: If no stream is selected
        """
        if not any_selected(list(draft.streams)):
            raise WorkflowError("Select at least one stream before creating a connection")

        request = ActionRequest("POST", "airbyte/connections/", draft.to_payload())
        try:
            receipt = await self._client.submit_action(request)
        except PipedeckError as e:
            logger.error(f"Creating connection {draft.name} failed: {e}")
            return WorkflowResult(ok=False, message=describe_error(e))

        return WorkflowResult(ok=True, message="created connection", data=receipt.body)

    async def start_sync(
        self,
        block_id: str,
        listener: Optional[Listener] = None,
    ) -> Optional[TrackingHandle]:
        """
        Trigger a sync and start tracking its task.

        Args:
            block_id: Connection block identifier
            listener: Called with every published snapshot

        Returns:
            TrackingHandle, or None if the backend started the sync without a task id

        Raises:
            WorkflowError: If the backend did not start the sync
            PipedeckError: If the request failed
        """
        request = ActionRequest("POST", f"airbyte/connections/{block_id}/sync/", {})
        receipt = await self._client.submit_action(request)
        if not receipt.success:
            raise WorkflowError(f"Sync of connection {block_id} was not started")

        logger.info(f"Sync started for connection {block_id}")
        if receipt.task_id is None:
            return None

        handle = self._poller.track(receipt.task_id, listener=listener)
        self._handles = [h for h in self._handles if not h.done]
        self._handles.append(handle)
        return handle

    async def sync(self, block_id: str, listener: Optional[Listener] = None) -> WorkflowResult:
        """Trigger a sync and wait for its terminal state."""
        try:
            handle = await self.start_sync(block_id, listener=listener)
        except PipedeckError as e:
            return WorkflowResult(ok=False, message=describe_error(e))

        if handle is None:
            return WorkflowResult(ok=True, message="sync started")

        state = await handle.wait()
        if not state.is_terminal:
            return WorkflowResult(ok=False, state=state, message="sync tracking cancelled")
        if state.succeeded:
            return WorkflowResult(ok=True, state=state, message="sync succeeded", data=state.result)
        return WorkflowResult(
            ok=False,
            state=state,
            message=state.failure_message or "sync failed",
            logs=state.logs,
        )

    def close(self) -> None:
        """Cancel every tracking session this workflow started."""
        for handle in self._handles:
            handle.cancel()
        self._handles.clear()
