"""
Workspace workflows - create or edit the transformation workspace.

Building a workspace is dispatched to a task queue. Its progress entries
report their own status, so the task is tracked with FinalEntryProgress.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from pipedeck.clients import ActionClient, ActionRequest
from pipedeck.config import PipedeckConfig
from pipedeck.errors import PipedeckError
from pipedeck.poller import FinalEntryProgress, JobStatusPoller, Listener, TrackingHandle

from .base import WorkflowResult, describe_error


logger = logging.getLogger(__name__)

DEFAULT_DBT_VERSION = "1.4.5"
PROFILE_NAME = "dbt"

SETUP_STARTED = "Setting up workspace..."
SETUP_COMPLETED = "Setup completed"


@dataclass(frozen=True)
class WorkspaceParams:
    """Git remote and target schema of a transformation workspace."""
    gitrepo_url: str
    schema: str
    gitrepo_access_token: Optional[str] = None


class WorkspaceSetupWorkflow:
    """
    Orchestrates workspace creation and edits.

    Usage:
        workflow = WorkspaceSetupWorkflow.from_config(client, config)
        result = await workflow.create(WorkspaceParams(url, "analytics"))
    """

    def __init__(
        self,
        client: ActionClient,
        poller: JobStatusPoller,
        dbt_version: str = DEFAULT_DBT_VERSION,
        initial_delay: float = 1.0,
    ):
        self._client = client
        self._poller = poller
        self._dbt_version = dbt_version
        self._initial_delay = initial_delay
        self._handles: list[TrackingHandle] = []

    @classmethod
    def from_config(cls, client, config: PipedeckConfig) -> "WorkspaceSetupWorkflow":
        """Build the workflow with a poller configured from settings."""
        poller = JobStatusPoller(
            tasks=client,
            jobs=client,
            policy=FinalEntryProgress(),
            interval=config.workspace_poll_interval_s,
            backoff_interval=config.poll_backoff_s,
        )
        return cls(
            client,
            poller,
            dbt_version=config.dbt_version,
            initial_delay=config.workspace_initial_delay_s,
        )

    def build_create_payload(self, params: WorkspaceParams) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "gitrepoUrl": params.gitrepo_url,
            "dbtVersion": self._dbt_version,
            "profile": {
                "name": PROFILE_NAME,
                "target_configs_schema": params.schema,
            },
        }
        if params.gitrepo_access_token:
            payload["gitrepoAccessToken"] = params.gitrepo_access_token
        return payload

    async def create(self, params: WorkspaceParams, listener: Optional[Listener] = None) -> WorkflowResult:
        """Create the workspace and wait for the build task."""
        request = ActionRequest("POST", "dbt/workspace/", self.build_create_payload(params))
        return await self._run_tracked(request, listener, preamble=(SETUP_STARTED,))

    async def edit(
        self,
        params: WorkspaceParams,
        current: WorkspaceParams,
        listener: Optional[Listener] = None,
    ) -> WorkflowResult:
        """
        Apply changes to an existing workspace.

        A changed schema is updated in place. A changed git remote, or a new
        access token, re-clones the repository in a tracked task.
        """
        if params.schema and params.schema != current.schema:
            request = ActionRequest("PUT", "dbt/schema/", {"target_configs_schema": params.schema})
            try:
                await self._client.submit_action(request)
            except PipedeckError as e:
                return _failed(describe_error(e))

        if not params.gitrepo_url:
            return WorkflowResult(ok=True, message=SETUP_COMPLETED, logs=(SETUP_COMPLETED,))

        if params.gitrepo_url == current.gitrepo_url and not params.gitrepo_access_token:
            return WorkflowResult(ok=True, message="git remote unchanged")

        request = ActionRequest("PUT", "dbt/github/", {
            "gitrepoUrl": params.gitrepo_url,
            "gitrepoAccessToken": params.gitrepo_access_token,
        })
        return await self._run_tracked(request, listener)

    async def _run_tracked(
        self,
        request: ActionRequest,
        listener: Optional[Listener],
        preamble: tuple[str, ...] = (),
    ) -> WorkflowResult:
        try:
            receipt = await self._client.submit_action(request)
        except PipedeckError as e:
            logger.error(f"{request.method} {request.path} failed: {e}")
            return _failed(describe_error(e), preamble)

        if receipt.task_id is None:
            return _failed("backend returned no task id", preamble)

        handle = self._poller.track(receipt.task_id, initial_delay=self._initial_delay, listener=listener)
        self._handles = [h for h in self._handles if not h.done]
        self._handles.append(handle)
        state = await handle.wait()
        lines = preamble + tuple(state.log_lines())

        if not state.is_terminal:
            return WorkflowResult(ok=False, state=state, message="setup tracking cancelled", logs=lines)
        if state.succeeded:
            return WorkflowResult(
                ok=True, state=state, message=SETUP_COMPLETED, logs=lines + (SETUP_COMPLETED,)
            )
        failure = f"Setup failed: {state.failure_message}"
        return WorkflowResult(ok=False, state=state, message=failure, logs=lines + (failure,))

    def close(self) -> None:
        """Cancel every tracking session this workflow started."""
        for handle in self._handles:
            handle.cancel()
        self._handles.clear()


def _failed(reason: str, preamble: tuple[str, ...] = ()) -> WorkflowResult:
    failure = f"Setup failed: {reason}"
    return WorkflowResult(ok=False, message=failure, logs=preamble + (failure,))
