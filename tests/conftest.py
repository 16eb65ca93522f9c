import asyncio

import pytest

from pipedeck.clients import ActionReceipt, ActionRequest
from pipedeck.config import PipedeckConfig
from pipedeck.schemas import JobDetail, parse_progress_entry


@pytest.fixture
def test_config():
    return PipedeckConfig(
        api_url="http://backend.test",
        api_token="test-token",
        poll_interval_s=0.0,
        poll_backoff_s=0.0,
        workspace_poll_interval_s=0.0,
        workspace_initial_delay_s=0.0,
    )


class FakeBackend:
    """
    In-memory stand-in for every client protocol.

    Scripts are lists consumed one item per call; the last item repeats.
    Exception items are raised instead of returned.
    """

    def __init__(self):
        self.progress: list = [[]]
        self.jobs: dict[str, list] = {}
        self.actions: dict[tuple[str, str], object] = {}
        self.schemas: dict[str, dict] = {}
        self.catalogs: dict[str, dict] = {}
        self.gate: asyncio.Event | None = None
        self.progress_calls: list[str] = []
        self.job_calls: list[str] = []
        self.requests: list[ActionRequest] = []

    @staticmethod
    def _next(script: list):
        item = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(item, Exception):
            raise item
        return item

    async def fetch_task_progress(self, task_id):
        self.progress_calls.append(task_id)
        if self.gate is not None:
            await self.gate.wait()
        return [parse_progress_entry(raw) for raw in self._next(self.progress)]

    async def fetch_job_detail(self, job_id):
        self.job_calls.append(job_id)
        item = self._next(self.jobs[job_id])
        return item if isinstance(item, JobDetail) else JobDetail.from_dict(item)

    async def fetch_connector_schema(self, definition_id):
        return self.schemas[definition_id]

    async def fetch_source_catalog(self, source_id):
        return self.catalogs[source_id]

    async def submit_action(self, request):
        self.requests.append(request)
        body = self.actions[(request.method, request.path)]
        if isinstance(body, Exception):
            raise body
        return ActionReceipt.from_response(body)


class RecordingSleep:
    """Records requested delays; cancels the polling task after `limit` sleeps."""

    def __init__(self, limit: int | None = None):
        self.delays: list[float] = []
        self.limit = limit

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self.limit is not None and len(self.delays) > self.limit:
            raise asyncio.CancelledError()
        await asyncio.sleep(0)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def limited_sleep():
    return RecordingSleep(limit=3)
