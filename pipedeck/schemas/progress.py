"""
Progress schemas - task progress entries, job details and poll snapshots.

A background action (a connection sync, a workspace build) is tracked by a
task id. The task's progress log is a list of entries; the backend writes a
fixed "enqueued" marker first, then entries that either point at a nested
job or report a status of their own.

ProgressEntry is a closed set of variants:
- AwaitingEntry: no status and no job id yet
- JobLinkedEntry: carries the id of a nested job holding the real status
- StatusEntry: reports its own status string (opaque, not a closed enum)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union


@dataclass(frozen=True)
class AwaitingEntry:
    """A progress entry with nothing to act on yet."""
    message: str = ""
    step_number: Optional[int] = None


@dataclass(frozen=True)
class JobLinkedEntry:
    """A progress entry pointing at a nested job."""
    embedded_job_id: str
    message: str = ""
    step_number: Optional[int] = None
    status: Optional[str] = None


@dataclass(frozen=True)
class StatusEntry:
    """A progress entry reporting its own status."""
    status: str
    message: str = ""
    step_number: Optional[int] = None


ProgressEntry = Union[AwaitingEntry, JobLinkedEntry, StatusEntry]


def _parse_step_number(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def parse_progress_entry(raw: Any) -> ProgressEntry:
    """
    Parse one backend progress entry.

    Parsing is lenient: anything that is not a mapping, or that lacks both a
    job number and a status, becomes an AwaitingEntry.

    Backend keys: stepnum, message, status, airbyte_job_num
    """
    if not isinstance(raw, dict):
        return AwaitingEntry(message="" if raw is None else str(raw))

    message = raw.get("message")
    message = "" if message is None else str(message)
    step_number = _parse_step_number(raw.get("stepnum"))
    status = raw.get("status")
    status = str(status) if status not in (None, "") else None

    job_num = raw.get("airbyte_job_num")
    if job_num not in (None, ""):
        return JobLinkedEntry(
            embedded_job_id=str(job_num),
            message=message,
            step_number=step_number,
            status=status,
        )
    if status is not None:
        return StatusEntry(status=status, message=message, step_number=step_number)
    return AwaitingEntry(message=message, step_number=step_number)


def progress_entry_to_dict(entry: ProgressEntry) -> dict[str, Any]:
    """Serialize a progress entry back to the backend's key names."""
    result: dict[str, Any] = {"message": entry.message}
    if entry.step_number is not None:
        result["stepnum"] = entry.step_number
    if isinstance(entry, JobLinkedEntry):
        result["airbyte_job_num"] = entry.embedded_job_id
        if entry.status is not None:
            result["status"] = entry.status
    elif isinstance(entry, StatusEntry):
        result["status"] = entry.status
    return result


def format_progress_line(entry: ProgressEntry) -> str:
    """Render an entry as '<stepnum>. <message>', omitting a missing step number."""
    if entry.step_number is not None:
        return f"{entry.step_number}. {entry.message}"
    return entry.message


@dataclass(frozen=True)
class JobDetail:
    """Status of a nested job as reported by the job-detail endpoint."""
    status: str
    logs: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JobDetail":
        logs = data.get("logs") or ()
        if isinstance(logs, str):
            logs = (logs,)
        return cls(
            status=str(data.get("status") or ""),
            logs=tuple(str(line) for line in logs),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status, "logs": list(self.logs)}


class PollStatus(str, Enum):
    """Lifecycle of a tracked task."""
    PENDING = "pending"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (PollStatus.SUCCEEDED, PollStatus.FAILED)


@dataclass(frozen=True)
class PollState:
    """
    Snapshot of a tracked background task.

    Snapshots are immutable; the poller publishes a new one whenever
    something observable changes.

    Attributes:
        task_id: Identifier of the outer task
        status: pending, polling, succeeded or failed
        progress_log: Latest progress entries reported for the task
        job_id: Nested job id, once a progress entry has revealed it
        job_status: Latest status reported for the nested job
        logs: Job logs captured on failure
        result: Payload of the authoritative success report
        failure_message: Human readable reason on failure
        generation: Tracking session that produced this snapshot
    """
    task_id: str
    status: PollStatus = PollStatus.PENDING
    progress_log: tuple[ProgressEntry, ...] = ()
    job_id: Optional[str] = None
    job_status: Optional[str] = None
    logs: tuple[str, ...] = ()
    result: Any = None
    failure_message: Optional[str] = None
    generation: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def succeeded(self) -> bool:
        return self.status == PollStatus.SUCCEEDED

    @property
    def failed(self) -> bool:
        return self.status == PollStatus.FAILED

    def log_lines(self) -> list[str]:
        """Progress entries rendered for display."""
        return [format_progress_line(e) for e in self.progress_log]

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        result: dict[str, Any] = {
            "task_id": self.task_id,
            "status": self.status.value,
            "progress": [progress_entry_to_dict(e) for e in self.progress_log],
            "generation": self.generation,
        }
        if self.job_id is not None:
            result["job_id"] = self.job_id
        if self.job_status is not None:
            result["job_status"] = self.job_status
        if self.logs:
            result["logs"] = list(self.logs)
        if self.result is not None:
            result["result"] = self.result
        if self.failure_message is not None:
            result["failure_message"] = self.failure_message
        return result
