"""
Source catalog schemas - stream selection for new connections.

When a source is picked, the backend discovers its catalog. Each stream can
be selected for syncing, switched to incremental mode (if the source
supports it), and given a destination write mode.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Optional


class SyncMode(str, Enum):
    """How a stream is read from the source."""
    FULL_REFRESH = "full_refresh"
    INCREMENTAL = "incremental"


class DestinationSyncMode(str, Enum):
    """How a stream is written to the destination."""
    APPEND = "append"
    OVERWRITE = "overwrite"
    APPEND_DEDUP = "append_dedup"


@dataclass(frozen=True)
class SourceStream:
    """
    One stream of a source's catalog, with its sync configuration.

    Attributes:
        name: Stream name
        supports_incremental: Whether the source lists incremental among supported modes
        selected: Whether the stream is included in the connection
        sync_mode: Read mode
        destination_sync_mode: Write mode
    """
    name: str
    supports_incremental: bool = False
    selected: bool = False
    sync_mode: SyncMode = SyncMode.FULL_REFRESH
    destination_sync_mode: DestinationSyncMode = DestinationSyncMode.APPEND

    def __post_init__(self):
        if self.sync_mode == SyncMode.INCREMENTAL and not self.supports_incremental:
            raise ValueError(f"Stream '{self.name}' does not support incremental sync")

    def with_selected(self, selected: bool) -> "SourceStream":
        return replace(self, selected=selected)

    def with_incremental(self, incremental: bool) -> "SourceStream":
        """Switch between incremental and full refresh reads."""
        mode = SyncMode.INCREMENTAL if incremental else SyncMode.FULL_REFRESH
        return replace(self, sync_mode=mode)

    def with_destination_sync_mode(self, mode: str) -> "SourceStream":
        return replace(self, destination_sync_mode=DestinationSyncMode(mode))

    @property
    def is_incremental(self) -> bool:
        """Incremental only counts for selected streams."""
        return self.selected and self.sync_mode == SyncMode.INCREMENTAL

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the backend's key names."""
        return {
            "name": self.name,
            "supportsIncremental": self.supports_incremental,
            "selected": self.selected,
            "syncMode": self.sync_mode.value,
            "destinationSyncMode": self.destination_sync_mode.value,
        }


def parse_catalog(message: dict[str, Any]) -> list[SourceStream]:
    """
    Parse a discovered catalog into unselected streams.

    Args:
        message: Response of the schema_catalog endpoint,
            {"catalog": {"streams": [{"stream": {...}, "config": {...}}]}}

    Returns:
        One SourceStream per catalog stream, in catalog order

    Raises:
        ValueError: If the catalog has no streams list
    """
    catalog = message.get("catalog") if isinstance(message, dict) else None
    streams = catalog.get("streams") if isinstance(catalog, dict) else None
    if not isinstance(streams, list):
        raise ValueError("Catalog response has no 'catalog.streams' list")

    result: list[SourceStream] = []
    for element in streams:
        stream = element.get("stream", {})
        supported = stream.get("supportedSyncModes") or []
        result.append(SourceStream(
            name=stream["name"],
            supports_incremental=SyncMode.INCREMENTAL.value in supported,
        ))
    return result


def update_stream(streams: list[SourceStream], updated: SourceStream) -> list[SourceStream]:
    """Return a copy of streams with the stream of the same name replaced."""
    return [updated if s.name == updated.name else s for s in streams]


def any_selected(streams: list[SourceStream]) -> bool:
    return any(s.selected for s in streams)


@dataclass(frozen=True)
class ConnectionDraft:
    """A connection about to be created."""
    name: str
    source_id: str
    streams: tuple[SourceStream, ...] = ()
    normalize: bool = False
    destination_schema: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "name": self.name,
            "sourceId": self.source_id,
            "streams": [s.to_dict() for s in self.streams],
            "normalize": self.normalize,
        }
        if self.destination_schema:
            payload["destinationSchema"] = self.destination_schema
        return payload
