"""
pipedeck.schemas - Data structures shared by the compiler, poller and workflows.

SchemaNode -> FieldSpec: connector schema compiled into form fields
ProgressEntry -> PollState: task progress interpreted into status snapshots
SourceStream -> ConnectionDraft: catalog selection for new connections
"""

from .schema_node import (
    SchemaNode,
    ScalarNode,
    ObjectNode,
    UnionNode,
    parse_schema_node,
    parse_root_schema,
)
from .field_spec import (
    FieldKind,
    FieldSpec,
)
from .progress import (
    ProgressEntry,
    AwaitingEntry,
    JobLinkedEntry,
    StatusEntry,
    JobDetail,
    PollStatus,
    PollState,
    parse_progress_entry,
    format_progress_line,
    progress_entry_to_dict,
)
from .catalog import (
    SyncMode,
    DestinationSyncMode,
    SourceStream,
    ConnectionDraft,
    parse_catalog,
    update_stream,
    any_selected,
)

__all__ = [
    # Schema nodes
    "SchemaNode",
    "ScalarNode",
    "ObjectNode",
    "UnionNode",
    "parse_schema_node",
    "parse_root_schema",
    # Field specs
    "FieldKind",
    "FieldSpec",
    # Progress
    "ProgressEntry",
    "AwaitingEntry",
    "JobLinkedEntry",
    "StatusEntry",
    "JobDetail",
    "PollStatus",
    "PollState",
    "parse_progress_entry",
    "format_progress_line",
    "progress_entry_to_dict",
    # Catalog
    "SyncMode",
    "DestinationSyncMode",
    "SourceStream",
    "ConnectionDraft",
    "parse_catalog",
    "update_stream",
    "any_selected",
]
