"""
pipedeck - Console tooling for data pipeline connectors.

Compiles connector JSON schemas into form field trees and tracks
background tasks (connection syncs, workspace builds) to completion.
"""

__version__ = "0.1.0"

from pipedeck.compiler import SchemaSpecCompiler, compile_schema, prefill_values
from pipedeck.poller import JobStatusPoller, TrackingHandle

__all__ = [
    "__version__",
    "SchemaSpecCompiler",
    "compile_schema",
    "prefill_values",
    "JobStatusPoller",
    "TrackingHandle",
]
