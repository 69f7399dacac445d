"""Shared contracts for cross-boundary data types.

This package is a LEAF MODULE: it imports nothing from runjournal.core,
runjournal.journal or runjournal.plugins.

Import patterns:
    from runjournal.contracts import Scope, Signature, JournalDocument
    from runjournal.contracts.errors import TypeMismatchError
"""

from runjournal.contracts.document import (
    JOURNAL_SCHEMA_VERSION,
    SCHEMA_KEY,
    Fragment,
    JournalDocument,
    capture_time,
    merge_fragment,
)
from runjournal.contracts.enums import CycleState, Scope, SlotKind
from runjournal.contracts.errors import (
    ChannelNotFoundError,
    DuplicateChannelError,
    DuplicateSubscriptionError,
    FileWriteError,
    InvocationCancelledError,
    JournalStateError,
    RemoteConnectError,
    RunJournalError,
    SerializationError,
    SlotNotFoundError,
    TypeMismatchError,
)
from runjournal.contracts.results import ArtifactDescriptor, RemoteResult, SaveResult
from runjournal.contracts.signature import Signature

__all__ = [
    "JOURNAL_SCHEMA_VERSION",
    "SCHEMA_KEY",
    "ArtifactDescriptor",
    "ChannelNotFoundError",
    "CycleState",
    "DuplicateChannelError",
    "DuplicateSubscriptionError",
    "FileWriteError",
    "Fragment",
    "InvocationCancelledError",
    "JournalDocument",
    "JournalStateError",
    "RemoteConnectError",
    "RemoteResult",
    "RunJournalError",
    "SaveResult",
    "Scope",
    "SerializationError",
    "Signature",
    "SlotKind",
    "SlotNotFoundError",
    "TypeMismatchError",
    "capture_time",
    "merge_fragment",
]
