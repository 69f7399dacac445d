"""Protocol definitions for journal sinks and remote store transports.

These are structural (Protocol) types: the aggregator depends on the
shapes below, never on a concrete store client.
"""

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from runjournal.contracts.document import JournalDocument
    from runjournal.contracts.results import ArtifactDescriptor, RemoteResult
    from runjournal.core.config import DocumentStoreSettings
    from runjournal.core.locks import CancelToken


@runtime_checkable
class FileSinkProtocol(Protocol):
    """Local journal writer.

    Error handling:
        - save() raises FileWriteError / SerializationError
        - an empty document is a no-op returning None
    """

    name: str

    def save(self, document: "JournalDocument", path: str) -> "ArtifactDescriptor | None":
        """Write the document atomically and describe what was written."""
        ...


@runtime_checkable
class RemoteSinkProtocol(Protocol):
    """Best-effort remote journal writer.

    Error handling:
        - save() MUST NOT raise for connection or insert failures; they are
          returned as a warning on the RemoteResult
        - disabled settings or an empty document mean no transport is created
    """

    name: str

    def save(
        self,
        document: "JournalDocument",
        settings: "DocumentStoreSettings",
        cancel: "CancelToken | None" = None,
    ) -> "RemoteResult":
        """Insert the document as one new record."""
        ...


@runtime_checkable
class DocumentTransport(Protocol):
    """Connection to a document store collection.

    Lifecycle:
        1. Created by a TransportFactory from DocumentStoreSettings
        2. insert() called once per journal save
        3. close() called afterwards, even when insert() failed

    insert() raises RemoteConnectError on connection or write failure.
    close() must be idempotent.
    """

    @property
    def target(self) -> str:
        """Store location with credentials removed, for logs."""
        ...

    def insert(self, document: dict[str, Any], *, content_hash: str, schema_version: str | None) -> None:
        """Append one record. Never updates an earlier record."""
        ...

    def close(self) -> None:
        """Release connections."""
        ...


TransportFactory = Callable[["DocumentStoreSettings"], DocumentTransport]
