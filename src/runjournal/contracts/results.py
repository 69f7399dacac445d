# src/runjournal/contracts/results.py
"""Result types returned by sinks and by the journal save cycle."""

from dataclasses import dataclass, field
from typing import Literal


@dataclass(frozen=True)
class ArtifactDescriptor:
    """Descriptor for an artifact written by a sink.

    content_hash and size_bytes are always present so a saved journal can
    be verified later.
    """

    artifact_type: Literal["file", "database"]
    path_or_uri: str
    content_hash: str
    size_bytes: int

    @classmethod
    def for_file(cls, path: str, content_hash: str, size_bytes: int) -> "ArtifactDescriptor":
        """Create descriptor for file-based artifacts."""
        return cls(
            artifact_type="file",
            path_or_uri=f"file://{path}",
            content_hash=content_hash,
            size_bytes=size_bytes,
        )

    @classmethod
    def for_database(cls, sanitized_url: str, collection: str, content_hash: str, size_bytes: int) -> "ArtifactDescriptor":
        """Create descriptor for a record inserted into a document store.

        ``sanitized_url`` must not carry the password.
        """
        return cls(
            artifact_type="database",
            path_or_uri=f"{sanitized_url}#{collection}",
            content_hash=content_hash,
            size_bytes=size_bytes,
        )


@dataclass(frozen=True)
class RemoteResult:
    """Outcome of one RemoteSink.save() call.

    ``attempted`` is False when the sink was disabled or the document was
    empty; in that case no transport was ever created.
    """

    attempted: bool
    artifact: ArtifactDescriptor | None = None
    warning: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.attempted and self.warning is None

    @classmethod
    def skipped(cls) -> "RemoteResult":
        return cls(attempted=False)


@dataclass(frozen=True)
class SaveResult:
    """Outcome of one aggregator save.

    A remote failure shows up in ``warnings``; it never hides the file
    artifact that was already written.
    """

    file: ArtifactDescriptor | None
    remote: RemoteResult
    warnings: tuple[str, ...] = field(default=())

    @property
    def wrote_anything(self) -> bool:
        return self.file is not None or self.remote.succeeded
