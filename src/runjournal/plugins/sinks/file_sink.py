# src/runjournal/plugins/sinks/file_sink.py
"""Local JSON file sink for journal documents.

Writes go to a temporary file in the target directory, are fsynced, and
then renamed over the target with os.replace(). A failed save leaves
either the previous file or nothing, never a truncated journal.

Returns an ArtifactDescriptor with a SHA-256 hash of the bytes written.
"""

import contextlib
import hashlib
import json
import os
import tempfile
from pathlib import Path

import structlog

from runjournal.contracts.document import JournalDocument
from runjournal.contracts.errors import FileWriteError, SerializationError
from runjournal.contracts.results import ArtifactDescriptor
from runjournal.core.canonical import document_json

logger = structlog.get_logger(__name__)

JOURNAL_SUFFIX = ".json"


def journal_path(path: str | os.PathLike[str]) -> Path:
    """Resolve the on-disk file for a journal name.

    ``run1`` becomes ``run1.json``; a path already ending in ``.json`` is
    kept as is.
    """
    resolved = Path(path)
    if resolved.suffix != JOURNAL_SUFFIX:
        resolved = resolved.with_name(resolved.name + JOURNAL_SUFFIX)
    return resolved


def load_journal(path: str | os.PathLike[str], encoding: str = "utf-8") -> JournalDocument:
    """Read a journal written by FileSink.

    Raises:
        FileNotFoundError: If the journal file does not exist
        SerializationError: If the file is not a JSON object
    """
    target = journal_path(path)
    try:
        data = json.loads(target.read_text(encoding=encoding))
    except json.JSONDecodeError as e:
        raise SerializationError(f"Journal file '{target}' is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise SerializationError(f"Journal file '{target}' must contain a JSON object, got {type(data).__name__}")
    return JournalDocument.from_dict(data)


class FileSink:
    """Write journal documents to ``<path>.json``.

    Config options:
        indent: Indentation for pretty-printing (default: 2)
        encoding: File encoding (default: "utf-8")
    """

    name = "file"

    def __init__(self, *, indent: int = 2, encoding: str = "utf-8") -> None:
        self._indent = indent
        self._encoding = encoding

    def render(self, document: JournalDocument) -> bytes:
        """Serialize a document to the exact bytes save() would write.

        Raises:
            SerializationError: If the document holds NaN/Infinity or unsupported types
        """
        try:
            text = document_json(document.data, indent=self._indent)
        except (ValueError, TypeError) as e:
            raise SerializationError(f"Journal document cannot be serialized: {e}") from e
        return text.encode(self._encoding)

    def save(self, document: JournalDocument, path: str | os.PathLike[str]) -> ArtifactDescriptor | None:
        """Serialize and atomically write the document.

        Returns:
            ArtifactDescriptor for the written file, or None if the document
            was empty and nothing was written

        Raises:
            SerializationError: If the document cannot be serialized
            FileWriteError: On any I/O failure
        """
        target = journal_path(path)
        if document.is_empty:
            logger.debug("Empty journal, file not written", path=str(target))
            return None

        payload = self.render(document)
        tmp_name: str | None = None
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
            with os.fdopen(fd, "wb") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, target)
            tmp_name = None
        except OSError as e:
            raise FileWriteError(str(target), str(e)) from e
        finally:
            if tmp_name is not None:
                with contextlib.suppress(FileNotFoundError):
                    os.unlink(tmp_name)

        content_hash = hashlib.sha256(payload).hexdigest()
        logger.info("Journal written", path=str(target), size_bytes=len(payload))
        return ArtifactDescriptor.for_file(path=str(target), content_hash=content_hash, size_bytes=len(payload))
