# src/runjournal/plugins/sinks/remote_sink.py
"""Remote document store sink.

Best effort by contract: a journal cycle must not fail because the store
is down. Connection and insert failures become RemoteConnectError, which
is logged and returned on the RemoteResult instead of raised.

The default transport reaches the store through SQLAlchemy Core. Each
save inserts one row into the collection table (created on first use):

    id | recorded_at | schema_version | content_hash | document (JSON)

Records are append-only; an earlier journal is never updated.

Timeouts:
    The transport runs on a daemon worker thread. save() waits at most
    ``settings.timeout_seconds`` (and returns early when the CancelToken
    fires), so a hung connection cannot stall the owning application.
    The abandoned worker is not interrupted: a save reported as timed out
    or cancelled may still land in the store later.
"""

import threading
from datetime import UTC, datetime
from typing import Any

import structlog
from sqlalchemy import JSON, Column, DateTime, Integer, MetaData, String, Table, create_engine, insert
from sqlalchemy.engine import URL, Engine
from sqlalchemy.exc import SQLAlchemyError

from runjournal.contracts.document import JournalDocument
from runjournal.contracts.errors import RemoteConnectError, SerializationError
from runjournal.contracts.results import ArtifactDescriptor, RemoteResult
from runjournal.core.canonical import canonical_json, normalize_document, stable_hash
from runjournal.core.config import DocumentStoreSettings
from runjournal.core.locks import CancelToken, Deadline, stop_reason
from runjournal.plugins.protocols import DocumentTransport, TransportFactory

logger = structlog.get_logger(__name__)

# Upper bound on one wait slice while polling the worker thread
_POLL_INTERVAL = 0.05


def build_store_url(settings: DocumentStoreSettings) -> URL:
    """Assemble the SQLAlchemy URL for the configured store.

    ``auth_source`` is forwarded as the ``authSource`` URL option only
    when set.
    """
    query: dict[str, str] = {}
    if settings.auth_source:
        query["authSource"] = settings.auth_source
    return URL.create(
        drivername=settings.driver,
        username=settings.user,
        password=settings.password,
        host=settings.host,
        port=settings.port,
        database=settings.database,
        query=query,
    )


def sanitized_target(settings: DocumentStoreSettings) -> str:
    """Store URL with the password hidden, for logs and artifacts."""
    return build_store_url(settings).render_as_string(hide_password=True)


class SQLAlchemyDocumentTransport:
    """Append journal records to a table through SQLAlchemy Core."""

    def __init__(self, url: URL | str, collection: str) -> None:
        self._url = url
        self._target = url.render_as_string(hide_password=True) if isinstance(url, URL) else url
        self._metadata = MetaData()
        self._table = Table(
            collection,
            self._metadata,
            Column("id", Integer, primary_key=True, autoincrement=True),
            Column("recorded_at", DateTime(timezone=True), nullable=False),
            Column("schema_version", String(32), nullable=True),
            Column("content_hash", String(64), nullable=False),
            Column("document", JSON, nullable=False),
        )
        self._engine: Engine | None = None

    @classmethod
    def from_settings(cls, settings: DocumentStoreSettings) -> "SQLAlchemyDocumentTransport":
        return cls(build_store_url(settings), settings.collection)

    @property
    def target(self) -> str:
        return self._target

    @property
    def table(self) -> Table:
        return self._table

    def _ensure_engine(self) -> Engine:
        if self._engine is None:
            try:
                self._engine = create_engine(self._url, pool_pre_ping=True)
            except (SQLAlchemyError, ImportError) as e:
                # ImportError: DBAPI driver for this dialect is not installed
                raise RemoteConnectError(self._target, f"cannot create engine: {e}") from e
        return self._engine

    def insert(self, document: dict[str, Any], *, content_hash: str, schema_version: str | None) -> None:
        engine = self._ensure_engine()
        try:
            self._metadata.create_all(engine, tables=[self._table], checkfirst=True)
            with engine.begin() as conn:
                conn.execute(
                    insert(self._table).values(
                        recorded_at=datetime.now(UTC),
                        schema_version=schema_version,
                        content_hash=content_hash,
                        document=document,
                    )
                )
        except SQLAlchemyError as e:
            raise RemoteConnectError(self._target, str(e)) from e

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None


class RemoteSink:
    """Insert journal documents into a remote document store.

    Example:
        sink = RemoteSink()
        result = sink.save(document, settings.store)
        if result.warning:
            ...  # store unreachable; the file journal is still intact
    """

    name = "remote"

    def __init__(self, transport_factory: TransportFactory | None = None) -> None:
        self._transport_factory: TransportFactory = transport_factory or SQLAlchemyDocumentTransport.from_settings

    def save(
        self,
        document: JournalDocument,
        settings: DocumentStoreSettings,
        cancel: CancelToken | None = None,
    ) -> RemoteResult:
        """Insert ``document`` as one new record.

        Returns:
            RemoteResult. ``attempted`` is False when disabled or empty;
            ``warning`` is set when the store could not be written.

        Raises:
            SerializationError: If the document cannot be converted to JSON
        """
        if not settings.enable:
            logger.debug("Remote journal store disabled, skipping")
            return RemoteResult.skipped()
        if document.is_empty:
            logger.debug("Empty journal, remote store not contacted")
            return RemoteResult.skipped()

        try:
            payload = normalize_document(document.data)
            canonical = canonical_json(payload).encode("utf-8")
            content_hash = stable_hash(payload)
        except (ValueError, TypeError) as e:
            raise SerializationError(f"Journal document cannot be serialized: {e}") from e

        target = sanitized_target(settings)
        outcome: dict[str, BaseException | None] = {}

        def _work() -> None:
            transport: DocumentTransport | None = None
            try:
                transport = self._transport_factory(settings)
                transport.insert(payload, content_hash=content_hash, schema_version=document.version)
                outcome["error"] = None
            except Exception as e:
                # Store failures of any kind are downgraded; see module docstring
                outcome["error"] = e
            finally:
                if transport is not None:
                    try:
                        transport.close()
                    except Exception as e:
                        logger.warning("Remote journal transport failed to close", target=target, error=str(e))

        worker = threading.Thread(target=_work, name="runjournal-remote-save", daemon=True)
        worker.start()

        deadline = Deadline(settings.timeout_seconds)
        while worker.is_alive():
            reason = stop_reason(cancel, deadline)
            if reason is not None:
                return self._failed(RemoteConnectError(target, f"save abandoned: {reason}"))
            remaining = deadline.remaining()
            worker.join(_POLL_INTERVAL if remaining is None else min(_POLL_INTERVAL, remaining))

        error = outcome.get("error")
        if error is not None:
            if not isinstance(error, RemoteConnectError):
                error = RemoteConnectError(target, f"{type(error).__name__}: {error}")
            return self._failed(error)

        artifact = ArtifactDescriptor.for_database(
            sanitized_url=target,
            collection=settings.collection,
            content_hash=content_hash,
            size_bytes=len(canonical),
        )
        logger.info("Journal sent to remote store", target=target, collection=settings.collection)
        return RemoteResult(attempted=True, artifact=artifact)

    def _failed(self, error: RemoteConnectError) -> RemoteResult:
        logger.warning("Remote journal store unavailable", target=error.target, error=error.message)
        return RemoteResult(attempted=True, warning=str(error))
