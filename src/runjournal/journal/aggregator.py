# src/runjournal/journal/aggregator.py
"""JournalAggregator drives the collect -> merge -> persist cycle.

Cycle:
    IDLE -> COLLECTING -> MERGED -> PERSISTED -> (next collect) ...

1. collect() fires the well-known channel and receives one fragment per
   connected watcher, in registration order.
2. A fresh document is built from base metadata (schema version plus the
   capture instant) and every fragment is folded in. Later registrations
   win on overlapping leaves. Nothing carries over from a previous cycle,
   so repeated collect() calls are idempotent.
3. save() writes the file first, then the remote store. A remote failure
   is returned as a warning and never rolls back the file.

Thread Safety:
    One re-entrant lock serializes cycles and setters. A watcher that
    calls back into the aggregator during collect() gets a
    JournalStateError instead of a deadlock.
"""

import threading
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog

from runjournal.contracts.document import JournalDocument
from runjournal.contracts.enums import CycleState, Scope, SlotKind
from runjournal.contracts.errors import DuplicateChannelError, JournalStateError
from runjournal.contracts.results import SaveResult
from runjournal.core.config import DocumentStoreSettings, JournalSettings
from runjournal.core.events import ChannelHandle, EventRegistry, Subscription
from runjournal.core.locks import CancelToken
from runjournal.core.logging import cycle_context
from runjournal.core.slots import WatcherProtocol
from runjournal.journal.channel import JOURNAL_SIGNATURE, JOURNAL_SLOT
from runjournal.plugins.manager import PluginManager
from runjournal.plugins.protocols import FileSinkProtocol, RemoteSinkProtocol
from runjournal.plugins.sinks import FileSink, RemoteSink

logger = structlog.get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


class JournalAggregator:
    """Collects fragments from every watcher and persists the merged journal.

    Example:
        aggregator = JournalAggregator(EventRegistry())
        aggregator.register_watcher(mesh_watcher)
        aggregator.register_watcher(solver_watcher)
        aggregator.collect()
        aggregator.save("run1")  # writes run1.json
    """

    def __init__(
        self,
        registry: EventRegistry | None = None,
        *,
        settings: JournalSettings | None = None,
        scope: Scope = Scope.PROCESS,
        file_sink: FileSinkProtocol | None = None,
        remote_sink: RemoteSinkProtocol | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        """Attach to (or create) the journal channel.

        Args:
            registry: Registry holding the journal channel (new one if None)
            settings: Journal settings; defaults when None
            scope: Scope of the journal channel. PROCESS lets watchers
                owned by unrelated components reach the same channel.
            file_sink: Local sink (FileSink by default)
            remote_sink: Remote sink (RemoteSink by default)
            clock: Source of the capture instant

        Raises:
            TypeMismatchError: If a channel with the configured name already
                exists with a different signature
        """
        self._registry = registry if registry is not None else EventRegistry()
        self._settings = settings if settings is not None else JournalSettings()
        self._scope = scope
        self._file_sink: FileSinkProtocol = file_sink if file_sink is not None else FileSink()
        self._remote_sink: RemoteSinkProtocol = remote_sink if remote_sink is not None else RemoteSink()
        self._clock = clock

        self._lock = threading.RLock()
        self._state = CycleState.IDLE
        self._document: JournalDocument | None = None
        self._cycle = 0

        self._channel, self._owns_channel = self._attach_channel(self._settings.channel)

    def _attach_channel(self, name: str) -> tuple[ChannelHandle[dict[str, Any]], bool]:
        try:
            return self._registry.create_channel(name, JOURNAL_SIGNATURE, self._scope), True
        except DuplicateChannelError:
            # Another aggregator created it first; share it if the signature matches
            return self._registry.lookup_channel(name, JOURNAL_SIGNATURE, self._scope), False

    # === Properties ===

    @property
    def state(self) -> CycleState:
        return self._state

    @property
    def document(self) -> JournalDocument | None:
        """Document of the latest successful collect(), if any."""
        return self._document

    @property
    def settings(self) -> JournalSettings:
        return self._settings

    @property
    def channel(self) -> ChannelHandle[dict[str, Any]]:
        return self._channel

    @property
    def registry(self) -> EventRegistry:
        return self._registry

    @property
    def watcher_count(self) -> int:
        return self._channel.subscriber_count()

    # === Watchers ===

    def register_watcher(
        self,
        watcher: WatcherProtocol,
        slot_name: str = JOURNAL_SLOT,
        slot_kind: SlotKind = SlotKind.INSTANCE,
    ) -> Subscription:
        """Connect a watcher slot to the journal channel.

        Raises:
            ChannelNotFoundError: If the journal channel was deleted
            SlotNotFoundError: If the watcher has no such slot
            TypeMismatchError: If the slot is not ``() -> dict``
            DuplicateSubscriptionError: If already registered
        """
        return self._channel.connect(watcher, slot_name, slot_kind)

    def unregister_watcher(
        self,
        watcher: WatcherProtocol,
        slot_name: str = JOURNAL_SLOT,
        slot_kind: SlotKind = SlotKind.INSTANCE,
    ) -> bool:
        return self._channel.disconnect(watcher, slot_name, slot_kind)

    def register_plugins(self, manager: PluginManager) -> int:
        """Register every watcher contributed through the runjournal_get_watchers hook.

        Returns:
            Number of watchers registered
        """
        watchers = manager.get_watchers()
        for watcher in watchers:
            self.register_watcher(watcher)
        logger.debug("Plugin watchers registered", count=len(watchers))
        return len(watchers)

    # === Cycle ===

    def collect(self, cancel: CancelToken | None = None, timeout: float | None = None) -> JournalDocument:
        """Fetch every watcher's fragment and merge them into a fresh document.

        Args:
            cancel: Stops before the next watcher once cancelled
            timeout: Seconds after which no further watcher is called

        Returns:
            The merged document (also kept as ``document``)

        Raises:
            JournalStateError: If called while a collection is running
            InvocationCancelledError: If cancelled or past the deadline
            TypeMismatchError: If a watcher returns something other than a dict,
                or writes the reserved ``schema`` section
        """
        with self._lock:
            if self._state == CycleState.COLLECTING:
                raise JournalStateError("collect", self._state)
            self._cycle += 1
            with cycle_context(self._channel.name, self._cycle):
                self._state = CycleState.COLLECTING
                try:
                    fragments = self._channel.invoke(cancel=cancel, timeout=timeout)
                    document = JournalDocument.fresh(self._clock(), version=self._settings.schema_version)
                    for fragment in fragments:
                        document.merge(fragment)
                except Exception:
                    self._state = CycleState.IDLE
                    self._document = None
                    raise

                self._document = document
                self._state = CycleState.MERGED
                logger.info(
                    "Journal collected",
                    fragments=len(fragments),
                    sections=list(document.sections()),
                )
                return document

    def save(self, path: str | Path | None = None, cancel: CancelToken | None = None) -> SaveResult:
        """Persist the merged document: file first, then the remote store.

        Args:
            path: Journal file path without suffix; defaults to settings.filename
            cancel: Abandons the remote wait once cancelled

        Returns:
            SaveResult with the file artifact and the remote outcome

        Raises:
            JournalStateError: If there is no freshly merged document
            FileWriteError: If the file cannot be written (state stays MERGED)
            SerializationError: If the document cannot be serialized
        """
        with self._lock:
            if self._state != CycleState.MERGED or self._document is None:
                raise JournalStateError("save", self._state)
            document = self._document
            target = str(path) if path is not None else self._settings.filename

            with cycle_context(self._channel.name, self._cycle):
                artifact = self._file_sink.save(document, target)
                remote = self._remote_sink.save(document, self._settings.store, cancel=cancel)
                warnings = (remote.warning,) if remote.warning else ()
                self._state = CycleState.PERSISTED
                logger.info(
                    "Journal saved",
                    file=artifact.path_or_uri if artifact is not None else None,
                    remote_attempted=remote.attempted,
                    warnings=len(warnings),
                )
            return SaveResult(file=artifact, remote=remote, warnings=warnings)

    def reset(self) -> None:
        """Drop the current document and return to IDLE."""
        with self._lock:
            if self._state == CycleState.COLLECTING:
                raise JournalStateError("reset", self._state)
            self._document = None
            self._state = CycleState.IDLE

    def close(self) -> None:
        """Delete the journal channel if this aggregator created it."""
        with self._lock:
            if self._owns_channel:
                self._registry.delete_channel(self._channel.name, self._scope)
                self._owns_channel = False

    # === Setters ===

    def _replace_settings(self, **changes: Any) -> None:
        with self._lock:
            if self._state == CycleState.COLLECTING:
                raise JournalStateError("change settings", self._state)
            self._settings = JournalSettings.model_validate({**self._settings.model_dump(), **changes})

    def _replace_store(self, **changes: Any) -> None:
        store = DocumentStoreSettings.model_validate({**self._settings.store.model_dump(), **changes})
        self._replace_settings(store=store)

    def set_filename(self, filename: str) -> None:
        """Set the default journal file path (without the .json suffix)."""
        self._replace_settings(filename=filename)

    def set_db_enabled(self, enable: bool) -> None:
        self._replace_store(enable=enable)

    def set_db_name(self, database: str) -> None:
        self._replace_store(database=database)

    def set_db_host(self, host: str | None) -> None:
        self._replace_store(host=host)

    def set_db_port(self, port: int | None) -> None:
        self._replace_store(port=port)

    def set_db_user(self, user: str | None) -> None:
        self._replace_store(user=user)

    def set_db_password(self, password: str | None) -> None:
        self._replace_store(password=password)

    def set_db_auth_source(self, auth_source: str | None) -> None:
        self._replace_store(auth_source=auth_source)

    def set_db_collection(self, collection: str) -> None:
        self._replace_store(collection=collection)

    def set_db_config(self, store: DocumentStoreSettings) -> None:
        """Replace the whole remote store snapshot."""
        self._replace_settings(store=store)


__all__ = ["JournalAggregator"]
