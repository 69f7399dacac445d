# tests/journal/test_aggregator.py
"""Tests for the journal collect -> merge -> persist cycle."""

import json
from collections.abc import Callable, Iterator, Mapping
from datetime import datetime
from pathlib import Path
from typing import Any

import pytest
from pydantic import ValidationError

from runjournal.contracts import CycleState, Scope, Signature, SlotKind
from runjournal.contracts.document import JournalDocument
from runjournal.contracts.errors import (
    DuplicateSubscriptionError,
    FileWriteError,
    InvocationCancelledError,
    JournalStateError,
    TypeMismatchError,
)
from runjournal.contracts.results import RemoteResult
from runjournal.core.config import DEFAULT_CHANNEL, DocumentStoreSettings, JournalSettings
from runjournal.core.events import ChannelTable, EventRegistry
from runjournal.core.locks import CancelToken
from runjournal.core.slots import SlotHandler
from runjournal.journal import JournalAggregator
from runjournal.journal.channel import JOURNAL_SIGNATURE, JOURNAL_SLOT
from runjournal.plugins.hookspecs import hookimpl
from runjournal.plugins.manager import PluginManager
from runjournal.plugins.sinks import RemoteSink, load_journal
from tests.conftest import FIXED_NOW, DictWatcher


class RemoteSpy:
    """RemoteSinkProtocol double recording what it was asked to send."""

    name = "remote"

    def __init__(self, result: RemoteResult | None = None) -> None:
        self.result = result or RemoteResult.skipped()
        self.calls: list[tuple[JournalDocument, DocumentStoreSettings]] = []

    def save(
        self,
        document: JournalDocument,
        settings: DocumentStoreSettings,
        cancel: CancelToken | None = None,
    ) -> RemoteResult:
        self.calls.append((document, settings))
        return self.result


@pytest.fixture
def remote() -> RemoteSpy:
    return RemoteSpy()


@pytest.fixture
def make_aggregator(
    registry: EventRegistry,
    remote: RemoteSpy,
    fixed_clock: Callable[[], datetime],
    tmp_path: Path,
) -> Iterator[Callable[..., JournalAggregator]]:
    created: list[JournalAggregator] = []

    def factory(**kwargs: Any) -> JournalAggregator:
        kwargs.setdefault("settings", JournalSettings(filename=str(tmp_path / "journal")))
        kwargs.setdefault("remote_sink", remote)
        kwargs.setdefault("clock", fixed_clock)
        aggregator = JournalAggregator(registry, **kwargs)
        created.append(aggregator)
        return aggregator

    yield factory
    for aggregator in created:
        aggregator.close()


@pytest.fixture
def aggregator(make_aggregator: Callable[..., JournalAggregator]) -> JournalAggregator:
    return make_aggregator()


class TestEndToEnd:
    def test_mesh_and_solver_saved_to_file(self, aggregator: JournalAggregator, remote: RemoteSpy, tmp_path: Path) -> None:
        """Two watchers, one collect, one save: run1.json holds both sections."""
        aggregator.register_watcher(DictWatcher({"n": 1}, section="mesh"))
        aggregator.register_watcher(DictWatcher({"iters": 42}, section="solver"))

        aggregator.collect()
        result = aggregator.save(tmp_path / "run1")

        written = json.loads((tmp_path / "run1.json").read_text())
        assert written["mesh"] == {"n": 1}
        assert written["solver"] == {"iters": 42}
        assert written["schema"]["version"] == "0.1.0"
        assert written["schema"]["time"]["epoch"] == int(FIXED_NOW.timestamp())
        assert list(written) == ["schema", "mesh", "solver"]

        assert result.file is not None
        assert result.remote.attempted is False
        assert result.warnings == ()
        assert aggregator.state == CycleState.PERSISTED

    def test_remote_sent_store_settings(self, make_aggregator: Callable[..., JournalAggregator], remote: RemoteSpy, tmp_path: Path) -> None:
        settings = JournalSettings(filename=str(tmp_path / "j"), store=DocumentStoreSettings(enable=True))
        aggregator = make_aggregator(settings=settings)
        aggregator.register_watcher(DictWatcher({"n": 1}, section="mesh"))

        aggregator.collect()
        aggregator.save()

        [(document, store)] = remote.calls
        assert document.sections() == {"mesh": {"n": 1}}
        assert store.enable is True

    def test_remote_warning_does_not_undo_file(self, make_aggregator: Callable[..., JournalAggregator], tmp_path: Path) -> None:
        failing = RemoteSpy(RemoteResult(attempted=True, warning="Remote store 'x' failed: refused"))
        aggregator = make_aggregator(remote_sink=failing)
        aggregator.register_watcher(DictWatcher({"n": 1}, section="mesh"))

        aggregator.collect()
        result = aggregator.save(tmp_path / "run1")

        assert result.warnings == ("Remote store 'x' failed: refused",)
        assert result.file is not None
        assert (tmp_path / "run1.json").exists()
        assert aggregator.state == CycleState.PERSISTED

    def test_default_filename_from_settings(self, aggregator: JournalAggregator, tmp_path: Path) -> None:
        aggregator.register_watcher(DictWatcher({"n": 1}, section="mesh"))
        aggregator.collect()
        aggregator.save()

        assert (tmp_path / "journal.json").exists()


class TestCollect:
    def test_fragments_merged_in_registration_order(self, aggregator: JournalAggregator) -> None:
        aggregator.register_watcher(DictWatcher({"mesh": {"n": 1, "h": 0.5}}))
        aggregator.register_watcher(DictWatcher({"mesh": {"n": 2}}))

        document = aggregator.collect()

        assert document.sections() == {"mesh": {"n": 2, "h": 0.5}}

    def test_collect_is_idempotent(self, aggregator: JournalAggregator) -> None:
        aggregator.register_watcher(DictWatcher({"n": 1}, section="mesh"))

        first = aggregator.collect()
        second = aggregator.collect()

        assert first.data == second.data
        assert first is not second

    def test_document_rebuilt_each_cycle(self, aggregator: JournalAggregator) -> None:
        """A watcher removed between cycles leaves no trace in the next document."""
        gone = DictWatcher({"n": 1}, section="mesh")
        aggregator.register_watcher(gone)
        aggregator.register_watcher(DictWatcher({"iters": 2}, section="solver"))
        aggregator.collect()

        aggregator.unregister_watcher(gone)

        assert aggregator.collect().sections() == {"solver": {"iters": 2}}

    def test_no_watchers_gives_metadata_only(self, aggregator: JournalAggregator) -> None:
        document = aggregator.collect()
        assert document.is_empty
        assert aggregator.state == CycleState.MERGED

    def test_watcher_failure_resets_to_idle(self, aggregator: JournalAggregator) -> None:
        broken = SlotHandler(watcher_id="broken")

        def explode() -> dict[str, Any]:
            raise RuntimeError("solver diverged")

        broken.slot_new(JOURNAL_SLOT, explode, JOURNAL_SIGNATURE)
        aggregator.register_watcher(broken)

        with pytest.raises(RuntimeError, match="solver diverged"):
            aggregator.collect()
        assert aggregator.state == CycleState.IDLE
        assert aggregator.document is None

    def test_fragment_writing_schema_rejected(self, aggregator: JournalAggregator) -> None:
        aggregator.register_watcher(DictWatcher({"schema": "mine", "mesh": {"n": 1}}))

        with pytest.raises(TypeMismatchError):
            aggregator.collect()
        assert aggregator.state == CycleState.IDLE
        assert aggregator.document is None

    def test_reentrant_collect_rejected(self, aggregator: JournalAggregator) -> None:
        class Reentrant(DictWatcher):
            def journal_fragment(self) -> Mapping[str, Any]:
                aggregator.collect()
                return {}

        aggregator.register_watcher(Reentrant({}))

        with pytest.raises(JournalStateError):
            aggregator.collect()
        assert aggregator.state == CycleState.IDLE

    def test_cancelled_collect(self, aggregator: JournalAggregator) -> None:
        aggregator.register_watcher(DictWatcher({"n": 1}, section="mesh"))
        token = CancelToken()
        token.cancel("shutdown")

        with pytest.raises(InvocationCancelledError):
            aggregator.collect(cancel=token)
        assert aggregator.state == CycleState.IDLE

    def test_static_slot_watcher(self, aggregator: JournalAggregator) -> None:
        class Totals(SlotHandler):
            pass

        Totals.slot_static_new("totals", lambda: {"totals": {"runs": 3}}, JOURNAL_SIGNATURE)
        aggregator.register_watcher(Totals(), "totals", SlotKind.STATIC)

        assert aggregator.collect().sections() == {"totals": {"runs": 3}}


class TestWatcherRegistration:
    def test_duplicate_registration_rejected(self, aggregator: JournalAggregator) -> None:
        watcher = DictWatcher({})
        aggregator.register_watcher(watcher)

        with pytest.raises(DuplicateSubscriptionError):
            aggregator.register_watcher(watcher)
        assert aggregator.watcher_count == 1

    def test_journal_connect_and_disconnect(self, aggregator: JournalAggregator) -> None:
        watcher = DictWatcher({"n": 1}, section="mesh")
        watcher.journal_connect(aggregator)
        assert aggregator.watcher_count == 1

        assert watcher.journal_disconnect(aggregator) is True
        assert aggregator.watcher_count == 0

    def test_wrong_slot_signature_rejected(self, aggregator: JournalAggregator) -> None:
        watcher = SlotHandler()
        watcher.slot_new(JOURNAL_SLOT, lambda: 1, Signature.of(returns=int))

        with pytest.raises(TypeMismatchError):
            aggregator.register_watcher(watcher)

    def test_watcher_from_another_component(self, aggregator: JournalAggregator, process_channels: ChannelTable) -> None:
        """A component with its own registry reaches the process-wide journal channel."""
        component_registry = EventRegistry(process_channels=process_channels)
        channel = component_registry.lookup_channel(DEFAULT_CHANNEL, JOURNAL_SIGNATURE, Scope.PROCESS)
        channel.connect(DictWatcher({"n": 5}, section="mesh"), JOURNAL_SLOT)

        assert aggregator.collect().sections() == {"mesh": {"n": 5}}

    def test_register_plugins(self, aggregator: JournalAggregator) -> None:
        class SolverPlugin:
            @hookimpl
            def runjournal_get_watchers(self) -> list[DictWatcher]:
                return [DictWatcher({"iters": 9}, section="solver")]

        manager = PluginManager()
        manager.register(SolverPlugin())

        assert aggregator.register_plugins(manager) == 1
        assert aggregator.collect().sections() == {"solver": {"iters": 9}}


class TestChannelSharing:
    def test_second_aggregator_shares_channel(self, make_aggregator: Callable[..., JournalAggregator]) -> None:
        first = make_aggregator()
        second = make_aggregator()
        first.register_watcher(DictWatcher({"n": 1}, section="mesh"))

        assert second.collect().sections() == {"mesh": {"n": 1}}

        # Only the creator deletes the channel
        second.close()
        assert first.watcher_count == 1

    def test_close_deletes_owned_channel(self, aggregator: JournalAggregator, registry: EventRegistry) -> None:
        aggregator.close()
        assert not registry.has_channel(DEFAULT_CHANNEL, Scope.PROCESS)

    def test_incompatible_existing_channel(self, registry: EventRegistry, make_aggregator: Callable[..., JournalAggregator]) -> None:
        registry.create_channel(DEFAULT_CHANNEL, Signature.of(int), Scope.PROCESS)

        with pytest.raises(TypeMismatchError):
            make_aggregator()

    def test_instance_scope_channel(self, make_aggregator: Callable[..., JournalAggregator], registry: EventRegistry) -> None:
        make_aggregator(scope=Scope.INSTANCE)
        assert registry.has_channel(DEFAULT_CHANNEL, Scope.INSTANCE)
        assert not registry.has_channel(DEFAULT_CHANNEL, Scope.PROCESS)


class TestStateMachine:
    def test_initially_idle(self, aggregator: JournalAggregator) -> None:
        assert aggregator.state == CycleState.IDLE
        assert aggregator.document is None

    def test_save_before_collect_rejected(self, aggregator: JournalAggregator) -> None:
        with pytest.raises(JournalStateError) as exc_info:
            aggregator.save()
        assert exc_info.value.state == CycleState.IDLE

    def test_save_twice_rejected(self, aggregator: JournalAggregator) -> None:
        aggregator.register_watcher(DictWatcher({"n": 1}, section="mesh"))
        aggregator.collect()
        aggregator.save()

        with pytest.raises(JournalStateError):
            aggregator.save()

    def test_collect_after_persist_starts_new_cycle(self, aggregator: JournalAggregator) -> None:
        aggregator.register_watcher(DictWatcher({"n": 1}, section="mesh"))
        aggregator.collect()
        aggregator.save()

        aggregator.collect()

        assert aggregator.state == CycleState.MERGED

    def test_empty_save_writes_nothing(self, aggregator: JournalAggregator, tmp_path: Path) -> None:
        aggregator.collect()
        result = aggregator.save(tmp_path / "empty")

        assert result.file is None
        assert not result.wrote_anything
        assert not (tmp_path / "empty.json").exists()
        assert aggregator.state == CycleState.PERSISTED

    def test_file_error_keeps_merged_state(self, aggregator: JournalAggregator, tmp_path: Path) -> None:
        aggregator.register_watcher(DictWatcher({"n": 1}, section="mesh"))
        aggregator.collect()
        blocker = tmp_path / "blocker"
        blocker.write_text("")

        with pytest.raises(FileWriteError):
            aggregator.save(blocker / "run1")
        assert aggregator.state == CycleState.MERGED

        # Retry to a good location succeeds
        aggregator.save(tmp_path / "run1")
        assert aggregator.state == CycleState.PERSISTED

    def test_reset(self, aggregator: JournalAggregator) -> None:
        aggregator.collect()
        aggregator.reset()

        assert aggregator.state == CycleState.IDLE
        assert aggregator.document is None


class TestSetters:
    def test_set_filename(self, aggregator: JournalAggregator, tmp_path: Path) -> None:
        aggregator.set_filename(str(tmp_path / "renamed"))
        aggregator.register_watcher(DictWatcher({"n": 1}, section="mesh"))
        aggregator.collect()
        aggregator.save()

        assert (tmp_path / "renamed.json").exists()

    def test_store_setters(self, aggregator: JournalAggregator) -> None:
        aggregator.set_db_enabled(True)
        aggregator.set_db_host("db.internal")
        aggregator.set_db_port(27017)
        aggregator.set_db_user("journal")
        aggregator.set_db_password("secret")
        aggregator.set_db_auth_source("admin")
        aggregator.set_db_name("runs")
        aggregator.set_db_collection("feelpp")

        store = aggregator.settings.store
        assert store.enable is True
        assert store.host == "db.internal"
        assert store.port == 27017
        assert store.user == "journal"
        assert store.password == "secret"
        assert store.auth_source == "admin"
        assert store.database == "runs"
        assert store.collection == "feelpp"

    def test_collection_setter_leaves_database(self, aggregator: JournalAggregator) -> None:
        aggregator.set_db_collection("feelpp")
        assert aggregator.settings.store.database == "runjournal"

    def test_invalid_port_rejected(self, aggregator: JournalAggregator) -> None:
        with pytest.raises(ValidationError):
            aggregator.set_db_port(0)
        assert aggregator.settings.store.port is None

    def test_set_db_config(self, aggregator: JournalAggregator) -> None:
        store = DocumentStoreSettings(enable=True, collection="other")
        aggregator.set_db_config(store)
        assert aggregator.settings.store == store

    def test_setters_apply_to_next_save(self, aggregator: JournalAggregator, remote: RemoteSpy) -> None:
        aggregator.register_watcher(DictWatcher({"n": 1}, section="mesh"))
        aggregator.collect()
        aggregator.set_db_enabled(True)
        aggregator.save()

        [(_, store)] = remote.calls
        assert store.enable is True


class TestPersistenceProperties:
    def test_disabled_store_never_contacted(self, make_aggregator: Callable[..., JournalAggregator], tmp_path: Path) -> None:
        """Any number of cycles with the store disabled creates no transport."""
        created: list[DocumentStoreSettings] = []

        def factory(settings: DocumentStoreSettings) -> Any:
            created.append(settings)
            raise AssertionError("transport must not be created")

        aggregator = make_aggregator(remote_sink=RemoteSink(factory))
        aggregator.register_watcher(DictWatcher({"n": 1}, section="mesh"))

        for cycle in range(5):
            aggregator.collect()
            result = aggregator.save(tmp_path / f"run{cycle}")
            assert result.remote.attempted is False

        assert created == []

    def test_large_integer_saved_to_file_and_store(self, make_aggregator: Callable[..., JournalAggregator], tmp_path: Path) -> None:
        inserted: list[dict[str, Any]] = []

        class ListTransport:
            target = "memory://journal"

            def insert(self, document: dict[str, Any], *, content_hash: str, schema_version: str | None) -> None:
                inserted.append(document)

            def close(self) -> None:
                pass

        settings = JournalSettings(filename=str(tmp_path / "big"), store=DocumentStoreSettings(enable=True))
        aggregator = make_aggregator(settings=settings, remote_sink=RemoteSink(lambda _: ListTransport()))
        aggregator.register_watcher(DictWatcher({"bytes": 2**60}, section="io"))

        aggregator.collect()
        result = aggregator.save()

        assert result.warnings == ()
        assert aggregator.state == CycleState.PERSISTED
        assert json.loads((tmp_path / "big.json").read_text())["io"]["bytes"] == 2**60
        assert [doc["io"]["bytes"] for doc in inserted] == [2**60]

    def test_saved_file_reproduces_merged_fragments(self, aggregator: JournalAggregator, tmp_path: Path) -> None:
        aggregator.register_watcher(DictWatcher({"n": 1, "h": 0.25, "tags": ["p1", "q2"]}, section="mesh"))
        aggregator.register_watcher(DictWatcher({"iters": 42, "converged": True, "residual": None}, section="solver"))

        document = aggregator.collect()
        aggregator.save(tmp_path / "run1")

        loaded = load_journal(tmp_path / "run1")
        assert loaded.sections() == document.sections()
        assert loaded.version == document.version
