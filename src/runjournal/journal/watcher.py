# src/runjournal/journal/watcher.py
"""Base class for objects that report into the run journal.

Subclasses implement journal_fragment(). The base class exposes it as the
``journal_notify`` slot with the journal signature and optionally nests
the fragment under a section key.

Example:
    class MeshWatcher(JournalWatcher):
        journal_section = "mesh"

        def __init__(self, mesh):
            super().__init__()
            self._mesh = mesh

        def journal_fragment(self):
            return {"n": self._mesh.n_elements}

    MeshWatcher(mesh).journal_connect(aggregator)
    # collect() now contains {"mesh": {"n": ...}}
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, ClassVar

from runjournal.contracts.errors import TypeMismatchError
from runjournal.core.slots import SlotHandler
from runjournal.journal.channel import JOURNAL_SIGNATURE, JOURNAL_SLOT

if TYPE_CHECKING:
    from runjournal.core.events import Subscription
    from runjournal.journal.aggregator import JournalAggregator


class JournalWatcher(SlotHandler, ABC):
    """A watcher whose ``journal_notify`` slot returns one journal fragment."""

    # Top-level key the fragment is nested under; None merges it at the root
    journal_section: ClassVar[str | None] = None

    def __init__(self, *, watcher_id: str | None = None, section: str | None = None) -> None:
        super().__init__(watcher_id=watcher_id)
        self._section = section if section is not None else type(self).journal_section
        self.slot_new(JOURNAL_SLOT, self.journal_notify, JOURNAL_SIGNATURE)

    @property
    def section(self) -> str | None:
        return self._section

    @abstractmethod
    def journal_fragment(self) -> Mapping[str, Any]:
        """Return this watcher's report for the current collection cycle."""
        ...

    def journal_notify(self) -> dict[str, Any]:
        """Slot body: wrap journal_fragment() under the section key.

        Raises:
            TypeMismatchError: If journal_fragment() does not return a mapping
        """
        fragment = self.journal_fragment()
        if not isinstance(fragment, Mapping):
            raise TypeMismatchError(f"{self.watcher_id}.journal_fragment", "Mapping", type(fragment).__name__)
        if self._section:
            return {self._section: dict(fragment)}
        return dict(fragment)

    def journal_connect(self, aggregator: "JournalAggregator") -> "Subscription":
        return aggregator.register_watcher(self)

    def journal_disconnect(self, aggregator: "JournalAggregator") -> bool:
        return aggregator.unregister_watcher(self)
