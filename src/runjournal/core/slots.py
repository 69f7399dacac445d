# src/runjournal/core/slots.py
"""Watcher interface: named, typed callables that channels can attach.

A watcher is any object that can resolve a slot name plus a Signature to
a callable. SlotHandler is the standard implementation. It keeps two
stores:

- instance slots, owned by one watcher object
- static slots, owned by the watcher class and shared by its instances

Usage:
    class MeshWatcher(SlotHandler):
        @slot(Signature.of(returns=dict))
        def report(self) -> dict:
            return {"mesh": {"n": self.n}}

    registry.connect("journal.collect", MeshWatcher(), "report", JOURNAL)
"""

import itertools
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, ClassVar, Protocol, runtime_checkable

from runjournal.contracts.enums import SlotKind
from runjournal.contracts.errors import SlotNotFoundError, TypeMismatchError
from runjournal.contracts.signature import Signature

# Attribute set on functions decorated with @slot
_SLOT_MARKER = "__runjournal_slot__"

# Default watcher ids, unique for the lifetime of the process
_watcher_serial = itertools.count(1)


@dataclass(frozen=True)
class Slot:
    """A named callable with its fixed signature."""

    name: str
    func: Callable[..., Any]
    signature: Signature
    kind: SlotKind


@runtime_checkable
class WatcherProtocol(Protocol):
    """What the registry needs from a watcher."""

    @property
    def watcher_id(self) -> str: ...

    def resolve_slot(self, name: str, signature: Signature, kind: SlotKind = SlotKind.INSTANCE) -> Slot: ...


def slot(signature: Signature, name: str | None = None) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Mark a method as an instance slot.

    SlotHandler.__init__ registers every marked method, bound to the new
    instance, under ``name`` (defaults to the method name).
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        setattr(func, _SLOT_MARKER, (name or func.__name__, signature))
        return func

    return decorator


def owner_id(watcher: WatcherProtocol, kind: SlotKind) -> str:
    """Identity under which a subscription is keyed.

    Static slots are keyed by class so two instances of one class cannot
    attach the same shared callable twice.
    """
    if kind == SlotKind.STATIC:
        cls = type(watcher)
        return f"{cls.__module__}.{cls.__qualname__}"
    return watcher.watcher_id


class SlotHandler:
    """Mixin giving an object named instance slots and class-level static slots."""

    _static_slots: ClassVar[dict[str, Slot]]

    def __init__(self, *, watcher_id: str | None = None) -> None:
        self._watcher_id = watcher_id or f"{type(self).__name__}-{next(_watcher_serial)}"
        self._slots: dict[str, Slot] = {}
        for attr_name in dir(type(self)):
            member = getattr(type(self), attr_name, None)
            marker = getattr(member, _SLOT_MARKER, None)
            if marker is not None:
                slot_name, signature = marker
                self.slot_new(slot_name, getattr(self, attr_name), signature)

    @property
    def watcher_id(self) -> str:
        return self._watcher_id

    # === Instance slots ===

    def slot_new(self, name: str, func: Callable[..., Any], signature: Signature) -> Slot:
        """Register (or replace) an instance slot."""
        registered = Slot(name=name, func=func, signature=signature, kind=SlotKind.INSTANCE)
        self._slots[name] = registered
        return registered

    def slot_delete(self, name: str) -> None:
        self._slots.pop(name, None)

    def slots(self) -> list[str]:
        return list(self._slots)

    # === Static slots ===

    @classmethod
    def _own_static_slots(cls) -> dict[str, Slot]:
        # Stored in the class' own __dict__ so subclasses never share a parent's table
        if "_static_slots" not in cls.__dict__:
            cls._static_slots = {}
        return cls._static_slots

    @classmethod
    def slot_static_new(cls, name: str, func: Callable[..., Any], signature: Signature) -> Slot:
        """Register (or replace) a static slot shared by every instance of ``cls``."""
        registered = Slot(name=name, func=func, signature=signature, kind=SlotKind.STATIC)
        cls._own_static_slots()[name] = registered
        return registered

    @classmethod
    def slot_static_delete(cls, name: str) -> None:
        cls._own_static_slots().pop(name, None)

    @classmethod
    def slots_static(cls) -> list[str]:
        names: dict[str, None] = {}
        for klass in reversed(cls.__mro__):
            table = klass.__dict__.get("_static_slots")
            if table:
                names.update(dict.fromkeys(table))
        return list(names)

    @classmethod
    def _find_static(cls, name: str) -> Slot | None:
        for klass in cls.__mro__:
            table = klass.__dict__.get("_static_slots")
            if table and name in table:
                found: Slot = table[name]
                return found
        return None

    # === Resolution ===

    def resolve_slot(self, name: str, signature: Signature, kind: SlotKind = SlotKind.INSTANCE) -> Slot:
        """Return the slot ``name`` of ``kind`` if its signature matches.

        Raises:
            SlotNotFoundError: No slot of that kind with that name
            TypeMismatchError: Slot exists with a different signature
        """
        found = self._slots.get(name) if kind == SlotKind.INSTANCE else self._find_static(name)
        if found is None:
            raise SlotNotFoundError(self.watcher_id, name)
        if found.signature != signature:
            raise TypeMismatchError(f"{self.watcher_id}.{name}", found.signature, signature)
        return found
