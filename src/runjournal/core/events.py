# src/runjournal/core/events.py
"""Named, typed channel registry with two scopes.

Every channel is stored with an explicit Signature. Lookups, connects and
invokes compare the requested Signature against the stored one and raise
TypeMismatchError on any difference.

Scopes:
- INSTANCE: one ChannelTable per EventRegistry, dropped by close()
- PROCESS: one ChannelTable shared by every registry in the process,
  created lazily by init_process_table() and released by
  shutdown_process_table() (registered with atexit). Tests inject their
  own ChannelTable instead of touching the global one.

Combiner:
    invoke() always returns every subscriber's result, in registration
    order. There is no "last responder wins" mode.

Thread Safety:
    Each ChannelTable has a writer-preferring ReadWriteLock.
    - create/delete/connect/disconnect take the exclusive lock
    - lookup/invoke take the shared lock
    - invoke() never holds the lock while a subscriber runs. Before each
      call it re-checks (under the shared lock) that the channel is still
      the same object and the subscription is still attached. A channel
      deleted mid-invoke truncates the remaining calls with a warning.
    Subscription lists are copy-on-write, so snapshots taken by a running
    invoke are never mutated underneath it.

Example:
    registry = EventRegistry()
    journal = registry.create_channel("journal.collect", Signature.of(returns=dict))
    registry.connect("journal.collect", mesh_watcher, "report", journal.signature)
    fragments = journal.invoke()
"""

from __future__ import annotations

import atexit
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

import structlog

from runjournal.contracts.enums import Scope, SlotKind
from runjournal.contracts.errors import (
    ChannelNotFoundError,
    DuplicateChannelError,
    DuplicateSubscriptionError,
    InvocationCancelledError,
    TypeMismatchError,
)
from runjournal.contracts.signature import Signature
from runjournal.core.locks import CancelToken, Deadline, ReadWriteLock, stop_reason
from runjournal.core.slots import WatcherProtocol, owner_id

logger = structlog.get_logger(__name__)

R = TypeVar("R")


@dataclass(frozen=True, eq=False)
class Subscription:
    """One attached slot. Identity is (owner, slot_name, kind)."""

    owner: str
    slot_name: str
    kind: SlotKind
    func: Callable[..., Any]

    @property
    def key(self) -> tuple[str, str, SlotKind]:
        return (self.owner, self.slot_name, self.kind)


@dataclass(eq=False)
class Channel:
    """A named endpoint with a fixed signature.

    ``subscriptions`` is replaced, never mutated in place.
    """

    name: str
    signature: Signature
    scope: Scope
    subscriptions: tuple[Subscription, ...] = field(default=())


class ChannelTable:
    """Name-keyed channels of one scope plus the lock guarding them."""

    def __init__(self, scope: Scope) -> None:
        self.scope = scope
        self.lock = ReadWriteLock()
        self._channels: dict[str, Channel] = {}

    def get(self, name: str) -> Channel | None:
        """Unlocked read. Callers hold ``lock``."""
        return self._channels.get(name)

    def require(self, name: str, signature: Signature | None = None) -> Channel:
        """Unlocked read with not-found and signature checks. Callers hold ``lock``."""
        channel = self._channels.get(name)
        if channel is None:
            raise ChannelNotFoundError(name, self.scope)
        if signature is not None and channel.signature != signature:
            raise TypeMismatchError(name, channel.signature, signature)
        return channel

    def add(self, channel: Channel) -> None:
        self._channels[channel.name] = channel

    def remove(self, name: str) -> Channel | None:
        return self._channels.pop(name, None)

    def names(self) -> list[str]:
        return list(self._channels)

    def clear(self) -> None:
        with self.lock.write():
            self._channels.clear()

    def __len__(self) -> int:
        return len(self._channels)


# =============================================================================
# Process-wide table lifecycle
# =============================================================================

_process_table: ChannelTable | None = None
_process_guard = threading.Lock()
_atexit_registered = False


def init_process_table() -> ChannelTable:
    """Create the process-wide channel table if needed and return it.

    Safe to call repeatedly and from several threads.
    """
    global _process_table, _atexit_registered

    with _process_guard:
        if _process_table is None:
            _process_table = ChannelTable(Scope.PROCESS)
            logger.debug("Process channel table created")
        if not _atexit_registered:
            atexit.register(shutdown_process_table)
            _atexit_registered = True
        return _process_table


def shutdown_process_table() -> None:
    """Drop every process-wide channel and release the table.

    The next init_process_table() (or first PROCESS-scope use) starts from
    an empty table.
    """
    global _process_table

    with _process_guard:
        table, _process_table = _process_table, None
    if table is not None:
        table.clear()
        logger.debug("Process channel table released")


def process_table() -> ChannelTable:
    """Return the process-wide table, creating it on first use."""
    table = _process_table
    if table is not None:
        return table
    return init_process_table()


# =============================================================================
# Registry
# =============================================================================


@dataclass(frozen=True)
class ChannelHandle(Generic[R]):
    """Typed handle to a channel.

    Carries the signature it was created or looked up with, so every call
    through the handle is checked against the stored channel again.
    """

    registry: EventRegistry
    name: str
    signature: Signature
    scope: Scope

    def invoke(self, *args: Any, cancel: CancelToken | None = None, timeout: float | None = None) -> list[R]:
        results: list[R] = self.registry.invoke(self.name, self.signature, *args, scope=self.scope, cancel=cancel, timeout=timeout)
        return results

    def connect(self, watcher: WatcherProtocol, slot_name: str, slot_kind: SlotKind = SlotKind.INSTANCE) -> Subscription:
        return self.registry.connect(self.name, watcher, slot_name, self.signature, scope=self.scope, slot_kind=slot_kind)

    def disconnect(self, watcher: WatcherProtocol, slot_name: str, slot_kind: SlotKind = SlotKind.INSTANCE) -> bool:
        return self.registry.disconnect(self.name, watcher, slot_name, scope=self.scope, slot_kind=slot_kind)

    def subscriber_count(self) -> int:
        return self.registry.subscriber_count(self.name, scope=self.scope)


class EventRegistry:
    """Name-keyed store of typed channels for one handler object.

    Instance-scope channels are private to this registry. Process-scope
    calls go to the shared process table, or to ``process_channels`` when
    one is injected.
    """

    def __init__(self, process_channels: ChannelTable | None = None) -> None:
        if process_channels is not None and process_channels.scope != Scope.PROCESS:
            raise ValueError(f"process_channels must be a {Scope.PROCESS} table, got {process_channels.scope}")
        self._instance = ChannelTable(Scope.INSTANCE)
        self._process = process_channels

    def _table(self, scope: Scope) -> ChannelTable:
        if scope == Scope.INSTANCE:
            return self._instance
        if self._process is not None:
            return self._process
        return process_table()

    # === Channel lifecycle ===

    def create_channel(self, name: str, signature: Signature, scope: Scope = Scope.INSTANCE) -> ChannelHandle[Any]:
        """Create a channel with a fixed signature.

        Raises:
            DuplicateChannelError: If ``name`` already exists in ``scope``
        """
        table = self._table(scope)
        with table.lock.write():
            if table.get(name) is not None:
                raise DuplicateChannelError(name, scope)
            table.add(Channel(name=name, signature=signature, scope=scope))
        logger.debug("Channel created", channel=name, scope=str(scope), signature=str(signature))
        return ChannelHandle(registry=self, name=name, signature=signature, scope=scope)

    def delete_channel(self, name: str, scope: Scope = Scope.INSTANCE) -> None:
        """Remove a channel. No error when absent."""
        table = self._table(scope)
        with table.lock.write():
            removed = table.remove(name)
        if removed is not None:
            logger.debug("Channel deleted", channel=name, scope=str(scope))

    def lookup_channel(self, name: str, signature: Signature, scope: Scope = Scope.INSTANCE) -> ChannelHandle[Any]:
        """Return a handle to an existing channel.

        Raises:
            ChannelNotFoundError: If ``name`` is absent from ``scope``
            TypeMismatchError: If the stored signature differs from ``signature``
        """
        table = self._table(scope)
        with table.lock.read():
            channel = table.require(name, signature)
        return ChannelHandle(registry=self, name=channel.name, signature=channel.signature, scope=scope)

    def has_channel(self, name: str, scope: Scope = Scope.INSTANCE) -> bool:
        table = self._table(scope)
        with table.lock.read():
            return table.get(name) is not None

    def list_channels(self, scope: Scope = Scope.INSTANCE) -> list[str]:
        """Snapshot of channel names in creation order."""
        table = self._table(scope)
        with table.lock.read():
            return table.names()

    def subscriber_count(self, name: str, scope: Scope = Scope.INSTANCE) -> int:
        table = self._table(scope)
        with table.lock.read():
            return len(table.require(name).subscriptions)

    def describe(self, scope: Scope = Scope.INSTANCE) -> dict[str, int]:
        """Log and return each channel's subscriber count."""
        table = self._table(scope)
        with table.lock.read():
            summary = {name: len(table.require(name).subscriptions) for name in table.names()}
        logger.info("Registered channels", scope=str(scope), channels=summary)
        return summary

    def close(self) -> None:
        """Drop every instance-scope channel. Process-scope channels are untouched."""
        self._instance.clear()

    # === Subscriptions ===

    def connect(
        self,
        channel_name: str,
        watcher: WatcherProtocol,
        slot_name: str,
        signature: Signature,
        *,
        scope: Scope = Scope.INSTANCE,
        slot_kind: SlotKind = SlotKind.INSTANCE,
    ) -> Subscription:
        """Attach ``watcher``'s slot to a channel, after every existing subscriber.

        Raises:
            ChannelNotFoundError: If the channel is absent
            TypeMismatchError: If channel or slot signature differs from ``signature``
            SlotNotFoundError: If the watcher has no such slot
            DuplicateSubscriptionError: If this slot is already attached
        """
        table = self._table(scope)
        with table.lock.read():
            table.require(channel_name, signature)

        # Watcher code runs outside the lock
        resolved = watcher.resolve_slot(slot_name, signature, slot_kind)
        subscription = Subscription(
            owner=owner_id(watcher, slot_kind),
            slot_name=slot_name,
            kind=slot_kind,
            func=resolved.func,
        )

        with table.lock.write():
            # Re-check: the channel may have been deleted or replaced meanwhile
            channel = table.require(channel_name, signature)
            if any(existing.key == subscription.key for existing in channel.subscriptions):
                raise DuplicateSubscriptionError(channel_name, subscription.owner, slot_name)
            channel.subscriptions = (*channel.subscriptions, subscription)
            count = len(channel.subscriptions)

        logger.debug(
            "Slot connected",
            channel=channel_name,
            owner=subscription.owner,
            slot=slot_name,
            kind=str(slot_kind),
            subscribers=count,
        )
        return subscription

    def disconnect(
        self,
        channel_name: str,
        watcher: WatcherProtocol,
        slot_name: str,
        *,
        scope: Scope = Scope.INSTANCE,
        slot_kind: SlotKind = SlotKind.INSTANCE,
    ) -> bool:
        """Detach exactly the matching subscription, for either slot kind.

        Returns:
            True if a subscription was removed, False if none matched
            (an absent channel included)
        """
        key = (owner_id(watcher, slot_kind), slot_name, slot_kind)
        table = self._table(scope)
        with table.lock.write():
            channel = table.get(channel_name)
            if channel is None:
                return False
            remaining = tuple(sub for sub in channel.subscriptions if sub.key != key)
            removed = len(remaining) != len(channel.subscriptions)
            channel.subscriptions = remaining

        if removed:
            logger.debug("Slot disconnected", channel=channel_name, owner=key[0], slot=slot_name, kind=str(slot_kind))
        return removed

    # === Dispatch ===

    def invoke(
        self,
        channel_name: str,
        signature: Signature,
        *args: Any,
        scope: Scope = Scope.INSTANCE,
        cancel: CancelToken | None = None,
        timeout: float | None = None,
    ) -> list[Any]:
        """Call every subscriber in registration order and return all results.

        Subscriber exceptions propagate unchanged; results collected before
        the failure are discarded with it.

        Args:
            channel_name: Channel to fire
            signature: Expected channel signature
            *args: Arguments passed to every subscriber
            scope: Channel scope
            cancel: Checked before each subscriber
            timeout: Seconds after which no further subscriber is started

        Returns:
            One result per subscriber that ran, in registration order

        Raises:
            ChannelNotFoundError: If the channel is absent
            TypeMismatchError: On signature, argument or result mismatch
            InvocationCancelledError: If cancelled or past the deadline;
                carries the results collected so far
        """
        deadline = Deadline(timeout)
        table = self._table(scope)
        with table.lock.read():
            channel = table.require(channel_name, signature)
            snapshot = channel.subscriptions

        problem = signature.check_args(args)
        if problem is not None:
            raise TypeMismatchError(f"{channel_name} arguments", signature, problem)

        results: list[Any] = []
        for position, subscription in enumerate(snapshot):
            reason = stop_reason(cancel, deadline)
            if reason is not None:
                raise InvocationCancelledError(channel_name, results, reason)

            with table.lock.read():
                current = table.get(channel_name)
                alive = current is channel
                attached = alive and any(sub is subscription for sub in channel.subscriptions)

            if not alive:
                logger.warning(
                    "Channel deleted during invoke, remaining subscribers skipped",
                    channel=channel_name,
                    delivered=len(results),
                    skipped=len(snapshot) - position,
                )
                break
            if not attached:
                continue

            result = subscription.func(*args)
            if not signature.check_result(result):
                raise TypeMismatchError(
                    f"{channel_name} result from {subscription.owner}.{subscription.slot_name}",
                    signature,
                    type(result).__name__,
                )
            results.append(result)

        return results
