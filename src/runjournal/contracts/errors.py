# src/runjournal/contracts/errors.py
"""Exception taxonomy for the journal subsystems.

Registry errors (duplicate, not found, type mismatch, slot not found)
indicate programmer or configuration mistakes. They are raised
synchronously to the caller and never retried.

Persistence errors split in two:
- FileWriteError / SerializationError propagate out of save()
- RemoteConnectError is caught by the remote sink and downgraded to a
  recorded warning. It must never abort a journal cycle.
"""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from runjournal.contracts.enums import CycleState, Scope
    from runjournal.contracts.signature import Signature


class RunJournalError(Exception):
    """Base class for every error raised by runjournal."""


# =============================================================================
# Registry errors
# =============================================================================


class DuplicateChannelError(RunJournalError):
    """Raised when a channel name is already taken in the target scope."""

    def __init__(self, name: str, scope: "Scope") -> None:
        self.name = name
        self.scope = scope
        super().__init__(f"Channel '{name}' already exists in {scope} scope")


class ChannelNotFoundError(RunJournalError):
    """Raised when a channel lookup misses."""

    def __init__(self, name: str, scope: "Scope") -> None:
        self.name = name
        self.scope = scope
        super().__init__(f"Channel '{name}' not found in {scope} scope")


class TypeMismatchError(RunJournalError):
    """Raised when a requested signature differs from the stored one.

    Attributes:
        what: Name of the channel, slot or fragment being checked
        expected: Signature (or type) that is actually stored
        actual: Signature (or type) the caller asked for
    """

    def __init__(self, what: str, expected: "Signature | type | str", actual: "Signature | type | str") -> None:
        self.what = what
        self.expected = expected
        self.actual = actual
        super().__init__(f"Type mismatch for '{what}': stored {expected}, requested {actual}")


class SlotNotFoundError(RunJournalError):
    """Raised when a watcher exposes no slot with the requested name."""

    def __init__(self, watcher_id: str, slot_name: str) -> None:
        self.watcher_id = watcher_id
        self.slot_name = slot_name
        super().__init__(f"Watcher '{watcher_id}' has no slot named '{slot_name}'")


class DuplicateSubscriptionError(RunJournalError):
    """Raised when the same (watcher, slot, kind) is connected twice to a channel."""

    def __init__(self, channel: str, watcher_id: str, slot_name: str) -> None:
        self.channel = channel
        self.watcher_id = watcher_id
        self.slot_name = slot_name
        super().__init__(f"Slot '{slot_name}' of watcher '{watcher_id}' is already connected to channel '{channel}'")


class InvocationCancelledError(RunJournalError):
    """Raised when an invoke is cancelled or exceeds its deadline.

    Subscribers that already returned are kept in ``results`` so callers
    can decide whether partial data is usable. A subscriber that is
    running when the deadline passes is never interrupted.
    """

    def __init__(self, channel: str, results: list[Any], reason: str) -> None:
        self.channel = channel
        self.results = results
        self.reason = reason
        super().__init__(f"Invocation of channel '{channel}' stopped after {len(results)} result(s): {reason}")


# =============================================================================
# Aggregator errors
# =============================================================================


class JournalStateError(RunJournalError):
    """Raised when an aggregator operation is called from the wrong state."""

    def __init__(self, operation: str, state: "CycleState") -> None:
        self.operation = operation
        self.state = state
        super().__init__(f"Cannot {operation} while journal is {state}")


# =============================================================================
# Persistence errors
# =============================================================================


class SerializationError(RunJournalError):
    """Raised when a journal document cannot be serialized."""


class FileWriteError(RunJournalError):
    """Raised when the journal file cannot be written.

    Attributes:
        path: Target path of the failed write
    """

    def __init__(self, path: str, message: str) -> None:
        self.path = path
        super().__init__(f"Failed to write journal file '{path}': {message}")


class RemoteConnectError(RunJournalError):
    """Connection or insert failure against the remote document store.

    Never propagates out of RemoteSink.save(). Recorded as a warning.
    """

    def __init__(self, target: str, message: str) -> None:
        self.target = target
        self.message = message
        super().__init__(f"Remote store '{target}' failed: {message}")
