"""Status codes, scopes and kinds shared across runjournal subsystems."""

from enum import StrEnum


class Scope(StrEnum):
    """Visibility of a channel.

    INSTANCE channels live in one EventRegistry and die with it.
    PROCESS channels live in the process-wide table shared by every registry.
    """

    INSTANCE = "instance"
    PROCESS = "process"


class SlotKind(StrEnum):
    """Where a watcher slot is stored.

    INSTANCE slots belong to one watcher object.
    STATIC slots belong to the watcher class and are shared by its instances.
    """

    INSTANCE = "instance"
    STATIC = "static"


class CycleState(StrEnum):
    """State of the journal aggregation cycle.

    IDLE -> COLLECTING -> MERGED -> PERSISTED

    collect() may start again from MERGED or PERSISTED; reset() returns
    to IDLE.
    """

    IDLE = "idle"
    COLLECTING = "collecting"
    MERGED = "merged"
    PERSISTED = "persisted"
