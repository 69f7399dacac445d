"""Core infrastructure: channel registry, watcher slots, config, logging."""

from runjournal.core.events import (
    ChannelHandle,
    ChannelTable,
    EventRegistry,
    Subscription,
    init_process_table,
    process_table,
    shutdown_process_table,
)
from runjournal.core.locks import CancelToken, ReadWriteLock
from runjournal.core.slots import Slot, SlotHandler, WatcherProtocol, slot

__all__ = [
    "CancelToken",
    "ChannelHandle",
    "ChannelTable",
    "EventRegistry",
    "ReadWriteLock",
    "Slot",
    "SlotHandler",
    "Subscription",
    "WatcherProtocol",
    "init_process_table",
    "process_table",
    "shutdown_process_table",
    "slot",
]
