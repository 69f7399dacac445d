"""Run journal: watchers report fragments, the aggregator merges and persists them."""

from runjournal.journal.aggregator import JournalAggregator
from runjournal.journal.channel import DEFAULT_CHANNEL, JOURNAL_SIGNATURE, JOURNAL_SLOT
from runjournal.journal.watcher import JournalWatcher

__all__ = [
    "DEFAULT_CHANNEL",
    "JOURNAL_SIGNATURE",
    "JOURNAL_SLOT",
    "JournalAggregator",
    "JournalWatcher",
]
