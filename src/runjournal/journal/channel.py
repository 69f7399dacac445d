"""Well-known journal channel: name, slot and signature shared by watchers and the aggregator."""

from runjournal.contracts.signature import Signature
from runjournal.core.config import DEFAULT_CHANNEL

# No arguments, one fragment (nested dict) per watcher
JOURNAL_SIGNATURE = Signature.of(returns=dict)

# Slot every JournalWatcher exposes
JOURNAL_SLOT = "journal_notify"

__all__ = ["DEFAULT_CHANNEL", "JOURNAL_SIGNATURE", "JOURNAL_SLOT"]
