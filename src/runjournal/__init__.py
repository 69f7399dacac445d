"""
runjournal: typed event channels and a run journal built on them.

Watchers publish report fragments on a well-known channel; the journal
aggregator merges every fragment into one hierarchical document and
persists it to a JSON file and, optionally, a remote document store.
"""

__version__ = "0.1.0"
