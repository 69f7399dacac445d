"""Built-in journal sinks.

FileSink writes the local journal; RemoteSink sends it to a document
store. The aggregator always calls them in that order.
"""

from runjournal.plugins.sinks.file_sink import FileSink, journal_path, load_journal
from runjournal.plugins.sinks.remote_sink import RemoteSink, SQLAlchemyDocumentTransport, build_store_url

__all__ = [
    "FileSink",
    "RemoteSink",
    "SQLAlchemyDocumentTransport",
    "build_store_url",
    "journal_path",
    "load_journal",
]
