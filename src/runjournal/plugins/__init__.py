# src/runjournal/plugins/__init__.py
"""Plugin system: persistence sinks and watcher discovery via pluggy.

- protocols: structural types for sinks and store transports
- sinks: FileSink (local JSON) and RemoteSink (document store)
- hookspecs / manager: pluggy hooks contributing watchers
"""

from runjournal.plugins.hookspecs import hookimpl
from runjournal.plugins.manager import PluginManager
from runjournal.plugins.protocols import (
    DocumentTransport,
    FileSinkProtocol,
    RemoteSinkProtocol,
    TransportFactory,
)
from runjournal.plugins.sinks import FileSink, RemoteSink, SQLAlchemyDocumentTransport

__all__ = [
    "DocumentTransport",
    "FileSink",
    "FileSinkProtocol",
    "PluginManager",
    "RemoteSink",
    "RemoteSinkProtocol",
    "SQLAlchemyDocumentTransport",
    "TransportFactory",
    "hookimpl",
]
