"""Plugin manager for watcher discovery.

Uses pluggy for hook-based registration.
"""

import pluggy
import structlog

from runjournal.core.slots import WatcherProtocol
from runjournal.plugins.hookspecs import PROJECT_NAME, RunJournalWatcherSpec

logger = structlog.get_logger(__name__)


class PluginManager:
    """Collects watchers contributed by pluggy plugins.

    Usage:
        manager = PluginManager()
        manager.register(SolverJournalPlugin())
        aggregator.register_plugins(manager)
    """

    def __init__(self) -> None:
        self._pm = pluggy.PluginManager(PROJECT_NAME)
        self._pm.add_hookspecs(RunJournalWatcherSpec)

    def register(self, plugin: object, name: str | None = None) -> None:
        """Register a plugin object implementing runjournal hooks."""
        self._pm.register(plugin, name=name)

    def unregister(self, plugin: object) -> None:
        self._pm.unregister(plugin)

    def load_entrypoints(self, group: str = PROJECT_NAME) -> int:
        """Register plugins advertised through the ``runjournal`` entry point group.

        Returns:
            Number of plugins loaded
        """
        count: int = self._pm.load_setuptools_entrypoints(group)
        logger.debug("Watcher plugins loaded from entry points", group=group, count=count)
        return count

    def get_watchers(self) -> list[WatcherProtocol]:
        """Return every contributed watcher, in plugin call order.

        Raises:
            TypeError: If a plugin returns an object that is not a watcher
            ValueError: If two plugins contribute watchers with the same id
        """
        watchers: list[WatcherProtocol] = []
        seen: dict[str, WatcherProtocol] = {}
        # pluggy calls the most recently registered plugin first; reverse
        # so watchers attach in registration order
        for contributed in reversed(self._pm.hook.runjournal_get_watchers()):
            for watcher in contributed:
                if not isinstance(watcher, WatcherProtocol):
                    raise TypeError(f"Plugin returned {type(watcher).__name__}, which does not implement WatcherProtocol")
                existing = seen.get(watcher.watcher_id)
                if existing is not None and existing is not watcher:
                    raise ValueError(f"Duplicate watcher id '{watcher.watcher_id}' contributed by plugins")
                if existing is None:
                    seen[watcher.watcher_id] = watcher
                    watchers.append(watcher)
        return watchers
