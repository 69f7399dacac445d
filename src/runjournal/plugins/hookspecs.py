# src/runjournal/plugins/hookspecs.py
"""pluggy hook specifications for journal watchers.

Packages that own watchers implement these hooks so an application can
attach all of them to the journal without importing each one.

Usage (implementing a watcher plugin):
    from runjournal.plugins.hookspecs import hookimpl

    class SolverJournalPlugin:
        @hookimpl
        def runjournal_get_watchers(self):
            return [solver_watcher]

Note: @hookspec defines the hook interface (done here).
      @hookimpl marks plugin implementations of those hooks.
"""

from typing import TYPE_CHECKING

import pluggy

if TYPE_CHECKING:
    from runjournal.core.slots import WatcherProtocol

# Project name for pluggy
PROJECT_NAME = "runjournal"

# Hook specification marker
hookspec = pluggy.HookspecMarker(PROJECT_NAME)

# Hook implementation marker (for plugins to use)
hookimpl = pluggy.HookimplMarker(PROJECT_NAME)


class RunJournalWatcherSpec:
    """Hook specifications for watcher plugins."""

    @hookspec
    def runjournal_get_watchers(self) -> list["WatcherProtocol"]:  # type: ignore[empty-body]
        """Return watcher instances to attach to the journal channel.

        Each watcher must expose a slot with the journal signature
        (``journal_notify`` by default).

        Returns:
            List of watcher objects (instances, not classes)
        """
