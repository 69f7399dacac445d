# tests/conftest.py
"""Shared test fixtures and helpers.

Watcher Helpers:
- DictWatcher: JournalWatcher returning a fixed fragment
- ProcessTable: every test gets a private process-scope ChannelTable via
  ``process_channels``; the global table is released after each test so
  aggregators built with default arguments never leak channels between tests.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/
"""

import os
from collections.abc import Iterator, Mapping
from datetime import UTC, datetime
from typing import Any

import pytest
from hypothesis import Phase, Verbosity, settings

from runjournal.contracts import Scope
from runjournal.core.events import ChannelTable, EventRegistry, shutdown_process_table
from runjournal.journal.watcher import JournalWatcher

# Fixed capture instant so documents are reproducible
FIXED_NOW = datetime(2024, 5, 17, 9, 30, 0, tzinfo=UTC)


class DictWatcher(JournalWatcher):
    """Watcher reporting a fixed fragment. ``calls`` counts notifications."""

    def __init__(self, fragment: Mapping[str, Any], *, watcher_id: str | None = None, section: str | None = None) -> None:
        super().__init__(watcher_id=watcher_id, section=section)
        self.fragment = fragment
        self.calls = 0

    def journal_fragment(self) -> Mapping[str, Any]:
        self.calls += 1
        return self.fragment


@pytest.fixture(autouse=True)
def _release_process_table() -> Iterator[None]:
    """Start and finish every test with no process-wide channels."""
    shutdown_process_table()
    yield
    shutdown_process_table()


@pytest.fixture
def process_channels() -> ChannelTable:
    return ChannelTable(Scope.PROCESS)


@pytest.fixture
def registry(process_channels: ChannelTable) -> Iterator[EventRegistry]:
    reg = EventRegistry(process_channels=process_channels)
    yield reg
    reg.close()


@pytest.fixture
def fixed_clock() -> Any:
    return lambda: FIXED_NOW


# =============================================================================
# Hypothesis Configuration
# =============================================================================

# CI profile: Fast tests for continuous integration
settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,  # Disable deadline for CI (timing varies)
)

# Nightly profile: Thorough testing for scheduled runs
settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

# Debug profile: Minimal examples with verbose output for debugging
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

# Load profile from environment, default to "ci"
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))
