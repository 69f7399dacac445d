# src/runjournal/contracts/document.py
"""Journal document model and fragment merge.

A journal document is an insertion-ordered nested dict. The ``schema``
section carries the document version and the capture instant; every
other top-level key comes from watcher fragments.

Merge policy (path-wise, fold in registration order):
- key absent in accumulator: insert
- leaf in both: later fragment wins
- nested document in both: merge recursively
- nested document vs leaf: later fragment wins
"""

import copy
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from runjournal.contracts.errors import TypeMismatchError

JOURNAL_SCHEMA_VERSION = "0.1.0"

# Top-level key reserved for document metadata
SCHEMA_KEY = "schema"

# strftime pattern for the human-readable capture instants
TIME_TEXT_FORMAT = "%c %Z"

Fragment = dict[str, Any]


def merge_fragment(target: dict[str, Any], fragment: Mapping[str, Any], *, path: str = "") -> dict[str, Any]:
    """Fold ``fragment`` into ``target`` in place and return ``target``.

    Values taken from the fragment are deep-copied so the merged document
    never aliases watcher-owned objects.

    Raises:
        TypeMismatchError: If the fragment is not a mapping or has a non-string key
    """
    if not isinstance(fragment, Mapping):
        raise TypeMismatchError(path or "<fragment>", "Mapping", type(fragment).__name__)

    for key, value in fragment.items():
        if not isinstance(key, str):
            raise TypeMismatchError(f"{path}<key {key!r}>", "str", type(key).__name__)
        key_path = f"{path}.{key}" if path else key
        current = target.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            merge_fragment(current, value, path=key_path)
        elif isinstance(value, Mapping):
            target[key] = merge_fragment({}, value, path=key_path)
        else:
            target[key] = copy.deepcopy(value)
    return target


def capture_time(now: datetime) -> dict[str, Any]:
    """Build the ``schema.time`` section for one capture instant.

    Naive datetimes are taken as UTC.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    utc = now.astimezone(UTC)
    return {
        "epoch": int(utc.timestamp()),
        "utc_text": utc.strftime(TIME_TEXT_FORMAT),
        "local_text": utc.astimezone().strftime(TIME_TEXT_FORMAT),
    }


@dataclass
class JournalDocument:
    """One merged journal, rebuilt from base metadata on every collection.

    Attributes:
        data: The full hierarchical document, ``schema`` section included
    """

    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def fresh(cls, now: datetime, version: str = JOURNAL_SCHEMA_VERSION) -> "JournalDocument":
        """Create a document holding only base metadata."""
        return cls(data={SCHEMA_KEY: {"version": version, "time": capture_time(now)}})

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "JournalDocument":
        return cls(data=merge_fragment({}, data))

    def merge(self, fragment: Mapping[str, Any]) -> None:
        """Fold one watcher fragment into the document.

        Raises:
            TypeMismatchError: If the fragment is malformed or writes the
                reserved ``schema`` section
        """
        if isinstance(fragment, Mapping) and SCHEMA_KEY in fragment:
            raise TypeMismatchError(SCHEMA_KEY, "journal metadata", "watcher section")
        merge_fragment(self.data, fragment)

    @property
    def version(self) -> str | None:
        schema = self.data.get(SCHEMA_KEY)
        if isinstance(schema, dict):
            version = schema.get("version")
            return str(version) if version is not None else None
        return None

    def sections(self) -> dict[str, Any]:
        """Merged watcher content, metadata excluded."""
        return {key: value for key, value in self.data.items() if key != SCHEMA_KEY}

    @property
    def is_empty(self) -> bool:
        """True when no watcher contributed any content.

        Base metadata alone does not make a journal worth persisting.
        """
        return not self.sections()

    def to_dict(self) -> dict[str, Any]:
        return copy.deepcopy(self.data)
