# src/runjournal/contracts/signature.py
"""Type descriptors for channels and slots.

A Signature is the explicit tag stored next to every channel and slot.
Retrieval compares signatures structurally and raises TypeMismatchError
on a difference. Nothing is ever cast blindly.

Example:
    JOURNAL = Signature.of(returns=dict)
    SCALED = Signature.of(float, int, returns=float)
"""

from dataclasses import dataclass
from typing import Any, get_origin

_UNCHECKED: tuple[Any, ...] = (Any, object)


def _type_name(tp: Any) -> str:
    if tp is None or tp is type(None):
        return "None"
    name = getattr(tp, "__name__", None)
    if name is not None and get_origin(tp) is None:
        return str(name)
    return repr(tp)


def _runtime_class(tp: Any) -> type | None:
    """Return the class usable with isinstance(), or None when unchecked."""
    if any(tp is unchecked for unchecked in _UNCHECKED):
        return None
    if tp is None:
        return type(None)
    origin = get_origin(tp)
    candidate = origin if origin is not None else tp
    if isinstance(candidate, type):
        return candidate
    return None


def _matches(value: Any, tp: Any) -> bool:
    cls = _runtime_class(tp)
    return cls is None or isinstance(value, cls)


@dataclass(frozen=True)
class Signature:
    """Immutable (argument types, result type) descriptor.

    Equality is structural, so two independently built descriptors for
    the same callable shape compare equal.
    """

    args: tuple[Any, ...] = ()
    result: Any = None

    @classmethod
    def of(cls, *args: Any, returns: Any = None) -> "Signature":
        """Build a signature from positional argument types and a result type."""
        return cls(args=tuple(args), result=returns)

    @property
    def arity(self) -> int:
        return len(self.args)

    def check_args(self, args: tuple[Any, ...]) -> str | None:
        """Return a description of the first argument mismatch, or None."""
        if len(args) != self.arity:
            return f"{self.arity} argument(s) expected, got {len(args)}"
        for position, (value, tp) in enumerate(zip(args, self.args, strict=True)):
            if not _matches(value, tp):
                return f"argument {position} expected {_type_name(tp)}, got {type(value).__name__}"
        return None

    def check_result(self, value: Any) -> bool:
        """True when ``value`` is acceptable as a result of this signature."""
        return _matches(value, self.result)

    def __str__(self) -> str:
        params = ", ".join(_type_name(tp) for tp in self.args)
        return f"({params}) -> {_type_name(self.result)}"
