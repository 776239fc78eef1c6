from __future__ import annotations

import sys
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator

from csubset.diagnostics import RedeclarationError, StackOverflow, UndefinedReferenceError, did_you_mean
from csubset.registry import DeclaredType
from csubset.values import Value


@dataclass
class Slot:
    type: DeclaredType
    value: Value


class Scope:
    """One level of the scope chain: name -> typed, mutable slot."""

    def __init__(self, parent: Scope | None = None) -> None:
        self.parent = parent
        self.slots: dict[str, Slot] = {}

    def child(self) -> Scope:
        return Scope(self)

    def define(self, name: str, type: DeclaredType, value: Value, line: int = 0, column: int = 0) -> Slot:
        if name in self.slots:
            raise RedeclarationError(
                code="redeclared",
                technical=f"Variable `{name}` is already declared in this scope.",
                line=line,
                column=column,
            )
        slot = Slot(type=type, value=value)
        self.slots[name] = slot
        return slot

    def lookup(self, name: str, line: int = 0, column: int = 0) -> Slot:
        scope: Scope | None = self
        while scope is not None:
            slot = scope.slots.get(name)
            if slot is not None:
                return slot
            scope = scope.parent
        raise UndefinedReferenceError(
            code="undefined_variable",
            technical=f"Variable `{name}` is not declared.{did_you_mean(name, self.names())}",
            line=line,
            column=column,
        )

    def names(self) -> list[str]:
        out: list[str] = []
        scope: Scope | None = self
        while scope is not None:
            out.extend(scope.slots)
            scope = scope.parent
        return out


@dataclass
class CallFrame:
    function: str
    line: int
    return_type: DeclaredType | None = None


@dataclass
class CallStack:
    max_depth: int
    frames: list[CallFrame] = field(default_factory=list)

    @property
    def depth(self) -> int:
        return len(self.frames)

    def push(self, frame: CallFrame) -> None:
        if len(self.frames) >= self.max_depth:
            raise StackOverflow(
                code="stack_overflow",
                technical=f"Call depth exceeded {self.max_depth} while calling `{frame.function}`.",
                line=frame.line,
            )
        self.frames.append(frame)

    def pop(self) -> CallFrame:
        return self.frames.pop()


_headroom_lock = threading.Lock()
_headroom_users = 0
_saved_limit = 0


@contextmanager
def recursion_headroom(frames: int) -> Iterator[None]:
    """Keeps the host recursion limit at least ``frames`` while any run is active.

    The limit is process-wide, so overlapping runs share one raise: it only
    grows while runs are active and the original value comes back when the
    last one leaves.
    """
    global _headroom_users, _saved_limit
    with _headroom_lock:
        if _headroom_users == 0:
            _saved_limit = sys.getrecursionlimit()
        _headroom_users += 1
        if frames > sys.getrecursionlimit():
            sys.setrecursionlimit(frames)
    try:
        yield
    finally:
        with _headroom_lock:
            _headroom_users -= 1
            if _headroom_users == 0:
                sys.setrecursionlimit(_saved_limit)
