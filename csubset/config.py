from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class InterpreterConfig:
    # Deepest chain of active user-function calls before StackOverflow.
    max_call_depth: int = 200
    entry_point: str = "main"
    # Digits after the point for a bare `%f`.
    float_precision: int = 6
    # Host frames reserved per CSubset call when raising the recursion limit.
    host_frames_per_call: int = 40

    @property
    def host_recursion_limit(self) -> int:
        return self.max_call_depth * self.host_frames_per_call + 1000


DEFAULT_CONFIG = InterpreterConfig()
