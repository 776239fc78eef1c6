from __future__ import annotations

from dataclasses import dataclass, replace


@dataclass(frozen=True)
class Token:
    kind: str
    value: object
    line: int
    column: int

    def describe(self) -> str:
        if self.kind == "EOF":
            return "end of input"
        if self.kind == "STRING_LIT":
            return f'"{self.value}"'
        return f"`{self.value}`"

    def moved_to(self, line: int, column: int) -> Token:
        return replace(self, line=line, column=column)
