from __future__ import annotations

import difflib
from dataclasses import dataclass
from typing import ClassVar


HINTS = {
    "unknown_char": "This character is not part of CSubset.",
    "unterminated_string": "Close the string literal before the end of the line.",
    "unterminated_comment": "Close the block comment with `*/`.",
    "bad_directive": "Only `#define NAME VALUE` and `#include` lines are understood.",
    "unexpected_token": "The parser expected something else at this point.",
    "missing_semicolon": "Statements end with `;`.",
    "missing_paren": "Parentheses are unbalanced.",
    "missing_brace": "Braces are unbalanced.",
    "invalid_expression": "This is not a valid expression.",
    "invalid_lvalue": "Only variables, array elements and fields can be assigned.",
    "break_outside_loop": "`break` only works inside a loop or switch.",
    "duplicate_case": "Each case label may appear only once per switch.",
    "duplicate_default": "A switch has at most one `default`.",
    "invalid_case_label": "Case labels must be int, float or string literals.",
    "too_many_initializers": "The initializer list is longer than the array.",
    "undefined_variable": "Declare the variable before using it.",
    "undefined_function": "Declare the function before calling it.",
    "undefined_type": "Declare the struct/union before using it.",
    "undefined_field": "The type has no field with this name.",
    "redeclared": "This name is already taken in this scope.",
    "type_mismatch": "The value's type does not fit here.",
    "missing_return": "Every path of a non-void function must return a value.",
    "arity_mismatch": "Pass exactly as many arguments as the function declares.",
    "index_out_of_bounds": "Array indices run from 0 to size - 1.",
    "bad_conversion": "The text does not start with a number.",
    "non_finite": "Infinity and NaN have no integer value.",
    "float_overflow": "The integer is outside the range of float.",
    "nesting_too_deep": "Split the expression or block into smaller pieces.",
    "format_mismatch": "Each placeholder needs one argument of the matching type.",
    "stack_overflow": "Recursion went too deep; check the base case.",
    "division_by_zero": "The divisor evaluated to zero.",
}


def did_you_mean(name: str, candidates: list[str]) -> str:
    if not name or not candidates:
        return ""
    matches = difflib.get_close_matches(name, sorted(set(candidates)), n=1, cutoff=0.72)
    return f" Did you mean `{matches[0]}`?" if matches else ""


def hint_for(code: str) -> str:
    return HINTS.get(code, "")


@dataclass
class CSubsetError(Exception):
    code: str
    technical: str
    line: int = 0
    column: int = 0

    kind: ClassVar[str] = "Error"

    @property
    def hint(self) -> str:
        return hint_for(self.code)

    def pretty(self, source_name: str | None = None, source_text: str | None = None) -> str:
        prefix = f"{source_name}:" if source_name else ""
        base = f"{prefix}{self.line}:{self.column} [{self.kind}] {self.technical}"
        if self.hint:
            base = f"{base}\n  {self.hint}"
        frame = _source_frame(source_text, self.line, self.column)
        if frame:
            return f"{base}\n{frame}"
        return base

    def __str__(self) -> str:
        return self.pretty()


class LexicalError(CSubsetError):
    kind = "LexicalError"


class CSubsetSyntaxError(CSubsetError):
    kind = "SyntaxError"


class CSubsetTypeError(CSubsetError):
    kind = "TypeError"


class ArityError(CSubsetError):
    kind = "ArityError"


class UndefinedReferenceError(CSubsetError):
    kind = "UndefinedReferenceError"


class RedeclarationError(CSubsetError):
    kind = "RedeclarationError"


class IndexOutOfBoundsError(CSubsetError):
    kind = "IndexOutOfBoundsError"


class ConversionError(CSubsetError):
    kind = "ConversionError"


class FormatError(CSubsetError):
    kind = "FormatError"


class StackOverflow(CSubsetError):
    kind = "StackOverflow"


class DivisionByZeroError(CSubsetError):
    kind = "DivisionByZeroError"


@dataclass
class CSubsetAggregateError(Exception):
    errors: list[CSubsetError]

    def pretty(self, source_name: str | None = None, source_text: str | None = None) -> str:
        return "\n".join(err.pretty(source_name, source_text=source_text) for err in self.errors)

    def __str__(self) -> str:
        return self.pretty()


def _source_frame(source_text: str | None, line: int, column: int) -> str:
    if not source_text:
        return ""
    lines = source_text.splitlines()
    if line < 1 or line > len(lines):
        return ""
    content = lines[line - 1]
    caret_pos = max(column, 1)
    caret_line = " " * (caret_pos - 1) + "^"
    return f"  | {content}\n  | {caret_line}"
