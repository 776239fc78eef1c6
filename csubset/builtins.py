from __future__ import annotations

import re
from typing import Callable, Protocol, TextIO

from csubset.config import DEFAULT_CONFIG, InterpreterConfig
from csubset.diagnostics import ArityError, ConversionError, CSubsetTypeError, FormatError
from csubset.registry import DeclaredType
from csubset.values import Value, format_value, kind_of, parse_float_prefix, parse_int_prefix


PLACEHOLDER = re.compile(r"%(?P<flags>[-+ 0]*)(?P<width>\d*)(?:\.(?P<precision>\d+))?(?P<conv>[dfs%])")
ESCAPE = re.compile(r"\\(.)")
ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "0": "\0", "\\": "\\", '"': '"'}

PLACEHOLDER_TYPES = {"d": "int", "f": "float", "s": "string"}
INT_WORD = re.compile(r"[+-]?\d+")
FLOAT_WORD = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)")


class Target(Protocol):
    """An assignable location handed to `scanf`."""

    type: DeclaredType

    def set(self, value: Value) -> None: ...


def decode_escapes(text: str) -> str:
    return ESCAPE.sub(lambda m: ESCAPES.get(m.group(1), m.group(0)), text)


def split_format(fmt: str, line: int = 0, column: int = 0) -> list[str | re.Match[str]]:
    """Splits a format string into literal text and placeholder matches."""
    parts: list[str | re.Match[str]] = []
    literal: list[str] = []
    pos = 0
    while pos < len(fmt):
        if fmt[pos] != "%":
            literal.append(fmt[pos])
            pos += 1
            continue
        match = PLACEHOLDER.match(fmt, pos)
        if match is None:
            raise FormatError(
                code="format_mismatch",
                technical=f"Unsupported placeholder `{fmt[pos:pos + 2]}`; use %d, %f, %s or %%.",
                line=line,
                column=column,
            )
        if match.group("conv") == "%":
            literal.append("%")
        else:
            if literal:
                parts.append("".join(literal))
                literal = []
            parts.append(match)
        pos = match.end()
    if literal:
        parts.append("".join(literal))
    return parts


class Builtins:
    """print, puts, printf, scanf, stoi and stof bound to one pair of streams."""

    def __init__(self, stdout: TextIO, stdin: TextIO, config: InterpreterConfig = DEFAULT_CONFIG) -> None:
        self.stdout = stdout
        self.stdin = stdin
        self.config = config
        self._pending: list[str] = []
        self.table: dict[str, Callable[[list[Value], int, int], Value]] = {
            "print": self.builtin_print,
            "puts": self.builtin_puts,
            "printf": self.builtin_printf,
            "stoi": self.builtin_stoi,
            "stof": self.builtin_stof,
        }

    def call(self, name: str, args: list[Value], line: int = 0, column: int = 0) -> Value:
        return self.table[name](args, line, column)

    def _write(self, text: str) -> None:
        self.stdout.write(text)
        self.stdout.flush()

    def builtin_print(self, args: list[Value], line: int, column: int) -> None:
        (value,) = _expect_args("print", args, 1, line, column)
        if value is None:
            raise CSubsetTypeError(
                code="type_mismatch",
                technical="`print` cannot print a void value.",
                line=line,
                column=column,
            )
        self._write(format_value(value) + "\n")

    def builtin_puts(self, args: list[Value], line: int, column: int) -> None:
        (text,) = _expect_args("puts", args, 1, line, column)
        _expect_string("puts", text, line, column)
        self._write(f"{text}\n")

    def builtin_printf(self, args: list[Value], line: int, column: int) -> None:
        if not args:
            raise ArityError(
                code="arity_mismatch",
                technical="`printf` expects a format string.",
                line=line,
                column=column,
            )
        fmt = _expect_string("printf", args[0], line, column)
        values = list(args[1:])
        out: list[str] = []
        for part in split_format(decode_escapes(fmt), line, column):
            if isinstance(part, str):
                out.append(part)
                continue
            if not values:
                raise FormatError(
                    code="format_mismatch",
                    technical=f"`printf` placeholder `{part.group(0)}` has no matching argument.",
                    line=line,
                    column=column,
                )
            out.append(self._render(part, values.pop(0), line, column))
        if values:
            raise FormatError(
                code="format_mismatch",
                technical=f"`printf` got {len(values)} argument(s) more than its placeholders.",
                line=line,
                column=column,
            )
        self._write("".join(out))

    def _render(self, placeholder: re.Match[str], value: Value, line: int, column: int) -> str:
        conv = placeholder.group("conv")
        expected = PLACEHOLDER_TYPES[conv]
        if kind_of(value) != expected:
            raise FormatError(
                code="format_mismatch",
                technical=f"`{placeholder.group(0)}` expects {expected}, got {kind_of(value)}.",
                line=line,
                column=column,
            )
        precision = placeholder.group("precision")
        if precision is None and conv == "f":
            precision = str(self.config.float_precision)
        spec = "%" + placeholder.group("flags") + placeholder.group("width")
        if precision is not None:
            spec += "." + precision
        return (spec + conv) % value

    def scanf(self, args: list[Value], targets: list[Target], line: int = 0, column: int = 0) -> int:
        if not args:
            raise ArityError(
                code="arity_mismatch",
                technical="`scanf` expects a format string.",
                line=line,
                column=column,
            )
        fmt = _expect_string("scanf", args[0], line, column)
        placeholders = [p for p in split_format(decode_escapes(fmt), line, column) if not isinstance(p, str)]
        if len(placeholders) != len(targets):
            raise FormatError(
                code="format_mismatch",
                technical=f"`scanf` has {len(placeholders)} placeholder(s) but {len(targets)} target(s).",
                line=line,
                column=column,
            )
        for placeholder, target in zip(placeholders, targets):
            expected = PLACEHOLDER_TYPES[placeholder.group("conv")]
            if target.type.kind != expected:
                raise FormatError(
                    code="format_mismatch",
                    technical=f"`{placeholder.group(0)}` needs a {expected} target, got {target.type}.",
                    line=line,
                    column=column,
                )

        assigned = 0
        for placeholder, target in zip(placeholders, targets):
            word = self._next_word()
            if word is None:
                return assigned if assigned else -1
            target.set(self._scan_value(placeholder.group("conv"), word, line, column))
            assigned += 1
        return assigned

    def _scan_value(self, conv: str, word: str, line: int, column: int) -> Value:
        if conv == "s":
            return word
        pattern = INT_WORD if conv == "d" else FLOAT_WORD
        match = pattern.match(word)
        if match is None:
            raise ConversionError(
                code="bad_conversion",
                technical=f"`scanf` could not read {PLACEHOLDER_TYPES[conv]} from {word!r}.",
                line=line,
                column=column,
            )
        rest = word[match.end():]
        if rest:
            self._pending.insert(0, rest)
        return int(match.group(0)) if conv == "d" else float(match.group(0))

    def _next_word(self) -> str | None:
        while not self._pending:
            raw = self.stdin.readline()
            if raw == "":
                return None
            self._pending.extend(raw.split())
        return self._pending.pop(0)

    def builtin_stoi(self, args: list[Value], line: int, column: int) -> int:
        (text,) = _expect_args("stoi", args, 1, line, column)
        number = parse_int_prefix(_expect_string("stoi", text, line, column))
        if number is None:
            raise ConversionError(
                code="bad_conversion",
                technical=f"`stoi` found no integer in {text!r}.",
                line=line,
                column=column,
            )
        return number

    def builtin_stof(self, args: list[Value], line: int, column: int) -> float:
        (text,) = _expect_args("stof", args, 1, line, column)
        number = parse_float_prefix(_expect_string("stof", text, line, column))
        if number is None:
            raise ConversionError(
                code="bad_conversion",
                technical=f"`stof` found no number in {text!r}.",
                line=line,
                column=column,
            )
        return number


def _expect_args(name: str, args: list[Value], count: int, line: int, column: int) -> list[Value]:
    if len(args) != count:
        raise ArityError(
            code="arity_mismatch",
            technical=f"`{name}` expects {count} argument(s), got {len(args)}.",
            line=line,
            column=column,
        )
    return args


def _expect_string(name: str, value: Value, line: int, column: int) -> str:
    if not isinstance(value, str):
        raise CSubsetTypeError(
            code="type_mismatch",
            technical=f"`{name}` expects a string, got {kind_of(value)}.",
            line=line,
            column=column,
        )
    return value
