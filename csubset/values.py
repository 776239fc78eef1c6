from __future__ import annotations

import math
import re
from dataclasses import dataclass, field

from csubset.diagnostics import ConversionError, CSubsetTypeError, IndexOutOfBoundsError
from csubset.registry import DeclaredType, TypeRegistry


INT_PREFIX = re.compile(r"\s*([+-]?\d+)")
FLOAT_PREFIX = re.compile(r"\s*([+-]?(?:\d+(?:\.\d*)?|\.\d+))")

# Scalars are plain Python values: int, float and str. Void is None.
Value = object


@dataclass
class ArrayValue:
    element_type: DeclaredType
    items: list[Value]

    def __len__(self) -> int:
        return len(self.items)

    def _check(self, index: int, line: int, column: int) -> None:
        if index < 0 or index >= len(self.items):
            raise IndexOutOfBoundsError(
                code="index_out_of_bounds",
                technical=f"Index {index} is outside [0, {len(self.items)}).",
                line=line,
                column=column,
            )

    def get(self, index: int, line: int = 0, column: int = 0) -> Value:
        self._check(index, line, column)
        return self.items[index]


@dataclass
class StructValue:
    name: str
    fields: dict[str, Value] = field(default_factory=dict)


@dataclass
class UnionValue:
    name: str
    active: str
    value: Value


def zero_value(t: DeclaredType, registry: TypeRegistry) -> Value:
    if t.kind == "int":
        return 0
    if t.kind == "float":
        return 0.0
    if t.kind == "string":
        return ""
    if t.kind == "array":
        assert t.element is not None
        return ArrayValue(t.element, [zero_value(t.element, registry) for _ in range(t.size or 0)])
    if t.kind == "struct":
        layout = registry.lookup_composite("struct", str(t.name))
        return StructValue(
            name=layout.name,
            fields={fname: zero_value(ftype, registry) for fname, ftype in layout.fields.items()},
        )
    if t.kind == "union":
        layout = registry.lookup_composite("union", str(t.name))
        first, ftype = next(iter(layout.fields.items()))
        return UnionValue(name=layout.name, active=first, value=zero_value(ftype, registry))
    return None


def kind_of(value: Value) -> str:
    if value is None:
        return "void"
    if isinstance(value, int):
        return "int"
    if isinstance(value, float):
        return "float"
    if isinstance(value, str):
        return "string"
    if isinstance(value, ArrayValue):
        return f"{value.element_type}[{len(value)}]"
    if isinstance(value, StructValue):
        return f"struct {value.name}"
    if isinstance(value, UnionValue):
        return f"union {value.name}"
    return type(value).__name__


def copy_value(value: Value) -> Value:
    """Copies structs, unions and arrays so that the copy shares no slots."""
    if isinstance(value, StructValue):
        return StructValue(name=value.name, fields={k: copy_value(v) for k, v in value.fields.items()})
    if isinstance(value, UnionValue):
        return UnionValue(name=value.name, active=value.active, value=copy_value(value.value))
    if isinstance(value, ArrayValue):
        return ArrayValue(value.element_type, [copy_value(v) for v in value.items])
    return value


def is_compatible(value: Value, target: DeclaredType) -> bool:
    if target.kind == "int" or target.kind == "float":
        return isinstance(value, (int, float))
    if target.kind == "string":
        return isinstance(value, str)
    if target.kind == "struct":
        return isinstance(value, StructValue) and value.name == target.name
    if target.kind == "union":
        return isinstance(value, UnionValue) and value.name == target.name
    if target.kind == "array":
        return (
            isinstance(value, ArrayValue)
            and value.element_type == target.element
            and (target.size is None or len(value) == target.size)
        )
    return False


def coerce(value: Value, target: DeclaredType, context: str, line: int = 0, column: int = 0) -> Value:
    """Converts ``value`` for storage in a slot of type ``target``.

    int and float convert into each other (float to int truncates toward
    zero); everything else must already have the target type. Structs and
    unions are copied; arrays are passed through by reference.
    """
    if not is_compatible(value, target):
        raise CSubsetTypeError(
            code="type_mismatch",
            technical=f"{context}: expected {target}, got {kind_of(value)}.",
            line=line,
            column=column,
        )
    if target.kind == "int":
        return to_int(value, line, column)
    if target.kind == "float":
        return to_float(value, line, column)
    if target.kind in {"struct", "union"}:
        return copy_value(value)
    return value


def reinterpret(
    value: Value, target: DeclaredType, registry: TypeRegistry, line: int = 0, column: int = 0
) -> Value:
    """Reads a union's active value as another member's type."""
    if is_compatible(value, target):
        if target.kind == "int":
            return to_int(value, line, column)
        if target.kind == "float":
            return to_float(value, line, column)
        return value
    if target.kind == "string" and isinstance(value, (int, float)):
        return format_value(value)
    if target.is_numeric and isinstance(value, str):
        number = parse_float_prefix(value) if target.kind == "float" else parse_int_prefix(value)
        return zero_value(target, registry) if number is None else number
    return zero_value(target, registry)


def to_int(value: int | float, line: int = 0, column: int = 0) -> int:
    """Truncates toward zero; infinities and NaN have no int value."""
    if isinstance(value, float) and not math.isfinite(value):
        raise ConversionError(
            code="non_finite",
            technical=f"Cannot convert {format_value(value)} to int.",
            line=line,
            column=column,
        )
    return int(value)


def to_float(value: int | float, line: int = 0, column: int = 0) -> float:
    try:
        return float(value)
    except OverflowError:
        raise ConversionError(
            code="float_overflow",
            technical="Integer is too large to convert to float.",
            line=line,
            column=column,
        ) from None


def parse_int_prefix(text: str) -> int | None:
    match = INT_PREFIX.match(text)
    return int(match.group(1)) if match else None


def parse_float_prefix(text: str) -> float | None:
    match = FLOAT_PREFIX.match(text)
    return float(match.group(1)) if match else None


def truthy(value: Value, line: int = 0, column: int = 0) -> bool:
    if isinstance(value, (int, float)):
        return value != 0
    raise CSubsetTypeError(
        code="type_mismatch",
        technical=f"Condition must be int or float, got {kind_of(value)}.",
        line=line,
        column=column,
    )


def format_value(value: Value) -> str:
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return repr(value)
    if isinstance(value, str):
        return value
    if isinstance(value, ArrayValue):
        return "{" + ", ".join(_format_nested(v) for v in value.items) + "}"
    if isinstance(value, StructValue):
        inner = ", ".join(f"{k}={_format_nested(v)}" for k, v in value.fields.items())
        return f"{value.name}{{{inner}}}"
    if isinstance(value, UnionValue):
        return f"{value.name}{{{value.active}={_format_nested(value.value)}}}"
    raise CSubsetTypeError(code="type_mismatch", technical=f"Cannot format {kind_of(value)} value.")


def _format_nested(value: Value) -> str:
    if isinstance(value, str):
        return f'"{value}"'
    return format_value(value)
