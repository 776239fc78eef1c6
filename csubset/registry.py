from __future__ import annotations

from dataclasses import dataclass, field

from csubset.diagnostics import CSubsetTypeError, RedeclarationError, UndefinedReferenceError


BUILTIN_NAMES = frozenset({"print", "puts", "printf", "scanf", "stoi", "stof"})


@dataclass(frozen=True)
class DeclaredType:
    """A CSubset type: int, float, string, void, array, struct or union."""

    kind: str
    name: str | None = None
    element: DeclaredType | None = None
    size: int | None = None

    @property
    def is_numeric(self) -> bool:
        return self.kind in {"int", "float"}

    @property
    def is_composite(self) -> bool:
        return self.kind in {"struct", "union"}

    def __str__(self) -> str:
        if self.kind == "array":
            size = "" if self.size is None else self.size
            return f"{self.element}[{size}]"
        if self.is_composite:
            return f"{self.kind} {self.name}"
        return self.kind


INT = DeclaredType("int")
FLOAT = DeclaredType("float")
STRING = DeclaredType("string")
VOID = DeclaredType("void")

PRIMITIVES = {"int": INT, "float": FLOAT, "string": STRING, "void": VOID}


def array_of(element: DeclaredType, size: int) -> DeclaredType:
    return DeclaredType("array", element=element, size=size)


@dataclass
class CompositeLayout:
    kind: str
    name: str
    fields: dict[str, DeclaredType]
    line: int = 0

    @property
    def type(self) -> DeclaredType:
        return DeclaredType(self.kind, name=self.name)


@dataclass
class FunctionSig:
    name: str
    return_type: DeclaredType
    params: list[tuple[str, DeclaredType]]
    line: int = 0

    @property
    def arity(self) -> int:
        return len(self.params)

    def same_shape(self, other: FunctionSig) -> bool:
        return self.return_type == other.return_type and [t for _, t in self.params] == [
            t for _, t in other.params
        ]


@dataclass
class TypeRegistry:
    """Struct/union layouts and function signatures for one program run."""

    composites: dict[str, CompositeLayout] = field(default_factory=dict)
    functions: dict[str, FunctionSig] = field(default_factory=dict)

    def declare_composite(
        self, kind: str, name: str, fields: list[tuple[str, DeclaredType]], line: int = 0, column: int = 0
    ) -> CompositeLayout:
        if name in self.composites:
            prev = self.composites[name]
            raise RedeclarationError(
                code="redeclared",
                technical=f"Type `{name}` already declared as {prev.kind} on line {prev.line}.",
                line=line,
                column=column,
            )
        layout = CompositeLayout(kind=kind, name=name, fields={}, line=line)
        for field_name, field_type in fields:
            if field_name in layout.fields:
                raise RedeclarationError(
                    code="redeclared",
                    technical=f"Field `{field_name}` duplicated in {kind} `{name}`.",
                    line=line,
                    column=column,
                )
            if field_type.kind == "void":
                raise CSubsetTypeError(
                    code="type_mismatch",
                    technical=f"Field `{field_name}` cannot have type void.",
                    line=line,
                    column=column,
                )
            layout.fields[field_name] = field_type
        self.composites[name] = layout
        return layout

    def lookup_composite(self, kind: str, name: str, line: int = 0, column: int = 0) -> CompositeLayout:
        layout = self.composites.get(name)
        if layout is None or layout.kind != kind:
            raise UndefinedReferenceError(
                code="undefined_type",
                technical=f"Unknown type `{kind} {name}`.",
                line=line,
                column=column,
            )
        return layout

    def field_type(self, owner: DeclaredType, field_name: str, line: int = 0, column: int = 0) -> DeclaredType:
        layout = self.lookup_composite(owner.kind, str(owner.name), line, column)
        ftype = layout.fields.get(field_name)
        if ftype is None:
            raise UndefinedReferenceError(
                code="undefined_field",
                technical=f"{owner} has no field `{field_name}`.",
                line=line,
                column=column,
            )
        return ftype

    def declare_function(self, sig: FunctionSig, has_body: bool, column: int = 0) -> None:
        if sig.name in BUILTIN_NAMES:
            raise RedeclarationError(
                code="redeclared",
                technical=f"Function `{sig.name}` conflicts with a built-in.",
                line=sig.line,
                column=column,
            )
        prev = self.functions.get(sig.name)
        if prev is not None and not prev.same_shape(sig):
            raise RedeclarationError(
                code="redeclared",
                technical=f"Function `{sig.name}` redeclared with a different signature.",
                line=sig.line,
                column=column,
            )
        if prev is None or has_body:
            self.functions[sig.name] = sig
