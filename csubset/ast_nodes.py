from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from csubset.registry import DeclaredType


@dataclass
class FieldDecl:
    type: DeclaredType
    name: str
    line: int
    column: int


@dataclass
class TypeDecl:
    kind: str  # "struct" | "union"
    name: str
    fields: list[FieldDecl]
    line: int
    column: int


@dataclass
class Param:
    type: DeclaredType
    name: str
    line: int
    column: int


@dataclass
class Program:
    declarations: list["TopLevel"] = field(default_factory=list)

    @property
    def functions(self) -> list["FunctionDecl"]:
        return [d for d in self.declarations if isinstance(d, FunctionDecl)]

    @property
    def globals(self) -> list["VarDecl"]:
        return [d for d in self.declarations if isinstance(d, VarDecl)]


@dataclass
class Block:
    statements: list["Stmt"]
    line: int
    column: int


@dataclass
class ArrayInit:
    elements: list["Expr"]
    line: int
    column: int


@dataclass
class VarDecl:
    type: DeclaredType
    name: str
    init: "Expr | ArrayInit | None"
    line: int
    column: int


@dataclass
class IfStmt:
    condition: "Expr"
    then_branch: "Stmt"
    else_branch: "Stmt | None"
    line: int
    column: int


@dataclass
class WhileStmt:
    condition: "Expr"
    body: "Stmt"
    line: int
    column: int


@dataclass
class DoWhileStmt:
    body: "Stmt"
    condition: "Expr"
    line: int
    column: int


@dataclass
class ForStmt:
    init: "Stmt | None"
    condition: "Expr | None"
    step: "Expr | None"
    body: "Stmt"
    line: int
    column: int


@dataclass
class CaseClause:
    value: "Literal | None"  # None marks `default`
    statements: list["Stmt"]
    line: int
    column: int

    @property
    def is_default(self) -> bool:
        return self.value is None


@dataclass
class SwitchStmt:
    scrutinee: "Expr"
    clauses: list[CaseClause]
    line: int
    column: int

    @property
    def default_index(self) -> int | None:
        for i, clause in enumerate(self.clauses):
            if clause.is_default:
                return i
        return None


@dataclass
class BreakStmt:
    line: int
    column: int


@dataclass
class ReturnStmt:
    value: "Expr | None"
    line: int
    column: int


@dataclass
class ExprStmt:
    expr: "Expr"
    line: int
    column: int


@dataclass
class FunctionDecl:
    name: str
    params: list[Param]
    return_type: DeclaredType
    body: Block | None
    line: int
    column: int


@dataclass
class Identifier:
    name: str
    line: int
    column: int


@dataclass
class Literal:
    value: int | float | str
    line: int
    column: int


@dataclass
class Unary:
    op: str
    operand: "Expr"
    line: int
    column: int


@dataclass
class Binary:
    op: str
    left: "Expr"
    right: "Expr"
    line: int
    column: int


@dataclass
class Logical:
    op: str  # "&&" | "||"
    left: "Expr"
    right: "Expr"
    line: int
    column: int


@dataclass
class Assign:
    target: "Expr"
    value: "Expr"
    line: int
    column: int


@dataclass
class Call:
    callee: str
    args: list["Expr"]
    line: int
    column: int


@dataclass
class IndexAccess:
    base: "Expr"
    index: "Expr"
    line: int
    column: int


@dataclass
class MemberAccess:
    base: "Expr"
    member: str
    line: int
    column: int


@dataclass
class AddressOf:
    target: "Expr"
    line: int
    column: int


Stmt = Union[
    VarDecl,
    IfStmt,
    WhileStmt,
    DoWhileStmt,
    ForStmt,
    SwitchStmt,
    BreakStmt,
    ReturnStmt,
    ExprStmt,
    Block,
]
Expr = Union[Identifier, Literal, Unary, Binary, Logical, Assign, Call, IndexAccess, MemberAccess, AddressOf]
TopLevel = Union[TypeDecl, FunctionDecl, VarDecl]
LVALUE_NODES = (Identifier, IndexAccess, MemberAccess)
