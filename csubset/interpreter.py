from __future__ import annotations

import logging
import sys
from typing import TextIO

from csubset.ast_nodes import (
    LVALUE_NODES,
    AddressOf,
    ArrayInit,
    Assign,
    Binary,
    Block,
    BreakStmt,
    Call,
    DoWhileStmt,
    Expr,
    ExprStmt,
    ForStmt,
    FunctionDecl,
    Identifier,
    IfStmt,
    IndexAccess,
    Literal,
    Logical,
    MemberAccess,
    Program,
    ReturnStmt,
    Stmt,
    SwitchStmt,
    Unary,
    VarDecl,
    WhileStmt,
)
from csubset.builtins import Builtins, Target
from csubset.config import DEFAULT_CONFIG, InterpreterConfig
from csubset.diagnostics import (
    ArityError,
    CSubsetTypeError,
    DivisionByZeroError,
    FormatError,
    StackOverflow,
    UndefinedReferenceError,
    did_you_mean,
)
from csubset.environment import CallFrame, CallStack, Scope, Slot, recursion_headroom
from csubset.registry import BUILTIN_NAMES, DeclaredType, TypeRegistry
from csubset.values import (
    ArrayValue,
    StructValue,
    UnionValue,
    Value,
    coerce,
    kind_of,
    reinterpret,
    to_float,
    to_int,
    truthy,
    zero_value,
)


logger = logging.getLogger(__name__)


class _ReturnSignal(Exception):
    def __init__(self, value: Value) -> None:
        self.value = value


class _BreakSignal(Exception):
    pass


class _SlotRef:
    def __init__(self, slot: Slot) -> None:
        self.slot = slot
        self.type = slot.type

    def get(self) -> Value:
        return self.slot.value

    def set(self, value: Value) -> None:
        self.slot.value = value


class _ElementRef:
    def __init__(self, array: ArrayValue, index: int, line: int, column: int) -> None:
        array.get(index, line, column)
        self.array = array
        self.index = index
        self.type = array.element_type

    def get(self) -> Value:
        return self.array.items[self.index]

    def set(self, value: Value) -> None:
        self.array.items[self.index] = value


class _FieldRef:
    def __init__(self, owner: StructValue | UnionValue, member: str, type: DeclaredType) -> None:
        self.owner = owner
        self.member = member
        self.type = type

    def get(self) -> Value:
        if isinstance(self.owner, StructValue):
            return self.owner.fields[self.member]
        return self.owner.value

    def set(self, value: Value) -> None:
        if isinstance(self.owner, StructValue):
            self.owner.fields[self.member] = value
            return
        self.owner.active = self.member
        self.owner.value = value


class Interpreter:
    """Tree-walking evaluator for one parsed CSubset program."""

    def __init__(
        self,
        program: Program,
        registry: TypeRegistry,
        stdout: TextIO | None = None,
        stdin: TextIO | None = None,
        config: InterpreterConfig = DEFAULT_CONFIG,
    ) -> None:
        self.program = program
        self.registry = registry
        self.config = config
        self.builtins = Builtins(stdout or sys.stdout, stdin or sys.stdin, config)
        self.functions: dict[str, FunctionDecl] = {fn.name: fn for fn in program.functions if fn.body is not None}
        self.globals = Scope()
        self.call_stack = CallStack(max_depth=config.max_call_depth)

    def run(self) -> int:
        """Initializes globals in source order, then calls the entry function."""
        with recursion_headroom(self.config.host_recursion_limit):
            try:
                for decl in self.program.globals:
                    self._exec_var_decl(decl, self.globals)
                entry = self.config.entry_point
                if entry not in self.functions:
                    raise UndefinedReferenceError(
                        code="undefined_function",
                        technical=f"Entry function `{entry}` is not defined.",
                        line=1,
                        column=1,
                    )
                logger.debug("calling entry function %s", entry)
                result = self.call(entry, [])
            except RecursionError as exc:
                frame = self.call_stack.frames[-1] if self.call_stack.frames else None
                logger.debug("host recursion limit reached at call depth %d", self.call_stack.depth)
                raise StackOverflow(
                    code="stack_overflow",
                    technical=f"Host recursion limit reached at call depth {self.call_stack.depth}.",
                    line=frame.line if frame else 0,
                ) from exc
        if isinstance(result, (int, float)):
            return to_int(result)
        return 0

    def call(self, name: str, args: list[Value], line: int = 0, column: int = 0) -> Value:
        if name in BUILTIN_NAMES:
            if name == "scanf":
                raise CSubsetTypeError(
                    code="type_mismatch",
                    technical="`scanf` needs assignable targets and must be called from source.",
                    line=line,
                    column=column,
                )
            return self.builtins.call(name, args, line, column)

        fn = self.functions.get(name)
        if fn is None:
            known = name in self.registry.functions
            detail = " is declared but never defined." if known else " is not declared."
            hint = "" if known else did_you_mean(name, list(self.functions) + list(BUILTIN_NAMES))
            raise UndefinedReferenceError(
                code="undefined_function",
                technical=f"Function `{name}`{detail}{hint}",
                line=line,
                column=column,
            )
        if len(args) != len(fn.params):
            raise ArityError(
                code="arity_mismatch",
                technical=f"Function `{name}` expects {len(fn.params)} argument(s), got {len(args)}.",
                line=line,
                column=column,
            )

        frame_scope = Scope(self.globals)
        bound: list[tuple[str, DeclaredType, Value]] = []
        for i, (param, arg) in enumerate(zip(fn.params, args), start=1):
            value = coerce(arg, param.type, f"Argument {i} (`{param.name}`) of `{name}`", line, column)
            bound.append((param.name, param.type, value))
        for pname, ptype, value in bound:
            frame_scope.define(pname, ptype, value, line, column)

        try:
            self.call_stack.push(CallFrame(function=name, line=line, return_type=fn.return_type))
        except StackOverflow:
            logger.debug("call depth limit %d reached calling %s", self.call_stack.max_depth, name)
            raise
        try:
            assert fn.body is not None
            for stmt in fn.body.statements:
                self._exec_stmt(stmt, frame_scope)
        except _ReturnSignal as ret:
            return ret.value
        finally:
            self.call_stack.pop()

        if name == self.config.entry_point and fn.return_type.kind == "int":
            return 0
        if fn.return_type.kind != "void":
            raise CSubsetTypeError(
                code="missing_return",
                technical=f"Function `{name}` reached the end of its body without returning {fn.return_type}.",
                line=fn.line,
                column=fn.column,
            )
        return None

    def _exec_stmt(self, stmt: Stmt, scope: Scope) -> None:
        if isinstance(stmt, VarDecl):
            self._exec_var_decl(stmt, scope)
            return

        if isinstance(stmt, ExprStmt):
            self._eval_expr(stmt.expr, scope)
            return

        if isinstance(stmt, Block):
            inner = scope.child()
            for child in stmt.statements:
                self._exec_stmt(child, inner)
            return

        if isinstance(stmt, IfStmt):
            if truthy(self._eval_expr(stmt.condition, scope), stmt.line, stmt.column):
                self._exec_body(stmt.then_branch, scope)
            elif stmt.else_branch is not None:
                self._exec_body(stmt.else_branch, scope)
            return

        if isinstance(stmt, WhileStmt):
            while truthy(self._eval_expr(stmt.condition, scope), stmt.line, stmt.column):
                try:
                    self._exec_body(stmt.body, scope)
                except _BreakSignal:
                    break
            return

        if isinstance(stmt, DoWhileStmt):
            while True:
                try:
                    self._exec_body(stmt.body, scope)
                except _BreakSignal:
                    break
                if not truthy(self._eval_expr(stmt.condition, scope), stmt.line, stmt.column):
                    break
            return

        if isinstance(stmt, ForStmt):
            loop_scope = scope.child()
            if stmt.init is not None:
                self._exec_stmt(stmt.init, loop_scope)
            while True:
                if stmt.condition is not None and not truthy(
                    self._eval_expr(stmt.condition, loop_scope), stmt.line, stmt.column
                ):
                    break
                try:
                    self._exec_body(stmt.body, loop_scope)
                except _BreakSignal:
                    break
                if stmt.step is not None:
                    self._eval_expr(stmt.step, loop_scope)
            return

        if isinstance(stmt, SwitchStmt):
            self._exec_switch(stmt, scope)
            return

        if isinstance(stmt, BreakStmt):
            raise _BreakSignal()

        if isinstance(stmt, ReturnStmt):
            self._exec_return(stmt, scope)

    def _exec_body(self, body: Stmt, scope: Scope) -> None:
        if isinstance(body, Block):
            self._exec_stmt(body, scope)
        else:
            self._exec_stmt(body, scope.child())

    def _exec_var_decl(self, stmt: VarDecl, scope: Scope) -> None:
        if isinstance(stmt.init, ArrayInit):
            value = self._build_from_list(stmt, scope)
        elif stmt.init is not None:
            value = coerce(
                self._eval_expr(stmt.init, scope),
                stmt.type,
                f"Initializer of `{stmt.name}`",
                stmt.line,
                stmt.column,
            )
        else:
            value = zero_value(stmt.type, self.registry)
        scope.define(stmt.name, stmt.type, value, stmt.line, stmt.column)

    def _build_from_list(self, stmt: VarDecl, scope: Scope) -> Value:
        assert isinstance(stmt.init, ArrayInit)
        value = zero_value(stmt.type, self.registry)
        if isinstance(value, ArrayValue):
            for i, element in enumerate(stmt.init.elements):
                value.items[i] = coerce(
                    self._eval_expr(element, scope),
                    value.element_type,
                    f"Element {i} of `{stmt.name}`",
                    element.line,
                    element.column,
                )
            return value
        assert isinstance(value, StructValue)
        layout = self.registry.lookup_composite("struct", value.name)
        for (fname, ftype), element in zip(layout.fields.items(), stmt.init.elements):
            value.fields[fname] = coerce(
                self._eval_expr(element, scope),
                ftype,
                f"Field `{fname}` of `{stmt.name}`",
                element.line,
                element.column,
            )
        return value

    def _exec_switch(self, stmt: SwitchStmt, scope: Scope) -> None:
        scrutinee = self._eval_expr(stmt.scrutinee, scope)
        if not isinstance(scrutinee, (int, float, str)):
            raise CSubsetTypeError(
                code="type_mismatch",
                technical=f"Cannot switch on a {kind_of(scrutinee)} value.",
                line=stmt.line,
                column=stmt.column,
            )

        start = None
        for i, clause in enumerate(stmt.clauses):
            if clause.value is not None and _case_matches(scrutinee, clause.value.value):
                start = i
                break
        if start is None:
            start = stmt.default_index
        if start is None:
            return

        body_scope = scope.child()
        try:
            for clause in stmt.clauses[start:]:
                for child in clause.statements:
                    self._exec_stmt(child, body_scope)
        except _BreakSignal:
            pass

    def _exec_return(self, stmt: ReturnStmt, scope: Scope) -> None:
        frame = self.call_stack.frames[-1]
        rtype = frame.return_type
        assert rtype is not None
        if stmt.value is None:
            if rtype.kind != "void":
                raise CSubsetTypeError(
                    code="type_mismatch",
                    technical=f"Function `{frame.function}` must return {rtype}.",
                    line=stmt.line,
                    column=stmt.column,
                )
            raise _ReturnSignal(None)
        value = self._eval_expr(stmt.value, scope)
        if rtype.kind == "void":
            raise CSubsetTypeError(
                code="type_mismatch",
                technical=f"Void function `{frame.function}` cannot return a value.",
                line=stmt.line,
                column=stmt.column,
            )
        raise _ReturnSignal(
            coerce(value, rtype, f"Return value of `{frame.function}`", stmt.line, stmt.column)
        )

    def _eval_expr(self, expr: Expr, scope: Scope) -> Value:
        if isinstance(expr, Literal):
            return expr.value
        if isinstance(expr, Identifier):
            return scope.lookup(expr.name, expr.line, expr.column).value
        if isinstance(expr, Assign):
            return self._eval_assign(expr, scope)
        if isinstance(expr, Binary):
            left = self._eval_expr(expr.left, scope)
            right = self._eval_expr(expr.right, scope)
            return self._eval_binary(expr, left, right)
        if isinstance(expr, Logical):
            left = truthy(self._eval_expr(expr.left, scope), expr.line, expr.column)
            if expr.op == "&&" and not left:
                return 0
            if expr.op == "||" and left:
                return 1
            return int(truthy(self._eval_expr(expr.right, scope), expr.line, expr.column))
        if isinstance(expr, Unary):
            return self._eval_unary(expr, self._eval_expr(expr.operand, scope))
        if isinstance(expr, Call):
            return self._eval_call(expr, scope)
        if isinstance(expr, IndexAccess):
            array, index = self._index_operands(expr, scope)
            return array.get(index, expr.line, expr.column)
        if isinstance(expr, MemberAccess):
            return self._member_ref(expr, scope).get_for_read()
        if isinstance(expr, AddressOf):
            raise CSubsetTypeError(
                code="type_mismatch",
                technical="`&` is only allowed on `scanf` targets.",
                line=expr.line,
                column=expr.column,
            )
        raise CSubsetTypeError(code="type_mismatch", technical=f"Cannot evaluate {type(expr).__name__}.")

    def _eval_assign(self, expr: Assign, scope: Scope) -> Value:
        ref = self._resolve_ref(expr.target, scope)
        if ref.type.kind == "array":
            raise CSubsetTypeError(
                code="type_mismatch",
                technical="Arrays cannot be assigned as a whole; assign elements instead.",
                line=expr.line,
                column=expr.column,
            )
        value = coerce(self._eval_expr(expr.value, scope), ref.type, "Assignment", expr.line, expr.column)
        ref.set(value)
        return value

    def _resolve_ref(self, expr: Expr, scope: Scope) -> _SlotRef | _ElementRef | _FieldRef:
        if isinstance(expr, Identifier):
            return _SlotRef(scope.lookup(expr.name, expr.line, expr.column))
        if isinstance(expr, IndexAccess):
            array, index = self._index_operands(expr, scope)
            return _ElementRef(array, index, expr.line, expr.column)
        if isinstance(expr, MemberAccess):
            return self._member_ref(expr, scope)
        raise CSubsetTypeError(
            code="invalid_lvalue",
            technical="Expected a variable, array element or field.",
            line=expr.line,
            column=expr.column,
        )

    def _index_operands(self, expr: IndexAccess, scope: Scope) -> tuple[ArrayValue, int]:
        array = self._eval_expr(expr.base, scope)
        if not isinstance(array, ArrayValue):
            raise CSubsetTypeError(
                code="type_mismatch",
                technical=f"Cannot index a {kind_of(array)} value.",
                line=expr.line,
                column=expr.column,
            )
        index = self._eval_expr(expr.index, scope)
        if not isinstance(index, int):
            raise CSubsetTypeError(
                code="type_mismatch",
                technical=f"Array index must be int, got {kind_of(index)}.",
                line=expr.line,
                column=expr.column,
            )
        return array, index

    def _member_ref(self, expr: MemberAccess, scope: Scope) -> _MemberRef:
        owner = self._eval_expr(expr.base, scope)
        if not isinstance(owner, (StructValue, UnionValue)):
            raise CSubsetTypeError(
                code="type_mismatch",
                technical=f"Cannot read field `{expr.member}` of a {kind_of(owner)} value.",
                line=expr.line,
                column=expr.column,
            )
        kind = "struct" if isinstance(owner, StructValue) else "union"
        ftype = self.registry.field_type(DeclaredType(kind, name=owner.name), expr.member, expr.line, expr.column)
        return _MemberRef(owner, expr.member, ftype, self.registry, expr.line, expr.column)

    def _eval_call(self, expr: Call, scope: Scope) -> Value:
        if expr.callee == "scanf":
            return self._eval_scanf(expr, scope)
        args = [self._eval_expr(a, scope) for a in expr.args]
        return self.call(expr.callee, args, expr.line, expr.column)

    def _eval_scanf(self, expr: Call, scope: Scope) -> int:
        if not expr.args:
            return self.builtins.scanf([], [], expr.line, expr.column)
        fmt = self._eval_expr(expr.args[0], scope)
        targets: list[Target] = []
        for arg in expr.args[1:]:
            target = arg.target if isinstance(arg, AddressOf) else arg
            if not isinstance(target, LVALUE_NODES):
                raise FormatError(
                    code="format_mismatch",
                    technical="`scanf` targets must be variables, array elements or fields.",
                    line=arg.line,
                    column=arg.column,
                )
            targets.append(self._resolve_ref(target, scope))
        return self.builtins.scanf([fmt], targets, expr.line, expr.column)

    def _eval_unary(self, expr: Unary, value: Value) -> Value:
        if not isinstance(value, (int, float)):
            raise CSubsetTypeError(
                code="type_mismatch",
                technical=f"Operator `{expr.op}` needs a number, got {kind_of(value)}.",
                line=expr.line,
                column=expr.column,
            )
        if expr.op == "-":
            return -value
        return int(value == 0)

    def _eval_binary(self, expr: Binary, left: Value, right: Value) -> Value:
        op = expr.op
        if isinstance(left, str) and isinstance(right, str):
            if op == "+":
                return left + right
            if op in COMPARISONS:
                return int(COMPARISONS[op](left, right))
        elif isinstance(left, (int, float)) and isinstance(right, (int, float)):
            if op in COMPARISONS:
                return int(COMPARISONS[op](left, right))
            if isinstance(left, float) or isinstance(right, float):
                left = to_float(left, expr.line, expr.column)
                right = to_float(right, expr.line, expr.column)
            if op == "+":
                return left + right
            if op == "-":
                return left - right
            if op == "*":
                return left * right
            if op in {"/", "%"}:
                return self._eval_division(expr, left, right)

        raise CSubsetTypeError(
            code="type_mismatch",
            technical=f"Operator `{op}` cannot combine {kind_of(left)} and {kind_of(right)}.",
            line=expr.line,
            column=expr.column,
        )

    def _eval_division(self, expr: Binary, left: int | float, right: int | float) -> Value:
        if expr.op == "%" and not (isinstance(left, int) and isinstance(right, int)):
            raise CSubsetTypeError(
                code="type_mismatch",
                technical=f"Operator `%` needs int operands, got {kind_of(left)} and {kind_of(right)}.",
                line=expr.line,
                column=expr.column,
            )
        if right == 0:
            raise DivisionByZeroError(
                code="division_by_zero",
                technical=f"Operator `{expr.op}` with a zero divisor.",
                line=expr.line,
                column=expr.column,
            )
        if isinstance(left, int) and isinstance(right, int):
            quotient = abs(left) // abs(right)
            if (left < 0) != (right < 0):
                quotient = -quotient
            if expr.op == "/":
                return quotient
            return left - right * quotient
        return left / right


class _MemberRef(_FieldRef):
    def __init__(
        self,
        owner: StructValue | UnionValue,
        member: str,
        type: DeclaredType,
        registry: TypeRegistry,
        line: int = 0,
        column: int = 0,
    ) -> None:
        super().__init__(owner, member, type)
        self.registry = registry
        self.line = line
        self.column = column

    def get_for_read(self) -> Value:
        owner = self.owner
        if isinstance(owner, StructValue) or owner.active == self.member:
            return self.get()
        value = reinterpret(owner.value, self.type, self.registry, self.line, self.column)
        if self.type.kind in {"struct", "union", "array"}:
            # Composite members become active on first use so writes through them stick.
            self.set(value)
        return value


COMPARISONS = {
    "==": lambda a, b: a == b,
    "!=": lambda a, b: a != b,
    "<": lambda a, b: a < b,
    "<=": lambda a, b: a <= b,
    ">": lambda a, b: a > b,
    ">=": lambda a, b: a >= b,
}


def _case_matches(scrutinee: Value, label: int | float | str) -> bool:
    if isinstance(scrutinee, str) or isinstance(label, str):
        return isinstance(scrutinee, str) and isinstance(label, str) and scrutinee == label
    return scrutinee == label


def run_program(
    program: Program,
    registry: TypeRegistry,
    stdout: TextIO | None = None,
    stdin: TextIO | None = None,
    config: InterpreterConfig = DEFAULT_CONFIG,
) -> int:
    return Interpreter(program, registry, stdout=stdout, stdin=stdin, config=config).run()
