from __future__ import annotations

from csubset.ast_nodes import (
    LVALUE_NODES,
    AddressOf,
    ArrayInit,
    Assign,
    Binary,
    Block,
    BreakStmt,
    Call,
    CaseClause,
    DoWhileStmt,
    Expr,
    ExprStmt,
    FieldDecl,
    ForStmt,
    FunctionDecl,
    Identifier,
    IfStmt,
    IndexAccess,
    Literal,
    Logical,
    MemberAccess,
    Param,
    Program,
    ReturnStmt,
    Stmt,
    SwitchStmt,
    TypeDecl,
    Unary,
    VarDecl,
    WhileStmt,
)
from csubset.diagnostics import CSubsetAggregateError, CSubsetError, CSubsetSyntaxError, RedeclarationError
from csubset.registry import (
    BUILTIN_NAMES,
    PRIMITIVES,
    DeclaredType,
    FunctionSig,
    TypeRegistry,
    array_of,
)
from csubset.token import Token


BIN_OPS = {
    "EQ": "==",
    "NEQ": "!=",
    "LT": "<",
    "LTE": "<=",
    "GT": ">",
    "GTE": ">=",
    "PLUS": "+",
    "MINUS": "-",
    "STAR": "*",
    "SLASH": "/",
    "MOD": "%",
}


SCALAR_TYPE_TOKENS = {"INT", "FLOAT", "STRING", "VOID"}


SYNC_TOKENS = {
    "INT",
    "FLOAT",
    "STRING",
    "VOID",
    "STRUCT",
    "UNION",
    "IF",
    "ELSE",
    "WHILE",
    "DO",
    "FOR",
    "SWITCH",
    "CASE",
    "DEFAULT",
    "BREAK",
    "RETURN",
    "LBRACE",
    "RBRACE",
}


class Parser:
    """Recursive-descent parser for CSubset.

    Struct and union declarations are recorded in ``registry`` as soon as
    they are parsed, so later declarations can name them. Errors are
    collected with statement-level recovery; a single error is raised as is,
    several are raised together as :class:`CSubsetAggregateError`.
    """

    def __init__(self, tokens: list[Token], registry: TypeRegistry | None = None) -> None:
        self.tokens = tokens
        self.index = 0
        self.errors: list[CSubsetError] = []
        self.registry = registry if registry is not None else TypeRegistry()
        self.breakable_depth = 0
        self.defined_functions: set[str] = set()

    def parse(self) -> Program:
        program = Program()

        try:
            while not self._check("EOF"):
                checkpoint = self.index
                try:
                    program.declarations.append(self._parse_top_level())
                except CSubsetError as err:
                    self.errors.append(err)
                    self._synchronize_top_level()
                if self.index == checkpoint and not self._is_at_end():
                    self._advance()
        except RecursionError:
            tok = self._current()
            self.errors.append(
                CSubsetSyntaxError(
                    code="nesting_too_deep",
                    technical="Expressions or blocks are nested too deeply to parse.",
                    line=tok.line,
                    column=tok.column,
                )
            )

        if len(self.errors) == 1:
            raise self.errors[0]
        if self.errors:
            raise CSubsetAggregateError(self.errors)
        return program

    def _parse_top_level(self) -> TypeDecl | FunctionDecl | VarDecl:
        if self._check("STRUCT") or self._check("UNION"):
            if self._peek_kind(1) == "IDENT" and self._peek_kind(2) == "LBRACE":
                return self._parse_type_decl()

        decl_type, type_tok = self._parse_type_spec(allow_void=True)
        name_tok = self._expect(
            "IDENT",
            code="unexpected_token",
            technical="Expected a function or variable name.",
        )
        if self._check("LPAREN"):
            return self._parse_function(decl_type, type_tok, name_tok)

        name = str(name_tok.value)
        if name in BUILTIN_NAMES:
            raise RedeclarationError(
                code="redeclared",
                technical=f"Global `{name}` conflicts with a built-in.",
                line=name_tok.line,
                column=name_tok.column,
            )
        decl = self._parse_var_decl_rest(decl_type, type_tok, name_tok)
        self._expect(
            "SEMICOLON",
            code="missing_semicolon",
            technical="Expected `;` after global declaration.",
        )
        return decl

    def _parse_type_decl(self) -> TypeDecl:
        kind_tok = self._advance()
        kind = "struct" if kind_tok.kind == "STRUCT" else "union"
        name_tok = self._expect(
            "IDENT",
            code="unexpected_token",
            technical=f"Expected name after `{kind}`.",
        )
        self._expect(
            "LBRACE",
            code="missing_brace",
            technical=f"Expected `{{` in {kind} declaration.",
        )
        fields: list[FieldDecl] = []
        while not self._check("RBRACE"):
            if self._check("EOF"):
                eof = self._current()
                raise CSubsetSyntaxError(
                    code="missing_brace",
                    technical=f"Expected `}}` to close {kind} declaration. Found end of input.",
                    line=eof.line,
                    column=eof.column,
                )
            field_type, _ = self._parse_type_spec(allow_void=False)
            field_name_tok = self._expect(
                "IDENT",
                code="unexpected_token",
                technical="Expected field name.",
            )
            if self._match("LBRACKET"):
                field_type = array_of(field_type, self._parse_array_size(required=True))
            self._expect(
                "SEMICOLON",
                code="missing_semicolon",
                technical="Expected `;` after field declaration.",
            )
            fields.append(
                FieldDecl(
                    type=field_type,
                    name=str(field_name_tok.value),
                    line=field_name_tok.line,
                    column=field_name_tok.column,
                )
            )
        self._expect(
            "RBRACE",
            code="missing_brace",
            technical=f"Expected `}}` to close {kind} declaration.",
        )
        self._expect(
            "SEMICOLON",
            code="missing_semicolon",
            technical=f"Expected `;` after {kind} declaration.",
        )
        name = str(name_tok.value)
        if not fields:
            raise CSubsetSyntaxError(
                code="unexpected_token",
                technical=f"{kind} `{name}` needs at least one field.",
                line=name_tok.line,
                column=name_tok.column,
            )
        if name in BUILTIN_NAMES:
            raise RedeclarationError(
                code="redeclared",
                technical=f"Type `{name}` conflicts with a built-in.",
                line=name_tok.line,
                column=name_tok.column,
            )
        self.registry.declare_composite(
            kind,
            name,
            [(f.name, f.type) for f in fields],
            line=kind_tok.line,
            column=kind_tok.column,
        )
        return TypeDecl(kind=kind, name=name, fields=fields, line=kind_tok.line, column=kind_tok.column)

    def _parse_function(self, return_type: DeclaredType, type_tok: Token, name_tok: Token) -> FunctionDecl:
        name = str(name_tok.value)
        self._expect(
            "LPAREN",
            code="missing_paren",
            technical="Expected `(` after function name.",
        )
        params: list[Param] = []
        if self._check("VOID") and self._peek_kind(1) == "RPAREN":
            self._advance()
        elif not self._check("RPAREN"):
            params.append(self._parse_param())
            while self._match("COMMA"):
                params.append(self._parse_param())
        self._expect(
            "RPAREN",
            code="missing_paren",
            technical="Expected `)` after parameters.",
        )

        seen: set[str] = set()
        for p in params:
            if p.name in seen:
                raise RedeclarationError(
                    code="redeclared",
                    technical=f"Duplicate parameter `{p.name}` in `{name}`.",
                    line=p.line,
                    column=p.column,
                )
            seen.add(p.name)

        is_prototype = self._match("SEMICOLON")
        if not is_prototype:
            if name in self.defined_functions:
                raise RedeclarationError(
                    code="redeclared",
                    technical=f"Function `{name}` already has a body.",
                    line=name_tok.line,
                    column=name_tok.column,
                )
            self.defined_functions.add(name)
        sig = FunctionSig(
            name=name,
            return_type=return_type,
            params=[(p.name, p.type) for p in params],
            line=type_tok.line,
        )
        self.registry.declare_function(sig, has_body=not is_prototype, column=type_tok.column)
        body = None if is_prototype else self._parse_block()

        return FunctionDecl(
            name=name,
            params=params,
            return_type=return_type,
            body=body,
            line=type_tok.line,
            column=type_tok.column,
        )

    def _parse_param(self) -> Param:
        param_type, _ = self._parse_type_spec(allow_void=False)
        name_tok = self._expect(
            "IDENT",
            code="unexpected_token",
            technical="Expected parameter name.",
        )
        if self._match("LBRACKET"):
            param_type = array_of(param_type, self._parse_array_size(required=False))
        return Param(type=param_type, name=str(name_tok.value), line=name_tok.line, column=name_tok.column)

    def _parse_statement(self) -> Stmt:
        if self._check("LBRACE"):
            return self._parse_block()
        if self._match("SEMICOLON"):
            tok = self._previous()
            return Block(statements=[], line=tok.line, column=tok.column)
        if self._is_var_decl_start():
            decl = self._parse_local_var_decl()
            self._expect(
                "SEMICOLON",
                code="missing_semicolon",
                technical="Expected `;` after declaration.",
            )
            return decl
        if self._match("IF"):
            return self._parse_if(self._previous())
        if self._match("WHILE"):
            return self._parse_while(self._previous())
        if self._match("DO"):
            return self._parse_do_while(self._previous())
        if self._match("FOR"):
            return self._parse_for(self._previous())
        if self._match("SWITCH"):
            return self._parse_switch(self._previous())
        if self._match("BREAK"):
            tok = self._previous()
            if self.breakable_depth <= 0:
                raise CSubsetSyntaxError(
                    code="break_outside_loop",
                    technical="`break` used outside of a loop or switch.",
                    line=tok.line,
                    column=tok.column,
                )
            self._expect(
                "SEMICOLON",
                code="missing_semicolon",
                technical="Expected `;` after `break`.",
            )
            return BreakStmt(line=tok.line, column=tok.column)
        if self._match("RETURN"):
            return self._parse_return(self._previous())

        expr = self._parse_expression()
        self._expect(
            "SEMICOLON",
            code="missing_semicolon",
            technical="Expected `;` after expression.",
        )
        return ExprStmt(expr=expr, line=expr.line, column=expr.column)

    def _parse_local_var_decl(self) -> VarDecl:
        decl_type, type_tok = self._parse_type_spec(allow_void=False)
        name_tok = self._expect(
            "IDENT",
            code="unexpected_token",
            technical="Expected variable name in declaration.",
        )
        return self._parse_var_decl_rest(decl_type, type_tok, name_tok)

    def _parse_var_decl_rest(self, decl_type: DeclaredType, type_tok: Token, name_tok: Token) -> VarDecl:
        if decl_type.kind == "void":
            raise CSubsetSyntaxError(
                code="unexpected_token",
                technical=f"Variable `{name_tok.value}` cannot be declared void.",
                line=type_tok.line,
                column=type_tok.column,
            )
        sized = True
        if self._match("LBRACKET"):
            size = self._parse_array_size(required=False)
            sized = size is not None
            decl_type = array_of(decl_type, size or 0)

        init: Expr | ArrayInit | None = None
        if self._match("ASSIGN"):
            if self._check("LBRACE"):
                init = self._parse_brace_init(decl_type, name_tok)
                if not sized and not init.elements:
                    raise CSubsetSyntaxError(
                        code="unexpected_token",
                        technical=f"Array `{name_tok.value}` cannot be empty.",
                        line=init.line,
                        column=init.column,
                    )
                if not sized:
                    decl_type = array_of(decl_type.element, len(init.elements))
            else:
                init = self._parse_expression()

        if not sized and not isinstance(init, ArrayInit):
            raise CSubsetSyntaxError(
                code="unexpected_token",
                technical=f"Array `{name_tok.value}` needs a size or an initializer list.",
                line=name_tok.line,
                column=name_tok.column,
            )
        if decl_type.kind == "array" and init is not None and not isinstance(init, ArrayInit):
            raise CSubsetSyntaxError(
                code="unexpected_token",
                technical=f"Array `{name_tok.value}` must be initialized with a `{{...}}` list.",
                line=name_tok.line,
                column=name_tok.column,
            )
        return VarDecl(
            type=decl_type,
            name=str(name_tok.value),
            init=init,
            line=type_tok.line,
            column=type_tok.column,
        )

    def _parse_brace_init(self, decl_type: DeclaredType, name_tok: Token) -> ArrayInit:
        lbrace = self._advance()
        elements: list[Expr] = []
        if not self._check("RBRACE"):
            elements.append(self._parse_expression())
            while self._match("COMMA"):
                if self._check("RBRACE"):
                    break
                elements.append(self._parse_expression())
        self._expect(
            "RBRACE",
            code="missing_brace",
            technical="Expected `}` to close initializer list.",
        )

        if decl_type.kind == "array":
            capacity = decl_type.size if decl_type.size else len(elements)
        elif decl_type.kind == "struct":
            capacity = len(self.registry.lookup_composite("struct", str(decl_type.name)).fields)
        else:
            raise CSubsetSyntaxError(
                code="unexpected_token",
                technical=f"`{name_tok.value}` of type {decl_type} cannot take an initializer list.",
                line=lbrace.line,
                column=lbrace.column,
            )
        if len(elements) > capacity:
            raise CSubsetSyntaxError(
                code="too_many_initializers",
                technical=(
                    f"`{name_tok.value}` holds {capacity} element(s) but the initializer "
                    f"lists {len(elements)}."
                ),
                line=lbrace.line,
                column=lbrace.column,
            )
        return ArrayInit(elements=elements, line=lbrace.line, column=lbrace.column)

    def _parse_array_size(self, required: bool) -> int | None:
        if not required and self._match("RBRACKET"):
            return None
        size_tok = self._expect(
            "INT_LIT",
            code="unexpected_token",
            technical="Expected integer array size.",
        )
        if int(size_tok.value) <= 0:
            raise CSubsetSyntaxError(
                code="unexpected_token",
                technical="Array size must be positive.",
                line=size_tok.line,
                column=size_tok.column,
            )
        self._expect(
            "RBRACKET",
            code="unexpected_token",
            technical="Expected `]` after array size.",
        )
        return int(size_tok.value)

    def _parse_if(self, if_token: Token) -> IfStmt:
        condition = self._parse_condition("if")
        then_branch = self._parse_statement()
        else_branch: Stmt | None = None
        if self._match("ELSE"):
            else_branch = self._parse_statement()
        return IfStmt(
            condition=condition,
            then_branch=then_branch,
            else_branch=else_branch,
            line=if_token.line,
            column=if_token.column,
        )

    def _parse_while(self, while_token: Token) -> WhileStmt:
        condition = self._parse_condition("while")
        body = self._parse_breakable_body()
        return WhileStmt(condition=condition, body=body, line=while_token.line, column=while_token.column)

    def _parse_do_while(self, do_token: Token) -> DoWhileStmt:
        body = self._parse_breakable_body()
        self._expect(
            "WHILE",
            code="unexpected_token",
            technical="Expected `while` after `do` body.",
        )
        condition = self._parse_condition("do-while")
        self._expect(
            "SEMICOLON",
            code="missing_semicolon",
            technical="Expected `;` after do-while condition.",
        )
        return DoWhileStmt(body=body, condition=condition, line=do_token.line, column=do_token.column)

    def _parse_for(self, for_token: Token) -> ForStmt:
        self._expect(
            "LPAREN",
            code="missing_paren",
            technical="Expected `(` after `for`.",
        )
        init: Stmt | None = None
        if not self._check("SEMICOLON"):
            if self._is_var_decl_start():
                init = self._parse_local_var_decl()
            else:
                expr = self._parse_expression()
                init = ExprStmt(expr=expr, line=expr.line, column=expr.column)
        self._expect(
            "SEMICOLON",
            code="missing_semicolon",
            technical="Expected `;` after for-init.",
        )
        condition: Expr | None = None
        if not self._check("SEMICOLON"):
            condition = self._parse_expression()
        self._expect(
            "SEMICOLON",
            code="missing_semicolon",
            technical="Expected `;` after for-condition.",
        )
        step: Expr | None = None
        if not self._check("RPAREN"):
            step = self._parse_expression()
        self._expect(
            "RPAREN",
            code="missing_paren",
            technical="Expected `)` after for clauses.",
        )
        body = self._parse_breakable_body()
        return ForStmt(
            init=init,
            condition=condition,
            step=step,
            body=body,
            line=for_token.line,
            column=for_token.column,
        )

    def _parse_switch(self, switch_token: Token) -> SwitchStmt:
        scrutinee = self._parse_condition("switch")
        self._expect(
            "LBRACE",
            code="missing_brace",
            technical="Expected `{` after switch condition.",
        )

        clauses: list[CaseClause] = []
        seen_values: set[int | float | str] = set()
        has_default = False
        self.breakable_depth += 1
        try:
            while not self._check("RBRACE"):
                if self._check("EOF"):
                    eof = self._current()
                    raise CSubsetSyntaxError(
                        code="missing_brace",
                        technical="Expected `}` to close switch block. Found end of input.",
                        line=eof.line,
                        column=eof.column,
                    )

                label: Literal | None = None
                if self._match("CASE"):
                    label_tok = self._previous()
                    label = self._parse_case_label()
                    if label.value in seen_values:
                        raise CSubsetSyntaxError(
                            code="duplicate_case",
                            technical=f"Duplicate case label `{label.value}`.",
                            line=label_tok.line,
                            column=label_tok.column,
                        )
                    seen_values.add(label.value)
                elif self._match("DEFAULT"):
                    label_tok = self._previous()
                    if has_default:
                        raise CSubsetSyntaxError(
                            code="duplicate_default",
                            technical="Only one `default` is allowed in a switch.",
                            line=label_tok.line,
                            column=label_tok.column,
                        )
                    has_default = True
                else:
                    tok = self._current()
                    raise CSubsetSyntaxError(
                        code="unexpected_token",
                        technical=f"Expected `case` or `default` inside switch. Found {tok.describe()}.",
                        line=tok.line,
                        column=tok.column,
                    )
                self._expect(
                    "COLON",
                    code="unexpected_token",
                    technical="Expected `:` after case label.",
                )
                statements: list[Stmt] = []
                while not (
                    self._check("CASE") or self._check("DEFAULT") or self._check("RBRACE") or self._check("EOF")
                ):
                    statements.append(self._parse_statement())
                clauses.append(
                    CaseClause(value=label, statements=statements, line=label_tok.line, column=label_tok.column)
                )
        finally:
            self.breakable_depth -= 1

        self._expect(
            "RBRACE",
            code="missing_brace",
            technical="Expected `}` to close switch block.",
        )
        return SwitchStmt(
            scrutinee=scrutinee,
            clauses=clauses,
            line=switch_token.line,
            column=switch_token.column,
        )

    def _parse_case_label(self) -> Literal:
        negate = self._match("MINUS")
        tok = self._current()
        if tok.kind in {"INT_LIT", "FLOAT_LIT"}:
            self._advance()
            value = -tok.value if negate else tok.value
            return Literal(value=value, line=tok.line, column=tok.column)
        if tok.kind == "STRING_LIT" and not negate:
            self._advance()
            return Literal(value=str(tok.value), line=tok.line, column=tok.column)
        raise CSubsetSyntaxError(
            code="invalid_case_label",
            technical=f"Expected a literal case label. Found {tok.describe()}.",
            line=tok.line,
            column=tok.column,
        )

    def _parse_return(self, return_token: Token) -> ReturnStmt:
        value: Expr | None = None
        if not self._check("SEMICOLON"):
            value = self._parse_expression()
        self._expect(
            "SEMICOLON",
            code="missing_semicolon",
            technical="Expected `;` after return statement.",
        )
        return ReturnStmt(value=value, line=return_token.line, column=return_token.column)

    def _parse_condition(self, keyword: str) -> Expr:
        self._expect(
            "LPAREN",
            code="missing_paren",
            technical=f"Expected `(` after `{keyword}`.",
        )
        condition = self._parse_expression()
        self._expect(
            "RPAREN",
            code="missing_paren",
            technical=f"Expected `)` after {keyword} condition.",
        )
        return condition

    def _parse_breakable_body(self) -> Stmt:
        self.breakable_depth += 1
        try:
            return self._parse_statement()
        finally:
            self.breakable_depth -= 1

    def _parse_block(self) -> Block:
        lbrace = self._expect(
            "LBRACE",
            code="missing_brace",
            technical="Expected `{` to start block.",
        )
        statements: list[Stmt] = []
        while not self._check("RBRACE"):
            if self._check("EOF"):
                eof = self._current()
                raise CSubsetSyntaxError(
                    code="missing_brace",
                    technical="Expected `}` before end of input.",
                    line=eof.line,
                    column=eof.column,
                )
            checkpoint = self.index
            try:
                statements.append(self._parse_statement())
            except CSubsetError as err:
                self.errors.append(err)
                self._synchronize(in_block=True)
            if self.index == checkpoint and not self._is_at_end():
                self._advance()
        self._expect(
            "RBRACE",
            code="missing_brace",
            technical="Expected `}` to close block.",
        )
        return Block(statements=statements, line=lbrace.line, column=lbrace.column)

    def _parse_expression(self) -> Expr:
        return self._parse_assignment()

    def _parse_assignment(self) -> Expr:
        expr = self._parse_or()
        if self._match("ASSIGN"):
            op_token = self._previous()
            if not isinstance(expr, LVALUE_NODES):
                raise CSubsetSyntaxError(
                    code="invalid_lvalue",
                    technical="Left side of `=` must be a variable, array element or field.",
                    line=op_token.line,
                    column=op_token.column,
                )
            value = self._parse_assignment()
            return Assign(target=expr, value=value, line=op_token.line, column=op_token.column)
        return expr

    def _parse_or(self) -> Expr:
        expr = self._parse_and()
        while self._match("OR"):
            op_token = self._previous()
            right = self._parse_and()
            expr = Logical(op="||", left=expr, right=right, line=op_token.line, column=op_token.column)
        return expr

    def _parse_and(self) -> Expr:
        expr = self._parse_equality()
        while self._match("AND"):
            op_token = self._previous()
            right = self._parse_equality()
            expr = Logical(op="&&", left=expr, right=right, line=op_token.line, column=op_token.column)
        return expr

    def _parse_equality(self) -> Expr:
        return self._parse_binary_level(self._parse_relational, "EQ", "NEQ")

    def _parse_relational(self) -> Expr:
        return self._parse_binary_level(self._parse_term, "LT", "LTE", "GT", "GTE")

    def _parse_term(self) -> Expr:
        return self._parse_binary_level(self._parse_factor, "PLUS", "MINUS")

    def _parse_factor(self) -> Expr:
        return self._parse_binary_level(self._parse_unary, "STAR", "SLASH", "MOD")

    def _parse_binary_level(self, operand, *kinds: str) -> Expr:
        expr = operand()
        while self._match(*kinds):
            op_token = self._previous()
            right = operand()
            expr = Binary(
                op=BIN_OPS[op_token.kind],
                left=expr,
                right=right,
                line=op_token.line,
                column=op_token.column,
            )
        return expr

    def _parse_unary(self) -> Expr:
        if self._match("NOT"):
            op_token = self._previous()
            return Unary(op="!", operand=self._parse_unary(), line=op_token.line, column=op_token.column)
        if self._match("MINUS"):
            op_token = self._previous()
            return Unary(op="-", operand=self._parse_unary(), line=op_token.line, column=op_token.column)
        if self._match("AMP"):
            op_token = self._previous()
            target = self._parse_unary()
            if not isinstance(target, LVALUE_NODES):
                raise CSubsetSyntaxError(
                    code="invalid_lvalue",
                    technical="`&` needs a variable, array element or field.",
                    line=op_token.line,
                    column=op_token.column,
                )
            return AddressOf(target=target, line=op_token.line, column=op_token.column)
        return self._parse_postfix()

    def _parse_postfix(self) -> Expr:
        expr = self._parse_primary()
        while True:
            if self._match("LPAREN"):
                args: list[Expr] = []
                if not self._check("RPAREN"):
                    args.append(self._parse_expression())
                    while self._match("COMMA"):
                        args.append(self._parse_expression())
                self._expect(
                    "RPAREN",
                    code="missing_paren",
                    technical="Expected `)` after call arguments.",
                )
                if not isinstance(expr, Identifier):
                    raise CSubsetSyntaxError(
                        code="invalid_expression",
                        technical="Only named functions can be called.",
                        line=expr.line,
                        column=expr.column,
                    )
                expr = Call(callee=expr.name, args=args, line=expr.line, column=expr.column)
                continue
            if self._match("LBRACKET"):
                lb = self._previous()
                idx = self._parse_expression()
                self._expect(
                    "RBRACKET",
                    code="unexpected_token",
                    technical="Expected `]` after index.",
                )
                expr = IndexAccess(base=expr, index=idx, line=lb.line, column=lb.column)
                continue
            if self._match("DOT"):
                member_tok = self._expect(
                    "IDENT",
                    code="invalid_expression",
                    technical="Expected field name after `.`.",
                )
                expr = MemberAccess(
                    base=expr,
                    member=str(member_tok.value),
                    line=member_tok.line,
                    column=member_tok.column,
                )
                continue
            return expr

    def _parse_primary(self) -> Expr:
        if self._match("INT_LIT", "FLOAT_LIT", "STRING_LIT"):
            tok = self._previous()
            return Literal(value=tok.value, line=tok.line, column=tok.column)
        if self._match("IDENT"):
            tok = self._previous()
            return Identifier(name=str(tok.value), line=tok.line, column=tok.column)
        if self._match("LPAREN"):
            expr = self._parse_expression()
            self._expect(
                "RPAREN",
                code="missing_paren",
                technical="Expected `)` after expression.",
            )
            return expr

        tok = self._current()
        raise CSubsetSyntaxError(
            code="invalid_expression",
            technical=f"Expected an expression. Found {tok.describe()}.",
            line=tok.line,
            column=tok.column,
        )

    def _parse_type_spec(self, allow_void: bool) -> tuple[DeclaredType, Token]:
        tok = self._current()
        if tok.kind in SCALAR_TYPE_TOKENS:
            self._advance()
            if tok.kind == "VOID" and not allow_void:
                raise CSubsetSyntaxError(
                    code="unexpected_token",
                    technical="`void` is not allowed here.",
                    line=tok.line,
                    column=tok.column,
                )
            return PRIMITIVES[str(tok.value)], tok
        if tok.kind in {"STRUCT", "UNION"}:
            self._advance()
            kind = "struct" if tok.kind == "STRUCT" else "union"
            name_tok = self._expect(
                "IDENT",
                code="unexpected_token",
                technical=f"Expected {kind} name.",
            )
            layout = self.registry.lookup_composite(kind, str(name_tok.value), name_tok.line, name_tok.column)
            return layout.type, tok

        raise CSubsetSyntaxError(
            code="unexpected_token",
            technical=f"Expected a type name. Found {tok.describe()}.",
            line=tok.line,
            column=tok.column,
        )

    def _is_var_decl_start(self) -> bool:
        cur = self._current()
        if cur.kind in SCALAR_TYPE_TOKENS:
            return True
        if cur.kind in {"STRUCT", "UNION"}:
            return self._peek_kind(1) == "IDENT" and self._peek_kind(2) == "IDENT"
        return False

    def _match(self, *kinds: str) -> bool:
        for kind in kinds:
            if self._check(kind):
                self._advance()
                return True
        return False

    def _expect(self, kind: str, code: str, technical: str) -> Token:
        if self._check(kind):
            return self._advance()
        tok = self._current()
        raise CSubsetSyntaxError(
            code=code,
            technical=f"{technical} Found {tok.describe()}.",
            line=tok.line,
            column=tok.column,
        )

    def _check(self, kind: str) -> bool:
        return self._current().kind == kind

    def _peek_kind(self, distance: int) -> str:
        idx = self.index + distance
        if idx >= len(self.tokens):
            return "EOF"
        return self.tokens[idx].kind

    def _advance(self) -> Token:
        if not self._is_at_end():
            self.index += 1
        return self._previous()

    def _is_at_end(self) -> bool:
        return self._current().kind == "EOF"

    def _current(self) -> Token:
        return self.tokens[self.index]

    def _previous(self) -> Token:
        if self.index == 0:
            return self.tokens[0]
        return self.tokens[self.index - 1]

    def _synchronize(self, in_block: bool = False) -> None:
        while not self._is_at_end():
            if self._previous().kind == "SEMICOLON":
                return
            current = self._current().kind
            if current in SYNC_TOKENS:
                if in_block and current == "RBRACE":
                    return
                if current != "RBRACE":
                    return
            self._advance()

    def _synchronize_top_level(self) -> None:
        depth = 0
        while not self._is_at_end():
            kind = self._current().kind
            if kind == "LBRACE":
                depth += 1
            elif kind == "RBRACE":
                depth = max(depth - 1, 0)
            elif depth == 0 and kind in {"INT", "FLOAT", "STRING", "VOID", "STRUCT", "UNION"}:
                return
            self._advance()


def parse(tokens: list[Token], registry: TypeRegistry | None = None) -> Program:
    return Parser(tokens, registry).parse()
