from __future__ import annotations

import unittest

from csubset.ast_nodes import Binary, ExprStmt, FunctionDecl, Literal, Logical, SwitchStmt, TypeDecl, VarDecl
from csubset.diagnostics import (
    CSubsetAggregateError,
    CSubsetError,
    CSubsetSyntaxError,
    LexicalError,
    UndefinedReferenceError,
)
from csubset.lexer import tokenize
from csubset.parser import parse
from csubset.registry import TypeRegistry


def kinds(source: str) -> list[str]:
    return [t.kind for t in tokenize(source)]


class LexerTests(unittest.TestCase):
    def test_operators_keywords_and_literals(self) -> None:
        self.assertEqual(
            kinds("if (a <= 3.5 && !b) return x % 2;"),
            [
                "IF",
                "LPAREN",
                "IDENT",
                "LTE",
                "FLOAT_LIT",
                "AND",
                "NOT",
                "IDENT",
                "RPAREN",
                "RETURN",
                "IDENT",
                "MOD",
                "INT_LIT",
                "SEMICOLON",
                "EOF",
            ],
        )

    def test_number_forms(self) -> None:
        tokens = tokenize("42 3. 0.25")
        self.assertEqual([(t.kind, t.value) for t in tokens[:3]], [("INT_LIT", 42), ("FLOAT_LIT", 3.0), ("FLOAT_LIT", 0.25)])

    def test_string_literals_stay_raw(self) -> None:
        tokens = tokenize(r'"a\nb" "say \"hi\""')
        self.assertEqual(tokens[0].value, r"a\nb")
        self.assertEqual(tokens[1].value, r"say \"hi\"")

    def test_comments_and_positions(self) -> None:
        tokens = tokenize("// note\n/* block\ncomment */ int x;")
        self.assertEqual(tokens[0].kind, "INT")
        self.assertEqual((tokens[0].line, tokens[0].column), (3, 12))

    def test_define_substitutes_tokens(self) -> None:
        tokens = tokenize('#include <stdio.h>\n#define N 3\n#define MSG "hi"\nint a[N]; puts(MSG);')
        values = [t.value for t in tokens if t.kind in {"INT_LIT", "STRING_LIT"}]
        self.assertEqual(values, [3, "hi"])
        n_token = next(t for t in tokens if t.kind == "INT_LIT")
        self.assertEqual((n_token.line, n_token.column), (4, 7))

    def test_lexical_errors(self) -> None:
        cases = {
            "int x = 1 @ 2;": "unknown_char",
            'string s = "open;\nint y;': "unterminated_string",
            "/* never closed": "unterminated_comment",
            "#pragma once": "bad_directive",
            "int x = \u00b2;": "unknown_char",
            "int caf\u00e9 = 1;": "unknown_char",
            "#define \u00e9 1": "bad_directive",
        }
        for source, code in cases.items():
            with self.subTest(source=source):
                with self.assertRaises(LexicalError) as ctx:
                    tokenize(source)
                self.assertEqual(ctx.exception.code, code)


class ParserTests(unittest.TestCase):
    def parse_source(self, source: str):
        registry = TypeRegistry()
        return parse(tokenize(source), registry), registry

    def first_error(self, source: str) -> CSubsetError:
        try:
            self.parse_source(source)
        except CSubsetAggregateError as exc:
            return exc.errors[0]
        except CSubsetError as exc:
            return exc
        self.fail(f"no error for {source!r}")

    def test_precedence(self) -> None:
        program, _ = self.parse_source("void main() { 1 + 2 * 3; t || f && f; }")
        body = program.functions[0].body
        arith = body.statements[0].expr
        self.assertIsInstance(arith, Binary)
        self.assertEqual(arith.op, "+")
        self.assertIsInstance(arith.right, Binary)
        self.assertEqual(arith.right.op, "*")
        logic = body.statements[1].expr
        self.assertIsInstance(logic, Logical)
        self.assertEqual(logic.op, "||")
        self.assertEqual(logic.right.op, "&&")

    def test_declarations_register_types_and_functions(self) -> None:
        source = """
struct Point { int x; int y; };
union Data { int i; float f; };
int total = 0;
int add(int a, int b) { return a + b; }
""".strip()
        program, registry = self.parse_source(source)
        self.assertEqual([type(d) for d in program.declarations], [TypeDecl, TypeDecl, VarDecl, FunctionDecl])
        self.assertEqual(list(registry.composites["Point"].fields), ["x", "y"])
        self.assertEqual(registry.composites["Data"].kind, "union")
        self.assertEqual(registry.functions["add"].arity, 2)
        self.assertEqual(str(registry.functions["add"].return_type), "int")

    def test_switch_keeps_clause_order(self) -> None:
        source = """
void main() {
    switch (x) {
        case 1: a;
        default: b;
        case -2: c;
    }
}
""".strip()
        program, _ = self.parse_source(source)
        switch = program.functions[0].body.statements[0]
        self.assertIsInstance(switch, SwitchStmt)
        self.assertEqual([c.value.value if c.value else None for c in switch.clauses], [1, None, -2])
        self.assertEqual(switch.default_index, 1)
        self.assertIsInstance(switch.clauses[0].statements[0], ExprStmt)

    def test_unsized_array_takes_initializer_length(self) -> None:
        program, _ = self.parse_source("int xs[] = {1, 2, 3};")
        decl = program.globals[0]
        self.assertEqual(str(decl.type), "int[3]")
        self.assertIsInstance(decl.init.elements[0], Literal)

    def test_syntax_errors(self) -> None:
        cases = {
            "void main() { int x = 1 }": "missing_semicolon",
            "void main() { break; }": "break_outside_loop",
            "void main() { 1 = 2; }": "invalid_lvalue",
            "void main() { switch (1) { case 1: a; case 1: b; } }": "duplicate_case",
            "void main() { switch (1) { default: a; default: b; } }": "duplicate_default",
            "void main() { switch (1) { case x: a; } }": "invalid_case_label",
            "int xs[2] = {1, 2, 3};": "too_many_initializers",
            "int xs[];": "unexpected_token",
            "void main() { print(1); ": "missing_brace",
        }
        for source, code in cases.items():
            with self.subTest(source=source):
                err = self.first_error(source)
                self.assertIsInstance(err, CSubsetSyntaxError)
                self.assertEqual(err.code, code)

    def test_unknown_struct_type(self) -> None:
        with self.assertRaises(UndefinedReferenceError) as ctx:
            self.parse_source("void main() { struct Nope p; }")
        self.assertEqual(ctx.exception.code, "undefined_type")

    def test_multiple_errors_are_aggregated(self) -> None:
        source = """
void main() {
    int x = ;
    int y = ;
}
""".strip()
        with self.assertRaises(CSubsetAggregateError) as ctx:
            self.parse_source(source)
        self.assertEqual([e.line for e in ctx.exception.errors], [2, 3])
        self.assertTrue(all(isinstance(e, CSubsetError) for e in ctx.exception.errors))

    def test_error_pretty_points_at_column(self) -> None:
        source = "void main() {\n    int x = 1\n}"
        with self.assertRaises(CSubsetSyntaxError) as ctx:
            self.parse_source(source)
        rendered = ctx.exception.pretty("prog.c", source_text=source)
        self.assertTrue(rendered.startswith("prog.c:3:1 [SyntaxError] Expected `;` after declaration."))
        self.assertIn("Statements end with `;`.", rendered)
        self.assertIn("  | ^", rendered)


if __name__ == "__main__":
    unittest.main()
