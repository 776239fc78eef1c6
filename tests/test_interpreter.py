from __future__ import annotations

import io
import sys
import threading
import unittest
from pathlib import Path

from csubset.config import InterpreterConfig
from csubset.diagnostics import (
    ArityError,
    ConversionError,
    CSubsetSyntaxError,
    CSubsetTypeError,
    DivisionByZeroError,
    FormatError,
    IndexOutOfBoundsError,
    RedeclarationError,
    StackOverflow,
    UndefinedReferenceError,
)
from csubset.environment import recursion_headroom
from csubset.runner import execute, run_source


PROGRAMS = Path(__file__).parent / "programs"


def run(source: str, stdin: str = "", config: InterpreterConfig | None = None) -> tuple[int, str]:
    out = io.StringIO()
    result = run_source(source, stdin=io.StringIO(stdin), stdout=out, config=config)
    return result.status, out.getvalue()


class InterpreterTests(unittest.TestCase):
    def test_tour_program_output(self) -> None:
        source = (PROGRAMS / "tour.c").read_text(encoding="utf-8")
        status, output = run(source)
        self.assertEqual(status, 0)
        self.assertEqual(
            output.splitlines(),
            [
                "Int: 10, Float: 2.500000, String: Text",
                "Array[1]: 2",
                "i greater than 5",
                "While count: 0",
                "While count: 1",
                "While count: 2",
                "Do-While count: 3",
                "Do-While count: 2",
                "Do-While count: 1",
                "For k: 0",
                "For k: 1",
                "For k: 2",
                "Case 2",
                "Math: 30",
                "Logic AND OK",
                "Hello, User!",
                "Sum: 30",
                "Factorial(5): 120",
                "Struct Point: x=100, y=200",
                "Union Int: 42",
                "Union Float: 3.140000",
                "STOI: 124",
                "STOF: 13.000000",
                "PI: 3.14",
                "Hello World",
                "Done!",
            ],
        )

    def test_runs_are_deterministic(self) -> None:
        source = (PROGRAMS / "tour.c").read_text(encoding="utf-8")
        self.assertEqual(run(source), run(source))

    def test_int_main_return_is_exit_status(self) -> None:
        status, _ = run("int main() { return 7; }")
        self.assertEqual(status, 7)
        status, _ = run("int main() { print(1); }")
        self.assertEqual(status, 0)

    def test_switch_falls_through_until_break(self) -> None:
        source = """
void main() {
    int x = 1;
    switch (x) {
        case 1: puts("one");
        case 2: puts("two"); break;
        case 3: puts("three");
    }
}
""".strip()
        self.assertEqual(run(source)[1], "one\ntwo\n")

    def test_switch_default_keeps_source_position(self) -> None:
        source = """
void main() {
    switch (9) {
        case 1: puts("a");
        default: puts("d");
        case 2: puts("b");
    }
    switch ("go") {
        case "stop": puts("stop"); break;
        case "go": puts("go"); break;
    }
    switch (4) {
        case 1: puts("never");
    }
}
""".strip()
        self.assertEqual(run(source)[1], "d\nb\ngo\n")

    def test_switch_break_stops_before_default(self) -> None:
        source = """
void main() {
    int x = 2;
    switch (x) {
        case 1: puts("one");
        case 2: puts("two"); break;
        default: puts("other");
    }
}
""".strip()
        self.assertEqual(run(source)[1], "two\n")

    def test_logical_precedence_and_short_circuit(self) -> None:
        source = """
int boom() {
    puts("evaluated");
    return 1;
}

void main() {
    int t = 1;
    int f = 0;
    print(t || f && f);
    print(t && t);
    print(f || f);
    print(t || boom());
    print(f && boom());
    print(t || 1 / 0);
}
""".strip()
        self.assertEqual(run(source)[1], "1\n1\n0\n1\n0\n1\n")

    def test_recursion_base_cases(self) -> None:
        source = """
int factorial(int n) {
    if (n <= 1) return 1;
    return n * factorial(n - 1);
}

void main() {
    print(factorial(5));
    print(factorial(1));
    print(factorial(0));
}
""".strip()
        self.assertEqual(run(source)[1], "120\n1\n1\n")

    def test_array_bounds_are_checked(self) -> None:
        for access in ("a[3] = 1;", "print(a[-1]);", "print(a[10]);"):
            source = f"void main() {{ int a[3]; {access} }}"
            with self.subTest(access=access):
                with self.assertRaises(IndexOutOfBoundsError) as ctx:
                    run(source)
                self.assertEqual(ctx.exception.code, "index_out_of_bounds")

    def test_arrays_are_zeroed_and_shared_with_callees(self) -> None:
        source = """
void fill(int xs[], int v) {
    xs[0] = v;
}

void main() {
    int a[3];
    print(a);
    fill(a, 9);
    print(a);
    int b[] = {4, 5};
    print(b);
    string words[2];
    print(words);
}
""".strip()
        self.assertEqual(run(source)[1], '{0, 0, 0}\n{9, 0, 0}\n{4, 5}\n{"", ""}\n')

    def test_conversions(self) -> None:
        source = """
void main() {
    print(stoi("123") + 1);
    print(stof("12.5") + 0.5);
    print(stoi("  -42abc"));
    print(stof("3.5kg"));
}
""".strip()
        self.assertEqual(run(source)[1], "124\n13.0\n-42\n3.5\n")

    def test_stoi_without_digits_fails(self) -> None:
        with self.assertRaises(ConversionError) as ctx:
            run('void main() { print(stoi("abc")); }')
        self.assertEqual(ctx.exception.code, "bad_conversion")
        with self.assertRaises(ConversionError):
            run('void main() { print(stof("")); }')

    def test_non_finite_float_to_int_fails(self) -> None:
        grow = """
    float b = 1.0;
    int i = 0;
    while (i < 400) { b = b * 10.0; i = i + 1; }
"""
        cases = {
            "void main() {" + grow + "    int z = b;\n}": 5,
            "void main() {" + grow + "    float n = b - b;\n    int z = n;\n}": 6,
        }
        for source, line in cases.items():
            with self.subTest(line=line):
                with self.assertRaises(ConversionError) as ctx:
                    run(source)
                self.assertEqual(ctx.exception.code, "non_finite")
                self.assertEqual(ctx.exception.line, line)

    def test_infinite_main_result_fails(self) -> None:
        source = """
float main() {
    float b = 1.0;
    int i = 0;
    while (i < 400) { b = b * 10.0; i = i + 1; }
    return b;
}
""".strip()
        with self.assertRaises(ConversionError) as ctx:
            run(source)
        self.assertEqual(ctx.exception.code, "non_finite")

    def test_huge_int_to_float_fails(self) -> None:
        source = """
void main() {
    int n = 1;
    int i = 0;
    while (i < 400) { n = n * 10; i = i + 1; }
    print(n * 1.5);
}
""".strip()
        with self.assertRaises(ConversionError) as ctx:
            run(source)
        self.assertEqual(ctx.exception.code, "float_overflow")
        self.assertEqual(ctx.exception.line, 5)

    def test_struct_fields_are_independent_and_copied(self) -> None:
        source = """
struct Point {
    int x;
    int y;
};

void move(struct Point p) {
    p.x = 99;
}

void main() {
    struct Point a;
    a.x = 1;
    a.y = 2;
    struct Point b = a;
    b.x = 5;
    move(a);
    print(a.x);
    print(a.y);
    print(b.x);
    print(a);
    struct Point c = {7, 8};
    print(c);
}
""".strip()
        self.assertEqual(run(source)[1], "1\n2\n5\nPoint{x=1, y=2}\nPoint{x=7, y=8}\n")

    def test_union_reads_follow_active_member(self) -> None:
        source = """
union Data {
    int i;
    float f;
    string s;
};

void main() {
    union Data d;
    print(d);
    d.i = 42;
    print(d);
    print(d.f);
    d.f = 2.75;
    print(d.i);
    print(d.s);
    d.s = "17 apples";
    print(d.i);
}
""".strip()
        self.assertEqual(run(source)[1], "Data{i=0}\nData{i=42}\n42.0\n2\n2.75\n17\n")

    def test_wrong_argument_type_versus_wrong_count(self) -> None:
        prelude = """
void greet(string name) { puts(name); }
int add(int a, int b) { return a + b; }
"""
        with self.assertRaises(CSubsetTypeError):
            run(prelude + "void main() { greet(123); }")
        with self.assertRaises(ArityError):
            run(prelude + "void main() { add(10); }")
        with self.assertRaises(ArityError):
            run(prelude + 'void main() { greet(1, "x"); }')

    def test_int_arithmetic_follows_c(self) -> None:
        source = """
void main() {
    print(-7 / 2);
    print(-7 % 2);
    print(7 % -3);
    print(7 / 2.0);
    int t = 3.9;
    print(t);
    float g = 4;
    print(g);
    print("ab" + "cd");
    print("a" < "b");
    print(!0);
    print(!2.5);
}
""".strip()
        self.assertEqual(run(source)[1], "-3\n-1\n1\n3.5\n3\n4.0\nabcd\n1\n1\n0\n")

    def test_division_by_zero(self) -> None:
        with self.assertRaises(DivisionByZeroError):
            run("void main() { int z = 0; print(5 / z); }")
        with self.assertRaises(DivisionByZeroError):
            run("void main() { print(5 % 0); }")

    def test_type_errors_in_expressions(self) -> None:
        cases = [
            'void main() { print("a" + 1); }',
            'void main() { if ("yes") { puts("no"); } }',
            "void main() { print(5.0 % 2); }",
            'void main() { int x = "text"; }',
            "void main() { int a[2]; int b[2]; a = b; }",
            "void main() { return 1; }",
            "int f() { return; } void main() { f(); }",
            "int f() { } void main() { f(); }",
            "void nothing() { } void main() { print(nothing()); }",
        ]
        for source in cases:
            with self.subTest(source=source):
                with self.assertRaises(CSubsetTypeError):
                    run(source)

    def test_printf_placeholders(self) -> None:
        source = r"""
void main() {
    printf("[%5d][%-4s][%.2f]\n", 42, "ab", 3.14159);
    printf("100%%\tdone\n");
    printf("say \"hi\"\n");
}
""".strip()
        self.assertEqual(run(source)[1], '[   42][ab  ][3.14]\n100%\tdone\nsay "hi"\n')

    def test_printf_mismatches_raise_format_error(self) -> None:
        cases = [
            r'void main() { printf("%d\n", "x"); }',
            r'void main() { printf("%d %d\n", 1); }',
            r'void main() { printf("%s\n", "a", "b"); }',
            r'void main() { printf("%q\n", 1); }',
            r'void main() { printf("%f\n", 1); }',
        ]
        for source in cases:
            with self.subTest(source=source):
                with self.assertRaises(FormatError):
                    run(source)

    def test_scanf_reads_items_into_targets(self) -> None:
        source = r"""
struct Box {
    int n;
};

void main() {
    int n;
    float x;
    string name;
    int got = scanf("%d %f %s", &n, &x, name);
    printf("%d %d %.1f %s\n", got, n, x, name);
    int a[2];
    struct Box b;
    print(scanf("%d %d", &a[1], &b.n));
    print(a[1] + b.n);
    print(scanf("%d", &n));
}
""".strip()
        status, output = run(source, stdin="42 3.5 bob\n1\n2\n")
        self.assertEqual(status, 0)
        self.assertEqual(output, "3 42 3.5 bob\n2\n3\n-1\n")

    def test_scanf_validates_targets(self) -> None:
        with self.assertRaises(FormatError):
            run('void main() { int n; scanf("%d %d", &n); }', stdin="1 2")
        with self.assertRaises(FormatError):
            run('void main() { string s; scanf("%d", &s); }', stdin="1")
        with self.assertRaises(FormatError):
            run('void main() { scanf("%d", 5); }', stdin="1")
        with self.assertRaises(ConversionError):
            run('void main() { int n; scanf("%d", &n); }', stdin="abc")

    def test_address_of_outside_scanf_is_rejected(self) -> None:
        with self.assertRaises(CSubsetTypeError):
            run("void main() { int n; print(&n); }")

    def test_deep_recursion_is_a_stack_overflow(self) -> None:
        source = """
int down(int n) {
    return down(n + 1);
}

void main() {
    down(0);
}
""".strip()
        with self.assertRaises(StackOverflow) as ctx:
            run(source, config=InterpreterConfig(max_call_depth=50))
        self.assertIn("50", ctx.exception.technical)

    def test_recursion_within_limit_succeeds(self) -> None:
        source = """
int depth(int n) {
    if (n == 0) return 0;
    return 1 + depth(n - 1);
}

void main() {
    print(depth(150));
}
""".strip()
        self.assertEqual(run(source)[1], "150\n")

    def test_overlapping_runs_share_recursion_headroom(self) -> None:
        original = sys.getrecursionlimit()
        first = recursion_headroom(original + 5000)
        second = recursion_headroom(original + 2000)
        first.__enter__()
        second.__enter__()
        self.assertEqual(sys.getrecursionlimit(), original + 5000)
        first.__exit__(None, None, None)
        self.assertEqual(sys.getrecursionlimit(), original + 5000)
        second.__exit__(None, None, None)
        self.assertEqual(sys.getrecursionlimit(), original)

    def test_concurrent_runs_keep_their_recursion_depth(self) -> None:
        source = """
int depth(int n) {
    if (n == 0) return 0;
    return 1 + depth(n - 1);
}

void main() {
    print(depth(150));
}
""".strip()
        outputs: list[str] = []
        errors: list[BaseException] = []

        def worker() -> None:
            try:
                outputs.append(run(source)[1])
            except BaseException as exc:
                errors.append(exc)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        self.assertEqual(errors, [])
        self.assertEqual(outputs, ["150\n"] * 4)

    def test_nested_parentheses_parse_under_headroom(self) -> None:
        out = io.StringIO()
        source = "void main() { print(" + "(" * 80 + "1" + ")" * 80 + "); }"
        status = execute(source, stdout=out, stderr=io.StringIO())
        self.assertEqual((status, out.getvalue()), (0, "1\n"))

    def test_excessive_nesting_is_a_syntax_error(self) -> None:
        source = "void main() { print(" + "(" * 20000 + "1" + ")" * 20000 + "); }"
        with self.assertRaises(CSubsetSyntaxError) as ctx:
            run(source)
        self.assertEqual(ctx.exception.code, "nesting_too_deep")
        err = io.StringIO()
        self.assertEqual(execute(source, stdout=io.StringIO(), stderr=err), 1)
        self.assertIn("[SyntaxError]", err.getvalue())

    def test_undefined_names_suggest_close_matches(self) -> None:
        with self.assertRaises(UndefinedReferenceError) as ctx:
            run("void main() { int count = 1; print(cout); }")
        self.assertIn("Did you mean `count`?", ctx.exception.technical)
        with self.assertRaises(UndefinedReferenceError) as ctx:
            run("void main() { undefined_fn(); }")
        self.assertEqual(ctx.exception.code, "undefined_function")
        with self.assertRaises(UndefinedReferenceError):
            run("void helper() { }")

    def test_prototype_allows_forward_calls(self) -> None:
        source = """
int square(int x);

int main() {
    return square(3);
}

int square(int x) {
    return x * x;
}
""".strip()
        self.assertEqual(run(source)[0], 9)

    def test_prototype_without_body_is_undefined_at_call(self) -> None:
        with self.assertRaises(UndefinedReferenceError):
            run("int ghost(int x); void main() { ghost(1); }")

    def test_builtin_names_cannot_be_redeclared(self) -> None:
        for source in (
            "int print = 1; void main() { }",
            "void puts(string s) { } void main() { }",
            "struct stoi { int x; }; void main() { }",
        ):
            with self.subTest(source=source):
                with self.assertRaises(RedeclarationError):
                    run(source)

    def test_redeclaration_in_same_scope(self) -> None:
        with self.assertRaises(RedeclarationError):
            run("void main() { int x = 1; int x = 2; }")
        _, output = run("void main() { int x = 1; { int x = 2; print(x); } print(x); }")
        self.assertEqual(output, "2\n1\n")

    def test_globals_are_initialized_before_main(self) -> None:
        source = """
int twice(int v) { return v * 2; }
int base = twice(21);
int hits;

void bump() { hits = hits + 1; }

void main() {
    bump();
    bump();
    print(base);
    print(hits);
}
""".strip()
        self.assertEqual(run(source)[1], "42\n2\n")

    def test_loops_break_and_scope(self) -> None:
        source = """
void main() {
    int total = 0;
    for (int i = 0; ; i = i + 1) {
        if (i == 4) break;
        total = total + i;
    }
    print(total);
    int n = 0;
    while (1) {
        n = n + 1;
        if (n > 2) { break; }
    }
    print(n);
    do { n = n - 1; } while (0);
    print(n);
}
""".strip()
        self.assertEqual(run(source)[1], "6\n3\n2\n")

    def test_execute_reports_errors(self) -> None:
        out = io.StringIO()
        err = io.StringIO()
        status = execute(
            "void main() {\n    print(missing);\n}\n",
            stdout=out,
            stderr=err,
            source_name="demo.c",
        )
        self.assertEqual(status, 1)
        report = err.getvalue()
        self.assertIn("demo.c:2:11 [UndefinedReferenceError]", report)
        self.assertIn("print(missing);", report)
        self.assertEqual(out.getvalue(), "")

    def test_execute_returns_program_status(self) -> None:
        out = io.StringIO()
        status = execute("int main() { puts(\"hi\"); return 3; }", stdout=out, stderr=io.StringIO())
        self.assertEqual(status, 3)
        self.assertEqual(out.getvalue(), "hi\n")

    def test_execute_reports_non_ascii_source(self) -> None:
        err = io.StringIO()
        status = execute("void main() { int x = ²; }", stdout=io.StringIO(), stderr=err)
        self.assertEqual(status, 1)
        self.assertIn("[LexicalError]", err.getvalue())

    def test_custom_entry_point(self) -> None:
        config = InterpreterConfig(entry_point="start")
        status, output = run('int start() { puts("started"); return 4; }', config=config)
        self.assertEqual((status, output), (4, "started\n"))


if __name__ == "__main__":
    unittest.main()
