from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from typing import TextIO

from csubset.ast_nodes import Program
from csubset.config import DEFAULT_CONFIG, InterpreterConfig
from csubset.diagnostics import CSubsetAggregateError, CSubsetError
from csubset.environment import recursion_headroom
from csubset.interpreter import Interpreter
from csubset.lexer import Lexer
from csubset.parser import Parser
from csubset.registry import TypeRegistry
from csubset.token import Token


logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    status: int
    tokens: list[Token]
    ast: Program


def run_source(
    source: str,
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
    config: InterpreterConfig | None = None,
    source_name: str | None = None,
) -> RunResult:
    """Lexes, parses and executes one program with a fresh type registry.

    Errors propagate as ``CSubsetError`` (or ``CSubsetAggregateError`` when
    the parser collected several).
    """
    config = config or DEFAULT_CONFIG
    tokens = Lexer(source).tokenize()
    logger.debug("%s: %d tokens", source_name or "<source>", len(tokens))

    with recursion_headroom(config.host_recursion_limit):
        registry = TypeRegistry()
        ast = Parser(tokens, registry).parse()
        logger.debug(
            "parsed %d declaration(s), %d function(s)", len(ast.declarations), len(ast.functions)
        )

        interpreter = Interpreter(
            ast,
            registry,
            stdout=stdout or sys.stdout,
            stdin=stdin or sys.stdin,
            config=config,
        )
        status = interpreter.run()
    logger.debug("exit status %d", status)
    return RunResult(status=status, tokens=tokens, ast=ast)


def execute(
    source: str,
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
    stderr: TextIO | None = None,
    config: InterpreterConfig | None = None,
    source_name: str | None = None,
) -> int:
    """Runs a program and reports any CSubset error instead of raising it."""
    report = stderr or sys.stderr
    try:
        result = run_source(source, stdin=stdin, stdout=stdout, config=config, source_name=source_name)
    except CSubsetAggregateError as exc:
        print(exc.pretty(source_name, source_text=source), file=report)
        return 1
    except CSubsetError as exc:
        print(exc.pretty(source_name, source_text=source), file=report)
        return 1
    return result.status
