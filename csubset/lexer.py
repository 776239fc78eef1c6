from __future__ import annotations

from csubset.diagnostics import LexicalError
from csubset.token import Token


KEYWORDS = {
    "int": "INT",
    "float": "FLOAT",
    "string": "STRING",
    "void": "VOID",
    "if": "IF",
    "else": "ELSE",
    "while": "WHILE",
    "do": "DO",
    "for": "FOR",
    "switch": "SWITCH",
    "case": "CASE",
    "default": "DEFAULT",
    "break": "BREAK",
    "return": "RETURN",
    "struct": "STRUCT",
    "union": "UNION",
}


TWO_CHAR_TOKENS = {
    "==": "EQ",
    "!=": "NEQ",
    "<=": "LTE",
    ">=": "GTE",
    "&&": "AND",
    "||": "OR",
}


ONE_CHAR_TOKENS = {
    "+": "PLUS",
    "-": "MINUS",
    "*": "STAR",
    "/": "SLASH",
    "%": "MOD",
    "=": "ASSIGN",
    "<": "LT",
    ">": "GT",
    "!": "NOT",
    "&": "AMP",
    "(": "LPAREN",
    ")": "RPAREN",
    "{": "LBRACE",
    "}": "RBRACE",
    "[": "LBRACKET",
    "]": "RBRACKET",
    ";": "SEMICOLON",
    ",": "COMMA",
    ".": "DOT",
    ":": "COLON",
}


class Lexer:
    """Turns CSubset source text into tokens.

    `#define NAME VALUE` lines are handled here: the value is tokenized once
    and spliced in for every later identifier `NAME`.
    """

    def __init__(self, source: str) -> None:
        self.source = source
        self.length = len(source)
        self.index = 0
        self.line = 1
        self.column = 1
        self.defines: dict[str, list[Token]] = {}

    def tokenize(self) -> list[Token]:
        tokens = self._scan()
        tokens.append(Token("EOF", "", self.line, self.column))
        return tokens

    def _scan(self) -> list[Token]:
        tokens: list[Token] = []
        at_line_start = True

        while not self._is_at_end():
            ch = self._peek()

            if ch in (" ", "\t", "\r", "\ufeff"):
                self._advance()
                continue
            if ch == "\n":
                self._advance_line()
                at_line_start = True
                continue
            if ch == "/" and self._peek_next() == "/":
                self._skip_line_comment()
                continue
            if ch == "/" and self._peek_next() == "*":
                self._skip_block_comment()
                continue
            if ch == "#" and at_line_start:
                self._directive()
                continue
            at_line_start = False

            if _is_ident_start(ch):
                tok = self._identifier()
                if tok.kind == "IDENT" and tok.value in self.defines:
                    tokens.extend(t.moved_to(tok.line, tok.column) for t in self.defines[str(tok.value)])
                else:
                    tokens.append(tok)
                continue
            if _is_digit(ch):
                tokens.append(self._number())
                continue
            if ch == '"':
                tokens.append(self._string())
                continue

            two = ch + self._peek_next()
            if two in TWO_CHAR_TOKENS:
                line, col = self.line, self.column
                self._advance()
                self._advance()
                tokens.append(Token(TWO_CHAR_TOKENS[two], two, line, col))
                continue

            if ch in ONE_CHAR_TOKENS:
                line, col = self.line, self.column
                self._advance()
                tokens.append(Token(ONE_CHAR_TOKENS[ch], ch, line, col))
                continue

            raise LexicalError(
                code="unknown_char",
                technical=f"Unrecognized character {ch!r}",
                line=self.line,
                column=self.column,
            )

        return tokens

    def _directive(self) -> None:
        line, col = self.line, self.column
        start = self.index
        while not self._is_at_end() and self._peek() != "\n":
            self._advance()
        text = self.source[start:self.index]
        parts = text[1:].strip().split(None, 2)
        if not parts:
            raise LexicalError(code="bad_directive", technical="Empty preprocessor directive", line=line, column=col)

        name = parts[0]
        if name == "include":
            return
        if name != "define":
            raise LexicalError(
                code="bad_directive",
                technical=f"Unsupported preprocessor directive `#{name}`",
                line=line,
                column=col,
            )
        if len(parts) < 2 or not _is_ident_start(parts[1][0]):
            raise LexicalError(
                code="bad_directive",
                technical="`#define` needs a constant name",
                line=line,
                column=col,
            )
        body = parts[2] if len(parts) > 2 else ""
        sub = Lexer(body)
        sub.line = line
        sub.defines = self.defines
        self.defines[parts[1]] = sub._scan()

    def _identifier(self) -> Token:
        line, col = self.line, self.column
        start = self.index
        while not self._is_at_end():
            ch = self._peek()
            if not (_is_ident_start(ch) or _is_digit(ch)):
                break
            self._advance()

        text = self.source[start:self.index]
        kind = KEYWORDS.get(text, "IDENT")
        return Token(kind, text, line, col)

    def _number(self) -> Token:
        line, col = self.line, self.column
        start = self.index
        while not self._is_at_end() and _is_digit(self._peek()):
            self._advance()
        is_float = False
        if not self._is_at_end() and self._peek() == ".":
            is_float = True
            self._advance()
            while not self._is_at_end() and _is_digit(self._peek()):
                self._advance()
        text = self.source[start:self.index]
        if is_float:
            return Token("FLOAT_LIT", float(text), line, col)
        return Token("INT_LIT", int(text), line, col)

    def _string(self) -> Token:
        line, col = self.line, self.column
        self._advance()
        start = self.index
        while not self._is_at_end() and self._peek() != '"':
            if self._peek() == "\n":
                break
            if self._peek() == "\\" and self._peek_next() not in ("\n", "\0"):
                # Escapes stay raw; only the closing-quote check skips them.
                self._advance()
            self._advance()

        if self._is_at_end() or self._peek() != '"':
            raise LexicalError(
                code="unterminated_string",
                technical="Unterminated string literal",
                line=line,
                column=col,
            )
        text = self.source[start:self.index]
        self._advance()
        return Token("STRING_LIT", text, line, col)

    def _skip_line_comment(self) -> None:
        while not self._is_at_end() and self._peek() != "\n":
            self._advance()

    def _skip_block_comment(self) -> None:
        line, col = self.line, self.column
        self._advance()
        self._advance()
        while not self._is_at_end():
            if self._peek() == "*" and self._peek_next() == "/":
                self._advance()
                self._advance()
                return
            if self._peek() == "\n":
                self._advance_line()
            else:
                self._advance()
        raise LexicalError(
            code="unterminated_comment",
            technical="Unterminated block comment",
            line=line,
            column=col,
        )

    def _is_at_end(self) -> bool:
        return self.index >= self.length

    def _peek(self) -> str:
        return self.source[self.index]

    def _peek_next(self) -> str:
        if self.index + 1 >= self.length:
            return "\0"
        return self.source[self.index + 1]

    def _advance(self) -> str:
        ch = self.source[self.index]
        self.index += 1
        self.column += 1
        return ch

    def _advance_line(self) -> None:
        self.index += 1
        self.line += 1
        self.column = 1


def _is_digit(ch: str) -> bool:
    return "0" <= ch <= "9"


def _is_ident_start(ch: str) -> bool:
    return ch == "_" or "a" <= ch <= "z" or "A" <= ch <= "Z"


def tokenize(source: str) -> list[Token]:
    return Lexer(source).tokenize()
