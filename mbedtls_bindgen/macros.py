"""
Integer evaluation of object-like macros.

libclang exposes a macro definition only as its token list. This module folds
that list into an integer the way a C preprocessor's #if arithmetic would,
resolving identifiers against macros evaluated earlier in the same unit.
"""

import re
from typing import Dict, List, Optional, Sequence


INT_LITERAL = re.compile(
    r"^(0[xX][0-9a-fA-F]+|0[bB][01]+|0[0-7]*|[1-9][0-9]*)([uUlL]*)$"
)

CHAR_ESCAPES = {
    "n": 10, "t": 9, "r": 13, "0": 0, "a": 7, "b": 8,
    "f": 12, "v": 11, "\\": 92, "'": 39, '"': 34, "?": 63,
}

# Binary operators by precedence, loosest first
BINARY_PRECEDENCE = [
    ("||",),
    ("&&",),
    ("|",),
    ("^",),
    ("&",),
    ("==", "!="),
    ("<", ">", "<=", ">="),
    ("<<", ">>"),
    ("+", "-"),
    ("*", "/", "%"),
]


class MacroSyntaxError(ValueError):
    """The token sequence is not an integer constant expression."""


def parse_int_literal(token: str) -> Optional[int]:
    match = INT_LITERAL.match(token)
    if not match:
        return None
    digits = match.group(1)
    if digits[:2] in ("0x", "0X"):
        return int(digits[2:], 16)
    if digits[:2] in ("0b", "0B"):
        return int(digits[2:], 2)
    if len(digits) > 1 and digits[0] == "0":
        return int(digits[1:], 8)
    return int(digits)


def parse_char_literal(token: str) -> Optional[int]:
    if len(token) < 3 or token[0] != "'" or token[-1] != "'":
        return None
    body = token[1:-1]
    if len(body) == 1:
        return ord(body)
    if body[0] != "\\":
        return None
    if body[1] == "x":
        return int(body[2:], 16)
    if body[1:].isdigit():
        return int(body[1:], 8)
    return CHAR_ESCAPES.get(body[1:])


def c_div(a: int, b: int) -> int:
    # C truncates toward zero
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b >= 0) else -q


def c_mod(a: int, b: int) -> int:
    return a - b * c_div(a, b)


class _Parser:
    def __init__(self, tokens: Sequence[str], known: Dict[str, int]):
        self.tokens = list(tokens)
        self.pos = 0
        self.known = known

    def peek(self) -> Optional[str]:
        if self.pos < len(self.tokens):
            return self.tokens[self.pos]
        return None

    def take(self) -> str:
        token = self.peek()
        if token is None:
            raise MacroSyntaxError("unexpected end of expression")
        self.pos += 1
        return token

    def expect(self, token: str):
        if self.take() != token:
            raise MacroSyntaxError(f"expected {token!r}")

    def parse(self) -> int:
        value = self.conditional()
        if self.peek() is not None:
            raise MacroSyntaxError(f"trailing token {self.peek()!r}")
        return value

    def conditional(self) -> int:
        cond = self.binary(0)
        if self.peek() != "?":
            return cond
        self.take()
        then = self.conditional()
        self.expect(":")
        other = self.conditional()
        return then if cond else other

    def binary(self, level: int) -> int:
        if level == len(BINARY_PRECEDENCE):
            return self.unary()
        left = self.binary(level + 1)
        while self.peek() in BINARY_PRECEDENCE[level]:
            op = self.take()
            right = self.binary(level + 1)
            left = apply_binary(op, left, right)
        return left

    def unary(self) -> int:
        token = self.peek()
        if token in ("+", "-", "~", "!"):
            self.take()
            value = self.unary()
            if token == "-":
                return -value
            if token == "~":
                return ~value
            if token == "!":
                return int(not value)
            return value
        return self.primary()

    def primary(self) -> int:
        token = self.take()
        if token == "(":
            value = self.conditional()
            self.expect(")")
            return value
        value = parse_int_literal(token)
        if value is None:
            value = parse_char_literal(token)
        if value is None:
            value = self.known.get(token)
        if value is None:
            raise MacroSyntaxError(f"not an integer constant: {token!r}")
        return value


def apply_binary(op: str, left: int, right: int) -> int:
    if op == "||":
        return int(bool(left) or bool(right))
    if op == "&&":
        return int(bool(left) and bool(right))
    if op == "|":
        return left | right
    if op == "^":
        return left ^ right
    if op == "&":
        return left & right
    if op == "==":
        return int(left == right)
    if op == "!=":
        return int(left != right)
    if op == "<":
        return int(left < right)
    if op == ">":
        return int(left > right)
    if op == "<=":
        return int(left <= right)
    if op == ">=":
        return int(left >= right)
    if op == "<<":
        return left << right
    if op == ">>":
        return left >> right
    if op == "+":
        return left + right
    if op == "-":
        return left - right
    if op == "*":
        return left * right
    if right == 0:
        raise MacroSyntaxError("division by zero")
    if op == "/":
        return c_div(left, right)
    return c_mod(left, right)


def is_function_like(tokens: Sequence[str], columns: Sequence[int] = ()) -> bool:
    """True for ``NAME(args) body`` definitions.

    When token columns are available, a parenthesis that does not touch the
    name marks an object-like macro whose value starts with '('.
    """
    if len(tokens) < 2 or tokens[1] != "(":
        return False
    if len(columns) >= 2:
        return columns[1] == columns[0] + len(tokens[0])
    # Without columns: a parameter list is identifiers separated by commas
    for i, token in enumerate(tokens[2:], start=2):
        if token == ")":
            return i + 1 < len(tokens)
        if token != "," and not token.isidentifier() and token != "...":
            return False
    return False


def evaluate(tokens: Sequence[str], known: Optional[Dict[str, int]] = None) -> Optional[int]:
    """Evaluate a macro body, or return None if it is not an integer constant."""
    if not tokens:
        return None
    try:
        return _Parser(tokens, known or {}).parse()
    except MacroSyntaxError:
        return None


def evaluate_definition(tokens: List[str], known: Optional[Dict[str, int]] = None,
                        columns: Sequence[int] = ()) -> Optional[int]:
    """Evaluate a full ``NAME body...`` token list from a macro definition."""
    if is_function_like(tokens, columns):
        return None
    return evaluate(tokens[1:], known)
