"""
Tokenizer for APL condition expressions.

Tokens:
- NUMBER: 40, 0.5, .25
- IDENT: dotted field paths (buff.metamorphosis.up, prev_gcd.1.fracture, apex.3)
- OP: & | ^ ! + - * % = != < <= > >= >? <?
- LPAREN / RPAREN
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
import re

from ..errors import RuleParseError


class TokenType(Enum):
    NUMBER = "number"
    IDENT = "ident"
    OP = "op"
    LPAREN = "lparen"
    RPAREN = "rparen"
    EOF = "eof"


@dataclass(frozen=True)
class Token:
    type: TokenType
    text: str
    pos: int


_NUMBER = re.compile(r"\d+(?:\.\d+)?|\.\d+")
_IDENT = re.compile(r"[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z0-9_]+)*")
# Longest operators first
_OPERATORS = (">=", "<=", "!=", ">?", "<?", "&", "|", "^", "!", "+", "-", "*", "%", "=", ">", "<")


def tokenize(text: str) -> list[Token]:
    """Split an expression into tokens. Raises RuleParseError on stray characters."""
    tokens = []
    pos = 0
    length = len(text)

    while pos < length:
        ch = text[pos]
        if ch.isspace():
            pos += 1
            continue

        if ch == "(":
            tokens.append(Token(TokenType.LPAREN, ch, pos))
            pos += 1
            continue
        if ch == ")":
            tokens.append(Token(TokenType.RPAREN, ch, pos))
            pos += 1
            continue

        match = _NUMBER.match(text, pos)
        if match:
            tokens.append(Token(TokenType.NUMBER, match.group(), pos))
            pos = match.end()
            continue

        match = _IDENT.match(text, pos)
        if match:
            tokens.append(Token(TokenType.IDENT, match.group(), pos))
            pos = match.end()
            continue

        for op in _OPERATORS:
            if text.startswith(op, pos):
                tokens.append(Token(TokenType.OP, op, pos))
                pos += len(op)
                break
        else:
            raise RuleParseError(f"unexpected character {ch!r} at column {pos + 1} in '{text}'")

    tokens.append(Token(TokenType.EOF, "", length))
    return tokens
