"""
Rules - The APL rule language.

Pipeline:
1. tokenize / parse_expression: condition text -> typed expression tree
2. FieldResolver: dotted field paths -> state getters, built once per adapter
3. parse / parse_apl: APL text -> validated RuleSet
4. AplInterpreter: RuleSet + engine -> decisions and full-fight traces
"""

from .lexer import Token, TokenType, tokenize
from .expression import (
    EvalContext,
    Expr,
    Number,
    Field,
    Unary,
    Binary,
    parse_expression,
    evaluate,
    is_true,
    to_text,
)
from .resolver import FieldResolver
from .parser import (
    ActionEntry,
    VariableEntry,
    ListCallEntry,
    ActionList,
    RuleSet,
    AplParser,
    parse,
    parse_apl,
    DEFAULT_LIST,
    SKIPPED_ACTIONS,
)
from .interpreter import AplInterpreter, run_apl

__all__ = [
    "Token",
    "TokenType",
    "tokenize",
    "EvalContext",
    "Expr",
    "Number",
    "Field",
    "Unary",
    "Binary",
    "parse_expression",
    "evaluate",
    "is_true",
    "to_text",
    "FieldResolver",
    "ActionEntry",
    "VariableEntry",
    "ListCallEntry",
    "ActionList",
    "RuleSet",
    "AplParser",
    "parse",
    "parse_apl",
    "DEFAULT_LIST",
    "SKIPPED_ACTIONS",
    "AplInterpreter",
    "run_apl",
]
