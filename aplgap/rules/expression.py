"""
Condition expressions - Recursive-descent parser and evaluator.

Grammar (lowest to highest precedence):

    or        := xor ('|' xor)*
    xor       := and ('^' and)*
    and       := compare ('&' compare)*
    compare   := minmax (('=' | '!=' | '<' | '<=' | '>' | '>=') minmax)?
    minmax    := additive (('>?' | '<?') additive)*
    additive  := term (('+' | '-') term)*
    term      := unary (('*' | '%') unary)*
    unary     := ('!' | '-' | '+') unary | primary
    primary   := NUMBER | IDENT | '(' or ')'

`%` is division and `>?` / `<?` are min / max, as in SimC. Everything is
numeric underneath: a condition is true when it evaluates to a non-zero
value. Field paths are compiled into getters at parse time through the
FieldResolver table; nothing is evaluated by name at run time.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable, Union, TYPE_CHECKING

from ..errors import RuleParseError
from .lexer import Token, TokenType, tokenize

if TYPE_CHECKING:
    from ..engine_core.state import CombatState
    from .resolver import FieldResolver


@dataclass
class EvalContext:
    """
    Context for evaluating expressions.

    Provides access to:
    - The current combat state (and through it, the build)
    - APL variables set while walking the action lists
    """
    state: CombatState
    variables: dict[str, float] = field(default_factory=dict)

    @property
    def build(self):
        return self.state.build


@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class Field:
    path: str
    getter: Callable[[EvalContext], Any] = field(compare=False, repr=False)


@dataclass(frozen=True)
class Unary:
    op: str
    operand: Expr


@dataclass(frozen=True)
class Binary:
    op: str
    left: Expr
    right: Expr


Expr = Union[Number, Field, Unary, Binary]

_COMPARISONS = ("=", "!=", "<", "<=", ">", ">=")


class _Parser:
    def __init__(self, text: str, resolver: FieldResolver):
        self.text = text
        self.resolver = resolver
        self.tokens = tokenize(text)
        self.index = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def _advance(self) -> Token:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def _at_op(self, *ops: str) -> bool:
        return self.current.type is TokenType.OP and self.current.text in ops

    def _error(self, message: str) -> RuleParseError:
        return RuleParseError(f"{message} at column {self.current.pos + 1} in '{self.text}'")

    def parse(self) -> Expr:
        if self.current.type is TokenType.EOF:
            raise RuleParseError("empty expression")
        expr = self._or()
        if self.current.type is not TokenType.EOF:
            raise self._error(f"unexpected '{self.current.text}'")
        return expr

    def _left_assoc(self, ops: tuple[str, ...], operand: Callable[[], Expr]) -> Expr:
        left = operand()
        while self._at_op(*ops):
            op = self._advance().text
            left = Binary(op, left, operand())
        return left

    def _or(self) -> Expr:
        return self._left_assoc(("|",), self._xor)

    def _xor(self) -> Expr:
        return self._left_assoc(("^",), self._and)

    def _and(self) -> Expr:
        return self._left_assoc(("&",), self._compare)

    def _compare(self) -> Expr:
        left = self._minmax()
        if self._at_op(*_COMPARISONS):
            op = self._advance().text
            left = Binary(op, left, self._minmax())
            if self._at_op(*_COMPARISONS):
                raise self._error("chained comparison")
        return left

    def _minmax(self) -> Expr:
        return self._left_assoc((">?", "<?"), self._additive)

    def _additive(self) -> Expr:
        return self._left_assoc(("+", "-"), self._term)

    def _term(self) -> Expr:
        return self._left_assoc(("*", "%"), self._unary)

    def _unary(self) -> Expr:
        if self._at_op("!", "-", "+"):
            op = self._advance().text
            return Unary(op, self._unary())
        return self._primary()

    def _primary(self) -> Expr:
        token = self.current
        if token.type is TokenType.NUMBER:
            self._advance()
            return Number(float(token.text))
        if token.type is TokenType.IDENT:
            self._advance()
            return Field(token.text, self.resolver.resolve(token.text))
        if token.type is TokenType.LPAREN:
            self._advance()
            expr = self._or()
            if self.current.type is not TokenType.RPAREN:
                raise self._error("missing ')'")
            self._advance()
            return expr
        if token.type is TokenType.EOF:
            raise self._error("unexpected end of expression")
        raise self._error(f"unexpected '{token.text}'")


def parse_expression(text: str, resolver: FieldResolver) -> Expr:
    """Parse a condition. Raises RuleParseError on malformed text or unknown fields."""
    return _Parser(text, resolver).parse()


def as_number(value: Any) -> float:
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    return float(value)


def evaluate(expr: Expr, ctx: EvalContext) -> bool | float:
    """
    Evaluate an expression tree.

    Comparisons and logical operators return bool; arithmetic returns float.
    """
    if isinstance(expr, Number):
        return expr.value

    if isinstance(expr, Field):
        return expr.getter(ctx)

    if isinstance(expr, Unary):
        value = evaluate(expr.operand, ctx)
        if expr.op == "!":
            return not as_number(value)
        if expr.op == "-":
            return -as_number(value)
        return as_number(value)

    op = expr.op
    if op == "&":
        return bool(as_number(evaluate(expr.left, ctx))) and bool(as_number(evaluate(expr.right, ctx)))
    if op == "|":
        return bool(as_number(evaluate(expr.left, ctx))) or bool(as_number(evaluate(expr.right, ctx)))

    left = as_number(evaluate(expr.left, ctx))
    right = as_number(evaluate(expr.right, ctx))

    if op == "^":
        return bool(left) != bool(right)
    if op == "=":
        return left == right
    if op == "!=":
        return left != right
    if op == "<":
        return left < right
    if op == "<=":
        return left <= right
    if op == ">":
        return left > right
    if op == ">=":
        return left >= right
    if op == ">?":
        return min(left, right)
    if op == "<?":
        return max(left, right)
    if op == "+":
        return left + right
    if op == "-":
        return left - right
    if op == "*":
        return left * right
    if op == "%":
        return left / right if right != 0 else 0.0
    raise ValueError(f"Unknown operator: {op}")


def is_true(expr: Expr | None, ctx: EvalContext) -> bool:
    """A missing condition is always true."""
    if expr is None:
        return True
    return bool(as_number(evaluate(expr, ctx)))


def to_text(expr: Expr) -> str:
    """Render an expression back to condition text (fully parenthesized)."""
    if isinstance(expr, Number):
        value = expr.value
        return str(int(value)) if value.is_integer() else repr(value)
    if isinstance(expr, Field):
        return expr.path
    if isinstance(expr, Unary):
        return f"{expr.op}{to_text(expr.operand)}"
    return f"({to_text(expr.left)}{expr.op}{to_text(expr.right)})"
