"""
APL Parser - Turns action priority list text into a validated RuleSet.

Accepted lines:
    actions=<entry>                 first entry of the default list
    actions+=/<entry>               append to the default list
    actions.<list>=<entry>          first entry of a named list
    actions.<list>+=/<entry>        append to a named list
    # comment                       ignored
    other key=value lines           profile lines, ignored

A line whose key is close to `actions` (a typo such as `actons=`, or a list
name with characters outside [A-Za-z0-9_]) or that uses `+=` is treated as a
malformed action line and raises instead of being dropped.

An entry is comma-separated, respecting parentheses:
    <ability>[,if=<expr>][,line_cd=<s>][,<key>=<value>...]
    variable,name=<n>[,op=set|add|sub|mul|div|min|max|reset|setif][,value=<expr>]
             [,value_else=<expr>][,condition=<expr>][,default=<num>][,if=<expr>]
    run_action_list,name=<list>[,if=<expr>]    no fall-through
    call_action_list,name=<list>[,if=<expr>]   falls through when nothing matched

Every error is fatal and names the list, entry and line: a partially parsed
rule set is never executed.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Union
import difflib
import logging
import re

from ..analysis.hashing import hash_text
from ..errors import RuleParseError
from .expression import Expr, parse_expression

if TYPE_CHECKING:
    from ..engine_core.adapter import SpecAdapter
    from .resolver import FieldResolver

logger = logging.getLogger(__name__)

DEFAULT_LIST = "default"
PRECOMBAT_LIST = "precombat"

# Actions with no effect on the modeled rotation
SKIPPED_ACTIONS = frozenset({
    "auto_attack",
    "snapshot_stats",
    "use_item",
    "use_items",
    "potion",
    "flask",
    "food",
    "augmentation",
    "invoke_external_buff",
    "disrupt",
})

VARIABLE_OPS = frozenset({"set", "add", "sub", "mul", "div", "min", "max", "reset", "setif"})

_LINE = re.compile(r"^actions(?:\.(\w+))?(\+?)=/?(.*)$")
_KEY = re.compile(r"^([^=+]*)(\+?)=")


def looks_like_action_line(line: str) -> bool:
    """True for lines meant as APL entries, whether or not they are well formed."""
    key = _KEY.match(line)
    if key is None:
        return False
    if key.group(2):
        return True
    root = key.group(1).split(".", 1)[0].strip()
    return bool(difflib.get_close_matches(root, ["actions"], n=1, cutoff=0.8))


@dataclass
class ActionEntry:
    """Cast `ability` when `condition` holds."""
    ability: str
    condition: Expr | None = None
    condition_text: str | None = None
    line: int = 0
    line_cd: float = 0.0
    modifiers: dict[str, str] = field(default_factory=dict)
    known: bool = True

    def to_text(self) -> str:
        parts = [self.ability]
        if self.condition_text is not None:
            parts.append(f"if={self.condition_text}")
        for key, value in self.modifiers.items():
            parts.append(f"{key}={value}" if value != "" else key)
        return ",".join(parts)


@dataclass
class VariableEntry:
    """Update an APL variable while walking a list."""
    name: str
    op: str = "set"
    value: Expr | None = None
    value_text: str | None = None
    value_else: Expr | None = None
    value_else_text: str | None = None
    setif_condition: Expr | None = None
    setif_condition_text: str | None = None
    condition: Expr | None = None
    condition_text: str | None = None
    default: float = 0.0
    line: int = 0

    def to_text(self) -> str:
        parts = ["variable", f"name={self.name}"]
        if self.op != "set":
            parts.append(f"op={self.op}")
        if self.value_text is not None:
            parts.append(f"value={self.value_text}")
        if self.value_else_text is not None:
            parts.append(f"value_else={self.value_else_text}")
        if self.setif_condition_text is not None:
            parts.append(f"condition={self.setif_condition_text}")
        if self.default != 0.0:
            parts.append(f"default={self.default:g}")
        if self.condition_text is not None:
            parts.append(f"if={self.condition_text}")
        return ",".join(parts)


@dataclass
class ListCallEntry:
    """Jump into another list (`run` never falls through, `call` does)."""
    target: str
    mode: str = "call"
    condition: Expr | None = None
    condition_text: str | None = None
    line: int = 0

    def to_text(self) -> str:
        parts = [f"{self.mode}_action_list", f"name={self.target}"]
        if self.condition_text is not None:
            parts.append(f"if={self.condition_text}")
        return ",".join(parts)


Entry = Union[ActionEntry, VariableEntry, ListCallEntry]


@dataclass
class ActionList:
    name: str
    entries: list[Entry] = field(default_factory=list)


@dataclass
class RuleSet:
    """
    A parsed, validated APL.

    `source_hash` is the content hash of the original text; `warnings`
    lists entries that parsed but can never fire (unknown abilities).
    """
    lists: dict[str, ActionList]
    source_hash: str
    warnings: list[str] = field(default_factory=list)

    @property
    def default(self) -> ActionList:
        return self.lists[DEFAULT_LIST]

    def get(self, name: str) -> ActionList | None:
        return self.lists.get(name)

    def variables(self) -> list[VariableEntry]:
        return [e for lst in self.lists.values() for e in lst.entries if isinstance(e, VariableEntry)]

    def to_text(self) -> str:
        """Serialize back to APL text."""
        lines = []
        for action_list in self.lists.values():
            prefix = "actions" if action_list.name == DEFAULT_LIST else f"actions.{action_list.name}"
            for i, entry in enumerate(action_list.entries):
                op = "=" if i == 0 else "+=/"
                lines.append(f"{prefix}{op}{entry.to_text()}")
        return "\n".join(lines) + "\n"


def split_modifiers(content: str) -> list[str]:
    """Split on commas outside parentheses."""
    parts = []
    current = []
    depth = 0
    for ch in content:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        if ch == "," and depth == 0:
            parts.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
    parts.append("".join(current).strip())
    return parts


class AplParser:
    """
    Parser bound to one adapter's field resolver.

    Usage:
        parser = AplParser(FieldResolver(adapter))
        rule_set = parser.parse(apl_text)
    """

    def __init__(self, resolver: FieldResolver):
        self.resolver = resolver

    def parse(self, text: str) -> RuleSet:
        lists: dict[str, ActionList] = {}
        warnings: list[str] = []

        for number, raw in enumerate(text.splitlines(), start=1):
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            match = _LINE.match(line)
            if not match:
                if looks_like_action_line(line):
                    raise RuleParseError(
                        "malformed action line (expected actions[.<list>][+]=<entry>)",
                        entry=line,
                        line=number,
                    )
                continue

            list_name = match.group(1) or DEFAULT_LIST
            content = match.group(3).strip()
            action_list = lists.setdefault(list_name, ActionList(list_name))
            if not content:
                continue

            entry = self._parse_entry(content, list_name, number, warnings)
            if entry is not None:
                action_list.entries.append(entry)

        if DEFAULT_LIST not in lists:
            raise RuleParseError("no default action list ('actions=' lines)")

        self._validate_references(lists)
        for warning in warnings:
            logger.warning("APL: %s", warning)

        return RuleSet(lists=lists, source_hash=hash_text(text), warnings=warnings)

    def _parse_entry(
        self,
        content: str,
        list_name: str,
        line: int,
        warnings: list[str],
    ) -> Entry | None:
        parts = split_modifiers(content)
        head = parts[0]
        modifiers: dict[str, str] = {}
        for part in parts[1:]:
            if not part:
                raise RuleParseError("empty modifier", list_name, content, line)
            key, sep, value = part.partition("=")
            if key in modifiers:
                raise RuleParseError(f"duplicate modifier '{key}'", list_name, content, line)
            modifiers[key] = value if sep else ""

        if not head:
            raise RuleParseError("missing action name", list_name, content, line)

        def expr(key: str) -> Expr | None:
            text = modifiers.get(key)
            if text is None:
                return None
            if not text.strip():
                raise RuleParseError(f"empty '{key}=' expression", list_name, content, line)
            try:
                return parse_expression(text, self.resolver)
            except RuleParseError as exc:
                raise RuleParseError(exc.reason, list_name, content, line) from exc

        if head == "variable":
            return self._variable(modifiers, expr, list_name, content, line)

        if head in ("run_action_list", "call_action_list"):
            target = modifiers.get("name")
            if not target:
                raise RuleParseError(f"{head} requires name=", list_name, content, line)
            return ListCallEntry(
                target=target,
                mode="run" if head == "run_action_list" else "call",
                condition=expr("if"),
                condition_text=modifiers.get("if"),
                line=line,
            )

        if head in SKIPPED_ACTIONS:
            logger.debug("APL line %d: skipping utility action %s", line, head)
            return None

        condition = expr("if")
        line_cd = 0.0
        if "line_cd" in modifiers:
            try:
                line_cd = float(modifiers["line_cd"])
            except ValueError:
                raise RuleParseError("line_cd must be a number", list_name, content, line)

        known = head in self.resolver.abilities
        if not known:
            warnings.append(f"line {line}: unknown ability '{head}' in list '{list_name}' never fires")

        extra = {k: v for k, v in modifiers.items() if k not in ("if",)}
        return ActionEntry(
            ability=head,
            condition=condition,
            condition_text=modifiers.get("if"),
            line=line,
            line_cd=line_cd,
            modifiers=extra,
            known=known,
        )

    def _variable(self, modifiers, expr, list_name: str, content: str, line: int) -> VariableEntry:
        name = modifiers.get("name")
        if not name:
            raise RuleParseError("variable requires name=", list_name, content, line)
        op = modifiers.get("op", "set")
        if op not in VARIABLE_OPS:
            raise RuleParseError(f"unknown variable op '{op}'", list_name, content, line)

        value = expr("value")
        if op not in ("reset",) and value is None:
            raise RuleParseError(f"variable op '{op}' requires value=", list_name, content, line)
        setif_condition = expr("condition")
        value_else = expr("value_else")
        if op == "setif" and (setif_condition is None or value_else is None):
            raise RuleParseError("setif requires condition= and value_else=", list_name, content, line)

        default = 0.0
        if "default" in modifiers:
            try:
                default = float(modifiers["default"])
            except ValueError:
                raise RuleParseError("default must be a number", list_name, content, line)

        return VariableEntry(
            name=name,
            op=op,
            value=value,
            value_text=modifiers.get("value"),
            value_else=value_else,
            value_else_text=modifiers.get("value_else"),
            setif_condition=setif_condition,
            setif_condition_text=modifiers.get("condition"),
            condition=expr("if"),
            condition_text=modifiers.get("if"),
            default=default,
            line=line,
        )

    def _validate_references(self, lists: dict[str, ActionList]):
        """Every list reference must exist and the reference graph must be acyclic."""
        edges: dict[str, list[ListCallEntry]] = {}
        for action_list in lists.values():
            calls = [e for e in action_list.entries if isinstance(e, ListCallEntry)]
            for call in calls:
                if call.target not in lists:
                    raise RuleParseError(
                        f"reference to unknown action list '{call.target}'",
                        action_list.name, call.to_text(), call.line,
                    )
            edges[action_list.name] = calls

        visiting: set[str] = set()
        done: set[str] = set()

        def visit(name: str):
            visiting.add(name)
            for call in edges[name]:
                if call.target in visiting:
                    raise RuleParseError(
                        f"action list cycle through '{call.target}'",
                        name, call.to_text(), call.line,
                    )
                if call.target not in done:
                    visit(call.target)
            visiting.discard(name)
            done.add(name)

        for name in lists:
            if name not in done:
                visit(name)


def parse(text: str, resolver: FieldResolver) -> RuleSet:
    """Parse APL text. Raises RuleParseError on any malformed line."""
    return AplParser(resolver).parse(text)


def parse_apl(text: str, adapter: SpecAdapter) -> RuleSet:
    """Parse APL text against an adapter's field table."""
    from .resolver import FieldResolver
    return parse(text, FieldResolver(adapter))
