"""
Errors raised by the analysis engine.

The engine raises; the service and API layers translate these into
structured error responses.
"""

from __future__ import annotations


class AplgapError(Exception):
    """Base class for all engine errors."""


class RuleParseError(AplgapError):
    """
    Raised when APL text cannot be parsed.

    Always fatal for the run: a partially parsed rule set is never executed.
    """

    def __init__(
        self,
        reason: str,
        list_name: str | None = None,
        entry: str | None = None,
        line: int | None = None,
    ):
        self.reason = reason
        self.list_name = list_name
        self.entry = entry
        self.line = line
        super().__init__(self._format())

    def _format(self) -> str:
        location = []
        if self.line is not None:
            location.append(f"line {self.line}")
        if self.list_name:
            location.append(f"list '{self.list_name}'")
        if self.entry:
            location.append(f"entry '{self.entry}'")
        if not location:
            return self.reason
        return f"{', '.join(location)}: {self.reason}"


class IllegalAbilityError(AplgapError):
    """Raised when an ability is applied while not available."""

    def __init__(self, ability_id: str, time: float, available: list[str]):
        self.ability_id = ability_id
        self.time = time
        self.available = available
        super().__init__(
            f"Ability '{ability_id}' is not available at t={time:.3f} "
            f"(available: {', '.join(available) or 'none'})"
        )


class InvariantViolation(AplgapError):
    """Raised when a transition leaves the combat state inconsistent."""

    def __init__(self, context: str, problems: list[str]):
        self.context = context
        self.problems = problems
        super().__init__(f"State invariant violated after {context}: {'; '.join(problems)}")


class UnknownSpecError(AplgapError):
    """Raised when no adapter is registered for a spec id."""

    def __init__(self, spec_id: str, known: list[str]):
        self.spec_id = spec_id
        self.known = known
        super().__init__(f"Unknown spec '{spec_id}' (known: {', '.join(known)})")
