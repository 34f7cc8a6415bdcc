"""metabolism/errors.py — Error hierarchy for the metabolic engine.

Structural and commit errors are raised synchronously to the editing
collaborator.  Solver trouble is never raised; it is reported through the
``converged`` flag on the result and a ``NonConvergence`` event.
"""

from __future__ import annotations
from typing import Any, Mapping


class MetabolismError(Exception):
    """Base exception for metabolic engine failures."""

    def __init__(self, message: str, *,
                 user_message: str | None = None,
                 context: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.user_message = message if user_message is None else user_message
        self.context = dict(context) if context else {}

    def log_message(self) -> str:
        if not self.context:
            return str(self)
        return f"{self}: {self.context}"


class InvalidTopology(MetabolismError):
    """Graph would break an invariant (dangling edge, fraction sum, ...).

    ``problems`` lists every violation found, not just the first.
    """

    def __init__(self, problems: list[str] | str, **kwargs) -> None:
        if isinstance(problems, str):
            problems = [problems]
        self.problems = list(problems)
        message = "; ".join(self.problems) or "invalid topology"
        kwargs.setdefault("user_message",
                          "That change would break the metabolic wiring.")
        super().__init__(message, **kwargs)


class ConcurrentCommitConflict(MetabolismError):
    """Live graph moved on since the draft was taken; retake and redo."""

    def __init__(self, message: str, **kwargs) -> None:
        kwargs.setdefault("user_message",
                          "The metabolism changed while you were editing. "
                          "Reopen the editor and try again.")
        super().__init__(message, **kwargs)


class ConfigError(MetabolismError):
    """Engine configuration is out of range."""


__all__ = [
    "MetabolismError",
    "InvalidTopology",
    "ConcurrentCommitConflict",
    "ConfigError",
]
