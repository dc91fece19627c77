"""Exception hierarchy for the scenario executor."""

from __future__ import annotations


class ScenarioExecutorError(Exception):
    """Base class for errors raised by the engine itself."""


class InvalidPatternError(ScenarioExecutorError, ValueError):
    """A user-authored step pattern has a regex that does not compile."""

    def __init__(self, pattern: str, reason: str) -> None:
        super().__init__(f"Invalid step pattern {pattern!r}: {reason}")
        self.pattern = pattern
        self.reason = reason


class PatternNotFoundError(ScenarioExecutorError, KeyError):
    """No custom pattern is registered under the given id."""

    def __str__(self) -> str:
        return f"Step pattern not found: {self.args[0]}"


class BehaviorResolutionError(ScenarioExecutorError):
    """A ``module:function`` behavior reference could not be imported."""


class RunStateError(ScenarioExecutorError, RuntimeError):
    """A run was driven out of order, e.g. a step added after it was sealed."""


class ScenarioFileError(ScenarioExecutorError, ValueError):
    """A scenario or pattern file could not be loaded."""


class TransportError(ScenarioExecutorError):
    """The HTTP transport failed before any response was received."""
