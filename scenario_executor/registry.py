"""Process-wide registry of step patterns."""

from __future__ import annotations

import re
import threading
import uuid
from functools import lru_cache
from typing import Any, Iterable, Optional, Union

import structlog

from .behaviors import default_patterns
from .drivers import Behavior, split_reference
from .errors import InvalidPatternError, PatternNotFoundError
from .models import StepPattern, StepType

LOGGER = structlog.get_logger("scenario_executor")

_EDITABLE_FIELDS = {"step_type", "pattern", "description", "behavior"}


@lru_cache(maxsize=512)
def compile_pattern(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern, re.IGNORECASE)


def validate_pattern(pattern: str) -> None:
    try:
        compile_pattern(pattern)
    except re.error as exc:
        raise InvalidPatternError(pattern, str(exc)) from exc


def _validate_behavior(behavior: Union[Behavior, str]) -> None:
    if isinstance(behavior, str):
        split_reference(behavior)
    elif not callable(behavior):
        raise TypeError(f"Behavior must be callable or a 'module:function' string, got {type(behavior).__name__}")


class PatternRegistry:
    """Built-in patterns plus user customs, swapped atomically on every edit.

    Readers always work on a snapshot tuple, so a run never observes a
    half-applied edit.
    """

    def __init__(self, builtins: Optional[Iterable[StepPattern]] = None) -> None:
        self._builtins: tuple[StepPattern, ...] = tuple(builtins if builtins is not None else default_patterns())
        self._builtin_ids = frozenset(pattern.id for pattern in self._builtins)
        self._patterns: tuple[StepPattern, ...] = self._builtins
        self._lock = threading.Lock()

    def list_patterns(self) -> list[StepPattern]:
        """Builtins first, then customs in insertion order."""
        return list(self._patterns)

    def get(self, pattern_id: str) -> StepPattern:
        for pattern in self._patterns:
            if pattern.id == pattern_id:
                return pattern
        raise PatternNotFoundError(pattern_id)

    def is_builtin(self, pattern_id: str) -> bool:
        return pattern_id in self._builtin_ids

    def add(
        self,
        *,
        step_type: Union[StepType, str],
        pattern: str,
        description: str,
        behavior: Union[Behavior, str],
    ) -> StepPattern:
        validate_pattern(pattern)
        _validate_behavior(behavior)
        created = StepPattern(
            id=str(uuid.uuid4()),
            step_type=StepType(step_type),
            pattern=pattern,
            description=description,
            behavior=behavior,
            is_builtin=False,
        )
        with self._lock:
            self._patterns = self._patterns + (created,)
        LOGGER.info("pattern_added", pattern_id=created.id, step_type=created.step_type.value)
        return created

    def update(self, pattern_id: str, **changes: Any) -> Optional[StepPattern]:
        """Apply ``changes`` to a custom pattern; builtins are left untouched."""
        if self.is_builtin(pattern_id):
            LOGGER.warning("builtin_pattern_immutable", pattern_id=pattern_id, operation="update")
            return None
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise TypeError(f"Cannot update pattern fields: {', '.join(sorted(unknown))}")
        if "pattern" in changes:
            validate_pattern(changes["pattern"])
        if "behavior" in changes:
            _validate_behavior(changes["behavior"])

        with self._lock:
            patterns = list(self._patterns)
            for index, existing in enumerate(patterns):
                if existing.id == pattern_id:
                    updated = StepPattern.model_validate({**existing.model_dump(), **changes, "is_builtin": False})
                    patterns[index] = updated
                    self._patterns = tuple(patterns)
                    break
            else:
                raise PatternNotFoundError(pattern_id)
        LOGGER.info("pattern_updated", pattern_id=pattern_id, fields=sorted(changes))
        return updated

    def remove(self, pattern_id: str) -> None:
        if self.is_builtin(pattern_id):
            LOGGER.warning("builtin_pattern_immutable", pattern_id=pattern_id, operation="remove")
            return
        with self._lock:
            self._patterns = tuple(pattern for pattern in self._patterns if pattern.id != pattern_id)
        LOGGER.info("pattern_removed", pattern_id=pattern_id)

    def reset_to_defaults(self, *, keep_custom: bool = True) -> None:
        """Restore the builtin definitions; customs survive unless ``keep_custom`` is False."""
        with self._lock:
            customs = tuple(p for p in self._patterns if p.id not in self._builtin_ids) if keep_custom else ()
            self._patterns = self._builtins + customs
        LOGGER.info("patterns_reset", kept_custom=len(customs))

    def candidates(self, step_type: StepType, previous_type: Optional[StepType] = None) -> list[StepPattern]:
        """Patterns tried for ``step_type``, in lookup order.

        ``And`` steps look at ``And`` patterns, then at the previous step's
        type, then at every other pattern.
        """
        snapshot = self._patterns
        ordered = [p for p in snapshot if p.step_type == step_type]
        if step_type != StepType.AND:
            return ordered
        if previous_type is not None and previous_type != StepType.AND:
            ordered.extend(p for p in snapshot if p.step_type == previous_type)
        seen = {p.id for p in ordered}
        ordered.extend(p for p in snapshot if p.id not in seen)
        return ordered

    def find_match(
        self,
        step_type: Union[StepType, str],
        clean_text: str,
        previous_type: Optional[StepType] = None,
    ) -> Optional[StepPattern]:
        for pattern in self.candidates(StepType(step_type), previous_type):
            if self._matches(pattern, clean_text):
                return pattern
        return None

    @staticmethod
    def _matches(pattern: StepPattern, clean_text: str) -> bool:
        try:
            compiled = compile_pattern(pattern.pattern)
        except re.error as exc:
            LOGGER.warning("pattern_regex_invalid", pattern_id=pattern.id, pattern=pattern.pattern, error=str(exc))
            return False
        return compiled.fullmatch(clean_text) is not None
