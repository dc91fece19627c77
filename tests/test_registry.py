from __future__ import annotations

import pytest

from scenario_executor.behaviors import default_patterns
from scenario_executor.errors import BehaviorResolutionError, InvalidPatternError, PatternNotFoundError
from scenario_executor.models import StepPattern, StepType
from scenario_executor.registry import PatternRegistry


def _noop(*_args):
    return []


def test_builtins_listed_first_with_unique_ids(registry: PatternRegistry) -> None:
    custom = registry.add(step_type="Then", pattern="^custom$", description="Custom", behavior=_noop)
    patterns = registry.list_patterns()
    builtins = default_patterns()

    assert patterns[: len(builtins)] == list(builtins)
    assert patterns[-1] == custom
    assert len({p.id for p in patterns}) == len(patterns)
    assert all(p.is_builtin for p in builtins)
    assert custom.is_builtin is False


def test_builtin_patterns_cannot_be_updated_or_removed(registry: PatternRegistry) -> None:
    before = registry.list_patterns()
    for pattern in before:
        assert registry.update(pattern.id, description="changed") is None
        registry.remove(pattern.id)
    assert registry.list_patterns() == before


def test_add_assigns_fresh_ids_and_preserves_insertion_order(registry: PatternRegistry) -> None:
    first = registry.add(step_type=StepType.GIVEN, pattern="^one$", description="One", behavior=_noop)
    second = registry.add(step_type=StepType.GIVEN, pattern="^two$", description="Two", behavior="pkg.mod:func")

    assert first.id != second.id
    customs = [p for p in registry.list_patterns() if not p.is_builtin]
    assert customs == [first, second]
    assert second.behavior_ref == "pkg.mod:func"


def test_add_rejects_invalid_regex_and_behavior_reference(registry: PatternRegistry) -> None:
    with pytest.raises(InvalidPatternError):
        registry.add(step_type="Then", pattern="^broken (group$", description="Bad", behavior=_noop)
    with pytest.raises(BehaviorResolutionError):
        registry.add(step_type="Then", pattern="^ok$", description="Bad ref", behavior="no_colon_here")
    assert all(p.is_builtin for p in registry.list_patterns())


def test_update_and_remove_custom_pattern(registry: PatternRegistry) -> None:
    custom = registry.add(step_type="When", pattern="^do it$", description="Do", behavior=_noop)

    updated = registry.update(custom.id, description="Do it now", pattern="^do it now$")
    assert updated is not None
    assert updated.id == custom.id
    assert registry.get(custom.id).description == "Do it now"
    assert registry.find_match(StepType.WHEN, "do it now") == updated
    assert registry.find_match(StepType.WHEN, "do it") is None

    with pytest.raises(InvalidPatternError):
        registry.update(custom.id, pattern="(")
    with pytest.raises(PatternNotFoundError):
        registry.update("missing-id", description="x")

    registry.remove(custom.id)
    with pytest.raises(PatternNotFoundError):
        registry.get(custom.id)


def test_reset_to_defaults_keeps_customs_unless_asked(registry: PatternRegistry) -> None:
    custom = registry.add(step_type="Then", pattern="^kept$", description="Kept", behavior=_noop)

    registry.reset_to_defaults()
    assert registry.list_patterns() == list(default_patterns()) + [custom]

    registry.reset_to_defaults(keep_custom=False)
    assert registry.list_patterns() == list(default_patterns())


def test_find_match_is_case_insensitive_anchored_and_type_restricted(registry: PatternRegistry) -> None:
    match = registry.find_match(StepType.GIVEN, 'THE api ENDPOINT "https://x/y"')
    assert match is not None and match.id == "endpoint-setup"

    assert registry.find_match(StepType.GIVEN, 'the API endpoint "https://x/y" please') is None
    assert registry.find_match(StepType.GIVEN, 'say the API endpoint "https://x/y"') is None
    assert registry.find_match(StepType.THEN, 'the API endpoint "https://x/y"') is None


def test_find_match_is_idempotent(registry: PatternRegistry) -> None:
    ids = {registry.find_match(StepType.THEN, "status should be 200").id for _ in range(5)}
    assert ids == {"status-check"}


def test_specific_path_checks_win_over_generic_path_check(registry: PatternRegistry) -> None:
    assert registry.find_match(StepType.THEN, 'path "data" should be an object').id == "path-object-check"
    assert registry.find_match(StepType.THEN, 'path "items" should be an array').id == "path-array-check"
    assert registry.find_match(StepType.THEN, 'path "id" should be "7"').id == "path-value-check"
    assert registry.find_match(StepType.THEN, 'path "id" should be 7').id == "path-check"


def test_and_steps_widen_to_previous_type_then_everything(registry: PatternRegistry) -> None:
    own = registry.find_match(StepType.AND, "the response should be successful", StepType.THEN)
    assert own.id == "response-success"

    previous = registry.find_match(StepType.AND, 'header "X-Trace" with value "1"', StepType.GIVEN)
    assert previous.id == "header-setup"

    fallback = registry.find_match(StepType.AND, "status should be 200", StepType.GIVEN)
    assert fallback.id == "status-check"

    assert registry.find_match(StepType.AND, "status should be 200") is not None


def test_and_candidates_put_previous_type_before_other_types(registry: PatternRegistry) -> None:
    candidates = registry.candidates(StepType.AND, StepType.WHEN)
    types = [p.step_type for p in candidates]
    first_other = next(i for i, t in enumerate(types) if t not in (StepType.AND, StepType.WHEN))
    assert all(t in (StepType.AND, StepType.WHEN) for t in types[:first_other])
    assert len(candidates) == len(registry.list_patterns())


def test_malformed_regex_is_treated_as_non_match() -> None:
    broken = StepPattern(id="broken", step_type=StepType.THEN, pattern="(", description="Broken", behavior=_noop)
    working = StepPattern(id="working", step_type=StepType.THEN, pattern="^(.*)$", description="Any", behavior=_noop)
    registry = PatternRegistry(builtins=[broken, working])

    assert registry.find_match(StepType.THEN, "anything").id == "working"
