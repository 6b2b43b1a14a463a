"""
Ready-made predicates over the objects' observed state.

A predicate is a pure function of the latest observed body; the awaiter
evaluates it on every observed change of the object. The predicates
can be combined with `all_of` and `any_of`.
"""
from typing import Any, Callable, Optional

from korral.structs import bodies, dicts

ConditionPredicate = Callable[[bodies.Body], bool]


def find_condition(body: bodies.Body, type: str) -> Optional[bodies.RawCondition]:
    for condition in body.conditions:
        if isinstance(condition, dict) and condition.get('type') == type:
            return condition
    return None


def condition_is_true(type: str) -> ConditionPredicate:
    def predicate(body: bodies.Body) -> bool:
        condition = find_condition(body, type)
        return condition is not None and condition.get('status') == 'True'
    predicate.__qualname__ = f'condition_is_true({type!r})'
    return predicate


def condition_is_false(type: str) -> ConditionPredicate:
    def predicate(body: bodies.Body) -> bool:
        condition = find_condition(body, type)
        return condition is not None and condition.get('status') == 'False'
    predicate.__qualname__ = f'condition_is_false({type!r})'
    return predicate


def condition_observed(type: str) -> ConditionPredicate:
    """
    The condition is set by the reconciler for the latest generation of the spec.
    """
    def predicate(body: bodies.Body) -> bool:
        condition = find_condition(body, type)
        generation = body.meta.generation
        return (condition is not None and generation is not None and
                condition.get('observedGeneration') == generation)
    predicate.__qualname__ = f'condition_observed({type!r})'
    return predicate


def generation_observed() -> ConditionPredicate:
    """
    The reconciler has seen the latest generation of the spec.
    """
    def predicate(body: bodies.Body) -> bool:
        generation = body.meta.generation
        return generation is not None and body.status.observed_generation == generation
    predicate.__qualname__ = 'generation_observed()'
    return predicate


def field_equals(desired: dicts.FieldSpec, actual: dicts.FieldSpec) -> ConditionPredicate:
    """
    The actual state equals the desired state, e.g. ``spec.state`` & ``status.actualState``.
    """
    def predicate(body: bodies.Body) -> bool:
        missing: Any = object()
        desired_value = dicts.resolve(body, desired, missing)
        actual_value = dicts.resolve(body, actual, missing)
        return desired_value is not missing and desired_value == actual_value
    predicate.__qualname__ = f'field_equals({desired!r}, {actual!r})'
    return predicate


def all_of(*predicates: ConditionPredicate) -> ConditionPredicate:
    def predicate(body: bodies.Body) -> bool:
        return all(fn(body) for fn in predicates)
    predicate.__qualname__ = f'all_of({", ".join(fn.__qualname__ for fn in predicates)})'
    return predicate


def any_of(*predicates: ConditionPredicate) -> ConditionPredicate:
    def predicate(body: bodies.Body) -> bool:
        return any(fn(body) for fn in predicates)
    predicate.__qualname__ = f'any_of({", ".join(fn.__qualname__ for fn in predicates)})'
    return predicate
