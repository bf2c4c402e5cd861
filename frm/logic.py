"""Field logic evaluation.

``evaluate`` is a pure function deciding whether a configured rule fires for
the target field's current values. ``effective_state`` turns a field's stored
flags plus its rule into the visibility/required decision for one render or
validation pass; stored flags are never modified.

Usage:
    >>> import uuid
    >>> from frm.models import FieldLogic
    >>> rule = FieldLogic.configure(uuid.uuid4(), "equal", ["x"], ["show"])
    >>> evaluate(rule, ["x"])
    True
    >>> rule = FieldLogic.configure(uuid.uuid4(), "not", ["x"], ["show"])
    >>> evaluate(rule, ["x"])
    False
"""

from dataclasses import dataclass
from typing import Dict, Mapping, Sequence

from frm.models import FieldLogic, Form, FormField
from frm.types import FieldLogicComparator, FieldLogicTriggerAction


def evaluate(rule: FieldLogic, current_values: Sequence[str]) -> bool:
    """Evaluate ``rule`` against the target field's current values.

    - ``equal``: any current value equals any trigger value
    - ``contains``: any current value contains any trigger value as a substring
    - ``not``: the negation of ``equal``
    """
    if rule.comparator == FieldLogicComparator.EQUAL:
        return _any_equal(rule.trigger_values, current_values)
    if rule.comparator == FieldLogicComparator.CONTAINS:
        return any(
            trigger in value
            for value in current_values
            for trigger in rule.trigger_values
        )
    if rule.comparator == FieldLogicComparator.NOT:
        return not _any_equal(rule.trigger_values, current_values)
    raise ValueError(f"unknown comparator: {rule.comparator!r}")


def _any_equal(trigger_values: Sequence[str], current_values: Sequence[str]) -> bool:
    triggers = set(trigger_values)
    return any(value in triggers for value in current_values)


@dataclass(frozen=True)
class FieldState:
    """Effective visibility and required-ness of a field for one pass."""
    visible: bool
    required: bool


def effective_state(field: FormField, submitted: Mapping[str, Sequence[str]]) -> FieldState:
    """Compute a field's effective state given the values submitted to the form.

    The stored flags are the baseline. With logic, a ``show`` action makes the
    field visible only while the rule holds, and a ``require`` action adds a
    requirement while the rule holds. The stored ``required`` flag is only
    waived when a ``show`` rule is configured and does not hold.
    """
    visible = not field.hidden
    required = field.required
    rule = field.logic
    if rule is not None:
        fired = evaluate(rule, submitted.get(str(rule.target_field_id), ()))
        if rule.has_action(FieldLogicTriggerAction.REQUIRE) and fired:
            required = True
        if rule.has_action(FieldLogicTriggerAction.SHOW):
            visible = fired
            if not fired:
                required = False
    return FieldState(visible=visible, required=required)


def effective_states(form: Form, submitted: Mapping[str, Sequence[str]]) -> Dict[str, FieldState]:
    """Effective state of every field on ``form``, keyed by field ID."""
    return {key: effective_state(f, submitted) for key, f in form.fields.items()}


__all__ = [
    "evaluate",
    "FieldState",
    "effective_state",
    "effective_states",
]
