"""Field and option model.

Covers everything that reshapes a form's fields without touching storage:

- creating fields with type-specific default text
- ordering fields and options
- reconciling submitted option tokens with a field's existing options
- parsing builder field-update keys into ``FieldUpdateTarget`` values and
  applying a batch of updates to a form's fields

Builder requests address field attributes with keys of the form
``[<field uuid>]<attribute>`` or ``[<field uuid>][<group>]<attribute>``, e.g.
``[2ad1591d-c852-47b5-a16d-0b90892421c8][logic]target_field_id``.
"""

import logging
import random
import re
import uuid
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from frm.errors import InvalidStateError
from frm.models import FieldLogic, Form, FormField, FormFields, Option
from frm.types import (
    FieldLogicComparator,
    FieldLogicTriggerAction,
    FormFieldDataType,
    FormFieldType,
    OptionOrder,
)

logger = logging.getLogger(__name__)

# (label, placeholder) for each field type
DEFAULT_FIELD_TEXT: Dict[FormFieldType, Tuple[str, str]] = {
    FormFieldType.TEXT_SINGLE: ("New text field", "Write some text"),
    FormFieldType.TEXT_MULTIPLE: ("New multi-line text field", "Write some text"),
    FormFieldType.SINGLE_SELECT: ("New select field", "Choose an item"),
    FormFieldType.MULTI_SELECT: ("New multi select field", "Choose items"),
    FormFieldType.SINGLE_CHOICE: ("New single choice field", ""),
    FormFieldType.SINGLE_CHOICE_SPACED: ("New single choice field (spaced)", ""),
}

FIELD_GROUP_LOGIC = "logic"
CHECKBOX_ON = "on"


def new_field(field_type: FormFieldType, existing: FormFields) -> FormField:
    """Create a field of ``field_type`` placed after the ``existing`` fields."""
    label, placeholder = DEFAULT_FIELD_TEXT[field_type]
    return FormField(
        id=uuid.uuid4(),
        type=field_type,
        order=len(existing) + 1,
        label=label,
        placeholder=placeholder,
    )


def sorted_fields(form: Form) -> List[FormField]:
    """The form's fields in display order. Ties on ``order`` are broken by ID."""
    return sorted(form.fields.values(), key=lambda f: (f.order, str(f.id)))


def reorder_fields(fields: FormFields, ordered_field_ids: Sequence[str]) -> FormFields:
    """Assign ``order = i`` to the field at position ``i`` of ``ordered_field_ids``.

    Fields missing from ``ordered_field_ids`` keep their order.

    Raises:
        InvalidStateError: If an ID does not name one of ``fields``
    """
    updated = dict(fields)
    for order, field_id in enumerate(ordered_field_ids):
        key = str(field_id)
        if key not in updated:
            raise InvalidStateError(
                f"field '{key}' is not on this form",
                details={"field_id": key},
            )
        updated[key] = replace(updated[key], order=order)
    return updated


def reconcile_options(existing: Sequence[Option], submitted: Sequence[str]) -> List[Option]:
    """Turn submitted option tokens into the field's new option list.

    A token that is the ID of an existing option keeps that option, moved to
    the token's position. Any other token becomes a new option labelled with
    the token, whose value is the new option's ID.

    Examples:
        >>> opts = reconcile_options([], ["Red", "Blue"])
        >>> [(o.label, o.order) for o in opts]
        [('Red', 0), ('Blue', 1)]
        >>> opts[0].value == str(opts[0].id)
        True
    """
    by_id = {o.id: o for o in existing}
    options: List[Option] = []
    for position, token in enumerate(submitted):
        option_id = _parse_uuid(token)
        if option_id is not None and option_id in by_id:
            options.append(replace(by_id[option_id], order=position))
            continue
        new_id = uuid.uuid4()
        options.append(Option(id=new_id, value=str(new_id), label=token, order=position))
    return options


def sorted_options(field: FormField, rng: Optional[random.Random] = None) -> List[Option]:
    """A copy of the field's options arranged per its ``option_order``.

    ``natural`` sorts by each option's ``order``. ``random`` returns a fresh
    permutation on every call; nothing about it is stored.
    """
    options = list(field.options)
    if field.option_order == OptionOrder.RANDOM:
        (rng or random).shuffle(options)
        return options
    return sorted(options, key=lambda o: o.order)


def _parse_uuid(token: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(token)
    except (TypeError, ValueError):
        return None


class FieldAttribute(str, Enum):
    """Field attributes addressable by builder update keys."""
    REQUIRED = "required"
    HIDDEN = "hidden"
    LABEL = "label"
    PLACEHOLDER = "placeholder"
    OPTIONS = "options"
    OPTION_LABELS = "option_labels"
    OPTION_ORDERING = "option_ordering"
    DATA_TYPE = "data_type"
    # logic group
    TARGET_FIELD_ID = "target_field_id"
    TRIGGER_VALUES = "trigger_values"
    COMPARATOR = "comparator"
    ACTIONS = "actions"


LOGIC_ATTRIBUTES = frozenset({
    FieldAttribute.TARGET_FIELD_ID,
    FieldAttribute.TRIGGER_VALUES,
    FieldAttribute.COMPARATOR,
    FieldAttribute.ACTIONS,
})

FIELD_KEY_PATTERN = re.compile(
    r"^\[([a-fA-F0-9]{8}-[a-fA-F0-9]{4}-4[a-fA-F0-9]{3}-[89aAbB][a-fA-F0-9]{3}-[a-fA-F0-9]{12})\]"
    r"(?:\[([^\]]+)\])?"
    r"(.+)$"
)


@dataclass(frozen=True)
class FieldUpdateTarget:
    """The field, group and attribute addressed by one builder update key."""
    field_id: uuid.UUID
    group: Optional[str]
    attribute: FieldAttribute


def parse_field_update_target(key: str) -> FieldUpdateTarget:
    """Parse a builder update key.

    Raises:
        ValueError: If the key does not follow the naming convention, names an
            unknown attribute, or puts an attribute in the wrong group

    Examples:
        >>> t = parse_field_update_target("[2ad1591d-c852-47b5-a16d-0b90892421c8][logic]actions")
        >>> t.group, t.attribute.value
        ('logic', 'actions')
    """
    match = FIELD_KEY_PATTERN.match(key)
    if match is None:
        raise ValueError(f"'{key}' does not follow the field naming convention")
    field_id, group, name = match.groups()
    attribute = FieldAttribute(name)
    in_logic_group = group == FIELD_GROUP_LOGIC
    if group is not None and not in_logic_group:
        raise ValueError(f"unknown field group '{group}' in '{key}'")
    if in_logic_group != (attribute in LOGIC_ATTRIBUTES):
        raise ValueError(f"attribute '{name}' is not valid in group '{group}'")
    return FieldUpdateTarget(field_id=uuid.UUID(field_id), group=group, attribute=attribute)


@dataclass
class _LogicParts:
    target_field_id: Optional[uuid.UUID] = None
    comparator: FieldLogicComparator = FieldLogicComparator.EQUAL
    trigger_values: Tuple[str, ...] = ()
    actions: Tuple[FieldLogicTriggerAction, ...] = ()

    def build(self) -> Optional[FieldLogic]:
        return FieldLogic.configure(
            self.target_field_id, self.comparator, self.trigger_values, self.actions
        )


def _checked(values: Sequence[str]) -> bool:
    return CHECKBOX_ON in values


def _first(values: Sequence[str]) -> str:
    return values[0] if values else ""


def _apply(field: FormField, logic: _LogicParts, existing: FormField,
           target: FieldUpdateTarget, values: Sequence[str]) -> None:
    attribute = target.attribute
    if attribute == FieldAttribute.REQUIRED:
        field.required = _checked(values)
    elif attribute == FieldAttribute.HIDDEN:
        field.hidden = _checked(values)
    elif attribute == FieldAttribute.LABEL:
        field.label = _first(values)
    elif attribute == FieldAttribute.PLACEHOLDER:
        field.placeholder = _first(values)
    elif attribute == FieldAttribute.OPTIONS:
        field.options = reconcile_options(existing.options, values)
    elif attribute == FieldAttribute.OPTION_LABELS:
        field.option_labels = list(values)
    elif attribute == FieldAttribute.OPTION_ORDERING:
        try:
            field.option_order = OptionOrder(_first(values))
        except ValueError:
            field.option_order = OptionOrder.NATURAL
    elif attribute == FieldAttribute.DATA_TYPE:
        try:
            field.data_type = FormFieldDataType(_first(values))
        except ValueError:
            logger.warning("ignoring unknown data type %r for field %s", _first(values), field.id)
    elif attribute == FieldAttribute.TARGET_FIELD_ID:
        logic.target_field_id = _parse_uuid(_first(values))
    elif attribute == FieldAttribute.TRIGGER_VALUES:
        logic.trigger_values = tuple(values)
    elif attribute == FieldAttribute.COMPARATOR:
        try:
            logic.comparator = FieldLogicComparator(_first(values))
        except ValueError:
            logic.comparator = FieldLogicComparator.EQUAL
    elif attribute == FieldAttribute.ACTIONS:
        actions = []
        for value in values:
            try:
                actions.append(FieldLogicTriggerAction(value))
            except ValueError:
                continue
        logic.actions = tuple(actions)


def apply_field_updates(fields: FormFields, values: Mapping[str, Sequence[str]]) -> FormFields:
    """Rebuild a form's fields from a full builder update request.

    Every field addressed by at least one key is rebuilt from the request,
    keeping only its ``order``, ``type`` and ``data_type`` from ``fields``.
    Fields addressed by no key are dropped. Logic is stored only when the
    submitted logic group makes up a fully configured rule.

    Raises:
        InvalidStateError: If a key addresses a field that is not in ``fields``
    """
    rebuilt: Dict[str, FormField] = {}
    logic_parts: Dict[str, _LogicParts] = {}

    for key, submitted in values.items():
        try:
            target = parse_field_update_target(key)
        except ValueError as e:
            logger.warning("skipping field update key %r: %s", key, e)
            continue

        field_key = str(target.field_id)
        existing = fields.get(field_key)
        if existing is None:
            raise InvalidStateError(
                f"field '{field_key}' is not on this form",
                details={"field_id": field_key},
            )
        if field_key not in rebuilt:
            rebuilt[field_key] = FormField(
                id=existing.id,
                type=existing.type,
                order=existing.order,
                data_type=existing.data_type,
            )
            logic_parts[field_key] = _LogicParts()

        _apply(rebuilt[field_key], logic_parts[field_key], existing, target, list(submitted))

    for field_key, parts in logic_parts.items():
        rebuilt[field_key].logic = parts.build()
    return rebuilt


__all__ = [
    "DEFAULT_FIELD_TEXT",
    "FIELD_GROUP_LOGIC",
    "new_field",
    "sorted_fields",
    "reorder_fields",
    "reconcile_options",
    "sorted_options",
    "FieldAttribute",
    "FieldUpdateTarget",
    "parse_field_update_target",
    "apply_field_updates",
]
