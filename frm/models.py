"""Record types for frm: forms, fields, options, field logic, submissions and short codes.

Every record converts to and from the JSON shape it is persisted in
(``to_dict`` / ``from_dict``). Loading validates the incoming dict against the
schemas in ``frm.schemas`` first.

``FieldLogic`` is only ever constructed fully configured. Anything less is
represented as ``None`` on ``FormField.logic``, which serializes as ``null``.
"""

import copy
import json
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from dateutil import parser as dateparser
from jsonschema import Draft7Validator
from jsonschema.exceptions import best_match

from frm.errors import PersistenceError
from frm.schemas import (
    FORM_FIELD_VALIDATOR,
    FORM_SUBMISSION_VALIDATOR,
    FORM_VALIDATOR,
    SHORT_CODE_VALIDATOR,
)
from frm.types import (
    FieldLogicComparator,
    FieldLogicTriggerAction,
    FormFieldDataType,
    FormFieldType,
    FormStatus,
    OptionOrder,
    SubmissionStatus,
)

NIL_UUID = uuid.UUID(int=0)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_ts(ts: Optional[datetime]) -> Optional[str]:
    return ts.isoformat() if ts is not None else None


def parse_ts(value: Optional[Union[str, datetime]]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp, assuming UTC when no offset is present."""
    if value is None:
        return None
    ts = value if isinstance(value, datetime) else dateparser.isoparse(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _check(validator: Draft7Validator, data: Any, entity: str) -> None:
    error = best_match(validator.iter_errors(data))
    if error is not None:
        path = ".".join(str(p) for p in error.absolute_path) or "<root>"
        raise PersistenceError(
            f"malformed {entity} record at '{path}': {error.message}",
            details={"entity": entity, "path": path},
        )


def _parse_uuid(value: Any) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class Option:
    """A select/choice alternative.

    ``selected`` and ``disabled`` are render-time flags and are never persisted.
    """
    id: uuid.UUID
    value: str
    label: str
    order: int = 0
    selected: bool = field(default=False, compare=False)
    disabled: bool = field(default=False, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "value": self.value,
            "label": self.label,
            "order": self.order,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Option":
        return cls(
            id=uuid.UUID(data["id"]),
            value=data["value"],
            label=data["label"],
            order=data.get("order", 0),
        )


def logic_is_configured(
    target_field_id: Optional[uuid.UUID],
    trigger_values: Sequence[str],
    actions: Sequence[Any],
) -> bool:
    """Whether the given parts make up a fully configured logic rule."""
    return (
        target_field_id is not None
        and target_field_id != NIL_UUID
        and len(trigger_values) > 0
        and trigger_values[0] != ""
        and len(actions) > 0
    )


@dataclass(frozen=True)
class FieldLogic:
    """A conditional show/require rule attached to a field.

    The rule watches the target field's submitted values; when the comparator
    matches one of ``trigger_values``, every action in ``actions`` applies to
    the field that owns the rule.

    Instances are always fully configured: use ``FieldLogic.configure`` when
    the parts may be incomplete, which returns ``None`` instead of raising.

    Attributes:
        target_field_id: ID of the field whose value is watched
        comparator: How target values are compared with trigger values
        trigger_values: Values the target field's values are compared with
        actions: Actions to apply when the comparison is true

    Examples:
        >>> target = uuid.uuid4()
        >>> FieldLogic.configure(target, FieldLogicComparator.EQUAL, ["yes"], ["show"]) is not None
        True
        >>> FieldLogic.configure(target, FieldLogicComparator.EQUAL, [], ["show"]) is None
        True
    """
    target_field_id: uuid.UUID
    comparator: FieldLogicComparator
    trigger_values: Tuple[str, ...]
    actions: Tuple[FieldLogicTriggerAction, ...]

    def __post_init__(self):
        """Normalize sequences and enums, and reject unconfigured rules."""
        object.__setattr__(self, "trigger_values", tuple(self.trigger_values))
        object.__setattr__(
            self, "actions", tuple(FieldLogicTriggerAction(a) for a in self.actions)
        )
        if isinstance(self.comparator, str):
            object.__setattr__(self, "comparator", FieldLogicComparator(self.comparator))
        if not logic_is_configured(self.target_field_id, self.trigger_values, self.actions):
            raise ValueError(
                "field logic requires a target field, at least one non-empty trigger value "
                "and at least one action"
            )

    @classmethod
    def configure(
        cls,
        target_field_id: Optional[uuid.UUID],
        comparator: Union[FieldLogicComparator, str] = FieldLogicComparator.EQUAL,
        trigger_values: Iterable[str] = (),
        actions: Iterable[Union[FieldLogicTriggerAction, str]] = (),
    ) -> Optional["FieldLogic"]:
        """Build a rule from possibly incomplete parts; ``None`` when not fully configured."""
        values = tuple(trigger_values or ())
        acts = tuple(FieldLogicTriggerAction(a) for a in (actions or ()))
        if not logic_is_configured(target_field_id, values, acts):
            return None
        return cls(
            target_field_id=target_field_id,
            comparator=FieldLogicComparator(comparator),
            trigger_values=values,
            actions=acts,
        )

    def has_action(self, action: FieldLogicTriggerAction) -> bool:
        return action in self.actions

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target_field_id": str(self.target_field_id),
            "field_comparator": self.comparator.value,
            "trigger_values": list(self.trigger_values),
            "actions": [a.value for a in self.actions],
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["FieldLogic"]:
        """Load a rule, returning ``None`` for null or incomplete logic."""
        if not data:
            return None
        return cls.configure(
            target_field_id=_parse_uuid(data.get("target_field_id")),
            comparator=data.get("field_comparator") or FieldLogicComparator.EQUAL,
            trigger_values=data.get("trigger_values") or (),
            actions=data.get("actions") or (),
        )


@dataclass
class FormField:
    """A field on a form.

    ``order`` determines display sequence; ``fields`` maps on ``Form`` are keyed
    by the field ID's string form and their insertion order is irrelevant.
    """
    id: uuid.UUID
    type: FormFieldType = FormFieldType.TEXT_SINGLE
    order: int = 0
    label: str = ""
    placeholder: str = ""
    logic: Optional[FieldLogic] = None
    options: List[Option] = field(default_factory=list)
    option_labels: List[str] = field(default_factory=list)
    option_order: OptionOrder = OptionOrder.NATURAL
    required: bool = False
    hidden: bool = False
    data_type: FormFieldDataType = FormFieldDataType.TEXT

    @property
    def key(self) -> str:
        return str(self.id)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the persisted JSON shape. Unconfigured logic is ``null``."""
        return {
            "id": str(self.id),
            "order": self.order,
            "label": self.label,
            "logic": self.logic.to_dict() if self.logic is not None else None,
            "options": [o.to_dict() for o in self.options],
            "option_labels": list(self.option_labels),
            "option_order": self.option_order.value,
            "placeholder": self.placeholder,
            "required": self.required,
            "hidden": self.hidden,
            "type": self.type.value,
            "data_type": self.data_type.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], validate: bool = True) -> "FormField":
        if validate:
            _check(FORM_FIELD_VALIDATOR, data, "form field")
        return cls(
            id=uuid.UUID(data["id"]),
            type=FormFieldType(data["type"]),
            order=data["order"],
            label=data.get("label", ""),
            placeholder=data.get("placeholder", ""),
            logic=FieldLogic.from_dict(data.get("logic")),
            options=[Option.from_dict(o) for o in data.get("options") or []],
            option_labels=list(data.get("option_labels") or []),
            option_order=OptionOrder(data.get("option_order", OptionOrder.NATURAL.value)),
            required=data.get("required", False),
            hidden=data.get("hidden", False),
            data_type=FormFieldDataType(data.get("data_type", FormFieldDataType.TEXT.value)),
        )


FormFields = Dict[str, FormField]


@dataclass
class Form:
    """A form, either a mutable draft or a published version.

    A draft either has no ``parent_form_id`` (a fresh form or a clone) or
    references the published form it was derived from.
    """
    workspace_id: str
    name: str
    fields: FormFields = field(default_factory=dict)
    status: FormStatus = FormStatus.DRAFT
    id: Optional[int] = None
    parent_form_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_draft(self) -> bool:
        return self.status == FormStatus.DRAFT

    def copy(self) -> "Form":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "parent_form_id": self.parent_form_id,
            "workspace_id": self.workspace_id,
            "name": self.name,
            "fields": {key: f.to_dict() for key, f in self.fields.items()},
            "status": self.status.value,
            "created_at": format_ts(self.created_at),
            "updated_at": format_ts(self.updated_at),
        }

    def json(self) -> str:
        """The form's JSON representation."""
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Form":
        _check(FORM_VALIDATOR, data, "form")
        return cls(
            id=data.get("id"),
            parent_form_id=data.get("parent_form_id"),
            workspace_id=data["workspace_id"],
            name=data["name"],
            fields={
                key: FormField.from_dict(value, validate=False)
                for key, value in data["fields"].items()
            },
            status=FormStatus(data["status"]),
            created_at=parse_ts(data.get("created_at")),
            updated_at=parse_ts(data.get("updated_at")),
        )


@dataclass
class FormFieldSubmission:
    """Values submitted to one field, with a snapshot of the field's shape at submission time."""
    form_field_id: uuid.UUID
    value: List[str]
    order: int = 0
    required: bool = False
    hidden: bool = False
    type: FormFieldType = FormFieldType.TEXT_SINGLE
    data_type: FormFieldDataType = FormFieldDataType.TEXT
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    @classmethod
    def snapshot(cls, form_field: FormField, value: Sequence[str]) -> "FormFieldSubmission":
        return cls(
            form_field_id=form_field.id,
            value=list(value),
            order=form_field.order,
            required=form_field.required,
            hidden=form_field.hidden,
            type=form_field.type,
            data_type=form_field.data_type,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "form_field_id": str(self.form_field_id),
            "order": self.order,
            "required": self.required,
            "hidden": self.hidden,
            "type": self.type.value,
            "data_type": self.data_type.value,
            "value": list(self.value),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FormFieldSubmission":
        return cls(
            id=uuid.UUID(data["id"]),
            form_field_id=uuid.UUID(data["form_field_id"]),
            value=list(data["value"]),
            order=data.get("order", 0),
            required=data.get("required", False),
            hidden=data.get("hidden", False),
            type=FormFieldType(data.get("type", FormFieldType.TEXT_SINGLE.value)),
            data_type=FormFieldDataType(data.get("data_type", FormFieldDataType.TEXT.value)),
        )


@dataclass
class FormSubmission:
    """A submission to a published form, optionally attributed to a subject."""
    form_id: int
    workspace_id: str
    fields: Dict[str, FormFieldSubmission] = field(default_factory=dict)
    status: SubmissionStatus = SubmissionStatus.PARTIAL
    subject_id: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "form_id": self.form_id,
            "workspace_id": self.workspace_id,
            "subject_id": self.subject_id,
            "status": self.status.value,
            "fields": {key: f.to_dict() for key, f in self.fields.items()},
            "created_at": format_ts(self.created_at),
            "updated_at": format_ts(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FormSubmission":
        _check(FORM_SUBMISSION_VALIDATOR, data, "form submission")
        return cls(
            id=data.get("id"),
            form_id=data["form_id"],
            workspace_id=data["workspace_id"],
            subject_id=data.get("subject_id"),
            status=SubmissionStatus(data["status"]),
            fields={
                key: FormFieldSubmission.from_dict(value)
                for key, value in data["fields"].items()
            },
            created_at=parse_ts(data.get("created_at")),
            updated_at=parse_ts(data.get("updated_at")),
        )


@dataclass(frozen=True)
class ShortCode:
    """A compact code attributing submissions to ``subject_id`` for one form."""
    code: str
    workspace_id: str
    form_id: int
    subject_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "workspace_id": self.workspace_id,
            "form_id": self.form_id,
            "subject_id": self.subject_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ShortCode":
        _check(SHORT_CODE_VALIDATOR, data, "short code")
        return cls(
            code=data["code"],
            workspace_id=data["workspace_id"],
            form_id=data["form_id"],
            subject_id=data["subject_id"],
        )


def touch(form: Form, now: Optional[datetime] = None) -> Form:
    """Return a copy of ``form`` with ``updated_at`` (and, for new records, ``created_at``) set."""
    now = now or utcnow()
    return replace(form, created_at=form.created_at or now, updated_at=now)


__all__ = [
    "NIL_UUID",
    "Option",
    "FieldLogic",
    "logic_is_configured",
    "FormField",
    "FormFields",
    "Form",
    "FormFieldSubmission",
    "FormSubmission",
    "ShortCode",
    "utcnow",
    "parse_ts",
    "format_ts",
    "touch",
]
