"""JSON Schemas for persisted frm records.

Stored forms, submissions and short codes are checked against these schemas
when they are loaded, so a malformed row fails loudly instead of producing a
half-built object. ``FormField.logic`` may be ``null`` or a partial object;
the schema only checks the types of the keys present, and an incomplete rule
loads as no logic.
"""

from typing import Any, Dict

from jsonschema import Draft7Validator

from frm.types import (
    FieldLogicComparator,
    FieldLogicTriggerAction,
    FormFieldDataType,
    FormFieldType,
    FormStatus,
    OptionOrder,
    SubmissionStatus,
)

UUID_PATTERN = r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"


def _enum(values) -> Dict[str, Any]:
    return {"type": "string", "enum": [v.value for v in values]}


OPTION_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "id": {"type": "string", "pattern": UUID_PATTERN},
        "value": {"type": "string"},
        "label": {"type": "string"},
        "order": {"type": "integer"},
    },
    "required": ["id", "value", "label", "order"],
}

FIELD_LOGIC_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "target_field_id": {"type": ["string", "null"]},
        "field_comparator": _enum(FieldLogicComparator),
        "trigger_values": {"type": ["array", "null"], "items": {"type": "string"}},
        "actions": {"type": ["array", "null"], "items": _enum(FieldLogicTriggerAction)},
    },
}

FORM_FIELD_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "id": {"type": "string", "pattern": UUID_PATTERN},
        "order": {"type": "integer"},
        "label": {"type": "string"},
        "logic": {"anyOf": [{"type": "null"}, FIELD_LOGIC_SCHEMA]},
        "options": {"type": ["array", "null"], "items": OPTION_SCHEMA},
        "option_labels": {"type": ["array", "null"], "items": {"type": "string"}},
        "option_order": _enum(OptionOrder),
        "placeholder": {"type": "string"},
        "required": {"type": "boolean"},
        "hidden": {"type": "boolean"},
        "type": _enum(FormFieldType),
        "data_type": _enum(FormFieldDataType),
    },
    "required": ["id", "order", "type"],
}

FORM_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "id": {"type": ["integer", "null"]},
        "parent_form_id": {"type": ["integer", "null"]},
        "workspace_id": {"type": "string"},
        "name": {"type": "string"},
        "fields": {"type": "object", "additionalProperties": FORM_FIELD_SCHEMA},
        "status": _enum(FormStatus),
        "created_at": {"type": ["string", "null"]},
        "updated_at": {"type": ["string", "null"]},
    },
    "required": ["workspace_id", "name", "fields", "status"],
}

FIELD_SUBMISSION_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "id": {"type": "string", "pattern": UUID_PATTERN},
        "form_field_id": {"type": "string", "pattern": UUID_PATTERN},
        "order": {"type": "integer"},
        "required": {"type": "boolean"},
        "hidden": {"type": "boolean"},
        "type": _enum(FormFieldType),
        "data_type": _enum(FormFieldDataType),
        "value": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["id", "form_field_id", "value"],
}

FORM_SUBMISSION_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "id": {"type": ["integer", "null"]},
        "form_id": {"type": "integer"},
        "workspace_id": {"type": "string"},
        "subject_id": {"type": ["string", "null"]},
        "status": _enum(SubmissionStatus),
        "fields": {"type": "object", "additionalProperties": FIELD_SUBMISSION_SCHEMA},
        "created_at": {"type": ["string", "null"]},
        "updated_at": {"type": ["string", "null"]},
    },
    "required": ["form_id", "workspace_id", "status", "fields"],
}

SHORT_CODE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "code": {"type": "string", "minLength": 1},
        "workspace_id": {"type": "string"},
        "form_id": {"type": "integer"},
        "subject_id": {"type": "string"},
    },
    "required": ["code", "workspace_id", "form_id", "subject_id"],
}

for _schema in (FORM_SCHEMA, FORM_SUBMISSION_SCHEMA, SHORT_CODE_SCHEMA):
    Draft7Validator.check_schema(_schema)

FORM_VALIDATOR = Draft7Validator(FORM_SCHEMA)
FORM_FIELD_VALIDATOR = Draft7Validator(FORM_FIELD_SCHEMA)
FORM_SUBMISSION_VALIDATOR = Draft7Validator(FORM_SUBMISSION_SCHEMA)
SHORT_CODE_VALIDATOR = Draft7Validator(SHORT_CODE_SCHEMA)


__all__ = [
    "OPTION_SCHEMA",
    "FIELD_LOGIC_SCHEMA",
    "FORM_FIELD_SCHEMA",
    "FORM_SCHEMA",
    "FIELD_SUBMISSION_SCHEMA",
    "FORM_SUBMISSION_SCHEMA",
    "SHORT_CODE_SCHEMA",
    "FORM_VALIDATOR",
    "FORM_FIELD_VALIDATOR",
    "FORM_SUBMISSION_VALIDATOR",
    "SHORT_CODE_VALIDATOR",
]
