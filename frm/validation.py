"""Submission validation for frm forms.

This module provides a SubmissionValidator that checks the values submitted to
a form's fields and produces a partial-failure report: only offending field IDs
appear in the resulting ``ValidationErrors``.

Each submitted field is described by a small JSON Schema derived from its
effective state (stored flags plus field logic) and its type, and the whole
submission is checked with jsonschema. jsonschema errors are then translated
into frm's two field error codes:

- ``required_no_value_provided``: a required field with no values, or with
  an empty-string value
- ``unknown_option_provided``: a select/choice field with a value that is not
  one of its options

An optional select/choice field submitting exactly one empty string is
"intentionally unset" and passes.

Fields that are absent from the submission are not validated at all.
"""

import logging
from typing import Any, Dict, List, Mapping, Sequence, Union

import jsonschema
from jsonschema import Draft7Validator

from frm.errors import FieldError, ValidationErrors
from frm.logic import effective_state
from frm.models import Form, FormField
from frm.types import FieldErrorCode

logger = logging.getLogger(__name__)

SubmittedValues = Mapping[str, Union[str, Sequence[str]]]

# jsonschema keywords whose failure means "no value was provided"
REQUIRED_KEYWORDS = frozenset({"minItems", "minLength"})


def normalize_values(submitted: SubmittedValues) -> Dict[str, List[str]]:
    """Coerce each submitted value into a list of strings."""
    normalized: Dict[str, List[str]] = {}
    for key, value in submitted.items():
        if isinstance(value, str):
            normalized[key] = [value]
        else:
            normalized[key] = [str(v) for v in value]
    return normalized


class SubmissionValidator:
    """Validates values submitted to a form.

    Examples:
        >>> import uuid
        >>> from frm.models import Form, FormField
        >>> field = FormField(id=uuid.uuid4(), required=True)
        >>> form = Form(workspace_id="ws", name="f", fields={field.key: field})
        >>> errs = SubmissionValidator().validate(form, {field.key: [""]})
        >>> errs.any()
        True
        >>> SubmissionValidator().validate(form, {field.key: ["hi"]}).any()
        False
    """

    def validate(self, form: Form, submitted: SubmittedValues) -> ValidationErrors:
        """Validate submitted values against the form's fields.

        Args:
            form: The form being submitted to
            submitted: Field ID to submitted values

        Returns:
            ValidationErrors holding one FieldError per offending field
        """
        values = normalize_values(submitted)
        schema = self.build_schema(form, values)
        errors = ValidationErrors()

        codes: Dict[str, FieldErrorCode] = {}
        for error in Draft7Validator(schema).iter_errors(values):
            if not error.absolute_path:
                continue
            field_id = str(error.absolute_path[0])
            code = self._translate_error(error)
            # a missing value is reported in preference to an unknown option
            if codes.get(field_id) != FieldErrorCode.REQUIRED_NO_VALUE_PROVIDED:
                codes[field_id] = code

        for field_id, code in codes.items():
            errors[field_id] = FieldError.of(field_id, code)

        if errors.any():
            logger.debug("form %s failed validation: %s", form.id, errors.codes())
        return errors

    def build_schema(self, form: Form, values: Mapping[str, Sequence[str]]) -> Dict[str, Any]:
        """Build the JSON Schema that ``values`` must satisfy for ``form``.

        Only submitted fields that exist on the form get a property schema;
        anything else is accepted.
        """
        properties: Dict[str, Any] = {}
        for field_id in values:
            form_field = form.fields.get(field_id)
            if form_field is None:
                continue
            properties[field_id] = self._field_schema(form_field, values)
        return {"type": "object", "properties": properties}

    def _field_schema(self, form_field: FormField, values: Mapping[str, Sequence[str]]) -> Dict[str, Any]:
        required = effective_state(form_field, values).required
        item: Dict[str, Any] = {"type": "string"}
        schema: Dict[str, Any] = {"type": "array", "items": item}
        if required:
            schema["minItems"] = 1
            item["minLength"] = 1

        if form_field.type.has_options:
            choices = [o.value for o in form_field.options]
            if required:
                item["enum"] = choices
            else:
                schema["anyOf"] = [
                    {"const": [""]},
                    {"items": {"enum": choices}},
                ]
        return schema

    def _translate_error(self, error: jsonschema.ValidationError) -> FieldErrorCode:
        """Map a jsonschema error onto a field error code.

        Error mapping:
            - 'minItems' / 'minLength' -> REQUIRED_NO_VALUE_PROVIDED
            - 'enum' / 'anyOf' -> UNKNOWN_OPTION_PROVIDED
            - anything else (e.g. 'type') -> UNKNOWN_OPTION_PROVIDED
        """
        if error.validator in REQUIRED_KEYWORDS:
            return FieldErrorCode.REQUIRED_NO_VALUE_PROVIDED
        return FieldErrorCode.UNKNOWN_OPTION_PROVIDED


def validate(form: Form, submitted: SubmittedValues) -> ValidationErrors:
    """Validate ``submitted`` against ``form`` with a default SubmissionValidator."""
    return SubmissionValidator().validate(form, submitted)


__all__ = [
    "SubmissionValidator",
    "SubmittedValues",
    "normalize_values",
    "validate",
]
