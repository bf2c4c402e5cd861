"""Core type definitions for frm.

This module defines the enumerations shared across the engine:
- FormStatus / SubmissionStatus: persisted lifecycle states
- FormFieldType / FormFieldDataType: what a field looks like and what its values mean
- FieldLogicComparator / FieldLogicTriggerAction: conditional field logic vocabulary
- OptionOrder: how select/choice options are presented
- FieldErrorCode: per-field submission validation failures
- EventType: lifecycle events emitted by the engine

All enums are ``str`` enums so that their values are the snake-case strings
found in persisted JSON.
"""

from enum import Enum


class FormStatus(str, Enum):
    """Form lifecycle states.

    Drafts are mutable; published forms keep a stable identity across
    republishing.
    """
    DRAFT = "draft"
    PUBLISHED = "published"


class SubmissionStatus(str, Enum):
    """Submission lifecycle states. Only ``partial`` is reached today."""
    PARTIAL = "partial"


class FormFieldType(str, Enum):
    """All supported form field types."""
    TEXT_SINGLE = "text_single"  # single line of text
    TEXT_MULTIPLE = "text_multiple"  # multiple lines of text
    SINGLE_SELECT = "single_select"  # single-select dropdown
    MULTI_SELECT = "multi_select"  # multi-select dropdown
    SINGLE_CHOICE = "single_choice"  # radio buttons
    SINGLE_CHOICE_SPACED = "single_choice_spaced"  # radio buttons, spaced out

    @property
    def has_options(self) -> bool:
        """Whether submitted values must be drawn from the field's options."""
        return self in CHOICE_FIELD_TYPES


CHOICE_FIELD_TYPES = frozenset({
    FormFieldType.SINGLE_SELECT,
    FormFieldType.MULTI_SELECT,
    FormFieldType.SINGLE_CHOICE,
    FormFieldType.SINGLE_CHOICE_SPACED,
})


class FormFieldDataType(str, Enum):
    """How values submitted to a field should be interpreted by consumers."""
    TEXT = "text"
    NUMERIC = "numeric"
    RATING = "rating"


class FieldLogicComparator(str, Enum):
    """Comparators applied between a target field's values and trigger values."""
    EQUAL = "equal"  # any target value equals any trigger value
    CONTAINS = "contains"  # any target value contains any trigger value
    NOT = "not"  # negation of EQUAL


class FieldLogicTriggerAction(str, Enum):
    """Actions applied to a field when its logic evaluates true."""
    SHOW = "show"
    REQUIRE = "require"


class OptionOrder(str, Enum):
    """Order in which a field's options are presented."""
    NATURAL = "natural"
    RANDOM = "random"


class FieldErrorCode(str, Enum):
    """Validation error codes for individual field failures."""
    REQUIRED_NO_VALUE_PROVIDED = "required_no_value_provided"
    UNKNOWN_OPTION_PROVIDED = "unknown_option_provided"

    @property
    def message(self) -> str:
        return FIELD_ERROR_MESSAGES[self]


FIELD_ERROR_MESSAGES = {
    FieldErrorCode.REQUIRED_NO_VALUE_PROVIDED: "This field is required",
    FieldErrorCode.UNKNOWN_OPTION_PROVIDED: "This field is required, please choose a valid option",
}


class EventType(str, Enum):
    """Lifecycle events emitted by the engine."""
    DRAFT_CREATED = "draft.created"
    CLONE_CREATED = "clone.created"
    FORM_PUBLISHED = "form.published"
    FORM_DELETED = "form.deleted"
    SUBMISSION_RECEIVED = "submission.received"
    DRAFT_REAPED = "draft.reaped"


__all__ = [
    "FormStatus",
    "SubmissionStatus",
    "FormFieldType",
    "CHOICE_FIELD_TYPES",
    "FormFieldDataType",
    "FieldLogicComparator",
    "FieldLogicTriggerAction",
    "OptionOrder",
    "FieldErrorCode",
    "FIELD_ERROR_MESSAGES",
    "EventType",
]
