"""
Field-level validation rules derived from a form schema.

Every field type maps to one fixed validator (a pydantic TypeAdapter), so the
rule table for a schema is built by plain lookup on the field's type variant.
"""

import logging
from typing import Annotated, Any, Dict, Iterable, List, Mapping, Optional, Union

from pydantic import BeforeValidator, EmailStr, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from errors import FormValidationError, ValidationFailure
from schemas import FieldType, FormField

logger = logging.getLogger(__name__)


def _reject_bool(value: Any) -> Any:
    # pydantic reads True/False as 1/0 for floats; a checkbox answer is not a number
    if isinstance(value, bool):
        raise ValueError("expected a number, not true/false")
    return value


Number = Annotated[float, BeforeValidator(_reject_bool)]

_STRING = TypeAdapter(str)
_NUMBER = TypeAdapter(Number)

# One validator per field variant
_ADAPTERS: Dict[FieldType, TypeAdapter] = {
    FieldType.TEXT: _STRING,
    FieldType.TEXTAREA: _STRING,
    FieldType.SELECT: _STRING,
    FieldType.RADIO: _STRING,
    FieldType.DATE: _STRING,
    FieldType.FILE: _STRING,
    FieldType.EMAIL: TypeAdapter(EmailStr),
    FieldType.NUMBER: _NUMBER,
    FieldType.RATING: TypeAdapter(Annotated[Number, Field(ge=1, le=5)]),
    FieldType.CHECKBOX: TypeAdapter(bool),
    FieldType.CHECKBOX_GROUP: TypeAdapter(List[str]),
}

_NUMERIC = frozenset({FieldType.NUMBER, FieldType.RATING})

# Sentinel for "leave this key out of the cleaned data"
OMIT = object()


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def _default_for(field_type: FieldType) -> Any:
    if field_type == FieldType.CHECKBOX:
        return False
    if field_type == FieldType.CHECKBOX_GROUP:
        return []
    return OMIT


class FieldRule:
    """Validation rule for a single field."""

    def __init__(self, field_id: str, label: str, field_type: FieldType, required: bool):
        self.field_id = field_id
        self.label = label
        self.field_type = field_type
        self.required = required
        self._adapter = _ADAPTERS[field_type]

    def __repr__(self) -> str:
        return f"FieldRule({self.field_id!r}, {self.field_type.value}, required={self.required})"

    @property
    def enforces_presence(self) -> bool:
        # A checkbox is always answered (unchecked == False), so "required" adds nothing to it.
        return self.required and self.field_type != FieldType.CHECKBOX

    def _required_failure(self) -> ValidationFailure:
        return ValidationFailure(self.field_id, f"{self.label} is required")

    def validate(self, value: Any = OMIT) -> Any:
        """Return the cleaned value, OMIT for an absent optional value, or raise ValidationFailure."""
        if value is OMIT or value is None or value == "":
            value = _default_for(self.field_type)
            if value is OMIT:
                if self.enforces_presence:
                    raise self._required_failure()
                return OMIT

        try:
            cleaned = self._adapter.validate_python(value)
        except PydanticValidationError as exc:
            detail = exc.errors()[0]["msg"]
            raise ValidationFailure(self.field_id, f"{self.label}: {detail}") from None

        if self.enforces_presence and _is_blank(cleaned):
            raise self._required_failure()
        if self.field_type in _NUMERIC and cleaned.is_integer():
            cleaned = int(cleaned)
        return cleaned


def build_rules(fields: Iterable[Union[FormField, Mapping[str, Any]]]) -> Dict[str, FieldRule]:
    """Map each field id to its validation rule.

    Raw mappings are parsed as FormField first, so an unsupported ``type``
    raises UnknownFieldType naming the field.
    """
    rules: Dict[str, FieldRule] = {}
    for field in fields:
        if not isinstance(field, FormField):
            field = FormField.model_validate(field)
        rules[field.id] = FieldRule(field.id, field.label, field.type, field.required)
    return rules


def validate_answers(
    rules: Mapping[str, FieldRule],
    answers: Mapping[str, Any],
    only: Optional[Iterable[str]] = None,
) -> Dict[str, Any]:
    """Validate answers against rules and return the cleaned values.

    ``only`` restricts validation to the given field ids (the visible fields);
    answers for other ids are ignored. All failing fields are reported together.
    """
    field_ids = list(only) if only is not None else list(rules)
    cleaned: Dict[str, Any] = {}
    failures: List[ValidationFailure] = []
    for field_id in field_ids:
        rule = rules[field_id]
        try:
            value = rule.validate(answers.get(field_id, OMIT))
        except ValidationFailure as failure:
            failures.append(failure)
            continue
        if value is not OMIT:
            cleaned[field_id] = value
    if failures:
        logger.debug("Validation failed for fields: %s", [f.field_id for f in failures])
        raise FormValidationError(failures)
    return cleaned
