import time

import pytest
from pydantic import ValidationError

from errors import UnknownFieldType
from schemas import FieldType, FormSchema, JumpRule, Submission, normalize_created_at


def test_created_at_placeholder_is_replaced_with_now():
    before = int(time.time() * 1000)
    form = FormSchema.model_validate({"title": "T", "fields": [], "createdAt": 0})
    assert form.createdAt >= before


def test_created_at_valid_value_is_kept():
    assert normalize_created_at(1_700_000_000_000) == 1_700_000_000_000
    assert normalize_created_at(999_999) > 1_000_000
    assert normalize_created_at(None) > 1_000_000
    assert normalize_created_at("yesterday") > 1_000_000


def test_missing_id_is_generated():
    a = FormSchema.model_validate({"title": "T", "fields": []})
    b = FormSchema.model_validate({"title": "T", "fields": []})
    assert a.id and b.id and a.id != b.id


def test_unknown_field_type_is_not_coerced():
    with pytest.raises(UnknownFieldType) as exc_info:
        FormSchema.model_validate(
            {"title": "T", "fields": [{"id": "phone", "label": "Phone", "type": "phone"}]}
        )
    assert exc_info.value.field_id == "phone"


def test_choice_fields_need_options():
    with pytest.raises(ValidationError):
        FormSchema.model_validate(
            {"title": "T", "fields": [{"id": "c", "label": "Choice", "type": "select"}]}
        )


def test_duplicate_field_ids_rejected():
    with pytest.raises(ValidationError):
        FormSchema.model_validate(
            {
                "title": "T",
                "fields": [
                    {"id": "a", "label": "A", "type": "text"},
                    {"id": "a", "label": "A again", "type": "text"},
                ],
            }
        )


def test_field_types_are_closed_set():
    assert {t.value for t in FieldType} == {
        "text", "textarea", "number", "email", "select", "checkbox",
        "checkbox-group", "radio", "rating", "date", "file",
    }


def test_jump_rule_condition_is_stringified():
    assert JumpRule(condition=5, destination="x").condition == "5"
    assert JumpRule(condition=None, destination="x").is_wildcard
    assert JumpRule(condition="*", destination="x").is_wildcard


def test_submission_defaults():
    sub = Submission(formId="f", data={"a": 1})
    assert sub.id
    assert "T" in sub.submittedAt
