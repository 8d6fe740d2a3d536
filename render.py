"""
Presentation-facing contract for a single form.

A FormSession compiles the navigation plan and the rule table once per schema.
Everything that depends on answers is recomputed on each call.
"""

from typing import Any, Dict, List, Mapping

from navigation import MalformedDestination, NavigationPlan, filter_submission
from schemas import FormField, FormSchema
from validation import FieldRule, build_rules, validate_answers


class FormSession:
    def __init__(self, schema: FormSchema):
        self.schema = schema
        self.plan = NavigationPlan.from_schema(schema)
        self.rules: Dict[str, FieldRule] = build_rules(schema.fields)

    @property
    def warnings(self) -> List[MalformedDestination]:
        return list(self.plan.warnings)

    def visible_fields(self, answers: Mapping[str, Any]) -> List[FormField]:
        return self.plan.visible_fields(answers)

    def validate(self, answers: Mapping[str, Any]) -> Dict[str, Any]:
        """Validate the visible fields only; skipped fields are never checked."""
        visible = self.visible_fields(answers)
        return validate_answers(self.rules, answers, only=[f.id for f in visible])

    def submission_data(self, answers: Mapping[str, Any]) -> Dict[str, Any]:
        """Validated answers for the visible fields, ready to persist."""
        visible = self.visible_fields(answers)
        cleaned = validate_answers(self.rules, answers, only=[f.id for f in visible])
        return filter_submission(cleaned, visible)
