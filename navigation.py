"""
Conditional navigation (skip logic) for form schemas.

A NavigationPlan resolves every jump rule's destination to a field index once,
when the plan is compiled. Evaluating a plan against an answer map walks the
fields from index 0 and follows forward jumps only, so the walk always
terminates and never visits a field twice.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from schemas import FormField, FormSchema

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompiledRule:
    condition: str
    target: Optional[int]  # None when the destination is unknown or not ahead of the field

    def matches(self, answer_text: str) -> bool:
        return self.condition in ("*", "") or self.condition == answer_text


@dataclass(frozen=True)
class MalformedDestination:
    """A jump rule whose destination can never be taken."""

    field_id: str
    destination: str
    reason: str


def has_answer(value: Any) -> bool:
    if value is None or value is False:
        return False
    if isinstance(value, (str, list, tuple)):
        return len(value) > 0
    return True


def answer_text(value: Any) -> str:
    """String form of an answer as compared against rule conditions."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join(answer_text(v) for v in value)
    return str(value)


class NavigationPlan:
    def __init__(self, fields: Sequence[FormField]):
        self.fields: Tuple[FormField, ...] = tuple(fields)
        self.warnings: List[MalformedDestination] = []
        self._rules: List[Tuple[CompiledRule, ...]] = []

        index = {f.id: i for i, f in enumerate(self.fields)}
        for position, field in enumerate(self.fields):
            compiled = []
            for rule in field.logic or ():
                target = index.get(rule.destination)
                if target is None:
                    self.warnings.append(MalformedDestination(field.id, rule.destination, "unknown field"))
                elif target <= position:
                    self.warnings.append(MalformedDestination(field.id, rule.destination, "not a forward jump"))
                    target = None
                compiled.append(CompiledRule(rule.condition, target))
            self._rules.append(tuple(compiled))

        for warning in self.warnings:
            logger.debug("Inert jump rule on %s -> %s (%s)", warning.field_id, warning.destination, warning.reason)

    @classmethod
    def from_schema(cls, schema: FormSchema) -> "NavigationPlan":
        return cls(schema.fields)

    def visible_indices(self, answers: Mapping[str, Any]) -> List[int]:
        visible: List[int] = []
        cursor = 0
        while cursor < len(self.fields):
            visible.append(cursor)
            next_cursor = cursor + 1

            rules = self._rules[cursor]
            value = answers.get(self.fields[cursor].id)
            if rules and has_answer(value):
                text = answer_text(value)
                for rule in rules:
                    if rule.matches(text):
                        # First match decides, even when its target is inert.
                        if rule.target is not None:
                            next_cursor = rule.target
                        break

            cursor = next_cursor
        return visible

    def visible_fields(self, answers: Mapping[str, Any]) -> List[FormField]:
        return [self.fields[i] for i in self.visible_indices(answers)]


def visible_fields(schema: FormSchema, answers: Mapping[str, Any]) -> List[FormField]:
    """Ordered fields to present for the current answers."""
    return NavigationPlan.from_schema(schema).visible_fields(answers)


def filter_submission(
    answers: Mapping[str, Any],
    visible: Iterable[Union[FormField, str]],
) -> Dict[str, Any]:
    """Keep only the answers that belong to visible fields."""
    visible_ids = {v.id if isinstance(v, FormField) else v for v in visible}
    return {key: value for key, value in answers.items() if key in visible_ids}
