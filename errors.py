"""
Error types shared by the form builder modules.

Each error is local to a single schema or submission operation; the HTTP
layer maps them to responses in main.py.
"""

from typing import Dict, List, Optional


class FormBuilderError(Exception):
    """Base class for domain errors."""


class NotFound(FormBuilderError):
    def __init__(self, kind: str, item_id: str):
        self.kind = kind
        self.item_id = item_id
        super().__init__(f"{kind.capitalize()} not found: {item_id}")


class FormNotFound(NotFound):
    def __init__(self, form_id: str):
        super().__init__("form", form_id)


class UnknownFieldType(FormBuilderError):
    """A field declares a type outside the supported set."""

    def __init__(self, field_id: Optional[str], field_type: object):
        self.field_id = field_id
        self.field_type = field_type
        super().__init__(f"Unknown field type {field_type!r} for field {field_id!r}")


class ValidationFailure(FormBuilderError):
    """A single field value violates its rule."""

    def __init__(self, field_id: str, message: str):
        self.field_id = field_id
        self.message = message
        super().__init__(message)


class FormValidationError(FormBuilderError):
    """One or more fields failed validation."""

    def __init__(self, failures: List[ValidationFailure]):
        self.failures = failures
        super().__init__("; ".join(f.message for f in failures))

    def as_dict(self) -> Dict[str, str]:
        return {f.field_id: f.message for f in self.failures}


class GenerationError(FormBuilderError):
    """The language-model backend failed or returned unusable output."""

    def __init__(self, message: str, status_code: int = 502):
        self.status_code = status_code
        super().__init__(message)


class SheetsError(FormBuilderError):
    """Google Sheets sync is not configured or the API call failed."""
