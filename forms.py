"""
Form and submission lifecycle operations.

These sit between the HTTP layer and the store: they turn raw JSON payloads
into validated models and enforce the not-found and skip-logic rules before
anything is written.
"""

import logging
from typing import Any, Dict, List, Mapping

from database import JsonStore
from errors import FormNotFound
from render import FormSession
from schemas import FormSchema, Submission

logger = logging.getLogger(__name__)


def create_form(store: JsonStore, payload: Mapping[str, Any]) -> FormSchema:
    """Validate and store a new form. A missing id is generated; a placeholder createdAt becomes now."""
    form = FormSchema.model_validate(dict(payload))
    store.save_form(form)
    logger.info("Saved form %s (%d fields)", form.id, len(form.fields))
    return form


def list_forms(store: JsonStore) -> List[FormSchema]:
    return store.list_forms()


def get_form(store: JsonStore, form_id: str) -> FormSchema:
    return store.get_form(form_id)


def rename_form(store: JsonStore, form_id: str, title: str) -> FormSchema:
    form = store.get_form(form_id)
    form.title = title
    store.save_form(form)
    return form


def save_form(store: JsonStore, form_id: str, payload: Mapping[str, Any]) -> FormSchema:
    """Overwrite (or insert) the form stored under ``form_id``."""
    doc: Dict[str, Any] = dict(payload)
    doc["id"] = form_id
    form = FormSchema.model_validate(doc)
    store.save_form(form)
    return form


def delete_form(store: JsonStore, form_id: str) -> int:
    return store.delete_form(form_id)


def list_submissions(store: JsonStore, form_id: str) -> List[Submission]:
    # 404 for an unknown form rather than an empty list
    store.get_form(form_id)
    return store.list_submissions(form_id)


def record_submission(store: JsonStore, form_id: str, answers: Mapping[str, Any]) -> Submission:
    """Store a submission.

    When the form is known, only answers for fields visible under the current
    skip logic are kept, and they are validated first. Submissions for an
    unknown form id are stored as given.
    """
    try:
        form = store.get_form(form_id)
    except FormNotFound:
        logger.warning("Submission for unknown form %s stored without filtering", form_id)
        data = dict(answers)
    else:
        data = FormSession(form).submission_data(answers)

    submission = Submission(formId=form_id, data=data)
    store.add_submission(submission)
    return submission
