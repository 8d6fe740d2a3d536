"""
JSON file store for forms and submissions.

The whole database is a single document:

    {"forms": [...], "submissions": [...]}

Reads load the file on every call; writes replace it atomically.
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, List, Union

from errors import FormNotFound
from schemas import FormSchema, Submission

logger = logging.getLogger(__name__)


def _empty() -> Dict[str, List[Dict[str, Any]]]:
    return {"forms": [], "submissions": []}


class JsonStore:
    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = threading.RLock()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            self._write(_empty())

    # --- raw document access ---

    def _read(self) -> Dict[str, List[Dict[str, Any]]]:
        with self.path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        data.setdefault("forms", [])
        data.setdefault("submissions", [])
        return data

    def _write(self, data: Dict[str, Any]) -> None:
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".db-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp, self.path)
        except BaseException:
            os.unlink(tmp)
            raise

    def ping(self) -> Dict[str, int]:
        data = self._read()
        return {"forms": len(data["forms"]), "submissions": len(data["submissions"])}

    # --- forms ---

    def list_forms(self) -> List[FormSchema]:
        """All forms, newest first."""
        forms = [FormSchema.model_validate(f) for f in self._read()["forms"]]
        forms.sort(key=lambda f: f.createdAt, reverse=True)
        return forms

    def get_form(self, form_id: str) -> FormSchema:
        for doc in self._read()["forms"]:
            if doc.get("id") == form_id:
                return FormSchema.model_validate(doc)
        raise FormNotFound(form_id)

    def save_form(self, form: FormSchema) -> None:
        """Insert the form, or replace the stored form with the same id wholesale."""
        doc = form.model_dump(mode="json")
        with self._lock:
            data = self._read()
            for i, existing in enumerate(data["forms"]):
                if existing.get("id") == form.id:
                    data["forms"][i] = doc
                    break
            else:
                data["forms"].append(doc)
            self._write(data)

    def delete_form(self, form_id: str) -> int:
        """Delete a form and all of its submissions. Returns the number of submissions removed."""
        with self._lock:
            data = self._read()
            forms = [f for f in data["forms"] if f.get("id") != form_id]
            if len(forms) == len(data["forms"]):
                raise FormNotFound(form_id)
            submissions = [s for s in data["submissions"] if s.get("formId") != form_id]
            removed = len(data["submissions"]) - len(submissions)
            self._write({"forms": forms, "submissions": submissions})
        logger.info("Deleted form %s and %d submission(s)", form_id, removed)
        return removed

    # --- submissions ---

    def list_submissions(self, form_id: str) -> List[Submission]:
        return [
            Submission.model_validate(s)
            for s in self._read()["submissions"]
            if s.get("formId") == form_id
        ]

    def add_submission(self, submission: Submission) -> None:
        with self._lock:
            data = self._read()
            data["submissions"].append(submission.model_dump(mode="json"))
            self._write(data)
