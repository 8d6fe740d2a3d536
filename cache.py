"""
Draft form cache.

Generated forms live here until the user saves them to the store. The cache
has an explicit lifecycle: ``load()`` once, mutate in memory, ``save()`` to
persist. Nothing is read or written behind the caller's back.

Drafts are disposable: an unreadable cache file or draft is logged and
skipped rather than failing startup, and only the ``limit`` most recently
added drafts are kept.
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, List, Optional, Union

from pydantic import ValidationError

from errors import UnknownFieldType
from schemas import FormSchema

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50


class FormCache:
    def __init__(self, path: Union[str, Path], limit: int = DEFAULT_LIMIT):
        self.path = Path(path)
        self.limit = limit
        self._forms: Dict[str, FormSchema] = {}
        self._lock = threading.RLock()
        self.loaded = False

    def __len__(self) -> int:
        return len(self._forms)

    def __contains__(self, form_id: str) -> bool:
        return form_id in self._forms

    def load(self) -> "FormCache":
        with self._lock:
            self._forms = {}
            for doc in self._read_docs():
                try:
                    form = FormSchema.model_validate(doc)
                except (ValidationError, UnknownFieldType) as e:
                    logger.warning("Skipping unreadable draft in %s: %s", self.path, e)
                    continue
                self._put(form)
            self.loaded = True
        logger.debug("Loaded %d cached form(s) from %s", len(self._forms), self.path)
        return self

    def _read_docs(self) -> list:
        if not self.path.exists():
            return []
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable draft cache %s: %s", self.path, e)
            return []
        forms = data.get("forms") if isinstance(data, dict) else None
        if not isinstance(forms, list):
            logger.warning("Ignoring draft cache %s: no forms list", self.path)
            return []
        return forms

    def save(self) -> None:
        with self._lock:
            payload = {"forms": [f.model_dump(mode="json") for f in self._forms.values()]}
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".drafts-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(payload, f, indent=2)
                os.replace(tmp, self.path)
            except BaseException:
                os.unlink(tmp)
                raise

    def _put(self, form: FormSchema) -> None:
        # re-adding moves a draft to the newest position
        self._forms.pop(form.id, None)
        self._forms[form.id] = form
        while len(self._forms) > self.limit:
            oldest = next(iter(self._forms))
            logger.info("Draft cache full (%d); evicting %s", self.limit, oldest)
            del self._forms[oldest]

    def add(self, form: FormSchema) -> None:
        with self._lock:
            self._put(form)

    def get(self, form_id: str) -> Optional[FormSchema]:
        return self._forms.get(form_id)

    def discard(self, form_id: str) -> None:
        with self._lock:
            self._forms.pop(form_id, None)

    def forms(self) -> List[FormSchema]:
        with self._lock:
            return list(self._forms.values())
