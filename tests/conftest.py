import pytest
from fastapi.testclient import TestClient

from cache import FormCache
from database import JsonStore
from schemas import FormSchema


@pytest.fixture
def store(tmp_path):
    return JsonStore(tmp_path / "db.json")


@pytest.fixture
def drafts(tmp_path):
    return FormCache(tmp_path / "drafts.json").load()


@pytest.fixture
def branching_form():
    """field0 skips to field2 when answered 'No'."""
    return FormSchema.model_validate(
        {
            "id": "form-1",
            "title": "Event feedback",
            "createdAt": 1_700_000_000_000,
            "fields": [
                {
                    "id": "field0",
                    "label": "Did you attend?",
                    "type": "radio",
                    "required": True,
                    "options": ["Yes", "No"],
                    "logic": [{"condition": "No", "destination": "field2"}],
                },
                {"id": "field1", "label": "Rate the talks", "type": "rating", "required": True},
                {"id": "field2", "label": "Email", "type": "email", "required": False},
            ],
        }
    )


@pytest.fixture
def client(store, drafts):
    import main

    main.app.dependency_overrides[main.get_store] = lambda: store
    main.app.dependency_overrides[main.get_draft_cache] = lambda: drafts
    # No context manager: the lifespan would load and save the real draft cache.
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()
