import io
import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any, Dict, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ValidationError

import config
from cache import FormCache
from database import JsonStore
from errors import (
    FormNotFound,
    FormValidationError,
    GenerationError,
    NotFound,
    SheetsError,
    UnknownFieldType,
)
from exports import build_xlsx, content_disposition, export_filename, iter_csv, qr_png, share_url
from forms import (
    create_form,
    delete_form,
    get_form,
    list_forms,
    list_submissions,
    record_submission,
    rename_form,
    save_form,
)
from generation import (
    generate,
    list_ollama_models,
    parse_generated_schema,
    resolve_settings,
    stream_generate,
)
from render import FormSession
from schemas import FormSchema
from sheets import sheets_enabled, sync_submissions

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# --- Shared resources ---
_store: Optional[JsonStore] = None
_drafts = FormCache(config.DRAFT_CACHE_PATH, limit=config.DRAFT_CACHE_LIMIT)


def get_store() -> JsonStore:
    global _store
    if _store is None:
        _store = JsonStore(config.DB_PATH)
    return _store


def get_draft_cache() -> FormCache:
    return _drafts


@asynccontextmanager
async def lifespan(app: FastAPI):
    _drafts.load()
    yield
    _drafts.save()


app = FastAPI(title="AI Form Builder API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Error mapping ---
@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(FormValidationError)
async def form_validation_handler(request: Request, exc: FormValidationError):
    return JSONResponse(status_code=422, content={"detail": str(exc), "errors": exc.as_dict()})


@app.exception_handler(UnknownFieldType)
async def unknown_field_type_handler(request: Request, exc: UnknownFieldType):
    return JSONResponse(status_code=422, content={"detail": str(exc), "field": exc.field_id})


@app.exception_handler(ValidationError)
async def schema_validation_handler(request: Request, exc: ValidationError):
    return JSONResponse(
        status_code=422,
        content={"detail": exc.errors(include_url=False, include_context=False, include_input=False)},
    )


@app.exception_handler(GenerationError)
async def generation_error_handler(request: Request, exc: GenerationError):
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


@app.exception_handler(SheetsError)
async def sheets_error_handler(request: Request, exc: SheetsError):
    return JSONResponse(status_code=500, content={"detail": str(exc)})


# --- Helpers ---

def lookup_form(store: JsonStore, drafts: FormCache, form_id: str) -> FormSchema:
    """Stored form first, unsaved generated draft second."""
    try:
        return get_form(store, form_id)
    except FormNotFound:
        draft = drafts.get(form_id)
        if draft is None:
            raise
        return draft


def dump(form: FormSchema) -> Dict[str, Any]:
    return form.model_dump(mode="json", exclude_none=True)


# --- Models ---
class GenerateRequest(BaseModel):
    prompt: str = ""
    provider: Optional[str] = None
    model: Optional[str] = None
    baseUrl: Optional[str] = None
    apiKey: Optional[str] = None


class RenameRequest(BaseModel):
    title: str


class AnswersRequest(BaseModel):
    answers: Dict[str, Any] = {}


class SubmitRequest(BaseModel):
    formId: Optional[str] = None
    data: Optional[Dict[str, Any]] = None


def _settings_for(payload: GenerateRequest):
    if not payload.prompt.strip():
        raise HTTPException(status_code=400, detail="Prompt is required")
    return resolve_settings(
        provider=payload.provider,
        model=payload.model,
        base_url=payload.baseUrl,
        api_key=payload.apiKey,
    )


# --- Routes ---
@app.get("/")
def read_root():
    return {"message": "AI Form Builder API running"}


@app.get("/health")
def health(store: JsonStore = Depends(get_store), drafts: FormCache = Depends(get_draft_cache)):
    return {
        "backend": "running",
        "database": str(store.path),
        "counts": store.ping(),
        "drafts": len(drafts),
        "sheets_sync": sheets_enabled(),
    }


@app.post("/api/generate")
def generate_form(payload: GenerateRequest, drafts: FormCache = Depends(get_draft_cache)):
    settings = _settings_for(payload)
    form = parse_generated_schema(generate(payload.prompt, settings))
    drafts.add(form)
    drafts.save()
    return dump(form)


@app.post("/api/generate/stream")
def generate_form_stream(payload: GenerateRequest):
    settings = _settings_for(payload)
    return StreamingResponse(
        stream_generate(payload.prompt, settings),
        media_type="text/plain; charset=utf-8",
    )


@app.get("/api/ollama/models")
def ollama_models(baseUrl: Optional[str] = None):
    if not baseUrl:
        raise HTTPException(status_code=400, detail="baseUrl is required")
    return list_ollama_models(baseUrl)


@app.get("/api/forms")
def get_forms(store: JsonStore = Depends(get_store)):
    return [dump(f) for f in list_forms(store)]


@app.post("/api/forms")
def post_form(
    payload: Dict[str, Any] = Body(...),
    store: JsonStore = Depends(get_store),
    drafts: FormCache = Depends(get_draft_cache),
):
    form = create_form(store, payload)
    if form.id in drafts:
        drafts.discard(form.id)
        drafts.save()
    return {"success": True, "form": dump(form)}


@app.get("/api/forms/{form_id}")
def get_one_form(
    form_id: str,
    store: JsonStore = Depends(get_store),
    drafts: FormCache = Depends(get_draft_cache),
):
    return dump(lookup_form(store, drafts, form_id))


@app.put("/api/forms/{form_id}")
def put_form(form_id: str, payload: Dict[str, Any] = Body(...), store: JsonStore = Depends(get_store)):
    return dump(save_form(store, form_id, payload))


@app.patch("/api/forms/{form_id}")
def patch_form(form_id: str, payload: RenameRequest, store: JsonStore = Depends(get_store)):
    return dump(rename_form(store, form_id, payload.title))


@app.delete("/api/forms/{form_id}")
def remove_form(form_id: str, store: JsonStore = Depends(get_store)):
    removed = delete_form(store, form_id)
    return {"success": True, "deleted_submissions": removed}


@app.post("/api/forms/{form_id}/visible")
def visible_form_fields(
    form_id: str,
    payload: AnswersRequest,
    store: JsonStore = Depends(get_store),
    drafts: FormCache = Depends(get_draft_cache),
):
    session = FormSession(lookup_form(store, drafts, form_id))
    fields = session.visible_fields(payload.answers)
    return {
        "fields": [f.model_dump(mode="json", exclude_none=True) for f in fields],
        "warnings": [asdict(w) for w in session.warnings],
    }


@app.get("/api/forms/{form_id}/submissions")
def get_submissions(form_id: str, store: JsonStore = Depends(get_store)):
    return [s.model_dump(mode="json") for s in list_submissions(store, form_id)]


@app.post("/api/submit")
def submit(payload: SubmitRequest, store: JsonStore = Depends(get_store)):
    if not payload.formId or payload.data is None:
        raise HTTPException(status_code=400, detail="Missing data")

    submission = record_submission(store, payload.formId, payload.data)

    if sheets_enabled():
        try:
            form = get_form(store, payload.formId)
            synced = sync_submissions(form, [submission])
            if synced.sheetName != form.sheetName:
                store.save_form(synced)
        except Exception:
            # log but don't block success
            logger.exception("Sheet append error for form %s", payload.formId)

    return {"success": True, "submission_id": submission.id}


@app.get("/api/forms/{form_id}/export/csv")
def export_csv(form_id: str, store: JsonStore = Depends(get_store)):
    form = get_form(store, form_id)
    subs = store.list_submissions(form_id)
    filename = export_filename(form, "csv")
    return StreamingResponse(
        iter_csv(form, subs),
        media_type="text/csv",
        headers={"Content-Disposition": content_disposition(filename)},
    )


@app.get("/api/forms/{form_id}/export/xlsx")
def export_xlsx(form_id: str, store: JsonStore = Depends(get_store)):
    form = get_form(store, form_id)
    content = build_xlsx(form, store.list_submissions(form_id))
    filename = export_filename(form, "xlsx")
    return StreamingResponse(
        io.BytesIO(content),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": content_disposition(filename)},
    )


@app.post("/api/forms/{form_id}/export/sheets")
def export_sheets(form_id: str, store: JsonStore = Depends(get_store)):
    if not sheets_enabled():
        raise HTTPException(status_code=400, detail="Google Sheets sync is not configured")
    # A full export always starts a fresh tab; later submissions append to it.
    form = get_form(store, form_id).model_copy(update={"sheetName": None})
    subs = store.list_submissions(form_id)
    synced = sync_submissions(form, subs)
    store.save_form(synced)
    return {"success": True, "sheet_name": synced.sheetName, "rows": len(subs)}


@app.get("/api/forms/{form_id}/qr")
def form_qr(form_id: str, store: JsonStore = Depends(get_store)):
    get_form(store, form_id)
    png = qr_png(share_url(config.PUBLIC_BASE_URL, form_id))
    return StreamingResponse(io.BytesIO(png), media_type="image/png")
