import logging
from typing import Literal

from fastapi import APIRouter, Depends, File, Query, Response, UploadFile

from expense_console.core.auth import require_session
from expense_console.core.errors import client_error
from expense_console.core.state import AppState, get_app_state
from expense_console.schemas.auth import User
from expense_console.schemas.importing import ImportPreview, ImportRecord
from expense_console.services import query_keys
from expense_console.services.import_preview import (
    CSV_CONTENT_TYPE,
    XLSX_CONTENT_TYPE,
    build_preview,
    content_type_for,
    csv_template,
    xlsx_template,
)

router = APIRouter()
logger = logging.getLogger(__name__)

TEMPLATE_BASENAME = "expense_import_template"


async def _read_upload(state: AppState, file: UploadFile) -> bytes:
    content = await file.read()
    if not content:
        raise client_error("The selected file is empty")
    limit = state.settings.import_max_file_bytes
    if len(content) > limit:
        raise client_error(
            f"File is too large. Maximum size is {limit // (1024 * 1024)} MB.",
            details={"file": "File exceeds the maximum upload size"},
        )
    return content


@router.post("/import/preview", response_model=ImportPreview)
async def preview_import(
    file: UploadFile = File(...),
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    content = await _read_upload(state, file)
    return build_preview(
        file.filename or "",
        content,
        sample_rows=state.settings.import_preview_sample_rows,
        max_bytes=state.settings.import_max_file_bytes,
    )


@router.get("/import/template")
async def download_template(
    format: Literal["csv", "xlsx"] = Query("csv"),
    _user: User = Depends(require_session),
):
    if format == "xlsx":
        content, media_type = xlsx_template(), XLSX_CONTENT_TYPE
    else:
        content, media_type = csv_template(), f"{CSV_CONTENT_TYPE}; charset=utf-8"
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{TEMPLATE_BASENAME}.{format}"'},
    )


@router.post("/import/upload", response_model=ImportRecord, status_code=202)
async def upload_import(
    file: UploadFile = File(...),
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    filename = file.filename or ""
    content_type = content_type_for(filename)
    content = await _read_upload(state, file)
    with state.loading.track("import", f"Uploading {filename}..."):
        record = await state.backend.upload_import(filename, content, content_type)
    state.cache.set(query_keys.import_status(record.id), record)
    state.cache.invalidate(query_keys.import_history())
    if record.is_active:
        state.watched_imports.add(record.id)
    logger.info("Import uploaded import_id=%s file=%s status=%s", record.id, filename, record.status)
    return record


@router.get("/import/status/{import_id}", response_model=ImportRecord)
async def get_import_status(
    import_id: str,
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    key = query_keys.import_status(import_id)
    cached = state.cache.get(key)
    # finished imports never change again
    if cached is not None and not cached.is_active:
        return cached
    record = await state.cache.fetch(key, lambda: state.backend.get_import_status(import_id), force=True)
    if import_id in state.watched_imports and not record.is_active:
        state.watched_imports.discard(import_id)
        state.cache.invalidate(query_keys.import_history())
        state.cache.invalidate(query_keys.expense_lists())
    return record


@router.get("/import/history", response_model=list[ImportRecord])
async def get_import_history(
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    return await state.cache.fetch(query_keys.import_history(), state.backend.get_import_history)
