from fastapi import APIRouter, Depends, File, Response, UploadFile

from expense_console.core.auth import require_session
from expense_console.core.errors import client_error
from expense_console.core.state import AppState, get_app_state
from expense_console.schemas.auth import User
from expense_console.schemas.expense import FileUploadOut
from expense_console.services import query_keys

router = APIRouter()


@router.post("/files/upload", response_model=FileUploadOut, status_code=201)
async def upload_file(
    file: UploadFile = File(...),
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    content = await file.read()
    if not content:
        raise client_error("The selected file is empty")
    with state.loading.track("files", f"Uploading {file.filename}..."):
        uploaded = await state.backend.upload_file(
            file.filename or "upload",
            content,
            file.content_type or "application/octet-stream",
        )
    state.cache.set(query_keys.file_detail(uploaded.id), uploaded)
    return uploaded


@router.get("/files/{file_id}", response_model=FileUploadOut)
async def get_file(
    file_id: str,
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    return await state.cache.fetch(query_keys.file_detail(file_id), lambda: state.backend.get_file(file_id))


@router.delete("/files/{file_id}", status_code=204)
async def delete_file(
    file_id: str,
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    await state.backend.delete_file(file_id)
    state.cache.remove(query_keys.file_detail(file_id))
    return Response(status_code=204)
