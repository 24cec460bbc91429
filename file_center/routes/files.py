from __future__ import annotations
"""
File endpoints speaking id tokens only; raw ObjectIds never leave the server.

POST   /files            multipart upload (file, temporary) -> {"id": <token>, ...}
GET    /files/{token}    file content (inline buffer or streamed chunks)
DELETE /files/{token}    remove a file
"""

from fastapi import APIRouter, File, Form, HTTPException, Query, Request, UploadFile, status
from fastapi.responses import JSONResponse
from starlette.responses import Response, StreamingResponse

from ..errors import InvalidToken, PayloadTooLarge
from ..services.file_center import FileCenter
from ..utils import content_disposition

router = APIRouter(prefix="/files", tags=["files"])


def get_file_center(request: Request) -> FileCenter:
    center = getattr(request.app.state, "file_center", None)
    if center is None:
        raise RuntimeError("file center is not initialised; check the app lifespan")
    return center


def _decode(center: FileCenter, token: str):
    try:
        return center.decrypt_id_token(token)
    except InvalidToken:
        # same answer as an unknown id; no token oracle
        raise HTTPException(status_code=404, detail="not found")


@router.post("")
async def upload_file(
    request: Request,
    file: UploadFile = File(...),
    temporary: bool = Form(False),
):
    center = get_file_center(request)
    try:
        file_id = await center.put(
            file,
            file_name=file.filename or "",
            mime_type=file.content_type or None,
            temporary=temporary,
        )
    except PayloadTooLarge as e:
        raise HTTPException(status_code=413, detail=str(e))
    finally:
        await file.close()

    payload = {
        "id": center.encrypt_id(file_id),
        "file_name": file.filename or "",
        "temporary": temporary,
    }
    return JSONResponse(payload, status_code=status.HTTP_201_CREATED)


@router.get("/{token}")
async def download_file(
    request: Request,
    token: str,
    download: int = Query(0, ge=0, le=1, description="0=inline (default), 1=attachment"),
):
    center = get_file_center(request)
    item = await center.get(_decode(center, token))
    if item is None:
        return JSONResponse(status_code=404, content={"ok": False, "detail": "not found"})

    headers = {
        "Content-Disposition": content_disposition(item.file_name, item.mime_type, bool(download)),
        "Content-Length": str(item.file_size),
        "X-Content-Type-Options": "nosniff",
        # perennial content never changes under its id
        "Cache-Control": "no-store" if item.is_temporary else "public, max-age=31536000, immutable",
    }
    if item.data.is_buffer:
        return Response(content=item.data.buffer, media_type=item.mime_type, headers=headers)
    return StreamingResponse(item.data, media_type=item.mime_type, headers=headers)


@router.delete("/{token}")
async def delete_file(request: Request, token: str):
    center = get_file_center(request)
    size = await center.delete(_decode(center, token))
    if size is None:
        return JSONResponse(status_code=404, content={"ok": False, "detail": "not found"})
    return {"ok": True, "file_size": size}
