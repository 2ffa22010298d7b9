# supportchat/routers/deps.py
from fastapi import HTTPException, Request, UploadFile

from supportchat.services.uploads import UploadRejected, save_image


def get_db(request: Request):
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def ok(**data) -> dict:
    return {"success": True, "data": data}


async def store_upload(request: Request, image: UploadFile) -> str:
    """Save an uploaded image and return its /uploads path (501 when uploads are switched off)."""
    if not request.app.state.uploads_enabled:
        raise HTTPException(501, "Image upload is disabled")
    raw = await image.read()
    try:
        return save_image(raw, image.filename or "", image.content_type, upload_dir=request.app.state.upload_dir)
    except UploadRejected as e:
        raise HTTPException(400, str(e))
