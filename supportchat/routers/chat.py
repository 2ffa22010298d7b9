# supportchat/routers/chat.py
# End-user side of support chat. Every route needs a user bearer token.
from fastapi import APIRouter, Body, Depends, File, HTTPException, Query, Request, UploadFile
from sqlalchemy.orm import Session

from supportchat import settings
from supportchat.auth import current_user_id, client_ip
from supportchat.routers.deps import get_db, ok, store_upload
from supportchat.services import messages as message_store
from supportchat.services import threads as thread_store
from supportchat.services.messages import EmptyMessage
from supportchat.util.logger import get_logger

log = get_logger("supportchat.routes")
router = APIRouter(prefix="/api/chat", tags=["chat"])


def _own_thread(db: Session, thread_id: int, user_id: int):
    t = thread_store.get_user_thread(db, thread_id, user_id)
    if not t:
        raise HTTPException(404, "Thread not found")
    return t


@router.post("/thread")
def open_thread(request: Request, user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    t = thread_store.open_or_get(db, user_id, ip=client_ip(request))
    return ok(threadId=t.id)


@router.get("/thread/{thread_id}/messages")
def list_messages(
    thread_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    t = _own_thread(db, thread_id, user_id)
    msgs = message_store.list_for_user(db, t.id, page=page, limit=limit)
    return ok(messages=[message_store.serialize_message(m) for m in msgs])


@router.post("/thread/{thread_id}/messages")
async def send_message(
    request: Request,
    thread_id: int,
    payload: dict = Body(...),
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    t = _own_thread(db, thread_id, user_id)
    try:
        m = message_store.append(db, t, sender_type="user", sender_id=user_id, text=str(payload.get("text") or ""))
    except EmptyMessage as e:
        raise HTTPException(400, str(e))
    await request.app.state.gateway.publish_message(t, m)
    return ok(message=message_store.serialize_message(m))


@router.post("/thread/{thread_id}/images")
async def send_image(
    request: Request,
    thread_id: int,
    image: UploadFile = File(...),
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    t = _own_thread(db, thread_id, user_id)
    image_url = await store_upload(request, image)
    m = message_store.append(db, t, sender_type="user", sender_id=user_id, image_url=image_url)
    log.info({"event": "image_sent", "thread": t.id, "sender": "user", "path": image_url})
    await request.app.state.gateway.publish_message(t, m)
    return ok(message=message_store.serialize_message(m), imageUrl=image_url)


@router.post("/thread/{thread_id}/read")
def mark_read(thread_id: int, user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    t = _own_thread(db, thread_id, user_id)
    thread_store.mark_read_by_user(db, t)
    return ok(threadId=t.id, unreadForUser=t.unread_for_user)
