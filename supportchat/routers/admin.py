# supportchat/routers/admin.py
# Staff side of support chat. Every route needs an admin bearer token.
from fastapi import APIRouter, Body, Depends, File, HTTPException, Query, Request, UploadFile
from sqlalchemy.orm import Session

from supportchat import settings
from supportchat.auth import current_admin_id
from supportchat.routers.deps import get_db, ok, store_upload
from supportchat.services import messages as message_store
from supportchat.services import threads as thread_store
from supportchat.services.messages import EmptyMessage
from supportchat.util.logger import get_logger

log = get_logger("supportchat.routes")
router = APIRouter(prefix="/api/chat/admin", tags=["chat-admin"])


def _thread(db: Session, thread_id: int):
    t = thread_store.get_thread(db, thread_id)
    if not t:
        raise HTTPException(404, "Thread not found")
    return t


@router.get("/threads")
def list_threads(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.THREADS_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    q: str = Query(""),
    admin_id: int = Depends(current_admin_id),
    db: Session = Depends(get_db),
):
    res = thread_store.list_threads(db, page=page, limit=limit, q=q, presence=request.app.state.presence)
    return ok(**res)


@router.get("/threads/{thread_id}/messages")
def list_messages(
    thread_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    admin_id: int = Depends(current_admin_id),
    db: Session = Depends(get_db),
):
    t = _thread(db, thread_id)
    msgs = message_store.list_for_admin(db, t.id, page=page, limit=limit)
    return ok(messages=[message_store.serialize_message(m) for m in msgs])


@router.post("/threads/{thread_id}/messages")
async def send_message(
    request: Request,
    thread_id: int,
    payload: dict = Body(...),
    admin_id: int = Depends(current_admin_id),
    db: Session = Depends(get_db),
):
    t = _thread(db, thread_id)
    try:
        m = message_store.append(db, t, sender_type="admin", sender_id=admin_id, text=str(payload.get("text") or ""))
    except EmptyMessage as e:
        raise HTTPException(400, str(e))
    await request.app.state.gateway.publish_message(t, m)
    return ok(message=message_store.serialize_message(m))


@router.post("/threads/{thread_id}/images")
async def send_image(
    request: Request,
    thread_id: int,
    image: UploadFile = File(...),
    admin_id: int = Depends(current_admin_id),
    db: Session = Depends(get_db),
):
    t = _thread(db, thread_id)
    image_url = await store_upload(request, image)
    m = message_store.append(db, t, sender_type="admin", sender_id=admin_id, image_url=image_url)
    log.info({"event": "image_sent", "thread": t.id, "sender": "admin", "path": image_url})
    await request.app.state.gateway.publish_message(t, m)
    return ok(message=message_store.serialize_message(m), imageUrl=image_url)


@router.post("/threads/{thread_id}/read")
def mark_read(thread_id: int, admin_id: int = Depends(current_admin_id), db: Session = Depends(get_db)):
    t = _thread(db, thread_id)
    thread_store.mark_read_by_admin(db, t)
    return ok(threadId=t.id, unreadForAdmin=t.unread_for_admin)


@router.delete("/threads/{thread_id}")
async def delete_thread(
    request: Request,
    thread_id: int,
    admin_id: int = Depends(current_admin_id),
    db: Session = Depends(get_db),
):
    t = _thread(db, thread_id)
    removed = thread_store.delete_thread(db, t)
    log.info({"event": "thread_deleted", "thread": thread_id, "messages": removed, "admin": admin_id})
    await request.app.state.gateway.publish_thread_deleted(thread_id)
    return ok(threadId=thread_id, deletedMessages=removed)


@router.delete("/threads/{thread_id}/messages")
def hide_thread_messages(thread_id: int, admin_id: int = Depends(current_admin_id), db: Session = Depends(get_db)):
    t = _thread(db, thread_id)
    n = message_store.hide_thread_for_admin(db, t.id)
    log.info({"event": "thread_hidden_for_admin", "thread": t.id, "count": n, "admin": admin_id})
    return ok(threadId=t.id, hidden=n)


@router.delete("/users/{user_id}/messages")
def hide_user_messages(user_id: int, admin_id: int = Depends(current_admin_id), db: Session = Depends(get_db)):
    n = message_store.hide_user_messages(db, user_id)
    log.info({"event": "user_messages_hidden", "user": user_id, "count": n, "admin": admin_id})
    return ok(userId=user_id, hidden=n)


@router.get("/users/by-phone/{phone}")
def user_by_phone(phone: str, admin_id: int = Depends(current_admin_id), db: Session = Depends(get_db)):
    u = thread_store.find_user_by_phone(db, phone)
    if not u:
        raise HTTPException(404, "User not found")
    return ok(user=thread_store.user_summary(u))


@router.get("/presence")
def presence(request: Request, admin_id: int = Depends(current_admin_id)):
    # snapshot for dashboards that connect after chat:presence transitions were sent
    return ok(online=sorted(request.app.state.presence.online_users()))
