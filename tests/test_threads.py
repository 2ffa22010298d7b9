"""Thread store: single open thread, unread counters, previews, staff inbox."""

import itertools
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy.exc import IntegrityError

from supportchat.realtime.presence import PresenceTracker
from supportchat.services import messages as message_store
from supportchat.services import threads as thread_store
from supportchat.storage.models import Thread, User


def test_open_or_get_reuses_the_open_thread(db, alice):
    first = thread_store.open_or_get(db, alice.id, ip="10.0.0.1")
    second = thread_store.open_or_get(db, alice.id, ip="10.0.0.2")

    assert first.id == second.id
    assert db.query(Thread).filter_by(user_id=alice.id, status="open").count() == 1
    # ip captured at creation is kept
    assert second.user_ip == "10.0.0.1"


def test_open_or_get_backfills_missing_ip(db, alice):
    t = thread_store.open_or_get(db, alice.id)
    assert t.user_ip == ""
    again = thread_store.open_or_get(db, alice.id, ip="203.0.113.9")
    assert again.id == t.id
    assert again.user_ip == "203.0.113.9"


def test_closed_thread_is_not_reused(db, alice):
    t = thread_store.open_or_get(db, alice.id)
    t.status = "closed"
    db.commit()

    fresh = thread_store.open_or_get(db, alice.id)
    assert fresh.id != t.id
    assert fresh.status == "open"


def test_second_open_thread_for_a_user_is_rejected_by_the_database(db, alice):
    thread_store.open_or_get(db, alice.id)
    db.add(Thread(user_id=alice.id, status="open"))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_concurrent_open_or_get_yields_one_thread(file_session_factory, monkeypatch):
    setup = file_session_factory()
    user = User(full_name="Carol", phone_number="0901000003")
    setup.add(user)
    setup.commit()
    user_id = user.id
    setup.close()

    # both callers see "no open thread" before either inserts
    real_lookup = thread_store.get_open_thread
    gate = threading.Barrier(2)
    lookups = itertools.count()

    def lookup_then_wait(db, uid):
        t = real_lookup(db, uid)
        if next(lookups) < 2:
            gate.wait(timeout=5)
        return t

    monkeypatch.setattr(thread_store, "get_open_thread", lookup_then_wait)

    def open_thread():
        db = file_session_factory()
        try:
            return thread_store.open_or_get(db, user_id).id
        finally:
            db.close()

    with ThreadPoolExecutor(max_workers=2) as pool:
        ids = list(pool.map(lambda _: open_thread(), range(2)))

    check = file_session_factory()
    try:
        open_ids = [t.id for t in check.query(Thread).filter_by(user_id=user_id, status="open")]
    finally:
        check.close()
    assert len(open_ids) == 1
    assert ids == open_ids * 2


def test_touch_stamps_the_message_time(db, alice):
    t = thread_store.open_or_get(db, alice.id)
    m = message_store.append(db, t, sender_type="user", sender_id=alice.id, text="when?")
    db.refresh(t)
    assert t.last_message_at == m.created_at


def test_user_messages_count_against_staff_unread(db, alice):
    t = thread_store.open_or_get(db, alice.id)
    for i in range(3):
        message_store.append(db, t, sender_type="user", sender_id=alice.id, text=f"msg {i}")

    db.refresh(t)
    assert t.unread_for_admin == 3
    assert t.unread_for_user == 0
    assert t.last_message_text == "msg 2"


def test_staff_messages_count_against_user_unread(db, alice):
    t = thread_store.open_or_get(db, alice.id)
    message_store.append(db, t, sender_type="admin", sender_id=1, text="hello")
    message_store.append(db, t, sender_type="admin", sender_id=1, text="still there?")

    db.refresh(t)
    assert t.unread_for_user == 2
    assert t.unread_for_admin == 0


def test_image_message_preview_uses_placeholder(db, alice):
    t = thread_store.open_or_get(db, alice.id)
    message_store.append(db, t, sender_type="user", sender_id=alice.id, image_url="/uploads/1-a.png")
    db.refresh(t)
    assert t.last_message_text == "[image]"


def test_mark_read_by_admin_zeroes_counter_and_flags_messages(db, alice):
    t = thread_store.open_or_get(db, alice.id)
    m = message_store.append(db, t, sender_type="user", sender_id=alice.id, text="help")
    assert m.read_by_admin is False

    thread_store.mark_read_by_admin(db, t)

    db.refresh(t)
    db.refresh(m)
    assert t.unread_for_admin == 0
    assert m.read_by_admin is True


def test_mark_read_by_user(db, alice):
    t = thread_store.open_or_get(db, alice.id)
    m = message_store.append(db, t, sender_type="admin", sender_id=1, text="hi")
    thread_store.mark_read_by_user(db, t)
    db.refresh(t)
    db.refresh(m)
    assert t.unread_for_user == 0
    assert m.read_by_user is True


def test_delete_thread_cascades_to_messages(db, alice):
    t = thread_store.open_or_get(db, alice.id)
    message_store.append(db, t, sender_type="user", sender_id=alice.id, text="a")
    message_store.append(db, t, sender_type="admin", sender_id=1, text="b")
    tid = t.id

    removed = thread_store.delete_thread(db, t)

    assert removed == 2
    assert thread_store.get_thread(db, tid) is None
    assert message_store.list_for_admin(db, tid) == []


def test_list_threads_sorted_searchable_and_annotated(db, alice, bob):
    ta = thread_store.open_or_get(db, alice.id)
    tb = thread_store.open_or_get(db, bob.id)
    message_store.append(db, ta, sender_type="user", sender_id=alice.id, text="Where is my withdrawal?")
    message_store.append(db, tb, sender_type="user", sender_id=bob.id, text="VIP question")

    presence = PresenceTracker()
    presence.connect(bob.id)

    res = thread_store.list_threads(db, page=1, limit=10, presence=presence)
    assert [t["id"] for t in res["threads"]] == [tb.id, ta.id]
    assert res["pagination"] == {"current": 1, "pages": 1, "total": 2}
    by_id = {t["id"]: t for t in res["threads"]}
    assert by_id[tb.id]["userOnline"] is True
    assert by_id[ta.id]["userOnline"] is False
    assert by_id[ta.id]["user"]["phoneNumber"] == "0901000001"

    found = thread_store.list_threads(db, q="WITHDRAWAL")
    assert [t["id"] for t in found["threads"]] == [ta.id]


def test_list_threads_search_treats_wildcards_literally(db, alice, bob):
    ta = thread_store.open_or_get(db, alice.id)
    tb = thread_store.open_or_get(db, bob.id)
    message_store.append(db, ta, sender_type="user", sender_id=alice.id, text="100% sure")
    message_store.append(db, tb, sender_type="user", sender_id=bob.id, text="1000 coins")

    found = thread_store.list_threads(db, q="0%")
    assert [t["id"] for t in found["threads"]] == [ta.id]


def test_list_threads_paginates(db, alice, bob):
    for u in (alice, bob):
        t = thread_store.open_or_get(db, u.id)
        message_store.append(db, t, sender_type="user", sender_id=u.id, text="hi")

    page2 = thread_store.list_threads(db, page=2, limit=1)
    assert len(page2["threads"]) == 1
    assert page2["pagination"] == {"current": 2, "pages": 2, "total": 2}


def test_stamp_last_seen(db, alice):
    assert alice.last_seen_at is None
    thread_store.stamp_last_seen(db, alice.id)
    db.refresh(alice)
    assert alice.last_seen_at is not None
