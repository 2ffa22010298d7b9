"""Terminal helpers."""

from supportchat.auth import decode_admin_token, decode_user_token
from supportchat.tools import cli_chat, make_token


def test_format_message():
    assert cli_chat.format_message({"senderType": "admin", "text": "Hi"}) == "[SUPPORT] Hi"
    assert cli_chat.format_message({"senderType": "user", "text": "", "imageUrl": "/uploads/1-a.png"}) == \
        "[YOU] [image] /uploads/1-a.png"


def test_print_new_skips_seen(capsys):
    seen = set()
    msgs = [{"id": 1, "senderType": "user", "text": "a"}, {"id": 2, "senderType": "admin", "text": "b"}]
    cli_chat.print_new(msgs, seen)
    cli_chat.print_new(msgs + [{"id": 3, "senderType": "admin", "text": "c"}], seen)

    out = capsys.readouterr().out.splitlines()
    assert out == ["[YOU] a", "[SUPPORT] b", "[SUPPORT] c"]


def test_post_sends_bearer_and_unwraps_data(monkeypatch):
    calls = {}

    class FakeResponse:
        def raise_for_status(self):
            pass

        def json(self):
            return {"success": True, "data": {"threadId": 12}}

    def fake_post(url, json=None, headers=None, timeout=None):
        calls.update(url=url, json=json, headers=headers)
        return FakeResponse()

    monkeypatch.setattr(cli_chat.requests, "post", fake_post)
    assert cli_chat.post("http://srv", "/api/chat/thread", "tok") == {"threadId": 12}
    assert calls["url"] == "http://srv/api/chat/thread"
    assert calls["headers"] == {"Authorization": "Bearer tok"}


def test_make_token_roles(capsys):
    user = make_token.main(["user", "4"])
    admin = make_token.main(["admin", "2"])
    assert decode_user_token(user) == 4
    assert decode_admin_token(admin) == 2
    assert capsys.readouterr().out.split() == [user, admin]
