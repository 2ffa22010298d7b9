"""
Who can see a message.

Each message has a soft-delete flag (plus timestamp) per audience. Everything
that reads or writes those flags goes through this module, so the retention
rules live in one place:

- the retention sweep hides *user-authored* messages from the *user* only;
- staff can hide messages from themselves, but only by hand.
"""
from __future__ import annotations
from datetime import datetime
from enum import Enum

from sqlalchemy import false

from supportchat.storage.models import Message


class Audience(str, Enum):
    USER = "user"
    ADMIN = "admin"


class SenderType(str, Enum):
    USER = "user"
    ADMIN = "admin"


_FLAGS = {
    Audience.USER: ("is_deleted_for_user", "deleted_for_user_at"),
    Audience.ADMIN: ("is_deleted_for_admin", "deleted_for_admin_at"),
}


def visible_filter(audience: Audience):
    """SQL criterion matching messages the audience can still see."""
    flag, _ = _FLAGS[Audience(audience)]
    return getattr(Message, flag) == false()


def hidden_values(audience: Audience, now: datetime) -> dict:
    """Column values for a bulk UPDATE that hides messages from the audience."""
    flag, stamp = _FLAGS[Audience(audience)]
    return {flag: True, stamp: now}
