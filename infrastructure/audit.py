"""
审计字段写入

在 ``before_flush`` 事件中为新增/修改的审计实体写入时间与操作人。
操作人通过 ``Session.info["actor"]`` 显式传入（见 ``SQLAlchemyUnitOfWork``），
未提供时记为 anonymous。
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from core.logging_config import get_logger
from core.security import ANONYMOUS


logger = get_logger(__name__)

ACTOR_KEY = "actor"

# 只允许首次持久化时写入的字段
IMMUTABLE_AUDIT_FIELDS = ("created_at", "created_by")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def set_actor(session: Any, actor: Optional[str]) -> None:
    """绑定会话的操作人（Session 与 AsyncSession 共用同一个 info 字典）"""
    session.info[ACTOR_KEY] = actor or ANONYMOUS


def get_actor(session: Any) -> str:
    return session.info.get(ACTOR_KEY) or ANONYMOUS


def _has_timestamps(obj: object) -> bool:
    return getattr(type(obj), "__audit_timestamps__", False)


def _has_actors(obj: object) -> bool:
    return getattr(type(obj), "__audit_actors__", False)


def stamp_created(obj: Any, actor: str, now: datetime) -> None:
    obj.created_at = now
    obj.updated_at = now
    if _has_actors(obj):
        obj.created_by = actor
        obj.updated_by = actor


def stamp_updated(obj: Any, actor: str, now: datetime) -> None:
    obj.updated_at = now
    if _has_actors(obj):
        obj.updated_by = actor


def _restore_immutable_fields(obj: Any) -> None:
    state = inspect(obj)
    for name in IMMUTABLE_AUDIT_FIELDS:
        if name not in state.attrs:
            continue
        history = state.attrs[name].history
        if history.has_changes() and history.deleted:
            logger.warning("audit_field_reset", entity=type(obj).__name__, field=name)
            setattr(obj, name, history.deleted[0])


@event.listens_for(Session, "before_flush")
def _audit_before_flush(session: Session, flush_context, instances) -> None:
    actor = get_actor(session)
    now = utcnow()
    for obj in session.new:
        if _has_timestamps(obj):
            stamp_created(obj, actor, now)
    for obj in session.dirty:
        if not _has_timestamps(obj) or not session.is_modified(obj, include_collections=False):
            continue
        _restore_immutable_fields(obj)
        stamp_updated(obj, actor, now)
