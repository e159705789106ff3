"""
数据库模型基类（SQLAlchemy 2.0 风格）

- ``TimestampAuditMixin``: 主键 + 创建/更新时间
- ``AuditMixin``: 额外记录创建人/更新人

审计字段由 ``infrastructure.audit`` 在 flush 时写入，模型代码不应直接赋值。
"""
from datetime import datetime

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class TimestampAuditMixin:
    """主键与时间审计字段"""

    __audit_timestamps__ = True

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, active_history=True, comment="创建时间"
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, comment="最后更新时间"
    )


class AuditMixin(TimestampAuditMixin):
    """时间审计 + 操作人审计"""

    __audit_actors__ = True

    created_by: Mapped[str] = mapped_column(
        String(100), nullable=False, active_history=True, comment="创建人"
    )
    updated_by: Mapped[str] = mapped_column(String(100), nullable=False, comment="最后更新人")


# 元数据对象用于数据库迁移
metadata = Base.metadata
