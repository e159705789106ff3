"""Unit of Work 抽象定义"""
from __future__ import annotations

from abc import ABC, abstractmethod


class AbstractUnitOfWork(ABC):
    """应用层事务边界控制抽象

    ``actor`` 是本次事务中写入审计字段的操作人。
    """

    def __init__(self, *, actor: str, readonly: bool = False) -> None:
        self.actor = actor
        self._committed = False
        self._readonly = readonly

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc:
            await self.rollback()
        elif not self._readonly and not self._committed:
            # 只在非只读且未显式提交时自动提交
            await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        """提交事务"""
        ...

    @abstractmethod
    async def rollback(self) -> None:
        """回滚事务"""
        ...
