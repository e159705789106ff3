"""
API依赖项 - 认证和授权

除 ``settings.security.public_paths`` 外，所有请求都要求已认证主体
（无状态：每个请求从 Bearer 令牌或 access_token Cookie 中解析）。
``api.middleware.SecurityMiddleware`` 在路由匹配之前调用 ``check_request``，
路由依赖 ``authenticate`` 读取其结果。
"""
from typing import AsyncGenerator, Callable, Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from fastapi.security.utils import get_authorization_scheme_param

from core.config import settings
from core.security import Principal, decode_access_token, is_public_path, resolve_auditor
from domain.common.exceptions import (
    InsufficientPermissionsException,
    MaintenanceModeException,
    MissingTokenException,
)
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


http_bearer = HTTPBearer(
    scheme_name="Bearer",
    description="JWT Bearer token authentication",
    auto_error=False,
)


def _extract_token(request: Request) -> Optional[str]:
    """优先使用 Authorization 头，其次使用 Cookie"""
    scheme, credentials = get_authorization_scheme_param(request.headers.get("Authorization"))
    if scheme.lower() == "bearer" and credentials:
        return credentials
    return request.cookies.get(settings.security.token_cookie_name) or None


def ensure_not_in_maintenance(request: Request) -> None:
    """维护模式下拒绝非公开路径"""
    if settings.MAINTENANCE_MODE and not is_public_path(request.url.path):
        raise MaintenanceModeException()


def resolve_principal(request: Request) -> Principal:
    """解析当前主体

    公开路径上令牌缺失或无效时得到匿名主体；受保护路径无令牌时抛出
    MissingTokenException，令牌无效时 PyJWT 异常交由全局异常处理器映射。
    """
    public = is_public_path(request.url.path)
    token = _extract_token(request)
    if token is None:
        if not public:
            raise MissingTokenException()
        return Principal.anonymous()
    try:
        return decode_access_token(token)
    except jwt.InvalidTokenError:
        if public:
            return Principal.anonymous()
        raise


def check_request(request: Request) -> Principal:
    """维护模式检查在认证之前；结果缓存到 ``request.state.principal``"""
    ensure_not_in_maintenance(request)
    principal = resolve_principal(request)
    request.state.principal = principal
    return principal


async def authenticate(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
) -> Principal:
    """当前主体（``credentials`` 仅用于 OpenAPI 安全声明）"""
    cached = getattr(request.state, "principal", None)
    if cached is not None:
        return cached
    return check_request(request)


async def get_current_principal(principal: Principal = Depends(authenticate)) -> Principal:
    """获取当前已认证主体"""
    if not principal.authenticated:
        raise MissingTokenException()
    return principal


def require_roles(*roles: str) -> Callable[..., Principal]:
    """要求当前主体拥有全部角色"""

    async def _checker(principal: Principal = Depends(get_current_principal)) -> Principal:
        if not principal.has_roles(*roles):
            raise InsufficientPermissionsException()
        return principal

    return _checker


async def get_unit_of_work(
    principal: Principal = Depends(authenticate),
) -> AsyncGenerator[SQLAlchemyUnitOfWork, None]:
    """请求级 Unit of Work，审计操作人取自当前主体"""
    async with SQLAlchemyUnitOfWork(actor=resolve_auditor(principal)) as uow:
        yield uow
