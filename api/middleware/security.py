"""
安全与异常兜底中间件

- ``SecurityMiddleware``: 路由匹配之前执行维护模式检查与认证，
  未认证请求访问不存在的路径同样返回 401
- ``ExceptionGuardMiddleware``: 在 CORS / Request ID 中间件内层处理未捕获异常，
  响应仍带有这些中间件添加的响应头
"""
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from api.dependencies import check_request
from core.exceptions import exception_response


class SecurityMiddleware(BaseHTTPMiddleware):
    """Resolve the principal for every request before routing."""

    async def dispatch(self, request: Request, call_next):
        check_request(request)
        return await call_next(request)


class ExceptionGuardMiddleware(BaseHTTPMiddleware):
    """Turn any exception escaping the inner layers into the error envelope."""

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            return exception_response(request, exc)
