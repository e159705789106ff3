"""
异常映射与全局异常处理器

所有异常都经过同一个有序规则表 ``EXCEPTION_RULES``：自上而下匹配，第一条命中的
规则决定错误码与消息；最后一条规则兜底 ``Exception``。框架的异常处理器注册只用于把
异常送进 ``resolve_exception``，不依赖框架按继承关系挑选处理器。
"""
from __future__ import annotations

import asyncio
from concurrent.futures import BrokenExecutor
from dataclasses import dataclass
from http import HTTPStatus
from typing import Callable, Iterable, Optional, Union

import httpx
import jwt
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import DBAPIError, IntegrityError, NoResultFound, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.logging_config import get_logger
from core.response import ErrorResponse, FieldError
from domain.common.exceptions import BusinessException, MaintenanceModeException
from shared.codes import ErrorCode


logger = get_logger(__name__)

# SQLSTATE 23000: integrity constraint violation (MySQL/H2 通用类)
# SQLSTATE 40001: serialization failure
VERSION_CONFLICT_SQLSTATES = frozenset({"23000", "40001"})

PARAMETER_LOCATIONS = frozenset({"query", "path", "header", "cookie"})

ErrorCodePolicy = Union[ErrorCode, Callable[[BaseException], ErrorCode]]
MessagePolicy = Union[None, str, Callable[[BaseException], Optional[str]]]


@dataclass(frozen=True)
class ExceptionRule:
    """一条映射规则

    Attributes:
        exc_types: 匹配的异常类型
        error_code: 固定错误码，或从异常中取错误码的函数
        message: None 使用错误码默认消息；字符串为固定消息；函数从异常中取消息
        when: 额外的匹配条件
        field_errors: 从异常中提取字段错误
        log_level: error / warning
        with_traceback: 日志是否附带堆栈
    """

    exc_types: tuple[type[BaseException], ...]
    error_code: ErrorCodePolicy
    message: MessagePolicy = None
    when: Optional[Callable[[BaseException], bool]] = None
    field_errors: Optional[Callable[[BaseException], list[FieldError]]] = None
    log_level: str = "error"
    with_traceback: bool = True

    def matches(self, exc: BaseException) -> bool:
        if not isinstance(exc, self.exc_types):
            return False
        return self.when is None or bool(self.when(exc))

    def resolve_code(self, exc: BaseException) -> ErrorCode:
        if isinstance(self.error_code, ErrorCode):
            return self.error_code
        return self.error_code(exc)

    def resolve_message(self, exc: BaseException) -> Optional[str]:
        if self.message is None or isinstance(self.message, str):
            return self.message
        return self.message(exc)


@dataclass(frozen=True)
class ResolvedError:
    error_code: ErrorCode
    response: ErrorResponse
    rule: ExceptionRule

    @property
    def status_code(self) -> int:
        return self.error_code.http_status


# --- 匹配条件 ---

def _validation_errors(exc: BaseException) -> list[dict]:
    try:
        return list(exc.errors())  # type: ignore[attr-defined]
    except Exception:
        return []


def _has_json_decode_error(exc: BaseException) -> bool:
    return any(err.get("type") == "json_invalid" for err in _validation_errors(exc))


def _in_parameters(err: dict) -> bool:
    loc = err.get("loc") or ()
    return bool(loc) and loc[0] in PARAMETER_LOCATIONS


def _has_missing_parameter(exc: BaseException) -> bool:
    return any(
        err.get("type") == "missing" and _in_parameters(err)
        for err in _validation_errors(exc)
    )


def _has_invalid_parameter(exc: BaseException) -> bool:
    return any(_in_parameters(err) for err in _validation_errors(exc))


def sql_state(exc: BaseException) -> Optional[str]:
    """DB-API 驱动的 SQLSTATE（psycopg/asyncpg: sqlstate，psycopg2: pgcode）"""
    orig = getattr(exc, "orig", None)
    for attr in ("sqlstate", "pgcode"):
        value = getattr(orig, attr, None)
        if value:
            return str(value)
    return None


def _is_version_conflict(exc: BaseException) -> bool:
    return sql_state(exc) in VERSION_CONFLICT_SQLSTATES


# --- 错误码 / 消息提取 ---

def _business_code(exc: BaseException) -> ErrorCode:
    return exc.error_code  # type: ignore[attr-defined]


def _business_message(exc: BaseException) -> str:
    return exc.message  # type: ignore[attr-defined]


_HTTP_STATUS_CODES: dict[int, ErrorCode] = {
    HTTPStatus.BAD_REQUEST: ErrorCode.INVALID_REQUEST_PARAMETER,
    HTTPStatus.UNAUTHORIZED: ErrorCode.UNAUTHORIZED_RESOURCE_OWNER,
    HTTPStatus.FORBIDDEN: ErrorCode.INVALID_RESOURCE_OWNER,
    HTTPStatus.NOT_FOUND: ErrorCode.ENDPOINT_NOT_FOUND,
    HTTPStatus.METHOD_NOT_ALLOWED: ErrorCode.INVALID_REQUEST_METHOD,
    HTTPStatus.CONFLICT: ErrorCode.RESOURCE_CONFLICT,
    HTTPStatus.REQUEST_ENTITY_TOO_LARGE: ErrorCode.REQUEST_SIZE_EXCEEDED,
    HTTPStatus.UNSUPPORTED_MEDIA_TYPE: ErrorCode.UNSUPPORTED_MEDIA_TYPE,
    HTTPStatus.UNPROCESSABLE_ENTITY: ErrorCode.UNPROCESSABLE_REQUEST,
    HTTPStatus.TOO_MANY_REQUESTS: ErrorCode.RATE_LIMIT_EXCEEDED,
    HTTPStatus.SERVICE_UNAVAILABLE: ErrorCode.SERVICE_UNAVAILABLE_NOW,
    HTTPStatus.GATEWAY_TIMEOUT: ErrorCode.TIMEOUT,
}


def _http_exception_code(exc: BaseException) -> ErrorCode:
    status_code = exc.status_code  # type: ignore[attr-defined]
    # 路由未匹配时 detail 为默认短语；应用自定义 detail 表示资源不存在
    if status_code == HTTPStatus.NOT_FOUND and _http_exception_message(exc) is not None:
        return ErrorCode.NOT_FOUND_RESOURCE
    code = _HTTP_STATUS_CODES.get(status_code)
    if code is not None:
        return code
    if status_code >= 500:
        return ErrorCode.SERVER_ERROR
    return ErrorCode.INVALID_REQUEST_PARAMETER


def _http_exception_message(exc: BaseException) -> Optional[str]:
    """自定义 detail 原样透出；框架默认的状态短语则使用错误码默认消息"""
    detail = exc.detail  # type: ignore[attr-defined]
    if not isinstance(detail, str) or not detail:
        return None
    try:
        if detail == HTTPStatus(exc.status_code).phrase:  # type: ignore[attr-defined]
            return None
    except ValueError:
        pass
    return detail


def _request_field_errors(exc: BaseException) -> list[FieldError]:
    return FieldError.from_pydantic(_validation_errors(exc), skip_location=True)


def _model_field_errors(exc: BaseException) -> list[FieldError]:
    return FieldError.from_pydantic(_validation_errors(exc))


EXCEPTION_RULES: tuple[ExceptionRule, ...] = (
    # 业务异常
    ExceptionRule(
        (MaintenanceModeException,), ErrorCode.MAINTENANCE_MODE,
        message=_business_message, log_level="warning", with_traceback=False,
    ),
    ExceptionRule((BusinessException,), _business_code, message=_business_message),

    # 请求解析 / 校验
    ExceptionRule(
        (RequestValidationError,), ErrorCode.INVALID_REQUEST_BODY,
        message="Request body could not be read. Check that it is valid JSON.",
        when=_has_json_decode_error,
    ),
    ExceptionRule(
        (RequestValidationError,), ErrorCode.MISSING_REQUIRED_FIELD,
        message="A required parameter is missing.",
        when=_has_missing_parameter,
    ),
    ExceptionRule(
        (RequestValidationError,), ErrorCode.INVALID_INPUT_FORMAT,
        message="Request parameter format is invalid.",
        when=_has_invalid_parameter,
    ),
    ExceptionRule(
        (RequestValidationError,), ErrorCode.INVALID_REQUEST_PARAMETER,
        message="Request parameters are invalid.",
        field_errors=_request_field_errors,
    ),
    ExceptionRule(
        (ValidationError,), ErrorCode.VALIDATION_FAILED,
        message="Request data violates validation rules.",
        field_errors=_model_field_errors,
    ),

    # 令牌
    ExceptionRule(
        (jwt.ExpiredSignatureError,), ErrorCode.TOKEN_EXPIRED,
        message="Authentication token has expired.",
    ),
    ExceptionRule(
        (jwt.InvalidSignatureError,), ErrorCode.TOKEN_SIGNATURE_INVALID,
        message="Token signature is invalid.",
    ),
    ExceptionRule(
        (jwt.InvalidTokenError,), ErrorCode.INVALID_TOKEN,
        message="Invalid authentication token.",
    ),

    # 框架 HTTP 异常（路由不存在、方法不允许等）
    ExceptionRule(
        (StarletteHTTPException,), _http_exception_code, message=_http_exception_message,
    ),

    # 持久化
    ExceptionRule(
        (StaleDataError,), ErrorCode.CONCURRENT_MODIFICATION,
        message="The resource was modified by another user. Please try again.",
    ),
    ExceptionRule(
        (NoResultFound,), ErrorCode.NOT_FOUND_RESOURCE,
        message="Requested entity was not found.",
    ),
    ExceptionRule(
        (IntegrityError,), ErrorCode.DATA_INTEGRITY_VIOLATION,
        message="Data integrity violation occurred.",
    ),
    ExceptionRule(
        (DBAPIError,), ErrorCode.VERSION_CONFLICT,
        message="Resource version conflict occurred.",
        when=_is_version_conflict,
    ),
    ExceptionRule(
        (SQLAlchemyError,), ErrorCode.DATABASE_ERROR,
        message="Database error occurred.",
    ),

    # 外部调用 / IO
    ExceptionRule(
        (TimeoutError, asyncio.TimeoutError, httpx.TimeoutException), ErrorCode.TIMEOUT,
        message="External service response timed out.",
    ),
    ExceptionRule(
        (ConnectionError, httpx.ConnectError), ErrorCode.INTEGRATION_ERROR,
        message="Error while integrating with an external system.",
    ),
    ExceptionRule(
        (httpx.HTTPError,), ErrorCode.EXTERNAL_API_ERROR,
        message="Error while calling an external API.",
    ),
    ExceptionRule(
        (OSError,), ErrorCode.FILE_PROCESSING_ERROR,
        message="Error while processing a file.",
    ),
    ExceptionRule(
        (BrokenExecutor,), ErrorCode.SERVICE_UNAVAILABLE_NOW,
        message="Service is temporarily unavailable.",
    ),

    # 通用
    ExceptionRule(
        (NotImplementedError,), ErrorCode.UNPROCESSABLE_REQUEST,
        message="Request cannot be processed.",
    ),
    ExceptionRule(
        (ValueError,), ErrorCode.RESOURCE_CONFLICT,
        message="Resource conflict occurred.",
    ),
    # 两个 500 兜底：RuntimeError 与其他所有异常使用不同错误码
    ExceptionRule(
        (RuntimeError,), ErrorCode.UNEXPECTED_ERROR,
        message="Unexpected error occurred.",
    ),
    ExceptionRule(
        (Exception,), ErrorCode.SERVER_ERROR,
        message="Internal server error occurred.",
    ),
)


def resolve_exception(
    exc: BaseException,
    rules: Iterable[ExceptionRule] = EXCEPTION_RULES,
) -> ResolvedError:
    """按顺序匹配规则，返回错误码与响应体（无副作用）"""
    for rule in rules:
        if rule.matches(exc):
            code = rule.resolve_code(exc)
            errors = rule.field_errors(exc) if rule.field_errors else None
            response = ErrorResponse.of(code, message=rule.resolve_message(exc), errors=errors)
            return ResolvedError(error_code=code, response=response, rule=rule)
    # 规则表以 Exception 兜底，只有 BaseException 的其他子类（或自定义规则表）会走到这里
    code = ErrorCode.SERVER_ERROR
    return ResolvedError(
        error_code=code,
        response=ErrorResponse.of(code),
        rule=EXCEPTION_RULES[-1],
    )


def _log_resolved(request: Request, exc: BaseException, resolved: ResolvedError) -> None:
    """记录日志；日志失败不影响响应"""
    try:
        rule = resolved.rule
        log = logger.warning if rule.log_level == "warning" else logger.error
        log(
            "exception_handled",
            code=resolved.error_code.code,
            status=resolved.status_code,
            error_type=type(exc).__name__,
            error=str(exc),
            method=request.method,
            path=request.url.path,
            request_id=getattr(request.state, "request_id", None),
            exc_info=exc if rule.with_traceback else None,
        )
    except Exception:
        pass


def _handler_exception_types(rules: Iterable[ExceptionRule]) -> list[type[BaseException]]:
    seen: list[type[BaseException]] = []
    for rule in rules:
        for exc_type in rule.exc_types:
            if exc_type not in seen:
                seen.append(exc_type)
    return seen


def exception_response(request: Request, exc: BaseException) -> JSONResponse:
    """解析异常、记录日志并生成统一错误响应"""
    resolved = resolve_exception(exc)
    _log_resolved(request, exc, resolved)

    headers: dict[str, str] = {}
    if isinstance(exc, StarletteHTTPException) and exc.headers:
        headers.update(exc.headers)
    if resolved.status_code == HTTPStatus.UNAUTHORIZED:
        headers.setdefault("WWW-Authenticate", "Bearer")
    return JSONResponse(
        status_code=resolved.status_code,
        content=resolved.response.to_payload(),
        headers=headers or None,
    )


async def handle_exception(request: Request, exc: Exception) -> JSONResponse:
    return exception_response(request, exc)


def register_exception_handlers(app: FastAPI) -> None:
    """
    注册全局异常处理器

    ``Exception`` 兜底处理器由 Starlette 挂在最外层的 ServerErrorMiddleware 上，
    未匹配的异常应先由 ``api.middleware.ExceptionGuardMiddleware`` 在内层处理，
    以保留 CORS 与 X-Request-ID 响应头。

    Args:
        app: FastAPI应用实例
    """
    for exc_type in _handler_exception_types(EXCEPTION_RULES):
        app.add_exception_handler(exc_type, handle_exception)
