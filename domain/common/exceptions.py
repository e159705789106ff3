"""领域层业务异常定义，供领域与基础设施使用。

每个异常都携带一个 ``ErrorCode``（状态码/业务码/默认消息），核心（core）层
只负责把异常映射为统一的错误响应，领域层不反向依赖核心层。
"""
from __future__ import annotations

from typing import Optional

from shared.codes import ErrorCode


class BusinessException(Exception):
    """业务异常基类

    ``message`` 为空时使用 ``error_code`` 的默认消息。
    """

    default_error_code: ErrorCode = ErrorCode.BUSINESS_RULE_VIOLATION

    def __init__(
        self,
        error_code: Optional[ErrorCode] = None,
        message: Optional[str] = None,
    ) -> None:
        self.error_code = error_code or self.default_error_code
        self.message = message or self.error_code.message
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.error_code.code!r}, message={self.message!r})"


class _FixedCodeException(BusinessException):
    """固定业务码的异常：构造时只接受可选消息。"""

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(self.default_error_code, message)


class BusinessRuleViolationException(_FixedCodeException):
    default_error_code = ErrorCode.BUSINESS_RULE_VIOLATION


class EntityNotFoundException(_FixedCodeException):
    default_error_code = ErrorCode.NOT_FOUND_RESOURCE


class DuplicateResourceException(_FixedCodeException):
    default_error_code = ErrorCode.DUPLICATE_RESOURCE


class AccessDeniedException(_FixedCodeException):
    default_error_code = ErrorCode.INVALID_RESOURCE_OWNER


class RateLimitExceededException(_FixedCodeException):
    default_error_code = ErrorCode.RATE_LIMIT_EXCEEDED


class MaintenanceModeException(_FixedCodeException):
    default_error_code = ErrorCode.MAINTENANCE_MODE


# --- 认证 / 授权 ---

class AuthenticationException(_FixedCodeException):
    """认证失败（未细分原因）"""

    default_error_code = ErrorCode.UNAUTHORIZED_RESOURCE_OWNER


class BadCredentialsException(AuthenticationException):
    default_error_code = ErrorCode.INVALID_CREDENTIALS


class MissingTokenException(AuthenticationException):
    default_error_code = ErrorCode.MISSING_TOKEN


class InvalidTokenException(AuthenticationException):
    default_error_code = ErrorCode.INVALID_TOKEN


class TokenExpiredException(AuthenticationException):
    default_error_code = ErrorCode.TOKEN_EXPIRED


class TokenSignatureException(AuthenticationException):
    default_error_code = ErrorCode.TOKEN_SIGNATURE_INVALID


class InsufficientPermissionsException(AuthenticationException):
    default_error_code = ErrorCode.INSUFFICIENT_PERMISSIONS


class AccountLockedException(AuthenticationException):
    default_error_code = ErrorCode.ACCESS_LIMIT_EXCEEDED


class AccountDisabledException(AuthenticationException):
    default_error_code = ErrorCode.ACCOUNT_DISABLED


__all__ = [
    "BusinessException",
    "BusinessRuleViolationException",
    "EntityNotFoundException",
    "DuplicateResourceException",
    "AccessDeniedException",
    "RateLimitExceededException",
    "MaintenanceModeException",
    "AuthenticationException",
    "BadCredentialsException",
    "MissingTokenException",
    "InvalidTokenException",
    "TokenExpiredException",
    "TokenSignatureException",
    "InsufficientPermissionsException",
    "AccountLockedException",
    "AccountDisabledException",
]
