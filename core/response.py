"""
统一响应格式定义

成功响应: ``{"message": ..., "data": ...}``（data 为空时省略）
错误响应: ``{"message", "status", "code", "errors"?, "timestamp"}``（errors 为空时省略）
"""
from datetime import datetime
from typing import Any, Generic, Iterable, Mapping, Optional, Sequence, TypeVar, Union
from zoneinfo import ZoneInfo

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_serializer

from core.config import settings
from shared.codes import ErrorCode


T = TypeVar("T")

FieldErrorLike = Union["FieldError", Sequence[Any]]


def now_in_zone() -> datetime:
    """当前时间（固定时区，见 settings.TIMEZONE）"""
    return datetime.now(ZoneInfo(settings.TIMEZONE))


class FieldError(BaseModel):
    """单个字段的校验失败"""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    field: str
    rejected_value: Optional[str] = Field(
        default=None,
        serialization_alias="value",
        validation_alias=AliasChoices("value", "rejected_value"),
    )
    reason: Optional[str] = None

    @classmethod
    def of(cls, item: FieldErrorLike) -> "FieldError":
        """Accept a ``FieldError`` or a ``(field, rejected_value, reason)`` triple."""
        if isinstance(item, FieldError):
            return item
        field, rejected_value, reason = item
        return cls(
            field=str(field),
            rejected_value=None if rejected_value is None else str(rejected_value),
            reason=reason,
        )

    @classmethod
    def from_pydantic(
        cls,
        errors: Iterable[Mapping[str, Any]],
        *,
        skip_location: bool = False,
    ) -> list["FieldError"]:
        """Convert pydantic/FastAPI error dicts, keeping their order.

        ``skip_location`` drops the first ``loc`` item (``body``/``query``...)
        that FastAPI prepends to request validation errors.
        """
        result = []
        for err in errors:
            loc = list(err.get("loc", ()))
            if skip_location:
                loc = loc[1:]
            # "missing" carries the parent object as input, not a rejected value
            raw = None if err.get("type") == "missing" else err.get("input")
            result.append(
                cls(
                    field=".".join(str(part) for part in loc),
                    rejected_value=None if raw is None else str(raw),
                    reason=err.get("msg"),
                )
            )
        return result


class ErrorResponse(BaseModel):
    """统一错误响应模型"""

    message: str
    status: int
    code: str
    errors: list[FieldError] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=now_in_zone)

    @model_serializer(mode="wrap")
    def _omit_empty_errors(self, handler):
        data = handler(self)
        if not data.get("errors"):
            data.pop("errors", None)
        return data

    @classmethod
    def of(
        cls,
        error_code: ErrorCode,
        message: Optional[str] = None,
        errors: Optional[Iterable[FieldErrorLike]] = None,
    ) -> "ErrorResponse":
        """Build the envelope for ``error_code``.

        Args:
            error_code: 错误码条目
            message: 覆盖默认消息
            errors: 字段错误（顺序保持不变）
        """
        return cls(
            message=error_code.message if message is None else message,
            status=error_code.http_status,
            code=error_code.code,
            errors=[FieldError.of(item) for item in errors or ()],
        )

    def to_payload(self) -> dict:
        """JSON 可序列化的字典（线上格式）"""
        return self.model_dump(mode="json", by_alias=True)


class ApiResponse(BaseModel, Generic[T]):
    """统一成功响应模型"""

    message: str
    data: Optional[T] = None

    @model_serializer(mode="wrap")
    def _omit_null_data(self, handler):
        data = handler(self)
        if data.get("data") is None:
            data.pop("data", None)
        return data


def success_response(data: Any = None, message: str = "Success") -> ApiResponse:
    """
    创建成功响应

    Args:
        data: 返回数据
        message: 成功消息
    """
    return ApiResponse(message=message, data=data)


def error_response(
    error_code: ErrorCode,
    message: Optional[str] = None,
    errors: Optional[Iterable[FieldErrorLike]] = None,
) -> ErrorResponse:
    """创建错误响应，参见 ``ErrorResponse.of``"""
    return ErrorResponse.of(error_code, message=message, errors=errors)
