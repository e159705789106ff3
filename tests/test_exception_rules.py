import asyncio
from concurrent.futures import BrokenExecutor

import httpx
import jwt
import pytest
from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import DBAPIError, IntegrityError, NoResultFound, OperationalError
from sqlalchemy.orm.exc import StaleDataError
from starlette.exceptions import HTTPException

from core.exceptions import EXCEPTION_RULES, resolve_exception, sql_state
from domain.common.exceptions import (
    AccountDisabledException,
    AccountLockedException,
    BusinessException,
    BusinessRuleViolationException,
    EntityNotFoundException,
    InsufficientPermissionsException,
    MaintenanceModeException,
    MissingTokenException,
    RateLimitExceededException,
    TokenExpiredException,
    TokenSignatureException,
)
from shared.codes import ErrorCode


class _DriverError(Exception):
    """Stand-in for a DB-API driver exception exposing SQLSTATE."""

    def __init__(self, sqlstate=None, pgcode=None):
        super().__init__(f"driver error {sqlstate or pgcode}")
        self.sqlstate = sqlstate
        self.pgcode = pgcode


def _dbapi_error(cls=DBAPIError, **kwargs):
    return cls("UPDATE t SET v = 1", {}, _DriverError(**kwargs))


class _Payload(BaseModel):
    name: str
    age: int


def _code(exc):
    return resolve_exception(exc).error_code


def test_last_rule_is_catch_all():
    assert EXCEPTION_RULES[-1].exc_types == (Exception,)
    assert EXCEPTION_RULES[-1].error_code is ErrorCode.SERVER_ERROR


def test_business_exception_uses_entry_default_message():
    resolved = resolve_exception(BusinessException(ErrorCode.BUSINESS_RULE_VIOLATION))
    assert resolved.response.code == "C422-03"
    assert resolved.response.status == 422
    assert resolved.response.message == ErrorCode.BUSINESS_RULE_VIOLATION.message


def test_business_exception_keeps_own_message():
    resolved = resolve_exception(BusinessException(ErrorCode.DUPLICATE_RESOURCE, "email taken"))
    assert resolved.error_code is ErrorCode.DUPLICATE_RESOURCE
    assert resolved.response.message == "email taken"


@pytest.mark.parametrize(
    "exc, expected",
    [
        (BusinessRuleViolationException("no"), ErrorCode.BUSINESS_RULE_VIOLATION),
        (EntityNotFoundException(), ErrorCode.NOT_FOUND_RESOURCE),
        (RateLimitExceededException(), ErrorCode.RATE_LIMIT_EXCEEDED),
        (MissingTokenException(), ErrorCode.MISSING_TOKEN),
        (TokenExpiredException(), ErrorCode.TOKEN_EXPIRED),
        (TokenSignatureException(), ErrorCode.TOKEN_SIGNATURE_INVALID),
        (InsufficientPermissionsException(), ErrorCode.INSUFFICIENT_PERMISSIONS),
        (AccountLockedException(), ErrorCode.ACCESS_LIMIT_EXCEEDED),
        (AccountDisabledException(), ErrorCode.ACCOUNT_DISABLED),
    ],
)
def test_domain_exceptions_carry_their_entry(exc, expected):
    assert _code(exc) is expected


def test_maintenance_mode_logs_at_warning_without_traceback():
    resolved = resolve_exception(MaintenanceModeException("back at 10:00"))
    assert resolved.error_code is ErrorCode.MAINTENANCE_MODE
    assert resolved.response.message == "back at 10:00"
    assert resolved.rule.log_level == "warning"
    assert resolved.rule.with_traceback is False


@pytest.mark.parametrize(
    "exc, expected",
    [
        (jwt.ExpiredSignatureError("expired"), ErrorCode.TOKEN_EXPIRED),
        (jwt.InvalidSignatureError("bad sig"), ErrorCode.TOKEN_SIGNATURE_INVALID),
        (jwt.DecodeError("garbage"), ErrorCode.INVALID_TOKEN),
    ],
)
def test_token_failures(exc, expected):
    assert _code(exc) is expected


def test_sqlstate_23000_is_version_conflict():
    exc = _dbapi_error(OperationalError, sqlstate="23000")
    resolved = resolve_exception(exc)
    assert resolved.response.code == "C409-03"
    assert resolved.status_code == 409


def test_sqlstate_40001_is_version_conflict():
    assert _code(_dbapi_error(pgcode="40001")) is ErrorCode.VERSION_CONFLICT


def test_unmapped_sqlstate_is_database_error():
    resolved = resolve_exception(_dbapi_error(sqlstate="42S00"))
    assert resolved.response.code == "S500-02"


def test_integrity_error_does_not_leak_details():
    exc = _dbapi_error(IntegrityError, sqlstate="23505")
    resolved = resolve_exception(exc)
    assert resolved.error_code is ErrorCode.DATA_INTEGRITY_VIOLATION
    assert "UPDATE" not in resolved.response.message
    assert "23505" not in resolved.response.message


def test_sql_state_reads_driver_attributes():
    assert sql_state(_dbapi_error(sqlstate="40001")) == "40001"
    assert sql_state(_dbapi_error(pgcode="23000")) == "23000"
    assert sql_state(RuntimeError()) is None


@pytest.mark.parametrize(
    "exc, expected",
    [
        (StaleDataError("version mismatch"), ErrorCode.CONCURRENT_MODIFICATION),
        (NoResultFound("none"), ErrorCode.NOT_FOUND_RESOURCE),
        (TimeoutError(), ErrorCode.TIMEOUT),
        (asyncio.TimeoutError(), ErrorCode.TIMEOUT),
        (httpx.ReadTimeout("slow"), ErrorCode.TIMEOUT),
        (ConnectionRefusedError(), ErrorCode.INTEGRATION_ERROR),
        (httpx.ConnectError("refused"), ErrorCode.INTEGRATION_ERROR),
        (httpx.RemoteProtocolError("broken"), ErrorCode.EXTERNAL_API_ERROR),
        (FileNotFoundError("missing.csv"), ErrorCode.FILE_PROCESSING_ERROR),
        (BrokenExecutor(), ErrorCode.SERVICE_UNAVAILABLE_NOW),
        (NotImplementedError(), ErrorCode.UNPROCESSABLE_REQUEST),
        (ValueError("duplicate name"), ErrorCode.RESOURCE_CONFLICT),
        (RuntimeError("bad state"), ErrorCode.UNEXPECTED_ERROR),
        (KeyError("k"), ErrorCode.SERVER_ERROR),
        (Exception("boom"), ErrorCode.SERVER_ERROR),
    ],
)
def test_library_failures(exc, expected):
    assert _code(exc) is expected


def test_two_distinct_server_error_fallbacks():
    assert _code(RuntimeError()) is ErrorCode.UNEXPECTED_ERROR
    assert _code(LookupError()) is ErrorCode.SERVER_ERROR
    assert ErrorCode.UNEXPECTED_ERROR.http_status == ErrorCode.SERVER_ERROR.http_status == 500


def test_model_validation_error_lists_fields():
    with pytest.raises(ValidationError) as info:
        _Payload(name=None, age="old")
    resolved = resolve_exception(info.value)
    assert resolved.error_code is ErrorCode.VALIDATION_FAILED
    assert [e.field for e in resolved.response.errors] == ["name", "age"]
    assert resolved.response.errors[1].rejected_value == "old"


@pytest.mark.parametrize(
    "status_code, expected",
    [
        (401, ErrorCode.UNAUTHORIZED_RESOURCE_OWNER),
        (403, ErrorCode.INVALID_RESOURCE_OWNER),
        (404, ErrorCode.ENDPOINT_NOT_FOUND),
        (405, ErrorCode.INVALID_REQUEST_METHOD),
        (413, ErrorCode.REQUEST_SIZE_EXCEEDED),
        (415, ErrorCode.UNSUPPORTED_MEDIA_TYPE),
        (418, ErrorCode.INVALID_REQUEST_PARAMETER),
        (502, ErrorCode.SERVER_ERROR),
    ],
)
def test_http_exception_by_status(status_code, expected):
    assert _code(HTTPException(status_code=status_code)) is expected


def test_http_exception_custom_detail_is_kept():
    resolved = resolve_exception(HTTPException(status_code=403, detail="admins only"))
    assert resolved.response.message == "admins only"
    default = resolve_exception(HTTPException(status_code=403))
    assert default.response.message == ErrorCode.INVALID_RESOURCE_OWNER.message


def test_dispatch_is_deterministic():
    first = [_code(ValueError("x")) for _ in range(5)]
    assert set(first) == {ErrorCode.RESOURCE_CONFLICT}


def test_http_not_found_with_custom_detail_is_resource_not_found():
    resolved = resolve_exception(HTTPException(status_code=404, detail="User not found"))
    assert resolved.error_code is ErrorCode.NOT_FOUND_RESOURCE
    assert resolved.response.message == "User not found"
