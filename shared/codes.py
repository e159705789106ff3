"""
Shared error codes used across layers (Domain/Core/API).

This module is the single source of truth for the error catalog: every
failure that reaches an HTTP client is described by exactly one member of
``ErrorCode``. The machine-readable ``code`` is part of the public contract
(clients match on it), so existing values must never be renumbered.

Code format: ``<category letter><http status>-<sequence>``, e.g. ``C400-01``.
  - C: client/request errors
  - A: authentication / authorization
  - R: resources
  - M: HTTP method
  - S: server side
  - G: gateway
"""
from __future__ import annotations

import re
from enum import Enum, unique
from http import HTTPStatus


CODE_PATTERN = re.compile(r"^(?P<category>[A-Z])(?P<status>\d{3})-(?P<seq>\d{2})$")


@unique
class ErrorCode(Enum):
    """Error catalog: (HTTP status, machine code, default message)."""

    # Client errors (400)
    INVALID_REQUEST_PARAMETER = (HTTPStatus.BAD_REQUEST, "C400-01", "Invalid request parameter")
    INVALID_REQUEST_BODY = (HTTPStatus.BAD_REQUEST, "C400-02", "Invalid request body")
    MISSING_REQUIRED_FIELD = (HTTPStatus.BAD_REQUEST, "C400-03", "A required field is missing")
    INVALID_INPUT_FORMAT = (HTTPStatus.BAD_REQUEST, "C400-04", "Input format is invalid")
    DATA_INTEGRITY_VIOLATION = (HTTPStatus.BAD_REQUEST, "C400-05", "Data integrity violation occurred")
    REQUEST_SIZE_EXCEEDED = (HTTPStatus.BAD_REQUEST, "C400-06", "Request size exceeds the limit")
    UNSUPPORTED_MEDIA_TYPE = (HTTPStatus.BAD_REQUEST, "C400-07", "Unsupported media type")

    # Authentication / authorization (401, 403)
    UNAUTHORIZED_RESOURCE_OWNER = (
        HTTPStatus.UNAUTHORIZED, "A401-01", "No credentials to access this resource"
    )
    INVALID_TOKEN = (HTTPStatus.UNAUTHORIZED, "A401-02", "Invalid authentication token")
    TOKEN_EXPIRED = (HTTPStatus.UNAUTHORIZED, "A401-03", "Authentication token has expired")
    INVALID_CREDENTIALS = (HTTPStatus.UNAUTHORIZED, "A401-04", "Invalid login credentials")
    MISSING_TOKEN = (HTTPStatus.UNAUTHORIZED, "A401-05", "Authentication token was not provided")
    TOKEN_SIGNATURE_INVALID = (HTTPStatus.UNAUTHORIZED, "A401-06", "Token signature is invalid")

    INVALID_RESOURCE_OWNER = (HTTPStatus.FORBIDDEN, "A403-01", "No permission to access this resource")
    INSUFFICIENT_PERMISSIONS = (
        HTTPStatus.FORBIDDEN, "A403-02", "Insufficient permissions to perform this operation"
    )
    ACCESS_LIMIT_EXCEEDED = (HTTPStatus.FORBIDDEN, "A403-03", "Access attempt limit exceeded")
    ACCOUNT_DISABLED = (HTTPStatus.FORBIDDEN, "A403-04", "Account is disabled")

    # Resources (404)
    NOT_FOUND_RESOURCE = (HTTPStatus.NOT_FOUND, "R404-01", "Resource not found")
    ENDPOINT_NOT_FOUND = (HTTPStatus.NOT_FOUND, "R404-02", "Requested endpoint not found")

    # Method (405)
    INVALID_REQUEST_METHOD = (HTTPStatus.METHOD_NOT_ALLOWED, "M405-01", "HTTP method not allowed")

    # Conflicts (409)
    RESOURCE_CONFLICT = (HTTPStatus.CONFLICT, "C409-01", "Resource conflict occurred")
    CONCURRENT_MODIFICATION = (
        HTTPStatus.CONFLICT, "C409-02", "Conflict caused by concurrent modification"
    )
    VERSION_CONFLICT = (HTTPStatus.CONFLICT, "C409-03", "Resource version conflict occurred")
    DUPLICATE_RESOURCE = (HTTPStatus.CONFLICT, "C409-04", "Resource already exists")

    # Semantic validation (422)
    UNPROCESSABLE_REQUEST = (HTTPStatus.UNPROCESSABLE_ENTITY, "C422-01", "Request cannot be processed")
    VALIDATION_FAILED = (HTTPStatus.UNPROCESSABLE_ENTITY, "C422-02", "Data validation failed")
    BUSINESS_RULE_VIOLATION = (
        HTTPStatus.UNPROCESSABLE_ENTITY, "C422-03", "Business rule violation occurred"
    )

    # Server errors (500)
    SERVER_ERROR = (HTTPStatus.INTERNAL_SERVER_ERROR, "S500-01", "Internal Server Error")
    DATABASE_ERROR = (HTTPStatus.INTERNAL_SERVER_ERROR, "S500-02", "Database error occurred")
    EXTERNAL_API_ERROR = (
        HTTPStatus.INTERNAL_SERVER_ERROR, "S500-03", "Error while calling an external API"
    )
    UNEXPECTED_ERROR = (HTTPStatus.INTERNAL_SERVER_ERROR, "S500-04", "Unexpected error occurred")
    FILE_PROCESSING_ERROR = (
        HTTPStatus.INTERNAL_SERVER_ERROR, "S500-05", "Error while processing a file"
    )
    INTEGRATION_ERROR = (
        HTTPStatus.INTERNAL_SERVER_ERROR, "S500-06", "Error while integrating with an external system"
    )

    # Unavailable (503)
    SERVICE_UNAVAILABLE_NOW = (
        HTTPStatus.SERVICE_UNAVAILABLE, "S503-01", "Service is temporarily unavailable"
    )
    MAINTENANCE_MODE = (HTTPStatus.SERVICE_UNAVAILABLE, "S503-02", "System is in maintenance mode")
    RATE_LIMIT_EXCEEDED = (HTTPStatus.SERVICE_UNAVAILABLE, "S503-03", "Request rate limit exceeded")

    # Gateway (504)
    TIMEOUT = (HTTPStatus.GATEWAY_TIMEOUT, "G504-01", "Gateway timeout occurred")

    @property
    def status(self) -> HTTPStatus:
        return self.value[0]

    @property
    def code(self) -> str:
        return self.value[1]

    @property
    def message(self) -> str:
        """Default human-readable message."""
        return self.value[2]

    @property
    def http_status(self) -> int:
        return int(self.status)

    @property
    def category(self) -> str:
        """Leading letter of the code (C/A/R/M/S/G)."""
        return self.code[0]

    @classmethod
    def from_code(cls, code: str) -> "ErrorCode":
        """Look up an entry by its machine code (``KeyError`` if unknown)."""
        return _BY_CODE[code]

    def __str__(self) -> str:
        return self.code


def _build_index() -> dict[str, ErrorCode]:
    index: dict[str, ErrorCode] = {}
    for entry in ErrorCode:
        match = CODE_PATTERN.match(entry.code)
        if match is None or int(match.group("status")) != entry.http_status:
            raise ValueError(f"Malformed error code {entry.code!r} for {entry.name}")
        if entry.code in index:
            raise ValueError(
                f"Duplicate error code {entry.code!r}: {index[entry.code].name} and {entry.name}"
            )
        index[entry.code] = entry
    return index


_BY_CODE = _build_index()


__all__ = ["ErrorCode", "CODE_PATTERN"]
