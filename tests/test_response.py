import json
from datetime import datetime

from core.response import ErrorResponse, FieldError, error_response, success_response
from shared.codes import ErrorCode


def test_of_code_copies_entry():
    resp = ErrorResponse.of(ErrorCode.NOT_FOUND_RESOURCE)
    assert resp.message == ErrorCode.NOT_FOUND_RESOURCE.message
    assert resp.status == 404
    assert resp.code == "R404-01"
    assert resp.errors == []
    assert resp.timestamp.tzinfo is not None
    assert resp.timestamp.utcoffset().total_seconds() == 9 * 3600


def test_message_override():
    resp = error_response(ErrorCode.RESOURCE_CONFLICT, "custom")
    assert resp.message == "custom"
    assert resp.code == "C409-01"
    assert resp.status == 409


def test_field_errors_keep_order_and_default_message():
    triples = [("name", "", "must not be blank"), ("age", -1, "must be positive"), ("email", None, None)]
    resp = ErrorResponse.of(ErrorCode.INVALID_REQUEST_PARAMETER, errors=triples)
    assert resp.message == ErrorCode.INVALID_REQUEST_PARAMETER.message
    assert [e.field for e in resp.errors] == ["name", "age", "email"]
    assert resp.errors[1].rejected_value == "-1"
    assert resp.errors[2].rejected_value is None


def test_errors_key_omitted_when_empty():
    payload = ErrorResponse.of(ErrorCode.SERVER_ERROR).to_payload()
    assert set(payload) == {"message", "status", "code", "timestamp"}


def test_errors_serialized_with_value_key():
    resp = ErrorResponse.of(
        ErrorCode.INVALID_REQUEST_PARAMETER,
        errors=[FieldError(field="name", rejected_value="x", reason="too short")],
    )
    payload = resp.to_payload()
    assert payload["errors"] == [{"field": "name", "value": "x", "reason": "too short"}]
    # ISO-8601 with offset
    assert datetime.fromisoformat(payload["timestamp"]).tzinfo is not None


def test_round_trip():
    resp = ErrorResponse.of(ErrorCode.VALIDATION_FAILED, errors=[("a.b", "1", "bad")])
    parsed = ErrorResponse.model_validate_json(json.dumps(resp.to_payload()))
    assert parsed.message == resp.message
    assert parsed.status == resp.status
    assert parsed.code == resp.code
    assert parsed.errors == resp.errors
    assert abs((parsed.timestamp - resp.timestamp).total_seconds()) < 0.001


def test_from_pydantic_skips_location_and_missing_input():
    errors = [
        {"type": "string_too_short", "loc": ("body", "name"), "msg": "too short", "input": "a"},
        {"type": "missing", "loc": ("body", "age"), "msg": "Field required", "input": {"name": "a"}},
    ]
    result = FieldError.from_pydantic(errors, skip_location=True)
    assert [(e.field, e.rejected_value, e.reason) for e in result] == [
        ("name", "a", "too short"),
        ("age", None, "Field required"),
    ]


def test_success_envelope_omits_null_data():
    assert success_response(message="done").model_dump(mode="json") == {"message": "done"}
    assert success_response(data={"x": 1}).model_dump(mode="json") == {
        "message": "Success",
        "data": {"x": 1},
    }
