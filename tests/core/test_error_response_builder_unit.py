import json

from core.error_handler import _build_error_response


def _body(environment: str) -> dict:
    resp = _build_error_response(
        correlation_id="cid",
        error_type="assessment_error",
        message="Invalid AI response structure: grade: invalid",
        environment=environment,
        code="model_response_invalid",
        details={"debug": True},
        traceback_str="trace",
        exception_type="ModelResponseInvalid",
        validation_errors={"x": 1},
        status_code=502,
    )
    assert resp.status_code == 502
    return json.loads(resp.body)


def test_build_error_response_production_hides_optional_fields():
    body = _body("production")

    assert body["success"] is False
    assert body["error"] == {
        "correlation_id": "cid",
        "type": "assessment_error",
        "code": "model_response_invalid",
    }


def test_build_error_response_development_includes_optional_fields():
    error = _body("development")["error"]

    assert error["details"] == {"debug": True}
    assert error["traceback"] == "trace"
    assert error["exception_type"] == "ModelResponseInvalid"
    assert error["validation_errors"] == {"x": 1}
