"""Tests for the tool result envelope and error kinds."""

import json

import pytest

pytest.importorskip("mcp")

from mcp.shared.exceptions import McpError
from mcp.types import INVALID_REQUEST, METHOD_NOT_FOUND

from ltm_gateway.core import envelope
from ltm_gateway.core.errors import (
    RESOURCE_NOT_FOUND,
    EngineError,
    GatewayError,
    InvalidArgument,
    Outcome,
    PreconditionFailed,
    classify_error,
    invalid_request,
    method_not_found,
    not_found,
)


def _body(result):
    return json.loads(result.content[0].text)


def test_success_envelope_merges_payload():
    result = envelope.success({"message": "ok", "personaId": "p-1"})
    assert result.isError is False
    body = json.loads(result.content[0].text)
    assert body == {"success": True, "message": "ok", "personaId": "p-1"}


def test_success_payload_cannot_override_flag():
    body = _body(envelope.success({"success": False, "count": 0}))
    assert body["success"] is True
    assert body["count"] == 0


def test_failure_envelope_sets_is_error():
    result = envelope.failure(PreconditionFailed("System must be awakened first"))
    assert result.isError is True
    body = _body(result)
    assert body == {
        "success": False,
        "error": "System must be awakened first",
        "code": "precondition_failed",
    }


def test_error_kinds_carry_codes():
    assert PreconditionFailed("x").to_dict() == {"code": "precondition_failed", "message": "x"}
    assert InvalidArgument("y").code == "invalid_argument"
    assert GatewayError("z", code="custom").code == "custom"


def test_classify_error_wraps_unexpected_exceptions():
    wrapped = classify_error(ValueError("bad value"))
    assert isinstance(wrapped, EngineError)
    assert wrapped.message == "ValueError: bad value"
    original = InvalidArgument("keep me")
    assert classify_error(original) is original


def test_protocol_errors_use_distinct_codes():
    assert isinstance(not_found("gone"), McpError)
    assert not_found("gone").error.code == RESOURCE_NOT_FOUND
    assert invalid_request("bad").error.code == INVALID_REQUEST
    assert method_not_found("nope").error.code == METHOD_NOT_FOUND


def test_outcome_is_value_or_error():
    ok = Outcome.success(42)
    assert ok.ok and ok.value == 42 and ok.error is None
    failed = Outcome.failure(PreconditionFailed("no"))
    assert not failed.ok and failed.value is None
