"""
Tests for the JSON-RPC error taxonomy and the cancellation registry.
"""

import pytest

from a2a_service.cancellation import CancellationRegistry
from a2a_service.errors import A2AError, ErrorCode, normalize_error


@pytest.mark.parametrize(
    "error, code",
    [
        (A2AError.parse_error(), -32700),
        (A2AError.invalid_request(), -32600),
        (A2AError.method_not_found("x"), -32601),
        (A2AError.invalid_params(), -32602),
        (A2AError.internal_error(), -32603),
        (A2AError.task_not_found("t1"), -32001),
    ],
)
def test_error_codes(error, code):
    assert error.code == code
    assert error.to_jsonrpc_error().code == code


def test_task_not_found_carries_task_id():
    error = A2AError.task_not_found("t1")
    assert error.task_id == "t1"
    assert error.code == ErrorCode.TASK_NOT_FOUND


def test_method_not_found_data():
    assert A2AError.method_not_found("tasks/x").to_jsonrpc_error().data == {"method": "tasks/x"}


def test_normalize_wraps_plain_exceptions():
    error = normalize_error(KeyError("missing"), task_id="t1")

    assert error.code == ErrorCode.INTERNAL_ERROR
    assert "missing" in error.message
    assert error.data == {"type": "KeyError"}
    assert error.task_id == "t1"


def test_normalize_uses_type_name_for_empty_message():
    assert normalize_error(RuntimeError()).message == "RuntimeError"


def test_normalize_keeps_a2a_errors():
    original = A2AError.invalid_params("bad")
    assert normalize_error(original, task_id="t2") is original
    assert original.task_id == "t2"


def test_cancellation_registry():
    registry = CancellationRegistry()
    registry.add("t1")

    assert "t1" in registry
    assert registry.is_cancelled("t1")
    assert not registry.is_cancelled("t2")
    assert registry.snapshot() == frozenset({"t1"})
    assert len(registry) == 1

    registry.discard("t1")
    registry.discard("t1")
    assert len(registry) == 0


def test_registries_are_independent():
    first, second = CancellationRegistry(), CancellationRegistry()
    first.add("t1")
    assert not second.is_cancelled("t1")
