"""Tests for the spawner error hierarchy."""

from __future__ import annotations

import pytest

from spawner.errors import (
    AttachmentResolutionError,
    BackendRejectionError,
    CancellationError,
    ConfigurationError,
    ContextCancelled,
    DeadlineExceeded,
    DecodeError,
    ErrorCategory,
    SpawnerError,
    TransientQueryError,
    is_cancellation,
)


class TestCategories:
    @pytest.mark.parametrize(
        ("cls", "category"),
        [
            (DecodeError, ErrorCategory.DECODE),
            (BackendRejectionError, ErrorCategory.BACKEND_REJECTED),
            (TransientQueryError, ErrorCategory.QUERY),
            (AttachmentResolutionError, ErrorCategory.ATTACHMENT),
            (ConfigurationError, ErrorCategory.CONFIG),
            (ContextCancelled, ErrorCategory.CANCELLED),
            (DeadlineExceeded, ErrorCategory.CANCELLED),
            (SpawnerError, ErrorCategory.UNKNOWN),
        ],
    )
    def test_default_category(self, cls, category):
        err = cls("boom")
        assert err.category is category
        assert isinstance(err, SpawnerError)

    def test_explicit_category_wins(self):
        err = SpawnerError("boom", category=ErrorCategory.QUERY)
        assert err.category is ErrorCategory.QUERY


class TestCancellation:
    def test_deadline_is_timeout_error(self):
        assert isinstance(DeadlineExceeded("late"), TimeoutError)

    def test_is_cancellation(self):
        assert is_cancellation(ContextCancelled("stop"))
        assert is_cancellation(DeadlineExceeded("late"))
        assert not is_cancellation(TransientQueryError("flaky"))
        assert not is_cancellation(TimeoutError())

    def test_hierarchy(self):
        assert issubclass(ContextCancelled, CancellationError)
        assert issubclass(DeadlineExceeded, CancellationError)


class TestSerialization:
    def test_to_dict(self):
        cause = ValueError("inner")
        err = BackendRejectionError("run task: refused", spawner="ecs", cause=cause)
        assert err.to_dict() == {
            "error_type": "BackendRejectionError",
            "message": "run task: refused",
            "category": "BACKEND_REJECTED",
            "spawner": "ecs",
            "cause": "inner",
        }
        assert err.__cause__ is cause

    def test_to_dict_minimal(self):
        assert DecodeError("bad").to_dict() == {
            "error_type": "DecodeError",
            "message": "bad",
            "category": "DECODE",
        }

    def test_str_and_repr(self):
        err = DecodeError("bad json")
        assert str(err) == "bad json"
        assert repr(err) == "DecodeError('bad json', category=DECODE)"
