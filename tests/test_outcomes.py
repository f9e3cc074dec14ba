"""Tests for status-driven outcome tables.

Tests cover:
- BUCKET_EXISTENCE: 301/401 -> True, 404 -> False, anything else re-raised
- CONDITIONAL_OUTCOME via conditional(): 304/412 -> None, others re-raised
- Non-S3 errors are never classified
"""

import pytest

from s3_exchange.errors import S3Error
from s3_exchange.outcomes import BUCKET_EXISTENCE, CONDITIONAL_OUTCOME, StatusTable, conditional


def _raise(status: int, code: str = "Code"):
    def fn(*args, **kwargs):
        raise S3Error(code, "message", status)

    return fn


class TestBucketExistence:
    @pytest.mark.parametrize("status", [301, 401])
    def test_exists_but_not_for_us(self, status: int) -> None:
        assert BUCKET_EXISTENCE.call(_raise(status)) is True

    def test_missing(self) -> None:
        assert BUCKET_EXISTENCE.call(_raise(404, "NoSuchBucket")) is False

    def test_success_passes_through(self) -> None:
        assert BUCKET_EXISTENCE.call(lambda bucket: True, "b") is True

    @pytest.mark.parametrize("status", [400, 403, 500, 503])
    def test_other_statuses_raise(self, status: int) -> None:
        with pytest.raises(S3Error) as exc_info:
            BUCKET_EXISTENCE.call(_raise(status))
        assert exc_info.value.http_status == status

    def test_statuses(self) -> None:
        assert BUCKET_EXISTENCE.statuses == frozenset({301, 401, 404})
        assert 404 in BUCKET_EXISTENCE
        assert 403 not in BUCKET_EXISTENCE


class TestConditional:
    @pytest.mark.parametrize("status", [304, 412])
    def test_condition_not_met(self, status: int) -> None:
        assert conditional(_raise(status)) is None

    def test_not_found_propagates(self) -> None:
        with pytest.raises(S3Error) as exc_info:
            conditional(_raise(404, "NoSuchKey"))
        assert exc_info.value.code == "NoSuchKey"

    def test_arguments_forwarded(self) -> None:
        assert conditional(lambda a, b=0: a + b, 1, b=2) == 3

    def test_other_exceptions_untouched(self) -> None:
        def fn():
            raise KeyError("x")

        with pytest.raises(KeyError):
            conditional(fn)

    def test_table(self) -> None:
        assert CONDITIONAL_OUTCOME.statuses == frozenset({304, 412})


class TestStatusTable:
    def test_classify_returns_outcome(self) -> None:
        table = StatusTable("test", {409: "conflict"})
        assert table.classify(S3Error("BucketAlreadyExists", "m", 409)) == "conflict"

    def test_classify_reraises_same_error(self) -> None:
        table = StatusTable("test", {409: "conflict"})
        error = S3Error("AccessDenied", "m", 403)
        with pytest.raises(S3Error) as exc_info:
            table.classify(error)
        assert exc_info.value is error
