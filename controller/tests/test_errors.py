from __future__ import annotations

import logging

import pytest
from kubernetes.client import ApiException
from prometheus_client import REGISTRY

from controller.src.errors import (
    ConflictError,
    IgnoreError,
    NotFoundError,
    RequeueError,
    handle_error,
    ignore_errorf,
    is_conflict,
    is_ignore_error,
    is_not_found,
    is_requeue_error,
    requeue_errorf,
)


def test_requeue_errorf_formats_and_classifies() -> None:
    err = requeue_errorf("x %d", 1)

    assert isinstance(err, RequeueError)
    assert str(err) == "x 1"
    assert is_requeue_error(err)
    assert not is_ignore_error(err)


def test_ignore_errorf_formats_and_classifies() -> None:
    err = ignore_errorf("tc %s/%s is being deleted", "ns", "basic")

    assert isinstance(err, IgnoreError)
    assert str(err) == "tc ns/basic is being deleted"
    assert is_ignore_error(err)
    assert not is_requeue_error(err)


def test_plain_error_is_neither() -> None:
    err = RuntimeError("x %d" % 1)

    assert not is_requeue_error(err)
    assert not is_ignore_error(err)
    assert not is_requeue_error(None)


def test_format_without_args_keeps_percent_signs() -> None:
    assert str(requeue_errorf("100% not ready")) == "100% not ready"


def test_classification_follows_exception_chain() -> None:
    try:
        try:
            raise requeue_errorf("pd not ready")
        except RequeueError as inner:
            raise RuntimeError("sync failed") from inner
    except RuntimeError as outer:
        wrapped = outer

    assert is_requeue_error(wrapped)
    assert not is_ignore_error(wrapped)


@pytest.mark.parametrize(
    ("err", "not_found", "conflict"),
    [
        (NotFoundError("gone"), True, False),
        (ApiException(status=404, reason="Not Found"), True, False),
        (ConflictError("stale"), False, True),
        (ApiException(status=409, reason="Conflict"), False, True),
        (ApiException(status=500, reason="boom"), False, False),
        (ValueError("nope"), False, False),
    ],
)
def test_store_error_predicates(err: Exception, not_found: bool, conflict: bool) -> None:
    assert is_not_found(err) is not_found
    assert is_conflict(err) is conflict


def test_handle_error_logs_and_counts(caplog: pytest.LogCaptureFixture) -> None:
    before = REGISTRY.get_sample_value("tikv_controller_handled_errors_total") or 0.0

    with caplog.at_level(logging.ERROR, logger="controller.src.errors"):
        handle_error(RuntimeError("cannot get controller"))

    after = REGISTRY.get_sample_value("tikv_controller_handled_errors_total") or 0.0
    assert after == before + 1
    assert "cannot get controller" in caplog.text
