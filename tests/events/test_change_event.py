"""Tests for ChangeEvent batching helpers."""

import pytest

from nicebins.events import ChangeEvent, ChangeType


def test_batch_keeps_order_and_flattens_nested_batches():
    e1 = ChangeEvent(ChangeType.RANGE)
    e2 = ChangeEvent(ChangeType.SCALING)
    e3 = ChangeEvent(ChangeType.LABEL)
    inner = ChangeEvent.batch([e2, e3])
    outer = ChangeEvent.batch([e1, inner])
    assert outer.is_batch
    assert outer.events == [e1, e2, e3]
    assert not any(e.is_batch for e in outer.events)


def test_append_to_non_batch_raises():
    with pytest.raises(ValueError):
        ChangeEvent(ChangeType.RANGE).append(ChangeEvent(ChangeType.LABEL))


def test_leaves_and_contains():
    single = ChangeEvent(ChangeType.COLUMN, payload="x")
    assert list(single.leaves()) == [single]
    batch = ChangeEvent.batch([single, ChangeEvent(ChangeType.DATE_FORMAT)])
    assert batch.contains(ChangeType.DATE_FORMAT)
    assert not batch.contains(ChangeType.RANGE)
    assert single.contains(ChangeType.COLUMN)


def test_events_compare_by_identity():
    assert ChangeEvent(ChangeType.RANGE) != ChangeEvent(ChangeType.RANGE)
    e = ChangeEvent(ChangeType.RANGE)
    assert e == e
