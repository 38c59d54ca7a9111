"""Tests for DimensionConfig: events, bounds, caching and windowed counts."""

import logging

import pandas as pd
import pytest

from nicebins.data import TableSource
from nicebins.dimension import DimensionConfig
from nicebins.errors import (
    GroupingError,
    IncompatibleColumnKindError,
    InvalidBoundsError,
    TooManyGroupsError,
)
from nicebins.events import ChangeType
from nicebins.grouping import AggregationWindow, Distinct, EqualFrequencyBins, EqualWidthBins
from nicebins.settings import BinningSettings


@pytest.fixture
def x_column(digits_source):
    return digits_source.column(digits_source.column_index_of("x"))


@pytest.fixture
def dim(x_column):
    return DimensionConfig(x_column)


@pytest.fixture
def received(dim):
    events = []

    def subscriber(event):
        events.append(event)
        return True

    dim.bus.subscribe(subscriber)
    return events


def _types(event):
    return [e.change_type for e in event.leaves()]


def test_set_grouping_publishes_one_batch(dim, x_column, received):
    grouping = EqualWidthBins(x_column, bin_count=2)
    dim.set_grouping(grouping)
    assert len(received) == 1
    assert _types(received[0]) == [ChangeType.ABOUT_TO_CHANGE_GROUPING, ChangeType.GROUPING_RESET]
    assert dim.grouping is grouping
    assert grouping.listener_count == 1


def test_setting_same_grouping_is_silent(dim, x_column, received):
    grouping = EqualWidthBins(x_column)
    dim.set_grouping(grouping)
    dim.set_grouping(grouping)
    assert len(received) == 1


def test_replacing_grouping_detaches_old_one(dim, x_column):
    old = EqualWidthBins(x_column)
    dim.set_grouping(old)
    dim.set_grouping(EqualFrequencyBins(x_column))
    assert old.listener_count == 0
    dim.set_grouping(None)
    assert not dim.is_grouping


def test_categorical_grouping_switches_logarithmic_off(dim, x_column, received):
    dim.set_logarithmic(True)
    assert dim.logarithmic
    dim.set_grouping(EqualWidthBins(x_column, categorical=True))
    assert not dim.logarithmic
    assert ChangeType.SCALING in _types(received[-1])
    assert dim.is_nominal


def test_logarithmic_ignored_for_categorical_dimension(dim, x_column, caplog):
    dim.set_grouping(Distinct(x_column))
    with caplog.at_level(logging.WARNING, logger="nicebins"):
        dim.set_logarithmic(True)
    assert not dim.logarithmic
    assert "ignored" in caplog.text


def test_update_grouping_follows_evolved_grouping(dim, x_column, received):
    original = EqualWidthBins(x_column, bin_count=2)
    dim.set_grouping(original)
    evolved = dim.update_grouping(bin_count=5)
    assert dim.grouping is evolved
    assert dim.grouping.bin_count == 5
    assert original.listener_count == 0
    assert evolved.listener_count == 1
    assert _types(received[-1]) == [ChangeType.GROUPING_CHANGED]
    assert received[-1].payload.new is evolved


def test_evolving_grouping_from_outside_updates_dimension(dim, x_column, digits_source):
    grouping = EqualWidthBins(x_column, bin_count=2)
    dim.set_grouping(grouping)
    assert len(dim.grouping_model(digits_source)) == 2
    grouping.evolve(bin_count=3)
    assert len(dim.grouping_model(digits_source)) == 3


def test_update_grouping_without_grouping_raises(dim):
    with pytest.raises(GroupingError):
        dim.update_grouping(bin_count=3)


def test_grouping_for_other_column_rejected(dim, digits_source):
    y = digits_source.column(digits_source.column_index_of("y"))
    with pytest.raises(GroupingError):
        dim.set_grouping(Distinct(y))


def test_bounds_validation(dim):
    with pytest.raises(InvalidBoundsError):
        dim.set_bounds(5.0, 2.0)
    with pytest.raises(InvalidBoundsError):
        dim.set_bounds(1.0, 1.0 + 1e-7)
    assert dim.lower_bound is None and dim.upper_bound is None


def test_bounds_on_nominal_column_rejected(digits_source):
    name = digits_source.column(digits_source.column_index_of("name"))
    dim = DimensionConfig(name, Distinct(name))
    with pytest.raises(InvalidBoundsError):
        dim.set_bounds(0.0, 1.0)


def test_bounds_filter_grouping_model(dim, x_column, digits_source, received):
    dim.set_grouping(EqualWidthBins(x_column, bin_count=5))
    dim.set_bounds(2.0, 7.0)
    assert _types(received[-1]) == [ChangeType.RANGE]
    assert received[-1].payload == (2.0, 7.0)
    model = dim.grouping_model(digits_source)
    assert [r.lower for r in model] == [2.0, 3.0, 4.0, 5.0, 6.0]

    dim.set_bounds(lower=4.0)
    assert dim.effective_bounds() == (4.0, float("inf"))
    dim.clear_bounds()
    assert dim.lower_bound is None


def test_grouping_model_cached_until_next_mutation(dim, x_column, digits_source):
    dim.set_grouping(EqualWidthBins(x_column, bin_count=2))
    first = dim.grouping_model(digits_source)
    assert dim.grouping_model(digits_source) is first
    dim.set_label("X axis")
    assert dim.grouping_model(digits_source) is not first
    assert dim.label == "X axis"


def test_grouping_model_requires_grouping(dim, digits_source):
    with pytest.raises(GroupingError):
        dim.grouping_model(digits_source)


def test_too_many_groups(x_column, digits_source):
    dim = DimensionConfig(x_column, Distinct(x_column), settings=BinningSettings(max_group_count=3))
    with pytest.raises(TooManyGroupsError) as exc_info:
        dim.grouping_model(digits_source)
    assert exc_info.value.group_count == 10
    assert exc_info.value.max_group_count == 3


def test_group_counts_follow_window(dim, x_column, digits_source, received):
    dim.set_grouping(EqualWidthBins(x_column, bin_count=2))
    assert dim.group_counts(digits_source) == [5, 5]

    dim.set_window(AggregationWindow(grab_left=-1))
    assert _types(received[-1]) == [ChangeType.AGGREGATION_WINDOW]
    assert dim.group_counts(digits_source) == [5, 10]

    dim.set_window(AggregationWindow(grab_left=1, include_incomplete_groups=False))
    assert dim.windowed_model(digits_source)[0] is None
    assert dim.group_counts(digits_source) == [0, 10]


def test_group_counts_for_nominal_distinct(digits_source):
    name = digits_source.column(digits_source.column_index_of("name"))
    dim = DimensionConfig(name, Distinct(name))
    labels = [r.label() for r in dim.grouping_model(digits_source)]
    assert labels == ["b", "a", "c"]
    assert dim.group_counts(digits_source) == [4, 3, 3]


def test_set_column_moves_grouping(dim, x_column, digits_source, received):
    y = digits_source.column(digits_source.column_index_of("y"))
    dim.set_grouping(EqualWidthBins(x_column, bin_count=2))
    dim.set_column(y)
    assert dim.column == y
    assert dim.grouping.column == y
    assert _types(received[-1]) == [ChangeType.GROUPING_CHANGED, ChangeType.COLUMN]
    assert dim.grouping_model(digits_source)[-1].upper == 90.0


def test_set_column_incompatible_with_grouping_keeps_state(dim, x_column, digits_source):
    name = digits_source.column(digits_source.column_index_of("name"))
    dim.set_grouping(EqualWidthBins(x_column))
    with pytest.raises(IncompatibleColumnKindError):
        dim.set_column(name)
    assert dim.column == x_column


def test_date_format_applies_to_labels(dates_df):
    source = TableSource(dates_df)
    when = source.column(source.column_index_of("when"))
    dim = DimensionConfig(when, Distinct(when))
    dim.set_date_format("%d.%m.%Y")
    labels = [r.label() for r in dim.grouping_model(source)]
    assert labels == ["01.01.2024", "02.01.2024", "03.01.2024"]


def test_trigger_replot(dim, received):
    dim.trigger_replot()
    assert _types(received[-1]) == [ChangeType.TRIGGER_REPLOT]


def test_clone_is_independent(dim, x_column, received):
    dim.set_grouping(EqualWidthBins(x_column, bin_count=4))
    dim.set_bounds(1.0, 8.0)
    copy = dim.clone()
    assert copy.grouping == dim.grouping
    assert copy.grouping is not dim.grouping
    assert copy.bus is not dim.bus
    assert (copy.lower_bound, copy.upper_bound) == (1.0, 8.0)

    count = len(received)
    copy.update_grouping(bin_count=2)
    assert dim.grouping.bin_count == 4
    assert len(received) == count


def test_detach_stops_following_grouping(dim, x_column):
    grouping = EqualWidthBins(x_column)
    dim.set_grouping(grouping)
    dim.detach()
    assert grouping.listener_count == 0


def test_dimension_with_pandas_categorical(make_source):
    source = make_source(c=pd.Categorical(["lo", "hi", "lo"]))
    column = source.column(0)
    dim = DimensionConfig(column, Distinct(column))
    assert dim.is_nominal
    assert dim.group_counts(source) == [2, 1]
