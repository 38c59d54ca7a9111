"""Change events published when a chart configuration is mutated."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Iterator


class ChangeType(Enum):
    """Kinds of configuration mutations subscribers react to."""
    GROUPING_RESET = "grouping_reset"
    ABOUT_TO_CHANGE_GROUPING = "about_to_change_grouping"
    GROUPING_CHANGED = "grouping_changed"
    RANGE = "range"
    LABEL = "label"
    SCALING = "scaling"
    COLUMN = "column"
    AGGREGATION_WINDOW = "aggregation_window"
    DATE_FORMAT = "date_format"
    TRIGGER_REPLOT = "trigger_replot"
    BATCH = "batch"


@dataclass(eq=False)
class ChangeEvent:
    """One configuration change, or a BATCH of changes in the order they happened.

    Events compare by identity: two equal-looking mutations are still two events.

    Attributes:
        change_type: What changed.
        source: The object that raised the event.
        payload: Change-specific data (new bounds, new grouping, ...).
        events: Children of a BATCH event; empty otherwise.
    """
    change_type: ChangeType
    source: Any = None
    payload: Any = None
    events: list["ChangeEvent"] = field(default_factory=list)

    @classmethod
    def batch(cls, events: Iterable["ChangeEvent"], source: Any = None) -> "ChangeEvent":
        """Build a BATCH event. Batches passed in are flattened, never nested."""
        meta = cls(ChangeType.BATCH, source=source)
        for e in events:
            meta.append(e)
        return meta

    @property
    def is_batch(self) -> bool:
        return self.change_type is ChangeType.BATCH

    def append(self, event: "ChangeEvent") -> None:
        """Absorb ``event`` into this batch.

        Raises:
            ValueError: If this event is not a BATCH event.
        """
        if not self.is_batch:
            raise ValueError(f"Only BATCH events can absorb events, this is {self.change_type.value}")
        if event.is_batch:
            self.events.extend(event.events)
        else:
            self.events.append(event)

    def leaves(self) -> Iterator["ChangeEvent"]:
        """Yield the non-batch events this event stands for, in order."""
        if self.is_batch:
            yield from self.events
        else:
            yield self

    def contains(self, change_type: ChangeType) -> bool:
        return any(e.change_type is change_type for e in self.leaves())

    def __repr__(self) -> str:
        if self.is_batch:
            return f"ChangeEvent(batch of {len(self.events)}: {[e.change_type.value for e in self.events]})"
        return f"ChangeEvent({self.change_type.value}, payload={self.payload!r})"
