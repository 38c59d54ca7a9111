"""
Coalescing change-event bus.

One bus serves one configuration object. Mutations are enqueued as
ChangeEvents; a burst of synchronous mutations collapses into a single
pending BATCH event, so at most one delivery is ever waiting.

Delivery protocol
-----------------
- ``try_deliver()`` moves the pending event in flight and calls every
  prioritized subscriber, then every default subscriber, in registration
  order. Each call raises the outstanding-acknowledgement counter by one.
- A subscriber returning True handled the event synchronously (counter -1).
  Any other return value means it will call ``acknowledge()`` later.
- When the counter drops to zero the delivery completes and the next
  pending event (if any) is delivered. Draining is iterative: a chain of
  events enqueued from subscribers is delivered one after another by the
  same loop, at constant stack depth.
- Events enqueued during a delivery wait behind it; a second delivery never
  starts while one is in flight.
- ``set_processing_enabled(False)`` stops new deliveries from starting
  (a delivery already in flight is not aborted). Re-enabling flushes the
  coalesced batch.

Typical bulk edit:
    ```python
    with bus.suspended():
        dimension.set_bounds(0.0, 10.0)
        dimension.set_logarithmic(True)
    # subscribers receive one BATCH event holding both changes
    ```
"""

from __future__ import annotations

import inspect
import itertools
import threading
import weakref
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator, Optional, Union

from nicebins.events.change_event import ChangeEvent
from nicebins.utils.logging import get_logger

logger = get_logger(__name__)

# Returns True if the event was handled synchronously
Subscriber = Callable[[ChangeEvent], Optional[bool]]
# Called with True when a delivery starts and False when it completes
ProcessingListener = Callable[[bool], None]


@dataclass(frozen=True)
class SubscriptionHandle:
    """Token returned by ``EventBus.subscribe``; pass it to ``unsubscribe``."""
    id: int
    prioritized: bool


class _Subscription:
    """Registry slot. Weak slots go dead once their subscriber is collected."""

    def __init__(self, handle: SubscriptionHandle, subscriber: Subscriber, weak: bool) -> None:
        self.handle = handle
        self.active = True
        self._strong: Optional[Subscriber] = None
        self._ref: Optional[Callable[[], Optional[Subscriber]]] = None
        if not weak:
            self._strong = subscriber
        elif inspect.ismethod(subscriber):
            self._ref = weakref.WeakMethod(subscriber)
        else:
            self._ref = weakref.ref(subscriber)

    def resolve(self) -> Optional[Subscriber]:
        if self._strong is not None:
            return self._strong
        if self._ref is not None:
            return self._ref()
        return None


class EventBus:
    """Per-configuration mailbox that coalesces and delivers ChangeEvents.

    Attributes:
        name: Label used in log messages.
    """

    def __init__(self, name: str = "bus") -> None:
        self.name = name
        self._lock = threading.RLock()
        self._pending: Optional[ChangeEvent] = None
        self._in_flight: Optional[ChangeEvent] = None
        self._outstanding_acks: int = 0
        self._delivering: bool = False
        self._draining: bool = False
        self._processing_enabled: bool = True
        self._prioritized: list[_Subscription] = []
        self._default: list[_Subscription] = []
        self._processing_listeners: list[ProcessingListener] = []
        self._ids = itertools.count(1)

    # ------------------ subscriptions ------------------

    def subscribe(self, subscriber: Subscriber, prioritized: bool = False, *, weak: bool = False) -> SubscriptionHandle:
        """Register ``subscriber``.

        Args:
            subscriber: Callable receiving each delivered ChangeEvent.
            prioritized: If True, the subscriber is called before all default subscribers.
            weak: If True, only a weak reference is kept; the slot is dropped
                lazily once the subscriber has been garbage collected.

        Returns:
            Handle for ``unsubscribe``.
        """
        with self._lock:
            handle = SubscriptionHandle(id=next(self._ids), prioritized=prioritized)
            slot = _Subscription(handle, subscriber, weak)
            (self._prioritized if prioritized else self._default).append(slot)
            return handle

    def unsubscribe(self, target: Union[SubscriptionHandle, Subscriber]) -> bool:
        """Remove a subscription by handle, or every subscription of a subscriber.

        Dead weak slots found on the way are dropped as well.

        Returns:
            True if at least one subscription was removed.
        """
        removed = False
        with self._lock:
            for registry in (self._prioritized, self._default):
                for slot in list(registry):
                    subscriber = slot.resolve()
                    if isinstance(target, SubscriptionHandle):
                        match = slot.handle == target
                    else:
                        match = subscriber is not None and subscriber == target
                    if match or subscriber is None:
                        slot.active = False
                        registry.remove(slot)
                        removed = removed or match
        return removed

    @property
    def prioritized_count(self) -> int:
        with self._lock:
            return sum(1 for slot in self._prioritized if slot.resolve() is not None)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return sum(1 for slot in [*self._prioritized, *self._default] if slot.resolve() is not None)

    def add_processing_listener(self, listener: ProcessingListener) -> None:
        with self._lock:
            if listener not in self._processing_listeners:
                self._processing_listeners.append(listener)

    def remove_processing_listener(self, listener: ProcessingListener) -> None:
        with self._lock:
            if listener in self._processing_listeners:
                self._processing_listeners.remove(listener)

    # ------------------ state ------------------

    @property
    def processing_enabled(self) -> bool:
        return self._processing_enabled

    @property
    def pending(self) -> Optional[ChangeEvent]:
        return self._pending

    @property
    def in_flight(self) -> Optional[ChangeEvent]:
        return self._in_flight

    @property
    def outstanding_acks(self) -> int:
        return self._outstanding_acks

    def set_processing_enabled(self, enabled: bool) -> None:
        """Allow or stop new deliveries. Enabling flushes the pending event."""
        with self._lock:
            self._processing_enabled = bool(enabled)
            if self._processing_enabled:
                self.try_deliver()

    @contextmanager
    def suspended(self) -> Iterator["EventBus"]:
        """Disable processing for the block, then restore the previous flag."""
        previous = self.processing_enabled
        self.set_processing_enabled(False)
        try:
            yield self
        finally:
            self.set_processing_enabled(previous)

    # ------------------ queue and delivery ------------------

    def enqueue(self, event: ChangeEvent) -> None:
        """Queue ``event`` behind the current delivery, coalescing with any pending event."""
        with self._lock:
            if self._pending is None:
                self._pending = event
            elif self._pending.is_batch:
                self._pending.append(event)
                logger.debug(f"[{self.name}] {event.change_type.value} appended to pending batch")
            else:
                self._pending = ChangeEvent.batch([self._pending, event], source=event.source)
                logger.debug(f"[{self.name}] pending event coalesced into batch")
            self.try_deliver()

    def try_deliver(self) -> None:
        """Deliver pending events until one stays in flight or nothing is left.

        Draining is a loop, so a long chain of events enqueued by synchronous
        subscribers never nests. A call made while a drain is already running
        returns at once; the running loop picks up whatever was enqueued.
        """
        with self._lock:
            if self._draining:
                return
            self._draining = True
            try:
                while self._processing_enabled and self._in_flight is None and self._pending is not None:
                    self._deliver_pending()
            finally:
                self._draining = False

    def acknowledge(self) -> None:
        """Signal that an asynchronous subscriber finished the in-flight event."""
        with self._lock:
            if self._in_flight is None:
                logger.warning(f"[{self.name}] acknowledge() called with no event in flight, ignoring")
                return
            self._outstanding_acks -= 1
            # completion during the subscriber loop is left to _deliver_pending()
            if self._outstanding_acks <= 0 and not self._delivering:
                self._complete_delivery()
                self.try_deliver()

    def _deliver_pending(self) -> None:
        event = self._pending
        self._pending = None
        self._in_flight = event
        self._outstanding_acks = 0
        logger.debug(f"[{self.name}] delivering {event!r}")

        self._delivering = True
        try:
            self._notify_processing(True)
            for registry in (self._prioritized, self._default):
                for slot in list(registry):
                    if not slot.active:
                        continue
                    subscriber = slot.resolve()
                    if subscriber is None:
                        if slot in registry:
                            registry.remove(slot)
                        continue
                    self._outstanding_acks += 1
                    if self._call(subscriber, event):
                        self._outstanding_acks -= 1
        finally:
            self._delivering = False

        if self._outstanding_acks <= 0:
            self._complete_delivery()

    def _call(self, subscriber: Subscriber, event: ChangeEvent) -> bool:
        try:
            return subscriber(event) is True
        except Exception:
            # count as handled so the remaining bookkeeping stays intact
            logger.exception(f"[{self.name}] subscriber {subscriber!r} failed on {event!r}")
            return True

    def _complete_delivery(self) -> None:
        logger.debug(f"[{self.name}] delivery of {self._in_flight!r} complete")
        self._in_flight = None
        self._outstanding_acks = 0
        self._notify_processing(False)

    def _notify_processing(self, started: bool) -> None:
        for listener in list(self._processing_listeners):
            try:
                listener(started)
            except Exception:
                logger.exception(f"[{self.name}] processing listener failed")

    def __repr__(self) -> str:
        return (
            f"EventBus(name={self.name!r}, processing_enabled={self._processing_enabled}, "
            f"in_flight={self._in_flight!r}, pending={self._pending!r})"
        )
