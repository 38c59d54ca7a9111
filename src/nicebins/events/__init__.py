from nicebins.events.bus import EventBus, ProcessingListener, Subscriber, SubscriptionHandle
from nicebins.events.change_event import ChangeEvent, ChangeType

__all__ = [
    "ChangeEvent",
    "ChangeType",
    "EventBus",
    "ProcessingListener",
    "Subscriber",
    "SubscriptionHandle",
]
