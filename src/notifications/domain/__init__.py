# src/notifications/domain/__init__.py
from . import envelope, exceptions, groups, queued_event, retry_policy

__all__ = ["envelope", "exceptions", "groups", "queued_event", "retry_policy"]
