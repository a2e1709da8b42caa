"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .notifier import Notification, Notifier, OutcomeKind

__all__ = ['Notification', 'Notifier', 'OutcomeKind']
