"""SQLAlchemy models package."""
from inboxsync.models.store import Store
from inboxsync.models.notification import NotificationInbox, NotificationRule
from inboxsync.models.payable import Payable

__all__ = [
    "Store",
    "NotificationInbox",
    "NotificationRule",
    "Payable",
]
