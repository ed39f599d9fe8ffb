"""Signal sources and the topic registry.

A signal source produces the current set of alert-worthy entities for one
store. Each topic is registered once with its entity type, its source and the
payload fields whose changes re-open an existing notification.
"""
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, Protocol

from pydantic import BaseModel
from sqlalchemy.orm import Session

from inboxsync.config import get_settings
from inboxsync.models.notification import (
    DueStatus,
    NotificationEntityType,
    NotificationSeverity,
    NotificationTopic,
)
from inboxsync.models.payable import Payable
from inboxsync.models.store import Store
from inboxsync.services.timeutils import utcnow

MAX_SIGNALS_PER_STORE = 500


class BaseSignal(BaseModel):
    """A candidate alert for one business entity."""

    entity_id: str
    due_status: str | None = None
    due_date: str | None = None

    def dedupe_key(self) -> str:
        raise NotImplementedError

    def title(self) -> str:
        raise NotImplementedError

    def message(self) -> str:
        raise NotImplementedError

    def severity(self) -> str:
        return NotificationSeverity.INFO.value

    def payload(self) -> dict[str, Any]:
        """Snapshot stored with the notification for change detection."""
        return self.model_dump()


class PurchaseApDueSignal(BaseSignal):
    """A purchase order whose payable is overdue or due soon."""

    po_number: str
    supplier_name: str
    payment_status: str
    due_status: DueStatus
    days_until_due: int
    outstanding_base: float

    @property
    def po_id(self) -> str:
        return self.entity_id

    def dedupe_key(self) -> str:
        due_date_key = self.due_date[:10] if self.due_date else "NO_DUE_DATE"
        return f"ap_due:{self.po_id}:{self.due_status.value}:{due_date_key}"

    def title(self) -> str:
        if self.due_status == DueStatus.OVERDUE:
            return f"PO overdue {self.po_number}"
        return f"PO due soon {self.po_number}"

    def message(self) -> str:
        outstanding = f"{self.outstanding_base:,.2f}"
        if self.due_status == DueStatus.OVERDUE:
            return f"{self.supplier_name} · overdue by {abs(self.days_until_due)} days · outstanding {outstanding}"
        return f"{self.supplier_name} · due in {self.days_until_due} days · outstanding {outstanding}"

    def severity(self) -> str:
        if self.due_status == DueStatus.OVERDUE:
            return NotificationSeverity.CRITICAL.value
        return NotificationSeverity.WARNING.value

    def payload(self) -> dict[str, Any]:
        return {
            "po_id": self.po_id,
            "po_number": self.po_number,
            "supplier_name": self.supplier_name,
            "payment_status": self.payment_status,
            "due_date": self.due_date,
            "due_status": self.due_status.value,
            "days_until_due": self.days_until_due,
            "outstanding_base": self.outstanding_base,
        }


@dataclass
class SignalBatch:
    """Signals for one store plus context fields such as the store currency."""

    items: list[BaseSignal]
    context: dict[str, Any] = field(default_factory=dict)


class SignalSource(Protocol):
    def list_signals(self, db: Session, store_id: str, limit: int) -> SignalBatch:
        ...


def classify_due_date(due_date: date | None, today: date, due_soon_days: int) -> tuple[DueStatus | None, int | None]:
    """Return (due status, days until due) for reminder purposes.

    Only OVERDUE and DUE_SOON are reminder-worthy; anything else returns
    (None, days) or (None, None) when there is no due date.
    """
    if due_date is None:
        return None, None
    days_until_due = (due_date - today).days
    if days_until_due < 0:
        return DueStatus.OVERDUE, days_until_due
    if days_until_due <= due_soon_days:
        return DueStatus.DUE_SOON, days_until_due
    return None, days_until_due


def _parse_due_date(date_str: str | None) -> date | None:
    if not date_str:
        return None
    try:
        return datetime.strptime(date_str[:10], "%Y-%m-%d").date()
    except ValueError:
        return None


class PurchaseApDueSource:
    """Overdue and due-soon payables from the ap_payables ledger."""

    def __init__(self, due_soon_days: int | None = None):
        self.due_soon_days = due_soon_days

    def list_signals(self, db: Session, store_id: str, limit: int) -> SignalBatch:
        limit = min(MAX_SIGNALS_PER_STORE, max(1, limit))
        due_soon_days = self.due_soon_days
        if due_soon_days is None:
            due_soon_days = get_settings().ap_due_soon_days
        today = utcnow().date()

        store = db.query(Store).filter(Store.id == store_id).first()
        payables = db.query(Payable).filter(
            Payable.store_id == store_id,
            Payable.payment_status != "PAID",
            Payable.outstanding_base > 0,
        ).all()

        items: list[PurchaseApDueSignal] = []
        for payable in payables:
            due_date = _parse_due_date(payable.due_date)
            due_status, days_until_due = classify_due_date(due_date, today, due_soon_days)
            if due_status is None:
                continue
            items.append(PurchaseApDueSignal(
                entity_id=payable.po_id,
                po_number=payable.po_number,
                supplier_name=(payable.supplier_name or "").strip() or "Unknown supplier",
                payment_status=payable.payment_status,
                due_date=due_date.isoformat(),
                due_status=due_status,
                days_until_due=days_until_due,
                outstanding_base=payable.outstanding_base,
            ))

        # Overdue first, then soonest, then PO number
        items.sort(key=lambda s: (
            0 if s.due_status == DueStatus.OVERDUE else 1,
            s.days_until_due,
            s.po_number,
        ))

        # Totals cover every reminder, not just the returned page
        overdue = [s for s in items if s.due_status == DueStatus.OVERDUE]
        due_soon = [s for s in items if s.due_status == DueStatus.DUE_SOON]

        return SignalBatch(
            items=items[:limit],
            context={
                "store_currency": store.currency if store else None,
                "overdue_count": len(overdue),
                "due_soon_count": len(due_soon),
                "overdue_outstanding_base": sum(s.outstanding_base for s in overdue),
                "due_soon_outstanding_base": sum(s.outstanding_base for s in due_soon),
            },
        )


@dataclass(frozen=True)
class TopicDefinition:
    """How one topic is sourced and compared."""

    topic: NotificationTopic
    entity_type: NotificationEntityType
    source: SignalSource
    change_fields: tuple[str, ...] = ()
    enabled: bool = True


_registry: dict[NotificationTopic, TopicDefinition] = {}


def register_topic(definition: TopicDefinition) -> None:
    """Register or replace the definition for a topic."""
    _registry[definition.topic] = definition


def configure_topic(topic: NotificationTopic, **changes: Any) -> TopicDefinition:
    """Override fields of a registered topic (used by the YAML loader and tests)."""
    definition = replace(get_topic(topic), **changes)
    _registry[topic] = definition
    return definition


def get_topic(topic: NotificationTopic) -> TopicDefinition:
    try:
        return _registry[NotificationTopic(topic)]
    except (KeyError, ValueError) as exc:
        raise KeyError(f"Unknown notification topic: {topic}") from exc


def list_topics(enabled_only: bool = True) -> list[TopicDefinition]:
    return [d for d in _registry.values() if d.enabled or not enabled_only]


def register_default_topics() -> None:
    register_topic(TopicDefinition(
        topic=NotificationTopic.PURCHASE_AP_DUE,
        entity_type=NotificationEntityType.PURCHASE_ORDER,
        source=PurchaseApDueSource(),
        change_fields=("outstanding_base",),
    ))


register_default_topics()
