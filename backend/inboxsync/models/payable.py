"""Accounts-payable ledger read by the PURCHASE_AP_DUE signal source."""
import uuid

from sqlalchemy import Column, Float, ForeignKey, Index, String, UniqueConstraint

from inboxsync.database import Base
from inboxsync.services.timeutils import utcnow_iso


class Payable(Base):
    """Outstanding balance of one purchase order."""

    __tablename__ = "ap_payables"
    __table_args__ = (
        UniqueConstraint("store_id", "po_id", name="uq_ap_payable_po"),
        Index("ix_ap_payables_store_due", "store_id", "due_date"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    store_id = Column(String(36), ForeignKey("stores.id", ondelete="CASCADE"), nullable=False)
    po_id = Column(String(64), nullable=False)
    po_number = Column(String(50), nullable=False)
    supplier_name = Column(String(255))
    payment_status = Column(String(20), nullable=False, default="UNPAID")  # UNPAID, PARTIAL, PAID
    due_date = Column(String(10))  # YYYY-MM-DD
    outstanding_base = Column(Float, nullable=False, default=0.0)  # In store currency
    updated_at = Column(String(26), default=utcnow_iso, onupdate=utcnow_iso)
