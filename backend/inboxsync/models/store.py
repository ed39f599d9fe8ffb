"""Store (tenant) model."""
import uuid

from sqlalchemy import Column, String

from inboxsync.database import Base
from inboxsync.services.timeutils import utcnow_iso


class Store(Base):
    """A tenant. Every inbox and rule row is scoped to one store."""

    __tablename__ = "stores"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(100), nullable=False)
    currency = Column(String(3), nullable=False, default="LAK")  # LAK, THB, USD
    created_at = Column(String(26), default=utcnow_iso)
