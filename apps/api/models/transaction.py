"""Transaction model: append-only audit trail of credit-affecting payment events."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.sql import func

from database import Base


TRANSACTION_TYPES = ("purchase", "refund", "bonus")
TRANSACTION_STATUSES = ("pending", "completed", "failed", "refunded")


class Transaction(Base):
    """Immutable record keyed by the payment processor's order id."""

    __tablename__ = "transactions"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    external_order_id = Column(String, nullable=False, unique=True)
    user_id = Column(String, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    transaction_type = Column(String, nullable=False, default="purchase")
    credits_added = Column(Integer, nullable=False, default=0)
    amount = Column(Numeric(10, 2), nullable=True)
    currency = Column(String, nullable=True, default="USD")
    subscription_type = Column(String, nullable=True)
    status = Column(String, nullable=False, default="completed")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
