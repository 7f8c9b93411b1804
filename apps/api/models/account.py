"""Account model holding each user's credit ledger and subscription state."""

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String
from sqlalchemy.sql import func

from database import Base


SUBSCRIPTION_STATUSES = ("inactive", "active", "cancelled", "past_due")
SUBSCRIPTION_TYPES = ("monthly", "yearly")


class Account(Base):
    """One row per user; available credits are total_credits - used_credits."""

    __tablename__ = "accounts"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=False, index=True)
    total_credits = Column(Integer, nullable=False, default=0)
    used_credits = Column(Integer, nullable=False, default=0)
    subscription_status = Column(String, nullable=False, default="inactive")
    subscription_type = Column(String, nullable=True)
    groovesell_customer_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("total_credits >= 0", name="ck_accounts_total_credits_non_negative"),
        CheckConstraint("used_credits >= 0", name="ck_accounts_used_credits_non_negative"),
        CheckConstraint(
            "subscription_status IN ('inactive', 'active', 'cancelled', 'past_due')",
            name="ck_accounts_subscription_status",
        ),
    )

    @property
    def available_credits(self) -> int:
        return int(self.total_credits or 0) - int(self.used_credits or 0)
