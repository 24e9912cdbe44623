from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text, UniqueConstraint

from payment_core.database import Base

ORDER_PENDING = "pending"
ORDER_PAID = "paid"


def utcnow():
    return datetime.now(timezone.utc)


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_name = Column(String, nullable=False)
    customer_email = Column(String, nullable=False, index=True)
    service_id = Column(String, nullable=False)
    service_name = Column(String, nullable=False)
    notes = Column(Text, nullable=True)
    total_amount = Column(Integer, nullable=False)      # minor units
    deposit_amount = Column(Integer, nullable=False)    # minor units
    currency = Column(String, nullable=False)
    provider = Column(String, nullable=False)
    status = Column(String, nullable=False, default=ORDER_PENDING)   # pending | paid
    provider_reference = Column(String, nullable=True, index=True)   # charge / session / order id
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "service_id": self.service_id,
            "service_name": self.service_name,
            "notes": self.notes,
            "total_amount": self.total_amount,
            "deposit_amount": self.deposit_amount,
            "currency": self.currency,
            "provider": self.provider,
            "status": self.status,
            "provider_reference": self.provider_reference,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class Payment(Base):
    __tablename__ = "payments"
    # Two deliveries of one provider event can never produce two rows.
    __table_args__ = (
        UniqueConstraint("provider", "idempotency_key", name="uq_payments_provider_idempotency_key"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, nullable=True, index=True)   # unresolved orders are kept for audit
    provider = Column(String, nullable=False)
    provider_charge_id = Column(String, nullable=True, index=True)
    provider_transaction_id = Column(String, nullable=True, index=True)
    idempotency_key = Column(String, nullable=False)
    amount = Column(Integer, nullable=False)                # minor units
    currency = Column(String, nullable=False)
    status = Column(String, nullable=False)
    raw = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "provider": self.provider,
            "provider_charge_id": self.provider_charge_id,
            "provider_transaction_id": self.provider_transaction_id,
            "amount": self.amount,
            "currency": self.currency,
            "status": self.status,
            "raw": self.raw,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
