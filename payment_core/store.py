"""
Order and payment persistence on top of SQLAlchemy sessions.

Stores take a session factory (``sessionmaker``) so the app and the tests can
point them at different databases. Driver-level failures surface as
``StorageError``; a uniqueness violation on the payment idempotency key
surfaces as ``DuplicatePaymentError``.
"""
from contextlib import contextmanager

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from payment_core.exceptions import DuplicatePaymentError, StorageError
from payment_core.models import ORDER_PAID, ORDER_PENDING, Order, Payment, utcnow

logger = structlog.get_logger(component="store")

MAX_LIST_LIMIT = 1000


@contextmanager
def _session(session_factory):
    try:
        db = session_factory()
    except SQLAlchemyError as exc:
        raise StorageError(f"Storage unavailable: {exc.__class__.__name__}") from exc
    try:
        yield db
    except IntegrityError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        raise StorageError(f"Storage failure: {exc.__class__.__name__}") from exc
    finally:
        db.close()


def _clamp_limit(limit: int) -> int:
    return max(1, min(int(limit), MAX_LIST_LIMIT))


class OrderStore:
    def __init__(self, session_factory):
        self._session_factory = session_factory

    def create_order(self, **fields) -> Order:
        fields["status"] = ORDER_PENDING
        fields["provider_reference"] = None
        if fields.get("customer_email"):
            fields["customer_email"] = fields["customer_email"].lower()
        try:
            with _session(self._session_factory) as db:
                order = Order(**fields)
                db.add(order)
                db.commit()
                db.refresh(order)
                db.expunge(order)
        except IntegrityError as exc:
            raise StorageError("Order rejected by storage") from exc
        logger.info("order_created", order_id=order.id, service_id=order.service_id)
        return order

    def attach_provider_reference(self, order_id: int, reference: str | None) -> bool:
        """
        Set the provider reference once; an order that already has one keeps it.
        Raises StorageError when the write fails so callers can retry.
        """
        if not reference:
            logger.warning("order_reference_missing", order_id=order_id)
            return False
        try:
            with _session(self._session_factory) as db:
                updated = (
                    db.query(Order)
                    .filter(Order.id == order_id, Order.provider_reference.is_(None))
                    .update(
                        {"provider_reference": reference, "updated_at": utcnow()},
                        synchronize_session=False,
                    )
                )
                db.commit()
        except IntegrityError as exc:
            raise StorageError("Provider reference rejected by storage") from exc
        if not updated:
            logger.warning("order_reference_not_attached", order_id=order_id, reference=reference)
        return bool(updated)

    def mark_paid(self, order_id: int | None = None, provider_reference: str | None = None) -> bool:
        """
        Flip a pending order to paid. Idempotent: an already-paid or unknown order
        is a no-op and returns False. Status never moves back to pending.
        """
        if order_id is None and not provider_reference:
            raise ValueError("order_id or provider_reference is required")
        with _session(self._session_factory) as db:
            query = db.query(Order).filter(Order.status == ORDER_PENDING)
            if order_id is not None:
                query = query.filter(Order.id == order_id)
            else:
                query = query.filter(Order.provider_reference == provider_reference)
            updated = query.update({"status": ORDER_PAID, "updated_at": utcnow()}, synchronize_session=False)
            db.commit()
        if updated:
            logger.info("order_marked_paid", order_id=order_id, provider_reference=provider_reference)
        else:
            logger.info("order_mark_paid_noop", order_id=order_id, provider_reference=provider_reference)
        return bool(updated)

    def get(self, order_id: int) -> Order | None:
        with _session(self._session_factory) as db:
            order = db.get(Order, order_id)
            if order is not None:
                db.expunge(order)
            return order

    def find_by_provider_reference(self, reference: str) -> Order | None:
        with _session(self._session_factory) as db:
            order = db.query(Order).filter_by(provider_reference=reference).first()
            if order is not None:
                db.expunge(order)
            return order

    def list_orders(self, limit: int = 100, email: str | None = None) -> list[Order]:
        with _session(self._session_factory) as db:
            query = db.query(Order)
            if email:
                query = query.filter(Order.customer_email == email.lower())
            rows = query.order_by(Order.created_at.desc(), Order.id.desc()).limit(_clamp_limit(limit)).all()
            db.expunge_all()
            return rows


class PaymentStore:
    def __init__(self, session_factory):
        self._session_factory = session_factory

    def find_by_idempotency_key(self, provider: str, key: str) -> Payment | None:
        with _session(self._session_factory) as db:
            payment = db.query(Payment).filter_by(provider=provider, idempotency_key=key).first()
            if payment is not None:
                db.expunge(payment)
            return payment

    def insert(self, **fields) -> Payment:
        try:
            with _session(self._session_factory) as db:
                payment = Payment(**fields)
                db.add(payment)
                db.commit()
                db.refresh(payment)
                db.expunge(payment)
        except IntegrityError as exc:
            raise DuplicatePaymentError() from exc
        logger.info(
            "payment_recorded",
            payment_id=payment.id,
            provider=payment.provider,
            idempotency_key=payment.idempotency_key,
            order_id=payment.order_id,
        )
        return payment

    def list_payments(self, limit: int = 100, payment_id: int | None = None, reference: str | None = None) -> list[Payment]:
        with _session(self._session_factory) as db:
            query = db.query(Payment)
            if payment_id is not None:
                query = query.filter(Payment.id == payment_id)
            elif reference:
                query = query.filter(
                    (Payment.provider_charge_id == reference) | (Payment.provider_transaction_id == reference)
                )
            rows = query.order_by(Payment.created_at.desc(), Payment.id.desc()).limit(_clamp_limit(limit)).all()
            db.expunge_all()
            return rows
