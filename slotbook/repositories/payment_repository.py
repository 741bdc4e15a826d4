# slotbook/repositories/payment_repository.py
"""SQLAlchemy implementation of PaymentStore."""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from ..core.enums import PaymentMethod, PaymentStatus
from ..core.exceptions import RepositoryException
from ..domain.entities import PaymentInfo, RefundInfo
from ..models.payment import Payment as PaymentRow
from .base_repository import BaseRepository
from .interfaces import PaymentStore


def payment_from_row(row: PaymentRow) -> PaymentInfo:
    refund_info = None
    if row.refund_id is not None:
        refund_info = RefundInfo(
            refund_id=row.refund_id,
            refund_amount=row.refund_amount,
            reason=row.refund_reason or "",
            refunded_at=row.refunded_at,
            refund_transaction_id=row.refund_transaction_id,
        )
    return PaymentInfo(
        payment_id=row.id,
        booking_id=row.booking_id,
        method=PaymentMethod(row.method),
        status=PaymentStatus(row.status),
        amount=row.amount,
        currency=row.currency,
        idempotency_key=row.idempotency_key,
        paid_at=row.paid_at,
        receipt_url=row.receipt_url,
        transaction_id=row.transaction_id,
        failure_reason=row.failure_reason,
        refund_info=refund_info,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _apply(row: PaymentRow, payment: PaymentInfo) -> None:
    row.booking_id = payment.booking_id
    row.method = payment.method.value
    row.status = payment.status.value
    row.amount = payment.amount
    row.currency = payment.currency
    row.idempotency_key = payment.idempotency_key
    row.paid_at = payment.paid_at
    row.receipt_url = payment.receipt_url
    row.transaction_id = payment.transaction_id
    row.failure_reason = payment.failure_reason
    refund = payment.refund_info
    row.refund_id = refund.refund_id if refund else None
    row.refund_amount = refund.refund_amount if refund else None
    row.refund_reason = refund.reason if refund else None
    row.refunded_at = refund.refunded_at if refund else None
    row.refund_transaction_id = refund.refund_transaction_id if refund else None
    row.created_at = payment.created_at
    row.updated_at = payment.updated_at


class PaymentRepository(BaseRepository[PaymentRow], PaymentStore):
    def __init__(self, session_factory: sessionmaker):
        super().__init__(session_factory, PaymentRow)

    def get(self, payment_id: str) -> Optional[PaymentInfo]:
        with self.session() as db:
            row = self._get_row(db, payment_id)
            return payment_from_row(row) if row else None

    def get_by_idempotency_key(self, idempotency_key: str) -> Optional[PaymentInfo]:
        with self.session() as db:
            row = db.scalars(
                select(PaymentRow).where(PaymentRow.idempotency_key == idempotency_key)
            ).first()
            return payment_from_row(row) if row else None

    def create(self, payment: PaymentInfo) -> PaymentInfo:
        key = payment.idempotency_key
        if key:
            existing = self.get_by_idempotency_key(key)
            if existing is not None:
                return existing
        try:
            with self.session() as db:
                row = PaymentRow(id=payment.payment_id)
                _apply(row, payment)
                db.add(row)
        except RepositoryException:
            # Lost the insert race on the unique idempotency key
            existing = self.get_by_idempotency_key(key) if key else None
            if existing is None:
                raise
            return existing
        return payment

    def update(self, payment: PaymentInfo) -> PaymentInfo:
        with self.session() as db:
            row = self._get_row(db, payment.payment_id)
            if row is None:
                raise RepositoryException(f"Payment {payment.payment_id} does not exist")
            _apply(row, payment)
        return payment

    def list_created_between(self, start: datetime, end: datetime) -> List[PaymentInfo]:
        with self.session() as db:
            rows = db.scalars(
                select(PaymentRow)
                .where(PaymentRow.created_at >= start, PaymentRow.created_at < end)
                .order_by(PaymentRow.created_at, PaymentRow.id)
            ).all()
            return [payment_from_row(row) for row in rows]
