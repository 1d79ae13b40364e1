from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cashpay.db.models import PAYMENT_PENDING, CashPayment, User
from cashpay.errors import OrphanedPaymentError


@dataclass(frozen=True)
class Submitter:
    id: str
    full_name: str
    email: Optional[str]
    mobile_number: Optional[str]
    role: str


@dataclass(frozen=True)
class PaymentView:
    """Detached snapshot of a cash payment joined with its submitter."""

    id: str
    amount: Decimal
    status: str
    created_at: datetime
    approved_by: Optional[str]
    approved_at: Optional[datetime]
    admin_notes: Optional[str]
    user: Submitter

    @property
    def is_pending(self) -> bool:
        return self.status == PAYMENT_PENDING

    @property
    def processed_at(self) -> datetime:
        return self.approved_at or self.created_at


def _to_view(payment: CashPayment, user: Optional[User]) -> PaymentView:
    if user is None:
        raise OrphanedPaymentError(payment.id)
    return PaymentView(
        id=payment.id,
        amount=Decimal(str(payment.amount)),
        status=payment.status,
        created_at=payment.created_at,
        approved_by=payment.approved_by,
        approved_at=payment.approved_at,
        admin_notes=payment.admin_notes,
        user=Submitter(
            id=user.id,
            full_name=user.full_name,
            email=user.email,
            mobile_number=user.mobile_number,
            role=user.role,
        ),
    )


async def fetch_cash_payments(session: AsyncSession) -> list[PaymentView]:
    # Outer join so a missing submitter surfaces as an integrity error instead of vanishing
    stmt = (
        select(CashPayment, User)
        .outerjoin(User, CashPayment.user_id == User.id)
        .order_by(CashPayment.created_at.desc(), CashPayment.id.desc())
    )
    rows = (await session.execute(stmt)).all()
    return [_to_view(p, u) for p, u in rows]


async def get_cash_payment(session: AsyncSession, payment_id: str) -> Optional[CashPayment]:
    return await session.get(CashPayment, payment_id)


async def mark_cash_payment_resolved(
    session: AsyncSession,
    *,
    payment_id: str,
    status: str,
    admin_id: str,
    notes: Optional[str],
    at: datetime,
) -> int:
    """Resolve a payment only if it is still pending. Returns affected rows."""
    res = await session.execute(
        update(CashPayment)
        .where(CashPayment.id == payment_id, CashPayment.status == PAYMENT_PENDING)
        .values(status=status, approved_by=admin_id, approved_at=at, admin_notes=notes)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount or 0
