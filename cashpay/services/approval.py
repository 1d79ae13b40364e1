from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import AsyncContextManager, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cashpay.config import settings
from cashpay.db.models import PAYMENT_APPROVED, PAYMENT_REJECTED
from cashpay.db.session import session_scope
from cashpay.errors import (
    AlreadyResolved,
    FailureReason,
    NotesRequired,
    PaymentNotFound,
    PermissionDenied,
    ResolutionError,
)
from cashpay.services.audit import ACTION_APPROVE_CASH_PAYMENT, ACTION_REJECT_CASH_PAYMENT, log_admin_action
from cashpay.services.payments_store import get_cash_payment, mark_cash_payment_resolved
from cashpay.services.security import AdminContext
from cashpay.utils.time import utc_now

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]


class Decision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"

    @property
    def status(self) -> str:
        return PAYMENT_APPROVED if self is Decision.APPROVE else PAYMENT_REJECTED

    @property
    def action(self) -> str:
        return ACTION_APPROVE_CASH_PAYMENT if self is Decision.APPROVE else ACTION_REJECT_CASH_PAYMENT

    @property
    def past_tense(self) -> str:
        return "approved" if self is Decision.APPROVE else "rejected"


@dataclass(frozen=True)
class ResolveResult:
    ok: bool
    payment_id: str
    decision: Decision
    reason: Optional[FailureReason] = None
    message: str = ""

    @classmethod
    def success(cls, payment_id: str, decision: Decision) -> "ResolveResult":
        return cls(ok=True, payment_id=payment_id, decision=decision)

    @classmethod
    def failure(cls, payment_id: str, decision: Decision, reason: FailureReason, message: str = "") -> "ResolveResult":
        return cls(ok=False, payment_id=payment_id, decision=decision, reason=reason, message=message)


def _clean_notes(notes: Optional[str]) -> Optional[str]:
    if notes is None:
        return None
    notes = notes.strip()
    return notes or None


class ApprovalEngine:
    """Applies a single approve/reject resolution to a pending cash payment.

    The status update and the admin log entry are written in one transaction:
    either both are committed or neither is. The update only matches rows that
    are still ``pending``, so a payment is resolved at most once.
    """

    def __init__(
        self,
        session_factory: SessionFactory = session_scope,
        *,
        reject_notes_required: Optional[bool] = None,
    ) -> None:
        self._session_factory = session_factory
        if reject_notes_required is None:
            reject_notes_required = settings.reject_notes_required
        self.reject_notes_required = reject_notes_required

    async def resolve(
        self,
        payment_id: str,
        decision: Decision | str,
        admin: AdminContext,
        notes: Optional[str] = None,
    ) -> ResolveResult:
        decision = Decision(decision)
        notes = _clean_notes(notes)
        log_ctx = {"payment_id": payment_id, "decision": decision.value, "admin_id": getattr(admin, "user_id", None)}
        try:
            await self._apply(payment_id, decision, admin, notes)
        except ResolutionError as e:
            logger.warning("payments.resolve.refused", extra={"extra": {**log_ctx, "reason": e.reason.value}})
            return ResolveResult.failure(payment_id, decision, e.reason, str(e))
        except (SQLAlchemyError, OSError) as e:
            logger.exception("payments.resolve.store_error", extra={"extra": log_ctx})
            return ResolveResult.failure(payment_id, decision, FailureReason.STORE_UNAVAILABLE, str(e))
        logger.info("payments.resolve.ok", extra={"extra": log_ctx})
        return ResolveResult.success(payment_id, decision)

    async def _apply(
        self,
        payment_id: str,
        decision: Decision,
        admin: AdminContext,
        notes: Optional[str],
    ) -> None:
        if admin is None or not admin.is_admin:
            raise PermissionDenied(payment_id, "admin role required")
        if decision is Decision.REJECT and self.reject_notes_required and not notes:
            raise NotesRequired(payment_id, "a note is required to reject a payment")
        async with self._session_factory() as session:
            affected = await mark_cash_payment_resolved(
                session,
                payment_id=payment_id,
                status=decision.status,
                admin_id=admin.user_id,
                notes=notes,
                at=utc_now(),
            )
            if affected == 0:
                existing = await get_cash_payment(session, payment_id)
                await session.rollback()
                if existing is None:
                    raise PaymentNotFound(payment_id, f"cash payment {payment_id} not found")
                raise AlreadyResolved(payment_id, f"cash payment {payment_id} is already {existing.status}")
            await log_admin_action(
                session,
                admin_id=admin.user_id,
                action=decision.action,
                details={"payment_id": payment_id, "notes": notes},
            )
            await session.commit()
