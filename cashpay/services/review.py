from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Awaitable, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from cashpay.db.session import session_scope
from cashpay.errors import CashPayError, FailureReason
from cashpay.services.approval import ApprovalEngine, Decision, ResolveResult, SessionFactory
from cashpay.services.payments_store import PaymentView, fetch_cash_payments
from cashpay.services.security import AdminContext, require_admin
from cashpay.utils.money import rupees

logger = logging.getLogger(__name__)

PaymentLoader = Callable[[], Awaitable[list[PaymentView]]]
AskConfirmation = Callable[["ConfirmationPrompt"], Awaitable[bool]]


class ReviewState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    CONFIRM_PENDING = "confirm_pending"
    PROCESSING = "processing"


@dataclass(frozen=True)
class ConfirmationPrompt:
    payment_id: str
    decision: Decision
    amount: Decimal
    submitter_name: str

    @property
    def title(self) -> str:
        return f"{self.decision.value.capitalize()} Payment"

    @property
    def text(self) -> str:
        return (
            f"Are you sure you want to {self.decision.value} the cash payment of "
            f"{rupees(self.amount)} from {self.submitter_name}?"
        )


@dataclass(frozen=True)
class Notice:
    ok: bool
    payment_id: str
    decision: Decision
    text: str
    detail: str = ""


def _failure_text(decision: Decision, reason: Optional[FailureReason]) -> str:
    if reason is FailureReason.NOTES_REQUIRED:
        return f"A note is required to {decision.value} this payment."
    return f"Failed to {decision.value} payment. Please try again."


def make_loader(session_factory: SessionFactory = session_scope) -> PaymentLoader:
    async def _load() -> list[PaymentView]:
        async with session_factory() as session:
            return await fetch_cash_payments(session)

    return _load


class ReviewController:
    """Drives the admin review loop for cash payment claims.

    The held payment list is only ever replaced wholesale by a successful
    fetch; resolutions never patch it locally. Every resolution must be
    preceded by a confirmation prompt for the same payment and decision.
    """

    def __init__(
        self,
        admin: AdminContext,
        engine: Optional[ApprovalEngine] = None,
        loader: Optional[PaymentLoader] = None,
    ) -> None:
        self.admin = require_admin(admin)
        self._engine = engine or ApprovalEngine()
        self._loader = loader or make_loader()
        self._payments: tuple[PaymentView, ...] = ()
        self._busy: set[str] = set()
        self._prompts: dict[str, ConfirmationPrompt] = {}
        self._loading = 0
        self._fetch_seq = 0
        self._applied_seq = 0
        self.loaded = False
        self.last_fetch_error: Optional[BaseException] = None
        self.notices: list[Notice] = []

    # ---- state ----

    @property
    def state(self) -> ReviewState:
        if self._loading:
            return ReviewState.LOADING
        if self._busy:
            return ReviewState.PROCESSING
        if self._prompts:
            return ReviewState.CONFIRM_PENDING
        return ReviewState.READY if self.loaded else ReviewState.IDLE

    @property
    def payments(self) -> list[PaymentView]:
        return list(self._payments)

    @property
    def pending(self) -> list[PaymentView]:
        return [p for p in self._payments if p.is_pending]

    @property
    def processed(self) -> list[PaymentView]:
        return [p for p in self._payments if not p.is_pending]

    def is_busy(self, payment_id: str) -> bool:
        return payment_id in self._busy

    def find(self, payment_id: str) -> Optional[PaymentView]:
        for p in self._payments:
            if p.id == payment_id:
                return p
        return None

    def drain_notices(self) -> list[Notice]:
        out, self.notices = self.notices, []
        return out

    # ---- loading ----

    async def refresh(self) -> bool:
        self._fetch_seq += 1
        seq = self._fetch_seq
        self._loading += 1
        try:
            payments = await self._loader()
        except (SQLAlchemyError, OSError, CashPayError) as e:
            if seq > self._applied_seq:
                self.last_fetch_error = e
            logger.exception("payments.fetch.failed", extra={"extra": {"admin_id": self.admin.user_id}})
            return False
        finally:
            self._loading -= 1
        if seq < self._applied_seq:
            # A fetch started later has already replaced the list
            logger.debug("payments.fetch.superseded", extra={"extra": {"seq": seq, "applied": self._applied_seq}})
            return True
        self._applied_seq = seq
        self._payments = tuple(payments)
        self.loaded = True
        self.last_fetch_error = None
        # Prompts for payments resolved elsewhere are stale
        for pid in list(self._prompts):
            current = self.find(pid)
            if current is None or not current.is_pending:
                self._prompts.pop(pid, None)
        logger.debug(
            "payments.fetch.ok",
            extra={"extra": {"total": len(self._payments), "pending": len(self.pending)}},
        )
        return True

    # ---- confirmation ----

    def _refusal(self, payment_id: str) -> Optional[FailureReason]:
        if payment_id in self._busy:
            return FailureReason.BUSY
        payment = self.find(payment_id)
        if payment is None:
            return FailureReason.NOT_FOUND
        if not payment.is_pending:
            return FailureReason.ALREADY_RESOLVED
        return None

    def notes_required(self, decision: Decision | str) -> bool:
        return Decision(decision) is Decision.REJECT and bool(getattr(self._engine, "reject_notes_required", False))

    def request(self, payment_id: str, decision: Decision | str) -> Optional[ConfirmationPrompt]:
        decision = Decision(decision)
        payment = self.find(payment_id)
        if payment is None or self._refusal(payment_id) is not None:
            return None
        prompt = ConfirmationPrompt(
            payment_id=payment.id,
            decision=decision,
            amount=payment.amount,
            submitter_name=payment.user.full_name,
        )
        self._prompts[payment_id] = prompt
        return prompt

    def cancel(self, payment_id: str) -> None:
        self._prompts.pop(payment_id, None)

    async def confirm(
        self,
        payment_id: str,
        decision: Decision | str,
        notes: Optional[str] = None,
    ) -> ResolveResult:
        decision = Decision(decision)
        if payment_id in self._busy:
            logger.info("payments.resolve.ignored_busy", extra={"extra": {"payment_id": payment_id}})
            return ResolveResult.failure(payment_id, decision, FailureReason.BUSY, "already in progress")
        prompt = self._prompts.get(payment_id)
        if prompt is None or prompt.decision is not decision:
            return ResolveResult.failure(payment_id, decision, FailureReason.NOT_CONFIRMED, "no confirmation for this action")
        self._prompts.pop(payment_id, None)
        self._busy.add(payment_id)
        try:
            result = await self._engine.resolve(payment_id, decision, self.admin, notes)
        finally:
            self._busy.discard(payment_id)
        if result.ok:
            self.notices.append(
                Notice(ok=True, payment_id=payment_id, decision=decision, text=f"Payment {decision.past_tense} successfully.")
            )
            await self.refresh()
        else:
            self.notices.append(
                Notice(
                    ok=False,
                    payment_id=payment_id,
                    decision=decision,
                    text=_failure_text(decision, result.reason),
                    detail=result.message,
                )
            )
        return result

    # ---- operator actions ----

    async def approve(self, payment_id: str, ask: AskConfirmation, notes: Optional[str] = None) -> ResolveResult:
        return await self._decide(payment_id, Decision.APPROVE, ask, notes)

    async def reject(self, payment_id: str, ask: AskConfirmation, notes: Optional[str] = None) -> ResolveResult:
        return await self._decide(payment_id, Decision.REJECT, ask, notes)

    async def _decide(
        self,
        payment_id: str,
        decision: Decision,
        ask: AskConfirmation,
        notes: Optional[str],
    ) -> ResolveResult:
        prompt = self.request(payment_id, decision)
        if prompt is None:
            refusal = self._refusal(payment_id) or FailureReason.NOT_FOUND
            return ResolveResult.failure(payment_id, decision, refusal)
        if not await ask(prompt):
            self.cancel(payment_id)
            return ResolveResult.failure(payment_id, decision, FailureReason.NOT_CONFIRMED, "cancelled")
        return await self.confirm(payment_id, decision, notes)
