from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from aiogram import F, Router
from aiogram.filters import Command
from aiogram.types import CallbackQuery, InlineKeyboardButton, InlineKeyboardMarkup, Message

from cashpay.errors import FailureReason
from cashpay.services.approval import Decision
from cashpay.services.notifications import notify_log
from cashpay.services.payments_store import PaymentView
from cashpay.services.review import ConfirmationPrompt, ReviewController
from cashpay.services.security import AdminContext, load_admin_context
from cashpay.utils.money import rupees
from cashpay.utils.time import format_ts

router = Router()
logger = logging.getLogger(__name__)

HISTORY_LIMIT = 15
MENU_TEXT = "💵 Cash payments"

# One review session per admin Telegram id
_CONTROLLERS: Dict[int, ReviewController] = {}
# Reject-with-note capture: admin telegram id -> payment id awaiting a note
_NOTE_INTENT: Dict[int, str] = {}
# Notes typed for a prompt, consumed on confirm: (admin telegram id, payment id) -> note
_PENDING_NOTES: Dict[Tuple[int, str], str] = {}


def _new_controller(ctx: AdminContext) -> ReviewController:
    return ReviewController(ctx)


async def _review_for(telegram_id: Optional[int]) -> Optional[ReviewController]:
    """Return the caller's review session, or None when they are not an admin."""
    ctx = await load_admin_context(telegram_id)
    if ctx is None or not ctx.is_admin:
        _CONTROLLERS.pop(telegram_id or 0, None)
        return None
    ctl = _CONTROLLERS.get(ctx.telegram_id or 0)
    if ctl is None or ctl.admin != ctx:
        ctl = _new_controller(ctx)
        _CONTROLLERS[ctx.telegram_id or 0] = ctl
    return ctl


async def _redirect_home(message: Message) -> None:
    await message.answer("🏠 Main menu")


# ---- rendering ----

def _pending_block(p: PaymentView) -> List[str]:
    return [
        f"👤 {p.user.full_name} • {p.user.email or '-'}",
        f"💵 {rupees(p.amount)} • 🕒 PENDING",
        f"Submitted: {format_ts(p.created_at)}",
        f"Mobile: {p.user.mobile_number or '-'}",
    ]


def _history_block(p: PaymentView) -> List[str]:
    badge = "✅" if p.status == "approved" else "❌"
    lines = [
        f"👤 {p.user.full_name} • {p.user.email or '-'}",
        f"💵 {rupees(p.amount)} • {badge} {p.status.upper()}",
        f"Processed: {format_ts(p.processed_at)}",
    ]
    if p.admin_notes:
        lines.append(f"Notes: {p.admin_notes}")
    return lines


def render_overview(ctl: ReviewController) -> Tuple[str, InlineKeyboardMarkup]:
    pending = ctl.pending
    processed = ctl.processed
    lines = ["💵 Cash Payments", "Manage cash payment approvals", ""]
    if ctl.last_fetch_error is not None:
        lines += ["⚠️ Could not refresh; showing last loaded data.", ""]
    lines.append(f"Pending Approvals ({len(pending)})")
    rows: List[List[InlineKeyboardButton]] = []
    if not pending:
        lines += ["✅ All Caught Up!", "No pending cash payments to review"]
    for idx, p in enumerate(pending, start=1):
        lines.append("")
        lines.append(f"#{idx}")
        lines += _pending_block(p)
        if ctl.is_busy(p.id):
            lines.append("⏳ Processing…")
            continue
        rows.append([
            InlineKeyboardButton(text=f"Approve #{idx} ✅", callback_data=f"cpay:ask:approve:{p.id}"),
            InlineKeyboardButton(text=f"Reject #{idx} ❌", callback_data=f"cpay:ask:reject:{p.id}"),
            InlineKeyboardButton(text=f"Note #{idx} 📝", callback_data=f"cpay:note:{p.id}"),
        ])
    if processed:
        lines += ["", "Payment History"]
        for p in processed[:HISTORY_LIMIT]:
            lines.append("")
            lines += _history_block(p)
    rows.append([InlineKeyboardButton(text="🔄 Refresh", callback_data="cpay:refresh")])
    return "\n".join(lines), InlineKeyboardMarkup(inline_keyboard=rows)


def render_prompt(prompt: ConfirmationPrompt, note: Optional[str] = None) -> Tuple[str, InlineKeyboardMarkup]:
    text = f"{prompt.title}\n\n{prompt.text}"
    if note:
        text += f"\n\nNote: {note}"
    label = "Approve ✅" if prompt.decision is Decision.APPROVE else "Reject ❌"
    kb = InlineKeyboardMarkup(inline_keyboard=[[
        InlineKeyboardButton(text="Cancel", callback_data=f"cpay:cancel:{prompt.payment_id}"),
        InlineKeyboardButton(text=label, callback_data=f"cpay:do:{prompt.decision.value}:{prompt.payment_id}"),
    ]])
    return text, kb


def _refusal_text(ctl: ReviewController, payment_id: str) -> str:
    if ctl.is_busy(payment_id):
        return "This payment is already being processed."
    p = ctl.find(payment_id)
    if p is None:
        return "Payment not found. Refresh the list."
    return f"This payment is already {p.status}."


def _parse_action(data: Optional[str]) -> Optional[Tuple[Decision, str]]:
    # cpay:<ask|do>:<approve|reject>:<payment id>
    try:
        _, _, dec, pid = (data or "").split(":", 3)
        return Decision(dec), pid
    except ValueError:
        return None


async def _send_overview(target: Message, ctl: ReviewController, *, edit: bool = False) -> None:
    text, kb = render_overview(ctl)
    if edit:
        try:
            await target.edit_text(text, reply_markup=kb)
            return
        except Exception:
            # "message is not modified" and friends; fall back to a new message
            pass
    await target.answer(text, reply_markup=kb)


async def _ask_for_note(cb: CallbackQuery, p: PaymentView) -> None:
    _NOTE_INTENT[cb.from_user.id] = p.id
    await cb.message.answer(f"📝 Send the rejection note for {rupees(p.amount)} from {p.user.full_name} (one text message).")


# ---- entry points ----

@router.message(Command("cash_payments"))
@router.message(F.text == MENU_TEXT)
async def admin_cash_payments(message: Message) -> None:
    uid = message.from_user.id if message.from_user else None
    ctl = await _review_for(uid)
    if ctl is None:
        logger.info("payments.screen.redirect", extra={"extra": {"uid": uid}})
        await _redirect_home(message)
        return
    await ctl.refresh()
    await _send_overview(message, ctl)


@router.callback_query(F.data == "cpay:refresh")
async def cb_refresh(cb: CallbackQuery) -> None:
    ctl = await _review_for(cb.from_user.id if cb.from_user else None)
    if ctl is None:
        await cb.answer()
        await _redirect_home(cb.message)
        return
    await ctl.refresh()
    await _send_overview(cb.message, ctl, edit=True)
    await cb.answer("Refreshed")


@router.callback_query(F.data.startswith("cpay:ask:"))
async def cb_ask(cb: CallbackQuery) -> None:
    ctl = await _review_for(cb.from_user.id if cb.from_user else None)
    if ctl is None:
        await cb.answer()
        await _redirect_home(cb.message)
        return
    parsed = _parse_action(cb.data)
    if parsed is None:
        await cb.answer("Invalid payment id", show_alert=True)
        return
    decision, payment_id = parsed
    if ctl.notes_required(decision):
        p = ctl.find(payment_id)
        if p is None or not p.is_pending or ctl.is_busy(payment_id):
            await cb.answer(_refusal_text(ctl, payment_id), show_alert=True)
            return
        await _ask_for_note(cb, p)
        await cb.answer("A note is required to reject this payment.")
        return
    _PENDING_NOTES.pop((cb.from_user.id, payment_id), None)
    prompt = ctl.request(payment_id, decision)
    if prompt is None:
        await cb.answer(_refusal_text(ctl, payment_id), show_alert=True)
        return
    text, kb = render_prompt(prompt)
    await cb.message.answer(text, reply_markup=kb)
    await cb.answer()


@router.callback_query(F.data.startswith("cpay:note:"))
async def cb_note_prompt(cb: CallbackQuery) -> None:
    ctl = await _review_for(cb.from_user.id if cb.from_user else None)
    if ctl is None:
        await cb.answer()
        await _redirect_home(cb.message)
        return
    payment_id = (cb.data or "").split(":", 2)[2]
    p = ctl.find(payment_id)
    if p is None or not p.is_pending or ctl.is_busy(payment_id):
        await cb.answer(_refusal_text(ctl, payment_id), show_alert=True)
        return
    await _ask_for_note(cb, p)
    await cb.answer()


@router.message(lambda m: bool(getattr(m, "from_user", None)) and m.from_user.id in _NOTE_INTENT and isinstance(getattr(m, "text", None), str))
async def admin_note_text(message: Message) -> None:
    admin_tg = message.from_user.id
    payment_id = _NOTE_INTENT.pop(admin_tg, None)
    ctl = await _review_for(admin_tg)
    if ctl is None or payment_id is None:
        await _redirect_home(message)
        return
    note = message.text.strip()
    prompt = ctl.request(payment_id, Decision.REJECT)
    if prompt is None:
        await message.answer(_refusal_text(ctl, payment_id))
        return
    _PENDING_NOTES[(admin_tg, payment_id)] = note
    text, kb = render_prompt(prompt, note)
    await message.answer(text, reply_markup=kb)


@router.callback_query(F.data.startswith("cpay:cancel:"))
async def cb_cancel(cb: CallbackQuery) -> None:
    ctl = await _review_for(cb.from_user.id if cb.from_user else None)
    if ctl is None:
        await cb.answer()
        await _redirect_home(cb.message)
        return
    payment_id = (cb.data or "").split(":", 2)[2]
    ctl.cancel(payment_id)
    _PENDING_NOTES.pop((cb.from_user.id, payment_id), None)
    try:
        await cb.message.edit_text((cb.message.text or "") + "\n\nCancelled")
    except Exception:
        pass
    await cb.answer("Cancelled")


@router.callback_query(F.data.startswith("cpay:do:"))
async def cb_confirm(cb: CallbackQuery) -> None:
    ctl = await _review_for(cb.from_user.id if cb.from_user else None)
    if ctl is None:
        await cb.answer()
        await _redirect_home(cb.message)
        return
    parsed = _parse_action(cb.data)
    if parsed is None:
        await cb.answer("Invalid payment id", show_alert=True)
        return
    decision, payment_id = parsed
    if ctl.is_busy(payment_id):
        # Repeated taps while the first one is in flight
        await cb.answer("Processing…")
        return
    note_key = (cb.from_user.id, payment_id)
    note = _PENDING_NOTES.get(note_key) if decision is Decision.REJECT else None
    result = await ctl.confirm(payment_id, decision, note)
    if result.reason is FailureReason.NOT_CONFIRMED:
        # Stale button; the live prompt and its note stay usable
        await cb.answer("This confirmation has expired. Open the list again.", show_alert=True)
        return
    _PENDING_NOTES.pop(note_key, None)
    notices = ctl.drain_notices()
    notice = notices[-1].text if notices else ""
    status_line = "✅ Done" if result.ok else f"⚠️ {notice}"
    try:
        await cb.message.edit_text((cb.message.text or "") + f"\n\n{status_line}")
    except Exception:
        pass
    await cb.answer(notice or ("Done" if result.ok else "Failed"), show_alert=not result.ok)
    if result.ok:
        await notify_log(
            f"💵 Cash payment {payment_id} {decision.past_tense} by {ctl.admin.full_name or ctl.admin.user_id}"
            + (f"\nNotes: {note}" if note else "")
        )
        await _send_overview(cb.message, ctl)
