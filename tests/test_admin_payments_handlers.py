from __future__ import annotations

import pytest

from cashpay.bot.handlers import admin_payments as h
from cashpay.services.approval import ApprovalEngine
from cashpay.services.review import ReviewController, make_loader
from cashpay.services.security import AdminContext
from conftest import admin_logs, payment


class DummyFrom:
    def __init__(self, uid: int) -> None:
        self.id = uid


class FakeMessage:
    def __init__(self, uid: int = 1001, text: str | None = None) -> None:
        self.from_user = DummyFrom(uid)
        self.text = text
        self.sent: list[tuple[str, object]] = []
        self.edits: list[str] = []

    async def answer(self, text, reply_markup=None, **kwargs):
        self.sent.append((text, reply_markup))

    async def edit_text(self, text, reply_markup=None, **kwargs):
        self.edits.append(text)
        self.text = text


class FakeCb:
    def __init__(self, data: str, uid: int = 1001, message_text: str = "") -> None:
        self.data = data
        self.from_user = DummyFrom(uid)
        self.message = FakeMessage(uid, message_text)
        self.answers: list[tuple[object, bool]] = []

    async def answer(self, text=None, show_alert=False, **kwargs):
        self.answers.append((text, show_alert))


def _buttons(markup) -> list:
    return [btn for row in getattr(markup, "inline_keyboard", []) for btn in row]


@pytest.fixture
def wired(seeded, monkeypatch):
    ctx = AdminContext(user_id="a1", role="admin", full_name="Admin One", telegram_id=1001)

    async def fake_load_admin_context(telegram_id):
        if telegram_id == 1001:
            return ctx
        if telegram_id == 2002:
            return AdminContext(user_id="u1", role="user", full_name="Asha", telegram_id=2002)
        return None

    def fake_new_controller(c):
        return ReviewController(c, engine=ApprovalEngine(seeded, reject_notes_required=False), loader=make_loader(seeded))

    sent_logs: list[str] = []

    async def fake_notify_log(text, **kwargs):
        sent_logs.append(text)
        return True

    monkeypatch.setattr(h, "load_admin_context", fake_load_admin_context)
    monkeypatch.setattr(h, "_new_controller", fake_new_controller)
    monkeypatch.setattr(h, "notify_log", fake_notify_log)
    h._CONTROLLERS.clear()
    h._NOTE_INTENT.clear()
    h._PENDING_NOTES.clear()
    yield seeded, sent_logs
    h._CONTROLLERS.clear()
    h._NOTE_INTENT.clear()
    h._PENDING_NOTES.clear()


@pytest.mark.asyncio
async def test_non_admin_is_redirected_before_fetch(wired, monkeypatch):
    called = {"new": False}

    def boom(ctx):
        called["new"] = True
        raise AssertionError("controller must not be built")

    monkeypatch.setattr(h, "_new_controller", boom)
    for uid in (2002, 3003):
        msg = FakeMessage(uid)
        await h.admin_cash_payments(msg)
        assert msg.sent == [("🏠 Main menu", None)]
    assert called["new"] is False


@pytest.mark.asyncio
async def test_overview_lists_pending_before_history(wired):
    msg = FakeMessage(1001)
    await h.admin_cash_payments(msg)

    text, kb = msg.sent[-1]
    assert "Pending Approvals (2)" in text
    assert text.index("Asha") < text.index("Payment History")
    assert "₹500" in text and "₹1200.5" in text
    assert "Processed: 2026-09-30 08:30" in text
    assert "Notes: receipt checked" in text
    data = [b.callback_data for b in _buttons(kb)]
    assert "cpay:ask:approve:p1" in data
    assert "cpay:ask:reject:p2" in data
    assert "cpay:refresh" in data
    # No actions for resolved payments
    assert not any(d.endswith(":p3") or d.endswith(":p4") for d in data)


@pytest.mark.asyncio
async def test_ask_then_confirm_approves_and_logs(wired):
    maker, sent_logs = wired
    await h.admin_cash_payments(FakeMessage(1001))

    ask = FakeCb("cpay:ask:approve:p1")
    await h.cb_ask(ask)
    prompt_text, prompt_kb = ask.message.sent[-1]
    assert "Are you sure you want to approve the cash payment of ₹500 from Asha?" in prompt_text
    assert [b.callback_data for b in _buttons(prompt_kb)] == ["cpay:cancel:p1", "cpay:do:approve:p1"]

    do = FakeCb("cpay:do:approve:p1", message_text=prompt_text)
    await h.cb_confirm(do)

    assert do.answers[-1] == ("Payment approved successfully.", False)
    assert (await payment(maker, "p1")).status == "approved"
    logs = await admin_logs(maker)
    assert [(entry.action, entry.details["payment_id"]) for entry in logs] == [("approve_cash_payment", "p1")]
    assert sent_logs and "approved" in sent_logs[0]
    refreshed_text, _ = do.message.sent[-1]
    assert "Pending Approvals (1)" in refreshed_text


@pytest.mark.asyncio
async def test_confirm_without_prompt_changes_nothing(wired):
    maker, _ = wired
    await h.admin_cash_payments(FakeMessage(1001))

    do = FakeCb("cpay:do:reject:p2")
    await h.cb_confirm(do)

    assert do.answers[-1][1] is True
    assert (await payment(maker, "p2")).status == "pending"
    assert await admin_logs(maker) == []


@pytest.mark.asyncio
async def test_ask_on_resolved_payment_is_refused(wired):
    await h.admin_cash_payments(FakeMessage(1001))
    ask = FakeCb("cpay:ask:approve:p3")
    await h.cb_ask(ask)
    assert ask.answers[-1] == ("This payment is already approved.", True)
    assert ask.message.sent == []


@pytest.mark.asyncio
async def test_reject_with_note_flow(wired):
    maker, _ = wired
    await h.admin_cash_payments(FakeMessage(1001))

    note_cb = FakeCb("cpay:note:p2")
    await h.cb_note_prompt(note_cb)
    assert h._NOTE_INTENT == {1001: "p2"}

    reply = FakeMessage(1001, text="  amount does not match receipt ")
    await h.admin_note_text(reply)
    prompt_text, prompt_kb = reply.sent[-1]
    assert "reject the cash payment of ₹1200.5 from Ravi" in prompt_text
    assert "Note: amount does not match receipt" in prompt_text

    do = FakeCb("cpay:do:reject:p2", message_text=prompt_text)
    await h.cb_confirm(do)

    row = await payment(maker, "p2")
    assert row.status == "rejected"
    assert row.admin_notes == "amount does not match receipt"
    logs = await admin_logs(maker)
    assert logs[0].details == {"payment_id": "p2", "notes": "amount does not match receipt"}


@pytest.mark.asyncio
async def test_cancel_drops_prompt(wired):
    maker, _ = wired
    await h.admin_cash_payments(FakeMessage(1001))
    await h.cb_ask(FakeCb("cpay:ask:approve:p1"))

    cancel = FakeCb("cpay:cancel:p1", message_text="Approve Payment")
    await h.cb_cancel(cancel)
    assert cancel.message.edits[-1].endswith("Cancelled")

    await h.cb_confirm(FakeCb("cpay:do:approve:p1"))
    assert (await payment(maker, "p1")).status == "pending"


def test_render_overview_empty_state(admin):
    ctl = ReviewController(admin, engine=object(), loader=object())  # type: ignore[arg-type]
    text, kb = h.render_overview(ctl)
    assert "Pending Approvals (0)" in text
    assert "All Caught Up!" in text
    assert "Payment History" not in text
    assert [b.callback_data for b in _buttons(kb)] == ["cpay:refresh"]


@pytest.mark.asyncio
async def test_stale_confirm_tap_keeps_rejection_note(wired):
    maker, _ = wired
    await h.admin_cash_payments(FakeMessage(1001))

    await h.cb_ask(FakeCb("cpay:ask:approve:p1"))
    await h.cb_note_prompt(FakeCb("cpay:note:p1"))
    reply = FakeMessage(1001, text="receipt unreadable")
    await h.admin_note_text(reply)
    prompt_text, _ = reply.sent[-1]

    stale = FakeCb("cpay:do:approve:p1")
    await h.cb_confirm(stale)
    assert stale.answers[-1] == ("This confirmation has expired. Open the list again.", True)
    assert (await payment(maker, "p1")).status == "pending"

    await h.cb_confirm(FakeCb("cpay:do:reject:p1", message_text=prompt_text))

    row = await payment(maker, "p1")
    assert row.status == "rejected"
    assert row.admin_notes == "receipt unreadable"
    logs = await admin_logs(maker)
    assert logs[0].details == {"payment_id": "p1", "notes": "receipt unreadable"}
    assert h._PENDING_NOTES == {}


@pytest.mark.asyncio
async def test_reject_goes_to_note_capture_when_notes_required(wired, monkeypatch):
    maker, _ = wired

    def strict_controller(c):
        return ReviewController(c, engine=ApprovalEngine(maker, reject_notes_required=True), loader=make_loader(maker))

    monkeypatch.setattr(h, "_new_controller", strict_controller)
    await h.admin_cash_payments(FakeMessage(1001))

    ask = FakeCb("cpay:ask:reject:p2")
    await h.cb_ask(ask)
    assert ask.answers[-1] == ("A note is required to reject this payment.", False)
    assert h._NOTE_INTENT == {1001: "p2"}
    assert ask.message.sent[-1][0].startswith("📝 Send the rejection note for ₹1200.5 from Ravi")

    # No bare confirmation was offered
    bare = FakeCb("cpay:do:reject:p2")
    await h.cb_confirm(bare)
    assert bare.answers[-1][1] is True
    assert (await payment(maker, "p2")).status == "pending"

    reply = FakeMessage(1001, text="duplicate claim")
    await h.admin_note_text(reply)
    prompt_text, _ = reply.sent[-1]
    await h.cb_confirm(FakeCb("cpay:do:reject:p2", message_text=prompt_text))

    row = await payment(maker, "p2")
    assert row.status == "rejected"
    assert row.admin_notes == "duplicate claim"
