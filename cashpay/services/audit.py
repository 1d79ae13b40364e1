from __future__ import annotations

from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cashpay.db.models import AdminLog
from cashpay.utils.time import utc_now


ACTION_APPROVE_CASH_PAYMENT = "approve_cash_payment"
ACTION_REJECT_CASH_PAYMENT = "reject_cash_payment"


async def log_admin_action(
    session: AsyncSession,
    *,
    admin_id: str,
    action: str,
    details: Optional[dict[str, Any]] = None,
) -> AdminLog:
    entry = AdminLog(
        admin_id=admin_id,
        action=action,
        details=dict(details or {}),
        created_at=utc_now(),
    )
    session.add(entry)
    await session.flush()
    return entry


async def list_admin_actions(session: AsyncSession, *, payment_id: Optional[str] = None) -> list[AdminLog]:
    rows = (await session.scalars(select(AdminLog).order_by(AdminLog.id.asc()))).all()
    if payment_id is None:
        return list(rows)
    # JSON path filters differ across MySQL/SQLite; filter in Python
    return [r for r in rows if (r.details or {}).get("payment_id") == payment_id]
