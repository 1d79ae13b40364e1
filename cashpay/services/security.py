from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select

from cashpay.db.models import ROLE_ADMIN, User
from cashpay.db.session import session_scope
from cashpay.errors import NotAuthorized


@dataclass(frozen=True)
class AdminContext:
    """Identity of the operator driving a review session.

    Passed explicitly into the workflow instead of being read from ambient state.
    """

    user_id: str
    role: str
    full_name: str = ""
    telegram_id: Optional[int] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


def require_admin(ctx: Optional[AdminContext]) -> AdminContext:
    if ctx is None or not ctx.is_admin:
        raise NotAuthorized("admin role required")
    return ctx


async def load_admin_context(telegram_id: int | None) -> Optional[AdminContext]:
    """Build a context for the Telegram account bound to a User row, if any."""
    if not telegram_id:
        return None
    async with session_scope() as session:
        user = await session.scalar(select(User).where(User.telegram_id == telegram_id))
    if user is None:
        return None
    return AdminContext(
        user_id=user.id,
        role=user.role,
        full_name=user.full_name,
        telegram_id=telegram_id,
    )


async def is_admin_uid(telegram_id: int | None) -> bool:
    ctx = await load_admin_context(telegram_id)
    return bool(ctx and ctx.is_admin)
