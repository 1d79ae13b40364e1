from __future__ import annotations

import time
from collections import defaultdict, deque
from typing import Any, Awaitable, Callable, Deque, Dict, Optional

from aiogram import BaseMiddleware
from aiogram.types import CallbackQuery, Message, TelegramObject


class RateLimitMiddleware(BaseMiddleware):
    """Simple per-user rate limiter.

    Limits number of messages and button presses per user within a 60-second window.
    """

    def __init__(self, max_per_minute: int = 20, notify_text: str | None = None) -> None:
        self.max = max_per_minute
        self.window = 60.0
        self.history: Dict[int, Deque[float]] = defaultdict(deque)
        self.notify_text = notify_text or "Too many requests. Please try again in a moment."

    def _allow(self, uid: int, now: Optional[float] = None) -> bool:
        now = time.monotonic() if now is None else now
        q = self.history[uid]
        while q and (now - q[0]) > self.window:
            q.popleft()
        if len(q) >= self.max:
            return False
        q.append(now)
        return True

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        if isinstance(event, (Message, CallbackQuery)) and event.from_user:
            if not self._allow(event.from_user.id):
                try:
                    if isinstance(event, CallbackQuery):
                        # Short toast, not an alert popup
                        await event.answer(self.notify_text, show_alert=False)
                    else:
                        await event.answer(self.notify_text)
                except Exception:
                    pass
                return None
        return await handler(event, data)
