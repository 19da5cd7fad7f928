from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence, Tuple

from .types import Choice

logger = logging.getLogger(__name__)

TextHandler = Callable[[str], Awaitable[None]]

MODE_INPUT = "input"
MODE_CHAT = "chat"


@dataclass
class FreeInputSession:
    placeholder: str
    handler: TextHandler
    fallback_choices: Tuple[Choice, ...] = ()
    mode: str = MODE_INPUT


class FreeInputInterceptor:
    """
    Replaces the choice surface with a text field until the pending
    handler closes it (or the user cancels). One session at a time;
    opening a new one replaces the previous handler.
    """

    def __init__(self, emit: Optional[Callable[..., None]] = None):
        self._emit = emit
        self._active: Optional[FreeInputSession] = None

    @property
    def active(self) -> Optional[FreeInputSession]:
        return self._active

    @property
    def is_open(self) -> bool:
        return self._active is not None

    @property
    def in_chat_mode(self) -> bool:
        return self._active is not None and self._active.mode == MODE_CHAT

    def open(
        self,
        placeholder: str,
        handler: TextHandler,
        fallback_choices: Sequence[Choice] = (),
        mode: str = MODE_INPUT,
    ) -> FreeInputSession:
        if self._active is not None:
            logger.debug("free input replaced (%s -> %s)", self._active.placeholder, placeholder)
        self._active = FreeInputSession(
            placeholder=placeholder,
            handler=handler,
            fallback_choices=tuple(fallback_choices),
            mode=mode,
        )
        self._notify("free_input_opened", placeholder=placeholder, mode=mode,
                     cancellable=bool(self._active.fallback_choices))
        return self._active

    def close(self) -> None:
        if self._active is None:
            return
        self._active = None
        self._notify("free_input_closed")

    async def submit(self, text: str) -> bool:
        """
        Forward trimmed text to the pending handler.
        Blank input (or no open session) is ignored and returns False.
        """
        text = (text or "").strip()
        if not text or self._active is None:
            return False
        await self._active.handler(text)
        return True

    def cancel(self) -> Tuple[Choice, ...]:
        """Close without touching slots or transcript; returns the fallback choices."""
        if self._active is None:
            return ()
        fallback = self._active.fallback_choices
        self.close()
        return fallback

    def _notify(self, kind: str, **payload) -> None:
        if self._emit is not None:
            self._emit(kind, **payload)
