from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class ModalScope:
    name: str
    on_suspend: Optional[Callable[[], None]] = None
    on_resume: Optional[Callable[[], None]] = None


class ModalStack:
    """
    Nested interactive scopes (loading overlay, results, review).
    Entering a scope suspends the parent; only the top scope takes input.
    """

    def __init__(self) -> None:
        self._stack: List[ModalScope] = []

    @property
    def top(self) -> Optional[ModalScope]:
        return self._stack[-1] if self._stack else None

    @property
    def depth(self) -> int:
        return len(self._stack)

    def accepts_input(self, name: Optional[str] = None) -> bool:
        """name=None asks on behalf of the base (wizard) layer."""
        top = self.top
        if top is None:
            return name is None
        return top.name == name

    def enter(
        self,
        name: str,
        on_suspend: Optional[Callable[[], None]] = None,
        on_resume: Optional[Callable[[], None]] = None,
    ) -> ModalScope:
        parent = self.top
        if parent is not None and parent.on_suspend is not None:
            parent.on_suspend()
        scope = ModalScope(name=name, on_suspend=on_suspend, on_resume=on_resume)
        self._stack.append(scope)
        logger.debug("modal enter %s (depth=%d)", name, len(self._stack))
        return scope

    def exit(self, scope: Optional[ModalScope] = None) -> Optional[ModalScope]:
        """
        Leave `scope` (default: the top one). Exiting an already-closed
        scope is a no-op. The new top is resumed when the top was removed.
        """
        if not self._stack:
            return None
        if scope is None:
            scope = self._stack[-1]
        if scope not in self._stack:
            return None

        was_top = scope is self._stack[-1]
        self._stack.remove(scope)
        logger.debug("modal exit %s (depth=%d)", scope.name, len(self._stack))

        parent = self.top
        if was_top and parent is not None and parent.on_resume is not None:
            parent.on_resume()
        return scope
