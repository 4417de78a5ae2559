"""Append-only console log."""

from __future__ import annotations

import logging
from typing import Callable, List, Tuple

from .models import ConsoleEntry, ConsoleKind

log = logging.getLogger(__name__)

Listener = Callable[[ConsoleEntry], None]


class ConsoleSink:
    """Ordered record of program output and system messages.

    Entries are kept in exactly the order `append` was called and are never
    removed or rewritten. Listeners are called synchronously on append.
    """

    def __init__(self) -> None:
        self._entries: List[ConsoleEntry] = []
        self._listeners: List[Listener] = []

    def append(self, text: str, kind: ConsoleKind = ConsoleKind.NORMAL) -> ConsoleEntry:
        entry = ConsoleEntry(index=len(self._entries), text=str(text), kind=kind)
        self._entries.append(entry)
        for listener in list(self._listeners):
            try:
                listener(entry)
            except Exception:
                log.exception("[console] listener failed")
        return entry

    def system(self, text: str) -> ConsoleEntry:
        return self.append(text, ConsoleKind.SYSTEM)

    def error(self, text: str) -> ConsoleEntry:
        return self.append(text, ConsoleKind.ERROR)

    @property
    def entries(self) -> Tuple[ConsoleEntry, ...]:
        return tuple(self._entries)

    def since(self, index: int) -> Tuple[ConsoleEntry, ...]:
        return tuple(self._entries[max(index, 0):])

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register `listener`; the returned callable unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def __len__(self) -> int:
        return len(self._entries)
