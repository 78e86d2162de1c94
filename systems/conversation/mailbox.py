"""
Subject Mailbox - последовательная обработка событий одного пользователя

События одного subject обрабатываются строго по одному и в порядке
поступления (asyncio.Lock FIFO), разные subject - параллельно.
Лок удаляется, когда на него не осталось ожидающих.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Dict, Hashable


class _Slot:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.users = 0


class SubjectMailbox:
    """Per-subject serialization"""

    def __init__(self):
        self._slots: Dict[Hashable, _Slot] = {}

    @asynccontextmanager
    async def hold(self, subject_id: Hashable):
        slot = self._slots.get(subject_id)
        if slot is None:
            slot = self._slots[subject_id] = _Slot()
        slot.users += 1
        try:
            async with slot.lock:
                yield
        finally:
            slot.users -= 1
            if slot.users == 0 and self._slots.get(subject_id) is slot:
                del self._slots[subject_id]

    def active_subjects(self) -> int:
        return len(self._slots)

    def is_busy(self, subject_id: Hashable) -> bool:
        slot = self._slots.get(subject_id)
        return slot is not None and slot.lock.locked()
