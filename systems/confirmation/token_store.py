"""
Confirmation Token Store

Короткоживущее соответствие token → отложенная запись, которую
пользователь должен подтвердить кнопкой.

- mint(payload, subject_id) → непредсказуемый token (uuid4)
- redeem(token) → payload; запись удаляется при первом успешном вызове
  независимо от того, примет пользователь запись или отклонит
- повторный/конкурентный redeem → TokenNotFoundError ("кнопки устарели")
- TTL: истёкшие токены удаляются при обращении и в sweep()
"""

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from core.errors import TokenNotFoundError
from core.keyed_store import KeyedRepository, KeyedStore

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_TTL = 15 * 60


@dataclass(frozen=True)
class ConfirmationToken:
    token: str
    payload: Mapping[str, Any]
    subject_id: int
    minted_at: float


class ConfirmationTokenStore:
    """Exactly-once redemption поверх атомарного KeyedStore.pop"""

    def __init__(
        self,
        store: Optional[KeyedRepository] = None,
        ttl_seconds: float = DEFAULT_TOKEN_TTL,
        clock: Callable[[], float] = time.time
    ):
        self.ttl_seconds = ttl_seconds
        self._store = store if store is not None else KeyedStore(ttl_seconds=ttl_seconds)
        self._clock = clock

    def mint(self, payload: Mapping[str, Any], subject_id: int) -> str:
        token = uuid.uuid4().hex
        self._store.put(token, ConfirmationToken(token, dict(payload), subject_id, self._clock()))
        logger.debug(f"🎟 Minted confirmation token for subject={subject_id}")
        return token

    def redeem(self, token: str, subject_id: Optional[int] = None) -> Mapping[str, Any]:
        """
        Забирает payload. Второй вызов для того же токена всегда
        TokenNotFoundError.

        Если передан subject_id, чужой токен не расходуется и
        считается ненайденным.
        """
        if subject_id is not None:
            entry = self._store.get(token)
            if entry is not None and entry.subject_id != subject_id:
                logger.warning(f"🚫 Token of subject={entry.subject_id} redeemed by {subject_id}")
                raise TokenNotFoundError(token, subject_id=subject_id)

        entry = self._store.pop(token)
        if entry is None:
            raise TokenNotFoundError(token, subject_id=subject_id)
        return entry.payload

    def sweep(self) -> int:
        purged = self._store.sweep()
        if purged:
            logger.info(f"🧹 Purged {purged} expired confirmation tokens")
        return purged
