"""
Session Directory - соответствие subject → активная сессия визарда

Единственный владелец Session. Инварианты:
- не более одной сессии на subject_id
- новый визард заменяет старую сессию целиком
- сессия удаляется на finalize / cancel / по TTL

Эффекты только возвращаются, никогда не выполняются здесь.
"""

import logging
import time
from typing import Any, Callable, Dict, Mapping, Optional, Sequence

from core.keyed_store import KeyedRepository, KeyedStore
from systems.effects import NoActiveWizard
from .definitions import ALL_WORKFLOWS
from .models import AdvanceResult, Session, WizardEvent
from .workflow import WorkflowController, WorkflowDefinition, build_controllers

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL = 30 * 60  # 30 минут неактивности


class SessionDirectory:
    """
    Per-subject сессии визардов поверх KeyedRepository

    Все методы синхронные: чтение и запись ключа происходят без
    await между ними, поэтому атомарны относительно event loop.
    """

    def __init__(
        self,
        definitions: Sequence[WorkflowDefinition] = ALL_WORKFLOWS,
        store: Optional[KeyedRepository] = None,
        ttl_seconds: float = DEFAULT_SESSION_TTL,
        clock: Callable[[], float] = time.time
    ):
        self.controllers: Dict[str, WorkflowController] = build_controllers(definitions)
        self.ttl_seconds = ttl_seconds
        self._store = store if store is not None else KeyedStore(ttl_seconds=ttl_seconds)
        self._clock = clock

    def controller(self, workflow_kind: str) -> WorkflowController:
        try:
            return self.controllers[workflow_kind]
        except KeyError:
            raise ValueError(f"Unknown workflow kind: {workflow_kind}") from None

    def begin(
        self,
        subject_id: int,
        workflow_kind: str,
        initial_fields: Optional[Mapping[str, Any]] = None
    ) -> AdvanceResult:
        """Создаёт (или заменяет) сессию и возвращает prompt первого шага"""
        controller = self.controller(workflow_kind)
        previous = self._store.get(subject_id)
        if previous is not None:
            logger.info(
                f"🔁 Replacing wizard {previous.workflow_kind} with {workflow_kind} "
                f"for subject={subject_id}"
            )

        now = self._clock()
        session = Session(
            subject_id=subject_id,
            workflow_kind=workflow_kind,
            current_state=controller.definition.initial_state,
            collected_fields=dict(initial_fields or {}),
            created_at=now,
            updated_at=now,
        )
        self._store.put(subject_id, session)
        logger.info(f"🧙 Wizard {workflow_kind} started for subject={subject_id}")
        return controller.enter(session)

    def current(self, subject_id: int) -> Optional[Session]:
        return self._store.get(subject_id)

    def advance(self, subject_id: int, event: WizardEvent) -> AdvanceResult:
        """Передаёт событие контроллеру и сохраняет результат"""
        session = self._store.get(subject_id)
        if session is None:
            return AdvanceResult(None, [NoActiveWizard()])

        result = self.controller(session.workflow_kind).handle(session, event, self._clock())

        if result.session is None:
            self._store.delete(subject_id)
        elif result.session is not session:
            self._store.put(subject_id, result.session)
        return result

    def cancel(self, subject_id: int) -> bool:
        removed = self._store.delete(subject_id)
        if removed:
            logger.info(f"❎ Wizard cancelled for subject={subject_id}")
        return removed

    def sweep(self) -> int:
        purged = self._store.sweep()
        if purged:
            logger.info(f"🧹 Purged {purged} expired wizard sessions")
        return purged
