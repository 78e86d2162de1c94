"""
Conversation Engine - точка входа для всех входящих событий

    inbound event
      → Subject Mailbox (события одного пользователя строго по очереди)
      → кнопка?        → визард / токен подтверждения / меню / статистика
      → команда?       → /start, /cancel, /plan, ...
      → активный визард? → Workflow Controller
      → иначе          → Intent Classifier → Action Dispatcher
      → Effect Executor → Transport / RecordStore / Renderer

handle_event никогда не выбрасывает исключений: любая ошибка
логируется, пользователь получает нейтральное сообщение.
"""

import asyncio
import base64
from typing import Dict, Optional, Tuple

from core.errors import (
    ErrorCode,
    ErrorTracker,
    GenerationError,
    NutriBotError,
    PersistenceError,
    TokenNotFoundError,
    TransportError,
)
from core.logging import LoggerMixin
from nutribot.messages import MessageService
from systems.confirmation import ConfirmationTokenStore
from systems.effects import Effect, Generate, Reply, Report, StartWizard
from systems.events import InboundEvent, InboundKind, SubjectContext
from systems.intents import ActionDispatcher, ClassifiedIntent, IntentClassifier, IntentKind
from systems.nutrition import PERIODS
from systems.ports import GenerationBackend, MessageHandle, RecordStore, Transport
from systems.rendering import ActivityIndicator
from systems.sessions import (
    FREE_QUESTION,
    NUTRITION_PLAN,
    PROFILE_EDIT,
    REGISTRATION,
    WATER_QUANTITY,
    WORKOUT_PLAN,
    SessionDirectory,
    WizardEvent,
)
from .executor import EffectExecutor
from .mailbox import SubjectMailbox

# Команды и кнопки меню, запускающие визарды
WIZARD_ACTIONS = {
    "plan": WORKOUT_PLAN,
    "nutrition": NUTRITION_PLAN,
    "profile": PROFILE_EDIT,
    "water": WATER_QUANTITY,
    "ask": FREE_QUESTION,
}

# Визарды, доступные без профиля
OPEN_WORKFLOWS = (REGISTRATION, FREE_QUESTION)

# Intents с долгим вторым проходом: показываем "🤔 Анализирую..."
SLOW_INTENTS = (IntentKind.FOOD, IntentKind.MEDICAL)


class ConversationEngine(LoggerMixin):
    """Оркестрация диалогов поверх портов Transport / RecordStore / GenerationBackend"""

    def __init__(
        self,
        transport: Transport,
        store: RecordStore,
        backend: GenerationBackend,
        messages: MessageService,
        directory: Optional[SessionDirectory] = None,
        tokens: Optional[ConfirmationTokenStore] = None,
        executor: Optional[EffectExecutor] = None,
        mailbox: Optional[SubjectMailbox] = None,
        error_tracker: Optional[ErrorTracker] = None,
        activity_interval: float = 4.0,
        activity_max_duration: float = 90.0
    ):
        self.transport = transport
        self.store = store
        self.backend = backend
        self.messages = messages
        self.directory = directory or SessionDirectory()
        self.tokens = tokens or ConfirmationTokenStore()
        self.mailbox = mailbox or SubjectMailbox()
        self.error_tracker = error_tracker or ErrorTracker()
        self.classifier = IntentClassifier(backend)
        self.dispatcher = ActionDispatcher(backend)
        self.executor = executor or EffectExecutor(
            transport, store, backend, self.directory, self.tokens, messages,
            activity_interval=activity_interval,
        )
        self.activity_interval = activity_interval
        self.activity_max_duration = activity_max_duration

        # Отмена потоковой генерации идёт в обход mailbox
        self._generation_cancels: Dict[int, asyncio.Event] = {}

        self._commands = {
            "start": self._cmd_start,
            "menu": self._cmd_menu,
            "cancel": self._cmd_cancel,
            "help": self._cmd_help,
            "stats": self._cmd_stats,
        }

    # ========================================================================
    # ENTRY POINT
    # ========================================================================

    async def handle_event(self, event: InboundEvent) -> None:
        if self._is_cancel(event):
            self._interrupt_generation(event.subject_id)

        if self.mailbox.is_busy(event.subject_id):
            self.logger.debug(f"📬 subject={event.subject_id} busy, {event.kind.value} event queued")

        async with self.mailbox.hold(event.subject_id):
            cancel_event = asyncio.Event()
            self._generation_cancels[event.subject_id] = cancel_event
            try:
                ctx = await self._context(event)
                ctx.extra["cancel_event"] = cancel_event
                await self._route(event, ctx)
            except Exception as e:
                await self._report_failure(event, e)
            finally:
                if self._generation_cancels.get(event.subject_id) is cancel_event:
                    del self._generation_cancels[event.subject_id]

    def _is_cancel(self, event: InboundEvent) -> bool:
        if event.kind == InboundKind.BUTTON_PRESS:
            return event.payload == "wiz:cancel"
        return event.kind == InboundKind.TEXT and self._parse_command(event.payload)[0] == "cancel"

    def _interrupt_generation(self, subject_id: int):
        cancel_event = self._generation_cancels.get(subject_id)
        if cancel_event is not None and not cancel_event.is_set():
            self.logger.info(f"🛑 Interrupting generation for subject={subject_id}")
            cancel_event.set()

    async def _report_failure(self, event: InboundEvent, error: Exception):
        code = error.error_code if isinstance(error, NutriBotError) else ErrorCode.UNKNOWN_ERROR
        self.error_tracker.track_error(error, code, subject_id=event.subject_id,
                                       context={"kind": event.kind.value})
        try:
            await self.transport.send_message(
                event.channel_id, self.messages.get_message("internal_error"), parse_mode="HTML"
            )
        except TransportError as e:
            self.logger.warning(f"Failed to notify subject={event.subject_id} about error: {e}")

    async def _context(self, event: InboundEvent) -> SubjectContext:
        try:
            profile = await self.store.get_profile(event.subject_id)
        except PersistenceError as e:
            self.logger.warning(f"⚠️ Profile unavailable for subject={event.subject_id}: {e}")
            profile = None
        return SubjectContext(
            subject_id=event.subject_id,
            channel_id=event.channel_id,
            profile=profile,
            extra={"first_name": event.first_name},
        )

    async def _route(self, event: InboundEvent, ctx: SubjectContext):
        if event.kind == InboundKind.BUTTON_PRESS:
            await self._handle_button(event, ctx)
        elif event.kind == InboundKind.TEXT:
            await self._handle_text(event.payload, ctx)
        elif event.kind == InboundKind.PHOTO_REF:
            await self._handle_photo(event.payload, ctx)
        elif event.kind == InboundKind.VOICE_REF:
            await self._handle_voice(event.payload, ctx)
        else:
            await self._say(ctx, "unsupported_message")

    async def _say(self, ctx: SubjectContext, key: str, keyboard=None, **params) -> MessageHandle:
        return await self.executor.deliver(
            ctx, self.messages.get_message(key, ctx.locale, "general", **params), keyboard
        )

    # ========================================================================
    # BUTTONS
    # ========================================================================

    async def _handle_button(self, event: InboundEvent, ctx: SubjectContext):
        """
        callback_data:
            wiz:<state>:<value>   вариант шага визарда
            wiz:done:<state>      завершить multi-select
            wiz:cancel            отменить визард
            tok:accept:<token>    подтвердить запись
            tok:reject:<token>    отклонить запись
            menu:<action>         действие меню
            stats:<period>        статистика за период
        """
        origin = MessageHandle(ctx.channel_id, event.message_id) if event.message_id else None
        prefix, _, rest = event.payload.partition(":")

        if prefix == "wiz":
            await self._advance(ctx, self._wizard_event(rest), origin)
        elif prefix == "tok":
            decision, _, token = rest.partition(":")
            await self._confirm(ctx, token, decision == "accept", origin)
        elif prefix == "menu":
            await self._menu_action(rest, ctx)
        elif prefix == "stats" and rest in PERIODS:
            await self.executor.execute([Report(rest)], ctx, origin=origin)
        else:
            self.logger.warning(f"Unknown callback_data {event.payload!r} from subject={ctx.subject_id}")

    @staticmethod
    def _wizard_event(rest: str) -> WizardEvent:
        if rest == "cancel":
            return WizardEvent.cancel()
        state, _, value = rest.partition(":")
        if state == "done":
            return WizardEvent.done(value or None)
        return WizardEvent.choice(value, state=state)

    async def _advance(self, ctx: SubjectContext, wizard_event: WizardEvent,
                       origin: Optional[MessageHandle] = None):
        result = self.directory.advance(ctx.subject_id, wizard_event)
        await self.executor.execute(result.effects, ctx, origin=origin)

    async def _confirm(self, ctx: SubjectContext, token: str, accept: bool,
                       origin: Optional[MessageHandle]):
        """Погашение токена: запись выполняется не более одного раза"""
        try:
            payload = self.tokens.redeem(token, subject_id=ctx.subject_id)
        except TokenNotFoundError:
            self.logger.info(f"⌛ Stale confirmation from subject={ctx.subject_id}")
            await self.executor.deliver(
                ctx, self.messages.get_message("token_expired", ctx.locale, "dispatch"),
                replace=origin,
            )
            return

        record_kind, fields = payload["record_kind"], payload["fields"]
        if not accept:
            self.logger.log_user_action(f"{record_kind}_rejected", ctx.subject_id)
            await self.executor.deliver(
                ctx, self.messages.get_message(f"{record_kind}_rejected", ctx.locale, "dispatch"),
                replace=origin,
            )
            return

        if await self.executor.try_persist(record_kind, fields, ctx, placeholder=origin):
            await self.executor.deliver(
                ctx, self.messages.get_message(f"{record_kind}_saved", ctx.locale, "dispatch", **fields),
                replace=origin,
            )

    # ========================================================================
    # TEXT / COMMANDS / MENU
    # ========================================================================

    @staticmethod
    def _parse_command(text: str) -> Tuple[Optional[str], str]:
        """'/ask@NutriBot как похудеть' → ('ask', 'как похудеть')"""
        text = (text or "").strip()
        if not text.startswith("/"):
            return None, text
        head, _, argument = text[1:].partition(" ")
        return head.split("@", 1)[0].lower(), argument.strip()

    async def _handle_text(self, text: str, ctx: SubjectContext):
        command, argument = self._parse_command(text)
        if command is not None:
            await self._handle_command(command, argument, ctx)
            return

        action = self.messages.menu_action(text, ctx.locale)
        if action is not None:
            await self._menu_action(action, ctx)
            return

        if self.directory.current(ctx.subject_id) is not None:
            await self._advance(ctx, WizardEvent.text(text))
            return

        if ctx.profile is None:
            await self._say(ctx, "registration_required")
            return

        await self._classify_and_dispatch(text, ctx)

    async def _handle_command(self, command: str, argument: str, ctx: SubjectContext):
        handler = self._commands.get(command)
        if handler is not None:
            await handler(argument, ctx)
        elif command in WIZARD_ACTIONS:
            if command == "ask" and argument:
                await self.executor.execute([Generate(
                    argument, params={"name": ctx.name, "profile": ctx.profile or {}}
                )], ctx)
            else:
                await self._start_wizard(WIZARD_ACTIONS[command], ctx)
        else:
            await self._cmd_help(argument, ctx)

    async def _menu_action(self, action: str, ctx: SubjectContext):
        if action == "photo":
            await self._say(ctx, "send_photo")
        elif action == "manual":
            await self._say(ctx, "describe_meal")
        elif action == "stats":
            await self._cmd_stats("", ctx)
        elif action in WIZARD_ACTIONS:
            await self._start_wizard(WIZARD_ACTIONS[action], ctx)
        else:
            self.logger.warning(f"Unknown menu action {action!r}")

    async def _start_wizard(self, workflow_kind: str, ctx: SubjectContext):
        if ctx.profile is None and workflow_kind not in OPEN_WORKFLOWS:
            await self._say(ctx, "registration_required")
            return
        await self.executor.execute([StartWizard(workflow_kind)], ctx)

    async def _cmd_start(self, argument: str, ctx: SubjectContext):
        menu = self.messages.get_keyboard("main_menu", ctx.locale)
        if ctx.profile is not None:
            self.directory.cancel(ctx.subject_id)
            await self._say(ctx, "welcome_back", menu, name=ctx.name)
            return
        await self._say(ctx, "welcome_new", first_name=ctx.name)
        await self.executor.execute([StartWizard(REGISTRATION)], ctx)

    async def _cmd_menu(self, argument: str, ctx: SubjectContext):
        await self._say(ctx, "main_menu", self.messages.get_keyboard("main_menu", ctx.locale))

    async def _cmd_cancel(self, argument: str, ctx: SubjectContext):
        if self.directory.current(ctx.subject_id) is not None:
            await self._advance(ctx, WizardEvent.cancel())
        else:
            await self._say(ctx, "nothing_to_cancel")

    async def _cmd_help(self, argument: str, ctx: SubjectContext):
        await self._say(ctx, "help")

    async def _cmd_stats(self, argument: str, ctx: SubjectContext):
        if argument in PERIODS:
            await self.executor.execute([Report(argument)], ctx)
            return
        await self.executor.deliver(
            ctx, self.messages.get_message("choose_period", ctx.locale, "stats"),
            self.messages.get_keyboard("stats_periods", ctx.locale),
        )

    # ========================================================================
    # FREE TEXT / PHOTO / VOICE
    # ========================================================================

    async def _classify_and_dispatch(self, text: str, ctx: SubjectContext):
        intent = await self.classifier.classify(text, ctx.as_dict())

        if isinstance(intent, ClassifiedIntent) and intent.kind in SLOW_INTENTS:
            placeholder = await self._say(ctx, "thinking")
            effect = await self._with_activity(ctx, self.dispatcher.dispatch(intent, ctx))
            await self.executor.execute([effect], ctx, placeholder=placeholder)
            return

        effect = await self.dispatcher.dispatch(intent, ctx)
        await self.executor.execute([effect], ctx)

    async def _handle_photo(self, file_id: str, ctx: SubjectContext):
        if ctx.profile is None:
            await self._say(ctx, "registration_required")
            return

        placeholder = await self._say(ctx, "thinking_photo")
        try:
            image = await self.transport.download_file(file_id)
        except TransportError as e:
            self.logger.warning(f"⚠️ Photo {file_id} unavailable for subject={ctx.subject_id}: {e}")
            effect: Effect = Reply("food_not_recognized", category="dispatch")
        else:
            image_url = "data:image/jpeg;base64," + base64.b64encode(image).decode("ascii")
            effect = await self._with_activity(ctx, self.dispatcher.propose_meal(
                lambda: self.backend.extract_nutrition_from_image(image_url), ctx, source="photo"
            ))
        await self.executor.execute([effect], ctx, placeholder=placeholder)

    async def _handle_voice(self, file_id: str, ctx: SubjectContext):
        try:
            transcript = await self._with_activity(ctx, self._download_and_transcribe(file_id))
        except (TransportError, GenerationError) as e:
            self.logger.warning(f"⚠️ Voice transcription failed for subject={ctx.subject_id}: {e}")
            await self._say(ctx, "voice_not_recognized")
            return

        if not transcript:
            await self._say(ctx, "voice_not_recognized")
            return

        self.logger.log_user_action("voice_transcribed", ctx.subject_id, chars=len(transcript))
        await self._handle_text(transcript, ctx)

    async def _download_and_transcribe(self, file_id: str) -> str:
        audio = await self.transport.download_file(file_id)
        return await self.backend.transcribe(audio)

    async def _with_activity(self, ctx: SubjectContext, awaitable):
        async with ActivityIndicator(self.transport, ctx.channel_id,
                                     interval=self.activity_interval,
                                     max_duration=self.activity_max_duration):
            return await awaitable
