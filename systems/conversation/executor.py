"""
Effect Executor - единственное место, где эффекты становятся действиями

Prompt / Reply / ... → Transport
Persist / Finalize(PERSIST) → RecordStore
Generate / Finalize(GENERATE) → GenerationBackend.stream_text → IncrementalRenderer
ProposeRecord → ConfirmationTokenStore + клавиатура Да/Нет
"""

from typing import Any, Awaitable, Callable, Dict, Iterable, Mapping, Optional, Type

from core.errors import PersistenceError, TransportError
from core.logging import LoggerMixin
from nutribot.messages import MessageService
from systems.confirmation import ConfirmationTokenStore
from systems.effects import (
    Cancelled,
    Effect,
    Finalize,
    Generate,
    NoActiveWizard,
    Persist,
    Prompt,
    ProposeRecord,
    Reply,
    Report,
    StartWizard,
    TerminalAction,
    ValidationMessage,
)
from systems.events import SubjectContext
from systems.nutrition import build_report, calculate_daily_norms
from systems.ports import GenerationBackend, MessageHandle, RecordStore, Transport
from systems.rendering import ActivityIndicator, IncrementalRenderer, RenderOutcome, RenderResult
from systems.sessions import SessionDirectory

# Поля профиля, от которых зависят суточные нормы
NORM_FIELDS = ("gender", "age", "height", "weight", "goal")

HTML = "HTML"


class EffectExecutor(LoggerMixin):
    """Выполняет эффекты для одного SubjectContext"""

    def __init__(
        self,
        transport: Transport,
        store: RecordStore,
        backend: GenerationBackend,
        directory: SessionDirectory,
        tokens: ConfirmationTokenStore,
        messages: MessageService,
        renderer: Optional[IncrementalRenderer] = None,
        activity_interval: float = 4.0
    ):
        self.transport = transport
        self.store = store
        self.backend = backend
        self.directory = directory
        self.tokens = tokens
        self.messages = messages
        self.renderer = renderer or IncrementalRenderer(transport)
        self.activity_interval = activity_interval

        self._handlers: Dict[Type[Effect], Callable[..., Awaitable[None]]] = {
            Prompt: self._prompt,
            ValidationMessage: self._validation_message,
            Finalize: self._finalize,
            Cancelled: self._cancelled,
            NoActiveWizard: self._no_active_wizard,
            Reply: self._reply,
            Persist: self._persist,
            ProposeRecord: self._propose_record,
            Generate: self._generate,
            StartWizard: self._start_wizard,
            Report: self._report,
        }

    async def execute(
        self,
        effects: Iterable[Effect],
        ctx: SubjectContext,
        origin: Optional[MessageHandle] = None,
        placeholder: Optional[MessageHandle] = None
    ):
        """
        Args:
            origin: сообщение с нажатой кнопкой (multi-select перерисовывается в нём)
            placeholder: "🤔 Анализирую..." - первый текстовый ответ заменяет его
        """
        for effect in effects:
            handler = self._handlers.get(type(effect))
            if handler is None:
                self.logger.warning(f"No executor for effect {type(effect).__name__}")
                continue
            await handler(effect, ctx, origin, placeholder)
            placeholder = None

    # ========================================================================
    # DELIVERY
    # ========================================================================

    async def deliver(
        self,
        ctx: SubjectContext,
        text: str,
        keyboard: Any = None,
        replace: Optional[MessageHandle] = None
    ) -> MessageHandle:
        """Отправить сообщение, либо заменить им существующее (placeholder / origin)"""
        if replace is not None:
            try:
                await self.transport.edit_message(replace, text, keyboard=keyboard, parse_mode=HTML)
                return replace
            except TransportError as e:
                self.logger.debug(f"Edit of {replace.message_id} failed, sending new message: {e}")
        return await self.transport.send_message(ctx.channel_id, text, keyboard=keyboard,
                                                 parse_mode=HTML)

    def _text(self, key: str, category: str, ctx: SubjectContext, **params) -> str:
        return self.messages.get_message(key, ctx.locale, category, **params)

    def _main_menu(self, ctx: SubjectContext):
        return self.messages.get_keyboard("main_menu", ctx.locale)

    # ========================================================================
    # WIZARD EFFECTS
    # ========================================================================

    async def _prompt(self, effect: Prompt, ctx, origin, placeholder):
        text = self._text(effect.message_key, "wizards", ctx, **effect.params)
        keyboard = self.messages.build_choice_keyboard(effect, ctx.locale)
        # повторный prompt multi-select шага перерисовывает те же кнопки
        replace = origin if effect.multi and origin is not None else placeholder
        await self.deliver(ctx, text, keyboard, replace=replace)

    async def _validation_message(self, effect: ValidationMessage, ctx, origin, placeholder):
        await self.deliver(ctx, self._text(effect.message_key, "wizards", ctx, **effect.params),
                           replace=placeholder)

    async def _cancelled(self, effect: Cancelled, ctx, origin, placeholder):
        self.logger.log_user_action("wizard_cancelled", ctx.subject_id,
                                    workflow=effect.workflow_kind)
        await self.deliver(ctx, self._text("cancelled", "general", ctx), self._main_menu(ctx))

    async def _no_active_wizard(self, effect: NoActiveWizard, ctx, origin, placeholder):
        await self.deliver(ctx, self._text("no_active_wizard", "general", ctx))

    async def _start_wizard(self, effect: StartWizard, ctx, origin, placeholder):
        result = self.directory.begin(ctx.subject_id, effect.workflow_kind, effect.initial_fields)
        self.logger.log_user_action("wizard_started", ctx.subject_id, workflow=effect.workflow_kind)
        await self.execute(result.effects, ctx, placeholder=placeholder)

    async def _finalize(self, effect: Finalize, ctx, origin, placeholder):
        terminal = effect.terminal
        self.logger.log_user_action("wizard_finalized", ctx.subject_id,
                                    workflow=effect.workflow_kind)

        if terminal.action == TerminalAction.GENERATE:
            prompt = self.messages.get_prompt(terminal.prompt_key, ctx.locale, **effect.fields)
            await self._generate(
                Generate(prompt, system_key="assistant",
                         params={"name": ctx.name, "profile": ctx.profile or {}}),
                ctx, origin, placeholder,
            )
            return

        if terminal.record_kind == "profile":
            await self._save_profile(effect.fields, ctx)
        elif terminal.record_kind == "profile_update":
            await self._update_profile(effect.fields, ctx)
        else:
            await self._persist(
                Persist(terminal.record_kind, {"subject_id": ctx.subject_id, **effect.fields},
                        success_key=f"{terminal.record_kind}_saved"),
                ctx, origin, placeholder,
            )

    async def _save_profile(self, fields: Mapping[str, Any], ctx: SubjectContext):
        profile = {"subject_id": ctx.subject_id, **fields}
        profile.update(calculate_daily_norms(profile))
        if not await self.try_persist("profile", profile, ctx):
            return
        ctx.profile = profile
        await self.deliver(ctx, self._text("registration_complete", "wizards", ctx, **profile),
                           self._main_menu(ctx))

    async def _update_profile(self, fields: Mapping[str, Any], ctx: SubjectContext):
        field, value = fields["field"], fields["value"]
        update: Dict[str, Any] = {"subject_id": ctx.subject_id, field: value}

        norms: Dict[str, Any] = {}
        if field in NORM_FIELDS and ctx.profile:
            norms = calculate_daily_norms({**ctx.profile, field: value})
            update.update(norms)

        if not await self.try_persist("profile_update", update, ctx):
            return
        if ctx.profile is not None:
            ctx.profile = {**ctx.profile, **update}
        await self.deliver(ctx, self._text("profile_updated", "wizards", ctx, **norms),
                           self._main_menu(ctx))

    # ========================================================================
    # DISPATCH EFFECTS
    # ========================================================================

    async def _reply(self, effect: Reply, ctx, origin, placeholder):
        keyboard = self.messages.get_keyboard(effect.keyboard_key, ctx.locale) \
            if effect.keyboard_key else None
        await self.deliver(ctx, self._text(effect.message_key, effect.category, ctx, **effect.params),
                           keyboard, replace=placeholder)

    async def _persist(self, effect: Persist, ctx, origin, placeholder):
        if not await self.try_persist(effect.record_kind, effect.fields, ctx, placeholder):
            return
        await self.deliver(ctx, self._text(effect.success_key, "dispatch", ctx, **effect.fields),
                           replace=placeholder)

    async def try_persist(self, record_kind: str, fields: Mapping[str, Any],
                           ctx: SubjectContext, placeholder: Optional[MessageHandle] = None) -> bool:
        """Одна попытка записи. Неудача → сообщение пользователю, без повторов"""
        try:
            await self.store.persist(record_kind, fields)
            return True
        except PersistenceError as e:
            self.logger.log_error("DB_001", f"Persist {record_kind} failed",
                                  user_id=ctx.subject_id, exception=e)
            await self.deliver(ctx, self._text("persist_failed", "dispatch", ctx),
                               replace=placeholder)
            return False

    async def _propose_record(self, effect: ProposeRecord, ctx, origin, placeholder):
        token = self.tokens.mint({"record_kind": effect.record_kind, "fields": dict(effect.payload)},
                                 subject_id=ctx.subject_id)
        text = self._text(f"{effect.record_kind}_proposal", "dispatch", ctx, **effect.payload)
        await self.deliver(ctx, text, self.messages.build_confirm_keyboard(token, ctx.locale),
                           replace=placeholder)

    async def _generate(self, effect: Generate, ctx, origin, placeholder) -> RenderResult:
        system = self.messages.get_prompt(effect.system_key, ctx.locale, **effect.params)
        indicator = ActivityIndicator(self.transport, ctx.channel_id, interval=self.activity_interval)
        async with indicator:
            result = await self.renderer.render(
                ctx.channel_id, self.backend.stream_text(effect.prompt, system=system),
                cancel_event=ctx.extra.get("cancel_event"),
            )
        self.logger.log_service_result("generate", success=result.outcome == RenderOutcome.COMPLETED,
                                       user_id=ctx.subject_id, outcome=result.outcome.value,
                                       chars=len(result.text))
        return result

    async def _report(self, effect: Report, ctx, origin, placeholder):
        try:
            totals = await self.store.fetch_totals(ctx.subject_id, effect.period)
            profile = ctx.profile or await self.store.get_profile(ctx.subject_id)
        except PersistenceError as e:
            self.logger.log_error("DB_001", "Report totals failed", user_id=ctx.subject_id,
                                  exception=e)
            await self.deliver(ctx, self._text("stats_failed", "stats", ctx), replace=placeholder)
            return

        report = build_report(effect.period, totals, profile, formatter=self.messages.formatter)
        key = "stats_report" if report["has_meals"] else "stats_empty"
        await self.deliver(ctx, self._text(key, "stats", ctx, **report), replace=origin or placeholder)
