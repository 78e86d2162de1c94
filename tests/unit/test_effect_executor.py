"""
Unit Tests: Effect Executor

Эффекты → действия через моки портов:
- Prompt / ValidationMessage → сообщения с клавиатурами
- Finalize → запись профиля с нормами, запись воды, генерация плана
- ProposeRecord → токен + кнопки Да/Нет
- Generate → Renderer с cancel_event из контекста
- Report → статистика / пустой отчёт / ошибка хранилища
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest
from aiogram.types import InlineKeyboardMarkup, ReplyKeyboardMarkup

from core.errors import PersistenceError, TransportError
from nutribot.messages import MessageService
from systems.confirmation import ConfirmationTokenStore
from systems.conversation import EffectExecutor
from systems.effects import (
    Finalize,
    Generate,
    Persist,
    Prompt,
    ProposeRecord,
    Report,
    StartWizard,
    Terminal,
    TerminalAction,
    ValidationMessage,
)
from systems.events import SubjectContext
from systems.ports import MessageHandle
from systems.rendering import RenderOutcome, RenderResult, RenderSession
from systems.sessions import REGISTRATION, SessionDirectory
from systems.sessions.definitions import GENDER_CHOICES, ZONE_CHOICES


# ============================================================================
# FIXTURES
# ============================================================================

SENT = MessageHandle(70, 500)
PROFILE = {"subject_id": 7, "name": "Анна", "gender": "female", "age": 30, "height": 165,
           "weight": 60.0, "goal": "lose_weight", "daily_calories": 1600, "daily_protein": 120,
           "daily_fat": 53, "daily_carbs": 160}


@pytest.fixture(scope="module")
def messages():
    return MessageService()


@pytest.fixture
def transport():
    mock = AsyncMock()
    mock.send_message = AsyncMock(return_value=SENT)
    mock.edit_message = AsyncMock()
    mock.send_keep_alive = AsyncMock()
    return mock


@pytest.fixture
def store():
    mock = AsyncMock()
    mock.persist = AsyncMock()
    mock.fetch_totals = AsyncMock()
    mock.get_profile = AsyncMock(return_value=None)
    return mock


@pytest.fixture
def backend():
    mock = AsyncMock()
    mock.stream_text = Mock(return_value="stream")
    return mock


@pytest.fixture
def renderer():
    mock = Mock()
    mock.render = AsyncMock(return_value=RenderResult(RenderOutcome.COMPLETED, RenderSession(70)))
    return mock


@pytest.fixture
def directory():
    return SessionDirectory()


@pytest.fixture
def tokens():
    return ConfirmationTokenStore()


@pytest.fixture
def executor(transport, store, backend, directory, tokens, messages, renderer):
    return EffectExecutor(transport, store, backend, directory, tokens, messages,
                          renderer=renderer, activity_interval=10)


@pytest.fixture
def ctx():
    return SubjectContext(subject_id=7, channel_id=70)


def sent_text(transport, index=-1) -> str:
    return transport.send_message.await_args_list[index].args[1]


# ============================================================================
# WIZARD EFFECTS
# ============================================================================

@pytest.mark.asyncio
async def test_prompt_with_choices(executor, transport, ctx):
    """
    Тест: Prompt → текст шага + inline-кнопки wiz:<state>:<value>
    """
    await executor.execute([Prompt("registration", "gender", "registration_gender",
                                   choices=(), multi=False)], ctx)
    assert transport.send_message.await_args.kwargs["keyboard"] is None

    await executor.execute([Prompt("registration", "gender", "registration_gender",
                                   choices=GENDER_CHOICES)], ctx)

    keyboard = transport.send_message.await_args.kwargs["keyboard"]
    assert isinstance(keyboard, InlineKeyboardMarkup)
    callbacks = [row[0].callback_data for row in keyboard.inline_keyboard]
    assert callbacks == ["wiz:gender:male", "wiz:gender:female", "wiz:cancel"]


@pytest.mark.asyncio
async def test_multi_prompt_redraws_origin(executor, transport, ctx):
    """
    Тест: Повторный prompt multi-select шага редактирует сообщение с кнопками
    """
    origin = MessageHandle(70, 321)
    prompt = Prompt("workout_plan", "priority_zones", "workout_plan_priority_zones",
                    choices=ZONE_CHOICES, multi=True, selected=frozenset({"legs"}))

    await executor.execute([prompt], ctx, origin=origin)

    transport.send_message.assert_not_called()
    handle, _text = transport.edit_message.await_args.args
    assert handle == origin
    keyboard = transport.edit_message.await_args.kwargs["keyboard"]
    labels = [row[0].text for row in keyboard.inline_keyboard]
    assert "✅ Ноги" in labels
    assert keyboard.inline_keyboard[-2][0].callback_data == "wiz:done:priority_zones"


@pytest.mark.asyncio
async def test_deliver_falls_back_to_send(executor, transport, ctx):
    transport.edit_message.side_effect = TransportError("message to edit not found")

    handle = await executor.deliver(ctx, "текст", replace=MessageHandle(70, 1))

    assert handle == SENT
    transport.send_message.assert_awaited_once()


@pytest.mark.asyncio
async def test_validation_message(executor, transport, ctx):
    await executor.execute([ValidationMessage("invalid_age", {"min": 10, "max": 100})], ctx)

    assert sent_text(transport) == "Введи возраст числом от 10 до 100."


@pytest.mark.asyncio
async def test_start_wizard_creates_session(executor, directory, transport, ctx):
    await executor.execute([StartWizard(REGISTRATION)], ctx)

    assert directory.current(7).current_state == "name"
    assert sent_text(transport) == "Как тебя зовут?"


# ============================================================================
# FINALIZE
# ============================================================================

@pytest.mark.asyncio
async def test_finalize_registration_saves_profile_with_norms(executor, store, transport, ctx):
    """
    Тест: Регистрация → профиль + суточные нормы → главное меню
    """
    fields = {"name": "Иван", "gender": "male", "age": 30, "height": 180, "weight": 80.0,
              "goal": "maintain_weight"}

    await executor.execute([Finalize("registration",
                                     Terminal(TerminalAction.PERSIST, record_kind="profile"),
                                     fields)], ctx)

    record_kind, saved = store.persist.await_args.args
    assert record_kind == "profile"
    assert saved["subject_id"] == 7
    assert saved["daily_calories"] == 2224
    assert ctx.profile == saved
    assert "2224" in sent_text(transport)
    assert isinstance(transport.send_message.await_args.kwargs["keyboard"], ReplyKeyboardMarkup)


@pytest.mark.asyncio
async def test_finalize_persist_failure_reported(executor, store, transport, ctx):
    store.persist.side_effect = PersistenceError("db down")

    await executor.execute([Finalize("registration",
                                     Terminal(TerminalAction.PERSIST, record_kind="profile"),
                                     {"name": "Иван", "gender": "male", "age": 30,
                                      "height": 180, "weight": 80, "goal": "gain_mass"})], ctx)

    assert ctx.profile is None
    assert store.persist.await_count == 1
    assert sent_text(transport) == "😔 Не удалось сохранить запись. Попробуй ещё раз чуть позже."


@pytest.mark.asyncio
async def test_finalize_water(executor, store, transport, ctx):
    await executor.execute([Finalize("water_quantity",
                                     Terminal(TerminalAction.PERSIST, record_kind="water"),
                                     {"amount_ml": 300})], ctx)

    store.persist.assert_awaited_once_with("water", {"subject_id": 7, "amount_ml": 300})
    assert sent_text(transport) == "💧 Записал 300 мл воды."


@pytest.mark.asyncio
async def test_finalize_profile_update_recalculates_norms(executor, store, transport):
    ctx = SubjectContext(subject_id=7, channel_id=70, profile=dict(PROFILE))

    await executor.execute([Finalize("profile_edit",
                                     Terminal(TerminalAction.PERSIST,
                                              record_kind="profile_update"),
                                     {"field": "weight", "value": 70.0})], ctx)

    record_kind, update = store.persist.await_args.args
    assert record_kind == "profile_update"
    assert update["weight"] == 70.0
    assert update["daily_calories"] != PROFILE["daily_calories"]
    assert ctx.profile["weight"] == 70.0


@pytest.mark.asyncio
async def test_finalize_profile_update_name_keeps_norms(executor, store):
    ctx = SubjectContext(subject_id=7, channel_id=70, profile=dict(PROFILE))

    await executor.execute([Finalize("profile_edit",
                                     Terminal(TerminalAction.PERSIST,
                                              record_kind="profile_update"),
                                     {"field": "name", "value": "Аня"})], ctx)

    store.persist.assert_awaited_once_with("profile_update", {"subject_id": 7, "name": "Аня"})


@pytest.mark.asyncio
async def test_finalize_generate_streams_plan(executor, backend, renderer, ctx):
    """
    Тест: GENERATE → промпт из собранных полей → Renderer
    """
    fields = {"level": "beginner", "focus": "strength", "days_per_week": 3,
              "priority_zones": frozenset({"legs", "back"}), "location": "home"}

    await executor.execute([Finalize("workout_plan",
                                     Terminal(TerminalAction.GENERATE, prompt_key="workout_plan"),
                                     fields)], ctx)

    prompt = backend.stream_text.call_args.args[0]
    assert "Дней в неделю: 3" in prompt
    assert "back, legs" in prompt
    assert "друг" in backend.stream_text.call_args.kwargs["system"]
    renderer.render.assert_awaited_once()


# ============================================================================
# DISPATCH EFFECTS
# ============================================================================

@pytest.mark.asyncio
async def test_persist_replaces_placeholder(executor, store, transport, ctx):
    placeholder = MessageHandle(70, 9)

    await executor.execute([Persist("workout", {"subject_id": 7, "activity": "бег",
                                                "duration_min": 30},
                                    success_key="workout_saved")],
                           ctx, placeholder=placeholder)

    handle, text = transport.edit_message.await_args.args
    assert handle == placeholder
    assert "бег" in text and "30 мин" in text


@pytest.mark.asyncio
async def test_propose_record_mints_token(executor, transport, tokens, store, ctx):
    """
    Тест: ProposeRecord → токен в кнопках, запись не выполняется
    """
    payload = {"subject_id": 7, "dish_name": "Омлет", "ingredients": ["яйца"], "weight_g": 150,
               "calories": 250, "protein": 17.0, "fat": 18.0, "carbs": 3.0, "source": "text"}

    await executor.execute([ProposeRecord("meal", payload)], ctx)

    store.persist.assert_not_called()
    keyboard = transport.send_message.await_args.kwargs["keyboard"]
    accept, reject = keyboard.inline_keyboard[0]
    assert accept.callback_data.startswith("tok:accept:")
    token = accept.callback_data.split(":", 2)[2]
    assert reject.callback_data == f"tok:reject:{token}"
    assert tokens.redeem(token, subject_id=7) == {"record_kind": "meal", "fields": payload}
    assert "Омлет" in sent_text(transport)


@pytest.mark.asyncio
async def test_generate_passes_cancel_event(executor, backend, renderer, ctx):
    cancel_event = asyncio.Event()
    ctx.extra["cancel_event"] = cancel_event

    await executor.execute([Generate("как похудеть?", params={"name": "Анна", "profile": {}})], ctx)

    backend.stream_text.assert_called_once()
    assert backend.stream_text.call_args.args[0] == "как похудеть?"
    renderer.render.assert_awaited_once_with(70, "stream", cancel_event=cancel_event)


@pytest.mark.asyncio
async def test_report_with_meals(executor, store, transport):
    ctx = SubjectContext(subject_id=7, channel_id=70, profile=dict(PROFILE))
    store.fetch_totals.return_value = {"meals_count": 3, "calories": 800, "protein": 60,
                                       "fat": 20, "carbs": 90, "water_ml": 500}

    await executor.execute([Report("today")], ctx)

    store.fetch_totals.assert_awaited_once_with(7, "today")
    text = sent_text(transport)
    assert "Анна" in text
    assert "800" in text


@pytest.mark.asyncio
async def test_report_without_meals(executor, store, transport, ctx):
    store.fetch_totals.return_value = {"meals_count": 0, "water_ml": 0}

    await executor.execute([Report("week")], ctx)

    assert sent_text(transport) == "📊 За эту неделю записей о еде пока нет."


@pytest.mark.asyncio
async def test_report_storage_failure(executor, store, transport, ctx):
    store.fetch_totals.side_effect = PersistenceError("db down")

    await executor.execute([Report("month")], ctx)

    assert sent_text(transport) == "😔 Не удалось загрузить статистику. Попробуй позже."
