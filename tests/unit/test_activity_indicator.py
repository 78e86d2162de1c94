"""
Unit Tests: Activity Indicator
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from core.errors import TransportError
from systems.rendering import ActivityIndicator


@pytest.fixture
def transport():
    mock = AsyncMock()
    mock.send_keep_alive = AsyncMock()
    return mock


@pytest.mark.asyncio
async def test_signals_repeat_while_working(transport):
    """
    Тест: Пока идёт работа, сигнал повторяется с интервалом
    """
    async with ActivityIndicator(transport, 55, interval=0.01, max_duration=5) as indicator:
        await asyncio.sleep(0.05)

    assert indicator.signals_sent >= 2
    assert not indicator.running
    transport.send_keep_alive.assert_awaited_with(55)


@pytest.mark.asyncio
async def test_stops_after_max_duration(transport):
    indicator = ActivityIndicator(transport, 55, interval=0.01, max_duration=0.03).start()

    await asyncio.sleep(0.1)

    assert not indicator.running
    sent = indicator.signals_sent
    await asyncio.sleep(0.03)
    assert indicator.signals_sent == sent
    await indicator.stop()


@pytest.mark.asyncio
async def test_signal_failures_are_ignored(transport):
    """
    Тест: Ошибки отправки не прерывают индикатор и не всплывают
    """
    transport.send_keep_alive.side_effect = TransportError("chat not found")

    async with ActivityIndicator(transport, 55, interval=0.01, max_duration=5) as indicator:
        await asyncio.sleep(0.04)
        assert indicator.running

    assert transport.send_keep_alive.await_count >= 2


@pytest.mark.asyncio
async def test_stop_is_idempotent(transport):
    indicator = ActivityIndicator(transport, 55)

    await indicator.stop()
    indicator.start()
    await indicator.stop()
    await indicator.stop()

    assert not indicator.running
