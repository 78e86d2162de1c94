"""
Unit Tests: Confirmation Token Store

- mint → непредсказуемый токен
- redeem ровно один раз (в том числе при конкурентных нажатиях)
- истёкший / чужой токен → TokenNotFoundError
"""

import asyncio

import pytest

from core.errors import TokenNotFoundError
from core.keyed_store import KeyedStore
from systems.confirmation import ConfirmationTokenStore


# ============================================================================
# FIXTURES
# ============================================================================

class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock(500.0)


@pytest.fixture
def tokens(clock):
    return ConfirmationTokenStore(store=KeyedStore(ttl_seconds=900, clock=clock),
                                  ttl_seconds=900, clock=clock)


PAYLOAD = {"record_kind": "meal", "fields": {"dish_name": "Омлет", "calories": 250}}


# ============================================================================
# TESTS
# ============================================================================

def test_mint_returns_unique_tokens(tokens):
    first = tokens.mint(PAYLOAD, subject_id=1)
    second = tokens.mint(PAYLOAD, subject_id=1)

    assert first != second
    assert len(first) == 32


def test_redeem_returns_payload(tokens):
    token = tokens.mint(PAYLOAD, subject_id=1)

    assert tokens.redeem(token) == PAYLOAD


def test_second_redeem_fails(tokens):
    """
    Тест: Второе нажатие той же кнопки → TokenNotFoundError
    """
    token = tokens.mint(PAYLOAD, subject_id=1)
    tokens.redeem(token)

    with pytest.raises(TokenNotFoundError):
        tokens.redeem(token)


def test_unknown_token(tokens):
    with pytest.raises(TokenNotFoundError) as exc_info:
        tokens.redeem("deadbeef")

    assert exc_info.value.token == "deadbeef"


def test_expired_token(tokens, clock):
    token = tokens.mint(PAYLOAD, subject_id=1)
    clock.now += 901

    with pytest.raises(TokenNotFoundError):
        tokens.redeem(token)


def test_foreign_subject_does_not_consume_token(tokens):
    """
    Тест: Чужой пользователь не может погасить токен и не сжигает его
    """
    token = tokens.mint(PAYLOAD, subject_id=1)

    with pytest.raises(TokenNotFoundError):
        tokens.redeem(token, subject_id=2)

    assert tokens.redeem(token, subject_id=1) == PAYLOAD


def test_payload_is_copied(tokens):
    payload = {"record_kind": "meal", "fields": {}}
    token = tokens.mint(payload, subject_id=1)
    payload["record_kind"] = "water"

    assert tokens.redeem(token)["record_kind"] == "meal"


@pytest.mark.asyncio
async def test_concurrent_redeem_exactly_once(tokens):
    """
    Тест: Из 10 конкурентных нажатий успешно ровно одно
    """
    token = tokens.mint(PAYLOAD, subject_id=1)

    async def press():
        await asyncio.sleep(0)
        try:
            return tokens.redeem(token, subject_id=1)
        except TokenNotFoundError:
            return None

    results = await asyncio.gather(*(press() for _ in range(10)))

    assert sum(1 for r in results if r is not None) == 1


def test_sweep(tokens, clock):
    tokens.mint(PAYLOAD, subject_id=1)
    tokens.mint(PAYLOAD, subject_id=2)
    clock.now += 1000
    tokens.mint(PAYLOAD, subject_id=3)

    assert tokens.sweep() == 2
