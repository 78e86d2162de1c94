"""
Unit Tests: RecordsDAO (DatabaseService замокан)
"""

import json
from datetime import datetime
from unittest.mock import AsyncMock, Mock

import asyncpg
import pytest

from core.errors import PersistenceError
from nutribot.database import RecordsDAO


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def db():
    mock = Mock()
    mock.execute = AsyncMock(return_value="INSERT 0 1")
    mock.fetch_one = AsyncMock()
    return mock


@pytest.fixture
def dao(db):
    return RecordsDAO(db)


# ============================================================================
# WRITES
# ============================================================================

@pytest.mark.asyncio
async def test_persist_meal(dao, db):
    """
    Тест: meal → одна INSERT, ингредиенты как JSON
    """
    await dao.persist("meal", {"subject_id": 7, "dish_name": "Омлет", "ingredients": ["яйца"],
                               "weight_g": 150, "calories": 250, "protein": 17,
                               "fat": 18, "carbs": 3, "source": "photo"})

    db.execute.assert_awaited_once()
    query, *args = db.execute.await_args.args
    assert "INSERT INTO meals" in query
    assert args == [7, "Омлет", json.dumps(["яйца"], ensure_ascii=False),
                    150, 250.0, 17.0, 18.0, 3.0, "photo"]


@pytest.mark.asyncio
async def test_persist_water(dao, db):
    await dao.persist("water", {"subject_id": 7, "amount_ml": 300})

    query, *args = db.execute.await_args.args
    assert "INSERT INTO water_log" in query
    assert args == [7, 300]


@pytest.mark.asyncio
async def test_persist_profile_upsert(dao, db):
    profile = {"subject_id": 7, "name": "Анна", "gender": "female", "age": 30, "height": 165,
               "weight": 60.0, "goal": "lose_weight", "daily_calories": 1411,
               "daily_protein": 106, "daily_fat": 47, "daily_carbs": 141}

    await dao.persist("profile", profile)

    query, *args = db.execute.await_args.args
    assert "ON CONFLICT (telegram_id) DO UPDATE" in query
    assert args[0] == 7
    assert args[1:] == ["Анна", "female", 30, 165, 60.0, "lose_weight", 1411, 106, 47, 141]


@pytest.mark.asyncio
async def test_profile_update_touches_only_given_columns(dao, db):
    db.execute.return_value = "UPDATE 1"

    await dao.persist("profile_update", {"subject_id": 7, "weight": 58.5, "daily_calories": 1380})

    query, *args = db.execute.await_args.args
    assert "weight = $2" in query
    assert "daily_calories = $3" in query
    assert "name" not in query
    assert args == [7, 58.5, 1380]


@pytest.mark.asyncio
async def test_profile_update_without_profile_fails(dao, db):
    """
    Тест: UPDATE 0 → PersistenceError (профиля нет)
    """
    db.execute.return_value = "UPDATE 0"

    with pytest.raises(PersistenceError):
        await dao.persist("profile_update", {"subject_id": 7, "name": "Аня"})


@pytest.mark.asyncio
async def test_unknown_record_kind(dao, db):
    with pytest.raises(PersistenceError):
        await dao.persist("sleep", {"subject_id": 7})

    db.execute.assert_not_called()


@pytest.mark.asyncio
async def test_database_error_becomes_persistence_error(dao, db):
    db.execute.side_effect = asyncpg.PostgresError("connection lost")

    with pytest.raises(PersistenceError) as exc_info:
        await dao.persist("water", {"subject_id": 7, "amount_ml": 300})

    assert exc_info.value.subject_id == 7
    db.execute.assert_awaited_once()


@pytest.mark.asyncio
async def test_pool_not_initialized(dao, db):
    db.execute.side_effect = RuntimeError("Database pool not initialized")

    with pytest.raises(PersistenceError):
        await dao.persist("workout", {"subject_id": 7, "activity": "бег"})


# ============================================================================
# READS
# ============================================================================

@pytest.mark.asyncio
async def test_get_profile(dao, db):
    db.fetch_one.return_value = {"telegram_id": 7, "name": "Анна"}

    assert await dao.get_profile(7) == {"telegram_id": 7, "name": "Анна"}

    db.fetch_one.return_value = None
    assert await dao.get_profile(8) is None


@pytest.mark.asyncio
async def test_get_profile_error(dao, db):
    db.fetch_one.side_effect = OSError("connection refused")

    with pytest.raises(PersistenceError):
        await dao.get_profile(7)


@pytest.mark.asyncio
async def test_fetch_totals(dao, db):
    """
    Тест: суммы за период с начала периода + вода
    """
    db.fetch_one.side_effect = [
        {"meals_count": 2, "calories": 900.0, "protein": 40.0, "fat": 30.0, "carbs": 100.0},
        {"water_ml": 1200},
    ]

    totals = await dao.fetch_totals(7, "today", now=datetime(2026, 3, 10, 15, 0))

    assert totals["meals_count"] == 2
    assert totals["water_ml"] == 1200
    since = db.fetch_one.await_args_list[0].args[2]
    assert since.replace(tzinfo=None) == datetime(2026, 3, 10)
