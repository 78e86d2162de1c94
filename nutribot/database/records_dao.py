"""
Records DAO - реализация RecordStore поверх asyncpg

Таблицы:
- profiles   - профиль + суточные нормы (telegram_id PK)
- meals      - подтверждённые приёмы пищи
- water_log  - вода
- workouts   - тренировки

Каждый persist - одна запись. Любая ошибка БД → PersistenceError,
повторов нет.
"""

import json
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

import asyncpg

from core.errors import PersistenceError
from core.logging import get_logger
from systems.nutrition.reports import period_start
from .service import DatabaseService

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS profiles (
    telegram_id     BIGINT PRIMARY KEY,
    name            TEXT NOT NULL,
    gender          TEXT NOT NULL,
    age             INTEGER NOT NULL,
    height          INTEGER NOT NULL,
    weight          REAL NOT NULL,
    goal            TEXT NOT NULL,
    daily_calories  INTEGER,
    daily_protein   INTEGER,
    daily_fat       INTEGER,
    daily_carbs     INTEGER,
    created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at      TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS meals (
    id              BIGSERIAL PRIMARY KEY,
    telegram_id     BIGINT NOT NULL,
    dish_name       TEXT NOT NULL,
    ingredients     JSONB NOT NULL DEFAULT '[]',
    weight_g        INTEGER NOT NULL DEFAULT 0,
    calories        REAL NOT NULL DEFAULT 0,
    protein         REAL NOT NULL DEFAULT 0,
    fat             REAL NOT NULL DEFAULT 0,
    carbs           REAL NOT NULL DEFAULT 0,
    source          TEXT NOT NULL DEFAULT 'text',
    eaten_at        TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_meals_user_time ON meals (telegram_id, eaten_at);

CREATE TABLE IF NOT EXISTS water_log (
    id              BIGSERIAL PRIMARY KEY,
    telegram_id     BIGINT NOT NULL,
    amount_ml       INTEGER NOT NULL,
    logged_at       TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS workouts (
    id              BIGSERIAL PRIMARY KEY,
    telegram_id     BIGINT NOT NULL,
    activity        TEXT NOT NULL,
    duration_min    INTEGER,
    calories_burned INTEGER,
    logged_at       TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""

PROFILE_COLUMNS = ("name", "gender", "age", "height", "weight", "goal",
                   "daily_calories", "daily_protein", "daily_fat", "daily_carbs")

# profile_update: какие колонки можно менять через редактор профиля
EDITABLE_PROFILE_COLUMNS = ("name", "age", "height", "weight", "goal",
                            "daily_calories", "daily_protein", "daily_fat", "daily_carbs")


class RecordsDAO:
    """Data Access Object for diary records"""

    def __init__(self, db: DatabaseService):
        self.db = db
        self.logger = get_logger("nutribot.records_dao", "records")

    async def create_tables(self):
        async with self.db.get_connection() as conn:
            await conn.execute(SCHEMA_SQL)
        self.logger.info("✅ Diary tables ensured")

    # ========================================================================
    # WRITES
    # ========================================================================

    async def persist(self, record_kind: str, fields: Mapping[str, Any]) -> None:
        writer = {
            "profile": self._save_profile,
            "profile_update": self._update_profile,
            "meal": self._save_meal,
            "water": self._save_water,
            "workout": self._save_workout,
        }.get(record_kind)
        if writer is None:
            raise PersistenceError(f"Unknown record kind: {record_kind}")

        subject_id = fields.get("subject_id")
        try:
            await writer(fields)
        except (asyncpg.PostgresError, OSError, RuntimeError, KeyError) as e:
            self.logger.log_error("DB_001", f"Failed to persist {record_kind}",
                                  user_id=subject_id, exception=e)
            raise PersistenceError(f"Failed to persist {record_kind}: {e}",
                                   subject_id=subject_id) from e

        self.logger.log_user_action(f"{record_kind}_saved", subject_id)

    async def _save_profile(self, fields: Mapping[str, Any]):
        values = [fields.get(column) for column in PROFILE_COLUMNS]
        placeholders = ", ".join(f"${i}" for i in range(2, len(PROFILE_COLUMNS) + 2))
        updates = ", ".join(f"{column} = EXCLUDED.{column}" for column in PROFILE_COLUMNS)
        await self.db.execute(f"""
            INSERT INTO profiles (telegram_id, {", ".join(PROFILE_COLUMNS)})
            VALUES ($1, {placeholders})
            ON CONFLICT (telegram_id) DO UPDATE SET {updates}, updated_at = NOW()
        """, fields["subject_id"], *values)

    async def _update_profile(self, fields: Mapping[str, Any]):
        columns = [c for c in EDITABLE_PROFILE_COLUMNS if c in fields]
        if not columns:
            return
        assignments = ", ".join(f"{column} = ${i}" for i, column in enumerate(columns, start=2))
        result = await self.db.execute(f"""
            UPDATE profiles SET {assignments}, updated_at = NOW()
            WHERE telegram_id = $1
        """, fields["subject_id"], *(fields[c] for c in columns))
        if result != "UPDATE 1":
            raise KeyError(f"profile {fields['subject_id']} not found")

    async def _save_meal(self, fields: Mapping[str, Any]):
        await self.db.execute("""
            INSERT INTO meals
            (telegram_id, dish_name, ingredients, weight_g, calories, protein, fat, carbs, source)
            VALUES ($1, $2, $3::jsonb, $4, $5, $6, $7, $8, $9)
        """, fields["subject_id"], fields["dish_name"],
            json.dumps(list(fields.get("ingredients") or []), ensure_ascii=False),
            int(fields.get("weight_g") or 0),
            float(fields.get("calories") or 0),
            float(fields.get("protein") or 0),
            float(fields.get("fat") or 0),
            float(fields.get("carbs") or 0),
            fields.get("source", "text"))

    async def _save_water(self, fields: Mapping[str, Any]):
        await self.db.execute("""
            INSERT INTO water_log (telegram_id, amount_ml) VALUES ($1, $2)
        """, fields["subject_id"], int(fields["amount_ml"]))

    async def _save_workout(self, fields: Mapping[str, Any]):
        await self.db.execute("""
            INSERT INTO workouts (telegram_id, activity, duration_min, calories_burned)
            VALUES ($1, $2, $3, $4)
        """, fields["subject_id"], fields["activity"],
            fields.get("duration_min"), fields.get("calories_burned"))

    # ========================================================================
    # READS
    # ========================================================================

    async def get_profile(self, subject_id: int) -> Optional[Dict[str, Any]]:
        try:
            row = await self.db.fetch_one(
                "SELECT * FROM profiles WHERE telegram_id = $1", subject_id
            )
        except (asyncpg.PostgresError, OSError, RuntimeError) as e:
            raise PersistenceError(f"Failed to load profile: {e}", subject_id=subject_id) from e
        return dict(row) if row else None

    async def fetch_totals(self, subject_id: int, period: str,
                           now: Optional[datetime] = None) -> Dict[str, Any]:
        since = period_start(period, now).astimezone()
        try:
            meals = await self.db.fetch_one("""
                SELECT COUNT(*) AS meals_count,
                       COALESCE(SUM(calories), 0) AS calories,
                       COALESCE(SUM(protein), 0) AS protein,
                       COALESCE(SUM(fat), 0) AS fat,
                       COALESCE(SUM(carbs), 0) AS carbs
                FROM meals
                WHERE telegram_id = $1 AND eaten_at >= $2
            """, subject_id, since)
            water = await self.db.fetch_one("""
                SELECT COALESCE(SUM(amount_ml), 0) AS water_ml
                FROM water_log
                WHERE telegram_id = $1 AND logged_at >= $2
            """, subject_id, since)
        except (asyncpg.PostgresError, OSError, RuntimeError) as e:
            raise PersistenceError(f"Failed to load totals: {e}", subject_id=subject_id) from e

        totals = dict(meals) if meals else {}
        totals["water_ml"] = water["water_ml"] if water else 0
        return totals
