"""Read/write access to profiles, schools, essays, cases and personal events."""

from __future__ import annotations

import json
import uuid
from typing import Any, Optional

from admissions_agent.core.models import ProfileSnapshot
from admissions_agent.log import get_logger
from admissions_agent.storage.database import Database
from admissions_agent.storage.models import (
    AdmissionCaseRecord,
    EssayRecord,
    PersonalEventRecord,
    SchoolRecord,
)

logger = get_logger(__name__)

PUBLIC_CASE_VISIBILITY = ("ANONYMOUS", "PUBLIC")


class AdmissionsRepository:
    """Domain lookups used by the tool handlers and the memory service."""

    def __init__(self, db: Database):
        self._db = db

    # ---- profiles ----

    async def get_profile(self, user_id: str) -> Optional[ProfileSnapshot]:
        cursor = await self._db.conn.execute("SELECT * FROM profiles WHERE user_id = ?", (user_id,))
        row = await cursor.fetchone()
        if row is None:
            return None

        scores = await self._fetch(
            "SELECT type, score, test_date FROM test_scores WHERE user_id = ? ORDER BY id", user_id
        )
        activities = await self._fetch(
            "SELECT name, category, role, description, hours_per_week FROM activities "
            "WHERE user_id = ? ORDER BY id",
            user_id,
        )
        awards = await self._fetch(
            "SELECT name, level, year FROM awards WHERE user_id = ? ORDER BY id", user_id
        )
        return ProfileSnapshot(
            gpa=row["gpa"],
            gpa_scale=row["gpa_scale"] or 4.0,
            grade=row["grade"],
            target_major=row["target_major"],
            target_schools=json.loads(row["target_schools_json"]),
            budget_tier=row["budget_tier"],
            test_scores=[
                {"type": s["type"], "score": s["score"], "date": s["test_date"]} for s in scores
            ],
            activities=[dict(a) for a in activities],
            awards=[dict(a) for a in awards],
        )

    async def save_profile(self, user_id: str, profile: ProfileSnapshot) -> None:
        """Replace the stored profile and its child rows."""
        conn = self._db.conn
        await conn.execute(
            """INSERT INTO profiles
               (user_id, gpa, gpa_scale, grade, target_major, target_schools_json, budget_tier)
               VALUES (?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(user_id) DO UPDATE SET
                   gpa = excluded.gpa,
                   gpa_scale = excluded.gpa_scale,
                   grade = excluded.grade,
                   target_major = excluded.target_major,
                   target_schools_json = excluded.target_schools_json,
                   budget_tier = excluded.budget_tier,
                   updated_at = strftime('%Y-%m-%dT%H:%M:%f','now')""",
            (
                user_id,
                profile.gpa,
                profile.gpa_scale,
                profile.grade,
                profile.target_major,
                json.dumps(profile.target_schools, ensure_ascii=False),
                profile.budget_tier,
            ),
        )
        for table in ("test_scores", "activities", "awards"):
            await conn.execute(f"DELETE FROM {table} WHERE user_id = ?", (user_id,))
        await conn.executemany(
            "INSERT INTO test_scores (user_id, type, score, test_date) VALUES (?, ?, ?, ?)",
            [(user_id, s["type"], s["score"], s.get("date")) for s in profile.test_scores],
        )
        await conn.executemany(
            "INSERT INTO activities (user_id, name, category, role, description, hours_per_week) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            [
                (
                    user_id,
                    a["name"],
                    a.get("category"),
                    a.get("role"),
                    a.get("description"),
                    a.get("hours_per_week"),
                )
                for a in profile.activities
            ],
        )
        await conn.executemany(
            "INSERT INTO awards (user_id, name, level, year) VALUES (?, ?, ?, ?)",
            [(user_id, a["name"], a.get("level"), a.get("year")) for a in profile.awards],
        )
        await conn.commit()

    async def update_profile_field(self, user_id: str, field: str, value: Any) -> bool:
        """Update one whitelisted column. Returns False when no profile row exists."""
        column = {
            "targetMajor": "target_major",
            "budgetTier": "budget_tier",
            "targetSchools": "target_schools_json",
        }[field]
        if column == "target_schools_json":
            value = json.dumps(value, ensure_ascii=False)
        cursor = await self._db.conn.execute(
            f"UPDATE profiles SET {column} = ?, updated_at = strftime('%Y-%m-%dT%H:%M:%f','now') "
            "WHERE user_id = ?",
            (value, user_id),
        )
        await self._db.conn.commit()
        return cursor.rowcount > 0

    # ---- schools ----

    async def upsert_school(self, school: SchoolRecord) -> None:
        await self._db.conn.execute(
            """INSERT OR REPLACE INTO schools
               (id, name, name_zh, us_news_rank, acceptance_rate, tuition, state, city,
                is_private, sat_25, sat_75, metadata_json)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                school.id,
                school.name,
                school.name_zh,
                school.us_news_rank,
                school.acceptance_rate,
                school.tuition,
                school.state,
                school.city,
                int(school.is_private),
                school.sat_25,
                school.sat_75,
                json.dumps(school.metadata, ensure_ascii=False),
            ),
        )
        await self._db.conn.commit()

    async def search_schools(
        self,
        query: str | None = None,
        rank_min: int | None = None,
        rank_max: int | None = None,
        max_tuition: int | None = None,
        state: str | None = None,
        limit: int = 20,
    ) -> list[SchoolRecord]:
        clauses: list[str] = []
        params: list[Any] = []
        if query:
            clauses.append("(name LIKE ? OR name_zh LIKE ?)")
            params += [f"%{query}%", f"%{query}%"]
        if rank_min is not None:
            clauses.append("us_news_rank >= ?")
            params.append(rank_min)
        if rank_max is not None:
            clauses.append("us_news_rank <= ?")
            params.append(rank_max)
        if max_tuition is not None:
            clauses.append("tuition <= ?")
            params.append(max_tuition)
        if state:
            clauses.append("state = ?")
            params.append(state)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        cursor = await self._db.conn.execute(
            f"SELECT * FROM schools {where} "
            "ORDER BY us_news_rank IS NULL, us_news_rank ASC LIMIT ?",
            (*params, limit),
        )
        return [self._row_to_school(row) for row in await cursor.fetchall()]

    async def get_school(self, school_id: str) -> Optional[SchoolRecord]:
        cursor = await self._db.conn.execute("SELECT * FROM schools WHERE id = ?", (school_id,))
        row = await cursor.fetchone()
        return self._row_to_school(row) if row else None

    async def find_school_by_name(self, name: str) -> Optional[SchoolRecord]:
        cursor = await self._db.conn.execute(
            "SELECT * FROM schools WHERE name LIKE ? OR name_zh LIKE ? "
            "ORDER BY us_news_rank IS NULL, us_news_rank ASC LIMIT 1",
            (f"%{name}%", f"%{name}%"),
        )
        row = await cursor.fetchone()
        return self._row_to_school(row) if row else None

    async def get_schools(self, school_ids: list[str]) -> list[SchoolRecord]:
        if not school_ids:
            return []
        placeholders = ",".join("?" for _ in school_ids)
        cursor = await self._db.conn.execute(
            f"SELECT * FROM schools WHERE id IN ({placeholders}) ORDER BY us_news_rank",
            tuple(school_ids),
        )
        return [self._row_to_school(row) for row in await cursor.fetchall()]

    async def list_ranked_schools(self, limit: int = 200) -> list[SchoolRecord]:
        cursor = await self._db.conn.execute(
            "SELECT * FROM schools WHERE us_news_rank IS NOT NULL ORDER BY us_news_rank LIMIT ?",
            (limit,),
        )
        return [self._row_to_school(row) for row in await cursor.fetchall()]

    # ---- essays ----

    async def save_essay(self, essay: EssayRecord) -> None:
        await self._db.conn.execute(
            """INSERT OR REPLACE INTO essays (id, user_id, title, prompt, content, status, school_id)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                essay.id,
                essay.user_id,
                essay.title,
                essay.prompt,
                essay.content,
                essay.status,
                essay.school_id,
            ),
        )
        await self._db.conn.commit()

    async def list_essays(self, user_id: str) -> list[EssayRecord]:
        cursor = await self._db.conn.execute(
            "SELECT * FROM essays WHERE user_id = ? ORDER BY updated_at DESC", (user_id,)
        )
        return [self._row_to_essay(row) for row in await cursor.fetchall()]

    async def get_essay(self, user_id: str, essay_id: str) -> Optional[EssayRecord]:
        cursor = await self._db.conn.execute(
            "SELECT * FROM essays WHERE id = ? AND user_id = ?", (essay_id, user_id)
        )
        row = await cursor.fetchone()
        return self._row_to_essay(row) if row else None

    # ---- admission cases ----

    async def add_case(self, case: AdmissionCaseRecord) -> None:
        await self._db.conn.execute(
            """INSERT OR REPLACE INTO admission_cases
               (id, school_id, year, round, result, major, gpa_range, sat_range,
                toefl_range, tags_json, visibility)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                case.id,
                case.school_id,
                case.year,
                case.round,
                case.result,
                case.major,
                case.gpa_range,
                case.sat_range,
                case.toefl_range,
                json.dumps(case.tags, ensure_ascii=False),
                case.visibility,
            ),
        )
        await self._db.conn.commit()

    async def search_cases(
        self,
        school_name: str | None = None,
        major: str | None = None,
        year: int | None = None,
        gpa_range: str | None = None,
        limit: int = 10,
    ) -> list[AdmissionCaseRecord]:
        """Newest public or anonymous cases matching the filters."""
        clauses = ["c.visibility IN (?, ?)"]
        params: list[Any] = list(PUBLIC_CASE_VISIBILITY)
        if school_name:
            clauses.append("(s.name LIKE ? OR s.name_zh LIKE ?)")
            params += [f"%{school_name}%", f"%{school_name}%"]
        if major:
            clauses.append("c.major LIKE ?")
            params.append(f"%{major}%")
        if year:
            clauses.append("c.year = ?")
            params.append(year)
        if gpa_range:
            clauses.append("c.gpa_range = ?")
            params.append(gpa_range)
        cursor = await self._db.conn.execute(
            f"""SELECT c.*, COALESCE(s.name_zh, s.name) AS school_name
                FROM admission_cases c LEFT JOIN schools s ON s.id = c.school_id
                WHERE {' AND '.join(clauses)}
                ORDER BY c.created_at DESC, c.year DESC LIMIT ?""",
            (*params, limit),
        )
        return [
            AdmissionCaseRecord(
                id=row["id"],
                school_id=row["school_id"],
                year=row["year"],
                round=row["round"],
                result=row["result"],
                major=row["major"],
                gpa_range=row["gpa_range"],
                sat_range=row["sat_range"],
                toefl_range=row["toefl_range"],
                tags=json.loads(row["tags_json"]),
                visibility=row["visibility"],
                school_name=row["school_name"],
            )
            for row in await cursor.fetchall()
        ]

    # ---- personal events ----

    async def list_personal_events(
        self, user_id: str, category: str | None = None
    ) -> list[PersonalEventRecord]:
        sql = "SELECT * FROM personal_events WHERE user_id = ?"
        params: list[Any] = [user_id]
        if category:
            sql += " AND category = ?"
            params.append(category)
        sql += " ORDER BY COALESCE(deadline, event_date, created_at)"
        cursor = await self._db.conn.execute(sql, tuple(params))
        return [
            PersonalEventRecord(
                id=row["id"],
                user_id=row["user_id"],
                title=row["title"],
                category=row["category"],
                deadline=row["deadline"],
                event_date=row["event_date"],
                description=row["description"],
                status=row["status"],
                tasks=json.loads(row["tasks_json"]),
            )
            for row in await cursor.fetchall()
        ]

    async def create_personal_event(self, event: PersonalEventRecord) -> PersonalEventRecord:
        if not event.id:
            event.id = f"evt_{uuid.uuid4().hex[:12]}"
        await self._db.conn.execute(
            """INSERT INTO personal_events
               (id, user_id, title, category, deadline, event_date, description, status, tasks_json)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                event.id,
                event.user_id,
                event.title,
                event.category,
                event.deadline,
                event.event_date,
                event.description,
                event.status,
                json.dumps(event.tasks, ensure_ascii=False),
            ),
        )
        await self._db.conn.commit()
        logger.info("personal_event_created", user_id=event.user_id, event_id=event.id)
        return event

    # ---- helpers ----

    async def _fetch(self, sql: str, *params: Any) -> list[Any]:
        cursor = await self._db.conn.execute(sql, params)
        return list(await cursor.fetchall())

    @staticmethod
    def _row_to_school(row) -> SchoolRecord:
        return SchoolRecord(
            id=row["id"],
            name=row["name"],
            name_zh=row["name_zh"],
            us_news_rank=row["us_news_rank"],
            acceptance_rate=row["acceptance_rate"],
            tuition=row["tuition"],
            state=row["state"],
            city=row["city"],
            is_private=bool(row["is_private"]),
            sat_25=row["sat_25"],
            sat_75=row["sat_75"],
            metadata=json.loads(row["metadata_json"]),
        )

    @staticmethod
    def _row_to_essay(row) -> EssayRecord:
        return EssayRecord(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            prompt=row["prompt"],
            content=row["content"],
            status=row["status"],
            school_id=row["school_id"],
            updated_at=row["updated_at"],
        )
