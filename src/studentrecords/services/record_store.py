import asyncio
from dataclasses import replace
import json
from typing import Any, Callable, Dict, List, Optional, TypeVar

from studentrecords.config.logging_config import get_logger
from studentrecords.config.settings import settings
from studentrecords.core.grades import clamp_score
from studentrecords.core.models import (
    Account,
    AccountStatus,
    AnalysisResult,
    Grade,
    Role,
    Snapshot,
    Subject,
)
from studentrecords.services.blob_store import BlobStoreError, SqliteBlobStore

logger = get_logger("record_store")

T = TypeVar("T")

STORAGE_KEYS = {
    "accounts": "sms_users",
    "subjects": "sms_subjects",
    "grades": "sms_grades",
    "analyses": "sms_analysis",
}

INITIAL_ADMIN = Account(
    id="admin-1",
    username="admin",
    password="admin",
    full_name="System Administrator",
    role=Role.ADMIN,
    status=AccountStatus.APPROVED,
    email="admin@uep.edu.ph",
)

DEFAULT_SUBJECTS = [
    Subject(id="sub-1", name="Mathematics", code="MATH101", credits=3),
    Subject(id="sub-2", name="Physics", code="PHYS101", credits=4),
    Subject(id="sub-3", name="Introduction to Programming", code="CS101", credits=3),
    Subject(id="sub-4", name="History", code="HIST101", credits=2),
]


class StoreUnavailable(Exception):
    pass


def _encode(rows: List[Any]) -> str:
    return json.dumps([row.to_dict() for row in rows])


class RecordStore:
    """
    CRUD over the four record collections, persisted as JSON arrays in a
    key-value blob. One instance is created per process and passed to callers.
    """

    def __init__(self, blob: SqliteBlobStore, latency_ms: int = 0) -> None:
        self.blob = blob
        self.latency = max(0, latency_ms) / 1000
        self._initialized = False

    @classmethod
    def from_settings(cls) -> "RecordStore":
        try:
            blob = SqliteBlobStore(settings.store_path)
        except BlobStoreError as exc:
            raise StoreUnavailable(str(exc)) from exc
        return cls(blob, latency_ms=settings.store_latency_ms)

    def initialize(self) -> None:
        """Seed every collection that has never been written. Existing data is left alone."""
        seeds = {
            "accounts": [INITIAL_ADMIN],
            "subjects": DEFAULT_SUBJECTS,
            "grades": [],
            "analyses": [],
        }
        try:
            missing = {
                STORAGE_KEYS[name]: _encode(rows)
                for name, rows in seeds.items()
                if not self.blob.has(STORAGE_KEYS[name])
            }
            if missing:
                self.blob.set_many(missing)
                logger.info("Seeded collections: %s", ", ".join(sorted(missing)))
        except BlobStoreError as exc:
            logger.error("Storage initialization failed: %s", exc)
            raise StoreUnavailable(str(exc)) from exc
        self._initialized = True

    async def _ready(self) -> None:
        if self.latency:
            await asyncio.sleep(self.latency)
        if not self._initialized:
            self.initialize()

    def _read(self, name: str, parse: Callable[[Dict[str, Any]], T]) -> List[T]:
        key = STORAGE_KEYS[name]
        try:
            raw = self.blob.get(key)
        except BlobStoreError as exc:
            logger.error("Read of %s failed: %s", key, exc)
            raise StoreUnavailable(str(exc)) from exc

        if raw is None:
            return []
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Malformed data under %s, treating as empty", key)
            return []
        if not isinstance(data, list):
            logger.warning("Unexpected %s payload under %s, treating as empty", type(data).__name__, key)
            return []

        rows: List[T] = []
        for item in data:
            try:
                rows.append(parse(item))
            except (KeyError, TypeError, ValueError, AttributeError):
                logger.warning("Skipping malformed record under %s: %r", key, item)
        return rows

    def _write(self, **collections: List[Any]) -> None:
        items = {STORAGE_KEYS[name]: _encode(rows) for name, rows in collections.items()}
        try:
            if len(items) == 1:
                key, value = next(iter(items.items()))
                self.blob.set(key, value)
            else:
                self.blob.set_many(items)
        except BlobStoreError as exc:
            logger.error("Write of %s failed: %s", ", ".join(items), exc)
            raise StoreUnavailable(str(exc)) from exc

    @staticmethod
    def _upsert_by_id(rows: List[T], entity: T) -> List[T]:
        for index, row in enumerate(rows):
            if row.id == entity.id:
                rows[index] = entity
                return rows
        rows.append(entity)
        return rows

    async def list_accounts(self) -> List[Account]:
        await self._ready()
        return self._read("accounts", Account.from_dict)

    async def save_account(self, account: Account) -> Account:
        await self._ready()
        rows = self._upsert_by_id(self._read("accounts", Account.from_dict), account)
        self._write(accounts=rows)
        return account

    async def delete_account(self, account_id: str) -> None:
        await self._ready()
        accounts = [a for a in self._read("accounts", Account.from_dict) if a.id != account_id]
        grades = [g for g in self._read("grades", Grade.from_dict) if g.student_id != account_id]
        self._write(accounts=accounts, grades=grades)

    async def list_subjects(self) -> List[Subject]:
        await self._ready()
        return self._read("subjects", Subject.from_dict)

    async def save_subject(self, subject: Subject) -> Subject:
        await self._ready()
        rows = self._upsert_by_id(self._read("subjects", Subject.from_dict), subject)
        self._write(subjects=rows)
        return subject

    async def delete_subject(self, subject_id: str) -> None:
        await self._ready()
        subjects = [s for s in self._read("subjects", Subject.from_dict) if s.id != subject_id]
        grades = [g for g in self._read("grades", Grade.from_dict) if g.subject_id != subject_id]
        self._write(subjects=subjects, grades=grades)

    async def list_grades(self) -> List[Grade]:
        await self._ready()
        return self._read("grades", Grade.from_dict)

    async def save_grade(self, grade: Grade) -> Grade:
        """
        Upsert keyed by (student_id, subject_id), falling back to id when no
        grade exists for the pair. A pair match keeps the stored grade's id so
        there is only ever one grade per pair; other grades are never merged in.
        """
        await self._ready()
        rows = self._read("grades", Grade.from_dict)
        stored = replace(grade, score=clamp_score(grade.score))

        index = next((i for i, row in enumerate(rows) if row.same_pair(grade)), None)
        if index is None:
            index = next((i for i, row in enumerate(rows) if row.id == grade.id), None)
        if index is None:
            rows.append(stored)
        else:
            stored = replace(stored, id=rows[index].id)
            rows[index] = stored
            rows = [
                row
                for i, row in enumerate(rows)
                if i == index or not row.same_pair(stored)
            ]

        self._write(grades=rows)
        return stored

    async def delete_grade(self, grade_id: str) -> None:
        await self._ready()
        rows = [g for g in self._read("grades", Grade.from_dict) if g.id != grade_id]
        self._write(grades=rows)

    async def list_analyses(self) -> List[AnalysisResult]:
        await self._ready()
        return self._read("analyses", AnalysisResult.from_dict)

    async def record_analysis(self, result: AnalysisResult) -> None:
        await self._ready()
        rows = self._read("analyses", AnalysisResult.from_dict)
        rows.append(result)
        self._write(analyses=rows)

    async def latest_analysis(self, student_id: str) -> Optional[AnalysisResult]:
        await self._ready()
        matches = [r for r in self._read("analyses", AnalysisResult.from_dict) if r.student_id == student_id]
        return matches[-1] if matches else None

    async def snapshot(self) -> Snapshot:
        await self._ready()
        return Snapshot(
            accounts=self._read("accounts", Account.from_dict),
            subjects=self._read("subjects", Subject.from_dict),
            grades=self._read("grades", Grade.from_dict),
            analyses=self._read("analyses", AnalysisResult.from_dict),
        )

    def close(self) -> None:
        self.blob.close()
