import os
import tempfile
import unittest

from studentrecords.core.models import (
    Account,
    AccountStatus,
    AnalysisResult,
    Grade,
    Role,
    Subject,
)
from studentrecords.services.blob_store import BlobStoreError, SqliteBlobStore
from studentrecords.services.record_store import STORAGE_KEYS, RecordStore, StoreUnavailable


class BrokenBlobStore(SqliteBlobStore):
    fail_reads = False
    fail_writes = False

    def get(self, key):
        if self.fail_reads:
            raise BlobStoreError("disk unavailable")
        return super().get(key)

    def set(self, key, value):
        if self.fail_writes:
            raise BlobStoreError("disk unavailable")
        super().set(key, value)

    def set_many(self, items):
        if self.fail_writes:
            raise BlobStoreError("disk unavailable")
        super().set_many(items)


def _grade(grade_id, student_id, subject_id, score):
    return Grade(id=grade_id, student_id=student_id, subject_id=subject_id, score=score, semester="Fall 2024")


class RecordStoreTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self.tmp.name, "records.db")
        self.blob = BrokenBlobStore(self.db_path)
        self.store = RecordStore(self.blob)

    def tearDown(self):
        self.blob.close()
        self.tmp.cleanup()

    async def test_first_run_seeds_admin_once(self):
        accounts = await self.store.list_accounts()
        self.assertEqual([a.username for a in accounts], ["admin"])
        self.assertEqual(accounts[0].role, Role.ADMIN)
        self.assertEqual(accounts[0].status, AccountStatus.APPROVED)

        await self.store.save_account(
            Account(id="u-1", username="jdoe", password="pw", full_name="John Doe")
        )

        second_blob = SqliteBlobStore(self.db_path)
        try:
            again = RecordStore(second_blob)
            again.initialize()
            usernames = [a.username for a in await again.list_accounts()]
        finally:
            second_blob.close()
        self.assertEqual(usernames, ["admin", "jdoe"])

    async def test_seeds_default_curriculum_and_empty_logs(self):
        codes = [s.code for s in await self.store.list_subjects()]
        self.assertEqual(codes, ["MATH101", "PHYS101", "CS101", "HIST101"])
        self.assertEqual(await self.store.list_grades(), [])
        self.assertEqual(await self.store.list_analyses(), [])

    async def test_seeding_leaves_existing_keys_alone(self):
        self.blob.set(STORAGE_KEYS["subjects"], "[]")
        self.assertEqual(await self.store.list_subjects(), [])
        self.assertEqual(len(await self.store.list_accounts()), 1)

    async def test_upsert_is_idempotent_and_replaces_in_place(self):
        subject = Subject(id="sub-9", name="Chemistry", code="CHEM101", credits=3)
        await self.store.save_subject(subject)
        await self.store.save_subject(subject)
        await self.store.save_subject(Subject(id="sub-9", name="Chemistry I", code="CHEM101", credits=4))

        subjects = await self.store.list_subjects()
        matching = [s for s in subjects if s.id == "sub-9"]
        self.assertEqual(len(matching), 1)
        self.assertEqual(matching[0].name, "Chemistry I")
        self.assertEqual(matching[0].credits, 4)
        self.assertEqual(subjects[-1].id, "sub-9")

    async def test_account_update_keeps_position(self):
        await self.store.save_account(Account(id="u-1", username="jdoe", password="pw", full_name="John Doe"))
        await self.store.save_account(Account(id="u-2", username="asmith", password="pw", full_name="Ann Smith"))
        await self.store.save_account(
            Account(id="u-1", username="jdoe", password="pw", full_name="John Doe", status=AccountStatus.APPROVED)
        )
        accounts = await self.store.list_accounts()
        self.assertEqual([a.id for a in accounts], ["admin-1", "u-1", "u-2"])
        self.assertEqual(accounts[1].status, AccountStatus.APPROVED)

    async def test_grade_pair_keeps_first_identity(self):
        await self.store.save_grade(_grade("g-first", "u-1", "sub-1", 70))
        stored = await self.store.save_grade(_grade("g-second", "u-1", "sub-1", 88))

        grades = await self.store.list_grades()
        self.assertEqual(len(grades), 1)
        self.assertEqual(grades[0].id, "g-first")
        self.assertEqual(grades[0].score, 88)
        self.assertEqual(stored.id, "g-first")

    async def test_grade_id_clash_does_not_merge_other_pairs(self):
        await self.store.save_grade(_grade("g-x", "u-1", "sub-1", 70))
        await self.store.save_grade(_grade("g-y", "u-1", "sub-2", 60))

        stored = await self.store.save_grade(_grade("g-x", "u-1", "sub-2", 90))

        grades = {g.id: g for g in await self.store.list_grades()}
        self.assertEqual(stored.id, "g-y")
        self.assertEqual(set(grades), {"g-x", "g-y"})
        self.assertEqual((grades["g-x"].subject_id, grades["g-x"].score), ("sub-1", 70))
        self.assertEqual((grades["g-y"].subject_id, grades["g-y"].score), ("sub-2", 90))

    async def test_grade_id_match_applies_when_pair_is_new(self):
        await self.store.save_grade(_grade("g-x", "u-1", "sub-1", 70))
        await self.store.save_grade(_grade("g-x", "u-1", "sub-3", 65))

        grades = await self.store.list_grades()
        self.assertEqual([(g.id, g.subject_id, g.score) for g in grades], [("g-x", "sub-3", 65)])

    async def test_grade_score_is_clamped(self):
        await self.store.save_grade(_grade("g-1", "u-1", "sub-1", 140))
        await self.store.save_grade(_grade("g-2", "u-1", "sub-2", -3))
        scores = {g.subject_id: g.score for g in await self.store.list_grades()}
        self.assertEqual(scores, {"sub-1": 100, "sub-2": 0})

    async def test_delete_account_cascades_to_its_grades_only(self):
        await self.store.save_account(Account(id="u-1", username="jdoe", password="pw", full_name="John Doe"))
        await self.store.save_account(Account(id="u-2", username="asmith", password="pw", full_name="Ann Smith"))
        await self.store.save_grade(_grade("g-1", "u-1", "sub-1", 80))
        await self.store.save_grade(_grade("g-2", "u-1", "sub-2", 85))
        await self.store.save_grade(_grade("g-3", "u-2", "sub-1", 90))

        await self.store.delete_account("u-1")

        self.assertNotIn("u-1", [a.id for a in await self.store.list_accounts()])
        self.assertEqual([g.id for g in await self.store.list_grades()], ["g-3"])

    async def test_delete_subject_cascades_to_its_grades_only(self):
        await self.store.save_grade(_grade("g-1", "u-1", "sub-1", 80))
        await self.store.save_grade(_grade("g-2", "u-1", "sub-2", 85))

        await self.store.delete_subject("sub-1")

        self.assertNotIn("sub-1", [s.id for s in await self.store.list_subjects()])
        self.assertEqual([g.id for g in await self.store.list_grades()], ["g-2"])

    async def test_delete_is_idempotent(self):
        before = await self.store.snapshot()
        await self.store.delete_account("missing")
        await self.store.delete_subject("missing")
        await self.store.delete_grade("missing")
        after = await self.store.snapshot()
        self.assertEqual(before, after)

    async def test_latest_analysis_returns_last_appended(self):
        self.assertIsNone(await self.store.latest_analysis("u-1"))
        await self.store.record_analysis(AnalysisResult(student_id="u-1", analysis="R1"))
        await self.store.record_analysis(AnalysisResult(student_id="u-2", analysis="other"))
        await self.store.record_analysis(AnalysisResult(student_id="u-1", analysis="R2"))

        latest = await self.store.latest_analysis("u-1")
        self.assertEqual(latest.analysis, "R2")
        self.assertEqual(len(await self.store.list_analyses()), 3)

    async def test_malformed_data_reads_as_empty(self):
        self.blob.set(STORAGE_KEYS["grades"], "{not json")
        self.blob.set(STORAGE_KEYS["subjects"], '{"id": "sub-1"}')
        with self.assertLogs("studentrecords.record_store", level="WARNING"):
            self.assertEqual(await self.store.list_grades(), [])
            self.assertEqual(await self.store.list_subjects(), [])

        await self.store.save_grade(_grade("g-1", "u-1", "sub-1", 50))
        self.assertEqual(len(await self.store.list_grades()), 1)

    async def test_malformed_record_is_skipped(self):
        self.blob.set(
            STORAGE_KEYS["subjects"],
            '[{"name": "no id"}, {"id": "sub-1", "name": "Mathematics", "code": "MATH101", "credits": 3}]',
        )
        with self.assertLogs("studentrecords.record_store", level="WARNING"):
            subjects = await self.store.list_subjects()
        self.assertEqual([s.id for s in subjects], ["sub-1"])

    async def test_failed_write_raises_store_unavailable(self):
        await self.store.list_accounts()
        self.blob.fail_writes = True
        with self.assertRaises(StoreUnavailable):
            await self.store.save_subject(Subject(id="sub-9", name="Art", code="ART101", credits=2))

    async def test_failed_read_raises_store_unavailable(self):
        self.blob.fail_reads = True
        with self.assertRaises(StoreUnavailable):
            await self.store.list_accounts()

    async def test_unopenable_storage_raises_blob_error(self):
        blocker = os.path.join(self.tmp.name, "not-a-dir")
        with open(blocker, "w") as handle:
            handle.write("x")
        with self.assertRaises(BlobStoreError):
            SqliteBlobStore(os.path.join(blocker, "records.db"))

class SqliteBlobStoreTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.blob = SqliteBlobStore(os.path.join(self.tmp.name, "records.db"))

    def tearDown(self):
        self.blob.close()
        self.tmp.cleanup()

    def test_failed_set_leaves_no_open_transaction(self):
        self.blob.conn.execute(
            """CREATE TRIGGER reject_bad BEFORE INSERT ON kv WHEN NEW.key = 'bad'
               BEGIN SELECT RAISE(ABORT, 'rejected'); END"""
        )
        self.blob.conn.commit()

        with self.assertRaises(BlobStoreError):
            self.blob.set("bad", "x")
        self.assertFalse(self.blob.conn.in_transaction)

        self.blob.set("good", "y")
        self.assertEqual(self.blob.get("good"), "y")
        self.assertIsNone(self.blob.get("bad"))



if __name__ == "__main__":
    unittest.main()
