import os
import tempfile
import unittest

from studentrecords.core.grades import student_average
from studentrecords.core.models import Account, AccountStatus, Grade
from studentrecords.services.auth_service import AuthServiceError, ValidationError
from studentrecords.services.blob_store import BlobStoreError, SqliteBlobStore
from studentrecords.services.record_store import RecordStore
from studentrecords.state.app_state import AppState
from studentrecords.state.sync import SyncController


class FlakyBlobStore(SqliteBlobStore):
    fail_writes = False
    fail_reads = False

    def get(self, key):
        if self.fail_reads:
            raise BlobStoreError("storage disabled")
        return super().get(key)

    def set(self, key, value):
        if self.fail_writes:
            raise BlobStoreError("storage disabled")
        super().set(key, value)

    def set_many(self, items):
        if self.fail_writes:
            raise BlobStoreError("storage disabled")
        super().set_many(items)


class SyncControllerTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.blob = FlakyBlobStore(os.path.join(self.tmp.name, "records.db"))
        self.store = RecordStore(self.blob)
        self.state = AppState()
        self.notices = []
        self.sync = SyncController(
            self.store,
            self.state,
            notify=self.notices.append,
            generator=lambda student, grades, subjects: f"{student.full_name}: {len(grades)} grades",
            semester="Fall 2024",
        )
        await self.sync.refresh()
        await self.sync.sign_in("admin", "admin")

    async def asyncTearDown(self):
        self.blob.close()
        self.tmp.cleanup()

    def _account(self, username):
        return next(a for a in self.state.snapshot.accounts if a.username == username)

    def _subject(self, code):
        return next(s for s in self.state.snapshot.subjects if s.code == code)

    async def test_end_to_end_scenario(self):
        self.sync.sign_out()
        self.assertTrue(
            await self.sync.sign_up(username="jdoe", password="secret", full_name="John Doe", email="jdoe@uep.edu.ph")
        )
        self.assertEqual(self._account("jdoe").status, AccountStatus.PENDING)

        await self.sync.sign_in("admin", "admin")
        jdoe = self._account("jdoe")
        pending = self.sync.request_status_change(jdoe.id, AccountStatus.APPROVED)
        self.assertTrue(await pending.confirm())
        self.assertEqual(self._account("jdoe").status, AccountStatus.APPROVED)

        # Replace the seeded CS101 so the scenario owns its subject.
        await self.sync.request_delete_subject(self._subject("CS101").id).confirm()
        self.assertTrue(await self.sync.save_subject(name="Intro to CS", code="CS101", credits=3))
        cs101 = self._subject("CS101")

        self.assertTrue(await self.sync.enter_score(jdoe.id, cs101.id, "82"))
        self.assertEqual(student_average(jdoe.id, self.state.snapshot.grades), 82.0)

        await self.sync.request_delete_subject(cs101.id).confirm()
        self.assertEqual(self.state.snapshot.grades_for(jdoe.id), [])
        self.assertEqual(await self.store.list_grades(), [])

    async def test_refresh_replaces_snapshot_wholesale(self):
        await self.store.save_grade(
            Grade(id="g-x", student_id="u-x", subject_id="sub-1", score=60, semester="Fall 2024")
        )
        self.assertEqual(self.state.snapshot.grades, [])
        self.assertTrue(await self.sync.refresh())
        self.assertEqual([g.id for g in self.state.snapshot.grades], ["g-x"])

    async def test_pending_mutation_waits_for_confirmation(self):
        subject = self._subject("MATH101")
        pending = self.sync.request_delete_subject(subject.id)

        self.assertIn(subject, self.state.snapshot.subjects)
        self.assertIn("MATH101", [s.code for s in await self.store.list_subjects()])

        pending.cancel()
        self.assertFalse(await pending.confirm())
        self.assertIn("MATH101", [s.code for s in await self.store.list_subjects()])

    async def test_confirm_runs_only_once(self):
        subject = self._subject("HIST101")
        pending = self.sync.request_delete_subject(subject.id)
        self.assertTrue(await pending.confirm())
        self.assertFalse(await pending.confirm())
        self.assertNotIn("HIST101", [s.code for s in self.state.snapshot.subjects])

    async def test_failed_write_reverts_optimistic_change_and_notifies(self):
        subject = self._subject("PHYS101")
        self.blob.fail_writes = True

        ok = await self.sync.request_delete_subject(subject.id).confirm()

        self.assertFalse(ok)
        self.assertIn("PHYS101", [s.code for s in self.state.snapshot.subjects])
        self.assertTrue(self.notices[-1].is_error)
        self.assertIn("Failed to delete subject", self.notices[-1].message)

    async def test_revert_falls_back_to_previous_snapshot_when_reads_fail(self):
        before = [s.id for s in self.state.snapshot.subjects]
        self.blob.fail_writes = True
        self.blob.fail_reads = True

        ok = await self.sync.save_subject(name="Art", code="ART101", credits=2)

        self.assertFalse(ok)
        self.assertEqual([s.id for s in self.state.snapshot.subjects], before)

    async def test_store_recovers_after_failure(self):
        self.blob.fail_writes = True
        self.assertFalse(await self.sync.save_subject(name="Art", code="ART101", credits=2))
        self.blob.fail_writes = False
        self.assertTrue(await self.sync.save_subject(name="Art", code="ART101", credits=2))
        self.assertIn("ART101", [s.code for s in self.state.snapshot.subjects])

    async def test_signup_rejects_duplicate_username_before_store(self):
        with self.assertRaises(ValidationError):
            await self.sync.sign_up(username="admin", password="x", full_name="Imposter", email="")
        self.assertEqual(len(await self.store.list_accounts()), 1)

    async def test_signup_checks_usernames_against_fresh_accounts(self):
        self.sync.sign_out()
        self.state.snapshot.accounts = []
        self.blob.fail_reads = True
        self.assertFalse(await self.sync.refresh())

        self.assertFalse(
            await self.sync.sign_up(username="admin", password="x", full_name="Imposter", email="")
        )
        self.blob.fail_reads = False
        with self.assertRaises(ValidationError):
            await self.sync.sign_up(username="admin", password="x", full_name="Imposter", email="")
        self.assertEqual([a.username for a in await self.store.list_accounts()], ["admin"])

    async def test_admin_create_checks_usernames_against_fresh_accounts(self):
        await self.store.save_account(
            Account(id="u-1", username="jdoe", password="pw", full_name="John Doe")
        )
        with self.assertRaises(ValidationError):
            await self.sync.create_account(username="jdoe", password="x", full_name="Other", email="")
        self.assertEqual(len(await self.store.list_accounts()), 2)

    async def test_pending_account_cannot_sign_in(self):
        await self.sync.sign_up(username="jdoe", password="secret", full_name="John Doe", email="")
        with self.assertRaises(AuthServiceError):
            await self.sync.sign_in("jdoe", "secret")

    async def test_status_change_requires_pending_account(self):
        admin = self._account("admin")
        with self.assertRaises(ValidationError):
            self.sync.request_status_change(admin.id, AccountStatus.REJECTED)

    async def test_student_cannot_request_destructive_changes(self):
        await self.sync.create_account(username="jdoe", password="secret", full_name="John Doe", email="")
        await self.sync.sign_in("jdoe", "secret")
        with self.assertRaises(AuthServiceError):
            self.sync.request_delete_subject(self._subject("MATH101").id)

    async def test_delete_account_cascades_in_snapshot(self):
        await self.sync.create_account(username="jdoe", password="secret", full_name="John Doe", email="")
        jdoe = self._account("jdoe")
        await self.sync.enter_score(jdoe.id, self._subject("MATH101").id, 90)

        await self.sync.request_delete_account(jdoe.id).confirm()

        self.assertNotIn("jdoe", [a.username for a in self.state.snapshot.accounts])
        self.assertEqual(self.state.snapshot.grades, [])

    async def test_enter_score_overwrites_existing_grade(self):
        await self.sync.create_account(username="jdoe", password="secret", full_name="John Doe", email="")
        jdoe = self._account("jdoe")
        math = self._subject("MATH101")

        await self.sync.enter_score(jdoe.id, math.id, 60)
        first_id = self.state.snapshot.grades[0].id
        await self.sync.enter_score(jdoe.id, math.id, "130")

        grades = self.state.snapshot.grades
        self.assertEqual(len(grades), 1)
        self.assertEqual(grades[0].id, first_id)
        self.assertEqual(grades[0].score, 100)

    async def test_generate_analysis_persists_latest(self):
        await self.sync.create_account(username="jdoe", password="secret", full_name="John Doe", email="")
        jdoe = self._account("jdoe")

        first = await self.sync.generate_analysis(jdoe.id)
        await self.sync.enter_score(jdoe.id, self._subject("MATH101").id, 88)
        second = await self.sync.generate_analysis(jdoe.id)

        self.assertEqual(first.analysis, "John Doe: 0 grades")
        latest = await self.sync.latest_analysis(jdoe.id)
        self.assertEqual(latest.analysis, second.analysis)
        self.assertEqual(latest.analysis, "John Doe: 1 grades")

    async def test_save_subject_validates_credits(self):
        with self.assertRaises(ValidationError):
            await self.sync.save_subject(name="Art", code="ART101", credits=0)
        with self.assertRaises(ValidationError):
            await self.sync.save_subject(name="Art", code="ART101", credits="three")


if __name__ == "__main__":
    unittest.main()
