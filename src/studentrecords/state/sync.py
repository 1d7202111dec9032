import asyncio
import copy
from dataclasses import dataclass, replace
import inspect
from typing import Any, Awaitable, Callable, List, Optional

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
    new_id,
)
from studentrecords.services.auth_service import (
    AccountService,
    AuthServiceError,
    ValidationError,
    check_status_transition,
)
from studentrecords.services.record_store import RecordStore, StoreUnavailable
from studentrecords.state.app_state import AppState

logger = get_logger("sync")

AnalysisGenerator = Callable[[Account, List[Grade], List[Subject]], Any]


@dataclass(frozen=True)
class Notice:
    message: str
    is_error: bool = True


class PendingMutation:
    """
    A destructive mutation held back until the caller confirms it.
    Confirming runs it once; cancelling discards it.
    """

    def __init__(self, prompt: str, run: Callable[[], Awaitable[bool]]) -> None:
        self.prompt = prompt
        self._run = run
        self.state = "pending"

    @property
    def is_pending(self) -> bool:
        return self.state == "pending"

    async def confirm(self) -> bool:
        if not self.is_pending:
            return False
        self.state = "confirmed"
        return await self._run()

    def cancel(self) -> None:
        if self.is_pending:
            self.state = "cancelled"


class SyncController:
    """
    Keeps the transient snapshot in AppState in line with the record store.

    Every mutation applies an optimistic change locally, writes through to the
    store, then replaces the snapshot with a fresh read. When the write fails
    the fresh read (or, failing that, the pre-mutation copy) discards the
    optimistic change and a notice is sent.
    """

    def __init__(
        self,
        store: RecordStore,
        app_state: AppState,
        notify: Optional[Callable[[Notice], None]] = None,
        generator: Optional[AnalysisGenerator] = None,
        semester: str = settings.semester_label,
    ) -> None:
        self.store = store
        self.state = app_state
        self.notify = notify or (lambda notice: None)
        self.generator = generator
        self.semester = semester
        self.accounts = AccountService()

    @property
    def snapshot(self) -> Snapshot:
        return self.state.snapshot

    async def refresh(self) -> bool:
        try:
            self.state.snapshot = await self.store.snapshot()
        except StoreUnavailable as exc:
            logger.error("Failed to fetch data: %s", exc)
            self.notify(Notice("Could not load data from storage. Please try again."))
            return False
        return True

    async def _mutate(
        self,
        apply: Callable[[Snapshot], None],
        write: Callable[[], Awaitable[Any]],
        failure_message: str,
        success_message: Optional[str] = None,
    ) -> bool:
        before = copy.deepcopy(self.state.snapshot)
        apply(self.state.snapshot)

        try:
            await write()
        except StoreUnavailable as exc:
            logger.error("%s (%s)", failure_message, exc)
            self.notify(Notice(failure_message))
            try:
                self.state.snapshot = await self.store.snapshot()
            except StoreUnavailable:
                self.state.snapshot = before
            return False

        await self.refresh()
        if success_message:
            self.notify(Notice(success_message, is_error=False))
        return True

    def _require_admin(self) -> None:
        if not self.state.session.is_admin:
            raise AuthServiceError("Administrator access required.")

    # Accounts

    async def sign_in(self, username: str, password: str) -> Account:
        await self.refresh()
        account = self.accounts.sign_in(self.snapshot.accounts, username, password)
        self.state.session.account = account
        return account

    def sign_out(self) -> None:
        self.state.session.clear()

    async def sign_up(self, *, username: str, password: str, full_name: str, email: str) -> bool:
        if not await self.refresh():
            return False
        account = self.accounts.build_signup(
            self.snapshot.accounts,
            username=username,
            password=password,
            full_name=full_name,
            email=email,
        )
        return await self._mutate(
            lambda snap: snap.accounts.append(account),
            lambda: self.store.save_account(account),
            "Failed to create account. Please try again.",
            "Account created! Please wait for admin approval before logging in.",
        )

    async def create_account(
        self,
        *,
        username: str,
        password: str,
        full_name: str,
        email: str,
        role: Role = Role.STUDENT,
    ) -> bool:
        self._require_admin()
        if not await self.refresh():
            return False
        account = self.accounts.build_admin_created(
            self.snapshot.accounts,
            username=username,
            password=password,
            full_name=full_name,
            email=email,
            role=role,
        )
        return await self._mutate(
            lambda snap: snap.accounts.append(account),
            lambda: self.store.save_account(account),
            "Failed to create account. Please try again.",
            "Account created.",
        )

    async def edit_account(self, account: Account) -> bool:
        def apply(snap: Snapshot) -> None:
            snap.accounts = [account if a.id == account.id else a for a in snap.accounts]

        return await self._mutate(
            apply,
            lambda: self.store.save_account(account),
            "Failed to save account. Please try again.",
            "Account updated.",
        )

    def request_status_change(self, account_id: str, status: AccountStatus) -> PendingMutation:
        self._require_admin()
        target = self.snapshot.find_account(account_id)
        if target is None:
            raise ValidationError("Account not found.")
        check_status_transition(target, status)

        updated = replace(target, status=status)

        async def run() -> bool:
            def apply(snap: Snapshot) -> None:
                snap.accounts = [updated if a.id == account_id else a for a in snap.accounts]

            return await self._mutate(
                apply,
                lambda: self.store.save_account(updated),
                "Failed to update account status. Please try again.",
                f"{updated.full_name} is now {status.value}.",
            )

        verb = "approve" if status == AccountStatus.APPROVED else "reject"
        return PendingMutation(f"Are you sure you want to {verb} {target.full_name}?", run)

    def request_delete_account(self, account_id: str) -> PendingMutation:
        self._require_admin()

        async def run() -> bool:
            def apply(snap: Snapshot) -> None:
                snap.accounts = [a for a in snap.accounts if a.id != account_id]
                snap.grades = [g for g in snap.grades if g.student_id != account_id]

            return await self._mutate(
                apply,
                lambda: self.store.delete_account(account_id),
                "Failed to delete user. Please try again.",
                "User deleted.",
            )

        return PendingMutation(
            "Are you sure you want to delete this user? This will also remove their grades.",
            run,
        )

    # Subjects

    async def save_subject(
        self,
        *,
        name: str,
        code: str,
        credits: Any,
        subject_id: Optional[str] = None,
    ) -> bool:
        self._require_admin()
        name = (name or "").strip()
        code = (code or "").strip()
        if not name or not code:
            raise ValidationError("Subject name and code are required.")
        try:
            credits = int(credits)
        except (TypeError, ValueError) as exc:
            raise ValidationError("Credits must be a whole number.") from exc
        if credits <= 0:
            raise ValidationError("Credits must be greater than 0.")

        subject = Subject(id=subject_id or new_id("sub"), name=name, code=code, credits=credits)

        def apply(snap: Snapshot) -> None:
            if snap.find_subject(subject.id) is None:
                snap.subjects.append(subject)
            else:
                snap.subjects = [subject if s.id == subject.id else s for s in snap.subjects]

        return await self._mutate(
            apply,
            lambda: self.store.save_subject(subject),
            "Failed to save subject. Please try again.",
            "Subject saved.",
        )

    def request_delete_subject(self, subject_id: str) -> PendingMutation:
        self._require_admin()

        async def run() -> bool:
            def apply(snap: Snapshot) -> None:
                snap.subjects = [s for s in snap.subjects if s.id != subject_id]
                snap.grades = [g for g in snap.grades if g.subject_id != subject_id]

            return await self._mutate(
                apply,
                lambda: self.store.delete_subject(subject_id),
                "Failed to delete subject. Please try again.",
                "Subject deleted.",
            )

        return PendingMutation(
            "Are you sure you want to delete this subject? All associated student grades will be lost.",
            run,
        )

    # Grades

    async def enter_score(self, student_id: str, subject_id: str, raw_score: Any) -> bool:
        self._require_admin()
        existing = next(
            (g for g in self.snapshot.grades if g.student_id == student_id and g.subject_id == subject_id),
            None,
        )
        grade = Grade(
            id=existing.id if existing else new_id("g"),
            student_id=student_id,
            subject_id=subject_id,
            score=clamp_score(raw_score),
            semester=self.semester,
        )
        return await self.save_grade(grade)

    async def save_grade(self, grade: Grade) -> bool:
        def apply(snap: Snapshot) -> None:
            if any(g.id == grade.id for g in snap.grades):
                snap.grades = [grade if g.id == grade.id else g for g in snap.grades]
            else:
                snap.grades.append(grade)

        return await self._mutate(
            apply,
            lambda: self.store.save_grade(grade),
            "Failed to save grade. Please try again.",
        )

    # Analysis

    async def generate_analysis(self, student_id: str) -> Optional[AnalysisResult]:
        if self.generator is None:
            raise ValidationError("Analysis is not configured.")
        student = self.snapshot.find_account(student_id)
        if student is None:
            raise ValidationError("Student not found.")

        grades = self.snapshot.grades_for(student_id)
        subjects = list(self.snapshot.subjects)
        text = await asyncio.to_thread(self.generator, student, grades, subjects)
        if inspect.isawaitable(text):
            text = await text
        result = AnalysisResult(student_id=student_id, analysis=str(text))

        ok = await self._mutate(
            lambda snap: snap.analyses.append(result),
            lambda: self.store.record_analysis(result),
            "Failed to save analysis. Please try again.",
        )
        return result if ok else None

    async def latest_analysis(self, student_id: str) -> Optional[AnalysisResult]:
        try:
            return await self.store.latest_analysis(student_id)
        except StoreUnavailable as exc:
            logger.error("Failed to load analysis: %s", exc)
            self.notify(Notice("Could not load the saved analysis."))
            return None

