import math
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Tuple

from studentrecords.core.models import Account, AccountStatus, Grade, Subject

MIN_SCORE = 0
MAX_SCORE = 100
PASSING_SCORE = 75


@dataclass(frozen=True)
class DashboardSummary:
    total_students: int
    pending_approvals: int
    active_students: int
    active_subjects: int


@dataclass(frozen=True)
class TranscriptRow:
    subject_id: str
    code: str
    name: str
    credits: int
    score: Optional[int]
    remark: str


def clamp_score(value: Any) -> int:
    """
    Coerce a raw score entry to an integer in [0, 100].
    Unparseable input counts as 0.
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        return MIN_SCORE
    if math.isnan(number):
        return MIN_SCORE
    if math.isinf(number):
        return MAX_SCORE if number > 0 else MIN_SCORE
    return max(MIN_SCORE, min(int(round(number)), MAX_SCORE))


def remark(score: Optional[int], *, passing_score: int = PASSING_SCORE) -> str:
    if score is None:
        return "NO GRADE"
    return "PASSED" if score >= passing_score else "FAILED"


def _mean(scores: List[int]) -> float:
    if not scores:
        return 0.0
    return sum(scores) / len(scores)


def student_average(student_id: str, grades: Iterable[Grade]) -> float:
    return _mean([g.score for g in grades if g.student_id == student_id])


def subject_averages(subjects: Iterable[Subject], grades: Iterable[Grade]) -> List[Tuple[str, float]]:
    grades = list(grades)
    results: List[Tuple[str, float]] = []
    for subject in subjects:
        avg = _mean([g.score for g in grades if g.subject_id == subject.id])
        results.append((subject.code, round(avg, 1)))
    return results


def credit_weighted_average(
    student_id: str,
    grades: Iterable[Grade],
    subjects: Iterable[Subject],
    *,
    round_to: int = 2,
) -> float:
    """
    Σ(credits * score) / Σ(credits) over the student's graded subjects.
    Grades whose subject no longer exists are ignored.
    """
    credits_by_subject = {s.id: s.credits for s in subjects}
    weighted_sum = 0.0
    total_credits = 0

    for grade in grades:
        if grade.student_id != student_id:
            continue
        credits = credits_by_subject.get(grade.subject_id, 0)
        if credits <= 0:
            continue
        weighted_sum += credits * grade.score
        total_credits += credits

    if total_credits == 0:
        return 0.0
    return round(weighted_sum / total_credits, round_to)


def dashboard_summary(accounts: Iterable[Account], subjects: Iterable[Subject]) -> DashboardSummary:
    students = [a for a in accounts if a.is_student]
    return DashboardSummary(
        total_students=len(students),
        pending_approvals=sum(1 for a in students if a.status == AccountStatus.PENDING),
        active_students=sum(1 for a in students if a.status == AccountStatus.APPROVED),
        active_subjects=len(list(subjects)),
    )


def student_transcript(
    student_id: str,
    grades: Iterable[Grade],
    subjects: Iterable[Subject],
    *,
    passing_score: int = PASSING_SCORE,
) -> List[TranscriptRow]:
    # Lists every subject so missing grades show up too.
    by_subject = {g.subject_id: g for g in grades if g.student_id == student_id}
    rows: List[TranscriptRow] = []
    for subject in subjects:
        grade = by_subject.get(subject.id)
        score = grade.score if grade else None
        rows.append(
            TranscriptRow(
                subject_id=subject.id,
                code=subject.code,
                name=subject.name,
                credits=subject.credits,
                score=score,
                remark=remark(score, passing_score=passing_score),
            )
        )
    return rows


def search_accounts(
    accounts: Iterable[Account],
    query: str = "",
    *,
    pending: Optional[bool] = None,
) -> List[Account]:
    """
    Case-insensitive match on username, full name or email among students.
    pending=True keeps only PENDING accounts (approvals queue), False drops them.
    """
    needle = query.strip().lower()
    results: List[Account] = []
    for account in accounts:
        if not account.is_student:
            continue
        if pending is not None and (account.status == AccountStatus.PENDING) != pending:
            continue
        if needle and not any(
            needle in field.lower() for field in (account.username, account.full_name, account.email)
        ):
            continue
        results.append(account)
    return results
