from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid


class Role(str, Enum):
    ADMIN = "ADMIN"
    STUDENT = "STUDENT"


class AccountStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex}"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Account:
    id: str
    username: str
    password: str
    full_name: str
    role: Role = Role.STUDENT
    status: AccountStatus = AccountStatus.PENDING
    email: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["role"] = self.role.value
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Account":
        return cls(
            id=str(data["id"]),
            username=str(data.get("username", "")),
            password=str(data.get("password", "")),
            full_name=str(data.get("full_name", "")),
            role=Role(data.get("role", Role.STUDENT.value)),
            status=AccountStatus(data.get("status", AccountStatus.PENDING.value)),
            email=str(data.get("email", "")),
        )

    @property
    def is_student(self) -> bool:
        return self.role == Role.STUDENT


@dataclass
class Subject:
    id: str
    name: str
    code: str
    credits: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Subject":
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            code=str(data.get("code", "")),
            credits=int(data.get("credits", 0)),
        )


@dataclass
class Grade:
    id: str
    student_id: str
    subject_id: str
    score: int
    semester: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Grade":
        return cls(
            id=str(data["id"]),
            student_id=str(data.get("student_id", "")),
            subject_id=str(data.get("subject_id", "")),
            score=int(data.get("score", 0)),
            semester=str(data.get("semester", "")),
        )

    def same_pair(self, other: "Grade") -> bool:
        return self.student_id == other.student_id and self.subject_id == other.subject_id


@dataclass
class AnalysisResult:
    student_id: str
    analysis: str
    generated_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisResult":
        return cls(
            student_id=str(data.get("student_id", "")),
            analysis=str(data.get("analysis", "")),
            generated_at=str(data.get("generated_at", "")),
        )


@dataclass
class Snapshot:
    """Point-in-time copy of all four collections."""

    accounts: List[Account] = field(default_factory=list)
    subjects: List[Subject] = field(default_factory=list)
    grades: List[Grade] = field(default_factory=list)
    analyses: List[AnalysisResult] = field(default_factory=list)

    def find_account(self, account_id: str) -> Optional[Account]:
        return next((a for a in self.accounts if a.id == account_id), None)

    def find_subject(self, subject_id: str) -> Optional[Subject]:
        return next((s for s in self.subjects if s.id == subject_id), None)

    def grades_for(self, student_id: str) -> List[Grade]:
        return [g for g in self.grades if g.student_id == student_id]
