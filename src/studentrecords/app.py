import asyncio
from dataclasses import asdict
from typing import Any, Callable, Dict, List, Optional

import uvicorn
from fastapi import Depends, FastAPI, Header, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from studentrecords.config.logging_config import get_logger, setup_logging
from studentrecords.config.settings import settings
from studentrecords.core.grades import (
    clamp_score,
    credit_weighted_average,
    dashboard_summary,
    student_average,
    student_transcript,
    subject_averages,
)
from studentrecords.core.models import (
    Account,
    AccountStatus,
    AnalysisResult,
    Grade,
    Role,
    Subject,
    new_id,
)
from studentrecords.services.analysis_service import GeminiAnalysisService
from studentrecords.services.auth_service import (
    AccountService,
    AuthServiceError,
    ValidationError,
    check_status_transition,
)
from studentrecords.services.record_store import RecordStore, StoreUnavailable

logger = get_logger("api")


class LoginPayload(BaseModel):
    username: str
    password: str


class SignupPayload(BaseModel):
    username: str
    password: str
    full_name: str
    email: str = ""


class AccountPayload(BaseModel):
    id: Optional[str] = None
    username: str
    password: str
    full_name: str
    email: str = ""
    role: Role = Role.STUDENT
    status: Optional[AccountStatus] = None


class StatusPayload(BaseModel):
    status: AccountStatus


class SubjectPayload(BaseModel):
    id: Optional[str] = None
    name: str = Field(min_length=1)
    code: str = Field(min_length=1)
    credits: int = Field(ge=1)


class GradePayload(BaseModel):
    student_id: str
    subject_id: str
    score: float


def _public(account: Account) -> Dict[str, Any]:
    data = account.to_dict()
    data.pop("password", None)
    return data


def get_store(request: Request) -> RecordStore:
    return request.app.state.store


async def _current_account(store: RecordStore, x_account_id: Optional[str]) -> Account:
    if not x_account_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing x-account-id header")
    account = next((a for a in await store.list_accounts() if a.id == x_account_id), None)
    if account is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown account")
    return account


async def require_admin(
    store: RecordStore = Depends(get_store),
    x_account_id: Optional[str] = Header(default=None),
) -> Account:
    account = await _current_account(store, x_account_id)
    if account.role != Role.ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Administrator access required")
    return account


async def require_account(
    store: RecordStore = Depends(get_store),
    x_account_id: Optional[str] = Header(default=None),
) -> Account:
    return await _current_account(store, x_account_id)


def create_app(
    store: RecordStore,
    generator: Optional[Callable[[Account, List[Grade], List[Subject]], str]] = None,
) -> FastAPI:
    app = FastAPI(title="Student Records API", version="1.0.0")
    app.state.store = store
    app.state.generator = generator or GeminiAnalysisService.from_settings()
    accounts_service = AccountService()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_allowed_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StoreUnavailable)
    async def store_unavailable(_: Request, exc: StoreUnavailable) -> JSONResponse:
        logger.error("Storage unavailable: %s", exc)
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": "STORE_UNAVAILABLE"})

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.post("/auth/login")
    async def login(payload: LoginPayload, store: RecordStore = Depends(get_store)) -> Dict:
        try:
            account = accounts_service.sign_in(await store.list_accounts(), payload.username, payload.password)
        except AuthServiceError as exc:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
        return _public(account)

    @app.post("/auth/signup", status_code=status.HTTP_201_CREATED)
    async def sign_up(payload: SignupPayload, store: RecordStore = Depends(get_store)) -> Dict:
        try:
            account = accounts_service.build_signup(await store.list_accounts(), **payload.model_dump())
        except ValidationError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
        await store.save_account(account)
        return _public(account)

    @app.get("/accounts")
    async def list_accounts(
        store: RecordStore = Depends(get_store),
        _: Account = Depends(require_admin),
    ) -> List[Dict]:
        return [_public(a) for a in await store.list_accounts()]

    @app.post("/accounts")
    async def save_account(
        payload: AccountPayload,
        store: RecordStore = Depends(get_store),
        _: Account = Depends(require_admin),
    ) -> Dict:
        accounts = await store.list_accounts()
        existing = next((a for a in accounts if a.id == payload.id), None) if payload.id else None

        if existing is None:
            try:
                account = accounts_service.build_admin_created(
                    accounts,
                    username=payload.username,
                    password=payload.password,
                    full_name=payload.full_name,
                    email=payload.email,
                    role=payload.role,
                )
            except ValidationError as exc:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
            if payload.id:
                account.id = payload.id
        else:
            # Username uniqueness is only checked when an account is created.
            account = Account(
                id=existing.id,
                username=payload.username,
                password=payload.password,
                full_name=payload.full_name,
                role=payload.role,
                status=payload.status or existing.status,
                email=payload.email,
            )

        await store.save_account(account)
        return _public(account)

    @app.patch("/accounts/{account_id}/status")
    async def update_status(
        account_id: str,
        payload: StatusPayload,
        store: RecordStore = Depends(get_store),
        _: Account = Depends(require_admin),
    ) -> Dict:
        account = next((a for a in await store.list_accounts() if a.id == account_id), None)
        if account is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Account not found")
        try:
            check_status_transition(account, payload.status)
        except ValidationError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
        account.status = payload.status
        await store.save_account(account)
        return _public(account)

    @app.delete("/accounts/{account_id}")
    async def delete_account(
        account_id: str,
        store: RecordStore = Depends(get_store),
        _: Account = Depends(require_admin),
    ) -> Dict[str, str]:
        await store.delete_account(account_id)
        return {"status": "deleted"}

    @app.get("/subjects")
    async def list_subjects(store: RecordStore = Depends(get_store)) -> List[Dict]:
        return [s.to_dict() for s in await store.list_subjects()]

    @app.post("/subjects")
    async def save_subject(
        payload: SubjectPayload,
        store: RecordStore = Depends(get_store),
        _: Account = Depends(require_admin),
    ) -> Dict:
        subject = Subject(
            id=payload.id or new_id("sub"),
            name=payload.name.strip(),
            code=payload.code.strip(),
            credits=payload.credits,
        )
        await store.save_subject(subject)
        return subject.to_dict()

    @app.delete("/subjects/{subject_id}")
    async def delete_subject(
        subject_id: str,
        store: RecordStore = Depends(get_store),
        _: Account = Depends(require_admin),
    ) -> Dict[str, str]:
        await store.delete_subject(subject_id)
        return {"status": "deleted"}

    @app.get("/grades")
    async def list_grades(
        store: RecordStore = Depends(get_store),
        _: Account = Depends(require_admin),
    ) -> List[Dict]:
        return [g.to_dict() for g in await store.list_grades()]

    @app.post("/grades")
    async def save_grade(
        payload: GradePayload,
        store: RecordStore = Depends(get_store),
        _: Account = Depends(require_admin),
    ) -> Dict:
        snapshot = await store.snapshot()
        if snapshot.find_account(payload.student_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Student not found")
        if snapshot.find_subject(payload.subject_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subject not found")

        grade = Grade(
            id=new_id("g"),
            student_id=payload.student_id,
            subject_id=payload.subject_id,
            score=clamp_score(payload.score),
            semester=settings.semester_label,
        )
        stored = await store.save_grade(grade)
        return stored.to_dict()

    @app.get("/students/{student_id}/grades")
    async def student_grades(
        student_id: str,
        store: RecordStore = Depends(get_store),
        viewer: Account = Depends(require_account),
    ) -> Dict:
        if viewer.role != Role.ADMIN and viewer.id != student_id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed")
        snapshot = await store.snapshot()
        if snapshot.find_account(student_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Student not found")

        rows = student_transcript(
            student_id, snapshot.grades, snapshot.subjects, passing_score=settings.passing_score
        )
        return {
            "student_id": student_id,
            "average": student_average(student_id, snapshot.grades),
            "weighted_average": credit_weighted_average(student_id, snapshot.grades, snapshot.subjects),
            "grades": [asdict(row) for row in rows],
        }

    @app.get("/students/{student_id}/analysis")
    async def latest_analysis(
        student_id: str,
        store: RecordStore = Depends(get_store),
        _: Account = Depends(require_admin),
    ) -> Dict:
        result = await store.latest_analysis(student_id)
        if result is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No analysis yet")
        return result.to_dict()

    @app.post("/students/{student_id}/analysis", status_code=status.HTTP_201_CREATED)
    async def generate_analysis(
        student_id: str,
        request: Request,
        store: RecordStore = Depends(get_store),
        _: Account = Depends(require_admin),
    ) -> Dict:
        snapshot = await store.snapshot()
        student = snapshot.find_account(student_id)
        if student is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Student not found")

        text = await asyncio.to_thread(
            request.app.state.generator, student, snapshot.grades_for(student_id), snapshot.subjects
        )
        result = AnalysisResult(student_id=student_id, analysis=str(text))
        await store.record_analysis(result)
        return result.to_dict()

    @app.get("/dashboard")
    async def dashboard(
        store: RecordStore = Depends(get_store),
        _: Account = Depends(require_admin),
    ) -> Dict:
        snapshot = await store.snapshot()
        summary = dashboard_summary(snapshot.accounts, snapshot.subjects)
        return {
            **asdict(summary),
            "subject_averages": [
                {"code": code, "average": avg} for code, avg in subject_averages(snapshot.subjects, snapshot.grades)
            ],
        }

    return app


def main() -> None:
    setup_logging()
    store = RecordStore.from_settings()
    uvicorn.run(create_app(store), host="0.0.0.0", port=settings.api_port)


if __name__ == "__main__":
    main()
