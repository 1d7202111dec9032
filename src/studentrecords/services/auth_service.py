from typing import Iterable, Optional

from studentrecords.core.models import Account, AccountStatus, Role, new_id


class AuthServiceError(Exception):
    pass


class ValidationError(Exception):
    pass


class AccountService:
    """
    Credential lookup and signup checks over an already-loaded account list.
    Passwords are compared as plain values.
    """

    PENDING_MESSAGE = "Your account is still pending administrator approval."
    REJECTED_MESSAGE = "Your account has been rejected. Contact administration."
    INVALID_MESSAGE = "Invalid credentials."

    def sign_in(self, accounts: Iterable[Account], username: str, password: str) -> Account:
        account = next(
            (a for a in accounts if a.username == username and a.password == password),
            None,
        )
        if account is None:
            raise AuthServiceError(self.INVALID_MESSAGE)
        if account.status == AccountStatus.PENDING:
            raise AuthServiceError(self.PENDING_MESSAGE)
        if account.status == AccountStatus.REJECTED:
            raise AuthServiceError(self.REJECTED_MESSAGE)
        return account

    def build_signup(
        self,
        accounts: Iterable[Account],
        *,
        username: str,
        password: str,
        full_name: str,
        email: str,
    ) -> Account:
        return self._build(
            accounts,
            username=username,
            password=password,
            full_name=full_name,
            email=email,
            role=Role.STUDENT,
            status=AccountStatus.PENDING,
        )

    def build_admin_created(
        self,
        accounts: Iterable[Account],
        *,
        username: str,
        password: str,
        full_name: str,
        email: str,
        role: Role = Role.STUDENT,
    ) -> Account:
        return self._build(
            accounts,
            username=username,
            password=password,
            full_name=full_name,
            email=email,
            role=role,
            status=AccountStatus.APPROVED,
        )

    def _build(
        self,
        accounts: Iterable[Account],
        *,
        username: str,
        password: str,
        full_name: str,
        email: str,
        role: Role,
        status: AccountStatus,
    ) -> Account:
        username = (username or "").strip()
        full_name = (full_name or "").strip()
        if not username or not password:
            raise ValidationError("Username and password are required.")
        if not full_name:
            raise ValidationError("Full name is required.")
        if find_by_username(accounts, username) is not None:
            raise ValidationError("Username already taken.")

        return Account(
            id=new_id("u"),
            username=username,
            password=password,
            full_name=full_name,
            role=role,
            status=status,
            email=(email or "").strip(),
        )


def find_by_username(accounts: Iterable[Account], username: str) -> Optional[Account]:
    return next((a for a in accounts if a.username == username), None)


def check_status_transition(account: Account, status: AccountStatus) -> None:
    """Only PENDING accounts can be approved or rejected."""
    if account.status != AccountStatus.PENDING or status == AccountStatus.PENDING:
        raise ValidationError(f"Cannot change status from {account.status.value} to {status.value}.")
