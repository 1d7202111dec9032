from dataclasses import dataclass
from typing import Optional

from studentrecords.core.models import Account, Role


@dataclass
class SessionState:
    account: Optional[Account] = None

    @property
    def is_authenticated(self) -> bool:
        return self.account is not None

    @property
    def is_admin(self) -> bool:
        return self.account is not None and self.account.role == Role.ADMIN

    def clear(self) -> None:
        self.account = None
