from dataclasses import dataclass, field

from studentrecords.core.models import Snapshot
from studentrecords.state.session_state import SessionState


@dataclass
class AppState:
    session: SessionState = field(default_factory=SessionState)
    snapshot: Snapshot = field(default_factory=Snapshot)
