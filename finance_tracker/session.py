"""Authenticated session and the state that lives as long as it does.

The session is passed explicitly to every data-access call; nothing in the
package reads a module-level "current user".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .models import Income

logger = logging.getLogger(__name__)


class SessionClosedError(RuntimeError):
    """Raised when state is used after logout."""


@dataclass(frozen=True)
class Session:
    user_id: str
    access_token: Optional[str] = None
    email: Optional[str] = None


class SessionState:
    """Per-session cache of the income list and avatar URL.

    Created with ``open`` on login and torn down with ``close`` on logout.
    """

    def __init__(self, session: Session):
        self._session: Optional[Session] = session
        self._incomes: Tuple[Income, ...] = ()
        self._avatar_url: Optional[str] = None

    @classmethod
    def open(cls, session: Session) -> 'SessionState':
        logger.debug("Opening session state for %s", session.user_id)
        return cls(session)

    def close(self) -> None:
        if self._session is not None:
            logger.debug("Closing session state for %s", self._session.user_id)
        self._session = None
        self._incomes = ()
        self._avatar_url = None

    @property
    def is_open(self) -> bool:
        return self._session is not None

    def _require_open(self) -> Session:
        if self._session is None:
            raise SessionClosedError("Session state has been closed")
        return self._session

    @property
    def session(self) -> Session:
        return self._require_open()

    @property
    def incomes(self) -> Tuple[Income, ...]:
        self._require_open()
        return self._incomes

    @property
    def avatar_url(self) -> Optional[str]:
        self._require_open()
        return self._avatar_url

    def set_incomes(self, incomes: Sequence[Income]) -> None:
        self._require_open()
        self._incomes = tuple(incomes)

    def set_avatar_url(self, url: Optional[str]) -> None:
        self._require_open()
        self._avatar_url = url

    def received_incomes(self) -> List[Income]:
        return [income for income in self.incomes if income.is_received]

    def __enter__(self) -> 'SessionState':
        return self

    def __exit__(self, *exc) -> None:
        self.close()
