from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, List, Optional

from app.client.http import AccessApiClient
from app.core.normalize import normalize_email
from app.services.audit import audit_event


@dataclass(frozen=True)
class ClientSession:
    session_id: str
    email: str
    user_id: Optional[str] = None

    @property
    def identity(self) -> str:
        return normalize_email(self.email)


SessionListener = Callable[[Optional[ClientSession]], None]


class LocalSessionProvider:
    """Holds the current session and tells subscribers when it changes."""

    def __init__(self, api: Optional[AccessApiClient] = None, session: Optional[ClientSession] = None) -> None:
        self.api = api
        self._session = session
        self._listeners: List[SessionListener] = []

    @property
    def current(self) -> Optional[ClientSession]:
        return self._session

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_session(self, session: Optional[ClientSession]) -> None:
        if session == self._session:
            return
        self._session = session
        for listener in list(self._listeners):
            listener(session)

    async def sign_out(self) -> None:
        """Destroy the server session (best effort) and drop it locally.

        A session set while the server call is in flight is left alone.
        """
        session = self._session
        if session is None:
            return
        if self.api is not None and session.session_id:
            loop = asyncio.get_running_loop()
            try:
                await loop.run_in_executor(None, self.api.sign_out, session.session_id)
            except Exception as exc:
                audit_event("client_sign_out", session.identity, outcome="warning", error=repr(exc))
        if self._session is session:
            self.set_session(None)
