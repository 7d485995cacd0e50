from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Optional, Set, Tuple

from app.client.cache import DecisionCache
from app.client.http import AccessApiClient
from app.client.session import ClientSession, LocalSessionProvider
from app.services.audit import audit_event

CHECKING = "checking"
ALLOWED = "allowed"
REDIRECTING = "redirecting"

# Which page a guard protects.
FEED = "feed"
WELCOME = "welcome"

FEED_PATH = "/"
WELCOME_PATH = "/welcome"

DEFAULT_LOOKUP_TIMEOUT_SECONDS = 5.0


@dataclass(frozen=True)
class GuardState:
    status: str = CHECKING
    session: Optional[ClientSession] = None
    is_admin: bool = False
    has_active_subscription: bool = False

    @property
    def entitled(self) -> bool:
        return self.is_admin or self.has_active_subscription


def on_path(pathname: str, target_path: str) -> bool:
    if target_path == FEED_PATH:
        return pathname == FEED_PATH
    return pathname == target_path or pathname.startswith(target_path + "/")


class AccessChecker:
    """Admin lookup, then (only for non-admins) the subscription lookup."""

    def __init__(self, api: AccessApiClient, cache: Optional[DecisionCache] = None) -> None:
        self.api = api
        self.cache = cache if cache is not None else DecisionCache()

    async def _call(self, fn: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: fn(*args))

    def reset(self) -> None:
        self.cache.clear()

    async def check(self, session: ClientSession) -> Tuple[bool, bool]:
        identity = session.identity
        cached = self.cache.get(identity)
        if cached is not None:
            return cached.is_admin, cached.has_active_subscription

        if await self._call(self.api.admin_status, identity):
            self.cache.put(identity, True, True)
            return True, True

        data = await self._call(self.api.access_status, identity, session.user_id, session.session_id)
        active = data["ok"] and data["active"]
        if data["ok"]:
            self.cache.put(identity, False, active)
        return False, active


class AccessGuard:
    """Keeps one page consistent with the visitor's entitlement.

    ``checking`` while lookups run, then ``allowed`` when the page matches
    the entitlement or ``redirecting`` after asking ``navigate`` to move.
    Results from superseded evaluations are dropped by sequence number, and
    a signed-in visitor without entitlement is signed out before anything
    else happens.
    """

    def __init__(
        self,
        target: str,
        pathname: str,
        navigate: Callable[[str], None],
        sessions: LocalSessionProvider,
        checker: AccessChecker,
        *,
        timeout: float = DEFAULT_LOOKUP_TIMEOUT_SECONDS,
    ) -> None:
        if target not in (FEED, WELCOME):
            raise ValueError(f"unknown guard target: {target}")
        self.target = target
        self.pathname = pathname
        self.navigate = navigate
        self.sessions = sessions
        self.checker = checker
        self.timeout = timeout
        self.state = GuardState()
        self._seq = 0
        self._redirecting = False
        self._identity: Optional[str] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._tasks: Set[asyncio.Task] = set()

    async def start(self) -> GuardState:
        if self._unsubscribe is None:
            self._unsubscribe = self.sessions.subscribe(self.on_session_change)
        return await self.evaluate(self.sessions.current)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._seq += 1
        for task in list(self._tasks):
            task.cancel()

    def on_session_change(self, session: Optional[ClientSession]) -> None:
        task = asyncio.get_running_loop().create_task(self.evaluate(session))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def settle(self) -> GuardState:
        """Wait for every scheduled evaluation, including ones they schedule."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        return self.state

    async def evaluate(self, session: Optional[ClientSession]) -> GuardState:
        self._seq += 1
        seq = self._seq

        identity = session.identity if session is not None else ""
        if identity != self._identity:
            self._identity = identity
            self._redirecting = False
            self.checker.reset()
        self.state = GuardState(CHECKING, session)

        is_admin, active = await self._lookup(session)
        if seq != self._seq:
            return self.state

        if session is not None and not (is_admin or active):
            audit_event("access_guard", identity, outcome="denied", reason="unentitled_session")
            self._identity = ""
            self.checker.reset()
            await self.sessions.sign_out()
            if seq != self._seq:
                return self.state
            session = None

        return self._apply(session, is_admin, active)

    async def _lookup(self, session: Optional[ClientSession]) -> Tuple[bool, bool]:
        if session is None or not session.identity:
            return False, False
        try:
            return await asyncio.wait_for(self.checker.check(session), timeout=self.timeout)
        except asyncio.TimeoutError:
            audit_event("access_guard", session.identity, outcome="failure", reason="timeout")
        except Exception as exc:
            audit_event("access_guard", session.identity, outcome="failure", reason="lookup_failed", error=repr(exc))
        return False, False

    def _apply(self, session: Optional[ClientSession], is_admin: bool, active: bool) -> GuardState:
        entitled = is_admin or active
        if self.target == FEED and not entitled:
            self.state = GuardState(REDIRECTING, session, is_admin, active)
            self._ensure_redirect(WELCOME_PATH)
        elif self.target == WELCOME and entitled:
            self.state = GuardState(REDIRECTING, session, is_admin, active)
            self._ensure_redirect(FEED_PATH)
        else:
            self._redirecting = False
            self.state = GuardState(ALLOWED, session, is_admin, active)
        return self.state

    def _ensure_redirect(self, path: str) -> None:
        if self._redirecting or on_path(self.pathname, path):
            return
        self._redirecting = True
        self.pathname = path
        self.navigate(path)
