# leaderboard/guard.py
"""Session / routing guard.

A session moves between three phases: ``checking`` until the first identity
event has been handled, then ``anonymous`` or ``authenticated`` (with a role).
Every identity change and every path change is run through :func:`route`,
which decides whether the client has to be sent somewhere else.

:class:`SessionGuard` owns the state of one client. Events are queued and
handled one at a time by a single task, and state snapshots are published to
:class:`Subscription` iterators.
"""

import asyncio
import dataclasses
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Tuple
from urllib.parse import urlsplit

from leaderboard.errors import TransientError

logger = logging.getLogger(__name__)

ROOT_PATH = "/"
AUTH_PREFIX = "/auth"
LOGIN_PATH = "/auth/login"
SIGNUP_PATH = "/auth/signup"
ADMIN_PATH = "/admin"
MEMBER_PATH = "/member"

ROLE_HOME = {
    "admin": ADMIN_PATH,
    "member": MEMBER_PATH,
}

PROFILE_INCOMPLETE = "profile_incomplete"
ROLE_VERIFICATION_FAILED = "role_verification_failed"
ACCESS_DENIED = "Access denied: admin role required"


class Phase(str, Enum):
    CHECKING = "checking"
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"


@dataclass
class Identity:
    uid: str
    display_name: Optional[str] = None
    email: Optional[str] = None


@dataclass
class SessionState:
    phase: Phase = Phase.CHECKING
    identity: Optional[Identity] = None
    role: Optional[str] = None
    path: str = ROOT_PATH
    error: Optional[str] = None

    def as_event(self) -> dict:
        return {
            "type": "session",
            "phase": self.phase.value,
            "uid": self.identity.uid if self.identity else None,
            "role": self.role,
            "path": self.path,
            "error": self.error,
        }


@dataclass
class Decision:
    redirect_to: Optional[str] = None
    notice: Optional[str] = None
    sign_out: bool = False


def normalize_path(path: Optional[str]) -> str:
    if not path:
        return ROOT_PATH
    path = urlsplit(path).path or ROOT_PATH
    if not path.startswith("/"):
        path = "/" + path
    if len(path) > 1:
        path = path.rstrip("/") or ROOT_PATH
    return path


def _under(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix + "/")


def is_auth_path(path: str) -> bool:
    return _under(normalize_path(path), AUTH_PREFIX)


def home_for(role: Optional[str]) -> str:
    return ROLE_HOME.get(role, MEMBER_PATH)


def route(phase: Phase, role: Optional[str], path: str) -> Decision:
    """現在のフェーズ・ロール・パスからリダイレクト先を決める"""
    path = normalize_path(path)

    if phase == Phase.CHECKING:
        return Decision()

    if phase == Phase.ANONYMOUS:
        if is_auth_path(path):
            return Decision()
        return Decision(redirect_to=LOGIN_PATH)

    if is_auth_path(path) or path == ROOT_PATH:
        return Decision(redirect_to=home_for(role))
    if _under(path, ADMIN_PATH) and role != "admin":
        return Decision(redirect_to=MEMBER_PATH, notice=ACCESS_DENIED)
    # admin が /member を見るのは許可
    return Decision()


VerifyRole = Callable[[Identity], Awaitable[Optional[str]]]


async def evaluate(
    identity: Optional[Identity],
    path: str,
    verify_role: VerifyRole,
) -> Tuple[SessionState, Decision]:
    """Resolve one identity against the stored role and apply :func:`route`."""
    path = normalize_path(path)

    if identity is None:
        state = SessionState(phase=Phase.ANONYMOUS, path=path)
        return state, route(state.phase, None, path)

    error = None
    try:
        role = await verify_role(identity)
        if role is None:
            error = PROFILE_INCOMPLETE
    except TransientError as e:
        logger.error("Role verification failed: uid=%s error=%s", identity.uid, e.detail)
        role = None
        error = ROLE_VERIFICATION_FAILED

    if error:
        # 半端な認証状態を残さないよう強制サインアウト
        state = SessionState(phase=Phase.ANONYMOUS, path=path, error=error)
        decision = route(state.phase, None, path)
        decision.sign_out = True
        return state, decision

    state = SessionState(phase=Phase.AUTHENTICATED, identity=identity, role=role, path=path)
    return state, route(state.phase, role, path)


class Subscription:
    """Async iterator over session snapshots; ``cancel()`` ends iteration."""

    def __init__(self, guard: "SessionGuard"):
        self._guard = guard
        self._queue: asyncio.Queue = asyncio.Queue()
        self.cancelled = False

    def _push(self, state: Optional[SessionState]) -> None:
        self._queue.put_nowait(state)

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        self._guard._unsubscribe(self)
        self._queue.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self) -> SessionState:
        state = await self._queue.get()
        if state is None:
            raise StopAsyncIteration
        return state


Navigate = Callable[[str, Optional[str]], Awaitable[None]]
SignOut = Callable[[Optional[str]], Awaitable[None]]


class SessionGuard:
    def __init__(
        self,
        verify_role: VerifyRole,
        navigate: Navigate,
        sign_out: SignOut,
        path: str = ROOT_PATH,
    ):
        self._verify_role = verify_role
        self._navigate = navigate
        self._sign_out = sign_out
        self.state = SessionState(path=normalize_path(path))
        self._events: asyncio.Queue = asyncio.Queue()
        self._subscribers: List[Subscription] = []
        self._task: Optional[asyncio.Task] = None

    # ─── 購読 ───

    def subscribe(self) -> Subscription:
        sub = Subscription(self)
        self._subscribers.append(sub)
        return sub

    def _unsubscribe(self, sub: Subscription) -> None:
        if sub in self._subscribers:
            self._subscribers.remove(sub)

    def _publish(self) -> None:
        snapshot = dataclasses.replace(self.state)
        for sub in list(self._subscribers):
            sub._push(snapshot)

    # ─── イベント投入 ───

    def identity_changed(self, identity: Optional[Identity]) -> None:
        self._events.put_nowait(("identity", identity))

    def path_changed(self, path: str) -> None:
        self._events.put_nowait(("path", path))

    # ─── ライフサイクル ───

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is not None:
            task, self._task = self._task, None
            task.cancel()
            # 呼び出し側へのキャンセルは握りつぶさない
            await asyncio.gather(task, return_exceptions=True)
        for sub in list(self._subscribers):
            sub.cancel()

    async def wait_idle(self) -> None:
        """Wait until every queued event has been handled."""
        await self._events.join()

    async def _run(self) -> None:
        while True:
            kind, value = await self._events.get()
            try:
                await self.handle(kind, value)
            except Exception:
                logger.exception("Session guard failed to handle %s event", kind)
            finally:
                self._events.task_done()

    async def handle(self, kind: str, value) -> None:
        if kind == "identity":
            state, decision = await evaluate(value, self.state.path, self._verify_role)
        elif kind == "path":
            path = normalize_path(value)
            if self.state.phase == Phase.CHECKING:
                # 初回の認証イベント前はパスだけ覚えておく
                self.state = dataclasses.replace(self.state, path=path)
                self._publish()
                return
            state = dataclasses.replace(self.state, path=path, error=None)
            decision = route(state.phase, state.role, path)
        else:
            raise ValueError(f"Unknown guard event: {kind}")

        self.state = state
        if decision.sign_out:
            await self._sign_out(state.error)
        if decision.redirect_to and decision.redirect_to != state.path:
            self.state = dataclasses.replace(self.state, path=decision.redirect_to)
            await self._navigate(decision.redirect_to, decision.notice)
        self._publish()
