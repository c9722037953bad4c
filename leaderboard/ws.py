import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Query, Depends
from redis.exceptions import RedisError

from leaderboard.db import get_db, get_redis
from leaderboard.errors import LeaderboardError
from leaderboard.guard import Phase, SessionGuard, ROOT_PATH
from leaderboard.repositories.member_repo import MemberRepository
from leaderboard.services.role_service import RoleVerifier
from leaderboard.utils import decode_identity

logger = logging.getLogger(__name__)

router = APIRouter()

PRESENCE_KEY = "presence:online"

# uid -> 送信キュー。送信は接続ごとの sender タスクだけが行う
active_connections: dict[str, asyncio.Queue] = {}
connection_roles: dict[str, str] = {}


async def send_event(uid: str, event: dict):
    outbox = active_connections.get(uid)
    if outbox is None:
        return
    outbox.put_nowait(event)


async def broadcast_to_admins(event: dict):
    """接続中の管理者全員に send_event を実行"""
    for uid, role in list(connection_roles.items()):
        if role == "admin":
            await send_event(uid, event)


async def online_uids(redis) -> set[str]:
    try:
        return set(await redis.smembers(PRESENCE_KEY))
    except RedisError as e:
        logger.warning("Presence lookup failed: %s", e)
        return set()


def _identity_from_token(token: Optional[str]):
    if not token:
        return None
    return decode_identity(token)


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
    path: str = Query(ROOT_PATH),
    db=Depends(get_db),
    redis=Depends(get_redis),
):
    await websocket.accept()
    outbox: asyncio.Queue = asyncio.Queue()

    async def navigate(to: str, notice: Optional[str]):
        outbox.put_nowait({"type": "redirect", "path": to, "notice": notice})

    async def sign_out(reason: Optional[str]):
        outbox.put_nowait({"type": "signed_out", "reason": reason})

    verifier = RoleVerifier(MemberRepository(db))
    guard = SessionGuard(verifier.verify_role, navigate, sign_out, path=path)
    subscription = guard.subscribe()
    registered: dict[str, Optional[str]] = {"uid": None}

    async def unregister():
        uid = registered["uid"]
        if uid is None:
            return
        registered["uid"] = None
        # 同じ uid の新しい接続が登録済みならオンラインのまま
        if active_connections.get(uid) is not outbox:
            return
        del active_connections[uid]
        connection_roles.pop(uid, None)
        try:
            await redis.srem(PRESENCE_KEY, uid)
        except RedisError as e:
            logger.warning("Presence update failed: uid=%s error=%s", uid, e)

    async def relay():
        # セッション状態の変化をクライアントへ流し、通知先の登録を更新する
        async for state in subscription:
            uid = state.identity.uid if state.identity else None
            if registered["uid"] != uid:
                await unregister()
            if state.phase == Phase.AUTHENTICATED and uid:
                registered["uid"] = uid
                active_connections[uid] = outbox
                connection_roles[uid] = state.role
                try:
                    await redis.sadd(PRESENCE_KEY, uid)
                except RedisError as e:
                    logger.warning("Presence update failed: uid=%s error=%s", uid, e)
            outbox.put_nowait(state.as_event())

    async def sender():
        while True:
            event = await outbox.get()
            await websocket.send_json(event)

    def push_token(value: Optional[str]):
        try:
            guard.identity_changed(_identity_from_token(value))
        except LeaderboardError as e:
            outbox.put_nowait({"type": "error", "error": e.code, "detail": e.detail})
            guard.identity_changed(None)

    relay_task = asyncio.create_task(relay())
    sender_task = asyncio.create_task(sender())
    guard.start()
    push_token(token)

    try:
        while True:
            data = await websocket.receive_json()
            if not isinstance(data, dict):
                continue

            event_type = data.get("type")

            # ping/pong
            if event_type == "ping":
                outbox.put_nowait({"type": "pong"})
                continue

            if event_type == "auth":
                push_token(data.get("token"))
                continue

            if event_type == "logout":
                guard.identity_changed(None)
                continue

            if event_type == "navigate":
                guard.path_changed(data.get("path") or ROOT_PATH)
                continue

            outbox.put_nowait({"type": "error", "error": "unknown_event", "detail": str(event_type)})

    except WebSocketDisconnect:
        pass

    finally:
        await guard.stop()
        relay_task.cancel()
        sender_task.cancel()
        await asyncio.gather(relay_task, sender_task, return_exceptions=True)
        await unregister()
