import logging
from typing import Optional

from fastapi import Request, Depends
from jose import jwt
from leaderboard.config import AUTH_PROVIDER, SUPABASE_JWT_SECRET, FIREBASE_PROJECT_ID, SESSION_COOKIE_NAME
from leaderboard.db import get_db
from leaderboard.errors import AuthError, PermissionDeniedError, TransientError
from leaderboard.guard import Identity
from leaderboard.repositories.member_repo import MemberRepository
from leaderboard.services.role_service import RoleVerifier

# Firebase 用
from google.oauth2 import id_token
from google.auth.transport.requests import Request as GoogleRequest

logger = logging.getLogger(__name__)


def decode_identity(token: str) -> Identity:
    """IDトークンを検証して Identity を返す"""
    if not token:
        raise AuthError("Missing token")

    if AUTH_PROVIDER == "supabase":
        try:
            payload = jwt.decode(
                token,
                SUPABASE_JWT_SECRET,
                algorithms=["HS256"],
                audience="authenticated"
            )
        except Exception as e:
            logger.error("Supabase JWT decode error: %s", e)
            raise AuthError("Invalid Supabase token")
        metadata = payload.get("user_metadata") or {}
        uid = payload.get("sub")
        display_name = metadata.get("full_name") or metadata.get("name")
        email = payload.get("email")

    elif AUTH_PROVIDER == "firebase":
        try:
            payload = id_token.verify_firebase_token(
                token,
                GoogleRequest(),
                audience=FIREBASE_PROJECT_ID
            )
        except Exception as e:
            logger.error("Firebase token verify error: %s", e)
            raise AuthError("Invalid Firebase token")
        # Token によっては "user_id"、または "sub" にユーザー UID が入っている
        uid = payload.get("user_id") or payload.get("sub")
        display_name = payload.get("name")
        email = payload.get("email")

    else:
        logger.error("Unknown AUTH_PROVIDER: %s", AUTH_PROVIDER)
        raise TransientError("Invalid AUTH_PROVIDER setting")

    if not uid:
        raise AuthError("Could not retrieve uid from token")
    return Identity(uid=uid, display_name=display_name, email=email)


def get_request_token(request: Request) -> Optional[str]:
    auth = request.headers.get("Authorization")
    if auth and auth.startswith("Bearer "):
        return auth[len("Bearer "):].strip() or None
    return request.cookies.get(SESSION_COOKIE_NAME)


async def get_optional_identity(request: Request) -> Optional[Identity]:
    """ページ用: トークンが無い・無効なら None（匿名扱い）"""
    token = get_request_token(request)
    if not token:
        return None
    try:
        return decode_identity(token)
    except AuthError:
        logger.warning("Ignoring invalid session token")
        request.state.stale_session = True
        return None


async def get_current_identity(request: Request) -> Identity:
    token = get_request_token(request)
    if not token:
        logger.warning("Authorization header missing or invalid")
        raise AuthError("Not authenticated")
    return decode_identity(token)


def get_role_verifier(db=Depends(get_db)) -> RoleVerifier:
    return RoleVerifier(MemberRepository(db))


async def get_current_member(
    identity: Identity = Depends(get_current_identity),
    db=Depends(get_db),
) -> dict:
    member = await MemberRepository(db).get_by_uid(identity.uid)
    if not member:
        logger.warning("Member not found: uid=%s", identity.uid)
        raise AuthError("Profile incomplete")
    return member


async def require_admin(
    identity: Identity = Depends(get_current_identity),
    verifier: RoleVerifier = Depends(get_role_verifier),
) -> Identity:
    # ロールは毎回DBから引く（クライアントの申告は信用しない）
    role = await verifier.verify_role(identity)
    if role is None:
        raise AuthError("Profile incomplete")
    if role != "admin":
        raise PermissionDeniedError("Admin role required")
    return identity
