# leaderboard/api/pages.py
"""Page routes.

Each page runs the session guard for the caller first. When the guard wants
the user elsewhere the route answers with a 303 redirect, otherwise it
returns the page payload as JSON.
"""

import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from leaderboard.api.point_request import get_dashboard_service
from leaderboard.config import SESSION_COOKIE_NAME
from leaderboard.db import get_db, get_redis
from leaderboard.errors import AuthError
from leaderboard.guard import (
    Identity,
    Phase,
    evaluate,
    home_for,
    ADMIN_PATH,
    LOGIN_PATH,
    MEMBER_PATH,
    ROOT_PATH,
    SIGNUP_PATH,
)
from leaderboard.repositories.member_repo import MemberRepository
from leaderboard.schemas import LoginBody, SessionResponse, SignupBody
from leaderboard.services.dashboard_service import DashboardService
from leaderboard.services.member_service import MemberService
from leaderboard.services.role_service import RoleVerifier
from leaderboard.utils import decode_identity, get_optional_identity, get_role_verifier
from leaderboard.ws import online_uids

logger = logging.getLogger(__name__)

router = APIRouter()
api_router = APIRouter()


def _redirect(path: str, notice: Optional[str] = None, error: Optional[str] = None) -> RedirectResponse:
    params = {k: v for k, v in (("notice", notice), ("error", error)) if v}
    url = f"{path}?{urlencode(params)}" if params else path
    return RedirectResponse(url, status_code=303)


async def _guard(request: Request, path: str, identity: Optional[Identity], verifier: RoleVerifier):
    """Returns (state, response); response is set when the page must not render."""
    state, decision = await evaluate(identity, path, verifier.verify_role)
    response = None
    if decision.redirect_to and decision.redirect_to != state.path:
        response = _redirect(decision.redirect_to, decision.notice, state.error)
    elif decision.sign_out:
        response = JSONResponse({"page": state.path.rsplit("/", 1)[-1], "error": state.error})
    if response is not None and (decision.sign_out or getattr(request.state, "stale_session", False)):
        response.delete_cookie(SESSION_COOKIE_NAME, path="/")
    return state, response


def _set_session(response: Response, token: str) -> None:
    response.set_cookie(SESSION_COOKIE_NAME, token, path="/", httponly=True, samesite="lax", max_age=3600)


# ---- Pages ----

@router.get(ROOT_PATH)
async def root(
    request: Request,
    identity: Optional[Identity] = Depends(get_optional_identity),
    verifier: RoleVerifier = Depends(get_role_verifier),
):
    state, response = await _guard(request, ROOT_PATH, identity, verifier)
    return response or _redirect(LOGIN_PATH)


@router.get(LOGIN_PATH)
async def login_page(
    request: Request,
    identity: Optional[Identity] = Depends(get_optional_identity),
    verifier: RoleVerifier = Depends(get_role_verifier),
):
    state, response = await _guard(request, LOGIN_PATH, identity, verifier)
    return response or {"page": "login"}


@router.get(SIGNUP_PATH)
async def signup_page(
    request: Request,
    identity: Optional[Identity] = Depends(get_optional_identity),
    verifier: RoleVerifier = Depends(get_role_verifier),
):
    state, response = await _guard(request, SIGNUP_PATH, identity, verifier)
    return response or {"page": "signup"}


@router.post(LOGIN_PATH)
async def login(
    body: LoginBody,
    verifier: RoleVerifier = Depends(get_role_verifier),
):
    identity = decode_identity(body.id_token)
    role = await verifier.verify_role(identity)
    if role is None:
        raise AuthError("Profile incomplete. Please sign up first.")
    response = JSONResponse({"redirect": home_for(role)})
    _set_session(response, body.id_token)
    logger.info("Login: uid=%s role=%s", identity.uid, role)
    return response


@router.post(SIGNUP_PATH)
async def signup(
    body: SignupBody,
    db=Depends(get_db),
):
    identity = decode_identity(body.id_token)
    member = await MemberService(MemberRepository(db)).register_member(
        identity.uid, identity.email, body.name, body.role
    )
    response = JSONResponse({"redirect": home_for(member["role"])})
    _set_session(response, body.id_token)
    return response


@router.api_route("/auth/logout", methods=["GET", "POST"])
async def logout():
    response = _redirect(LOGIN_PATH)
    response.delete_cookie(SESSION_COOKIE_NAME, path="/")
    return response


@router.get(ADMIN_PATH)
async def admin_page(
    request: Request,
    identity: Optional[Identity] = Depends(get_optional_identity),
    verifier: RoleVerifier = Depends(get_role_verifier),
    dashboard: DashboardService = Depends(get_dashboard_service),
    redis=Depends(get_redis),
):
    state, response = await _guard(request, ADMIN_PATH, identity, verifier)
    if response is not None:
        return response
    return {"page": "admin", **await dashboard.admin_view(await online_uids(redis))}


@router.get(MEMBER_PATH)
async def member_page(
    request: Request,
    identity: Optional[Identity] = Depends(get_optional_identity),
    verifier: RoleVerifier = Depends(get_role_verifier),
    dashboard: DashboardService = Depends(get_dashboard_service),
    redis=Depends(get_redis),
):
    state, response = await _guard(request, MEMBER_PATH, identity, verifier)
    if response is not None:
        return response
    return {"page": "member", **await dashboard.member_view(state.identity.uid, await online_uids(redis))}


# ---- Session API ----

@api_router.get("/session", response_model=SessionResponse)
async def session_decision(
    path: str = ROOT_PATH,
    identity: Optional[Identity] = Depends(get_optional_identity),
    verifier: RoleVerifier = Depends(get_role_verifier),
):
    state, decision = await evaluate(identity, path, verifier.verify_role)
    return SessionResponse(
        phase=state.phase.value,
        uid=state.identity.uid if state.phase == Phase.AUTHENTICATED else None,
        role=state.role,
        path=state.path,
        redirect=decision.redirect_to,
        notice=decision.notice,
        error=state.error,
    )
