# leaderboard/schemas.py

from pydantic import BaseModel, EmailStr, Field
from typing import List, Optional
from datetime import datetime

from leaderboard.models import (
    Role,
    RequestStatus,
    DESCRIPTION_MIN_LENGTH,
    DESCRIPTION_MAX_LENGTH,
    POINTS_MIN,
    POINTS_MAX,
)

# --- Auth ---
class LoginBody(BaseModel):
    id_token: str

class SignupBody(BaseModel):
    id_token: str
    name: str = Field(min_length=1)
    role: Role = Role.MEMBER

class RedirectResponse(BaseModel):
    redirect: str

# --- Member ---
class MemberResponse(BaseModel):
    uid: str
    name: str
    email: EmailStr
    points: int
    role: Role

class LeaderboardEntry(BaseModel):
    rank: int
    uid: str
    name: str
    points: int
    role: Role
    is_online: Optional[bool] = None

# --- PointRequest ---
class PointRequestCreate(BaseModel):
    description: str = Field(min_length=DESCRIPTION_MIN_LENGTH, max_length=DESCRIPTION_MAX_LENGTH)
    points: int = Field(ge=POINTS_MIN, le=POINTS_MAX)

class PointRequestResponse(BaseModel):
    request_id: str
    member_id: str
    member_name: str
    description: str
    points: int
    requested_at: datetime
    status: RequestStatus
    processed_at: Optional[datetime] = None

# --- Dashboard ---
class AdminDashboardResponse(BaseModel):
    leaderboard: List[LeaderboardEntry]
    pending: List[PointRequestResponse]
    processed: List[PointRequestResponse]

class MemberDashboardResponse(BaseModel):
    profile: MemberResponse
    leaderboard: List[LeaderboardEntry]
    requests: List[PointRequestResponse]

# --- Session ---
class SessionResponse(BaseModel):
    phase: str
    uid: Optional[str] = None
    role: Optional[Role] = None
    path: str
    redirect: Optional[str] = None
    notice: Optional[str] = None
    error: Optional[str] = None
