from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, EmailStr
from typing import Optional
from datetime import datetime


class Role(str, Enum):
    MEMBER = "member"
    ADMIN = "admin"


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# 申請内容の制約
DESCRIPTION_MIN_LENGTH = 10
DESCRIPTION_MAX_LENGTH = 200
POINTS_MIN = 1
POINTS_MAX = 100


# --- Member ---
class MemberModel(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    uid: str                   # 認証プロバイダの sub / user_id
    name: str = Field(min_length=1)
    email: EmailStr
    points: int = Field(ge=0)
    role: Role


# --- PointRequest ---
class PointRequestModel(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    request_id: str
    member_id: str
    member_name: str
    description: str = Field(min_length=DESCRIPTION_MIN_LENGTH, max_length=DESCRIPTION_MAX_LENGTH)
    points: int = Field(ge=POINTS_MIN, le=POINTS_MAX)
    requested_at: datetime
    status: RequestStatus = RequestStatus.PENDING
    processed_at: Optional[datetime] = None
