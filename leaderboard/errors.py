# leaderboard/errors.py

from fastapi import HTTPException, status


class LeaderboardError(HTTPException):
    """HTTPException に機械可読な code と再試行可否を持たせた基底クラス"""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "error"
    retryable = False

    def __init__(self, detail: str = ""):
        super().__init__(status_code=self.status_code, detail=detail or self.code)

    def to_dict(self) -> dict:
        return {"detail": self.detail, "error": self.code, "retryable": self.retryable}


class ValidationError(LeaderboardError):
    status_code = 422
    code = "validation_error"


class InvalidStateError(LeaderboardError):
    status_code = status.HTTP_409_CONFLICT
    code = "invalid_state"


class InvalidDataError(LeaderboardError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_data"


class NotFoundError(LeaderboardError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class AuthError(LeaderboardError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "auth_error"


class PermissionDeniedError(LeaderboardError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "permission_denied"


class TransientError(LeaderboardError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "transient_error"
    retryable = True
