import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError
from redis.exceptions import RedisError

from leaderboard.api import member, point_request, pages
from leaderboard.config import ALLOWED_ORIGINS, LOG_LEVEL
from leaderboard.errors import LeaderboardError, TransientError, ValidationError
from leaderboard import ws

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# FastAPI app設定など
app = FastAPI(title="Leaderboard Lite API")

# CORS
app.add_middleware(
      CORSMiddleware,
      allow_origins=ALLOWED_ORIGINS,
      allow_credentials=True,
      allow_methods=["*"],
      allow_headers=["*"],
)


@app.exception_handler(LeaderboardError)
async def leaderboard_error_handler(request: Request, exc: LeaderboardError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        message = "Invalid request"
    err = ValidationError(message)
    return JSONResponse(status_code=err.status_code, content=err.to_dict())


@app.exception_handler(PyMongoError)
async def mongo_error_handler(request: Request, exc: PyMongoError):
    logger.error("MongoDB error on %s: %s", request.url.path, exc)
    err = TransientError("Database temporarily unavailable, please retry")
    return JSONResponse(status_code=err.status_code, content=err.to_dict())


@app.exception_handler(RedisError)
async def redis_error_handler(request: Request, exc: RedisError):
    logger.error("Redis error on %s: %s", request.url.path, exc)
    err = TransientError("Cache temporarily unavailable, please retry")
    return JSONResponse(status_code=err.status_code, content=err.to_dict())


app.include_router(member.router, prefix="/api", tags=["member"])
app.include_router(point_request.router, prefix="/api", tags=["request"])
app.include_router(pages.api_router, prefix="/api", tags=["session"])
app.include_router(pages.router, tags=["pages"])
app.include_router(ws.router)
