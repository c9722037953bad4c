import os
import time

os.environ["AUTH_PROVIDER"] = "supabase"
os.environ["SUPABASE_JWT_SECRET"] = "test-secret"
os.environ["NTFY_TOPIC"] = ""
os.environ.setdefault("ALLOW_ADMIN_SIGNUP", "true")

import fakeredis.aioredis
import httpx
import mongomock
import pytest
from jose import jwt

from leaderboard import ws
from leaderboard.db import get_client, get_db, get_redis
from leaderboard.main import app
from leaderboard.repositories.member_repo import MemberRepository
from leaderboard.repositories.request_repo import PointRequestRepository
from leaderboard.services.member_service import MemberService
from leaderboard.services.request_service import PointRequestService


# ---- Motor 互換のテスト用アダプタ（mongomock をラップ） ----

class FakeCursor:
    def __init__(self, cursor):
        self._cursor = cursor

    def sort(self, *args, **kwargs):
        self._cursor = self._cursor.sort(*args, **kwargs)
        return self

    async def to_list(self, length=None):
        items = list(self._cursor)
        return items[:length] if length else items


class FakeCollection:
    def __init__(self, collection):
        self._collection = collection

    async def find_one(self, *args, session=None, **kwargs):
        return self._collection.find_one(*args, **kwargs)

    def find(self, *args, session=None, **kwargs):
        return FakeCursor(self._collection.find(*args, **kwargs))

    async def insert_one(self, document, session=None):
        return self._collection.insert_one(document)

    async def update_one(self, *args, session=None, **kwargs):
        return self._collection.update_one(*args, **kwargs)

    async def replace_one(self, *args, session=None, **kwargs):
        return self._collection.replace_one(*args, **kwargs)

    async def find_one_and_update(self, *args, session=None, **kwargs):
        return self._collection.find_one_and_update(*args, **kwargs)


class FakeDatabase:
    def __init__(self, database):
        self._database = database

    def __getitem__(self, name):
        return FakeCollection(self._database[name])

    def __getattr__(self, name):
        return FakeCollection(self._database[name])


class FakeSession:
    """with_transaction: コールバックが例外を投げたら全コレクションを巻き戻す"""

    def __init__(self, database):
        self._database = database

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def with_transaction(self, callback):
        snapshot = {
            name: list(self._database[name].find({}))
            for name in self._database.list_collection_names()
        }
        try:
            return await callback(self)
        except Exception:
            for name in self._database.list_collection_names():
                self._database[name].delete_many({})
                if snapshot.get(name):
                    self._database[name].insert_many(snapshot[name])
            raise


class FakeClient:
    def __init__(self, database):
        self._database = database

    async def start_session(self):
        return FakeSession(self._database)


# ---- fixtures ----

@pytest.fixture
def mongo():
    return mongomock.MongoClient()["leaderboard_test"]


@pytest.fixture
def db(mongo):
    return FakeDatabase(mongo)


@pytest.fixture
def client(mongo):
    return FakeClient(mongo)


@pytest.fixture
def redis():
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


@pytest.fixture(autouse=True)
def reset_connections():
    ws.active_connections.clear()
    ws.connection_roles.clear()
    yield
    ws.active_connections.clear()
    ws.connection_roles.clear()


@pytest.fixture
def member_service(db):
    return MemberService(MemberRepository(db))


@pytest.fixture
def request_service(db, client):
    return PointRequestService(PointRequestRepository(db, client))


@pytest.fixture
def test_app(db, client, redis):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_client] = lambda: client
    app.dependency_overrides[get_redis] = lambda: redis
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def http(test_app):
    transport = httpx.ASGITransport(app=test_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


def make_token(uid, email=None, name=None):
    claims = {
        "sub": uid,
        "aud": "authenticated",
        "exp": int(time.time()) + 3600,
        "email": email or f"{uid}@example.com",
        "user_metadata": {"full_name": name or uid.title()},
    }
    return jwt.encode(claims, "test-secret", algorithm="HS256")


def auth_header(uid):
    return {"Authorization": f"Bearer {make_token(uid)}"}


@pytest.fixture
async def seed_members(member_service):
    async def _seed(*members):
        for uid, name, points, role in members:
            await member_service.create_or_update_member(
                {"name": name, "email": f"{uid}@example.com", "points": points, "role": role},
                uid,
            )
    return _seed


@pytest.fixture
def tokens():
    class _Tokens:
        make = staticmethod(make_token)
        header = staticmethod(auth_header)
    return _Tokens
