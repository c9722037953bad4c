from datetime import datetime, timedelta

import pytest

from leaderboard.errors import InvalidDataError, InvalidStateError, NotFoundError, ValidationError
from leaderboard.services.request_service import validate_request

DESCRIPTION = "Organised the monthly meetup"


@pytest.fixture
async def alice(seed_members):
    await seed_members(("alice", "Alice", 100, "member"))
    return "alice"


async def _points(member_service, uid):
    return (await member_service.get_member_by_id(uid))["points"]


@pytest.mark.parametrize("length, ok", [(9, False), (10, True), (200, True), (201, False)])
def test_validate_request_description_bounds(length, ok):
    if ok:
        validate_request("x" * length, 5)
    else:
        with pytest.raises(ValidationError):
            validate_request("x" * length, 5)


@pytest.mark.parametrize("points, ok", [(0, False), (1, True), (100, True), (101, False)])
def test_validate_request_points_bounds(points, ok):
    if ok:
        validate_request(DESCRIPTION, points)
    else:
        with pytest.raises(ValidationError):
            validate_request(DESCRIPTION, points)


def test_validate_request_missing_fields():
    with pytest.raises(ValidationError):
        validate_request(None, 5)
    with pytest.raises(ValidationError):
        validate_request(DESCRIPTION, None)


async def test_submit_request_creates_pending_request(request_service, alice):
    request_id = await request_service.submit_request(alice, "Alice", DESCRIPTION, 20)

    request = await request_service.get_request(request_id)
    assert request["status"] == "pending"
    assert request["member_id"] == "alice"
    assert request["member_name"] == "Alice"
    assert request["points"] == 20
    assert isinstance(request["requested_at"], datetime)
    assert request["processed_at"] is None


async def test_submit_request_rejects_invalid_input(request_service, alice, mongo):
    with pytest.raises(ValidationError):
        await request_service.submit_request(alice, "Alice", "too short", 20)
    with pytest.raises(ValidationError):
        await request_service.submit_request(alice, "Alice", DESCRIPTION, 101)
    assert mongo["pointRequests"].count_documents({}) == 0


async def test_list_requests_newest_first_and_filtered(request_service, alice, mongo):
    first = await request_service.submit_request(alice, "Alice", DESCRIPTION, 1)
    second = await request_service.submit_request(alice, "Alice", DESCRIPTION, 2)
    third = await request_service.submit_request("bob", "Bob", DESCRIPTION, 3)
    base = datetime(2024, 1, 1)
    for offset, request_id in enumerate([first, second, third]):
        mongo["pointRequests"].update_one(
            {"request_id": request_id}, {"$set": {"requested_at": base + timedelta(minutes=offset)}}
        )
    await request_service.reject(second)

    assert [r["request_id"] for r in await request_service.list_requests()] == [third, second, first]
    assert [r["request_id"] for r in await request_service.list_requests("pending")] == [third, first]
    assert [r["request_id"] for r in await request_service.list_requests_for_member("alice")] == [second, first]


async def test_list_requests_unknown_status(request_service):
    with pytest.raises(ValidationError):
        await request_service.list_requests("archived")


async def test_approve_updates_request_and_points_together(request_service, member_service, alice):
    request_id = await request_service.submit_request(alice, "Alice", DESCRIPTION, 30)

    approved = await request_service.approve(request_id)

    assert approved["status"] == "approved"
    assert approved["processed_at"] is not None
    assert (await request_service.get_request(request_id))["status"] == "approved"
    assert await _points(member_service, alice) == 130


async def test_approve_twice_does_not_double_award(request_service, member_service, alice):
    request_id = await request_service.submit_request(alice, "Alice", DESCRIPTION, 30)
    await request_service.approve(request_id)

    with pytest.raises(InvalidStateError):
        await request_service.approve(request_id)
    assert await _points(member_service, alice) == 130


async def test_rejected_request_cannot_be_approved(request_service, member_service, alice):
    request_id = await request_service.submit_request(alice, "Alice", DESCRIPTION, 30)
    rejected = await request_service.reject(request_id)
    assert rejected["status"] == "rejected"

    with pytest.raises(InvalidStateError):
        await request_service.approve(request_id)
    with pytest.raises(InvalidStateError):
        await request_service.reject(request_id)
    assert await _points(member_service, alice) == 100


async def test_approve_race_is_caught_inside_transaction(request_service, member_service, alice, mongo):
    request_id = await request_service.submit_request(alice, "Alice", DESCRIPTION, 30)
    # 別の管理者が先に承認した状態を再現（読み取り後・コミット前）
    await request_service.repo.approve(request_id)

    with pytest.raises(InvalidStateError):
        await request_service.repo.approve(request_id)
    assert await _points(member_service, alice) == 130


async def test_approve_rolls_back_when_member_missing(request_service, mongo):
    request_id = await request_service.submit_request("ghost", "Ghost", DESCRIPTION, 30)

    with pytest.raises(InvalidDataError):
        await request_service.approve(request_id)
    assert (await request_service.get_request(request_id))["status"] == "pending"


async def test_approve_with_invalid_stored_points(request_service, member_service, alice, mongo):
    request_id = await request_service.submit_request(alice, "Alice", DESCRIPTION, 30)
    mongo["pointRequests"].update_one({"request_id": request_id}, {"$set": {"points": 0}})

    with pytest.raises(InvalidDataError):
        await request_service.approve(request_id)
    assert (await request_service.get_request(request_id))["status"] == "pending"
    assert await _points(member_service, alice) == 100


async def test_unknown_request(request_service):
    with pytest.raises(NotFoundError):
        await request_service.approve("missing")
    with pytest.raises(NotFoundError):
        await request_service.reject("missing")


async def test_list_requests_returns_every_stored_request(request_service, mongo):
    base = datetime(2024, 1, 1)
    mongo["pointRequests"].insert_many([
        {
            "request_id": f"r{i}",
            "member_id": "alice",
            "member_name": "Alice",
            "description": DESCRIPTION,
            "points": 10,
            "requested_at": base + timedelta(seconds=i),
            "status": "pending",
            "processed_at": None,
        }
        for i in range(1003)
    ])

    requests = await request_service.list_requests()
    assert len(requests) == 1003
    assert requests[0]["request_id"] == "r1002"
    assert len(await request_service.list_requests_for_member("alice")) == 1003
